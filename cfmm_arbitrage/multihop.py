"""
Bounded-depth search for flash-loan funded arbitrage cycles.

Starting from one unit of the start token, walks pools depth-first and
records every cycle that returns to the start token with more than it
borrowed. The flash-loan fee is charged on the first hop.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set

from dex.types import PoolId, TokenId

from .constants import DEFAULT_MULTI_HOP, WAD
from .interfaces import QuotingPool
from .opportunities import MultiHopPath
from .utils import apply_bps_fee, get_logger

logger = get_logger(__name__)


@dataclass
class _SearchState:
    """Path under construction; hop() pushes one edge and always pops it."""

    pools: List[PoolId] = field(default_factory=list)
    tokens: List[TokenId] = field(default_factory=list)
    visited: Set[TokenId] = field(default_factory=set)

    @property
    def depth(self) -> int:
        return len(self.pools)

    @contextmanager
    def hop(self, pool: PoolId, token: TokenId):
        newly_visited = token not in self.visited
        self.pools.append(pool)
        self.tokens.append(token)
        if newly_visited:
            self.visited.add(token)
        try:
            yield self
        finally:
            self.pools.pop()
            self.tokens.pop()
            if newly_visited:
                self.visited.discard(token)


class MultiHopSearch:
    """
    Depth-first cycle search.

    Args:
        max_hops: Maximum number of pools in a cycle
        max_paths: Search stops once this many cycles are found
        flash_loan_fee_bps: Fee deducted from the first hop's output
    """

    def __init__(
        self,
        max_hops: int = DEFAULT_MULTI_HOP["MAX_HOPS"],
        max_paths: int = DEFAULT_MULTI_HOP["MAX_PATHS"],
        flash_loan_fee_bps: int = DEFAULT_MULTI_HOP["FLASH_LOAN_FEE_BPS"],
    ):
        min_hops = DEFAULT_MULTI_HOP["MIN_HOPS"]
        if max_hops < min_hops:
            raise ValueError(f"max_hops must be at least {min_hops}: {max_hops}")
        if max_paths < 1:
            raise ValueError(f"max_paths must be positive: {max_paths}")
        self.max_hops = max_hops
        self.max_paths = max_paths
        self.flash_loan_fee_bps = flash_loan_fee_bps

    @classmethod
    def from_config(cls, config) -> "MultiHopSearch":
        """Build a search from a MultiHopConfig."""
        return cls(
            max_hops=config.max_hops,
            max_paths=config.max_paths,
            flash_loan_fee_bps=config.flash_loan_fee_bps,
        )

    def find_paths(
        self,
        markets_by_token: Dict[TokenId, Sequence[QuotingPool]],
        start_token: TokenId,
        initial_amount: int = WAD,
    ) -> List[MultiHopPath]:
        """
        Profitable cycles from start_token back to itself.

        Args:
            markets_by_token: Token -> every pool trading it
            start_token: Token borrowed and repaid
            initial_amount: Amount borrowed (one unit by default)

        Returns:
            Paths sorted by descending expected profit
        """
        paths: List[MultiHopPath] = []
        state = _SearchState(tokens=[start_token], visited={start_token})
        self._search(markets_by_token, state, start_token, initial_amount, initial_amount, paths)
        paths.sort(key=lambda p: p.expected_profit, reverse=True)
        logger.debug(f"Multi-hop search from {start_token} found {len(paths)} cycles")
        return paths

    def _search(
        self,
        markets_by_token: Dict[TokenId, Sequence[QuotingPool]],
        state: _SearchState,
        target: TokenId,
        amount: int,
        initial_amount: int,
        paths: List[MultiHopPath],
    ) -> None:
        if len(paths) >= self.max_paths:
            return

        current = state.tokens[-1]
        if state.depth > 0 and current == target:
            profit = amount - initial_amount
            if profit > 0:
                paths.append(
                    MultiHopPath(
                        pools=tuple(state.pools),
                        tokens=tuple(state.tokens),
                        expected_profit=profit,
                    )
                )
            return

        if state.depth == self.max_hops:
            return

        for pool in markets_by_token.get(current, ()):
            if len(paths) >= self.max_paths:
                return
            if pool.address in state.pools:
                continue
            try:
                next_token = pool.other_token(current)
                if next_token in state.visited and not (
                    next_token == target and state.depth > 0
                ):
                    continue
                output = pool.get_tokens_out(current, next_token, amount)
            except Exception as e:
                logger.warning(f"Quote failed in pool {pool.address} for {current}: {e}")
                continue

            if state.depth == 0:
                output = apply_bps_fee(output, self.flash_loan_fee_bps)
            if output <= 0:
                continue

            with state.hop(pool.address, next_token):
                self._search(markets_by_token, state, target, output, initial_amount, paths)
