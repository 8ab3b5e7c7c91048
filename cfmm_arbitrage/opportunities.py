"""
Opportunity value objects handed to the execution layer.

All three kinds expose `expected_profit` (wad) so the ranker can order them
together, and `to_dict()` for plain-data hand-off. Amounts are rendered as
decimal strings of wei to stay exact in JSON.
"""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from dex.types import Amount, PoolId, PoolTrade, TokenId

from .constants import OpportunityKind
from .utils import format_wad


@dataclass(frozen=True)
class PairwiseOpportunity:
    """Buy token in one pool and sell it in another."""

    buy_pool: PoolId
    sell_pool: PoolId
    token: TokenId
    volume: Amount
    profit: Amount

    kind = OpportunityKind.PAIRWISE

    @property
    def expected_profit(self) -> Amount:
        return self.profit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "buy_pool": self.buy_pool,
            "sell_pool": self.sell_pool,
            "token": self.token,
            "volume": str(self.volume),
            "profit": str(self.profit),
        }

    def describe(self) -> str:
        return f"{self.token[:10]} {self.buy_pool[:10]} -> {self.sell_pool[:10]}"


@dataclass(frozen=True)
class MultiHopPath:
    """
    Cyclic path starting and ending in the same token.

    tokens has one more entry than pools: tokens[i] is sold into pools[i]
    for tokens[i + 1].
    """

    pools: Tuple[PoolId, ...]
    tokens: Tuple[TokenId, ...]
    expected_profit: Amount

    kind = OpportunityKind.MULTI_HOP

    @property
    def hops(self) -> int:
        return len(self.pools)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "pools": list(self.pools),
            "tokens": list(self.tokens),
            "expected_profit": str(self.expected_profit),
        }

    def describe(self) -> str:
        return " -> ".join(t[:10] for t in self.tokens)


@dataclass(frozen=True)
class NetworkArbitrage:
    """
    Simultaneous trades across a pool network from one dual optimization.

    converged=False marks a best-effort solution to be used with reduced
    confidence.
    """

    prices: Tuple[Amount, ...]
    trades: Tuple[Tuple[PoolId, PoolTrade], ...]
    expected_profit: Amount
    converged: bool
    iterations: int

    kind = OpportunityKind.NETWORK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "prices": [str(p) for p in self.prices],
            "trades": [
                {
                    "pool": pool,
                    "delta": [str(d) for d in trade.delta],
                    "value": str(trade.value),
                }
                for pool, trade in self.trades
            ],
            "expected_profit": str(self.expected_profit),
            "converged": self.converged,
            "iterations": self.iterations,
        }

    def describe(self) -> str:
        state = "converged" if self.converged else "best effort"
        return f"{len(self.trades)} pools ({state}, {self.iterations} it)"


def summarize(opportunity) -> str:
    """One-line console summary of any opportunity."""
    return (
        f"[{opportunity.kind.value}] {opportunity.describe()} "
        f"profit={format_wad(opportunity.expected_profit)}"
    )
