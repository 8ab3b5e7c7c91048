"""
Reference pricing for the pairwise detector.

A pool's reference price for a token is the pool's spot rate expressed in
its counter-token: other_reserve / this_reserve, scaled to wad. Pools that
cannot produce a price are skipped with a warning.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from dex.pool import CFMMPool
from dex.types import Amount, PoolId, TokenId

from .constants import WAD
from .utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReferencePrice:
    """Spot price of token in pool, in units of the pool's other token."""

    pool: PoolId
    token: TokenId
    price: Amount


def reference_price(pool: CFMMPool, token: TokenId) -> Optional[ReferencePrice]:
    """
    Spot price of token in pool, or None if the pool cannot price it.

    None is returned (and logged) for pools without two tokens, for tokens
    the pool does not trade and for zero reserves.
    """
    if len(pool.tokens) < 2:
        logger.warning(f"Pool {pool.address} has fewer than two tokens, skipping")
        return None
    if token not in pool.tokens:
        logger.warning(f"Token {token} not found in pool {pool.address}, skipping")
        return None

    this_reserve = pool.get_reserve(token)
    other_reserve = pool.get_reserve(pool.other_token(token))
    if this_reserve <= 0 or other_reserve <= 0:
        logger.warning(
            f"Reserves unavailable for {token} in pool {pool.address}: "
            f"{pool.reserves}, skipping"
        )
        return None
    return ReferencePrice(
        pool=pool.address, token=token, price=other_reserve * WAD // this_reserve
    )


def generate_reference_prices(
    markets_by_token: Dict[TokenId, Sequence[CFMMPool]],
) -> Dict[Tuple[PoolId, TokenId], ReferencePrice]:
    """
    Reference prices for every (pool, token) pairing of the market map.

    Args:
        markets_by_token: Token -> pools trading it

    Returns:
        Mapping keyed by (pool address, token)
    """
    prices: Dict[Tuple[PoolId, TokenId], ReferencePrice] = {}
    for token, pools in markets_by_token.items():
        for pool in pools:
            ref = reference_price(pool, token)
            if ref is not None:
                prices[(ref.pool, ref.token)] = ref
    return prices


def group_pools_by_token(
    pools: Iterable[CFMMPool], base_token: Optional[TokenId] = None
) -> Dict[TokenId, List[CFMMPool]]:
    """
    Index pools by token.

    With a base token, only pools pairing a token with the base are kept,
    keyed by the non-base token. Without one, every pool is listed under
    both of its tokens. Insertion order follows the input.
    """
    grouped: Dict[TokenId, List[CFMMPool]] = defaultdict(list)
    for pool in pools:
        if base_token is None:
            for token in pool.tokens:
                grouped[token].append(pool)
        elif base_token in pool.tokens:
            grouped[pool.other_token(base_token)].append(pool)
    return dict(grouped)


def base_price_vector(
    tokens: Sequence[TokenId], pools: Iterable[CFMMPool], base_token: TokenId
) -> List[Amount]:
    """
    Wad price of each token in units of base_token.

    Each token is priced against the base in its deepest base pool; tokens
    without one (and the base itself) get WAD.
    """
    best: Dict[TokenId, Tuple[Amount, Amount]] = {}
    for pool in pools:
        if base_token not in pool.tokens or pool.has_zero_reserve:
            continue
        token = pool.other_token(base_token)
        depth = pool.get_reserve(base_token)
        if token not in best or depth > best[token][0]:
            ref = reference_price(pool, token)
            if ref is not None:
                best[token] = (depth, ref.price)
    return [best[t][1] if t in best else WAD for t in tokens]
