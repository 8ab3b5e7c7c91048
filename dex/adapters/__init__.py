"""
DEX adapter modules for different AMM types.
"""

from .v2 import (
    encode_swap,
    fetch_pool_async,
    fetch_token_balance_async,
    get_output_amount,
    get_price_impact,
    optimal_arbitrage,
)

__all__ = [
    "encode_swap",
    "fetch_pool_async",
    "fetch_token_balance_async",
    "get_output_amount",
    "get_price_impact",
    "optimal_arbitrage",
]
