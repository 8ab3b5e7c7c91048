"""
Pool-level models and adapters for CFMM arbitrage.
"""

from .pool import POOL_KINDS, CFMMPool, ConstantProductPool, build_pool
from .types import NO_TRADE, PoolTrade

__all__ = [
    "POOL_KINDS",
    "CFMMPool",
    "ConstantProductPool",
    "build_pool",
    "NO_TRADE",
    "PoolTrade",
]
