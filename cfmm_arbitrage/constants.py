"""
Constants and enums for the CFMM arbitrage engine.

Centralizes fixed-point scales, protocol limits and the default thresholds
inherited from the original market filter.
"""

from enum import Enum

# Fixed-point scale: every amount, price and profit is an int scaled by 1e18
WAD = 10**18

# uint256 max, upper end of every price coordinate search
MAX_AMOUNT = 2**256 - 1

# Scale applied to the inverse curvature product stored in optimizer memory
RHO_SCALE = 2**64

BPS_DENOMINATOR = 10_000

# Canonical WETH on Ethereum mainnet
WETH_ADDRESS = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"


class OpportunityKind(Enum):
    """Kinds of opportunity produced by the engine."""

    PAIRWISE = "pairwise"
    MULTI_HOP = "multi_hop"
    NETWORK = "network"


# Default market thresholds (amounts in wei)
DEFAULT_THRESHOLDS = {
    "MIN_LIQUIDITY": 2 * WAD,
    "MIN_VOLUME_24H": WAD // 2,
    "MIN_MARKET_CAP": 25 * WAD,
    # Very high number to effectively remove the per-token limit
    "MAX_PAIRS": 1_000_000,
    "MIN_PROFIT_THRESHOLD": WAD // 1000,
    "MAX_TRADE_SIZE": 100 * WAD,
}

DEFAULT_OPTIMIZER = {
    "MAX_ITERATIONS": 100,
    "TOLERANCE": "0.000001",
    "MEMORY": 10,
    # 0.001 ETH
    "BOUNDS_PRECISION": 10**15,
}

DEFAULT_MULTI_HOP = {
    # A cycle needs at least two distinct pools
    "MIN_HOPS": 2,
    "MAX_HOPS": 3,
    "MAX_PATHS": 10,
    # 0.09% fee charged by most flash loan providers
    "FLASH_LOAN_FEE_BPS": 9,
}

DEFAULT_CONCURRENCY = {
    "MAX_CONCURRENT_READS": 5,
    "BALANCE_RETRIES": 5,
    "BALANCE_RETRY_DELAY_SECONDS": 0.5,
    "RPC_TIMEOUT_SECONDS": 10,
}

METRICS_CONSTANTS = {
    "METRIC_PREFIX": "cfmm_arbitrage",
    "HISTOGRAM_BUCKETS_LATENCY": [
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ],
}
