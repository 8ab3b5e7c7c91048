"""
CFMM Arbitrage Engine.

Evaluates snapshots of constant-function market maker pools and produces
ranked arbitrage opportunities: pairwise cross-pool trades, flash-loan
funded multi-hop cycles and network-wide trades from a dual price-space
optimizer. Execution (bundle building and submission) is left to the caller.

Engine components live in their own modules (`cfmm_arbitrage.engine`,
`cfmm_arbitrage.optimizer`, ...); this package root only exports the
dependency-free pieces so that `dex` can import it without a cycle.
"""

PROJECT_NAME = "CFMM-Arbitrage-Engine"

from cfmm_arbitrage.version import __version__ as VERSION  # noqa: E402
from cfmm_arbitrage.constants import WAD, MAX_AMOUNT, OpportunityKind  # noqa: E402
from cfmm_arbitrage.exceptions import (  # noqa: E402
    CFMMArbitrageError,
    ConfigurationError,
    DataError,
    InvalidReserves,
    QuoteError,
    OptimizerError,
    EngineBusyError,
)

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "WAD",
    "MAX_AMOUNT",
    "OpportunityKind",
    "CFMMArbitrageError",
    "ConfigurationError",
    "DataError",
    "InvalidReserves",
    "QuoteError",
    "OptimizerError",
    "EngineBusyError",
]
