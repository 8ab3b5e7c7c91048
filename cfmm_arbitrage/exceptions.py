"""
Exception hierarchy for the CFMM arbitrage engine.

Provides specific exception types for the engine's error categories so that
callers can tell recoverable data problems (skip the pool) apart from
optimizer failures (fall back to the pairwise detector) and configuration
mistakes (fail at construction).
"""

from typing import Any, Dict, Optional


class CFMMArbitrageError(Exception):
    """Base exception for all CFMM arbitrage related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(CFMMArbitrageError):
    """Raised when there are configuration-related issues."""

    pass


class DataError(CFMMArbitrageError):
    """Raised when pool or market data is missing or unusable."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        pool: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.source = source
        self.pool = pool


class InvalidReserves(DataError):
    """Raised when a pool reports a zero (or negative) reserve."""

    def __init__(
        self,
        message: str,
        pool: Optional[str] = None,
        reserves: Optional[tuple] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, source="pool", pool=pool, details=details)
        self.reserves = reserves


class QuoteError(DataError):
    """Raised when a pool cannot quote a swap between two tokens."""

    def __init__(
        self,
        message: str,
        pool: Optional[str] = None,
        token_in: Optional[str] = None,
        token_out: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, source="quote", pool=pool, details=details)
        self.token_in = token_in
        self.token_out = token_out


class OptimizerError(CFMMArbitrageError):
    """Raised when a dual optimization run has to be aborted."""

    def __init__(
        self,
        message: str,
        iteration: Optional[int] = None,
        pool: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.iteration = iteration
        self.pool = pool


class EngineBusyError(CFMMArbitrageError):
    """Raised when an evaluation cycle starts while another one is running."""

    pass
