"""
Common utilities and helper functions for the CFMM arbitrage engine.

This module provides centralized helpers for logger construction and for the
wad fixed-point conventions used by every amount, price and fee calculation.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Union

from .constants import BPS_DENOMINATOR, WAD


# Fixed-point utilities
def to_wad(value: Union[int, str, Decimal]) -> int:
    """
    Convert a human amount to a wad integer.

    Integers are taken to already be wad-scaled. Strings and Decimals are
    read as whole units ("2.5" -> 2.5 * 10**18) and truncated toward zero.

    Args:
        value: Amount to convert

    Returns:
        Wad-scaled integer

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")
    if isinstance(value, int):
        return value
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Not an amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return int(amount * WAD)


def wad_to_decimal(amount: int) -> Decimal:
    """Convert a wad integer to a Decimal in whole units (display only)."""
    return Decimal(amount) / Decimal(WAD)


def format_wad(amount: int, places: int = 6) -> str:
    """Format a wad integer as a whole-unit string, e.g. 1.500000."""
    quantum = Decimal(1).scaleb(-places)
    return str(wad_to_decimal(amount).quantize(quantum))


def apply_bps_fee(amount: int, fee_bps: int) -> int:
    """Deduct a basis-point fee from an amount, rounding the fee down."""
    return amount - amount * fee_bps // BPS_DENOMINATOR


def clamp(value: int, min_val: int, max_val: int) -> int:
    """Clamp value between min and max bounds."""
    return max(min_val, min(value, max_val))


# Logging utilities
def get_logger(name: str, level: Union[str, int] = logging.INFO) -> logging.Logger:
    """
    Module logger with the engine's line format.

    A stream handler is attached once; logging_config.setup() replaces it
    with the root handler when the CLI configures logging.

    Args:
        name: Logger name (typically __name__)
        level: Level applied if the logger has none yet

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    if logger.level == logging.NOTSET:
        logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        logger.addHandler(handler)

    return logger
