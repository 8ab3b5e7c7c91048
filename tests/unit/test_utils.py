"""Tests for the utils module."""

import logging
from decimal import Decimal

import pytest

from cfmm_arbitrage.constants import WAD
from cfmm_arbitrage.utils import (
    apply_bps_fee,
    clamp,
    format_wad,
    get_logger,
    to_wad,
    wad_to_decimal,
)


class TestFixedPoint:
    def test_to_wad_int_passthrough(self):
        assert to_wad(5) == 5

    def test_to_wad_strings_and_decimals(self):
        assert to_wad("2") == 2 * WAD
        assert to_wad("0.5") == WAD // 2
        assert to_wad(Decimal("0.000001")) == 10**12

    def test_to_wad_truncates_below_wei(self):
        assert to_wad("0.0000000000000000019") == 1

    @pytest.mark.parametrize("value", [True, "abc", "NaN", "Infinity", None])
    def test_to_wad_rejects_non_amounts(self, value):
        with pytest.raises(ValueError):
            to_wad(value)

    def test_wad_to_decimal_and_format(self):
        assert wad_to_decimal(3 * WAD // 2) == Decimal("1.5")
        assert format_wad(3 * WAD // 2) == "1.500000"
        assert format_wad(WAD // 3, places=2) == "0.33"

    def test_apply_bps_fee(self):
        assert apply_bps_fee(10_000, 9) == 9_991
        assert apply_bps_fee(WAD, 0) == WAD
        # Fee rounds down
        assert apply_bps_fee(100, 9) == 100

    def test_clamp(self):
        assert clamp(5, 0, 3) == 3
        assert clamp(-1, 0, 3) == 0
        assert clamp(2, 0, 3) == 2


class TestGetLogger:
    def test_returns_configured_logger(self):
        logger = get_logger("cfmm_arbitrage.test_logger")
        assert isinstance(logger, logging.Logger)
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1

    def test_does_not_duplicate_handlers(self):
        first = get_logger("cfmm_arbitrage.test_dup")
        second = get_logger("cfmm_arbitrage.test_dup")
        assert first is second
        assert len(second.handlers) == 1
