"""Shared fixtures for the engine test suite."""

import pytest
from prometheus_client import CollectorRegistry

from cfmm_arbitrage.constants import WAD, WETH_ADDRESS
from cfmm_arbitrage.metrics import EngineMetrics
from dex.pool import ConstantProductPool

WETH = WETH_ADDRESS
TOKEN_X = "0x1111111111111111111111111111111111111111"
TOKEN_Y = "0x2222222222222222222222222222222222222222"
TOKEN_Z = "0x3333333333333333333333333333333333333333"


def pair(address, token_a, reserve_a, token_b, reserve_b, **kwargs):
    """Constant-product pool from whole-unit reserves."""
    return ConstantProductPool(
        address=address,
        tokens=(token_a, token_b),
        reserves=(reserve_a * WAD, reserve_b * WAD),
        **kwargs,
    )


@pytest.fixture
def make_pair():
    return pair


@pytest.fixture
def priced_pools():
    """Two WETH/X pools quoting X at 100 and 105 WETH."""
    pool1 = pair("0xpool1", TOKEN_X, 10_000, WETH, 1_000_000)
    pool2 = pair("0xpool2", TOKEN_X, 10_000, WETH, 1_050_000)
    return pool1, pool2


@pytest.fixture
def metrics():
    return EngineMetrics(CollectorRegistry())
