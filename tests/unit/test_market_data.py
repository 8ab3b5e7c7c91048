"""
Unit tests for dex/market_data.py
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from cfmm_arbitrage.constants import WAD, WETH_ADDRESS
from cfmm_arbitrage.exceptions import DataError
from dex.adapters.v2 import fetch_pool_async
from dex.market_data import Web3MarketDataSource
from dex.pool import ConstantProductPool

PAIR = "0xB4e16d0168e52d35CaCD2c6185b44281Ec28C9Dc"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
OWNER = "0x000000000000000000000000000000000000dEaD"


@pytest.fixture
def source():
    return Web3MarketDataSource(Mock())


@pytest.mark.asyncio
async def test_fetch_pool_builds_snapshot(source):
    fetch = AsyncMock(return_value=(USDC, WETH_ADDRESS, 5 * WAD, 7 * WAD))
    with patch("dex.market_data.fetch_pool_async", fetch):
        pool = await source.fetch_pool(PAIR.lower())

    assert isinstance(pool, ConstantProductPool)
    assert pool.address == PAIR
    assert pool.tokens == (USDC, WETH_ADDRESS)
    assert pool.reserves == (5 * WAD, 7 * WAD)
    fetch.assert_awaited_once_with(source.web3, PAIR, max_retries=3)


@pytest.mark.asyncio
async def test_fetch_pool_invalid_address(source):
    with pytest.raises(DataError):
        await source.fetch_pool("not-an-address")


@pytest.mark.asyncio
async def test_update_reserves_returns_new_snapshot(source):
    pool = ConstantProductPool(
        address=PAIR, tokens=(USDC, WETH_ADDRESS), reserves=(WAD, WAD)
    )
    fetch = AsyncMock(return_value=(USDC, WETH_ADDRESS, 2 * WAD, 3 * WAD))
    with patch("dex.market_data.fetch_pool_async", fetch):
        fresh = await source.update_reserves(pool)

    assert fresh.reserves == (2 * WAD, 3 * WAD)
    assert pool.reserves == (WAD, WAD)


@pytest.mark.asyncio
async def test_update_reserves_token_mismatch(source):
    pool = ConstantProductPool(
        address=PAIR, tokens=(USDC, WETH_ADDRESS), reserves=(WAD, WAD)
    )
    fetch = AsyncMock(return_value=(WETH_ADDRESS, USDC, WAD, WAD))
    with patch("dex.market_data.fetch_pool_async", fetch):
        with pytest.raises(DataError, match="token mismatch"):
            await source.update_reserves(pool)


@pytest.mark.asyncio
async def test_balance_of_reads_base_token(source):
    balance = AsyncMock(return_value=42)
    with patch("dex.market_data.fetch_token_balance_async", balance):
        assert await source.balance_of(OWNER) == 42
    balance.assert_awaited_once_with(source.web3, WETH_ADDRESS, OWNER)


def pair_contract(token0_call):
    web3 = Mock()
    functions = web3.eth.contract.return_value.functions
    functions.token0.return_value.call = token0_call
    functions.token1.return_value.call = Mock(return_value=WETH_ADDRESS)
    functions.getReserves.return_value.call = Mock(return_value=[5, 7, 0])
    return web3


@pytest.mark.asyncio
async def test_fetch_pool_async_retries_rate_limits():
    token0 = Mock(side_effect=[Exception("429 Too Many Requests"), USDC.lower()])
    web3 = pair_contract(token0)
    sleep = AsyncMock()
    with patch("dex.adapters.v2.asyncio.sleep", sleep):
        state = await fetch_pool_async(web3, PAIR)

    assert state == (USDC, WETH_ADDRESS, 5, 7)
    sleep.assert_awaited_once_with(1)


@pytest.mark.asyncio
async def test_fetch_pool_async_reports_other_errors_immediately():
    token0 = Mock(side_effect=Exception("execution reverted"))
    with pytest.raises(DataError, match="attempt 1/3"):
        await fetch_pool_async(pair_contract(token0), PAIR)
    assert token0.call_count == 1


@pytest.mark.asyncio
async def test_fetch_pool_async_requires_checksummed_address():
    with pytest.raises(ValueError):
        await fetch_pool_async(Mock(), PAIR.lower())
