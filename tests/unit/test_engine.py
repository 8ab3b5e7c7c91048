"""
Tests for the evaluation-cycle orchestration in cfmm_arbitrage/engine.py
"""

import asyncio
from unittest.mock import patch

import pytest

from cfmm_arbitrage.config_schema import EngineConfig
from cfmm_arbitrage.constants import OpportunityKind, WAD
from cfmm_arbitrage.engine import ArbitrageEngine
from cfmm_arbitrage.exceptions import DataError, EngineBusyError, OptimizerError
from cfmm_arbitrage.optimizer import CFMMNetwork, DualOptimizer, OptimizationResult
from conftest import TOKEN_X, WETH, pair
from dex.types import PoolTrade

PAIRWISE_ONLY = {"optimizer": {"enabled": False}, "multihop": {"enabled": False}}


class FakeMarketData:
    """In-memory market data source."""

    def __init__(self, reserves=None, failing=(), gate=None):
        self.reserves = reserves or {}
        self.failing = set(failing)
        self.gate = gate
        self.reads = 0

    async def fetch_pool(self, address):
        raise NotImplementedError

    async def update_reserves(self, pool):
        self.reads += 1
        if self.gate is not None:
            await self.gate.wait()
        if pool.address in self.failing:
            raise DataError(f"read failed for {pool.address}", source="rpc", pool=pool.address)
        if pool.address in self.reserves:
            return pool.with_reserves(*self.reserves[pool.address])
        return pool


def kinds(opportunities):
    return [o.kind for o in opportunities]


async def wait_until_busy(engine):
    for _ in range(100):
        if engine.busy:
            return
        await asyncio.sleep(0)
    raise AssertionError("engine never started the cycle")


def converged_result(converged=True):
    return OptimizationResult(
        prices=[105 * WAD, WAD],
        dual_value=3 * WAD,
        converged=converged,
        iterations=4,
        trades=[("0xpool1", PoolTrade(delta=(WAD, -100 * WAD), value=5 * WAD))],
    )


@pytest.mark.asyncio
async def test_pairwise_cycle(priced_pools):
    engine = ArbitrageEngine(EngineConfig(**PAIRWISE_ONLY), FakeMarketData())
    ranked = await engine.evaluate(list(priced_pools))
    assert kinds(ranked) == [OpportunityKind.PAIRWISE]
    assert ranked[0].buy_pool == "0xpool1"


@pytest.mark.asyncio
async def test_empty_snapshot():
    engine = ArbitrageEngine(EngineConfig(), FakeMarketData())
    assert await engine.evaluate([]) == []


@pytest.mark.asyncio
async def test_zero_reserve_pool_excluded(priced_pools, metrics):
    dead = pair("0xdead", TOKEN_X, 0, WETH, 1_000)
    config = EngineConfig(optimizer={"enabled": False})
    engine = ArbitrageEngine(config, FakeMarketData(), metrics=metrics)

    ranked = await engine.evaluate([dead, *priced_pools])

    assert ranked
    for opp in ranked:
        assert "0xdead" not in str(opp.to_dict())
    assert (
        metrics.registry.get_sample_value(
            "cfmm_arbitrage_pools_skipped_total", {"reason": "invalid_reserves"}
        )
        == 1
    )


@pytest.mark.asyncio
async def test_zero_reserve_pool_never_reaches_optimizer(priced_pools, metrics):
    dead = pair("0xdead", TOKEN_X, 0, WETH, 1_000)
    engine = ArbitrageEngine(EngineConfig(), FakeMarketData(), metrics=metrics)

    with patch("cfmm_arbitrage.engine.CFMMNetwork", wraps=CFMMNetwork) as network_cls:
        ranked = await engine.evaluate([dead, *priced_pools])

    network_cls.assert_called_once()
    network_pools = network_cls.call_args.args[0]
    assert [p.address for p in network_pools] == ["0xpool1", "0xpool2"]
    assert not metrics.registry.get_sample_value("cfmm_arbitrage_optimizer_failures_total")
    assert ranked
    for opp in ranked:
        assert "0xdead" not in str(opp.to_dict())


@pytest.mark.asyncio
async def test_failed_refresh_drops_pool(priced_pools):
    pool3 = pair("0xpool3", TOKEN_X, 10_000, WETH, 1_100_000)
    market_data = FakeMarketData(failing={"0xpool3"})
    engine = ArbitrageEngine(EngineConfig(**PAIRWISE_ONLY), market_data)

    ranked = await engine.evaluate([*priced_pools, pool3])

    assert market_data.reads == 3
    assert len(ranked) == 1
    assert {ranked[0].buy_pool, ranked[0].sell_pool} == {"0xpool1", "0xpool2"}


@pytest.mark.asyncio
async def test_refresh_uses_fresh_reserves(priced_pools):
    # Fresh reserves flip which pool is cheap
    market_data = FakeMarketData(reserves={"0xpool1": (10_000 * WAD, 1_200_000 * WAD)})
    engine = ArbitrageEngine(EngineConfig(**PAIRWISE_ONLY), market_data)
    ranked = await engine.evaluate(list(priced_pools))
    assert ranked[0].buy_pool == "0xpool2"


@pytest.mark.asyncio
async def test_optimizer_failure_falls_back_to_pairwise(priced_pools, metrics):
    config = EngineConfig(multihop={"enabled": False})
    engine = ArbitrageEngine(config, FakeMarketData(), metrics=metrics)

    with patch.object(DualOptimizer, "optimize", side_effect=OptimizerError("boom")):
        ranked = await engine.evaluate(list(priced_pools))

    assert kinds(ranked) == [OpportunityKind.PAIRWISE]
    assert metrics.registry.get_sample_value("cfmm_arbitrage_optimizer_failures_total") == 1


@pytest.mark.asyncio
async def test_converged_optimizer_supersedes_pairwise(priced_pools):
    config = EngineConfig(multihop={"enabled": False})
    engine = ArbitrageEngine(config, FakeMarketData())

    with patch.object(DualOptimizer, "optimize", return_value=converged_result()):
        ranked = await engine.evaluate(list(priced_pools))

    assert kinds(ranked) == [OpportunityKind.NETWORK]
    assert ranked[0].converged
    assert ranked[0].expected_profit == 5 * WAD


@pytest.mark.asyncio
async def test_unconverged_optimizer_keeps_pairwise(priced_pools, metrics):
    config = EngineConfig(multihop={"enabled": False})
    engine = ArbitrageEngine(config, FakeMarketData(), metrics=metrics)

    with patch.object(DualOptimizer, "optimize", return_value=converged_result(False)):
        ranked = await engine.evaluate(list(priced_pools))

    assert set(kinds(ranked)) == {OpportunityKind.NETWORK, OpportunityKind.PAIRWISE}
    network = next(o for o in ranked if o.kind is OpportunityKind.NETWORK)
    assert network.converged is False
    assert (
        metrics.registry.get_sample_value(
            "cfmm_arbitrage_optimizer_runs_total", {"converged": "false"}
        )
        == 1
    )


@pytest.mark.asyncio
async def test_full_cycle_with_real_optimizer(priced_pools, metrics):
    engine = ArbitrageEngine(EngineConfig(), FakeMarketData(), metrics=metrics)

    ranked = await engine.evaluate(list(priced_pools))

    assert ranked
    profits = [o.expected_profit for o in ranked]
    assert profits == sorted(profits, reverse=True)
    assert all(p > 0 for p in profits)
    assert OpportunityKind.MULTI_HOP in kinds(ranked)
    assert metrics.registry.get_sample_value("cfmm_arbitrage_cycles_total") == 1


@pytest.mark.asyncio
async def test_concurrent_cycle_rejected(priced_pools):
    gate = asyncio.Event()
    engine = ArbitrageEngine(EngineConfig(**PAIRWISE_ONLY), FakeMarketData(gate=gate))

    first = asyncio.create_task(engine.evaluate(list(priced_pools)))
    await wait_until_busy(engine)

    with pytest.raises(EngineBusyError):
        await engine.evaluate(list(priced_pools))

    gate.set()
    ranked = await first
    assert len(ranked) == 1
    assert not engine.busy


@pytest.mark.asyncio
async def test_cancellation_releases_engine(priced_pools):
    gate = asyncio.Event()
    market_data = FakeMarketData(gate=gate)
    engine = ArbitrageEngine(EngineConfig(**PAIRWISE_ONLY), market_data)

    task = asyncio.create_task(engine.evaluate(list(priced_pools)))
    await wait_until_busy(engine)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert not engine.busy

    gate.set()
    ranked = await engine.evaluate(list(priced_pools))
    assert len(ranked) == 1
