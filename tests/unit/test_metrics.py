"""
Unit tests for Prometheus metrics
"""

import pytest
from prometheus_client import CollectorRegistry, generate_latest

from cfmm_arbitrage.constants import WAD
from cfmm_arbitrage.metrics import EngineMetrics
from cfmm_arbitrage.opportunities import MultiHopPath, PairwiseOpportunity


@pytest.fixture
def test_registry():
    """Create a test-specific registry"""
    return CollectorRegistry()


@pytest.fixture
def engine_metrics(test_registry):
    return EngineMetrics(test_registry)


class TestEngineMetrics:
    """Test EngineMetrics functionality"""

    def test_initialization(self, engine_metrics):
        assert engine_metrics.registry is not None
        assert hasattr(engine_metrics, "cycles_total")
        assert hasattr(engine_metrics, "optimizer_runs_total")

    def test_cycle_metrics(self, engine_metrics, test_registry):
        engine_metrics.record_cycle(0.2)
        engine_metrics.record_cycle(0.4)

        assert test_registry.get_sample_value("cfmm_arbitrage_cycles_total") == 2
        assert (
            test_registry.get_sample_value("cfmm_arbitrage_cycle_duration_seconds_count")
            == 2
        )

    def test_opportunity_metrics(self, engine_metrics, test_registry):
        opportunities = [
            PairwiseOpportunity("0xa", "0xb", "0xt", volume=1, profit=2 * WAD),
            MultiHopPath(pools=("0xa",), tokens=("0xt", "0xt"), expected_profit=WAD),
        ]
        engine_metrics.record_opportunities(opportunities)

        assert (
            test_registry.get_sample_value(
                "cfmm_arbitrage_opportunities_total", {"kind": "pairwise"}
            )
            == 1
        )
        assert (
            test_registry.get_sample_value(
                "cfmm_arbitrage_opportunities_total", {"kind": "multi_hop"}
            )
            == 1
        )
        assert (
            test_registry.get_sample_value("cfmm_arbitrage_best_expected_profit_eth") == 2.0
        )

    def test_best_profit_resets_when_nothing_found(self, engine_metrics, test_registry):
        engine_metrics.record_opportunities(
            [PairwiseOpportunity("0xa", "0xb", "0xt", volume=1, profit=WAD)]
        )
        engine_metrics.record_opportunities([])
        assert (
            test_registry.get_sample_value("cfmm_arbitrage_best_expected_profit_eth") == 0
        )

    def test_optimizer_metrics(self, engine_metrics, test_registry):
        engine_metrics.record_optimizer_run(True)
        engine_metrics.record_optimizer_run(False)
        engine_metrics.record_optimizer_failure()

        assert (
            test_registry.get_sample_value(
                "cfmm_arbitrage_optimizer_runs_total", {"converged": "true"}
            )
            == 1
        )
        assert (
            test_registry.get_sample_value(
                "cfmm_arbitrage_optimizer_runs_total", {"converged": "false"}
            )
            == 1
        )
        assert (
            test_registry.get_sample_value("cfmm_arbitrage_optimizer_failures_total")
            == 1
        )

    def test_export(self, engine_metrics, test_registry):
        engine_metrics.record_skipped_pool("invalid_reserves")
        output = engine_metrics.export()
        assert output == generate_latest(test_registry)
        assert b'cfmm_arbitrage_pools_skipped_total{reason="invalid_reserves"} 1.0' in output
