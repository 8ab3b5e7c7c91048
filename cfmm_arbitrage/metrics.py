"""
Prometheus metrics for the CFMM arbitrage engine.

Tracks evaluation cycles, opportunities found, pools skipped and the dual
optimizer's behaviour. Pass a dedicated CollectorRegistry to keep several
engines (or test cases) from colliding on the default registry.
"""

from typing import Iterable, Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from .constants import METRICS_CONSTANTS, WAD

PREFIX = METRICS_CONSTANTS["METRIC_PREFIX"]


class EngineMetrics:
    """Engine-level prometheus metrics."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics with custom registry or default"""
        self.registry = registry or REGISTRY
        self._initialize_metrics()

    def _initialize_metrics(self):
        """Initialize all Prometheus metrics"""

        # === CYCLE METRICS ===
        self.cycles_total = Counter(
            f"{PREFIX}_cycles_total",
            "Evaluation cycles completed",
            registry=self.registry,
        )

        self.cycle_duration_seconds = Histogram(
            f"{PREFIX}_cycle_duration_seconds",
            "Wall time of one evaluation cycle",
            buckets=METRICS_CONSTANTS["HISTOGRAM_BUCKETS_LATENCY"],
            registry=self.registry,
        )

        self.pools_skipped_total = Counter(
            f"{PREFIX}_pools_skipped_total",
            "Pools dropped from a cycle",
            ["reason"],
            registry=self.registry,
        )

        # === OPPORTUNITY METRICS ===
        self.opportunities_total = Counter(
            f"{PREFIX}_opportunities_total",
            "Ranked opportunities handed to execution",
            ["kind"],
            registry=self.registry,
        )

        self.best_expected_profit = Gauge(
            f"{PREFIX}_best_expected_profit_eth",
            "Expected profit of the top-ranked opportunity of the last cycle",
            registry=self.registry,
        )

        # === OPTIMIZER METRICS ===
        self.optimizer_runs_total = Counter(
            f"{PREFIX}_optimizer_runs_total",
            "Dual optimizer runs by convergence",
            ["converged"],
            registry=self.registry,
        )

        self.optimizer_failures_total = Counter(
            f"{PREFIX}_optimizer_failures_total",
            "Dual optimizer runs aborted by a pool error",
            registry=self.registry,
        )

    def record_cycle(self, duration_seconds: float) -> None:
        self.cycles_total.inc()
        self.cycle_duration_seconds.observe(duration_seconds)

    def record_skipped_pool(self, reason: str) -> None:
        self.pools_skipped_total.labels(reason=reason).inc()

    def record_opportunities(self, opportunities: Iterable) -> None:
        """Count ranked opportunities and publish the best profit."""
        best = 0
        for opp in opportunities:
            self.opportunities_total.labels(kind=opp.kind.value).inc()
            best = max(best, opp.expected_profit)
        # Display-only conversion to ether
        self.best_expected_profit.set(best / WAD)

    def record_optimizer_run(self, converged: bool) -> None:
        self.optimizer_runs_total.labels(converged=str(converged).lower()).inc()

    def record_optimizer_failure(self) -> None:
        self.optimizer_failures_total.inc()

    def export(self) -> bytes:
        """Metrics in the prometheus text exposition format."""
        return generate_latest(self.registry)
