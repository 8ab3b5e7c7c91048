"""
Evaluation-cycle orchestration.

One call to ArbitrageEngine.evaluate() takes a pool snapshot through the
whole pipeline: concurrent reserve refresh, exclusion of unusable pools, the
dual optimizer (with pairwise fallback), the multi-hop cycle search and the
ranker. All working state is local to the call, so a cancelled cycle leaves
nothing behind.
"""

import asyncio
import time
from typing import List, Optional, Sequence

from dex.pool import CFMMPool

from .config_schema import EngineConfig
from .exceptions import EngineBusyError, InvalidReserves, OptimizerError
from .interfaces import BalanceSource, MarketDataSource, MarketStatsSource
from .multihop import MultiHopSearch
from .opportunities import NetworkArbitrage, summarize
from .optimizer import CFMMNetwork, DualOptimizer, LBFGSOptions, QuadraticUtility
from .pairwise import PairwiseDetector
from .ranker import rank_opportunities
from .reference_pricing import base_price_vector, group_pools_by_token
from .utils import format_wad, get_logger

logger = get_logger(__name__)


class ArbitrageEngine:
    """
    Arbitrage opportunity engine.

    Args:
        config: Validated engine configuration
        market_data: Reserve source; pools are used as given when None
        balance_source: Base-asset balance lookups for the pairwise filter
        stats_source: Volume and market-cap lookups for the pairwise filter
        metrics: Optional EngineMetrics
    """

    def __init__(
        self,
        config: EngineConfig,
        market_data: Optional[MarketDataSource] = None,
        balance_source: Optional[BalanceSource] = None,
        stats_source: Optional[MarketStatsSource] = None,
        metrics=None,
    ):
        self.config = config
        self.market_data = market_data
        self.metrics = metrics
        self.pairwise = PairwiseDetector(
            config,
            balance_source=balance_source,
            stats_source=stats_source,
            metrics=metrics,
        )
        self.multihop = MultiHopSearch.from_config(config.multihop)
        self.optimizer_options = LBFGSOptions.from_config(config.optimizer)
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def _skip(self, reason: str) -> None:
        if self.metrics is not None:
            self.metrics.record_skipped_pool(reason)

    async def refresh_pools(self, pools: Sequence[CFMMPool]) -> List[CFMMPool]:
        """
        Fresh snapshots of pools, read concurrently.

        Reads are bounded by max_concurrent_reads. Pools whose read fails are
        dropped with a warning; cancellation propagates.
        """
        if self.market_data is None:
            return list(pools)

        semaphore = asyncio.Semaphore(self.config.concurrency.max_concurrent_reads)

        async def refresh_one(pool: CFMMPool) -> CFMMPool:
            async with semaphore:
                return await self.market_data.update_reserves(pool)

        results = await asyncio.gather(
            *(refresh_one(pool) for pool in pools), return_exceptions=True
        )

        refreshed = []
        for pool, result in zip(pools, results):
            if isinstance(result, Exception):
                logger.warning(f"Reserve refresh failed for pool {pool.address}: {result}")
                self._skip("refresh_failed")
            elif isinstance(result, BaseException):
                raise result
            else:
                refreshed.append(result)
        return refreshed

    def usable_pools(self, pools: Sequence[CFMMPool]) -> List[CFMMPool]:
        """Pools with non-zero reserves; the rest are logged and dropped."""
        usable = []
        for pool in pools:
            try:
                pool.validate()
            except InvalidReserves as e:
                logger.warning(f"Excluding pool {pool.address}: {e}")
                self._skip("invalid_reserves")
                continue
            usable.append(pool)
        return usable

    def run_optimizer(self, pools: Sequence[CFMMPool]) -> Optional[NetworkArbitrage]:
        """
        Network-wide trades from the dual optimizer.

        The utility is centred on each token's price against the base asset,
        which is also the starting point.

        Returns:
            NetworkArbitrage, or None if the run was aborted
        """
        network = CFMMNetwork(pools)
        initial = base_price_vector(network.tokens, pools, self.config.base_token)
        optimizer = DualOptimizer(
            network,
            utility=QuadraticUtility(center=initial),
            options=self.optimizer_options,
        )
        try:
            result = optimizer.optimize(initial)
        except OptimizerError as e:
            logger.error(f"Dual optimization aborted, falling back to pairwise: {e}")
            if self.metrics is not None:
                self.metrics.record_optimizer_failure()
            return None

        if self.metrics is not None:
            self.metrics.record_optimizer_run(result.converged)
        if not result.converged:
            logger.info(
                f"Dual optimizer hit its limit after {result.iterations} iterations, "
                f"keeping best-effort trades"
            )
        return NetworkArbitrage(
            prices=tuple(result.prices),
            trades=tuple(result.trades),
            expected_profit=result.trade_value,
            converged=result.converged,
            iterations=result.iterations,
        )

    async def evaluate(self, pools: Sequence[CFMMPool]) -> List:
        """
        Run one evaluation cycle.

        Args:
            pools: Pool snapshots to evaluate

        Returns:
            Ranked opportunities (network, pairwise and multi-hop)

        Raises:
            EngineBusyError: If another cycle is still running
        """
        if self._lock.locked():
            raise EngineBusyError("An evaluation cycle is already running")

        async with self._lock:
            started = time.monotonic()
            refreshed = await self.refresh_pools(pools)
            usable = self.usable_pools(refreshed)
            opportunities = []

            run_pairwise = True
            if self.config.optimizer.enabled and usable:
                network = self.run_optimizer(usable)
                if network is not None and network.trades:
                    opportunities.append(network)
                    if (
                        network.converged
                        and network.expected_profit
                        > self.config.thresholds.min_profit_threshold
                    ):
                        run_pairwise = False

            if run_pairwise:
                markets = group_pools_by_token(usable, self.config.base_token)
                opportunities.extend(await self.pairwise.detect(markets))

            if self.config.multihop.enabled:
                markets = group_pools_by_token(usable)
                opportunities.extend(
                    self.multihop.find_paths(markets, self.config.start_token)
                )

            ranked = rank_opportunities(opportunities)
            elapsed = time.monotonic() - started

            if self.metrics is not None:
                self.metrics.record_cycle(elapsed)
                self.metrics.record_opportunities(ranked)

            logger.info(
                f"Cycle evaluated {len(usable)}/{len(pools)} pools in {elapsed:.3f}s: "
                f"{len(ranked)} opportunities"
                + (f", best {format_wad(ranked[0].expected_profit)}" if ranked else "")
            )
            for opp in ranked:
                logger.debug(summarize(opp))
            return ranked
