"""
Pairwise cross-pool arbitrage detector.

Finds tokens quoted at different prices by two pools against the same base
asset, buys on the cheap side and sells on the expensive side. The detector
runs in three stages: an async market filter (liquidity, base-asset balance
and optional market statistics), a reference-price comparison over every
pair of surviving pools, and a bounded binary search for the trade size.
"""

import asyncio
from itertools import combinations
from typing import Dict, List, Optional, Sequence

from dex.pool import CFMMPool
from dex.types import TokenId

from .constants import WAD
from .exceptions import DataError
from .interfaces import BalanceSource, MarketStatsSource, QuotingPool
from .opportunities import PairwiseOpportunity
from .reference_pricing import ReferencePrice, generate_reference_prices
from .utils import get_logger

logger = get_logger(__name__)


class PairwiseDetector:
    """
    Two-leg opportunity detector over pools grouped by token.

    Args:
        config: EngineConfig providing thresholds, concurrency and base token
        balance_source: Base-asset balance lookups; the pool's own base
            reserve is used when omitted
        stats_source: Volume and market-cap lookups; those checks are
            skipped when omitted
        metrics: Optional EngineMetrics
    """

    def __init__(
        self,
        config,
        balance_source: Optional[BalanceSource] = None,
        stats_source: Optional[MarketStatsSource] = None,
        metrics=None,
    ):
        self.config = config
        self.thresholds = config.thresholds
        self.concurrency = config.concurrency
        self.base_token = config.base_token
        self.balance_source = balance_source
        self.stats_source = stats_source
        self.metrics = metrics

    async def fetch_weth_balance(self, address: str) -> Optional[int]:
        """
        Base-asset balance of address, retried with linear backoff.

        Returns:
            Balance in wei, or None once every attempt has failed
        """
        retries = self.concurrency.balance_retries
        delay = self.concurrency.balance_retry_delay
        for attempt in range(1, retries + 1):
            try:
                return await self.balance_source.balance_of(address)
            except Exception as e:
                logger.warning(
                    f"Balance lookup for {address} failed "
                    f"(attempt {attempt}/{retries}): {e}"
                )
                if attempt < retries:
                    await asyncio.sleep(delay * attempt)
        return None

    async def _base_balance(self, pool: CFMMPool) -> Optional[int]:
        if self.balance_source is None:
            if self.base_token not in pool.tokens:
                return None
            return pool.get_reserve(self.base_token)
        return await self.fetch_weth_balance(pool.address)

    async def _passes_filter(self, token: TokenId, pool: CFMMPool) -> bool:
        thresholds = self.thresholds
        try:
            reserve = pool.get_reserve(token)
            if reserve < thresholds.min_liquidity:
                logger.debug(
                    f"Pool {pool.address} below liquidity threshold for {token}: {reserve}"
                )
                return False

            balance = await self._base_balance(pool)
            if balance is None:
                self._skip("balance_unavailable")
                logger.warning(f"Base balance unavailable for pool {pool.address}, skipping")
                return False
            if balance < thresholds.min_liquidity:
                logger.debug(f"Pool {pool.address} base balance too low: {balance}")
                return False

            if self.stats_source is not None:
                volume = await self.stats_source.volume_24h(pool)
                if volume < thresholds.min_volume_24h:
                    logger.debug(f"Pool {pool.address} 24h volume too low: {volume}")
                    return False
                market_cap = await self.stats_source.market_cap(token)
                if market_cap < thresholds.min_market_cap:
                    logger.debug(f"Token {token} market cap too low: {market_cap}")
                    return False
        except Exception as e:
            self._skip("filter_error")
            logger.warning(f"Filtering pool {pool.address} for {token} failed: {e}")
            return False
        return True

    def _skip(self, reason: str) -> None:
        if self.metrics is not None:
            self.metrics.record_skipped_pool(reason)

    async def filter_markets(
        self, markets_by_token: Dict[TokenId, Sequence[CFMMPool]]
    ) -> Dict[TokenId, List[CFMMPool]]:
        """
        Keep the pools that meet the market thresholds.

        Checks fan out concurrently, bounded by max_concurrent_reads. At most
        max_pairs pools are kept per token, in input order.
        """
        semaphore = asyncio.Semaphore(self.concurrency.max_concurrent_reads)

        async def check(token: TokenId, pool: CFMMPool) -> bool:
            async with semaphore:
                return await self._passes_filter(token, pool)

        entries = [
            (token, pool) for token, pools in markets_by_token.items() for pool in pools
        ]
        verdicts = await asyncio.gather(*(check(token, pool) for token, pool in entries))

        filtered: Dict[TokenId, List[CFMMPool]] = {}
        for (token, pool), keep in zip(entries, verdicts):
            if not keep:
                continue
            kept = filtered.setdefault(token, [])
            if len(kept) < self.thresholds.max_pairs:
                kept.append(pool)
        filtered = {token: pools for token, pools in filtered.items() if pools}

        logger.debug(
            f"Market filter kept {sum(len(p) for p in filtered.values())}"
            f"/{len(entries)} pools across {len(filtered)} tokens"
        )
        return filtered

    def expected_profit(
        self,
        profit_estimate: int,
        buy_pool: QuotingPool,
        sell_pool: QuotingPool,
        token: TokenId,
        size: int,
    ) -> int:
        """Estimated profit of trading size of token across the two pools."""
        max_trade = self.thresholds.max_trade_size
        margin = (
            profit_estimate
            - buy_pool.get_price_impact(token, max_trade)
            - sell_pool.get_price_impact(token, max_trade)
            - buy_pool.get_trading_fee()
            - sell_pool.get_trading_fee()
        )
        return margin * size // WAD

    def optimal_volume(
        self,
        profit_estimate: int,
        buy_pool: QuotingPool,
        sell_pool: QuotingPool,
        token: TokenId,
    ) -> int:
        """
        Binary search the trade size in [1, max_trade_size].

        The lower end moves up while the midpoint improves on the best
        profit seen and meets min_profit_threshold. The result is clamped to
        both pools' reserves of token.
        """
        left, right = 1, self.thresholds.max_trade_size
        best_size, best_profit = 0, 0
        while left <= right:
            mid = (left + right) // 2
            profit = self.expected_profit(profit_estimate, buy_pool, sell_pool, token, mid)
            if profit > best_profit and profit >= self.thresholds.min_profit_threshold:
                best_size, best_profit = mid, profit
                left = mid + 1
            else:
                right = mid - 1
        return min(best_size, buy_pool.get_reserve(token), sell_pool.get_reserve(token))

    def _evaluate_pair(
        self,
        token: TokenId,
        first: CFMMPool,
        second: CFMMPool,
        prices: Dict,
    ) -> Optional[PairwiseOpportunity]:
        first_ref: Optional[ReferencePrice] = prices.get((first.address, token))
        second_ref: Optional[ReferencePrice] = prices.get((second.address, token))
        if first_ref is None or second_ref is None:
            return None

        if first_ref.price <= second_ref.price:
            buy_pool, sell_pool = first, second
            profit_estimate = second_ref.price - first_ref.price
        else:
            buy_pool, sell_pool = second, first
            profit_estimate = first_ref.price - second_ref.price
        if profit_estimate <= 0:
            return None

        volume = self.optimal_volume(profit_estimate, buy_pool, sell_pool, token)
        if volume <= 0:
            return None
        profit = self.expected_profit(profit_estimate, buy_pool, sell_pool, token, volume)
        if profit <= 0:
            return None
        return PairwiseOpportunity(
            buy_pool=buy_pool.address,
            sell_pool=sell_pool.address,
            token=token,
            volume=volume,
            profit=profit,
        )

    def find_opportunities(
        self, markets_by_token: Dict[TokenId, Sequence[CFMMPool]]
    ) -> List[PairwiseOpportunity]:
        """
        Compare and size every pair of pools sharing a token.

        Args:
            markets_by_token: Filtered token -> pools map

        Returns:
            Opportunities sorted by descending profit
        """
        prices = generate_reference_prices(markets_by_token)
        opportunities = []
        for token, pools in markets_by_token.items():
            for first, second in combinations(pools, 2):
                try:
                    opp = self._evaluate_pair(token, first, second, prices)
                except DataError as e:
                    logger.warning(
                        f"Skipping pair {first.address}/{second.address} for {token}: {e}"
                    )
                    continue
                if opp is not None:
                    logger.debug(
                        f"Pairwise opportunity {opp.describe()}: "
                        f"volume={opp.volume} profit={opp.profit}"
                    )
                    opportunities.append(opp)

        opportunities.sort(key=lambda o: o.profit, reverse=True)
        return opportunities

    async def detect(
        self, markets_by_token: Dict[TokenId, Sequence[CFMMPool]]
    ) -> List[PairwiseOpportunity]:
        """Filter the markets, then compare and size the surviving pairs."""
        filtered = await self.filter_markets(markets_by_token)
        return self.find_opportunities(filtered)
