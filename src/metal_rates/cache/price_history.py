"""Per-metal cache of reconciled 30-day series.

A series is reused while younger than the TTL unless a refresh is forced.
On any fetch or processing failure the previous series stays in place and is
returned together with the error, so the presentation tier keeps showing the
last-known-good chart under an error banner instead of going blank.
"""

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from metal_rates.cache.exchange_rate import ExchangeRateCache
from metal_rates.cache.store import CacheStore, series_key
from metal_rates.exceptions import CacheWriteError, MetalRatesError
from metal_rates.logging import get_logger
from metal_rates.models import ExchangeRate, MetalSeries, MetalSymbol, SeriesResult
from metal_rates.pricing.converter import MarginRule
from metal_rates.pricing.reconciler import reconcile
from metal_rates.upstream.client import UpstreamGateway

logger = get_logger(__name__)


class PriceHistoryCache:
    """Caches one MetalSeries per metal with an age-based TTL.

    Holds a per-metal asyncio.Lock so at most one fetch per metal is in
    flight; a second caller waits for the first and then re-checks freshness.

    Args:
        gateway: Upstream gateway for history fetches.
        store: Persistent cache store.
        rate_cache: Used to resolve the rate when the caller does not pass one.
        ttl_seconds: Maximum series age before a refetch.
        history_days: Length of the trailing window to fetch.
        margins: Optional margin table override.
        clock: Unix-seconds clock, injectable for tests.
    """

    def __init__(
        self,
        gateway: UpstreamGateway,
        store: CacheStore,
        rate_cache: ExchangeRateCache,
        ttl_seconds: float = 30 * 60,
        history_days: int = 30,
        margins: dict[MetalSymbol, MarginRule] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._rate_cache = rate_cache
        self._ttl_seconds = ttl_seconds
        self._history_days = history_days
        self._margins = margins
        self._clock = clock
        self._series: dict[MetalSymbol, MetalSeries] = {}
        self._locks: dict[MetalSymbol, asyncio.Lock] = {
            metal: asyncio.Lock() for metal in MetalSymbol
        }

    def cached(self, metal: MetalSymbol) -> MetalSeries | None:
        """Last-known-good series, regardless of age."""
        return self._series.get(metal)

    def is_fresh(self, metal: MetalSymbol) -> bool:
        series = self._series.get(metal)
        return series is not None and series.age(self._clock()) < self._ttl_seconds

    async def hydrate(self, metal: MetalSymbol) -> MetalSeries | None:
        """Load the persisted series for a metal at startup."""
        series = await self._store.load_series(metal)
        if series is not None:
            self._series[metal] = series
            logger.info(
                "series_hydrated",
                metal=metal.value,
                points=len(series.points),
                fresh=self.is_fresh(metal),
            )
        return series

    async def get_or_fetch(
        self,
        metal: MetalSymbol,
        force: bool = False,
        rate: ExchangeRate | None = None,
    ) -> SeriesResult:
        """Return a fresh series for the metal, refetching when needed.

        Args:
            metal: Which series.
            force: Skip the TTL check (manual/timer refresh).
            rate: Rate resolved by the caller for this refresh cycle. When
                None the rate cache is consulted.

        Returns:
            SeriesResult; on failure .series is the previous series (or None)
            and .error carries the cause.
        """
        async with self._locks[metal]:
            if not force and self.is_fresh(metal):
                return SeriesResult(series=self._series[metal])

            try:
                series = await self._fetch_series(metal, rate)
            except MetalRatesError as e:
                logger.warning(
                    "series_refresh_failed",
                    metal=metal.value,
                    error=str(e),
                    has_fallback=metal in self._series,
                )
                return SeriesResult(series=self._series.get(metal), error=e)

            self._series[metal] = series
            try:
                await self._store.save_series(series)
            except CacheWriteError:
                logger.error("cache_write_failed", key=series_key(metal), exc_info=True)
            logger.info(
                "series_refreshed",
                metal=metal.value,
                points=len(series.points),
                latest_tola=series.latest.price_per_tola_npr,
            )
            return SeriesResult(series=series)

    async def _fetch_series(
        self, metal: MetalSymbol, rate: ExchangeRate | None
    ) -> MetalSeries:
        now = self._clock()
        to_date = datetime.fromtimestamp(now, tz=timezone.utc)
        from_date = to_date - timedelta(days=self._history_days)

        raw_points = await self._gateway.fetch_history(metal, from_date, to_date)
        if rate is None:
            rate = await self._rate_cache.get_or_fetch()

        points = reconcile(raw_points, rate.rate_npr_per_usd, metal, self._margins)
        return MetalSeries(symbol=metal, points=tuple(points), fetched_at=now)
