"""Exchange rate cache governed by the provider's own expiry.

The provider publishes time_next_update_unix with every rate; that value is
the only expiry used. An expired rate is never handed out, even when the
refetch fails -- callers get the error instead.
"""

import asyncio
import time
from collections.abc import Callable

from metal_rates.cache.store import EXCHANGE_RATE_KEY, CacheStore
from metal_rates.exceptions import CacheWriteError
from metal_rates.logging import get_logger
from metal_rates.models import ExchangeRate
from metal_rates.upstream.client import UpstreamGateway

logger = get_logger(__name__)


class ExchangeRateCache:
    """Holds the single system-wide USD->NPR rate.

    Concurrent callers share one in-flight fetch via an asyncio.Lock.
    """

    def __init__(
        self,
        gateway: UpstreamGateway,
        store: CacheStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._clock = clock
        self._rate: ExchangeRate | None = None
        self._lock = asyncio.Lock()

    @property
    def current(self) -> ExchangeRate | None:
        """The cached rate if still valid, else None."""
        if self._rate is not None and self._rate.is_valid(self._clock()):
            return self._rate
        return None

    async def hydrate(self) -> ExchangeRate | None:
        """Load the persisted rate at startup. An expired entry is loaded but never served."""
        self._rate = await self._store.load_exchange_rate()
        if self._rate is not None:
            logger.info(
                "exchange_rate_hydrated",
                rate=str(self._rate.rate_npr_per_usd),
                valid_until=self._rate.valid_until,
                valid=self._rate.is_valid(self._clock()),
            )
        return self._rate

    async def get_or_fetch(self) -> ExchangeRate:
        """Return the cached rate while now < valid_until, otherwise refetch.

        Raises:
            UpstreamUnavailable: The refetch failed; the cache is unchanged.
        """
        async with self._lock:
            cached = self.current
            if cached is not None:
                return cached

            rate = await self._gateway.fetch_exchange_rate()
            self._rate = rate
            try:
                await self._store.save_exchange_rate(rate)
            except CacheWriteError:
                logger.error("cache_write_failed", key=EXCHANGE_RATE_KEY, exc_info=True)
            logger.info(
                "exchange_rate_refreshed",
                rate=str(rate.rate_npr_per_usd),
                valid_until=rate.valid_until,
            )
            return rate
