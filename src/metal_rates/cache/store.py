"""Typed SQLite read/write abstraction for cached rates and series.

Entries are JSON documents keyed by name:
- "exchange_rate"   -> ExchangeRate.to_dict()
- "series_<code>"   -> MetalSeries.to_dict() (e.g. "series_XAU")

Each write is a single INSERT OR REPLACE followed by a commit, so a reader
never observes a half-written entry. A corrupt entry is deleted and reported
as missing; it never reaches the caller.
"""

import json
import time

import aiosqlite

from metal_rates.cache.database import CacheDatabase
from metal_rates.exceptions import CacheCorruption, CacheWriteError
from metal_rates.logging import get_logger
from metal_rates.models import ExchangeRate, MetalSeries, MetalSymbol

logger = get_logger(__name__)

EXCHANGE_RATE_KEY = "exchange_rate"


def series_key(metal: MetalSymbol) -> str:
    return f"series_{metal.value}"


class CacheStore:
    """Async key/value store for cache entries.

    Usage:
        async with CacheDatabase("data/cache.db") as database:
            store = CacheStore(database)
            await store.save_exchange_rate(rate)
    """

    def __init__(self, database: CacheDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Raw entries
    # ──────────────────────────────────────────────

    async def put_entry(self, key: str, payload: dict) -> None:
        """Atomically replace the entry stored under key.

        Raises:
            CacheWriteError: The database is closed or SQLite rejected the write.
        """
        try:
            await self._database.db.execute(
                "INSERT OR REPLACE INTO cache_entries (key, payload, updated_at) "
                "VALUES (?, ?, ?)",
                (key, json.dumps(payload), int(time.time() * 1000)),
            )
            await self._database.db.commit()
        except (aiosqlite.Error, RuntimeError, ValueError) as e:
            raise CacheWriteError(f"Failed to write cache entry {key!r}: {e}") from e
        logger.debug("cache_entry_written", key=key)

    async def get_entry(self, key: str) -> dict | None:
        """Return the decoded entry, or None if missing or unreadable."""
        cursor = await self._database.db.execute(
            "SELECT payload FROM cache_entries WHERE key = ?",
            (key,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        try:
            payload = json.loads(row[0])
        except (TypeError, ValueError):
            await self.discard_entry(key, reason="invalid_json")
            return None
        if not isinstance(payload, dict):
            await self.discard_entry(key, reason="not_an_object")
            return None
        return payload

    async def discard_entry(self, key: str, reason: str = "") -> None:
        """Delete an entry, typically because it failed to parse."""
        await self._database.db.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        await self._database.db.commit()
        logger.warning("cache_entry_discarded", key=key, reason=reason)

    # ──────────────────────────────────────────────
    # Typed entries
    # ──────────────────────────────────────────────

    async def save_exchange_rate(self, rate: ExchangeRate) -> None:
        await self.put_entry(EXCHANGE_RATE_KEY, rate.to_dict())

    async def load_exchange_rate(self) -> ExchangeRate | None:
        payload = await self.get_entry(EXCHANGE_RATE_KEY)
        if payload is None:
            return None
        try:
            return ExchangeRate.from_dict(payload)
        except CacheCorruption as e:
            await self.discard_entry(EXCHANGE_RATE_KEY, reason=str(e))
            return None

    async def save_series(self, series: MetalSeries) -> None:
        await self.put_entry(series_key(series.symbol), series.to_dict())

    async def load_series(self, metal: MetalSymbol) -> MetalSeries | None:
        key = series_key(metal)
        payload = await self.get_entry(key)
        if payload is None:
            return None
        try:
            series = MetalSeries.from_dict(payload)
        except CacheCorruption as e:
            await self.discard_entry(key, reason=str(e))
            return None
        if series.symbol is not metal:
            await self.discard_entry(key, reason="symbol_mismatch")
            return None
        return series
