"""Refresh orchestrator -- drives both caches and publishes a snapshot.

Each data source (the exchange rate and one series per metal) moves through
IDLE -> FETCHING -> READY | FAILED. FAILED is never terminal: the next
trigger retries, and the last READY data stays visible in the meantime.

Triggers:
  1. STARTUP: hydrate both caches from the store, then refresh whatever is
     missing or older than the series TTL.
  2. TIMER: every interval_seconds, force a refresh of both series. The rate
     is re-resolved too, but only refetched once its provider expiry passed.
  3. MANUAL: same as TIMER, on request.

One cycle resolves the exchange rate once and hands the same rate to both
metals, so gold and silver are never derived from different rates. Cycles
are serialized by a lock, which also bounds in-flight fetches to one per
metal+source; a trigger that arrives mid-cycle waits for it to finish.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from metal_rates.cache.exchange_rate import ExchangeRateCache
from metal_rates.cache.price_history import PriceHistoryCache
from metal_rates.logging import get_logger
from metal_rates.models import (
    ExchangeRate,
    MetalSeries,
    MetalSymbol,
    SourceState,
    SourceStatus,
)

logger = get_logger(__name__)

EXCHANGE_RATE_SOURCE = "exchange_rate"


@dataclass
class MetalView:
    """Last-known-good series for a metal plus its refresh status."""

    symbol: MetalSymbol
    series: MetalSeries | None
    status: SourceStatus


@dataclass
class PriceSnapshot:
    """Everything a chart/table renderer needs, as of one instant."""

    metals: dict[MetalSymbol, MetalView]
    exchange_rate: ExchangeRate | None
    sources: dict[str, SourceStatus] = field(default_factory=dict)
    last_refreshed_at: float | None = None


class RefreshOrchestrator:
    """Coordinates rate and series refreshes on startup, timer and demand.

    Args:
        rate_cache: Exchange rate cache (provider-expiry based).
        history_cache: Per-metal series cache (TTL based).
        interval_seconds: Period of the automatic forced refresh.
        clock: Unix-seconds clock, injectable for tests.
    """

    def __init__(
        self,
        rate_cache: ExchangeRateCache,
        history_cache: PriceHistoryCache,
        interval_seconds: float = 30 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._rate_cache = rate_cache
        self._history_cache = history_cache
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._status: dict[str, SourceStatus] = {
            EXCHANGE_RATE_SOURCE: SourceStatus(),
            **{metal.value: SourceStatus() for metal in MetalSymbol},
        }
        self._cycle_lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._last_refreshed_at: float | None = None
        self._before_fetch: dict[str, tuple[SourceState, str | None]] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_refreshed_at(self) -> float | None:
        return self._last_refreshed_at

    def status(self, source: str) -> SourceStatus:
        return self._status[source]

    # ──────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────

    async def start(self) -> None:
        """Hydrate caches, then run the startup refresh and timer in the background."""
        if self._running:
            logger.warning("orchestrator_already_running")
            return

        await self.hydrate()
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info("orchestrator_started", interval_seconds=self._interval_seconds)

    async def stop(self) -> None:
        """Cancel the timer task."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("orchestrator_stopped")

    async def hydrate(self) -> None:
        """Load cached rate and series; fresh entries start out READY."""
        rate = await self._rate_cache.hydrate()
        if rate is not None and rate.is_valid(self._clock()):
            self._mark_ready(EXCHANGE_RATE_SOURCE, rate.fetched_at)

        for metal in MetalSymbol:
            series = await self._history_cache.hydrate(metal)
            if series is not None and self._history_cache.is_fresh(metal):
                self._mark_ready(metal.value, series.fetched_at)
                self._last_refreshed_at = max(self._last_refreshed_at or 0.0, series.fetched_at)

    async def _run(self) -> None:
        await self._guarded_cycle(force=False, trigger="startup")
        while self._running:
            await asyncio.sleep(self._interval_seconds)
            if self._running:
                await self._guarded_cycle(force=True, trigger="timer")

    async def _guarded_cycle(self, force: bool, trigger: str) -> None:
        try:
            await self.run_cycle(force=force, trigger=trigger)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error("refresh_cycle_error", trigger=trigger, exc_info=True)

    # ──────────────────────────────────────────────
    # Refresh cycle
    # ──────────────────────────────────────────────

    async def request_refresh(self) -> PriceSnapshot:
        """Manual refresh: force both series now, independent of the timer."""
        await self.run_cycle(force=True, trigger="manual")
        return self.snapshot()

    async def run_cycle(self, force: bool = False, trigger: str = "manual") -> None:
        """Run one refresh cycle. Per-source failures are recorded, never raised.

        Args:
            force: Bypass the series TTL (timer and manual triggers).
            trigger: Label for logs ("startup", "timer", "manual").
        """
        async with self._cycle_lock:
            structlog.contextvars.bind_contextvars(
                cycle_id=uuid.uuid4().hex[:8], trigger=trigger
            )
            try:
                logger.info("refresh_cycle_started", force=force)
                rate, rate_error = await self._resolve_rate()
                await asyncio.gather(
                    *(
                        self._refresh_metal(metal, force, rate, rate_error)
                        for metal in MetalSymbol
                    )
                )
                logger.info(
                    "refresh_cycle_complete",
                    states={name: s.state.value for name, s in self._status.items()},
                )
            except asyncio.CancelledError:
                self._restore_interrupted()
                raise
            finally:
                structlog.contextvars.unbind_contextvars("cycle_id", "trigger")

    async def _resolve_rate(self) -> tuple[ExchangeRate | None, str | None]:
        self._mark_fetching(EXCHANGE_RATE_SOURCE)
        try:
            rate = await self._rate_cache.get_or_fetch()
        except Exception as e:
            logger.warning("exchange_rate_refresh_failed", error=str(e), exc_info=True)
            self._mark_failed(EXCHANGE_RATE_SOURCE, f"Failed to fetch exchange rate: {e}")
            return None, str(e)

        self._mark_ready(EXCHANGE_RATE_SOURCE, rate.fetched_at)
        return rate, None

    async def _refresh_metal(
        self,
        metal: MetalSymbol,
        force: bool,
        rate: ExchangeRate | None,
        rate_error: str | None,
    ) -> None:
        source = metal.value

        if not force and self._history_cache.is_fresh(metal):
            series = self._history_cache.cached(metal)
            assert series is not None
            self._mark_ready(source, series.fetched_at)
            return

        if rate is None:
            self._mark_failed(source, f"Exchange rate unavailable: {rate_error}")
            return

        self._mark_fetching(source)
        try:
            result = await self._history_cache.get_or_fetch(metal, force=force, rate=rate)
        except Exception as e:
            logger.error("series_refresh_error", metal=source, error=str(e), exc_info=True)
            self._mark_failed(source, f"Failed to fetch {metal.label} data: {e}")
            return

        if result.error is not None:
            self._mark_failed(source, f"Failed to fetch {metal.label} data: {result.error}")
            return

        assert result.series is not None
        self._mark_ready(source, result.series.fetched_at)
        self._last_refreshed_at = self._clock()

    # ──────────────────────────────────────────────
    # State transitions
    # ──────────────────────────────────────────────

    def _mark_fetching(self, source: str) -> None:
        status = self._status[source]
        if status.state is not SourceState.FETCHING:
            self._before_fetch[source] = (status.state, status.error)
        status.state = SourceState.FETCHING
        status.updated_at = self._clock()

    def _mark_ready(self, source: str, fetched_at: float) -> None:
        status = self._status[source]
        status.state = SourceState.READY
        status.error = None
        status.last_success_at = fetched_at
        status.updated_at = self._clock()

    def _restore_interrupted(self) -> None:
        """Put sources left FETCHING by a cancelled cycle back to their prior state."""
        for source, status in self._status.items():
            if status.state is SourceState.FETCHING:
                status.state, status.error = self._before_fetch.get(
                    source, (SourceState.IDLE, None)
                )
                logger.info("source_refresh_interrupted", source=source, state=status.state.value)

    def _mark_failed(self, source: str, message: str) -> None:
        status = self._status[source]
        status.state = SourceState.FAILED
        status.error = message
        status.updated_at = self._clock()
        logger.warning("source_failed", source=source, error=message)

    # ──────────────────────────────────────────────
    # Presentation
    # ──────────────────────────────────────────────

    def snapshot(self) -> PriceSnapshot:
        """Current per-metal series (last-known-good), rate, and statuses."""
        metals = {
            metal: MetalView(
                symbol=metal,
                series=self._history_cache.cached(metal),
                status=self._status[metal.value],
            )
            for metal in MetalSymbol
        }
        return PriceSnapshot(
            metals=metals,
            exchange_rate=self._rate_cache.current,
            sources=dict(self._status),
            last_refreshed_at=self._last_refreshed_at,
        )
