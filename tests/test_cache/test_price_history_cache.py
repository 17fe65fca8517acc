"""Tests for PriceHistoryCache TTL, forced refresh and last-known-good fallback."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from metal_rates.cache.exchange_rate import ExchangeRateCache
from metal_rates.cache.price_history import PriceHistoryCache
from metal_rates.cache.store import CacheStore
from metal_rates.exceptions import EmptySeriesAfterFiltering, UpstreamUnavailable
from metal_rates.models import MetalSymbol
from metal_rates.upstream.client import UpstreamGateway
from conftest import GOLD_HISTORY, SILVER_HISTORY, FakeClock, make_rate, raw

TTL = 1800


@pytest.fixture
def gateway() -> AsyncMock:
    gw = AsyncMock(spec=UpstreamGateway)
    gw.fetch_exchange_rate.return_value = make_rate()
    gw.fetch_history.side_effect = lambda metal, start, end: (
        list(GOLD_HISTORY) if metal is MetalSymbol.GOLD else list(SILVER_HISTORY)
    )
    return gw


@pytest.fixture
def history_cache(gateway: AsyncMock, store: CacheStore, clock: FakeClock) -> PriceHistoryCache:
    rate_cache = ExchangeRateCache(gateway, store, clock=clock)
    return PriceHistoryCache(gateway, store, rate_cache, ttl_seconds=TTL, clock=clock)


class TestFreshness:
    @pytest.mark.asyncio
    async def test_reused_within_ttl(
        self, history_cache: PriceHistoryCache, gateway: AsyncMock, clock: FakeClock
    ) -> None:
        first = await history_cache.get_or_fetch(MetalSymbol.GOLD)
        clock.advance(TTL - 1)
        second = await history_cache.get_or_fetch(MetalSymbol.GOLD)

        assert first.ok and second.ok
        assert second.series is first.series
        assert gateway.fetch_history.await_count == 1

    @pytest.mark.asyncio
    async def test_refetched_after_ttl(
        self, history_cache: PriceHistoryCache, gateway: AsyncMock, clock: FakeClock
    ) -> None:
        await history_cache.get_or_fetch(MetalSymbol.GOLD)
        clock.advance(TTL)
        await history_cache.get_or_fetch(MetalSymbol.GOLD)
        assert gateway.fetch_history.await_count == 2

    @pytest.mark.asyncio
    async def test_force_bypasses_ttl(
        self, history_cache: PriceHistoryCache, gateway: AsyncMock
    ) -> None:
        await history_cache.get_or_fetch(MetalSymbol.GOLD)
        await history_cache.get_or_fetch(MetalSymbol.GOLD, force=True)
        assert gateway.fetch_history.await_count == 2

    @pytest.mark.asyncio
    async def test_metals_cached_independently(
        self, history_cache: PriceHistoryCache
    ) -> None:
        gold = await history_cache.get_or_fetch(MetalSymbol.GOLD)
        assert history_cache.is_fresh(MetalSymbol.GOLD)
        assert not history_cache.is_fresh(MetalSymbol.SILVER)

        silver = await history_cache.get_or_fetch(MetalSymbol.SILVER)
        assert gold.series.latest.price_per_tola_npr == 307976
        assert silver.series.latest.price_per_tola_npr == 5097


class TestFetchWindow:
    @pytest.mark.asyncio
    async def test_trailing_thirty_days(
        self, history_cache: PriceHistoryCache, gateway: AsyncMock, clock: FakeClock
    ) -> None:
        await history_cache.get_or_fetch(MetalSymbol.SILVER)

        metal, start, end = gateway.fetch_history.await_args.args
        assert metal is MetalSymbol.SILVER
        assert end - start == timedelta(days=30)
        assert end.timestamp() == clock()

    @pytest.mark.asyncio
    async def test_uses_rate_passed_by_caller(
        self, history_cache: PriceHistoryCache, gateway: AsyncMock
    ) -> None:
        result = await history_cache.get_or_fetch(
            MetalSymbol.GOLD, rate=make_rate("144.5737")
        )
        gateway.fetch_exchange_rate.assert_not_awaited()
        assert result.series.points[0].price_per_tola_npr == 302856

    @pytest.mark.asyncio
    async def test_resolves_rate_when_not_passed(
        self, history_cache: PriceHistoryCache, gateway: AsyncMock
    ) -> None:
        await history_cache.get_or_fetch(MetalSymbol.GOLD)
        gateway.fetch_exchange_rate.assert_awaited_once()


class TestFailure:
    @pytest.mark.asyncio
    async def test_first_failure_has_no_series(
        self, history_cache: PriceHistoryCache, gateway: AsyncMock
    ) -> None:
        gateway.fetch_history.side_effect = UpstreamUnavailable("down", status_code=503)

        result = await history_cache.get_or_fetch(MetalSymbol.GOLD)

        assert not result.ok
        assert result.series is None
        assert isinstance(result.error, UpstreamUnavailable)

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_series(
        self, history_cache: PriceHistoryCache, gateway: AsyncMock, store: CacheStore
    ) -> None:
        good = await history_cache.get_or_fetch(MetalSymbol.GOLD)
        gateway.fetch_history.side_effect = UpstreamUnavailable("down", status_code=429)

        result = await history_cache.get_or_fetch(MetalSymbol.GOLD, force=True)

        assert result.series is good.series
        assert result.error.status_code == 429
        assert await store.load_series(MetalSymbol.GOLD) == good.series

    @pytest.mark.asyncio
    async def test_all_invalid_points_keeps_previous_series(
        self, history_cache: PriceHistoryCache, gateway: AsyncMock
    ) -> None:
        good = await history_cache.get_or_fetch(MetalSymbol.GOLD)
        gateway.fetch_history.side_effect = None
        gateway.fetch_history.return_value = [raw("2023-11-13", "-5")]

        result = await history_cache.get_or_fetch(MetalSymbol.GOLD, force=True)

        assert isinstance(result.error, EmptySeriesAfterFiltering)
        assert result.series is good.series

    @pytest.mark.asyncio
    async def test_rate_failure_reported(
        self, history_cache: PriceHistoryCache, gateway: AsyncMock
    ) -> None:
        gateway.fetch_exchange_rate.return_value = None
        gateway.fetch_exchange_rate.side_effect = UpstreamUnavailable("rate down")

        result = await history_cache.get_or_fetch(MetalSymbol.SILVER)

        assert result.series is None
        assert str(result.error) == "rate down"


class TestHydrate:
    @pytest.mark.asyncio
    async def test_hydrated_series_served_while_fresh(
        self,
        history_cache: PriceHistoryCache,
        gateway: AsyncMock,
        store: CacheStore,
        clock: FakeClock,
    ) -> None:
        await history_cache.get_or_fetch(MetalSymbol.GOLD)
        rate_cache = ExchangeRateCache(gateway, store, clock=clock)
        restarted = PriceHistoryCache(gateway, store, rate_cache, ttl_seconds=TTL, clock=clock)

        hydrated = await restarted.hydrate(MetalSymbol.GOLD)
        result = await restarted.get_or_fetch(MetalSymbol.GOLD)

        assert result.series == hydrated
        assert gateway.fetch_history.await_count == 1


class TestPersistenceFailure:
    @pytest.mark.asyncio
    async def test_fetched_series_served_when_store_write_fails(
        self, history_cache: PriceHistoryCache, gateway: AsyncMock, store: CacheStore
    ) -> None:
        await store._database.close()

        result = await history_cache.get_or_fetch(MetalSymbol.GOLD)

        assert result.ok
        assert result.series.latest.price_per_tola_npr == 307976
        assert history_cache.cached(MetalSymbol.GOLD) is result.series
        assert history_cache.is_fresh(MetalSymbol.GOLD)
