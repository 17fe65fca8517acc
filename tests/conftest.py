"""Shared test fixtures for the metal rates pipeline."""

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio

from metal_rates.cache.database import CacheDatabase
from metal_rates.cache.store import CacheStore
from metal_rates.config import AppSettings, CacheSettings, RefreshSettings, RelaySettings
from metal_rates.models import ExchangeRate, RawPricePoint

# 2023-11-14T22:13:20Z
NOW = 1_700_000_000.0


class FakeClock:
    """Manually advanced unix-seconds clock."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def raw(day: str, price: str) -> RawPricePoint:
    return RawPricePoint(date=date.fromisoformat(day), spot_price_usd_per_ounce=Decimal(price))


def make_rate(rate: str = "144.5737", valid_until: float = NOW + 3600, fetched_at: float = NOW) -> ExchangeRate:
    return ExchangeRate(
        rate_npr_per_usd=Decimal(rate),
        valid_until=int(valid_until),
        fetched_at=fetched_at,
    )


GOLD_HISTORY = [
    raw("2023-11-12", "4994.50"),
    raw("2023-11-13", "5080.20"),
]

SILVER_HISTORY = [
    raw("2023-11-12", "80.25"),
    raw("2023-11-13", "80.25"),
]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (two dummy keys per provider)."""
    return AppSettings(
        log_level="DEBUG",
        relay=RelaySettings(
            gold_api_keys="key-one, key-two",  # type: ignore[arg-type]
            exchange_rate_api_keys="rate-key",  # type: ignore[arg-type]
        ),
        cache=CacheSettings(db_path=":memory:"),
        refresh=RefreshSettings(interval_seconds=600),
    )


@pytest_asyncio.fixture
async def store(tmp_path) -> CacheStore:
    """CacheStore backed by a throwaway SQLite file."""
    database = CacheDatabase(str(tmp_path / "cache.db"))
    await database.connect()
    yield CacheStore(database)
    await database.close()
