"""Shared data models for the metal rates pipeline.

CRITICAL: All monetary values use Decimal. Never use float for prices or rates.
Persisted models round-trip through to_dict()/from_dict(); Decimals are stored
as strings and dates as ISO "YYYY-MM-DD" keys.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum

from metal_rates.exceptions import CacheCorruption, MetalRatesError


class MetalSymbol(str, Enum):
    """Supported metals. Values are the upstream provider codes."""

    GOLD = "XAU"
    SILVER = "XAG"

    @property
    def label(self) -> str:
        return "Gold" if self is MetalSymbol.GOLD else "Silver"

    @property
    def color(self) -> str:
        return "#fbbf24" if self is MetalSymbol.GOLD else "#cbd5e1"

    @classmethod
    def parse(cls, value: str) -> MetalSymbol:
        """Accept an enum name ("gold") or upstream code ("XAU")."""
        normalized = value.strip().upper()
        for metal in cls:
            if normalized in (metal.name, metal.value):
                return metal
        raise ValueError(f"Unknown metal symbol: {value!r}")


class SourceState(str, Enum):
    """Refresh state of a single data source."""

    IDLE = "idle"
    FETCHING = "fetching"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class RawPricePoint:
    """One trading day from the history provider, before any validation."""

    date: date
    spot_price_usd_per_ounce: Decimal


@dataclass(frozen=True)
class ExchangeRate:
    """USD->NPR rate with the provider-declared expiry (unix seconds)."""

    rate_npr_per_usd: Decimal
    valid_until: int
    fetched_at: float = field(default_factory=time.time)

    def is_valid(self, now: float) -> bool:
        return now < self.valid_until

    def to_dict(self) -> dict:
        return {
            "rate_npr_per_usd": str(self.rate_npr_per_usd),
            "valid_until": self.valid_until,
            "fetched_at": self.fetched_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ExchangeRate:
        try:
            rate = Decimal(data["rate_npr_per_usd"])
            valid_until = int(data["valid_until"])
            fetched_at = float(data["fetched_at"])
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise CacheCorruption(f"Invalid exchange rate entry: {e!r}") from e
        if not rate.is_finite() or rate <= 0:
            raise CacheCorruption(f"Invalid cached rate: {rate}")
        return cls(rate_npr_per_usd=rate, valid_until=valid_until, fetched_at=fetched_at)


@dataclass(frozen=True)
class DerivedPricePoint:
    """A reconciled daily price in both NPR retail units."""

    date: date
    spot_price_usd_per_ounce: Decimal
    price_per_gram_npr: int
    price_per_tola_npr: int
    percent_change_from_previous_day: Decimal = Decimal("0")

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "spot_price_usd_per_ounce": str(self.spot_price_usd_per_ounce),
            "price_per_gram_npr": self.price_per_gram_npr,
            "price_per_tola_npr": self.price_per_tola_npr,
            "percent_change_from_previous_day": str(self.percent_change_from_previous_day),
        }

    @classmethod
    def from_dict(cls, data: dict) -> DerivedPricePoint:
        try:
            return cls(
                date=date.fromisoformat(data["date"]),
                spot_price_usd_per_ounce=Decimal(data["spot_price_usd_per_ounce"]),
                price_per_gram_npr=int(data["price_per_gram_npr"]),
                price_per_tola_npr=int(data["price_per_tola_npr"]),
                percent_change_from_previous_day=Decimal(
                    data["percent_change_from_previous_day"]
                ),
            )
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise CacheCorruption(f"Invalid price point entry: {e!r}") from e


@dataclass(frozen=True)
class MetalSeries:
    """Reconciled trailing series for one metal. Replaced wholesale on refresh."""

    symbol: MetalSymbol
    points: tuple[DerivedPricePoint, ...]
    fetched_at: float

    @property
    def latest(self) -> DerivedPricePoint:
        """Most recent point; shown as the current price."""
        return self.points[-1]

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol.value,
            "fetched_at": self.fetched_at,
            "points": [p.to_dict() for p in self.points],
        }

    @classmethod
    def from_dict(cls, data: dict) -> MetalSeries:
        try:
            symbol = MetalSymbol(data["symbol"])
            fetched_at = float(data["fetched_at"])
            raw_points = data["points"]
        except (KeyError, TypeError, ValueError) as e:
            raise CacheCorruption(f"Invalid series entry: {e!r}") from e
        if not isinstance(raw_points, list) or not raw_points:
            raise CacheCorruption("Cached series has no points")
        points = tuple(DerivedPricePoint.from_dict(p) for p in raw_points)
        return cls(symbol=symbol, points=points, fetched_at=fetched_at)


@dataclass
class SeriesResult:
    """Series lookup outcome: last-known-good data plus any refresh error."""

    series: MetalSeries | None
    error: MetalRatesError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SourceStatus:
    """Per-source refresh state exposed to the presentation tier."""

    state: SourceState = SourceState.IDLE
    error: str | None = None
    last_success_at: float | None = None
    updated_at: float | None = None

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "error": self.error,
            "last_success_at": self.last_success_at,
            "updated_at": self.updated_at,
        }
