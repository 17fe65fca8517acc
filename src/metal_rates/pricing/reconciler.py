"""Turns raw daily spot quotes into a clean, date-ascending retail series."""

from collections.abc import Iterable
from decimal import Decimal

from metal_rates.exceptions import EmptySeriesAfterFiltering
from metal_rates.logging import get_logger
from metal_rates.models import DerivedPricePoint, MetalSymbol, RawPricePoint
from metal_rates.pricing.converter import MarginRule, derive

logger = get_logger(__name__)


def percent_change(previous: int, current: int) -> Decimal:
    """Day-over-day change in percent; 0 when there is no usable baseline."""
    if previous <= 0:
        return Decimal("0")
    change = (Decimal(current) - Decimal(previous)) / Decimal(previous) * 100
    return change if change.is_finite() else Decimal("0")


def reconcile(
    raw_points: Iterable[RawPricePoint],
    rate_npr_per_usd: Decimal,
    metal: MetalSymbol,
    margins: dict[MetalSymbol, MarginRule] | None = None,
) -> list[DerivedPricePoint]:
    """Filter, convert, order and annotate a batch of raw history points.

    Points with a non-finite or non-positive spot price, or whose derived
    prices are not positive, are dropped. When the upstream repeats a date the
    last record seen for that date wins, so the output dates are strictly
    ascending.

    Raises:
        EmptySeriesAfterFiltering: No point survived filtering.
    """
    by_date: dict = {}
    dropped = 0

    for point in raw_points:
        spot = point.spot_price_usd_per_ounce
        if not spot.is_finite() or spot <= 0:
            dropped += 1
            continue
        try:
            converted = derive(spot, rate_npr_per_usd, metal, margins)
        except ArithmeticError:
            # Out of range for the decimal context
            dropped += 1
            continue
        if converted.price_per_gram_npr <= 0 or converted.price_per_tola_npr <= 0:
            dropped += 1
            continue
        by_date[point.date] = (spot, converted)

    if not by_date:
        raise EmptySeriesAfterFiltering(f"No valid {metal.label} price data after processing")

    if dropped:
        logger.warning("dropped_invalid_price_points", metal=metal.value, dropped=dropped)

    result: list[DerivedPricePoint] = []
    previous_tola: int | None = None
    for day in sorted(by_date):
        spot, converted = by_date[day]
        change = (
            Decimal("0")
            if previous_tola is None
            else percent_change(previous_tola, converted.price_per_tola_npr)
        )
        result.append(
            DerivedPricePoint(
                date=day,
                spot_price_usd_per_ounce=spot,
                price_per_gram_npr=converted.price_per_gram_npr,
                price_per_tola_npr=converted.price_per_tola_npr,
                percent_change_from_previous_day=change,
            )
        )
        previous_tola = converted.price_per_tola_npr

    return result
