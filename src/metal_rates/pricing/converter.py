"""USD/troy-ounce to Nepal retail NPR/gram and NPR/tola conversion.

Pure functions, no state. Rounding policy:
- full Decimal precision through unit conversion and margin
- ROUND_HALF_UP to a whole rupee for the per-gram price
- per-tola price derived from the ROUNDED per-gram price, ROUND_HALF_UP again

CRITICAL: 31.1035 is the troy ounce. Do not use the avoirdupois 28.3495.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from metal_rates.config import PricingSettings
from metal_rates.models import MetalSymbol

GRAMS_PER_TROY_OUNCE = Decimal("31.1035")
GRAMS_PER_TOLA = Decimal("11.664")


@dataclass(frozen=True)
class MarginRule:
    """Percentage markup plus a flat surcharge quoted per tola."""

    multiplier: Decimal
    flat_per_tola: Decimal

    @property
    def flat_per_gram(self) -> Decimal:
        return self.flat_per_tola / GRAMS_PER_TOLA


DEFAULT_MARGINS: dict[MetalSymbol, MarginRule] = {
    MetalSymbol.GOLD: MarginRule(Decimal("1.10"), Decimal("5000")),
    MetalSymbol.SILVER: MarginRule(Decimal("1.16"), Decimal("50")),
}


@dataclass(frozen=True)
class ConvertedPrice:
    """Retail prices in whole rupees."""

    price_per_gram_npr: int
    price_per_tola_npr: int


def margins_from_settings(settings: PricingSettings) -> dict[MetalSymbol, MarginRule]:
    """Build the per-metal margin table from configuration."""
    return {
        MetalSymbol.GOLD: MarginRule(settings.gold_multiplier, settings.gold_flat_per_tola),
        MetalSymbol.SILVER: MarginRule(
            settings.silver_multiplier, settings.silver_flat_per_tola
        ),
    }


def round_rupees(value: Decimal) -> int:
    """Round half-up to a whole rupee."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def unmargined_npr_per_gram(
    raw_price_usd_per_ounce: Decimal, rate_npr_per_usd: Decimal
) -> Decimal:
    """Spot price in NPR per gram before any retail margin."""
    usd_per_gram = raw_price_usd_per_ounce / GRAMS_PER_TROY_OUNCE
    return usd_per_gram * rate_npr_per_usd


def derive(
    raw_price_usd_per_ounce: Decimal,
    rate_npr_per_usd: Decimal,
    metal: MetalSymbol,
    margins: dict[MetalSymbol, MarginRule] | None = None,
) -> ConvertedPrice:
    """Convert a USD/troy-ounce quote into NPR retail prices.

    Args:
        raw_price_usd_per_ounce: Spot quote from the history provider.
        rate_npr_per_usd: Active USD->NPR exchange rate.
        metal: Selects the margin rule.
        margins: Optional margin table override (defaults to DEFAULT_MARGINS).

    Returns:
        ConvertedPrice with per-gram and per-tola prices in whole rupees.

    Invalid input (NaN, non-positive) is the caller's responsibility.
    """
    rule = (margins or DEFAULT_MARGINS)[metal]
    npr_per_gram = unmargined_npr_per_gram(raw_price_usd_per_ounce, rate_npr_per_usd)
    price_per_gram = round_rupees(npr_per_gram * rule.multiplier + rule.flat_per_gram)
    price_per_tola = round_rupees(Decimal(price_per_gram) * GRAMS_PER_TOLA)
    return ConvertedPrice(
        price_per_gram_npr=price_per_gram,
        price_per_tola_npr=price_per_tola,
    )
