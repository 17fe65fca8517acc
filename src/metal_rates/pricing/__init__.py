"""Pricing layer -- unit/currency conversion and series reconciliation."""

from metal_rates.pricing.converter import (
    DEFAULT_MARGINS,
    GRAMS_PER_TOLA,
    GRAMS_PER_TROY_OUNCE,
    ConvertedPrice,
    MarginRule,
    derive,
    margins_from_settings,
)
from metal_rates.pricing.reconciler import reconcile

__all__ = [
    "DEFAULT_MARGINS",
    "GRAMS_PER_TOLA",
    "GRAMS_PER_TROY_OUNCE",
    "ConvertedPrice",
    "MarginRule",
    "derive",
    "margins_from_settings",
    "reconcile",
]
