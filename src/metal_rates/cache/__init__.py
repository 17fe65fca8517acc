"""Local cache layer.

Provides the SQLite-backed entry store, the provider-expiry exchange rate
cache and the TTL-based per-metal series cache.
"""

from metal_rates.cache.database import CacheDatabase
from metal_rates.cache.exchange_rate import ExchangeRateCache
from metal_rates.cache.price_history import PriceHistoryCache
from metal_rates.cache.store import CacheStore

__all__ = [
    "CacheDatabase",
    "CacheStore",
    "ExchangeRateCache",
    "PriceHistoryCache",
]
