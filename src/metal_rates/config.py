"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def split_keys(value: SecretStr) -> list[str]:
    """Split a comma-separated secret into an ordered list of non-empty keys."""
    return [key.strip() for key in value.get_secret_value().split(",") if key.strip()]


class UpstreamSettings(BaseSettings):
    """How the refresh pipeline reaches the relay."""

    model_config = SettingsConfigDict(env_prefix="UPSTREAM_")

    relay_base_url: str = ""  # empty = talk to the in-process relay app
    timeout_seconds: float = 10.0
    history_days: int = 30


class RelaySettings(BaseSettings):
    """Credential-holding relay in front of the upstream providers.

    Keys are comma-separated so several equivalent credentials can be
    rotated through on 401/429 responses.
    """

    model_config = SettingsConfigDict(env_prefix="RELAY_")

    gold_api_keys: SecretStr = SecretStr("")
    gold_api_base_url: str = "https://api.gold-api.com"
    exchange_rate_api_keys: SecretStr = SecretStr("")
    exchange_rate_base_url: str = "https://v6.exchangerate-api.com"
    timeout_seconds: float = 10.0
    cors_enabled: bool = True


class PricingSettings(BaseSettings):
    """Retail margin model: percentage markup plus flat surcharge per tola."""

    model_config = SettingsConfigDict(env_prefix="PRICING_")

    gold_multiplier: Decimal = Decimal("1.10")
    gold_flat_per_tola: Decimal = Decimal("5000")
    silver_multiplier: Decimal = Decimal("1.16")
    silver_flat_per_tola: Decimal = Decimal("50")


class CacheSettings(BaseSettings):
    """Local cache store configuration."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    db_path: str = "data/cache.db"
    series_ttl_seconds: int = 30 * 60


class RefreshSettings(BaseSettings):
    """Automatic refresh timer."""

    model_config = SettingsConfigDict(env_prefix="REFRESH_")

    interval_seconds: int = 30 * 60  # deployments run anywhere from 10 to 30 min


class DashboardSettings(BaseSettings):
    """Dashboard server configuration."""

    model_config = SettingsConfigDict(env_prefix="DASHBOARD_")

    host: str = "0.0.0.0"
    port: int = 8080


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    upstream: UpstreamSettings = UpstreamSettings()
    relay: RelaySettings = RelaySettings()
    pricing: PricingSettings = PricingSettings()
    cache: CacheSettings = CacheSettings()
    refresh: RefreshSettings = RefreshSettings()
    dashboard: DashboardSettings = DashboardSettings()
