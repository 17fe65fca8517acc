"""Custom exceptions for the metal rates pipeline.

All provider, cache and relay exceptions live here to avoid circular
imports between modules.
"""


class MetalRatesError(Exception):
    """Base exception for all pipeline errors."""


class UpstreamUnavailable(MetalRatesError):
    """Network failure, timeout, or non-2xx response from a provider.

    Raised after the relay has exhausted credential rotation.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        attempts: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts


class InvalidResponseShape(UpstreamUnavailable):
    """Upstream data did not parse into the expected record shape."""


class EmptySeriesAfterFiltering(MetalRatesError):
    """Every raw point of a history batch was invalid."""


class CacheCorruption(MetalRatesError):
    """A persisted cache entry could not be parsed."""


class CredentialsExhausted(MetalRatesError):
    """Every configured relay credential was rejected or rate limited."""

    def __init__(self, last_status: int, details: str, attempts: int) -> None:
        super().__init__(f"All API keys exhausted or rate limited ({attempts} attempted)")
        self.last_status = last_status
        self.details = details
        self.attempts = attempts


class CacheWriteError(MetalRatesError):
    """A cache entry could not be persisted (database closed or SQLite error)."""
