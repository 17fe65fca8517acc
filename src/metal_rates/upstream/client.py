"""Abstract upstream gateway interface.

Defines the contract for reaching the two upstream providers (metal spot
history, USD->NPR exchange rate). Caches and the orchestrator depend only on
this interface, keeping relay and provider details in the concrete gateway.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from metal_rates.models import ExchangeRate, MetalSymbol, RawPricePoint


class UpstreamGateway(ABC):
    """Abstract base class for upstream data gateways."""

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the underlying HTTP resources."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying HTTP resources."""
        ...

    @abstractmethod
    async def fetch_history(
        self,
        metal: MetalSymbol,
        from_date: datetime,
        to_date: datetime,
    ) -> list[RawPricePoint]:
        """Fetch daily spot prices between two instants.

        Points are returned in provider order and are NOT validated; prices
        that could not be parsed come back as Decimal("NaN").

        Raises:
            UpstreamUnavailable: Network failure, timeout or non-2xx status.
            InvalidResponseShape: Response did not match the record shape.
        """
        ...

    @abstractmethod
    async def fetch_exchange_rate(self) -> ExchangeRate:
        """Fetch the latest USD->NPR rate and its provider-declared expiry.

        Raises:
            UpstreamUnavailable: Network failure, timeout or non-2xx status.
            InvalidResponseShape: Response did not match the record shape.
        """
        ...
