"""Credential-holding pass-through to the upstream providers.

The relay injects provider secrets server-side so they never reach the
presentation tier. Upstream JSON is returned verbatim on success; failures
become a structured {error, details} body with the upstream (or 500) status.
"""

from dataclasses import dataclass, field
from typing import Any

import httpx

from metal_rates.config import RelaySettings, split_keys
from metal_rates.exceptions import CredentialsExhausted
from metal_rates.logging import get_logger
from metal_rates.relay.rotation import CredentialRotator

logger = get_logger(__name__)

_PROVIDER_LABELS = {"gold_api": "Gold API", "exchange_rate_api": "Exchange rate API"}


@dataclass
class RelayResponse:
    """Status code and JSON body to hand back to the caller."""

    status_code: int
    body: Any = field(default_factory=dict)


class RelayService:
    """Forwards metal-price and exchange-rate requests with key rotation.

    Args:
        settings: Relay settings (keys, provider base URLs, timeout).
        client: Optional outbound httpx client; created from settings if None.
    """

    def __init__(
        self,
        settings: RelaySettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient(timeout=settings.timeout_seconds)
        self._gold_keys = CredentialRotator(split_keys(settings.gold_api_keys))
        self._rate_keys = CredentialRotator(split_keys(settings.exchange_rate_api_keys))

    async def close(self) -> None:
        await self._client.aclose()

    async def proxy_metal(
        self,
        symbol: str | None,
        start_timestamp: str | None = None,
        end_timestamp: str | None = None,
        group_by: str | None = None,
    ) -> RelayResponse:
        """Forward to the history endpoint, or the current-price endpoint
        when no date range is given."""
        if not len(self._gold_keys):
            return RelayResponse(500, {"error": "API key not configured"})

        base = self._settings.gold_api_base_url.rstrip("/")
        if symbol and start_timestamp and end_timestamp and group_by:
            url = f"{base}/history"
            params: dict[str, str] = {
                "symbol": symbol,
                "startTimestamp": start_timestamp,
                "endTimestamp": end_timestamp,
                "groupBy": group_by,
            }
        elif symbol:
            url = f"{base}/price/{symbol}"
            params = {}
        else:
            return RelayResponse(400, {"error": "Invalid parameters"})

        def build(key: str) -> httpx.Request:
            return self._client.build_request(
                "GET",
                url,
                params=params,
                headers={"x-api-key": key, "Content-Type": "application/json"},
            )

        return await self._forward("gold_api", self._gold_keys, build)

    async def proxy_exchange_rate(self) -> RelayResponse:
        """Forward to the latest USD rates endpoint (key is part of the path)."""
        if not len(self._rate_keys):
            return RelayResponse(500, {"error": "API key not configured"})

        base = self._settings.exchange_rate_base_url.rstrip("/")

        def build(key: str) -> httpx.Request:
            return self._client.build_request("GET", f"{base}/v6/{key}/latest/USD")

        return await self._forward("exchange_rate_api", self._rate_keys, build)

    async def _forward(self, provider: str, rotator: CredentialRotator, build) -> RelayResponse:  # type: ignore[no-untyped-def]
        try:
            result = await rotator.send(self._client, build)
        except CredentialsExhausted as e:
            logger.error(
                "relay_credentials_exhausted",
                provider=provider,
                status=e.last_status,
                attempts=e.attempts,
            )
            return RelayResponse(
                e.last_status,
                {
                    "error": "All API keys exhausted or rate limited",
                    "details": e.details,
                    "keysAttempted": e.attempts,
                },
            )
        except httpx.HTTPError as e:
            logger.error("relay_transport_error", provider=provider, error=str(e))
            return RelayResponse(500, {"error": "Proxy error", "details": str(e)})

        response = result.response
        if not response.is_success:
            logger.warning(
                "relay_upstream_error",
                provider=provider,
                status=response.status_code,
                attempts=result.attempts,
            )
            return RelayResponse(
                response.status_code,
                {
                    "error": f"{_PROVIDER_LABELS[provider]} returned {response.status_code}",
                    "details": response.text[:200],
                },
            )

        try:
            body = response.json()
        except ValueError as e:
            return RelayResponse(500, {"error": "Proxy error", "details": str(e)})

        logger.debug("relay_forwarded", provider=provider, attempts=result.attempts)
        return RelayResponse(200, body)
