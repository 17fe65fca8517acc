"""Upstream gateway that reaches both providers through the relay.

The relay holds the provider credentials and performs key rotation; this
gateway only speaks to the relay's same-origin endpoints:

- GET /api/gold-proxy?symbol=XAU&groupBy=day&startTimestamp=..&endTimestamp=..
  -> [{"day": "YYYY-MM-DD HH:MM:SS", "max_price": "4994.50"}, ...]
- GET /api/exchange-rate
  -> {"conversion_rates": {"NPR": 144.57, ...}, "time_next_update_unix": 1700000000, ...}

Every failure is mapped onto the pipeline error taxonomy: transport errors,
timeouts and non-2xx statuses raise UpstreamUnavailable; bodies that do not
match the record shape raise InvalidResponseShape.
"""

import time
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from metal_rates.exceptions import InvalidResponseShape, UpstreamUnavailable
from metal_rates.logging import get_logger
from metal_rates.models import ExchangeRate, MetalSymbol, RawPricePoint
from metal_rates.upstream.client import UpstreamGateway

logger = get_logger(__name__)

_DAY_FORMAT = "%Y-%m-%d %H:%M:%S"


def _parse_price(value: Any) -> Decimal:
    """Parse a decimal-as-string price; malformed values become NaN."""
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("NaN")


def _parse_day(value: Any) -> date:
    if not isinstance(value, str):
        raise InvalidResponseShape(f"History record has non-string day: {value!r}")
    text = value.strip()
    try:
        return datetime.strptime(text, _DAY_FORMAT).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").date()
    except ValueError as e:
        raise InvalidResponseShape(f"Unparsable history day: {value!r}") from e


def parse_history(payload: Any) -> list[RawPricePoint]:
    """Parse the history provider body into raw points (not validated)."""
    if not isinstance(payload, list):
        raise InvalidResponseShape(
            f"History response must be a list, got {type(payload).__name__}"
        )
    points = []
    for item in payload:
        if not isinstance(item, dict) or "day" not in item or "max_price" not in item:
            raise InvalidResponseShape(f"Malformed history record: {item!r}")
        points.append(
            RawPricePoint(
                date=_parse_day(item["day"]),
                spot_price_usd_per_ounce=_parse_price(item["max_price"]),
            )
        )
    return points


def parse_exchange_rate(payload: Any, fetched_at: float) -> ExchangeRate:
    """Extract the NPR rate and provider expiry from the latest/USD body."""
    try:
        raw_rate = payload["conversion_rates"]["NPR"]
        valid_until = int(payload["time_next_update_unix"])
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidResponseShape(f"Malformed exchange rate response: {e!r}") from e

    rate = _parse_price(raw_rate)
    if not rate.is_finite() or rate <= 0:
        raise InvalidResponseShape(f"Invalid NPR rate: {raw_rate!r}")

    return ExchangeRate(rate_npr_per_usd=rate, valid_until=valid_until, fetched_at=fetched_at)


class RelayGateway(UpstreamGateway):
    """Concrete gateway using httpx against the relay endpoints.

    Args:
        base_url: Relay origin, e.g. "https://rates.example.com".
        timeout_seconds: Bound on every request; a timeout is a fetch failure.
        transport: Optional httpx transport. Pass httpx.ASGITransport(app=...)
            to reach an in-process relay app without a network hop.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Access the httpx client, creating it lazily."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def connect(self) -> None:
        logger.info("relay_gateway_connecting", base_url=self._base_url)
        _ = self.client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("relay_gateway_closed")

    async def fetch_history(
        self,
        metal: MetalSymbol,
        from_date: datetime,
        to_date: datetime,
    ) -> list[RawPricePoint]:
        payload = await self._get_json(
            "/api/gold-proxy",
            params={
                "symbol": metal.value,
                "groupBy": "day",
                "startTimestamp": str(int(from_date.timestamp())),
                "endTimestamp": str(int(to_date.timestamp())),
            },
        )
        points = parse_history(payload)
        logger.debug("history_fetched", metal=metal.value, points=len(points))
        return points

    async def fetch_exchange_rate(self) -> ExchangeRate:
        payload = await self._get_json("/api/exchange-rate")
        return parse_exchange_rate(payload, fetched_at=time.time())

    async def _get_json(self, path: str, params: dict | None = None) -> Any:
        try:
            response = await self.client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(f"Timed out calling {path}") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Network error calling {path}: {e}") from e

        if not response.is_success:
            body = _safe_json(response)
            attempts = body.get("keysAttempted") if isinstance(body, dict) else None
            detail = body.get("error") if isinstance(body, dict) else None
            raise UpstreamUnavailable(
                f"{path} returned {response.status_code}: {detail or response.reason_phrase}",
                status_code=response.status_code,
                attempts=attempts,
            )

        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseShape(f"{path} returned non-JSON body") from e


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
