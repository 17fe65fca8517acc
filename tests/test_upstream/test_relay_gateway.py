"""Tests for RelayGateway parsing and error mapping using httpx.MockTransport."""

from datetime import date, datetime, timezone
from decimal import Decimal

import httpx
import pytest

from metal_rates.exceptions import InvalidResponseShape, UpstreamUnavailable
from metal_rates.models import MetalSymbol
from metal_rates.upstream.relay_gateway import (
    RelayGateway,
    parse_exchange_rate,
    parse_history,
)

FROM = datetime(2023, 10, 15, tzinfo=timezone.utc)
TO = datetime(2023, 11, 14, tzinfo=timezone.utc)

HISTORY_BODY = [
    {"day": "2023-11-12 00:00:00", "max_price": "4994.50"},
    {"day": "2023-11-13 00:00:00", "max_price": "5080.20"},
]

RATE_BODY = {
    "result": "success",
    "time_next_update_unix": 1700086400,
    "conversion_rates": {"USD": 1, "NPR": 144.5737},
}


def make_gateway(handler) -> RelayGateway:
    return RelayGateway("http://relay.test", transport=httpx.MockTransport(handler))


class TestParseHistory:
    def test_parses_records(self) -> None:
        points = parse_history(HISTORY_BODY)
        assert [p.date for p in points] == [date(2023, 11, 12), date(2023, 11, 13)]
        assert points[0].spot_price_usd_per_ounce == Decimal("4994.50")

    def test_date_only_day(self) -> None:
        points = parse_history([{"day": "2023-11-12", "max_price": 4994.5}])
        assert points[0].date == date(2023, 11, 12)
        assert points[0].spot_price_usd_per_ounce == Decimal("4994.5")

    def test_unparsable_price_becomes_nan(self) -> None:
        points = parse_history([{"day": "2023-11-12 00:00:00", "max_price": "n/a"}])
        assert points[0].spot_price_usd_per_ounce.is_nan()

    @pytest.mark.parametrize(
        "payload",
        [
            {"error": "nope"},
            [{"day": "2023-11-12"}],
            [{"max_price": "1"}],
            ["2023-11-12"],
            [{"day": "yesterday", "max_price": "1"}],
            [{"day": 20231112, "max_price": "1"}],
        ],
    )
    def test_bad_shape(self, payload) -> None:
        with pytest.raises(InvalidResponseShape):
            parse_history(payload)


class TestParseExchangeRate:
    def test_reads_npr_and_expiry(self) -> None:
        rate = parse_exchange_rate(RATE_BODY, fetched_at=1.0)
        assert rate.rate_npr_per_usd == Decimal("144.5737")
        assert rate.valid_until == 1700086400
        assert rate.fetched_at == 1.0

    @pytest.mark.parametrize(
        "payload",
        [
            {"time_next_update_unix": 1},
            {"conversion_rates": {"USD": 1}, "time_next_update_unix": 1},
            {"conversion_rates": {"NPR": 144}},
            {"conversion_rates": {"NPR": 0}, "time_next_update_unix": 1},
            {"conversion_rates": {"NPR": "abc"}, "time_next_update_unix": 1},
            [],
        ],
    )
    def test_bad_shape(self, payload) -> None:
        with pytest.raises(InvalidResponseShape):
            parse_exchange_rate(payload, fetched_at=0.0)


class TestFetchHistory:
    @pytest.mark.asyncio
    async def test_request_parameters(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=HISTORY_BODY)

        gateway = make_gateway(handler)
        points = await gateway.fetch_history(MetalSymbol.GOLD, FROM, TO)
        await gateway.close()

        assert len(points) == 2
        request = seen[0]
        assert request.url.path == "/api/gold-proxy"
        assert request.url.params["symbol"] == "XAU"
        assert request.url.params["groupBy"] == "day"
        assert request.url.params["startTimestamp"] == str(int(FROM.timestamp()))
        assert request.url.params["endTimestamp"] == str(int(TO.timestamp()))

    @pytest.mark.asyncio
    async def test_exhausted_keys_surface_attempts(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                429,
                json={
                    "error": "All API keys exhausted or rate limited",
                    "details": "Key 3 rate limited or unauthorized",
                    "keysAttempted": 3,
                },
            )

        gateway = make_gateway(handler)
        with pytest.raises(UpstreamUnavailable) as exc_info:
            await gateway.fetch_history(MetalSymbol.SILVER, FROM, TO)

        assert exc_info.value.status_code == 429
        assert exc_info.value.attempts == 3
        assert not isinstance(exc_info.value, InvalidResponseShape)

    @pytest.mark.asyncio
    async def test_non_json_error_body(self) -> None:
        gateway = make_gateway(lambda request: httpx.Response(502, text="Bad Gateway"))
        with pytest.raises(UpstreamUnavailable) as exc_info:
            await gateway.fetch_history(MetalSymbol.GOLD, FROM, TO)
        assert exc_info.value.status_code == 502
        assert exc_info.value.attempts is None

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(UpstreamUnavailable, match="Timed out"):
            await make_gateway(handler).fetch_history(MetalSymbol.GOLD, FROM, TO)

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(UpstreamUnavailable, match="Network error"):
            await make_gateway(handler).fetch_history(MetalSymbol.GOLD, FROM, TO)

    @pytest.mark.asyncio
    async def test_non_json_success_body(self) -> None:
        gateway = make_gateway(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(InvalidResponseShape):
            await gateway.fetch_history(MetalSymbol.GOLD, FROM, TO)


class TestFetchExchangeRate:
    @pytest.mark.asyncio
    async def test_fetches_rate(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/exchange-rate"
            return httpx.Response(200, json=RATE_BODY)

        rate = await make_gateway(handler).fetch_exchange_rate()
        assert rate.rate_npr_per_usd == Decimal("144.5737")
        assert rate.valid_until == 1700086400

    @pytest.mark.asyncio
    async def test_upstream_error(self) -> None:
        gateway = make_gateway(
            lambda request: httpx.Response(500, json={"error": "Proxy error"})
        )
        with pytest.raises(UpstreamUnavailable) as exc_info:
            await gateway.fetch_exchange_rate()
        assert exc_info.value.status_code == 500
