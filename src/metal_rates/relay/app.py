"""Same-origin relay endpoints in front of the upstream providers."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from metal_rates.relay.service import RelayService

log = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/gold-proxy")
async def gold_proxy(
    request: Request,
    symbol: str | None = None,
    start_timestamp: str | None = Query(None, alias="startTimestamp"),
    end_timestamp: str | None = Query(None, alias="endTimestamp"),
    group_by: str | None = Query(None, alias="groupBy"),
) -> JSONResponse:
    """Metal price history (with a date range) or current price (without)."""
    relay: RelayService = request.app.state.relay
    result = await relay.proxy_metal(symbol, start_timestamp, end_timestamp, group_by)
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get("/exchange-rate")
async def exchange_rate(request: Request) -> JSONResponse:
    """Latest USD conversion rates."""
    relay: RelayService = request.app.state.relay
    result = await relay.proxy_exchange_rate()
    return JSONResponse(status_code=result.status_code, content=result.body)


def install_relay(app: FastAPI, relay: RelayService, cors_enabled: bool = True) -> None:
    """Mount the relay routes under /api and store the service on app.state."""
    app.state.relay = relay
    app.include_router(router, prefix="/api")
    if cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "OPTIONS"],
            allow_headers=["Content-Type"],
        )


def create_relay_app(relay: RelayService, cors_enabled: bool = True, lifespan: Any = None) -> FastAPI:
    """Standalone relay application (used in-process by the gateway and in tests)."""
    app = FastAPI(title="Metal Rates Relay", lifespan=lifespan)
    install_relay(app, relay, cors_enabled=cors_enabled)
    log.debug("relay_app_created", cors_enabled=cors_enabled)
    return app
