"""JSON API endpoints exposing the price snapshot to chart/table renderers."""

from __future__ import annotations

from typing import Literal

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from metal_rates.dashboard.formatting import format_npr, format_percent, timestamp_to_iso
from metal_rates.models import ExchangeRate, MetalSymbol
from metal_rates.orchestrator import MetalView, PriceSnapshot

log = structlog.get_logger(__name__)

router = APIRouter()

Unit = Literal["tola", "gram"]


def serialize_rate(rate: ExchangeRate | None) -> dict | None:
    if rate is None:
        return None
    return {
        "rate_npr_per_usd": str(rate.rate_npr_per_usd),
        "valid_until": rate.valid_until,
        "valid_until_iso": timestamp_to_iso(rate.valid_until),
    }


def serialize_metal(view: MetalView, unit: Unit = "tola") -> dict:
    """One metal card: status, full series and the current (latest) price."""
    series = view.series
    current = None
    if series is not None:
        latest = series.latest
        price = latest.price_per_tola_npr if unit == "tola" else latest.price_per_gram_npr
        current = {
            **latest.to_dict(),
            "unit": unit,
            "display_price": format_npr(price),
            "display_change": format_percent(latest.percent_change_from_previous_day),
        }

    return {
        "symbol": view.symbol.value,
        "label": view.symbol.label,
        "color": view.symbol.color,
        "state": view.status.state.value,
        "error": view.status.error,
        "fetched_at": timestamp_to_iso(series.fetched_at) if series else None,
        "current": current,
        "series": [p.to_dict() for p in series.points] if series else None,
    }


def serialize_snapshot(snapshot: PriceSnapshot, unit: Unit = "tola") -> dict:
    return {
        "last_refreshed_at": timestamp_to_iso(snapshot.last_refreshed_at),
        "exchange_rate": serialize_rate(snapshot.exchange_rate),
        "sources": {name: status.to_dict() for name, status in snapshot.sources.items()},
        "metals": {
            metal.name: serialize_metal(view, unit) for metal, view in snapshot.metals.items()
        },
    }


@router.get("/prices")
async def get_prices(request: Request, unit: Unit = "tola") -> JSONResponse:
    """Snapshot of both metals, the active rate and per-source status."""
    orchestrator = request.app.state.orchestrator
    return JSONResponse(content=serialize_snapshot(orchestrator.snapshot(), unit))


@router.get("/prices/{metal}")
async def get_metal_prices(request: Request, metal: str, unit: Unit = "tola") -> JSONResponse:
    """Single metal card, addressed by name ("gold") or code ("XAU")."""
    try:
        symbol = MetalSymbol.parse(metal)
    except ValueError as e:
        log.debug("unknown_metal_requested", metal=metal)
        raise HTTPException(status_code=404, detail=str(e)) from e

    snapshot = request.app.state.orchestrator.snapshot()
    content = serialize_metal(snapshot.metals[symbol], unit)
    content["exchange_rate"] = serialize_rate(snapshot.exchange_rate)
    return JSONResponse(content=content)
