"""POST endpoints for user-triggered actions."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from metal_rates.dashboard.routes.api import Unit, serialize_snapshot

log = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/refresh")
async def refresh(request: Request, unit: Unit = "tola") -> JSONResponse:
    """Manual refresh: force both metals now and return the new snapshot.

    Source failures are reported inside the snapshot, not as an HTTP error.
    """
    orchestrator = request.app.state.orchestrator
    log.info("manual_refresh_requested")
    snapshot = await orchestrator.request_refresh()
    return JSONResponse(content=serialize_snapshot(snapshot, unit))
