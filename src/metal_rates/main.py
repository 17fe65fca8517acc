"""Entry point for the Nepal metal rates service.

Wires all components together and serves the relay endpoints and the price
API from one FastAPI app. The refresh orchestrator and the HTTP server share
a single asyncio event loop via uvicorn's programmatic API and FastAPI's
lifespan context manager.

uvicorn handles SIGINT/SIGTERM; the lifespan then stops the orchestrator
and closes every resource.

Component wiring order (in build_components):
1. AppSettings (configuration)
2. Logging setup
3. RelayService (credential-holding pass-through)
4. RelayGateway (remote relay, or the in-process relay via ASGITransport)
5. CacheDatabase + CacheStore (local persisted cache)
6. ExchangeRateCache
7. PriceHistoryCache
8. RefreshOrchestrator
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import httpx
import uvicorn
from fastapi import FastAPI

from metal_rates.cache.database import CacheDatabase
from metal_rates.cache.exchange_rate import ExchangeRateCache
from metal_rates.cache.price_history import PriceHistoryCache
from metal_rates.cache.store import CacheStore
from metal_rates.config import AppSettings
from metal_rates.dashboard.app import create_dashboard_app
from metal_rates.logging import get_logger, setup_logging
from metal_rates.orchestrator import RefreshOrchestrator
from metal_rates.pricing.converter import margins_from_settings
from metal_rates.relay.app import create_relay_app, install_relay
from metal_rates.relay.service import RelayService
from metal_rates.upstream.relay_gateway import RelayGateway

_IN_PROCESS_RELAY_URL = "http://relay.internal"


def build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all components from settings.

    Note: Does NOT open the database or start the orchestrator -- that
    happens in the lifespan.

    Returns:
        Dict mapping component names to instances.
    """
    logger = get_logger("metal_rates.main")

    relay = RelayService(settings.relay)

    if settings.upstream.relay_base_url:
        gateway = RelayGateway(
            settings.upstream.relay_base_url,
            timeout_seconds=settings.upstream.timeout_seconds,
        )
    else:
        # No remote relay: route gateway calls into an in-process relay app
        relay_app = create_relay_app(relay, cors_enabled=False)
        gateway = RelayGateway(
            _IN_PROCESS_RELAY_URL,
            timeout_seconds=settings.upstream.timeout_seconds,
            transport=httpx.ASGITransport(app=relay_app),
        )
        logger.info("using_in_process_relay")

    database = CacheDatabase(settings.cache.db_path)
    store = CacheStore(database)
    rate_cache = ExchangeRateCache(gateway, store)
    history_cache = PriceHistoryCache(
        gateway,
        store,
        rate_cache,
        ttl_seconds=settings.cache.series_ttl_seconds,
        history_days=settings.upstream.history_days,
        margins=margins_from_settings(settings.pricing),
    )
    orchestrator = RefreshOrchestrator(
        rate_cache,
        history_cache,
        interval_seconds=settings.refresh.interval_seconds,
    )

    return {
        "relay": relay,
        "gateway": gateway,
        "database": database,
        "store": store,
        "rate_cache": rate_cache,
        "history_cache": history_cache,
        "orchestrator": orchestrator,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    On startup: opens the cache database, connects the gateway, starts the
    orchestrator (hydrate + background refresh).

    On shutdown: stops the orchestrator, closes the gateway, relay client
    and database.
    """
    logger = get_logger("metal_rates.main")
    components = app.state.components

    app.state.orchestrator = components["orchestrator"]

    await components["database"].connect()
    await components["gateway"].connect()
    await components["orchestrator"].start()

    logger.info("lifespan_started")

    yield

    await components["orchestrator"].stop()
    await components["gateway"].close()
    await components["relay"].close()
    await components["database"].close()

    logger.info("metal_rates_stopped")


def create_app(settings: AppSettings) -> FastAPI:
    """Dashboard app with the relay routes mounted alongside the price API."""
    components = build_components(settings)
    app = create_dashboard_app(lifespan=lifespan)
    install_relay(app, components["relay"], cors_enabled=settings.relay.cors_enabled)
    app.state.settings = settings
    app.state.components = components
    return app


async def run() -> None:
    """Run the service: price API + relay + background refresh."""
    settings = AppSettings()
    setup_logging(settings.log_level)
    logger = get_logger("metal_rates.main")

    app = create_app(settings)

    logger.info(
        "starting_metal_rates",
        host=settings.dashboard.host,
        port=settings.dashboard.port,
        refresh_interval=settings.refresh.interval_seconds,
    )

    config = uvicorn.Config(
        app,
        host=settings.dashboard.host,
        port=settings.dashboard.port,
        log_level="warning",  # Suppress uvicorn access logs
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
