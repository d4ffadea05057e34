"""basket-server FastAPI application.

Responsibilities:
- Serve the GraphQL API on `/graphql` (HTTP POST for queries/mutations,
  WebSocket for subscriptions).
- Own the in-memory state: catalog, cart registry and event bus, all held by
  one `ShopService` built in `create_app`.
- Run a background sweeper that evicts idle carts.

Why a sweeper at all?
- Carts are memory-resident and keyed by every identity ever seen. Without
  eviction a long-running server only ever grows.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .catalog import load_catalog
from .config import (
    CART_IDLE_TTL_SECONDS,
    CART_SWEEP_INTERVAL_SECONDS,
    CATALOG_PATH,
    FRONTEND_ORIGIN,
    HOST,
    LOG_LEVEL,
    PORT,
)
from .schema import build_graphql_router
from .service import ShopService

logger = logging.getLogger(__name__)


async def sweep_idle_carts(service: ShopService, stop_event: asyncio.Event) -> None:
    """Evict idle carts every CART_SWEEP_INTERVAL_SECONDS until stopped."""
    logger.info("[Sweeper] Starting (ttl=%ss)", CART_IDLE_TTL_SECONDS)
    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=CART_SWEEP_INTERVAL_SECONDS)
        except asyncio.TimeoutError:
            service.registry.evict_idle(CART_IDLE_TTL_SECONDS)
    logger.info("[Sweeper] Stopped")


def create_app(service: ShopService | None = None) -> FastAPI:
    """Build the application.

    Args:
        service: Pre-built service (tests pass one with a small catalog).
            When omitted, the catalog is loaded from CATALOG_PATH.
    """
    if service is None:
        service = ShopService(load_catalog(CATALOG_PATH))
        logger.info("[Server] Loaded %d products from %s", len(service.catalog), CATALOG_PATH)

    app = FastAPI(title="Basket Server")
    app.state.service = service

    allow_origins = ["*"] if FRONTEND_ORIGIN == "*" else [o.strip() for o in FRONTEND_ORIGIN.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(build_graphql_router(service), prefix="/graphql")

    @app.on_event("startup")
    async def on_startup() -> None:
        if CART_IDLE_TTL_SECONDS > 0:
            # Used to signal the sweeper task to stop on shutdown.
            app.state.stop_event = asyncio.Event()
            app.state.sweeper = asyncio.create_task(sweep_idle_carts(service, app.state.stop_event))

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        sweeper = getattr(app.state, "sweeper", None)
        if sweeper is not None:
            app.state.stop_event.set()
            await sweeper
            app.state.sweeper = None

    @app.get("/health")
    def health() -> dict[str, str]:
        """Basic liveness endpoint."""
        return {"status": "ok"}

    return app


# Importing this module builds the app, which reads the catalog file.
app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    uvicorn.run("basket_server.main:app", host=HOST, port=PORT)
