"""Application entry point.

Wires the live-update components into a FastAPI app:

    gateway → ResponseCache → SnapshotBuilder → Broadcaster ← SubscriptionRegistry
                                                   ↑
                                          AdaptiveScheduler

Components are created in create_app(); the lifespan only starts and stops
the background work.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from app.logging_config import configure_logging
from app.matchups import (
    AdaptiveScheduler,
    Broadcaster,
    CachedUpstream,
    ResponseCache,
    Settings,
    SnapshotBuilder,
    SubscriptionRegistry,
    UpstreamGateway,
    create_api_router,
    create_stream_router,
    create_upstream_gateway,
)

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    gateway: UpstreamGateway | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application (the composition root)."""
    settings = settings or Settings.from_env()
    gateway = gateway or create_upstream_gateway(settings)

    cache = ResponseCache(max_entries=settings.cache_max_entries)
    upstream = CachedUpstream(gateway, cache)
    registry = SubscriptionRegistry()
    broadcaster = Broadcaster(
        registry,
        SnapshotBuilder(upstream),
        grace_period=settings.snapshot_grace_seconds,
    )
    scheduler = AdaptiveScheduler(
        broadcaster,
        active_interval=settings.active_interval,
        idle_interval=settings.idle_interval,
        reevaluate_every=settings.reevaluate_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await scheduler.start()
        logger.info("Fantasy matchups server ready")
        yield
        logger.info("Shutting down server...")
        await scheduler.stop()
        await broadcaster.close()
        await gateway.close()

    app = FastAPI(title="Fantasy Matchups", lifespan=lifespan)
    app.state.cache = cache
    app.state.registry = registry
    app.state.broadcaster = broadcaster
    app.state.scheduler = scheduler

    app.include_router(create_stream_router(broadcaster, registry, cache, scheduler))
    app.include_router(create_api_router(upstream))
    return app


def run() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
