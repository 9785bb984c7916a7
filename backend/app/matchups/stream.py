"""SSE streaming endpoint for live matchup snapshots, plus the health probe."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from .broadcaster import Broadcaster
from .cache import ResponseCache
from .models import WatchKey
from .registry import QueueSink, SubscriptionRegistry
from .scheduler import AdaptiveScheduler

logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15.0


def create_stream_router(
    broadcaster: Broadcaster,
    registry: SubscriptionRegistry,
    cache: ResponseCache,
    scheduler: AdaptiveScheduler | None = None,
) -> APIRouter:
    """Create the SSE streaming router around the live-update components.

    This factory pattern lets us inject collaborators without globals.
    """
    router = APIRouter(tags=["streaming"])

    @router.get("/stream/matchup/{league_id}/{week}")
    async def stream_matchup(league_id: str, week: int, request: Request) -> StreamingResponse:
        """SSE endpoint for one (league, week) slate.

        Pushes the full snapshot whenever it changes:

            data: {"leagueId": "123", "week": 3, "updatedAt": "...", "matchups": [...]}

        Nothing is sent until a snapshot has been built; errors are never
        sent, the stream just stops advancing.
        """
        try:
            watch_key = WatchKey.parse(league_id, week)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e

        return StreamingResponse(
            _generate_events(broadcaster, watch_key, request),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
            },
        )

    @router.get("/health")
    async def health() -> dict:
        """Read-only counters for monitoring."""
        return {
            "status": "ok",
            "clients": len(registry),
            "cacheSize": len(cache),
            "activeStreams": broadcaster.held_count(),
            "activeKeys": len(registry.active_keys()),
            "pollIntervalMs": scheduler.current_interval_millis() if scheduler else None,
        }

    return router


async def _generate_events(
    broadcaster: Broadcaster,
    watch_key: WatchKey,
    request: Request,
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncGenerator[str, None]:
    """Async generator that yields SSE-formatted snapshot events.

    The subscription lives exactly as long as this generator: it is removed
    when the client disconnects, the response is cancelled, or a write to
    the sink fails.
    """
    # Tell the client to retry after 1 second if the connection drops
    yield "retry: 1000\n\n"

    client_ip = request.client.host if request.client else "unknown"
    sink = QueueSink()
    subscriber = broadcaster.subscribe(watch_key, sink)
    logger.info("SSE client connected: %s (%s)", client_ip, watch_key)

    try:
        while True:
            if await request.is_disconnected():
                logger.info("SSE client disconnected: %s", client_ip)
                break
            try:
                payload = await asyncio.wait_for(sink.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                if sink.closed:
                    break
                yield ": keep-alive\n\n"
                continue
            yield f"data: {payload}\n\n"
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for: %s", client_ip)
        raise
    finally:
        sink.close()
        broadcaster.unsubscribe(subscriber)
