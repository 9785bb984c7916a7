"""Read-through proxy routes for the upstream providers."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException

from .errors import UpstreamError
from .upstream import CachedUpstream

logger = logging.getLogger(__name__)


def create_api_router(upstream: CachedUpstream) -> APIRouter:
    """Create the /api router. Every route is served through the response cache."""
    router = APIRouter(prefix="/api", tags=["upstream"])

    @router.get("/user/{username}")
    async def get_user(username: str) -> Any:
        return await _proxy(upstream.user(username))

    @router.get("/user/{user_id}/leagues/{season}")
    async def get_user_leagues(user_id: str, season: int) -> Any:
        return await _proxy(upstream.user_leagues(user_id, season))

    @router.get("/league/{league_id}")
    async def get_league(league_id: str) -> Any:
        return await _proxy(upstream.league(league_id))

    @router.get("/league/{league_id}/matchups/{week}")
    async def get_matchups(league_id: str, week: int) -> Any:
        return await _proxy(upstream.matchups(league_id, week))

    @router.get("/league/{league_id}/rosters")
    async def get_rosters(league_id: str) -> Any:
        return await _proxy(upstream.rosters(league_id))

    @router.get("/league/{league_id}/users")
    async def get_users(league_id: str) -> Any:
        return await _proxy(upstream.users(league_id))

    @router.get("/players/nfl")
    async def get_players() -> Any:
        return await _proxy(upstream.players())

    @router.get("/nfl/scoreboard/{week}")
    async def get_scoreboard(week: int) -> Any:
        return await _proxy(upstream.scoreboard(datetime.now().year, week))

    @router.get("/espn/player-mapping")
    async def get_player_mapping() -> Any:
        return await _proxy(upstream.player_mapping())

    return router


async def _proxy(call: Awaitable[Any]) -> Any:
    try:
        return await call
    except UpstreamError as e:
        logger.warning("Proxy request failed: %s", e)
        raise HTTPException(status_code=502, detail=e.message) from e
