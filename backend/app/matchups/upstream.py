"""Cache-backed access to every upstream endpoint the service consumes."""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any

from .cache import ResponseCache
from .errors import UpstreamError
from .interface import UpstreamGateway
from .models import (
    SCHEDULE_TEAM_IDS,
    UpstreamRequest,
    isoformat_utc,
    league_request,
    matchups_request,
    players_request,
    rosters_request,
    scoreboard_request,
    team_roster_request,
    user_leagues_request,
    user_request,
    users_request,
)

logger = logging.getLogger(__name__)

# TTLs in seconds, per data category
LEAGUE_TTL = 20 * 60  # league metadata, rosters, users: change rarely mid-week
PLAYERS_TTL = 5 * 60  # global player catalog (several MB, shared by every league)
MATCHUPS_TTL = 5.0  # live scores
SCOREBOARD_TTL = 3.0  # matches the game-time poll cadence
PLAYER_MAPPING_TTL = 60 * 60  # team rosters change rarely

PLAYER_MAPPING_KEY = "espn:player-mapping"
_NON_NAME_CHARS = re.compile(r"[^a-z\s]")


class CachedUpstream:
    """Wraps every gateway call in the ResponseCache with its category TTL."""

    def __init__(self, gateway: UpstreamGateway, cache: ResponseCache) -> None:
        self._gateway = gateway
        self._cache = cache

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    async def _get(self, request: UpstreamRequest, ttl: float) -> Any:
        return await self._cache.get_or_fetch(
            request.cache_key, ttl, lambda: self._gateway.fetch(request)
        )

    async def user(self, username: str) -> Any:
        return await self._get(user_request(username), LEAGUE_TTL)

    async def user_leagues(self, user_id: str, season: int | str) -> Any:
        return await self._get(user_leagues_request(user_id, season), LEAGUE_TTL)

    async def league(self, league_id: str) -> Any:
        return await self._get(league_request(league_id), LEAGUE_TTL)

    async def rosters(self, league_id: str) -> Any:
        return await self._get(rosters_request(league_id), LEAGUE_TTL)

    async def users(self, league_id: str) -> Any:
        return await self._get(users_request(league_id), LEAGUE_TTL)

    async def matchups(self, league_id: str, week: int) -> Any:
        return await self._get(matchups_request(league_id, week), MATCHUPS_TTL)

    async def players(self) -> Any:
        return await self._get(players_request(), PLAYERS_TTL)

    async def scoreboard(self, season: int, week: int) -> Any:
        return await self._get(scoreboard_request(season, week), SCOREBOARD_TTL)

    async def player_mapping(self) -> dict[str, Any]:
        """Schedule-provider player ids keyed by ``"{name}|{team}"``, built from every team roster.

        Teams whose roster cannot be fetched are left out. The merged result
        is cached as one entry.
        """
        return await self._cache.get_or_fetch(
            PLAYER_MAPPING_KEY, PLAYER_MAPPING_TTL, self._build_player_mapping
        )

    async def _build_player_mapping(self) -> dict[str, Any]:
        logger.info("Building player mapping from %d team rosters", len(SCHEDULE_TEAM_IDS))
        results = await asyncio.gather(
            *(self._gateway.fetch(team_roster_request(t)) for t in SCHEDULE_TEAM_IDS),
            return_exceptions=True,
        )

        mapping: dict[str, dict[str, Any]] = {}
        teams = []
        for team_id, result in zip(SCHEDULE_TEAM_IDS, results):
            if isinstance(result, UpstreamError):
                logger.warning("Skipping roster for team %d: %s", team_id, result)
                continue
            if isinstance(result, BaseException):
                raise result
            if not isinstance(result, dict):
                logger.warning("Skipping roster for team %d: malformed payload", team_id)
                continue
            teams.append(_add_team_roster(mapping, team_id, result))

        if not teams:
            raise UpstreamError(None, "no team rosters available")
        logger.info(
            "Player mapping built from %d/%d teams (%d players)",
            len(teams),
            len(SCHEDULE_TEAM_IDS),
            len(mapping),
        )
        return {
            "playerMapping": mapping,
            "metadata": {
                "totalPlayers": len(mapping),
                "successfulTeams": len(teams),
                "teams": teams,
                "lastUpdated": isoformat_utc(datetime.now(timezone.utc)),
            },
        }


def mapping_key(name: str, team: str) -> str:
    """Lower-cased letters-and-spaces name joined to the team abbreviation."""
    return f"{_NON_NAME_CHARS.sub('', name.lower())}|{team}"


def _add_team_roster(mapping: dict, team_id: int, roster: dict) -> dict[str, Any]:
    team = (roster.get("team") or {}).get("abbreviation")
    count = 0
    for group in roster.get("athletes") or []:
        if not isinstance(group, dict):
            continue
        for athlete in group.get("items") or []:
            if not isinstance(athlete, dict):
                continue
            count += 1
            if not team or not athlete.get("id") or not athlete.get("displayName"):
                continue
            name = athlete["displayName"]
            mapping[mapping_key(name, team)] = {
                "espnId": athlete["id"],
                "name": name,
                "team": team,
                "headshot": (athlete.get("headshot") or {}).get("href"),
            }
    return {"teamId": team_id, "teamAbbr": team, "playerCount": count}
