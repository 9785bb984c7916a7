"""Data models for matchup snapshots and upstream requests."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

POINTS_PRECISION = 2

LEAGUE_PROVIDER = "sleeper"
SCHEDULE_PROVIDER = "espn"


def normalize_points(value: Any) -> float:
    """Coerce a raw upstream point value to a stable float.

    None, non-numeric and non-finite values count as 0.0. Everything else is
    rounded to two decimals so ``10``, ``10.0`` and ``10.000001`` compare and
    serialize identically.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return round(number, POINTS_PRECISION) + 0.0  # + 0.0 folds -0.0 into 0.0


def isoformat_utc(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class WatchKey:
    """A (league, week) pair identifying one matchup slate."""

    league_id: str
    week: int

    @classmethod
    def parse(cls, league_id: Any, week: Any) -> WatchKey:
        league = str(league_id).strip() if league_id is not None else ""
        if not league:
            raise ValueError("league_id must be non-empty")
        try:
            week_number = int(week)
        except (TypeError, ValueError):
            raise ValueError(f"week must be an integer, got {week!r}") from None
        if week_number < 1:
            raise ValueError(f"week must be positive, got {week_number}")
        return cls(league_id=league, week=week_number)

    def __str__(self) -> str:
        return f"{self.league_id}-{self.week}"


@dataclass(frozen=True, slots=True)
class TeamSnapshot:
    """One side of a matchup: owner, total and per-starter points.

    player_points is kept as ordered (player_id, points) pairs in lineup
    order, so equality follows the serialized form and the value hashes.
    A mapping is accepted and converted.
    """

    roster_id: int
    user_id: str | None
    team_name: str
    total_points: float
    player_points: tuple[tuple[str, float], ...] = ()

    def __post_init__(self) -> None:
        points = self.player_points
        pairs = points.items() if isinstance(points, Mapping) else points
        object.__setattr__(self, "player_points", tuple((str(p), v) for p, v in pairs))

    def to_dict(self) -> dict:
        return {
            "rosterId": self.roster_id,
            "userId": self.user_id,
            "teamName": self.team_name,
            "points": self.total_points,
            "playerPoints": dict(self.player_points),
        }


@dataclass(frozen=True, slots=True)
class MatchupPair:
    matchup_id: int
    team1: TeamSnapshot
    team2: TeamSnapshot

    def to_dict(self) -> dict:
        return {
            "matchupId": self.matchup_id,
            "team1": self.team1.to_dict(),
            "team2": self.team2.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Minimal comparable projection of a slate's current scores.

    ``computed_at`` is excluded from equality: two snapshots built at
    different times from the same upstream data are equal.
    """

    watch_key: WatchKey
    matchups: tuple[MatchupPair, ...] = ()
    computed_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), compare=False
    )

    def to_dict(self) -> dict:
        """Serialize to the wire shape pushed to stream subscribers."""
        return {
            "leagueId": self.watch_key.league_id,
            "week": self.watch_key.week,
            "updatedAt": isoformat_utc(self.computed_at),
            "matchups": [pair.to_dict() for pair in self.matchups],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


@dataclass(frozen=True, slots=True)
class UpstreamRequest:
    """A read-only GET against one of the upstream providers."""

    provider: str
    path: str
    params: tuple[tuple[str, str], ...] = ()

    def url(self, base_url: str) -> str:
        url = f"{base_url.rstrip('/')}/{self.path.lstrip('/')}"
        if self.params:
            url = f"{url}?{urlencode(self.params)}"
        return url

    @property
    def cache_key(self) -> str:
        key = f"{self.provider}:{self.path}"
        if self.params:
            key = f"{key}?{urlencode(self.params)}"
        return key


# --- Request constructors (league provider) ---


def user_request(username: str) -> UpstreamRequest:
    return UpstreamRequest(LEAGUE_PROVIDER, f"user/{username}")


def user_leagues_request(user_id: str, season: int | str) -> UpstreamRequest:
    return UpstreamRequest(LEAGUE_PROVIDER, f"user/{user_id}/leagues/nfl/{season}")


def league_request(league_id: str) -> UpstreamRequest:
    return UpstreamRequest(LEAGUE_PROVIDER, f"league/{league_id}")


def rosters_request(league_id: str) -> UpstreamRequest:
    return UpstreamRequest(LEAGUE_PROVIDER, f"league/{league_id}/rosters")


def users_request(league_id: str) -> UpstreamRequest:
    return UpstreamRequest(LEAGUE_PROVIDER, f"league/{league_id}/users")


def matchups_request(league_id: str, week: int) -> UpstreamRequest:
    return UpstreamRequest(LEAGUE_PROVIDER, f"league/{league_id}/matchups/{week}")


def players_request() -> UpstreamRequest:
    return UpstreamRequest(LEAGUE_PROVIDER, "players/nfl")


# --- Request constructors (schedule provider) ---


def scoreboard_request(season: int, week: int) -> UpstreamRequest:
    # seasontype=2 is the regular season
    return UpstreamRequest(
        SCHEDULE_PROVIDER,
        "scoreboard",
        (("dates", str(season)), ("seasontype", "2"), ("week", str(week))),
    )


# ESPN team ids for the 32 NFL franchises (31 and 32 are unused)
SCHEDULE_TEAM_IDS: tuple[int, ...] = (*range(1, 31), 33, 34)


def team_roster_request(team_id: int) -> UpstreamRequest:
    return UpstreamRequest(SCHEDULE_PROVIDER, f"teams/{team_id}/roster")
