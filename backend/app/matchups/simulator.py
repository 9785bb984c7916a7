"""Simulated league and schedule providers for offline runs."""

from __future__ import annotations

import logging
import re
import zlib
from datetime import datetime
from typing import Any

import numpy as np

from .errors import UpstreamError
from .interface import UpstreamGateway
from .models import LEAGUE_PROVIDER, SCHEDULE_PROVIDER, UpstreamRequest
from .seed_league import (
    BENCH_SIZE,
    DEFAULT_TEAM_COUNT,
    DEPTH_LABELS,
    FLEX_POSITIONS,
    LINEUP_SLOTS,
    MANAGER_NAMES,
    NFL_TEAMS,
    POSITION_SCORING,
    SCHEDULE_TEAMS,
)

logger = logging.getLogger(__name__)

# Players per NFL team in the simulated catalog
_DEPTH_CHART: dict[str, int] = {"QB": 1, "RB": 2, "WR": 3, "TE": 1, "K": 1, "DEF": 1}


class ScoringSimulator:
    """Random scoring plays for a global player pool, tracked per week.

    Each step() gives every player an independent chance of a scoring play
    (probability and mean size depend on position):

        gain_i = Exp(mean_i) * [U_i < p_i]

    so totals only ever grow during a week, like live fantasy scoring.
    """

    def __init__(self, seed: int | None = None) -> None:
        self._rng = np.random.default_rng(seed)
        self.players: dict[str, dict[str, Any]] = {}
        self._ids: list[str] = []
        for team in NFL_TEAMS:
            for position, depth in _DEPTH_CHART.items():
                for n in range(1, depth + 1):
                    player_id = team if position == "DEF" else str(1000 + len(self._ids))
                    self._ids.append(player_id)
                    self.players[player_id] = {
                        "player_id": player_id,
                        "full_name": (
                            f"{team} Defense" if position == "DEF" else f"{team} {position} {DEPTH_LABELS[n - 1]}"
                        ),
                        "position": position,
                        "team": team,
                        "fantasy_positions": [position],
                    }
        self._index = {player_id: i for i, player_id in enumerate(self._ids)}
        self._probability = np.array(
            [POSITION_SCORING[self.players[p]["position"]]["probability"] for p in self._ids]
        )
        self._mean = np.array(
            [POSITION_SCORING[self.players[p]["position"]]["mean"] for p in self._ids]
        )
        self._points: dict[int, np.ndarray] = {}

    def by_position(self, position: str) -> list[str]:
        return [p for p in self._ids if self.players[p]["position"] == position]

    def step(self, week: int) -> None:
        """Advance every player's score for the given week by one poll."""
        points = self._points.setdefault(week, np.zeros(len(self._ids)))
        hits = self._rng.random(len(self._ids)) < self._probability
        points += self._rng.exponential(self._mean) * hits

    def points(self, week: int, player_id: str) -> float:
        week_points = self._points.get(week)
        if week_points is None or player_id not in self._index:
            return 0.0
        return round(float(week_points[self._index[player_id]]), 2)


def _draw(pools: dict[str, list], positions: list[str], rng: np.random.Generator) -> str:
    available = [p for p in positions if pools[p]]
    if not available:
        raise ValueError(f"player pool exhausted for {positions}")
    return str(pools[rng.choice(available)].pop())


class SimulatedLeague:
    """One fantasy league drafted from the simulator's player pool.

    The draft is seeded from the league id, so the same id always yields the
    same rosters and owners.
    """

    def __init__(self, league_id: str, scoring: ScoringSimulator, team_count: int, season: int) -> None:
        self.league_id = league_id
        self.season = season
        self._scoring = scoring
        rng = np.random.default_rng(zlib.crc32(league_id.encode()))

        pools = {position: list(rng.permutation(scoring.by_position(position))) for position in _DEPTH_CHART}
        self.rosters: list[dict[str, Any]] = []
        self.users: list[dict[str, Any]] = []
        for roster_id in range(1, team_count + 1):
            starters = []
            for slot in LINEUP_SLOTS:
                starters.append(_draw(pools, FLEX_POSITIONS if slot == "FLEX" else [slot], rng))
            bench = [_draw(pools, FLEX_POSITIONS, rng) for _ in range(BENCH_SIZE)]
            user_id = f"{league_id}-u{roster_id}"
            name = MANAGER_NAMES[(roster_id - 1) % len(MANAGER_NAMES)]
            self.users.append(
                {"user_id": user_id, "username": name.lower(), "display_name": name, "league_id": league_id}
            )
            self.rosters.append(
                {
                    "roster_id": roster_id,
                    "owner_id": user_id,
                    "league_id": league_id,
                    "starters": starters,
                    "players": starters + bench,
                }
            )

    def metadata(self) -> dict[str, Any]:
        return {
            "league_id": self.league_id,
            "name": f"Simulated League {self.league_id}",
            "season": str(self.season),
            "sport": "nfl",
            "status": "in_season",
            "total_rosters": len(self.rosters),
            "roster_positions": LINEUP_SLOTS + ["BN"] * BENCH_SIZE,
        }

    def pairings(self, week: int) -> dict[int, int | None]:
        """Round-robin (circle method) matchup ids for each roster; None is a bye."""
        order: list[int | None] = [r["roster_id"] for r in self.rosters]
        if len(order) % 2:
            order.append(None)
        fixed, rest = order[0], order[1:]
        if rest:
            shift = (week - 1) % len(rest)
            rest = rest[shift:] + rest[:shift]
        order = [fixed] + rest
        half = len(order) // 2
        result: dict[int, int | None] = {}
        for i in range(half):
            a, b = order[i], order[-1 - i]
            matchup_id = i + 1 if a is not None and b is not None else None
            for roster_id in (a, b):
                if roster_id is not None:
                    result[roster_id] = matchup_id
        return result

    def matchups(self, week: int) -> list[dict[str, Any]]:
        self._scoring.step(week)
        pairings = self.pairings(week)
        entries = []
        for roster in self.rosters:
            players_points = {p: self._scoring.points(week, p) for p in roster["players"]}
            starters_points = [players_points[p] for p in roster["starters"]]
            entries.append(
                {
                    "roster_id": roster["roster_id"],
                    "matchup_id": pairings.get(roster["roster_id"]),
                    "starters": list(roster["starters"]),
                    "starters_points": starters_points,
                    "players": list(roster["players"]),
                    "players_points": players_points,
                    "points": round(sum(starters_points), 2),
                }
            )
        return entries


class SimulatedGateway(UpstreamGateway):
    """UpstreamGateway that answers provider paths from in-memory simulations.

    Any league id is accepted; the league is drafted on first use. Scores
    advance every time a league's matchups are fetched, so a running poller
    sees live-looking changes.
    """

    _ROUTES = [
        ("user_leagues", re.compile(r"^user/(?P<user_id>[^/]+)/leagues/nfl/(?P<season>\d+)$")),
        ("user", re.compile(r"^user/(?P<username>[^/]+)$")),
        ("matchups", re.compile(r"^league/(?P<league_id>[^/]+)/matchups/(?P<week>\d+)$")),
        ("rosters", re.compile(r"^league/(?P<league_id>[^/]+)/rosters$")),
        ("users", re.compile(r"^league/(?P<league_id>[^/]+)/users$")),
        ("league", re.compile(r"^league/(?P<league_id>[^/]+)$")),
        ("players", re.compile(r"^players/nfl$")),
    ]
    _TEAM_ROSTER = re.compile(r"^teams/(?P<team_id>\d+)/roster$")

    def __init__(
        self,
        seed: int | None = None,
        team_count: int = DEFAULT_TEAM_COUNT,
        season: int | None = None,
    ) -> None:
        if not 2 <= team_count <= len(MANAGER_NAMES):
            raise ValueError(f"team_count must be between 2 and {len(MANAGER_NAMES)}")
        self._scoring = ScoringSimulator(seed=seed)
        self._rng = np.random.default_rng(seed)
        self._team_count = team_count
        self._season = season or datetime.now().year
        self._leagues: dict[str, SimulatedLeague] = {}
        self._game_scores: dict[int, np.ndarray] = {}
        self.fetch_count = 0

    def league(self, league_id: str) -> SimulatedLeague:
        if league_id not in self._leagues:
            self._leagues[league_id] = SimulatedLeague(
                league_id, self._scoring, self._team_count, self._season
            )
            logger.info("Simulator: drafted league %s (%d teams)", league_id, self._team_count)
        return self._leagues[league_id]

    async def fetch(self, request: UpstreamRequest) -> Any:
        self.fetch_count += 1
        if request.provider == SCHEDULE_PROVIDER and request.path == "scoreboard":
            params = dict(request.params)
            return self._scoreboard(int(params.get("week", 1)))
        if request.provider == SCHEDULE_PROVIDER:
            match = self._TEAM_ROSTER.match(request.path)
            if match:
                return self._team_roster(int(match["team_id"]))
        if request.provider == LEAGUE_PROVIDER:
            for name, pattern in self._ROUTES:
                match = pattern.match(request.path)
                if match:
                    return self._dispatch(name, **match.groupdict())
        raise UpstreamError(404, f"no simulated route for {request.cache_key}")

    async def close(self) -> None:
        logger.info("Simulator stopped")

    def _dispatch(self, name: str, **args: str) -> Any:
        if name == "user":
            username = args["username"]
            return {"user_id": f"sim-{username}", "username": username, "display_name": username}
        if name == "user_leagues":
            league = self.league(f"{args['user_id']}-league")
            return [league.metadata()]
        if name == "players":
            return {p: dict(info) for p, info in self._scoring.players.items()}

        league = self.league(args["league_id"])
        if name == "league":
            return league.metadata()
        if name == "rosters":
            return [dict(r) for r in league.rosters]
        if name == "users":
            return [dict(u) for u in league.users]
        return league.matchups(int(args["week"]))

    def _scoreboard(self, week: int) -> dict[str, Any]:
        scores = self._game_scores.setdefault(week, np.zeros(len(NFL_TEAMS), dtype=int))
        scores += self._rng.choice([0, 0, 0, 0, 3, 7], size=len(NFL_TEAMS))
        events = []
        for i in range(0, len(NFL_TEAMS), 2):
            away, home = NFL_TEAMS[i], NFL_TEAMS[i + 1]
            events.append(
                {
                    "id": f"{self._season}{week:02d}{i // 2:02d}",
                    "name": f"{away} at {home}",
                    "status": {"type": {"state": "in", "completed": False}},
                    "competitions": [
                        {
                            "competitors": [
                                {"homeAway": "home", "team": {"abbreviation": home}, "score": str(scores[i + 1])},
                                {"homeAway": "away", "team": {"abbreviation": away}, "score": str(scores[i])},
                            ]
                        }
                    ],
                }
            )
        return {"week": {"number": week}, "season": {"year": self._season}, "events": events}

    def _team_roster(self, team_id: int) -> dict[str, Any]:
        team = SCHEDULE_TEAMS.get(team_id)
        if team is None:
            raise UpstreamError(404, f"no simulated team {team_id}")
        groups: dict[str, list[dict[str, Any]]] = {"offense": [], "specialTeam": []}
        for player_id, info in self._scoring.players.items():
            if info["team"] != team or info["position"] == "DEF":
                continue
            athlete_id = str(4_000_000 + int(player_id))
            group = "specialTeam" if info["position"] == "K" else "offense"
            groups[group].append(
                {
                    "id": athlete_id,
                    "displayName": info["full_name"],
                    "position": {"abbreviation": info["position"]},
                    "headshot": {"href": f"https://a.espncdn.com/i/headshots/nfl/players/full/{athlete_id}.png"},
                }
            )
        return {
            "team": {"id": str(team_id), "abbreviation": team},
            "athletes": [{"position": name, "items": items} for name, items in groups.items()],
        }
