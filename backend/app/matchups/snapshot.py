"""Builds comparable matchup snapshots from cached upstream data."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any

from .errors import BuildError, UpstreamError
from .models import MatchupPair, Snapshot, TeamSnapshot, WatchKey, normalize_points
from .upstream import CachedUpstream

logger = logging.getLogger(__name__)

# Sleeper fills empty lineup slots with "0"
_EMPTY_SLOTS = {None, "", "0"}


class SnapshotBuilder:
    """Joins matchups, rosters and users for one (league, week) into a Snapshot.

    Team totals count starters only: bench points are on the roster's
    players_points map but never reach the displayed score.
    """

    def __init__(self, upstream: CachedUpstream) -> None:
        self._upstream = upstream

    async def build(self, key: WatchKey) -> Snapshot:
        try:
            matchups, rosters, users = await asyncio.gather(
                self._upstream.matchups(key.league_id, key.week),
                self._upstream.rosters(key.league_id),
                self._upstream.users(key.league_id),
            )
        except UpstreamError as e:
            raise BuildError("upstream unavailable", str(e)) from e

        for name, payload in (("matchups", matchups), ("rosters", rosters), ("users", users)):
            if not isinstance(payload, list):
                raise BuildError("malformed payload", f"{name} for {key} is {type(payload).__name__}")

        rosters_by_id = {r.get("roster_id"): r for r in rosters if isinstance(r, dict)}
        users_by_id = {u.get("user_id"): u for u in users if isinstance(u, dict)}

        pairs = []
        for matchup_id, group in sorted(_group_by_matchup(matchups).items(), key=_matchup_order):
            if len(group) != 2:
                logger.debug("Skipping matchup %s in %s: %d teams", matchup_id, key, len(group))
                continue
            team1, team2 = (_team_snapshot(entry, rosters_by_id, users_by_id) for entry in group)
            pairs.append(MatchupPair(matchup_id=matchup_id, team1=team1, team2=team2))

        return Snapshot(watch_key=key, matchups=tuple(pairs))


def _group_by_matchup(matchups: list) -> dict[Any, list[dict]]:
    groups: dict[Any, list[dict]] = defaultdict(list)
    for entry in matchups:
        # Byes and unscheduled rosters come back with a null matchup_id
        if isinstance(entry, dict) and entry.get("matchup_id") is not None:
            groups[entry["matchup_id"]].append(entry)
    return groups


def _matchup_order(item: tuple[Any, list]) -> tuple[int, Any]:
    matchup_id = item[0]
    if isinstance(matchup_id, int):
        return (0, matchup_id)
    return (1, str(matchup_id))


def _team_snapshot(
    entry: dict,
    rosters_by_id: dict[Any, dict],
    users_by_id: dict[Any, dict],
) -> TeamSnapshot:
    roster_id = entry.get("roster_id")
    roster = rosters_by_id.get(roster_id)
    if roster is None:
        raise BuildError(
            "broken reference",
            f"matchup {entry.get('matchup_id')} references unknown roster {roster_id}",
        )

    user = users_by_id.get(roster.get("owner_id"))
    if user is not None:
        user_id = user.get("user_id")
        team_name = user.get("display_name") or user.get("username") or f"Team {roster_id}"
    else:
        user_id = None
        team_name = f"Team {roster_id}"

    player_points = starter_points(entry)
    total = normalize_points(sum(player_points.values()))
    return TeamSnapshot(
        roster_id=roster_id,
        user_id=user_id,
        team_name=team_name,
        total_points=total,
        player_points=player_points,
    )


def starter_points(entry: dict) -> dict[str, float]:
    """Per-player points for the starting lineup of one matchup entry.

    Prefers the players_points map; falls back to the positional
    starters_points list when a starter is missing from it.
    """
    starters = entry.get("starters") or []
    by_player = entry.get("players_points") or {}
    by_slot = entry.get("starters_points") or []

    points: dict[str, float] = {}
    for index, player_id in enumerate(starters):
        if player_id in _EMPTY_SLOTS:
            continue
        player_id = str(player_id)
        if player_id in by_player:
            raw = by_player[player_id]
        elif index < len(by_slot):
            raw = by_slot[index]
        else:
            raw = 0
        points[player_id] = normalize_points(raw)
    return points
