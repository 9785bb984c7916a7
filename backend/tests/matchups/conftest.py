"""Fixtures for live-update tests.

FakeGateway answers UpstreamRequests from a dict keyed by request path, counts
calls, and can be told to fail or to hold responses until released. FakeClock
stands in for time.monotonic in TTL and grace-period tests.
"""

import asyncio
from typing import Any

import pytest

from app.matchups.cache import ResponseCache
from app.matchups.errors import UpstreamError
from app.matchups.interface import UpstreamGateway
from app.matchups.models import UpstreamRequest
from app.matchups.upstream import CachedUpstream

LEAGUE_ID = "L"
WEEK = 3


class FakeGateway(UpstreamGateway):
    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.failing: set[str] = set()
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def fetch(self, request: UpstreamRequest) -> Any:
        self.calls.append(request.path)
        if self.gate is not None:
            await self.gate.wait()
        if request.path in self.failing:
            raise UpstreamError(503, f"{request.path} unavailable")
        if request.path not in self.responses:
            raise UpstreamError(404, f"{request.path} not found")
        return self.responses[request.path]

    async def close(self) -> None:
        self.closed = True

    def call_count(self, path: str) -> int:
        return self.calls.count(path)


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_entry(roster_id, matchup_id, starters, players_points, starters_points=None):
    return {
        "roster_id": roster_id,
        "matchup_id": matchup_id,
        "starters": starters,
        "starters_points": starters_points
        if starters_points is not None
        else [players_points.get(p, 0) for p in starters],
        "players": list(players_points),
        "players_points": players_points,
    }


def league_responses() -> dict[str, Any]:
    """Two rosters playing each other in matchup 1, plus one roster on a bye."""
    return {
        f"league/{LEAGUE_ID}/rosters": [
            {"roster_id": 1, "owner_id": "u1"},
            {"roster_id": 2, "owner_id": "u2"},
            {"roster_id": 3, "owner_id": None},
        ],
        f"league/{LEAGUE_ID}/users": [
            {"user_id": "u1", "username": "alice", "display_name": "Alice"},
            {"user_id": "u2", "username": "bob", "display_name": None},
        ],
        f"league/{LEAGUE_ID}/matchups/{WEEK}": [
            _make_entry(1, 1, ["A", "B"], {"A": 10.0, "B": 5.0, "C": 99.0}),
            _make_entry(2, 1, ["D", "E"], {"D": 7.5, "E": 2.25}),
            _make_entry(3, None, ["F"], {"F": 4.0}),
        ],
    }


@pytest.fixture
def make_entry():
    """Builder for Sleeper-shaped matchup entries."""
    return _make_entry


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway(league_responses())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache() -> ResponseCache:
    return ResponseCache()


@pytest.fixture
def upstream(gateway: FakeGateway, cache: ResponseCache) -> CachedUpstream:
    return CachedUpstream(gateway, cache)
