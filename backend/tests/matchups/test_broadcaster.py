"""Tests for Broadcaster change detection and fan-out."""

import asyncio
import json
import logging

import pytest

from app.matchups.broadcaster import Broadcaster
from app.matchups.cache import ResponseCache
from app.matchups.errors import BuildError
from app.matchups.models import MatchupPair, Snapshot, TeamSnapshot, WatchKey
from app.matchups.registry import SinkClosed, SubscriptionRegistry
from app.matchups.snapshot import SnapshotBuilder
from app.matchups.upstream import MATCHUPS_TTL, CachedUpstream

KEY = WatchKey("L", 3)


class ListSink:
    def __init__(self):
        self.payloads = []

    def send(self, payload):
        self.payloads.append(payload)


class BrokenSink:
    def __init__(self):
        self.attempts = 0

    def send(self, payload):
        self.attempts += 1
        raise SinkClosed("client went away")


class FakeBuilder:
    """Returns queued snapshots (or raises queued exceptions) in order."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []
        self.gate = None

    async def build(self, key):
        self.calls.append(key)
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def snapshot(points=10.0, key=KEY):
    team1 = TeamSnapshot(1, "u1", "Alice", points, {"A": points})
    team2 = TeamSnapshot(2, "u2", "Bob", 5.0, {"D": 5.0})
    return Snapshot(watch_key=key, matchups=(MatchupPair(1, team1, team2),))


def make_broadcaster(builder, **kwargs):
    kwargs.setdefault("prime_on_subscribe", False)
    registry = SubscriptionRegistry()
    return Broadcaster(registry, builder, **kwargs), registry


@pytest.mark.asyncio
class TestBroadcasterTicks:
    """Per-key state machine: NoSnapshot → Held, change vs. no change vs. failure."""

    async def test_first_build_is_broadcast(self):
        """Test that the first successful build is sent and held."""
        broadcaster, _ = make_broadcaster(FakeBuilder(snapshot()))
        sink = ListSink()
        broadcaster.subscribe(KEY, sink)

        assert await broadcaster.refresh(KEY) is True
        assert len(sink.payloads) == 1
        assert broadcaster.snapshot(KEY) == snapshot()

    async def test_identical_rebuild_is_suppressed(self):
        """Test that two identical builds cause zero writes on the second."""
        broadcaster, _ = make_broadcaster(FakeBuilder(snapshot(), snapshot()))
        sink = ListSink()
        broadcaster.subscribe(KEY, sink)

        await broadcaster.refresh(KEY)
        assert await broadcaster.refresh(KEY) is False
        assert len(sink.payloads) == 1

    async def test_change_is_broadcast_once(self):
        """Test that a changed snapshot replaces the held one and is sent once."""
        broadcaster, _ = make_broadcaster(FakeBuilder(snapshot(10.0), snapshot(12.0)))
        sink = ListSink()
        broadcaster.subscribe(KEY, sink)

        await broadcaster.refresh(KEY)
        await broadcaster.refresh(KEY)
        await broadcaster.refresh(KEY)

        assert [json.loads(p)["matchups"][0]["team1"]["points"] for p in sink.payloads] == [10.0, 12.0]
        assert broadcaster.snapshot(KEY) == snapshot(12.0)

    async def test_failed_build_keeps_held_snapshot(self):
        """Test that a BuildError neither regresses the held snapshot nor is sent."""
        builder = FakeBuilder(snapshot(10.0), BuildError("upstream unavailable"))
        broadcaster, _ = make_broadcaster(builder)
        sink = ListSink()
        broadcaster.subscribe(KEY, sink)

        await broadcaster.refresh(KEY)
        assert await broadcaster.refresh(KEY) is False

        assert len(sink.payloads) == 1
        assert broadcaster.snapshot(KEY) == snapshot(10.0)

    async def test_failed_first_build_holds_nothing(self):
        """Test that a key stays in NoSnapshot while builds fail."""
        broadcaster, _ = make_broadcaster(FakeBuilder(BuildError("broken reference")))
        sink = ListSink()
        broadcaster.subscribe(KEY, sink)

        assert await broadcaster.refresh(KEY) is False
        assert sink.payloads == []
        assert broadcaster.snapshot(KEY) is None

    async def test_overlapping_refresh_is_skipped(self):
        """Test that a second tick for a key still refreshing does nothing."""
        builder = FakeBuilder(snapshot())
        builder.gate = asyncio.Event()
        broadcaster, _ = make_broadcaster(builder)
        broadcaster.subscribe(KEY, ListSink())

        first = asyncio.create_task(broadcaster.refresh(KEY))
        await asyncio.sleep(0)
        assert await broadcaster.refresh(KEY) is False
        builder.gate.set()

        assert await first is True
        assert len(builder.calls) == 1

    async def test_guard_released_after_failure(self):
        """Test that a failed tick does not block later ticks."""
        builder = FakeBuilder(BuildError("upstream unavailable"), snapshot())
        broadcaster, _ = make_broadcaster(builder)
        broadcaster.subscribe(KEY, ListSink())

        assert await broadcaster.refresh(KEY) is False
        assert await broadcaster.refresh(KEY) is True


@pytest.mark.asyncio
class TestBroadcasterFanOut:
    """Delivery to subscribers."""

    async def test_only_matching_key_receives(self):
        """Test that subscribers of other keys are not written to."""
        broadcaster, _ = make_broadcaster(FakeBuilder(snapshot()))
        watching, other = ListSink(), ListSink()
        broadcaster.subscribe(KEY, watching)
        broadcaster.subscribe(WatchKey("M", 1), other)

        await broadcaster.refresh(KEY)

        assert len(watching.payloads) == 1
        assert other.payloads == []

    async def test_payload_serialized_once(self):
        """Test that every subscriber receives the identical payload string."""
        broadcaster, _ = make_broadcaster(FakeBuilder(snapshot()))
        sinks = [ListSink() for _ in range(3)]
        for sink in sinks:
            broadcaster.subscribe(KEY, sink)

        await broadcaster.refresh(KEY)

        assert sinks[0].payloads[0] is sinks[1].payloads[0] is sinks[2].payloads[0]

    async def test_failed_write_removes_subscriber(self):
        """Test that a throwing sink is deregistered and others still receive."""
        broadcaster, registry = make_broadcaster(FakeBuilder(snapshot(10.0), snapshot(12.0)))
        good_before, good_after = ListSink(), ListSink()
        broken = BrokenSink()
        broadcaster.subscribe(KEY, good_before)
        broken_handle = broadcaster.subscribe(KEY, broken)
        broadcaster.subscribe(KEY, good_after)

        await broadcaster.refresh(KEY)

        assert broken_handle not in registry
        assert registry.count(KEY) == 2
        assert len(good_before.payloads) == 1
        assert len(good_after.payloads) == 1

        await broadcaster.refresh(KEY)
        assert broken.attempts == 1
        assert len(good_after.payloads) == 2

    async def test_late_subscriber_gets_held_snapshot(self):
        """Test that subscribing to a held key sends the current snapshot at once."""
        broadcaster, _ = make_broadcaster(FakeBuilder(snapshot(), snapshot()))
        broadcaster.subscribe(KEY, ListSink())
        await broadcaster.refresh(KEY)

        late = ListSink()
        broadcaster.subscribe(KEY, late)
        assert len(late.payloads) == 1

        await broadcaster.refresh(KEY)
        assert len(late.payloads) == 1  # not sent twice

    async def test_no_send_before_first_snapshot(self):
        """Test that subscribing to an unheld key sends nothing."""
        broadcaster, _ = make_broadcaster(FakeBuilder(snapshot()))
        sink = ListSink()
        broadcaster.subscribe(KEY, sink)
        assert sink.payloads == []

    async def test_subscriber_added_mid_refresh_not_sent_twice(self):
        """Test the per-subscriber version check during a concurrent subscribe."""
        builder = FakeBuilder(snapshot())
        broadcaster, registry = make_broadcaster(builder)
        first = ListSink()
        broadcaster.subscribe(KEY, first)
        await broadcaster.refresh(KEY)

        # Fan the held snapshot out again, as a racing refresh would
        held = broadcaster._held[KEY]
        late = ListSink()
        broadcaster.subscribe(KEY, late)
        broadcaster._fan_out(KEY, held)

        assert len(first.payloads) == 1
        assert len(late.payloads) == 1

    async def test_unsubscribe(self):
        """Test that an unsubscribed sink receives nothing further."""
        broadcaster, registry = make_broadcaster(FakeBuilder(snapshot(10.0), snapshot(12.0)))
        sink = ListSink()
        handle = broadcaster.subscribe(KEY, sink)
        await broadcaster.refresh(KEY)
        broadcaster.unsubscribe(handle)
        await broadcaster.refresh(KEY)

        assert len(sink.payloads) == 1
        assert len(registry) == 0


@pytest.mark.asyncio
class TestBroadcasterPolling:
    """poll_once, priming and housekeeping."""

    async def test_poll_without_subscribers_builds_nothing(self):
        """Test that keys nobody watches are not recomputed."""
        builder = FakeBuilder(snapshot())
        broadcaster, _ = make_broadcaster(builder)

        assert await broadcaster.poll_once() == 0
        assert builder.calls == []

    async def test_poll_refreshes_each_active_key(self):
        """Test that every watched key is rebuilt once per pass."""
        builder = FakeBuilder(snapshot())
        broadcaster, _ = make_broadcaster(builder)
        broadcaster.subscribe(KEY, ListSink())
        broadcaster.subscribe(KEY, ListSink())
        broadcaster.subscribe(WatchKey("M", 1), ListSink())

        await broadcaster.poll_once()

        assert sorted(builder.calls, key=str) == [KEY, WatchKey("M", 1)]

    async def test_poll_survives_unexpected_errors(self):
        """Test that a non-BuildError from one key does not abort the pass."""
        builder = FakeBuilder(RuntimeError("bug"))
        broadcaster, _ = make_broadcaster(builder)
        broadcaster.subscribe(KEY, ListSink())

        assert await broadcaster.poll_once() == 0

    async def test_prime_on_subscribe(self):
        """Test that subscribing to an unheld key starts a background refresh."""
        builder = FakeBuilder(snapshot())
        broadcaster, _ = make_broadcaster(builder, prime_on_subscribe=True)
        sink = ListSink()
        broadcaster.subscribe(KEY, sink)

        await asyncio.gather(*broadcaster._tasks)

        assert len(sink.payloads) == 1
        await broadcaster.close()

    async def test_unexpected_error_logged_with_traceback(self, caplog):
        """Test that a pass logs an unexpected refresh failure with its traceback."""
        broadcaster, _ = make_broadcaster(FakeBuilder(RuntimeError("bug")))
        broadcaster.subscribe(KEY, ListSink())

        with caplog.at_level(logging.ERROR, logger="app.matchups.broadcaster"):
            await broadcaster.poll_once()

        records = [r for r in caplog.records if r.name == "app.matchups.broadcaster"]
        assert len(records) == 1
        assert records[0].exc_info[0] is RuntimeError

    async def test_failed_prime_is_logged(self, caplog):
        """Test that an unexpected error in the subscribe-time refresh reaches the module log."""
        builder = FakeBuilder(TypeError("malformed upstream entry"))
        broadcaster, registry = make_broadcaster(builder, prime_on_subscribe=True)
        sink = ListSink()

        with caplog.at_level(logging.ERROR, logger="app.matchups.broadcaster"):
            broadcaster.subscribe(KEY, sink)
            tasks = list(broadcaster._tasks)
            await asyncio.gather(*tasks)

        records = [r for r in caplog.records if r.name == "app.matchups.broadcaster"]
        assert len(records) == 1
        assert "L-3" in records[0].getMessage()
        assert records[0].exc_info[0] is TypeError
        assert all(task.exception() is None for task in tasks)
        assert sink.payloads == []
        assert registry.count(KEY) == 1
        await broadcaster.close()

    async def test_prune_after_grace_period(self, clock):
        """Test that an unwatched snapshot is released after the grace period."""
        broadcaster, _ = make_broadcaster(FakeBuilder(snapshot()), grace_period=60, clock=clock)
        handle = broadcaster.subscribe(KEY, ListSink())
        await broadcaster.refresh(KEY)
        broadcaster.unsubscribe(handle)

        assert broadcaster.prune() == []  # idle clock starts now
        clock.advance(59)
        assert broadcaster.prune() == []
        clock.advance(1)
        assert broadcaster.prune() == [KEY]
        assert broadcaster.held_count() == 0

    async def test_resubscribe_resets_grace(self, clock):
        """Test that a returning subscriber keeps the held snapshot alive."""
        broadcaster, _ = make_broadcaster(FakeBuilder(snapshot()), grace_period=60, clock=clock)
        handle = broadcaster.subscribe(KEY, ListSink())
        await broadcaster.refresh(KEY)
        broadcaster.unsubscribe(handle)
        broadcaster.prune()
        clock.advance(50)

        sink = ListSink()
        broadcaster.subscribe(KEY, sink)
        clock.advance(50)

        assert broadcaster.prune() == []
        assert len(sink.payloads) == 1


@pytest.mark.asyncio
class TestEndToEnd:
    """Subscriber → tick S1 → identical tick → changed tick S2, against the real builder."""

    async def test_scenario(self, gateway, clock):
        """Test that S1 is sent once, the identical rebuild is silent, and S2 is sent once."""
        cache = ResponseCache(clock=clock)
        builder = SnapshotBuilder(CachedUpstream(gateway, cache))
        broadcaster, registry = make_broadcaster(builder)
        sink = ListSink()
        broadcaster.subscribe(KEY, sink)

        await broadcaster.poll_once()
        assert len(sink.payloads) == 1
        s1 = json.loads(sink.payloads[0])
        assert s1["matchups"][0]["team1"]["playerPoints"]["A"] == 10.0

        clock.advance(MATCHUPS_TTL)
        await broadcaster.poll_once()
        assert len(sink.payloads) == 1
        assert gateway.call_count("league/L/matchups/3") == 2

        matchups = gateway.responses["league/L/matchups/3"]
        matchups[0] = dict(matchups[0], players_points={"A": 12.0, "B": 5.0, "C": 99.0})
        clock.advance(MATCHUPS_TTL)
        await broadcaster.poll_once()

        assert len(sink.payloads) == 2
        s2 = json.loads(sink.payloads[1])
        assert s2["matchups"][0]["team1"]["playerPoints"]["A"] == 12.0
        assert s2["matchups"][0]["team1"]["points"] == 17.0
        assert s2["leagueId"] == "L" and s2["week"] == 3

    async def test_upstream_outage_serves_stale_silently(self, gateway, clock):
        """Test that an outage after the first build causes no sends and no errors."""
        cache = ResponseCache(clock=clock)
        builder = SnapshotBuilder(CachedUpstream(gateway, cache))
        broadcaster, _ = make_broadcaster(builder)
        sink = ListSink()
        broadcaster.subscribe(KEY, sink)
        await broadcaster.poll_once()

        gateway.failing.add("league/L/matchups/3")
        clock.advance(MATCHUPS_TTL)
        await broadcaster.poll_once()

        assert len(sink.payloads) == 1
        assert broadcaster.snapshot(KEY) is not None
