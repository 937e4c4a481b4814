"""Tests for BusTracker (timeline -> smoothing -> registry pipeline)."""

import asyncio
import datetime

import orjson
import pytest

from transit_tracker.core.broadcaster import Broadcaster
from transit_tracker.core.bus_progress import BusProgressState
from transit_tracker.core.bus_tracker import BusTracker
from transit_tracker.core.citybus_client import (
    MOCK_DIRECTION_META,
    EtaEntry,
    StopWithEta,
    build_mock_stops,
)
from transit_tracker.core.progress_registry import ProgressRegistry

BASE = datetime.datetime(2026, 3, 1, 8, 0, 0, tzinfo=datetime.timezone.utc)


class FakeClient:
    route_number = "B8"

    def __init__(self, stops=None):
        self.stops = stops
        self.calls: list[str] = []

    async def fetch_stops_with_eta(self, direction):
        self.calls.append(direction)
        return self.stops

    async def fetch_route_info(self):
        return dict(MOCK_DIRECTION_META)


class FakeBroadcaster:
    def __init__(self):
        self.published: list[dict] = []

    async def publish(self, snapshot):
        self.published.append(snapshot)


def make_tracker(stops=None, broadcaster=None) -> BusTracker:
    return BusTracker(FakeClient(stops), broadcaster, direction="outbound")


def without_bus(stops: list[StopWithEta], bus_id: int) -> list[StopWithEta]:
    return [
        StopWithEta(
            stop_id=s.stop_id, seq=s.seq, name_en=s.name_en,
            etas=[e for e in s.etas if e.eta_seq != bus_id],
        )
        for s in stops
    ]


def test_first_poll_places_mock_buses():
    tracker = make_tracker()
    markers = tracker.update(build_mock_stops(BASE), BASE)

    by_id = {m.id: m for m in markers}
    assert set(by_id) == {1, 2}

    # Bus 1: left stop 1 two minutes ago, reaches stop 2 in four
    assert by_id[1].prev_stop_seq == 1
    assert by_id[1].next_stop_seq == 2
    assert by_id[1].progress == pytest.approx(2 / 6)

    # Bus 2: between stop 2 (-6 min) and stop 3 (+2 min)
    assert by_id[2].next_stop_id == "mock-3"
    assert by_id[2].progress == pytest.approx(6 / 8)

    assert len(tracker.registry) == 2


def test_presence_and_highlight():
    tracker = make_tracker()
    tracker.update(build_mock_stops(BASE), BASE)

    # Bus 1 is early in its segment so it counts at the stop it left
    assert tracker.presence == {"mock-1": 1, "mock-3": 1}
    # Bus 2's next stop has the earliest upcoming ETA
    assert tracker.highlight_seq == 3


def test_second_poll_eases_forward():
    tracker = make_tracker()
    stops = build_mock_stops(BASE)
    first = {m.id: m.progress for m in tracker.update(stops, BASE)}

    later = BASE + datetime.timedelta(seconds=5)
    second = {m.id: m.progress for m in tracker.update(stops, later)}

    raw_bus1 = (2 * 60 + 5) / (6 * 60)
    assert first[1] < second[1] < raw_bus1
    assert second[1] == pytest.approx(first[1] + (raw_bus1 - first[1]) * 5 / 15)


def test_missing_bus_is_evicted():
    tracker = make_tracker()
    stops = build_mock_stops(BASE)
    tracker.update(stops, BASE)

    tracker.update(without_bus(stops, 2), BASE + datetime.timedelta(seconds=5))

    assert 2 not in tracker.registry
    assert 1 in tracker.registry
    assert [m.id for m in tracker.markers] == [1]


def test_seq_regression_keeps_previous_state_and_is_logged():
    tracker = make_tracker()
    tracker.registry.put(1, BusProgressState(
        progress=0.42, next_stop_seq=5, next_stop_id="mock-5",
        prev_stop_seq=4, prev_stop_id="mock-4",
        timestamp=BASE - datetime.timedelta(seconds=5),
    ))

    markers = tracker.update(build_mock_stops(BASE), BASE)
    bus1 = next(m for m in markers if m.id == 1)

    assert bus1.next_stop_seq == 5
    assert bus1.progress == 0.42
    assert tracker.registry.get(1).timestamp == BASE

    diag = tracker.get_progress_diagnostics()
    assert diag["counts"] == {"seq_regression": 1}


def test_poll_publishes_snapshot():
    now = datetime.datetime.now(datetime.timezone.utc)
    broadcaster = FakeBroadcaster()
    tracker = make_tracker(build_mock_stops(now), broadcaster)

    asyncio.run(tracker.poll_buses())

    assert tracker.client.calls == ["outbound"]
    assert len(broadcaster.published) == 1
    payload = broadcaster.published[0]
    assert payload["type"] == "update"
    assert payload["route"] == "B8"
    assert len(payload["buses"]) == 2
    # JSON-ready for the broadcaster
    orjson.dumps(payload)


def test_failed_fetch_leaves_state_untouched():
    tracker = make_tracker()
    tracker.update(build_mock_stops(BASE), BASE)
    before = tracker.registry.snapshot()

    tracker.client.stops = None
    asyncio.run(tracker.poll_buses())

    assert tracker.registry.snapshot() == before
    assert len(tracker.markers) == 2


def test_direction_change_clears_state():
    tracker = make_tracker()
    tracker.update(build_mock_stops(BASE), BASE)

    asyncio.run(tracker.set_direction("inbound"))

    assert len(tracker.registry) == 0
    assert tracker.markers == []
    assert tracker.direction == "inbound"


def test_direction_change_replaces_published_view():
    broadcaster = Broadcaster(redis_url="")
    tracker = make_tracker(build_mock_stops(BASE), broadcaster)

    async def go():
        await tracker.poll_buses()
        await tracker.set_direction("inbound")
        # First poll for the new direction fails
        tracker.client.stops = None
        await tracker.poll_buses()
        return await broadcaster.get_current_state()

    state = orjson.loads(asyncio.run(go()))
    assert state["direction"] == "inbound"
    assert state["buses"] == []
    assert state["presence"] == {}
    assert state["highlight_seq"] is None


def test_same_direction_publishes_nothing():
    broadcaster = FakeBroadcaster()
    tracker = make_tracker(broadcaster=broadcaster)
    asyncio.run(tracker.set_direction("outbound"))
    assert broadcaster.published == []


def test_unknown_direction_rejected():
    tracker = make_tracker()
    with pytest.raises(ValueError):
        asyncio.run(tracker.set_direction("sideways"))


def test_stop_timeline():
    tracker = make_tracker()
    tracker.update(build_mock_stops(BASE), BASE)

    timeline = tracker.stop_timeline(now=BASE)
    assert [e.seq for e in timeline] == [1, 2, 3, 4, 5, 6, 7]

    stop2 = timeline[1]
    assert stop2.primary_eta == BASE + datetime.timedelta(minutes=4)
    assert stop2.minutes_until == 4
    assert timeline[0].bus_count == 1
    assert timeline[2].bus_count == 1
    assert stop2.bus_count == 0


def test_stop_without_live_eta():
    tracker = make_tracker()
    stops = [StopWithEta(stop_id="s1", seq=1, name_en="A", etas=[EtaEntry(eta=None, eta_seq=1)])]
    markers = tracker.update(stops, BASE)

    assert markers == []
    entry = tracker.stop_timeline(now=BASE)[0]
    assert entry.primary_eta is None
    assert entry.minutes_until is None


def test_direction_info_uses_route_meta():
    tracker = make_tracker()
    asyncio.run(tracker.load_route_info())
    info = tracker.direction_info()
    assert info.origin == "Downtown Terminal"
    assert info.destination == "Airport Terminal"


def test_diagnostics_lists_tracked_buses():
    tracker = make_tracker()
    tracker.update(build_mock_stops(BASE), BASE)
    diag = tracker.get_diagnostics()
    assert diag["tracked_buses"] == 2
    assert [b["bus_id"] for b in diag["buses"]] == [1, 2]
    assert diag["stops_with_eta"] == 7


def test_registry_evict_missing():
    registry = ProgressRegistry()
    state = BusProgressState(
        progress=0.1, next_stop_seq=2, next_stop_id="b",
        prev_stop_seq=1, prev_stop_id="a", timestamp=BASE,
    )
    registry.put(1, state)
    registry.put(2, state)
    registry.put(3, state)

    evicted = registry.evict_missing([1, 3, 99])

    assert evicted == [2]
    assert sorted(registry) == [1, 3]
    assert registry.get(2) is None
