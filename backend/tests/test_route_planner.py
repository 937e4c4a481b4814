"""Tests for route metrics, nearest-neighbor ordering and the planner."""

import pytest

from transit_tracker.core.geo import (
    Coordinates,
    format_distance,
    format_eta,
    generate_coordinates_from_label,
    haversine_distance_km,
)
from transit_tracker.core.locations import SUGGESTED_LOCATIONS, find_suggestion
from transit_tracker.core.route_planner import (
    PlannerStop,
    RoutePlanner,
    StopStatus,
    compute_route_metrics,
    optimize_stop_order,
)


def stop(stop_id: str, lat: float, lon: float, status=StopStatus.PENDING) -> PlannerStop:
    return PlannerStop(
        id=stop_id, label=stop_id, coordinates=Coordinates(lat, lon), status=status,
    )


def test_haversine_zero_and_symmetric():
    a = Coordinates(37.7936, -122.3965)
    b = Coordinates(22.3080, 113.9185)
    assert haversine_distance_km(a, a) == 0.0
    assert haversine_distance_km(a, b) == pytest.approx(haversine_distance_km(b, a), rel=1e-12)


def test_one_degree_at_equator():
    d = haversine_distance_km(Coordinates(0.0, 0.0), Coordinates(0.0, 1.0))
    assert d == pytest.approx(111.19, abs=0.01)


def test_metrics_for_three_equatorial_stops():
    stops = [stop("A", 0.0, 0.0), stop("B", 0.0, 1.0), stop("C", 0.0, 2.0)]
    metrics = compute_route_metrics(stops)

    assert len(metrics.legs) == 2
    assert [leg.stop_id for leg in metrics.legs] == ["A", "B"]
    for leg in metrics.legs:
        assert leg.distance_km == pytest.approx(111.2, abs=0.05)
        assert leg.eta_minutes == pytest.approx(190.6, abs=0.05)
    assert metrics.total_distance_km == pytest.approx(222.4, abs=0.05)
    assert metrics.pending_stops == 3
    assert metrics.completed_stops == 0


def test_metrics_totals_are_leg_sums():
    stops = [
        PlannerStop(id=s.id, label=s.label, coordinates=s.coordinates)
        for s in SUGGESTED_LOCATIONS
    ]
    metrics = compute_route_metrics(stops)
    assert metrics.total_distance_km == sum(leg.distance_km for leg in metrics.legs)
    assert metrics.total_eta_minutes == sum(leg.eta_minutes for leg in metrics.legs)


def test_metrics_custom_speed():
    stops = [stop("A", 0.0, 0.0), stop("B", 0.0, 1.0)]
    slow = compute_route_metrics(stops, average_speed_kmh=17.5)
    fast = compute_route_metrics(stops)
    assert slow.total_eta_minutes == pytest.approx(2 * fast.total_eta_minutes)


@pytest.mark.parametrize("count", [0, 1])
def test_metrics_trivial_lists(count):
    stops = [stop("A", 1.0, 1.0, StopStatus.COMPLETED)][:count]
    metrics = compute_route_metrics(stops)
    assert metrics.total_distance_km == 0.0
    assert metrics.total_eta_minutes == 0.0
    assert metrics.legs == []
    assert metrics.completed_stops == count
    assert metrics.pending_stops == 0


def test_metrics_status_counts():
    stops = [
        stop("A", 0.0, 0.0, StopStatus.COMPLETED),
        stop("B", 0.0, 0.1),
        stop("C", 0.0, 0.2, StopStatus.COMPLETED),
    ]
    metrics = compute_route_metrics(stops)
    assert metrics.completed_stops == 2
    assert metrics.pending_stops == 1


@pytest.mark.parametrize("count", [0, 1, 2])
def test_optimizer_leaves_small_lists(count):
    stops = [stop("A", 0.0, 5.0), stop("B", 0.0, 0.0)][:count]
    assert optimize_stop_order(stops) == stops


def test_optimizer_pins_origin_and_goes_nearest_first():
    stops = [
        stop("origin", 0.0, 0.0),
        stop("far", 0.0, 3.0),
        stop("near", 0.0, 1.0),
        stop("mid", 0.0, 2.0),
    ]
    ordered = optimize_stop_order(stops)
    assert [s.id for s in ordered] == ["origin", "near", "mid", "far"]
    # Input untouched
    assert [s.id for s in stops] == ["origin", "far", "near", "mid"]


def test_optimizer_ties_go_to_earliest():
    stops = [
        stop("origin", 0.0, 0.0),
        stop("east", 0.0, 1.0),
        stop("west", 0.0, -1.0),
    ]
    ordered = optimize_stop_order(stops)
    assert [s.id for s in ordered] == ["origin", "east", "west"]


def test_optimizer_keeps_every_stop():
    stops = [
        PlannerStop(id=s.id, label=s.label, coordinates=s.coordinates)
        for s in SUGGESTED_LOCATIONS
    ]
    ordered = optimize_stop_order(stops)
    assert ordered[0] == stops[0]
    assert sorted(s.id for s in ordered) == sorted(s.id for s in stops)


def test_format_distance_and_eta():
    assert format_distance(12.345) == "12.3 km"
    assert format_eta(25.4) == "25 mins"
    assert format_eta(59.5) == "60 mins"
    assert format_eta(90) == "1h 30m"
    assert format_eta(190.6) == "3h 11m"


def test_placeholder_coordinates_are_deterministic():
    a = generate_coordinates_from_label("42 Nowhere Lane")
    b = generate_coordinates_from_label("42 Nowhere Lane")
    assert a == b
    assert abs(a.latitude - 37.7749) <= 0.1
    assert abs(a.longitude + 122.4194) <= 0.13


def test_placeholder_coordinates_formula():
    # 'ab' -> 97*1 + 98*2 = 293
    coords = generate_coordinates_from_label("ab")
    assert coords.latitude == pytest.approx(37.7749 + (293 % 200 - 100) / 1000)
    assert coords.longitude == pytest.approx(-122.4194 + (293 % 260 - 130) / 1000)


def test_placeholder_coordinates_astral_characters():
    # U+1F69A hashes by its high surrogate 0xD83D; 'a' at index 1 weighs 2
    h = 0xD83D * 1 + 97 * 2
    coords = generate_coordinates_from_label("\U0001F69Aa")
    assert coords.latitude == pytest.approx(37.7749 + (h % 200 - 100) / 1000)
    assert coords.longitude == pytest.approx(-122.4194 + (h % 260 - 130) / 1000)


def test_find_suggestion():
    assert find_suggestion("  union ").id == "loc-union"
    assert find_suggestion("MISSION").id == "loc-mission"
    assert find_suggestion("Atlantis") is None
    assert find_suggestion("   ") is None


def test_planner_starts_with_three_suggestions():
    planner = RoutePlanner()
    assert [s.id for s in planner.stops] == ["loc-warehouse", "loc-embarcadero", "loc-union"]
    assert planner.stops[0].notes == "Load-out hub"


def test_planner_add_stop():
    planner = RoutePlanner()
    suggested = planner.add_stop("coit")
    free_text = planner.add_stop("  42 Nowhere Lane ")

    assert suggested.label == "Drop-off – Coit Tower Overlook"
    assert free_text.label == "42 Nowhere Lane"
    assert free_text.coordinates == generate_coordinates_from_label("42 Nowhere Lane")
    assert suggested.id != free_text.id
    assert len(planner.stops) == 5
    assert planner.add_stop("   ") is None


def test_planner_toggle_and_remove():
    planner = RoutePlanner()
    toggled = planner.toggle_status("loc-union")
    assert toggled.status == StopStatus.COMPLETED
    assert planner.metrics().completed_stops == 1

    planner.toggle_status("loc-union")
    assert planner.metrics().completed_stops == 0

    assert planner.toggle_status("missing") is None
    assert planner.remove_stop("loc-union") is True
    assert planner.remove_stop("loc-union") is False
    assert len(planner.stops) == 2


def test_planner_optimize_and_reset():
    planner = RoutePlanner()
    planner.add_stop("mission")
    planner.optimize()
    assert planner.stops[0].id == "loc-warehouse"

    planner.reset()
    assert [s.id for s in planner.stops] == ["loc-warehouse", "loc-embarcadero", "loc-union"]


def test_planner_share_message():
    planner = RoutePlanner()
    message = planner.share_message()
    assert message.startswith("Route summary\nDistance: ")
    assert "\n\nStops:\n1. Warehouse – 145 Market St\n2. " in message
    assert planner.preview().count("\n") == 2
