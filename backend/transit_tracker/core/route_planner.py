"""Planner stop list: route metrics and nearest-neighbor ordering."""

import itertools
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum

from transit_tracker.core.geo import (
    DEFAULT_AVERAGE_SPEED_KMH,
    Coordinates,
    average_eta_minutes,
    format_distance,
    format_eta,
    generate_coordinates_from_label,
    haversine_distance_km,
)
from transit_tracker.core.locations import SUGGESTED_LOCATIONS, find_suggestion

logger = logging.getLogger(__name__)


class StopStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


@dataclass(frozen=True)
class PlannerStop:
    id: str
    label: str
    coordinates: Coordinates
    notes: str | None = None
    status: StopStatus = StopStatus.PENDING


@dataclass(frozen=True)
class RouteLeg:
    stop_id: str  # stop the leg departs from
    distance_km: float
    eta_minutes: float


@dataclass(frozen=True)
class RouteMetrics:
    total_distance_km: float
    total_eta_minutes: float
    completed_stops: int
    pending_stops: int
    legs: list[RouteLeg] = field(default_factory=list)


def compute_route_metrics(
    stops: list[PlannerStop], average_speed_kmh: float = DEFAULT_AVERAGE_SPEED_KMH
) -> RouteMetrics:
    completed = sum(1 for s in stops if s.status == StopStatus.COMPLETED)
    pending = len(stops) - completed

    if len(stops) < 2:
        return RouteMetrics(
            total_distance_km=0.0,
            total_eta_minutes=0.0,
            completed_stops=completed,
            pending_stops=pending,
        )

    legs = []
    for origin, destination in zip(stops, stops[1:]):
        distance = haversine_distance_km(origin.coordinates, destination.coordinates)
        legs.append(RouteLeg(
            stop_id=origin.id,
            distance_km=distance,
            eta_minutes=average_eta_minutes(distance, average_speed_kmh),
        ))

    return RouteMetrics(
        total_distance_km=sum(leg.distance_km for leg in legs),
        total_eta_minutes=sum(leg.eta_minutes for leg in legs),
        completed_stops=completed,
        pending_stops=pending,
        legs=legs,
    )


def optimize_stop_order(stops: list[PlannerStop]) -> list[PlannerStop]:
    """Greedy nearest-neighbor ordering with the first stop pinned.

    Ties go to the candidate earliest in the remaining list.
    """
    if len(stops) <= 2:
        return list(stops)

    origin, *remaining = stops
    ordered = [origin]
    current = origin
    while remaining:
        closest_index = 0
        shortest = float("inf")
        for index, candidate in enumerate(remaining):
            distance = haversine_distance_km(current.coordinates, candidate.coordinates)
            if distance < shortest:
                shortest = distance
                closest_index = index
        current = remaining.pop(closest_index)
        ordered.append(current)
    return ordered


def _initial_stops() -> list[PlannerStop]:
    return [
        PlannerStop(
            id=s.id, label=s.label, coordinates=s.coordinates, notes=s.notes,
        )
        for s in SUGGESTED_LOCATIONS[:3]
    ]


class RoutePlanner:
    """Mutable ordered stop list behind the planner endpoints."""

    def __init__(self, average_speed_kmh: float = DEFAULT_AVERAGE_SPEED_KMH) -> None:
        self.average_speed_kmh = average_speed_kmh
        self.stops: list[PlannerStop] = _initial_stops()
        self._id_counter = itertools.count()

    def _new_stop_id(self) -> str:
        return f"stop-{time.time_ns() // 1_000_000}-{next(self._id_counter)}"

    def metrics(self) -> RouteMetrics:
        return compute_route_metrics(self.stops, self.average_speed_kmh)

    def add_stop(self, text: str) -> PlannerStop | None:
        """Append a stop from free text; suggestions win over placeholder geocoding."""
        trimmed = text.strip()
        if not trimmed:
            return None

        match = find_suggestion(trimmed)
        if match:
            stop = PlannerStop(
                id=self._new_stop_id(),
                label=match.label,
                coordinates=match.coordinates,
                notes=match.notes,
            )
        else:
            stop = PlannerStop(
                id=self._new_stop_id(),
                label=trimmed,
                coordinates=generate_coordinates_from_label(trimmed),
            )
        self.stops.append(stop)
        logger.info("Added stop %s (%s)", stop.id, stop.label)
        return stop

    def remove_stop(self, stop_id: str) -> bool:
        before = len(self.stops)
        self.stops = [s for s in self.stops if s.id != stop_id]
        return len(self.stops) != before

    def toggle_status(self, stop_id: str) -> PlannerStop | None:
        for index, stop in enumerate(self.stops):
            if stop.id == stop_id:
                status = (
                    StopStatus.PENDING if stop.status == StopStatus.COMPLETED
                    else StopStatus.COMPLETED
                )
                self.stops[index] = replace(stop, status=status)
                return self.stops[index]
        return None

    def optimize(self) -> list[PlannerStop]:
        self.stops = optimize_stop_order(self.stops)
        return self.stops

    def reset(self) -> list[PlannerStop]:
        self.stops = _initial_stops()
        return self.stops

    def preview(self) -> str:
        return "\n".join(f"{i + 1}. {stop.label}" for i, stop in enumerate(self.stops))

    def share_message(self) -> str:
        metrics = self.metrics()
        return (
            "Route summary\n"
            f"Distance: {format_distance(metrics.total_distance_km)}\n"
            f"ETA: {format_eta(metrics.total_eta_minutes)}\n\n"
            f"Stops:\n{self.preview()}"
        )
