"""Route planner REST API endpoints."""

from fastapi import APIRouter, HTTPException

from transit_tracker.config import settings
from transit_tracker.core.geo import Coordinates, format_distance, format_eta
from transit_tracker.core.route_planner import (
    PlannerStop,
    RouteMetrics,
    compute_route_metrics,
    optimize_stop_order,
)
from transit_tracker.schemas.planner import (
    CoordinatesSchema,
    NewStopRequest,
    PlannerState,
    PlannerStopSchema,
    PlanSummary,
    RouteLegSchema,
    RouteMetricsSchema,
    StopListRequest,
)

router = APIRouter(prefix="/api/planner", tags=["planner"])

# Will be set by main.py
planner = None


def _require_planner():
    if planner is None:
        raise HTTPException(status_code=503, detail="Planner not initialized")
    return planner


def _stop_to_schema(stop: PlannerStop) -> PlannerStopSchema:
    return PlannerStopSchema(
        id=stop.id,
        label=stop.label,
        coordinates=CoordinatesSchema(
            latitude=stop.coordinates.latitude, longitude=stop.coordinates.longitude,
        ),
        notes=stop.notes,
        status=stop.status,
    )


def _stop_from_schema(stop: PlannerStopSchema) -> PlannerStop:
    return PlannerStop(
        id=stop.id,
        label=stop.label,
        coordinates=Coordinates(
            latitude=stop.coordinates.latitude, longitude=stop.coordinates.longitude,
        ),
        notes=stop.notes,
        status=stop.status,
    )


def _metrics_to_schema(metrics: RouteMetrics) -> RouteMetricsSchema:
    return RouteMetricsSchema(
        total_distance_km=metrics.total_distance_km,
        total_eta_minutes=metrics.total_eta_minutes,
        completed_stops=metrics.completed_stops,
        pending_stops=metrics.pending_stops,
        legs=[
            RouteLegSchema(
                stop_id=leg.stop_id, distance_km=leg.distance_km, eta_minutes=leg.eta_minutes,
            )
            for leg in metrics.legs
        ],
        distance_label=format_distance(metrics.total_distance_km),
        eta_label=format_eta(metrics.total_eta_minutes),
    )


def _state() -> PlannerState:
    p = _require_planner()
    return PlannerState(
        stops=[_stop_to_schema(s) for s in p.stops],
        metrics=_metrics_to_schema(p.metrics()),
    )


@router.get("", response_model=PlannerState)
async def get_plan():
    """Current stop list with route metrics."""
    return _state()


@router.post("/stops", response_model=PlannerState)
async def add_stop(body: NewStopRequest):
    """Append a stop from a suggestion name or free-text address."""
    if _require_planner().add_stop(body.text) is None:
        raise HTTPException(status_code=422, detail="Stop text is empty")
    return _state()


@router.delete("/stops/{stop_id}", response_model=PlannerState)
async def remove_stop(stop_id: str):
    if not _require_planner().remove_stop(stop_id):
        raise HTTPException(status_code=404, detail="Stop not found")
    return _state()


@router.post("/stops/{stop_id}/toggle", response_model=PlannerState)
async def toggle_stop(stop_id: str):
    """Flip a stop between pending and completed."""
    if _require_planner().toggle_status(stop_id) is None:
        raise HTTPException(status_code=404, detail="Stop not found")
    return _state()


@router.post("/optimize", response_model=PlannerState)
async def optimize_plan():
    _require_planner().optimize()
    return _state()


@router.post("/reset", response_model=PlannerState)
async def reset_plan():
    _require_planner().reset()
    return _state()


@router.get("/summary", response_model=PlanSummary)
async def get_summary():
    p = _require_planner()
    return PlanSummary(preview=p.preview(), message=p.share_message())


@router.post("/metrics", response_model=RouteMetricsSchema)
async def metrics_for_stops(body: StopListRequest):
    """Metrics for an arbitrary ordered stop list (stateless)."""
    stops = [_stop_from_schema(s) for s in body.stops]
    return _metrics_to_schema(compute_route_metrics(stops, _average_speed()))


@router.post("/metrics/optimize", response_model=list[PlannerStopSchema])
async def optimize_stops(body: StopListRequest):
    """Nearest-neighbor order for an arbitrary stop list (stateless)."""
    stops = [_stop_from_schema(s) for s in body.stops]
    return [_stop_to_schema(s) for s in optimize_stop_order(stops)]


def _average_speed() -> float:
    if planner is not None:
        return planner.average_speed_kmh
    return settings.average_speed_kmh
