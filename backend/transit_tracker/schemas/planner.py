from pydantic import BaseModel, Field

from transit_tracker.core.route_planner import StopStatus


class CoordinatesSchema(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class PlannerStopSchema(BaseModel):
    id: str
    label: str
    coordinates: CoordinatesSchema
    notes: str | None = None
    status: StopStatus = StopStatus.PENDING


class NewStopRequest(BaseModel):
    text: str = Field(min_length=1)


class RouteLegSchema(BaseModel):
    stop_id: str
    distance_km: float
    eta_minutes: float


class RouteMetricsSchema(BaseModel):
    total_distance_km: float
    total_eta_minutes: float
    completed_stops: int
    pending_stops: int
    legs: list[RouteLegSchema] = []
    distance_label: str
    eta_label: str


class PlannerState(BaseModel):
    stops: list[PlannerStopSchema]
    metrics: RouteMetricsSchema


class StopListRequest(BaseModel):
    stops: list[PlannerStopSchema]


class PlanSummary(BaseModel):
    preview: str
    message: str
