"""Bus progress REST API endpoints."""

from fastapi import APIRouter, HTTPException

from transit_tracker.schemas.bus import (
    BusSnapshot,
    DirectionInfo,
    DirectionUpdate,
    StopTimelineEntry,
)

router = APIRouter(prefix="/api/buses", tags=["buses"])

# Will be set by main.py
tracker = None


def _require_tracker():
    if tracker is None:
        raise HTTPException(status_code=503, detail="Tracker not initialized")
    return tracker


@router.get("", response_model=BusSnapshot)
async def get_buses():
    """Current smoothed bus positions for the tracked route."""
    return _require_tracker().snapshot()


@router.get("/stops", response_model=list[StopTimelineEntry])
async def get_stop_timeline():
    """Stops in route order with live ETAs and buses present."""
    return _require_tracker().stop_timeline()


@router.get("/direction", response_model=DirectionInfo)
async def get_direction():
    return _require_tracker().direction_info()


@router.put("/direction", response_model=DirectionInfo)
async def set_direction(body: DirectionUpdate):
    """Switch the tracked direction and refresh immediately."""
    t = _require_tracker()
    try:
        await t.set_direction(body.direction)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    await t.poll_buses()
    return t.direction_info()
