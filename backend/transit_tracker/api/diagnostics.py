"""Diagnostics API for inspecting the bus progress pipeline."""

from fastapi import APIRouter

router = APIRouter(prefix="/api/diagnostics", tags=["diagnostics"])

# Will be set by main.py
tracker = None


@router.get("")
async def get_diagnostics():
    """Per-bus smoothing state and feed coverage."""
    if tracker is None:
        return {"error": "Tracker not initialized"}
    return tracker.get_diagnostics()


@router.get("/progress")
async def get_progress_diagnostics(limit: int = 100):
    """Recent readings the smoother overrode (seq regressions, held progress)."""
    if tracker is None:
        return {"error": "Tracker not initialized"}
    return tracker.get_progress_diagnostics(limit=limit)
