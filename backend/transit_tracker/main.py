"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from transit_tracker.api import buses, diagnostics, planner, ws
from transit_tracker.config import settings
from transit_tracker.core.broadcaster import Broadcaster
from transit_tracker.core.bus_tracker import BusTracker
from transit_tracker.core.citybus_client import CitybusClient, MockCitybusClient
from transit_tracker.core.route_planner import RoutePlanner
from transit_tracker.core.scheduler import create_scheduler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    if settings.use_mock_data:
        client = MockCitybusClient()
        logger.info("Using mock ETA data")
    else:
        client = CitybusClient()

    broadcaster = Broadcaster()
    await broadcaster.connect()

    tracker = BusTracker(client, broadcaster)
    route_planner = RoutePlanner(average_speed_kmh=settings.average_speed_kmh)

    # Wire up API modules
    ws.broadcaster = broadcaster
    ws.tracker = tracker
    buses.tracker = tracker
    diagnostics.tracker = tracker
    planner.planner = route_planner

    try:
        await tracker.load_route_info()
    except Exception:
        logger.exception("Failed to load route description - will retry")

    # First poll now rather than one interval after startup
    await tracker.poll_buses()

    scheduler = create_scheduler(tracker)
    scheduler.start()
    logger.info(
        "Transit tracker started - route %s %s, polling every %ds",
        settings.route_number, tracker.direction, settings.poll_interval_seconds,
    )

    yield

    scheduler.shutdown(wait=False)
    await client.close()
    await broadcaster.close()
    logger.info("Transit tracker shut down")


app = FastAPI(
    title="Transit Tracker",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(buses.router)
app.include_router(planner.router)
app.include_router(diagnostics.router)
app.include_router(ws.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
