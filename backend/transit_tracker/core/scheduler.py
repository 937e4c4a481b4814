"""APScheduler setup for periodic tasks."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


def create_scheduler(tracker) -> AsyncIOScheduler:
    """Create the scheduler with the ETA polling job."""
    from transit_tracker.config import settings

    scheduler = AsyncIOScheduler()

    # One cycle at a time: registry updates must not interleave
    scheduler.add_job(
        tracker.poll_buses,
        "interval",
        seconds=settings.poll_interval_seconds,
        id="poll_buses",
        name="Poll Citybus ETAs and update bus progress",
        max_instances=1,
        coalesce=True,
    )

    # Route origin/destination labels change rarely
    scheduler.add_job(
        tracker.load_route_info,
        "interval",
        hours=6,
        id="refresh_route_info",
        name="Refresh route description",
        max_instances=1,
    )

    logger.debug("Scheduler configured: poll every %ds", settings.poll_interval_seconds)
    return scheduler
