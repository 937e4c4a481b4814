"""Derive raw per-bus progress from per-stop ETA listings.

The feed lists, for each stop, the ETAs of the next few buses keyed by an
ETA sequence slot. Collecting the entries that share a slot across all stops
gives that bus's timeline: which stops it will reach and when. The bus sits
between the last stop whose ETA has passed and the first one still ahead.
"""

import datetime
import logging
from dataclasses import dataclass

from transit_tracker.core.bus_progress import clamp_progress
from transit_tracker.core.citybus_client import StopWithEta

logger = logging.getLogger(__name__)

# Approach window for a bus that has not reached its first listed stop
VIRTUAL_DEPARTURE = datetime.timedelta(minutes=30)


@dataclass(frozen=True)
class TimelinePoint:
    stop_id: str
    seq: int
    eta: datetime.datetime


@dataclass(frozen=True)
class RawBusProgress:
    bus_id: int
    progress: float
    next_point: TimelinePoint
    prev_point: TimelinePoint | None


def parse_eta(raw: str | None) -> datetime.datetime | None:
    """Parse an ISO-8601 ETA; naive values are taken as UTC."""
    if not raw:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(raw)
    except (ValueError, TypeError):
        logger.debug("Skipping unparseable ETA %r", raw)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def build_bus_timelines(stops: list[StopWithEta]) -> dict[int, list[TimelinePoint]]:
    """Group ETA entries by bus slot, each timeline sorted by ETA."""
    per_bus: dict[int, list[TimelinePoint]] = {}
    for stop in stops:
        for entry in stop.etas:
            eta = parse_eta(entry.eta)
            if eta is None:
                continue
            per_bus.setdefault(entry.eta_seq, []).append(
                TimelinePoint(stop_id=stop.stop_id, seq=stop.seq, eta=eta)
            )

    for timeline in per_bus.values():
        timeline.sort(key=lambda p: p.eta)
    return per_bus


def derive_raw_progress(
    bus_id: int,
    timeline: list[TimelinePoint],
    now: datetime.datetime,
    virtual_departure: datetime.timedelta = VIRTUAL_DEPARTURE,
) -> RawBusProgress | None:
    """Locate a bus on its (ETA-sorted) timeline at ``now``.

    Returns None for an empty timeline.
    """
    if not timeline:
        return None

    next_index = next(
        (i for i, point in enumerate(timeline) if point.eta >= now),
        len(timeline) - 1,
    )
    next_point = timeline[next_index]
    prev_point = timeline[next_index - 1] if next_index > 0 else None

    if prev_point is not None:
        span = (next_point.eta - prev_point.eta).total_seconds()
        progress = 0.0
        if span > 0:
            elapsed = (now - prev_point.eta).total_seconds()
            progress = clamp_progress(elapsed / span)
    else:
        # Not at its first stop yet: measure the approach from a virtual departure
        departure = next_point.eta - virtual_departure
        elapsed = (now - departure).total_seconds()
        progress = clamp_progress(elapsed / virtual_departure.total_seconds())

    return RawBusProgress(
        bus_id=bus_id,
        progress=progress,
        next_point=next_point,
        prev_point=prev_point,
    )
