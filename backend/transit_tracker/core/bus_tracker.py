"""Main orchestrator: fetches ETAs, derives bus positions, publishes updates."""

import datetime
import logging
import math
from collections import deque

from transit_tracker.config import settings
from transit_tracker.core.broadcaster import Broadcaster
from transit_tracker.core.bus_progress import smooth_bus_progress
from transit_tracker.core.bus_timeline import (
    build_bus_timelines,
    derive_raw_progress,
    parse_eta,
)
from transit_tracker.core.citybus_client import DIRECTIONS, DirectionMeta, StopWithEta
from transit_tracker.core.progress_registry import ProgressRegistry
from transit_tracker.schemas.bus import (
    BusMarker,
    BusSnapshot,
    BusUpdate,
    DirectionInfo,
    EtaInfo,
    StopTimelineEntry,
)

logger = logging.getLogger(__name__)


class BusTracker:
    """Orchestrates the bus progress pipeline for one route."""

    def __init__(
        self,
        client,
        broadcaster: Broadcaster | None,
        direction: str | None = None,
    ) -> None:
        self.client = client
        self.broadcaster = broadcaster
        self.direction = direction or settings.route_direction
        self.window = datetime.timedelta(seconds=settings.smooth_window_seconds)
        self.virtual_departure = datetime.timedelta(minutes=settings.virtual_departure_minutes)
        self.assign_threshold = settings.bus_assign_threshold

        # Smoothing state per bus (ETA sequence slot), across polls
        self.registry = ProgressRegistry()

        # Latest poll results
        self.stops: list[StopWithEta] = []
        self.markers: list[BusMarker] = []
        self.presence: dict[str, int] = {}
        self.highlight_seq: int | None = None
        self.last_updated: datetime.datetime | None = None

        self.direction_meta: dict[str, DirectionMeta] = {}

        # Diagnostics: readings the smoother overrode
        self._progress_events: deque[dict] = deque(maxlen=500)

    async def load_route_info(self) -> None:
        meta = await self.client.fetch_route_info()
        if meta:
            self.direction_meta = meta
        else:
            logger.warning("Route description unavailable")

    def direction_info(self) -> DirectionInfo:
        meta = self.direction_meta.get(self.direction)
        return DirectionInfo(
            direction=self.direction,
            origin=meta.origin if meta else None,
            destination=meta.destination if meta else None,
        )

    async def set_direction(self, direction: str) -> None:
        """Switch direction and publish the cleared view.

        Smoothing state never carries across directions, and subscribers
        must not keep showing the old direction's buses while the first
        poll for the new one is pending or failing.
        """
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown direction: {direction}")
        if direction == self.direction:
            return
        self.direction = direction
        self.registry.clear()
        self.stops = []
        self.markers = []
        self.presence = {}
        self.highlight_seq = None
        self.last_updated = None
        logger.info("Tracking direction switched to %s", direction)

        if self.broadcaster:
            await self.broadcaster.publish(self.snapshot(update=True).model_dump(mode="json"))

    async def poll_buses(self) -> None:
        """Single poll cycle: fetch ETAs, update bus positions, publish."""
        try:
            direction = self.direction
            stops = await self.client.fetch_stops_with_eta(direction)
            if stops is None:
                logger.warning("ETA feed unavailable; keeping previous bus state")
                return
            if direction != self.direction:
                logger.info("Discarding poll for %s after direction change", direction)
                return

            now = datetime.datetime.now(datetime.timezone.utc)
            self.update(stops, now)

            if self.broadcaster:
                payload = self.snapshot(update=True)
                await self.broadcaster.publish(payload.model_dump(mode="json"))
        except Exception:
            logger.exception("Error in bus poll cycle")

    def update(self, stops: list[StopWithEta], now: datetime.datetime) -> list[BusMarker]:
        """Process one poll's stop listings into bus markers."""
        timelines = build_bus_timelines(stops)

        markers: list[BusMarker] = []
        presence: dict[str, int] = {}
        highlight_seq: int | None = None
        earliest_eta: datetime.datetime | None = None
        seen: set[int] = set()

        for bus_id, timeline in timelines.items():
            raw = derive_raw_progress(bus_id, timeline, now, self.virtual_departure)
            if raw is None:
                continue

            previous = self.registry.get(bus_id)
            if previous is not None:
                self._check_reading(bus_id, raw.next_point.seq, raw.progress, previous, now)

            result = smooth_bus_progress(
                raw_progress=raw.progress,
                next_stop_seq=raw.next_point.seq,
                next_stop_id=raw.next_point.stop_id,
                prev_stop_seq=raw.prev_point.seq if raw.prev_point else None,
                prev_stop_id=raw.prev_point.stop_id if raw.prev_point else None,
                previous_state=previous,
                now=now,
                window=self.window,
            )
            self.registry.put(bus_id, result.state)
            seen.add(bus_id)

            # Early in a segment the bus is shown at the stop it just left
            assign_prev = (
                result.prev_stop_seq is not None
                and bool(result.prev_stop_id)
                and result.progress < self.assign_threshold
            )
            presence_seq = result.prev_stop_seq if assign_prev else result.next_stop_seq
            presence_id = result.prev_stop_id if assign_prev else result.next_stop_id
            presence[presence_id] = presence.get(presence_id, 0) + 1

            follows_feed = (
                result.next_stop_seq == raw.next_point.seq
                and result.next_stop_id == raw.next_point.stop_id
            )
            if not assign_prev and follows_feed:
                eta = raw.next_point.eta
                if eta >= now and (earliest_eta is None or eta < earliest_eta):
                    earliest_eta = eta
                    highlight_seq = raw.next_point.seq
                elif highlight_seq is None:
                    highlight_seq = raw.next_point.seq
            elif highlight_seq is None:
                highlight_seq = presence_seq

            markers.append(BusMarker(
                id=bus_id,
                next_stop_seq=result.next_stop_seq,
                next_stop_id=result.next_stop_id,
                prev_stop_seq=result.prev_stop_seq,
                prev_stop_id=result.prev_stop_id,
                progress=result.progress,
            ))

        self.registry.evict_missing(seen)

        self.stops = stops
        self.markers = markers
        self.presence = presence
        self.highlight_seq = highlight_seq
        self.last_updated = now

        logger.debug(
            "Bus markers: %s",
            [(m.id, m.prev_stop_seq, m.next_stop_seq, round(m.progress, 2)) for m in markers],
        )
        return markers

    def _check_reading(self, bus_id, next_stop_seq, raw_progress, previous, now) -> None:
        if now < previous.timestamp:
            logger.warning(
                "Bus %s: poll time %s earlier than last update %s",
                bus_id, now.isoformat(), previous.timestamp.isoformat(),
            )
            self._log_progress_event("clock_regression", {
                "bus_id": bus_id,
                "previous_timestamp": previous.timestamp.isoformat(),
            })
        if next_stop_seq < previous.next_stop_seq:
            logger.info(
                "Bus %s: next stop seq %d -> %d ignored",
                bus_id, previous.next_stop_seq, next_stop_seq,
            )
            self._log_progress_event("seq_regression", {
                "bus_id": bus_id,
                "prev_next_stop_seq": previous.next_stop_seq,
                "new_next_stop_seq": next_stop_seq,
            })
        elif next_stop_seq == previous.next_stop_seq and raw_progress < previous.progress:
            self._log_progress_event("progress_hold", {
                "bus_id": bus_id,
                "next_stop_seq": next_stop_seq,
                "prev_progress": round(previous.progress, 6),
                "raw_progress": round(raw_progress, 6),
            })

    def snapshot(self, update: bool = False) -> BusSnapshot:
        model = BusUpdate if update else BusSnapshot
        return model(
            route=self.client.route_number,
            direction=self.direction,
            last_updated=self.last_updated,
            highlight_seq=self.highlight_seq,
            presence=dict(self.presence),
            buses=list(self.markers),
        )

    def stop_timeline(self, now: datetime.datetime | None = None) -> list[StopTimelineEntry]:
        """Stops in route order with their first live ETA and buses present."""
        now = now or datetime.datetime.now(datetime.timezone.utc)
        entries = []
        for stop in self.stops:
            etas = [
                EtaInfo(
                    eta=parse_eta(e.eta),
                    eta_seq=e.eta_seq,
                    remark=e.remark,
                    destination=e.destination,
                )
                for e in stop.etas
            ]
            primary = next((e.eta for e in etas if e.eta), None)
            minutes_until = None
            if primary:
                minutes_until = math.floor((primary - now).total_seconds() / 60 + 0.5)
            entries.append(StopTimelineEntry(
                stop_id=stop.stop_id,
                seq=stop.seq,
                name_en=stop.name_en,
                name_tc=stop.name_tc,
                bus_count=self.presence.get(stop.stop_id, 0),
                primary_eta=primary,
                minutes_until=minutes_until,
                etas=etas,
            ))
        return entries

    def _log_progress_event(self, kind: str, payload: dict) -> None:
        event = {
            "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "kind": kind,
            **payload,
        }
        self._progress_events.append(event)

    def get_progress_diagnostics(self, limit: int = 100) -> dict:
        events = list(self._progress_events)[-max(1, min(limit, 500)):]
        counts: dict[str, int] = {}
        for e in self._progress_events:
            k = e.get("kind", "unknown")
            counts[k] = counts.get(k, 0) + 1
        return {
            "events_total": len(self._progress_events),
            "counts": counts,
            "latest": events,
        }

    def get_diagnostics(self) -> dict:
        """Current per-bus smoothing state and feed coverage."""
        states = self.registry.snapshot()
        return {
            "route": self.client.route_number,
            "direction": self.direction,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "total_stops": len(self.stops),
            "stops_with_eta": sum(1 for s in self.stops if any(e.eta for e in s.etas)),
            "tracked_buses": len(states),
            "buses": [
                {
                    "bus_id": bus_id,
                    "progress": round(state.progress, 4),
                    "next_stop_seq": state.next_stop_seq,
                    "next_stop_id": state.next_stop_id,
                    "prev_stop_seq": state.prev_stop_seq,
                    "prev_stop_id": state.prev_stop_id,
                    "timestamp": state.timestamp.isoformat(),
                }
                for bus_id, state in sorted(states.items())
            ],
        }
