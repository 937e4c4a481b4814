"""Smoothing of per-bus progress between two stops.

ETA-derived progress readings are noisy: a bus can appear to jump back
within its segment, or even to an earlier segment, from one poll to the
next. The smoother turns each reading into a stable position:

- a bus that advances to a later stop snaps to the fresh reading,
- a bus that appears to move back keeps its previous position,
- forward motion within a segment eases toward the reading over a window.

The function is pure. Callers persist ``SmoothResult.state`` per bus and
pass it back on the next poll.
"""

import datetime
import math
from dataclasses import dataclass, replace

# Full convergence after this long without a regression
SMOOTH_WINDOW = datetime.timedelta(seconds=15)


@dataclass(frozen=True)
class BusProgressState:
    progress: float
    next_stop_seq: int
    next_stop_id: str
    prev_stop_seq: int | None
    prev_stop_id: str | None
    timestamp: datetime.datetime


@dataclass(frozen=True)
class SmoothResult:
    progress: float
    next_stop_seq: int
    next_stop_id: str
    prev_stop_seq: int | None
    prev_stop_id: str | None
    state: BusProgressState


def clamp_progress(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


def _result(state: BusProgressState) -> SmoothResult:
    return SmoothResult(
        progress=state.progress,
        next_stop_seq=state.next_stop_seq,
        next_stop_id=state.next_stop_id,
        prev_stop_seq=state.prev_stop_seq,
        prev_stop_id=state.prev_stop_id,
        state=state,
    )


def smooth_bus_progress(
    raw_progress: float,
    next_stop_seq: int,
    next_stop_id: str,
    prev_stop_seq: int | None,
    prev_stop_id: str | None,
    previous_state: BusProgressState | None,
    now: datetime.datetime,
    window: datetime.timedelta = SMOOTH_WINDOW,
) -> SmoothResult:
    """Compute the displayed progress for one bus on one poll."""
    clamped = clamp_progress(raw_progress)

    if not isinstance(previous_state, BusProgressState):
        return _result(BusProgressState(
            progress=clamped,
            next_stop_seq=next_stop_seq,
            next_stop_id=next_stop_id,
            prev_stop_seq=prev_stop_seq,
            prev_stop_id=prev_stop_id,
            timestamp=now,
        ))

    # Bus appears to have gone back along the route: ignore the reading
    if next_stop_seq < previous_state.next_stop_seq:
        return _result(replace(previous_state, timestamp=now))

    # New segment (advanced, or the feed reset tracking): trust it as-is
    if next_stop_seq != previous_state.next_stop_seq:
        return _result(BusProgressState(
            progress=clamped,
            next_stop_seq=next_stop_seq,
            next_stop_id=next_stop_id,
            prev_stop_seq=prev_stop_seq,
            prev_stop_id=prev_stop_id,
            timestamp=now,
        ))

    refreshed_prev_seq = prev_stop_seq if prev_stop_seq is not None else previous_state.prev_stop_seq
    refreshed_prev_id = prev_stop_id if prev_stop_id is not None else previous_state.prev_stop_id

    delta = clamped - previous_state.progress
    if delta <= 0:
        return _result(BusProgressState(
            progress=previous_state.progress,
            next_stop_seq=previous_state.next_stop_seq,
            next_stop_id=previous_state.next_stop_id,
            prev_stop_seq=refreshed_prev_seq,
            prev_stop_id=refreshed_prev_id,
            timestamp=now,
        ))

    elapsed = max(0.0, (now - previous_state.timestamp).total_seconds())
    alpha = min(1.0, elapsed / window.total_seconds())
    if alpha >= 1.0:
        eased = clamped
    else:
        eased = clamp_progress(previous_state.progress + delta * alpha)

    return _result(BusProgressState(
        progress=eased,
        next_stop_seq=next_stop_seq,
        next_stop_id=next_stop_id,
        prev_stop_seq=refreshed_prev_seq,
        prev_stop_id=refreshed_prev_id,
        timestamp=now,
    ))
