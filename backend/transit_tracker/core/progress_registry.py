"""Per-bus smoothing state carried between poll cycles."""

import logging
from collections.abc import Iterable, Iterator

from transit_tracker.core.bus_progress import BusProgressState

logger = logging.getLogger(__name__)


class ProgressRegistry:
    """Mapping of bus id (ETA sequence slot) -> last smoothing state.

    Owned by the tracker. One poll cycle reads and writes each entry once,
    then evicts the buses that were not in that poll.
    """

    def __init__(self) -> None:
        self._states: dict[int, BusProgressState] = {}

    def get(self, bus_id: int) -> BusProgressState | None:
        return self._states.get(bus_id)

    def put(self, bus_id: int, state: BusProgressState) -> None:
        self._states[bus_id] = state

    def evict_missing(self, seen_ids: Iterable[int]) -> list[int]:
        """Drop every bus not in ``seen_ids``; return the evicted ids."""
        seen = set(seen_ids)
        stale = [bus_id for bus_id in self._states if bus_id not in seen]
        for bus_id in stale:
            del self._states[bus_id]
        if stale:
            logger.debug("Evicted %d stale bus states: %s", len(stale), stale)
        return stale

    def clear(self) -> None:
        self._states.clear()

    def snapshot(self) -> dict[int, BusProgressState]:
        return dict(self._states)

    def __contains__(self, bus_id: object) -> bool:
        return bus_id in self._states

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[int]:
        return iter(self._states)
