"""Suggested planner locations."""

from dataclasses import dataclass

from transit_tracker.core.geo import Coordinates


@dataclass(frozen=True)
class LocationSuggestion:
    id: str
    label: str
    coordinates: Coordinates
    notes: str | None = None


SUGGESTED_LOCATIONS: list[LocationSuggestion] = [
    LocationSuggestion(
        id="loc-warehouse",
        label="Warehouse – 145 Market St",
        coordinates=Coordinates(latitude=37.7936, longitude=-122.3965),
        notes="Load-out hub",
    ),
    LocationSuggestion(
        id="loc-embarcadero",
        label="Drop-off – 500 Embarcadero",
        coordinates=Coordinates(latitude=37.8011, longitude=-122.398),
    ),
    LocationSuggestion(
        id="loc-union",
        label="Drop-off – 2000 Union St",
        coordinates=Coordinates(latitude=37.7975, longitude=-122.4339),
    ),
    LocationSuggestion(
        id="loc-mission",
        label="Pickup – 24th & Mission",
        coordinates=Coordinates(latitude=37.7521, longitude=-122.4186),
    ),
    LocationSuggestion(
        id="loc-downtown",
        label="Drop-off – 1 Montgomery St",
        coordinates=Coordinates(latitude=37.7897, longitude=-122.4011),
    ),
    LocationSuggestion(
        id="loc-coit",
        label="Drop-off – Coit Tower Overlook",
        coordinates=Coordinates(latitude=37.8024, longitude=-122.4058),
    ),
]


def find_suggestion(query: str) -> LocationSuggestion | None:
    """First suggestion whose label contains ``query`` (case-insensitive)."""
    normalised = query.strip().lower()
    if not normalised:
        return None
    for location in SUGGESTED_LOCATIONS:
        if normalised in location.label.lower():
            return location
    return None
