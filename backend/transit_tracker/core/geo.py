"""Great-circle distance and travel-time helpers for the route planner."""

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0
DEFAULT_AVERAGE_SPEED_KMH = 35.0

# Placeholder geocoding origin (San Francisco)
_BASE_LAT = 37.7749
_BASE_LON = -122.4194


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


def haversine_distance_km(a: Coordinates, b: Coordinates) -> float:
    """Distance in kilometers between two coordinates."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = math.radians(b.latitude - a.latitude)
    dlon = math.radians(b.longitude - a.longitude)

    h = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2)
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def average_eta_minutes(
    distance_km: float, average_speed_kmh: float = DEFAULT_AVERAGE_SPEED_KMH
) -> float:
    return distance_km / average_speed_kmh * 60


def format_distance(distance_km: float) -> str:
    return f"{distance_km:.1f} km"


def format_eta(minutes: float) -> str:
    """'25 mins' below an hour, '1h 30m' above."""
    if minutes < 60:
        return f"{_round_half_up(minutes)} mins"
    hours = math.floor(minutes / 60)
    mins = _round_half_up(minutes % 60)
    return f"{hours}h {mins}m"


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _leading_code_unit(char: str) -> int:
    # Characters outside the BMP hash by their UTF-16 high surrogate
    code = ord(char)
    if code > 0xFFFF:
        return 0xD800 + ((code - 0x10000) >> 10)
    return code


def generate_coordinates_from_label(label: str) -> Coordinates:
    """Deterministic pseudo-location for a label that matched no suggestion.

    Not a geocoder: the same label always lands on the same point within
    roughly 11 km of the base.
    """
    h = sum(_leading_code_unit(char) * (index + 1) for index, char in enumerate(label))
    lat_offset = ((h % 200) - 100) / 1000
    lon_offset = ((h % 260) - 130) / 1000
    return Coordinates(latitude=_BASE_LAT + lat_offset, longitude=_BASE_LON + lon_offset)
