"""Haversine distance and radius containment around the school."""

import math
from dataclasses import dataclass
from numbers import Real

from app.core.exceptions import InvalidCoordinate

EARTH_RADIUS_METERS = 6371000.0


def _check_number(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidCoordinate(f"{name} must be a number")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidCoordinate(f"{name} must be finite")
    return value


def validate_coordinate(latitude, longitude) -> tuple:
    """Return (lat, lon) as floats or raise InvalidCoordinate."""
    lat = _check_number("latitude", latitude)
    lon = _check_number("longitude", longitude)
    if abs(lat) > 90:
        raise InvalidCoordinate("latitude must be between -90 and 90")
    if abs(lon) > 180:
        raise InvalidCoordinate("longitude must be between -180 and 180")
    return lat, lon


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        lat, lon = validate_coordinate(self.latitude, self.longitude)
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", lon)


def distance(lat1, lon1, lat2, lon2) -> float:
    """Great-circle distance in meters between two lat/lon pairs."""
    lat1, lon1 = validate_coordinate(lat1, lon1)
    lat2, lon2 = validate_coordinate(lat2, lon2)

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2.0) ** 2
    # a can drift just past 1.0 for antipodal points
    a = min(1.0, a)
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_METERS * c


def contains(point: Coordinate, center: Coordinate, radius_meters: float) -> bool:
    return distance(point.latitude, point.longitude, center.latitude, center.longitude) <= radius_meters


@dataclass(frozen=True)
class FenceCheck:
    within: bool
    distance: float
    radius: float


class GeoFence:
    """A circular fence of radius_meters around center."""

    def __init__(self, center: Coordinate, radius_meters: float) -> None:
        if radius_meters < 0:
            raise ValueError("radius_meters must not be negative")
        self.center = center
        self.radius_meters = float(radius_meters)

    def check(self, point: Coordinate) -> FenceCheck:
        d = distance(point.latitude, point.longitude, self.center.latitude, self.center.longitude)
        return FenceCheck(within=d <= self.radius_meters, distance=d, radius=self.radius_meters)

    def maps_url(self) -> str:
        return f"https://www.google.com/maps?q={self.center.latitude},{self.center.longitude}"
