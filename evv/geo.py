"""
Great-circle distance and GPS reading helpers for geofence checks.

All distances in the EVV subsystem are in miles.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from .exceptions import InvalidCoordinate

EARTH_RADIUS_MILES = 3959.0


def _as_float(value):
    if isinstance(value, bool) or value is None:
        raise TypeError(value)
    if isinstance(value, (str, Decimal)):
        try:
            value = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(value)
    return float(value)


def validate_coordinates(latitude, longitude):
    """Return (lat, lon) as floats or raise InvalidCoordinate."""
    try:
        lat = _as_float(latitude)
        lon = _as_float(longitude)
    except (TypeError, ValueError):
        raise InvalidCoordinate(latitude, longitude)

    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidCoordinate(latitude, longitude)
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinate(latitude, longitude, f"Latitude {latitude} is outside [-90, 90]")
    if not -180.0 <= lon <= 180.0:
        raise InvalidCoordinate(latitude, longitude, f"Longitude {longitude} is outside [-180, 180]")
    return lat, lon


def haversine_miles(lat1, lon1, lat2, lon2):
    lat1, lon1 = validate_coordinates(lat1, lon1)
    lat2, lon2 = validate_coordinates(lat2, lon2)

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    # float error can push a slightly past 1 near antipodal points
    a = min(1.0, a)
    return 2 * EARTH_RADIUS_MILES * math.atan2(math.sqrt(a), math.sqrt(1 - a))


@dataclass(frozen=True)
class GeofenceReading:
    """A device GPS fix attached to a clock-in or clock-out event."""

    latitude: float
    longitude: float
    accuracy: Optional[float] = None  # meters
    measured_at: Optional[datetime] = None

    def __post_init__(self):
        lat, lon = validate_coordinates(self.latitude, self.longitude)
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", lon)
        if self.accuracy is not None:
            try:
                accuracy = float(self.accuracy)
            except (TypeError, ValueError):
                raise InvalidCoordinate(self.latitude, self.longitude, f"Invalid accuracy {self.accuracy!r}")
            if not math.isfinite(accuracy) or accuracy < 0:
                raise InvalidCoordinate(self.latitude, self.longitude, f"Invalid accuracy {self.accuracy!r}")
            object.__setattr__(self, "accuracy", accuracy)

    @classmethod
    def from_mapping(cls, data, measured_at=None):
        """Build a reading from a device payload ``{latitude, longitude, accuracy}``."""
        try:
            latitude = data["latitude"]
            longitude = data["longitude"]
        except (KeyError, TypeError):
            raise InvalidCoordinate(None, None, "Reading must include latitude and longitude")
        return cls(
            latitude=latitude,
            longitude=longitude,
            accuracy=data.get("accuracy"),
            measured_at=data.get("measured_at") or measured_at,
        )

    def distance_to(self, latitude, longitude):
        return haversine_miles(self.latitude, self.longitude, latitude, longitude)
