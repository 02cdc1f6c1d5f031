import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..models import EVVStatus, GeofenceStatus
from ..policy import EVVPolicy

logger = logging.getLogger(__name__)

LOCATION_MISSING_EXCEPTION = "Client service location unavailable; geofence not evaluated"
FALLBACK_LOCATION_EXCEPTION = "Geofence evaluated against fallback location, not the client's address"


@dataclass(frozen=True)
class GeofenceDecision:
    geofence_status: str
    evv_status: str
    accepted: bool
    distance_miles: Optional[float] = None
    radius_miles: Optional[float] = None
    forced: bool = False
    exceptions: List[str] = field(default_factory=list)

    @property
    def requires_override(self):
        return not self.accepted and self.geofence_status == GeofenceStatus.OUT_OF_RANGE

    def as_dict(self):
        return {
            'geofence_status': self.geofence_status,
            'evv_status': self.evv_status,
            'accepted': self.accepted,
            'requires_override': self.requires_override,
            'distance_miles': round(self.distance_miles, 3) if self.distance_miles is not None else None,
            'radius_miles': self.radius_miles,
            'forced': self.forced,
            'exceptions': list(self.exceptions),
        }


class EVVVerifier:
    """
    Classifies a GPS reading against the client's service location.

    ``evaluate`` never touches a Shift; the state machine applies the
    decision inside its own transaction.
    """

    def __init__(self, policy=None):
        self.policy = policy or EVVPolicy.from_settings()

    def evaluate(self, reading, client_location, force=False, radius=None, event="Clock-in", used_fallback=False):
        radius = self.policy.geofence_radius_miles if radius is None else float(radius)

        if client_location is None:
            logger.info(f"{event}: no client location available, geofence not evaluated")
            return GeofenceDecision(
                geofence_status=GeofenceStatus.NOT_CHECKED,
                evv_status=EVVStatus.EXCEPTION,
                accepted=True,
                radius_miles=radius,
                forced=force,
                exceptions=[LOCATION_MISSING_EXCEPTION],
            )

        latitude, longitude = client_location
        distance = reading.distance_to(latitude, longitude)
        exceptions = [FALLBACK_LOCATION_EXCEPTION] if used_fallback else []

        if distance <= radius:
            return GeofenceDecision(
                geofence_status=GeofenceStatus.IN_RANGE,
                evv_status=EVVStatus.EXCEPTION if exceptions else EVVStatus.VERIFIED,
                accepted=True,
                distance_miles=distance,
                radius_miles=radius,
                forced=force,
                exceptions=exceptions,
            )

        if not force:
            # Recoverable: the caller decides between cancelling and forcing
            logger.info(
                f"{event} outside geofence ({distance:.2f} mi > {radius} mi), override required"
            )
            return GeofenceDecision(
                geofence_status=GeofenceStatus.OUT_OF_RANGE,
                evv_status=EVVStatus.REJECTED,
                accepted=False,
                distance_miles=distance,
                radius_miles=radius,
                exceptions=exceptions,
            )

        exceptions.append(f"{event} outside geofence ({distance:.2f} mi from client, limit {radius} mi); override used")
        return GeofenceDecision(
            geofence_status=GeofenceStatus.OUT_OF_RANGE,
            evv_status=EVVStatus.EXCEPTION,
            accepted=True,
            distance_miles=distance,
            radius_miles=radius,
            forced=True,
            exceptions=exceptions,
        )
