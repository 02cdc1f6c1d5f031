from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Tuple

from django.conf import settings


@dataclass(frozen=True)
class EVVPolicy:
    """Tunable EVV rules. Defaults mirror the agency's observed behavior."""

    geofence_radius_miles: float = 0.5
    clock_in_window: timedelta = timedelta(hours=2)
    location_timeout_seconds: float = 10.0
    default_units: Decimal = Decimal("1")
    default_billing_code: str = "G0156"
    default_modifier: str = "UN"
    late_arrival_tolerance: timedelta = timedelta(minutes=15)
    early_departure_tolerance: timedelta = timedelta(minutes=15)
    authorized_hours_tolerance: Decimal = Decimal("0.5")
    fallback_client_location: Optional[Tuple[float, float]] = None

    @classmethod
    def from_settings(cls):
        defaults = cls()
        window_hours = defaults.clock_in_window / timedelta(hours=1)
        late_minutes = defaults.late_arrival_tolerance // timedelta(minutes=1)
        early_minutes = defaults.early_departure_tolerance // timedelta(minutes=1)
        fallback = getattr(settings, 'EVV_FALLBACK_CLIENT_LOCATION', None)
        return cls(
            geofence_radius_miles=float(
                getattr(settings, 'EVV_GEOFENCE_RADIUS_MILES', defaults.geofence_radius_miles)
            ),
            clock_in_window=timedelta(
                hours=float(getattr(settings, 'EVV_CLOCK_IN_WINDOW_HOURS', window_hours))
            ),
            location_timeout_seconds=float(
                getattr(settings, 'EVV_LOCATION_TIMEOUT_SECONDS', defaults.location_timeout_seconds)
            ),
            default_units=Decimal(str(getattr(settings, 'EVV_DEFAULT_UNITS', defaults.default_units))),
            default_billing_code=getattr(settings, 'EVV_DEFAULT_BILLING_CODE', defaults.default_billing_code),
            default_modifier=getattr(settings, 'EVV_DEFAULT_MODIFIER', defaults.default_modifier),
            late_arrival_tolerance=timedelta(
                minutes=int(getattr(settings, 'EVV_LATE_ARRIVAL_TOLERANCE_MINUTES', late_minutes))
            ),
            early_departure_tolerance=timedelta(
                minutes=int(getattr(settings, 'EVV_EARLY_DEPARTURE_TOLERANCE_MINUTES', early_minutes))
            ),
            authorized_hours_tolerance=Decimal(
                str(getattr(settings, 'EVV_AUTHORIZED_HOURS_TOLERANCE', defaults.authorized_hours_tolerance))
            ),
            fallback_client_location=tuple(fallback) if fallback else None,
        )
