import asyncio
import logging

from django.utils import timezone

from ..exceptions import InvalidCoordinate, LocationUnavailable
from ..geo import GeofenceReading, validate_coordinates
from ..policy import EVVPolicy

logger = logging.getLogger(__name__)


class ClientLocationLookup:
    """Resolves the geofence center for a client. Does no geocoding."""

    def __init__(self, policy=None):
        self.policy = policy or EVVPolicy.from_settings()

    def lookup(self, client):
        """Return ``((lat, lon), used_fallback)``; the point is None when unknown."""
        if client is not None and client.has_location:
            try:
                point = validate_coordinates(client.location_latitude, client.location_longitude)
            except InvalidCoordinate:
                logger.warning(f"Client {client.pk} has invalid stored coordinates, ignoring them")
            else:
                return point, False

        if self.policy.fallback_client_location:
            logger.warning(
                f"Client {getattr(client, 'pk', None)} has no geocoded address, using fallback location"
            )
            return validate_coordinates(*self.policy.fallback_client_location), True

        return None, False


def reading_from_payload(data, now=None):
    """
    Turn a device payload into a GeofenceReading.

    The mobile app reports acquisition failures through ``location_error``
    so they can be told apart from a geofence rejection.
    """
    error = data.get('location_error')
    if error:
        raise LocationUnavailable(error, data.get('location_error_detail', ''))
    if data.get('latitude') is None or data.get('longitude') is None:
        raise LocationUnavailable(LocationUnavailable.UNAVAILABLE, "No GPS coordinates supplied")
    return GeofenceReading.from_mapping(data, measured_at=now or timezone.now())


async def acquire_reading(fetch_position, timeout=None, policy=None):
    """
    Await a device position, bounded by the policy timeout.

    ``fetch_position`` is a zero-argument coroutine function returning
    ``{latitude, longitude, accuracy}``. Cancellation of the caller
    propagates unchanged.
    """
    policy = policy or EVVPolicy.from_settings()
    timeout = policy.location_timeout_seconds if timeout is None else timeout

    try:
        position = await asyncio.wait_for(fetch_position(), timeout=timeout)
    except asyncio.TimeoutError:
        raise LocationUnavailable(LocationUnavailable.TIMEOUT, f"No fix within {timeout}s")
    except PermissionError as e:
        raise LocationUnavailable(LocationUnavailable.PERMISSION_DENIED, str(e))
    except OSError as e:
        raise LocationUnavailable(LocationUnavailable.UNAVAILABLE, str(e))

    if position is None:
        raise LocationUnavailable(LocationUnavailable.UNAVAILABLE, "Device returned no position")
    return GeofenceReading.from_mapping(position, measured_at=timezone.now())
