class EVVError(Exception):
    """Base class for visit lifecycle and verification errors."""


class InvalidCoordinate(EVVError, ValueError):
    def __init__(self, latitude, longitude, message=None):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(message or f"Invalid coordinate ({latitude}, {longitude})")


class ShiftNotFound(EVVError):
    def __init__(self, shift_id):
        self.shift_id = shift_id
        super().__init__(f"Shift {shift_id} not found")


class InvalidTransition(EVVError):
    def __init__(self, shift_id, current_status, event):
        self.shift_id = shift_id
        self.current_status = current_status
        self.event = event
        super().__init__(f"Cannot {event} shift {shift_id} while it is {current_status}")


class ClockInNotAllowed(EVVError):
    """Clock-in attempted before the policy window opens."""

    def __init__(self, shift_id, opens_at):
        self.shift_id = shift_id
        self.opens_at = opens_at
        super().__init__(f"Clock-in for shift {shift_id} opens at {opens_at.isoformat()}")


class ActionNotPermitted(EVVError):
    def __init__(self, shift_id, user_id, event):
        self.shift_id = shift_id
        self.user_id = user_id
        self.event = event
        super().__init__(f"User {user_id} may not {event} shift {shift_id}")


class NotShiftCaregiver(ActionNotPermitted):
    """A caregiver tried to clock in or out of someone else's shift."""


class LocationUnavailable(EVVError):
    """The device could not produce a GPS reading. Retry, never override."""

    PERMISSION_DENIED = "permission_denied"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"

    REASONS = (PERMISSION_DENIED, TIMEOUT, UNAVAILABLE)

    def __init__(self, reason=UNAVAILABLE, detail=""):
        if reason not in self.REASONS:
            reason = self.UNAVAILABLE
        self.reason = reason
        self.detail = detail
        super().__init__(f"Location unavailable ({reason}){': ' + detail if detail else ''}")


class ImmutableFieldError(EVVError):
    def __init__(self, field_name):
        self.field_name = field_name
        super().__init__(f"{field_name} is already recorded and cannot be overwritten")


class NotificationError(EVVError):
    pass
