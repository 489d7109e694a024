"""Exceptions raised by the location access services."""


class LocationAccessError(Exception):
    """Base exception for the location access subsystem."""
    pass


# --- Device / geolocation provider errors ---

class GeolocationError(LocationAccessError):
    """Raised when the device could not produce a location sample."""

    code = "LOCATION_ERROR"
    default_message = "Location access failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class LocationPermissionDenied(GeolocationError):
    code = "PERMISSION_DENIED"
    default_message = "Location permission denied by user"


class PositionUnavailable(GeolocationError):
    code = "POSITION_UNAVAILABLE"
    default_message = "Location information unavailable"


class LocationTimeout(GeolocationError):
    code = "TIMEOUT"
    default_message = "Location request timeout"


# --- Zone registry errors ---

class ZoneNotFound(LocationAccessError):
    def __init__(self, zone_id: int):
        self.zone_id = zone_id
        super().__init__(f"Zone {zone_id} not found")


class LastZoneError(LocationAccessError):
    """Raised when deleting the only remaining zone."""

    reason = "last zone"

    def __init__(self, zone_id: int):
        self.zone_id = zone_id
        super().__init__("Cannot delete the last remaining location")


class ZoneLimitReached(LocationAccessError):
    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"A maximum of {limit} factory locations can be configured")


# --- Approval workflow errors ---

class ApprovalNotFound(LocationAccessError):
    def __init__(self, request_id: int):
        self.request_id = request_id
        super().__init__(f"Approval request {request_id} not found")


class ApprovalAlreadyProcessed(LocationAccessError):
    """Raised when a decision is attempted on a non-pending request."""

    def __init__(self, request_id: int, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(f"Approval request {request_id} is already {status}")


# --- Persistence errors ---

class AuditWriteError(LocationAccessError):
    """Raised when an audit/decision write fails. Never implies a grant."""

    def __init__(self, what: str, cause: Exception | None = None):
        self.what = what
        self.cause = cause
        super().__init__(f"Failed to write {what}")


class AlertNotFound(LocationAccessError):
    def __init__(self, alert_id: int):
        self.alert_id = alert_id
        super().__init__(f"Alert {alert_id} not found")
