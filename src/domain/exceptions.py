"""
Domain error taxonomy.

Every error carries a stable ``code`` so the API layer (and any other
caller) can tell failures apart without parsing messages.  ``retryable``
marks the only transient class; the core itself never retries.
"""


class RideDispatchError(Exception):
    """Base class for all expected failures of the dispatch core."""

    code = "dispatch_error"
    default_message = "Request could not be completed"
    retryable = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


# ── Validation ────────────────────────────────────────────────────────


class ValidationError(RideDispatchError):
    code = "validation_error"
    default_message = "Invalid request"


class InvalidCoordinates(ValidationError):
    code = "invalid_coordinates"
    default_message = "Invalid coordinates"


class InvalidEventPayload(ValidationError):
    code = "invalid_event_payload"
    default_message = "Event payload does not match its type"


# ── Not found ─────────────────────────────────────────────────────────


class NotFound(RideDispatchError):
    code = "not_found"
    default_message = "Not found"


class RideNotFound(NotFound):
    code = "ride_not_found"
    default_message = "Ride not found"


class DriverNotFound(NotFound):
    code = "driver_not_found"
    default_message = "Driver profile not found"


# ── Authorization ─────────────────────────────────────────────────────


class Unauthorized(RideDispatchError):
    code = "unauthorized"
    default_message = "Unauthorized"


class NotAParticipant(Unauthorized):
    code = "not_a_participant"
    default_message = "Unauthorized: not part of this ride"


class NotADriver(Unauthorized):
    code = "not_a_driver"
    default_message = "Only drivers can perform this action"


class DriverNotEligible(RideDispatchError):
    code = "driver_not_eligible"
    default_message = "Driver is not eligible to accept rides"


# ── Availability / state ──────────────────────────────────────────────


class RideUnavailable(RideDispatchError):
    """Common parent: both variants read "ride no longer available"."""

    code = "ride_unavailable"
    default_message = "Ride is no longer available"


class RideNotAvailable(RideUnavailable):
    code = "ride_not_available"


class RideAlreadyAccepted(RideUnavailable):
    code = "ride_already_accepted"


class InvalidTransition(RideDispatchError):
    code = "invalid_transition"
    default_message = "Invalid ride status transition"


class RideStateConflict(RideDispatchError):
    """A conditioned write found the ride in a different status than expected."""

    code = "ride_state_conflict"
    default_message = "Ride was modified concurrently"


class RatingNotAllowed(RideDispatchError):
    code = "rating_not_allowed"
    default_message = "Ride cannot be rated"


# ── Configuration / infrastructure ────────────────────────────────────


class NoActivePricingRule(RideDispatchError):
    code = "no_active_pricing_rule"
    default_message = "No active pricing rule found"


class StorageUnavailable(RideDispatchError):
    code = "storage_unavailable"
    default_message = "Storage is temporarily unavailable"
    retryable = True
