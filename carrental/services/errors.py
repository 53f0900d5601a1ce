"""
Failure taxonomy for the booking core.

Every error carries the HTTP status it maps to; the app-level error handler
renders them as ``{"success": false, "message": ...}``.
"""


class BookingError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "message": self.message}


class ValidationError(BookingError):
    """Malformed or illogical input: dates, ordering, enum values."""


class NotFoundError(BookingError):
    status_code = 404


class ConflictError(BookingError):
    """Requested range overlaps an active booking of the same car."""


class UnavailableError(BookingError):
    """Car is administratively withdrawn from rental."""


class InvalidTransitionError(BookingError):
    """Status change the state machine does not allow."""


class StoreError(BookingError):
    status_code = 500


class ProviderError(BookingError):
    status_code = 500
    retryable = True
