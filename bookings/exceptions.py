# bookings/exceptions.py
"""
Error taxonomy for booking operations.

Services raise these; the JSON views turn them into the
``{"success": false, "message": ...}`` envelope with ``status_code``.
"""


class BookingError(Exception):
    status_code = 400

    def __init__(self, message, status_code=None, errors=None):
        super().__init__(message)
        self.message = message
        self.errors = errors
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        payload = {"success": False, "message": self.message}
        if self.errors:
            payload["errors"] = self.errors
        return payload


class ValidationFailed(BookingError):
    """Malformed input, sum mismatch, missing field or bad enum value."""

    status_code = 400


class NotFound(BookingError):
    status_code = 404


class Conflict(BookingError):
    """Double processing or changes to a cancelled/void booking."""

    status_code = 409
