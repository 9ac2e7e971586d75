# campus_parking/errors.py
"""
Error taxonomy for the parking core.
Every mutating operation validates first and raises one of these before touching state.
The API maps them to HTTP responses through a single exception handler (see main.py).
"""

from typing import Optional


class ParkingError(Exception):
    """Base class. `message` is short and safe to show to an operator."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ParkingError):
    """Malformed input. `errors` maps field name → message."""

    status_code = 422

    def __init__(self, message: str, errors: Optional[dict] = None):
        super().__init__(message)
        self.errors = errors or {}


class DuplicateResource(ParkingError):
    status_code = 409


class NotFound(ParkingError):
    status_code = 404


class InvalidStateTransition(ParkingError):
    status_code = 409


class AlreadyClosed(InvalidStateTransition):
    pass


class AlreadyPaid(InvalidStateTransition):
    pass


class PaymentExempted(InvalidStateTransition):
    pass


class AlreadyResolved(InvalidStateTransition):
    pass


class NotPending(InvalidStateTransition):
    pass


class CapacityExceeded(ParkingError):
    status_code = 409


class CrossAggregateInconsistency(ParkingError):
    """
    An exception was marked resolved but the session operation it triggered failed.
    The exception stays resolved; `cause` is the session-side error.
    """

    status_code = 500

    def __init__(self, message: str, exception_id: str, cause: Exception):
        super().__init__(message)
        self.exception_id = exception_id
        self.cause = cause


class StorageError(ParkingError):
    status_code = 503


class StorageQuotaExceeded(StorageError):
    status_code = 507
