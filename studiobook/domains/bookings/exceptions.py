"""Typed booking errors.

Every failure of create/cancel/reschedule is reported as one of these so the
caller can tell "try another slot" from "no sessions left" from "too late to
cancel". None of them is raised after a mutation has been written.
"""
import enum


class ConflictReason(str, enum.Enum):
    """Why a candidate interval cannot be booked."""

    OVERLAP = "overlap"
    SHARED_CONFLICT = "shared_conflict"
    SAME_PACKAGE_CONFLICT = "same_package_conflict"
    CO_BOOKING_LIMIT_REACHED = "co_booking_limit_reached"


class BookingError(Exception):
    """Base class for recoverable booking errors."""

    code = "booking_error"
    status_code = 400

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(BookingError):
    """Malformed input, past date/time, unknown package or user."""

    code = "validation_error"
    status_code = 400


class NotFoundError(ValidationError):
    """A referenced booking, package or participation does not exist."""

    code = "not_found"
    status_code = 404


class QuotaExhaustedError(BookingError):
    """At least one required participant has no sessions left."""

    code = "quota_exhausted"
    status_code = 409


class SlotConflictError(BookingError):
    """The requested interval collides with existing bookings."""

    code = "slot_conflict"
    status_code = 409

    def __init__(self, reason: ConflictReason, message: str | None = None):
        super().__init__(message or _CONFLICT_MESSAGES[reason])
        self.reason = reason


class AuthorizationError(BookingError):
    """Role, ownership or notice-period violation."""

    code = "forbidden"
    status_code = 403


class SideEffectWarning(UserWarning):
    """A calendar or notification call failed after a successful commit.

    Only logged and reported to error tracking, never raised to callers.
    """


_CONFLICT_MESSAGES = {
    ConflictReason.OVERLAP: "This time overlaps an existing booking",
    ConflictReason.SHARED_CONFLICT: "This time overlaps a shared-package booking",
    ConflictReason.SAME_PACKAGE_CONFLICT: "This package is already booked at this time",
    ConflictReason.CO_BOOKING_LIMIT_REACHED: "Two sessions are already running at this time",
}
