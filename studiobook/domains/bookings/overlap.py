"""Overlap policy for the single bookable resource (the trainer).

Shared by the availability listing and by create/reschedule so the two can
never disagree about whether a time is bookable.
"""
import uuid
from dataclasses import dataclass, field

from .exceptions import ConflictReason, SlotConflictError
from .slots import time_str_to_minutes

# Two clients trained side by side, never three.
MAX_CO_BOOKED_PACKAGES = 2


@dataclass(frozen=True)
class ScheduledBooking:
    """A CONFIRMED booking of the day, as the policy sees it."""

    start_minute: int
    duration_minutes: int
    is_shared: bool
    package_id: uuid.UUID
    booking_id: uuid.UUID | None = None

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes

    @classmethod
    def from_row(
        cls,
        time_str: str,
        duration_minutes: int,
        is_shared: bool,
        package_id: uuid.UUID,
        booking_id: uuid.UUID | None = None,
    ) -> "ScheduledBooking":
        return cls(
            start_minute=time_str_to_minutes(time_str),
            duration_minutes=duration_minutes,
            is_shared=is_shared,
            package_id=package_id,
            booking_id=booking_id,
        )


@dataclass(frozen=True)
class OverlapDecision:
    bookable: bool
    reason: ConflictReason | None = None
    conflicts: list[ScheduledBooking] = field(default_factory=list)

    def raise_for_conflict(self) -> None:
        if not self.bookable:
            raise SlotConflictError(self.reason or ConflictReason.OVERLAP)


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open intervals overlap iff each starts before the other ends."""
    return start_a < end_b and end_a > start_b


def resolve_overlap(
    start_minute: int,
    duration_minutes: int,
    existing: list[ScheduledBooking],
    *,
    is_admin: bool,
    candidate_is_shared: bool | None,
    candidate_package_id: uuid.UUID | None = None,
) -> OverlapDecision:
    """Decide whether a candidate interval may be booked.

    Args:
        start_minute: Candidate start, minutes since midnight
        duration_minutes: Candidate length
        existing: CONFIRMED bookings of the same day
        is_admin: Whether the caller is the studio operator
        candidate_is_shared: Whether the candidate's package is shared;
            ``None`` (package type unknown) is treated as shared
        candidate_package_id: Package of the candidate, if known

    Returns:
        OverlapDecision with the rejection reason when not bookable
    """
    end = start_minute + duration_minutes
    conflicts = [
        booking
        for booking in existing
        if intervals_overlap(start_minute, end, booking.start_minute, booking.end_minute)
    ]
    if not conflicts:
        return OverlapDecision(bookable=True)

    treat_as_shared = candidate_is_shared is None or candidate_is_shared
    any_shared = any(booking.is_shared for booking in conflicts)

    if not is_admin:
        reason = ConflictReason.SHARED_CONFLICT if any_shared else ConflictReason.OVERLAP
        return OverlapDecision(False, reason, conflicts)

    if treat_as_shared or any_shared:
        return OverlapDecision(False, ConflictReason.SHARED_CONFLICT, conflicts)

    if candidate_package_id is not None and any(
        booking.package_id == candidate_package_id for booking in conflicts
    ):
        return OverlapDecision(False, ConflictReason.SAME_PACKAGE_CONFLICT, conflicts)

    co_booked_packages = {booking.package_id for booking in conflicts}
    if len(co_booked_packages) >= MAX_CO_BOOKED_PACKAGES:
        return OverlapDecision(False, ConflictReason.CO_BOOKING_LIMIT_REACHED, conflicts)

    return OverlapDecision(True, conflicts=conflicts)
