"""Open slots of a day for a given caller."""
import uuid
from datetime import date, datetime
from typing import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from studiobook.config.settings import settings
from studiobook.core.google_calendar import BusyInterval, GoogleCalendarMirror, get_calendar_mirror
from studiobook.core.timezone import now_local
from studiobook.domains.packages.repository import PackageRepository
from studiobook.domains.users.models import UserRole

from .exceptions import NotFoundError
from .overlap import ScheduledBooking, intervals_overlap, resolve_overlap
from .repository import BookingRepository, DayBooking
from .slots import generate_slots, slot_datetime, time_str_to_minutes

logger = structlog.get_logger(__name__)


class AvailabilityService:
    """Combines the slot grid, the day's bookings and the calendar mirror.

    Read-only: calling it repeatedly without intervening bookings returns
    the same slots.
    """

    def __init__(
        self,
        db: AsyncSession,
        calendar: GoogleCalendarMirror | None = None,
        clock: Callable[[], datetime] = now_local,
    ):
        self.db = db
        self.bookings = BookingRepository(db)
        self.packages = PackageRepository(db)
        self.calendar = calendar if calendar is not None else get_calendar_mirror()
        self.clock = clock

    async def scheduled_bookings(
        self,
        day: date,
        exclude_booking_id: uuid.UUID | None = None,
    ) -> list[ScheduledBooking]:
        """The day's CONFIRMED bookings in the form the overlap policy expects."""
        rows = await self.bookings.find_confirmed_bookings(day, exclude_booking_id)
        return [_to_scheduled(row) for row in rows]

    async def _external_busy(self, day: date) -> list[BusyInterval]:
        """Busy intervals from the calendar mirror; empty if it cannot be reached."""
        try:
            return await self.calendar.list_busy_intervals(day)
        except Exception as e:
            logger.warning(
                "calendar_busy_unavailable",
                day=day.isoformat(),
                error=str(e),
                type=type(e).__name__,
            )
            return []

    async def list_available_slots(
        self,
        day: date,
        caller_role: UserRole,
        package_id: uuid.UUID | None = None,
    ) -> list[str]:
        """List bookable ``HH:MM`` slots of ``day``, ascending.

        Args:
            day: Calendar day in the operating timezone
            caller_role: Role of the caller; only admins may co-book
            package_id: Package the caller intends to book, if known. When
                omitted the package is treated as shared, the strictest case.

        Returns:
            Ordered list of open slots

        Raises:
            NotFoundError: If ``package_id`` does not exist
        """
        # Calendar first, so no read transaction is open while waiting on it
        external = await self._external_busy(day)

        candidate_is_shared: bool | None = None
        if package_id is not None:
            if await self.packages.get_package(package_id) is None:
                raise NotFoundError("Package not found")
            candidate_is_shared = await self.packages.count_participants(package_id) > 1

        day_bookings = await self.bookings.find_confirmed_bookings(day)
        existing = [_to_scheduled(row) for row in day_bookings]
        # Events mirrored from our own bookings are already in ``existing``
        own_event_ids = {
            row.booking.google_event_id for row in day_bookings if row.booking.google_event_id
        }
        busy = [
            interval for interval in external
            if interval.event_id is None or interval.event_id not in own_event_ids
        ]

        probe = settings.DEFAULT_SESSION_MINUTES
        is_admin = caller_role == UserRole.ADMIN
        now = self.clock()

        available = []
        for slot in generate_slots():
            if slot_datetime(day, slot) <= now:
                continue
            start = time_str_to_minutes(slot)
            end = start + probe
            if any(intervals_overlap(start, end, b.start_minute, b.end_minute) for b in busy):
                continue
            decision = resolve_overlap(
                start,
                probe,
                existing,
                is_admin=is_admin,
                candidate_is_shared=candidate_is_shared,
                candidate_package_id=package_id,
            )
            if decision.bookable:
                available.append(slot)

        logger.debug(
            "available_slots_computed",
            day=day.isoformat(),
            role=caller_role.value,
            count=len(available),
            external_busy=len(busy),
        )
        return available


def _to_scheduled(row: DayBooking) -> ScheduledBooking:
    return ScheduledBooking.from_row(
        row.booking.time,
        row.booking.duration_minutes,
        row.is_shared,
        row.booking.package_id,
        row.booking.id,
    )
