"""Relational access to bookings."""
import hashlib
import uuid
from dataclasses import dataclass
from datetime import date

from sqlalchemy import and_, func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from studiobook.domains.packages.models import UserPackage
from studiobook.domains.users.models import User, UserRole

from .models import Booking, BookingStatus


@dataclass
class DayBooking:
    """A CONFIRMED booking annotated with whether its package is shared."""

    booking: Booking
    is_shared: bool


def _schedule_lock_key(day: date) -> int:
    digest = hashlib.sha256(f"studiobook:schedule:{day.isoformat()}".encode()).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False) & ((1 << 63) - 1)


class BookingRepository:
    """Queries and writes for the bookings table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def lock_schedule(self, day: date) -> None:
        """Serialize booking transactions touching the same calendar day.

        On PostgreSQL this takes a transaction-scoped advisory lock, released
        on commit or rollback. SQLite engines open every transaction with
        ``BEGIN IMMEDIATE`` (see ``use_immediate_transactions``), which
        already holds the database write lock at this point.
        """
        if self.db.get_bind().dialect.name != "postgresql":
            return
        await self.db.execute(
            text("SELECT pg_advisory_xact_lock(:k)").bindparams(k=_schedule_lock_key(day))
        )

    async def find_confirmed_bookings(
        self,
        day: date,
        exclude_booking_id: uuid.UUID | None = None,
    ) -> list[DayBooking]:
        """Get the CONFIRMED bookings of a day with their package's shared flag.

        Args:
            day: Calendar day in the operating timezone
            exclude_booking_id: Booking to leave out (the one being moved)

        Returns:
            Bookings ordered by start time
        """
        participant_counts = (
            select(
                UserPackage.package_id.label("package_id"),
                func.count(UserPackage.id).label("participants"),
            )
            .group_by(UserPackage.package_id)
            .subquery()
        )
        filters = [
            Booking.date == day,
            Booking.status == BookingStatus.CONFIRMED,
        ]
        if exclude_booking_id is not None:
            filters.append(Booking.id != exclude_booking_id)

        result = await self.db.execute(
            select(Booking, func.coalesce(participant_counts.c.participants, 0))
            .outerjoin(participant_counts, participant_counts.c.package_id == Booking.package_id)
            .where(and_(*filters))
            .order_by(Booking.time)
        )
        return [
            DayBooking(booking=booking, is_shared=participants > 1)
            for booking, participants in result.all()
        ]

    async def get_booking(
        self,
        booking_id: uuid.UUID,
        for_update: bool = False,
    ) -> Booking | None:
        query = select(Booking).where(Booking.id == booking_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def write_booking(self, booking: Booking) -> Booking:
        self.db.add(booking)
        await self.db.flush()
        return booking

    async def update_booking_status(self, booking: Booking, status: BookingStatus) -> Booking:
        booking.status = status
        await self.db.flush()
        return booking

    async def update_booking_schedule(
        self,
        booking: Booking,
        day: date,
        time_str: str,
        duration_minutes: int,
    ) -> Booking:
        if booking.date != day or booking.time != time_str:
            booking.reminder_sent = False
        booking.date = day
        booking.time = time_str
        booking.duration_minutes = duration_minutes
        await self.db.flush()
        return booking

    async def set_google_event_id(self, booking: Booking, event_id: str | None) -> None:
        booking.google_event_id = event_id
        await self.db.commit()

    async def list_for_packages(
        self,
        package_ids: list[uuid.UUID],
        user_ids: list[uuid.UUID],
    ) -> list[Booking]:
        """CONFIRMED bookings of the given packages booked by the given users."""
        if not package_ids:
            return []
        result = await self.db.execute(
            select(Booking)
            .where(
                and_(
                    Booking.status == BookingStatus.CONFIRMED,
                    Booking.package_id.in_(package_ids),
                    Booking.user_id.in_(user_ids),
                )
            )
            .order_by(Booking.date, Booking.time)
        )
        return list(result.scalars().all())

    async def list_between(self, start: date | None, end: date | None) -> list[Booking]:
        filters = [Booking.status == BookingStatus.CONFIRMED]
        if start is not None:
            filters.append(Booking.date >= start)
        if end is not None:
            filters.append(Booking.date <= end)
        result = await self.db.execute(
            select(Booking).where(and_(*filters)).order_by(Booking.date, Booking.time)
        )
        return list(result.scalars().all())

    async def list_reminder_candidates(self, days: list[date]) -> list[Booking]:
        result = await self.db.execute(
            select(Booking).where(
                and_(
                    Booking.status == BookingStatus.CONFIRMED,
                    Booking.reminder_sent == False,  # noqa: E712
                    Booking.date.in_(days),
                )
            )
        )
        return list(result.scalars().all())

    async def mark_reminder_sent(self, booking_id: uuid.UUID) -> None:
        await self.db.execute(
            update(Booking).where(Booking.id == booking_id).values(reminder_sent=True)
        )

    # Users

    async def get_users(self, user_ids: list[uuid.UUID]) -> list[User]:
        if not user_ids:
            return []
        result = await self.db.execute(select(User).where(User.id.in_(user_ids)))
        users = {user.id: user for user in result.scalars().all()}
        return [users[user_id] for user_id in user_ids if user_id in users]

    async def list_admins(self) -> list[User]:
        result = await self.db.execute(
            select(User).where(
                and_(User.role == UserRole.ADMIN, User.is_active == True)  # noqa: E712
            )
        )
        return list(result.scalars().all())
