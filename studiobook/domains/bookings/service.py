"""Booking service: create, cancel and reschedule as atomic units.

Each operation has two phases. The first runs on the request's session and
either commits every write together (booking row, ledger counters) or rolls
all of them back and re-raises. The second runs after the commit: calendar
sync and WhatsApp messages, each isolated by ``run_side_effects`` so a
failure there never undoes or fails the booking.
"""
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from studiobook.config.settings import settings
from studiobook.core.google_calendar import GoogleCalendarMirror, get_calendar_mirror
from studiobook.core.timezone import now_local
from studiobook.core.whatsapp import (
    WhatsAppNotifier,
    format_admin_cancellation_message,
    format_booking_cancellation_message,
    format_booking_confirmation_message,
    format_booking_modification_message,
    format_earlier_slot_message,
    format_shared_slot_freed_message,
    get_notifier,
)
from studiobook.domains.packages.ledger import PackageLedger
from studiobook.domains.users.models import User, UserRole

from .availability import AvailabilityService
from .exceptions import AuthorizationError, NotFoundError, ValidationError
from .models import MAX_DURATION_MINUTES, MIN_DURATION_MINUTES, Booking, BookingStatus
from .overlap import resolve_overlap
from .repository import BookingRepository
from .side_effects import SideEffect, run_side_effects
from .slots import TIME_PATTERN, is_grid_slot, slot_datetime, time_str_to_minutes

logger = structlog.get_logger(__name__)


@dataclass
class _Recipients:
    """Users to notify once a transaction has committed, read inside it."""

    audience: list[User] = field(default_factory=list)
    admins: list[User] = field(default_factory=list)
    later: list[tuple[User, str]] = field(default_factory=list)


def event_title(owner_name: str) -> str:
    return f"Sessione {owner_name}"


def event_description(package_name: str) -> str:
    return f"Prenotazione - Pacchetto: {package_name}"


def validate_slot(time_str: str) -> None:
    """Check that ``time_str`` is a well-formed time on the slot grid.

    Raises:
        ValidationError: If the time is malformed or not a grid slot
    """
    if not isinstance(time_str, str) or not TIME_PATTERN.match(time_str):
        raise ValidationError("Time must be in HH:MM format")
    if not is_grid_slot(time_str):
        raise ValidationError(f"{time_str} is not a bookable slot")


class BookingService:
    """Service for creating, cancelling and rescheduling bookings."""

    def __init__(
        self,
        db: AsyncSession,
        calendar: GoogleCalendarMirror | None = None,
        notifier: WhatsAppNotifier | None = None,
        clock: Callable[[], datetime] = now_local,
    ):
        self.db = db
        self.calendar = calendar if calendar is not None else get_calendar_mirror()
        self.notifier = notifier if notifier is not None else get_notifier()
        self.clock = clock
        self.bookings = BookingRepository(db)
        self.ledger = PackageLedger(db)
        self.availability = AvailabilityService(db, calendar=self.calendar, clock=clock)

    # Create

    async def create_booking(
        self,
        user_id: uuid.UUID,
        package_id: uuid.UUID,
        day: date,
        time_str: str,
        acting_role: UserRole = UserRole.CLIENT,
        on_behalf_of: uuid.UUID | None = None,
    ) -> Booking:
        """Book one session on a package.

        Args:
            user_id: The acting user's UUID
            package_id: Package the session is taken from
            day: Calendar day in the operating timezone
            time_str: Start time as ``HH:MM``, must be a grid slot
            acting_role: Role of the acting user; only admins may co-book
            on_behalf_of: Client to book for, admins only

        Returns:
            The committed CONFIRMED booking

        Raises:
            ValidationError: Malformed time, off-grid slot, past start, inactive package
            NotFoundError: Unknown package or owner not a participant
            AuthorizationError: A client tried to book for someone else
            QuotaExhaustedError: A required participant has no sessions left
            SlotConflictError: The interval collides with existing bookings
        """
        is_admin = acting_role == UserRole.ADMIN
        owner_id = user_id
        if on_behalf_of is not None and on_behalf_of != user_id:
            if not is_admin:
                raise AuthorizationError("Only an admin can book for another user")
            owner_id = on_behalf_of

        validate_slot(time_str)
        start = slot_datetime(day, time_str)
        if start <= self.clock() + timedelta(minutes=settings.BOOKING_LEAD_MINUTES):
            raise ValidationError("Cannot book a time in the past")

        try:
            await self.bookings.lock_schedule(day)
            state = await self.ledger.load(package_id, for_update=True)
            if not state.package.is_active:
                raise ValidationError("This package is no longer active")
            if not state.has_participant(owner_id):
                raise NotFoundError("Package not found for this user")
            self.ledger.ensure_available(state, owner_id)

            duration = state.package.duration_minutes or settings.DEFAULT_SESSION_MINUTES
            existing = await self.availability.scheduled_bookings(day)
            resolve_overlap(
                time_str_to_minutes(time_str),
                duration,
                existing,
                is_admin=is_admin,
                candidate_is_shared=state.is_shared,
                candidate_package_id=package_id,
            ).raise_for_conflict()

            booking = await self.bookings.write_booking(
                Booking(
                    id=uuid.uuid4(),
                    user_id=owner_id,
                    package_id=package_id,
                    date=day,
                    time=time_str,
                    duration_minutes=duration,
                    status=BookingStatus.CONFIRMED,
                    reminder_sent=False,
                )
            )
            await self.ledger.consume(state, owner_id)
            owner = next(iter(await self.bookings.get_users([owner_id])), None)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        package = state.package
        logger.info(
            "booking_created",
            booking_id=str(booking.id),
            user_id=str(owner_id),
            package_id=str(package_id),
            date=day.isoformat(),
            time=time_str,
            shared=state.is_shared,
            by_admin=is_admin,
        )

        owner_name = owner.name if owner else ""
        effects = [
            SideEffect(
                "calendar_create",
                lambda: self._mirror_booking(booking, owner_name, package.name),
                context={"booking_id": str(booking.id)},
            )
        ]
        if owner is not None and owner.can_receive_messages:
            message = format_booking_confirmation_message(owner.name, day, time_str)
            effects.append(self._message_effect("notify_confirmation", owner, message))
        await run_side_effects(effects)
        return booking

    # Cancel

    async def cancel_booking(
        self,
        booking_id: uuid.UUID,
        acting_user_id: uuid.UUID,
        acting_role: UserRole,
    ) -> Booking:
        """Cancel a booking and give its session back.

        Clients may cancel bookings of packages they participate in, up to
        ``CANCEL_NOTICE_HOURS`` before the start. Admins may cancel anything.

        Raises:
            NotFoundError: Unknown booking or already cancelled
            AuthorizationError: Not a participant, or inside the notice period
        """
        is_admin = acting_role == UserRole.ADMIN
        try:
            booking = await self.bookings.get_booking(booking_id, for_update=True)
            if booking is None or booking.status != BookingStatus.CONFIRMED:
                raise NotFoundError("Booking not found or already cancelled")

            await self.bookings.lock_schedule(booking.date)
            state = await self.ledger.load(booking.package_id, for_update=True)
            if not is_admin:
                if not state.has_participant(acting_user_id):
                    raise AuthorizationError(
                        "You can only cancel bookings of your own packages",
                        code="not_participant",
                    )
                deadline = slot_datetime(booking.date, booking.time) - timedelta(
                    hours=settings.CANCEL_NOTICE_HOURS
                )
                if self.clock() >= deadline:
                    raise AuthorizationError(
                        f"Bookings can only be cancelled at least "
                        f"{settings.CANCEL_NOTICE_HOURS} hours in advance",
                        code="notice_period",
                    )

            await self.bookings.update_booking_status(booking, BookingStatus.CANCELLED)
            await self.ledger.restore(state, booking.user_id)
            recipients = await self._cancel_recipients(booking, state.participant_ids, is_admin)
            actor = next(iter(await self.bookings.get_users([acting_user_id])), None)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "booking_cancelled",
            booking_id=str(booking.id),
            package_id=str(booking.package_id),
            date=booking.date.isoformat(),
            time=booking.time,
            shared=state.is_shared,
            by_admin=is_admin,
        )

        effects = []
        if booking.google_event_id:
            event_id = booking.google_event_id
            effects.append(
                SideEffect(
                    "calendar_delete",
                    lambda: self.calendar.delete_event(event_id),
                    context={"booking_id": str(booking.id)},
                )
            )
        effects.extend(
            self._cancel_messages(booking, recipients, actor, acting_user_id, is_admin)
        )
        await run_side_effects(effects)
        return booking

    async def _cancel_recipients(
        self,
        booking: Booking,
        participant_ids: list[uuid.UUID],
        is_admin: bool,
    ) -> _Recipients:
        recipients = _Recipients()
        users = await self.bookings.get_users(list(participant_ids) + [booking.user_id])
        by_id = {user.id: user for user in users}
        recipients.audience = [by_id[pid] for pid in participant_ids if pid in by_id]
        if not is_admin:
            recipients.admins = await self.bookings.list_admins()

        # Owners of later sessions that day may want to move earlier
        notified = set(participant_ids) | {booking.user_id}
        later_rows = [
            row for row in await self.bookings.find_confirmed_bookings(booking.date)
            if time_str_to_minutes(row.booking.time) > time_str_to_minutes(booking.time)
        ]
        later_owner_ids = []
        later_times = {}
        for row in later_rows:
            owner_id = row.booking.user_id
            if owner_id in notified or owner_id in later_times:
                continue
            later_owner_ids.append(owner_id)
            later_times[owner_id] = row.booking.time
        recipients.later = [
            (user, later_times[user.id])
            for user in await self.bookings.get_users(later_owner_ids)
        ]
        return recipients

    def _cancel_messages(
        self,
        booking: Booking,
        recipients: _Recipients,
        actor: User | None,
        acting_user_id: uuid.UUID,
        is_admin: bool,
    ) -> list[SideEffect]:
        effects = []
        day, time_str = booking.date, booking.time
        actor_name = actor.name if actor else ""

        if is_admin:
            for user in recipients.audience:
                if user.can_receive_messages:
                    message = format_booking_cancellation_message(user.name, day, time_str)
                    effects.append(self._message_effect("notify_cancellation", user, message))
        else:
            if len(recipients.audience) > 1:
                for user in recipients.audience:
                    if user.id == acting_user_id or not user.can_receive_messages:
                        continue
                    message = format_shared_slot_freed_message(user.name, actor_name, day, time_str)
                    effects.append(self._message_effect("notify_shared_slot_freed", user, message))

            admin_message = format_admin_cancellation_message(actor_name, day, time_str)
            admin_phones = [
                admin.phone for admin in recipients.admins
                if admin.phone and admin.id != acting_user_id
            ]
            if not admin_phones and settings.ADMIN_PHONE:
                admin_phones = [settings.ADMIN_PHONE]
            for phone in admin_phones:
                effects.append(
                    SideEffect(
                        "notify_admin",
                        lambda phone=phone: self.notifier.send(phone, admin_message),
                        context={"booking_id": str(booking.id)},
                    )
                )

        for user, booked_time in recipients.later:
            if user.can_receive_messages:
                message = format_earlier_slot_message(user.name, day, time_str, booked_time)
                effects.append(self._message_effect("notify_earlier_slot", user, message))
        return effects

    # Reschedule

    async def reschedule_booking(
        self,
        booking_id: uuid.UUID,
        acting_role: UserRole,
        new_date: date | None = None,
        new_time: str | None = None,
        new_duration: int | None = None,
    ) -> Booking:
        """Move a booking to another day, time or length. Admins only.

        The quota is untouched: the same session simply happens at another
        time. The moved booking is left out of its own overlap check.

        Raises:
            AuthorizationError: The caller is not an admin
            ValidationError: Malformed or past target, bad duration
            NotFoundError: Unknown booking or already cancelled
            SlotConflictError: The new interval collides with existing bookings
        """
        if acting_role != UserRole.ADMIN:
            raise AuthorizationError("Only an admin can reschedule bookings")
        if new_duration is not None and not (
            MIN_DURATION_MINUTES <= new_duration <= MAX_DURATION_MINUTES
        ):
            raise ValidationError(
                f"Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes"
            )
        if new_time is not None:
            validate_slot(new_time)

        try:
            booking = await self.bookings.get_booking(booking_id, for_update=True)
            if booking is None or booking.status != BookingStatus.CONFIRMED:
                raise NotFoundError("Booking not found or already cancelled")

            old_day, old_time = booking.date, booking.time
            day = new_date or booking.date
            time_str = new_time or booking.time
            duration = new_duration or booking.duration_minutes
            if slot_datetime(day, time_str) <= self.clock():
                raise ValidationError("Cannot move a booking into the past")

            await self.bookings.lock_schedule(day)
            state = await self.ledger.load(booking.package_id)
            existing = await self.availability.scheduled_bookings(
                day, exclude_booking_id=booking.id
            )
            resolve_overlap(
                time_str_to_minutes(time_str),
                duration,
                existing,
                is_admin=True,
                candidate_is_shared=state.is_shared,
                candidate_package_id=booking.package_id,
            ).raise_for_conflict()

            await self.bookings.update_booking_schedule(booking, day, time_str, duration)
            audience_ids = state.participant_ids if state.is_shared else [booking.user_id]
            audience = await self.bookings.get_users(audience_ids)
            owner = next(iter(await self.bookings.get_users([booking.user_id])), None)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        package = state.package
        logger.info(
            "booking_rescheduled",
            booking_id=str(booking.id),
            old_date=old_day.isoformat(),
            old_time=old_time,
            new_date=day.isoformat(),
            new_time=time_str,
            duration=duration,
        )

        owner_name = owner.name if owner else ""
        effects = [
            SideEffect(
                "calendar_update",
                lambda: self._mirror_booking(booking, owner_name, package.name),
                context={"booking_id": str(booking.id)},
            )
        ]
        for user in audience:
            if user.can_receive_messages:
                message = format_booking_modification_message(
                    user.name, old_day, old_time, day, time_str
                )
                effects.append(self._message_effect("notify_modification", user, message))
        await run_side_effects(effects)
        return booking

    # Listings

    async def list_bookings_for_user(self, user_id: uuid.UUID) -> list[Booking]:
        """CONFIRMED bookings visible to a client.

        A client sees their own bookings and, for shared packages, the
        bookings made by the other participants.
        """
        rows = await self.ledger.repo.find_user_rows(user_id)
        package_ids = [row.package_id for row in rows]
        user_ids = {user_id}
        for row in rows:
            participants = await self.ledger.repo.find_participant_rows(row.package_id)
            if len(participants) > 1:
                user_ids.update(p.user_id for p in participants)
        return await self.bookings.list_for_packages(package_ids, list(user_ids))

    async def list_bookings_between(
        self,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Booking]:
        """CONFIRMED bookings between two days, inclusive. For the admin view."""
        if start is not None and end is not None and start > end:
            raise ValidationError("Start date must not be after end date")
        return await self.bookings.list_between(start, end)

    # Side effects

    async def _mirror_booking(
        self,
        booking: Booking,
        owner_name: str,
        package_name: str,
    ) -> str | None:
        """Create or update the calendar event of a booking."""
        start = slot_datetime(booking.date, booking.time)
        end = start + timedelta(minutes=booking.duration_minutes)
        title = event_title(owner_name)
        description = event_description(package_name)
        if booking.google_event_id:
            await self.calendar.update_event(
                booking.google_event_id, title, description, start, end
            )
            return booking.google_event_id

        event_id = await self.calendar.create_event(title, description, start, end)
        if event_id:
            await self.bookings.set_google_event_id(booking, event_id)
        return event_id

    def _message_effect(self, name: str, user: User, message: str) -> SideEffect:
        phone = user.phone
        return SideEffect(
            name,
            lambda: self.notifier.send(phone, message),
            context={"user_id": str(user.id)},
        )
