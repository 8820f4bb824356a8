"""One-hour WhatsApp reminders for upcoming sessions."""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from studiobook.config.settings import settings
from studiobook.core.whatsapp import (
    WhatsAppNotifier,
    format_booking_reminder_message,
    get_notifier,
)

from .repository import BookingRepository
from .slots import slot_datetime

logger = logging.getLogger(__name__)


@dataclass
class ReminderReport:
    sent: int = 0
    skipped: int = 0
    failed: int = 0


async def send_due_reminders(
    db: AsyncSession,
    now: datetime,
    notifier: WhatsAppNotifier | None = None,
) -> ReminderReport:
    """Send a reminder for every CONFIRMED booking starting about one hour from ``now``.

    A booking is due when its start falls within ``REMINDER_WINDOW_MINUTES``
    of ``now + REMINDER_LEAD_MINUTES``. Each booking is reminded at most once;
    the flag is committed right after its message is accepted.

    Args:
        db: Database session
        now: Naive local time in the operating timezone
        notifier: WhatsApp notifier, the process-wide one by default

    Returns:
        Counts of sent, skipped (no phone or opted out) and failed reminders
    """
    notifier = notifier or get_notifier()
    target = now + timedelta(minutes=settings.REMINDER_LEAD_MINUTES)
    window = timedelta(minutes=settings.REMINDER_WINDOW_MINUTES)
    window_start, window_end = target - window, target + window

    repo = BookingRepository(db)
    days = sorted({window_start.date(), window_end.date()})
    candidates = [
        booking for booking in await repo.list_reminder_candidates(days)
        if window_start <= slot_datetime(booking.date, booking.time) <= window_end
    ]
    users = {
        user.id: user
        for user in await repo.get_users(list({b.user_id for b in candidates}))
    }

    report = ReminderReport()
    due = []
    for booking in candidates:
        user = users.get(booking.user_id)
        if user is None or not user.can_receive_messages:
            report.skipped += 1
            continue
        # Read everything up front: a rollback below expires loaded rows
        message = format_booking_reminder_message(user.name, booking.date, booking.time)
        due.append((booking.id, user.phone, message))

    for booking_id, phone, message in due:
        try:
            await notifier.send(phone, message)
            await repo.mark_reminder_sent(booking_id)
            await db.commit()
            report.sent += 1
            logger.info("Sent 1h reminder for booking %s", booking_id)
        except Exception as e:
            logger.error("Failed to send 1h reminder for %s: %s", booking_id, e)
            await db.rollback()
            report.failed += 1

    return report
