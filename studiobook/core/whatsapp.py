"""WhatsApp messaging via Twilio, plus the booking message templates."""
import asyncio
import logging
from datetime import date
from functools import lru_cache

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from studiobook.config.settings import settings

logger = logging.getLogger(__name__)


def normalize_phone_number(phone: str, country_code: str | None = None) -> str:
    """Normalize a phone number to E.164.

    A leading ``0`` is replaced by the country code, a bare country code
    gets its ``+``, and numbers without any prefix get the country code.
    """
    country_code = country_code or settings.DEFAULT_COUNTRY_CODE
    bare_code = country_code.lstrip("+")
    normalized = "".join(ch for ch in phone if ch not in " -/().")

    if normalized.startswith("+"):
        return normalized
    if normalized.startswith("0"):
        return country_code + normalized[1:]
    if normalized.startswith(bare_code):
        return "+" + normalized
    return country_code + normalized


class WhatsAppNotifier:
    """Sends one WhatsApp message per call through Twilio."""

    def __init__(self, client: Client | None = None, timeout: float | None = None):
        self.timeout = timeout or settings.SIDE_EFFECT_TIMEOUT_SECONDS
        self.from_number = settings.TWILIO_WHATSAPP_FROM
        self.enabled = client is not None or settings.whatsapp_enabled
        if client is not None:
            self.client = client
        elif self.enabled:
            self.client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
        else:
            self.client = None
            logger.warning("Twilio not configured, WhatsApp notifications disabled")

    def _send_sync(self, to: str, message: str):
        return self.client.messages.create(
            from_=self.from_number,
            to=f"whatsapp:{to}",
            body=message,
        )

    async def send(self, to: str, message: str) -> bool:
        """Send a message to one recipient.

        Returns:
            True if Twilio accepted the message, False if messaging is disabled

        Raises:
            TwilioRestException: If Twilio rejects the message
            asyncio.TimeoutError: If the call exceeds the timeout
        """
        if not self.enabled:
            logger.debug("WhatsApp disabled, would send to %s", to)
            return False

        normalized = normalize_phone_number(to)
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._send_sync, normalized, message),
                timeout=self.timeout,
            )
        except TwilioRestException as e:
            logger.error("Twilio error sending WhatsApp to %s: %s (code %s)", normalized, e.msg, e.code)
            raise
        logger.info("WhatsApp sent to %s (SID: %s)", normalized, result.sid)
        return True


@lru_cache
def get_notifier() -> WhatsAppNotifier:
    """Get the process-wide notifier."""
    return WhatsAppNotifier()


# Message templates

_WEEKDAYS = ["lunedì", "martedì", "mercoledì", "giovedì", "venerdì", "sabato", "domenica"]
_MONTHS = [
    "gennaio", "febbraio", "marzo", "aprile", "maggio", "giugno",
    "luglio", "agosto", "settembre", "ottobre", "novembre", "dicembre",
]


def format_date_it(day: date) -> str:
    """Format a date like ``lunedì 19 ottobre 2026``."""
    return f"{_WEEKDAYS[day.weekday()]} {day.day} {_MONTHS[day.month - 1]} {day.year}"


def format_booking_confirmation_message(client_name: str, day: date, time_str: str) -> str:
    return (
        f"✅ Prenotazione confermata!\n\nCiao {client_name},\n\n"
        f"La tua sessione è stata prenotata per:\n📅 {format_date_it(day)}\n🕐 {time_str}\n\n"
        "Ti aspettiamo in studio! 💪"
    )


def format_booking_reminder_message(client_name: str, day: date, time_str: str) -> str:
    return (
        f"⏰ Promemoria sessione\n\nCiao {client_name},\n\n"
        f"Ti ricordiamo che hai una sessione tra 1 ora:\n📅 {format_date_it(day)}\n🕐 {time_str}\n\n"
        "Ti aspettiamo! 💪"
    )


def format_booking_modification_message(
    client_name: str,
    old_day: date,
    old_time: str,
    new_day: date,
    new_time: str,
) -> str:
    return (
        f"🔄 Appuntamento modificato\n\nCiao {client_name},\n\n"
        "Il tuo appuntamento è stato modificato:\n\n"
        f"❌ Precedente:\n📅 {format_date_it(old_day)}\n🕐 {old_time}\n\n"
        f"✅ Nuovo:\n📅 {format_date_it(new_day)}\n🕐 {new_time}\n\n"
        "Ti aspettiamo in studio! 💪"
    )


def format_booking_cancellation_message(client_name: str, day: date, time_str: str) -> str:
    return (
        f"❌ Appuntamento disdetto\n\nCiao {client_name},\n\n"
        f"Il tuo appuntamento è stato disdetto:\n📅 {format_date_it(day)}\n🕐 {time_str}\n\n"
        "La sessione è stata restituita al tuo pacchetto."
    )


def format_shared_slot_freed_message(
    client_name: str,
    cancelled_by: str,
    day: date,
    time_str: str,
) -> str:
    return (
        f"ℹ️ Sessione condivisa disdetta\n\nCiao {client_name},\n\n"
        f"{cancelled_by} ha disdetto la sessione del pacchetto condiviso:\n"
        f"📅 {format_date_it(day)}\n🕐 {time_str}\n\n"
        "La sessione è stata restituita a tutti gli atleti del pacchetto."
    )


def format_admin_cancellation_message(client_name: str, day: date, time_str: str) -> str:
    return (
        f"📣 Disdetta cliente\n\n{client_name} ha disdetto la sessione:\n"
        f"📅 {format_date_it(day)}\n🕐 {time_str}"
    )


def format_earlier_slot_message(
    client_name: str,
    day: date,
    freed_time: str,
    booked_time: str,
) -> str:
    return (
        f"⏩ Si è liberato un orario\n\nCiao {client_name},\n\n"
        f"Il {format_date_it(day)} si è liberato lo slot delle {freed_time}, "
        f"prima della tua sessione delle {booked_time}.\n\n"
        "Se preferisci anticipare, accedi alla tua area riservata."
    )
