"""
Timezone helpers for the studio's single operating timezone.

Booking dates and ``HH:MM`` times are stored as local wall-clock values, so
"now" must be taken in the same timezone regardless of where the server runs.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from studiobook.config.settings import settings

OPERATING_TZ = ZoneInfo(settings.TIMEZONE)


def now_local(aware: bool = False) -> datetime:
    """
    Return the current time in the operating timezone.

    Args:
        aware: When True, returns a timezone-aware datetime. When False (default),
            returns a naive datetime to match stored booking date/time values.
    """
    current = datetime.now(timezone.utc).astimezone(OPERATING_TZ)
    return current if aware else current.replace(tzinfo=None)


def localize(value: datetime) -> datetime:
    """Attach the operating timezone to a naive local datetime."""
    if value.tzinfo is not None:
        return value.astimezone(OPERATING_TZ)
    return value.replace(tzinfo=OPERATING_TZ)
