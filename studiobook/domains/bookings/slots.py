"""The canonical time grid of a studio day.

Every component that needs to know which times exist goes through
``generate_slots`` so the admin and client views never drift apart.
"""
import re
from datetime import date, datetime, timedelta

OPENING_MINUTE = 6 * 60
LAST_SLOT_MINUTE = 21 * 60 + 30
SLOT_STEP_MINUTES = 30
# Half-open lunch blackout [14:00, 15:30)
BLACKOUT_START_MINUTE = 14 * 60
BLACKOUT_END_MINUTE = 15 * 60 + 30

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def generate_slots() -> list[str]:
    """Return the bookable ``HH:MM`` slots of a day, ascending."""
    return [
        minutes_to_time_str(minute)
        for minute in range(OPENING_MINUTE, LAST_SLOT_MINUTE + 1, SLOT_STEP_MINUTES)
        if not BLACKOUT_START_MINUTE <= minute < BLACKOUT_END_MINUTE
    ]


def is_grid_slot(time_str: str) -> bool:
    return time_str in _GRID


def time_str_to_minutes(time_str: str) -> int:
    """Convert ``HH:MM`` to minutes since midnight.

    Raises:
        ValueError: If the string is not a valid 24-hour time
    """
    match = TIME_PATTERN.match(time_str)
    if not match:
        raise ValueError(f"Invalid time format: {time_str!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time_str(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def slot_datetime(day: date, time_str: str) -> datetime:
    """Combine a day and an ``HH:MM`` slot into a naive local datetime."""
    return datetime.combine(day, datetime.min.time()) + timedelta(
        minutes=time_str_to_minutes(time_str)
    )


_GRID = frozenset(generate_slots())
