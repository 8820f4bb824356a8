"""Shared test constants and helpers."""
from datetime import date, datetime
from typing import Any

# Monday 2 March 2026, 08:00 in the operating timezone
NOW = datetime(2026, 3, 2, 8, 0)
TODAY = NOW.date()
TOMORROW = date(2026, 3, 3)


def fixed_clock() -> datetime:
    return NOW


def auth_headers(user: dict[str, Any]) -> dict[str, str]:
    """Identity headers as forwarded by the gateway."""
    return {"X-User-Id": str(user["id"]), "X-User-Role": user["role"].value}
