"""
Google Calendar mirror of confirmed bookings.

The calendar is advisory only: it mirrors bookings for the trainer and
contributes busy intervals to availability, but the database stays the
source of truth. Every call may fail; callers treat failure as "no
information".

The Google client is synchronous, so calls run in a worker thread with a
timeout to keep them from stalling the event loop.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from functools import lru_cache

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from studiobook.config.settings import settings
from studiobook.core.timezone import OPERATING_TZ, localize

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = ["https://www.googleapis.com/auth/calendar.events"]


@dataclass(frozen=True)
class BusyInterval:
    """A busy block of the day, in minutes since midnight."""

    start_minute: int
    end_minute: int
    event_id: str | None = None


class GoogleCalendarMirror:
    """Create, update, delete and list events on the studio calendar."""

    def __init__(
        self,
        calendar_id: str | None = None,
        timeout: float | None = None,
        service=None,
    ):
        self.calendar_id = calendar_id or settings.GOOGLE_CALENDAR_ID
        self.timeout = timeout or settings.SIDE_EFFECT_TIMEOUT_SECONDS
        self._service = service
        self.enabled = service is not None or settings.calendar_enabled
        if not self.enabled:
            logger.warning("Google Calendar not configured, calendar mirror disabled")

    def _get_service(self):
        """Build the Calendar API client from the stored refresh token."""
        if self._service is None:
            credentials = Credentials(
                token=None,
                refresh_token=settings.GOOGLE_REFRESH_TOKEN,
                token_uri=TOKEN_URI,
                client_id=settings.GOOGLE_CLIENT_ID,
                client_secret=settings.GOOGLE_CLIENT_SECRET,
                scopes=SCOPES,
            )
            self._service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
        return self._service

    async def _call(self, fn):
        return await asyncio.wait_for(asyncio.to_thread(fn), timeout=self.timeout)

    @staticmethod
    def _event_body(title: str, description: str, start: datetime, end: datetime) -> dict:
        return {
            "summary": title,
            "description": description,
            "start": {
                "dateTime": localize(start).isoformat(),
                "timeZone": settings.TIMEZONE,
            },
            "end": {
                "dateTime": localize(end).isoformat(),
                "timeZone": settings.TIMEZONE,
            },
        }

    async def create_event(
        self,
        title: str,
        description: str,
        start: datetime,
        end: datetime,
    ) -> str | None:
        """Create an event and return its id, or None when the mirror is disabled.

        Raises:
            HttpError: If the API call fails
            asyncio.TimeoutError: If the call exceeds the timeout
        """
        if not self.enabled:
            return None
        body = self._event_body(title, description, start, end)

        def _insert():
            return self._get_service().events().insert(
                calendarId=self.calendar_id,
                body=body,
            ).execute()

        created = await self._call(_insert)
        event_id = created.get("id")
        logger.info("Created Google Calendar event: %s", event_id)
        return event_id

    async def update_event(
        self,
        event_id: str,
        title: str,
        description: str,
        start: datetime,
        end: datetime,
    ) -> None:
        if not self.enabled:
            return
        body = self._event_body(title, description, start, end)

        def _patch():
            return self._get_service().events().patch(
                calendarId=self.calendar_id,
                eventId=event_id,
                body=body,
            ).execute()

        await self._call(_patch)
        logger.info("Updated Google Calendar event: %s", event_id)

    async def delete_event(self, event_id: str) -> None:
        if not self.enabled:
            return

        def _delete():
            return self._get_service().events().delete(
                calendarId=self.calendar_id,
                eventId=event_id,
            ).execute()

        try:
            await self._call(_delete)
        except HttpError as e:
            # Already gone is the outcome we wanted.
            if e.resp.status in (404, 410):
                logger.info("Google Calendar event %s already deleted", event_id)
                return
            raise
        logger.info("Deleted Google Calendar event: %s", event_id)

    async def list_busy_intervals(self, day: date) -> list[BusyInterval]:
        """List timed events of ``day`` as busy intervals.

        All-day events are ignored. Events crossing midnight are clipped
        to the day.
        """
        if not self.enabled:
            return []
        day_start = datetime.combine(day, time.min, tzinfo=OPERATING_TZ)
        day_end = day_start + timedelta(days=1)

        def _list():
            return self._get_service().events().list(
                calendarId=self.calendar_id,
                timeMin=day_start.isoformat(),
                timeMax=day_end.isoformat(),
                singleEvents=True,
                orderBy="startTime",
            ).execute()

        response = await self._call(_list)
        intervals = []
        for event in response.get("items", []):
            start_raw = event.get("start", {}).get("dateTime")
            end_raw = event.get("end", {}).get("dateTime")
            if not start_raw or not end_raw:
                continue
            start = datetime.fromisoformat(start_raw).astimezone(OPERATING_TZ)
            end = datetime.fromisoformat(end_raw).astimezone(OPERATING_TZ)
            start_minute = max(0, int((start - day_start).total_seconds() // 60))
            end_minute = min(24 * 60, int((end - day_start).total_seconds() // 60))
            if end_minute > start_minute:
                intervals.append(BusyInterval(start_minute, end_minute, event.get("id")))
        return intervals


@lru_cache
def get_calendar_mirror() -> GoogleCalendarMirror:
    """Get the process-wide calendar mirror."""
    return GoogleCalendarMirror()
