"""Booking schemas for API validation."""
import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import MAX_DURATION_MINUTES, MIN_DURATION_MINUTES, BookingStatus


class AvailableSlotsResponse(BaseModel):
    """Open slots of one day."""

    date: datetime.date
    slots: list[str]


class BookingCreate(BaseModel):
    """Schema for creating a booking.

    ``user_id`` is honoured for admins only: the session is booked for that
    client instead of the caller.
    """

    date: datetime.date
    time: str = Field(examples=["09:30"])
    package_id: UUID
    user_id: UUID | None = None


class BookingReschedule(BaseModel):
    """Schema for moving a booking. Omitted fields keep their current value."""

    date: datetime.date | None = None
    time: str | None = Field(default=None, examples=["10:00"])
    duration_minutes: int | None = Field(
        default=None, ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES
    )


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    package_id: UUID
    date: datetime.date
    time: str
    duration_minutes: int
    status: BookingStatus
    google_event_id: str | None = None


class CancelResponse(BaseModel):
    success: bool = True
