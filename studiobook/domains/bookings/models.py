"""Booking models."""
import enum
import uuid
from datetime import date

from sqlalchemy import Boolean, Date, Enum, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studiobook.config.database import Base
from studiobook.core.models import TimestampMixin, UUIDMixin

# Bounds for an admin-set session length
MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 240


class BookingStatus(str, enum.Enum):
    """Booking status. Bookings are never deleted, only cancelled."""

    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class Booking(Base, UUIDMixin, TimestampMixin):
    """A confirmed (or cancelled) session with the trainer."""

    __tablename__ = "bookings"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    package_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("packages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    time: Mapped[str] = mapped_column(String(5), nullable=False)  # HH:MM
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus),
        nullable=False,
        default=BookingStatus.CONFIRMED,
        index=True,
    )
    google_event_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reminder_sent: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, server_default="false",
    )

    user = relationship("User", lazy="selectin")
    package = relationship("Package", lazy="selectin")
