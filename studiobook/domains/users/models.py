"""User models for the studio."""
import enum

from sqlalchemy import Boolean, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from studiobook.config.database import Base
from studiobook.core.models import TimestampMixin, UUIDMixin


class UserRole(str, enum.Enum):
    """Role of a studio user."""

    CLIENT = "CLIENT"
    ADMIN = "ADMIN"


class User(Base, UUIDMixin, TimestampMixin):
    """A client or the studio operator."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole),
        nullable=False,
        default=UserRole.CLIENT,
    )
    booking_reminders: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False, server_default="true",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def can_receive_messages(self) -> bool:
        """Whether the user has a phone and opted in to booking messages."""
        return bool(self.phone) and self.booking_reminders
