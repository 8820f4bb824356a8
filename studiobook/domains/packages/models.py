"""Session package models."""
import uuid

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studiobook.config.database import Base
from studiobook.core.models import TimestampMixin, UUIDMixin


class Package(Base, UUIDMixin, TimestampMixin):
    """A prepaid quota of training sessions, owned by one or more athletes."""

    __tablename__ = "packages"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=60,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    participants = relationship(
        "UserPackage",
        back_populates="package",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class UserPackage(Base, UUIDMixin, TimestampMixin):
    """Ledger row: how many sessions of a package one participant has used."""

    __tablename__ = "user_packages"
    __table_args__ = (
        UniqueConstraint("package_id", "user_id", name="uq_user_packages_package_user"),
        CheckConstraint("used_sessions >= 0", name="ck_user_packages_used_non_negative"),
    )

    package_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("packages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    used_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    package = relationship("Package", back_populates="participants", lazy="selectin")
    user = relationship("User", lazy="selectin")
