"""Booking model."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from beautyhub.db.base import Base, TimestampMixin


class BookingStatus(str, Enum):
    """Booking lifecycle status."""

    INQUIRY = "inquiry"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class Booking(Base, TimestampMixin):
    """Appointment booked by a customer with a provider."""

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_number: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True)
    provider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=BookingStatus.PENDING.value, index=True
    )
    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    referral_source: Mapped[str | None] = mapped_column(
        String(100), nullable=True, comment="Set when the booking came through a referral"
    )
    booking_source: Mapped[str | None] = mapped_column(
        String(50), nullable=True, comment="online, walk_in, ..."
    )

    def __repr__(self) -> str:
        return f"<Booking {self.booking_number or self.id} - {self.scheduled_at} ({self.status})>"
