"""Booking model definition."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class Booking(Base):
    """
    Booking entity created from a live seat hold.

    The hold id is recorded when the booking is created so confirmation,
    cancellation and failure can release the originating hold.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    pnr: Mapped[str] = mapped_column(String(10), nullable=False, unique=True, index=True)

    trip_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    holder_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    hold_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    seat_numbers: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    passengers: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)

    # Fare breakdown
    base_fare: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    taxes: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    service_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now()
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_booking_total_non_negative"),
        CheckConstraint("length(pnr) = 10", name="ck_booking_pnr_length"),
        CheckConstraint("length(holder_id) > 0", name="ck_booking_holder_not_empty"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, pnr='{self.pnr}', hold_id={self.hold_id}, "
            f"seats={self.seat_numbers}, status={self.status})>"
        )
