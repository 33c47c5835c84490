"""Bus and Trip model definitions (read side consumed by seat selection)."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base


def _new_id() -> str:
    return str(uuid4())


class Bus(Base):
    """Bus entity carrying the static seat layout."""

    __tablename__ = "buses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    company_name: Mapped[str] = mapped_column(String(100), nullable=False)
    bus_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    total_seats: Mapped[int] = mapped_column(Integer, nullable=False)

    # {"rows": int, "columns": int, "seats": [{"number": str, "row": int, "column": int}]}
    seat_layout: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("total_seats > 0", name="ck_bus_total_seats_positive"),
    )

    trips: Mapped[list["Trip"]] = relationship("Trip", back_populates="bus")

    def __repr__(self) -> str:
        return f"<Bus(id={self.id}, bus_number='{self.bus_number}', total_seats={self.total_seats})>"


class Trip(Base):
    """Trip entity: one scheduled run of a bus with a flat per-seat price."""

    __tablename__ = "trips"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    bus_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("buses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    departure_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    arrival_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_trip_price_non_negative"),
        CheckConstraint("arrival_time > departure_time", name="ck_trip_arrival_after_departure"),
    )

    bus: Mapped["Bus"] = relationship("Bus", back_populates="trips", lazy="joined")

    def __repr__(self) -> str:
        return f"<Trip(id={self.id}, bus_id={self.bus_id}, departure_time={self.departure_time})>"
