"""Seat selection and hold Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SeatClassification(str, Enum):
    """Point-in-time state of a seat on a trip; booked wins over held, held over available."""
    AVAILABLE = "available"
    HELD = "held"
    BOOKED = "booked"


class SelectSeatsRequest(BaseModel):
    """Request schema for holding seats on a trip."""

    trip_id: str = Field(..., min_length=1, description="Trip to hold seats on")
    seat_numbers: List[str] = Field(..., description="Seat numbers to hold, in display order")
    holder_id: str = Field(..., min_length=1, max_length=128, description="User or anonymous session id")


class HoldRequest(BaseModel):
    """Request schema for operations addressing a single hold."""

    hold_id: str = Field(..., min_length=1, description="Hold identifier")


class ExtendHoldRequest(BaseModel):
    """Request schema for extending a hold."""

    hold_id: str = Field(..., min_length=1, description="Hold identifier")
    minutes: int = Field(..., description="Minutes to add to the current expiry")


class FareRequest(BaseModel):
    """Request schema for a fare quote."""

    trip_id: str = Field(..., min_length=1, description="Trip to price")
    seat_numbers: List[str] = Field(..., description="Seats to price")


class Hold(BaseModel):
    """Hold response schema."""

    model_config = ConfigDict(from_attributes=True)

    hold_id: str = Field(..., description="Opaque hold identifier")
    trip_id: str = Field(..., description="Trip the seats belong to")
    seat_numbers: List[str] = Field(..., description="Held seats")
    holder_id: str = Field(..., description="Owner of the hold")
    created_at: datetime = Field(..., description="Hold creation time (UTC)")
    expires_at: datetime = Field(..., description="Hold expiry time (UTC)")


class ReleaseHoldResponse(BaseModel):
    """Release result; False when the hold had already expired or never existed."""

    released: bool


class ExtendHoldResponse(BaseModel):
    """Extend result with the new expiry when the hold was still live."""

    extended: bool
    expires_at: Optional[datetime] = None


class SeatView(BaseModel):
    """One seat of a trip's layout with its current classification."""

    number: str
    row: int
    column: int
    status: SeatClassification
    price: Decimal


class SeatLayoutResponse(BaseModel):
    """Full seat map of a trip."""

    trip_id: str
    rows: int
    columns: int
    seats: List[SeatView]
    available_count: int
    held_count: int
    booked_count: int


class FareSummary(BaseModel):
    """Fare breakdown for a seat selection."""

    trip_id: str
    seat_count: int
    price_per_seat: Decimal
    base_fare: Decimal
    taxes: Decimal
    service_fee: Decimal
    total_amount: Decimal
