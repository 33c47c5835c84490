"""Booking-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.booking import BookingStatus


class PassengerInfo(BaseModel):
    """Passenger details; blank values are rejected by the booking service."""

    name: str = Field(..., max_length=100, description="Passenger full name")
    phone: str = Field(..., max_length=20, description="Contact phone number")
    email: str = Field(..., max_length=100, description="Contact email address")


class CreateBookingRequest(BaseModel):
    """Request schema for turning a live hold into a pending booking."""

    hold_id: str = Field(..., min_length=1, description="Hold being booked")
    trip_id: Optional[str] = Field(None, description="Trip the client believes the hold is for")
    seat_numbers: Optional[List[str]] = Field(None, description="Seats to book; defaults to every held seat")
    passengers: List[PassengerInfo] = Field(..., description="One passenger per seat, in seat order")
    holder_id: Optional[str] = Field(None, max_length=128, description="Caller; must own the hold when given")


class ConfirmBookingRequest(BaseModel):
    """Request schema for confirming a pending booking after payment."""

    booking_id: str = Field(..., min_length=1, description="Booking to confirm")
    payment_reference: str = Field(..., min_length=1, max_length=100, description="Payment transaction reference")


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: str = Field(..., min_length=1, description="Booking to cancel")
    holder_id: Optional[str] = Field(None, max_length=128, description="Caller; must own the booking when given")
    reason: Optional[str] = Field(None, max_length=500, description="Cancellation reason")


class FailBookingRequest(BaseModel):
    """Request schema for recording a failed payment on a pending booking."""

    booking_id: str = Field(..., min_length=1, description="Booking whose payment failed")
    reason: str = Field("payment_failed", max_length=500, description="Failure reason")


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking."""

    booking_id: str = Field(..., description="Booking to retrieve")


class LookupBookingRequest(BaseModel):
    """Request schema for finding a booking by PNR."""

    pnr: str = Field(..., min_length=10, max_length=10, description="Passenger name record")


class ListBookingsRequest(BaseModel):
    """Request schema for listing a holder's bookings."""

    holder_id: str = Field(..., min_length=1, max_length=128, description="Booking owner")
    status: Optional[BookingStatus] = Field(None, description="Only bookings in this status")
    limit: int = Field(50, ge=1, le=200, description="Maximum bookings returned")


class Booking(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique booking ID")
    pnr: str = Field(..., description="Passenger name record")
    trip_id: str = Field(..., description="Trip booked")
    holder_id: str = Field(..., description="Booking owner")
    hold_id: str = Field(..., description="Hold the booking was created from")
    seat_numbers: List[str] = Field(..., description="Booked seats")
    passengers: List[PassengerInfo] = Field(..., description="Passengers in seat order")
    base_fare: Decimal
    taxes: Decimal
    service_fee: Decimal
    total_amount: Decimal
    status: BookingStatus = Field(..., description="Booking status")
    payment_reference: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = Field(None, description="Booking creation time (UTC)")
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class CancelBookingResponse(BaseModel):
    """Cancellation result."""

    cancelled: bool
    hold_released: bool = Field(..., description="True when a pending booking's hold was released")
    booking: Booking


class BookingListResponse(BaseModel):
    """Bookings belonging to one holder, newest first."""

    bookings: List[Booking]
