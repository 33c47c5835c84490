"""Seat selection service: the hold-management API exposed to request handlers."""

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import ConflictError, HoldExpiredError, StateError, ValidationError
from ..core.store import ExpiringStore
from ..models.trip import Trip
from ..schemas.seat import FareSummary, SeatLayoutResponse, SelectSeatsRequest
from .booking_repository import BookingRepository
from .pricing import compute_fare
from .seat_availability import SeatAvailabilityResolver
from .seat_lock_manager import Clock, ExtendResult, HoldRecord, RejectionReason, ReleaseOutcome, SeatLockManager
from .trip_service import TripService

logger = logging.getLogger(__name__)


class SeatConflictError(ConflictError):
    """Exception when a requested seat is already held or booked."""

    def __init__(self, trip_id: str, seat_number: str, reason: RejectionReason):
        state = "booked" if reason == RejectionReason.ALREADY_BOOKED else "held by another traveller"
        super().__init__(
            detail=f"Seat {seat_number} on trip {trip_id} is already {state}",
            conflicting_resource={
                "trip_id": trip_id,
                "seat_number": seat_number,
            }
        )
        self.problem_details.update({
            "code": reason.value,
            "retryable": reason == RejectionReason.ALREADY_HELD,
        })


class SeatSelectionService:
    """Service for seat maps, seat holds and fare quotes."""

    def __init__(self, db: AsyncSession, store: ExpiringStore, clock: Clock = datetime.utcnow):
        self.db = db
        self.bookings = BookingRepository(db)
        self.trip_service = TripService(db)
        self.lock_manager = SeatLockManager(store, self.bookings, clock=clock)
        self.resolver = SeatAvailabilityResolver(self.lock_manager, self.bookings, self.trip_service)

    async def select_seats(self, request: SelectSeatsRequest) -> HoldRecord:
        """
        Hold the requested seats for the caller.

        Args:
            request: Trip, seats and holder

        Returns:
            The new hold

        Raises:
            ValidationError: If the seat list is empty, repeats a seat, is too long or names unknown seats
            NotFoundError: If the trip or its layout cannot be resolved
            StateError: If the trip is closed for sale
            SeatConflictError: If any seat is already held or booked
        """
        trip = await self.trip_service.get_trip_or_raise(request.trip_id)
        if not trip.is_open:
            raise StateError(resource_type="trip", resource_id=trip.id, current_state="closed")

        self._validate_seat_selection(trip, request.seat_numbers)

        result = await self.lock_manager.acquire(request.trip_id, request.seat_numbers, request.holder_id)
        if not result.acquired:
            raise SeatConflictError(request.trip_id, result.seat_number, result.rejection)

        return result.hold

    async def release_hold(self, hold_id: str) -> bool:
        """Release a hold; False when it had already expired or never existed."""
        outcome = await self.lock_manager.release(hold_id)
        return outcome == ReleaseOutcome.RELEASED

    async def extend_hold(self, hold_id: str, minutes: int) -> ExtendResult:
        """
        Extend a live hold by a whole number of minutes.

        Raises:
            ValidationError: If minutes is outside 1..hold_max_extension_minutes
        """
        if minutes < 1 or minutes > settings.hold_max_extension_minutes:
            raise ValidationError(
                detail=f"Extension must be between 1 and {settings.hold_max_extension_minutes} minutes",
                errors={"minutes": minutes},
            )
        return await self.lock_manager.extend(hold_id, timedelta(minutes=minutes))

    async def get_hold(self, hold_id: str) -> HoldRecord:
        """Return a live hold or raise HoldExpiredError."""
        hold = await self.lock_manager.get_hold(hold_id)
        if hold is None or not hold.is_live(self.lock_manager.clock()):
            raise HoldExpiredError(hold_id)
        return hold

    async def get_layout(self, trip_id: str) -> SeatLayoutResponse:
        return await self.resolver.build_layout(trip_id)

    async def get_fare_summary(self, trip_id: str, seat_numbers: list[str]) -> FareSummary:
        """Quote base fare, taxes, service fee and total for a seat selection."""
        trip = await self.trip_service.get_trip_or_raise(trip_id)
        self._validate_seat_selection(trip, seat_numbers)

        fare = compute_fare(trip.price, len(seat_numbers))
        return FareSummary(trip_id=trip_id, **fare.model_dump())

    def _validate_seat_selection(self, trip: Trip, seat_numbers: list[str]) -> None:
        if not seat_numbers:
            raise ValidationError(detail="Select at least one seat")

        if len(seat_numbers) > settings.hold_max_seats:
            raise ValidationError(
                detail=f"At most {settings.hold_max_seats} seats can be selected at once",
                errors={"seat_count": len(seat_numbers)},
            )

        duplicates = sorted({seat for seat in seat_numbers if seat_numbers.count(seat) > 1})
        if duplicates:
            raise ValidationError(
                detail="Each seat may be selected only once",
                errors={"duplicate_seats": duplicates},
            )

        known = set(self.trip_service.get_seat_config(trip).seat_numbers)
        unknown = [seat for seat in seat_numbers if seat not in known]
        if unknown:
            raise ValidationError(
                detail=f"Seats not on this bus: {', '.join(unknown)}",
                errors={"unknown_seats": unknown},
            )
