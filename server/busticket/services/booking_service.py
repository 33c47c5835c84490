"""Booking service: converts live seat holds into bookings and back."""

import logging
import secrets
import string
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import HoldExpiredError, NotFoundError, StateError, UnavailableError, ValidationError
from ..core.observability import metrics_collector
from ..core.store import ExpiringStore
from ..models.booking import Booking, BookingStatus
from ..schemas.booking import (
    CancelBookingRequest,
    ConfirmBookingRequest,
    CreateBookingRequest,
    FailBookingRequest,
    PassengerInfo,
)
from .booking_repository import BookingRepository
from .pricing import compute_fare
from .seat_lock_manager import Clock, HoldRecord, RejectionReason, ReleaseOutcome, SeatLockManager
from .seat_selection_service import SeatConflictError
from .trip_service import TripService

logger = logging.getLogger(__name__)

PNR_ALPHABET = string.ascii_uppercase + string.digits
PNR_LENGTH = 10


class BookingService:
    """
    Service for the hold to booking handoff.

    Lifecycle: hold active -> PENDING (hold kept) -> CONFIRMED, FAILED or
    CANCELLED (hold released). Status writes are committed before the hold
    is released, so a crash in between leaves seats over-held rather than
    double-sold.
    """

    def __init__(self, db: AsyncSession, store: ExpiringStore, clock: Clock = datetime.utcnow):
        self.db = db
        self.bookings = BookingRepository(db)
        self.trip_service = TripService(db)
        self.lock_manager = SeatLockManager(store, self.bookings, clock=clock)
        self.clock = clock

    def _generate_pnr(self) -> str:
        """Generate a random passenger name record."""
        return ''.join(secrets.choice(PNR_ALPHABET) for _ in range(PNR_LENGTH))

    async def _unique_pnr(self) -> str:
        pnr = self._generate_pnr()
        while await self.bookings.get_by_pnr(pnr):
            pnr = self._generate_pnr()
        return pnr

    async def create_booking(self, request: CreateBookingRequest) -> Booking:
        """
        Create a PENDING booking from a live hold.

        The hold is left in place so nobody else can take the seats while
        payment is in flight.

        Args:
            request: Hold, optional trip/seats echo, passengers and optional holder

        Returns:
            The pending booking (a repeated request for a hold that already has a
            pending booking with the same seats and passengers returns that booking)

        Raises:
            ValidationError: On malformed passengers, seat/passenger count mismatch,
                a hold for another trip or seat set (HOLD_MISMATCH), another holder (NOT_OWNER),
                or details differing from the hold's pending booking (BOOKING_MISMATCH)
            HoldExpiredError: If the hold is unknown or has lapsed
            NotFoundError: If the trip no longer exists
        """
        if request.seat_numbers is not None:
            self._validate_seat_list(request.seat_numbers)
            self._validate_passenger_count(request.passengers, len(request.seat_numbers))
        self._validate_passengers(request.passengers)

        hold = await self.lock_manager.get_hold(request.hold_id)
        if hold is None or not hold.is_live(self.clock()):
            logger.warning(
                "Booking creation failed - hold expired",
                extra={"hold_id": request.hold_id, "holder_id": request.holder_id}
            )
            raise HoldExpiredError(request.hold_id)

        seat_numbers = request.seat_numbers if request.seat_numbers is not None else list(hold.seat_numbers)
        self._validate_hold_matches(hold, request, seat_numbers)
        self._validate_passenger_count(request.passengers, len(seat_numbers))

        existing = await self.bookings.get_pending_by_hold_id(hold.hold_id)
        if existing:
            self._validate_matches_existing(existing, request, seat_numbers)
            logger.info(
                "Pending booking already exists for hold - returning existing booking",
                extra={"hold_id": hold.hold_id, "booking_id": existing.id}
            )
            return existing

        trip = await self.trip_service.get_trip_or_raise(hold.trip_id)
        fare = compute_fare(trip.price, len(seat_numbers))

        booking = Booking(
            pnr=await self._unique_pnr(),
            trip_id=hold.trip_id,
            holder_id=hold.holder_id,
            hold_id=hold.hold_id,
            seat_numbers=seat_numbers,
            passengers=[passenger.model_dump() for passenger in request.passengers],
            base_fare=fare.base_fare,
            taxes=fare.taxes,
            service_fee=fare.service_fee,
            total_amount=fare.total_amount,
            status=BookingStatus.PENDING,
            created_at=self.clock(),
        )
        booking = await self.bookings.insert(booking)

        metrics_collector.record_booking_created()
        logger.info(
            "Pending booking created",
            extra={
                "booking_id": booking.id,
                "pnr": booking.pnr,
                "hold_id": hold.hold_id,
                "trip_id": hold.trip_id,
                "seat_numbers": seat_numbers,
                "total_amount": str(booking.total_amount),
            }
        )
        return booking

    async def confirm_booking(self, request: ConfirmBookingRequest) -> Booking:
        """
        Confirm a PENDING booking after payment, then release its hold.

        Raises:
            NotFoundError: If the booking does not exist
            StateError: If the booking is not PENDING (duplicate or concurrent confirmation included)
            SeatConflictError: If another confirmed booking already owns one of the seats;
                the booking is marked FAILED
        """
        booking = await self.get_booking_or_raise(request.booking_id)
        self._require_pending(booking, action="confirm")

        taken = await self.bookings.booked_seat_numbers(booking.trip_id, exclude_booking_id=booking.id)
        clash = [seat for seat in booking.seat_numbers if seat in taken]
        if clash:
            # Only reachable when the hold lapsed during payment and the seats were resold
            await self._mark_failed(booking, reason="seat_already_booked", action="confirm")
            raise SeatConflictError(booking.trip_id, clash[0], RejectionReason.ALREADY_BOOKED)

        confirmed = await self.bookings.transition_status(
            booking,
            BookingStatus.PENDING,
            BookingStatus.CONFIRMED,
            payment_reference=request.payment_reference,
            confirmed_at=self.clock(),
        )
        if not confirmed:
            raise self._not_pending(booking, action="confirm")

        metrics_collector.record_booking_confirmed()
        logger.info(
            "Booking confirmed",
            extra={
                "booking_id": booking.id,
                "pnr": booking.pnr,
                "payment_reference": request.payment_reference,
            }
        )

        await self._release_hold(booking)
        return booking

    async def cancel_booking(self, request: CancelBookingRequest) -> tuple[Booking, bool]:
        """
        Cancel a booking; a PENDING booking's hold is released.

        Returns:
            The cancelled booking and whether a hold was released

        Raises:
            NotFoundError: If the booking does not exist
            ValidationError: If holder_id is given and does not own the booking (NOT_OWNER)
            StateError: If the booking is already CANCELLED, or its status changed
                while the cancellation was being applied
        """
        booking = await self.get_booking_or_raise(request.booking_id)

        if request.holder_id is not None and request.holder_id != booking.holder_id:
            logger.warning(
                "Booking cancellation refused - not owner",
                extra={"booking_id": booking.id, "holder_id": request.holder_id}
            )
            raise ValidationError(
                detail="This booking belongs to another holder",
                code="NOT_OWNER",
            )

        if booking.status == BookingStatus.CANCELLED:
            raise StateError(
                resource_type="booking",
                resource_id=booking.id,
                current_state=BookingStatus.CANCELLED.value,
                detail=f"Booking {booking.pnr} is already cancelled",
            )

        previous_status = booking.status
        cancelled = await self.bookings.transition_status(
            booking,
            previous_status,
            BookingStatus.CANCELLED,
            cancellation_reason=request.reason,
            cancelled_at=self.clock(),
        )
        if not cancelled:
            logger.warning(
                "Booking cancellation refused - status changed concurrently",
                extra={"booking_id": booking.id, "expected": previous_status, "status": booking.status}
            )
            raise StateError(
                resource_type="booking",
                resource_id=booking.id,
                current_state=BookingStatus(booking.status).value,
                detail=f"Booking {booking.pnr} became {BookingStatus(booking.status).value} while being cancelled",
            )

        metrics_collector.record_booking_cancelled()
        logger.info(
            "Booking cancelled",
            extra={
                "booking_id": booking.id,
                "pnr": booking.pnr,
                "previous_status": previous_status,
                "reason": request.reason,
            }
        )

        hold_released = False
        if previous_status == BookingStatus.PENDING:
            hold_released = await self._release_hold(booking)
        return booking, hold_released

    async def fail_booking(self, request: FailBookingRequest) -> Booking:
        """
        Record a failed payment: PENDING becomes FAILED and the hold is released.

        Raises:
            NotFoundError: If the booking does not exist
            StateError: If the booking is not PENDING
        """
        booking = await self.get_booking_or_raise(request.booking_id)
        self._require_pending(booking, action="fail")
        return await self._mark_failed(booking, reason=request.reason, action="fail")

    async def expire_stale_bookings(self, batch_size: int = 100) -> int:
        """
        Fail PENDING bookings whose hold is no longer valid.

        Args:
            batch_size: Number of pending bookings examined in one pass

        Returns:
            Number of bookings moved to FAILED
        """
        pending = await self.bookings.list_pending_created_before(self.clock(), limit=batch_size)

        failed_count = 0
        for booking in pending:
            if await self.lock_manager.is_valid(booking.hold_id):
                continue

            failed = await self.bookings.transition_status(
                booking,
                BookingStatus.PENDING,
                BookingStatus.FAILED,
                cancellation_reason="hold_expired",
            )
            if not failed:
                logger.info(
                    "Stale booking left as is - status changed during sweep",
                    extra={"booking_id": booking.id, "status": booking.status}
                )
                continue

            failed_count += 1
            metrics_collector.record_booking_failed("hold_expired")
            logger.info(
                "Pending booking failed - hold expired",
                extra={"booking_id": booking.id, "hold_id": booking.hold_id}
            )

        if failed_count > 0:
            logger.info(
                "Stale booking batch completed",
                extra={"failed_count": failed_count, "batch_size": batch_size}
            )

        return failed_count

    async def get_booking(self, booking_id: str) -> Booking:
        return await self.get_booking_or_raise(booking_id)

    async def get_booking_by_pnr(self, pnr: str) -> Booking:
        """Get booking by PNR or raise NotFoundError."""
        booking = await self.bookings.get_by_pnr(pnr.upper())
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=pnr)
        return booking

    async def list_holder_bookings(
        self,
        holder_id: str,
        status: Optional[BookingStatus] = None,
        limit: int = 50,
    ) -> list[Booking]:
        return await self.bookings.list_by_holder(holder_id, status=status, limit=limit)

    async def get_booking_or_raise(self, booking_id: str) -> Booking:
        """Get booking by ID or raise NotFoundError."""
        booking = await self.bookings.get_by_id(booking_id)
        if not booking:
            logger.warning("Booking not found", extra={"booking_id": booking_id})
            raise NotFoundError(resource_type="booking", resource_id=booking_id)
        return booking

    async def _mark_failed(self, booking: Booking, reason: str, action: str) -> Booking:
        failed = await self.bookings.transition_status(
            booking,
            BookingStatus.PENDING,
            BookingStatus.FAILED,
            cancellation_reason=reason,
        )
        if not failed:
            raise self._not_pending(booking, action=action)

        metrics_collector.record_booking_failed(reason)
        logger.info(
            "Booking failed",
            extra={"booking_id": booking.id, "pnr": booking.pnr, "reason": reason}
        )

        await self._release_hold(booking)
        return booking

    async def _release_hold(self, booking: Booking) -> bool:
        """
        Release the booking's hold after its status write has been committed.

        A store outage is logged rather than raised; the hold then lapses by TTL.
        """
        try:
            outcome = await self.lock_manager.release(booking.hold_id)
        except UnavailableError:
            logger.warning(
                "Hold release failed after booking update; hold will lapse by TTL",
                extra={"booking_id": booking.id, "hold_id": booking.hold_id}
            )
            return False
        return outcome == ReleaseOutcome.RELEASED

    def _require_pending(self, booking: Booking, action: str) -> None:
        if booking.status != BookingStatus.PENDING:
            raise self._not_pending(booking, action)

    def _not_pending(self, booking: Booking, action: str) -> StateError:
        logger.warning(
            f"Booking {action} refused - not pending",
            extra={"booking_id": booking.id, "status": booking.status}
        )
        return StateError(
            resource_type="booking",
            resource_id=booking.id,
            current_state=str(BookingStatus(booking.status).value),
            detail=f"Booking {booking.pnr} is {BookingStatus(booking.status).value}, only PENDING bookings can {action}",
        )

    def _validate_matches_existing(
        self,
        existing: Booking,
        request: CreateBookingRequest,
        seat_numbers: list[str],
    ) -> None:
        passengers = [passenger.model_dump() for passenger in request.passengers]
        if list(existing.seat_numbers) != seat_numbers or list(existing.passengers) != passengers:
            logger.warning(
                "Booking creation refused - hold already has a different pending booking",
                extra={"hold_id": existing.hold_id, "booking_id": existing.id}
            )
            raise ValidationError(
                detail=f"Booking {existing.pnr} is already pending for this hold with different seats or passengers",
                errors={"booking_id": existing.id},
                code="BOOKING_MISMATCH",
            )

    def _validate_seat_list(self, seat_numbers: list[str]) -> None:
        if not seat_numbers:
            raise ValidationError(detail="Select at least one seat")
        if len(set(seat_numbers)) != len(seat_numbers):
            raise ValidationError(
                detail="Each seat may be booked only once",
                errors={"seat_numbers": seat_numbers},
            )

    def _validate_passenger_count(self, passengers: list[PassengerInfo], seat_count: int) -> None:
        if len(passengers) != seat_count:
            raise ValidationError(
                detail=f"Expected {seat_count} passengers for {seat_count} seats, got {len(passengers)}",
                errors={"passengers": len(passengers), "seats": seat_count},
            )

    def _validate_passengers(self, passengers: list[PassengerInfo]) -> None:
        errors: dict[str, str] = {}
        for index, passenger in enumerate(passengers):
            for field in ("name", "phone", "email"):
                if not getattr(passenger, field).strip():
                    errors[f"passengers.{index}.{field}"] = "must not be blank"
            if passenger.email.strip() and "@" not in passenger.email:
                errors[f"passengers.{index}.email"] = "must be an email address"

        if errors:
            raise ValidationError(detail="Passenger details are incomplete", errors=errors)

    def _validate_hold_matches(self, hold: HoldRecord, request: CreateBookingRequest, seat_numbers: list[str]) -> None:
        if request.trip_id is not None and request.trip_id != hold.trip_id:
            raise ValidationError(
                detail="The seat hold belongs to a different trip",
                errors={"trip_id": request.trip_id},
                code="HOLD_MISMATCH",
            )

        not_held = [seat for seat in seat_numbers if seat not in hold.seat_numbers]
        if not_held:
            raise ValidationError(
                detail=f"Seats not covered by the hold: {', '.join(not_held)}",
                errors={"seat_numbers": not_held},
                code="HOLD_MISMATCH",
            )

        if request.holder_id is not None and request.holder_id != hold.holder_id:
            raise ValidationError(
                detail="The seat hold belongs to another holder",
                code="NOT_OWNER",
            )
