"""Seat Availability Resolver: classifies seats from confirmed bookings and live holds."""

import logging

from ..schemas.seat import SeatClassification, SeatLayoutResponse, SeatView
from .seat_lock_manager import BookingReader, SeatLockManager
from .trip_service import TripService

logger = logging.getLogger(__name__)


class SeatAvailabilityResolver:
    """Builds seat maps; booked takes precedence over held, held over available."""

    def __init__(self, lock_manager: SeatLockManager, bookings: BookingReader, trips: TripService):
        self.lock_manager = lock_manager
        self.bookings = bookings
        self.trips = trips

    async def classify(self, trip_id: str, seat_number: str) -> SeatClassification:
        if await self.lock_manager.is_booked(trip_id, seat_number):
            return SeatClassification.BOOKED
        if await self.lock_manager.is_held(trip_id, seat_number):
            return SeatClassification.HELD
        return SeatClassification.AVAILABLE

    async def build_layout(self, trip_id: str) -> SeatLayoutResponse:
        """
        Classify every configured seat of a trip.

        Booked seats come from one batch query for the trip rather than a
        booking scan per seat.

        Raises:
            NotFoundError: If the trip, its bus or the seat layout cannot be resolved
        """
        trip = await self.trips.get_trip_or_raise(trip_id)
        config = self.trips.get_seat_config(trip)
        booked = await self.bookings.booked_seat_numbers(trip_id)

        seats: list[SeatView] = []
        for position in config.seats:
            if position.number in booked:
                status = SeatClassification.BOOKED
            elif await self.lock_manager.is_held(trip_id, position.number):
                status = SeatClassification.HELD
            else:
                status = SeatClassification.AVAILABLE

            seats.append(SeatView(
                number=position.number,
                row=position.row,
                column=position.column,
                status=status,
                price=trip.price,
            ))

        counts = {classification: 0 for classification in SeatClassification}
        for seat in seats:
            counts[seat.status] += 1

        logger.debug(
            "Seat layout built",
            extra={"trip_id": trip_id, "seats": len(seats), "booked": counts[SeatClassification.BOOKED]}
        )

        return SeatLayoutResponse(
            trip_id=trip_id,
            rows=config.rows,
            columns=config.columns,
            seats=seats,
            available_count=counts[SeatClassification.AVAILABLE],
            held_count=counts[SeatClassification.HELD],
            booked_count=counts[SeatClassification.BOOKED],
        )
