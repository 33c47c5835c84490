"""Trip read API: trip lookup and the bus seat configuration."""

import logging

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NotFoundError, UnavailableError
from ..models.trip import Trip

logger = logging.getLogger(__name__)


class SeatPosition(BaseModel):
    """One configured seat of a bus."""

    number: str = Field(..., min_length=1)
    row: int = Field(..., ge=1)
    column: int = Field(..., ge=1)


class SeatConfig(BaseModel):
    """Static row/column geometry of a bus, in display order."""

    rows: int = Field(..., ge=1)
    columns: int = Field(..., ge=1)
    seats: list[SeatPosition] = Field(..., min_length=1)

    @property
    def seat_numbers(self) -> list[str]:
        return [seat.number for seat in self.seats]


class TripService:
    """Service for trip and seat configuration lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_trip(self, trip_id: str) -> Trip | None:
        """Get trip by ID with its bus loaded."""
        stmt = select(Trip).where(Trip.id == trip_id)
        try:
            result = await self.db.execute(stmt)
        except OperationalError as e:
            logger.error("Trip lookup failed", extra={"trip_id": trip_id, "error": str(e)})
            raise UnavailableError(dependency="trip store") from e
        return result.unique().scalar_one_or_none()

    async def get_trip_or_raise(self, trip_id: str) -> Trip:
        """Get trip by ID or raise NotFoundError."""
        trip = await self.get_trip(trip_id)
        if not trip:
            logger.warning("Trip not found", extra={"trip_id": trip_id})
            raise NotFoundError(resource_type="trip", resource_id=trip_id)
        return trip

    def get_seat_config(self, trip: Trip) -> SeatConfig:
        """
        Parse the seat layout of the trip's bus.

        Raises:
            NotFoundError: If the bus or its layout is missing or malformed
        """
        bus = trip.bus
        if bus is None:
            raise NotFoundError(resource_type="bus", resource_id=trip.bus_id)

        if not bus.seat_layout:
            raise NotFoundError(
                resource_type="seat layout",
                resource_id=bus.id,
                detail=f"Bus '{bus.id}' has no seat layout configured",
            )

        try:
            return SeatConfig.model_validate(bus.seat_layout)
        except PydanticValidationError as e:
            logger.error(
                "Invalid seat layout",
                extra={"bus_id": bus.id, "trip_id": trip.id, "error": str(e)}
            )
            raise NotFoundError(
                resource_type="seat layout",
                resource_id=bus.id,
                detail=f"Bus '{bus.id}' has an unreadable seat layout",
            ) from e
