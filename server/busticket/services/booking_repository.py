"""Booking store access: the read/write API the seat hold flow consumes."""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import UnavailableError
from ..models.booking import Booking, BookingStatus

logger = logging.getLogger(__name__)


class BookingRepository:
    """Repository over the bookings table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_confirmed_bookings_by_trip(self, trip_id: str) -> list[Booking]:
        """Return every CONFIRMED booking on a trip."""
        stmt = select(Booking).where(
            Booking.trip_id == trip_id,
            Booking.status == BookingStatus.CONFIRMED,
        )
        result = await self._execute(stmt)
        return list(result.scalars())

    async def booked_seat_numbers(self, trip_id: str, exclude_booking_id: str | None = None) -> set[str]:
        """Seats referenced by any confirmed booking on the trip, in one query."""
        booked: set[str] = set()
        for booking in await self.find_confirmed_bookings_by_trip(trip_id):
            if booking.id == exclude_booking_id:
                continue
            booked.update(booking.seat_numbers or [])
        return booked

    async def get_by_id(self, booking_id: str) -> Booking | None:
        stmt = select(Booking).where(Booking.id == booking_id)
        result = await self._execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_pnr(self, pnr: str) -> Booking | None:
        stmt = select(Booking).where(Booking.pnr == pnr)
        result = await self._execute(stmt)
        return result.scalar_one_or_none()

    async def get_pending_by_hold_id(self, hold_id: str) -> Booking | None:
        stmt = select(Booking).where(
            Booking.hold_id == hold_id,
            Booking.status == BookingStatus.PENDING,
        )
        result = await self._execute(stmt)
        return result.scalars().first()

    async def list_by_holder(
        self,
        holder_id: str,
        status: BookingStatus | None = None,
        limit: int = 50,
    ) -> list[Booking]:
        """List a holder's bookings, newest first."""
        stmt = select(Booking).where(Booking.holder_id == holder_id)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        stmt = stmt.order_by(Booking.created_at.desc()).limit(limit)

        result = await self._execute(stmt)
        return list(result.scalars())

    async def list_pending_created_before(self, cutoff: datetime, limit: int = 100) -> list[Booking]:
        """Oldest PENDING bookings created before ``cutoff``."""
        stmt = (
            select(Booking)
            .where(
                Booking.status == BookingStatus.PENDING,
                Booking.created_at < cutoff,
            )
            .order_by(Booking.created_at.asc())
            .limit(limit)
        )
        result = await self._execute(stmt)
        return list(result.scalars())

    async def insert(self, booking: Booking) -> Booking:
        """Persist a new booking and commit."""
        self.db.add(booking)
        return await self.save(booking)

    async def save(self, booking: Booking) -> Booking:
        """Commit pending changes to ``booking`` and reload it."""
        self.db.add(booking)
        try:
            await self.db.commit()
        except OperationalError as e:
            await self.db.rollback()
            logger.error(
                "Booking store write failed",
                extra={"booking_id": booking.id, "error": str(e)}
            )
            raise UnavailableError(dependency="booking store") from e

        await self.db.refresh(booking)
        return booking

    async def transition_status(
        self,
        booking: Booking,
        from_status: BookingStatus,
        to_status: BookingStatus,
        **values,
    ) -> bool:
        """
        Move ``booking`` to ``to_status`` only if the stored row is still ``from_status``.

        The check and the write are one UPDATE, so a concurrent transition
        committed after ``booking`` was loaded makes this one match no rows.
        ``booking`` is reloaded either way.

        Returns:
            True if this call performed the transition
        """
        stmt = (
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == from_status)
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except OperationalError as e:
            await self.db.rollback()
            logger.error(
                "Booking status write failed",
                extra={"booking_id": booking.id, "to_status": to_status, "error": str(e)}
            )
            raise UnavailableError(dependency="booking store") from e

        await self.db.refresh(booking)
        return result.rowcount == 1

    async def _execute(self, stmt):
        try:
            return await self.db.execute(stmt)
        except OperationalError as e:
            logger.error("Booking store read failed", extra={"error": str(e)})
            raise UnavailableError(dependency="booking store") from e
