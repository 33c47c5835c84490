"""Seat Lock Manager: time-bounded exclusive holds on seats, kept entirely in the expiring store."""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Protocol
from uuid import uuid4

from pydantic import BaseModel, Field

from ..core.config import settings
from ..core.observability import metrics_collector
from ..core.store import ExpiringStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

HOLD_KEY_PREFIX = "hold:"
SEAT_INDEX_PREFIX = "seatlock:"


def hold_key(hold_id: str) -> str:
    return f"{HOLD_KEY_PREFIX}{hold_id}"


def seat_index_key(trip_id: str, seat_number: str) -> str:
    return f"{SEAT_INDEX_PREFIX}{trip_id}:{seat_number}"


class BookingReader(Protocol):
    """The slice of the booking store the lock manager reads."""

    async def booked_seat_numbers(self, trip_id: str) -> set[str]: ...


class HoldRecord(BaseModel):
    """A live claim on one or more seats of one trip by one holder."""

    hold_id: str
    trip_id: str
    seat_numbers: list[str] = Field(..., min_length=1)
    holder_id: str
    created_at: datetime
    expires_at: datetime

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now


class RejectionReason(str, Enum):
    """Why an acquire was refused."""
    ALREADY_HELD = "ALREADY_HELD"
    ALREADY_BOOKED = "ALREADY_BOOKED"


class AcquireResult(BaseModel):
    """Either the new hold or the reason the whole request was refused."""

    hold: Optional[HoldRecord] = None
    rejection: Optional[RejectionReason] = None
    seat_number: Optional[str] = Field(None, description="First seat that caused the rejection")

    @property
    def acquired(self) -> bool:
        return self.hold is not None


class ReleaseOutcome(str, Enum):
    RELEASED = "RELEASED"
    NOT_FOUND = "NOT_FOUND"


class ExtendOutcome(str, Enum):
    EXTENDED = "EXTENDED"
    NOT_FOUND = "NOT_FOUND"


class ExtendResult(BaseModel):
    outcome: ExtendOutcome
    expires_at: Optional[datetime] = None

    @property
    def extended(self) -> bool:
        return self.outcome == ExtendOutcome.EXTENDED


class SeatLockManager:
    """
    Hands out and revokes holds on seat sets.

    A hold lives at ``hold:{hold_id}`` as JSON; every held seat has an index
    entry ``seatlock:{trip_id}:{seat}`` pointing back at the hold id. Both
    carry the same TTL and are re-armed together on extend, so store expiry
    is the only cleanup a hold ever needs. No in-process state is kept.
    """

    def __init__(
        self,
        store: ExpiringStore,
        bookings: BookingReader,
        clock: Clock = datetime.utcnow,
        hold_ttl: Optional[timedelta] = None,
        atomic_claims: Optional[bool] = None,
    ):
        self.store = store
        self.bookings = bookings
        self.clock = clock
        self.hold_ttl = hold_ttl or timedelta(seconds=settings.hold_ttl_seconds)
        self.atomic_claims = settings.hold_atomic_claims if atomic_claims is None else atomic_claims

    async def acquire(self, trip_id: str, seat_numbers: list[str], holder_id: str) -> AcquireResult:
        """
        Hold every seat in ``seat_numbers`` or none of them.

        Args:
            trip_id: Trip the seats belong to
            seat_numbers: Seats to hold; duplicates are collapsed keeping first order
            holder_id: User or anonymous session taking the hold

        Returns:
            AcquireResult carrying the hold, or the rejection reason and first offending seat

        Raises:
            ValueError: If no seats were given
            UnavailableError: If the store or booking store cannot be reached
        """
        seats = list(dict.fromkeys(seat_numbers))
        if not seats:
            raise ValueError("acquire needs at least one seat")

        booked = await self.bookings.booked_seat_numbers(trip_id)
        for seat in seats:
            if seat in booked:
                return self._reject(trip_id, holder_id, seat, RejectionReason.ALREADY_BOOKED)
            if await self.is_held(trip_id, seat):
                return self._reject(trip_id, holder_id, seat, RejectionReason.ALREADY_HELD)

        now = self.clock()
        hold = HoldRecord(
            hold_id=str(uuid4()),
            trip_id=trip_id,
            seat_numbers=seats,
            holder_id=holder_id,
            created_at=now,
            expires_at=now + self.hold_ttl,
        )

        await self.store.set_with_ttl(hold_key(hold.hold_id), hold.model_dump_json(), self.hold_ttl)

        if self.atomic_claims:
            lost_seat = await self._claim_seats(hold)
            if lost_seat is not None:
                return self._reject(trip_id, holder_id, lost_seat, RejectionReason.ALREADY_HELD)
        else:
            # Plain check-then-write: two overlapping acquires can both pass the
            # read phase above and both write, leaving a brief double hold.
            for seat in seats:
                await self.store.set_with_ttl(seat_index_key(trip_id, seat), hold.hold_id, self.hold_ttl)

        metrics_collector.record_hold_acquired()
        logger.info(
            "Seat hold acquired",
            extra={
                "hold_id": hold.hold_id,
                "trip_id": trip_id,
                "seat_numbers": seats,
                "holder_id": holder_id,
                "expires_at": hold.expires_at.isoformat(),
            }
        )
        return AcquireResult(hold=hold)

    async def _claim_seats(self, hold: HoldRecord) -> Optional[str]:
        """
        Claim each index entry with set-if-absent, in sorted seat order.

        A fixed order means overlapping requests contend for their lowest
        shared seat first, so at least one of them gets through.

        On the first lost claim every entry this hold already claimed is
        compare-and-deleted along with the hold record, and the lost seat is
        returned. A store failure mid-way leaves the partial claims to lapse
        by TTL, which over-holds but never double-sells.
        """
        claimed: list[str] = []
        for seat in sorted(hold.seat_numbers):
            key = seat_index_key(hold.trip_id, seat)
            if await self.store.set_if_absent(key, hold.hold_id, self.hold_ttl):
                claimed.append(key)
                continue

            for claimed_key in claimed:
                await self.store.delete_if_equals(claimed_key, hold.hold_id)
            await self.store.delete(hold_key(hold.hold_id))

            logger.info(
                "Seat claim lost to a concurrent hold, rolled back",
                extra={"hold_id": hold.hold_id, "trip_id": hold.trip_id, "seat_number": seat}
            )
            return seat
        return None

    def _reject(self, trip_id: str, holder_id: str, seat: str, reason: RejectionReason) -> AcquireResult:
        metrics_collector.record_hold_rejected(reason.value)
        logger.info(
            "Seat hold rejected",
            extra={"trip_id": trip_id, "holder_id": holder_id, "seat_number": seat, "reason": reason.value}
        )
        return AcquireResult(rejection=reason, seat_number=seat)

    async def release(self, hold_id: str) -> ReleaseOutcome:
        """
        Drop a hold and its seat index entries.

        Releasing an unknown or already-expired hold reports NOT_FOUND and
        changes nothing. Index entries are only removed while they still
        point at this hold.
        """
        hold = await self.get_hold(hold_id)
        if hold is None:
            logger.debug("Release of absent hold", extra={"hold_id": hold_id})
            return ReleaseOutcome.NOT_FOUND

        for seat in hold.seat_numbers:
            await self.store.delete_if_equals(seat_index_key(hold.trip_id, seat), hold_id)
        await self.store.delete(hold_key(hold_id))

        metrics_collector.record_hold_released()
        logger.info(
            "Seat hold released",
            extra={"hold_id": hold_id, "trip_id": hold.trip_id, "seat_numbers": hold.seat_numbers}
        )
        return ReleaseOutcome.RELEASED

    async def extend(self, hold_id: str, additional: timedelta) -> ExtendResult:
        """
        Push a live hold's expiry forward by ``additional``.

        The record and every index entry are rewritten with the TTL
        recomputed from now to the new expiry, so they lapse together.

        Raises:
            ValueError: If ``additional`` is not positive
        """
        if additional <= timedelta(0):
            raise ValueError("extension must be positive")

        hold = await self.get_hold(hold_id)
        now = self.clock()
        if hold is None or not hold.is_live(now):
            return ExtendResult(outcome=ExtendOutcome.NOT_FOUND)

        new_expiry = hold.expires_at + additional
        ttl = new_expiry - now
        extended = hold.model_copy(update={"expires_at": new_expiry})

        await self.store.set_with_ttl(hold_key(hold_id), extended.model_dump_json(), ttl)
        for seat in hold.seat_numbers:
            await self.store.set_with_ttl(seat_index_key(hold.trip_id, seat), hold_id, ttl)

        metrics_collector.record_hold_extended()
        logger.info(
            "Seat hold extended",
            extra={"hold_id": hold_id, "expires_at": new_expiry.isoformat()}
        )
        return ExtendResult(outcome=ExtendOutcome.EXTENDED, expires_at=new_expiry)

    async def is_held(self, trip_id: str, seat_number: str) -> bool:
        return await self.store.get(seat_index_key(trip_id, seat_number)) is not None

    async def is_booked(self, trip_id: str, seat_number: str) -> bool:
        return seat_number in await self.bookings.booked_seat_numbers(trip_id)

    async def get_hold(self, hold_id: str) -> Optional[HoldRecord]:
        """Look up a hold record; None when absent."""
        raw = await self.store.get(hold_key(hold_id))
        if raw is None:
            return None
        return HoldRecord.model_validate_json(raw)

    async def is_valid(self, hold_id: str) -> bool:
        """True while the record exists and its stored expiry is in the future."""
        hold = await self.get_hold(hold_id)
        return hold is not None and hold.is_live(self.clock())

    async def sweep_orphaned_index_entries(self) -> int:
        """
        Remove seat index entries whose hold record is gone.

        Tidiness only; an orphan lapses by TTL anyway.

        Returns:
            Number of entries removed
        """
        removed = 0
        for key in await self.store.scan_keys(f"{SEAT_INDEX_PREFIX}*"):
            owner = await self.store.get(key)
            if owner is None:
                continue
            if await self.store.get(hold_key(owner)) is not None:
                continue
            if await self.store.delete_if_equals(key, owner):
                removed += 1

        if removed:
            metrics_collector.record_sweep_evictions(removed)
            logger.info("Orphaned seat index entries removed", extra={"removed": removed})
        return removed
