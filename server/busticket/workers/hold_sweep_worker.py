"""Background sweep of orphaned seat index entries and stale pending bookings."""

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import async_session_factory
from ..core.store import ExpiringStore, get_store
from ..services.booking_repository import BookingRepository
from ..services.booking_service import BookingService
from ..services.seat_lock_manager import Clock, SeatLockManager
from .base import BaseWorker

logger = logging.getLogger(__name__)


class HoldSweepWorker(BaseWorker):
    """
    Best-effort tidiness for the seat hold store.

    Each pass evicts seat index entries whose hold record is gone and moves
    PENDING bookings whose hold has lapsed to FAILED. Correctness never
    depends on this worker; store TTL already expires every hold.
    """

    def __init__(
        self,
        interval_seconds: int = 300,
        session_factory: Callable[[], AsyncSession] = async_session_factory,
        store_factory: Callable[[], ExpiringStore] = get_store,
        clock: Clock = datetime.utcnow,
        batch_size: int = 100,
    ):
        super().__init__(name="HoldSweep", interval_seconds=interval_seconds)
        self.session_factory = session_factory
        self.store_factory = store_factory
        self.clock = clock
        self.batch_size = batch_size

    async def process(self) -> None:
        store = self.store_factory()

        async with self.session_factory() as db:
            lock_manager = SeatLockManager(store, BookingRepository(db), clock=self.clock)
            evicted = await lock_manager.sweep_orphaned_index_entries()
            failed = await BookingService(db, store, clock=self.clock).expire_stale_bookings(self.batch_size)

        if evicted or failed:
            logger.info(
                "Hold sweep completed",
                extra={"worker": self.name, "evicted_index_entries": evicted, "failed_bookings": failed}
            )
