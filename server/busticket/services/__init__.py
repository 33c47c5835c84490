"""Service layer package."""

from .booking_repository import BookingRepository
from .booking_service import BookingService
from .seat_availability import SeatAvailabilityResolver
from .seat_lock_manager import SeatLockManager
from .seat_selection_service import SeatSelectionService
from .trip_service import TripService

__all__ = [
    "BookingRepository",
    "BookingService",
    "SeatAvailabilityResolver",
    "SeatLockManager",
    "SeatSelectionService",
    "TripService",
]
