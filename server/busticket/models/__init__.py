"""Models module exporting all database models."""

from .booking import Booking, BookingStatus
from .trip import Bus, Trip

__all__ = [
    # Trip read side
    "Bus",
    "Trip",

    # Booking entities
    "Booking",
    "BookingStatus",
]
