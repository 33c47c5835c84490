"""Fare calculation for seat selections and bookings."""

from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel

from ..core.config import settings

CENTS = Decimal("0.01")


class FareBreakdown(BaseModel):
    """Base fare plus taxes and service fee, each rounded to cents."""

    price_per_seat: Decimal
    seat_count: int
    base_fare: Decimal
    taxes: Decimal
    service_fee: Decimal
    total_amount: Decimal


def _round(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_fare(
    price_per_seat: Decimal,
    seat_count: int,
    tax_rate: Decimal | None = None,
    service_fee_rate: Decimal | None = None,
) -> FareBreakdown:
    """
    Price a selection of seats on a flat-priced trip.

    Args:
        price_per_seat: Trip price for one seat
        seat_count: Number of seats
        tax_rate: Tax rate on the base fare, defaults to settings.booking_tax_rate
        service_fee_rate: Fee rate on the base fare, defaults to settings.booking_service_fee_rate

    Returns:
        FareBreakdown with every amount rounded half-up to two decimals
    """
    if seat_count < 1:
        raise ValueError("seat_count must be positive")

    tax_rate = settings.booking_tax_rate if tax_rate is None else tax_rate
    service_fee_rate = settings.booking_service_fee_rate if service_fee_rate is None else service_fee_rate

    price = Decimal(price_per_seat)
    base_fare = _round(price * seat_count)
    taxes = _round(base_fare * tax_rate)
    service_fee = _round(base_fare * service_fee_rate)

    return FareBreakdown(
        price_per_seat=_round(price),
        seat_count=seat_count,
        base_fare=base_fare,
        taxes=taxes,
        service_fee=service_fee,
        total_amount=base_fare + taxes + service_fee,
    )
