"""Booking router for the hold to booking handoff."""

import logging
from datetime import datetime
from typing import Callable

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import CLOCK_DEPENDENCY, DB_DEPENDENCY, STORE_DEPENDENCY
from ..core.exceptions import ProblemDetailsException
from ..core.store import ExpiringStore
from ..schemas.booking import (
    Booking,
    BookingListResponse,
    CancelBookingRequest,
    CancelBookingResponse,
    ConfirmBookingRequest,
    CreateBookingRequest,
    FailBookingRequest,
    GetBookingRequest,
    ListBookingsRequest,
    LookupBookingRequest,
)
from ..schemas.common import PROBLEM_RESPONSES
from ..services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"], responses=PROBLEM_RESPONSES)


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking.model_validate(booking_model)


def _booking_response(booking_model) -> JSONResponse:
    return JSONResponse(
        status_code=200,
        content=_convert_booking_to_schema(booking_model).model_dump(mode="json")
    )


@router.post("/create", response_model=Booking)
async def create_booking(
    request: CreateBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
    clock: Callable[[], datetime] = CLOCK_DEPENDENCY,
) -> JSONResponse:
    """
    Create a PENDING booking from a live hold.

    The hold stays in place until the booking is confirmed, failed or cancelled.
    An expired hold is reported as 404 HOLD_EXPIRED.
    """
    booking_service = BookingService(db, store, clock)

    try:
        booking = await booking_service.create_booking(request)
        return _booking_response(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking creation",
            extra={"hold_id": request.hold_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/confirm", response_model=Booking)
async def confirm_booking(
    request: ConfirmBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
    clock: Callable[[], datetime] = CLOCK_DEPENDENCY,
) -> JSONResponse:
    """
    Confirm a PENDING booking after payment and release its hold.

    A second confirmation is rejected with 409 INVALID_STATE.
    """
    booking_service = BookingService(db, store, clock)

    try:
        booking = await booking_service.confirm_booking(request)
        return _booking_response(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking confirmation",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/cancel", response_model=CancelBookingResponse)
async def cancel_booking(
    request: CancelBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
    clock: Callable[[], datetime] = CLOCK_DEPENDENCY,
) -> JSONResponse:
    """Cancel a booking; a pending booking's hold is released."""
    booking_service = BookingService(db, store, clock)

    try:
        booking, hold_released = await booking_service.cancel_booking(request)
        response_data = CancelBookingResponse(
            cancelled=True,
            hold_released=hold_released,
            booking=_convert_booking_to_schema(booking),
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking cancellation",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/fail", response_model=Booking)
async def fail_booking(
    request: FailBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
    clock: Callable[[], datetime] = CLOCK_DEPENDENCY,
) -> JSONResponse:
    """Record a failed payment on a PENDING booking and release its hold."""
    booking_service = BookingService(db, store, clock)

    try:
        booking = await booking_service.fail_booking(request)
        return _booking_response(booking)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking failure",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Booking)
async def get_booking(
    request: GetBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
) -> JSONResponse:
    """Get booking details."""
    booking_service = BookingService(db, store)

    try:
        return _booking_response(await booking_service.get_booking(request.booking_id))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking retrieval",
            extra={"booking_id": request.booking_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/lookup", response_model=Booking)
async def lookup_booking(
    request: LookupBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
) -> JSONResponse:
    """Find a booking by PNR."""
    booking_service = BookingService(db, store)

    try:
        return _booking_response(await booking_service.get_booking_by_pnr(request.pnr))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking lookup",
            extra={"pnr": request.pnr, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/list", response_model=BookingListResponse)
async def list_bookings(
    request: ListBookingsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
) -> JSONResponse:
    """List a holder's bookings, newest first."""
    booking_service = BookingService(db, store)

    try:
        bookings = await booking_service.list_holder_bookings(
            request.holder_id, status=request.status, limit=request.limit
        )
        response_data = BookingListResponse(
            bookings=[_convert_booking_to_schema(booking) for booking in bookings]
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking listing",
            extra={"holder_id": request.holder_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
