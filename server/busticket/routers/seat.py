"""Seat router for seat maps, seat holds and fare quotes."""

import logging
from datetime import datetime
from typing import Callable

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import CLOCK_DEPENDENCY, DB_DEPENDENCY, STORE_DEPENDENCY
from ..core.exceptions import ProblemDetailsException
from ..core.store import ExpiringStore
from ..schemas.common import PROBLEM_RESPONSES
from ..schemas.seat import (
    ExtendHoldRequest,
    ExtendHoldResponse,
    FareRequest,
    FareSummary,
    Hold,
    HoldRequest,
    ReleaseHoldResponse,
    SeatLayoutResponse,
    SelectSeatsRequest,
)
from ..services.seat_lock_manager import HoldRecord
from ..services.seat_selection_service import SeatSelectionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/seat", tags=["seat"], responses=PROBLEM_RESPONSES)


def _convert_hold_to_schema(hold: HoldRecord) -> Hold:
    """Convert a hold record to its response schema."""
    return Hold.model_validate(hold.model_dump())


def _ok(payload) -> JSONResponse:
    return JSONResponse(status_code=200, content=payload.model_dump(mode="json"))


def _unexpected(operation: str, error: Exception, **context) -> HTTPException:
    logger.error(
        f"Unexpected error in {operation}",
        extra={**context, "error": str(error)},
        exc_info=True
    )
    return HTTPException(status_code=500, detail="Internal server error")


@router.get("/layout/{trip_id}", response_model=SeatLayoutResponse)
async def seat_layout(
    trip_id: str,
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
    clock: Callable[[], datetime] = CLOCK_DEPENDENCY,
) -> JSONResponse:
    """Seat map of a trip with every seat classified available, held or booked."""
    service = SeatSelectionService(db, store, clock)

    try:
        return _ok(await service.get_layout(trip_id))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("seat layout", e, trip_id=trip_id) from e


@router.post("/select", response_model=Hold)
async def select_seats(
    request: SelectSeatsRequest,
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
    clock: Callable[[], datetime] = CLOCK_DEPENDENCY,
) -> JSONResponse:
    """
    Hold seats on a trip.

    Rejected with 409 ALREADY_HELD or ALREADY_BOOKED when any seat is taken;
    nothing is held in that case.
    """
    service = SeatSelectionService(db, store, clock)

    try:
        hold = await service.select_seats(request)
        return _ok(_convert_hold_to_schema(hold))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected(
            "seat selection", e,
            trip_id=request.trip_id, seat_numbers=request.seat_numbers, holder_id=request.holder_id
        ) from e


@router.post("/release", response_model=ReleaseHoldResponse)
async def release_hold(
    request: HoldRequest,
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
    clock: Callable[[], datetime] = CLOCK_DEPENDENCY,
) -> JSONResponse:
    """Release a hold. Releasing an expired or unknown hold is not an error."""
    service = SeatSelectionService(db, store, clock)

    try:
        released = await service.release_hold(request.hold_id)
        return _ok(ReleaseHoldResponse(released=released))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("hold release", e, hold_id=request.hold_id) from e


@router.post("/extend", response_model=ExtendHoldResponse)
async def extend_hold(
    request: ExtendHoldRequest,
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
    clock: Callable[[], datetime] = CLOCK_DEPENDENCY,
) -> JSONResponse:
    """Push a live hold's expiry forward by the given minutes."""
    service = SeatSelectionService(db, store, clock)

    try:
        result = await service.extend_hold(request.hold_id, request.minutes)
        return _ok(ExtendHoldResponse(extended=result.extended, expires_at=result.expires_at))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("hold extension", e, hold_id=request.hold_id) from e


@router.post("/hold", response_model=Hold)
async def get_hold(
    request: HoldRequest,
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
    clock: Callable[[], datetime] = CLOCK_DEPENDENCY,
) -> JSONResponse:
    """Get a live hold; 404 HOLD_EXPIRED once it has lapsed."""
    service = SeatSelectionService(db, store, clock)

    try:
        return _ok(_convert_hold_to_schema(await service.get_hold(request.hold_id)))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("hold lookup", e, hold_id=request.hold_id) from e


@router.post("/fare", response_model=FareSummary)
async def fare_summary(
    request: FareRequest,
    db: AsyncSession = DB_DEPENDENCY,
    store: ExpiringStore = STORE_DEPENDENCY,
    clock: Callable[[], datetime] = CLOCK_DEPENDENCY,
) -> JSONResponse:
    """Quote the fare breakdown for a seat selection."""
    service = SeatSelectionService(db, store, clock)

    try:
        return _ok(await service.get_fare_summary(request.trip_id, request.seat_numbers))

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("fare summary", e, trip_id=request.trip_id) from e
