"""Concurrency tests for booking status transitions across sessions."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from busticket.core.database import Base
from busticket.core.exceptions import StateError
from busticket.models import BookingStatus, Bus, Trip
from busticket.schemas.booking import (
    CancelBookingRequest,
    ConfirmBookingRequest,
    CreateBookingRequest,
    PassengerInfo,
)
from busticket.schemas.seat import SelectSeatsRequest
from busticket.services.booking_repository import BookingRepository
from busticket.services.booking_service import BookingService
from busticket.services.seat_selection_service import SeatSelectionService
from tests.fakes import build_seat_layout


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Sessions on a file database, so each one gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'handoff.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def pending_booking(file_session_factory, store, clock):
    """A PENDING booking for seat A1 held by U1."""
    async with file_session_factory() as session:
        bus = Bus(
            company_name="Northline Coaches",
            bus_number="NL-2001",
            total_seats=40,
            seat_layout=build_seat_layout(10, 4),
        )
        departure = clock() + timedelta(days=1)
        trip = Trip(
            bus=bus,
            departure_time=departure,
            arrival_time=departure + timedelta(hours=6),
            price=Decimal("45.00"),
            is_open=True,
        )
        session.add_all([bus, trip])
        await session.commit()

        hold = await SeatSelectionService(session, store, clock).select_seats(
            SelectSeatsRequest(trip_id=trip.id, seat_numbers=["A1"], holder_id="U1")
        )
        booking = await BookingService(session, store, clock).create_booking(
            CreateBookingRequest(
                hold_id=hold.hold_id,
                passengers=[PassengerInfo(name="Ada", phone="5550100", email="ada@example.com")],
            )
        )
        return booking


async def stored_booking(session_factory, booking_id):
    async with session_factory() as session:
        return await BookingRepository(session).get_by_id(booking_id)


@pytest.mark.asyncio
async def test_overlapping_confirms_keep_first_payment(file_session_factory, store, clock, pending_booking, monkeypatch):
    """Test a repeated confirmation that lands mid-confirm gets StateError and the booking stays CONFIRMED."""
    async with file_session_factory() as first_session, file_session_factory() as second_session:
        first = BookingService(first_session, store, clock)
        second = BookingService(second_session, store, clock)
        read_booked_seats = first.bookings.booked_seat_numbers

        async def confirmed_elsewhere_meanwhile(trip_id, **kwargs):
            await second.confirm_booking(
                ConfirmBookingRequest(booking_id=pending_booking.id, payment_reference="TXN-B")
            )
            return await read_booked_seats(trip_id, **kwargs)

        monkeypatch.setattr(first.bookings, "booked_seat_numbers", confirmed_elsewhere_meanwhile)

        with pytest.raises(StateError) as exc_info:
            await first.confirm_booking(
                ConfirmBookingRequest(booking_id=pending_booking.id, payment_reference="TXN-A")
            )
        assert exc_info.value.problem_details["current_state"] == "CONFIRMED"

    stored = await stored_booking(file_session_factory, pending_booking.id)
    assert stored.status == BookingStatus.CONFIRMED
    assert stored.payment_reference == "TXN-B"
    assert stored.cancellation_reason is None
    assert await store.get(f"seatlock:{stored.trip_id}:A1") is None


@pytest.mark.asyncio
async def test_cancel_during_confirm_wins_once(file_session_factory, store, clock, pending_booking, monkeypatch):
    """Test a cancel committed mid-confirm is not overwritten by the confirmation."""
    async with file_session_factory() as first_session, file_session_factory() as second_session:
        first = BookingService(first_session, store, clock)
        second = BookingService(second_session, store, clock)
        read_booked_seats = first.bookings.booked_seat_numbers

        async def cancelled_elsewhere_meanwhile(trip_id, **kwargs):
            await second.cancel_booking(
                CancelBookingRequest(booking_id=pending_booking.id, holder_id="U1", reason="changed plans")
            )
            return await read_booked_seats(trip_id, **kwargs)

        monkeypatch.setattr(first.bookings, "booked_seat_numbers", cancelled_elsewhere_meanwhile)

        with pytest.raises(StateError) as exc_info:
            await first.confirm_booking(
                ConfirmBookingRequest(booking_id=pending_booking.id, payment_reference="TXN-A")
            )
        assert exc_info.value.problem_details["current_state"] == "CANCELLED"

    stored = await stored_booking(file_session_factory, pending_booking.id)
    assert stored.status == BookingStatus.CANCELLED
    assert stored.payment_reference is None
    assert stored.cancellation_reason == "changed plans"


@pytest.mark.asyncio
async def test_cancel_refused_when_confirm_lands_first(file_session_factory, store, clock, pending_booking, monkeypatch):
    """Test a cancel that read PENDING fails once a confirmation has committed."""
    async with file_session_factory() as first_session, file_session_factory() as second_session:
        first = BookingService(first_session, store, clock)
        second = BookingService(second_session, store, clock)
        transition_status = first.bookings.transition_status

        async def confirmed_elsewhere_first(booking, *args, **kwargs):
            await second.confirm_booking(
                ConfirmBookingRequest(booking_id=pending_booking.id, payment_reference="TXN-B")
            )
            return await transition_status(booking, *args, **kwargs)

        monkeypatch.setattr(first.bookings, "transition_status", confirmed_elsewhere_first)

        with pytest.raises(StateError) as exc_info:
            await first.cancel_booking(CancelBookingRequest(booking_id=pending_booking.id, holder_id="U1"))
        assert exc_info.value.problem_details["current_state"] == "CONFIRMED"

    stored = await stored_booking(file_session_factory, pending_booking.id)
    assert stored.status == BookingStatus.CONFIRMED
    assert stored.payment_reference == "TXN-B"
    assert stored.cancelled_at is None


@pytest.mark.asyncio
async def test_sweep_does_not_fail_booking_confirmed_mid_pass(file_session_factory, store, clock, pending_booking, monkeypatch):
    """Test the stale booking sweep leaves a booking confirmed while it checked the hold."""
    clock.advance(minutes=10, seconds=1)

    async with file_session_factory() as sweep_session, file_session_factory() as payment_session:
        sweeper = BookingService(sweep_session, store, clock)
        payments = BookingService(payment_session, store, clock)
        is_valid = sweeper.lock_manager.is_valid

        async def confirmed_during_check(hold_id):
            await payments.confirm_booking(
                ConfirmBookingRequest(booking_id=pending_booking.id, payment_reference="TXN1")
            )
            return await is_valid(hold_id)

        monkeypatch.setattr(sweeper.lock_manager, "is_valid", confirmed_during_check)

        assert await sweeper.expire_stale_bookings() == 0

    stored = await stored_booking(file_session_factory, pending_booking.id)
    assert stored.status == BookingStatus.CONFIRMED
    assert stored.payment_reference == "TXN1"
    assert stored.cancellation_reason is None


@pytest.mark.asyncio
async def test_concurrent_confirms_single_winner(file_session_factory, store, clock, pending_booking):
    """Test racing confirmations on separate sessions confirm the booking exactly once."""
    sessions = [file_session_factory() for _ in range(5)]

    async def confirm(index: int):
        service = BookingService(sessions[index], store, clock)
        return await service.confirm_booking(
            ConfirmBookingRequest(booking_id=pending_booking.id, payment_reference=f"TXN{index}")
        )

    try:
        results = await asyncio.gather(*(confirm(i) for i in range(5)), return_exceptions=True)
    finally:
        for session in sessions:
            await session.close()

    winners = [result for result in results if not isinstance(result, Exception)]
    assert len(winners) == 1
    assert all(isinstance(result, StateError) for result in results if isinstance(result, Exception))

    stored = await stored_booking(file_session_factory, pending_booking.id)
    assert stored.status == BookingStatus.CONFIRMED
    assert stored.payment_reference == winners[0].payment_reference
