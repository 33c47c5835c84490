"""Test configuration and fixtures."""

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from busticket.core.database import Base
from busticket.core.dependencies import get_clock, get_db
from busticket.core.store import get_store
from busticket.models import Booking, BookingStatus, Bus, Trip

from .fakes import FrozenClock, InMemoryExpiringStore, build_seat_layout

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    """Controllable clock shared by the store and the services."""
    return FrozenClock()


@pytest.fixture
def store(clock):
    """In-memory expiring store following the test clock."""
    return InMemoryExpiringStore(clock)


@pytest_asyncio.fixture(scope="function")
async def bus(test_session):
    """A 40-seat bus, seats A1..D10."""
    bus = Bus(
        company_name="Northline Coaches",
        bus_number="NL-1042",
        total_seats=40,
        seat_layout=build_seat_layout(10, 4),
    )
    test_session.add(bus)
    await test_session.commit()
    return bus


@pytest_asyncio.fixture(scope="function")
async def trip(test_session, bus, clock):
    """An open trip departing tomorrow at 45.00 per seat."""
    departure = clock() + timedelta(days=1)
    trip = Trip(
        bus=bus,
        departure_time=departure,
        arrival_time=departure + timedelta(hours=6),
        price=Decimal("45.00"),
        is_open=True,
    )
    test_session.add(trip)
    await test_session.commit()
    return trip


@pytest.fixture
def add_confirmed_booking(test_session, clock):
    """Factory that writes a CONFIRMED booking straight to the bookings table."""
    counter = {"n": 0}

    async def _add(trip, seat_numbers, holder_id="someone-else"):
        counter["n"] += 1
        booking = Booking(
            pnr=f"CONF{counter['n']:06d}",
            trip_id=trip.id,
            holder_id=holder_id,
            hold_id=f"past-hold-{counter['n']}",
            seat_numbers=list(seat_numbers),
            passengers=[
                {"name": f"Passenger {seat}", "phone": "5550100", "email": "p@example.com"}
                for seat in seat_numbers
            ],
            base_fare=Decimal("45.00") * len(seat_numbers),
            taxes=Decimal("0.00"),
            service_fee=Decimal("0.00"),
            total_amount=Decimal("45.00") * len(seat_numbers),
            status=BookingStatus.CONFIRMED,
            created_at=clock(),
            confirmed_at=clock(),
        )
        test_session.add(booking)
        await test_session.commit()
        return booking

    return _add


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, store, clock):
    """Create a test FastAPI application."""
    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError
    from fastapi.middleware.cors import CORSMiddleware

    from busticket.core.exceptions import (
        ProblemDetailsException,
        generic_exception_handler,
        problem_details_handler,
        request_validation_handler,
    )
    from busticket.routers import booking, health, metrics, seat

    # Create a simplified test app without lifespan
    app = FastAPI(
        title="Bus Ticket Seat Hold API (Test)",
        description="Test version of the API",
        version="1.0.0-test",
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "busticket-seat-hold-api", "version": "1.0.0-test"}

    @app.get("/info")
    async def service_info():
        return {
            "service": "busticket-seat-hold-api",
            "version": "1.0.0-test",
            "description": "Test version",
        }

    # Include routers
    app.include_router(health.router)
    app.include_router(seat.router)
    app.include_router(booking.router)
    app.include_router(metrics.router)

    # Override dependencies
    async def get_test_db():
        yield test_session

    app.dependency_overrides[get_db] = get_test_db
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock

    return app


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
