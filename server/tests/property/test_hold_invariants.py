"""Property-based tests for seat hold invariants."""

from datetime import timedelta

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from busticket.services.seat_lock_manager import (
    ReleaseOutcome,
    SeatLockManager,
    hold_key,
    seat_index_key,
)
from tests.fakes import FrozenClock, InMemoryExpiringStore, StubBookingReader

TRIP = "trip-1"
SEATS = [f"{column}{row}" for row in range(1, 4) for column in "ABCD"]

# Strategies for generating test data
seat_sets = st.lists(st.sampled_from(SEATS), min_size=1, max_size=4)
holders = st.sampled_from(["U1", "U2", "U3"])
ttl_values = st.integers(min_value=60, max_value=3600)

operations = st.lists(
    st.one_of(
        st.tuples(st.just("acquire"), seat_sets, holders),
        st.tuples(st.just("release"), st.integers(min_value=0, max_value=20)),
        st.tuples(st.just("advance"), st.integers(min_value=1, max_value=400)),
        st.tuples(st.just("extend"), st.integers(min_value=0, max_value=20), st.integers(min_value=1, max_value=30)),
    ),
    min_size=1,
    max_size=30,
)


def build_manager(booked=None, ttl_seconds=600):
    clock = FrozenClock()
    store = InMemoryExpiringStore(clock)
    bookings = StubBookingReader({TRIP: set(booked or [])})
    manager = SeatLockManager(store, bookings, clock=clock, hold_ttl=timedelta(seconds=ttl_seconds))
    return manager, store, clock


async def live_holds_by_seat(manager, hold_ids):
    """Map each seat to the live holds whose record names it."""
    holding: dict[str, list[str]] = {}
    for hold_id in hold_ids:
        if not await manager.is_valid(hold_id):
            continue
        hold = await manager.get_hold(hold_id)
        for seat in hold.seat_numbers:
            holding.setdefault(seat, []).append(hold_id)
    return holding


@pytest.mark.asyncio
@settings(max_examples=75, deadline=None)
@given(ops=operations)
async def test_at_most_one_live_hold_per_seat(ops):
    """Test no interleaving of acquire, release, extend and expiry double-holds a seat."""
    manager, store, clock = build_manager()
    hold_ids: list[str] = []

    for op in ops:
        if op[0] == "acquire":
            result = await manager.acquire(TRIP, op[1], op[2])
            if result.acquired:
                hold_ids.append(result.hold.hold_id)
        elif op[0] == "release" and hold_ids:
            await manager.release(hold_ids[op[1] % len(hold_ids)])
        elif op[0] == "extend" and hold_ids:
            await manager.extend(hold_ids[op[1] % len(hold_ids)], timedelta(minutes=op[2]))
        elif op[0] == "advance":
            clock.advance(seconds=op[1])

        holding = await live_holds_by_seat(manager, hold_ids)
        for seat, owners in holding.items():
            assert len(owners) == 1
            assert await store.get(seat_index_key(TRIP, seat)) == owners[0]


@pytest.mark.asyncio
@settings(max_examples=50, deadline=None)
@given(seats=seat_sets, booked=st.sets(st.sampled_from(SEATS), min_size=1))
async def test_booked_seats_never_lockable(seats, booked):
    """Test any request naming a booked seat is refused without side effects."""
    manager, store, clock = build_manager(booked=booked)

    result = await manager.acquire(TRIP, seats, "U1")

    if set(seats) & booked:
        assert not result.acquired
        assert result.rejection.value == "ALREADY_BOOKED"
        assert result.seat_number in booked
        assert store.data == {}
    else:
        assert result.acquired


@pytest.mark.asyncio
@settings(max_examples=50, deadline=None)
@given(seats=seat_sets, ttl=ttl_values)
async def test_holds_lapse_after_ttl(seats, ttl):
    """Test a hold is neither held nor valid once its TTL has elapsed."""
    manager, store, clock = build_manager(ttl_seconds=ttl)
    hold = (await manager.acquire(TRIP, seats, "U1")).hold

    clock.advance(seconds=ttl - 1)
    assert await manager.is_valid(hold.hold_id)
    assert all([await manager.is_held(TRIP, seat) for seat in seats])

    clock.advance(seconds=1)
    assert not await manager.is_valid(hold.hold_id)
    for seat in seats:
        assert not await manager.is_held(TRIP, seat)


@pytest.mark.asyncio
@settings(max_examples=50, deadline=None)
@given(seats=seat_sets, expire_first=st.booleans())
async def test_release_is_idempotent(seats, expire_first):
    """Test releasing a released or lapsed hold reports NOT_FOUND and changes nothing."""
    manager, store, clock = build_manager()
    hold = (await manager.acquire(TRIP, seats, "U1")).hold

    if expire_first:
        clock.advance(minutes=10)
    else:
        assert await manager.release(hold.hold_id) == ReleaseOutcome.RELEASED

    other = (await manager.acquire(TRIP, seats, "U2")).hold
    snapshot = {key: store.data[key] for key in store.live_keys()}

    assert await manager.release(hold.hold_id) == ReleaseOutcome.NOT_FOUND
    assert {key: store.data[key] for key in store.live_keys()} == snapshot
    assert await manager.is_valid(other.hold_id)


@pytest.mark.asyncio
@settings(max_examples=50, deadline=None)
@given(
    seats=seat_sets,
    elapsed=st.integers(min_value=0, max_value=599),
    minutes=st.integers(min_value=1, max_value=30),
)
async def test_extend_rearms_every_entry_together(seats, elapsed, minutes):
    """Test the record and every index entry share the new expiry after extend."""
    manager, store, clock = build_manager()
    hold = (await manager.acquire(TRIP, seats, "U1")).hold
    clock.advance(seconds=elapsed)

    result = await manager.extend(hold.hold_id, timedelta(minutes=minutes))
    assert result.extended

    expected = result.expires_at - clock()
    assert await store.ttl(hold_key(hold.hold_id)) == expected
    for seat in hold.seat_numbers:
        assert await store.ttl(seat_index_key(TRIP, seat)) == expected
