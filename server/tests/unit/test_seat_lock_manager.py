"""Unit tests for the seat lock manager."""

from datetime import timedelta

import pytest

from busticket.core.exceptions import UnavailableError
from busticket.services.seat_lock_manager import (
    ExtendOutcome,
    RejectionReason,
    ReleaseOutcome,
    SeatLockManager,
    hold_key,
    seat_index_key,
)
from tests.fakes import StubBookingReader

TRIP = "trip-1"


@pytest.fixture
def bookings():
    return StubBookingReader()


@pytest.fixture
def manager(store, bookings, clock):
    return SeatLockManager(store, bookings, clock=clock, hold_ttl=timedelta(minutes=10))


@pytest.mark.asyncio
async def test_acquire_writes_record_and_index_entries(manager, store, clock):
    """Test that a successful acquire stores the hold and one index entry per seat."""
    result = await manager.acquire(TRIP, ["A1", "A2"], "U1")

    assert result.acquired
    hold = result.hold
    assert hold.seat_numbers == ["A1", "A2"]
    assert hold.holder_id == "U1"
    assert hold.created_at == clock()
    assert hold.expires_at == clock() + timedelta(minutes=10)

    assert await store.get(hold_key(hold.hold_id)) is not None
    assert await store.get(seat_index_key(TRIP, "A1")) == hold.hold_id
    assert await store.get(seat_index_key(TRIP, "A2")) == hold.hold_id


@pytest.mark.asyncio
async def test_acquire_collapses_duplicate_seats(manager):
    result = await manager.acquire(TRIP, ["A1", "A1", "B1"], "U1")

    assert result.hold.seat_numbers == ["A1", "B1"]


@pytest.mark.asyncio
async def test_acquire_requires_seats(manager):
    with pytest.raises(ValueError):
        await manager.acquire(TRIP, [], "U1")


@pytest.mark.asyncio
async def test_second_acquire_on_held_seat_rejected(manager, store):
    """Test that a held seat cannot be taken and the existing hold is untouched."""
    first = await manager.acquire(TRIP, ["A1", "A2"], "U1")
    before = dict(store.data)

    second = await manager.acquire(TRIP, ["A1"], "U2")

    assert not second.acquired
    assert second.rejection == RejectionReason.ALREADY_HELD
    assert second.seat_number == "A1"
    assert store.data == before
    assert await manager.is_valid(first.hold.hold_id)


@pytest.mark.asyncio
async def test_rejection_is_all_or_nothing(manager, store):
    """Test that a partially overlapping request holds none of its seats."""
    await manager.acquire(TRIP, ["B2"], "U1")

    result = await manager.acquire(TRIP, ["A1", "B2", "C3"], "U2")

    assert result.rejection == RejectionReason.ALREADY_HELD
    assert result.seat_number == "B2"
    assert not await manager.is_held(TRIP, "A1")
    assert not await manager.is_held(TRIP, "C3")
    assert len(store.live_keys("hold:")) == 1


@pytest.mark.asyncio
async def test_booked_seat_rejected_even_when_held(store, clock):
    """Test that a confirmed booking wins over any hold state."""
    bookings = StubBookingReader({TRIP: {"A1"}})
    manager = SeatLockManager(store, bookings, clock=clock)
    await store.set_with_ttl(seat_index_key(TRIP, "A1"), "stale-hold", timedelta(minutes=5))

    result = await manager.acquire(TRIP, ["A1"], "U1")

    assert result.rejection == RejectionReason.ALREADY_BOOKED
    assert result.seat_number == "A1"


@pytest.mark.asyncio
async def test_booked_seats_read_once_per_acquire(manager, bookings):
    await manager.acquire(TRIP, ["A1", "A2", "A3", "A4"], "U1")

    assert bookings.calls == 1


@pytest.mark.asyncio
async def test_release_then_reacquire(manager):
    """Test releasing a hold frees its seats for another holder."""
    first = await manager.acquire(TRIP, ["A1", "A2"], "U1")

    assert await manager.release(first.hold.hold_id) == ReleaseOutcome.RELEASED
    assert not await manager.is_held(TRIP, "A1")

    second = await manager.acquire(TRIP, ["A1", "A2"], "U2")
    assert second.acquired


@pytest.mark.asyncio
async def test_release_unknown_or_released_hold_is_not_found(manager, store):
    """Test release is a no-op for absent holds."""
    hold = (await manager.acquire(TRIP, ["A1"], "U1")).hold
    await manager.release(hold.hold_id)
    snapshot = dict(store.data)

    assert await manager.release(hold.hold_id) == ReleaseOutcome.NOT_FOUND
    assert await manager.release("never-existed") == ReleaseOutcome.NOT_FOUND
    assert store.data == snapshot


@pytest.mark.asyncio
async def test_release_leaves_index_entries_owned_by_other_holds(manager, store):
    hold = (await manager.acquire(TRIP, ["A1"], "U1")).hold
    await store.set_with_ttl(seat_index_key(TRIP, "A1"), "other-hold", timedelta(minutes=5))

    await manager.release(hold.hold_id)

    assert await store.get(seat_index_key(TRIP, "A1")) == "other-hold"


@pytest.mark.asyncio
async def test_hold_lapses_after_ttl(manager, clock):
    """Test a hold disappears after its TTL without any release."""
    hold = (await manager.acquire(TRIP, ["A1"], "U1")).hold

    clock.advance(minutes=10, seconds=1)

    assert not await manager.is_held(TRIP, "A1")
    assert not await manager.is_valid(hold.hold_id)
    assert await manager.release(hold.hold_id) == ReleaseOutcome.NOT_FOUND
    assert (await manager.acquire(TRIP, ["A1"], "U2")).acquired


@pytest.mark.asyncio
async def test_extend_rearms_record_and_index_together(manager, store, clock):
    """Test that extend gives every entry of the hold the same new expiry."""
    hold = (await manager.acquire(TRIP, ["A1", "A2", "A3"], "U1")).hold
    clock.advance(minutes=4)

    result = await manager.extend(hold.hold_id, timedelta(minutes=5))

    assert result.outcome == ExtendOutcome.EXTENDED
    assert result.expires_at == hold.expires_at + timedelta(minutes=5)

    expected_ttl = result.expires_at - clock()
    assert await store.ttl(hold_key(hold.hold_id)) == expected_ttl
    for seat in ["A1", "A2", "A3"]:
        assert await store.ttl(seat_index_key(TRIP, seat)) == expected_ttl

    stored = await manager.get_hold(hold.hold_id)
    assert stored.expires_at == result.expires_at

    clock.advance(minutes=10, seconds=30)
    assert await manager.is_valid(hold.hold_id)
    assert await manager.is_held(TRIP, "A3")

    clock.advance(seconds=31)
    assert not await manager.is_valid(hold.hold_id)
    assert not await manager.is_held(TRIP, "A1")


@pytest.mark.asyncio
async def test_extend_lapsed_hold_is_not_found(manager, clock):
    hold = (await manager.acquire(TRIP, ["A1"], "U1")).hold
    clock.advance(minutes=11)

    result = await manager.extend(hold.hold_id, timedelta(minutes=5))

    assert result.outcome == ExtendOutcome.NOT_FOUND
    assert not result.extended
    assert result.expires_at is None


@pytest.mark.asyncio
async def test_extend_rejects_non_positive_duration(manager):
    hold = (await manager.acquire(TRIP, ["A1"], "U1")).hold

    with pytest.raises(ValueError):
        await manager.extend(hold.hold_id, timedelta(0))


@pytest.mark.asyncio
async def test_is_valid_checks_stored_expiry(manager, store, clock):
    """Test that a record still present in the store past its expiry is not valid."""
    hold = (await manager.acquire(TRIP, ["A1"], "U1")).hold
    # Keep the record alive in the store beyond its recorded expiry
    await store.set_with_ttl(hold_key(hold.hold_id), hold.model_dump_json(), timedelta(minutes=30))

    clock.advance(minutes=10)

    assert await manager.get_hold(hold.hold_id) is not None
    assert not await manager.is_valid(hold.hold_id)


@pytest.mark.asyncio
async def test_store_outage_surfaces_as_unavailable(manager, store):
    """Test that a store failure is not mistaken for a free seat."""
    store.available = False

    with pytest.raises(UnavailableError):
        await manager.acquire(TRIP, ["A1"], "U1")

    with pytest.raises(UnavailableError):
        await manager.is_held(TRIP, "A1")


@pytest.mark.asyncio
async def test_claim_lost_rolls_back_partial_claims(store, bookings, clock):
    """Test that losing a seat claim removes the seats already claimed and the record."""
    manager = SeatLockManager(store, bookings, clock=clock, atomic_claims=True)
    await store.set_with_ttl(seat_index_key(TRIP, "A2"), "rival-hold", timedelta(minutes=5))

    # The rival writes A2 after this acquire's read phase has passed
    async def rival_not_yet_visible(trip_id, seat_number):
        return False

    manager.is_held = rival_not_yet_visible

    result = await manager.acquire(TRIP, ["A1", "A2"], "U2")

    assert result.rejection == RejectionReason.ALREADY_HELD
    assert result.seat_number == "A2"
    assert await store.get(seat_index_key(TRIP, "A1")) is None
    assert await store.get(seat_index_key(TRIP, "A2")) == "rival-hold"
    assert store.live_keys("hold:") == []


@pytest.mark.asyncio
async def test_sweep_removes_only_orphaned_index_entries(manager, store):
    """Test the sweep evicts index entries whose hold record is gone."""
    live = (await manager.acquire(TRIP, ["A1"], "U1")).hold
    await store.set_with_ttl(seat_index_key(TRIP, "B1"), "vanished-hold", timedelta(minutes=5))

    removed = await manager.sweep_orphaned_index_entries()

    assert removed == 1
    assert await store.get(seat_index_key(TRIP, "B1")) is None
    assert await store.get(seat_index_key(TRIP, "A1")) == live.hold_id
