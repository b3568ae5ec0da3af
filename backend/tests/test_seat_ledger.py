"""
Seat ledger behaviour against the in-memory store, including races.

The in-memory store serialises on per-event locks exactly where the SQL
store takes row locks, so these tests exercise the ledger's ordering of
checks and writes under real asyncio interleaving.
"""

import asyncio
import random
from datetime import datetime, timezone, timedelta

import pytest

from event_portal.core.exceptions import (
    AdminRequiredError,
    AlreadyRegisteredError,
    CapacityBelowDemandError,
    EventAlreadyStartedError,
    EventNotFoundError,
    InvalidCapacityError,
    NotOwnerError,
    RegistrationNotFoundError,
    SoldOutError,
)
from event_portal.services.seat_ledger import SeatLedger
from tests.fakes import InMemorySeatStore

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_ledger(latency: float = 0.0) -> tuple[SeatLedger, InMemorySeatStore]:
    store = InMemorySeatStore(latency=latency)
    return SeatLedger(store.unit_of_work, clock=lambda: NOW), store


def assert_ledger_consistent(store: InMemorySeatStore, event_id: str) -> None:
    event = store.events[event_id]
    confirmed = store.confirmed_count(event_id)
    assert event.available_seats == event.total_seats - confirmed
    assert 0 <= event.available_seats <= event.total_seats


@pytest.mark.asyncio
async def test_register_takes_one_seat():
    ledger, store = make_ledger()
    store.add_event("e1", NOW + timedelta(days=1), 10)

    registration = await ledger.register("e1", "u1")

    assert registration.status == "confirmed"
    assert registration.event_id == "e1"
    assert await ledger.view_availability("e1") == 9
    assert_ledger_consistent(store, "e1")


@pytest.mark.asyncio
async def test_ten_seats_for_ten_users_then_sold_out():
    ledger, store = make_ledger()
    store.add_event("e1", NOW + timedelta(days=1), 10)

    for i in range(10):
        await ledger.register("e1", f"u{i}")

    assert await ledger.view_availability("e1") == 0
    with pytest.raises(SoldOutError):
        await ledger.register("e1", "late-user")
    assert store.confirmed_count("e1") == 10


@pytest.mark.asyncio
async def test_ten_seat_scenario():
    ledger, store = make_ledger(latency=0.001)
    store.add_event("e1", NOW + timedelta(days=1), 10)

    first = await ledger.register("e1", "user-a")
    assert await ledger.view_availability("e1") == 9

    await ledger.cancel(first.id, "user-a")
    assert await ledger.view_availability("e1") == 10
    assert store.confirmed_count("e1") == 0
    with pytest.raises(RegistrationNotFoundError):
        await ledger.cancel(first.id, "user-a")

    for i in range(9):
        await ledger.register("e1", f"user-{i}")
    assert await ledger.view_availability("e1") == 1

    results = await asyncio.gather(
        ledger.register("e1", "racer-x"),
        ledger.register("e1", "racer-y"),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1 and winners[0].status == "confirmed"
    assert len(losers) == 1 and isinstance(losers[0], SoldOutError)
    assert await ledger.view_availability("e1") == 0
    assert_ledger_consistent(store, "e1")


@pytest.mark.asyncio
async def test_race_for_last_seat_has_exactly_one_winner():
    ledger, store = make_ledger(latency=0.001)
    store.add_event("e1", NOW + timedelta(days=1), 1)

    results = await asyncio.gather(
        *(ledger.register("e1", f"u{i}") for i in range(20)),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 19
    assert all(isinstance(e, SoldOutError) for e in losers)
    assert store.events["e1"].available_seats == 0
    assert_ledger_consistent(store, "e1")


@pytest.mark.asyncio
async def test_hundred_users_never_oversell_fifty_seats():
    ledger, store = make_ledger(latency=0.0005)
    store.add_event("e1", NOW + timedelta(days=1), 50)

    results = await asyncio.gather(
        *(ledger.register("e1", f"u{i}") for i in range(100)),
        return_exceptions=True,
    )

    assert sum(1 for r in results if not isinstance(r, Exception)) == 50
    assert store.confirmed_count("e1") == 50
    assert_ledger_consistent(store, "e1")


@pytest.mark.asyncio
async def test_same_user_concurrently_gets_one_registration():
    ledger, store = make_ledger(latency=0.001)
    store.add_event("e1", NOW + timedelta(days=1), 10)

    results = await asyncio.gather(
        *(ledger.register("e1", "u1") for _ in range(5)),
        return_exceptions=True,
    )

    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert all(isinstance(r, AlreadyRegisteredError) for r in results if isinstance(r, Exception))
    assert store.events["e1"].available_seats == 9


@pytest.mark.asyncio
async def test_register_twice_is_rejected_without_touching_seats():
    ledger, store = make_ledger()
    store.add_event("e1", NOW + timedelta(days=1), 10)
    await ledger.register("e1", "u1")

    with pytest.raises(AlreadyRegisteredError):
        await ledger.register("e1", "u1")
    assert store.events["e1"].available_seats == 9


@pytest.mark.asyncio
async def test_register_unknown_event():
    ledger, _ = make_ledger()
    with pytest.raises(EventNotFoundError):
        await ledger.register("missing", "u1")


@pytest.mark.asyncio
async def test_register_after_start_is_rejected():
    ledger, store = make_ledger()
    store.add_event("e1", NOW - timedelta(minutes=1), 10)

    with pytest.raises(EventAlreadyStartedError):
        await ledger.register("e1", "u1")
    assert store.events["e1"].available_seats == 10


@pytest.mark.asyncio
async def test_cancel_releases_seat_and_allows_re_registration():
    ledger, store = make_ledger()
    store.add_event("e1", NOW + timedelta(days=1), 1)
    registration = await ledger.register("e1", "u1")

    cancelled = await ledger.cancel(registration.id, "u1")

    assert cancelled.status == "cancelled"
    assert store.events["e1"].available_seats == 1
    again = await ledger.register("e1", "u1")
    assert again.id != registration.id
    assert store.events["e1"].available_seats == 0
    assert_ledger_consistent(store, "e1")


@pytest.mark.asyncio
async def test_cancel_twice_releases_only_once():
    ledger, store = make_ledger()
    store.add_event("e1", NOW + timedelta(days=1), 5)
    registration = await ledger.register("e1", "u1")
    await ledger.register("e1", "u2")
    await ledger.cancel(registration.id, "u1")

    with pytest.raises(RegistrationNotFoundError):
        await ledger.cancel(registration.id, "u1")
    assert store.events["e1"].available_seats == 4


@pytest.mark.asyncio
async def test_concurrent_cancels_release_one_seat():
    ledger, store = make_ledger(latency=0.001)
    store.add_event("e1", NOW + timedelta(days=1), 5)
    registration = await ledger.register("e1", "u1")

    results = await asyncio.gather(
        *(ledger.cancel(registration.id, "u1") for _ in range(4)),
        return_exceptions=True,
    )

    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert all(isinstance(r, RegistrationNotFoundError) for r in results if isinstance(r, Exception))
    assert store.events["e1"].available_seats == 5


@pytest.mark.asyncio
async def test_cancel_someone_elses_registration():
    ledger, store = make_ledger()
    store.add_event("e1", NOW + timedelta(days=1), 5)
    registration = await ledger.register("e1", "owner")

    with pytest.raises(NotOwnerError):
        await ledger.cancel(registration.id, "intruder")
    assert store.events["e1"].available_seats == 4
    assert store.registrations[registration.id].is_active


@pytest.mark.asyncio
async def test_cancel_unknown_registration():
    ledger, _ = make_ledger()
    with pytest.raises(RegistrationNotFoundError):
        await ledger.cancel("nope", "u1")


@pytest.mark.asyncio
async def test_adjust_capacity_recomputes_available_seats():
    ledger, store = make_ledger()
    store.add_event("e1", NOW + timedelta(days=1), 10)
    for i in range(4):
        await ledger.register("e1", f"u{i}")

    seats = await ledger.adjust_capacity("e1", 6, actor_is_admin=True)

    assert seats.total_seats == 6
    assert seats.available_seats == 2
    assert_ledger_consistent(store, "e1")

    await ledger.adjust_capacity("e1", 20, actor_is_admin=True)
    assert store.events["e1"].available_seats == 16


@pytest.mark.asyncio
async def test_adjust_capacity_down_to_demand_sells_out():
    ledger, store = make_ledger()
    store.add_event("e1", NOW + timedelta(days=1), 10)
    for i in range(3):
        await ledger.register("e1", f"u{i}")

    await ledger.adjust_capacity("e1", 3, actor_is_admin=True)

    assert store.events["e1"].available_seats == 0
    with pytest.raises(SoldOutError):
        await ledger.register("e1", "u9")


@pytest.mark.asyncio
async def test_adjust_capacity_below_demand_is_refused():
    ledger, store = make_ledger()
    store.add_event("e1", NOW + timedelta(days=1), 10)
    for i in range(5):
        await ledger.register("e1", f"u{i}")

    with pytest.raises(CapacityBelowDemandError):
        await ledger.adjust_capacity("e1", 4, actor_is_admin=True)
    assert store.events["e1"].total_seats == 10
    assert store.events["e1"].available_seats == 5


@pytest.mark.asyncio
async def test_adjust_capacity_requires_admin():
    ledger, store = make_ledger()
    store.add_event("e1", NOW + timedelta(days=1), 10)

    with pytest.raises(AdminRequiredError):
        await ledger.adjust_capacity("e1", 20, actor_is_admin=False)
    assert store.events["e1"].total_seats == 10
    assert store.commits == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("capacity", [0, -3])
async def test_adjust_capacity_rejects_non_positive(capacity):
    ledger, store = make_ledger()
    store.add_event("e1", NOW + timedelta(days=1), 10)

    with pytest.raises(InvalidCapacityError):
        await ledger.adjust_capacity("e1", capacity, actor_is_admin=True)


@pytest.mark.asyncio
async def test_adjust_capacity_unknown_event():
    ledger, _ = make_ledger()
    with pytest.raises(EventNotFoundError):
        await ledger.adjust_capacity("missing", 5, actor_is_admin=True)


@pytest.mark.asyncio
async def test_capacity_shrink_racing_registrations_keeps_invariant():
    ledger, store = make_ledger(latency=0.0005)
    store.add_event("e1", NOW + timedelta(days=1), 10)

    tasks = [ledger.register("e1", f"u{i}") for i in range(8)]
    tasks.append(ledger.adjust_capacity("e1", 5, actor_is_admin=True))
    await asyncio.gather(*tasks, return_exceptions=True)

    assert_ledger_consistent(store, "e1")
    assert store.confirmed_count("e1") <= store.events["e1"].total_seats


@pytest.mark.asyncio
async def test_view_availability_ignores_in_flight_changes():
    ledger, store = make_ledger()
    store.add_event("e1", NOW + timedelta(days=1), 3)

    uow = store.unit_of_work()
    async with uow:
        await uow.lock_event("e1")
        assert await uow.take_seat("e1")
        assert await ledger.view_availability("e1") == 3

    assert await ledger.view_availability("e1") == 3


@pytest.mark.asyncio
async def test_view_availability_unknown_event():
    ledger, _ = make_ledger()
    with pytest.raises(EventNotFoundError):
        await ledger.view_availability("missing")


@pytest.mark.asyncio
async def test_events_do_not_block_each_other():
    ledger, store = make_ledger(latency=0.001)
    store.add_event("busy", NOW + timedelta(days=1), 5)
    store.add_event("quiet", NOW + timedelta(days=1), 5)

    holder = store.unit_of_work()
    async with holder:
        await holder.lock_event("busy")
        registration = await asyncio.wait_for(ledger.register("quiet", "u1"), timeout=1)

    assert registration.event_id == "quiet"
    assert store.events["busy"].available_seats == 5


@pytest.mark.asyncio
async def test_random_operation_mix_preserves_invariant():
    rng = random.Random(1234)
    ledger, store = make_ledger(latency=0.0002)
    store.add_event("e1", NOW + timedelta(days=1), 15)
    users = [f"u{i}" for i in range(25)]
    held: dict[str, str] = {}

    async def register(user):
        registration = await ledger.register("e1", user)
        held[user] = registration.id

    async def cancel(user):
        registration_id = held.get(user)
        if registration_id:
            await ledger.cancel(registration_id, user)
            held.pop(user, None)

    async def resize():
        await ledger.adjust_capacity("e1", rng.randint(1, 30), actor_is_admin=True)

    for _ in range(10):
        batch = []
        for _ in range(12):
            roll = rng.random()
            user = rng.choice(users)
            if roll < 0.6:
                batch.append(register(user))
            elif roll < 0.9:
                batch.append(cancel(user))
            else:
                batch.append(resize())
        await asyncio.gather(*batch, return_exceptions=True)
        assert_ledger_consistent(store, "e1")
