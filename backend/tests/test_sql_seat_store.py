"""
Seat ledger against the SQLAlchemy store.

Runs sequentially on SQLite by default. The concurrent test needs real row
locks and only runs when TEST_DATABASE_URL points at PostgreSQL.
"""

import asyncio
import os

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from event_portal.core.exceptions import (
    AlreadyRegisteredError,
    CapacityBelowDemandError,
    SoldOutError,
    UnavailableError,
)
from event_portal.models import Event, Registration, RegistrationStatus
from event_portal.services.interfaces.seat_store import DuplicateRegistrationError
from event_portal.services.seat_ledger import SeatLedger
from event_portal.services.sql_seat_store import SqlAlchemySeatUnitOfWork

requires_postgres = pytest.mark.skipif(
    not os.environ.get("TEST_DATABASE_URL", "").startswith("postgresql"),
    reason="needs PostgreSQL row locks (set TEST_DATABASE_URL)",
)


async def confirmed_count(db_session, event_id: str) -> int:
    result = await db_session.execute(
        select(func.count())
        .select_from(Registration)
        .where(Registration.event_id == event_id, Registration.status == RegistrationStatus.CONFIRMED.value)
    )
    return result.scalar_one()


async def seats(db_session, event_id: str) -> tuple[int, int]:
    result = await db_session.execute(
        select(Event.total_seats, Event.available_seats)
        .where(Event.id == event_id)
        .execution_options(populate_existing=True)
    )
    return tuple(result.one())


@pytest.mark.asyncio
async def test_register_and_cancel_persist(ledger: SeatLedger, db_session, make_event, test_user):
    event = await make_event(total=2)

    registration = await ledger.register(event.id, test_user.id)
    assert await seats(db_session, event.id) == (2, 1)

    await ledger.cancel(registration.id, test_user.id)
    assert await seats(db_session, event.id) == (2, 2)

    stored = await db_session.get(Registration, registration.id, populate_existing=True)
    assert stored.status == "cancelled"


@pytest.mark.asyncio
async def test_sold_out_rolls_back(ledger: SeatLedger, db_session, sold_out_event, test_user):
    with pytest.raises(SoldOutError):
        await ledger.register(sold_out_event.id, test_user.id)

    assert await seats(db_session, sold_out_event.id) == (1, 0)
    assert await confirmed_count(db_session, sold_out_event.id) == 1


@pytest.mark.asyncio
async def test_cancelled_row_does_not_block_new_registration(ledger: SeatLedger, db_session, make_event, test_user):
    event = await make_event(total=3)
    first = await ledger.register(event.id, test_user.id)
    await ledger.cancel(first.id, test_user.id)

    second = await ledger.register(event.id, test_user.id)

    assert second.id != first.id
    rows = (await db_session.execute(
        select(Registration.status).where(Registration.event_id == event.id)
    )).scalars().all()
    assert sorted(rows) == ["cancelled", "confirmed"]


@pytest.mark.asyncio
async def test_unique_index_rejects_second_active_row(session_factory, make_event, test_user):
    event = await make_event(total=5)

    async with SqlAlchemySeatUnitOfWork(session_factory) as uow:
        await uow.add_registration(event.id, test_user.id)
        await uow.commit()

    async with SqlAlchemySeatUnitOfWork(session_factory) as uow:
        with pytest.raises(DuplicateRegistrationError):
            await uow.add_registration(event.id, test_user.id)


@pytest.mark.asyncio
async def test_take_seat_condition_stops_at_zero(session_factory, make_event):
    event = await make_event(total=1)

    async with SqlAlchemySeatUnitOfWork(session_factory) as uow:
        await uow.lock_event(event.id)
        assert await uow.take_seat(event.id) is True
        assert await uow.take_seat(event.id) is False
        await uow.commit()

    async with SqlAlchemySeatUnitOfWork(session_factory) as uow:
        assert (await uow.get_event(event.id)).available_seats == 0


@pytest.mark.asyncio
async def test_release_seat_is_capped_at_total(session_factory, make_event):
    event = await make_event(total=4)

    async with SqlAlchemySeatUnitOfWork(session_factory) as uow:
        await uow.lock_event(event.id)
        assert await uow.release_seat(event.id) is False
        await uow.commit()

    async with SqlAlchemySeatUnitOfWork(session_factory) as uow:
        assert (await uow.get_event(event.id)).available_seats == 4


@pytest.mark.asyncio
async def test_uncommitted_work_is_discarded(session_factory, make_event, test_user):
    event = await make_event(total=4)

    async with SqlAlchemySeatUnitOfWork(session_factory) as uow:
        await uow.lock_event(event.id)
        await uow.take_seat(event.id)
        await uow.add_registration(event.id, test_user.id)

    async with SqlAlchemySeatUnitOfWork(session_factory) as uow:
        assert (await uow.get_event(event.id)).available_seats == 4
        assert await uow.find_active_registration(event.id, test_user.id) is None


@pytest.mark.asyncio
async def test_capacity_below_demand_leaves_row_untouched(
    ledger: SeatLedger, db_session, make_event, make_registration, test_user, other_user
):
    event = await make_event(total=5)
    await make_registration(event, test_user)
    await make_registration(event, other_user)

    with pytest.raises(CapacityBelowDemandError):
        await ledger.adjust_capacity(event.id, 1, actor_is_admin=True)
    assert await seats(db_session, event.id) == (5, 3)

    await ledger.adjust_capacity(event.id, 2, actor_is_admin=True)
    assert await seats(db_session, event.id) == (2, 0)


@pytest.mark.asyncio
async def test_operational_error_surfaces_as_unavailable(session_factory, monkeypatch):
    async def broken_execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))

    monkeypatch.setattr(AsyncSession, "execute", broken_execute)

    async with SqlAlchemySeatUnitOfWork(session_factory) as uow:
        with pytest.raises(UnavailableError):
            await uow.get_event("anything")


@requires_postgres
@pytest.mark.asyncio
async def test_concurrent_registrations_never_oversell(ledger: SeatLedger, db_session, make_event, make_profile):
    event = await make_event(total=10)
    users = [await make_profile(f"racer{i}@example.com") for i in range(30)]

    results = await asyncio.gather(
        *(ledger.register(event.id, user.id) for user in users),
        return_exceptions=True,
    )

    assert sum(1 for r in results if not isinstance(r, Exception)) == 10
    assert all(isinstance(r, (SoldOutError, AlreadyRegisteredError)) for r in results if isinstance(r, Exception))
    assert await seats(db_session, event.id) == (10, 0)
    assert await confirmed_count(db_session, event.id) == 10
