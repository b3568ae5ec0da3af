"""
SQLAlchemy seat store: one unit of work is one database transaction.

CONCURRENCY STRATEGY: Row Lock + Conditional Updates
=====================================================

Problem:
  Two users try to take the last seat simultaneously.
  Both read available_seats=1, both write 0 and both registrations land.
  Result: Overbooking, and available_seats no longer matches the
  number of confirmed registrations.

Solution:
  Every seat-count mutation runs in one transaction that:

  1. Locks the event row (SELECT ... FOR UPDATE)
  2. Applies the counter change as a conditional UPDATE:
       take:    SET available_seats = available_seats - 1 WHERE available_seats > 0
       release: SET available_seats = available_seats + 1 WHERE available_seats < total_seats
     and reads rowcount to learn whether the condition matched
  3. Writes the registration row in the same transaction, guarded by a
     partial unique index on (event_id, user_id) WHERE status = 'confirmed'

  The row lock serialises mutations per event (different events never
  contend); the conditional UPDATEs and CHECK constraints still hold if a
  backend ignores FOR UPDATE (SQLite does).

  No retries: a losing registration sees the condition fail and reports
  SoldOut, which is the correct answer rather than a transient error.
"""

from contextlib import contextmanager
from typing import Callable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from event_portal.core.exceptions import UnavailableError
from event_portal.core.logging import get_logger
from event_portal.db.base import new_id, utcnow
from event_portal.models.event import Event
from event_portal.models.registration import Registration, RegistrationStatus
from event_portal.services.interfaces.seat_store import (
    AbstractSeatUnitOfWork,
    DuplicateRegistrationError,
    EventSeats,
    RegistrationRecord,
)

logger = get_logger(__name__)

_ACTIVE_UNIQUE_INDEX = "uq_registrations_active_user_event"

_SEAT_COLUMNS = (Event.id, Event.event_date, Event.total_seats, Event.available_seats)
_REGISTRATION_COLUMNS = (
    Registration.id,
    Registration.event_id,
    Registration.user_id,
    Registration.registration_date,
    Registration.status,
)


@contextmanager
def _store_errors():
    """Translate infrastructure failures into UnavailableError."""
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.error("seat_store_unavailable", error=str(exc.orig))
        raise UnavailableError() from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            logger.error("seat_store_connection_lost", error=str(exc.orig))
            raise UnavailableError() from exc
        raise
    except OSError as exc:
        logger.error("seat_store_unreachable", error=str(exc))
        raise UnavailableError() from exc


def _is_active_duplicate(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    # PostgreSQL names the index; SQLite lists the indexed columns
    return _ACTIVE_UNIQUE_INDEX in message or (
        "UNIQUE constraint failed" in message and "registrations.user_id" in message
    )


def _to_seats(row) -> Optional[EventSeats]:
    if row is None:
        return None
    return EventSeats(
        event_id=row.id,
        event_date=row.event_date,
        total_seats=row.total_seats,
        available_seats=row.available_seats,
    )


def _to_record(row) -> Optional[RegistrationRecord]:
    if row is None:
        return None
    return RegistrationRecord(
        id=row.id,
        event_id=row.event_id,
        user_id=row.user_id,
        registration_date=row.registration_date,
        status=row.status,
    )


class SqlAlchemySeatUnitOfWork(AbstractSeatUnitOfWork):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SqlAlchemySeatUnitOfWork":
        self._session = self._session_factory()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.rollback()
        finally:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("SqlAlchemySeatUnitOfWork used outside 'async with'")
        return self._session

    async def get_event(self, event_id: str) -> Optional[EventSeats]:
        with _store_errors():
            result = await self.session.execute(select(*_SEAT_COLUMNS).where(Event.id == event_id))
            return _to_seats(result.one_or_none())

    async def lock_event(self, event_id: str) -> Optional[EventSeats]:
        with _store_errors():
            result = await self.session.execute(
                select(*_SEAT_COLUMNS).where(Event.id == event_id).with_for_update()
            )
            return _to_seats(result.one_or_none())

    async def find_active_registration(self, event_id: str, user_id: str) -> Optional[RegistrationRecord]:
        with _store_errors():
            result = await self.session.execute(
                select(*_REGISTRATION_COLUMNS).where(
                    Registration.event_id == event_id,
                    Registration.user_id == user_id,
                    Registration.status == RegistrationStatus.CONFIRMED.value,
                )
            )
            return _to_record(result.one_or_none())

    async def get_registration(self, registration_id: str) -> Optional[RegistrationRecord]:
        with _store_errors():
            result = await self.session.execute(
                select(*_REGISTRATION_COLUMNS).where(Registration.id == registration_id)
            )
            return _to_record(result.one_or_none())

    async def take_seat(self, event_id: str) -> bool:
        with _store_errors():
            result = await self.session.execute(
                update(Event)
                .where(Event.id == event_id, Event.available_seats > 0)
                .values(available_seats=Event.available_seats - 1)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    async def release_seat(self, event_id: str) -> bool:
        with _store_errors():
            result = await self.session.execute(
                update(Event)
                .where(Event.id == event_id, Event.available_seats < Event.total_seats)
                .values(available_seats=Event.available_seats + 1)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    async def add_registration(self, event_id: str, user_id: str) -> RegistrationRecord:
        registration = Registration(
            id=new_id(),
            event_id=event_id,
            user_id=user_id,
            registration_date=utcnow(),
            status=RegistrationStatus.CONFIRMED.value,
        )
        self.session.add(registration)
        try:
            with _store_errors():
                await self.session.flush()
        except IntegrityError as exc:
            if _is_active_duplicate(exc):
                raise DuplicateRegistrationError(f"{user_id} already holds a seat at {event_id}") from exc
            raise
        return _to_record(registration)

    async def void_registration(self, registration_id: str) -> bool:
        with _store_errors():
            result = await self.session.execute(
                update(Registration)
                .where(
                    Registration.id == registration_id,
                    Registration.status == RegistrationStatus.CONFIRMED.value,
                )
                .values(status=RegistrationStatus.CANCELLED.value)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    async def count_active_registrations(self, event_id: str) -> int:
        with _store_errors():
            result = await self.session.execute(
                select(func.count())
                .select_from(Registration)
                .where(
                    Registration.event_id == event_id,
                    Registration.status == RegistrationStatus.CONFIRMED.value,
                )
            )
            return result.scalar_one()

    async def set_capacity(self, event_id: str, total_seats: int, available_seats: int) -> None:
        with _store_errors():
            await self.session.execute(
                update(Event)
                .where(Event.id == event_id)
                .values(total_seats=total_seats, available_seats=available_seats)
                .execution_options(synchronize_session=False)
            )

    async def commit(self) -> None:
        # A failure here leaves the outcome unknown to the caller
        with _store_errors():
            await self.session.commit()

    async def rollback(self) -> None:
        if self._session is not None and self._session.in_transaction():
            with _store_errors():
                await self._session.rollback()


def sql_unit_of_work_factory(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[], SqlAlchemySeatUnitOfWork]:
    def factory() -> SqlAlchemySeatUnitOfWork:
        return SqlAlchemySeatUnitOfWork(session_factory)

    return factory
