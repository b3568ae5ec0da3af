"""
Seat store contract consumed by the seat ledger.

A unit of work is one all-or-nothing transaction against the persistence
service. Everything the ledger writes inside `async with uow:` is discarded
unless `commit()` is called before the block ends.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class EventSeats:
    """The slice of an event row the ledger reasons about."""

    event_id: str
    event_date: datetime
    total_seats: int
    available_seats: int


@dataclass(frozen=True)
class RegistrationRecord:
    id: str
    event_id: str
    user_id: str
    registration_date: datetime
    status: str

    @property
    def is_active(self) -> bool:
        return self.status == "confirmed"


class DuplicateRegistrationError(Exception):
    """The store refused a second confirmed registration for (event, user)."""


class AbstractSeatUnitOfWork(ABC):
    """
    Interface for seat-ledger persistence.

    Implementations:
    - SqlAlchemySeatUnitOfWork: one database transaction, row lock on the event
    - tests.fakes.InMemorySeatUnitOfWork: asyncio locks standing in for row locks
    """

    async def __aenter__(self) -> AbstractSeatUnitOfWork:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.rollback()

    @abstractmethod
    async def get_event(self, event_id: str) -> Optional[EventSeats]:
        """Committed snapshot of the event, without taking a lock."""

    @abstractmethod
    async def lock_event(self, event_id: str) -> Optional[EventSeats]:
        """
        Snapshot of the event under a row lock held until the unit ends.

        Every seat-count mutation takes this lock first, which serialises
        register/cancel/adjust on the same event and leaves other events alone.
        """

    @abstractmethod
    async def find_active_registration(self, event_id: str, user_id: str) -> Optional[RegistrationRecord]:
        pass

    @abstractmethod
    async def get_registration(self, registration_id: str) -> Optional[RegistrationRecord]:
        """Registration in any status, or None."""

    @abstractmethod
    async def take_seat(self, event_id: str) -> bool:
        """
        Decrement available_seats only where available_seats > 0.

        Returns:
            True if the condition matched and a seat was taken
        """

    @abstractmethod
    async def release_seat(self, event_id: str) -> bool:
        """
        Increment available_seats only where available_seats < total_seats.

        Returns:
            False when the cap absorbed the increment
        """

    @abstractmethod
    async def add_registration(self, event_id: str, user_id: str) -> RegistrationRecord:
        """
        Insert a confirmed registration.

        Raises:
            DuplicateRegistrationError: (event, user) already holds a confirmed row
        """

    @abstractmethod
    async def void_registration(self, registration_id: str) -> bool:
        """Move a confirmed registration to cancelled; False if it was not confirmed."""

    @abstractmethod
    async def count_active_registrations(self, event_id: str) -> int:
        pass

    @abstractmethod
    async def set_capacity(self, event_id: str, total_seats: int, available_seats: int) -> None:
        pass

    @abstractmethod
    async def commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Discard uncommitted work. Safe to call after commit or twice."""
