"""
Service interfaces for dependency inversion.
Lets the seat ledger run against any store that honours the contract.
"""

from .seat_store import (
    AbstractSeatUnitOfWork,
    DuplicateRegistrationError,
    EventSeats,
    RegistrationRecord,
)

__all__ = [
    'AbstractSeatUnitOfWork',
    'DuplicateRegistrationError',
    'EventSeats',
    'RegistrationRecord',
]
