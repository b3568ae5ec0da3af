"""
Seat ledger: the only code path that changes an event's seat counters.

Invariant, for every event and at every observable point:

    available_seats == total_seats - count(confirmed registrations)
    0 <= available_seats <= total_seats

Each operation runs inside one unit of work from the injected factory, takes
the event's row lock before touching the counter, and maps every failed
condition to a specific error so the caller learns why it failed. Identity
and role arrive as arguments; the ledger never looks up a session itself and
never publishes to the change feed (the route layer does that after commit).
"""

import time
from dataclasses import replace
from datetime import datetime
from typing import Callable

from event_portal.core.exceptions import (
    AdminRequiredError,
    AlreadyRegisteredError,
    CapacityBelowDemandError,
    EventAlreadyStartedError,
    EventNotFoundError,
    InvalidCapacityError,
    NotOwnerError,
    PortalError,
    RegistrationNotFoundError,
    SoldOutError,
)
from event_portal.core.logging import get_logger
from event_portal.core.metrics import (
    record_cancellation,
    record_capacity_adjustment,
    record_registration_attempt,
    registration_latency,
    seat_release_capped,
)
from event_portal.db.base import utcnow
from event_portal.models.registration import RegistrationStatus
from event_portal.services.interfaces.seat_store import (
    AbstractSeatUnitOfWork,
    DuplicateRegistrationError,
    EventSeats,
    RegistrationRecord,
)

logger = get_logger(__name__)

UnitOfWorkFactory = Callable[[], AbstractSeatUnitOfWork]


class SeatLedger:
    def __init__(self, uow_factory: UnitOfWorkFactory, clock: Callable[[], datetime] = utcnow):
        self._uow_factory = uow_factory
        self._clock = clock

    async def register(self, event_id: str, user_id: str) -> RegistrationRecord:
        """
        Claim one seat for `user_id`.

        The existence, start-time and duplicate checks run under the event's
        row lock, then the conditional decrement and the insert commit
        together. Losing the race for the last seat is reported as SoldOut;
        it is not retried.
        """
        start = time.perf_counter()
        try:
            async with self._uow_factory() as uow:
                event = await uow.lock_event(event_id)
                if event is None:
                    raise EventNotFoundError(event_id)
                if event.event_date <= self._clock():
                    raise EventAlreadyStartedError(event_id)
                if await uow.find_active_registration(event_id, user_id) is not None:
                    raise AlreadyRegisteredError(event_id)
                if not await uow.take_seat(event_id):
                    raise SoldOutError(event_id)
                try:
                    registration = await uow.add_registration(event_id, user_id)
                except DuplicateRegistrationError:
                    raise AlreadyRegisteredError(event_id)
                await uow.commit()
        except PortalError as exc:
            record_registration_attempt(exc.code)
            logger.info(
                "registration_rejected",
                event_id=event_id,
                user_id=user_id,
                reason=exc.code,
            )
            raise
        finally:
            registration_latency.observe(time.perf_counter() - start)

        record_registration_attempt("confirmed")
        logger.info(
            "registration_created",
            registration_id=registration.id,
            event_id=event_id,
            user_id=user_id,
            seats_left=event.available_seats - 1,
        )
        return registration

    async def cancel(self, registration_id: str, user_id: str) -> RegistrationRecord:
        """
        Cancel an active registration and give its seat back.

        A cancelled registration is indistinguishable from a missing one, so
        re-issuing a cancel is safe: it fails with RegistrationNotFound and
        leaves the counter alone.
        """
        try:
            async with self._uow_factory() as uow:
                registration = await uow.get_registration(registration_id)
                if registration is None or not registration.is_active:
                    raise RegistrationNotFoundError(registration_id)
                if registration.user_id != user_id:
                    raise NotOwnerError(registration_id)

                await uow.lock_event(registration.event_id)
                # A concurrent cancel may have won between the read and the lock
                if not await uow.void_registration(registration_id):
                    raise RegistrationNotFoundError(registration_id)
                released = await uow.release_seat(registration.event_id)
                await uow.commit()
        except PortalError as exc:
            record_cancellation(exc.code)
            logger.info(
                "cancellation_rejected",
                registration_id=registration_id,
                user_id=user_id,
                reason=exc.code,
            )
            raise

        if not released:
            seat_release_capped.inc()
            logger.warning(
                "seat_release_capped",
                registration_id=registration_id,
                event_id=registration.event_id,
            )
        record_cancellation("cancelled")
        logger.info(
            "registration_cancelled",
            registration_id=registration_id,
            event_id=registration.event_id,
            user_id=user_id,
        )
        return replace(registration, status=RegistrationStatus.CANCELLED.value)

    async def adjust_capacity(self, event_id: str, new_total_seats: int, actor_is_admin: bool) -> EventSeats:
        """
        Change an event's capacity and recompute its free seats.

        Shrinking below the number of confirmed registrations is refused
        with CapacityBelowDemand and nothing is written.
        """
        try:
            if not actor_is_admin:
                raise AdminRequiredError("capacity changes")
            if new_total_seats < 1:
                raise InvalidCapacityError(new_total_seats)

            async with self._uow_factory() as uow:
                event = await uow.lock_event(event_id)
                if event is None:
                    raise EventNotFoundError(event_id)
                confirmed = await uow.count_active_registrations(event_id)
                if new_total_seats < confirmed:
                    raise CapacityBelowDemandError(new_total_seats, confirmed)
                available = new_total_seats - confirmed
                await uow.set_capacity(event_id, new_total_seats, available)
                await uow.commit()
        except PortalError as exc:
            record_capacity_adjustment(exc.code)
            logger.info(
                "capacity_adjustment_rejected",
                event_id=event_id,
                requested=new_total_seats,
                reason=exc.code,
            )
            raise

        record_capacity_adjustment("adjusted")
        logger.info(
            "capacity_adjusted",
            event_id=event_id,
            previous_total=event.total_seats,
            total_seats=new_total_seats,
            available_seats=available,
        )
        return EventSeats(
            event_id=event_id,
            event_date=event.event_date,
            total_seats=new_total_seats,
            available_seats=available,
        )

    async def view_availability(self, event_id: str) -> int:
        """Committed free-seat count; never reflects an in-flight mutation."""
        async with self._uow_factory() as uow:
            event = await uow.get_event(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event.available_seats
