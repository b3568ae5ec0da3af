"""
Read-side queries over registrations ("My Events").

Writes go through the seat ledger; nothing here touches seat counters.
"""

from datetime import datetime, timezone
from typing import Literal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from event_portal.core.exceptions import RegistrationNotFoundError
from event_portal.models.event import Event
from event_portal.models.registration import Registration, RegistrationStatus

TimeFilter = Literal["all", "upcoming", "past"]


async def get_user_registrations(
    db: AsyncSession,
    user_id: str,
    when: TimeFilter = "all",
    search: str | None = None,
) -> list[Registration]:
    """Active registrations of a user with their events, newest first."""
    query = (
        select(Registration)
        .join(Event, Event.id == Registration.event_id)
        .where(
            Registration.user_id == user_id,
            Registration.status == RegistrationStatus.CONFIRMED.value,
        )
    )

    now = datetime.now(timezone.utc)
    if when == "upcoming":
        query = query.where(Event.event_date >= now)
    elif when == "past":
        query = query.where(Event.event_date < now)

    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(Event.title.ilike(pattern) | Event.location.ilike(pattern))

    result = await db.execute(query.order_by(Registration.registration_date.desc()))
    return list(result.scalars().all())


async def get_active_registration(db: AsyncSession, event_id: str, user_id: str) -> Registration:
    result = await db.execute(
        select(Registration).where(
            Registration.event_id == event_id,
            Registration.user_id == user_id,
            Registration.status == RegistrationStatus.CONFIRMED.value,
        )
    )
    registration = result.scalar_one_or_none()
    if registration is None:
        raise RegistrationNotFoundError(f"for event {event_id}")
    return registration


async def has_held_registration(db: AsyncSession, event_id: str, user_id: str) -> bool:
    """True if the user ever registered for the event, cancelled or not."""
    result = await db.execute(
        select(Registration.id)
        .where(Registration.event_id == event_id, Registration.user_id == user_id)
        .limit(1)
    )
    return result.first() is not None


async def get_confirmed_attendees(db: AsyncSession, event_id: str) -> list[str]:
    result = await db.execute(
        select(Registration.user_id).where(
            Registration.event_id == event_id,
            Registration.status == RegistrationStatus.CONFIRMED.value,
        )
    )
    return list(result.scalars().all())
