"""
Event service handling CRUD operations.

Seat counters are initialised here on creation and otherwise left to the
seat ledger: an edit that changes `total_seats` goes through
`SeatLedger.adjust_capacity`, never through a direct column write.
"""

from datetime import datetime, timezone
from sqlalchemy import delete, select, func
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from event_portal.core.exceptions import EventNotFoundError
from event_portal.core.logging import get_logger
from event_portal.core.security import Actor
from event_portal.models.event import Event
from event_portal.models.feedback import Feedback
from event_portal.models.registration import Registration
from event_portal.schemas.event import EventCreate, EventUpdate
from event_portal.services.seat_ledger import SeatLedger

logger = get_logger(__name__)

# Columns an edit may write directly; seat counters are excluded on purpose
_EDITABLE_FIELDS = ("title", "description", "location", "event_date", "image_url")


def _ensure_future(event_date: datetime) -> None:
    if event_date.tzinfo is None:
        event_date = event_date.replace(tzinfo=timezone.utc)
    if event_date <= datetime.now(timezone.utc):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event date must be in the future",
        )


async def create_event(db: AsyncSession, event_data: EventCreate, actor: Actor) -> Event:
    """Create a new event with full seat availability."""
    _ensure_future(event_data.event_date)

    event = Event(
        title=event_data.title,
        description=event_data.description,
        location=event_data.location,
        event_date=event_data.event_date,
        total_seats=event_data.total_seats,
        available_seats=event_data.total_seats,  # All seats available initially
        image_url=event_data.image_url,
        creator_id=actor.user_id,
    )
    db.add(event)
    await db.flush()

    logger.info("event_created", event_id=event.id, title=event.title, seats=event.total_seats)
    return event


async def get_event(db: AsyncSession, event_id: str) -> Event:
    """Get a single event by ID, always from the database."""
    result = await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()

    if not event:
        raise EventNotFoundError(event_id)
    return event


async def update_event(
    db: AsyncSession,
    ledger: SeatLedger,
    event_id: str,
    changes: EventUpdate,
    actor: Actor,
) -> Event:
    """
    Apply an admin edit.

    A capacity change is committed by the ledger first, in its own
    transaction; the descriptive fields are then written on `db`.
    """
    await get_event(db, event_id)
    fields = changes.model_dump(exclude_unset=True)

    if fields.get("event_date") is not None:
        _ensure_future(fields["event_date"])

    if fields.get("total_seats") is not None:
        await ledger.adjust_capacity(event_id, fields["total_seats"], actor.is_admin)

    event = await get_event(db, event_id)
    edited = []
    for name in _EDITABLE_FIELDS:
        if name in fields and fields[name] is not None:
            setattr(event, name, fields[name])
            edited.append(name)
    # image_url may be cleared explicitly
    if "image_url" in fields and fields["image_url"] is None:
        event.image_url = None
        edited.append("image_url")
    await db.flush()

    logger.info("event_updated", event_id=event_id, fields=edited, capacity_changed="total_seats" in fields)
    return event


async def set_event_image(db: AsyncSession, event_id: str, image_url: str) -> Event:
    event = await get_event(db, event_id)
    event.image_url = image_url
    await db.flush()
    logger.info("event_image_set", event_id=event_id, image_url=image_url)
    return event


async def delete_event(db: AsyncSession, event_id: str) -> None:
    """Delete an event together with its registrations and feedback."""
    await get_event(db, event_id)
    await db.execute(delete(Feedback).where(Feedback.event_id == event_id))
    await db.execute(delete(Registration).where(Registration.event_id == event_id))
    await db.execute(delete(Event).where(Event.id == event_id))
    await db.flush()
    logger.info("event_deleted", event_id=event_id)


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
    search: str | None = None,
) -> tuple[list[Event], int]:
    """
    List events with pagination, soonest first.
    Uses the ix_events_event_date index for the upcoming filter; `search`
    matches title, description or location, case-insensitively.
    """
    query = select(Event)

    if upcoming_only:
        query = query.where(Event.event_date >= datetime.now(timezone.utc))
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            Event.title.ilike(pattern) | Event.description.ilike(pattern) | Event.location.ilike(pattern)
        )

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.event_date.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    events = list(result.scalars().all())

    return events, total
