"""
Event endpoints with Redis caching on list operations.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from event_portal.api.deps import get_seat_ledger
from event_portal.api.routes.changes import publish_event_change
from event_portal.core.logging import get_logger
from event_portal.core.security import Actor, get_current_user_id, require_admin
from event_portal.db.session import get_db
from event_portal.schemas.event import (
    AvailabilityResponse,
    EventCreate,
    EventListResponse,
    EventResponse,
    EventUpdate,
)
from event_portal.schemas.registration import RegistrationResponse
from event_portal.services.blob_store import LocalBlobStore, get_blob_store
from event_portal.services.cache_service import get_cached_events, invalidate_event_cache, set_cached_events
from event_portal.services.event_service import (
    create_event,
    delete_event,
    get_event,
    list_events,
    set_event_image,
    update_event,
)
from event_portal.services.notification_service import NotificationType, collect_reminders, dispatch_notification
from event_portal.services.registration_service import get_active_registration
from event_portal.services.seat_ledger import SeatLedger

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a new event with every seat available. Admin only."""
    event = await create_event(db, event_data, actor)
    await db.commit()
    await invalidate_event_cache()
    await publish_event_change(db, event.id, "INSERT")
    return event


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    search: Optional[str] = Query(None, max_length=255),
    db: AsyncSession = Depends(get_db),
):
    """
    List events with pagination, soonest first, optionally filtered by a
    search over title, description and location.
    Results are cached in Redis until the next event or seat change.
    """
    cached = await get_cached_events(page, page_size, upcoming_only, search)
    if cached:
        cached["cached"] = True
        return EventListResponse(**cached)

    events, total = await list_events(db, page, page_size, upcoming_only, search)
    response_data = {
        "events": [EventResponse.model_validate(e).model_dump(mode="json") for e in events],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_events(page, page_size, upcoming_only, response_data, search)
    return EventListResponse(**response_data)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(event_id: str, db: AsyncSession = Depends(get_db)):
    """Get a single event. Not cached (needs real-time seat counts)."""
    return await get_event(db, event_id)


@router.get("/{event_id}/availability", response_model=AvailabilityResponse)
async def get_availability_endpoint(event_id: str, ledger: SeatLedger = Depends(get_seat_ledger)):
    available = await ledger.view_availability(event_id)
    return AvailabilityResponse(event_id=event_id, available_seats=available)


@router.patch("/{event_id}", response_model=EventResponse)
async def update_event_endpoint(
    event_id: str,
    changes: EventUpdate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    ledger: SeatLedger = Depends(get_seat_ledger),
):
    """
    Edit an event. Admin only.

    A new `total_seats` is rejected with 409 when it is below the number of
    confirmed registrations; available seats follow the new total.
    """
    await update_event(db, ledger, event_id, changes, actor)
    await db.commit()
    await invalidate_event_cache()
    await publish_event_change(db, event_id, "UPDATE")
    return await get_event(db, event_id)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event_endpoint(
    event_id: str,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete an event with its registrations and feedback. Admin only."""
    await delete_event(db, event_id)
    await db.commit()
    await invalidate_event_cache()
    await publish_event_change(db, event_id, "DELETE")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{event_id}/image", response_model=EventResponse)
async def upload_event_image_endpoint(
    event_id: str,
    image: UploadFile = File(...),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    blob_store: LocalBlobStore = Depends(get_blob_store),
):
    """Upload the event's image and point `image_url` at it. Admin only."""
    await get_event(db, event_id)
    # Buffer at most one byte past the cap
    data = await image.read(blob_store.max_bytes + 1)
    url = await blob_store.save_image(data, image.filename, image.content_type)
    event = await set_event_image(db, event_id, url)
    await db.commit()
    await invalidate_event_cache()
    await publish_event_change(db, event_id, "UPDATE")
    return event


@router.post("/{event_id}/reminders")
async def send_reminders_endpoint(
    event_id: str,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Queue reminder notifications for every confirmed attendee.

    Only events starting within the reminder window get reminders; for any
    other event nothing is scheduled.
    """
    await get_event(db, event_id)
    attendees = await collect_reminders(db, event_id)
    for user_id in attendees:
        background_tasks.add_task(dispatch_notification, event_id, user_id, NotificationType.REMINDER)
    logger.info("reminders_scheduled", event_id=event_id, count=len(attendees))
    return {"event_id": event_id, "scheduled": len(attendees)}


@router.get("/{event_id}/registration", response_model=RegistrationResponse)
async def get_my_registration_endpoint(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """The caller's active registration for this event, 404 if none."""
    await get_event(db, event_id)
    return await get_active_registration(db, event_id, user_id)
