"""
Registration endpoints: the only HTTP entry points that move seats.

Every seat mutation is delegated to the SeatLedger. After it commits the
route invalidates the listing cache, publishes the event's new counters on
the change feed and schedules the notification email in the background.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from event_portal.api.deps import get_seat_ledger
from event_portal.api.routes.changes import publish_event_change
from event_portal.core.security import get_current_user_id
from event_portal.db.session import get_db
from event_portal.schemas.registration import (
    RegistrationCancelResponse,
    RegistrationCreate,
    RegistrationResponse,
    RegistrationWithEventResponse,
)
from event_portal.services.cache_service import invalidate_event_cache
from event_portal.services.notification_service import NotificationType, dispatch_notification
from event_portal.services.registration_service import TimeFilter, get_user_registrations
from event_portal.services.seat_ledger import SeatLedger

router = APIRouter(prefix="/registrations", tags=["Registrations"])


@router.post("/", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def register_endpoint(
    registration_data: RegistrationCreate,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ledger: SeatLedger = Depends(get_seat_ledger),
):
    """
    Take one seat for the current user.

    Returns:
        201 with the registration
        404 if the event does not exist
        409 if already registered, sold out or the event has started
        503 if the database is unreachable (safe to retry)
    """
    registration = await ledger.register(registration_data.event_id, user_id)

    await invalidate_event_cache()
    await publish_event_change(db, registration.event_id, "UPDATE")
    background_tasks.add_task(
        dispatch_notification, registration.event_id, user_id, NotificationType.REGISTRATION
    )
    return registration


@router.delete("/{registration_id}", response_model=RegistrationCancelResponse)
async def cancel_registration_endpoint(
    registration_id: str,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ledger: SeatLedger = Depends(get_seat_ledger),
):
    """Cancel one of your own registrations and give the seat back."""
    registration = await ledger.cancel(registration_id, user_id)

    await invalidate_event_cache()
    await publish_event_change(db, registration.event_id, "UPDATE")
    background_tasks.add_task(
        dispatch_notification, registration.event_id, user_id, NotificationType.CANCELLATION
    )
    return RegistrationCancelResponse(
        message="Registration cancelled",
        registration_id=registration.id,
        status=registration.status,
    )


@router.get("/", response_model=list[RegistrationWithEventResponse])
async def list_my_registrations_endpoint(
    when: TimeFilter = Query("all"),
    search: Optional[str] = Query(None, max_length=255),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Your active registrations, optionally only upcoming or past events."""
    return await get_user_registrations(db, user_id, when=when, search=search)
