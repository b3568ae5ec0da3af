"""
Out-of-band notifications (registration, reminder, cancellation emails).

Dispatch is fire-and-forget: routes hand it to FastAPI background tasks,
failures are logged and counted, and nothing is retried. The email body is
built by whatever sits behind NOTIFIER_URL; this service only says which
user, which event and why.
"""

import enum
from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from event_portal.core.config import get_settings
from event_portal.core.logging import get_logger
from event_portal.core.metrics import record_notification
from event_portal.models.event import Event
from event_portal.services.registration_service import get_confirmed_attendees

logger = get_logger(__name__)


class NotificationType(str, enum.Enum):
    REGISTRATION = "registration"
    REMINDER = "reminder"
    CANCELLATION = "cancellation"


async def dispatch_notification(
    event_id: str,
    user_id: str,
    notification_type: NotificationType,
    client: httpx.AsyncClient | None = None,
) -> bool:
    """
    Send one notification request. Never raises.

    Returns:
        True if the notifier accepted it
    """
    settings = get_settings()
    kind = notification_type.value

    if not settings.NOTIFIER_URL:
        record_notification(kind, "skipped")
        logger.info("notification_skipped", event_id=event_id, user_id=user_id, type=kind)
        return False

    payload = {"eventId": event_id, "userId": user_id, "type": kind}
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.NOTIFIER_TIMEOUT) as own_client:
                response = await own_client.post(settings.NOTIFIER_URL, json=payload)
        else:
            response = await client.post(settings.NOTIFIER_URL, json=payload)
        response.raise_for_status()
    except httpx.HTTPError as e:
        record_notification(kind, "failed")
        logger.warning(
            "notification_failed",
            event_id=event_id,
            user_id=user_id,
            type=kind,
            error=str(e),
        )
        return False

    record_notification(kind, "sent")
    logger.info("notification_sent", event_id=event_id, user_id=user_id, type=kind)
    return True


async def collect_reminders(db: AsyncSession, event_id: str, now: datetime | None = None) -> list[str]:
    """
    Attendees to remind for an event starting within REMINDER_WINDOW_HOURS.

    Returns an empty list for events outside the window.
    """
    now = now or datetime.now(timezone.utc)
    window = timedelta(hours=get_settings().REMINDER_WINDOW_HOURS)
    result = await db.execute(
        select(Event.id).where(
            Event.id == event_id,
            Event.event_date > now,
            Event.event_date <= now + window,
        )
    )
    if result.scalar_one_or_none() is None:
        return []
    return await get_confirmed_attendees(db, event_id)
