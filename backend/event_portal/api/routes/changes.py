"""
Change feed endpoints (server-sent events) and the publish helper the
write routes call once their changes have committed.
"""

import asyncio
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from event_portal.core.config import get_settings
from event_portal.core.exceptions import EventNotFoundError
from event_portal.core.logging import get_logger
from event_portal.schemas.event import EventResponse
from event_portal.services.change_feed import ChangeFeed, ChangeNotification, ChangeType, get_change_feed
from event_portal.services.event_service import get_event

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Change Feed"])

EVENTS_TABLE = "events"


def encode_sse(change: ChangeNotification) -> str:
    return f"event: {change.type}\ndata: {change.model_dump_json()}\n\n"


async def publish_event_change(
    db: AsyncSession,
    event_id: str,
    change_type: ChangeType = "UPDATE",
    feed: Optional[ChangeFeed] = None,
) -> int:
    """
    Publish the current committed state of an event row.

    Runs after the caller's change has committed, so a row deleted in the
    meantime is logged and skipped rather than failing the request.
    """
    feed = feed or get_change_feed()
    new = None
    if change_type != "DELETE":
        try:
            event = await get_event(db, event_id)
        except EventNotFoundError:
            logger.warning("change_publish_skipped", event_id=event_id, change_type=change_type, reason="event_gone")
            return 0
        new = EventResponse.model_validate(event).model_dump(mode="json")
    return feed.publish(ChangeNotification(table=EVENTS_TABLE, type=change_type, row_id=event_id, new=new))


async def _event_stream(request: Request, feed: ChangeFeed, row_id: Optional[str]) -> AsyncIterator[str]:
    keepalive = get_settings().CHANGE_FEED_KEEPALIVE
    async with feed.subscribe(EVENTS_TABLE, row_id) as subscription:
        logger.info("change_stream_opened", row_id=row_id)
        yield ": connected\n\n"
        while not await request.is_disconnected():
            try:
                change = await asyncio.wait_for(subscription.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield encode_sse(change)
    logger.info("change_stream_closed", row_id=row_id)


def _sse_response(stream: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(
        stream,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/changes")
async def stream_all_event_changes(request: Request, feed: ChangeFeed = Depends(get_change_feed)):
    """Live inserts, updates and deletes of every event."""
    return _sse_response(_event_stream(request, feed, None))


@router.get("/{event_id}/changes")
async def stream_event_changes(event_id: str, request: Request, feed: ChangeFeed = Depends(get_change_feed)):
    """Live updates of one event, e.g. its seat counters."""
    return _sse_response(_event_stream(request, feed, event_id))
