"""
Post-event feedback: one rating and comment per attendee per event.
"""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from event_portal.core.exceptions import FeedbackNotAllowedError, FeedbackNotOpenError, NotFoundError
from event_portal.core.logging import get_logger
from event_portal.models.feedback import Feedback
from event_portal.schemas.feedback import FeedbackSubmit
from event_portal.services.event_service import get_event
from event_portal.services.registration_service import has_held_registration

logger = get_logger(__name__)

_DIALECT_INSERTS = {"postgresql": postgresql_insert, "sqlite": sqlite_insert}


async def submit_feedback(
    db: AsyncSession,
    event_id: str,
    user_id: str,
    data: FeedbackSubmit,
    now: datetime | None = None,
) -> tuple[Feedback, bool]:
    """
    Create or update the caller's feedback.

    Only opens once the event has taken place, and only for users who held
    a registration (a later cancellation does not revoke it).

    Returns:
        (feedback, created)
    """
    now = now or datetime.now(timezone.utc)
    event = await get_event(db, event_id)
    if event.event_date > now:
        raise FeedbackNotOpenError(event_id)
    if not await has_held_registration(db, event_id, user_id):
        raise FeedbackNotAllowedError(event_id)

    feedback_id = await _insert_if_absent(db, event_id, user_id, data)
    created = feedback_id is not None
    feedback = await _find(db, event_id, user_id)
    if not created:
        feedback.rating = data.rating
        feedback.comment = data.comment
        await db.flush()

    logger.info(
        "feedback_saved",
        feedback_id=feedback.id,
        event_id=event_id,
        user_id=user_id,
        rating=data.rating,
        created=created,
    )
    return feedback, created


async def get_user_feedback(db: AsyncSession, event_id: str, user_id: str) -> Feedback:
    feedback = await _find(db, event_id, user_id)
    if feedback is None:
        raise NotFoundError(f"No feedback for event {event_id}")
    return feedback


async def list_event_feedback(db: AsyncSession, event_id: str) -> list[Feedback]:
    await get_event(db, event_id)
    result = await db.execute(
        select(Feedback).where(Feedback.event_id == event_id).order_by(Feedback.created_at.desc())
    )
    return list(result.scalars().all())


async def _find(db: AsyncSession, event_id: str, user_id: str) -> Feedback | None:
    result = await db.execute(
        select(Feedback)
        .where(Feedback.event_id == event_id, Feedback.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _insert_if_absent(db: AsyncSession, event_id: str, user_id: str, data: FeedbackSubmit) -> str | None:
    """
    Insert the feedback row unless one already exists for (event, user).

    Concurrent first submissions both land here; the unique constraint lets
    exactly one insert through and the other gets None back and updates.
    """
    insert = _DIALECT_INSERTS[db.get_bind().dialect.name]
    stmt = (
        insert(Feedback)
        .values(event_id=event_id, user_id=user_id, rating=data.rating, comment=data.comment)
        .on_conflict_do_nothing(index_elements=[Feedback.event_id, Feedback.user_id])
        .returning(Feedback.id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()
