"""
Post-event feedback endpoints.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from event_portal.core.security import Actor, get_current_user_id, require_admin
from event_portal.db.session import get_db
from event_portal.schemas.feedback import FeedbackResponse, FeedbackSubmit
from event_portal.services.feedback_service import get_user_feedback, list_event_feedback, submit_feedback

router = APIRouter(prefix="/events", tags=["Feedback"])


@router.put("/{event_id}/feedback", response_model=FeedbackResponse)
async def submit_feedback_endpoint(
    event_id: str,
    data: FeedbackSubmit,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Rate a past event you registered for. 201 on first submission, 200 on edit."""
    feedback, created = await submit_feedback(db, event_id, user_id, data)
    if created:
        response.status_code = status.HTTP_201_CREATED
    return feedback


@router.get("/{event_id}/feedback/me", response_model=FeedbackResponse)
async def get_my_feedback_endpoint(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await get_user_feedback(db, event_id, user_id)


@router.get("/{event_id}/feedback", response_model=list[FeedbackResponse])
async def list_feedback_endpoint(
    event_id: str,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """All feedback for an event, newest first. Admin only."""
    return await list_event_feedback(db, event_id)
