"""
Pydantic schemas for post-event feedback.
"""

from datetime import datetime
from pydantic import BaseModel, Field


class FeedbackSubmit(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=5000)


class FeedbackResponse(BaseModel):
    id: str
    event_id: str
    user_id: str
    rating: int
    comment: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
