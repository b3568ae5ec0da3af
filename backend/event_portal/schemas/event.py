"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=10000)
    location: str = Field("", max_length=255)
    event_date: datetime
    total_seats: int = Field(..., gt=0, le=100000)
    image_url: Optional[str] = Field(None, max_length=1024)


class EventUpdate(BaseModel):
    """Partial edit. `total_seats` is applied through the seat ledger."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)
    location: Optional[str] = Field(None, max_length=255)
    event_date: Optional[datetime] = None
    total_seats: Optional[int] = Field(None, gt=0, le=100000)
    image_url: Optional[str] = Field(None, max_length=1024)


class EventResponse(BaseModel):
    id: str
    title: str
    description: str
    location: str
    event_date: datetime
    total_seats: int
    available_seats: int
    image_url: Optional[str]
    creator_id: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class AvailabilityResponse(BaseModel):
    event_id: str
    available_seats: int
