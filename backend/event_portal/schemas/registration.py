"""
Pydantic schemas for registration request/response validation.
"""

from datetime import datetime
from pydantic import BaseModel

from event_portal.schemas.event import EventResponse


class RegistrationCreate(BaseModel):
    event_id: str


class RegistrationResponse(BaseModel):
    id: str
    event_id: str
    user_id: str
    registration_date: datetime
    status: str

    model_config = {"from_attributes": True}


class RegistrationWithEventResponse(RegistrationResponse):
    event: EventResponse


class RegistrationCancelResponse(BaseModel):
    message: str
    registration_id: str
    status: str
