from event_portal.schemas.profile import ProfileCreate, ProfileResponse, ProfileLogin, Token
from event_portal.schemas.event import (
    EventCreate,
    EventUpdate,
    EventResponse,
    EventListResponse,
    AvailabilityResponse,
)
from event_portal.schemas.registration import (
    RegistrationCreate,
    RegistrationResponse,
    RegistrationCancelResponse,
    RegistrationWithEventResponse,
)
from event_portal.schemas.feedback import FeedbackSubmit, FeedbackResponse

__all__ = [
    "ProfileCreate", "ProfileResponse", "ProfileLogin", "Token",
    "EventCreate", "EventUpdate", "EventResponse", "EventListResponse", "AvailabilityResponse",
    "RegistrationCreate", "RegistrationResponse", "RegistrationCancelResponse",
    "RegistrationWithEventResponse",
    "FeedbackSubmit", "FeedbackResponse",
]
