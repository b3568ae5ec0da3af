from event_portal.models.profile import Profile
from event_portal.models.event import Event
from event_portal.models.registration import Registration, RegistrationStatus
from event_portal.models.feedback import Feedback

__all__ = ["Profile", "Event", "Registration", "RegistrationStatus", "Feedback"]
