"""
Domain error taxonomy.

Every ledger failure maps to exactly one subclass so callers learn *why* an
action failed (sold out vs. already registered vs. not found). The HTTP layer
renders them through `portal_error_handler`; nothing here is retried.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from event_portal.core.logging import get_logger

logger = get_logger(__name__)


class PortalError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# --- NotFound -------------------------------------------------------------

class NotFoundError(PortalError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class EventNotFoundError(NotFoundError):
    code = "event_not_found"

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event {event_id} not found")


class RegistrationNotFoundError(NotFoundError):
    code = "registration_not_found"

    def __init__(self, registration_id: str):
        self.registration_id = registration_id
        super().__init__(f"Registration {registration_id} not found")


# --- Conflict -------------------------------------------------------------

class ConflictError(PortalError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class AlreadyRegisteredError(ConflictError):
    code = "already_registered"

    def __init__(self, event_id: str):
        super().__init__(f"You are already registered for event {event_id}")


class SoldOutError(ConflictError):
    code = "sold_out"

    def __init__(self, event_id: str):
        super().__init__(f"Event {event_id} is sold out")


class CapacityBelowDemandError(ConflictError):
    code = "capacity_below_demand"

    def __init__(self, requested: int, confirmed: int):
        self.requested = requested
        self.confirmed = confirmed
        super().__init__(
            f"Cannot set capacity to {requested}: {confirmed} registrations are already confirmed"
        )


class EventAlreadyStartedError(ConflictError):
    code = "event_already_started"

    def __init__(self, event_id: str):
        super().__init__(f"Registration for event {event_id} is closed")


class FeedbackNotOpenError(ConflictError):
    code = "feedback_not_open"

    def __init__(self, event_id: str):
        super().__init__(f"Feedback for event {event_id} opens after the event has taken place")


# --- Forbidden ------------------------------------------------------------

class ForbiddenError(PortalError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotOwnerError(ForbiddenError):
    code = "not_owner"

    def __init__(self, registration_id: str):
        super().__init__(f"Registration {registration_id} belongs to another user")


class AdminRequiredError(ForbiddenError):
    code = "admin_required"

    def __init__(self, action: str = "this action"):
        super().__init__(f"Only administrators may perform {action}")


class FeedbackNotAllowedError(ForbiddenError):
    code = "feedback_not_allowed"

    def __init__(self, event_id: str):
        super().__init__(f"Only attendees of event {event_id} may leave feedback")


# --- Invalid request ------------------------------------------------------

class InvalidRequestError(PortalError):
    code = "invalid_request"


class InvalidCapacityError(InvalidRequestError):
    code = "invalid_capacity"

    def __init__(self, requested: int):
        super().__init__(f"Capacity must be a positive number of seats, got {requested}")


class InvalidImageError(InvalidRequestError):
    code = "invalid_image"


# --- Unavailable ----------------------------------------------------------

class UnavailableError(PortalError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "unavailable"

    def __init__(self, message: str = "Persistence service unavailable"):
        super().__init__(message)


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("portal_error", code=exc.code, error=exc.message)
    else:
        logger.info("portal_error", code=exc.code, error=exc.message)
    headers = {"Retry-After": "1"} if isinstance(exc, UnavailableError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(PortalError, portal_error_handler)
