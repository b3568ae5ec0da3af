"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from event_portal.api.routes import auth, changes, events, registrations, feedback

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
# Before `events` so /events/changes is not captured by /events/{event_id}
api_router.include_router(changes.router)
api_router.include_router(events.router)
api_router.include_router(registrations.router)
api_router.include_router(feedback.router)
