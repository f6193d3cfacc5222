"""API layer module.

Contains FastAPI routers and request/response schemas.
"""

from festival.api.events import router as events_router
from festival.api.health import router as health_router
from festival.api.payments import router as payments_router
from festival.api.registrations import router as registrations_router
from festival.api.teams import router as teams_router

__all__ = [
    "events_router",
    "health_router",
    "payments_router",
    "registrations_router",
    "teams_router",
]
