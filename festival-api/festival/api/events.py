"""Event API endpoints.

Provides the minimal organizer surface used to seed events:
- POST /events - create an event
- GET /events/{id} - get an event
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from festival.api.converters import event_attributes, event_to_response
from festival.api.dependencies import get_request_id, raise_for_result, require_actor
from festival.api.schemas import ErrorResponse, EventCreateRequest, EventResponse
from festival.application.event_service import EventService, get_event_service
from festival.domain.value_objects import Actor

router = APIRouter(prefix="/events", tags=["Events"])


def get_service(request: Request) -> EventService:
    """Get event service with request ID."""
    return get_event_service(request_id=get_request_id(request))


@router.post(
    "",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse, "description": "Caller is not an organizer"},
        422: {"model": ErrorResponse, "description": "Inconsistent event settings"},
    },
)
async def create_event(
    body: EventCreateRequest,
    actor: Annotated[Actor, Depends(require_actor)],
    service: Annotated[EventService, Depends(get_service)],
) -> EventResponse:
    """Create an event organized by the caller."""
    result = await service.create_event(actor, **event_attributes(body))
    raise_for_result(result)
    return event_to_response(result.event)


@router.get(
    "/{event_id}",
    response_model=EventResponse,
    responses={404: {"model": ErrorResponse, "description": "Event not found"}},
)
async def get_event(
    event_id: str,
    service: Annotated[EventService, Depends(get_service)],
) -> EventResponse:
    """Get an event by ID."""
    result = await service.get_event(event_id)
    raise_for_result(result)
    return event_to_response(result.event)
