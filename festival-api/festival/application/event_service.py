"""Event application service.

Event management belongs to the organizer tooling. The registration
core only needs a way to seed events and to read them back.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from festival.application.results import ServiceResult
from festival.domain.entities import Event
from festival.domain.exceptions import DomainError, EventNotFoundError, InvalidEventError, NotOrganizerError
from festival.domain.value_objects import Actor, ActorRole
from festival.infrastructure.stores import EventStore, get_event_store

logger = structlog.get_logger()


@dataclass
class EventResult(ServiceResult):
    """Result of an event operation."""

    event: Event | None = None


class EventService:
    """Create and read events."""

    def __init__(
        self,
        event_store: EventStore | None = None,
        request_id: str | None = None,
    ) -> None:
        self.event_store = event_store or get_event_store()
        self.request_id = request_id

    async def create_event(self, actor: Actor, **attributes: Any) -> EventResult:
        """Create an event organized by the actor.

        Args:
            actor: Organizer or admin creating the event.
            **attributes: Event fields other than ``organizer_id``.

        Returns:
            EventResult with the stored event.
        """
        try:
            try:
                event = Event(organizer_id=actor.id, **attributes)
            except ValueError as e:
                raise InvalidEventError(str(e)) from e
            if actor.role == ActorRole.PARTICIPANT:
                raise NotOrganizerError(event.id, actor.id)

            event = await self.event_store.add(event)
        except DomainError as e:
            logger.info(
                "Event creation refused",
                actor_id=actor.id,
                error_code=e.code,
                request_id=self.request_id,
            )
            return EventResult.failure(e)

        logger.info(
            "Event created",
            event_id=event.id,
            event_type=event.event_type.value,
            organizer_id=actor.id,
            request_id=self.request_id,
        )
        return EventResult(event=event)

    async def get_event(self, event_id: str) -> EventResult:
        """Get an event by ID."""
        event = await self.event_store.get(event_id)
        if event is None:
            return EventResult.failure(EventNotFoundError(event_id))
        return EventResult(event=event)


def get_event_service(request_id: str | None = None) -> EventService:
    """Get event service instance."""
    return EventService(request_id=request_id)
