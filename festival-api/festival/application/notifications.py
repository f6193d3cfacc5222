"""Notification outbox and dispatcher.

Services hand the domain events recorded by an aggregate to the outbox
only after the store call that persisted the aggregate returned. Queuing
never waits on delivery: the dispatcher runs after the response is sent
and from a background worker, turning events into template messages and
sending them through the notification gateway.

A failed send never undoes the state change that caused it. The
message is logged and kept for a later dispatch until it has been tried
``notification_max_attempts`` times, then moved to the dead letters.
"""

import asyncio
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import structlog

from festival.domain.base import DomainEvent
from festival.domain.events import (
    PaymentApproved,
    PaymentProofUploaded,
    PaymentRejected,
    PaymentRequired,
    RegistrationCancelled,
    RegistrationConfirmed,
    TeamCompleted,
)
from festival.infrastructure.config import settings
from festival.infrastructure.notifier import NotificationGateway, get_notification_gateway
from festival.infrastructure.stores import EventStore, get_event_store

logger = structlog.get_logger()

TEMPLATES: dict[type[DomainEvent], str] = {
    PaymentRequired: "payment_required",
    RegistrationConfirmed: "registration_confirmed",
    PaymentApproved: "payment_approved",
    PaymentRejected: "payment_rejected",
    PaymentProofUploaded: "payment_proof_uploaded",
    TeamCompleted: "team_completed",
    RegistrationCancelled: "registration_cancelled",
}


@dataclass
class OutboxMessage:
    """A rendered notification waiting to be sent."""

    to: str
    template: str
    data: dict[str, Any]
    source_event: str
    attempts: int = 0
    last_error: str | None = None


@dataclass
class NotificationOutbox:
    """Queue of domain events and rendered messages awaiting dispatch."""

    events: deque[DomainEvent] = field(default_factory=deque)
    messages: deque[OutboxMessage] = field(default_factory=deque)
    dead_letters: deque[OutboxMessage] = field(
        default_factory=lambda: deque(maxlen=settings.notification_dead_letter_limit)
    )

    def collect(self, events: Iterable[DomainEvent]) -> int:
        """Queue domain events. Returns the number queued."""
        queued = 0
        for event in events:
            self.events.append(event)
            queued += 1
        return queued

    def drain_events(self) -> list[DomainEvent]:
        drained = list(self.events)
        self.events.clear()
        return drained

    def drain_messages(self) -> list[OutboxMessage]:
        drained = list(self.messages)
        self.messages.clear()
        return drained

    @property
    def pending_count(self) -> int:
        return len(self.events) + len(self.messages)


class NotificationDispatcher:
    """Send queued notifications through the gateway."""

    def __init__(
        self,
        outbox: NotificationOutbox | None = None,
        gateway: NotificationGateway | None = None,
        event_store: EventStore | None = None,
        max_attempts: int | None = None,
        request_id: str | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            outbox: Queue to dispatch from.
            gateway: Notification gateway.
            event_store: Used to look up event names and organizers.
            max_attempts: Sends per message before it is dropped.
            request_id: Request ID for correlation.
        """
        self.outbox = outbox or get_notification_outbox()
        self.gateway = gateway or get_notification_gateway()
        self.event_store = event_store or get_event_store()
        self.max_attempts = max_attempts or settings.notification_max_attempts
        self.request_id = request_id

    def publish(self, events: Iterable[DomainEvent]) -> int:
        """Queue events for the next dispatch.

        Never waits on the gateway. The API schedules a dispatch after
        the response is sent, and the background worker retries
        whatever is left.

        Returns:
            Number of events queued.
        """
        queued = self.outbox.collect(events)
        if queued:
            logger.debug("Notifications queued", events=queued, request_id=self.request_id)
        return queued

    async def dispatch_pending(self) -> int:
        """Render queued events and try to send every queued message.

        Returns:
            Number of notifications sent.
        """
        for event in self.outbox.drain_events():
            try:
                self.outbox.messages.extend(await self._render(event))
            except Exception as e:
                self.outbox.events.append(event)
                logger.error(
                    "Notification rendering failed",
                    source_event=event.event_type,
                    error=str(e),
                    request_id=self.request_id,
                )

        sent = 0
        for message in self.outbox.drain_messages():
            message.attempts += 1
            try:
                await self.gateway.notify(message.to, message.template, message.data)
            except Exception as e:
                message.last_error = str(e)
                if message.attempts >= self.max_attempts:
                    self.outbox.dead_letters.append(message)
                    logger.error(
                        "Notification dropped",
                        to=message.to,
                        template=message.template,
                        attempts=message.attempts,
                        error=str(e),
                        request_id=self.request_id,
                    )
                else:
                    self.outbox.messages.append(message)
                    logger.warning(
                        "Notification failed, will retry",
                        to=message.to,
                        template=message.template,
                        attempts=message.attempts,
                        error=str(e),
                        request_id=self.request_id,
                    )
                continue
            sent += 1
        return sent

    async def _render(self, event: DomainEvent) -> list[OutboxMessage]:
        """Turn one domain event into messages, one per recipient."""
        template = TEMPLATES.get(type(event))
        if template is None:
            return []

        payload = event.to_dict()["payload"]
        festival_event = await self.event_store.get(payload["event_id"])
        data = {**payload, "event_name": festival_event.name if festival_event else ""}

        if isinstance(event, TeamCompleted):
            recipients = list(event.member_ids)
        elif isinstance(event, PaymentProofUploaded):
            if festival_event is None:
                logger.warning(
                    "Proof upload notification has no organizer",
                    event_id=payload["event_id"],
                    request_id=self.request_id,
                )
                return []
            recipients = [festival_event.organizer_id]
        else:
            recipients = [payload["participant_id"]]

        return [
            OutboxMessage(to=recipient, template=template, data=data, source_event=event.event_type)
            for recipient in recipients
        ]


# Global outbox instance
_outbox: NotificationOutbox | None = None


def get_notification_outbox() -> NotificationOutbox:
    """Get notification outbox singleton."""
    global _outbox
    if _outbox is None:
        _outbox = NotificationOutbox()
    return _outbox


def reset_notification_outbox() -> None:
    """Reset notification outbox (for testing)."""
    global _outbox
    _outbox = NotificationOutbox()


def get_notification_dispatcher(request_id: str | None = None) -> NotificationDispatcher:
    """Get notification dispatcher instance."""
    return NotificationDispatcher(request_id=request_id)


async def run_dispatch_worker(interval: float | None = None) -> None:
    """Dispatch the outbox every ``interval`` seconds until cancelled.

    Picks up messages whose first send failed and anything queued by a
    request whose own dispatch never ran.
    """
    interval = interval or settings.notification_dispatch_interval
    logger.info("Notification worker started", interval=interval)
    while True:
        try:
            await get_notification_dispatcher().dispatch_pending()
        except Exception as e:
            logger.error("Notification dispatch run failed", error=str(e))
        await asyncio.sleep(interval)
