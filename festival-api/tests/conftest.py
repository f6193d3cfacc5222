"""Shared fixtures for all test suites.

Every test starts from empty in-memory stores, an empty notification
outbox and a gateway recording what the dispatcher sends.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Generator

import pytest

from festival.application.inventory_ledger import InventoryLedger
from festival.application.notifications import (
    NotificationDispatcher,
    NotificationOutbox,
    get_notification_outbox,
    reset_notification_outbox,
)
from festival.application.participants import (
    ParticipantDirectory,
    get_participant_directory,
    reset_participant_directory,
)
from festival.application.payment_service import PaymentService
from festival.application.registration_service import RegistrationService
from festival.application.team_service import TeamService
from festival.application.ticket_issuer import TicketIssuer
from festival.domain.entities import Event, Variant
from festival.domain.value_objects import (
    Actor,
    ActorRole,
    EventStatus,
    EventType,
    Money,
    ParticipantType,
)
from festival.infrastructure.notifier import LoggingNotificationGateway, set_notification_gateway
from festival.infrastructure.proof_storage import get_proof_storage, reset_proof_storage
from festival.infrastructure.stores import (
    EventStore,
    RegistrationStore,
    TeamStore,
    get_event_store,
    get_registration_store,
    get_team_store,
    reset_stores,
)

NOW = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


@dataclass
class SentNotification:
    """A notification accepted by the recording gateway."""

    to: str
    template: str
    data: dict[str, Any]


class RecordingGateway(LoggingNotificationGateway):
    """Logging gateway that also keeps every notification it was handed."""

    def __init__(self) -> None:
        self.sent: list[SentNotification] = []

    async def notify(self, to: str, template: str, data: dict[str, Any]) -> None:
        self.sent.append(SentNotification(to=to, template=template, data=dict(data)))
        await super().notify(to, template, data)


class FrozenClock:
    """Clock returning a fixed time until moved."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


# ============================================================================
# Global State
# ============================================================================


@pytest.fixture(autouse=True)
def reset_state() -> Generator[RecordingGateway, None, None]:
    """Reset stores, directory, outbox, proof storage and gateway."""
    reset_stores()
    reset_participant_directory()
    reset_notification_outbox()
    reset_proof_storage()
    gateway = RecordingGateway()
    set_notification_gateway(gateway)
    yield gateway
    set_notification_gateway(None)


@pytest.fixture
def gateway(reset_state: RecordingGateway) -> RecordingGateway:
    """Gateway recording every notification sent during the test."""
    return reset_state


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def event_store() -> EventStore:
    return get_event_store()


@pytest.fixture
def registration_store() -> RegistrationStore:
    return get_registration_store()


@pytest.fixture
def team_store() -> TeamStore:
    return get_team_store()


@pytest.fixture
def outbox() -> NotificationOutbox:
    return get_notification_outbox()


@pytest.fixture
def directory() -> ParticipantDirectory:
    return get_participant_directory()


# ============================================================================
# Actors
# ============================================================================


@pytest.fixture
def organizer() -> Actor:
    return Actor(id="org-1", role=ActorRole.ORGANIZER, name="Olivia Organizer")


@pytest.fixture
def other_organizer() -> Actor:
    return Actor(id="org-2", role=ActorRole.ORGANIZER, name="Oscar Organizer")


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin-1", role=ActorRole.ADMIN, name="Ada Admin")


@pytest.fixture
def alice() -> Actor:
    return Actor(id="user-alice", name="Alice", participant_type=ParticipantType.IIIT)


@pytest.fixture
def bob() -> Actor:
    return Actor(id="user-bob", name="Bob")


@pytest.fixture
def carol() -> Actor:
    return Actor(id="user-carol", name="Carol")


@pytest.fixture
def dave() -> Actor:
    return Actor(id="user-dave", name="Dave")


# ============================================================================
# Events
# ============================================================================


@pytest.fixture
def make_event(organizer: Actor) -> Callable[..., Event]:
    """Build a published normal event starting a week from NOW."""

    def _make(**overrides: Any) -> Event:
        attributes: dict[str, Any] = {
            "name": "Hackathon",
            "organizer_id": organizer.id,
            "status": EventStatus.PUBLISHED,
            "event_start_date": NOW + timedelta(days=7),
            "registration_deadline": NOW + timedelta(days=5),
        }
        attributes.update(overrides)
        return Event(**attributes)

    return _make


@pytest.fixture
def make_merch_event(make_event: Callable[..., Event]) -> Callable[..., Event]:
    """Build a published merchandise event with one T-shirt variant."""

    def _make(stock: int = 10, **overrides: Any) -> Event:
        attributes: dict[str, Any] = {
            "name": "Festival Merch",
            "event_type": EventType.MERCHANDISE,
            "variants": [
                Variant(
                    id="tee-m",
                    name="Festival Tee",
                    price=Money(amount_minor=49900),
                    stock=stock,
                    size="M",
                    color="black",
                )
            ],
        }
        attributes.update(overrides)
        return make_event(**attributes)

    return _make


@pytest.fixture
def add_event(event_store: EventStore, make_event: Callable[..., Event]) -> Callable[..., Awaitable[Event]]:
    """Store a normal event built by ``make_event``."""

    async def _add(**overrides: Any) -> Event:
        return await event_store.add(make_event(**overrides))

    return _add


@pytest.fixture
def add_merch_event(
    event_store: EventStore,
    make_merch_event: Callable[..., Event],
) -> Callable[..., Awaitable[Event]]:
    """Store a merchandise event built by ``make_merch_event``."""

    async def _add(**overrides: Any) -> Event:
        return await event_store.add(make_merch_event(**overrides))

    return _add


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def issuer(clock: FrozenClock) -> TicketIssuer:
    return TicketIssuer(clock=clock)


@pytest.fixture
def ledger(event_store: EventStore) -> InventoryLedger:
    return InventoryLedger(event_store)


@pytest.fixture
def dispatcher(
    outbox: NotificationOutbox,
    gateway: RecordingGateway,
    event_store: EventStore,
) -> NotificationDispatcher:
    return NotificationDispatcher(outbox=outbox, gateway=gateway, event_store=event_store)


@pytest.fixture
def deliver(
    dispatcher: NotificationDispatcher,
    gateway: RecordingGateway,
) -> Callable[[], Awaitable[list[SentNotification]]]:
    """Dispatch the outbox and return everything sent so far."""

    async def _deliver() -> list[SentNotification]:
        await dispatcher.dispatch_pending()
        return gateway.sent

    return _deliver


@pytest.fixture
def registration_service(
    event_store: EventStore,
    registration_store: RegistrationStore,
    ledger: InventoryLedger,
    issuer: TicketIssuer,
    dispatcher: NotificationDispatcher,
    directory: ParticipantDirectory,
    clock: FrozenClock,
) -> RegistrationService:
    return RegistrationService(
        event_store=event_store,
        registration_store=registration_store,
        ledger=ledger,
        issuer=issuer,
        dispatcher=dispatcher,
        participants=directory,
        clock=clock,
    )


@pytest.fixture
def payment_service(
    event_store: EventStore,
    registration_store: RegistrationStore,
    ledger: InventoryLedger,
    issuer: TicketIssuer,
    dispatcher: NotificationDispatcher,
    directory: ParticipantDirectory,
    clock: FrozenClock,
) -> PaymentService:
    return PaymentService(
        event_store=event_store,
        registration_store=registration_store,
        ledger=ledger,
        issuer=issuer,
        proof_storage=get_proof_storage(),
        dispatcher=dispatcher,
        participants=directory,
        clock=clock,
    )


@pytest.fixture
def team_service(
    event_store: EventStore,
    registration_store: RegistrationStore,
    team_store: TeamStore,
    issuer: TicketIssuer,
    dispatcher: NotificationDispatcher,
    directory: ParticipantDirectory,
    clock: FrozenClock,
) -> TeamService:
    return TeamService(
        event_store=event_store,
        registration_store=registration_store,
        team_store=team_store,
        issuer=issuer,
        dispatcher=dispatcher,
        participants=directory,
        clock=clock,
    )
