"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from festival.application.event_service import EventService, get_event_service
from festival.application.inventory_ledger import InventoryLedger
from festival.application.notifications import (
    NotificationDispatcher,
    NotificationOutbox,
    get_notification_dispatcher,
    get_notification_outbox,
)
from festival.application.payment_service import PaymentService, get_payment_service
from festival.application.registration_service import RegistrationService, get_registration_service
from festival.application.team_service import TeamService, get_team_service
from festival.application.ticket_issuer import TicketIssuer

__all__ = [
    "EventService",
    "get_event_service",
    "InventoryLedger",
    "NotificationDispatcher",
    "NotificationOutbox",
    "get_notification_dispatcher",
    "get_notification_outbox",
    "PaymentService",
    "get_payment_service",
    "RegistrationService",
    "get_registration_service",
    "TeamService",
    "get_team_service",
    "TicketIssuer",
]
