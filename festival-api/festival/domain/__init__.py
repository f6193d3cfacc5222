"""Domain layer - Entities, value objects, state machines, domain events.

- **Entities**: Event, Variant, Registration, Reservation, Team
- **Value Objects**: Actor, Money, form answers and audit records
- **State Machines**: RegistrationStatus, PaymentStatus, ReservationStatus,
  TeamMemberStatus
- **Domain Events**: Recorded by aggregates, published after persistence
- **Exceptions**: Business rule violations with stable error codes

Example usage:
    from festival.domain import Actor, Event, EventType, Money

    event = Event(
        name="Hackathon",
        organizer_id="org-1",
        event_start_date=start,
        registration_fee=Money.from_decimal("200"),
    )
    event.ensure_open(EventType.NORMAL, now)
"""

from festival.domain.base import AggregateRoot, DomainEvent, Entity, ValueObject, new_id, utc_now
from festival.domain.entities import (
    DEFAULT_OVERRIDE_REASON,
    Event,
    Registration,
    Reservation,
    Team,
    TeamMember,
    Variant,
)
from festival.domain.events import (
    AttendanceMarked,
    PaymentApproved,
    PaymentProofUploaded,
    PaymentRejected,
    PaymentRequired,
    RegistrationCancelled,
    RegistrationConfirmed,
    RegistrationCreated,
    TeamCompleted,
    TeamCreated,
    TeamMemberJoined,
    TeamMemberLeft,
)
from festival.domain.exceptions import DomainError, InvalidStateTransitionError
from festival.domain.state_machines import (
    PaymentStatus,
    RegistrationStatus,
    ReservationStatus,
    TeamMemberStatus,
)
from festival.domain.value_objects import (
    Actor,
    ActorRole,
    AttendanceOverride,
    CustomField,
    Eligibility,
    EventStatus,
    EventType,
    FormResponse,
    Money,
    ParticipantType,
    RegistrationType,
    StatusChange,
    VariantDetails,
)

__all__ = [
    # Base classes
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "ValueObject",
    "new_id",
    "utc_now",
    # Entities
    "DEFAULT_OVERRIDE_REASON",
    "Event",
    "Registration",
    "Reservation",
    "Team",
    "TeamMember",
    "Variant",
    # Events
    "AttendanceMarked",
    "PaymentApproved",
    "PaymentProofUploaded",
    "PaymentRejected",
    "PaymentRequired",
    "RegistrationCancelled",
    "RegistrationConfirmed",
    "RegistrationCreated",
    "TeamCompleted",
    "TeamCreated",
    "TeamMemberJoined",
    "TeamMemberLeft",
    # Exceptions
    "DomainError",
    "InvalidStateTransitionError",
    # State machines
    "PaymentStatus",
    "RegistrationStatus",
    "ReservationStatus",
    "TeamMemberStatus",
    # Value objects
    "Actor",
    "ActorRole",
    "AttendanceOverride",
    "CustomField",
    "Eligibility",
    "EventStatus",
    "EventType",
    "FormResponse",
    "Money",
    "ParticipantType",
    "RegistrationType",
    "StatusChange",
    "VariantDetails",
]
