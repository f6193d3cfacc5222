"""Domain events for the festival registration system.

Aggregates record these while changing state. After the store call
that persists the change returns, services hand the collected events to
the notification outbox, which turns them into participant and
organizer notifications.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar

from festival.domain.base import DomainEvent


# ============================================================================
# Registration Events
# ============================================================================


@dataclass(frozen=True)
class RegistrationCreated(DomainEvent):
    """Event raised when a registration or purchase is recorded."""

    event_type: ClassVar[str] = "registration.created"

    registration_id: str = ""
    event_id: str = ""
    participant_id: str = ""
    registration_type: str = "normal"
    status: str = ""
    attempt: int = 1

    def _payload(self) -> dict[str, Any]:
        return {
            "registration_id": self.registration_id,
            "event_id": self.event_id,
            "participant_id": self.participant_id,
            "registration_type": self.registration_type,
            "status": self.status,
            "attempt": self.attempt,
        }


@dataclass(frozen=True)
class PaymentRequired(DomainEvent):
    """Event raised when a registration waits for payment approval."""

    event_type: ClassVar[str] = "registration.payment_required"

    registration_id: str = ""
    event_id: str = ""
    participant_id: str = ""
    amount_minor: int = 0
    currency: str = "INR"

    def _payload(self) -> dict[str, Any]:
        return {
            "registration_id": self.registration_id,
            "event_id": self.event_id,
            "participant_id": self.participant_id,
            "amount_minor": self.amount_minor,
            "currency": self.currency,
        }


@dataclass(frozen=True)
class RegistrationConfirmed(DomainEvent):
    """Event raised when a registration is confirmed without a payment step."""

    event_type: ClassVar[str] = "registration.confirmed"

    registration_id: str = ""
    event_id: str = ""
    participant_id: str = ""
    ticket_id: str = ""
    team_id: str | None = None

    def _payload(self) -> dict[str, Any]:
        return {
            "registration_id": self.registration_id,
            "event_id": self.event_id,
            "participant_id": self.participant_id,
            "ticket_id": self.ticket_id,
            "team_id": self.team_id,
        }


@dataclass(frozen=True)
class RegistrationCancelled(DomainEvent):
    """Event raised when a participant cancels."""

    event_type: ClassVar[str] = "registration.cancelled"

    registration_id: str = ""
    event_id: str = ""
    participant_id: str = ""
    previous_status: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "registration_id": self.registration_id,
            "event_id": self.event_id,
            "participant_id": self.participant_id,
            "previous_status": self.previous_status,
        }


@dataclass(frozen=True)
class AttendanceMarked(DomainEvent):
    """Event raised when a participant is checked in."""

    event_type: ClassVar[str] = "registration.attended"

    registration_id: str = ""
    event_id: str = ""
    participant_id: str = ""
    marked_by: str = ""
    manual: bool = False
    reason: str | None = None

    def _payload(self) -> dict[str, Any]:
        return {
            "registration_id": self.registration_id,
            "event_id": self.event_id,
            "participant_id": self.participant_id,
            "marked_by": self.marked_by,
            "manual": self.manual,
            "reason": self.reason,
        }


# ============================================================================
# Payment Events
# ============================================================================


@dataclass(frozen=True)
class PaymentProofUploaded(DomainEvent):
    """Event raised when a participant attaches proof of payment."""

    event_type: ClassVar[str] = "payment.proof_uploaded"

    registration_id: str = ""
    event_id: str = ""
    participant_id: str = ""
    proof_ref: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "registration_id": self.registration_id,
            "event_id": self.event_id,
            "participant_id": self.participant_id,
            "proof_ref": self.proof_ref,
        }


@dataclass(frozen=True)
class PaymentApproved(DomainEvent):
    """Event raised when the organizer approves a payment."""

    event_type: ClassVar[str] = "payment.approved"

    registration_id: str = ""
    event_id: str = ""
    participant_id: str = ""
    ticket_id: str = ""
    approved_by: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "registration_id": self.registration_id,
            "event_id": self.event_id,
            "participant_id": self.participant_id,
            "ticket_id": self.ticket_id,
            "approved_by": self.approved_by,
        }


@dataclass(frozen=True)
class PaymentRejected(DomainEvent):
    """Event raised when the organizer rejects a payment."""

    event_type: ClassVar[str] = "payment.rejected"

    registration_id: str = ""
    event_id: str = ""
    participant_id: str = ""
    rejected_by: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "registration_id": self.registration_id,
            "event_id": self.event_id,
            "participant_id": self.participant_id,
            "rejected_by": self.rejected_by,
        }


# ============================================================================
# Team Events
# ============================================================================


@dataclass(frozen=True)
class TeamCreated(DomainEvent):
    """Event raised when a leader creates a team."""

    event_type: ClassVar[str] = "team.created"

    team_id: str = ""
    event_id: str = ""
    leader_id: str = ""
    team_size: int = 0

    def _payload(self) -> dict[str, Any]:
        return {
            "team_id": self.team_id,
            "event_id": self.event_id,
            "leader_id": self.leader_id,
            "team_size": self.team_size,
        }


@dataclass(frozen=True)
class TeamMemberJoined(DomainEvent):
    """Event raised when a member joins through the invite code."""

    event_type: ClassVar[str] = "team.member_joined"

    team_id: str = ""
    event_id: str = ""
    user_id: str = ""

    def _payload(self) -> dict[str, Any]:
        return {"team_id": self.team_id, "event_id": self.event_id, "user_id": self.user_id}


@dataclass(frozen=True)
class TeamMemberLeft(DomainEvent):
    """Event raised when a member leaves a team before completion."""

    event_type: ClassVar[str] = "team.member_left"

    team_id: str = ""
    event_id: str = ""
    user_id: str = ""

    def _payload(self) -> dict[str, Any]:
        return {"team_id": self.team_id, "event_id": self.event_id, "user_id": self.user_id}


@dataclass(frozen=True)
class TeamCompleted(DomainEvent):
    """Event raised once a team's last slot is filled."""

    event_type: ClassVar[str] = "team.completed"

    team_id: str = ""
    event_id: str = ""
    team_name: str = ""
    member_ids: tuple[str, ...] = field(default_factory=tuple)

    def _payload(self) -> dict[str, Any]:
        return {
            "team_id": self.team_id,
            "event_id": self.event_id,
            "team_name": self.team_name,
            "member_ids": list(self.member_ids),
        }

