"""State machines for domain entities.

Transition tables for registrations, payments, inventory reservations
and team memberships. Every status change in the domain goes through
one of the ``validate_*_transition`` helpers below, so the tables are
the single place that defines what is legal.
"""

from enum import Enum

from festival.domain.exceptions import InvalidStateTransitionError


# ============================================================================
# Registration State Machine
# ============================================================================


class RegistrationStatus(str, Enum):
    """Registration lifecycle states.

    Registrations that need no approval are created directly in
    CONFIRMED; paid ones start in PENDING.

    State diagram:
        PENDING ────────────────────────┬──────────────► CANCELLED
          │        │                    │                    ▲
          │        │ reject             │                    │
          │        ▼                    │                    │
          │      REJECTED               │                    │
          │                             │                    │
          │ approve                     │                    │
          ▼                             │                    │
        CONFIRMED ──────────────────────┴────────────────────┘
          │
          │ mark_attended / manual_override / scan
          ▼
        ATTENDED
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    ATTENDED = "attended"

    def can_transition_to(self, target: "RegistrationStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _REGISTRATION_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["RegistrationStatus"]:
        """Get list of valid target states."""
        return sorted(_REGISTRATION_TRANSITIONS.get(self, set()), key=lambda s: s.value)

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state."""
        return len(_REGISTRATION_TRANSITIONS.get(self, set())) == 0

    def is_active(self) -> bool:
        """Check if the registration still holds a place at the event.

        Cancelled and rejected registrations do not block a new
        registration by the same participant.

        Returns:
            True unless the registration was cancelled or rejected.
        """
        return self not in {RegistrationStatus.CANCELLED, RegistrationStatus.REJECTED}

    def is_fulfilled(self) -> bool:
        """Check if the registration is in a ticket-bearing state."""
        return self in {RegistrationStatus.CONFIRMED, RegistrationStatus.ATTENDED}


_REGISTRATION_TRANSITIONS: dict[RegistrationStatus, set[RegistrationStatus]] = {
    RegistrationStatus.PENDING: {
        RegistrationStatus.CONFIRMED,
        RegistrationStatus.REJECTED,
        RegistrationStatus.CANCELLED,
    },
    RegistrationStatus.CONFIRMED: {RegistrationStatus.ATTENDED, RegistrationStatus.CANCELLED},
    RegistrationStatus.CANCELLED: set(),  # Terminal state
    RegistrationStatus.REJECTED: set(),  # Terminal state
    RegistrationStatus.ATTENDED: set(),  # Terminal state
}


# ============================================================================
# Payment State Machine
# ============================================================================


class PaymentStatus(str, Enum):
    """Payment approval states.

    State diagram:
        NOT_REQUIRED

        PENDING ──────────────┐
          │                   │
          │ approve           │ reject
          ▼                   ▼
        APPROVED            REJECTED
    """

    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    def can_transition_to(self, target: "PaymentStatus") -> bool:
        return target in _PAYMENT_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["PaymentStatus"]:
        return sorted(_PAYMENT_TRANSITIONS.get(self, set()), key=lambda s: s.value)

    def is_terminal(self) -> bool:
        return len(_PAYMENT_TRANSITIONS.get(self, set())) == 0


_PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.NOT_REQUIRED: set(),
    PaymentStatus.PENDING: {PaymentStatus.APPROVED, PaymentStatus.REJECTED},
    PaymentStatus.APPROVED: set(),
    PaymentStatus.REJECTED: set(),
}


# ============================================================================
# Reservation State Machine
# ============================================================================


class ReservationStatus(str, Enum):
    """Inventory reservation states.

    A reservation is resolved exactly once: its units either become
    sold (FINALIZED) or go back to stock (RELEASED). Cancelling a paid
    purchase moves sold units back to stock (RETURNED).

    State diagram:
        HELD ─────────────────┐
          │                   │
          │ finalize          │ release
          ▼                   ▼
        FINALIZED           RELEASED
          │
          │ return
          ▼
        RETURNED
    """

    HELD = "held"
    FINALIZED = "finalized"
    RELEASED = "released"
    RETURNED = "returned"

    def can_transition_to(self, target: "ReservationStatus") -> bool:
        return target in _RESERVATION_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["ReservationStatus"]:
        return sorted(_RESERVATION_TRANSITIONS.get(self, set()), key=lambda s: s.value)

    def is_terminal(self) -> bool:
        return len(_RESERVATION_TRANSITIONS.get(self, set())) == 0


_RESERVATION_TRANSITIONS: dict[ReservationStatus, set[ReservationStatus]] = {
    ReservationStatus.HELD: {ReservationStatus.FINALIZED, ReservationStatus.RELEASED},
    ReservationStatus.FINALIZED: {ReservationStatus.RETURNED},
    ReservationStatus.RELEASED: set(),  # Terminal state
    ReservationStatus.RETURNED: set(),  # Terminal state
}


# ============================================================================
# Team Member State Machine
# ============================================================================


class TeamMemberStatus(str, Enum):
    """Team membership states.

    Joining through an invite code accepts immediately; PENDING and
    DECLINED are kept for invitations recorded by other tooling.

    State diagram:
        PENDING ──────────────┐
          │                   │
          │ accept            │ decline
          ▼                   ▼
        ACCEPTED            DECLINED
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"

    def can_transition_to(self, target: "TeamMemberStatus") -> bool:
        return target in _TEAM_MEMBER_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["TeamMemberStatus"]:
        return sorted(_TEAM_MEMBER_TRANSITIONS.get(self, set()), key=lambda s: s.value)


_TEAM_MEMBER_TRANSITIONS: dict[TeamMemberStatus, set[TeamMemberStatus]] = {
    TeamMemberStatus.PENDING: {TeamMemberStatus.ACCEPTED, TeamMemberStatus.DECLINED},
    TeamMemberStatus.ACCEPTED: set(),
    TeamMemberStatus.DECLINED: set(),
}


# ============================================================================
# State Machine Helpers
# ============================================================================


def validate_registration_transition(
    registration_id: str,
    current_status: RegistrationStatus,
    target_status: RegistrationStatus,
) -> None:
    """Validate and raise if registration state transition is invalid.

    Args:
        registration_id: Registration identifier for error message.
        current_status: Current registration status.
        target_status: Target registration status.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="Registration",
            entity_id=registration_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )


def validate_payment_transition(
    registration_id: str,
    current_status: PaymentStatus,
    target_status: PaymentStatus,
) -> None:
    """Validate and raise if payment state transition is invalid.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="Payment",
            entity_id=registration_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )


def validate_reservation_transition(
    reservation_id: str,
    current_status: ReservationStatus,
    target_status: ReservationStatus,
) -> None:
    """Validate and raise if reservation state transition is invalid.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="Reservation",
            entity_id=reservation_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )


def validate_team_member_transition(
    team_id: str,
    current_status: TeamMemberStatus,
    target_status: TeamMemberStatus,
) -> None:
    """Validate and raise if team member state transition is invalid.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="TeamMember",
            entity_id=team_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )
