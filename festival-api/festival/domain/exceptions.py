"""Domain exceptions.

All domain-level errors that represent business rule violations.
Each error carries a stable machine-readable ``code`` and the HTTP
status the API layer should answer with. Entities, the inventory
ledger and the ticket issuer raise these; application services turn
them into result objects.
"""

from typing import Any, ClassVar


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    code: ClassVar[str] = "DOMAIN_ERROR"
    status_code: ClassVar[int] = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateTransitionError(DomainError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_STATE_TRANSITION"
    status_code = 409

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "Registration").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: Allowed target states from current state.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


# ============================================================================
# Not Found Errors
# ============================================================================


class NotFoundError(DomainError):
    """Base class for missing aggregates."""

    code = "NOT_FOUND"
    status_code = 404


class EventNotFoundError(NotFoundError):
    """Raised when an event does not exist."""

    code = "EVENT_NOT_FOUND"

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Event not found: {event_id}", details={"event_id": event_id})


class RegistrationNotFoundError(NotFoundError):
    """Raised when a registration does not exist."""

    code = "REGISTRATION_NOT_FOUND"

    def __init__(self, registration_id: str) -> None:
        super().__init__(
            f"Registration not found: {registration_id}",
            details={"registration_id": registration_id},
        )


class TicketNotFoundError(NotFoundError):
    """Raised when no registration carries the scanned ticket ID."""

    code = "TICKET_NOT_FOUND"

    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"Ticket not found: {ticket_id}", details={"ticket_id": ticket_id})


class TeamNotFoundError(NotFoundError):
    """Raised when a team does not exist."""

    code = "TEAM_NOT_FOUND"

    def __init__(self, team_id: str) -> None:
        super().__init__(f"Team not found: {team_id}", details={"team_id": team_id})


class VariantNotFoundError(NotFoundError):
    """Raised when a merchandise variant does not exist on the event."""

    code = "VARIANT_NOT_FOUND"

    def __init__(self, event_id: str, variant_id: str) -> None:
        super().__init__(
            f"Variant {variant_id} not found on event {event_id}",
            details={"event_id": event_id, "variant_id": variant_id},
        )


class ReservationNotFoundError(NotFoundError):
    """Raised when a reservation handle is unknown to the ledger."""

    code = "RESERVATION_NOT_FOUND"

    def __init__(self, reservation_id: str) -> None:
        super().__init__(
            f"Reservation not found: {reservation_id}",
            details={"reservation_id": reservation_id},
        )


# ============================================================================
# Authorization Errors
# ============================================================================


class NotOwnerError(DomainError):
    """Raised when the actor does not own the registration."""

    code = "NOT_OWNER"
    status_code = 403

    def __init__(self, registration_id: str, actor_id: str) -> None:
        super().__init__(
            "Not authorized to act on this registration",
            details={"registration_id": registration_id, "actor_id": actor_id},
        )


class NotOrganizerError(DomainError):
    """Raised when the actor is neither the event organizer nor an admin."""

    code = "NOT_ORGANIZER"
    status_code = 403

    def __init__(self, event_id: str, actor_id: str) -> None:
        super().__init__(
            "Only the event organizer or an admin can do this",
            details={"event_id": event_id, "actor_id": actor_id},
        )


class InvalidEventError(DomainError):
    """Raised when event settings are inconsistent."""

    code = "INVALID_EVENT"
    status_code = 422

    def __init__(self, reason: str) -> None:
        super().__init__(reason, details={"reason": reason})


# ============================================================================
# Registration Errors
# ============================================================================


class RegistrationError(DomainError):
    """Base class for registration validation and conflict errors."""

    pass


class EventNotOpenError(RegistrationError):
    """Raised when the event is not published or has the wrong type."""

    code = "EVENT_NOT_OPEN"

    def __init__(self, event_id: str, reason: str) -> None:
        super().__init__(reason, details={"event_id": event_id})


class DeadlinePassedError(RegistrationError):
    """Raised when the registration deadline is over."""

    code = "DEADLINE_PASSED"

    def __init__(self, event_id: str) -> None:
        super().__init__("Registration deadline has passed", details={"event_id": event_id})


class EventFullError(RegistrationError):
    """Raised when the registration limit is reached."""

    code = "EVENT_FULL"
    status_code = 409

    def __init__(self, event_id: str, limit: int) -> None:
        super().__init__(
            "Event is fully booked",
            details={"event_id": event_id, "registration_limit": limit},
        )


class EligibilityMismatchError(RegistrationError):
    """Raised when the participant type does not match event eligibility."""

    code = "ELIGIBILITY_MISMATCH"
    status_code = 403

    def __init__(self, event_id: str, eligibility: str) -> None:
        super().__init__(
            f"Participant is not eligible for this event ({eligibility})",
            details={"event_id": event_id, "eligibility": eligibility},
        )


class AlreadyRegisteredError(RegistrationError):
    """Raised when an active registration already exists."""

    code = "ALREADY_REGISTERED"
    status_code = 409

    def __init__(self, event_id: str, participant_id: str) -> None:
        super().__init__(
            "Participant is already registered for this event",
            details={"event_id": event_id, "participant_id": participant_id},
        )


class MissingRequiredFieldError(RegistrationError):
    """Raised when a required custom form field has no answer."""

    code = "MISSING_REQUIRED_FIELD"

    def __init__(self, field_id: str, label: str) -> None:
        super().__init__(f"{label} is required", details={"field_id": field_id})


class PurchaseLimitExceededError(RegistrationError):
    """Raised when a purchase would exceed the per-participant limit."""

    code = "PURCHASE_LIMIT_EXCEEDED"
    status_code = 409

    def __init__(self, purchase_limit: int, already_bought: int, requested: int) -> None:
        super().__init__(
            f"Purchase limit is {purchase_limit} items per person",
            details={
                "purchase_limit": purchase_limit,
                "already_bought": already_bought,
                "requested": requested,
            },
        )


class InvalidQuantityError(RegistrationError):
    """Raised when a non-positive quantity is requested."""

    code = "INVALID_QUANTITY"

    def __init__(self, quantity: int, reason: str = "Quantity must be positive") -> None:
        super().__init__(
            f"Invalid quantity {quantity}: {reason}",
            details={"quantity": quantity, "reason": reason},
        )


class OutOfStockError(RegistrationError):
    """Raised to the participant when a variant cannot cover the purchase."""

    code = "OUT_OF_STOCK"
    status_code = 409

    def __init__(self, variant_id: str, requested: int) -> None:
        super().__init__(
            "Not enough items in stock",
            details={"variant_id": variant_id, "requested": requested},
        )


class AlreadyCancelledError(RegistrationError):
    """Raised when cancelling a registration twice."""

    code = "ALREADY_CANCELLED"
    status_code = 409

    def __init__(self, registration_id: str) -> None:
        super().__init__(
            "Registration already cancelled",
            details={"registration_id": registration_id},
        )


class AlreadyAttendedError(RegistrationError):
    """Raised when the registration has already been checked in."""

    code = "ALREADY_ATTENDED"
    status_code = 409

    def __init__(self, registration_id: str) -> None:
        super().__init__(
            "Already marked as attended",
            details={"registration_id": registration_id},
        )


class EventStartedError(RegistrationError):
    """Raised when cancelling after the event has started."""

    code = "EVENT_STARTED"

    def __init__(self, event_id: str) -> None:
        super().__init__(
            "Cannot cancel after event has started",
            details={"event_id": event_id},
        )


class EventNotStartedError(RegistrationError):
    """Raised when marking attendance before the event starts."""

    code = "EVENT_NOT_STARTED"

    def __init__(self, event_id: str) -> None:
        super().__init__(
            "Attendance can only be marked after the event has started",
            details={"event_id": event_id},
        )


class NotConfirmedError(RegistrationError):
    """Raised when attendance is requested for a non-confirmed registration."""

    code = "NOT_CONFIRMED"
    status_code = 409

    def __init__(self, registration_id: str, current_status: str) -> None:
        super().__init__(
            "Only confirmed registrations can be marked as attended",
            details={"registration_id": registration_id, "current_status": current_status},
        )


# ============================================================================
# Payment Errors
# ============================================================================


class NotPendingError(DomainError):
    """Raised when a payment action targets a non-pending registration."""

    code = "NOT_PENDING"
    status_code = 409

    def __init__(self, registration_id: str, payment_status: str) -> None:
        super().__init__(
            "Payment is not in pending state",
            details={"registration_id": registration_id, "payment_status": payment_status},
        )


class InvalidProofError(DomainError):
    """Raised when an uploaded payment proof is empty or too large."""

    code = "INVALID_PROOF"

    def __init__(self, reason: str) -> None:
        super().__init__(reason, details={"reason": reason})


# ============================================================================
# Inventory Errors
# ============================================================================


class InventoryError(DomainError):
    """Base class for inventory ledger errors."""

    status_code = 409


class InsufficientStockError(InventoryError):
    """Raised when a variant's stock cannot cover a reservation."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, event_id: str, variant_id: str, requested: int) -> None:
        super().__init__(
            f"Insufficient stock for variant {variant_id}",
            details={"event_id": event_id, "variant_id": variant_id, "requested": requested},
        )


class AlreadyFinalizedError(InventoryError):
    """Raised when a reservation has already been converted into sold units."""

    code = "ALREADY_FINALIZED"

    def __init__(self, reservation_id: str) -> None:
        super().__init__(
            f"Reservation {reservation_id} is already finalized",
            details={"reservation_id": reservation_id},
        )


class ReservationReleasedError(InventoryError):
    """Raised when finalizing a reservation whose units went back to stock."""

    code = "RESERVATION_RELEASED"

    def __init__(self, reservation_id: str) -> None:
        super().__init__(
            f"Reservation {reservation_id} was already released",
            details={"reservation_id": reservation_id},
        )


# ============================================================================
# Ticket Errors
# ============================================================================


class TicketError(DomainError):
    """Base class for ticket issuing and scanning errors."""

    pass


class DuplicateTicketIdError(TicketError):
    """Raised by a store when a ticket ID is already taken."""

    code = "DUPLICATE_TICKET_ID"
    status_code = 409

    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"Ticket ID already in use: {ticket_id}", details={"ticket_id": ticket_id})


class TicketAllocationError(TicketError):
    """Raised when no free ticket ID was found within the retry budget."""

    code = "TICKET_ALLOCATION_FAILED"
    status_code = 503

    def __init__(self, attempts: int) -> None:
        super().__init__(
            f"Could not allocate a unique ticket ID after {attempts} attempts",
            details={"attempts": attempts},
        )


class MalformedPayloadError(TicketError):
    """Raised when scanned QR data cannot be parsed or lacks fields."""

    code = "MALFORMED_PAYLOAD"

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid QR code data: {reason}", details={"reason": reason})


class EventMismatchError(TicketError):
    """Raised when a ticket belongs to a different event than the scanner's."""

    code = "EVENT_MISMATCH"

    def __init__(self, expected_event_id: str, actual_event_id: str) -> None:
        super().__init__(
            "Ticket is for a different event",
            details={"expected_event_id": expected_event_id, "actual_event_id": actual_event_id},
        )


# ============================================================================
# Team Errors
# ============================================================================


class TeamError(DomainError):
    """Base class for team-related errors."""

    pass


class TeamIncompleteError(TeamError):
    """Raised when completing a team that still has open slots."""

    code = "TEAM_INCOMPLETE"
    status_code = 409

    def __init__(self, team_id: str, open_slots: int) -> None:
        super().__init__(
            "Team still has open slots",
            details={"team_id": team_id, "open_slots": open_slots},
        )


class NotTeamEventError(TeamError):
    """Raised when creating a team for an event without team support."""

    code = "NOT_TEAM_EVENT"

    def __init__(self, event_id: str) -> None:
        super().__init__("This event does not support teams", details={"event_id": event_id})


class InvalidTeamSizeError(TeamError):
    """Raised when the requested team size is outside the event's range."""

    code = "INVALID_TEAM_SIZE"

    def __init__(self, team_size: int, min_size: int, max_size: int) -> None:
        super().__init__(
            f"Team size must be between {min_size} and {max_size}",
            details={"team_size": team_size, "min_team_size": min_size, "max_team_size": max_size},
        )


class AlreadyHasTeamError(TeamError):
    """Raised when the leader already leads or belongs to a team for the event."""

    code = "ALREADY_HAS_TEAM"
    status_code = 409

    def __init__(self, event_id: str, user_id: str) -> None:
        super().__init__(
            "You already have a team for this event",
            details={"event_id": event_id, "user_id": user_id},
        )


class InvalidInviteCodeError(TeamError):
    """Raised when no team carries the invite code."""

    code = "INVALID_CODE"
    status_code = 404

    def __init__(self, invite_code: str) -> None:
        super().__init__("Invalid invite code", details={"invite_code": invite_code})


class TeamCompleteError(TeamError):
    """Raised when a team is already complete or has no free slot."""

    code = "TEAM_COMPLETE"
    status_code = 409

    def __init__(self, team_id: str) -> None:
        super().__init__("Team is already complete", details={"team_id": team_id})


class AlreadyMemberError(TeamError):
    """Raised when the joiner is already an accepted member."""

    code = "ALREADY_MEMBER"
    status_code = 409

    def __init__(self, team_id: str, user_id: str) -> None:
        super().__init__(
            "You are already in this team",
            details={"team_id": team_id, "user_id": user_id},
        )


class IsLeaderError(TeamError):
    """Raised when the leader tries to join their own team."""

    code = "IS_LEADER"
    status_code = 409

    def __init__(self, team_id: str) -> None:
        super().__init__("You are the team leader", details={"team_id": team_id})


class AlreadyInAnotherTeamError(TeamError):
    """Raised when the joiner belongs to a different team for the same event."""

    code = "ALREADY_IN_ANOTHER_TEAM"
    status_code = 409

    def __init__(self, event_id: str, user_id: str) -> None:
        super().__init__(
            "You are already in another team for this event",
            details={"event_id": event_id, "user_id": user_id},
        )


class NotTeamMemberError(TeamError):
    """Raised when a non-member tries to leave or view a team."""

    code = "NOT_TEAM_MEMBER"
    status_code = 403

    def __init__(self, team_id: str, user_id: str) -> None:
        super().__init__(
            "You are not in this team",
            details={"team_id": team_id, "user_id": user_id},
        )


class LeaderCannotLeaveError(TeamError):
    """Raised when the leader tries to leave instead of deleting."""

    code = "LEADER_CANNOT_LEAVE"

    def __init__(self, team_id: str) -> None:
        super().__init__(
            "Team leader cannot leave. Delete the team instead.",
            details={"team_id": team_id},
        )


class NotTeamLeaderError(TeamError):
    """Raised when a non-leader tries to delete the team."""

    code = "NOT_TEAM_LEADER"
    status_code = 403

    def __init__(self, team_id: str, user_id: str) -> None:
        super().__init__(
            "Only team leader can delete team",
            details={"team_id": team_id, "user_id": user_id},
        )


class InviteCodeAllocationError(TeamError):
    """Raised when no free invite code was found within the retry budget."""

    code = "INVITE_CODE_ALLOCATION_FAILED"
    status_code = 503

    def __init__(self, attempts: int) -> None:
        super().__init__(
            f"Could not allocate a unique invite code after {attempts} attempts",
            details={"attempts": attempts},
        )


class DuplicateInviteCodeError(TeamError):
    """Raised by a store when an invite code is already taken."""

    code = "DUPLICATE_INVITE_CODE"
    status_code = 409

    def __init__(self, invite_code: str) -> None:
        super().__init__(
            f"Invite code already in use: {invite_code}",
            details={"invite_code": invite_code},
        )


# ============================================================================
# Persistence Errors
# ============================================================================


class ConcurrentModificationError(DomainError):
    """Raised when an aggregate changed since it was loaded."""

    code = "CONCURRENT_MODIFICATION"
    status_code = 409

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
    ) -> None:
        super().__init__(
            f"{entity_type} {entity_id} was modified by another request",
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "expected_version": expected_version,
            },
        )


# ============================================================================
# Money Errors
# ============================================================================


class MoneyError(DomainError):
    """Base class for money-related errors."""

    code = "INVALID_AMOUNT"


class NegativeMoneyError(MoneyError):
    """Raised when an amount would become negative."""

    def __init__(self, amount: int) -> None:
        super().__init__(f"Amount cannot be negative: {amount}", details={"amount": amount})


class CurrencyMismatchError(MoneyError):
    """Raised when combining amounts in different currencies."""

    def __init__(self, currency1: str, currency2: str) -> None:
        super().__init__(
            f"Cannot combine amounts in {currency1} and {currency2}",
            details={"currency1": currency1, "currency2": currency2},
        )
