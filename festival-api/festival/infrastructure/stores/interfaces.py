"""Store interfaces (repository pattern).

Stores are swappable and return domain entities. Every method that
changes a shared counter (variant stock and sold, registration count,
team membership) is a single atomic operation on the store: callers
never read a counter, change it and write it back.
"""

from abc import ABC, abstractmethod

from festival.domain.entities import Event, Registration, Reservation, Team
from festival.domain.state_machines import RegistrationStatus


class EventStore(ABC):
    """Interface for events and their inventory ledger."""

    @abstractmethod
    async def add(self, event: Event) -> Event:
        """Persist a new event with its variants."""
        ...

    @abstractmethod
    async def get(self, event_id: str) -> Event | None:
        """Return an event by ID, or None if not found."""
        ...

    @abstractmethod
    async def adjust_registration_count(
        self,
        event_id: str,
        delta: int,
        *,
        limit: int | None = None,
        lock_form: bool = False,
    ) -> bool:
        """Conditionally add ``delta`` to the registration count.

        The update only applies when the new count stays at or above
        zero and, if ``limit`` is given, at or below it.

        Returns:
            True if the count changed.
        """
        ...

    @abstractmethod
    async def reserve_stock(self, event_id: str, variant_id: str, quantity: int) -> Reservation:
        """Take units out of stock into a HELD reservation.

        Raises:
            VariantNotFoundError: Unknown event or variant.
            InsufficientStockError: Stock cannot cover the quantity.
        """
        ...

    @abstractmethod
    async def credit_stock(self, event_id: str, variant_id: str, quantity: int) -> Reservation:
        """Move units from stock straight to sold (FINALIZED reservation).

        Raises:
            VariantNotFoundError: Unknown event or variant.
            InsufficientStockError: Stock cannot cover the quantity.
        """
        ...

    @abstractmethod
    async def finalize_reservation(self, reservation_id: str) -> Reservation:
        """Turn a HELD reservation into sold units.

        Raises:
            ReservationNotFoundError: Unknown reservation.
            AlreadyFinalizedError: Finalized before.
            ReservationReleasedError: Units went back to stock.
        """
        ...

    @abstractmethod
    async def release_reservation(self, reservation_id: str) -> Reservation:
        """Return a HELD reservation's units to stock; no-op when released.

        Raises:
            ReservationNotFoundError: Unknown reservation.
            AlreadyFinalizedError: Units were sold.
        """
        ...

    @abstractmethod
    async def return_reservation(self, reservation_id: str) -> Reservation:
        """Undo a reservation at any stage; no-op when already undone."""
        ...

    @abstractmethod
    async def get_reservation(self, reservation_id: str) -> Reservation | None:
        ...


class RegistrationStore(ABC):
    """Interface for registration persistence."""

    @abstractmethod
    async def add(self, registration: Registration, *, purchase_limit: int | None = None) -> Registration:
        """Insert a new registration.

        Args:
            registration: Registration to insert.
            purchase_limit: For merchandise, the insert is refused when the
                participant's active quantity plus this one would exceed it.

        Raises:
            DuplicateTicketIdError: The ticket ID is taken.
            AlreadyRegisteredError: An active normal registration exists.
            PurchaseLimitExceededError: The purchase limit would be exceeded.
        """
        ...

    @abstractmethod
    async def save(self, registration: Registration, *, expected_version: int) -> Registration:
        """Store changes if nobody else changed the registration meanwhile.

        Raises:
            ConcurrentModificationError: The stored version differs.
        """
        ...

    @abstractmethod
    async def get(self, registration_id: str) -> Registration | None:
        ...

    @abstractmethod
    async def get_by_ticket_id(self, ticket_id: str) -> Registration | None:
        ...

    @abstractmethod
    async def find_active(self, event_id: str, participant_id: str) -> Registration | None:
        """Return the participant's active normal registration for an event."""
        ...

    @abstractmethod
    async def latest_attempt(self, event_id: str, participant_id: str) -> int:
        """Return the highest attempt number so far, 0 if none."""
        ...

    @abstractmethod
    async def purchased_quantity(self, event_id: str, participant_id: str) -> int:
        """Sum of quantities over non-cancelled, non-rejected purchases."""
        ...

    @abstractmethod
    async def list_for_participant(self, participant_id: str) -> list[Registration]:
        """Return a participant's registrations, newest first."""
        ...

    @abstractmethod
    async def list_for_event(
        self,
        event_id: str,
        statuses: set[RegistrationStatus] | None = None,
    ) -> list[Registration]:
        """Return an event's registrations, oldest first."""
        ...


class TeamStore(ABC):
    """Interface for team persistence."""

    @abstractmethod
    async def add(self, team: Team) -> Team:
        """Insert a new team.

        Raises:
            DuplicateInviteCodeError: The invite code is taken.
            AlreadyHasTeamError: The leader is already in a team for the event.
        """
        ...

    @abstractmethod
    async def get(self, team_id: str) -> Team | None:
        ...

    @abstractmethod
    async def get_by_invite_code(self, invite_code: str) -> Team | None:
        ...

    @abstractmethod
    async def find_for_user(self, event_id: str, user_id: str) -> Team | None:
        """Return the team a user leads or belongs to for an event."""
        ...

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[Team]:
        ...

    @abstractmethod
    async def join(self, invite_code: str, user_id: str) -> Team:
        """Check capacity and append an accepted member in one step.

        Completion is recomputed in the same step.

        Raises:
            InvalidInviteCodeError: No team has the code.
            TeamCompleteError: No slot left.
            AlreadyMemberError: User already joined.
            IsLeaderError: User leads the team.
            AlreadyInAnotherTeamError: User is in another team for the event.
        """
        ...

    @abstractmethod
    async def leave(self, team_id: str, user_id: str) -> Team:
        """Remove a member from an incomplete team in one step."""
        ...

    @abstractmethod
    async def delete(self, team_id: str, user_id: str) -> None:
        """Delete an incomplete team on behalf of its leader."""
        ...

    @abstractmethod
    async def link_registration(self, team_id: str, registration_id: str) -> Team:
        """Set the team's registration once; later calls keep the first value."""
        ...
