"""In-memory store implementations.

Used by default and in tests. Each operation yields to the event loop
once before touching shared state, the way a database round trip
would, and then runs its check-and-mutate section under a per-event
``asyncio.Lock`` with no awaits inside. Entities are copied on the way
in and out so callers only change stored state through the store.
"""

import asyncio
import copy
from typing import TypeVar

import structlog

from festival.domain.base import AggregateRoot, new_id
from festival.domain.entities import Event, Registration, Reservation, Team
from festival.domain.exceptions import (
    AlreadyHasTeamError,
    AlreadyInAnotherTeamError,
    AlreadyRegisteredError,
    ConcurrentModificationError,
    DuplicateInviteCodeError,
    DuplicateTicketIdError,
    EventNotFoundError,
    InvalidInviteCodeError,
    PurchaseLimitExceededError,
    RegistrationNotFoundError,
    ReservationNotFoundError,
    TeamNotFoundError,
)
from festival.domain.state_machines import RegistrationStatus, ReservationStatus
from festival.domain.value_objects import RegistrationType
from festival.infrastructure.stores.interfaces import EventStore, RegistrationStore, TeamStore

logger = structlog.get_logger()

A = TypeVar("A", bound=AggregateRoot)


def _snapshot(aggregate: A) -> A:
    """Deep-copy an aggregate without its pending domain events."""
    clone = copy.deepcopy(aggregate)
    clone.collect_events()
    return clone


class _EventLocks:
    """Lazily created lock per event id."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def __call__(self, event_id: str) -> asyncio.Lock:
        lock = self._locks.get(event_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[event_id] = lock
        return lock


# ============================================================================
# Event Store and Inventory Ledger
# ============================================================================


class InMemoryEventStore(EventStore):
    """Events, variant counters and reservations held in dictionaries."""

    def __init__(self) -> None:
        self._events: dict[str, Event] = {}
        self._reservations: dict[str, Reservation] = {}
        self._lock = _EventLocks()

    def _require_event(self, event_id: str) -> Event:
        event = self._events.get(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    def _require_reservation(self, reservation_id: str) -> Reservation:
        reservation = self._reservations.get(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        return reservation

    async def add(self, event: Event) -> Event:
        await asyncio.sleep(0)
        self._events[event.id] = _snapshot(event)
        return _snapshot(event)

    async def get(self, event_id: str) -> Event | None:
        await asyncio.sleep(0)
        event = self._events.get(event_id)
        return _snapshot(event) if event else None

    async def adjust_registration_count(
        self,
        event_id: str,
        delta: int,
        *,
        limit: int | None = None,
        lock_form: bool = False,
    ) -> bool:
        await asyncio.sleep(0)
        async with self._lock(event_id):
            event = self._require_event(event_id)
            return event.apply_registration_delta(delta, limit=limit, lock_form=lock_form)

    async def reserve_stock(self, event_id: str, variant_id: str, quantity: int) -> Reservation:
        await asyncio.sleep(0)
        async with self._lock(event_id):
            variant = self._require_event(event_id).get_variant(variant_id)
            reservation = Reservation(
                id=new_id(),
                event_id=event_id,
                variant_id=variant_id,
                quantity=quantity,
            )
            variant.take(event_id, quantity)
            self._reservations[reservation.id] = reservation
            return copy.deepcopy(reservation)

    async def credit_stock(self, event_id: str, variant_id: str, quantity: int) -> Reservation:
        await asyncio.sleep(0)
        async with self._lock(event_id):
            variant = self._require_event(event_id).get_variant(variant_id)
            reservation = Reservation(
                id=new_id(),
                event_id=event_id,
                variant_id=variant_id,
                quantity=quantity,
            )
            variant.take(event_id, quantity)
            variant.record_sale(quantity)
            reservation.finalize()
            self._reservations[reservation.id] = reservation
            return copy.deepcopy(reservation)

    async def finalize_reservation(self, reservation_id: str) -> Reservation:
        await asyncio.sleep(0)
        event_id = self._require_reservation(reservation_id).event_id
        async with self._lock(event_id):
            reservation = self._require_reservation(reservation_id)
            reservation.finalize()
            variant = self._require_event(event_id).get_variant(reservation.variant_id)
            variant.record_sale(reservation.quantity)
            return copy.deepcopy(reservation)

    async def release_reservation(self, reservation_id: str) -> Reservation:
        await asyncio.sleep(0)
        event_id = self._require_reservation(reservation_id).event_id
        async with self._lock(event_id):
            reservation = self._require_reservation(reservation_id)
            if reservation.release():
                variant = self._require_event(event_id).get_variant(reservation.variant_id)
                variant.restock(reservation.quantity)
            return copy.deepcopy(reservation)

    async def return_reservation(self, reservation_id: str) -> Reservation:
        await asyncio.sleep(0)
        event_id = self._require_reservation(reservation_id).event_id
        async with self._lock(event_id):
            reservation = self._require_reservation(reservation_id)
            previous = reservation.return_units()
            variant = self._require_event(event_id).get_variant(reservation.variant_id)
            if previous == ReservationStatus.HELD:
                variant.restock(reservation.quantity)
            elif previous == ReservationStatus.FINALIZED:
                variant.reverse_sale(reservation.quantity)
            return copy.deepcopy(reservation)

    async def get_reservation(self, reservation_id: str) -> Reservation | None:
        await asyncio.sleep(0)
        reservation = self._reservations.get(reservation_id)
        return copy.deepcopy(reservation) if reservation else None


# ============================================================================
# Registration Store
# ============================================================================


class InMemoryRegistrationStore(RegistrationStore):
    """Registrations held in a dictionary with a ticket ID index."""

    def __init__(self) -> None:
        self._registrations: dict[str, Registration] = {}
        self._by_ticket_id: dict[str, str] = {}
        self._lock = _EventLocks()

    def _for_participant(self, event_id: str, participant_id: str) -> list[Registration]:
        return [
            r
            for r in self._registrations.values()
            if r.event_id == event_id and r.participant_id == participant_id
        ]

    def _active_normal(self, event_id: str, participant_id: str) -> Registration | None:
        for registration in self._for_participant(event_id, participant_id):
            if registration.registration_type == RegistrationType.NORMAL and registration.is_active:
                return registration
        return None

    def _active_quantity(self, event_id: str, participant_id: str) -> int:
        return sum(
            r.quantity
            for r in self._for_participant(event_id, participant_id)
            if r.registration_type == RegistrationType.MERCHANDISE and r.is_active
        )

    async def add(self, registration: Registration, *, purchase_limit: int | None = None) -> Registration:
        await asyncio.sleep(0)
        async with self._lock(registration.event_id):
            if registration.ticket_id in self._by_ticket_id:
                raise DuplicateTicketIdError(registration.ticket_id)
            if registration.registration_type == RegistrationType.NORMAL and registration.is_active:
                if self._active_normal(registration.event_id, registration.participant_id):
                    raise AlreadyRegisteredError(registration.event_id, registration.participant_id)
            if purchase_limit is not None:
                bought = self._active_quantity(registration.event_id, registration.participant_id)
                if bought + registration.quantity > purchase_limit:
                    raise PurchaseLimitExceededError(purchase_limit, bought, registration.quantity)
            self._registrations[registration.id] = _snapshot(registration)
            self._by_ticket_id[registration.ticket_id] = registration.id
            return registration

    async def save(self, registration: Registration, *, expected_version: int) -> Registration:
        await asyncio.sleep(0)
        async with self._lock(registration.event_id):
            stored = self._registrations.get(registration.id)
            if stored is None:
                raise RegistrationNotFoundError(registration.id)
            if stored.version != expected_version:
                raise ConcurrentModificationError("Registration", registration.id, expected_version)
            self._registrations[registration.id] = _snapshot(registration)
            return registration

    async def get(self, registration_id: str) -> Registration | None:
        await asyncio.sleep(0)
        registration = self._registrations.get(registration_id)
        return _snapshot(registration) if registration else None

    async def get_by_ticket_id(self, ticket_id: str) -> Registration | None:
        await asyncio.sleep(0)
        registration_id = self._by_ticket_id.get(ticket_id)
        if registration_id is None:
            return None
        return _snapshot(self._registrations[registration_id])

    async def find_active(self, event_id: str, participant_id: str) -> Registration | None:
        await asyncio.sleep(0)
        registration = self._active_normal(event_id, participant_id)
        return _snapshot(registration) if registration else None

    async def latest_attempt(self, event_id: str, participant_id: str) -> int:
        await asyncio.sleep(0)
        return max((r.attempt for r in self._for_participant(event_id, participant_id)), default=0)

    async def purchased_quantity(self, event_id: str, participant_id: str) -> int:
        await asyncio.sleep(0)
        return self._active_quantity(event_id, participant_id)

    async def list_for_participant(self, participant_id: str) -> list[Registration]:
        await asyncio.sleep(0)
        registrations = [r for r in self._registrations.values() if r.participant_id == participant_id]
        registrations.sort(key=lambda r: r.created_at, reverse=True)
        return [_snapshot(r) for r in registrations]

    async def list_for_event(
        self,
        event_id: str,
        statuses: set[RegistrationStatus] | None = None,
    ) -> list[Registration]:
        await asyncio.sleep(0)
        registrations = [
            r
            for r in self._registrations.values()
            if r.event_id == event_id and (statuses is None or r.status in statuses)
        ]
        registrations.sort(key=lambda r: r.created_at)
        return [_snapshot(r) for r in registrations]


# ============================================================================
# Team Store
# ============================================================================


class InMemoryTeamStore(TeamStore):
    """Teams held in a dictionary with an invite code index.

    All membership changes for one event share a lock, so the capacity
    check, the append and the one-team-per-event check happen together.
    """

    def __init__(self) -> None:
        self._teams: dict[str, Team] = {}
        self._by_invite_code: dict[str, str] = {}
        self._lock = _EventLocks()

    def _team_of(self, event_id: str, user_id: str) -> Team | None:
        for team in self._teams.values():
            if team.event_id == event_id and team.involves(user_id):
                return team
        return None

    def _require_team(self, team_id: str) -> Team:
        team = self._teams.get(team_id)
        if team is None:
            raise TeamNotFoundError(team_id)
        return team

    async def add(self, team: Team) -> Team:
        await asyncio.sleep(0)
        async with self._lock(team.event_id):
            if team.invite_code in self._by_invite_code:
                raise DuplicateInviteCodeError(team.invite_code)
            if self._team_of(team.event_id, team.team_leader_id):
                raise AlreadyHasTeamError(team.event_id, team.team_leader_id)
            self._teams[team.id] = _snapshot(team)
            self._by_invite_code[team.invite_code] = team.id
            return team

    async def get(self, team_id: str) -> Team | None:
        await asyncio.sleep(0)
        team = self._teams.get(team_id)
        return _snapshot(team) if team else None

    async def get_by_invite_code(self, invite_code: str) -> Team | None:
        await asyncio.sleep(0)
        team_id = self._by_invite_code.get(invite_code)
        return _snapshot(self._teams[team_id]) if team_id else None

    async def find_for_user(self, event_id: str, user_id: str) -> Team | None:
        await asyncio.sleep(0)
        team = self._team_of(event_id, user_id)
        return _snapshot(team) if team else None

    async def list_for_user(self, user_id: str) -> list[Team]:
        await asyncio.sleep(0)
        teams = [t for t in self._teams.values() if t.involves(user_id)]
        teams.sort(key=lambda t: t.created_at, reverse=True)
        return [_snapshot(t) for t in teams]

    async def join(self, invite_code: str, user_id: str) -> Team:
        await asyncio.sleep(0)
        team_id = self._by_invite_code.get(invite_code)
        if team_id is None:
            raise InvalidInviteCodeError(invite_code)
        event_id = self._teams[team_id].event_id
        async with self._lock(event_id):
            team = self._teams.get(team_id)
            if team is None:
                raise InvalidInviteCodeError(invite_code)
            team.ensure_can_join(user_id)
            other = self._team_of(event_id, user_id)
            if other is not None and other.id != team.id:
                raise AlreadyInAnotherTeamError(event_id, user_id)
            working = copy.deepcopy(team)
            working.add_member(user_id)
            self._teams[team_id] = _snapshot(working)
            logger.debug(
                "Team member appended",
                team_id=team_id,
                accepted=working.accepted_count,
                is_complete=working.is_complete,
            )
            return working

    async def leave(self, team_id: str, user_id: str) -> Team:
        await asyncio.sleep(0)
        event_id = self._require_team(team_id).event_id
        async with self._lock(event_id):
            working = copy.deepcopy(self._require_team(team_id))
            working.remove_member(user_id)
            self._teams[team_id] = _snapshot(working)
            return working

    async def delete(self, team_id: str, user_id: str) -> None:
        await asyncio.sleep(0)
        event_id = self._require_team(team_id).event_id
        async with self._lock(event_id):
            team = self._require_team(team_id)
            team.ensure_deletable_by(user_id)
            del self._teams[team_id]
            self._by_invite_code.pop(team.invite_code, None)

    async def link_registration(self, team_id: str, registration_id: str) -> Team:
        await asyncio.sleep(0)
        event_id = self._require_team(team_id).event_id
        async with self._lock(event_id):
            team = self._require_team(team_id)
            team.link_registration(registration_id)
            return _snapshot(team)
