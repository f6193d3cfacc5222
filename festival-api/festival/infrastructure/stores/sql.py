"""SQLAlchemy store implementations.

Each store method runs in its own transaction. Counters are changed
with conditional ``UPDATE ... WHERE`` statements, so two requests
racing for the last unit, slot or team seat cannot both win; unique
constraints catch duplicate ticket IDs, invite codes, active
registrations and team memberships.
"""

from collections.abc import Callable

import structlog
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from festival.domain.base import new_id, utc_now
from festival.domain.entities import Event, Registration, Reservation, Team
from festival.domain.exceptions import (
    AlreadyHasTeamError,
    AlreadyInAnotherTeamError,
    AlreadyRegisteredError,
    ConcurrentModificationError,
    DuplicateInviteCodeError,
    DuplicateTicketIdError,
    EventNotFoundError,
    InsufficientStockError,
    InvalidInviteCodeError,
    PurchaseLimitExceededError,
    RegistrationNotFoundError,
    ReservationNotFoundError,
    TeamCompleteError,
    TeamNotFoundError,
    VariantNotFoundError,
)
from festival.domain.state_machines import RegistrationStatus, ReservationStatus
from festival.domain.value_objects import RegistrationType
from festival.infrastructure.models import (
    EventModel,
    RegistrationModel,
    ReservationModel,
    TeamMembershipModel,
    TeamModel,
    VariantModel,
)
from festival.infrastructure.stores.interfaces import EventStore, RegistrationStore, TeamStore

logger = structlog.get_logger()

INACTIVE_STATUSES = (RegistrationStatus.CANCELLED.value, RegistrationStatus.REJECTED.value)


# ============================================================================
# Event Store and Inventory Ledger
# ============================================================================


class SqlEventStore(EventStore):
    """Events and the inventory ledger on SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, event: Event) -> Event:
        async with self._session_factory() as session, session.begin():
            session.add(EventModel.from_entity(event))
        return event

    async def get(self, event_id: str) -> Event | None:
        async with self._session_factory() as session:
            row = await session.get(EventModel, event_id)
            return row.to_entity() if row else None

    async def adjust_registration_count(
        self,
        event_id: str,
        delta: int,
        *,
        limit: int | None = None,
        lock_form: bool = False,
    ) -> bool:
        conditions = [
            EventModel.id == event_id,
            EventModel.registration_count + delta >= 0,
        ]
        if limit is not None:
            conditions.append(EventModel.registration_count + delta <= limit)
        values = {"registration_count": EventModel.registration_count + delta}
        if lock_form:
            values["form_locked"] = True

        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(EventModel)
                .where(*conditions)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def _raise_stock_failure(
        self,
        session: AsyncSession,
        event_id: str,
        variant_id: str,
        quantity: int,
    ) -> None:
        variant = await session.get(VariantModel, (event_id, variant_id))
        if variant is not None:
            raise InsufficientStockError(event_id, variant_id, quantity)
        if await session.get(EventModel, event_id) is None:
            raise EventNotFoundError(event_id)
        raise VariantNotFoundError(event_id, variant_id)

    async def _take_stock(self, event_id: str, variant_id: str, reservation: Reservation) -> Reservation:
        """Decrement stock (and for FINALIZED, increment sold) and record the reservation."""
        values = {"stock": VariantModel.stock - reservation.quantity}
        if reservation.status == ReservationStatus.FINALIZED:
            values["sold"] = VariantModel.sold + reservation.quantity

        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(VariantModel)
                .where(
                    VariantModel.event_id == event_id,
                    VariantModel.id == variant_id,
                    VariantModel.stock >= reservation.quantity,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self._raise_stock_failure(session, event_id, variant_id, reservation.quantity)
            session.add(
                ReservationModel(
                    id=reservation.id,
                    event_id=event_id,
                    variant_id=variant_id,
                    quantity=reservation.quantity,
                    status=reservation.status.value,
                    created_at=reservation.created_at,
                    resolved_at=reservation.resolved_at,
                )
            )
        return reservation

    async def reserve_stock(self, event_id: str, variant_id: str, quantity: int) -> Reservation:
        reservation = Reservation(id=new_id(), event_id=event_id, variant_id=variant_id, quantity=quantity)
        return await self._take_stock(event_id, variant_id, reservation)

    async def credit_stock(self, event_id: str, variant_id: str, quantity: int) -> Reservation:
        reservation = Reservation(id=new_id(), event_id=event_id, variant_id=variant_id, quantity=quantity)
        reservation.finalize()
        return await self._take_stock(event_id, variant_id, reservation)

    async def _resolve(
        self,
        reservation_id: str,
        apply: Callable[[Reservation], object],
    ) -> Reservation:
        """Apply a reservation transition and move the matching counters.

        The status change is a compare-and-set on the previous status,
        in the same transaction as the counter update.
        """
        async with self._session_factory() as session, session.begin():
            row = await session.get(ReservationModel, reservation_id, with_for_update=True)
            if row is None:
                raise ReservationNotFoundError(reservation_id)
            reservation = row.to_entity()
            previous = reservation.status
            apply(reservation)
            if reservation.status == previous:
                return reservation

            result = await session.execute(
                update(ReservationModel)
                .where(ReservationModel.id == reservation_id, ReservationModel.status == previous.value)
                .values(status=reservation.status.value, resolved_at=reservation.resolved_at)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConcurrentModificationError("Reservation", reservation_id)

            quantity = reservation.quantity
            if reservation.status == ReservationStatus.FINALIZED:
                counters = {"sold": VariantModel.sold + quantity}
            elif reservation.status == ReservationStatus.RELEASED:
                counters = {"stock": VariantModel.stock + quantity}
            else:
                counters = {"sold": VariantModel.sold - quantity, "stock": VariantModel.stock + quantity}
            await session.execute(
                update(VariantModel)
                .where(
                    VariantModel.event_id == reservation.event_id,
                    VariantModel.id == reservation.variant_id,
                )
                .values(**counters)
                .execution_options(synchronize_session=False)
            )
            return reservation

    async def finalize_reservation(self, reservation_id: str) -> Reservation:
        return await self._resolve(reservation_id, lambda r: r.finalize())

    async def release_reservation(self, reservation_id: str) -> Reservation:
        return await self._resolve(reservation_id, lambda r: r.release())

    async def return_reservation(self, reservation_id: str) -> Reservation:
        return await self._resolve(reservation_id, lambda r: r.return_units())

    async def get_reservation(self, reservation_id: str) -> Reservation | None:
        async with self._session_factory() as session:
            row = await session.get(ReservationModel, reservation_id)
            return row.to_entity() if row else None


# ============================================================================
# Registration Store
# ============================================================================


class SqlRegistrationStore(RegistrationStore):
    """Registrations on SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _participant_filter(event_id: str, participant_id: str) -> list:
        return [
            RegistrationModel.event_id == event_id,
            RegistrationModel.participant_id == participant_id,
        ]

    async def _active_quantity(self, session: AsyncSession, event_id: str, participant_id: str) -> int:
        total = await session.scalar(
            select(func.coalesce(func.sum(RegistrationModel.quantity), 0)).where(
                *self._participant_filter(event_id, participant_id),
                RegistrationModel.registration_type == RegistrationType.MERCHANDISE.value,
                RegistrationModel.status.not_in(INACTIVE_STATUSES),
            )
        )
        return int(total or 0)

    async def add(self, registration: Registration, *, purchase_limit: int | None = None) -> Registration:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    if purchase_limit is not None:
                        # Serializes purchases for the event on backends with row locks.
                        await session.execute(
                            select(EventModel.id)
                            .where(EventModel.id == registration.event_id)
                            .with_for_update()
                        )
                        bought = await self._active_quantity(
                            session, registration.event_id, registration.participant_id
                        )
                        if bought + registration.quantity > purchase_limit:
                            raise PurchaseLimitExceededError(purchase_limit, bought, registration.quantity)
                    session.add(RegistrationModel(**RegistrationModel.values_from(registration)))
            except IntegrityError:
                taken = await session.scalar(
                    select(RegistrationModel.id).where(RegistrationModel.ticket_id == registration.ticket_id)
                )
                if taken is not None:
                    raise DuplicateTicketIdError(registration.ticket_id) from None
                raise AlreadyRegisteredError(registration.event_id, registration.participant_id) from None
        return registration

    async def save(self, registration: Registration, *, expected_version: int) -> Registration:
        values = RegistrationModel.values_from(registration)
        for immutable in ("id", "ticket_id", "event_id", "participant_id", "created_at"):
            values.pop(immutable)

        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(RegistrationModel)
                .where(
                    RegistrationModel.id == registration.id,
                    RegistrationModel.version == expected_version,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                if await session.get(RegistrationModel, registration.id) is None:
                    raise RegistrationNotFoundError(registration.id)
                raise ConcurrentModificationError("Registration", registration.id, expected_version)
        return registration

    async def get(self, registration_id: str) -> Registration | None:
        async with self._session_factory() as session:
            row = await session.get(RegistrationModel, registration_id)
            return row.to_entity() if row else None

    async def get_by_ticket_id(self, ticket_id: str) -> Registration | None:
        async with self._session_factory() as session:
            row = await session.scalar(select(RegistrationModel).where(RegistrationModel.ticket_id == ticket_id))
            return row.to_entity() if row else None

    async def find_active(self, event_id: str, participant_id: str) -> Registration | None:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(RegistrationModel).where(
                    *self._participant_filter(event_id, participant_id),
                    RegistrationModel.registration_type == RegistrationType.NORMAL.value,
                    RegistrationModel.status.not_in(INACTIVE_STATUSES),
                )
            )
            return row.to_entity() if row else None

    async def latest_attempt(self, event_id: str, participant_id: str) -> int:
        async with self._session_factory() as session:
            latest = await session.scalar(
                select(func.coalesce(func.max(RegistrationModel.attempt), 0)).where(
                    *self._participant_filter(event_id, participant_id)
                )
            )
            return int(latest or 0)

    async def purchased_quantity(self, event_id: str, participant_id: str) -> int:
        async with self._session_factory() as session:
            return await self._active_quantity(session, event_id, participant_id)

    async def list_for_participant(self, participant_id: str) -> list[Registration]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(RegistrationModel)
                .where(RegistrationModel.participant_id == participant_id)
                .order_by(RegistrationModel.created_at.desc())
            )
            return [row.to_entity() for row in rows]

    async def list_for_event(
        self,
        event_id: str,
        statuses: set[RegistrationStatus] | None = None,
    ) -> list[Registration]:
        query = select(RegistrationModel).where(RegistrationModel.event_id == event_id)
        if statuses is not None:
            query = query.where(RegistrationModel.status.in_([s.value for s in statuses]))
        async with self._session_factory() as session:
            rows = await session.scalars(query.order_by(RegistrationModel.created_at))
            return [row.to_entity() for row in rows]


# ============================================================================
# Team Store
# ============================================================================


class SqlTeamStore(TeamStore):
    """Teams on SQLAlchemy async sessions.

    A join claims a seat with a conditional increment of
    ``accepted_count``; the membership unique constraint keeps a user in
    one team per event even when two joins race.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _translate_conflict(
        self,
        session: AsyncSession,
        invite_code: str,
        on_membership_conflict: Callable[[], Exception],
    ) -> Exception:
        taken = await session.scalar(select(TeamModel.id).where(TeamModel.invite_code == invite_code))
        return DuplicateInviteCodeError(invite_code) if taken else on_membership_conflict()

    async def add(self, team: Team) -> Team:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    session.add(
                        TeamModel(
                            id=team.id,
                            event_id=team.event_id,
                            team_name=team.team_name,
                            team_leader_id=team.team_leader_id,
                            team_size=team.team_size,
                            invite_code=team.invite_code,
                            accepted_count=0,
                            is_complete=False,
                            version=team.version,
                            created_at=team.created_at,
                            updated_at=team.updated_at,
                            memberships=[
                                TeamMembershipModel(
                                    event_id=team.event_id,
                                    user_id=team.team_leader_id,
                                    role="leader",
                                    status="accepted",
                                    invited_at=team.created_at,
                                    responded_at=team.created_at,
                                )
                            ],
                        )
                    )
            except IntegrityError:
                raise await self._translate_conflict(
                    session,
                    team.invite_code,
                    lambda: AlreadyHasTeamError(team.event_id, team.team_leader_id),
                ) from None
        return team

    async def get(self, team_id: str) -> Team | None:
        async with self._session_factory() as session:
            row = await session.get(TeamModel, team_id)
            return row.to_entity() if row else None

    async def get_by_invite_code(self, invite_code: str) -> Team | None:
        async with self._session_factory() as session:
            row = await session.scalar(select(TeamModel).where(TeamModel.invite_code == invite_code))
            return row.to_entity() if row else None

    async def find_for_user(self, event_id: str, user_id: str) -> Team | None:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(TeamModel)
                .join(TeamMembershipModel, TeamMembershipModel.team_id == TeamModel.id)
                .where(TeamMembershipModel.event_id == event_id, TeamMembershipModel.user_id == user_id)
            )
            return row.to_entity() if row else None

    async def list_for_user(self, user_id: str) -> list[Team]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(TeamModel)
                .join(TeamMembershipModel, TeamMembershipModel.team_id == TeamModel.id)
                .where(TeamMembershipModel.user_id == user_id)
                .order_by(TeamModel.created_at.desc())
            )
            return [row.to_entity() for row in rows]

    async def join(self, invite_code: str, user_id: str) -> Team:
        now = utc_now()
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    row = await session.scalar(
                        select(TeamModel).where(TeamModel.invite_code == invite_code).with_for_update()
                    )
                    if row is None:
                        raise InvalidInviteCodeError(invite_code)
                    team = row.to_entity()
                    team.ensure_can_join(user_id)

                    other_team_id = await session.scalar(
                        select(TeamMembershipModel.team_id).where(
                            TeamMembershipModel.event_id == team.event_id,
                            TeamMembershipModel.user_id == user_id,
                        )
                    )
                    if other_team_id is not None:
                        raise AlreadyInAnotherTeamError(team.event_id, user_id)

                    result = await session.execute(
                        update(TeamModel)
                        .where(
                            TeamModel.id == team.id,
                            TeamModel.is_complete.is_(False),
                            TeamModel.accepted_count < TeamModel.team_size - 1,
                        )
                        .values(
                            accepted_count=TeamModel.accepted_count + 1,
                            is_complete=case(
                                (TeamModel.accepted_count + 1 >= TeamModel.team_size - 1, True),
                                else_=False,
                            ),
                            version=TeamModel.version + 1,
                            updated_at=now,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        raise TeamCompleteError(team.id)

                    logger.debug(
                        "Team seat claimed",
                        team_id=team.id,
                        user_id=user_id,
                        accepted=team.accepted_count + 1,
                    )
                    team.add_member(user_id, now)
                    session.add(
                        TeamMembershipModel(
                            team_id=team.id,
                            event_id=team.event_id,
                            user_id=user_id,
                            role="member",
                            status="accepted",
                            invited_at=now,
                            responded_at=now,
                        )
                    )
            except IntegrityError:
                raise AlreadyInAnotherTeamError(team.event_id, user_id) from None
        return team

    async def _locked_team(self, session: AsyncSession, team_id: str) -> Team:
        row = await session.get(TeamModel, team_id, with_for_update=True)
        if row is None:
            raise TeamNotFoundError(team_id)
        return row.to_entity()

    async def leave(self, team_id: str, user_id: str) -> Team:
        async with self._session_factory() as session, session.begin():
            team = await self._locked_team(session, team_id)
            team.remove_member(user_id)
            result = await session.execute(
                update(TeamModel)
                .where(
                    TeamModel.id == team_id,
                    TeamModel.is_complete.is_(False),
                    TeamModel.accepted_count > 0,
                )
                .values(
                    accepted_count=TeamModel.accepted_count - 1,
                    version=TeamModel.version + 1,
                    updated_at=team.updated_at,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise TeamCompleteError(team_id)
            await session.execute(
                delete(TeamMembershipModel)
                .where(
                    TeamMembershipModel.team_id == team_id,
                    TeamMembershipModel.user_id == user_id,
                    TeamMembershipModel.role == "member",
                )
                .execution_options(synchronize_session=False)
            )
            return team

    async def delete(self, team_id: str, user_id: str) -> None:
        async with self._session_factory() as session, session.begin():
            team = await self._locked_team(session, team_id)
            team.ensure_deletable_by(user_id)
            await session.execute(
                delete(TeamMembershipModel)
                .where(TeamMembershipModel.team_id == team_id)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(
                delete(TeamModel)
                .where(TeamModel.id == team_id, TeamModel.is_complete.is_(False))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise TeamCompleteError(team_id)

    async def link_registration(self, team_id: str, registration_id: str) -> Team:
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(TeamModel)
                .where(TeamModel.id == team_id, TeamModel.registration_id.is_(None))
                .values(registration_id=registration_id)
                .execution_options(synchronize_session=False)
            )
            row = await session.get(TeamModel, team_id)
            if row is None:
                raise TeamNotFoundError(team_id)
            return row.to_entity()
