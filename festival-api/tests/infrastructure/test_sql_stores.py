"""Tests for the SQLAlchemy stores, run against in-memory SQLite."""

from collections.abc import AsyncGenerator
from datetime import timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from festival.application.inventory_ledger import InventoryLedger
from festival.application.notifications import NotificationDispatcher
from festival.application.registration_service import RegistrationService
from festival.application.team_service import TeamService
from festival.domain.entities import Registration, Team
from festival.domain.exceptions import (
    AlreadyFinalizedError,
    AlreadyHasTeamError,
    AlreadyInAnotherTeamError,
    AlreadyRegisteredError,
    ConcurrentModificationError,
    DuplicateInviteCodeError,
    DuplicateTicketIdError,
    InsufficientStockError,
    InvalidInviteCodeError,
    PurchaseLimitExceededError,
    ReservationReleasedError,
    TeamCompleteError,
    VariantNotFoundError,
)
from festival.domain.state_machines import RegistrationStatus, ReservationStatus
from festival.domain.value_objects import CustomField, Money, RegistrationType
from festival.infrastructure.database import create_engine_for, init_db
from festival.infrastructure.stores.sql import SqlEventStore, SqlRegistrationStore, SqlTeamStore


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory database with every table created."""
    engine = create_engine_for("sqlite+aiosqlite://", poolclass=StaticPool)
    await init_db(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def sql_events(session_factory) -> SqlEventStore:
    return SqlEventStore(session_factory)


@pytest.fixture
def sql_registrations(session_factory) -> SqlRegistrationStore:
    return SqlRegistrationStore(session_factory)


@pytest.fixture
def sql_teams(session_factory) -> SqlTeamStore:
    return SqlTeamStore(session_factory)


def registration(ticket_id: str, participant_id: str = "user-alice", event_id: str = "event-1", **kwargs) -> Registration:
    return Registration(ticket_id=ticket_id, event_id=event_id, participant_id=participant_id, **kwargs)


class TestSqlEventStore:
    """Tests for events and the inventory ledger."""

    @pytest.mark.asyncio
    async def test_event_round_trip(self, sql_events: SqlEventStore, make_merch_event) -> None:
        event = make_merch_event(
            stock=7,
            registration_fee=Money(amount_minor=1000),
            custom_fields=[CustomField(field_id="size", label="Size", field_type="dropdown", options=("S", "M"))],
        )
        await sql_events.add(event)

        stored = await sql_events.get(event.id)

        assert stored.name == event.name
        assert stored.event_start_date == event.event_start_date
        assert stored.event_start_date.tzinfo is not None
        assert stored.registration_deadline.astimezone(timezone.utc) == event.registration_deadline
        assert stored.registration_fee == Money(amount_minor=1000)
        assert stored.custom_fields == event.custom_fields
        variant = stored.get_variant("tee-m")
        assert (variant.stock, variant.sold, variant.price) == (7, 0, Money(amount_minor=49900))

    @pytest.mark.asyncio
    async def test_missing_event(self, sql_events: SqlEventStore) -> None:
        assert await sql_events.get("missing") is None

    @pytest.mark.asyncio
    async def test_registration_count_respects_limit(self, sql_events: SqlEventStore, make_event) -> None:
        event = make_event(registration_limit=2)
        await sql_events.add(event)

        assert await sql_events.adjust_registration_count(event.id, 1, limit=2, lock_form=True)
        assert await sql_events.adjust_registration_count(event.id, 1, limit=2)
        assert not await sql_events.adjust_registration_count(event.id, 1, limit=2)
        assert await sql_events.adjust_registration_count(event.id, -2)
        assert not await sql_events.adjust_registration_count(event.id, -1)

        stored = await sql_events.get(event.id)
        assert stored.registration_count == 0
        assert stored.form_locked

    @pytest.mark.asyncio
    async def test_reserve_finalize_release(self, sql_events: SqlEventStore, make_merch_event) -> None:
        event = make_merch_event(stock=10)
        await sql_events.add(event)
        ledger = InventoryLedger(sql_events)

        sold = await ledger.reserve(event.id, "tee-m", 3)
        dropped = await ledger.reserve(event.id, "tee-m", 2)
        await ledger.finalize(sold)
        await ledger.release(dropped)

        variant = (await sql_events.get(event.id)).get_variant("tee-m")
        assert (variant.stock, variant.sold) == (7, 3)
        assert (await ledger.get(sold.id)).status == ReservationStatus.FINALIZED
        assert (await ledger.get(dropped.id)).status == ReservationStatus.RELEASED

        with pytest.raises(AlreadyFinalizedError):
            await ledger.finalize(sold)
        with pytest.raises(ReservationReleasedError):
            await ledger.finalize(dropped)

    @pytest.mark.asyncio
    async def test_credit_and_return(self, sql_events: SqlEventStore, make_merch_event) -> None:
        event = make_merch_event(stock=4)
        await sql_events.add(event)
        ledger = InventoryLedger(sql_events)

        reservation = await ledger.credit_immediate(event.id, "tee-m", 4)
        variant = (await sql_events.get(event.id)).get_variant("tee-m")
        assert (variant.stock, variant.sold) == (0, 4)

        returned = await ledger.return_units(reservation)

        assert returned.status == ReservationStatus.RETURNED
        variant = (await sql_events.get(event.id)).get_variant("tee-m")
        assert (variant.stock, variant.sold) == (4, 0)

    @pytest.mark.asyncio
    async def test_stock_failures(self, sql_events: SqlEventStore, make_merch_event) -> None:
        event = make_merch_event(stock=1)
        await sql_events.add(event)

        with pytest.raises(InsufficientStockError):
            await sql_events.reserve_stock(event.id, "tee-m", 2)
        with pytest.raises(VariantNotFoundError):
            await sql_events.reserve_stock(event.id, "hoodie", 1)

        assert (await sql_events.get(event.id)).get_variant("tee-m").stock == 1


class TestSqlRegistrationStore:
    """Tests for registration persistence and its unique constraints."""

    @pytest.mark.asyncio
    async def test_duplicate_ticket_id(self, sql_registrations: SqlRegistrationStore) -> None:
        await sql_registrations.add(registration("FEL-AAAAAAAAAA"))

        with pytest.raises(DuplicateTicketIdError):
            await sql_registrations.add(registration("FEL-AAAAAAAAAA", participant_id="user-bob"))

    @pytest.mark.asyncio
    async def test_one_active_normal_registration(self, sql_registrations: SqlRegistrationStore) -> None:
        """Cancelled registrations do not block a new one."""
        await sql_registrations.add(registration("FEL-AAAAAAAAAA", status=RegistrationStatus.CANCELLED))
        await sql_registrations.add(registration("FEL-BBBBBBBBBB", status=RegistrationStatus.CONFIRMED, attempt=2))

        with pytest.raises(AlreadyRegisteredError):
            await sql_registrations.add(registration("FEL-CCCCCCCCCC", status=RegistrationStatus.PENDING))

        active = await sql_registrations.find_active("event-1", "user-alice")
        assert active.ticket_id == "FEL-BBBBBBBBBB"
        assert await sql_registrations.latest_attempt("event-1", "user-alice") == 2

    @pytest.mark.asyncio
    async def test_purchase_limit(self, sql_registrations: SqlRegistrationStore) -> None:
        merch = {"registration_type": RegistrationType.MERCHANDISE}
        await sql_registrations.add(registration("FEL-AAAAAAAAAA", quantity=2, **merch), purchase_limit=3)

        with pytest.raises(PurchaseLimitExceededError):
            await sql_registrations.add(registration("FEL-BBBBBBBBBB", quantity=2, **merch), purchase_limit=3)

        await sql_registrations.add(registration("FEL-CCCCCCCCCC", quantity=1, **merch), purchase_limit=3)
        assert await sql_registrations.purchased_quantity("event-1", "user-alice") == 3

    @pytest.mark.asyncio
    async def test_save_checks_version(self, sql_registrations: SqlRegistrationStore, make_event) -> None:
        event = make_event()
        stored = await sql_registrations.add(
            Registration.create(
                ticket_id="FEL-AAAAAAAAAA",
                event_id=event.id,
                participant_id="user-alice",
                requires_payment=False,
            )
        )
        first = await sql_registrations.get(stored.id)
        second = await sql_registrations.get(stored.id)

        first.mark_attended("org-1", event.event_start_date, event.event_start_date)
        await sql_registrations.save(first, expected_version=1)

        second.mark_attended("org-2", event.event_start_date, event.event_start_date)
        with pytest.raises(ConcurrentModificationError):
            await sql_registrations.save(second, expected_version=1)

        reloaded = await sql_registrations.get(stored.id)
        assert reloaded.status == RegistrationStatus.ATTENDED
        assert reloaded.version == 2
        assert reloaded.status_history[-1].changed_by == "org-1"

    @pytest.mark.asyncio
    async def test_lookups(self, sql_registrations: SqlRegistrationStore) -> None:
        await sql_registrations.add(registration("FEL-AAAAAAAAAA", status=RegistrationStatus.CONFIRMED))
        await sql_registrations.add(registration("FEL-BBBBBBBBBB", participant_id="user-bob"))

        assert (await sql_registrations.get_by_ticket_id("FEL-BBBBBBBBBB")).participant_id == "user-bob"
        assert await sql_registrations.get_by_ticket_id("FEL-ZZZZZZZZZZ") is None
        confirmed = await sql_registrations.list_for_event("event-1", {RegistrationStatus.CONFIRMED})
        assert [r.ticket_id for r in confirmed] == ["FEL-AAAAAAAAAA"]
        assert len(await sql_registrations.list_for_participant("user-bob")) == 1


class TestSqlTeamStore:
    """Tests for team persistence and seat claiming."""

    @staticmethod
    def team(leader_id: str = "user-alice", invite_code: str = "ABCD1234", size: int = 3) -> Team:
        return Team.create(
            event_id="event-1",
            team_name="Trio",
            leader_id=leader_id,
            team_size=size,
            invite_code=invite_code,
        )

    @pytest.mark.asyncio
    async def test_join_until_complete(self, sql_teams: SqlTeamStore) -> None:
        team = await sql_teams.add(self.team())

        await sql_teams.join("ABCD1234", "user-bob")
        completed = await sql_teams.join("ABCD1234", "user-carol")

        assert completed.is_complete
        assert [e.event_type for e in completed.collect_events()][-1] == "team.completed"
        stored = await sql_teams.get(team.id)
        assert stored.is_complete
        assert stored.accepted_member_ids == ["user-bob", "user-carol"]

        with pytest.raises(TeamCompleteError):
            await sql_teams.join("ABCD1234", "user-dave")

    @pytest.mark.asyncio
    async def test_unknown_invite_code(self, sql_teams: SqlTeamStore) -> None:
        with pytest.raises(InvalidInviteCodeError):
            await sql_teams.join("NOPE0000", "user-bob")

    @pytest.mark.asyncio
    async def test_duplicate_invite_code(self, sql_teams: SqlTeamStore) -> None:
        await sql_teams.add(self.team())

        with pytest.raises(DuplicateInviteCodeError):
            await sql_teams.add(self.team(leader_id="user-bob"))

    @pytest.mark.asyncio
    async def test_one_team_per_user_and_event(self, sql_teams: SqlTeamStore) -> None:
        await sql_teams.add(self.team())
        await sql_teams.add(self.team(leader_id="user-bob", invite_code="FFFF0000"))
        await sql_teams.join("ABCD1234", "user-carol")

        with pytest.raises(AlreadyHasTeamError):
            await sql_teams.add(self.team(leader_id="user-alice", invite_code="EEEE0000"))
        with pytest.raises(AlreadyInAnotherTeamError):
            await sql_teams.join("FFFF0000", "user-carol")

        assert (await sql_teams.find_for_user("event-1", "user-carol")).invite_code == "ABCD1234"

    @pytest.mark.asyncio
    async def test_leave_and_delete(self, sql_teams: SqlTeamStore) -> None:
        team = await sql_teams.add(self.team())
        await sql_teams.join("ABCD1234", "user-bob")

        left = await sql_teams.leave(team.id, "user-bob")
        assert left.members == []
        assert (await sql_teams.get(team.id)).members == []
        assert await sql_teams.find_for_user("event-1", "user-bob") is None

        await sql_teams.delete(team.id, "user-alice")
        assert await sql_teams.get(team.id) is None
        assert await sql_teams.get_by_invite_code("ABCD1234") is None


class TestSqlBackedServices:
    """Service flows running on the SQL stores."""

    @pytest.fixture
    def services(self, sql_events, sql_registrations, sql_teams, outbox, gateway, clock):
        dispatcher = NotificationDispatcher(outbox=outbox, gateway=gateway, event_store=sql_events)
        registrations = RegistrationService(
            event_store=sql_events,
            registration_store=sql_registrations,
            dispatcher=dispatcher,
            clock=clock,
        )
        teams = TeamService(
            event_store=sql_events,
            registration_store=sql_registrations,
            team_store=sql_teams,
            dispatcher=dispatcher,
            clock=clock,
        )
        return registrations, teams

    @pytest.mark.asyncio
    async def test_register_and_cancel(self, services, sql_events, make_event, alice) -> None:
        registrations, _ = services
        event = make_event(registration_limit=1)
        await sql_events.add(event)

        registered = await registrations.register_for_event(event.id, alice)
        again = await registrations.register_for_event(event.id, alice)
        cancelled = await registrations.cancel(registered.registration.id, alice)
        retried = await registrations.register_for_event(event.id, alice)

        assert registered.success
        assert again.error_code == "EVENT_FULL"
        assert cancelled.registration.status == RegistrationStatus.CANCELLED
        assert retried.registration.attempt == 2
        assert (await sql_events.get(event.id)).registration_count == 1

    @pytest.mark.asyncio
    async def test_team_completion(self, services, sql_events, make_event, alice, bob, deliver) -> None:
        registrations, teams = services
        event = make_event(is_team_event=True)
        await sql_events.add(event)

        team = (await teams.create_team(event.id, alice, "Pair", 2)).team
        result = await teams.join_team(team.invite_code, bob)

        assert result.team.is_complete
        assert [r.participant_id for r in result.registrations] == [alice.id, bob.id]
        assert result.team.registration_id == result.registrations[0].id
        assert (await sql_events.get(event.id)).registration_count == 2
        assert [n.to for n in await deliver() if n.template == "team_completed"] == [alice.id, bob.id]
