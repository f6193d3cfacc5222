"""Team formation application service.

A leader creates a team and shares its invite code. Members join until
every slot is taken; the join that fills the last slot completes the
team, and completion registers the leader and every member for the
event with their own ticket.
"""

import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from festival.application.notifications import NotificationDispatcher, get_notification_dispatcher
from festival.application.participants import ParticipantDirectory, get_participant_directory
from festival.application.results import ServiceResult
from festival.application.ticket_issuer import TicketIssuer
from festival.domain.base import utc_now
from festival.domain.entities import Event, Registration, Team
from festival.domain.exceptions import (
    AlreadyHasTeamError,
    AlreadyRegisteredError,
    DomainError,
    DuplicateInviteCodeError,
    EventNotFoundError,
    InvalidTeamSizeError,
    InviteCodeAllocationError,
    NotTeamEventError,
    NotTeamMemberError,
    TeamCompleteError,
    TeamIncompleteError,
    TeamNotFoundError,
)
from festival.domain.value_objects import Actor
from festival.infrastructure.config import settings
from festival.infrastructure.stores import (
    EventStore,
    RegistrationStore,
    TeamStore,
    get_event_store,
    get_registration_store,
    get_team_store,
)

logger = structlog.get_logger()


@dataclass
class TeamResult(ServiceResult):
    """Result of a team operation.

    ``registrations`` lists the registrations created when the
    operation completed the team.
    """

    team: Team | None = None
    registrations: list[Registration] = field(default_factory=list)


@dataclass
class TeamListResult(ServiceResult):
    """Result of listing teams."""

    teams: list[Team] = field(default_factory=list)


def generate_invite_code() -> str:
    """Random 8-character uppercase hex invite code."""
    return secrets.token_hex(4).upper()


class TeamService:
    """Application service for team formation."""

    def __init__(
        self,
        event_store: EventStore | None = None,
        registration_store: RegistrationStore | None = None,
        team_store: TeamStore | None = None,
        issuer: TicketIssuer | None = None,
        dispatcher: NotificationDispatcher | None = None,
        participants: ParticipantDirectory | None = None,
        code_factory: Callable[[], str] = generate_invite_code,
        clock: Callable[[], datetime] = utc_now,
        request_id: str | None = None,
    ) -> None:
        """Initialize service.

        Args:
            event_store: Event store.
            registration_store: Registration store.
            team_store: Team store.
            issuer: Ticket issuer for member tickets.
            dispatcher: Notification dispatcher.
            participants: Directory used for names printed on tickets.
            code_factory: Invite code generator.
            clock: Source of the request time.
            request_id: Request ID for correlation.
        """
        self.event_store = event_store or get_event_store()
        self.registration_store = registration_store or get_registration_store()
        self.team_store = team_store or get_team_store()
        self.issuer = issuer or TicketIssuer(clock=clock, request_id=request_id)
        self.dispatcher = dispatcher or get_notification_dispatcher(request_id=request_id)
        self.participants = participants or get_participant_directory()
        self._code_factory = code_factory
        self._clock = clock
        self.request_id = request_id

    async def _require_event(self, event_id: str) -> Event:
        event = await self.event_store.get(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    async def _require_team(self, team_id: str) -> Team:
        team = await self.team_store.get(team_id)
        if team is None:
            raise TeamNotFoundError(team_id)
        return team

    # -------------------------------------------------------------------------
    # Create / Join
    # -------------------------------------------------------------------------

    async def create_team(
        self,
        event_id: str,
        actor: Actor,
        team_name: str,
        team_size: int,
    ) -> TeamResult:
        """Create a team led by the actor.

        Args:
            event_id: Team event.
            actor: Team leader.
            team_name: Display name.
            team_size: Total size including the leader.

        Returns:
            TeamResult with the new team and its invite code.
        """
        now = self._clock()
        try:
            event = await self._require_event(event_id)
            if not event.is_team_event:
                raise NotTeamEventError(event.id)
            if not event.min_team_size <= team_size <= event.max_team_size:
                raise InvalidTeamSizeError(team_size, event.min_team_size, event.max_team_size)
            if await self.team_store.find_for_user(event.id, actor.id):
                raise AlreadyHasTeamError(event.id, actor.id)

            team = await self._add_with_fresh_code(event, actor, team_name.strip(), team_size, now)

        except DomainError as e:
            logger.info(
                "Team creation refused",
                event_id=event_id,
                leader_id=actor.id,
                error_code=e.code,
                request_id=self.request_id,
            )
            return TeamResult.failure(e)

        logger.info(
            "Team created",
            team_id=team.id,
            event_id=event_id,
            leader_id=actor.id,
            team_size=team_size,
            request_id=self.request_id,
        )
        self.dispatcher.publish(team.collect_events())
        return TeamResult(team=team)

    async def _add_with_fresh_code(
        self,
        event: Event,
        actor: Actor,
        team_name: str,
        team_size: int,
        now: datetime,
    ) -> Team:
        max_attempts = settings.invite_code_max_attempts
        for attempt in range(1, max_attempts + 1):
            team = Team.create(
                event_id=event.id,
                team_name=team_name,
                leader_id=actor.id,
                team_size=team_size,
                invite_code=self._code_factory(),
                now=now,
            )
            try:
                return await self.team_store.add(team)
            except DuplicateInviteCodeError:
                logger.warning(
                    "Invite code collision",
                    invite_code=team.invite_code,
                    attempt=attempt,
                    request_id=self.request_id,
                )
        raise InviteCodeAllocationError(max_attempts)

    async def join_team(self, invite_code: str, actor: Actor) -> TeamResult:
        """Join a team by invite code.

        The join that fills the last slot also completes the team. When
        the team is already complete, a join by its leader or one of its
        members runs completion again, which registers whoever an
        earlier run missed.

        Args:
            invite_code: Code shared by the leader.
            actor: Joining participant.

        Returns:
            TeamResult with the team and, on completion, the created
            registrations.
        """
        code = invite_code.strip().upper()
        try:
            team = await self.team_store.join(code, actor.id)
        except DomainError as e:
            if isinstance(e, TeamCompleteError):
                team = await self.team_store.get_by_invite_code(code)
                if team is not None and team.is_complete and team.involves(actor.id):
                    logger.info(
                        "Retrying team completion",
                        team_id=team.id,
                        user_id=actor.id,
                        request_id=self.request_id,
                    )
                    return await self.complete_team(team.id, actor)
            logger.info(
                "Team join refused",
                invite_code=code,
                user_id=actor.id,
                error_code=e.code,
                request_id=self.request_id,
            )
            return TeamResult.failure(e)

        logger.info(
            "Team member joined",
            team_id=team.id,
            user_id=actor.id,
            accepted=team.accepted_count,
            is_complete=team.is_complete,
            request_id=self.request_id,
        )
        self.dispatcher.publish(team.collect_events())

        if team.is_complete:
            return await self.complete_team(team.id)
        return TeamResult(team=team)

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    async def complete_team(self, team_id: str, actor: Actor | None = None) -> TeamResult:
        """Register every member of a complete team.

        Safe to run more than once: participants who already hold an
        active registration for the event are skipped, including those
        registered by a concurrent run. A run that fails partway keeps
        the registrations it created, and the next run picks up the rest.

        Args:
            team_id: Complete team.
            actor: Caller asking for the run. Must be in the team or
                manage its event. None for internal runs.

        Returns:
            TeamResult with the team and the registrations created by
            this run.
        """
        now = self._clock()
        created: list[Registration] = []
        try:
            team = await self._require_team(team_id)
            event = await self._require_event(team.event_id)
            if actor is not None and not team.involves(actor.id) and not actor.manages(event.organizer_id):
                raise NotTeamMemberError(team.id, actor.id)
            if not team.is_complete:
                raise TeamIncompleteError(team.id, team.open_slots)

            leader_registration_id = None
            for user_id in team.participant_ids:
                registration = await self.registration_store.find_active(event.id, user_id)
                if registration is None:
                    registration = await self._register_member(team, event, user_id, now)
                    if registration is not None:
                        created.append(registration)
                if user_id == team.team_leader_id and registration is not None:
                    leader_registration_id = registration.id

            if leader_registration_id and team.registration_id is None:
                team = await self.team_store.link_registration(team.id, leader_registration_id)

        except DomainError as e:
            logger.error(
                "Team completion failed",
                team_id=team_id,
                created=len(created),
                error_code=e.code,
                request_id=self.request_id,
            )
            for registration in created:
                self.dispatcher.publish(registration.collect_events())
            return TeamResult.failure(e)

        logger.info(
            "Team completed",
            team_id=team_id,
            event_id=team.event_id,
            registrations_created=len(created),
            request_id=self.request_id,
        )
        for registration in created:
            self.dispatcher.publish(registration.collect_events())
        return TeamResult(team=team, registrations=created)

    async def _register_member(
        self,
        team: Team,
        event: Event,
        user_id: str,
        now: datetime,
    ) -> Registration | None:
        participant_name = self.participants.display_name(user_id)
        attempt = await self.registration_store.latest_attempt(event.id, user_id) + 1

        async def insert(ticket_id: str) -> Registration:
            registration = Registration.create(
                ticket_id=ticket_id,
                event_id=event.id,
                participant_id=user_id,
                requires_payment=False,
                team_id=team.id,
                attempt=attempt,
                now=now,
            )
            registration.attach_qr(self.issuer.issue_qr(registration, event, participant_name))
            return await self.registration_store.add(registration)

        try:
            registration = await self.issuer.allocate(insert)
        except AlreadyRegisteredError:
            logger.info(
                "Team member already registered",
                team_id=team.id,
                user_id=user_id,
                request_id=self.request_id,
            )
            return await self.registration_store.find_active(event.id, user_id)

        await self.event_store.adjust_registration_count(event.id, 1, lock_form=True)
        return registration

    # -------------------------------------------------------------------------
    # Leave / Delete
    # -------------------------------------------------------------------------

    async def leave_team(self, team_id: str, actor: Actor) -> TeamResult:
        """Leave a team before it is complete."""
        try:
            team = await self.team_store.leave(team_id, actor.id)
        except DomainError as e:
            logger.info(
                "Team leave refused",
                team_id=team_id,
                user_id=actor.id,
                error_code=e.code,
                request_id=self.request_id,
            )
            return TeamResult.failure(e)

        logger.info("Team member left", team_id=team_id, user_id=actor.id, request_id=self.request_id)
        self.dispatcher.publish(team.collect_events())
        return TeamResult(team=team)

    async def delete_team(self, team_id: str, actor: Actor) -> TeamResult:
        """Delete a team. Only its leader may, and only before completion."""
        try:
            await self.team_store.delete(team_id, actor.id)
        except DomainError as e:
            logger.info(
                "Team deletion refused",
                team_id=team_id,
                user_id=actor.id,
                error_code=e.code,
                request_id=self.request_id,
            )
            return TeamResult.failure(e)

        logger.info("Team deleted", team_id=team_id, leader_id=actor.id, request_id=self.request_id)
        return TeamResult()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_team(self, team_id: str, actor: Actor) -> TeamResult:
        """Get a team visible to its leader, members and the event organizer."""
        try:
            team = await self._require_team(team_id)
            if not team.involves(actor.id):
                event = await self._require_event(team.event_id)
                if not actor.manages(event.organizer_id):
                    raise NotTeamMemberError(team.id, actor.id)
        except DomainError as e:
            return TeamResult.failure(e)
        return TeamResult(team=team)

    async def list_my_teams(self, actor: Actor) -> TeamListResult:
        """List teams the actor leads or belongs to."""
        teams = await self.team_store.list_for_user(actor.id)
        return TeamListResult(teams=teams)


def get_team_service(request_id: str | None = None) -> TeamService:
    """Get team service instance."""
    return TeamService(request_id=request_id)
