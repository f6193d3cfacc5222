"""Team API endpoints.

Provides endpoints for team formation:
- POST /events/{id}/teams - create a team
- POST /teams/join/{code} - join by invite code
- GET /teams/mine - the caller's teams
- GET /teams/{id} - get a team
- POST /teams/{id}/complete - register members a failed completion missed
- POST /teams/{id}/leave - leave a team
- DELETE /teams/{id} - delete a team
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status

from festival.api.converters import team_to_response
from festival.api.dependencies import get_request_id, raise_for_result, require_actor, schedule_notifications
from festival.api.schemas import ErrorResponse, TeamCreateRequest, TeamResponse, TeamsListResponse
from festival.application.team_service import TeamService, get_team_service
from festival.domain.value_objects import Actor

router = APIRouter(tags=["Teams"], dependencies=[Depends(schedule_notifications)])


def get_service(request: Request) -> TeamService:
    """Get team service with request ID."""
    return get_team_service(request_id=get_request_id(request))


ActorDep = Annotated[Actor, Depends(require_actor)]
ServiceDep = Annotated[TeamService, Depends(get_service)]


@router.post(
    "/events/{event_id}/teams",
    response_model=TeamResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Not a team event or invalid size"},
        404: {"model": ErrorResponse, "description": "Event not found"},
        409: {"model": ErrorResponse, "description": "Caller already has a team"},
    },
)
async def create_team(
    event_id: str,
    body: TeamCreateRequest,
    actor: ActorDep,
    service: ServiceDep,
) -> TeamResponse:
    """Create a team led by the caller."""
    result = await service.create_team(event_id, actor, body.team_name, body.team_size)
    raise_for_result(result)
    return team_to_response(result.team)


@router.post(
    "/teams/join/{invite_code}",
    response_model=TeamResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Invalid invite code"},
        409: {"model": ErrorResponse, "description": "Team complete or caller already in a team"},
    },
)
async def join_team(invite_code: str, actor: ActorDep, service: ServiceDep) -> TeamResponse:
    """Join a team. Filling the last slot registers the whole team."""
    result = await service.join_team(invite_code, actor)
    raise_for_result(result)
    return team_to_response(result.team, result.registrations)


@router.get("/teams/mine", response_model=TeamsListResponse)
async def list_my_teams(actor: ActorDep, service: ServiceDep) -> TeamsListResponse:
    """List teams the caller leads or belongs to."""
    result = await service.list_my_teams(actor)
    raise_for_result(result)
    items = [team_to_response(t) for t in result.teams]
    return TeamsListResponse(items=items, total=len(items))


@router.get(
    "/teams/{team_id}",
    response_model=TeamResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Not a member or organizer"},
        404: {"model": ErrorResponse, "description": "Team not found"},
    },
)
async def get_team(team_id: str, actor: ActorDep, service: ServiceDep) -> TeamResponse:
    """Get a team."""
    result = await service.get_team(team_id, actor)
    raise_for_result(result)
    return team_to_response(result.team)


@router.post(
    "/teams/{team_id}/complete",
    response_model=TeamResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Not a member or organizer"},
        404: {"model": ErrorResponse, "description": "Team not found"},
        409: {"model": ErrorResponse, "description": "Team still has open slots"},
    },
)
async def complete_team(team_id: str, actor: ActorDep, service: ServiceDep) -> TeamResponse:
    """Register every member of a complete team who is not registered yet."""
    result = await service.complete_team(team_id, actor)
    raise_for_result(result)
    return team_to_response(result.team, result.registrations)


@router.post(
    "/teams/{team_id}/leave",
    response_model=TeamResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Leader cannot leave"},
        403: {"model": ErrorResponse, "description": "Not a member"},
        409: {"model": ErrorResponse, "description": "Team already complete"},
    },
)
async def leave_team(team_id: str, actor: ActorDep, service: ServiceDep) -> TeamResponse:
    """Leave a team before it is complete."""
    result = await service.leave_team(team_id, actor)
    raise_for_result(result)
    return team_to_response(result.team)


@router.delete(
    "/teams/{team_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        403: {"model": ErrorResponse, "description": "Not the team leader"},
        409: {"model": ErrorResponse, "description": "Team already complete"},
    },
)
async def delete_team(team_id: str, actor: ActorDep, service: ServiceDep) -> Response:
    """Delete a team before it is complete."""
    result = await service.delete_team(team_id, actor)
    raise_for_result(result)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
