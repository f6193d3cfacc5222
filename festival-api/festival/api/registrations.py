"""Registration API endpoints.

Provides endpoints for the registration lifecycle:
- POST /events/{id}/registrations - register for a normal event
- POST /events/{id}/purchases - buy merchandise
- GET /registrations/mine - the caller's registrations
- GET /registrations/{id} - get a registration
- POST /registrations/{id}/cancel - cancel
- POST /registrations/{id}/attend - check in
- POST /registrations/{id}/manual-attend - check in by hand with a reason
- POST /registrations/scan - check in from a scanned ticket
- GET /events/{id}/registrations - organizer view of an event
- GET /events/{id}/attendance - check-in counts
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from festival.api.converters import form_responses_from_schema, registration_to_response
from festival.api.dependencies import get_request_id, raise_for_result, require_actor, schedule_notifications
from festival.api.schemas import (
    AttendanceSummaryResponse,
    ErrorResponse,
    ManualAttendRequest,
    PurchaseRequest,
    RegistrationCreateRequest,
    RegistrationResponse,
    RegistrationsListResponse,
    RegistrationStatusEnum,
    ScanRequest,
)
from festival.application.registration_service import RegistrationService, get_registration_service
from festival.domain.state_machines import RegistrationStatus
from festival.domain.value_objects import Actor

router = APIRouter(tags=["Registrations"], dependencies=[Depends(schedule_notifications)])


def get_service(request: Request) -> RegistrationService:
    """Get registration service with request ID."""
    return get_registration_service(request_id=get_request_id(request))


ActorDep = Annotated[Actor, Depends(require_actor)]
ServiceDep = Annotated[RegistrationService, Depends(get_service)]


# ============================================================================
# Register / Purchase
# ============================================================================


@router.post(
    "/events/{event_id}/registrations",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Event closed or form incomplete"},
        403: {"model": ErrorResponse, "description": "Not eligible"},
        404: {"model": ErrorResponse, "description": "Event not found"},
        409: {"model": ErrorResponse, "description": "Event full or already registered"},
    },
)
async def register_for_event(
    event_id: str,
    body: RegistrationCreateRequest,
    actor: ActorDep,
    service: ServiceDep,
) -> RegistrationResponse:
    """Register the caller for a normal event."""
    result = await service.register_for_event(
        event_id,
        actor,
        form_responses_from_schema(body.form_responses),
    )
    raise_for_result(result)
    return registration_to_response(result.registration)


@router.post(
    "/events/{event_id}/purchases",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Event closed or invalid quantity"},
        404: {"model": ErrorResponse, "description": "Event or variant not found"},
        409: {"model": ErrorResponse, "description": "Out of stock or purchase limit reached"},
    },
)
async def purchase_merchandise(
    event_id: str,
    body: PurchaseRequest,
    actor: ActorDep,
    service: ServiceDep,
) -> RegistrationResponse:
    """Buy units of a merchandise variant."""
    result = await service.purchase_merchandise(event_id, actor, body.variant_id, body.quantity)
    raise_for_result(result)
    return registration_to_response(result.registration)


# ============================================================================
# Participant Views
# ============================================================================


@router.get("/registrations/mine", response_model=RegistrationsListResponse)
async def list_my_registrations(actor: ActorDep, service: ServiceDep) -> RegistrationsListResponse:
    """List the caller's registrations, newest first."""
    result = await service.list_participant_registrations(actor)
    raise_for_result(result)
    items = [registration_to_response(r) for r in result.registrations]
    return RegistrationsListResponse(items=items, total=len(items))


@router.post(
    "/registrations/scan",
    response_model=RegistrationResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed ticket or wrong event"},
        403: {"model": ErrorResponse, "description": "Not the event organizer"},
        404: {"model": ErrorResponse, "description": "Ticket not found"},
        409: {"model": ErrorResponse, "description": "Already attended or not confirmed"},
    },
)
async def scan_ticket(body: ScanRequest, actor: ActorDep, service: ServiceDep) -> RegistrationResponse:
    """Check a participant in from a scanned QR code."""
    result = await service.scan_ticket(body.qr_data, body.event_id, actor)
    raise_for_result(result)
    return registration_to_response(result.registration)


@router.get(
    "/registrations/{registration_id}",
    response_model=RegistrationResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Not the registrant or organizer"},
        404: {"model": ErrorResponse, "description": "Registration not found"},
    },
)
async def get_registration(
    registration_id: str,
    actor: ActorDep,
    service: ServiceDep,
) -> RegistrationResponse:
    """Get a registration."""
    result = await service.get_registration(registration_id, actor)
    raise_for_result(result)
    return registration_to_response(result.registration)


@router.post(
    "/registrations/{registration_id}/cancel",
    response_model=RegistrationResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Event already started"},
        403: {"model": ErrorResponse, "description": "Not the registrant"},
        404: {"model": ErrorResponse, "description": "Registration not found"},
        409: {"model": ErrorResponse, "description": "Already cancelled or attended"},
    },
)
async def cancel_registration(
    registration_id: str,
    actor: ActorDep,
    service: ServiceDep,
) -> RegistrationResponse:
    """Cancel a registration or purchase."""
    result = await service.cancel(registration_id, actor)
    raise_for_result(result)
    return registration_to_response(result.registration)


# ============================================================================
# Attendance
# ============================================================================


@router.post(
    "/registrations/{registration_id}/attend",
    response_model=RegistrationResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Event not started"},
        403: {"model": ErrorResponse, "description": "Not the event organizer"},
        409: {"model": ErrorResponse, "description": "Already attended or not confirmed"},
    },
)
async def mark_attended(
    registration_id: str,
    actor: ActorDep,
    service: ServiceDep,
) -> RegistrationResponse:
    """Check a participant in."""
    result = await service.mark_attended(registration_id, actor)
    raise_for_result(result)
    return registration_to_response(result.registration)


@router.post(
    "/registrations/{registration_id}/manual-attend",
    response_model=RegistrationResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Event not started"},
        403: {"model": ErrorResponse, "description": "Not the event organizer"},
        409: {"model": ErrorResponse, "description": "Already attended or not confirmed"},
    },
)
async def manual_attend(
    registration_id: str,
    body: ManualAttendRequest,
    actor: ActorDep,
    service: ServiceDep,
) -> RegistrationResponse:
    """Check a participant in by hand, keeping an audit record."""
    result = await service.manual_override(registration_id, actor, body.reason)
    raise_for_result(result)
    return registration_to_response(result.registration)


# ============================================================================
# Organizer Views
# ============================================================================


@router.get(
    "/events/{event_id}/registrations",
    response_model=RegistrationsListResponse,
    responses={403: {"model": ErrorResponse, "description": "Not the event organizer"}},
)
async def list_event_registrations(
    event_id: str,
    actor: ActorDep,
    service: ServiceDep,
    status_filter: Annotated[RegistrationStatusEnum | None, Query(alias="status")] = None,
) -> RegistrationsListResponse:
    """List an event's registrations, oldest first."""
    result = await service.list_event_registrations(
        event_id,
        actor,
        RegistrationStatus(status_filter.value) if status_filter else None,
    )
    raise_for_result(result)
    items = [registration_to_response(r) for r in result.registrations]
    return RegistrationsListResponse(items=items, total=len(items))


@router.get(
    "/events/{event_id}/attendance",
    response_model=AttendanceSummaryResponse,
    responses={403: {"model": ErrorResponse, "description": "Not the event organizer"}},
)
async def attendance_summary(
    event_id: str,
    actor: ActorDep,
    service: ServiceDep,
) -> AttendanceSummaryResponse:
    """Count checked-in and missing participants."""
    result = await service.attendance_summary(event_id, actor)
    raise_for_result(result)
    return AttendanceSummaryResponse(**result.summary.to_dict())
