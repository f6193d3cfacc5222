"""Payment approval API endpoints.

Provides endpoints for the payment approval workflow:
- POST /registrations/{id}/payment-proof - upload a payment screenshot
- POST /registrations/{id}/approve - approve the payment
- POST /registrations/{id}/reject - reject the payment
- GET /events/{id}/payments/pending - registrations awaiting a decision
"""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Request, UploadFile

from festival.api.converters import registration_to_response
from festival.api.dependencies import get_request_id, raise_for_result, require_actor, schedule_notifications
from festival.api.schemas import ErrorResponse, RegistrationResponse, RegistrationsListResponse
from festival.application.payment_service import PaymentService, get_payment_service
from festival.domain.value_objects import Actor

router = APIRouter(tags=["Payments"], dependencies=[Depends(schedule_notifications)])


def get_service(request: Request) -> PaymentService:
    """Get payment service with request ID."""
    return get_payment_service(request_id=get_request_id(request))


ActorDep = Annotated[Actor, Depends(require_actor)]
ServiceDep = Annotated[PaymentService, Depends(get_service)]

DECISION_RESPONSES = {
    403: {"model": ErrorResponse, "description": "Not the event organizer"},
    404: {"model": ErrorResponse, "description": "Registration not found"},
    409: {"model": ErrorResponse, "description": "Payment is not pending"},
}


@router.post(
    "/registrations/{registration_id}/payment-proof",
    response_model=RegistrationResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Empty or oversized proof"},
        403: {"model": ErrorResponse, "description": "Not the registrant"},
        409: {"model": ErrorResponse, "description": "Registration is not pending"},
    },
)
async def upload_payment_proof(
    registration_id: str,
    actor: ActorDep,
    service: ServiceDep,
    file: Annotated[UploadFile, File(description="Payment screenshot")],
) -> RegistrationResponse:
    """Upload payment proof for a pending registration."""
    content = await file.read()
    result = await service.upload_proof(registration_id, actor, content, file.filename or "proof")
    raise_for_result(result)
    return registration_to_response(result.registration)


@router.post(
    "/registrations/{registration_id}/approve",
    response_model=RegistrationResponse,
    responses=DECISION_RESPONSES,
)
async def approve_payment(
    registration_id: str,
    actor: ActorDep,
    service: ServiceDep,
) -> RegistrationResponse:
    """Approve a pending payment and issue the ticket."""
    result = await service.approve(registration_id, actor)
    raise_for_result(result)
    return registration_to_response(result.registration)


@router.post(
    "/registrations/{registration_id}/reject",
    response_model=RegistrationResponse,
    responses=DECISION_RESPONSES,
)
async def reject_payment(
    registration_id: str,
    actor: ActorDep,
    service: ServiceDep,
) -> RegistrationResponse:
    """Reject a pending payment."""
    result = await service.reject(registration_id, actor)
    raise_for_result(result)
    return registration_to_response(result.registration)


@router.get(
    "/events/{event_id}/payments/pending",
    response_model=RegistrationsListResponse,
    responses={403: {"model": ErrorResponse, "description": "Not the event organizer"}},
)
async def list_pending_payments(
    event_id: str,
    actor: ActorDep,
    service: ServiceDep,
) -> RegistrationsListResponse:
    """List registrations awaiting a payment decision."""
    result = await service.list_pending_payments(event_id, actor)
    raise_for_result(result)
    items = [registration_to_response(r) for r in result.registrations]
    return RegistrationsListResponse(items=items, total=len(items))
