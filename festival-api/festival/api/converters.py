"""Converters between domain entities and API schemas."""

from datetime import datetime, timezone
from typing import Any

from festival.api.schemas import (
    AttendanceOverrideSchema,
    CustomFieldSchema,
    EventCreateRequest,
    EventResponse,
    FormResponseSchema,
    PriceSchema,
    RegistrationResponse,
    StatusChangeSchema,
    TeamMemberSchema,
    TeamResponse,
    VariantDetailsSchema,
    VariantSchema,
)
from festival.domain.entities import Event, Registration, Team, Variant
from festival.domain.value_objects import (
    CustomField,
    Eligibility,
    EventStatus,
    EventType,
    FormResponse,
    Money,
)


def _as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes from clients as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def price_to_schema(money: Money) -> PriceSchema:
    return PriceSchema(amount=money.amount_minor, currency=money.currency)


def event_attributes(request: EventCreateRequest) -> dict[str, Any]:
    """Turn an event creation request into Event constructor arguments."""
    return {
        "name": request.name,
        "description": request.description,
        "event_type": EventType(request.event_type.value),
        "status": EventStatus(request.status.value),
        "event_start_date": _as_utc(request.event_start_date),
        "event_end_date": _as_utc(request.event_end_date),
        "registration_deadline": _as_utc(request.registration_deadline),
        "registration_limit": request.registration_limit,
        "eligibility": Eligibility(request.eligibility.value),
        "registration_fee": Money(
            amount_minor=request.registration_fee.amount,
            currency=request.registration_fee.currency,
        ),
        "custom_fields": [
            CustomField(
                field_id=f.field_id,
                label=f.label,
                field_type=f.field_type,
                required=f.required,
                options=tuple(f.options),
            )
            for f in request.custom_fields
        ],
        "requires_payment_approval": request.requires_payment_approval,
        "variants": [
            Variant(
                id=v.id,
                name=v.name,
                price=Money(amount_minor=v.price.amount, currency=v.price.currency),
                stock=v.stock,
                size=v.size,
                color=v.color,
            )
            for v in request.variants
        ],
        "purchase_limit": request.purchase_limit,
        "is_team_event": request.is_team_event,
        "min_team_size": request.min_team_size,
        "max_team_size": request.max_team_size,
    }


def event_to_response(event: Event) -> EventResponse:
    """Convert Event entity to response schema."""
    return EventResponse(
        id=event.id,
        name=event.name,
        description=event.description,
        organizer_id=event.organizer_id,
        event_type=event.event_type.value,
        status=event.status.value,
        event_start_date=event.event_start_date,
        event_end_date=event.event_end_date,
        registration_deadline=event.registration_deadline,
        registration_limit=event.registration_limit,
        registration_count=event.registration_count,
        eligibility=event.eligibility.value,
        registration_fee=price_to_schema(event.registration_fee),
        custom_fields=[
            CustomFieldSchema(
                field_id=f.field_id,
                label=f.label,
                field_type=f.field_type,
                required=f.required,
                options=list(f.options),
            )
            for f in event.custom_fields
        ],
        form_locked=event.form_locked,
        requires_payment_approval=event.requires_payment_approval,
        variants=[
            VariantSchema(
                id=v.id,
                name=v.name,
                price=price_to_schema(v.price),
                stock=v.stock,
                sold=v.sold,
                size=v.size,
                color=v.color,
            )
            for v in event.variants
        ],
        purchase_limit=event.purchase_limit,
        is_team_event=event.is_team_event,
        min_team_size=event.min_team_size,
        max_team_size=event.max_team_size,
        created_at=event.created_at,
    )


def form_responses_from_schema(responses: list[FormResponseSchema]) -> list[FormResponse]:
    return [FormResponse(field_id=r.field_id, value=r.value, label=r.label) for r in responses]


def registration_to_response(registration: Registration) -> RegistrationResponse:
    """Convert Registration entity to response schema."""
    details = registration.variant_details
    override = registration.attendance_override
    return RegistrationResponse(
        id=registration.id,
        ticket_id=registration.ticket_id,
        event_id=registration.event_id,
        participant_id=registration.participant_id,
        registration_type=registration.registration_type.value,
        status=registration.status.value,
        payment_status=registration.payment_status.value,
        form_responses=[FormResponseSchema(**r.to_dict()) for r in registration.form_responses],
        selected_variant_id=registration.selected_variant_id,
        quantity=registration.quantity,
        variant_details=(
            VariantDetailsSchema(
                name=details.name,
                size=details.size,
                color=details.color,
                price=price_to_schema(details.price),
            )
            if details
            else None
        ),
        total_amount=price_to_schema(registration.total_amount),
        payment_proof_ref=registration.payment_proof_ref,
        team_id=registration.team_id,
        attended=registration.attended,
        attended_at=registration.attended_at,
        qr_code_data=registration.qr_code_data,
        attendance_override=(
            AttendanceOverrideSchema(
                overridden_by=override.overridden_by,
                reason=override.reason,
                overridden_at=override.overridden_at,
            )
            if override
            else None
        ),
        attempt=registration.attempt,
        status_history=[
            StatusChangeSchema(
                from_status=c.from_status,
                to_status=c.to_status,
                changed_at=c.changed_at,
                changed_by=c.changed_by,
                note=c.note,
            )
            for c in registration.status_history
        ],
        created_at=registration.created_at,
        updated_at=registration.updated_at,
    )


def team_to_response(team: Team, registrations: list[Registration] | None = None) -> TeamResponse:
    """Convert Team entity to response schema."""
    return TeamResponse(
        id=team.id,
        event_id=team.event_id,
        team_name=team.team_name,
        team_leader_id=team.team_leader_id,
        team_size=team.team_size,
        invite_code=team.invite_code,
        members=[
            TeamMemberSchema(
                user_id=m.user_id,
                status=m.status.value,
                invited_at=m.invited_at,
                responded_at=m.responded_at,
            )
            for m in team.members
        ],
        is_complete=team.is_complete,
        registration_id=team.registration_id,
        created_at=team.created_at,
        registrations=[registration_to_response(r) for r in registrations or []],
    )
