"""API schemas for the festival API.

Pydantic models for request/response validation and serialization.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ============================================================================
# Common Schemas
# ============================================================================


class PriceSchema(BaseModel):
    """Price representation."""

    amount: int = Field(..., ge=0, description="Amount in smallest currency unit (paise)")
    currency: str = Field(default="INR", min_length=3, max_length=3, description="Currency code")


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(default_factory=dict, description="Additional error details")
    request_id: str | None = Field(default=None, description="Request ID for correlation")


# ============================================================================
# Event Schemas
# ============================================================================


class EventTypeEnum(str, Enum):
    NORMAL = "normal"
    MERCHANDISE = "merchandise"


class EventStatusEnum(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CLOSED = "closed"


class EligibilityEnum(str, Enum):
    ALL = "all"
    IIIT_ONLY = "iiit-only"
    NON_IIIT_ONLY = "non-iiit-only"


class CustomFieldSchema(BaseModel):
    """A question on the registration form."""

    field_id: str = Field(..., min_length=1, max_length=100)
    label: str = Field(..., min_length=1, max_length=200)
    field_type: str = Field(default="text", description="text, email, number, dropdown, ...")
    required: bool = False
    options: list[str] = Field(default_factory=list, description="Choices for dropdown fields")


class VariantCreateSchema(BaseModel):
    """A merchandise variant to create."""

    id: str = Field(..., min_length=1, max_length=64, description="Variant ID, unique within the event")
    name: str = Field(..., min_length=1, max_length=200)
    price: PriceSchema
    stock: int = Field(default=0, ge=0)
    size: str | None = None
    color: str | None = None


class VariantSchema(VariantCreateSchema):
    """A merchandise variant with its sales counter."""

    sold: int = Field(default=0, ge=0)


class EventCreateRequest(BaseModel):
    """Request to create an event."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    event_type: EventTypeEnum = EventTypeEnum.NORMAL
    status: EventStatusEnum = EventStatusEnum.DRAFT
    event_start_date: datetime
    event_end_date: datetime | None = None
    registration_deadline: datetime | None = None
    registration_limit: int = Field(default=100, ge=1)
    eligibility: EligibilityEnum = EligibilityEnum.ALL
    registration_fee: PriceSchema = Field(default_factory=lambda: PriceSchema(amount=0))
    custom_fields: list[CustomFieldSchema] = Field(default_factory=list)
    requires_payment_approval: bool = True
    variants: list[VariantCreateSchema] = Field(default_factory=list)
    purchase_limit: int = Field(default=5, ge=1)
    is_team_event: bool = False
    min_team_size: int = Field(default=2, ge=2)
    max_team_size: int = Field(default=4, ge=2)


class EventResponse(BaseModel):
    """Event as seen by the registration core."""

    id: str
    name: str
    description: str
    organizer_id: str
    event_type: EventTypeEnum
    status: EventStatusEnum
    event_start_date: datetime
    event_end_date: datetime | None = None
    registration_deadline: datetime | None = None
    registration_limit: int
    registration_count: int
    eligibility: EligibilityEnum
    registration_fee: PriceSchema
    custom_fields: list[CustomFieldSchema] = Field(default_factory=list)
    form_locked: bool
    requires_payment_approval: bool
    variants: list[VariantSchema] = Field(default_factory=list)
    purchase_limit: int
    is_team_event: bool
    min_team_size: int
    max_team_size: int
    created_at: datetime


# ============================================================================
# Registration Schemas
# ============================================================================


class RegistrationStatusEnum(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    ATTENDED = "attended"


class RegistrationTypeEnum(str, Enum):
    NORMAL = "normal"
    MERCHANDISE = "merchandise"


class PaymentStatusEnum(str, Enum):
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class FormResponseSchema(BaseModel):
    """Answer to one custom field."""

    field_id: str = Field(..., min_length=1)
    value: Any = None
    label: str = ""


class RegistrationCreateRequest(BaseModel):
    """Request to register for a normal event."""

    form_responses: list[FormResponseSchema] = Field(default_factory=list)


class PurchaseRequest(BaseModel):
    """Request to buy merchandise."""

    variant_id: str = Field(..., min_length=1)
    quantity: int = Field(default=1, description="Units to buy")


class ManualAttendRequest(BaseModel):
    """Request to check a participant in by hand."""

    reason: str | None = Field(default=None, max_length=500, description="Why the ticket was not scanned")


class ScanRequest(BaseModel):
    """Request to check a participant in from a scanned QR code."""

    event_id: str = Field(..., min_length=1, description="Event being checked in")
    qr_data: str | dict[str, Any] = Field(..., description="Decoded QR text or parsed payload")


class VariantDetailsSchema(BaseModel):
    """Variant snapshot taken at purchase time."""

    name: str
    size: str | None = None
    color: str | None = None
    price: PriceSchema


class AttendanceOverrideSchema(BaseModel):
    overridden_by: str
    reason: str
    overridden_at: datetime


class StatusChangeSchema(BaseModel):
    from_status: str | None = None
    to_status: str
    changed_at: datetime
    changed_by: str
    note: str | None = None


class RegistrationResponse(BaseModel):
    """Registration or merchandise purchase."""

    id: str
    ticket_id: str
    event_id: str
    participant_id: str
    registration_type: RegistrationTypeEnum
    status: RegistrationStatusEnum
    payment_status: PaymentStatusEnum
    form_responses: list[FormResponseSchema] = Field(default_factory=list)
    selected_variant_id: str | None = None
    quantity: int
    variant_details: VariantDetailsSchema | None = None
    total_amount: PriceSchema
    payment_proof_ref: str | None = None
    team_id: str | None = None
    attended: bool
    attended_at: datetime | None = None
    qr_code_data: str | None = None
    attendance_override: AttendanceOverrideSchema | None = None
    attempt: int
    status_history: list[StatusChangeSchema] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class RegistrationsListResponse(BaseModel):
    """List of registrations."""

    items: list[RegistrationResponse]
    total: int


class AttendanceSummaryResponse(BaseModel):
    """Check-in counts for an event."""

    event_id: str
    total: int = Field(..., description="Confirmed and attended registrations")
    attended: int
    not_attended: int


# ============================================================================
# Team Schemas
# ============================================================================


class TeamCreateRequest(BaseModel):
    """Request to create a team."""

    team_name: str = Field(..., min_length=1, max_length=100)
    team_size: int = Field(..., description="Total team size including the leader")


class TeamMemberSchema(BaseModel):
    user_id: str
    status: str
    invited_at: datetime
    responded_at: datetime | None = None


class TeamResponse(BaseModel):
    """Team with its members."""

    id: str
    event_id: str
    team_name: str
    team_leader_id: str
    team_size: int
    invite_code: str
    members: list[TeamMemberSchema] = Field(default_factory=list)
    is_complete: bool
    registration_id: str | None = None
    created_at: datetime
    registrations: list[RegistrationResponse] = Field(
        default_factory=list,
        description="Registrations created when this request completed the team",
    )


class TeamsListResponse(BaseModel):
    """List of teams."""

    items: list[TeamResponse]
    total: int
