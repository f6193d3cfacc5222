"""SQLAlchemy models for database tables.

Provides ORM models for events, merchandise variants, inventory
reservations, registrations and teams, plus conversion to and from the
domain entities.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from festival.domain.entities import Event, Registration, Reservation, Team, TeamMember, Variant
from festival.domain.state_machines import (
    PaymentStatus,
    RegistrationStatus,
    ReservationStatus,
    TeamMemberStatus,
)
from festival.domain.value_objects import (
    AttendanceOverride,
    CustomField,
    Eligibility,
    EventStatus,
    EventType,
    FormResponse,
    Money,
    RegistrationType,
    StatusChange,
    VariantDetails,
)
from festival.infrastructure.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")

ACTIVE_NORMAL_REGISTRATION = "registration_type = 'normal' AND status NOT IN ('cancelled', 'rejected')"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that comes back aware on every backend.

    SQLite drops tzinfo on the way in and out; values are normalized to
    UTC before binding and tagged as UTC after loading.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


# ============================================================================
# Event Models
# ============================================================================


class EventModel(Base):
    """Event model for database persistence.

    Registration services mutate only ``registration_count`` and
    ``form_locked`` on this table, through conditional updates.
    """

    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("registration_count >= 0", name="ck_events_registration_count"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    organizer_id = Column(String(100), nullable=False, index=True)
    event_type = Column(String(20), nullable=False, default="normal")
    status = Column(String(20), nullable=False, default="draft", index=True)
    eligibility = Column(String(20), nullable=False, default="all")

    # Schedule
    event_start_date = Column(UTCDateTime(), nullable=False)
    event_end_date = Column(UTCDateTime(), nullable=True)
    registration_deadline = Column(UTCDateTime(), nullable=True)

    # Capacity and fees
    registration_limit = Column(Integer, nullable=False, default=100)
    registration_count = Column(Integer, nullable=False, default=0)
    registration_fee_minor = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")

    # Form builder
    custom_fields = Column(JSONType, nullable=False, default=list)
    form_locked = Column(Boolean, nullable=False, default=False)

    # Merchandise
    requires_payment_approval = Column(Boolean, nullable=False, default=True)
    purchase_limit = Column(Integer, nullable=False, default=5)

    # Teams
    is_team_event = Column(Boolean, nullable=False, default=False)
    min_team_size = Column(Integer, nullable=False, default=2)
    max_team_size = Column(Integer, nullable=False, default=4)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime(), nullable=False, default=_utcnow, onupdate=_utcnow)

    # Relationships
    variants = relationship(
        "VariantModel",
        back_populates="event",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="VariantModel.position",
    )

    @classmethod
    def from_entity(cls, event: Event) -> "EventModel":
        """Build a row for a new event."""
        return cls(
            id=event.id,
            name=event.name,
            description=event.description,
            organizer_id=event.organizer_id,
            event_type=event.event_type.value,
            status=event.status.value,
            eligibility=event.eligibility.value,
            event_start_date=event.event_start_date,
            event_end_date=event.event_end_date,
            registration_deadline=event.registration_deadline,
            registration_limit=event.registration_limit,
            registration_count=event.registration_count,
            registration_fee_minor=event.registration_fee.amount_minor,
            currency=event.registration_fee.currency,
            custom_fields=[
                {
                    "field_id": f.field_id,
                    "label": f.label,
                    "field_type": f.field_type,
                    "required": f.required,
                    "options": list(f.options),
                }
                for f in event.custom_fields
            ],
            form_locked=event.form_locked,
            requires_payment_approval=event.requires_payment_approval,
            purchase_limit=event.purchase_limit,
            is_team_event=event.is_team_event,
            min_team_size=event.min_team_size,
            max_team_size=event.max_team_size,
            version=event.version,
            created_at=event.created_at,
            updated_at=event.updated_at,
            variants=[
                VariantModel.from_entity(event.id, variant, position)
                for position, variant in enumerate(event.variants)
            ],
        )

    def to_entity(self) -> Event:
        """Convert to the domain aggregate."""
        return Event(
            id=self.id,
            name=self.name,
            description=self.description or "",
            organizer_id=self.organizer_id,
            event_type=EventType(self.event_type),
            status=EventStatus(self.status),
            eligibility=Eligibility(self.eligibility),
            event_start_date=self.event_start_date,
            event_end_date=self.event_end_date,
            registration_deadline=self.registration_deadline,
            registration_limit=self.registration_limit,
            registration_count=self.registration_count,
            registration_fee=Money(amount_minor=self.registration_fee_minor, currency=self.currency),
            custom_fields=[
                CustomField(
                    field_id=f["field_id"],
                    label=f["label"],
                    field_type=f.get("field_type", "text"),
                    required=f.get("required", False),
                    options=tuple(f.get("options", ())),
                )
                for f in self.custom_fields or []
            ],
            form_locked=self.form_locked,
            requires_payment_approval=self.requires_payment_approval,
            purchase_limit=self.purchase_limit,
            is_team_event=self.is_team_event,
            min_team_size=self.min_team_size,
            max_team_size=self.max_team_size,
            variants=[v.to_entity() for v in self.variants],
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class VariantModel(Base):
    """Merchandise variant with its stock counters.

    ``stock`` can never go negative: the ledger only decrements it with
    ``UPDATE ... WHERE stock >= :quantity`` and the check constraint
    backs that up.
    """

    __tablename__ = "event_variants"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_event_variants_stock"),
        CheckConstraint("sold >= 0", name="ck_event_variants_sold"),
    )

    event_id = Column(
        String(36),
        ForeignKey("events.id", ondelete="CASCADE"),
        primary_key=True,
    )
    id = Column(String(100), primary_key=True)
    position = Column(Integer, nullable=False, default=0)
    name = Column(String(255), nullable=False)
    size = Column(String(50), nullable=True)
    color = Column(String(50), nullable=True)
    price_minor = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    stock = Column(Integer, nullable=False, default=0)
    sold = Column(Integer, nullable=False, default=0)

    # Relationships
    event = relationship("EventModel", back_populates="variants")

    @classmethod
    def from_entity(cls, event_id: str, variant: Variant, position: int = 0) -> "VariantModel":
        return cls(
            event_id=event_id,
            id=variant.id,
            position=position,
            name=variant.name,
            size=variant.size,
            color=variant.color,
            price_minor=variant.price.amount_minor,
            currency=variant.price.currency,
            stock=variant.stock,
            sold=variant.sold,
        )

    def to_entity(self) -> Variant:
        return Variant(
            id=self.id,
            name=self.name,
            size=self.size,
            color=self.color,
            price=Money(amount_minor=self.price_minor, currency=self.currency),
            stock=self.stock,
            sold=self.sold,
        )


class ReservationModel(Base):
    """Inventory reservation ledger record."""

    __tablename__ = "inventory_reservations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    event_id = Column(String(36), nullable=False, index=True)
    variant_id = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="held", index=True)
    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    resolved_at = Column(UTCDateTime(), nullable=True)

    def to_entity(self) -> Reservation:
        return Reservation(
            id=self.id,
            event_id=self.event_id,
            variant_id=self.variant_id,
            quantity=self.quantity,
            status=ReservationStatus(self.status),
            created_at=self.created_at,
            resolved_at=self.resolved_at,
        )


# ============================================================================
# Registration Models
# ============================================================================


class RegistrationModel(Base):
    """Registration model for database persistence.

    ``ticket_id`` is unique for the lifetime of the table, and the
    partial index allows one active normal registration per participant
    and event while keeping cancelled and rejected attempts around.
    """

    __tablename__ = "registrations"
    __table_args__ = (
        Index(
            "uq_registrations_active_normal",
            "event_id",
            "participant_id",
            unique=True,
            sqlite_where=text(ACTIVE_NORMAL_REGISTRATION),
            postgresql_where=text(ACTIVE_NORMAL_REGISTRATION),
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    ticket_id = Column(String(40), nullable=False, unique=True)
    event_id = Column(String(36), nullable=False, index=True)
    participant_id = Column(String(100), nullable=False, index=True)
    registration_type = Column(String(20), nullable=False, default="normal")
    status = Column(String(20), nullable=False, default="pending", index=True)
    payment_status = Column(String(20), nullable=False, default="not_required")
    form_responses = Column(JSONType, nullable=False, default=list)

    # Merchandise
    selected_variant_id = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    variant_details = Column(JSONType, nullable=True)
    total_amount_minor = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")
    reservation_id = Column(String(36), nullable=True)

    # Payment, team and attendance
    payment_proof_ref = Column(String(255), nullable=True)
    team_id = Column(String(36), nullable=True, index=True)
    attended = Column(Boolean, nullable=False, default=False)
    attended_at = Column(UTCDateTime(), nullable=True)
    qr_code_data = Column(Text, nullable=True)
    attendance_override = Column(JSONType, nullable=True)
    attempt = Column(Integer, nullable=False, default=1)
    status_history = Column(JSONType, nullable=False, default=list)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime(), nullable=False, default=_utcnow)

    @staticmethod
    def values_from(registration: Registration) -> dict[str, Any]:
        """Column values for a registration, used for inserts and updates."""
        return {
            "id": registration.id,
            "ticket_id": registration.ticket_id,
            "event_id": registration.event_id,
            "participant_id": registration.participant_id,
            "registration_type": registration.registration_type.value,
            "status": registration.status.value,
            "payment_status": registration.payment_status.value,
            "form_responses": [r.to_dict() for r in registration.form_responses],
            "selected_variant_id": registration.selected_variant_id,
            "quantity": registration.quantity,
            "variant_details": (
                registration.variant_details.to_dict() if registration.variant_details else None
            ),
            "total_amount_minor": registration.total_amount.amount_minor,
            "currency": registration.total_amount.currency,
            "reservation_id": registration.reservation_id,
            "payment_proof_ref": registration.payment_proof_ref,
            "team_id": registration.team_id,
            "attended": registration.attended,
            "attended_at": registration.attended_at,
            "qr_code_data": registration.qr_code_data,
            "attendance_override": (
                registration.attendance_override.to_dict()
                if registration.attendance_override
                else None
            ),
            "attempt": registration.attempt,
            "status_history": [c.to_dict() for c in registration.status_history],
            "version": registration.version,
            "created_at": registration.created_at,
            "updated_at": registration.updated_at,
        }

    def to_entity(self) -> Registration:
        """Convert to the domain aggregate."""
        return Registration(
            id=self.id,
            ticket_id=self.ticket_id,
            event_id=self.event_id,
            participant_id=self.participant_id,
            registration_type=RegistrationType(self.registration_type),
            status=RegistrationStatus(self.status),
            payment_status=PaymentStatus(self.payment_status),
            form_responses=[
                FormResponse(field_id=r["field_id"], value=r.get("value"), label=r.get("label", ""))
                for r in self.form_responses or []
            ],
            selected_variant_id=self.selected_variant_id,
            quantity=self.quantity,
            variant_details=(
                VariantDetails.from_dict(self.variant_details) if self.variant_details else None
            ),
            total_amount=Money(amount_minor=self.total_amount_minor, currency=self.currency),
            reservation_id=self.reservation_id,
            payment_proof_ref=self.payment_proof_ref,
            team_id=self.team_id,
            attended=self.attended,
            attended_at=self.attended_at,
            qr_code_data=self.qr_code_data,
            attendance_override=(
                AttendanceOverride.from_dict(self.attendance_override)
                if self.attendance_override
                else None
            ),
            attempt=self.attempt,
            status_history=[StatusChange.from_dict(c) for c in self.status_history or []],
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


# ============================================================================
# Team Models
# ============================================================================


class TeamModel(Base):
    """Team model for database persistence.

    ``accepted_count`` mirrors the number of accepted members so a join
    can claim a slot with one conditional update.
    """

    __tablename__ = "teams"
    __table_args__ = (
        CheckConstraint("accepted_count >= 0", name="ck_teams_accepted_count"),
        CheckConstraint("accepted_count <= team_size - 1", name="ck_teams_capacity"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    event_id = Column(String(36), nullable=False, index=True)
    team_name = Column(String(255), nullable=False)
    team_leader_id = Column(String(100), nullable=False, index=True)
    team_size = Column(Integer, nullable=False)
    invite_code = Column(String(16), nullable=False, unique=True)
    accepted_count = Column(Integer, nullable=False, default=0)
    is_complete = Column(Boolean, nullable=False, default=False)
    registration_id = Column(String(36), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime(), nullable=False, default=_utcnow)

    # Relationships
    memberships = relationship(
        "TeamMembershipModel",
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="TeamMembershipModel.invited_at",
    )

    def to_entity(self) -> Team:
        """Convert to the domain aggregate."""
        return Team(
            id=self.id,
            event_id=self.event_id,
            team_name=self.team_name,
            team_leader_id=self.team_leader_id,
            team_size=self.team_size,
            invite_code=self.invite_code,
            members=[
                TeamMember(
                    user_id=m.user_id,
                    status=TeamMemberStatus(m.status),
                    invited_at=m.invited_at,
                    responded_at=m.responded_at,
                )
                for m in self.memberships
                if m.role == "member"
            ],
            is_complete=self.is_complete,
            registration_id=self.registration_id,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class TeamMembershipModel(Base):
    """One user's place in a team.

    The leader has a row too, so the unique constraint keeps every user
    in at most one team per event.
    """

    __tablename__ = "team_memberships"
    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_team_memberships_event_user"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    team_id = Column(
        String(36),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_id = Column(String(36), nullable=False)
    user_id = Column(String(100), nullable=False, index=True)
    role = Column(String(10), nullable=False, default="member")
    status = Column(String(20), nullable=False, default="accepted")
    invited_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    responded_at = Column(UTCDateTime(), nullable=True)

    # Relationships
    team = relationship("TeamModel", back_populates="memberships")

