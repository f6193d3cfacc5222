"""Domain entities and aggregate roots.

Events own their merchandise variants and capacity counters,
registrations own their lifecycle and ticket, teams own their member
list. Counter mutations on these objects are only ever applied by a
store inside a single atomic step; services never read-modify-write
them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from festival.domain.base import AggregateRoot, Entity, new_id, utc_now
from festival.domain.events import (
    AttendanceMarked,
    PaymentApproved,
    PaymentProofUploaded,
    PaymentRejected,
    PaymentRequired,
    RegistrationCancelled,
    RegistrationConfirmed,
    RegistrationCreated,
    TeamCompleted,
    TeamCreated,
    TeamMemberJoined,
    TeamMemberLeft,
)
from festival.domain.exceptions import (
    AlreadyAttendedError,
    AlreadyCancelledError,
    AlreadyFinalizedError,
    AlreadyMemberError,
    DeadlinePassedError,
    EligibilityMismatchError,
    EventNotOpenError,
    EventNotStartedError,
    EventStartedError,
    InsufficientStockError,
    InvalidQuantityError,
    IsLeaderError,
    LeaderCannotLeaveError,
    MissingRequiredFieldError,
    NotConfirmedError,
    NotOrganizerError,
    NotOwnerError,
    NotPendingError,
    NotTeamLeaderError,
    NotTeamMemberError,
    ReservationReleasedError,
    TeamCompleteError,
    VariantNotFoundError,
)
from festival.domain.state_machines import (
    PaymentStatus,
    RegistrationStatus,
    ReservationStatus,
    TeamMemberStatus,
    validate_payment_transition,
    validate_registration_transition,
    validate_reservation_transition,
)
from festival.domain.value_objects import (
    Actor,
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

DEFAULT_OVERRIDE_REASON = "Manual override by organizer"


# ============================================================================
# Merchandise Variant Entity
# ============================================================================


@dataclass(eq=False)
class Variant(Entity[str]):
    """A purchasable variant of a merchandise event.

    ``stock`` counts units still available, ``sold`` counts units whose
    purchase was finalized. Units held by an open reservation are in
    neither counter.

    Attributes:
        id: Variant identifier, unique within the event.
        name: Display name (e.g. "Festival Tee").
        price: Unit price.
        stock: Units available for new reservations.
        sold: Units sold through finalized reservations.
        size: Optional size label.
        color: Optional color label.
    """

    name: str
    price: Money
    stock: int = 0
    sold: int = 0
    size: str | None = None
    color: str | None = None

    def __post_init__(self) -> None:
        if self.stock < 0:
            raise ValueError("Variant stock cannot be negative")

    def snapshot(self) -> VariantDetails:
        """Capture the variant as it looked at purchase time."""
        return VariantDetails(name=self.name, size=self.size, color=self.color, price=self.price)

    def take(self, event_id: str, quantity: int) -> None:
        """Remove units from stock.

        Raises:
            InsufficientStockError: If fewer than ``quantity`` units are left.
        """
        if self.stock < quantity:
            raise InsufficientStockError(event_id, self.id, quantity)
        self.stock -= quantity

    def restock(self, quantity: int) -> None:
        self.stock += quantity

    def record_sale(self, quantity: int) -> None:
        self.sold += quantity

    def reverse_sale(self, quantity: int) -> None:
        self.sold -= quantity
        self.stock += quantity


# ============================================================================
# Event Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class Event(AggregateRoot[str]):
    """Event aggregate root.

    Registration services only read events for validation. The two
    counters on it (``registration_count`` and the variant stock) are
    changed by the event store's conditional operations.

    Attributes:
        id: Unique event identifier.
        name: Event name printed on tickets.
        organizer_id: Organizer who owns the event.
        event_type: Normal sign-up event or merchandise sale.
        status: Publication status.
        event_start_date: When the event starts (attendance opens).
        registration_deadline: Last moment registrations are accepted.
        registration_limit: Maximum number of registrations.
        registration_count: Registrations currently holding a place.
        eligibility: Which participant types may register.
        registration_fee: Fee for normal events; zero means free.
        custom_fields: Registration form definition.
        form_locked: Set once the first registration arrives.
        requires_payment_approval: Whether purchases wait for approval.
        variants: Merchandise variants.
        purchase_limit: Maximum units per participant across purchases.
        is_team_event: Whether teams can form for the event.
        min_team_size: Smallest allowed team (leader included).
        max_team_size: Largest allowed team (leader included).
    """

    id: str = field(default_factory=new_id)
    name: str
    organizer_id: str
    event_start_date: datetime
    event_type: EventType = EventType.NORMAL
    status: EventStatus = EventStatus.DRAFT
    description: str = ""
    event_end_date: datetime | None = None
    registration_deadline: datetime | None = None
    registration_limit: int = 100
    registration_count: int = 0
    eligibility: Eligibility = Eligibility.ALL
    registration_fee: Money = field(default_factory=Money.zero)
    custom_fields: list[CustomField] = field(default_factory=list)
    form_locked: bool = False
    requires_payment_approval: bool = True
    variants: list[Variant] = field(default_factory=list)
    purchase_limit: int = 5
    is_team_event: bool = False
    min_team_size: int = 2
    max_team_size: int = 4

    def __post_init__(self) -> None:
        if self.registration_limit < 1:
            raise ValueError("registration_limit must be at least 1")
        if self.purchase_limit < 1:
            raise ValueError("purchase_limit must be at least 1")
        if self.is_team_event and not 1 < self.min_team_size <= self.max_team_size:
            raise ValueError("Team sizes must satisfy 1 < min_team_size <= max_team_size")
        if self.event_end_date and self.event_end_date < self.event_start_date:
            raise ValueError("event_end_date cannot be before event_start_date")
        variant_ids = [v.id for v in self.variants]
        if len(variant_ids) != len(set(variant_ids)):
            raise ValueError("Variant ids must be unique within an event")

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def requires_payment(self) -> bool:
        """Whether a normal registration starts out pending payment."""
        return not self.registration_fee.is_zero()

    def has_started(self, now: datetime) -> bool:
        return now >= self.event_start_date

    def get_variant(self, variant_id: str) -> Variant:
        """Find a variant by id.

        Raises:
            VariantNotFoundError: If the event has no such variant.
        """
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        raise VariantNotFoundError(self.id, variant_id)

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def ensure_open(self, expected_type: EventType, now: datetime) -> None:
        """Check that the event accepts new registrations of a kind.

        Args:
            expected_type: Event type the caller is registering for.
            now: Request time, evaluated once per request.

        Raises:
            EventNotOpenError: Wrong event type or not published.
            DeadlinePassedError: Registration deadline is over.
        """
        if self.event_type != expected_type:
            if expected_type == EventType.MERCHANDISE:
                raise EventNotOpenError(self.id, "This is not a merchandise event")
            raise EventNotOpenError(self.id, "Use the purchase flow for merchandise events")
        if self.status != EventStatus.PUBLISHED:
            raise EventNotOpenError(self.id, "Event is not open for registration")
        if self.registration_deadline is not None and now > self.registration_deadline:
            raise DeadlinePassedError(self.id)

    def ensure_eligible(self, actor: Actor) -> None:
        """Raises EligibilityMismatchError if the actor may not register."""
        if not self.eligibility.admits(actor.participant_type):
            raise EligibilityMismatchError(self.id, self.eligibility.value)

    def ensure_managed_by(self, actor: Actor) -> None:
        """Raises NotOrganizerError unless the actor organizes the event or is an admin."""
        if not actor.manages(self.organizer_id):
            raise NotOrganizerError(self.id, actor.id)

    def validate_form(self, responses: list[FormResponse]) -> list[FormResponse]:
        """Check answers against the custom form and label them.

        Answers to unknown fields are dropped.

        Args:
            responses: Raw answers submitted by the participant.

        Returns:
            Answers in form order, each carrying its field label.

        Raises:
            MissingRequiredFieldError: If a required field has no answer.
        """
        by_field = {r.field_id: r for r in responses}
        validated: list[FormResponse] = []
        for custom_field in self.custom_fields:
            answer = by_field.get(custom_field.field_id)
            if answer is None or answer.is_blank():
                if custom_field.required:
                    raise MissingRequiredFieldError(custom_field.field_id, custom_field.label)
                continue
            validated.append(
                FormResponse(
                    field_id=custom_field.field_id,
                    value=answer.value,
                    label=custom_field.label,
                )
            )
        return validated

    # -------------------------------------------------------------------------
    # Counter Mutations (applied by stores inside one atomic step)
    # -------------------------------------------------------------------------

    def apply_registration_delta(
        self,
        delta: int,
        limit: int | None = None,
        lock_form: bool = False,
    ) -> bool:
        """Adjust the registration counter if the result stays in bounds.

        Args:
            delta: Amount to add (negative to free places).
            limit: Upper bound the new count may not exceed, if any.
            lock_form: Also lock the registration form.

        Returns:
            True if the counter was changed.
        """
        new_count = self.registration_count + delta
        if new_count < 0:
            return False
        if limit is not None and new_count > limit:
            return False
        self.registration_count = new_count
        if lock_form:
            self.form_locked = True
        return True


# ============================================================================
# Reservation Entity
# ============================================================================


@dataclass(eq=False)
class Reservation(Entity[str]):
    """Ledger record for units taken out of a variant's stock.

    Attributes:
        id: Reservation handle.
        event_id: Event owning the variant.
        variant_id: Variant the units came from.
        quantity: Number of units.
        status: HELD until resolved.
    """

    event_id: str
    variant_id: str
    quantity: int
    status: ReservationStatus = ReservationStatus.HELD
    created_at: datetime = field(default_factory=utc_now)
    resolved_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise InvalidQuantityError(self.quantity)

    def finalize(self) -> None:
        """Mark the held units as sold.

        Raises:
            AlreadyFinalizedError: If finalized before.
            ReservationReleasedError: If the units went back to stock.
        """
        if self.status in {ReservationStatus.FINALIZED, ReservationStatus.RETURNED}:
            raise AlreadyFinalizedError(self.id)
        if self.status == ReservationStatus.RELEASED:
            raise ReservationReleasedError(self.id)
        validate_reservation_transition(self.id, self.status, ReservationStatus.FINALIZED)
        self.status = ReservationStatus.FINALIZED
        self.resolved_at = utc_now()

    def release(self) -> bool:
        """Give the held units back.

        Returns:
            False when the reservation was already released.

        Raises:
            AlreadyFinalizedError: If the units were sold.
        """
        if self.status == ReservationStatus.RELEASED:
            return False
        if self.status in {ReservationStatus.FINALIZED, ReservationStatus.RETURNED}:
            raise AlreadyFinalizedError(self.id)
        self.status = ReservationStatus.RELEASED
        self.resolved_at = utc_now()
        return True

    def return_units(self) -> ReservationStatus:
        """Undo the reservation whatever stage it reached.

        Returns:
            The status before the call, so the caller knows which
            counters to move.
        """
        previous = self.status
        if previous == ReservationStatus.HELD:
            self.status = ReservationStatus.RELEASED
            self.resolved_at = utc_now()
        elif previous == ReservationStatus.FINALIZED:
            validate_reservation_transition(self.id, previous, ReservationStatus.RETURNED)
            self.status = ReservationStatus.RETURNED
            self.resolved_at = utc_now()
        return previous

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "status": self.status.value,
        }


# ============================================================================
# Registration Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class Registration(AggregateRoot[str]):
    """Registration aggregate root.

    A registration is a participant's place at a normal event, or one
    merchandise purchase. It carries a ticket ID from creation and a QR
    image once it is confirmed and, where payment is gated, approved.

    Attributes:
        id: Unique registration identifier.
        ticket_id: Globally unique ticket ID, never changed once set.
        event_id: Event registered for.
        participant_id: Registering participant.
        registration_type: Normal or merchandise.
        status: Lifecycle status.
        payment_status: Payment approval status.
        form_responses: Answers to the event's custom form.
        selected_variant_id: Purchased variant (merchandise only).
        quantity: Purchased units (1 for normal registrations).
        variant_details: Variant snapshot at purchase time.
        total_amount: Amount due for the registration.
        reservation_id: Ledger reservation backing the purchase.
        payment_proof_ref: Storage reference of the uploaded proof.
        team_id: Team the registration was created for.
        attended: Whether the participant was checked in.
        attended_at: Check-in time.
        qr_code_data: Rendered QR image as a data URL.
        attendance_override: Audit record of a manual check-in.
        attempt: 1-based counter over the participant's attempts.
        status_history: Audit trail of status changes.
    """

    id: str = field(default_factory=new_id)
    ticket_id: str
    event_id: str
    participant_id: str
    registration_type: RegistrationType = RegistrationType.NORMAL
    status: RegistrationStatus = RegistrationStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.NOT_REQUIRED
    form_responses: list[FormResponse] = field(default_factory=list)
    selected_variant_id: str | None = None
    quantity: int = 1
    variant_details: VariantDetails | None = None
    total_amount: Money = field(default_factory=Money.zero)
    reservation_id: str | None = None
    payment_proof_ref: str | None = None
    team_id: str | None = None
    attended: bool = False
    attended_at: datetime | None = None
    qr_code_data: str | None = None
    attendance_override: AttendanceOverride | None = None
    attempt: int = 1
    status_history: list[StatusChange] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        *,
        ticket_id: str,
        event_id: str,
        participant_id: str,
        requires_payment: bool,
        registration_type: RegistrationType = RegistrationType.NORMAL,
        form_responses: list[FormResponse] | None = None,
        total_amount: Money | None = None,
        selected_variant_id: str | None = None,
        quantity: int = 1,
        variant_details: VariantDetails | None = None,
        reservation_id: str | None = None,
        team_id: str | None = None,
        attempt: int = 1,
        now: datetime | None = None,
    ) -> "Registration":
        """Create a registration in its initial state.

        Registrations that need payment start PENDING with a pending
        payment. All others are created CONFIRMED and need their QR
        attached with :meth:`attach_qr` before they are stored.

        Args:
            ticket_id: Freshly minted ticket ID.
            event_id: Event registered for.
            participant_id: Registering participant.
            requires_payment: Whether the registration waits for approval.
            registration_type: Normal or merchandise.
            form_responses: Validated custom form answers.
            total_amount: Amount due.
            selected_variant_id: Purchased variant (merchandise only).
            quantity: Purchased units.
            variant_details: Variant snapshot (merchandise only).
            reservation_id: Backing ledger reservation (merchandise only).
            team_id: Team that caused the registration.
            attempt: Attempt counter for this participant and event.
            now: Creation time.

        Returns:
            New Registration instance.
        """
        if quantity < 1:
            raise InvalidQuantityError(quantity)
        created_at = now or utc_now()
        status = RegistrationStatus.PENDING if requires_payment else RegistrationStatus.CONFIRMED
        registration = cls(
            ticket_id=ticket_id,
            event_id=event_id,
            participant_id=participant_id,
            registration_type=registration_type,
            status=status,
            payment_status=PaymentStatus.PENDING if requires_payment else PaymentStatus.NOT_REQUIRED,
            form_responses=list(form_responses or []),
            total_amount=total_amount or Money.zero(),
            selected_variant_id=selected_variant_id,
            quantity=quantity,
            variant_details=variant_details,
            reservation_id=reservation_id,
            team_id=team_id,
            attempt=attempt,
            created_at=created_at,
            updated_at=created_at,
        )
        registration.status_history.append(
            StatusChange(to_status=status.value, changed_at=created_at, changed_by=participant_id)
        )
        registration._record_event(
            RegistrationCreated(
                aggregate_id=registration.id,
                aggregate_type="Registration",
                registration_id=registration.id,
                event_id=event_id,
                participant_id=participant_id,
                registration_type=registration_type.value,
                status=status.value,
                attempt=attempt,
            )
        )
        if requires_payment:
            registration._record_event(
                PaymentRequired(
                    aggregate_id=registration.id,
                    aggregate_type="Registration",
                    registration_id=registration.id,
                    event_id=event_id,
                    participant_id=participant_id,
                    amount_minor=registration.total_amount.amount_minor,
                    currency=registration.total_amount.currency,
                )
            )
        else:
            registration._record_event(
                RegistrationConfirmed(
                    aggregate_id=registration.id,
                    aggregate_type="Registration",
                    registration_id=registration.id,
                    event_id=event_id,
                    participant_id=participant_id,
                    ticket_id=ticket_id,
                    team_id=team_id,
                )
            )
        return registration

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.status.is_active()

    @property
    def is_payment_gated(self) -> bool:
        return self.payment_status != PaymentStatus.NOT_REQUIRED

    @property
    def is_ticket_valid(self) -> bool:
        """Whether the registration may carry a QR ticket."""
        if not self.status.is_fulfilled():
            return False
        return not self.is_payment_gated or self.payment_status == PaymentStatus.APPROVED

    def ensure_owned_by(self, actor: Actor) -> None:
        """Raises NotOwnerError unless the actor is the registrant."""
        if actor.id != self.participant_id:
            raise NotOwnerError(self.id, actor.id)

    def ensure_payment_pending(self) -> None:
        """Raises NotPendingError unless both status and payment are pending."""
        if self.payment_status != PaymentStatus.PENDING or self.status != RegistrationStatus.PENDING:
            raise NotPendingError(self.id, self.payment_status.value)

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def _change_status(
        self,
        target: RegistrationStatus,
        changed_by: str,
        now: datetime,
        note: str | None = None,
    ) -> RegistrationStatus:
        validate_registration_transition(self.id, self.status, target)
        previous = self.status
        self.status = target
        self.status_history.append(
            StatusChange(
                from_status=previous.value,
                to_status=target.value,
                changed_at=now,
                changed_by=changed_by,
                note=note,
            )
        )
        self._touch(now)
        return previous

    def attach_qr(self, qr_code_data: str) -> None:
        """Attach the rendered QR ticket.

        Raises:
            ValueError: If the registration is not in a ticket-bearing state.
        """
        if not self.is_ticket_valid:
            raise ValueError(
                f"Registration {self.id} cannot carry a ticket in status "
                f"{self.status.value}/{self.payment_status.value}"
            )
        self.qr_code_data = qr_code_data

    def cancel(self, actor: Actor, event_start: datetime, now: datetime) -> None:
        """Cancel the registration.

        Args:
            actor: Participant cancelling.
            event_start: Start of the event registered for.
            now: Request time.

        Raises:
            NotOwnerError: Actor is not the registrant.
            AlreadyCancelledError: Cancelled before.
            AlreadyAttendedError: Participant was already checked in.
            InvalidStateTransitionError: Registration was rejected.
            EventStartedError: The event has started.
        """
        self.ensure_owned_by(actor)
        if self.status == RegistrationStatus.CANCELLED:
            raise AlreadyCancelledError(self.id)
        if self.status == RegistrationStatus.ATTENDED:
            raise AlreadyAttendedError(self.id)
        validate_registration_transition(self.id, self.status, RegistrationStatus.CANCELLED)
        if now >= event_start:
            raise EventStartedError(self.event_id)

        previous = self._change_status(RegistrationStatus.CANCELLED, actor.id, now)
        self.qr_code_data = None
        self._record_event(
            RegistrationCancelled(
                aggregate_id=self.id,
                aggregate_type="Registration",
                registration_id=self.id,
                event_id=self.event_id,
                participant_id=self.participant_id,
                previous_status=previous.value,
            )
        )

    def mark_attended(
        self,
        marked_by: str,
        event_start: datetime,
        now: datetime,
        override_reason: str | None = None,
    ) -> None:
        """Check the participant in.

        Args:
            marked_by: Organizer or admin checking in.
            event_start: Start of the event.
            now: Request time.
            override_reason: Set for manual overrides; an audit record is kept.

        Raises:
            AlreadyAttendedError: Checked in before.
            NotConfirmedError: Registration is not confirmed.
            EventNotStartedError: The event has not started yet.
        """
        if self.status == RegistrationStatus.ATTENDED or self.attended:
            raise AlreadyAttendedError(self.id)
        if self.status != RegistrationStatus.CONFIRMED:
            raise NotConfirmedError(self.id, self.status.value)
        if now < event_start:
            raise EventNotStartedError(self.event_id)

        self._change_status(RegistrationStatus.ATTENDED, marked_by, now, note=override_reason)
        self.attended = True
        self.attended_at = now
        if override_reason is not None:
            self.attendance_override = AttendanceOverride(
                overridden_by=marked_by,
                reason=override_reason,
                overridden_at=now,
            )
        self._record_event(
            AttendanceMarked(
                aggregate_id=self.id,
                aggregate_type="Registration",
                registration_id=self.id,
                event_id=self.event_id,
                participant_id=self.participant_id,
                marked_by=marked_by,
                manual=override_reason is not None,
                reason=override_reason,
            )
        )

    def attach_payment_proof(self, actor: Actor, proof_ref: str, now: datetime) -> None:
        """Record uploaded payment proof.

        Raises:
            NotOwnerError: Actor is not the registrant.
            NotPendingError: Registration is no longer pending.
        """
        self.ensure_owned_by(actor)
        if self.status != RegistrationStatus.PENDING:
            raise NotPendingError(self.id, self.payment_status.value)
        self.payment_proof_ref = proof_ref
        self.payment_status = PaymentStatus.PENDING
        self._touch(now)
        self._record_event(
            PaymentProofUploaded(
                aggregate_id=self.id,
                aggregate_type="Registration",
                registration_id=self.id,
                event_id=self.event_id,
                participant_id=self.participant_id,
                proof_ref=proof_ref,
            )
        )

    def approve_payment(self, approved_by: str, qr_code_data: str, now: datetime) -> None:
        """Approve the payment and issue the ticket.

        Raises:
            NotPendingError: Payment or registration is not pending.
        """
        self.ensure_payment_pending()
        validate_payment_transition(self.id, self.payment_status, PaymentStatus.APPROVED)
        self.payment_status = PaymentStatus.APPROVED
        self._change_status(RegistrationStatus.CONFIRMED, approved_by, now, note="payment approved")
        self.attach_qr(qr_code_data)
        self._record_event(
            PaymentApproved(
                aggregate_id=self.id,
                aggregate_type="Registration",
                registration_id=self.id,
                event_id=self.event_id,
                participant_id=self.participant_id,
                ticket_id=self.ticket_id,
                approved_by=approved_by,
            )
        )

    def reject_payment(self, rejected_by: str, now: datetime) -> None:
        """Reject the payment.

        Raises:
            NotPendingError: Payment or registration is not pending.
        """
        self.ensure_payment_pending()
        validate_payment_transition(self.id, self.payment_status, PaymentStatus.REJECTED)
        self.payment_status = PaymentStatus.REJECTED
        self._change_status(RegistrationStatus.REJECTED, rejected_by, now, note="payment rejected")
        self.qr_code_data = None
        self._record_event(
            PaymentRejected(
                aggregate_id=self.id,
                aggregate_type="Registration",
                registration_id=self.id,
                event_id=self.event_id,
                participant_id=self.participant_id,
                rejected_by=rejected_by,
            )
        )


# ============================================================================
# Team Aggregate Root
# ============================================================================


@dataclass
class TeamMember:
    """A non-leader member of a team."""

    user_id: str
    status: TeamMemberStatus = TeamMemberStatus.ACCEPTED
    invited_at: datetime = field(default_factory=utc_now)
    responded_at: datetime | None = None


@dataclass(kw_only=True, eq=False)
class Team(AggregateRoot[str]):
    """Team aggregate root.

    The leader is not part of ``members``. A team of size N is complete
    once N - 1 members have accepted; completion is permanent.

    Attributes:
        id: Unique team identifier.
        event_id: Team event the team competes in.
        team_name: Display name.
        team_leader_id: Creator of the team.
        team_size: Total size including the leader.
        invite_code: Code other participants join with.
        members: Members other than the leader.
        is_complete: Whether every slot is filled.
        registration_id: The leader's registration once completed.
    """

    id: str = field(default_factory=new_id)
    event_id: str
    team_name: str
    team_leader_id: str
    team_size: int
    invite_code: str
    members: list[TeamMember] = field(default_factory=list)
    is_complete: bool = False
    registration_id: str | None = None

    @classmethod
    def create(
        cls,
        *,
        event_id: str,
        team_name: str,
        leader_id: str,
        team_size: int,
        invite_code: str,
        now: datetime | None = None,
    ) -> "Team":
        """Create a team with only its leader."""
        created_at = now or utc_now()
        team = cls(
            event_id=event_id,
            team_name=team_name,
            team_leader_id=leader_id,
            team_size=team_size,
            invite_code=invite_code,
            created_at=created_at,
            updated_at=created_at,
        )
        team._record_event(
            TeamCreated(
                aggregate_id=team.id,
                aggregate_type="Team",
                team_id=team.id,
                event_id=event_id,
                leader_id=leader_id,
                team_size=team_size,
            )
        )
        return team

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def accepted_member_ids(self) -> list[str]:
        return [m.user_id for m in self.members if m.status == TeamMemberStatus.ACCEPTED]

    @property
    def accepted_count(self) -> int:
        return len(self.accepted_member_ids)

    @property
    def open_slots(self) -> int:
        return self.team_size - 1 - self.accepted_count

    @property
    def participant_ids(self) -> list[str]:
        """Leader followed by accepted members."""
        return [self.team_leader_id, *self.accepted_member_ids]

    def is_member(self, user_id: str) -> bool:
        return any(m.user_id == user_id for m in self.members)

    def involves(self, user_id: str) -> bool:
        return user_id == self.team_leader_id or self.is_member(user_id)

    # -------------------------------------------------------------------------
    # Membership Changes (applied by stores inside one atomic step)
    # -------------------------------------------------------------------------

    def ensure_can_join(self, user_id: str) -> None:
        """Check whether a user may join through the invite code.

        Raises:
            TeamCompleteError: No slot is left.
            AlreadyMemberError: User already joined.
            IsLeaderError: User leads the team.
        """
        if self.is_complete or self.open_slots <= 0:
            raise TeamCompleteError(self.id)
        if self.is_member(user_id):
            raise AlreadyMemberError(self.id, user_id)
        if user_id == self.team_leader_id:
            raise IsLeaderError(self.id)

    def add_member(self, user_id: str, now: datetime | None = None) -> bool:
        """Accept a new member and recompute completion.

        Returns:
            True if this join completed the team.
        """
        self.ensure_can_join(user_id)
        joined_at = now or utc_now()
        self.members.append(
            TeamMember(
                user_id=user_id,
                status=TeamMemberStatus.ACCEPTED,
                invited_at=joined_at,
                responded_at=joined_at,
            )
        )
        self._touch(joined_at)
        self._record_event(
            TeamMemberJoined(
                aggregate_id=self.id,
                aggregate_type="Team",
                team_id=self.id,
                event_id=self.event_id,
                user_id=user_id,
            )
        )
        if self.open_slots == 0:
            self.is_complete = True
            self._record_event(
                TeamCompleted(
                    aggregate_id=self.id,
                    aggregate_type="Team",
                    team_id=self.id,
                    event_id=self.event_id,
                    team_name=self.team_name,
                    member_ids=tuple(self.participant_ids),
                )
            )
            return True
        return False

    def remove_member(self, user_id: str, now: datetime | None = None) -> None:
        """Remove a member who leaves before completion.

        Raises:
            TeamCompleteError: Team is already complete.
            LeaderCannotLeaveError: User leads the team.
            NotTeamMemberError: User is not a member.
        """
        if self.is_complete:
            raise TeamCompleteError(self.id)
        if user_id == self.team_leader_id:
            raise LeaderCannotLeaveError(self.id)
        if not self.is_member(user_id):
            raise NotTeamMemberError(self.id, user_id)
        self.members = [m for m in self.members if m.user_id != user_id]
        self._touch(now)
        self._record_event(
            TeamMemberLeft(
                aggregate_id=self.id,
                aggregate_type="Team",
                team_id=self.id,
                event_id=self.event_id,
                user_id=user_id,
            )
        )

    def ensure_deletable_by(self, user_id: str) -> None:
        """Raises NotTeamLeaderError or TeamCompleteError if deletion is not allowed."""
        if user_id != self.team_leader_id:
            raise NotTeamLeaderError(self.id, user_id)
        if self.is_complete:
            raise TeamCompleteError(self.id)

    def link_registration(self, registration_id: str) -> bool:
        """Point the team at the leader's registration once."""
        if self.registration_id is not None:
            return False
        self.registration_id = registration_id
        return True
