"""Registration application service.

Orchestrates the registration lifecycle:
- Registering for normal events (with or without a fee)
- Purchasing merchandise through the inventory ledger
- Cancelling registrations and purchases
- Checking participants in, by ticket scan or manual override
- Participant and organizer registration views
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from festival.application.inventory_ledger import InventoryLedger
from festival.application.notifications import NotificationDispatcher, get_notification_dispatcher
from festival.application.participants import ParticipantDirectory, get_participant_directory
from festival.application.results import ServiceResult
from festival.application.ticket_issuer import TicketIssuer
from festival.domain.base import utc_now
from festival.domain.entities import DEFAULT_OVERRIDE_REASON, Event, Registration, Reservation
from festival.domain.exceptions import (
    AlreadyRegisteredError,
    DomainError,
    EventFullError,
    EventMismatchError,
    EventNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
    NotOwnerError,
    OutOfStockError,
    PurchaseLimitExceededError,
    RegistrationNotFoundError,
    TicketNotFoundError,
)
from festival.domain.state_machines import RegistrationStatus
from festival.domain.value_objects import Actor, EventType, FormResponse, RegistrationType
from festival.infrastructure.stores import (
    EventStore,
    RegistrationStore,
    get_event_store,
    get_registration_store,
)

logger = structlog.get_logger()


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class RegistrationResult(ServiceResult):
    """Result of an operation on a single registration."""

    registration: Registration | None = None


@dataclass
class RegistrationListResult(ServiceResult):
    """Result of listing registrations."""

    registrations: list[Registration] = field(default_factory=list)


@dataclass
class AttendanceSummary:
    """Check-in counts for an event."""

    event_id: str
    total: int
    attended: int

    @property
    def not_attended(self) -> int:
        return self.total - self.attended

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "total": self.total,
            "attended": self.attended,
            "not_attended": self.not_attended,
        }


@dataclass
class AttendanceSummaryResult(ServiceResult):
    """Result of computing an attendance summary."""

    summary: AttendanceSummary | None = None


# ============================================================================
# Registration Service
# ============================================================================


class RegistrationService:
    """Application service for the registration lifecycle.

    Shared counters are only changed through single conditional store
    operations: ``registration_count`` through
    ``EventStore.adjust_registration_count`` and variant stock through
    the inventory ledger. When a later step fails, the earlier ones are
    compensated so no partial state is left behind.
    """

    def __init__(
        self,
        event_store: EventStore | None = None,
        registration_store: RegistrationStore | None = None,
        ledger: InventoryLedger | None = None,
        issuer: TicketIssuer | None = None,
        dispatcher: NotificationDispatcher | None = None,
        participants: ParticipantDirectory | None = None,
        clock: Callable[[], datetime] = utc_now,
        request_id: str | None = None,
    ) -> None:
        """Initialize service.

        Args:
            event_store: Event store.
            registration_store: Registration store.
            ledger: Inventory ledger for merchandise.
            issuer: Ticket issuer.
            dispatcher: Notification dispatcher.
            participants: Directory used for names printed on tickets.
            clock: Source of the request time.
            request_id: Request ID for correlation.
        """
        self.event_store = event_store or get_event_store()
        self.registration_store = registration_store or get_registration_store()
        self.ledger = ledger or InventoryLedger(self.event_store, request_id=request_id)
        self.issuer = issuer or TicketIssuer(clock=clock, request_id=request_id)
        self.dispatcher = dispatcher or get_notification_dispatcher(request_id=request_id)
        self.participants = participants or get_participant_directory()
        self._clock = clock
        self.request_id = request_id

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    async def _require_event(self, event_id: str) -> Event:
        event = await self.event_store.get(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    async def _require_registration(self, registration_id: str) -> Registration:
        registration = await self.registration_store.get(registration_id)
        if registration is None:
            raise RegistrationNotFoundError(registration_id)
        return registration

    def _name_of(self, actor: Actor) -> str:
        return actor.name or self.participants.display_name(actor.id)

    # -------------------------------------------------------------------------
    # Register
    # -------------------------------------------------------------------------

    async def register_for_event(
        self,
        event_id: str,
        actor: Actor,
        form_responses: list[FormResponse] | None = None,
    ) -> RegistrationResult:
        """Register a participant for a normal event.

        Paid events start the registration PENDING until an organizer
        approves the payment. Free events confirm it immediately and
        issue the QR ticket.

        Args:
            event_id: Event to register for.
            actor: Registering participant.
            form_responses: Answers to the event's custom form.

        Returns:
            RegistrationResult with the new registration.
        """
        now = self._clock()
        try:
            event = await self._require_event(event_id)
            event.ensure_open(EventType.NORMAL, now)
            if event.registration_count >= event.registration_limit:
                raise EventFullError(event.id, event.registration_limit)
            event.ensure_eligible(actor)
            if await self.registration_store.find_active(event.id, actor.id):
                raise AlreadyRegisteredError(event.id, actor.id)
            responses = event.validate_form(form_responses or [])
            attempt = await self.registration_store.latest_attempt(event.id, actor.id) + 1

            claimed = await self.event_store.adjust_registration_count(
                event.id,
                1,
                limit=event.registration_limit,
                lock_form=True,
            )
            if not claimed:
                raise EventFullError(event.id, event.registration_limit)

            participant_name = self._name_of(actor)

            async def insert(ticket_id: str) -> Registration:
                registration = Registration.create(
                    ticket_id=ticket_id,
                    event_id=event.id,
                    participant_id=actor.id,
                    requires_payment=event.requires_payment,
                    form_responses=responses,
                    total_amount=event.registration_fee,
                    attempt=attempt,
                    now=now,
                )
                if registration.is_ticket_valid:
                    registration.attach_qr(self.issuer.issue_qr(registration, event, participant_name))
                return await self.registration_store.add(registration)

            try:
                registration = await self.issuer.allocate(insert)
            except DomainError:
                await self.event_store.adjust_registration_count(event.id, -1)
                raise

        except DomainError as e:
            logger.info(
                "Registration refused",
                event_id=event_id,
                participant_id=actor.id,
                error_code=e.code,
                request_id=self.request_id,
            )
            return RegistrationResult.failure(e)

        logger.info(
            "Registration created",
            registration_id=registration.id,
            event_id=event_id,
            participant_id=actor.id,
            status=registration.status.value,
            attempt=registration.attempt,
            request_id=self.request_id,
        )
        self.dispatcher.publish(registration.collect_events())
        return RegistrationResult(registration=registration)

    async def purchase_merchandise(
        self,
        event_id: str,
        actor: Actor,
        variant_id: str,
        quantity: int = 1,
    ) -> RegistrationResult:
        """Buy units of a merchandise variant.

        Events requiring payment approval hold the units in a
        reservation until an organizer decides. Otherwise the units are
        sold right away and the ticket is issued.

        Args:
            event_id: Merchandise event.
            actor: Buying participant.
            variant_id: Variant to buy.
            quantity: Number of units.

        Returns:
            RegistrationResult with the purchase record.
        """
        now = self._clock()
        try:
            event = await self._require_event(event_id)
            event.ensure_open(EventType.MERCHANDISE, now)
            variant = event.get_variant(variant_id)
            if quantity < 1:
                raise InvalidQuantityError(quantity)
            bought = await self.registration_store.purchased_quantity(event.id, actor.id)
            if bought + quantity > event.purchase_limit:
                raise PurchaseLimitExceededError(event.purchase_limit, bought, quantity)

            try:
                if event.requires_payment_approval:
                    reservation = await self.ledger.reserve(event.id, variant.id, quantity)
                else:
                    reservation = await self.ledger.credit_immediate(event.id, variant.id, quantity)
            except InsufficientStockError:
                raise OutOfStockError(variant.id, quantity) from None

            participant_name = self._name_of(actor)

            async def insert(ticket_id: str) -> Registration:
                registration = Registration.create(
                    ticket_id=ticket_id,
                    event_id=event.id,
                    participant_id=actor.id,
                    requires_payment=event.requires_payment_approval,
                    registration_type=RegistrationType.MERCHANDISE,
                    total_amount=variant.price * quantity,
                    selected_variant_id=variant.id,
                    quantity=quantity,
                    variant_details=variant.snapshot(),
                    reservation_id=reservation.id,
                    now=now,
                )
                if registration.is_ticket_valid:
                    registration.attach_qr(self.issuer.issue_qr(registration, event, participant_name))
                return await self.registration_store.add(registration, purchase_limit=event.purchase_limit)

            try:
                registration = await self.issuer.allocate(insert)
            except DomainError:
                await self._undo_reservation(reservation)
                raise

            await self.event_store.adjust_registration_count(event.id, 1)

        except DomainError as e:
            logger.info(
                "Purchase refused",
                event_id=event_id,
                participant_id=actor.id,
                variant_id=variant_id,
                quantity=quantity,
                error_code=e.code,
                request_id=self.request_id,
            )
            return RegistrationResult.failure(e)

        logger.info(
            "Merchandise purchased",
            registration_id=registration.id,
            event_id=event_id,
            participant_id=actor.id,
            variant_id=variant_id,
            quantity=quantity,
            status=registration.status.value,
            request_id=self.request_id,
        )
        self.dispatcher.publish(registration.collect_events())
        return RegistrationResult(registration=registration)

    async def _undo_reservation(self, reservation: Reservation) -> None:
        await self.ledger.return_units(reservation)
        logger.warning(
            "Purchase rolled back",
            reservation_id=reservation.id,
            request_id=self.request_id,
        )

    # -------------------------------------------------------------------------
    # Cancel
    # -------------------------------------------------------------------------

    async def cancel(self, registration_id: str, actor: Actor) -> RegistrationResult:
        """Cancel a registration or purchase before the event starts.

        Frees the place and gives merchandise units back to stock.

        Args:
            registration_id: Registration to cancel.
            actor: Registrant cancelling.

        Returns:
            RegistrationResult with the cancelled registration.
        """
        now = self._clock()
        try:
            registration = await self._require_registration(registration_id)
            event = await self._require_event(registration.event_id)
            expected_version = registration.version
            registration.cancel(actor, event.event_start_date, now)
            await self.registration_store.save(registration, expected_version=expected_version)

            await self.event_store.adjust_registration_count(event.id, -1)
            if registration.reservation_id:
                await self.ledger.return_units(registration.reservation_id)

        except DomainError as e:
            logger.info(
                "Cancellation refused",
                registration_id=registration_id,
                actor_id=actor.id,
                error_code=e.code,
                request_id=self.request_id,
            )
            return RegistrationResult.failure(e)

        logger.info(
            "Registration cancelled",
            registration_id=registration_id,
            event_id=registration.event_id,
            request_id=self.request_id,
        )
        self.dispatcher.publish(registration.collect_events())
        return RegistrationResult(registration=registration)

    # -------------------------------------------------------------------------
    # Attendance
    # -------------------------------------------------------------------------

    async def mark_attended(self, registration_id: str, actor: Actor) -> RegistrationResult:
        """Check a confirmed participant in."""
        return await self._attend(registration_id, actor)

    async def manual_override(
        self,
        registration_id: str,
        actor: Actor,
        reason: str | None = None,
    ) -> RegistrationResult:
        """Check a participant in without a ticket scan.

        Keeps an audit record of who overrode and why.

        Args:
            registration_id: Registration to check in.
            actor: Organizer or admin.
            reason: Why the override was needed.

        Returns:
            RegistrationResult with the attended registration.
        """
        reason = (reason or "").strip() or DEFAULT_OVERRIDE_REASON
        return await self._attend(registration_id, actor, override_reason=reason)

    async def scan_ticket(
        self,
        qr_data: str | dict[str, Any],
        expected_event_id: str,
        actor: Actor,
    ) -> RegistrationResult:
        """Check a participant in from a scanned QR code.

        The registration is looked up again by ticket ID; the payload
        itself is never trusted beyond identifying the ticket.

        Args:
            qr_data: Scanned QR text or parsed payload.
            expected_event_id: Event the scanner is checking in for.
            actor: Organizer or admin scanning.

        Returns:
            RegistrationResult with the attended registration.
        """
        try:
            event = await self._require_event(expected_event_id)
            event.ensure_managed_by(actor)
            payload = self.issuer.validate_scan(qr_data, expected_event_id)
            registration = await self.registration_store.get_by_ticket_id(payload.ticket_id)
            if registration is None:
                raise TicketNotFoundError(payload.ticket_id)
            if registration.event_id != expected_event_id:
                raise EventMismatchError(expected_event_id, registration.event_id)
        except DomainError as e:
            logger.info(
                "Ticket scan refused",
                event_id=expected_event_id,
                actor_id=actor.id,
                error_code=e.code,
                request_id=self.request_id,
            )
            return RegistrationResult.failure(e)

        return await self._attend(registration.id, actor)

    async def _attend(
        self,
        registration_id: str,
        actor: Actor,
        override_reason: str | None = None,
    ) -> RegistrationResult:
        now = self._clock()
        try:
            registration = await self._require_registration(registration_id)
            event = await self._require_event(registration.event_id)
            event.ensure_managed_by(actor)
            expected_version = registration.version
            registration.mark_attended(actor.id, event.event_start_date, now, override_reason)
            await self.registration_store.save(registration, expected_version=expected_version)
        except DomainError as e:
            logger.info(
                "Check-in refused",
                registration_id=registration_id,
                actor_id=actor.id,
                error_code=e.code,
                request_id=self.request_id,
            )
            return RegistrationResult.failure(e)

        logger.info(
            "Participant checked in",
            registration_id=registration_id,
            event_id=registration.event_id,
            marked_by=actor.id,
            manual=override_reason is not None,
            request_id=self.request_id,
        )
        self.dispatcher.publish(registration.collect_events())
        return RegistrationResult(registration=registration)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_registration(self, registration_id: str, actor: Actor) -> RegistrationResult:
        """Get a registration visible to its owner and the event organizer."""
        try:
            registration = await self._require_registration(registration_id)
            if registration.participant_id != actor.id:
                event = await self._require_event(registration.event_id)
                if not actor.manages(event.organizer_id):
                    raise NotOwnerError(registration_id, actor.id)
        except DomainError as e:
            return RegistrationResult.failure(e)
        return RegistrationResult(registration=registration)

    async def list_participant_registrations(self, actor: Actor) -> RegistrationListResult:
        """List the actor's own registrations, newest first."""
        registrations = await self.registration_store.list_for_participant(actor.id)
        return RegistrationListResult(registrations=registrations)

    async def list_event_registrations(
        self,
        event_id: str,
        actor: Actor,
        status: RegistrationStatus | None = None,
    ) -> RegistrationListResult:
        """List an event's registrations for its organizer."""
        try:
            event = await self._require_event(event_id)
            event.ensure_managed_by(actor)
        except DomainError as e:
            return RegistrationListResult.failure(e)
        statuses = {status} if status else None
        registrations = await self.registration_store.list_for_event(event.id, statuses)
        return RegistrationListResult(registrations=registrations)

    async def attendance_summary(self, event_id: str, actor: Actor) -> AttendanceSummaryResult:
        """Count checked-in and missing participants of an event."""
        try:
            event = await self._require_event(event_id)
            event.ensure_managed_by(actor)
        except DomainError as e:
            return AttendanceSummaryResult.failure(e)
        registrations = await self.registration_store.list_for_event(
            event.id,
            {RegistrationStatus.CONFIRMED, RegistrationStatus.ATTENDED},
        )
        attended = sum(1 for r in registrations if r.status == RegistrationStatus.ATTENDED)
        return AttendanceSummaryResult(
            summary=AttendanceSummary(event_id=event.id, total=len(registrations), attended=attended)
        )


def get_registration_service(request_id: str | None = None) -> RegistrationService:
    """Get registration service instance."""
    return RegistrationService(request_id=request_id)
