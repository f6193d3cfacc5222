"""Payment approval application service.

Paid registrations and merchandise purchases that need approval wait in
PENDING until the event organizer (or an admin) approves or rejects the
payment, usually after looking at the proof the participant uploaded.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from festival.application.inventory_ledger import InventoryLedger
from festival.application.notifications import NotificationDispatcher, get_notification_dispatcher
from festival.application.participants import ParticipantDirectory, get_participant_directory
from festival.application.results import ServiceResult
from festival.application.ticket_issuer import TicketIssuer
from festival.domain.base import utc_now
from festival.domain.entities import Event, Registration
from festival.domain.exceptions import (
    AlreadyFinalizedError,
    ConcurrentModificationError,
    DomainError,
    EventNotFoundError,
    NotPendingError,
    RegistrationNotFoundError,
)
from festival.domain.state_machines import PaymentStatus, RegistrationStatus
from festival.domain.value_objects import Actor
from festival.infrastructure.proof_storage import ProofStorage, get_proof_storage
from festival.infrastructure.stores import (
    EventStore,
    RegistrationStore,
    get_event_store,
    get_registration_store,
)

logger = structlog.get_logger()

APPROVAL_SAVE_ATTEMPTS = 3


@dataclass
class PaymentResult(ServiceResult):
    """Result of a payment decision or proof upload."""

    registration: Registration | None = None


@dataclass
class PendingPaymentsResult(ServiceResult):
    """Result of listing registrations awaiting a payment decision."""

    registrations: list[Registration] = field(default_factory=list)


class PaymentService:
    """Application service for the payment approval workflow.

    A decision is saved with the version the registration was read at,
    so of two concurrent decisions only the first is applied. Approval
    finalizes stock before it stores the decision and gives the units
    back if the decision cannot be stored.
    """

    def __init__(
        self,
        event_store: EventStore | None = None,
        registration_store: RegistrationStore | None = None,
        ledger: InventoryLedger | None = None,
        issuer: TicketIssuer | None = None,
        proof_storage: ProofStorage | None = None,
        dispatcher: NotificationDispatcher | None = None,
        participants: ParticipantDirectory | None = None,
        clock: Callable[[], datetime] = utc_now,
        request_id: str | None = None,
    ) -> None:
        self.event_store = event_store or get_event_store()
        self.registration_store = registration_store or get_registration_store()
        self.ledger = ledger or InventoryLedger(self.event_store, request_id=request_id)
        self.issuer = issuer or TicketIssuer(clock=clock, request_id=request_id)
        self.proof_storage = proof_storage or get_proof_storage()
        self.dispatcher = dispatcher or get_notification_dispatcher(request_id=request_id)
        self.participants = participants or get_participant_directory()
        self._clock = clock
        self.request_id = request_id

    async def _load(self, registration_id: str) -> tuple[Registration, Event]:
        registration = await self.registration_store.get(registration_id)
        if registration is None:
            raise RegistrationNotFoundError(registration_id)
        event = await self.event_store.get(registration.event_id)
        if event is None:
            raise EventNotFoundError(registration.event_id)
        return registration, event

    async def approve(self, registration_id: str, actor: Actor) -> PaymentResult:
        """Approve a pending payment.

        Finalizes the merchandise reservation, if any, then confirms the
        registration and issues its QR ticket. A finalize that fails
        leaves nothing stored.

        Args:
            registration_id: Registration awaiting approval.
            actor: Organizer or admin deciding.

        Returns:
            PaymentResult with the confirmed registration.
        """
        now = self._clock()
        try:
            registration, event = await self._load(registration_id)
            event.ensure_managed_by(actor)
            registration.ensure_payment_pending()

            if registration.reservation_id:
                await self.ledger.finalize(registration.reservation_id)
            registration = await self._store_approval(registration, event, actor, now)

        except DomainError as e:
            logger.info(
                "Payment approval refused",
                registration_id=registration_id,
                actor_id=actor.id,
                error_code=e.code,
                request_id=self.request_id,
            )
            return PaymentResult.failure(e)

        logger.info(
            "Payment approved",
            registration_id=registration_id,
            event_id=registration.event_id,
            approved_by=actor.id,
            request_id=self.request_id,
        )
        self.dispatcher.publish(registration.collect_events())
        return PaymentResult(registration=registration)

    async def _store_approval(
        self,
        registration: Registration,
        event: Event,
        actor: Actor,
        now: datetime,
    ) -> Registration:
        """Save the approval, reapplying it to a fresh copy after a version conflict.

        When the registration stopped waiting for payment in between, the
        finalized units go back to stock.

        Raises:
            NotPendingError: A concurrent cancel or rejection won.
            ConcurrentModificationError: Every save attempt conflicted.
        """
        reservation_id = registration.reservation_id
        participant_name = self.participants.display_name(registration.participant_id)
        error: DomainError | None = None

        for attempt in range(1, APPROVAL_SAVE_ATTEMPTS + 1):
            expected_version = registration.version
            registration.approve_payment(
                actor.id,
                self.issuer.issue_qr(registration, event, participant_name),
                now,
            )
            try:
                return await self.registration_store.save(registration, expected_version=expected_version)
            except ConcurrentModificationError as e:
                error = e
                logger.warning(
                    "Approval conflicted with another change",
                    registration_id=registration.id,
                    attempt=attempt,
                    request_id=self.request_id,
                )

            fresh = await self.registration_store.get(registration.id)
            if fresh is None:
                error = RegistrationNotFoundError(registration.id)
                break
            try:
                fresh.ensure_payment_pending()
            except NotPendingError as e:
                error = e
                break
            registration = fresh

        if reservation_id:
            await self.ledger.return_units(reservation_id)
        raise error

    async def reject(self, registration_id: str, actor: Actor) -> PaymentResult:
        """Reject a pending payment.

        Frees the registration's place and releases the merchandise
        reservation, if any. Rejection never touches ``sold``.

        Args:
            registration_id: Registration awaiting approval.
            actor: Organizer or admin deciding.

        Returns:
            PaymentResult with the rejected registration.
        """
        now = self._clock()
        try:
            registration, event = await self._load(registration_id)
            event.ensure_managed_by(actor)

            expected_version = registration.version
            registration.reject_payment(actor.id, now)
            await self.registration_store.save(registration, expected_version=expected_version)

            await self.event_store.adjust_registration_count(event.id, -1)
            if registration.reservation_id:
                await self._release_for_rejection(registration.reservation_id)

        except DomainError as e:
            logger.info(
                "Payment rejection refused",
                registration_id=registration_id,
                actor_id=actor.id,
                error_code=e.code,
                request_id=self.request_id,
            )
            return PaymentResult.failure(e)

        logger.info(
            "Payment rejected",
            registration_id=registration_id,
            event_id=registration.event_id,
            rejected_by=actor.id,
            request_id=self.request_id,
        )
        self.dispatcher.publish(registration.collect_events())
        return PaymentResult(registration=registration)

    async def _release_for_rejection(self, reservation_id: str) -> None:
        try:
            await self.ledger.release(reservation_id)
        except AlreadyFinalizedError:
            # A racing approval finalized first; its save loses and returns the units
            logger.warning(
                "Rejected reservation was finalized concurrently",
                reservation_id=reservation_id,
                request_id=self.request_id,
            )

    async def upload_proof(
        self,
        registration_id: str,
        actor: Actor,
        content: bytes,
        filename: str,
    ) -> PaymentResult:
        """Attach a payment proof to the actor's pending registration.

        Args:
            registration_id: Registration paid for.
            actor: Registrant uploading.
            content: Proof file bytes.
            filename: Original filename.

        Returns:
            PaymentResult with the updated registration.
        """
        now = self._clock()
        try:
            registration, _ = await self._load(registration_id)
            registration.ensure_owned_by(actor)
            if registration.status != RegistrationStatus.PENDING:
                raise NotPendingError(registration.id, registration.payment_status.value)

            proof_ref = await self.proof_storage.store_proof(content, filename)

            expected_version = registration.version
            registration.attach_payment_proof(actor, proof_ref, now)
            await self.registration_store.save(registration, expected_version=expected_version)

        except DomainError as e:
            logger.info(
                "Payment proof refused",
                registration_id=registration_id,
                actor_id=actor.id,
                error_code=e.code,
                request_id=self.request_id,
            )
            return PaymentResult.failure(e)

        logger.info(
            "Payment proof uploaded",
            registration_id=registration_id,
            proof_ref=proof_ref,
            request_id=self.request_id,
        )
        self.dispatcher.publish(registration.collect_events())
        return PaymentResult(registration=registration)

    async def list_pending_payments(self, event_id: str, actor: Actor) -> PendingPaymentsResult:
        """List registrations of an event awaiting a payment decision."""
        try:
            event = await self.event_store.get(event_id)
            if event is None:
                raise EventNotFoundError(event_id)
            event.ensure_managed_by(actor)
        except DomainError as e:
            return PendingPaymentsResult.failure(e)

        registrations = await self.registration_store.list_for_event(event.id, {RegistrationStatus.PENDING})
        pending = [r for r in registrations if r.payment_status == PaymentStatus.PENDING]
        return PendingPaymentsResult(registrations=pending)


def get_payment_service(request_id: str | None = None) -> PaymentService:
    """Get payment service instance."""
    return PaymentService(request_id=request_id)
