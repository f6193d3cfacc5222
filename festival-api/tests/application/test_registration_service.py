"""Tests for the registration service."""

import asyncio
import json

import pytest

from festival.application.registration_service import RegistrationService
from festival.domain.entities import DEFAULT_OVERRIDE_REASON
from festival.domain.state_machines import PaymentStatus, RegistrationStatus, ReservationStatus
from festival.domain.value_objects import CustomField, Eligibility, EventStatus, FormResponse, Money


class TestRegisterForEvent:
    """Tests for normal event registration."""

    @pytest.mark.asyncio
    async def test_free_event_confirms_immediately(
        self, registration_service: RegistrationService, add_event, alice, event_store, deliver
    ) -> None:
        """A free registration is confirmed and carries its QR ticket."""
        event = await add_event()

        result = await registration_service.register_for_event(event.id, alice)

        assert result.success
        registration = result.registration
        assert registration.status == RegistrationStatus.CONFIRMED
        assert registration.payment_status == PaymentStatus.NOT_REQUIRED
        assert registration.ticket_id.startswith("FEL-")
        assert registration.qr_code_data.startswith("data:image/png;base64,")
        assert registration.attempt == 1

        stored = await event_store.get(event.id)
        assert stored.registration_count == 1
        assert stored.form_locked
        sent = await deliver()
        assert [(n.to, n.template) for n in sent] == [(alice.id, "registration_confirmed")]

    @pytest.mark.asyncio
    async def test_paid_event_waits_for_payment(
        self, registration_service: RegistrationService, add_event, alice, deliver
    ) -> None:
        event = await add_event(registration_fee=Money(amount_minor=25000))

        result = await registration_service.register_for_event(event.id, alice)

        registration = result.registration
        assert registration.status == RegistrationStatus.PENDING
        assert registration.payment_status == PaymentStatus.PENDING
        assert registration.total_amount == Money(amount_minor=25000)
        assert registration.qr_code_data is None
        assert [n.template for n in await deliver()] == ["payment_required"]

    @pytest.mark.asyncio
    async def test_unknown_event(self, registration_service: RegistrationService, alice) -> None:
        result = await registration_service.register_for_event("missing", alice)

        assert not result.success
        assert result.error_code == "EVENT_NOT_FOUND"
        assert result.status_code == 404

    @pytest.mark.asyncio
    async def test_draft_event_not_open(self, registration_service: RegistrationService, add_event, alice) -> None:
        event = await add_event(status=EventStatus.DRAFT)

        result = await registration_service.register_for_event(event.id, alice)

        assert result.error_code == "EVENT_NOT_OPEN"

    @pytest.mark.asyncio
    async def test_merchandise_event_needs_purchase_flow(
        self, registration_service: RegistrationService, add_merch_event, alice
    ) -> None:
        event = await add_merch_event()

        result = await registration_service.register_for_event(event.id, alice)

        assert result.error_code == "EVENT_NOT_OPEN"

    @pytest.mark.asyncio
    async def test_deadline_passed(self, registration_service: RegistrationService, add_event, alice, clock) -> None:
        event = await add_event()
        clock.advance(days=6)

        result = await registration_service.register_for_event(event.id, alice)

        assert result.error_code == "DEADLINE_PASSED"

    @pytest.mark.asyncio
    async def test_event_full(self, registration_service: RegistrationService, add_event, alice, bob) -> None:
        event = await add_event(registration_limit=1)
        await registration_service.register_for_event(event.id, alice)

        result = await registration_service.register_for_event(event.id, bob)

        assert result.error_code == "EVENT_FULL"
        assert result.status_code == 409

    @pytest.mark.asyncio
    async def test_eligibility_mismatch(self, registration_service: RegistrationService, add_event, alice, bob) -> None:
        """IIIT-only events turn away non-IIIT participants."""
        event = await add_event(eligibility=Eligibility.IIIT_ONLY)

        assert (await registration_service.register_for_event(event.id, alice)).success
        result = await registration_service.register_for_event(event.id, bob)

        assert result.error_code == "ELIGIBILITY_MISMATCH"
        assert result.status_code == 403

    @pytest.mark.asyncio
    async def test_already_registered(self, registration_service: RegistrationService, add_event, alice) -> None:
        event = await add_event()
        await registration_service.register_for_event(event.id, alice)

        result = await registration_service.register_for_event(event.id, alice)

        assert result.error_code == "ALREADY_REGISTERED"

    @pytest.mark.asyncio
    async def test_missing_required_field(self, registration_service: RegistrationService, add_event, alice) -> None:
        event = await add_event(
            custom_fields=[
                CustomField(field_id="tshirt", label="T-shirt size", required=True),
                CustomField(field_id="diet", label="Dietary needs"),
            ]
        )

        result = await registration_service.register_for_event(
            event.id, alice, [FormResponse(field_id="diet", value="vegan")]
        )

        assert result.error_code == "MISSING_REQUIRED_FIELD"
        assert result.details["field_id"] == "tshirt"

    @pytest.mark.asyncio
    async def test_form_answers_are_labelled(
        self, registration_service: RegistrationService, add_event, alice
    ) -> None:
        """Answers to unknown fields are dropped, known ones get their label."""
        event = await add_event(custom_fields=[CustomField(field_id="tshirt", label="T-shirt size", required=True)])

        result = await registration_service.register_for_event(
            event.id,
            alice,
            [FormResponse(field_id="tshirt", value="L"), FormResponse(field_id="extra", value="x")],
        )

        assert result.registration.form_responses == [
            FormResponse(field_id="tshirt", value="L", label="T-shirt size")
        ]

    @pytest.mark.asyncio
    async def test_reregistration_after_cancel_counts_attempts(
        self, registration_service: RegistrationService, add_event, alice
    ) -> None:
        event = await add_event()
        first = (await registration_service.register_for_event(event.id, alice)).registration
        await registration_service.cancel(first.id, alice)

        second = (await registration_service.register_for_event(event.id, alice)).registration

        assert second.attempt == 2
        assert second.ticket_id != first.ticket_id

    @pytest.mark.asyncio
    async def test_concurrent_last_seat(
        self, registration_service: RegistrationService, add_event, alice, bob, event_store
    ) -> None:
        """Two participants racing for the last place: one wins."""
        event = await add_event(registration_limit=1)

        results = await asyncio.gather(
            registration_service.register_for_event(event.id, alice),
            registration_service.register_for_event(event.id, bob),
        )

        assert sorted(r.success for r in results) == [False, True]
        assert [r.error_code for r in results if not r.success] == ["EVENT_FULL"]
        assert (await event_store.get(event.id)).registration_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_registration(
        self, registration_service: RegistrationService, add_event, alice, event_store
    ) -> None:
        """Double-submitting leaves one registration and one counted place."""
        event = await add_event()

        results = await asyncio.gather(
            registration_service.register_for_event(event.id, alice),
            registration_service.register_for_event(event.id, alice),
        )

        assert sorted(r.success for r in results) == [False, True]
        assert [r.error_code for r in results if not r.success] == ["ALREADY_REGISTERED"]
        assert (await event_store.get(event.id)).registration_count == 1


class TestPurchaseMerchandise:
    """Tests for merchandise purchases."""

    @pytest.mark.asyncio
    async def test_purchase_holds_stock_until_approval(
        self, registration_service: RegistrationService, add_merch_event, alice, event_store, ledger
    ) -> None:
        event = await add_merch_event(stock=10)

        result = await registration_service.purchase_merchandise(event.id, alice, "tee-m", 2)

        registration = result.registration
        assert registration.status == RegistrationStatus.PENDING
        assert registration.total_amount == Money(amount_minor=99800)
        assert registration.variant_details.name == "Festival Tee"
        reservation = await ledger.get(registration.reservation_id)
        assert reservation.status == ReservationStatus.HELD
        stored = await event_store.get(event.id)
        assert stored.get_variant("tee-m").stock == 8
        assert stored.get_variant("tee-m").sold == 0
        assert stored.registration_count == 1

    @pytest.mark.asyncio
    async def test_purchase_without_approval_is_sold(
        self, registration_service: RegistrationService, add_merch_event, alice, event_store
    ) -> None:
        event = await add_merch_event(stock=10, requires_payment_approval=False)

        result = await registration_service.purchase_merchandise(event.id, alice, "tee-m", 1)

        assert result.registration.status == RegistrationStatus.CONFIRMED
        assert result.registration.qr_code_data
        variant = (await event_store.get(event.id)).get_variant("tee-m")
        assert (variant.stock, variant.sold) == (9, 1)

    @pytest.mark.asyncio
    async def test_out_of_stock(self, registration_service: RegistrationService, add_merch_event, alice) -> None:
        event = await add_merch_event(stock=1)

        result = await registration_service.purchase_merchandise(event.id, alice, "tee-m", 2)

        assert result.error_code == "OUT_OF_STOCK"
        assert result.status_code == 409

    @pytest.mark.asyncio
    async def test_purchase_limit_across_purchases(
        self, registration_service: RegistrationService, add_merch_event, alice
    ) -> None:
        event = await add_merch_event(purchase_limit=2)
        await registration_service.purchase_merchandise(event.id, alice, "tee-m", 2)

        result = await registration_service.purchase_merchandise(event.id, alice, "tee-m", 1)

        assert result.error_code == "PURCHASE_LIMIT_EXCEEDED"

    @pytest.mark.asyncio
    async def test_invalid_quantity(self, registration_service: RegistrationService, add_merch_event, alice) -> None:
        event = await add_merch_event()

        result = await registration_service.purchase_merchandise(event.id, alice, "tee-m", 0)

        assert result.error_code == "INVALID_QUANTITY"

    @pytest.mark.asyncio
    async def test_unknown_variant(self, registration_service: RegistrationService, add_merch_event, alice) -> None:
        event = await add_merch_event()

        result = await registration_service.purchase_merchandise(event.id, alice, "hoodie", 1)

        assert result.error_code == "VARIANT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_normal_event_refuses_purchase(
        self, registration_service: RegistrationService, add_event, alice
    ) -> None:
        event = await add_event()

        result = await registration_service.purchase_merchandise(event.id, alice, "tee-m", 1)

        assert result.error_code == "EVENT_NOT_OPEN"

    @pytest.mark.asyncio
    async def test_concurrent_buyers_never_oversell(
        self, registration_service: RegistrationService, add_merch_event, event_store, alice, bob, carol, dave
    ) -> None:
        event = await add_merch_event(stock=2)

        results = await asyncio.gather(
            *(registration_service.purchase_merchandise(event.id, actor, "tee-m", 1) for actor in (alice, bob, carol, dave))
        )

        assert sum(r.success for r in results) == 2
        assert {r.error_code for r in results if not r.success} == {"OUT_OF_STOCK"}
        assert (await event_store.get(event.id)).get_variant("tee-m").stock == 0


class TestCancel:
    """Tests for cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_frees_the_place(
        self, registration_service: RegistrationService, add_event, alice, event_store, deliver
    ) -> None:
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration

        result = await registration_service.cancel(registration.id, alice)

        assert result.registration.status == RegistrationStatus.CANCELLED
        assert result.registration.qr_code_data is None
        assert (await event_store.get(event.id)).registration_count == 0
        assert (await deliver())[-1].template == "registration_cancelled"

    @pytest.mark.asyncio
    async def test_cancel_purchase_returns_stock(
        self, registration_service: RegistrationService, add_merch_event, alice, event_store
    ) -> None:
        event = await add_merch_event(stock=5, requires_payment_approval=False)
        registration = (await registration_service.purchase_merchandise(event.id, alice, "tee-m", 2)).registration

        await registration_service.cancel(registration.id, alice)

        variant = (await event_store.get(event.id)).get_variant("tee-m")
        assert (variant.stock, variant.sold) == (5, 0)

    @pytest.mark.asyncio
    async def test_cancel_twice(self, registration_service: RegistrationService, add_event, alice, event_store) -> None:
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration
        await registration_service.cancel(registration.id, alice)

        result = await registration_service.cancel(registration.id, alice)

        assert result.error_code == "ALREADY_CANCELLED"
        assert (await event_store.get(event.id)).registration_count == 0

    @pytest.mark.asyncio
    async def test_cancel_someone_elses_registration(
        self, registration_service: RegistrationService, add_event, alice, bob
    ) -> None:
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration

        result = await registration_service.cancel(registration.id, bob)

        assert result.error_code == "NOT_OWNER"
        assert result.status_code == 403

    @pytest.mark.asyncio
    async def test_cancel_after_start(
        self, registration_service: RegistrationService, add_event, alice, clock
    ) -> None:
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration
        clock.advance(days=7)

        result = await registration_service.cancel(registration.id, alice)

        assert result.error_code == "EVENT_STARTED"

    @pytest.mark.asyncio
    async def test_concurrent_cancels_release_once(
        self, registration_service: RegistrationService, add_event, alice, event_store
    ) -> None:
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration

        results = await asyncio.gather(
            registration_service.cancel(registration.id, alice),
            registration_service.cancel(registration.id, alice),
        )

        assert sorted(r.success for r in results) == [False, True]
        assert (await event_store.get(event.id)).registration_count == 0


class TestAttendance:
    """Tests for check-in."""

    @pytest.mark.asyncio
    async def test_mark_attended_after_start(
        self, registration_service: RegistrationService, add_event, alice, organizer, clock
    ) -> None:
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration
        clock.advance(days=7)

        result = await registration_service.mark_attended(registration.id, organizer)

        assert result.registration.status == RegistrationStatus.ATTENDED
        assert result.registration.attended
        assert result.registration.attended_at == clock.now
        assert result.registration.attendance_override is None

    @pytest.mark.asyncio
    async def test_attendance_before_start(
        self, registration_service: RegistrationService, add_event, alice, organizer
    ) -> None:
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration

        result = await registration_service.mark_attended(registration.id, organizer)

        assert result.error_code == "EVENT_NOT_STARTED"

    @pytest.mark.asyncio
    async def test_attendance_twice(
        self, registration_service: RegistrationService, add_event, alice, organizer, clock
    ) -> None:
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration
        clock.advance(days=7)
        await registration_service.mark_attended(registration.id, organizer)

        result = await registration_service.mark_attended(registration.id, organizer)

        assert result.error_code == "ALREADY_ATTENDED"

    @pytest.mark.asyncio
    async def test_pending_registration_not_confirmed(
        self, registration_service: RegistrationService, add_event, alice, organizer, clock
    ) -> None:
        event = await add_event(registration_fee=Money(amount_minor=100))
        registration = (await registration_service.register_for_event(event.id, alice)).registration
        clock.advance(days=7)

        result = await registration_service.mark_attended(registration.id, organizer)

        assert result.error_code == "NOT_CONFIRMED"

    @pytest.mark.asyncio
    async def test_other_organizer_refused(
        self, registration_service: RegistrationService, add_event, alice, other_organizer, admin, clock
    ) -> None:
        """Only the event's organizer or an admin checks participants in."""
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration
        clock.advance(days=7)

        refused = await registration_service.mark_attended(registration.id, other_organizer)
        accepted = await registration_service.mark_attended(registration.id, admin)

        assert refused.error_code == "NOT_ORGANIZER"
        assert accepted.success

    @pytest.mark.asyncio
    async def test_manual_override_keeps_audit_record(
        self, registration_service: RegistrationService, add_event, alice, organizer, clock
    ) -> None:
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration
        clock.advance(days=7, hours=1)

        result = await registration_service.manual_override(registration.id, organizer, "  Phone battery dead ")

        override = result.registration.attendance_override
        assert override.overridden_by == organizer.id
        assert override.reason == "Phone battery dead"
        assert override.overridden_at == clock.now

    @pytest.mark.asyncio
    async def test_manual_override_default_reason(
        self, registration_service: RegistrationService, add_event, alice, organizer, clock
    ) -> None:
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration
        clock.advance(days=7)

        result = await registration_service.manual_override(registration.id, organizer)

        assert result.registration.attendance_override.reason == DEFAULT_OVERRIDE_REASON


class TestScanTicket:
    """Tests for QR check-in."""

    @pytest.mark.asyncio
    async def test_scan_marks_attendance(
        self, registration_service: RegistrationService, add_event, alice, organizer, issuer, clock
    ) -> None:
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration
        qr_data = json.dumps(issuer.build_qr_payload(registration, event, "Alice").to_dict())
        clock.advance(days=7)

        result = await registration_service.scan_ticket(qr_data, event.id, organizer)

        assert result.success
        assert result.registration.id == registration.id
        assert result.registration.status == RegistrationStatus.ATTENDED

    @pytest.mark.asyncio
    async def test_scan_unknown_ticket(
        self, registration_service: RegistrationService, add_event, organizer
    ) -> None:
        event = await add_event()
        qr_data = {"ticketId": "FEL-0000000000", "eventId": event.id, "participantId": "user-alice"}

        result = await registration_service.scan_ticket(qr_data, event.id, organizer)

        assert result.error_code == "TICKET_NOT_FOUND"
        assert result.status_code == 404

    @pytest.mark.asyncio
    async def test_scan_payload_lying_about_event(
        self, registration_service: RegistrationService, add_event, alice, organizer
    ) -> None:
        """The stored registration decides which event a ticket belongs to."""
        event = await add_event()
        other = await add_event(name="Workshop")
        registration = (await registration_service.register_for_event(other.id, alice)).registration
        qr_data = {"ticketId": registration.ticket_id, "eventId": event.id, "participantId": alice.id}

        result = await registration_service.scan_ticket(qr_data, event.id, organizer)

        assert result.error_code == "EVENT_MISMATCH"

    @pytest.mark.asyncio
    async def test_scan_malformed(self, registration_service: RegistrationService, add_event, organizer) -> None:
        event = await add_event()

        result = await registration_service.scan_ticket("garbage", event.id, organizer)

        assert result.error_code == "MALFORMED_PAYLOAD"

    @pytest.mark.asyncio
    async def test_scan_by_participant_refused(
        self, registration_service: RegistrationService, add_event, alice
    ) -> None:
        event = await add_event()
        qr_data = {"ticketId": "FEL-0000000000", "eventId": event.id, "participantId": alice.id}

        result = await registration_service.scan_ticket(qr_data, event.id, alice)

        assert result.error_code == "NOT_ORGANIZER"


class TestReads:
    """Tests for registration views."""

    @pytest.mark.asyncio
    async def test_get_registration_visibility(
        self, registration_service: RegistrationService, add_event, alice, bob, organizer
    ) -> None:
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration

        assert (await registration_service.get_registration(registration.id, alice)).success
        assert (await registration_service.get_registration(registration.id, organizer)).success
        assert (await registration_service.get_registration(registration.id, bob)).error_code == "NOT_OWNER"
        missing = await registration_service.get_registration("missing", alice)
        assert missing.error_code == "REGISTRATION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_list_participant_registrations(
        self, registration_service: RegistrationService, add_event, alice, bob, clock
    ) -> None:
        """Newest first, only the actor's own."""
        first = await add_event(name="First")
        second = await add_event(name="Second")
        await registration_service.register_for_event(first.id, alice)
        clock.advance(minutes=1)
        await registration_service.register_for_event(second.id, alice)
        await registration_service.register_for_event(second.id, bob)

        result = await registration_service.list_participant_registrations(alice)

        assert [r.event_id for r in result.registrations] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_list_event_registrations_by_status(
        self, registration_service: RegistrationService, add_event, alice, bob, organizer
    ) -> None:
        event = await add_event()
        registration = (await registration_service.register_for_event(event.id, alice)).registration
        await registration_service.register_for_event(event.id, bob)
        await registration_service.cancel(registration.id, alice)

        everything = await registration_service.list_event_registrations(event.id, organizer)
        confirmed = await registration_service.list_event_registrations(
            event.id, organizer, RegistrationStatus.CONFIRMED
        )

        assert len(everything.registrations) == 2
        assert [r.participant_id for r in confirmed.registrations] == [bob.id]

    @pytest.mark.asyncio
    async def test_list_event_registrations_needs_organizer(
        self, registration_service: RegistrationService, add_event, alice
    ) -> None:
        event = await add_event()

        result = await registration_service.list_event_registrations(event.id, alice)

        assert result.error_code == "NOT_ORGANIZER"

    @pytest.mark.asyncio
    async def test_attendance_summary(
        self, registration_service: RegistrationService, add_event, alice, bob, carol, organizer, clock
    ) -> None:
        event = await add_event()
        registrations = [
            (await registration_service.register_for_event(event.id, actor)).registration
            for actor in (alice, bob, carol)
        ]
        await registration_service.cancel(registrations[2].id, carol)
        clock.advance(days=7)
        await registration_service.mark_attended(registrations[0].id, organizer)

        result = await registration_service.attendance_summary(event.id, organizer)

        assert result.summary.to_dict() == {
            "event_id": event.id,
            "total": 2,
            "attended": 1,
            "not_attended": 1,
        }
