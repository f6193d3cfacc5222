"""Tests for the ticket issuer."""

import base64
import json
import re
from itertools import cycle

import pytest

from festival.application.ticket_issuer import CROCKFORD_ALPHABET, TicketIssuer, TicketPayload
from festival.domain.entities import Registration
from festival.domain.exceptions import (
    DuplicateTicketIdError,
    EventMismatchError,
    MalformedPayloadError,
    TicketAllocationError,
)

TICKET_ID_PATTERN = re.compile(rf"^FEL-[{CROCKFORD_ALPHABET}]{{10}}$")


class TestTicketIds:
    """Tests for ticket ID minting."""

    def test_format(self, issuer: TicketIssuer) -> None:
        """IDs are FEL- followed by ten Crockford base32 characters."""
        assert TICKET_ID_PATTERN.match(issuer.issue_ticket_id())

    def test_alphabet_excludes_ambiguous_letters(self) -> None:
        for letter in "ILOU":
            assert letter not in CROCKFORD_ALPHABET
        assert len(CROCKFORD_ALPHABET) == 32

    def test_ten_thousand_ids_are_unique(self, issuer: TicketIssuer) -> None:
        ids = {issuer.issue_ticket_id() for _ in range(10_000)}

        assert len(ids) == 10_000
        assert all(TICKET_ID_PATTERN.match(ticket_id) for ticket_id in ids)

    def test_custom_prefix_and_length(self) -> None:
        issuer = TicketIssuer(prefix="MERCH", length=6)

        ticket_id = issuer.issue_ticket_id()

        assert ticket_id.startswith("MERCH-")
        assert len(ticket_id) == len("MERCH-") + 6


class TestAllocate:
    """Tests for collision retry."""

    @pytest.mark.asyncio
    async def test_retries_after_collision(self) -> None:
        """A taken ID is replaced by a fresh one."""
        candidates = iter(["FEL-TAKEN00000", "FEL-TAKEN00000", "FEL-FREE000000"])
        issuer = TicketIssuer(id_factory=lambda: next(candidates))
        taken = {"FEL-TAKEN00000"}
        tried: list[str] = []

        async def insert(ticket_id: str) -> str:
            tried.append(ticket_id)
            if ticket_id in taken:
                raise DuplicateTicketIdError(ticket_id)
            taken.add(ticket_id)
            return ticket_id

        assert await issuer.allocate(insert) == "FEL-FREE000000"
        assert tried == ["FEL-TAKEN00000", "FEL-TAKEN00000", "FEL-FREE000000"]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self) -> None:
        issuer = TicketIssuer(max_attempts=3, id_factory=lambda: "FEL-TAKEN00000")
        calls = 0

        async def insert(ticket_id: str) -> str:
            nonlocal calls
            calls += 1
            raise DuplicateTicketIdError(ticket_id)

        with pytest.raises(TicketAllocationError) as exc_info:
            await issuer.allocate(insert)

        assert calls == 3
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self) -> None:
        issuer = TicketIssuer(id_factory=cycle(["FEL-A"]).__next__)

        async def insert(ticket_id: str) -> str:
            raise RuntimeError("database down")

        with pytest.raises(RuntimeError):
            await issuer.allocate(insert)

    @pytest.mark.asyncio
    async def test_store_collision_is_retried(self, registration_store) -> None:
        """The registration store's unique ticket ID drives the retry."""
        await registration_store.add(
            Registration(ticket_id="FEL-TAKEN00000", event_id="event-1", participant_id="user-bob")
        )
        candidates = iter(["FEL-TAKEN00000", "FEL-FREE000000"])
        issuer = TicketIssuer(id_factory=lambda: next(candidates))

        async def insert(ticket_id: str) -> Registration:
            return await registration_store.add(
                Registration(ticket_id=ticket_id, event_id="event-1", participant_id="user-alice")
            )

        registration = await issuer.allocate(insert)

        assert registration.ticket_id == "FEL-FREE000000"


class TestQrCodes:
    """Tests for QR payloads and rendering."""

    def test_payload_fields(self, issuer: TicketIssuer, make_event, clock) -> None:
        event = make_event()
        registration = Registration(ticket_id="FEL-ABCDEFGHJK", event_id=event.id, participant_id="user-alice")

        payload = issuer.build_qr_payload(registration, event, participant_name="Alice")

        assert payload.to_dict() == {
            "ticketId": "FEL-ABCDEFGHJK",
            "eventId": event.id,
            "eventName": "Hackathon",
            "participantId": "user-alice",
            "participantName": "Alice",
            "type": "normal",
            "issuedAt": clock.now.isoformat(),
        }

    def test_render_returns_png_data_url(self, issuer: TicketIssuer) -> None:
        payload = TicketPayload(ticket_id="FEL-ABCDEFGHJK", event_id="event-1", participant_id="user-alice")

        data_url = issuer.render_qr(payload)

        assert data_url.startswith("data:image/png;base64,")
        png = base64.b64decode(data_url.split(",", 1)[1])
        assert png.startswith(b"\x89PNG")

    def test_issue_qr(self, issuer: TicketIssuer, make_event) -> None:
        event = make_event()
        registration = Registration(ticket_id="FEL-ABCDEFGHJK", event_id=event.id, participant_id="user-alice")

        assert issuer.issue_qr(registration, event).startswith("data:image/png;base64,")


class TestValidateScan:
    """Tests for scanned payload validation."""

    def test_valid_json_payload(self, issuer: TicketIssuer) -> None:
        raw = json.dumps({"ticketId": "FEL-ABCDEFGHJK", "eventId": "event-1", "participantId": "user-alice"})

        ticket = issuer.validate_scan(raw, "event-1")

        assert ticket.ticket_id == "FEL-ABCDEFGHJK"
        assert ticket.participant_id == "user-alice"
        assert ticket.registration_type == "normal"

    def test_dict_payload(self, issuer: TicketIssuer) -> None:
        data = {"ticketId": "FEL-ABCDEFGHJK", "eventId": "event-1", "participantId": "user-alice", "type": "merchandise"}

        assert issuer.validate_scan(data, "event-1").registration_type == "merchandise"

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2, 3]",
            '"FEL-ABCDEFGHJK"',
            '{"eventId": "event-1", "participantId": "user-alice"}',
            '{"ticketId": "", "eventId": "event-1", "participantId": "user-alice"}',
        ],
    )
    def test_malformed_payload(self, issuer: TicketIssuer, raw: str) -> None:
        with pytest.raises(MalformedPayloadError) as exc_info:
            issuer.validate_scan(raw, "event-1")

        assert exc_info.value.code == "MALFORMED_PAYLOAD"

    def test_ticket_for_other_event(self, issuer: TicketIssuer) -> None:
        raw = json.dumps({"ticketId": "FEL-ABCDEFGHJK", "eventId": "event-2", "participantId": "user-alice"})

        with pytest.raises(EventMismatchError) as exc_info:
            issuer.validate_scan(raw, "event-1")

        assert exc_info.value.details == {"expected_event_id": "event-1", "actual_event_id": "event-2"}
