"""Ticket issuer.

Mints ticket IDs, renders ticket QR codes and checks scanned payloads.

Ticket IDs are random, never sequential. Uniqueness is guaranteed by the
registration store rejecting a duplicate ``ticket_id``; :meth:`allocate`
simply tries again with a fresh ID.
"""

import base64
import json
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from typing import Any, TypeVar

import qrcode
import structlog
from qrcode.constants import ERROR_CORRECT_M

from festival.domain.base import utc_now
from festival.domain.entities import Event, Registration
from festival.domain.exceptions import (
    DuplicateTicketIdError,
    EventMismatchError,
    MalformedPayloadError,
    TicketAllocationError,
)
from festival.infrastructure.config import settings

logger = structlog.get_logger()

T = TypeVar("T")

# Crockford base32: no I, L, O or U.
CROCKFORD_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

REQUIRED_PAYLOAD_KEYS = ("ticketId", "eventId", "participantId")


@dataclass(frozen=True)
class TicketPayload:
    """Data encoded in a ticket QR code."""

    ticket_id: str
    event_id: str
    participant_id: str
    event_name: str = ""
    participant_name: str = ""
    registration_type: str = "normal"
    issued_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticketId": self.ticket_id,
            "eventId": self.event_id,
            "eventName": self.event_name,
            "participantId": self.participant_id,
            "participantName": self.participant_name,
            "type": self.registration_type,
            "issuedAt": self.issued_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TicketPayload":
        return cls(
            ticket_id=str(data["ticketId"]),
            event_id=str(data["eventId"]),
            participant_id=str(data["participantId"]),
            event_name=str(data.get("eventName") or ""),
            participant_name=str(data.get("participantName") or ""),
            registration_type=str(data.get("type") or "normal"),
            issued_at=data.get("issuedAt"),
        )


class TicketIssuer:
    """Issue ticket IDs and QR codes, validate scanned tickets."""

    def __init__(
        self,
        prefix: str | None = None,
        length: int | None = None,
        max_attempts: int | None = None,
        id_factory: Callable[[], str] | None = None,
        clock: Callable[[], datetime] = utc_now,
        request_id: str | None = None,
    ) -> None:
        """Initialize the issuer.

        Args:
            prefix: Ticket ID prefix.
            length: Number of random characters after the prefix.
            max_attempts: Insert attempts before giving up on allocation.
            id_factory: Replaces the random ID generator (used in tests).
            clock: Source of the ``issuedAt`` timestamp.
            request_id: Request ID for correlation.
        """
        self.prefix = prefix or settings.ticket_prefix
        self.length = length or settings.ticket_id_length
        self.max_attempts = max_attempts or settings.ticket_id_max_attempts
        self._id_factory = id_factory
        self._clock = clock
        self.request_id = request_id

    # -------------------------------------------------------------------------
    # Ticket IDs
    # -------------------------------------------------------------------------

    def issue_ticket_id(self) -> str:
        """Mint a new ticket ID, e.g. ``FEL-7K3M9QX2AB``."""
        if self._id_factory is not None:
            return self._id_factory()
        body = "".join(secrets.choice(CROCKFORD_ALPHABET) for _ in range(self.length))
        return f"{self.prefix}-{body}"

    async def allocate(self, insert: Callable[[str], Awaitable[T]]) -> T:
        """Run ``insert`` with fresh ticket IDs until one is accepted.

        Args:
            insert: Coroutine function storing a record under the given
                ticket ID. It must raise DuplicateTicketIdError when the
                ID is already taken.

        Returns:
            Whatever ``insert`` returned for the accepted ID.

        Raises:
            TicketAllocationError: Every attempt collided.
        """
        for attempt in range(1, self.max_attempts + 1):
            ticket_id = self.issue_ticket_id()
            try:
                return await insert(ticket_id)
            except DuplicateTicketIdError:
                logger.warning(
                    "Ticket ID collision",
                    ticket_id=ticket_id,
                    attempt=attempt,
                    request_id=self.request_id,
                )
        logger.error(
            "Ticket ID allocation failed",
            attempts=self.max_attempts,
            request_id=self.request_id,
        )
        raise TicketAllocationError(self.max_attempts)

    # -------------------------------------------------------------------------
    # QR Codes
    # -------------------------------------------------------------------------

    def build_qr_payload(
        self,
        registration: Registration,
        event: Event,
        participant_name: str = "",
    ) -> TicketPayload:
        """Build the data encoded into a registration's QR code."""
        return TicketPayload(
            ticket_id=registration.ticket_id,
            event_id=event.id,
            participant_id=registration.participant_id,
            event_name=event.name,
            participant_name=participant_name,
            registration_type=registration.registration_type.value,
            issued_at=self._clock().isoformat(),
        )

    def render_qr(self, payload: TicketPayload) -> str:
        """Render a payload as a PNG QR code.

        Returns:
            ``data:image/png;base64,...`` URL.
        """
        qr = qrcode.QRCode(
            error_correction=ERROR_CORRECT_M,
            box_size=settings.qr_box_size,
            border=settings.qr_border,
        )
        qr.add_data(json.dumps(payload.to_dict(), separators=(",", ":")))
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buffer = BytesIO()
        img.save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:image/png;base64,{encoded}"

    def issue_qr(
        self,
        registration: Registration,
        event: Event,
        participant_name: str = "",
    ) -> str:
        """Build and render the QR code for a registration."""
        return self.render_qr(self.build_qr_payload(registration, event, participant_name))

    # -------------------------------------------------------------------------
    # Scanning
    # -------------------------------------------------------------------------

    def validate_scan(self, payload: str | dict[str, Any], expected_event_id: str) -> TicketPayload:
        """Parse a scanned QR payload and check it belongs to an event.

        Args:
            payload: Decoded QR text (JSON) or an already parsed dict.
            expected_event_id: Event the scanner is checking in for.

        Returns:
            Parsed ticket payload.

        Raises:
            MalformedPayloadError: Not JSON, not an object, or missing
                one of ticketId, eventId or participantId.
            EventMismatchError: The ticket belongs to another event.
        """
        if isinstance(payload, str):
            try:
                data = json.loads(payload)
            except json.JSONDecodeError as e:
                raise MalformedPayloadError(f"QR data is not valid JSON: {e.msg}") from e
        else:
            data = payload

        if not isinstance(data, dict):
            raise MalformedPayloadError("QR data must be a JSON object")

        missing = [key for key in REQUIRED_PAYLOAD_KEYS if not data.get(key)]
        if missing:
            raise MalformedPayloadError(f"QR data is missing {', '.join(missing)}")

        ticket = TicketPayload.from_dict(data)
        if ticket.event_id != expected_event_id:
            raise EventMismatchError(expected_event_id, ticket.event_id)
        return ticket
