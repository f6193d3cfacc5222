"""Value Objects for the domain layer.

Enumerations describing events and participants, the acting identity,
money, and the immutable records a registration carries (form answers,
variant snapshots, audit entries).
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Self

from festival.domain.base import ValueObject
from festival.domain.exceptions import CurrencyMismatchError, NegativeMoneyError


# ============================================================================
# Enumerations
# ============================================================================


class EventType(str, Enum):
    """Kind of event: a sign-up event or a merchandise sale."""

    NORMAL = "normal"
    MERCHANDISE = "merchandise"


class EventStatus(str, Enum):
    """Publication status of an event."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CLOSED = "closed"


class Eligibility(str, Enum):
    """Who may register for an event."""

    ALL = "all"
    IIIT_ONLY = "iiit-only"
    NON_IIIT_ONLY = "non-iiit-only"

    def admits(self, participant_type: "ParticipantType") -> bool:
        """Check whether a participant type may register.

        Args:
            participant_type: Participant's institute affiliation.

        Returns:
            True if the participant is eligible.
        """
        if self == Eligibility.IIIT_ONLY:
            return participant_type == ParticipantType.IIIT
        if self == Eligibility.NON_IIIT_ONLY:
            return participant_type != ParticipantType.IIIT
        return True


class ParticipantType(str, Enum):
    IIIT = "iiit"
    NON_IIIT = "non-iiit"


class ActorRole(str, Enum):
    PARTICIPANT = "participant"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class RegistrationType(str, Enum):
    NORMAL = "normal"
    MERCHANDISE = "merchandise"


# ============================================================================
# Identity
# ============================================================================


@dataclass(frozen=True)
class Actor(ValueObject):
    """The already-authenticated caller of an operation.

    Credentials are checked upstream; the domain only looks at the id
    and role to decide ownership and organizer rights.

    Attributes:
        id: User identifier.
        role: Participant, organizer or admin.
        name: Display name, printed on tickets.
        participant_type: Institute affiliation used for eligibility.
    """

    id: str
    role: ActorRole = ActorRole.PARTICIPANT
    name: str = ""
    participant_type: ParticipantType = ParticipantType.NON_IIIT

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValueError("Actor id cannot be empty")

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    def manages(self, organizer_id: str) -> bool:
        """Check whether the actor may act as organizer of an event.

        Args:
            organizer_id: Organizer of the event in question.

        Returns:
            True for the event's organizer and for admins.
        """
        return self.is_admin or self.id == organizer_id


# ============================================================================
# Money Value Object
# ============================================================================


@dataclass(frozen=True)
class Money(ValueObject):
    """Monetary amount in the smallest currency unit.

    Attributes:
        amount_minor: Amount in minor units (paise for INR).
        currency: ISO 4217 currency code.
    """

    amount_minor: int
    currency: str = "INR"

    def __post_init__(self) -> None:
        if self.amount_minor < 0:
            raise NegativeMoneyError(self.amount_minor)
        object.__setattr__(self, "currency", self.currency.upper())

    @classmethod
    def zero(cls, currency: str = "INR") -> Self:
        return cls(amount_minor=0, currency=currency)

    @classmethod
    def from_decimal(cls, amount: Decimal | int | float | str, currency: str = "INR") -> Self:
        """Create money from an amount in major units.

        Args:
            amount: Amount such as ``Decimal("249.50")``.
            currency: Currency code.

        Returns:
            Money instance.
        """
        minor = int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return cls(amount_minor=minor, currency=currency)

    def to_decimal(self) -> Decimal:
        return Decimal(self.amount_minor) / 100

    def __add__(self, other: "Money") -> "Money":
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)
        return Money(amount_minor=self.amount_minor + other.amount_minor, currency=self.currency)

    def __mul__(self, quantity: int) -> "Money":
        return Money(amount_minor=self.amount_minor * quantity, currency=self.currency)

    def __rmul__(self, quantity: int) -> "Money":
        return self.__mul__(quantity)

    def __str__(self) -> str:
        symbol = {"INR": "₹", "USD": "$"}.get(self.currency, "")
        return f"{symbol}{self.to_decimal():.2f} {self.currency}"

    def is_zero(self) -> bool:
        return self.amount_minor == 0


# ============================================================================
# Registration Form
# ============================================================================


@dataclass(frozen=True)
class CustomField(ValueObject):
    """A question on an event's registration form.

    Attributes:
        field_id: Stable identifier of the question.
        label: Question text shown to participants.
        field_type: Input type (text, email, number, dropdown, ...).
        required: Whether an answer is mandatory.
        options: Choices for dropdown, radio and checkbox fields.
    """

    field_id: str
    label: str
    field_type: str = "text"
    required: bool = False
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class FormResponse(ValueObject):
    """A participant's answer to one custom field."""

    field_id: str
    value: Any = None
    label: str = ""

    def is_blank(self) -> bool:
        """Check whether the answer counts as missing.

        Returns:
            True for None, empty or whitespace-only strings and empty lists.
        """
        if self.value is None:
            return True
        if isinstance(self.value, str):
            return not self.value.strip()
        if isinstance(self.value, (list, tuple)):
            return len(self.value) == 0
        return False

    def to_dict(self) -> dict[str, Any]:
        return {"field_id": self.field_id, "label": self.label, "value": self.value}


# ============================================================================
# Registration Snapshots and Audit Records
# ============================================================================


@dataclass(frozen=True)
class VariantDetails(ValueObject):
    """Snapshot of the variant a purchase was made for."""

    name: str
    size: str | None
    color: str | None
    price: Money

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "size": self.size,
            "color": self.color,
            "price_minor": self.price.amount_minor,
            "currency": self.price.currency,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            name=data["name"],
            size=data.get("size"),
            color=data.get("color"),
            price=Money(amount_minor=data["price_minor"], currency=data.get("currency", "INR")),
        )


@dataclass(frozen=True)
class AttendanceOverride(ValueObject):
    """Audit record for attendance marked by hand."""

    overridden_by: str
    reason: str
    overridden_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "overridden_by": self.overridden_by,
            "reason": self.reason,
            "overridden_at": self.overridden_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            overridden_by=data["overridden_by"],
            reason=data["reason"],
            overridden_at=datetime.fromisoformat(data["overridden_at"]),
        )


@dataclass(frozen=True)
class StatusChange(ValueObject):
    """One entry in a registration's status history.

    Attributes:
        from_status: Status before the change (None on creation).
        to_status: Status after the change.
        changed_at: When the change happened.
        changed_by: User who caused it, or "system".
        note: Optional free-text reason.
    """

    to_status: str
    changed_at: datetime
    changed_by: str = "system"
    from_status: str | None = None
    note: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_at": self.changed_at.isoformat(),
            "changed_by": self.changed_by,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            from_status=data.get("from_status"),
            to_status=data["to_status"],
            changed_at=datetime.fromisoformat(data["changed_at"]),
            changed_by=data.get("changed_by", "system"),
            note=data.get("note"),
        )
