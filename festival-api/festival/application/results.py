"""Service result base type.

Application services never raise domain errors to their callers. They
return a result object carrying either the affected entity or the error
code and HTTP status taken from the ``DomainError`` that stopped them.
"""

from dataclasses import dataclass, field
from typing import Any, TypeVar

from festival.domain.exceptions import DomainError

R = TypeVar("R", bound="ServiceResult")


@dataclass
class ServiceResult:
    """Common fields of all service results."""

    success: bool = True
    error: str | None = None
    error_code: str | None = None
    status_code: int = 200
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls: type[R], error: DomainError) -> R:
        """Build a failed result from a domain error."""
        return cls(
            success=False,
            error=error.message,
            error_code=error.code,
            status_code=error.status_code,
            details=dict(error.details),
        )
