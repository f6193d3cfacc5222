"""Payment proof storage.

Uploaded payment screenshots live outside the registration record; the
registration only keeps the reference returned here.
"""

import hashlib
from abc import ABC, abstractmethod

import structlog

from festival.domain.exceptions import InvalidProofError

logger = structlog.get_logger()

MAX_PROOF_BYTES = 5 * 1024 * 1024


class ProofStorage(ABC):
    """Interface for storing payment proof files."""

    @abstractmethod
    async def store_proof(self, content: bytes, filename: str) -> str:
        """Store a proof file.

        Args:
            content: Raw file bytes.
            filename: Original filename, kept for reference.

        Returns:
            Opaque reference to the stored file.
        """
        ...


class InMemoryProofStorage(ProofStorage):
    """Content-addressed in-memory storage.

    Identical uploads map to the same ``proof://<sha256>`` reference.
    """

    def __init__(self) -> None:
        self._files: dict[str, tuple[str, bytes]] = {}

    async def store_proof(self, content: bytes, filename: str) -> str:
        if not content:
            raise InvalidProofError("Payment proof is empty")
        if len(content) > MAX_PROOF_BYTES:
            raise InvalidProofError("Payment proof exceeds the 5 MB limit")
        digest = hashlib.sha256(content).hexdigest()
        reference = f"proof://{digest}"
        self._files[reference] = (filename, content)
        logger.info("Payment proof stored", proof_ref=reference, filename=filename, size=len(content))
        return reference

    def load(self, reference: str) -> tuple[str, bytes] | None:
        """Return ``(filename, content)`` for a reference, if stored."""
        return self._files.get(reference)


# Global storage instance
_storage: ProofStorage | None = None


def get_proof_storage() -> ProofStorage:
    """Get proof storage singleton."""
    global _storage
    if _storage is None:
        _storage = InMemoryProofStorage()
    return _storage


def reset_proof_storage() -> None:
    """Reset proof storage (for testing)."""
    global _storage
    _storage = InMemoryProofStorage()
