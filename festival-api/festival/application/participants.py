"""Participant directory.

Profiles live in the identity service. The core only needs display
names to print on tickets, including for team members whose tickets are
issued while someone else is making the request. The API layer records
every actor it sees here.
"""

import structlog

from festival.domain.value_objects import Actor

logger = structlog.get_logger()


class ParticipantDirectory:
    """In-memory map of user IDs to display names."""

    def __init__(self) -> None:
        self._names: dict[str, str] = {}

    def remember(self, actor: Actor) -> None:
        """Record an actor's display name if it has one."""
        if actor.name and self._names.get(actor.id) != actor.name:
            self._names[actor.id] = actor.name
            logger.debug("Participant name recorded", user_id=actor.id)

    def display_name(self, user_id: str) -> str:
        """Name to print on a ticket, falling back to the user ID."""
        return self._names.get(user_id, user_id)


# Global directory instance
_directory: ParticipantDirectory | None = None


def get_participant_directory() -> ParticipantDirectory:
    """Get participant directory singleton."""
    global _directory
    if _directory is None:
        _directory = ParticipantDirectory()
    return _directory


def reset_participant_directory() -> None:
    """Reset participant directory (for testing)."""
    global _directory
    _directory = ParticipantDirectory()
