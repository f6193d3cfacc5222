"""Store factories.

``settings.storage_backend`` picks the implementation: ``memory`` keeps
everything in process, ``sql`` uses the SQLAlchemy engine configured
by ``settings.database_url``.
"""

from festival.infrastructure.config import settings
from festival.infrastructure.stores.interfaces import EventStore, RegistrationStore, TeamStore
from festival.infrastructure.stores.memory import (
    InMemoryEventStore,
    InMemoryRegistrationStore,
    InMemoryTeamStore,
)

_event_store: EventStore | None = None
_registration_store: RegistrationStore | None = None
_team_store: TeamStore | None = None


def _build_stores() -> tuple[EventStore, RegistrationStore, TeamStore]:
    if settings.storage_backend == "sql":
        from festival.infrastructure.database import get_session_factory
        from festival.infrastructure.stores.sql import SqlEventStore, SqlRegistrationStore, SqlTeamStore

        factory = get_session_factory()
        return SqlEventStore(factory), SqlRegistrationStore(factory), SqlTeamStore(factory)
    if settings.storage_backend != "memory":
        raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
    return InMemoryEventStore(), InMemoryRegistrationStore(), InMemoryTeamStore()


def _ensure_stores() -> None:
    global _event_store, _registration_store, _team_store
    if _event_store is None or _registration_store is None or _team_store is None:
        _event_store, _registration_store, _team_store = _build_stores()


def get_event_store() -> EventStore:
    """Get event store singleton."""
    _ensure_stores()
    return _event_store


def get_registration_store() -> RegistrationStore:
    """Get registration store singleton."""
    _ensure_stores()
    return _registration_store


def get_team_store() -> TeamStore:
    """Get team store singleton."""
    _ensure_stores()
    return _team_store


def reset_stores() -> None:
    """Reset all stores (for testing)."""
    global _event_store, _registration_store, _team_store
    _event_store, _registration_store, _team_store = _build_stores()


__all__ = [
    "EventStore",
    "RegistrationStore",
    "TeamStore",
    "get_event_store",
    "get_registration_store",
    "get_team_store",
    "reset_stores",
]
