"""Shared fixtures for E2E tests.

Scenarios drive the whole API through the gateway headers, with the
in-memory stores and a recording notification gateway.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from festival.infrastructure.config import settings
from festival.main import app


@pytest.fixture
def auth_client() -> TestClient:
    """Create test client with valid API key authentication."""
    return TestClient(
        app,
        headers={
            "Authorization": f"Bearer {settings.api_key}",
            "X-Request-ID": "e2e-test-request",
        },
    )


@pytest.fixture
def as_user() -> Callable[..., dict[str, str]]:
    """Build gateway identity headers for a user."""

    def _headers(user_id: str, role: str = "participant", participant_type: str = "non-iiit") -> dict[str, str]:
        return {
            "X-User-ID": user_id,
            "X-User-Role": role,
            "X-Participant-Type": participant_type,
            "X-User-Name": user_id.removeprefix("user-").title(),
        }

    return _headers


@pytest.fixture
def organizer(as_user) -> dict[str, str]:
    return as_user("org-1", role="organizer")


@pytest.fixture
def schedule() -> Callable[..., dict[str, Any]]:
    """Event dates relative to now."""

    def _schedule(start_in: timedelta, deadline_in: timedelta | None = None) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {
            "event_start_date": (now + start_in).isoformat(),
            "registration_deadline": (now + deadline_in).isoformat() if deadline_in is not None else None,
        }

    return _schedule
