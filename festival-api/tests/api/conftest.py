"""Shared fixtures for API tests."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from festival.infrastructure.config import settings
from festival.main import app


def user_headers(
    user_id: str,
    role: str = "participant",
    participant_type: str = "non-iiit",
    name: str = "",
) -> dict[str, str]:
    """Identity headers the gateway forwards for a signed-in user."""
    return {
        "X-User-ID": user_id,
        "X-User-Role": role,
        "X-Participant-Type": participant_type,
        "X-User-Name": name or user_id,
    }


@pytest.fixture
def organizer_headers() -> dict[str, str]:
    return user_headers("org-1", role="organizer", name="Olivia Organizer")


@pytest.fixture
def other_organizer_headers() -> dict[str, str]:
    return user_headers("org-2", role="organizer", name="Oscar Organizer")


@pytest.fixture
def alice_headers() -> dict[str, str]:
    return user_headers("user-alice", participant_type="iiit", name="Alice")


@pytest.fixture
def bob_headers() -> dict[str, str]:
    return user_headers("user-bob", name="Bob")


@pytest.fixture
def carol_headers() -> dict[str, str]:
    return user_headers("user-carol", name="Carol")


@pytest.fixture
def client() -> TestClient:
    """Create test client without authentication."""
    return TestClient(app)


@pytest.fixture
def auth_client() -> TestClient:
    """Create test client with valid API key authentication."""
    return TestClient(
        app,
        headers={"Authorization": f"Bearer {settings.api_key}"},
    )


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Get authentication headers."""
    return {"Authorization": f"Bearer {settings.api_key}"}


@pytest.fixture
def event_payload() -> Callable[..., dict[str, Any]]:
    """Build a published free event starting a week from now."""

    def _payload(**overrides: Any) -> dict[str, Any]:
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "name": "Hackathon",
            "status": "published",
            "event_start_date": (now + timedelta(days=7)).isoformat(),
            "registration_deadline": (now + timedelta(days=5)).isoformat(),
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture
def create_event(
    auth_client: TestClient,
    event_payload: Callable[..., dict[str, Any]],
    organizer_headers: dict[str, str],
) -> Callable[..., dict[str, Any]]:
    """Create an event as ``org-1`` and return the response body."""

    def _create(**overrides: Any) -> dict[str, Any]:
        response = auth_client.post("/events", json=event_payload(**overrides), headers=organizer_headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture
def merch_variants() -> list[dict[str, Any]]:
    return [
        {
            "id": "tee-m",
            "name": "Festival Tee",
            "price": {"amount": 49900, "currency": "INR"},
            "stock": 3,
            "size": "M",
            "color": "black",
        }
    ]
