"""Tests for payment approval endpoints."""

from typing import Any

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def paid_registration(auth_client: TestClient, create_event, alice_headers):
    """Pending registration of alice for a paid event."""

    def _register(**overrides: Any) -> dict[str, Any]:
        overrides.setdefault("registration_fee", {"amount": 20000, "currency": "INR"})
        event = create_event(**overrides)
        response = auth_client.post(f"/events/{event['id']}/registrations", json={}, headers=alice_headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _register


@pytest.fixture
def merch_purchase(auth_client: TestClient, create_event, merch_variants, alice_headers):
    """Pending purchase of two tees by alice."""
    event = create_event(event_type="merchandise", variants=merch_variants)
    response = auth_client.post(
        f"/events/{event['id']}/purchases",
        json={"variant_id": "tee-m", "quantity": 2},
        headers=alice_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def upload(client: TestClient, registration_id: str, headers: dict[str, str], content: bytes = b"upi-ref-4242"):
    return client.post(
        f"/registrations/{registration_id}/payment-proof",
        files={"file": ("upi.png", content, "image/png")},
        headers=headers,
    )


class TestUploadProof:
    """Tests for POST /registrations/{id}/payment-proof."""

    def test_upload_attaches_reference(
        self, auth_client: TestClient, paid_registration, alice_headers, gateway
    ) -> None:
        registration = paid_registration()

        response = upload(auth_client, registration["id"], alice_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["payment_proof_ref"].startswith("proof://")
        assert data["status"] == "pending"
        assert ("org-1", "payment_proof_uploaded") in [(n.to, n.template) for n in gateway.sent]

    def test_empty_file(self, auth_client: TestClient, paid_registration, alice_headers) -> None:
        registration = paid_registration()

        response = upload(auth_client, registration["id"], alice_headers, content=b"")

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_PROOF"

    def test_upload_for_someone_else(self, auth_client: TestClient, paid_registration, bob_headers) -> None:
        registration = paid_registration()

        response = upload(auth_client, registration["id"], bob_headers)

        assert response.status_code == 403
        assert response.json()["error_code"] == "NOT_OWNER"

    def test_file_is_required(self, auth_client: TestClient, paid_registration, alice_headers) -> None:
        registration = paid_registration()

        response = auth_client.post(f"/registrations/{registration['id']}/payment-proof", headers=alice_headers)

        assert response.status_code == 422


class TestApprovePayment:
    """Tests for POST /registrations/{id}/approve."""

    def test_approve_issues_ticket(
        self, auth_client: TestClient, paid_registration, organizer_headers, gateway
    ) -> None:
        registration = paid_registration()

        response = auth_client.post(f"/registrations/{registration['id']}/approve", headers=organizer_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "confirmed"
        assert data["payment_status"] == "approved"
        assert data["qr_code_data"].startswith("data:image/png;base64,")
        assert data["ticket_id"] == registration["ticket_id"]
        assert ("user-alice", "payment_approved") in [(n.to, n.template) for n in gateway.sent]

    def test_approve_twice(self, auth_client: TestClient, paid_registration, organizer_headers) -> None:
        registration = paid_registration()
        auth_client.post(f"/registrations/{registration['id']}/approve", headers=organizer_headers)

        response = auth_client.post(f"/registrations/{registration['id']}/approve", headers=organizer_headers)

        assert response.status_code == 409
        assert response.json()["error_code"] == "NOT_PENDING"

    def test_approve_needs_event_organizer(
        self, auth_client: TestClient, paid_registration, alice_headers, other_organizer_headers
    ) -> None:
        registration = paid_registration()

        for headers in (alice_headers, other_organizer_headers):
            response = auth_client.post(f"/registrations/{registration['id']}/approve", headers=headers)
            assert response.status_code == 403

    def test_approve_unknown_registration(self, auth_client: TestClient, organizer_headers) -> None:
        response = auth_client.post("/registrations/missing/approve", headers=organizer_headers)

        assert response.status_code == 404

    def test_approve_sells_reserved_units(
        self, auth_client: TestClient, merch_purchase, organizer_headers, alice_headers
    ) -> None:
        response = auth_client.post(f"/registrations/{merch_purchase['id']}/approve", headers=organizer_headers)

        assert response.status_code == 200
        variant = auth_client.get(f"/events/{merch_purchase['event_id']}", headers=alice_headers).json()["variants"][0]
        assert (variant["stock"], variant["sold"]) == (1, 2)


class TestRejectPayment:
    """Tests for POST /registrations/{id}/reject."""

    def test_reject_frees_the_place(
        self, auth_client: TestClient, paid_registration, organizer_headers, alice_headers, gateway
    ) -> None:
        registration = paid_registration()

        response = auth_client.post(f"/registrations/{registration['id']}/reject", headers=organizer_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert response.json()["payment_status"] == "rejected"
        event = auth_client.get(f"/events/{registration['event_id']}", headers=alice_headers).json()
        assert event["registration_count"] == 0
        assert ("user-alice", "payment_rejected") in [(n.to, n.template) for n in gateway.sent]

    def test_reject_returns_reserved_units(
        self, auth_client: TestClient, merch_purchase, organizer_headers, alice_headers
    ) -> None:
        auth_client.post(f"/registrations/{merch_purchase['id']}/reject", headers=organizer_headers)

        variant = auth_client.get(f"/events/{merch_purchase['event_id']}", headers=alice_headers).json()["variants"][0]
        assert (variant["stock"], variant["sold"]) == (3, 0)

    def test_reject_after_approve(self, auth_client: TestClient, paid_registration, organizer_headers) -> None:
        registration = paid_registration()
        auth_client.post(f"/registrations/{registration['id']}/approve", headers=organizer_headers)

        response = auth_client.post(f"/registrations/{registration['id']}/reject", headers=organizer_headers)

        assert response.status_code == 409

    def test_upload_after_rejection(
        self, auth_client: TestClient, paid_registration, organizer_headers, alice_headers
    ) -> None:
        registration = paid_registration()
        auth_client.post(f"/registrations/{registration['id']}/reject", headers=organizer_headers)

        response = upload(auth_client, registration["id"], alice_headers)

        assert response.status_code == 409
        assert response.json()["error_code"] == "NOT_PENDING"


class TestPendingPayments:
    """Tests for GET /events/{id}/payments/pending."""

    def test_lists_only_pending(
        self, auth_client: TestClient, create_event, organizer_headers, alice_headers, bob_headers
    ) -> None:
        event = create_event(registration_fee={"amount": 20000, "currency": "INR"})
        first = auth_client.post(f"/events/{event['id']}/registrations", json={}, headers=alice_headers).json()
        second = auth_client.post(f"/events/{event['id']}/registrations", json={}, headers=bob_headers).json()
        auth_client.post(f"/registrations/{first['id']}/approve", headers=organizer_headers)

        response = auth_client.get(f"/events/{event['id']}/payments/pending", headers=organizer_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == second["id"]

    def test_needs_organizer(self, auth_client: TestClient, create_event, alice_headers) -> None:
        event = create_event()

        response = auth_client.get(f"/events/{event['id']}/payments/pending", headers=alice_headers)

        assert response.status_code == 403
