"""HTTP API tests.

Requests run against the in-memory test database through dependency
overrides, so every route exercises the real core and services.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from fastapi.testclient import TestClient

from fleet_engine.api.app import create_app
from fleet_engine.api.dependencies import get_clock, get_db_session
from fleet_engine.models import Settlement


def as_user(user) -> dict[str, str]:
    return {"X-User-ID": str(user.id)}


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_health_check(self, client, clock):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert data["catalog"] == "seeded"
        assert data["catalog_roles"] == 4
        assert datetime.fromisoformat(data["checked_at"].replace("Z", "+00:00")) == clock.now()

    def test_readiness_and_liveness(self, client):
        assert client.get("/ready").json() == {"status": "ready"}
        assert client.get("/live").json() == {"status": "alive"}

    def test_unseeded_instance_is_not_ready(self, session, clock):
        app = create_app(init_database=False)
        app.dependency_overrides[get_db_session] = lambda: session
        app.dependency_overrides[get_clock] = lambda: clock

        with TestClient(app) as bare:
            ready = bare.get("/ready")
            health = bare.get("/health").json()

        assert ready.status_code == 503
        assert ready.json() == {"status": "not_ready"}
        assert (health["status"], health["catalog"], health["catalog_roles"]) == ("degraded", "incomplete", 0)


class TestAuthorization:
    """GET /api/v1/authorize and role administration."""

    def test_authorize(self, client, dispatcher):
        response = client.get(
            "/api/v1/authorize", params={"permission": "trips.update"}, headers=as_user(dispatcher)
        )
        assert response.status_code == 200
        assert response.json()["granted"] is True

        response = client.get(
            "/api/v1/authorize", params={"permission": "trips.delete"}, headers=as_user(dispatcher)
        )
        assert response.json()["granted"] is False

    def test_unknown_user_is_denied(self, client):
        response = client.get(
            "/api/v1/authorize", params={"permission": "trips.read"}, headers={"X-User-ID": str(uuid4())}
        )
        assert response.status_code == 200
        assert response.json()["granted"] is False

    def test_missing_user_header(self, client):
        response = client.get("/api/v1/authorize", params={"permission": "trips.read"})
        assert response.status_code == 400

    def test_malformed_user_header(self, client):
        response = client.get(
            "/api/v1/authorize", params={"permission": "trips.read"}, headers={"X-User-ID": "nope"}
        )
        assert response.status_code == 400

    def test_grant_and_revoke_role(self, client, admin, driver, roles):
        url = f"/api/v1/users/{driver.id}/roles/{roles['dispatcher'].id}"

        first = client.put(url, headers=as_user(admin))
        again = client.put(url, headers=as_user(admin))
        assert first.status_code == 200
        assert first.json()["changed"] is True
        assert again.json()["changed"] is False

        revoked = client.delete(url, headers=as_user(admin))
        assert revoked.json()["changed"] is True

    def test_grant_requires_roles_manage(self, client, manager, driver, roles):
        response = client.put(
            f"/api/v1/users/{driver.id}/roles/{roles['admin'].id}", headers=as_user(manager)
        )
        assert response.status_code == 403
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_grant_unknown_role(self, client, admin, driver):
        response = client.put(f"/api/v1/users/{driver.id}/roles/{uuid4()}", headers=as_user(admin))
        assert response.status_code == 404


class TestTripTransitions:
    """POST /api/v1/trips/{id}/transition."""

    def test_load_trip(self, client, trips, trip, dispatcher):
        trips.add_stop(trip.id, "pickup", city="Dallas")
        response = client.post(
            f"/api/v1/trips/{trip.id}/transition",
            json={"target_status": "loaded"},
            headers=as_user(dispatcher),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "loaded"

    def test_skipping_states_is_a_conflict(self, client, trip, dispatcher):
        response = client.post(
            f"/api/v1/trips/{trip.id}/transition",
            json={"target_status": "delivered"},
            headers=as_user(dispatcher),
        )
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

    def test_driver_cannot_move_trip(self, client, trip, driver):
        response = client.post(
            f"/api/v1/trips/{trip.id}/transition",
            json={"target_status": "cancelled"},
            headers=as_user(driver),
        )
        assert response.status_code == 403

    def test_missing_trip(self, client, dispatcher):
        response = client.post(
            f"/api/v1/trips/{uuid4()}/transition",
            json={"target_status": "loaded"},
            headers=as_user(dispatcher),
        )
        assert response.status_code == 404


class TestEscrow:
    """Escrow postings and replay."""

    def test_post_and_retry(self, client, escrow_account, manager):
        url = f"/api/v1/escrow-accounts/{escrow_account.id}/transactions"
        body = {"type": "deposit", "amount": "300.00", "idempotency_key": "wire-9"}

        first = client.post(url, json=body, headers=as_user(manager))
        assert first.status_code == 201
        assert first.json()["is_new"] is True
        assert Decimal(first.json()["new_balance"]) == Decimal("300.00")

        retry = client.post(url, json=body, headers=as_user(manager))
        assert retry.status_code == 201
        assert retry.json()["is_new"] is False
        assert retry.json()["transaction_id"] == first.json()["transaction_id"]

    def test_bad_amount(self, client, escrow_account, manager):
        response = client.post(
            f"/api/v1/escrow-accounts/{escrow_account.id}/transactions",
            json={"type": "withdrawal", "amount": "-5.00"},
            headers=as_user(manager),
        )
        assert response.status_code == 422
        assert response.json()["code"] == "ACCOUNTING_ERROR"

    def test_unknown_type_is_rejected(self, client, escrow, escrow_account, manager):
        response = client.post(
            f"/api/v1/escrow-accounts/{escrow_account.id}/transactions",
            json={"type": "refund", "amount": "5.00"},
            headers=as_user(manager),
        )
        assert response.status_code == 422
        assert escrow.verify_balance(escrow_account.id).transaction_count == 0

    def test_replay(self, client, escrow, escrow_account, driver):
        escrow.post_transaction(escrow_account.id, "deposit", Decimal("80.00"))
        escrow.post_transaction(escrow_account.id, "charge", Decimal("30.00"))

        response = client.get(
            f"/api/v1/escrow-accounts/{escrow_account.id}/replay", headers=as_user(driver)
        )
        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["transaction_count"] == 2
        assert Decimal(data["replayed_balance"]) == Decimal("50.00")


class TestSettlements:
    """POST /api/v1/settlements/{id}/issue."""

    def test_issue_once(self, client, session, vehicle, manager):
        settlement = Settlement(
            unit_id=vehicle.id,
            period_start=date(2025, 1, 1),
            period_end=date(2025, 1, 14),
            total_gross=Decimal("1000.00"),
            total_deductions=Decimal("0.00"),
            total_fuel=Decimal("0.00"),
            net_amount=Decimal("1000.00"),
            fuel_policy="report_only",
            status="draft",
        )
        session.add(settlement)
        session.flush()
        url = f"/api/v1/settlements/{settlement.id}/issue"

        response = client.post(url, headers=as_user(manager))
        assert response.status_code == 200
        assert response.json()["status"] == "issued"
        assert response.json()["issued_by"] == str(manager.id)

        again = client.post(url, headers=as_user(manager))
        assert again.status_code == 409
        assert again.json()["code"] == "ALREADY_ISSUED"


class TestDocuments:
    """Document versions and validity."""

    def test_versions(self, client, documents, dispatcher):
        bol = documents.create_document("bol", "BOL 5531")
        url = f"/api/v1/documents/{bol.id}/versions"

        assert client.get(f"{url}/latest", headers=as_user(dispatcher)).status_code == 404

        created = client.post(
            url,
            json={"ocr_text": "SHIPPER: ACME", "ocr_confidence": 0.92},
            headers=as_user(dispatcher),
        )
        assert created.status_code == 201
        assert created.json()["version"] == 1
        client.post(url, json={"file_uri": "s3://docs/bol-5531-v2.pdf"}, headers=as_user(dispatcher))

        latest = client.get(f"{url}/latest", headers=as_user(dispatcher))
        assert latest.status_code == 200
        assert latest.json()["version"] == 2

    def test_confidence_out_of_range(self, client, documents, dispatcher):
        bol = documents.create_document("bol", "BOL 5532")
        response = client.post(
            f"/api/v1/documents/{bol.id}/versions",
            json={"ocr_confidence": 1.5},
            headers=as_user(dispatcher),
        )
        assert response.status_code == 422

    def test_validity(self, client, documents, driver):
        insurance = documents.create_document("insurance", "Cargo policy", expiry_date=date(2025, 1, 10))
        response = client.get(f"/api/v1/validity/document/{insurance.id}", headers=as_user(driver))
        assert response.status_code == 200
        data = response.json()
        assert data["is_expired"] is True
        assert data["is_expiring_soon"] is True
        assert data["days_until"] == 0
        assert data["expires_on"] == "2025-01-10"

    def test_validity_unknown_kind(self, client, driver):
        response = client.get(f"/api/v1/validity/spaceship/{uuid4()}", headers=as_user(driver))
        assert response.status_code == 404
