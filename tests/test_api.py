"""HTTP API tests through FastAPI's TestClient."""
import logging

import pytest
from fastapi.testclient import TestClient

from bloodchain.api.deps import get_coordinator
from bloodchain.main import app


@pytest.fixture
def client(coordinator):
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    yield TestClient(app)
    app.dependency_overrides.clear()


def _register(client, identity="donor-1", blood_group="A-"):
    return client.post("/api/v1/donors/", json={"identity": identity, "blood_group": blood_group})


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Request-ID" in response.headers
    assert response.json()["ledger"] == "InMemoryLedger"


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "trace-42"})
    assert response.headers["X-Request-ID"] == "trace-42"


def test_requests_are_logged_with_outcome(client, caplog):
    with caplog.at_level(logging.INFO, logger="bloodchain"):
        _register(client)
        client.get("/api/v1/donors/ghost")

    messages = [r.getMessage() for r in caplog.records]
    assert "Donor registration requested: donor-1 (A-)" in messages
    http = [r for r in caplog.records if r.name == "bloodchain.http"]
    assert http[0].getMessage().startswith("POST /api/v1/donors/ -> 201")
    assert http[1].getMessage().startswith("GET /api/v1/donors/ghost -> 404")
    assert http[1].levelno == logging.WARNING


def test_register_and_fetch_donor(client):
    response = _register(client)
    assert response.status_code == 201
    body = response.json()
    assert body["identity"] == "donor-1"
    assert body["blood_group"] == "A-"
    assert body["reward_points"] == 0
    assert body["last_donation_time"] is None

    assert client.get("/api/v1/donors/donor-1").json()["blood_group"] == "A-"


def test_duplicate_registration_conflict(client):
    _register(client)
    response = _register(client)

    assert response.status_code == 409
    assert response.json()["error"] == "AlreadyRegistered"
    assert response.json()["context"]["identity"] == "donor-1"


def test_unknown_donor_not_found(client):
    response = client.get("/api/v1/donors/ghost")
    assert response.status_code == 404
    assert response.json()["error"] == "NotRegistered"


def test_invalid_payload(client):
    response = _register(client, blood_group="Z+")
    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"


def test_schedule_and_complete_donation(client):
    _register(client)
    response = client.post(
        "/api/v1/donors/donor-1/donations",
        json={"hospital": "General", "scheduled_for": "2024-03-25T09:00:00Z", "notes": "morning"},
    )
    assert response.status_code == 201
    donation_id = response.json()["id"]

    response = client.post(f"/api/v1/donors/donor-1/donations/{donation_id}/complete")
    assert response.status_code == 200
    assert response.json()["completed"] is True

    again = client.post(f"/api/v1/donors/donor-1/donations/{donation_id}/complete")
    assert again.status_code == 409
    assert again.json()["error"] == "AlreadyCompleted"

    rewards = client.get("/api/v1/donors/donor-1/rewards").json()
    assert rewards["reward_points"] == 10
    assert rewards["tier"] == "Bronze"
    assert rewards["completed_donations"] == 1

    history = client.get("/api/v1/donors/donor-1/donations").json()
    assert [h["status"] for h in history] == ["Completed"]

    level = client.get("/api/v1/inventory/General/A-").json()
    assert level["units"] == 1


def test_schedule_in_the_past(client):
    _register(client)
    response = client.post(
        "/api/v1/donors/donor-1/donations",
        json={"hospital": "General", "scheduled_for": "2020-01-01T00:00:00Z"},
    )
    assert response.status_code == 422
    assert response.json()["error"] == "InvalidSchedule"


def test_walk_in_and_award(client):
    _register(client)
    response = client.post("/api/v1/donors/donor-1/donations/walk-in", json={"hospital": "General"})
    assert response.status_code == 201

    second = client.post("/api/v1/donors/donor-1/donations/walk-in", json={"hospital": "General"})
    assert second.status_code == 422
    assert second.json()["error"] == "EligibilityWindowViolation"

    awarded = client.post("/api/v1/donors/donor-1/rewards", json={"amount": 5})
    assert awarded.json()["reward_points"] == 15


def test_inventory_endpoints(client):
    response = client.put("/api/v1/inventory/General/O%2B", json={"units": 4})
    assert response.status_code == 200
    assert response.json()["blood_group"] == "O+"

    response = client.post("/api/v1/inventory/General/O%2B/adjust", json={"delta": -6})
    assert response.status_code == 409
    assert response.json()["error"] == "InsufficientInventory"
    assert response.json()["context"]["available"] == 4

    client.post("/api/v1/inventory/General/A-/adjust", json={"delta": 2})
    listing = client.get("/api/v1/inventory/General").json()
    assert [(r["blood_group"], r["units"]) for r in listing] == [("A-", 2), ("O+", 4)]


def test_request_lifecycle_endpoints(client):
    response = client.post(
        "/api/v1/requests/",
        json={"recipient": "recipient-1", "hospital": "General", "blood_group": "A-", "units": 2},
    )
    assert response.status_code == 201
    request_id = response.json()["id"]
    assert response.json()["status"] == "pending"

    early = client.post(f"/api/v1/requests/{request_id}/fulfill")
    assert early.status_code == 409
    assert early.json()["error"] == "InvalidTransition"

    assert client.post(f"/api/v1/requests/{request_id}/approve").json()["status"] == "approved"
    short = client.post(f"/api/v1/requests/{request_id}/fulfill")
    assert short.json()["error"] == "InsufficientInventory"

    client.put("/api/v1/inventory/General/A-", json={"units": 5})
    fulfilled = client.post(f"/api/v1/requests/{request_id}/fulfill")
    assert fulfilled.status_code == 200
    assert fulfilled.json()["status"] == "fulfilled"
    assert client.get("/api/v1/inventory/General/A-").json()["units"] == 3

    summary = client.get("/api/v1/requests/summary", params={"recipient": "recipient-1"}).json()
    assert summary["fulfilled"] == 1
    listing = client.get("/api/v1/requests/", params={"status": "fulfilled"}).json()
    assert [r["id"] for r in listing] == [request_id]


def test_reject_request_endpoint(client):
    request_id = client.post(
        "/api/v1/requests/",
        json={"recipient": "recipient-1", "hospital": "General", "blood_group": "B+", "units": 1},
    ).json()["id"]

    missing = client.post(f"/api/v1/requests/{request_id}/reject", json={})
    assert missing.status_code == 422
    assert missing.json()["error"] == "MissingReason"

    rejected = client.post(f"/api/v1/requests/{request_id}/reject", json={"reason": "no stock"})
    assert rejected.json()["rejection_reason"] == "no stock"


def test_unknown_request(client):
    response = client.get("/api/v1/requests/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
    assert response.json()["error"] == "RequestNotFound"


def test_request_with_zero_units(client):
    response = client.post(
        "/api/v1/requests/",
        json={"recipient": "recipient-1", "hospital": "General", "blood_group": "B+", "units": 0},
    )
    assert response.status_code == 422
    assert response.json()["error"] == "InvalidQuantity"
