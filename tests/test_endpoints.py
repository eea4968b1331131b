from __future__ import annotations

import os
import sys
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict

import pytest
from fastapi.testclient import TestClient

# Ensure project root is on sys.path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from checkme.main import app
from checkme.database import create_schema
from checkme.deps import get_ledger
from checkme.errors import PersistenceError
from checkme.ledger import AttendanceLedger


API_TOKEN = os.getenv("CHECKME_API_TOKEN", "dev-token")


@pytest.fixture(scope="module")
def client() -> TestClient:
    create_schema()
    return TestClient(app)


def _auth_headers(token: str = API_TOKEN) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _visitor() -> str:
    return f"visitor-test-{uuid.uuid4().hex[:12]}"


def test_health_open(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json().get("status") == "ok"
    assert "X-Process-Time-Ms" in r.headers


def test_admin_routes_require_token(client: TestClient) -> None:
    for path in ["/api/logs.list", "/api/stats", "/api/events.list", "/api/export.logs.csv"]:
        r = client.get(path)
        assert r.status_code == 401
        data = r.json()
        assert data.get("ok") is False
        assert data["error"]["path"] == path
    r = client.get("/api/stats", headers=_auth_headers("bad-token"))
    assert r.status_code == 401


def test_gate_scan_checkin_then_checkout(client: TestClient) -> None:
    visitor_id = _visitor()
    r1 = client.post("/api/scan", json={"visitorId": visitor_id})
    assert r1.status_code == 200, r1.text
    first = r1.json()
    assert first["action"] == "checkin"
    assert first["record"]["status"] == "IN"
    assert first["record"]["visitorId"] == visitor_id
    assert first["record"]["context"] == "gate"

    r2 = client.post("/api/scan", json={"visitorId": visitor_id, "context": "gate"})
    assert r2.status_code == 200, r2.text
    second = r2.json()
    assert second["action"] == "checkout"
    assert second["record"]["id"] == first["record"]["id"]
    assert second["record"]["status"] == "OUT"
    assert second["record"]["duration"].endswith("s")
    assert second["record"]["checkOut"] is not None


def test_scan_validation_errors(client: TestClient) -> None:
    r = client.post("/api/scan", json={"visitorId": "  "})
    assert r.status_code == 400
    assert r.json()["ok"] is False

    r2 = client.post("/api/scan", json={"visitorId": _visitor(), "eventId": "does-not-exist"})
    assert r2.status_code == 400


def test_intern_attendance(client: TestClient) -> None:
    visitor_id = _visitor()
    r1 = client.post("/api/scan", json={"visitorId": visitor_id, "context": "intern"})
    assert r1.json()["action"] == "attended"
    assert r1.json()["record"]["status"] == "ATTENDED"
    r2 = client.post("/api/scan", json={"visitorId": visitor_id, "context": "intern"})
    assert r2.json()["action"] == "already_attended"
    assert r2.json()["record"]["id"] == r1.json()["record"]["id"]


def test_register_issues_visitor_id_and_profile_lookup(client: TestClient) -> None:
    r = client.post(
        "/api/visitors.register",
        json={"name": "Ada", "department": "IT", "laptopName": "ThinkPad", "visitorType": "Corper"},
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["action"] == "checkin"
    visitor_id = data["record"]["visitorId"]
    assert visitor_id.startswith("visitor-")
    assert data["record"]["visitorType"] == "Corper"

    p = client.get("/api/visitors.profile", params={"visitor_id": visitor_id})
    assert p.status_code == 200
    profile = p.json()
    assert profile["name"] == "Ada"
    assert profile["laptopName"] == "ThinkPad"

    missing = client.get("/api/visitors.profile", params={"visitor_id": _visitor()})
    assert missing.status_code == 404


def test_event_registration_requires_custom_fields(client: TestClient) -> None:
    r = client.post(
        "/api/events.create",
        json={"name": "Conference", "customFields": [{"id": "phone", "label": "Phone", "type": "text", "required": True}]},
        headers=_auth_headers(),
    )
    assert r.status_code == 200, r.text
    event = r.json()
    assert event["customFields"][0]["label"] == "Phone"
    event_id = event["id"]

    visitor_id = _visitor()
    bad = client.post("/api/events.register", json={"visitorId": visitor_id, "eventId": event_id, "name": "Ada"})
    assert bad.status_code == 400
    assert "Phone" in bad.json()["error"]["message"]

    logs = client.get("/api/logs.list", params={"visitor_id": visitor_id}, headers=_auth_headers())
    assert logs.json()["total"] == 0

    ok = client.post(
        "/api/events.register",
        json={"visitorId": visitor_id, "eventId": event_id, "name": "Ada", "customData": {"phone": "0800"}},
    )
    assert ok.status_code == 200, ok.text
    assert ok.json()["action"] == "registered"
    assert ok.json()["record"]["status"] == "REGISTERED"
    assert ok.json()["record"]["customData"] == {"phone": "0800"}

    again = client.post("/api/events.register", json={"visitorId": visitor_id, "eventId": event_id})
    assert again.status_code == 200
    assert again.json()["action"] == "already_registered"
    assert again.json()["record"]["id"] == ok.json()["record"]["id"]


def test_events_get_and_not_found(client: TestClient) -> None:
    r = client.post("/api/events.create", json={"name": "Open Day"}, headers=_auth_headers())
    event_id = r.json()["id"]
    g = client.get("/api/events.get", params={"id": event_id})
    assert g.status_code == 200
    assert g.json()["name"] == "Open Day"
    assert client.get("/api/events.get", params={"id": "missing"}).status_code == 404

    listed = client.get("/api/events.list", headers=_auth_headers())
    assert listed.status_code == 200
    assert event_id in [e["id"] for e in listed.json()["items"]]

    unknown = client.post("/api/events.register", json={"eventId": "missing", "name": "x"})
    assert unknown.status_code == 400


def test_events_create_rejects_bad_fields(client: TestClient) -> None:
    r = client.post(
        "/api/events.create",
        json={"name": "Dup", "customFields": [{"id": "a", "label": "A"}, {"id": "a", "label": "B"}]},
        headers=_auth_headers(),
    )
    assert r.status_code == 400
    r2 = client.post("/api/events.create", json={"name": "   "}, headers=_auth_headers())
    assert r2.status_code == 422


def test_manual_entry_and_profile_update(client: TestClient) -> None:
    check_in = datetime.now() - timedelta(days=2)
    bad = client.post(
        "/api/logs.manual",
        json={
            "name": "Ada",
            "department": "IT",
            "checkIn": check_in.isoformat(),
            "checkOut": (check_in - timedelta(minutes=1)).isoformat(),
        },
        headers=_auth_headers(),
    )
    assert bad.status_code == 400

    r = client.post(
        "/api/logs.manual",
        json={
            "name": "Ada",
            "department": "IT",
            "checkIn": check_in.isoformat(),
            "checkOut": (check_in + timedelta(hours=8)).isoformat(),
        },
        headers=_auth_headers(),
    )
    assert r.status_code == 200, r.text
    record = r.json()
    assert record["status"] == "OUT"
    assert record["duration"] == "8h 0m 0s"

    u = client.post("/api/logs.update_profile", json={"id": record["id"], "name": "Ada Lovelace"}, headers=_auth_headers())
    assert u.status_code == 200, u.text
    assert u.json()["updated"] == 1
    assert u.json()["visitorId"] == record["visitorId"]

    logs = client.get("/api/logs.list", params={"visitor_id": record["visitorId"]}, headers=_auth_headers())
    item = logs.json()["items"][0]
    assert item["name"] == "Ada Lovelace"
    assert item["checkIn"] == record["checkIn"]
    assert item["status"] == "OUT"

    missing = client.post("/api/logs.update_profile", json={"id": "missing", "name": "x"}, headers=_auth_headers())
    assert missing.status_code == 404


def test_manual_entry_requires_name_and_department(client: TestClient) -> None:
    r = client.post(
        "/api/logs.manual",
        json={"name": "", "department": "IT", "checkIn": datetime.now().isoformat()},
        headers=_auth_headers(),
    )
    assert r.status_code == 422


def test_stats_and_sweep(client: TestClient) -> None:
    before = client.get("/api/stats", headers=_auth_headers()).json()
    for key in ["currentlyIn", "totalVisitorsToday", "totalEvents"]:
        assert isinstance(before[key], int)

    visitor_id = _visitor()
    client.post("/api/scan", json={"visitorId": visitor_id})
    during = client.get("/api/stats", headers=_auth_headers()).json()
    assert during["currentlyIn"] == before["currentlyIn"] + 1
    assert during["totalVisitorsToday"] == before["totalVisitorsToday"] + 1

    client.post("/api/scan", json={"visitorId": visitor_id})
    after = client.get("/api/stats", headers=_auth_headers()).json()
    assert after["currentlyIn"] == before["currentlyIn"]
    assert after["totalVisitorsToday"] == before["totalVisitorsToday"] + 1

    sweep = client.post("/api/logs.sweep", headers=_auth_headers())
    assert sweep.status_code == 200
    assert sweep.json()["ok"] is True
    assert isinstance(sweep.json()["updated"], int)


def test_logs_list_filters_and_pagination(client: TestClient) -> None:
    visitor_id = _visitor()
    client.post("/api/scan", json={"visitorId": visitor_id, "context": "intern"})
    client.post("/api/scan", json={"visitorId": visitor_id})
    r = client.get("/api/logs.list", params={"visitor_id": visitor_id, "page_size": 1}, headers=_auth_headers())
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 2
    assert len(data["items"]) == 1

    r2 = client.get(
        "/api/logs.list", params={"visitor_id": visitor_id, "status": "ATTENDED"}, headers=_auth_headers()
    )
    assert [i["context"] for i in r2.json()["items"]] == ["intern"]

    bad = client.get("/api/logs.list", params={"status": "NOPE"}, headers=_auth_headers())
    assert bad.status_code == 422


class _UnavailableStore:
    """Store whose every call fails as if the database were down."""

    def __getattr__(self, name: str):
        def fail(*args, **kwargs):
            raise PersistenceError(f"Database error during {name}")

        return fail


def test_stats_fall_back_to_zeros_when_store_fails(client: TestClient) -> None:
    app.dependency_overrides[get_ledger] = lambda: AttendanceLedger(_UnavailableStore(), auto_checkout=True)
    try:
        r = client.get("/api/stats", headers=_auth_headers())
        assert r.status_code == 200
        assert r.json() == {"currentlyIn": 0, "totalVisitorsToday": 0, "totalEvents": 0}

        logs = client.get("/api/logs.list", headers=_auth_headers())
        assert logs.status_code == 500
        assert logs.json()["ok"] is False
        assert logs.json()["error"]["message"] == "Database unavailable"
    finally:
        app.dependency_overrides.pop(get_ledger, None)


def test_profile_update_can_clear_a_field(client: TestClient) -> None:
    r = client.post(
        "/api/logs.manual",
        json={"name": "Ada", "department": "IT", "organization": "Wrong Co", "checkIn": datetime.now().isoformat()},
        headers=_auth_headers(),
    )
    record = r.json()
    assert record["organization"] == "Wrong Co"

    u = client.post("/api/logs.update_profile", json={"id": record["id"], "organization": ""}, headers=_auth_headers())
    assert u.status_code == 200, u.text

    logs = client.get("/api/logs.list", params={"visitor_id": record["visitorId"]}, headers=_auth_headers())
    item = logs.json()["items"][0]
    assert item["organization"] == ""
    assert item["name"] == "Ada"
    assert item["department"] == "IT"


def test_overlong_visitor_id_rejected(client: TestClient) -> None:
    long_id = "v" * 65
    assert client.post("/api/scan", json={"visitorId": long_id}).status_code == 422
    assert client.post("/api/visitors.register", json={"visitorId": long_id, "name": "Ada"}).status_code == 422
    assert client.get("/api/visitors.profile", params={"visitor_id": long_id}).status_code == 422
