# tests/test_api.py
"""API tests: routers wired to an in-memory parking core through dependency overrides."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from datetime import timedelta
from fastapi.testclient import TestClient
from campus_parking.database import get_db
from campus_parking.main import app
from campus_parking.services.parking_core import get_core

API = "/api/v1"

STUDENT = {
    "license_plate": "29A-12345",
    "type": "registered_monthly",
    "owner_name": "Nguyen Van An",
    "phone_number": "0912345678",
    "student_id": "202012345",
}


def make_client(core, session_factory) -> TestClient:
    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_core] = lambda: core
    app.dependency_overrides[get_db] = override_db
    return TestClient(app)


@pytest.fixture
def client(core, session_factory):
    yield make_client(core, session_factory)
    app.dependency_overrides.clear()


@pytest.fixture
def small_client(small_core, session_factory):
    yield make_client(small_core, session_factory)
    app.dependency_overrides.clear()


class TestVehicleEndpoints:
    def test_register_and_lookup(self, client):
        res = client.post(f"{API}/vehicles", json=STUDENT)
        assert res.status_code == 201
        assert res.json()["id"] == "VH-REG-0001"

        lookup = client.get(f"{API}/vehicles/lookup/29a-12345").json()
        assert lookup["registered"] is True
        assert lookup["owner"] == "Nguyen Van An"
        assert client.get(f"{API}/vehicles/counts").json()["active"] == 1

    def test_duplicate_plate_is_conflict(self, client):
        client.post(f"{API}/vehicles", json=STUDENT)
        res = client.post(f"{API}/vehicles", json=STUDENT | {"license_plate": "29a - 12345"})
        assert res.status_code == 409
        assert res.json()["error"] == "DuplicateResource"

    def test_invalid_form_lists_field_errors(self, client):
        res = client.post(f"{API}/vehicles", json=STUDENT | {"phone_number": "12", "student_id": None})
        assert res.status_code == 422
        assert set(res.json()["errors"]) == {"phone_number", "student_id"}

    def test_bulk_renew_is_not_mistaken_for_an_id(self, client):
        vehicle_id = client.post(f"{API}/vehicles", json=STUDENT).json()["id"]
        res = client.post(f"{API}/vehicles/bulk/renew", json={"vehicle_ids": [vehicle_id, "VH-REG-0404"], "months": 6})
        assert res.status_code == 200
        assert res.json() == {"status": "renewed", "count": 1}

    def test_delete_keeps_record_inactive(self, client):
        vehicle_id = client.post(f"{API}/vehicles", json=STUDENT).json()["id"]
        assert client.delete(f"{API}/vehicles/{vehicle_id}").json()["is_active"] is False
        assert client.get(f"{API}/vehicles/{vehicle_id}").status_code == 200

    def test_unknown_vehicle(self, client):
        res = client.get(f"{API}/vehicles/VH-REG-0404")
        assert res.status_code == 404
        assert res.json()["error"] == "NotFound"


class TestSessionEndpoints:
    def test_entry_exit_payment(self, client, clock):
        res = client.post(f"{API}/sessions/entry", json={"license_plate": "51G-88888", "gate": "A"})
        assert res.status_code == 201
        session_id = res.json()["id"]
        assert client.get(f"{API}/sessions/occupancy").json()["occupied"] == 1

        clock.advance_to(clock() + timedelta(minutes=45))
        closed = client.post(f"{API}/sessions/{session_id}/exit", json={"gate": "B"}).json()
        assert closed["fee"] == 5000
        assert closed["payment_status"] == "unpaid"

        paid = client.post(f"{API}/sessions/{session_id}/payment", json={"method": "cash"})
        assert paid.json()["payment_status"] == "paid"
        again = client.post(f"{API}/sessions/{session_id}/payment", json={"method": "cash"})
        assert again.status_code == 409
        assert again.json()["error"] == "AlreadyPaid"

        history = client.get(f"{API}/sessions", params={"state": "history"}).json()
        assert [s["id"] for s in history] == [session_id]

    def test_full_lot_is_conflict(self, small_client):
        for plate in ("29A-11111", "29A-22222", "29A-33333"):
            assert small_client.post(f"{API}/sessions/entry", json={"license_plate": plate, "gate": "A"}).status_code == 201
        res = small_client.post(f"{API}/sessions/entry", json={"license_plate": "29A-44444", "gate": "A"})
        assert res.status_code == 409
        assert res.json()["error"] == "CapacityExceeded"

        alerts = small_client.get(f"{API}/alerts", params={"alert_type": "capacity_warning"}).json()
        assert len(alerts) == 3

    def test_unknown_state_filter(self, client):
        assert client.get(f"{API}/sessions", params={"state": "parked"}).status_code == 422


class TestExceptionEndpoints:
    REPORT = {"detected_plate": "29X-12345", "confidence": 15, "gate": "A",
              "direction": "entry", "error_type": "low_confidence"}

    def test_report_and_resolve(self, client):
        created = client.post(f"{API}/exceptions", json=self.REPORT)
        assert created.status_code == 201
        exception_id = created.json()["id"]
        assert created.json()["priority"] == "urgent"

        pending = client.get(f"{API}/exceptions/pending").json()
        assert pending[0]["queue_position"] == 1

        body = {"resolved_plate": "29A-12345", "method": "manual_input", "action": "allow"}
        outcome = client.post(f"{API}/exceptions/{exception_id}/resolve", json=body).json()
        assert outcome["exception"]["status"] == "resolved"
        assert outcome["session"]["license_plate"] == "29A-12345"

        again = client.post(f"{API}/exceptions/{exception_id}/resolve", json=body)
        assert again.status_code == 409
        assert again.json()["error"] == "AlreadyResolved"
        assert client.get(f"{API}/exceptions/counts").json() == {"pending": 0, "urgent": 0}

    def test_failed_admission_reports_inconsistency(self, small_client):
        for plate in ("29A-11111", "29A-22222", "29A-33333"):
            small_client.post(f"{API}/sessions/entry", json={"license_plate": plate, "gate": "A"})
        exception_id = small_client.post(f"{API}/exceptions", json=self.REPORT).json()["id"]

        res = small_client.post(f"{API}/exceptions/{exception_id}/resolve",
                                json={"resolved_plate": "29A-44444", "method": "manual_input", "action": "allow"})
        assert res.status_code == 500
        assert res.json()["error"] == "CrossAggregateInconsistency"
        assert res.json()["exception_id"] == exception_id
        assert small_client.get(f"{API}/exceptions/{exception_id}").json()["status"] == "resolved"

    def test_suggestions(self, client):
        client.post(f"{API}/vehicles", json=STUDENT)
        res = client.get(f"{API}/exceptions/suggestions", params={"plate": "29A-1234"})
        assert [s["plate"] for s in res.json()] == ["29A-12345"]


class TestLprWebhook:
    def test_entry_read_opens_session(self, client):
        res = client.post(f"{API}/events/lpr", json={"type": "entry", "licensePlate": "29A-12345",
                                                     "gate": "A", "confidence": 97})
        assert res.status_code == 200
        assert res.json()["status"] == "ok"
        assert res.json()["routed_to"] == "session"

    def test_refusals_still_return_200(self, client):
        res = client.post(f"{API}/events/lpr", json={"type": "entry", "licensePlate": "29A-12345",
                                                     "gate": "Z", "confidence": 97})
        assert res.status_code == 200
        assert res.json()["status"] == "rejected"
        assert res.json()["error"] == "ValidationError"

    def test_empty_and_non_json_bodies_are_ignored(self, client):
        assert client.post(f"{API}/events/lpr", content=b"").json()["status"] == "ignored"
        res = client.post(f"{API}/events/lpr", content=b"<xml/>", headers={"Content-Type": "application/xml"})
        assert res.json() == {"status": "ignored", "reason": "not JSON"}


class TestStatsBackupsHealth:
    def test_current_stats(self, client):
        client.post(f"{API}/sessions/entry", json={"license_plate": "29A-12345", "gate": "A"})
        stats = client.get(f"{API}/stats/current").json()
        assert stats["occupied_spots"] == 1
        assert stats["available_spots"] == 499

    def test_backup_and_restore(self, client):
        client.post(f"{API}/vehicles", json=STUDENT)
        backup = client.post(f"{API}/backups")
        assert backup.status_code == 201
        assert backup.json()["vehicles"] == 1
        timestamp = backup.json()["timestamp"]

        client.post(f"{API}/vehicles", json=STUDENT | {"license_plate": "30B-11111"})
        assert client.get(f"{API}/vehicles/counts").json()["total"] == 2

        assert client.post(f"{API}/backups/{timestamp}/restore").json()["status"] == "restored"
        assert client.get(f"{API}/vehicles/counts").json()["total"] == 1

    def test_malformed_backup_is_rejected(self, client):
        client.post(f"{API}/vehicles", json=STUDENT)
        bad = {"timestamp": "2025-03-10T08:00:00", "version": "1.0.0",
               "data": {"vehicles": [{"id": "VH-REG-0001"}], "sessions": [], "exceptions": []}}
        res = client.post(f"{API}/backups/restore", json=bad)
        assert res.status_code == 422
        assert client.get(f"{API}/vehicles/counts").json()["total"] == 1

    def test_health(self, client):
        res = client.get(f"{API}/health")
        assert res.status_code == 200
        assert res.json()["database"] == "ok"
        assert res.json()["core"]["available"] == 500
