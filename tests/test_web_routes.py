"""
Tests for the record API routes

Tests covering:
1. Actor resolution from X-Actor-Id
2. Booking creation and stage submission over HTTP
3. Complaint edits, no-op edits and audit trail
4. Error-to-status mapping
5. Stage ownership by role, read-only flags, live list views, logged notifications
"""

from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from core.access import AccessLevel, AccessProfile, AccessScope, Actor, ActorDirectory
from core.records.errors import StoreError
from core.store import InMemoryRecordStore
from utils.config import Config
from web.app import create_app


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def client(store):
    directory = ActorDirectory([
        Actor(
            "nour",
            "Nour Ali",
            role="admin",
            access=AccessProfile(level=AccessLevel.EDIT, scope=AccessScope.FULL),
        ),
        Actor(
            "hany",
            "Hany Samir",
            access=AccessProfile(level=AccessLevel.READ, scope=AccessScope.LIMITED, pages=("complaints",)),
        ),
        Actor(
            "salma",
            "Salma Nabil",
            role="sales",
            access=AccessProfile(level=AccessLevel.EDIT, scope=AccessScope.FULL),
        ),
    ])
    app = create_app(config=Config(store_backend="memory"), store=store, actors=directory)
    return TestClient(app)


EDITOR = {"X-Actor-Id": "nour"}
READER = {"X-Actor-Id": "hany"}
SALES = {"X-Actor-Id": "salma"}


@pytest.fixture
def sales_form():
    return {
        "booking_id": "BK-1001",
        "booking_date": "2024-03-01",
        "customer_name": "Mona Hassan",
        "project": "Palm Hills",
        "unit": "A-12",
        "payment_method": "installments",
        "sale_type": "primary",
        "unit_value": 2500000,
        "sales_employee": "omar",
    }


@pytest.fixture
def complaint_form():
    return {
        "complaint_id": "1042",
        "date": "2024-05-01",
        "customer_name": "Karim Adel",
        "project": "Palm Hills",
        "source": "phone",
        "description": "Water leak in kitchen",
    }


# =============================================================================
# Health and Identity
# =============================================================================


class TestHealthAndIdentity:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["store"] == "memory"

    def test_missing_actor_header(self, client):
        assert client.get("/api/bookings").status_code == 401

    def test_unknown_actor(self, client):
        assert client.get("/api/bookings", headers={"X-Actor-Id": "ghost"}).status_code == 401

    def test_read_requires_page_access(self, client):
        assert client.get("/api/bookings", headers=READER).status_code == 403
        assert client.get("/api/complaints", headers=READER).status_code == 200


# =============================================================================
# Bookings
# =============================================================================


class TestBookingRoutes:

    def test_create_and_progress(self, client, sales_form):
        response = client.post("/api/bookings", json=sales_form, headers=EDITOR)
        assert response.status_code == 201
        body = response.json()
        assert body["status"]["label"] == "Waiting on Projects"
        assert len(body["notifications"]) == 2

        response = client.post(
            "/api/bookings/BK-1001/stages/projects",
            json={"values": {"construction_end_date": "2024-09-01"}},
            headers=EDITOR,
        )
        assert response.status_code == 200
        assert response.json()["status"]["label"] == "Waiting on Customer-Care"

        booking = client.get("/api/bookings/BK-1001", headers=EDITOR).json()
        assert booking["status"]["code"] == "waiting_on_customer_care"
        assert booking["stage_flags"] == {"sales": True, "projects": True, "customer_care": False}

    def test_missing_sales_field_is_422(self, client, sales_form):
        del sales_form["unit"]
        assert client.post("/api/bookings", json=sales_form, headers=EDITOR).status_code == 422

    def test_read_only_actor_cannot_submit(self, client, sales_form):
        client.post("/api/bookings", json=sales_form, headers=EDITOR)
        response = client.post(
            "/api/bookings/BK-1001/stages/projects",
            json={"values": {"construction_end_date": "2024-09-01"}},
            headers=READER,
        )
        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "AuthorizationError"
        assert len(response.json()["detail"]["notifications"]) == 1

    def test_unknown_booking_is_404(self, client):
        assert client.get("/api/bookings/BK-404", headers=EDITOR).status_code == 404
        response = client.post(
            "/api/bookings/BK-404/stages/projects", json={"values": {}}, headers=EDITOR
        )
        assert response.status_code == 404

    def test_sales_cannot_submit_projects_stage(self, client, sales_form):
        assert client.post("/api/bookings", json=sales_form, headers=SALES).status_code == 201
        response = client.post(
            "/api/bookings/BK-1001/stages/projects",
            json={"values": {"transfer_date": "2024-07-01"}},
            headers=SALES,
        )
        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "AuthorizationError"

    def test_transfer_date_is_not_on_the_sales_form(self, client, sales_form):
        sales_form["transfer_date"] = "2024-07-01"
        client.post("/api/bookings", json=sales_form, headers=EDITOR)
        booking = client.get("/api/bookings/BK-1001", headers=EDITOR).json()
        assert booking["transfer_date"] == ""

    def test_non_numeric_unit_value_is_422(self, client, sales_form):
        sales_form["unit_value"] = "lots"
        assert client.post("/api/bookings", json=sales_form, headers=EDITOR).status_code == 422

    def test_list_follows_writes(self, client, sales_form):
        assert client.get("/api/bookings", headers=EDITOR).json()["bookings"] == []

        client.post("/api/bookings", json=sales_form, headers=EDITOR)
        client.post(
            "/api/bookings/BK-1001/stages/projects",
            json={"values": {"construction_end_date": "2024-09-01"}},
            headers=EDITOR,
        )

        bookings = client.get("/api/bookings", headers=EDITOR).json()["bookings"]
        assert [b["booking_id"] for b in bookings] == ["BK-1001"]
        assert bookings[0]["status"]["label"] == "Waiting on Customer-Care"

    def test_stale_version_is_409(self, client, sales_form):
        client.post("/api/bookings", json=sales_form, headers=EDITOR)
        client.post(
            "/api/bookings/BK-1001/stages/projects",
            json={"values": {"construction_end_date": "2024-09-01"}},
            headers=EDITOR,
        )
        response = client.post(
            "/api/bookings/BK-1001/stages/projects",
            json={"values": {"construction_end_date": "2024-09-20"}, "expected_version": 1},
            headers=EDITOR,
        )
        assert response.status_code == 409
        assert response.json()["detail"]["actual_version"] == 2


# =============================================================================
# Complaints
# =============================================================================


class TestComplaintRoutes:

    def test_edit_and_audit_trail(self, client, complaint_form):
        assert client.post("/api/complaints", json=complaint_form, headers=EDITOR).status_code == 201

        response = client.put(
            "/api/complaints/1042",
            json={"changes": {"status": "resolved"}},
            headers=EDITOR,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["changed"] is True
        assert [e["field"] for e in body["audit_entries"]] == ["status"]
        assert len(body["notifications"]) == 2

        trail = client.get("/api/complaints/1042/updates", headers=EDITOR).json()
        assert [u["new_value"] for u in trail["updates"]] == ["resolved"]

    def test_no_changes(self, client, complaint_form):
        client.post("/api/complaints", json=complaint_form, headers=EDITOR)
        response = client.put(
            "/api/complaints/1042",
            json={"changes": {"status": "new"}},
            headers=EDITOR,
        )
        assert response.status_code == 200
        assert response.json()["changed"] is False
        assert response.json()["notifications"][0]["kind"] == "info"

    def test_read_only_flag(self, client, complaint_form):
        client.post("/api/complaints", json=complaint_form, headers=EDITOR)

        assert client.get("/api/complaints", headers=READER).json()["read_only"] is True
        assert client.get("/api/complaints", headers=EDITOR).json()["read_only"] is False
        assert client.get("/api/complaints/1042", headers=READER).json()["read_only"] is True

    def test_notifications_are_logged(self, client, complaint_form, caplog):
        client.post("/api/complaints", json=complaint_form, headers=EDITOR)

        with caplog.at_level(logging.INFO, logger="core.records.notifications"):
            client.put("/api/complaints/1042", json={"changes": {"status": "resolved"}}, headers=READER)

        errors = [r for r in caplog.records if r.name == "core.records.notifications"]
        assert len(errors) == 1
        assert errors[0].levelno == logging.ERROR
        assert errors[0].getMessage().startswith("Not allowed")

    def test_store_failure_is_502(self, client, store, complaint_form, monkeypatch):
        client.post("/api/complaints", json=complaint_form, headers=EDITOR)

        def fail(*args, **kwargs):
            raise StoreError("backend down")

        monkeypatch.setattr(store, "append_audit_entries", fail)
        response = client.put(
            "/api/complaints/1042",
            json={"changes": {"status": "resolved"}},
            headers=EDITOR,
        )
        assert response.status_code == 502
        assert response.json()["detail"]["error"] == "PersistError"


class TestQualityCallRoutes:

    def test_qualified_without_reason_is_422(self, client):
        client.post(
            "/api/quality-calls",
            json={
                "call_id": "QC-77",
                "call_date": "2024-05-01",
                "customer_name": "Laila Fouad",
                "phone_number": "01000000000",
                "project": "Palm Hills",
                "call_type": "post-delivery",
            },
            headers=EDITOR,
        )
        response = client.put(
            "/api/quality-calls/QC-77",
            json={"changes": {"qualification_status": "qualified"}},
            headers=EDITOR,
        )
        assert response.status_code == 422
        assert response.json()["detail"]["fields"] == ["qualification_reason"]
