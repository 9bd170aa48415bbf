import os
import tempfile
import unittest
from datetime import datetime, timedelta
from unittest import mock

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from record_factories import (
    TODAY,
    FakeRecordStore,
    hex_id,
    make_checkout,
    make_employee,
    make_location,
    make_return,
    make_tool,
    ref,
)

import ToolCheckout as app_module
from db.base import Base
from services.reconciliation_service import Snapshot
from services.reference_service import RecordKind


class FakeDb:
    def __init__(self):
        self.commits = 0
        self.rollbacks = 0
        self.added = []

    def add(self, value):
        self.added.append(value)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class FailingCommitDb(FakeDb):
    def commit(self):
        raise SQLAlchemyError("database is locked")


def _snapshot() -> Snapshot:
    return Snapshot(
        tools=(
            make_tool(1, name="Bohrhammer", aktueller_lagerort=ref(RecordKind.LOCATION, 30)),
            make_tool(2, name="Leiter", zustand="defekt"),
            make_tool(3, name="Prüfgerät", pruefpflicht=True, naechster_prueftermin=(TODAY + timedelta(days=45)).isoformat()),
        ),
        employees=(make_employee(5, "Eva", "Berg"),),
        locations=(make_location(30, "Sprinter 1", typ="fahrzeug"),),
        checkouts=(
            make_checkout(
                10,
                tool=1,
                employee=5,
                ausgabedatum="2025-05-31T07:45",
                geplantes_rueckgabedatum=(TODAY - timedelta(days=5)).isoformat(),
            ),
            make_checkout(11, tool=2, employee=99, ausgabedatum="2025-06-02T10:00"),
        ),
        returns=(make_return(20, checkout=11, rueckgabedatum="2025-06-04"),),
    )


class ApiFlowTests(unittest.TestCase):
    def setUp(self):
        self.store = FakeRecordStore(_snapshot())
        self.fake_db = FakeDb()
        app_module.app.dependency_overrides[app_module.get_record_store] = lambda: self.store
        app_module.app.dependency_overrides[app_module.get_audit_db] = lambda: self.fake_db
        app_module.app.dependency_overrides[app_module.get_today] = lambda: TODAY
        app_module.app.dependency_overrides[app_module.get_now] = lambda: datetime(2025, 6, 10, 9, 15)
        self.client = TestClient(app_module.app)

    def tearDown(self):
        app_module.app.dependency_overrides.clear()

    def test_dashboard_kpis_and_lists(self):
        response = self.client.get("/api/dashboard")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(
            body["kpis"],
            {
                "totalTools": 3,
                "checkedOut": 1,
                "available": 2,
                "overdue": 1,
                "inspectionDue": 0,
                "inspectionOverdue": 0,
                "inspectionIssues": 0,
                "repairNeeded": 1,
            },
        )
        overdue = body["overdueCheckouts"][0]
        self.assertEqual(overdue["toolName"], "Bohrhammer")
        self.assertEqual(overdue["employeeName"], "Eva Berg")
        self.assertEqual(overdue["daysOverdue"], 5)
        self.assertEqual([item["type"] for item in body["recentActivity"]], ["return", "checkout", "checkout"])
        self.assertEqual(body["recentActivity"][0]["employeeName"], "Unbekannt")
        self.assertEqual(body["toolsByLocation"][0], {"locationID": None, "name": "Ohne Standort", "count": 2})

    def test_dashboard_horizon_override(self):
        body = self.client.get("/api/dashboard", params={"horizonDays": 60}).json()
        self.assertEqual(body["horizonDays"], 60)
        self.assertEqual([item["toolID"] for item in body["inspectionDue"]], [hex_id(3)])
        self.assertEqual(self.client.get("/api/dashboard", params={"horizonDays": 0}).status_code, 422)

    def test_store_failure_on_load_is_503(self):
        self.store.failing_kinds.add(RecordKind.EMPLOYEE)
        response = self.client.get("/api/dashboard")
        self.assertEqual(response.status_code, 503)
        self.assertIn("Record store unavailable", response.json()["detail"])

    def test_open_and_overdue_endpoints(self):
        open_rows = self.client.get("/api/checkouts/open").json()
        self.assertEqual([row["recordID"] for row in open_rows], [hex_id(10)])
        overdue_rows = self.client.get("/api/checkouts/overdue").json()
        self.assertEqual([row["daysOverdue"] for row in overdue_rows], [5])

    def test_checkout_list_marks_returned(self):
        rows = self.client.get("/api/checkouts").json()
        self.assertEqual([(row["recordID"], row["isReturned"]) for row in rows], [(hex_id(11), True), (hex_id(10), False)])

    def test_create_checkout_writes_store_and_audit(self):
        response = self.client.post(
            "/api/checkouts",
            json={"toolID": hex_id(3), "employeeID": hex_id(5), "plannedReturnDate": "2025-06-12", "purpose": "Baustelle"},
        )
        self.assertEqual(response.status_code, 200)
        kind, fields = self.store.created[0]
        self.assertEqual(kind, RecordKind.CHECKOUT)
        self.assertEqual(fields["ausgabedatum"], "2025-06-10T09:15")
        self.assertEqual(fields["verwendungszweck"], "Baustelle")
        self.assertEqual(self.fake_db.commits, 1)
        self.assertEqual(self.fake_db.added[0].Action, "Checkout")

        open_ids = [row["recordID"] for row in self.client.get("/api/checkouts/open").json()]
        self.assertIn(response.json()["recordID"], open_ids)

    def test_create_checkout_requires_ids(self):
        response = self.client.post("/api/checkouts", json={"toolID": "", "employeeID": hex_id(5)})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.store.created, [])

    def test_enforced_checkout_conflict_is_409(self):
        with mock.patch.dict(os.environ, {"ENFORCE_SINGLE_OPEN_CHECKOUT": "true"}):
            response = self.client.post("/api/checkouts", json={"toolID": hex_id(1), "employeeID": hex_id(5)})
        self.assertEqual(response.status_code, 409)

    def test_mutation_failure_is_502_and_not_audited(self):
        self.store.fail_mutations_with = 500
        response = self.client.post("/api/returns", json={"checkoutID": hex_id(10)})
        self.assertEqual(response.status_code, 502)
        self.assertEqual(self.fake_db.added, [])

    def test_return_closes_checkout(self):
        response = self.client.post("/api/returns", json={"checkoutID": hex_id(10), "condition": "einwandfrei"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["checkoutID"], hex_id(10))
        body = self.client.get("/api/dashboard").json()
        self.assertEqual(body["kpis"]["checkedOut"], 0)
        self.assertEqual(body["overdueCheckouts"], [])

    def test_tool_crud(self):
        created = self.client.post(
            "/api/tools",
            json={"designation": "Akkuschrauber", "category": "akkuwerkzeug", "requiresInspection": False},
        )
        self.assertEqual(created.status_code, 200)
        self.assertEqual(created.json()["categoryLabel"], "Akkuwerkzeug")
        self.assertEqual(self.store.created[0][1], {"bezeichnung": "Akkuschrauber", "kategorie": "akkuwerkzeug", "pruefpflicht": False})

        updated = self.client.put(f"/api/tools/{hex_id(2)}", json={"condition": "gut", "locationID": hex_id(30)})
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["conditionLabel"], "Gut")
        self.assertEqual(updated.json()["locationID"], hex_id(30))

        deleted = self.client.delete(f"/api/tools/{hex_id(2)}")
        self.assertEqual(deleted.json(), {"message": "Deleted"})
        self.assertEqual(self.client.delete(f"/api/tools/{hex_id(2)}").status_code, 404)

    def test_partial_update_sends_only_given_fields(self):
        response = self.client.put(f"/api/tools/{hex_id(1)}", json={"notes": None, "nextInspection": "2025-09-01"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.store.updated[0][2], {"notizen": None, "naechster_prueftermin": "2025-09-01"})
        self.assertEqual(self.fake_db.added[0].Details, "naechster_prueftermin,notizen")

    def test_checkout_update_with_offset_is_stored_as_utc(self):
        response = self.client.put(f"/api/checkouts/{hex_id(10)}", json={"issuedAt": "2025-05-31T01:15:00-03:00"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.store.updated[0][2], {"ausgabedatum": "2025-05-31T04:15"})
        self.assertEqual(response.json()["issuedAt"], "2025-05-31T04:15:00")

    def test_invalid_enum_is_rejected(self):
        response = self.client.post("/api/locations", json={"name": "Halle", "type": "keller"})
        self.assertEqual(response.status_code, 422)

    def test_update_without_fields_is_400(self):
        response = self.client.put(f"/api/employees/{hex_id(5)}", json={})
        self.assertEqual(response.status_code, 400)

    def test_employee_list_and_labels(self):
        rows = self.client.get("/api/employees").json()
        self.assertEqual(rows[0]["displayName"], "Eva Berg")
        labels = self.client.get("/api/labels").json()
        self.assertEqual(labels["locationTypes"]["aussenlager"], "Außenlager")

    def test_integrity_endpoint(self):
        rows = self.client.get("/api/integrity").json()
        findings = {row["name"]: row["ok"] for row in rows}
        self.assertFalse(findings["checkouts:dangling_employee"])
        self.assertTrue(findings["checkouts:multiple_open_per_tool"])

    def test_healthchecks(self):
        self.assertEqual(self.client.get("/healthz").json(), {"status": "ok"})
        self.assertEqual(self.client.get("/api/healthz").status_code, 200)
        self.store.failing_kinds.add(RecordKind.LOCATION)
        self.assertEqual(self.client.get("/api/healthz").status_code, 503)

    def test_audit_failure_does_not_fail_mutation(self):
        failing_db = FailingCommitDb()
        app_module.app.dependency_overrides[app_module.get_audit_db] = lambda: failing_db
        with self.assertLogs("tool_checkout.audit", level="WARNING") as logs:
            response = self.client.post("/api/locations", json={"name": "Halle 2", "type": "werkstatt"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["name"], "Halle 2")
        self.assertEqual(failing_db.rollbacks, 1)
        self.assertEqual(len(self.store.created), 1)
        self.assertIn("not written", logs.output[0])


class AuditLogTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.engine = create_engine(f"sqlite+pysqlite:///{self.tmpdir.name}/audit.db", future=True)
        self.addCleanup(self.engine.dispose)
        Base.metadata.create_all(bind=self.engine)
        session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False, future=True)

        def _audit_db():
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        self.store = FakeRecordStore(_snapshot())
        app_module.app.dependency_overrides[app_module.get_record_store] = lambda: self.store
        app_module.app.dependency_overrides[app_module.get_audit_db] = _audit_db
        self.addCleanup(app_module.app.dependency_overrides.clear)

    def test_mutations_are_listed_newest_first(self):
        with TestClient(app_module.app) as client:
            created = client.post("/api/locations", json={"name": "Halle 2"}).json()
            client.put(f"/api/tools/{hex_id(2)}", json={"condition": "gut"})
            client.delete(f"/api/returns/{hex_id(20)}")

            rows = client.get("/api/audit").json()
            limited = client.get("/api/audit", params={"limit": 1}).json()

        self.assertEqual(
            [(row["entityType"], row["entityID"], row["action"]) for row in rows],
            [
                ("WERKZEUGRUECKGABE", hex_id(20), "Delete"),
                ("WERKZEUGE", hex_id(2), "Update"),
                ("LAGERORTE", created["recordID"], "Create"),
            ],
        )
        self.assertEqual(rows[1]["details"], "zustand")
        self.assertEqual([row["auditID"] for row in limited], [rows[0]["auditID"]])

    def test_failed_mutation_leaves_no_entry(self):
        self.store.fail_mutations_with = 503
        with TestClient(app_module.app) as client:
            self.assertEqual(client.delete(f"/api/tools/{hex_id(1)}").status_code, 502)
            self.assertEqual(client.get("/api/audit").json(), [])


if __name__ == "__main__":
    unittest.main()
