from __future__ import annotations

import unittest
import uuid
from collections.abc import Generator

from fastapi.testclient import TestClient

from db_support import add_company, add_user, auth_for, create_sqlite_engine, make_session_factory
from work360.db import get_db
from work360.main import app
from work360.models import AbsenceStatus, AuditLog, UserRole
from work360.security import require_auth
from work360.services.tenancy import AuthContext


class AbsenceRequestEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_sqlite_engine()
        self.session_factory = make_session_factory(self.engine)
        with self.session_factory() as db:
            company = add_company(db)
            other_company = add_company(db, "Costruzioni Bianchi")
            self.owner_auth = auth_for(add_user(db, company, role=UserRole.OWNER, username="titolare"))
            self.worker_auth = auth_for(add_user(db, company, username="mario"))
            self.colleague_auth = auth_for(add_user(db, company, username="luigi"))
            self.outsider_auth = auth_for(add_user(db, other_company, role=UserRole.OWNER, username="bianchi"))

        self.current_auth: AuthContext = self.worker_auth

        def _override_get_db() -> Generator[object, None, None]:
            db = self.session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = _override_get_db
        app.dependency_overrides[require_auth] = lambda: self.current_auth
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.engine.dispose()

    def _as(self, auth: AuthContext) -> None:
        self.current_auth = auth

    def _create_vacation(self, start: str = "2026-08-03", end: str | None = "2026-08-07") -> dict:
        self._as(self.worker_auth)
        response = self.client.post(
            "/api/absence-requests",
            json={"type": "FERIE", "start_date": start, "end_date": end},
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["request"]

    def test_create_returns_request_and_empty_overlaps(self) -> None:
        response = self.client.post(
            "/api/absence-requests",
            json={
                "type": "PERMESSO",
                "mode": "HOURS",
                "category": "MEDICO",
                "start_date": "2026-09-10",
                "start_time": "09:00",
                "end_time": "11:30",
                "notes": "Visita specialistica",
            },
            headers={"X-Request-Id": "req-create-1"},
        )

        self.assertEqual(response.status_code, 201, response.text)
        self.assertEqual(response.headers["X-Request-Id"], "req-create-1")
        body = response.json()
        self.assertEqual(body["request"]["status"], "PENDING")
        self.assertEqual(body["request"]["duration_minutes"], 150)
        self.assertEqual(body["request"]["employee_id"], str(self.worker_auth.user_id))
        self.assertEqual(body["overlaps"], [])
        self.assertFalse(body["has_overlaps"])

        with self.session_factory() as db:
            audit = db.query(AuditLog).one()
            self.assertEqual(audit.action, "ABSENCE_REQUEST_CREATED")
            self.assertEqual(audit.entity_id, body["request"]["id"])
            self.assertEqual(audit.company_id, self.worker_auth.company_id)

    def test_create_with_invalid_fields_returns_all_violations(self) -> None:
        response = self.client.post(
            "/api/absence-requests",
            json={"type": "PERMESSO", "start_date": "2026-09-10"},
            headers={"X-Request-Id": "req-invalid-1"},
        )

        self.assertEqual(response.status_code, 400)
        error = response.json()["error"]
        self.assertEqual(error["kind"], "ValidationError")
        self.assertEqual(error["code"], "VALIDATION_ERROR")
        self.assertEqual(error["request_id"], "req-invalid-1")
        self.assertEqual({item["field"] for item in error["errors"]}, {"mode", "category"})

    def test_unknown_enum_value_is_a_request_validation_error(self) -> None:
        response = self.client.post("/api/absence-requests", json={"type": "MALATTIA", "start_date": "2026-09-10"})

        self.assertEqual(response.status_code, 422)
        error = response.json()["error"]
        self.assertEqual(error["code"], "REQUEST_VALIDATION_ERROR")
        self.assertTrue(any(item["field"].endswith("type") for item in error["errors"]))

    def test_full_changes_requested_round_trip(self) -> None:
        created = self._create_vacation()

        self._as(self.owner_auth)
        changes = self.client.post(
            f"/api/absence-requests/{created['id']}/request-changes",
            json={"requested_changes": "Rientra il giorno 6"},
        )
        self.assertEqual(changes.status_code, 200, changes.text)
        self.assertEqual(changes.json()["request"]["status"], "CHANGES_REQUESTED")
        self.assertEqual(changes.json()["request"]["requested_changes"], "Rientra il giorno 6")

        self._as(self.worker_auth)
        resubmitted = self.client.post(
            f"/api/absence-requests/{created['id']}/resubmit",
            json={"end_date": "2026-08-06"},
        )
        self.assertEqual(resubmitted.status_code, 200, resubmitted.text)
        body = resubmitted.json()["request"]
        self.assertEqual(body["status"], "PENDING")
        self.assertEqual(body["end_date"], "2026-08-06")
        self.assertEqual(body["revision_number"], 2)
        self.assertIsNone(body["requested_changes"])

        detail = self.client.get(f"/api/absence-requests/{created['id']}")
        self.assertEqual(detail.status_code, 200)
        revisions = detail.json()["revisions"]
        self.assertEqual(len(revisions), 1)
        self.assertEqual(revisions[0]["changes"]["changed_fields"], ["end_date"])

        self._as(self.owner_auth)
        approved = self.client.post(f"/api/absence-requests/{created['id']}/approve")
        self.assertEqual(approved.status_code, 200, approved.text)
        self.assertEqual(approved.json()["request"]["status"], AbsenceStatus.APPROVED.value)
        self.assertEqual(approved.json()["request"]["decision_by"], str(self.owner_auth.user_id))

    def test_approve_reports_overlaps(self) -> None:
        first = self._create_vacation("2026-08-03", "2026-08-07")
        second = self._create_vacation("2026-08-07", None)

        self._as(self.owner_auth)
        self.client.post(f"/api/absence-requests/{first['id']}/approve", json={"note": "Ok"})
        response = self.client.post(f"/api/absence-requests/{second['id']}/approve")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["has_overlaps"])
        self.assertEqual([item["id"] for item in body["overlaps"]], [first["id"]])

    def test_worker_cannot_approve(self) -> None:
        created = self._create_vacation()

        response = self.client.post(f"/api/absence-requests/{created['id']}/approve")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["kind"], "Forbidden")

    def test_reject_without_reason_is_rejected(self) -> None:
        created = self._create_vacation()

        self._as(self.owner_auth)
        response = self.client.post(f"/api/absence-requests/{created['id']}/reject", json={"note": " "})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["errors"][0]["field"], "note")

    def test_second_decision_is_a_conflict(self) -> None:
        created = self._create_vacation()

        self._as(self.owner_auth)
        self.client.post(f"/api/absence-requests/{created['id']}/reject", json={"note": "Cantiere in consegna"})
        response = self.client.post(f"/api/absence-requests/{created['id']}/approve")

        self.assertEqual(response.status_code, 409)
        error = response.json()["error"]
        self.assertEqual(error["kind"], "InvalidState")
        self.assertEqual(error["code"], "INVALID_TRANSITION")

    def test_colleague_and_other_company_get_not_found(self) -> None:
        created = self._create_vacation()

        self._as(self.colleague_auth)
        self.assertEqual(self.client.get(f"/api/absence-requests/{created['id']}").status_code, 404)

        self._as(self.outsider_auth)
        response = self.client.post(f"/api/absence-requests/{created['id']}/approve")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "ABSENCE_REQUEST_NOT_FOUND")

    def test_unknown_id_is_not_found(self) -> None:
        response = self.client.get(f"/api/absence-requests/{uuid.uuid4()}")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["kind"], "NotFound")

    def test_mine_and_all_listings(self) -> None:
        self._create_vacation("2026-08-03", "2026-08-07")
        self._create_vacation("2026-09-01", None)

        mine = self.client.get("/api/absence-requests/mine", params={"limit": 1})
        self.assertEqual(mine.status_code, 200)
        self.assertEqual(len(mine.json()["items"]), 1)
        self.assertEqual(mine.json()["pagination"], {"total": 2, "page": 1, "limit": 1, "total_pages": 2})

        forbidden = self.client.get("/api/absence-requests/all")
        self.assertEqual(forbidden.status_code, 403)

        self._as(self.owner_auth)
        august = self.client.get("/api/absence-requests/all", params={"month": "2026-08", "status": "PENDING"})
        self.assertEqual(august.status_code, 200)
        self.assertEqual(august.json()["pagination"]["total"], 1)

        bad_month = self.client.get("/api/absence-requests/all", params={"month": "08-2026"})
        self.assertEqual(bad_month.status_code, 400)

    def test_limit_above_maximum_is_refused(self) -> None:
        response = self.client.get("/api/absence-requests/mine", params={"limit": 51})
        self.assertEqual(response.status_code, 422)

    def test_cancel_and_delete(self) -> None:
        created = self._create_vacation()

        cancelled = self.client.post(f"/api/absence-requests/{created['id']}/cancel")
        self.assertEqual(cancelled.status_code, 200)
        self.assertEqual(cancelled.json()["request"]["status"], "CANCELLED")

        deleted = self.client.delete(f"/api/absence-requests/{created['id']}")
        self.assertEqual(deleted.status_code, 204)
        self.assertEqual(self.client.get(f"/api/absence-requests/{created['id']}").status_code, 404)

    def test_worker_cannot_delete_approved_request(self) -> None:
        created = self._create_vacation()
        self._as(self.owner_auth)
        self.client.post(f"/api/absence-requests/{created['id']}/approve")

        self._as(self.worker_auth)
        response = self.client.delete(f"/api/absence-requests/{created['id']}")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"]["code"], "ABSENCE_REQUEST_LOCKED")


class MissingCredentialsTests(unittest.TestCase):
    def test_missing_bearer_token_is_unauthorized(self) -> None:
        client = TestClient(app)
        response = client.get("/api/absence-requests/mine")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "INVALID_TOKEN")


if __name__ == "__main__":
    unittest.main()
