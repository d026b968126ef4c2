import re
import unittest
from datetime import datetime
from urllib.parse import urlparse

from fastapi.testclient import TestClient
from sqlalchemy import inspect

from gymcheckin.config import Settings
from gymcheckin.errors import Unauthenticated
from gymcheckin.integrations import DEVELOPMENT_TOKEN, Identity
from gymcheckin.main import create_app

PIN_PATTERN = re.compile(r"^[1-9][0-9]{3}$")


class FakeIdentityProvider:
    def __init__(self, **tokens):
        self.tokens = {token: Identity(user_id=uid, display_name=name) for token, (uid, name) in tokens.items()}

    def resolve(self, token):
        if token not in self.tokens:
            raise Unauthenticated()
        return self.tokens[token]


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def slot(**overrides):
    body = {"facilityType": "GYM", "date": "2026-02-03", "startTime": "16:00", "duration": 2}
    body.update(overrides)
    return body


class LocalModeApiTests(unittest.TestCase):
    """Local deployment: in-process store and the instant gateway."""

    def setUp(self):
        self.app = create_app(Settings(deployment_mode="local"))
        self.app.state.identity_provider = FakeIdentityProvider(
            alice=("U_alice", "Alice"),
            bob=("U_bob", "Bob"),
        )
        self.app.state.clock = FixedClock(datetime(2026, 2, 1, 9, 0))
        self.client = TestClient(self.app)

    def create(self, token="alice", **overrides):
        response = self.client.post("/api/checkins", json=slot(**overrides), headers=auth(token))
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def pay(self, payment_url):
        parsed = urlparse(payment_url)
        return self.client.get(f"{parsed.path}?{parsed.query}", follow_redirects=False)

    def test_requires_bearer_token(self):
        self.assertEqual(self.client.get("/api/checkins").status_code, 401)
        self.assertEqual(self.client.get("/api/checkins", headers=auth("nobody")).status_code, 401)

    def test_users_me_registers_user(self):
        response = self.client.get("/api/users/me", headers=auth("alice"))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["lineUserId"], "U_alice")
        self.assertEqual(body["displayName"], "Alice")

    def test_create_then_pay_issues_pin_once(self):
        created = self.create()
        checkin = created["checkin"]
        self.assertEqual(checkin["status"], "PENDING")
        self.assertIsNone(checkin["pinCode"])
        self.assertEqual(checkin["totalPrice"], 4950)
        self.assertEqual(checkin["endTime"], "18:00")
        self.assertIsNotNone(created["paymentUrl"])

        first = self.pay(created["paymentUrl"])
        self.assertEqual(first.status_code, 302)
        self.assertEqual(first.headers["location"], f"http://localhost:8000/complete?checkinId={checkin['id']}")

        paid = self.client.get(f"/api/checkins/{checkin['id']}", headers=auth("alice")).json()
        self.assertEqual(paid["status"], "PAID")
        self.assertRegex(paid["pinCode"], PIN_PATTERN)
        self.assertIsNone(paid["cancellableUntil"])

        second = self.pay(created["paymentUrl"])
        self.assertEqual(second.status_code, 302)
        self.assertEqual(second.headers["location"], first.headers["location"])
        again = self.client.get(f"/api/checkins/{checkin['id']}", headers=auth("alice")).json()
        self.assertEqual(again["pinCode"], paid["pinCode"])
        self.assertEqual(again["paymentReference"], paid["paymentReference"])

    def test_other_user_gets_not_found(self):
        checkin = self.create()["checkin"]
        response = self.client.get(f"/api/checkins/{checkin['id']}", headers=auth("bob"))
        self.assertEqual(response.status_code, 404)
        response = self.client.delete(f"/api/checkins/{checkin['id']}", headers=auth("bob"))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.get("/api/checkins", headers=auth("bob")).json(), [])

    def test_list_newest_first(self):
        first = self.create()["checkin"]
        second = self.create(facilityType="TRAINING")["checkin"]
        listed = self.client.get("/api/checkins", headers=auth("alice")).json()
        self.assertEqual([c["id"] for c in listed], [second["id"], first["id"]])

    def test_cancel_pending_within_window(self):
        checkin = self.create()["checkin"]
        self.assertEqual(checkin["cancellableUntil"], "2026-02-03T15:00:00")

        response = self.client.delete(f"/api/checkins/{checkin['id']}", headers=auth("alice"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"message": "Cancelled successfully"})
        stored = self.client.get(f"/api/checkins/{checkin['id']}", headers=auth("alice")).json()
        self.assertEqual(stored["status"], "CANCELLED")

    def test_cancel_after_deadline_is_refused(self):
        checkin = self.create()["checkin"]
        self.app.state.clock.now = datetime(2026, 2, 3, 15, 1)

        response = self.client.delete(f"/api/checkins/{checkin['id']}", headers=auth("alice"))
        self.assertEqual(response.status_code, 400)
        self.assertIn("1 hour", response.json()["detail"])
        stored = self.client.get(f"/api/checkins/{checkin['id']}", headers=auth("alice")).json()
        self.assertEqual(stored["status"], "PENDING")

    def test_cancel_paid_is_conflict(self):
        created = self.create()
        self.pay(created["paymentUrl"])
        response = self.client.delete(f"/api/checkins/{created['checkin']['id']}", headers=auth("alice"))
        self.assertEqual(response.status_code, 409)

    def test_confirm_errors(self):
        self.assertEqual(self.client.get("/api/payments/confirm", follow_redirects=False).status_code, 400)
        response = self.client.get(
            "/api/payments/confirm",
            params={"transactionId": "LOCAL-x", "orderId": "missing"},
            follow_redirects=False,
        )
        self.assertEqual(response.status_code, 404)

    def test_price_preview_matches_create(self):
        preview = self.client.post("/api/prices/calculate", json=slot(), headers=auth("alice"))
        self.assertEqual(preview.status_code, 200)
        self.assertEqual(
            preview.json(),
            {"totalPrice": 4950, "breakdown": [{"hour": 16, "price": 2750}, {"hour": 17, "price": 2200}]},
        )
        self.assertEqual(self.create()["checkin"]["totalPrice"], preview.json()["totalPrice"])
        self.assertEqual(len(self.client.get("/api/checkins", headers=auth("alice")).json()), 1)

    def test_invalid_slots_are_client_errors(self):
        bad_type = self.client.post("/api/prices/calculate", json=slot(facilityType="POOL"), headers=auth("alice"))
        self.assertEqual(bad_type.status_code, 422)

        missing = dict(slot())
        del missing["startTime"]
        self.assertEqual(self.client.post("/api/checkins", json=missing, headers=auth("alice")).status_code, 422)

        too_late = self.client.post("/api/checkins", json=slot(startTime="20:00", duration=2), headers=auth("alice"))
        self.assertEqual(too_late.status_code, 400)
        off_hour = self.client.post("/api/prices/calculate", json=slot(startTime="16:30"), headers=auth("alice"))
        self.assertEqual(off_hour.status_code, 400)

    def test_facility_catalog(self):
        body = self.client.get("/api/facilities").json()
        self.assertEqual([f["id"] for f in body["facilities"]], ["GYM", "TRAINING"])
        self.assertEqual(body["timeSlots"][0], "07:00")
        self.assertEqual(body["timeSlots"][-1], "20:00")
        self.assertEqual(body["durationOptions"], [1, 2, 3, 4])


class ServerModeBypassApiTests(unittest.TestCase):
    """SQL storage with payment bypassed (no gateway credentials)."""

    def setUp(self):
        self.app = create_app(Settings(database_url="sqlite://", allow_development_bypass=True))
        self.client = TestClient(self.app)

    def test_create_is_paid_immediately(self):
        response = self.client.post(
            "/api/checkins",
            json=slot(startTime="18:00", duration=1),
            headers=auth(DEVELOPMENT_TOKEN),
        )
        self.assertEqual(response.status_code, 201, response.text)
        body = response.json()
        self.assertIsNone(body["paymentUrl"])
        self.assertEqual(body["checkin"]["status"], "PAID")
        self.assertEqual(body["checkin"]["totalPrice"], 2200)
        self.assertRegex(body["checkin"]["pinCode"], PIN_PATTERN)

        listed = self.client.get("/api/checkins", headers=auth(DEVELOPMENT_TOKEN)).json()
        self.assertEqual([c["id"] for c in listed], [body["checkin"]["id"]])

    def test_health_reports_database(self):
        body = self.client.get("/health").json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["db"], "ok")
        self.assertEqual(body["db_source"], "DATABASE_URL")
        self.assertTrue(body["payment_bypassed"])
        self.assertIsNone(body["gateway"])

    def test_startup_creates_full_schema(self):
        inspector = inspect(self.app.state.engine)
        self.assertEqual(
            {c["name"] for c in inspector.get_columns("users")},
            {"id", "external_identity_id", "display_name", "picture_url", "created_at", "updated_at"},
        )
        checkin_columns = {c["name"] for c in inspector.get_columns("checkins")}
        self.assertTrue({"payment_reference", "pin_code", "status", "updated_at"} <= checkin_columns)
        self.assertIn("ix_checkins_user_created", {i["name"] for i in inspector.get_indexes("checkins")})

    def test_only_api_routes_are_served(self):
        self.assertEqual(self.client.get("/favicon.ico").status_code, 404)


if __name__ == "__main__":
    unittest.main()
