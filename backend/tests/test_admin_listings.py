from __future__ import annotations

import os
import time
import unittest
from datetime import datetime
from unittest.mock import patch

from app import create_app
from app.extensions import db
from app.models import Listing, User
from app.utils.jwt_utils import create_access_token


class AdminListingModerationTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        cls._prev_db_url = os.getenv("DATABASE_URL")
        db_uri = "sqlite:///:memory:"
        os.environ["SQLALCHEMY_DATABASE_URI"] = db_uri
        os.environ["DATABASE_URL"] = db_uri
        cls.app = create_app()
        cls.app.config.update(TESTING=True, EMAIL_PROVIDER="mock")
        with cls.app.app_context():
            db.create_all()
        cls.client = cls.app.test_client()

    @classmethod
    def tearDownClass(cls):
        if cls._prev_db_uri is None:
            os.environ.pop("SQLALCHEMY_DATABASE_URI", None)
        else:
            os.environ["SQLALCHEMY_DATABASE_URI"] = cls._prev_db_uri
        if cls._prev_db_url is None:
            os.environ.pop("DATABASE_URL", None)
        else:
            os.environ["DATABASE_URL"] = cls._prev_db_url

    def setUp(self):
        patcher = patch("app.segments.segment_admin.send_moderation_notice")
        self.notice = patcher.start()
        self.addCleanup(patcher.stop)

    def _user(self, role: str = "SELLER") -> tuple[int, dict]:
        with self.app.app_context():
            user = User(
                name=f"{role.title()} Tester",
                email=f"{role.lower()}-{time.time_ns()}@lotosale.test",
                role=role,
                email_verified=datetime.utcnow(),
            )
            user.set_password("Passw0rdX")
            db.session.add(user)
            db.session.commit()
            uid = int(user.id)
        return uid, {"Authorization": f"Bearer {create_access_token(uid, role=role)}"}

    def _listing(self, seller_id: int, status: str = "PENDING", title: str = "Oak dining table") -> int:
        with self.app.app_context():
            listing = Listing(
                seller_id=seller_id,
                title=title,
                description="Solid oak table that seats six, minor marks on one leg.",
                category="HOME_GARDEN",
                condition="GOOD",
                pricing_type="FIXED",
                price=2400.0,
                primary_image="https://res.cloudinary.com/demo/image/upload/v1/table.jpg",
                city="Durban",
                province="KwaZulu-Natal",
                status=status,
            )
            db.session.add(listing)
            db.session.commit()
            return int(listing.id)

    def test_non_admin_is_forbidden(self):
        _, seller = self._user("SELLER")
        self.assertEqual(self.client.get("/api/admin/listings", headers=seller).status_code, 403)
        self.assertEqual(self.client.get("/api/admin/listings").status_code, 401)

    def test_approve_writes_audit_log_and_notifies(self):
        admin_id, admin = self._user("ADMIN")
        seller_id, _ = self._user("SELLER")
        listing_id = self._listing(seller_id)

        res = self.client.post(f"/api/admin/listings/{listing_id}/approve", headers=admin)
        self.assertEqual(res.status_code, 200)
        listing = res.get_json(force=True)["listing"]
        self.assertEqual(listing["status"], "APPROVED")
        self.assertIsNotNone(listing["approved_at"])
        self.assertEqual(listing["seller"]["id"], seller_id)
        self.notice.assert_called_once()
        self.assertEqual(self.notice.call_args[0][1], "APPROVE_LISTING")

        again = self.client.post(f"/api/admin/listings/{listing_id}/approve", headers=admin)
        self.assertEqual(again.status_code, 400)
        self.assertEqual(
            again.get_json(force=True)["message"],
            "Cannot approve listing with status: APPROVED. Only PENDING listings can be approved.",
        )

        logs = self.client.get(f"/api/admin/audit-logs?userId={admin_id}", headers=admin).get_json(force=True)
        self.assertEqual(len(logs["logs"]), 1)
        entry = logs["logs"][0]
        self.assertEqual(entry["action"], "APPROVE_LISTING")
        self.assertEqual(entry["target_type"], "LISTING")
        self.assertEqual(entry["target_id"], str(listing_id))
        self.assertEqual(entry["details"]["previousStatus"], "PENDING")
        self.assertEqual(entry["user"]["id"], admin_id)
        self.assertFalse(logs["hasMore"])

    def test_reject_requires_reason(self):
        admin_id, admin = self._user("ADMIN")
        seller_id, _ = self._user("SELLER")
        listing_id = self._listing(seller_id)

        short = self.client.post(f"/api/admin/listings/{listing_id}/reject", json={"reason": "blurry"}, headers=admin)
        self.assertEqual(short.status_code, 400)
        self.assertEqual(short.get_json(force=True)["error"], "VALIDATION_ERROR")
        self.assertIn("reason", short.get_json(force=True)["errors"])

        reason = "Photos do not show the item being sold"
        res = self.client.post(f"/api/admin/listings/{listing_id}/reject", json={"reason": reason}, headers=admin)
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)["listing"]
        self.assertEqual(body["status"], "REJECTED")
        self.assertEqual(body["rejection_reason"], reason)
        self.assertEqual(self.notice.call_args[0][2], reason)

        logs = self.client.get(
            f"/api/admin/audit-logs?userId={admin_id}&action=REJECT_LISTING", headers=admin
        ).get_json(force=True)["logs"]
        self.assertEqual(logs[0]["details"]["reason"], reason)

    def test_pause_and_restore(self):
        _, admin = self._user("ADMIN")
        seller_id, _ = self._user("SELLER")
        listing_id = self._listing(seller_id, status="APPROVED")

        restore_early = self.client.post(f"/api/admin/listings/{listing_id}/restore", headers=admin)
        self.assertEqual(restore_early.status_code, 400)
        paused = self.client.post(f"/api/admin/listings/{listing_id}/pause", headers=admin)
        self.assertEqual(paused.get_json(force=True)["listing"]["status"], "PAUSED")
        restored = self.client.post(f"/api/admin/listings/{listing_id}/restore", headers=admin)
        self.assertEqual(restored.get_json(force=True)["listing"]["status"], "APPROVED")

    def test_delete_rules(self):
        admin_id, admin = self._user("ADMIN")
        seller_id, _ = self._user("SELLER")
        sold_id = self._listing(seller_id, status="SOLD")
        live_id = self._listing(seller_id, status="APPROVED")
        reason = "Listing duplicates another active advert"

        missing_reason = self.client.delete(f"/api/admin/listings/{live_id}", json={}, headers=admin)
        self.assertEqual(missing_reason.status_code, 400)
        sold = self.client.delete(f"/api/admin/listings/{sold_id}", json={"reason": reason}, headers=admin)
        self.assertEqual(sold.status_code, 400)
        self.assertEqual(
            sold.get_json(force=True)["message"],
            "Cannot delete SOLD listings. They are part of transaction history.",
        )

        res = self.client.delete(f"/api/admin/listings/{live_id}", json={"reason": reason}, headers=admin)
        self.assertEqual(res.status_code, 200)
        with self.app.app_context():
            self.assertIsNone(db.session.get(Listing, live_id))
        self.assertEqual(self.notice.call_args[0][1], "DELETE_LISTING")

        logs = self.client.get(
            f"/api/admin/audit-logs?userId={admin_id}&targetType=LISTING", headers=admin
        ).get_json(force=True)["logs"]
        self.assertEqual(logs[0]["action"], "DELETE_LISTING")
        self.assertEqual(logs[0]["details"]["deletionReason"], reason)

    def test_list_filters_and_pagination(self):
        _, admin = self._user("ADMIN")
        seller_id, _ = self._user("SELLER")
        marker = f"Marker{time.time_ns()}"
        for idx in range(3):
            self._listing(seller_id, status="PENDING", title=f"{marker} lamp {idx}")
        self._listing(seller_id, status="REJECTED", title=f"{marker} rug")

        res = self.client.get(
            f"/api/admin/listings?status=PENDING&search={marker}&limit=2&sort_order=asc", headers=admin
        )
        body = res.get_json(force=True)
        self.assertEqual(body["pagination"], {"total": 3, "page": 1, "limit": 2, "totalPages": 2})
        self.assertEqual([row["title"] for row in body["listings"]], [f"{marker} lamp 0", f"{marker} lamp 1"])
        self.assertEqual(set(body["listings"][0]["seller"]), {"id", "name", "email", "rating"})

        both = self.client.get(
            f"/api/admin/listings?status=PENDING,REJECTED&search={marker}", headers=admin
        ).get_json(force=True)
        self.assertEqual(both["pagination"]["total"], 4)

    def test_audit_log_filters(self):
        admin_id, admin = self._user("ADMIN")
        seller_id, _ = self._user("SELLER")
        for _ in range(3):
            listing_id = self._listing(seller_id)
            self.client.post(f"/api/admin/listings/{listing_id}/approve", headers=admin)

        first = self.client.get(f"/api/admin/audit-logs?userId={admin_id}&limit=2", headers=admin).get_json(force=True)
        self.assertTrue(first["hasMore"])
        self.assertEqual(len(first["logs"]), 2)
        rest = self.client.get(
            f"/api/admin/audit-logs?userId={admin_id}&limit=2&cursor={first['nextCursor']}", headers=admin
        ).get_json(force=True)
        self.assertFalse(rest["hasMore"])
        self.assertEqual(len(rest["logs"]), 1)

        unknown = self.client.get("/api/admin/audit-logs?action=DROP_TABLES", headers=admin)
        self.assertEqual(unknown.status_code, 400)


if __name__ == "__main__":
    unittest.main()
