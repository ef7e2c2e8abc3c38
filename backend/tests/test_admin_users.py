from __future__ import annotations

import os
import time
import unittest
from datetime import datetime

from app import create_app
from app.extensions import db
from app.models import Listing, Transaction, User
from app.utils.jwt_utils import create_access_token


class AdminUsersTestCase(unittest.TestCase):
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

    def _user(self, role: str = "BUYER", name: str | None = None) -> tuple[int, dict]:
        with self.app.app_context():
            user = User(
                name=name or f"{role.title()} Tester",
                email=f"{role.lower()}-{time.time_ns()}@lotosale.test",
                role=role,
                email_verified=datetime.utcnow(),
            )
            user.set_password("Passw0rdX")
            db.session.add(user)
            db.session.commit()
            uid = int(user.id)
        return uid, {"Authorization": f"Bearer {create_access_token(uid, role=role)}"}

    def test_create_user(self):
        _, admin = self._user("ADMIN")
        email = f"new-{time.time_ns()}@lotosale.test"
        payload = {
            "email": email,
            "name": "Lerato Mokoena",
            "password": "Sup3rSecret",
            "role": "seller",
            "phone": "0821234567",
            "province": "Gauteng",
        }
        res = self.client.post("/api/admin/users", json=payload, headers=admin)
        self.assertEqual(res.status_code, 201)
        user = res.get_json(force=True)["user"]
        self.assertEqual(user["role"], "SELLER")
        self.assertNotIn("password_hash", user)

        duplicate = self.client.post("/api/admin/users", json=payload, headers=admin)
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.get_json(force=True)["message"], "A user with this email already exists")

        invalid = self.client.post(
            "/api/admin/users",
            json={"email": "nope", "name": "L", "password": "short", "role": "OWNER", "province": "Atlantis"},
            headers=admin,
        )
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(
            set(invalid.get_json(force=True)["errors"]), {"email", "name", "password", "role", "province"}
        )

    def test_list_filters_and_counts(self):
        _, admin = self._user("ADMIN")
        marker = f"Zanele{time.time_ns()}"
        seller_id, _ = self._user("SELLER", name=f"{marker} Seller")
        buyer_id, _ = self._user("BUYER", name=f"{marker} Buyer")
        with self.app.app_context():
            listing = Listing(
                seller_id=seller_id,
                title="Microwave oven 28L",
                description="Works perfectly, selling because we upgraded.",
                category="ELECTRONICS",
                condition="GOOD",
                pricing_type="FIXED",
                price=750.0,
                primary_image="https://res.cloudinary.com/demo/image/upload/v1/microwave.jpg",
                city="Bloemfontein",
                province="Free State",
                status="APPROVED",
            )
            db.session.add(listing)
            db.session.flush()
            db.session.add(
                Transaction(
                    listing_id=listing.id,
                    buyer_id=buyer_id,
                    seller_id=seller_id,
                    amount=750.0,
                    commission=150.0,
                    net_amount=600.0,
                )
            )
            db.session.commit()

        res = self.client.get(f"/api/admin/users?search={marker}&sortBy=name&sortOrder=asc", headers=admin)
        body = res.get_json(force=True)
        self.assertEqual(body["pagination"]["total"], 2)
        names = [u["name"] for u in body["users"]]
        self.assertEqual(names, [f"{marker} Buyer", f"{marker} Seller"])
        self.assertEqual(body["users"][0]["counts"], {"listings": 0, "purchases": 1, "sales": 0})
        self.assertEqual(body["users"][1]["counts"], {"listings": 1, "purchases": 0, "sales": 1})

        sellers = self.client.get(f"/api/admin/users?search={marker}&role=seller", headers=admin).get_json(force=True)
        self.assertEqual([u["id"] for u in sellers["users"]], [seller_id])

        blocked = self.client.delete(f"/api/admin/users/{buyer_id}", headers=admin)
        self.assertEqual(blocked.status_code, 400)
        self.assertEqual(blocked.get_json(force=True)["message"], "Users with transaction history cannot be deleted")

    def test_stats(self):
        _, admin = self._user("ADMIN")
        stats = self.client.get("/api/admin/users/stats", headers=admin).get_json(force=True)
        self.assertEqual(
            set(stats),
            {"totalUsers", "adminCount", "sellerCount", "buyerCount", "verifiedUsers", "usersThisMonth"},
        )
        self.assertEqual(stats["totalUsers"], stats["adminCount"] + stats["sellerCount"] + stats["buyerCount"])
        self.assertGreaterEqual(stats["usersThisMonth"], 1)

    def test_delete_guards_and_success(self):
        admin_id, admin = self._user("ADMIN")
        self._user("ADMIN")
        self_delete = self.client.delete(f"/api/admin/users/{admin_id}", headers=admin)
        self.assertEqual(self_delete.status_code, 400)
        self.assertEqual(self_delete.get_json(force=True)["message"], "You cannot delete your own account")

        seller_id, _ = self._user("SELLER")
        with self.app.app_context():
            db.session.add(
                Listing(
                    seller_id=seller_id,
                    title="Garden hose 30m",
                    description="Hose with spray nozzle, no leaks at all.",
                    category="HOME_GARDEN",
                    condition="GOOD",
                    pricing_type="FIXED",
                    price=150.0,
                    primary_image="https://res.cloudinary.com/demo/image/upload/v1/hose.jpg",
                    city="Polokwane",
                    province="Limpopo",
                )
            )
            db.session.commit()

        res = self.client.delete(f"/api/admin/users/{seller_id}", headers=admin)
        self.assertEqual(res.status_code, 200)
        with self.app.app_context():
            self.assertIsNone(db.session.get(User, seller_id))
            self.assertEqual(Listing.query.filter_by(seller_id=seller_id).count(), 0)
        self.assertEqual(self.client.delete(f"/api/admin/users/{seller_id}", headers=admin).status_code, 404)

    def test_role_changes(self):
        admin_id, admin = self._user("ADMIN")
        buyer_id, _ = self._user("BUYER")

        promoted = self.client.patch(f"/api/admin/users/{buyer_id}/role", json={"role": "SELLER"}, headers=admin)
        self.assertEqual(promoted.get_json(force=True)["user"]["role"], "SELLER")
        via_post = self.client.post(f"/api/admin/users/{buyer_id}/role", json={"role": "buyer"}, headers=admin)
        self.assertEqual(via_post.get_json(force=True)["user"]["role"], "BUYER")

        bad = self.client.put(f"/api/admin/users/{buyer_id}/role", json={"role": "ROOT"}, headers=admin)
        self.assertEqual(bad.status_code, 400)
        own = self.client.patch(f"/api/admin/users/{admin_id}/role", json={"role": "ADMIN"}, headers=admin)
        self.assertEqual(own.status_code, 400)
        self.assertEqual(own.get_json(force=True)["message"], "You cannot change your own role")

    def test_last_admin_is_protected(self):
        with self.app.app_context():
            User.query.filter(User.role == "ADMIN").update({User.role: "BUYER"}, synchronize_session=False)
            db.session.commit()
        admin_id, admin = self._user("ADMIN")

        demote = self.client.patch(f"/api/admin/users/{admin_id}/role", json={"role": "BUYER"}, headers=admin)
        self.assertEqual(demote.status_code, 400)
        self.assertIn("last admin", demote.get_json(force=True)["message"])
        delete = self.client.delete(f"/api/admin/users/{admin_id}", headers=admin)
        self.assertEqual(delete.status_code, 400)
        self.assertIn("last admin", delete.get_json(force=True)["message"])

    def test_requires_admin(self):
        _, seller = self._user("SELLER")
        self.assertEqual(self.client.get("/api/admin/users", headers=seller).status_code, 403)


if __name__ == "__main__":
    unittest.main()
