from __future__ import annotations

import os
import time
import unittest
from datetime import datetime

from app import create_app
from app.extensions import db
from app.models import Listing, User
from app.utils.jwt_utils import create_access_token


class ListingsApiTestCase(unittest.TestCase):
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

    def _user(self, role: str = "BUYER") -> tuple[int, dict]:
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

    def _payload(self, **overrides) -> dict:
        payload = {
            "title": "Kenwood kettle, barely used",
            "description": "Cordless 1.7 litre kettle with a brushed steel finish and limescale filter.",
            "category": "HOME_GARDEN",
            "condition": "LIKE_NEW",
            "pricingType": "FIXED",
            "price": 350,
            "images": ["https://res.cloudinary.com/demo/image/upload/v1/kettle.jpg"],
            "city": "Cape Town",
            "province": "Western Cape",
        }
        payload.update(overrides)
        return payload

    def _create(self, headers: dict, **overrides) -> dict:
        res = self.client.post("/api/listings", json=self._payload(**overrides), headers=headers)
        self.assertEqual(res.status_code, 201, res.get_data(as_text=True))
        return (res.get_json(force=True) or {}).get("listing") or {}

    def _set_status(self, listing_id: int, status: str) -> None:
        with self.app.app_context():
            listing = db.session.get(Listing, listing_id)
            listing.status = status
            db.session.commit()

    def test_create_requires_auth_and_valid_payload(self):
        res = self.client.post("/api/listings", json=self._payload())
        self.assertEqual(res.status_code, 401)

        _, headers = self._user()
        bad = self.client.post("/api/listings", json=self._payload(price=None, title="Hi"), headers=headers)
        self.assertEqual(bad.status_code, 400)
        errors = (bad.get_json(force=True) or {}).get("errors") or {}
        self.assertIn("price", errors)
        self.assertIn("title", errors)

        offers = self.client.post(
            "/api/listings",
            json=self._payload(pricingType="OFFERS", price=100, minOffer=150),
            headers=headers,
        )
        self.assertEqual(offers.status_code, 400)
        self.assertIn("minOffer", (offers.get_json(force=True) or {}).get("errors") or {})

    def test_created_listing_is_pending_and_promotes_buyer(self):
        uid, headers = self._user("BUYER")
        listing = self._create(headers)
        self.assertEqual(listing.get("status"), "PENDING")
        self.assertEqual(listing.get("primary_image"), listing.get("images")[0])
        self.assertEqual(listing.get("seller_id"), uid)
        with self.app.app_context():
            self.assertEqual(db.session.get(User, uid).role, "SELLER")

        anon = self.client.get(f"/api/listings/{listing['id']}")
        self.assertEqual(anon.status_code, 404)
        own = self.client.get(f"/api/listings/{listing['id']}", headers=headers)
        self.assertEqual(own.status_code, 200)

        mine = self.client.get("/api/listings/mine?status=pending", headers=headers)
        self.assertEqual([row["id"] for row in (mine.get_json(force=True) or {}).get("listings")], [listing["id"]])

    def test_browse_filters_sorting_and_cursor(self):
        _, headers = self._user("SELLER")
        town = f"Town{time.time_ns()}"
        ids = []
        for price in (300, 100, 200):
            row = self._create(headers, city=town, price=price)
            self._set_status(row["id"], "APPROVED")
            ids.append(row["id"])
        hidden = self._create(headers, city=town, price=50)

        res = self.client.get(f"/api/listings?city={town}&sortBy=price-low")
        body = res.get_json(force=True) or {}
        self.assertEqual(body.get("totalCount"), 3)
        self.assertEqual([row["price"] for row in body["listings"]], [100.0, 200.0, 300.0])
        self.assertNotIn(hidden["id"], [row["id"] for row in body["listings"]])
        self.assertIn("seller", body["listings"][0])

        filtered = self.client.get(f"/api/listings?city={town}&minPrice=150&maxPrice=250")
        self.assertEqual([row["price"] for row in (filtered.get_json(force=True) or {})["listings"]], [200.0])

        page1 = self.client.get(f"/api/listings?city={town}&sortBy=price-high&limit=2").get_json(force=True)
        self.assertTrue(page1["hasMore"])
        self.assertEqual([row["price"] for row in page1["listings"]], [300.0, 200.0])
        page2 = self.client.get(
            f"/api/listings?city={town}&sortBy=price-high&limit=2&cursor={page1['nextCursor']}"
        ).get_json(force=True)
        self.assertFalse(page2["hasMore"])
        self.assertIsNone(page2["nextCursor"])
        self.assertEqual([row["price"] for row in page2["listings"]], [100.0])

        for cursor in ("abc", "9" * 25):
            res = self.client.get(f"/api/listings?city={town}&sortBy=price-high&cursor={cursor}")
            self.assertEqual(res.status_code, 200)
            self.assertEqual(len(res.get_json(force=True)["listings"]), 3)

    def test_view_counter_and_search(self):
        _, headers = self._user("SELLER")
        marker = f"zebra{time.time_ns()}"
        titled = self._create(headers, title=f"Vintage {marker} lamp")
        described = self._create(
            headers,
            title="Brass desk lamp",
            description=f"Warm brass desk lamp with a {marker} print shade and new switch.",
        )
        for row in (titled, described):
            self._set_status(row["id"], "APPROVED")

        self.client.get(f"/api/listings/{titled['id']}")
        second = self.client.get(f"/api/listings/{titled['id']}").get_json(force=True)
        self.assertEqual(second["listing"]["views"], 2)
        self.assertNotIn("rejection_reason", second["listing"])

        found = self.client.get(f"/api/listings/search?q={marker}").get_json(force=True)
        self.assertEqual([row["id"] for row in found["listings"]], [titled["id"], described["id"]])
        self.assertEqual(self.client.get("/api/listings/search?q=z").get_json(force=True), {"listings": []})

        featured = self.client.get("/api/listings/featured?limit=1").get_json(force=True)
        self.assertEqual(len(featured["listings"]), 1)

    def test_update_pause_resume_and_delete(self):
        _, owner = self._user("SELLER")
        _, stranger = self._user("BUYER")
        row = self._create(owner)

        forbidden = self.client.patch(f"/api/listings/{row['id']}", json={"title": "Stolen title!"}, headers=stranger)
        self.assertEqual(forbidden.status_code, 403)

        updated = self.client.patch(f"/api/listings/{row['id']}", json={"price": 400}, headers=owner)
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.get_json(force=True)["listing"]["price"], 400.0)

        not_live = self.client.post(f"/api/listings/{row['id']}/pause", headers=owner)
        self.assertEqual(not_live.status_code, 400)
        self.assertEqual(
            not_live.get_json(force=True)["message"],
            "Cannot pause listing with status: PENDING. Only APPROVED listings can be paused.",
        )

        self._set_status(row["id"], "APPROVED")
        paused = self.client.post(f"/api/listings/{row['id']}/pause", headers=owner)
        self.assertEqual(paused.get_json(force=True)["listing"]["status"], "PAUSED")
        resumed = self.client.post(f"/api/listings/{row['id']}/resume", headers=owner)
        self.assertEqual(resumed.get_json(force=True)["listing"]["status"], "APPROVED")

        self._set_status(row["id"], "SOLD")
        sold_edit = self.client.patch(f"/api/listings/{row['id']}", json={"price": 1}, headers=owner)
        self.assertEqual(sold_edit.status_code, 400)
        sold_delete = self.client.delete(f"/api/listings/{row['id']}", headers=owner)
        self.assertEqual(sold_delete.status_code, 400)

        other = self._create(owner)
        deleted = self.client.delete(f"/api/listings/{other['id']}", headers=owner)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.client.get(f"/api/listings/{other['id']}", headers=owner).status_code, 404)

    def test_options_lists_enums(self):
        body = self.client.get("/api/listings/options").get_json(force=True)
        self.assertIn("HOME_GARDEN", body["categories"])
        self.assertIn("Gauteng", body["provinces"])
        self.assertEqual(body["pricingTypes"], ["FIXED", "OFFERS"])


if __name__ == "__main__":
    unittest.main()
