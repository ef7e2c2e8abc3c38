from __future__ import annotations

import os
import time
import unittest
from datetime import datetime, timedelta

from app import create_app
from app.extensions import db
from app.models import Listing, Offer, User
from app.utils.jwt_utils import create_access_token


class OffersTransactionsTestCase(unittest.TestCase):
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

    def _listing(self, seller_id: int, **overrides) -> int:
        fields = {
            "seller_id": seller_id,
            "title": "Road bike, 54cm frame",
            "description": "Aluminium road bike with Shimano gears, serviced last month.",
            "category": "SPORTS",
            "condition": "GOOD",
            "pricing_type": "FIXED",
            "price": 350.0,
            "primary_image": "https://res.cloudinary.com/demo/image/upload/v1/bike.jpg",
            "city": "Pretoria",
            "province": "Gauteng",
            "status": "APPROVED",
        }
        fields.update(overrides)
        with self.app.app_context():
            listing = Listing(**fields)
            listing.images = [fields["primary_image"]]
            db.session.add(listing)
            db.session.commit()
            return int(listing.id)

    def test_offer_negotiation(self):
        seller_id, seller = self._user("SELLER")
        _, buyer = self._user()
        _, rival = self._user()
        listing_id = self._listing(seller_id, pricing_type="OFFERS", price=1000.0, min_offer=500.0)
        url = f"/api/listings/{listing_id}/offers"

        low = self.client.post(url, json={"amount": 400}, headers=buyer)
        self.assertEqual(low.status_code, 400)
        self.assertEqual(low.get_json(force=True)["message"], "Offer must be at least R500.00")
        own = self.client.post(url, json={"amount": 600}, headers=seller)
        self.assertEqual(own.status_code, 400)

        first = self.client.post(url, json={"amount": 600, "message": "Can collect today"}, headers=buyer)
        self.assertEqual(first.status_code, 201)
        first_offer = first.get_json(force=True)["offer"]
        self.assertEqual(first_offer["status"], "PENDING")
        second_offer = self.client.post(url, json={"amount": 700}, headers=rival).get_json(force=True)["offer"]

        self.assertEqual(len(self.client.get(url, headers=buyer).get_json(force=True)["offers"]), 1)
        self.assertEqual(len(self.client.get(url, headers=seller).get_json(force=True)["offers"]), 2)

        wrong_party = self.client.post(
            f"/api/offers/{first_offer['id']}/respond", json={"action": "accept"}, headers=buyer
        )
        self.assertEqual(wrong_party.status_code, 403)

        countered = self.client.post(
            f"/api/offers/{first_offer['id']}/respond",
            json={"action": "counter", "counterAmount": 800},
            headers=seller,
        )
        self.assertEqual(countered.status_code, 200)
        self.assertEqual(countered.get_json(force=True)["offer"]["status"], "COUNTERED")
        self.assertEqual(countered.get_json(force=True)["offer"]["counter_amount"], 800.0)

        again = self.client.post(
            f"/api/offers/{first_offer['id']}/respond", json={"action": "reject"}, headers=seller
        )
        self.assertEqual(again.status_code, 400)
        self.assertEqual(again.get_json(force=True)["message"], "Offer is already countered")

        accepted = self.client.post(
            f"/api/offers/{second_offer['id']}/respond", json={"action": "accept"}, headers=seller
        )
        self.assertEqual(accepted.status_code, 200)
        txn = accepted.get_json(force=True)["transaction"]
        self.assertEqual((txn["amount"], txn["commission"], txn["net_amount"]), (700.0, 140.0, 560.0))

        bad_action = self.client.post(
            f"/api/offers/{second_offer['id']}/respond", json={"action": "maybe"}, headers=seller
        )
        self.assertEqual(bad_action.status_code, 400)

    def test_fixed_price_offer_cannot_exceed_price(self):
        seller_id, _ = self._user("SELLER")
        _, buyer = self._user()
        listing_id = self._listing(seller_id, price=200.0)
        res = self.client.post(f"/api/listings/{listing_id}/offers", json={"amount": 250}, headers=buyer)
        self.assertEqual(res.status_code, 400)
        zero = self.client.post(f"/api/listings/{listing_id}/offers", json={"amount": 0}, headers=buyer)
        self.assertEqual(zero.status_code, 400)

    def test_expired_offer_cannot_be_accepted(self):
        seller_id, seller = self._user("SELLER")
        buyer_id, _ = self._user()
        listing_id = self._listing(seller_id, pricing_type="OFFERS", price=900.0)
        with self.app.app_context():
            offer = Offer(
                listing_id=listing_id,
                buyer_id=buyer_id,
                amount=500.0,
                status="PENDING",
                expires_at=datetime.utcnow() - timedelta(minutes=5),
            )
            db.session.add(offer)
            db.session.commit()
            offer_id = int(offer.id)
        res = self.client.post(f"/api/offers/{offer_id}/respond", json={"action": "accept"}, headers=seller)
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json(force=True)["message"], "Offer has expired")
        with self.app.app_context():
            self.assertEqual(db.session.get(Offer, offer_id).status, "EXPIRED")

    def test_buy_complete_and_review(self):
        seller_id, seller = self._user("SELLER")
        _, buyer = self._user()
        _, other = self._user()
        listing_id = self._listing(seller_id)

        self.assertEqual(self.client.post(f"/api/listings/{listing_id}/buy", headers=seller).status_code, 400)

        bought = self.client.post(f"/api/listings/{listing_id}/buy", headers=buyer)
        self.assertEqual(bought.status_code, 201)
        txn = bought.get_json(force=True)["transaction"]
        self.assertEqual((txn["amount"], txn["commission"], txn["net_amount"]), (350.0, 70.0, 280.0))

        clash = self.client.post(f"/api/listings/{listing_id}/buy", headers=other)
        self.assertEqual(clash.status_code, 409)

        cancelled = self.client.post(f"/api/transactions/{txn['id']}/cancel", headers=buyer)
        self.assertEqual(cancelled.get_json(force=True)["transaction"]["status"], "CANCELLED")
        rebought = self.client.post(f"/api/listings/{listing_id}/buy", headers=other)
        self.assertEqual(rebought.status_code, 201)
        txn_id = rebought.get_json(force=True)["transaction"]["id"]

        early = self.client.post(f"/api/transactions/{txn_id}/review", json={"rating": 5}, headers=other)
        self.assertEqual(early.status_code, 400)
        outsider = self.client.post(f"/api/transactions/{txn_id}/complete", headers=buyer)
        self.assertEqual(outsider.status_code, 403)

        completed = self.client.post(f"/api/transactions/{txn_id}/complete", headers=seller)
        self.assertEqual(completed.get_json(force=True)["transaction"]["status"], "COMPLETED")
        listing = self.client.get(f"/api/listings/{listing_id}", headers=seller).get_json(force=True)["listing"]
        self.assertEqual(listing["status"], "SOLD")
        self.assertIsNotNone(listing["sold_at"])

        by_seller = self.client.post(f"/api/transactions/{txn_id}/review", json={"rating": 5}, headers=seller)
        self.assertEqual(by_seller.status_code, 403)
        out_of_range = self.client.post(f"/api/transactions/{txn_id}/review", json={"rating": 6}, headers=other)
        self.assertEqual(out_of_range.status_code, 400)
        review = self.client.post(
            f"/api/transactions/{txn_id}/review", json={"rating": 4, "comment": "Smooth handover"}, headers=other
        )
        self.assertEqual(review.status_code, 201)
        duplicate = self.client.post(f"/api/transactions/{txn_id}/review", json={"rating": 3}, headers=other)
        self.assertEqual(duplicate.status_code, 409)

        with self.app.app_context():
            seller_row = db.session.get(User, seller_id)
            self.assertEqual(seller_row.review_count, 1)
            self.assertEqual(seller_row.rating, 4.0)

        history = self.client.get("/api/transactions", headers=seller).get_json(force=True)["transactions"]
        self.assertEqual([t["id"] for t in history], [txn_id])

    def test_complete_refused_when_listing_paused(self):
        seller_id, seller = self._user("SELLER")
        _, buyer = self._user()
        listing_id = self._listing(seller_id)
        txn_id = self.client.post(f"/api/listings/{listing_id}/buy", headers=buyer).get_json(force=True)["transaction"]["id"]

        paused = self.client.post(f"/api/listings/{listing_id}/pause", headers=seller)
        self.assertEqual(paused.status_code, 200)

        res = self.client.post(f"/api/transactions/{txn_id}/complete", headers=buyer)
        self.assertEqual(res.status_code, 400)
        self.assertIn("Only APPROVED listings can be sold", res.get_json(force=True)["message"])
        with self.app.app_context():
            listing = db.session.get(Listing, listing_id)
            self.assertEqual(listing.status, "PAUSED")
            self.assertIsNone(listing.sold_at)

    def test_cancel_keeps_listing_status(self):
        seller_id, seller = self._user("SELLER")
        _, buyer = self._user()
        listing_id = self._listing(seller_id)
        txn_id = self.client.post(f"/api/listings/{listing_id}/buy", headers=buyer).get_json(force=True)["transaction"]["id"]
        self.assertEqual(self.client.post(f"/api/listings/{listing_id}/pause", headers=seller).status_code, 200)

        res = self.client.post(f"/api/transactions/{txn_id}/cancel", headers=buyer)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json(force=True)["transaction"]["status"], "CANCELLED")
        with self.app.app_context():
            self.assertEqual(db.session.get(Listing, listing_id).status, "PAUSED")

    def test_offers_listing_buy_now_rejected(self):
        seller_id, _ = self._user("SELLER")
        _, buyer = self._user()
        listing_id = self._listing(seller_id, pricing_type="OFFERS", price=None)
        res = self.client.post(f"/api/listings/{listing_id}/buy", headers=buyer)
        self.assertEqual(res.status_code, 400)


if __name__ == "__main__":
    unittest.main()
