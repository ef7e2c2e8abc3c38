from __future__ import annotations

import os
import unittest
from datetime import datetime, timedelta

from app import create_app
from app.extensions import db
from app.models import Listing, User
from app.segments.segment_admin_dashboard import sales_series, user_growth_series
from app.utils.jwt_utils import create_access_token


class AdminDashboardTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        cls._prev_db_url = os.getenv("DATABASE_URL")
        db_uri = "sqlite:///:memory:"
        os.environ["SQLALCHEMY_DATABASE_URI"] = db_uri
        os.environ["DATABASE_URL"] = db_uri
        cls.app = create_app()
        cls.app.config.update(TESTING=True, EMAIL_PROVIDER="mock")
        cls.now = datetime.utcnow()
        with cls.app.app_context():
            db.create_all()
            admin = User(name="Admin", email="admin@lotosale.test", role="ADMIN", email_verified=cls.now)
            seller = User(name="Seller", email="seller@lotosale.test", role="SELLER", email_verified=cls.now)
            buyer = User(
                name="Buyer",
                email="buyer@lotosale.test",
                role="BUYER",
                created_at=cls.now - timedelta(days=3),
            )
            for user in (admin, seller, buyer):
                user.set_password("Passw0rdX")
                db.session.add(user)
            db.session.flush()
            cls.buyer_created = buyer.created_at

            def listing(category, status, price=300.0, sold_at=None):
                db.session.add(
                    Listing(
                        seller_id=seller.id,
                        title=f"{category.title()} item",
                        description="Item in good working order, collection only.",
                        category=category,
                        condition="GOOD",
                        pricing_type="FIXED",
                        price=price,
                        primary_image="https://res.cloudinary.com/demo/image/upload/v1/item.jpg",
                        city="Gqeberha",
                        province="Eastern Cape",
                        status=status,
                        sold_at=sold_at,
                    )
                )

            listing("ELECTRONICS", "PENDING")
            listing("ELECTRONICS", "PENDING")
            listing("BOOKS", "APPROVED")
            cls.recent_sale = cls.now - timedelta(days=2)
            cls.older_sale = cls.now - timedelta(days=10)
            listing("ELECTRONICS", "SOLD", price=1000.0, sold_at=cls.recent_sale)
            listing("BOOKS", "SOLD", price=500.0, sold_at=cls.older_sale)
            listing("TOYS", "REJECTED")
            listing("TOYS", "PAUSED")
            db.session.commit()
            cls.admin_headers = {"Authorization": f"Bearer {create_access_token(int(admin.id), role='ADMIN')}"}
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

    def test_statistics(self):
        res = self.client.get("/api/admin/dashboard/statistics", headers=self.admin_headers)
        self.assertEqual(res.status_code, 200)
        stats = res.get_json(force=True)
        self.assertEqual(
            (
                stats["pendingListings"],
                stats["approvedListings"],
                stats["rejectedListings"],
                stats["pausedListings"],
                stats["soldListings"],
                stats["totalListings"],
            ),
            (2, 1, 1, 1, 2, 7),
        )
        self.assertEqual(stats["totalUsers"], 3)
        self.assertEqual(stats["activeUsers"], 2)
        self.assertEqual(stats["todaySignups"], 2)
        self.assertEqual(stats["weekSales"], 1)
        self.assertEqual(stats["monthRevenue"], 300.0)
        self.assertEqual(stats["listingsByCategory"]["ELECTRONICS"], 3)
        self.assertEqual(stats["listingsByCategory"]["VEHICLES"], 0)
        self.assertEqual(stats["listingsByStatus"]["SOLD"], 2)

    def test_sales_series(self):
        with self.app.app_context():
            series = sales_series(30, self.now)
        self.assertEqual(len(series), 30)
        by_date = {point["date"]: point for point in series}
        recent = by_date[self.recent_sale.date().isoformat()]
        self.assertEqual((recent["sales"], recent["revenue"], recent["commission"]), (1, 1000.0, 200.0))
        older = by_date[self.older_sale.date().isoformat()]
        self.assertEqual((older["sales"], older["revenue"], older["commission"]), (1, 500.0, 100.0))
        self.assertEqual(sum(point["sales"] for point in series), 2)

    def test_sales_endpoint_clamps_days(self):
        week = self.client.get("/api/admin/dashboard/sales?days=7", headers=self.admin_headers).get_json(force=True)
        self.assertEqual(len(week["series"]), 7)
        self.assertEqual(sum(point["sales"] for point in week["series"]), 1)
        self.assertEqual(set(week["series"][0]), {"date", "sales", "revenue", "commission"})

        tiny = self.client.get("/api/admin/dashboard/sales?days=0", headers=self.admin_headers).get_json(force=True)
        self.assertEqual(len(tiny["series"]), 1)
        huge = self.client.get("/api/admin/dashboard/sales?days=9999", headers=self.admin_headers).get_json(force=True)
        self.assertEqual(len(huge["series"]), 365)

    def test_user_growth(self):
        with self.app.app_context():
            series = user_growth_series(7, self.now)
        self.assertEqual(len(series), 7)
        point = next(p for p in series if p["date"] == self.buyer_created.date().isoformat())
        self.assertEqual(point["newUsers"], 1)
        totals = [p["totalUsers"] for p in series]
        self.assertEqual(totals, sorted(totals))
        self.assertEqual(totals[0], 0)

        res = self.client.get("/api/admin/dashboard/user-growth?days=14", headers=self.admin_headers)
        self.assertEqual(len(res.get_json(force=True)["series"]), 14)

    def test_category_distribution(self):
        res = self.client.get("/api/admin/dashboard/category-distribution", headers=self.admin_headers)
        distribution = {row["category"]: row for row in res.get_json(force=True)["distribution"]}
        self.assertEqual(set(distribution), {"ELECTRONICS", "BOOKS"})
        self.assertEqual(distribution["BOOKS"]["count"], 2)
        self.assertAlmostEqual(distribution["BOOKS"]["percentage"], 200 / 3, places=4)
        self.assertAlmostEqual(distribution["ELECTRONICS"]["percentage"], 100 / 3, places=4)

    def test_status_distribution(self):
        res = self.client.get("/api/admin/dashboard/status-distribution", headers=self.admin_headers)
        counts = {row["status"]: row["count"] for row in res.get_json(force=True)["distribution"]}
        self.assertEqual(counts, {"PENDING": 2, "APPROVED": 1, "SOLD": 2, "REJECTED": 1, "PAUSED": 1})

    def test_requires_admin(self):
        self.assertEqual(self.client.get("/api/admin/dashboard/statistics").status_code, 401)


if __name__ == "__main__":
    unittest.main()
