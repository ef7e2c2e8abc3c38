from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from app import create_app
from app.extensions import db
from app.utils.rate_limit import _tier_for, check_limit, reset_rate_limits


class ApiRateGuardTestCase(unittest.TestCase):
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
        env = patch.dict(os.environ, {"RATE_LIMIT_IN_TESTS": "1", "REDIS_URL": "", "RATE_LIMIT_REDIS_URL": ""})
        env.start()
        self.addCleanup(env.stop)
        reset_rate_limits()
        self.addCleanup(reset_rate_limits)

    def test_tier_lookup(self):
        self.assertEqual(_tier_for("POST", "/api/auth/login"), ("/api/auth", 10, 30))
        self.assertEqual(_tier_for("GET", "/api/listings"), ("/api/", 120, None))
        self.assertEqual(_tier_for("POST", "/api/listings"), ("/api/", 60, None))
        self.assertEqual(_tier_for("GET", "/api/admin/listings"), ("/api/admin", 240, None))

    def test_memory_window(self):
        results = [check_limit("unit:key", limit=2, window_seconds=60) for _ in range(3)]
        self.assertEqual([ok for ok, _ in results], [True, True, False])
        self.assertGreater(results[-1][1], 0)

    def test_auth_routes_limited_per_ip(self):
        for _ in range(10):
            res = self.client.post("/api/auth/login", json={})
            self.assertNotEqual(res.status_code, 429)
        blocked = self.client.post("/api/auth/login", json={})
        self.assertEqual(blocked.status_code, 429)
        body = blocked.get_json(force=True)
        self.assertEqual(body["error"], "RATE_LIMITED")
        self.assertGreaterEqual(body["retry_after_seconds"], 1)
        self.assertIn("Retry-After", blocked.headers)
        self.assertEqual(body["trace_id"], blocked.headers["X-Request-Id"])

        other_ip = self.client.post("/api/auth/login", json={}, environ_base={"REMOTE_ADDR": "10.0.0.9"})
        self.assertNotEqual(other_ip.status_code, 429)

    def test_health_is_exempt(self):
        for _ in range(121):
            self.assertEqual(self.client.get("/api/health").status_code, 200)


if __name__ == "__main__":
    unittest.main()
