from __future__ import annotations

import importlib
import unittest


class ImportsBootTestCase(unittest.TestCase):
    def test_import_create_app(self):
        module = importlib.import_module("app")
        create_app = getattr(module, "create_app", None)
        self.assertTrue(callable(create_app))

    def test_import_main_app(self):
        module = importlib.import_module("main")
        app = getattr(module, "app", None)
        self.assertIsNotNone(app)

    def test_import_auth_segment(self):
        module = importlib.import_module("app.segments.segment_auth")
        self.assertIsNotNone(getattr(module, "auth_bp", None))

    def test_all_api_blueprints_registered(self):
        app = importlib.import_module("main").app
        for name in (
            "auth_bp",
            "listings_bp",
            "offers_bp",
            "categories_bp",
            "ai_bp",
            "admin_bp",
            "admin_categories_bp",
            "admin_users_bp",
            "admin_dashboard_bp",
        ):
            self.assertIn(name, app.blueprints)


if __name__ == "__main__":
    unittest.main()
