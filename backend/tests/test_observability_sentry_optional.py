from __future__ import annotations

import json
import os
import time
import unittest
from unittest.mock import patch

from flask import Flask

from app.utils.observability import init_sentry, log_ai_call


class SentryOptionalInitTestCase(unittest.TestCase):
    def test_sentry_init_is_noop_without_dsn(self):
        app = Flask(__name__)
        with patch.dict(os.environ, {"SENTRY_DSN": ""}, clear=False):
            init_sentry(app)


class AiCallLoggingTestCase(unittest.TestCase):
    def test_ai_call_is_logged_as_single_json_line(self):
        app = Flask(__name__)
        with app.test_request_context("/api/suggest-categories"):
            with patch.object(app.logger, "info") as info:
                log_ai_call("category_suggestion", started_at=time.perf_counter(), status="ok", model="gpt-4o", tokens=42)
        self.assertEqual(info.call_count, 1)
        payload = json.loads(info.call_args[0][0])
        self.assertEqual(payload["event"], "ai_call")
        self.assertEqual(payload["feature"], "category_suggestion")
        self.assertEqual(payload["tokens"], 42)
        self.assertGreaterEqual(payload["latency_ms"], 0)


if __name__ == "__main__":
    unittest.main()
