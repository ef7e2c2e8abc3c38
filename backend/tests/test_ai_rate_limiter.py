from __future__ import annotations

import unittest

from app.services.ai.rate_limiter import RateLimiter


class _Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class AiRateLimiterTestCase(unittest.TestCase):
    def test_minute_window_blocks_then_recovers(self):
        clock = _Clock()
        limiter = RateLimiter(requests_per_minute=2, requests_per_hour=3, clock=clock)

        first = limiter.check("user:1")
        self.assertTrue(first.allowed)
        self.assertEqual(first.remaining, 1)
        self.assertTrue(limiter.check("user:1").allowed)

        blocked = limiter.check("user:1")
        self.assertFalse(blocked.allowed)
        self.assertEqual(blocked.remaining, 0)
        self.assertEqual(blocked.retry_after, 60)

        clock.now += 61
        self.assertTrue(limiter.check("user:1").allowed)

    def test_hour_window_blocks_after_quota(self):
        clock = _Clock()
        limiter = RateLimiter(requests_per_minute=2, requests_per_hour=3, clock=clock)
        limiter.check("ip:10.0.0.1")
        limiter.check("ip:10.0.0.1")
        clock.now += 61
        limiter.check("ip:10.0.0.1")
        clock.now += 1
        blocked = limiter.check("ip:10.0.0.1")
        self.assertFalse(blocked.allowed)
        self.assertEqual(blocked.retry_after, 3538)

    def test_identifiers_are_isolated_and_resettable(self):
        limiter = RateLimiter(requests_per_minute=1, requests_per_hour=10, clock=_Clock())
        self.assertTrue(limiter.check("a").allowed)
        self.assertFalse(limiter.check("a").allowed)
        self.assertTrue(limiter.check("b").allowed)
        self.assertEqual(limiter.get_stats(), {"total_users": 2, "total_requests": 2})
        limiter.reset("a")
        self.assertTrue(limiter.check("a").allowed)

    def test_cleanup_drops_idle_identifiers(self):
        clock = _Clock()
        limiter = RateLimiter(requests_per_minute=5, requests_per_hour=50, clock=clock)
        limiter.check("old")
        clock.now += 3601
        limiter.cleanup()
        self.assertEqual(limiter.get_stats()["total_users"], 0)


if __name__ == "__main__":
    unittest.main()
