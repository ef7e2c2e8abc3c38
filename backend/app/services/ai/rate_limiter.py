from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from functools import wraps

from flask import jsonify, make_response, request

from app.utils.auth_guard import current_user
from app.utils.rate_limit import resolve_client_ip, trust_proxy_headers


MINUTE_WINDOW = 60.0
HOUR_WINDOW = 3600.0


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset: float
    retry_after: int | None = None


class RateLimiter:
    """Per-identifier sliding windows over one minute and one hour."""

    def __init__(self, requests_per_minute: int, requests_per_hour: int, *, clock=time.time):
        self.requests_per_minute = int(requests_per_minute)
        self.requests_per_hour = int(requests_per_hour)
        self._clock = clock
        self._lock = threading.Lock()
        self._requests: dict[str, list[float]] = {}

    @staticmethod
    def _in_window(stamps: list[float], now: float, window: float) -> list[float]:
        start = now - window
        return [ts for ts in stamps if ts > start]

    def _denied(self, window_stamps: list[float], now: float, window: float) -> RateLimitResult:
        oldest = window_stamps[0] if window_stamps else now
        reset = oldest + window
        return RateLimitResult(allowed=False, remaining=0, reset=reset, retry_after=int(math.ceil(reset - now)))

    def check(self, identifier: str) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            stamps = self._in_window(self._requests.get(identifier, []), now, HOUR_WINDOW)
            self._requests[identifier] = stamps

            minute = self._in_window(stamps, now, MINUTE_WINDOW)
            if len(minute) >= self.requests_per_minute:
                return self._denied(minute, now, MINUTE_WINDOW)
            if len(stamps) >= self.requests_per_hour:
                return self._denied(stamps, now, HOUR_WINDOW)

            stamps.append(now)
            minute.append(now)
            minute_remaining = self.requests_per_minute - len(minute)
            hour_remaining = self.requests_per_hour - len(stamps)
            if minute_remaining < hour_remaining:
                reset = minute[0] + MINUTE_WINDOW
            else:
                reset = stamps[0] + HOUR_WINDOW
            return RateLimitResult(allowed=True, remaining=max(0, min(minute_remaining, hour_remaining)), reset=reset)

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._requests.pop(identifier, None)

    def reset_all(self) -> None:
        with self._lock:
            self._requests.clear()

    def cleanup(self) -> None:
        now = self._clock()
        with self._lock:
            for identifier in list(self._requests):
                stamps = self._in_window(self._requests[identifier], now, HOUR_WINDOW)
                if stamps:
                    self._requests[identifier] = stamps
                else:
                    del self._requests[identifier]

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "total_users": len(self._requests),
                "total_requests": sum(len(stamps) for stamps in self._requests.values()),
            }


image_enhancement_limiter = RateLimiter(requests_per_minute=10, requests_per_hour=100)
description_generation_limiter = RateLimiter(requests_per_minute=5, requests_per_hour=50)
category_suggestion_limiter = RateLimiter(requests_per_minute=10, requests_per_hour=100)

AI_LIMITERS = {
    "image_enhancement": image_enhancement_limiter,
    "description_generation": description_generation_limiter,
    "category_suggestion": category_suggestion_limiter,
}


def reset_ai_limiters() -> None:
    for limiter in AI_LIMITERS.values():
        limiter.reset_all()


def request_identifier() -> str | None:
    user = current_user()
    if user is not None:
        return f"user:{user.id}"
    ip = resolve_client_ip(request, trusted_proxy=trust_proxy_headers())
    if ip and ip != "unknown":
        return f"ip:{ip}"
    return None


def _apply_headers(response, result: RateLimitResult):
    response.headers["X-RateLimit-Remaining"] = str(result.remaining)
    response.headers["X-RateLimit-Reset"] = str(int(result.reset))
    return response


def ai_rate_limited(limiter: RateLimiter):
    def decorator(fn):
        @wraps(fn)
        def wrapped(*args, **kwargs):
            identifier = request_identifier()
            if identifier is None:
                return jsonify({"error": "Unauthorized", "message": "Authentication required"}), 401

            result = limiter.check(identifier)
            if not result.allowed:
                resp = jsonify(
                    {
                        "error": "Rate Limit Exceeded",
                        "message": "Too many requests. Please try again later.",
                        "retryAfter": result.retry_after,
                        "reset": int(result.reset),
                    }
                )
                resp.status_code = 429
                resp.headers["Retry-After"] = str(result.retry_after or 60)
                return _apply_headers(resp, result)

            return _apply_headers(make_response(fn(*args, **kwargs)), result)

        return wrapped

    return decorator
