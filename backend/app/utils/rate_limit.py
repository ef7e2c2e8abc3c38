from __future__ import annotations

import os
import threading
import time

import redis
from flask import g, jsonify, request


_LOCK = threading.Lock()
_WINDOWS: dict[str, list[float]] = {}
_CLIENT = None
_CLIENT_INIT = False

# (prefix, methods, per-minute, per-hour); first match wins
API_TIERS = (
    ("/api/auth", None, 10, 30),
    ("/api/upload", ("POST",), 20, 200),
    ("/api/admin", None, 240, None),
    ("/api/", ("GET", "HEAD"), 120, None),
    ("/api/", None, 60, None),
)
# AI routes carry their own per-user limiter
EXEMPT_PREFIXES = ("/api/suggest-categories", "/api/generate-description", "/api/enhance-image", "/api/health")


def check_limit(key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    """Fixed-window counter in Redis, sliding window in memory when Redis is unavailable."""
    window = max(1, int(window_seconds))
    limit = max(1, int(limit))
    client = _get_client()
    if client is not None:
        now_sec = int(time.time())
        counter_key = f"rl:lotosale:{key}:{now_sec // window}"
        try:
            current = int(client.incr(counter_key))
            if current == 1:
                client.expire(counter_key, window + 1)
            if current <= limit:
                return True, 0
            return False, int(max(1, window - (now_sec % window)))
        except redis.RedisError:
            pass
    return _check_limit_memory(key, limit=limit, window_seconds=window)


def _check_limit_memory(key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    now = time.time()
    start = now - window_seconds
    with _LOCK:
        bucket = [ts for ts in _WINDOWS.get(key, []) if ts >= start]
        if len(bucket) >= limit:
            _WINDOWS[key] = bucket
            return False, int(max(1, window_seconds - (now - min(bucket))))
        bucket.append(now)
        _WINDOWS[key] = bucket
    return True, 0


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in ("1", "true", "yes", "on")


def rate_limit_enabled(default: bool = True) -> bool:
    return _env_bool("RATE_LIMIT_ENABLED", default)


def trust_proxy_headers(default: bool = False) -> bool:
    return _env_bool("TRUST_PROXY_HEADERS", default)


def _get_client():
    global _CLIENT, _CLIENT_INIT
    with _LOCK:
        if _CLIENT_INIT:
            return _CLIENT
        _CLIENT_INIT = True
    url = (os.getenv("RATE_LIMIT_REDIS_URL") or os.getenv("REDIS_URL") or "").strip()
    if not url:
        return None
    try:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=0.75,
            socket_timeout=0.75,
            health_check_interval=30,
        )
        client.ping()
    except redis.RedisError:
        return None
    with _LOCK:
        _CLIENT = client
    return client


def reset_rate_limits() -> None:
    global _CLIENT, _CLIENT_INIT
    with _LOCK:
        _WINDOWS.clear()
        _CLIENT = None
        _CLIENT_INIT = False


def resolve_client_ip(request, *, trusted_proxy: bool = True) -> str:
    if trusted_proxy:
        xff = (request.headers.get("X-Forwarded-For") or "").strip()
        if xff:
            first_hop = (xff.split(",")[0] or "").strip()
            if first_hop:
                return first_hop
        for header in ("X-Real-IP", "CF-Connecting-IP"):
            value = (request.headers.get(header) or "").strip()
            if value:
                return value
    return (request.remote_addr or "").strip() or "unknown"


def _subject(path: str) -> str:
    user_id = getattr(g, "auth_user_id", None)
    if user_id is not None and not path.startswith("/api/auth"):
        return f"u:{int(user_id)}"
    return f"ip:{resolve_client_ip(request, trusted_proxy=trust_proxy_headers(False))}"


def _tier_for(method: str, path: str):
    for prefix, methods, per_minute, per_hour in API_TIERS:
        if path.startswith(prefix) and (methods is None or method in methods):
            return prefix, per_minute, per_hour
    return None


def install_api_rate_guard(app, error_payload) -> None:
    """Register a before_request hook applying API_TIERS to every /api call.

    Skipped under TESTING unless RATE_LIMIT_IN_TESTS is set.
    """

    def _limited(retry_after_seconds: int):
        retry_after = int(max(1, retry_after_seconds or 1))
        payload = error_payload("RATE_LIMITED", "Too many requests. Please try again later.", 429)
        payload["retry_after_seconds"] = retry_after
        resp = jsonify(payload)
        resp.status_code = 429
        resp.headers["Retry-After"] = str(retry_after)
        return resp

    @app.before_request
    def _api_rate_guard():
        if app.config.get("TESTING") and not _env_bool("RATE_LIMIT_IN_TESTS", False):
            return None
        if not rate_limit_enabled(True):
            return None
        method = (request.method or "GET").upper()
        path = request.path or ""
        if method == "OPTIONS" or not path.startswith("/api/") or path.startswith(EXEMPT_PREFIXES):
            return None
        tier = _tier_for(method, path)
        if tier is None:
            return None
        prefix, per_minute, per_hour = tier
        subject = _subject(path)
        scope = path if prefix == "/api/" else prefix
        ok, retry_after = check_limit(f"{method}:{scope}:m:{subject}", limit=per_minute, window_seconds=60)
        if ok and per_hour:
            ok, retry_after = check_limit(f"{method}:{scope}:h:{subject}", limit=per_hour, window_seconds=3600)
        return None if ok else _limited(retry_after)
