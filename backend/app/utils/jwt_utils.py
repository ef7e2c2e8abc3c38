import os
import time
import logging
from typing import Optional, Dict, Any, Tuple

import jwt

logger = logging.getLogger(__name__)

DEFAULT_ACCESS_TTL_SECONDS = 60 * 60 * 24 * 7
_ALGORITHM = "HS256"


def _secret() -> str:
    return os.getenv("SECRET_KEY") or "dev-secret-change-me"


def access_token_ttl_seconds() -> int:
    raw = (os.getenv("ACCESS_TOKEN_TTL_SECONDS") or "").strip()
    if raw:
        try:
            parsed = int(raw)
            if parsed > 0:
                return parsed
        except Exception:
            pass
    return DEFAULT_ACCESS_TTL_SECONDS


def create_access_token(user_id: int, *, role: str | None = None, ttl_seconds: int | None = None) -> str:
    now = int(time.time())
    ttl = int(ttl_seconds) if ttl_seconds else access_token_ttl_seconds()
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + ttl,
        "type": "access",
    }
    if role:
        payload["role"] = str(role).upper()
    return jwt.encode(payload, _secret(), algorithm=_ALGORITHM)


def create_token(user_id: int, ttl_seconds: int | None = None) -> str:
    return create_access_token(user_id, ttl_seconds=ttl_seconds)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        payload = jwt.decode(token, _secret(), algorithms=[_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("jwt_expired")
        return None
    except jwt.InvalidTokenError:
        return None
    if payload.get("type") != "access":
        return None
    return payload


def parse_auth_header(auth_header: str) -> Tuple[Optional[str], Optional[str]]:
    if not auth_header:
        return None, None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1], "bearer"
    return None, None


def get_bearer_token(auth_header: str) -> Optional[str]:
    token, _scheme = parse_auth_header(auth_header)
    return token


def user_id_from_header(auth_header: str) -> Optional[int]:
    token = get_bearer_token(auth_header)
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
