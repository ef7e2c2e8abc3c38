from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from flask import current_app, has_request_context, request

from app.extensions import db
from app.models import AdminAuditLog, User, ADMIN_ACTIONS, AUDIT_TARGET_TYPES
from app.utils.observability import get_request_id
from app.utils.rate_limit import resolve_client_ip, trust_proxy_headers


def _safe_value(value: Any):
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _safe_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_safe_value(v) for v in value]
    return str(value)


def _safe_json(data: Any) -> str:
    normalized = _safe_value(data if isinstance(data, dict) else {"value": data})
    try:
        return json.dumps(normalized, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError):
        return json.dumps({"raw": str(normalized)})


def create_audit_log(
    *,
    user_id: int,
    action: str,
    target_type: str,
    target_id: int | str,
    details: dict | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AdminAuditLog | None:
    """Record an admin action.

    Best-effort: a failed write is logged and the caller's transaction is
    left intact.
    """
    action = (action or "").strip().upper()
    target_type = (target_type or "").strip().upper()
    if action not in ADMIN_ACTIONS or target_type not in AUDIT_TARGET_TYPES:
        current_app.logger.warning("audit_log_rejected action=%s target_type=%s", action, target_type)
        return None
    if has_request_context():
        if ip_address is None:
            ip_address = resolve_client_ip(request, trusted_proxy=trust_proxy_headers(True))
        if user_agent is None:
            user_agent = (request.user_agent.string or "")[:255] or None
    try:
        entry = AdminAuditLog(
            user_id=int(user_id),
            action=action,
            target_type=target_type,
            target_id=str(target_id)[:120],
            details_json=_safe_json(details or {}),
            ip_address=(ip_address or "")[:64] or None,
            user_agent=(user_agent or "")[:255] or None,
            request_id=(get_request_id() or "")[:80] or None,
        )
        # Savepoint keeps a failed insert from poisoning the parent flow.
        with db.session.begin_nested():
            db.session.add(entry)
            db.session.flush()
        return entry
    except Exception:
        current_app.logger.exception(
            "audit_log_write_failed user_id=%s action=%s target_type=%s target_id=%s",
            user_id,
            action,
            target_type,
            target_id,
        )
        return None


def get_audit_logs(
    *,
    user_id: int | None = None,
    action: str | None = None,
    target_type: str | None = None,
    target_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = 50,
    cursor: int | None = None,
) -> dict:
    limit = max(1, min(int(limit or 50), 200))
    q = AdminAuditLog.query
    if user_id is not None:
        q = q.filter(AdminAuditLog.user_id == int(user_id))
    if action:
        q = q.filter(AdminAuditLog.action == action.upper())
    if target_type:
        q = q.filter(AdminAuditLog.target_type == target_type.upper())
    if target_id:
        q = q.filter(AdminAuditLog.target_id == str(target_id))
    if start_date is not None:
        q = q.filter(AdminAuditLog.created_at >= start_date)
    if end_date is not None:
        q = q.filter(AdminAuditLog.created_at <= end_date)
    if cursor is not None:
        q = q.filter(AdminAuditLog.id < int(cursor))

    rows = q.order_by(AdminAuditLog.created_at.desc(), AdminAuditLog.id.desc()).limit(limit + 1).all()
    has_more = len(rows) > limit
    rows = rows[:limit]
    user_ids = {int(r.user_id) for r in rows}
    users = {}
    if user_ids:
        users = {int(u.id): u for u in User.query.filter(User.id.in_(user_ids)).all()}
    return {
        "logs": [r.to_dict(users.get(int(r.user_id))) for r in rows],
        "hasMore": has_more,
        "nextCursor": int(rows[-1].id) if has_more and rows else None,
    }


def get_audit_logs_by_target(target_type: str, target_id: str, limit: int = 100) -> list[dict]:
    return get_audit_logs(target_type=target_type, target_id=target_id, limit=limit)["logs"]


def get_recent_admin_activity(user_id: int, limit: int = 50) -> list[dict]:
    return get_audit_logs(user_id=user_id, limit=limit)["logs"]
