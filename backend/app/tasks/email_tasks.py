from __future__ import annotations

import json
import time
from datetime import datetime

from celery import shared_task
from flask import current_app

from app.extensions import db
from app.models import PasswordResetToken, VerificationToken


def _retry_countdown(retries: int) -> int:
    return int(min(900, max(5, 5 * (2 ** int(max(0, retries))))))


def _task_log(task_name: str, *, status: str, started_at: float, trace_id: str = "", **extra):
    duration_ms = int(max(0.0, (time.perf_counter() - float(started_at))) * 1000.0)
    payload = {
        "task_name": task_name,
        "status": status,
        "duration_ms": duration_ms,
        "trace_id": str(trace_id or ""),
        "timestamp": datetime.utcnow().isoformat(),
    }
    payload.update(extra or {})
    current_app.logger.info(json.dumps(payload))


@shared_task(bind=True, name="app.tasks.email_tasks.send_email_task", max_retries=5)
def send_email_task(self, to: str, subject: str, html: str, trace_id: str = ""):
    from app.utils.mailer import send_email_now

    started = time.perf_counter()
    result = send_email_now(to=to, subject=subject, html=html)
    if result.ok:
        _task_log("send_email_task", status="sent", started_at=started, trace_id=trace_id)
        return {"ok": True}
    if result.code in ("INTEGRATION_DISABLED", "RESEND_AUTH_FAILED", "RESEND_INVALID_RECIPIENT", "RESEND_INVALID_SENDER"):
        _task_log("send_email_task", status="dropped", started_at=started, trace_id=trace_id, code=result.code)
        return {"ok": False, "code": result.code}
    _task_log("send_email_task", status="retry", started_at=started, trace_id=trace_id, code=result.code)
    raise self.retry(exc=RuntimeError(f"{result.code}:{result.message}"), countdown=_retry_countdown(self.request.retries))


def purge_expired_tokens(now: datetime | None = None) -> dict:
    cutoff = now or datetime.utcnow()
    verification = VerificationToken.query.filter(VerificationToken.expires_at < cutoff).delete(synchronize_session=False)
    reset = PasswordResetToken.query.filter(PasswordResetToken.expires_at < cutoff).delete(synchronize_session=False)
    db.session.commit()
    return {"verification_tokens": int(verification or 0), "password_reset_tokens": int(reset or 0)}


@shared_task(bind=True, name="app.tasks.email_tasks.purge_expired_tokens_task", max_retries=3)
def purge_expired_tokens_task(self, trace_id: str = ""):
    started = time.perf_counter()
    try:
        counts = purge_expired_tokens()
    except Exception as exc:
        db.session.rollback()
        _task_log("purge_expired_tokens", status="retry", started_at=started, trace_id=trace_id, error=str(exc)[:200])
        raise self.retry(exc=exc, countdown=_retry_countdown(self.request.retries))
    _task_log("purge_expired_tokens", status="ok", started_at=started, trace_id=trace_id, **counts)
    return {"ok": True, **counts}
