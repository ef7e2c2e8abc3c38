from __future__ import annotations

import json
import os
from datetime import datetime

from celery import Celery
from celery.signals import task_failure, task_retry


EMAIL_QUEUE = "email"
MAINTENANCE_QUEUE = "maintenance"

_SIGNALS_BOUND = False


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name) or "").strip() or default


def _token_purge_interval_seconds() -> int:
    try:
        value = int(_env("TOKEN_PURGE_INTERVAL_SECONDS", "3600"))
    except ValueError:
        value = 3600
    return max(60, value)


def _task_event(event: str, *, name: str, task_id, kwargs, retries, einfo=None, **extra) -> dict:
    payload = {
        "event": event,
        "task_name": str(name or ""),
        "task_id": str(task_id or ""),
        "trace_id": str((kwargs or {}).get("trace_id") or "") if isinstance(kwargs, dict) else "",
        "retry_count": int(retries or 0),
        "timestamp": datetime.utcnow().isoformat(),
    }
    payload.update(extra)
    if einfo is not None:
        payload["einfo"] = str(einfo)
    return payload


def _bind_task_observers(flask_app) -> None:
    global _SIGNALS_BOUND
    if _SIGNALS_BOUND:
        return

    @task_failure.connect(weak=False)
    def _on_task_failure(sender=None, task_id=None, exception=None, args=None, kwargs=None, einfo=None, **extra):
        flask_app.logger.error(
            json.dumps(
                _task_event(
                    "celery_task_failure",
                    name=getattr(sender, "name", ""),
                    task_id=task_id,
                    kwargs=kwargs,
                    retries=extra.get("retries"),
                    einfo=einfo,
                    exception=str(exception or ""),
                )
            )
        )

    @task_retry.connect(weak=False)
    def _on_task_retry(request=None, reason=None, einfo=None, **extra):
        flask_app.logger.warning(
            json.dumps(
                _task_event(
                    "celery_task_retry",
                    name=getattr(request, "task", ""),
                    task_id=getattr(request, "id", ""),
                    kwargs=getattr(request, "kwargs", None),
                    retries=getattr(request, "retries", 0),
                    einfo=einfo,
                    reason=str(reason or ""),
                )
            )
        )

    _SIGNALS_BOUND = True


def create_celery_app(flask_app) -> Celery:
    """Celery bound to the Flask app: email delivery and the token purge schedule."""
    broker = _env("CELERY_BROKER_URL") or _env("REDIS_URL", "redis://localhost:6379/0")
    backend = _env("CELERY_RESULT_BACKEND") or _env("REDIS_URL") or broker
    celery = Celery(flask_app.import_name, broker=broker, backend=backend)
    celery.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        task_track_started=True,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        broker_connection_retry_on_startup=True,
        timezone="Africa/Johannesburg",
        enable_utc=True,
        task_default_queue=EMAIL_QUEUE,
        task_routes={
            "app.tasks.email_tasks.send_email_task": {"queue": EMAIL_QUEUE},
            "app.tasks.email_tasks.purge_expired_tokens_task": {"queue": MAINTENANCE_QUEUE},
        },
        beat_schedule={
            "purge-expired-auth-tokens": {
                "task": "app.tasks.email_tasks.purge_expired_tokens_task",
                "schedule": float(_token_purge_interval_seconds()),
            },
        },
    )
    celery.conf.update({k: v for k, v in flask_app.config.items() if k.startswith("CELERY_")})

    class FlaskContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with flask_app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = FlaskContextTask
    celery.autodiscover_tasks(["app.tasks"], related_name="email_tasks")
    _bind_task_observers(flask_app)
    return celery
