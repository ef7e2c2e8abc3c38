from __future__ import annotations

import os

from flask import current_app

from app.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from app.integrations.email.base import EmailResult
from app.integrations.email.factory import build_email_provider
from app.integrations.email.templates import moderation_notice_email, password_reset_email, verification_email
from app.utils.observability import get_request_id


def public_base_url() -> str:
    base = (current_app.config.get("PUBLIC_BASE_URL") or os.getenv("PUBLIC_BASE_URL") or "http://localhost:3000").strip()
    return base.rstrip("/")


def _queue_enabled() -> bool:
    raw = (os.getenv("EMAIL_QUEUE") or "").strip().lower()
    if raw:
        return raw in ("1", "true", "yes", "on")
    return not bool(current_app.config.get("TESTING"))


def send_email_now(*, to: str, subject: str, html: str) -> EmailResult:
    try:
        provider = build_email_provider(current_app.config)
    except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
        current_app.logger.warning("email_provider_unavailable: %s", e)
        return EmailResult(ok=False, code="INTEGRATION_DISABLED", message=str(e))
    result = provider.send_email(to=to, subject=subject, html=html)
    if result.ok:
        current_app.logger.info("email_sent provider=%s subject=%s", provider.name, subject)
    else:
        current_app.logger.warning("email_send_failed provider=%s code=%s", provider.name, result.code)
    return result


def queue_email(*, to: str, subject: str, html: str) -> bool:
    """Hand the message to the worker, or send inline when no queue is in use.

    Never raises: callers treat email as best-effort.
    """
    if _queue_enabled():
        try:
            from app.tasks.email_tasks import send_email_task

            send_email_task.delay(to=to, subject=subject, html=html, trace_id=get_request_id())
            return True
        except Exception:
            current_app.logger.exception("email_enqueue_failed")
    try:
        return bool(send_email_now(to=to, subject=subject, html=html).ok)
    except Exception:
        current_app.logger.exception("email_inline_send_failed")
        return False


def send_verification_email(user, token: str) -> bool:
    link = f"{public_base_url()}/auth/verify-email?token={token}"
    subject, html = verification_email(link, user.name or "there")
    return queue_email(to=user.email, subject=subject, html=html)


def send_password_reset_email(user, token: str) -> bool:
    link = f"{public_base_url()}/auth/reset-password?token={token}"
    subject, html = password_reset_email(link, user.name or "there")
    return queue_email(to=user.email, subject=subject, html=html)


def send_moderation_notice(listing, action: str, reason: str | None = None) -> bool:
    seller = getattr(listing, "seller", None)
    if seller is None or not seller.email:
        return False
    subject, html = moderation_notice_email(
        name=seller.name or "there",
        listing_title=listing.title,
        action=action,
        reason=reason,
    )
    return queue_email(to=seller.email, subject=subject, html=html)
