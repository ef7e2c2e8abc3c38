from __future__ import annotations

import logging
import os

from app.integrations.email.base import EmailProvider, EmailResult


logger = logging.getLogger(__name__)


class MockEmailProvider(EmailProvider):
    name = "mock"

    def __init__(self):
        self.outbox: list[dict] = []

    def send_email(self, *, to: str, subject: str, html: str) -> EmailResult:
        if "[fail]" in (subject or "").lower() or (os.getenv("MOCK_EMAIL_FORCE_FAIL") or "").strip() == "1":
            return EmailResult(ok=False, code="RESEND_PROVIDER_DOWN", message="mock forced failure")
        self.outbox.append({"to": to, "subject": subject, "html": html})
        logger.info("mock_email_sent to=%s subject=%s", to, subject)
        return EmailResult(ok=True, code="OK", message="mock_sent", raw={"to": to})
