from __future__ import annotations

import os

import requests

from app.integrations.email.base import EmailProvider, EmailResult


RESEND_BASE = "https://api.resend.com"


def _map_resend_error(status: int, message: str) -> str:
    msg = (message or "").lower()
    if status in (401, 403):
        return "RESEND_AUTH_FAILED"
    if status == 429:
        return "RESEND_RATE_LIMITED"
    if status in (400, 422):
        if "from" in msg or "domain" in msg:
            return "RESEND_INVALID_SENDER"
        return "RESEND_INVALID_RECIPIENT"
    return "RESEND_PROVIDER_DOWN"


class ResendEmailProvider(EmailProvider):
    name = "resend"

    def __init__(self, *, api_key: str, sender: str):
        self.api_key = api_key
        self.sender = sender

    def send_email(self, *, to: str, subject: str, html: str) -> EmailResult:
        payload = {"from": self.sender, "to": [(to or "").strip()], "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            r = requests.post(f"{RESEND_BASE}/emails", json=payload, headers=headers, timeout=12)
            data = r.json() if r.content else {}
        except requests.Timeout:
            return EmailResult(ok=False, code="RESEND_PROVIDER_DOWN", message="timeout")
        except (requests.RequestException, ValueError) as e:
            return EmailResult(ok=False, code="RESEND_PROVIDER_DOWN", message=str(e)[:200])

        raw = data if isinstance(data, dict) else {"payload": data}
        if 200 <= r.status_code < 300:
            return EmailResult(ok=True, code="OK", message="sent", raw=raw)
        detail = str(raw.get("message") or raw.get("error") or "")
        return EmailResult(
            ok=False,
            code=_map_resend_error(r.status_code, detail),
            message=(detail or f"http_{r.status_code}")[:200],
            raw=raw,
        )


def resend_health() -> dict:
    missing = []
    if not (os.getenv("RESEND_API_KEY") or "").strip():
        missing.append("RESEND_API_KEY")
    return {"missing": missing}
