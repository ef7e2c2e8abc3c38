from __future__ import annotations

from app.integrations.common import (
    IntegrationDisabledError,
    IntegrationMisconfiguredError,
    health_summary,
    provider_mode,
    setting,
)
from app.integrations.email.base import EmailProvider
from app.integrations.email.mock_provider import MockEmailProvider
from app.integrations.email.resend_provider import ResendEmailProvider, resend_health


DEFAULT_EMAIL_FROM = "noreply@example.com"


def _mode(config) -> str:
    return provider_mode(
        config, "EMAIL_PROVIDER", ("resend", "mock", "disabled"), live="resend", live_key="RESEND_API_KEY", idle="mock"
    )


def build_email_provider(config) -> EmailProvider:
    mode = _mode(config)
    if mode == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:email")
    if mode == "mock":
        return MockEmailProvider()
    api_key = setting(config, "RESEND_API_KEY")
    if not api_key:
        raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing RESEND_API_KEY")
    return ResendEmailProvider(api_key=api_key, sender=setting(config, "EMAIL_FROM", DEFAULT_EMAIL_FROM))


def email_health(config) -> dict:
    mode = _mode(config)
    return health_summary(mode, resend_health().get("missing", []) if mode == "resend" else [])
