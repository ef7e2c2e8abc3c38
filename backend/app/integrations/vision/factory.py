from __future__ import annotations

from app.integrations.common import (
    IntegrationDisabledError,
    IntegrationMisconfiguredError,
    health_summary,
    provider_mode,
    setting,
)
from app.integrations.vision.base import VisionProvider
from app.integrations.vision.mock_provider import MockVisionProvider


def _mode(config) -> str:
    return provider_mode(
        config, "AI_PROVIDER", ("openai", "mock", "disabled"), live="openai", live_key="OPENAI_API_KEY", idle="disabled"
    )


def build_vision_provider(config) -> VisionProvider:
    mode = _mode(config)
    if mode == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:vision")
    if mode == "mock":
        return MockVisionProvider()

    api_key = setting(config, "OPENAI_API_KEY")
    if not api_key:
        raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing OPENAI_API_KEY")
    # openai SDK import stays local to the live provider
    from app.integrations.vision.openai_provider import OpenAIVisionProvider

    timeout = float(setting(config, "OPENAI_TIMEOUT_SECONDS", "30"))
    return OpenAIVisionProvider(api_key=api_key, timeout=timeout)


def vision_health(config) -> dict:
    mode = _mode(config)
    missing = ["OPENAI_API_KEY"] if mode == "openai" and not setting(config, "OPENAI_API_KEY") else []
    return health_summary(mode, missing)
