from __future__ import annotations

from app.integrations.common import IntegrationMisconfiguredError, health_summary, provider_mode, setting
from app.integrations.media.base import MediaProvider
from app.integrations.media.cloudinary_provider import CloudinaryMediaProvider, cloudinary_health
from app.integrations.media.mock_provider import MockMediaProvider


def _mode(config) -> str:
    return provider_mode(
        config, "MEDIA_PROVIDER", ("cloudinary", "mock"), live="cloudinary", live_key="CLOUDINARY_CLOUD_NAME", idle="mock"
    )


def build_media_provider(config) -> MediaProvider:
    if _mode(config) == "mock":
        return MockMediaProvider()
    missing = cloudinary_health().get("missing", [])
    if missing:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing {', '.join(missing)}")
    return CloudinaryMediaProvider(
        cloud_name=setting(config, "CLOUDINARY_CLOUD_NAME"),
        api_key=setting(config, "CLOUDINARY_API_KEY"),
        api_secret=setting(config, "CLOUDINARY_API_SECRET"),
    )


def media_health(config) -> dict:
    mode = _mode(config)
    return health_summary(mode, cloudinary_health().get("missing", []) if mode == "cloudinary" else [])
