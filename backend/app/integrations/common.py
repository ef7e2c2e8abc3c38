from __future__ import annotations

import os


class IntegrationDisabledError(RuntimeError):
    pass


class IntegrationMisconfiguredError(RuntimeError):
    pass


def setting(config, key: str, default: str = "") -> str:
    """Read a provider setting from app config first, then the environment."""
    return str((config.get(key) if config else None) or os.getenv(key) or default).strip()


def provider_mode(config, key: str, allowed: tuple[str, ...], *, live: str, live_key: str, idle: str) -> str:
    """Resolve an explicit provider mode, or pick `live` when its credential is set."""
    raw = setting(config, key).lower()
    if raw in allowed:
        return raw
    return live if setting(config, live_key) else idle


def health_summary(mode: str, missing: list[str]) -> dict:
    if mode == "disabled":
        status = "disabled"
    elif missing:
        status = "misconfigured"
    else:
        status = "configured"
    return {"status": status, "mode": mode, "missing": list(missing)}
