"""Sync preferences stored in ``TenantIntegration.config``.

The platform writes these keys in camelCase (``pushSyncEnabled``,
``pushSyncFrequency``, ``lastPushSyncAt``). Older snake_case spellings are
still read, camelCase wins when both are present.
"""
from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from app.core.clock import as_naive_utc

logger = logging.getLogger(__name__)

PUSH_SYNC_ENABLED_KEY = "pushSyncEnabled"
PUSH_SYNC_FREQUENCY_KEY = "pushSyncFrequency"
LAST_PUSH_SYNC_AT_KEY = "lastPushSyncAt"

_LEGACY_KEYS = {
    PUSH_SYNC_ENABLED_KEY: "push_sync_enabled",
    PUSH_SYNC_FREQUENCY_KEY: "push_sync_frequency",
    LAST_PUSH_SYNC_AT_KEY: "last_push_sync_at",
}

_FALSE_STRINGS = {"false", "0", "no", "off", "disabled"}


def config_value(config: dict[str, Any] | None, key: str) -> Any:
    config = config or {}
    if config.get(key) is not None:
        return config[key]
    return config.get(_LEGACY_KEYS.get(key, key))


def push_sync_enabled(config: dict[str, Any] | None) -> bool:
    """Push is on unless explicitly switched off; form values arrive as strings."""
    raw = config_value(config, PUSH_SYNC_ENABLED_KEY)
    if raw is None:
        return True
    if isinstance(raw, str):
        return raw.strip().lower() not in _FALSE_STRINGS
    return bool(raw)


def push_sync_frequency(config: dict[str, Any] | None) -> str | None:
    raw = config_value(config, PUSH_SYNC_FREQUENCY_KEY)
    return str(raw) if raw else None


def last_push_sync_at(config: dict[str, Any] | None) -> datetime | None:
    raw = config_value(config, LAST_PUSH_SYNC_AT_KEY)
    if not raw:
        return None
    try:
        return as_naive_utc(datetime.fromisoformat(str(raw)))
    except ValueError:
        logger.warning(f"Ignoring malformed {LAST_PUSH_SYNC_AT_KEY} value {raw!r}")
        return None


def with_last_push_sync_at(config: dict[str, Any] | None, when: datetime) -> dict[str, Any]:
    """Copy of ``config`` recording a push that finished at naive UTC ``when``."""
    updated = dict(config or {})
    updated.pop(_LEGACY_KEYS[LAST_PUSH_SYNC_AT_KEY], None)
    updated[LAST_PUSH_SYNC_AT_KEY] = as_naive_utc(when).replace(tzinfo=UTC).isoformat()
    return updated
