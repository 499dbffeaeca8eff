from __future__ import annotations

from redis import Redis

from app.core.config import settings

_redis_client: Redis | None = None
_redis_signature: tuple[str, str] | None = None

# Locks are advisory; a dead Redis must not stall a scheduler tick.
_SOCKET_TIMEOUT_SECONDS = 2.0


def get_redis_client() -> Redis:
    global _redis_client, _redis_signature

    signature = (settings.redis_url, settings.redis_key_prefix)
    if _redis_client is not None and _redis_signature == signature:
        return _redis_client

    _redis_client = Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=_SOCKET_TIMEOUT_SECONDS,
        socket_timeout=_SOCKET_TIMEOUT_SECONDS,
    )
    _redis_signature = signature
    return _redis_client
