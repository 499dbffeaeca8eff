from __future__ import annotations

import os
import uuid

from redis.exceptions import RedisError

from app.core.config import settings
from app.services.redis_client import get_redis_client

_worker_id = f"{os.getpid()}-{uuid.uuid4()}"


def _lock_key(*, name: str) -> str:
    prefix = settings.redis_key_prefix.strip() or "ledger-sync"
    return f"{prefix}:sync:lock:{name}"


def acquire_sync_lock(*, name: str, ttl_seconds: int | None = None) -> bool:
    """Acquire a short-lived Redis lock guarding a sync scheduling decision.

    If Redis is unavailable, this returns True as a safe fallback for
    single-worker/dev mode so scheduling can continue.
    """

    try:
        client = get_redis_client()
        ttl = max(5, ttl_seconds or settings.integration_schedule_lock_ttl_seconds)
        return bool(client.set(_lock_key(name=name), _worker_id, nx=True, ex=ttl))
    except RedisError:
        return True


def release_sync_lock(*, name: str) -> None:
    try:
        client = get_redis_client()
        key = _lock_key(name=name)
        # Only drop the lock if this worker still owns it.
        if client.get(key) == _worker_id:
            client.delete(key)
    except RedisError:
        return
