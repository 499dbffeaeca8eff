from redis.exceptions import ConnectionError as RedisConnectionError

from app.services import redis_lock


class FakeRedis:
    def __init__(self):
        self.values = {}
        self.expiry = {}

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.values:
            return None
        self.values[key] = value
        self.expiry[key] = ex
        return True

    def get(self, key):
        return self.values.get(key)

    def delete(self, key):
        self.values.pop(key, None)


class DownRedis:
    def set(self, *args, **kwargs):
        raise RedisConnectionError("redis is down")

    def get(self, *args, **kwargs):
        raise RedisConnectionError("redis is down")


def test_lock_is_exclusive_until_released(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(redis_lock, "get_redis_client", lambda: fake)

    assert redis_lock.acquire_sync_lock(name="abc:pull_invoices", ttl_seconds=1) is True
    assert redis_lock.acquire_sync_lock(name="abc:pull_invoices") is False

    (key,) = fake.values
    assert key.endswith(":sync:lock:abc:pull_invoices")
    assert fake.expiry[key] == 5

    redis_lock.release_sync_lock(name="abc:pull_invoices")
    assert redis_lock.acquire_sync_lock(name="abc:pull_invoices") is True


def test_release_leaves_foreign_lock(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(redis_lock, "get_redis_client", lambda: fake)
    redis_lock.acquire_sync_lock(name="abc:push_invoices")
    (key,) = fake.values
    fake.values[key] = "another-worker"

    redis_lock.release_sync_lock(name="abc:push_invoices")

    assert fake.values[key] == "another-worker"


def test_unavailable_redis_does_not_block_scheduling(monkeypatch):
    monkeypatch.setattr(redis_lock, "get_redis_client", lambda: DownRedis())

    assert redis_lock.acquire_sync_lock(name="abc:pull_invoices") is True
    redis_lock.release_sync_lock(name="abc:pull_invoices")
