"""
Short-lived cross-process locks for idempotent processing of external events.

With Redis configured the lock is a plain Redis key: SET NX EX to acquire
and a compare-and-delete script to release, so a worker whose lock expired
can never delete the next holder's key. Without Redis it falls back to the
cache backend's ``add``, which is only shared within one process.
"""
import logging
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from django.core.cache import cache

from .rate_limiting import get_redis_client

logger = logging.getLogger(__name__)

RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class IdempotencyLock:
    """
    A named lock with an expiry.

    Usage:
        lock = IdempotencyLock('payhere_lock:12345678', ttl=30)
        if lock.acquire():
            try:
                ...
            finally:
                lock.release()
    """

    def __init__(self, key: str, ttl: int = 30):
        self.key = key
        self.ttl = ttl
        self.token = uuid.uuid4().hex
        self.acquired = False

    def acquire(self) -> bool:
        client = get_redis_client()
        if client is not None:
            self.acquired = bool(client.set(self.key, self.token, nx=True, ex=self.ttl))
        else:
            self.acquired = cache.add(self.key, self.token, timeout=self.ttl)
        return self.acquired

    def release(self) -> None:
        if not self.acquired:
            return
        client = get_redis_client()
        if client is not None:
            released = bool(client.eval(RELEASE_SCRIPT, 1, self.key, self.token))
        else:
            released = cache.get(self.key) == self.token
            if released:
                cache.delete(self.key)
        if not released:
            logger.warning(f"Lock {self.key} expired before release")
        self.acquired = False


@contextmanager
def idempotency_guard(key: str, ttl: int = 30) -> Iterator[Optional[IdempotencyLock]]:
    """
    Yield the held lock, or None if another worker already holds it.

    The lock is always released on exit.
    """
    lock = IdempotencyLock(key, ttl=ttl)
    if not lock.acquire():
        yield None
        return
    try:
        yield lock
    finally:
        lock.release()
