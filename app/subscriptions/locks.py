"""
Redis lock that keeps periodic subscription jobs from overlapping.

Beat can fire a job while the previous run is still busy (a slow SMTP
server, a large sweep). Every run takes the job's lock without waiting;
a run that finds it taken is skipped.

The key expires after `ttl` seconds so a killed worker cannot hold it
forever, and it is released only by the holder of the random token that
took it.

Usage:
    from subscriptions.locks import DistributedLock

    with DistributedLock("subscriptions:job:expiry_sweep", ttl=900, blocking=False):
        sweeper.sweep()
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from subscriptions.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any


class DistributedLock:
    """
    Token-owned Redis key with an expiry.

    Args:
        key: Lock name, stored as "lock:<key>"
        ttl: Seconds until Redis drops the key on its own
        blocking: Poll until `timeout` instead of failing at once
        timeout: Longest wait in seconds when blocking
    """

    # Delete the key only if it still holds our token
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    end
    return 0
    """

    POLL_INTERVAL = 0.05

    def __init__(self, key: str, ttl: int = 30, blocking: bool = True, timeout: float = 10.0):
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None

    @property
    def redis(self):
        return get_redis_connection("default")

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def acquire(self) -> bool:
        """
        Take the lock.

        Raises:
            LockAcquisitionError: Taken by someone else (non-blocking), or
                still taken when `timeout` ran out (blocking)
        """
        token = uuid.uuid4().hex
        conn = self.redis
        deadline = time.monotonic() + self.timeout

        while not conn.set(self.key, token, nx=True, ex=self.ttl):
            if not self.blocking:
                raise LockAcquisitionError(
                    f"Lock '{self.key}' is already held",
                    details={"key": self.key},
                )
            if time.monotonic() >= deadline:
                raise LockAcquisitionError(
                    f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                    details={"key": self.key, "timeout": self.timeout},
                )
            time.sleep(self.POLL_INTERVAL)

        self._token = token
        return True

    def release(self) -> bool:
        """
        Give the lock back.

        Returns:
            False if we never held it or it expired and was taken over
        """
        if self._token is None:
            return False
        token, self._token = self._token, None
        return bool(self.redis.eval(self.RELEASE_SCRIPT, 1, self.key, token))

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb: Any) -> bool:
        self.release()
        return False
