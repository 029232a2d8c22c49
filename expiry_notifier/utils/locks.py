from contextlib import contextmanager
from typing import Iterator

import redis
from redis.exceptions import LockError, RedisError

from expiry_notifier.utils.logging import get_logger

logger = get_logger()

LOCK_PREFIX = "expiry-notifier:sweep"


class SweepLock:
    """
    Serializes overlapping ticks of the same sweep across workers.

    Non-blocking: a tick that finds the lock held is skipped and the next
    tick picks up whatever it would have sent.
    """

    def __init__(self, client: redis.Redis, timeout_seconds: int):
        self.client = client
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_url(cls, url: str, timeout_seconds: int) -> "SweepLock":
        return cls(
            redis.Redis.from_url(url, socket_connect_timeout=5),
            timeout_seconds,
        )

    @contextmanager
    def hold(self, sweep: str) -> Iterator[bool]:
        """Yield True when this tick owns the sweep, False when another tick does."""
        lock = self.client.lock(
            f"{LOCK_PREFIX}:{sweep}", timeout=self.timeout_seconds, blocking=False
        )
        try:
            acquired = lock.acquire(blocking=False)
        except RedisError as e:
            # Markers still prevent duplicate dispatch without the lock
            logger.warning(f"Sweep lock unavailable for {sweep}, running unlocked: {e}")
            yield True
            return

        try:
            yield acquired
        finally:
            if acquired:
                try:
                    lock.release()
                except LockError:
                    logger.warning(f"Sweep lock for {sweep} expired before release")
