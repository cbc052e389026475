"""
Distributed lock.

Named Redis locks with a TTL, used to keep periodic jobs from running on
several workers at once. Built on the lock primitive of redis-py.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import LockError


class DistributedLock:
    """Redis-backed mutual exclusion across processes and threads."""

    def __init__(
        self, redis_client: redis.Redis, prefix: str = "unifarm:lock:"
    ) -> None:
        """
        Initialize distributed lock.

        Args:
            redis_client: Async Redis client
            prefix: Key prefix of every lock
        """
        self.redis_client = redis_client
        self.prefix = prefix

    @asynccontextmanager
    async def lock(
        self,
        key: str,
        timeout: int = 60,
        blocking: bool = False,
        blocking_timeout: float | None = None,
    ) -> AsyncIterator[bool]:
        """
        Hold a named lock for the body of the block.

        Args:
            key: Lock name
            timeout: Lock TTL in seconds; the lock expires if the holder dies
            blocking: Wait for the lock instead of giving up at once
            blocking_timeout: Max seconds to wait when blocking

        Yields:
            True when the lock is held, False when another holder has it
        """
        redis_lock = self.redis_client.lock(
            f"{self.prefix}{key}",
            timeout=timeout,
            blocking=blocking,
            blocking_timeout=blocking_timeout,
        )
        acquired = await redis_lock.acquire()
        if not acquired:
            logger.debug("Lock is held elsewhere", extra={"lock": key})

        try:
            yield acquired
        finally:
            if acquired:
                try:
                    await redis_lock.release()
                except LockError as e:
                    # TTL ran out before the body finished
                    logger.warning(
                        f"Lock {key} was lost before release: {e}",
                        extra={"lock": key, "timeout": timeout},
                    )
