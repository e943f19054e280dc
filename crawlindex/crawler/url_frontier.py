"""
URL frontier: the FIFO of URLs to visit plus the seen set that keeps a URL
from being queued twice.
"""

import logging
import time
from collections import deque
from typing import Deque, Dict, Optional, Set, Union

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from ..errors import StorageError


class URLFrontier:
    """
    Frontier interface.

    enqueue() adds a URL only if it has never been seen; next() returns the
    next URL to visit or None when nothing is available right now. The dedup
    key is the raw URL string.
    """

    # True when an empty frontier can refill by itself (cooldown expiry), so
    # the crawl loop should idle instead of stopping.
    continuous = False

    async def initialize(self):
        pass

    async def enqueue(self, url: str) -> bool:
        raise NotImplementedError

    async def next(self) -> Optional[str]:
        raise NotImplementedError

    async def size(self) -> int:
        raise NotImplementedError

    async def get_stats(self) -> Dict[str, int]:
        raise NotImplementedError


class MemoryFrontier(URLFrontier):
    """Process-lifetime frontier. The crawl ends when the queue drains."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.queue: Deque[str] = deque()
        self.seen: Set[str] = set()

    async def enqueue(self, url: str) -> bool:
        if url in self.seen:
            return False
        self.seen.add(url)
        self.queue.append(url)
        self.logger.debug(f"Added URL to frontier: {url}")
        return True

    async def next(self) -> Optional[str]:
        if not self.queue:
            return None
        return self.queue.popleft()

    async def size(self) -> int:
        return len(self.queue)

    async def get_stats(self) -> Dict[str, int]:
        return {
            'total_queued': len(self.queue),
            'total_seen': len(self.seen),
        }


class RedisFrontier(URLFrontier):
    """
    Durable frontier stored in Redis; survives restarts.

    Keys under the configured prefix:
      seen       set   every URL ever enqueued
      pending    list  never-visited URLs, FIFO
      discovered hash  url -> discovery time
      visited    zset  url -> last visit time

    next() serves pending URLs first. When none are pending it serves the
    least recently visited URL whose last visit is older than the cooldown,
    and returns None if every visited URL is still cooling down.
    """

    continuous = True

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "crawlindex:frontier",
                 revisit_cooldown: float = 86400.0):
        self.redis_client = redis_client
        self.revisit_cooldown = revisit_cooldown
        self.logger = logging.getLogger(__name__)

        self.seen_key = f"{key_prefix}:seen"
        self.pending_key = f"{key_prefix}:pending"
        self.discovered_key = f"{key_prefix}:discovered"
        self.visited_key = f"{key_prefix}:visited"

    async def initialize(self):
        """Log the state recovered from Redis."""
        stats = await self.get_stats()
        self.logger.info(f"Initialized URL frontier with {stats['total_seen']} known URLs, "
                         f"{stats['total_queued']} pending, {stats['total_visited']} visited")

    async def enqueue(self, url: str) -> bool:
        """
        Mark url seen and queue it in one MULTI/EXEC.

        The seen set is WATCHed so a concurrent writer forces a retry; if
        EXEC never runs, nothing is written and the URL can be enqueued again.
        """
        try:
            async with self.redis_client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(self.seen_key)
                        if await pipe.sismember(self.seen_key, url):
                            return False

                        pipe.multi()
                        pipe.sadd(self.seen_key, url)
                        pipe.rpush(self.pending_key, url)
                        pipe.hset(self.discovered_key, url, time.time())
                        await pipe.execute()
                        break
                    except WatchError:
                        continue

            self.logger.debug(f"Added URL to frontier: {url}")
            return True

        except RedisError as e:
            raise StorageError(f"Error adding URL to frontier: {e}")

    async def next(self) -> Optional[str]:
        """Claim the next URL and record the visit in one MULTI/EXEC."""
        now = time.time()
        try:
            async with self.redis_client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(self.pending_key, self.visited_key)
                        url = await pipe.lindex(self.pending_key, 0)
                        from_pending = url is not None
                        if not from_pending:
                            candidates = await pipe.zrangebyscore(
                                self.visited_key, '-inf', now - self.revisit_cooldown,
                                start=0, num=1
                            )
                            if not candidates:
                                return None
                            url = candidates[0]

                        url = _decode(url)
                        pipe.multi()
                        if from_pending:
                            pipe.lpop(self.pending_key)
                        pipe.zadd(self.visited_key, {url: now})
                        await pipe.execute()
                        return url
                    except WatchError:
                        continue

        except RedisError as e:
            raise StorageError(f"Error reading next URL from frontier: {e}")

    async def last_visited(self, url: str) -> Optional[float]:
        """Last visit time of url, or None if never visited."""
        try:
            return await self.redis_client.zscore(self.visited_key, url)
        except RedisError as e:
            raise StorageError(f"Error reading visit time: {e}")

    async def size(self) -> int:
        try:
            return await self.redis_client.llen(self.pending_key)
        except RedisError as e:
            raise StorageError(f"Error reading frontier size: {e}")

    async def get_stats(self) -> Dict[str, int]:
        try:
            return {
                'total_queued': await self.redis_client.llen(self.pending_key),
                'total_seen': await self.redis_client.scard(self.seen_key),
                'total_visited': await self.redis_client.zcard(self.visited_key),
            }
        except RedisError as e:
            raise StorageError(f"Error reading frontier stats: {e}")


def _decode(value: Union[str, bytes]) -> str:
    if isinstance(value, bytes):
        return value.decode('utf-8')
    return value
