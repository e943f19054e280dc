"""URL frontier tests: in-memory and Redis-backed."""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from crawlindex.crawler.url_frontier import MemoryFrontier, RedisFrontier
from crawlindex.errors import StorageError


pytestmark = pytest.mark.asyncio


class TestMemoryFrontier:
    async def test_enqueue_twice_keeps_one_entry(self):
        frontier = MemoryFrontier()
        assert await frontier.enqueue("https://a.example") is True
        assert await frontier.enqueue("https://a.example") is False
        assert await frontier.size() == 1

    async def test_fifo_order_and_empty_sentinel(self):
        frontier = MemoryFrontier()
        for url in ("https://a.example", "https://b.example", "https://c.example"):
            await frontier.enqueue(url)

        assert await frontier.next() == "https://a.example"
        assert await frontier.next() == "https://b.example"
        assert await frontier.next() == "https://c.example"
        assert await frontier.next() is None

    async def test_visited_url_is_never_requeued(self):
        frontier = MemoryFrontier()
        await frontier.enqueue("https://a.example")
        await frontier.next()
        assert await frontier.enqueue("https://a.example") is False
        assert await frontier.next() is None

    async def test_urls_are_not_canonicalized(self):
        frontier = MemoryFrontier()
        assert await frontier.enqueue("https://a.example")
        assert await frontier.enqueue("https://a.example/")
        assert await frontier.enqueue("https://a.example/?x=1")
        assert await frontier.get_stats() == {'total_queued': 3, 'total_seen': 3}

    async def test_not_continuous(self):
        assert MemoryFrontier.continuous is False


class TestRedisFrontier:
    async def test_enqueue_twice_keeps_one_entry(self, redis_client):
        frontier = RedisFrontier(redis_client, key_prefix="test")
        assert await frontier.enqueue("https://a.example") is True
        assert await frontier.enqueue("https://a.example") is False
        assert await frontier.size() == 1
        assert await redis_client.llen("test:pending") == 1

    async def test_fifo_order(self, redis_client):
        frontier = RedisFrontier(redis_client, key_prefix="test")
        for url in ("https://a.example", "https://b.example", "https://c.example"):
            await frontier.enqueue(url)

        assert [await frontier.next() for _ in range(3)] == [
            "https://a.example", "https://b.example", "https://c.example"
        ]

    async def test_cooled_down_urls_return_none(self, redis_client):
        frontier = RedisFrontier(redis_client, key_prefix="test", revisit_cooldown=3600)
        await frontier.enqueue("https://a.example")

        assert await frontier.next() == "https://a.example"
        assert await frontier.last_visited("https://a.example") is not None
        assert await frontier.next() is None

    async def test_url_is_revisited_after_cooldown(self, redis_client):
        frontier = RedisFrontier(redis_client, key_prefix="test", revisit_cooldown=3600)
        await frontier.enqueue("https://a.example")
        await frontier.next()

        # Pretend the visit happened two hours ago
        await redis_client.zadd("test:visited", {"https://a.example": 1.0})

        assert await frontier.next() == "https://a.example"
        assert await frontier.last_visited("https://a.example") > 1.0

    async def test_pending_urls_come_before_revisits(self, redis_client):
        frontier = RedisFrontier(redis_client, key_prefix="test", revisit_cooldown=0)
        await frontier.enqueue("https://a.example")
        assert await frontier.next() == "https://a.example"

        await frontier.enqueue("https://b.example")
        assert await frontier.next() == "https://b.example"

    async def test_visited_url_is_not_requeued_by_discovery(self, redis_client):
        frontier = RedisFrontier(redis_client, key_prefix="test", revisit_cooldown=3600)
        await frontier.enqueue("https://a.example")
        await frontier.next()

        assert await frontier.enqueue("https://a.example") is False
        assert await frontier.size() == 0

    async def test_state_survives_a_new_instance(self, redis_client):
        first = RedisFrontier(redis_client, key_prefix="test")
        await first.enqueue("https://a.example")
        await first.enqueue("https://b.example")
        await first.next()

        second = RedisFrontier(redis_client, key_prefix="test")
        await second.initialize()
        assert await second.enqueue("https://a.example") is False
        assert await second.next() == "https://b.example"
        assert await second.get_stats() == {
            'total_queued': 0, 'total_seen': 2, 'total_visited': 2
        }

    async def test_continuous(self):
        assert RedisFrontier.continuous is True

    async def test_failed_enqueue_leaves_url_enqueueable(self, redis_client, monkeypatch):
        frontier = RedisFrontier(redis_client, key_prefix="test")
        fail_once(redis_client, monkeypatch)

        with pytest.raises(StorageError):
            await frontier.enqueue("https://a.example")

        assert await frontier.enqueue("https://a.example") is True
        assert await frontier.next() == "https://a.example"

    async def test_failed_claim_keeps_url_pending(self, redis_client, monkeypatch):
        frontier = RedisFrontier(redis_client, key_prefix="test")
        await frontier.enqueue("https://a.example")
        fail_once(redis_client, monkeypatch)

        with pytest.raises(StorageError):
            await frontier.next()

        assert await frontier.last_visited("https://a.example") is None
        assert await frontier.next() == "https://a.example"
        assert await frontier.next() is None


def fail_once(redis_client, monkeypatch):
    """Make the next transaction's EXEC fail as if the connection dropped."""
    original_pipeline = redis_client.pipeline
    state = {'failed': False}

    def pipeline(*args, **kwargs):
        pipe = original_pipeline(*args, **kwargs)
        if not state['failed']:
            state['failed'] = True

            async def execute(*exec_args, **exec_kwargs):
                raise RedisConnectionError("Connection reset by peer")

            pipe.execute = execute
        return pipe

    monkeypatch.setattr(redis_client, "pipeline", pipeline)
