"""Fixtures: temporary page store, fake Redis, canned fetcher."""

from typing import Dict, List

import pytest_asyncio
from fakeredis.aioredis import FakeRedis

from crawlindex.crawler.fetcher import FetchResult
from crawlindex.errors import FetchError
from crawlindex.storage.database import PageStore


class FakeFetcher:
    """Serves canned HTML by URL; unknown URLs fail like a dead host."""

    def __init__(self, pages: Dict[str, str]):
        self.pages = pages
        self.requested: List[str] = []

    async def fetch(self, url: str) -> FetchResult:
        self.requested.append(url)
        if url not in self.pages:
            raise FetchError(url, "Client error: connection refused")
        return FetchResult(url=url, status_code=200, content=self.pages[url],
                           content_type="text/html")


def html_page(title: str, body: str = "", links: List[str] = ()) -> str:
    anchors = "".join(f'<a href="{link}">link</a>' for link in links)
    return f"<html><head><title>{title}</title></head><body><p>{body}</p>{anchors}</body></html>"


@pytest_asyncio.fixture
async def store(tmp_path):
    """PageStore on a fresh SQLite file."""
    page_store = PageStore(str(tmp_path / "pages.db"))
    await page_store.initialize()
    yield page_store
    await page_store.close()


@pytest_asyncio.fixture
async def redis_client():
    client = FakeRedis(decode_responses=True)
    yield client
    await client.aclose()
