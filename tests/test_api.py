"""Search API tests."""

import asyncio
import json
import logging

import pytest
from fastapi.testclient import TestClient

from crawlindex.api import create_app
from crawlindex.storage.database import PageStore
from crawlindex.utils.config import Config
from crawlindex.utils.logger import JSONFormatter


async def _populate(path):
    store = PageStore(path)
    await store.initialize()
    await store.upsert_page("https://python.example", "Python Guide", "learn python programming")
    await store.upsert_page("https://rust.example", "Rust Book", "systems programming in rust")
    await store.close()


@pytest.fixture
def config(tmp_path):
    config = Config()
    config.database.path = str(tmp_path / "pages.db")
    asyncio.run(_populate(config.database.path))
    return config


@pytest.fixture
def client(config):
    with TestClient(create_app(config)) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_stats(client):
    body = client.get("/stats").json()
    assert body["totalPages"] == 2
    assert body["lastScraped"] is not None


def test_search_response_shape(client):
    response = client.get("/search", params={"q": "python"})

    assert response.status_code == 200
    body = response.json()
    assert body["query"] == "python"
    assert body["count"] == 1
    [result] = body["results"]
    assert result["url"] == "https://python.example"
    assert result["title"] == "Python Guide"
    assert set(result) == {"url", "title", "snippet", "rank"}


def test_search_limit(client):
    body = client.get("/search", params={"q": "programming", "limit": "1"}).json()
    assert body["count"] == 1


def test_search_without_matches(client):
    body = client.get("/search", params={"q": "haskell"}).json()
    assert body == {"query": "haskell", "count": 0, "results": []}


@pytest.mark.parametrize("params", [{}, {"q": ""}, {"q": "   "}])
def test_missing_query_is_bad_request(client, params):
    assert client.get("/search", params=params).status_code == 400


@pytest.mark.parametrize("limit", ["0", "-3", "abc", "1.5", "101", "99999999999999999999"])
def test_bad_limit_is_bad_request(client, limit):
    response = client.get("/search", params={"q": "python", "limit": limit})
    assert response.status_code == 400


def test_substring_mode(config):
    config.search.mode = "substring"
    with TestClient(create_app(config)) as client:
        body = client.get("/search", params={"q": "RUST"}).json()

    assert [r["url"] for r in body["results"]] == ["https://rust.example"]
    assert body["results"][0]["rank"] == 0.0


def test_cors_allows_any_origin(client):
    response = client.get("/health", headers={"Origin": "https://search.example"})
    assert response.headers["access-control-allow-origin"] == "*"


def test_store_passed_in_is_left_open(config):
    store = PageStore(config.database.path)
    asyncio.run(store.initialize())
    try:
        with TestClient(create_app(config, store=store)) as client:
            assert client.get("/stats").json()["totalPages"] == 2
        assert store.connection is not None
    finally:
        asyncio.run(store.close())


def test_startup_log_carries_search_mode(config, caplog):
    caplog.set_level(logging.INFO, logger="crawlindex.api.app")
    config.search.mode = "substring"

    with TestClient(create_app(config)):
        pass

    [record] = [r for r in caplog.records
                if r.name == "crawlindex.api.app" and hasattr(r, "extra_fields")]
    entry = json.loads(JSONFormatter().format(record))
    assert entry["search_mode"] == "substring"
