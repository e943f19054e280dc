"""Structured logging tests."""

import json
import logging

import pytest

from crawlindex.utils.config import LoggingConfig
from crawlindex.utils.logger import JSONFormatter, PerformanceFilter, get_crawler_logger, setup_logging


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def _capture(name):
    handler = ListHandler()
    logger = logging.getLogger(name)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return handler


def test_url_event_fields_reach_json_output():
    handler = _capture("test.url_event")
    adapter = get_crawler_logger("test.url_event", worker="main")

    adapter.log_url_event(logging.WARNING, "https://a.example", "fetch_failed", "Failed to fetch")

    entry = json.loads(JSONFormatter().format(handler.records[0]))
    assert entry["level"] == "WARNING"
    assert entry["message"] == "Failed to fetch"
    assert entry["url"] == "https://a.example"
    assert entry["event_type"] == "fetch_failed"
    assert entry["worker"] == "main"


def test_crawler_stat():
    handler = _capture("test.stat")
    get_crawler_logger("test.stat").log_crawler_stat("pages_stored", 3)

    entry = json.loads(JSONFormatter().format(handler.records[0]))
    assert entry["stat_name"] == "pages_stored"
    assert entry["stat_value"] == 3


def test_performance_filter_drops_access_logs():
    log_filter = PerformanceFilter()
    access = logging.LogRecord("uvicorn.access", logging.INFO, __file__, 1, "GET /", None, None)
    ours = logging.LogRecord("crawlindex.crawler", logging.INFO, __file__, 1, "hello", None, None)

    assert log_filter.filter(access) is False
    assert log_filter.filter(ours) is True


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_writes_rotating_files(tmp_path, restore_root_logger):
    log_file = tmp_path / "logs" / "crawler.log"
    root = setup_logging(LoggingConfig(level="DEBUG", file=str(log_file), json=True))

    logging.getLogger("crawlindex.test").error("disk full")
    logging.getLogger("uvicorn.access").info("GET /search")
    for handler in root.handlers:
        handler.flush()

    lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    messages = [entry["message"] for entry in lines]
    assert "disk full" in messages
    assert "GET /search" not in messages
    assert "disk full" in (tmp_path / "logs" / "errors.log").read_text(encoding="utf-8")
