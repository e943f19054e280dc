"""
Prometheus metrics for the crawl loop.
"""

import logging
from typing import Dict, Optional

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, start_http_server


class CrawlerMetrics:
    """
    Crawl counters on a private registry.

    A private registry keeps several instances (tests, restarts within one
    process) from colliding on metric names.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.logger = logging.getLogger(__name__)
        self.registry = registry or CollectorRegistry()

        self.pages_total = Counter(
            'crawler_pages_total',
            'URLs processed, by outcome',
            ['outcome'],
            registry=self.registry
        )
        self.links_enqueued_total = Counter(
            'crawler_links_enqueued_total',
            'Newly discovered links added to the frontier',
            registry=self.registry
        )
        self.exports_total = Counter(
            'crawler_exports_total',
            'Snapshot exports, by result',
            ['result'],
            registry=self.registry
        )
        self.syncs_total = Counter(
            'crawler_syncs_total',
            'External sync runs, by result',
            ['result'],
            registry=self.registry
        )
        self.fetch_seconds = Histogram(
            'crawler_fetch_seconds',
            'Time spent fetching a page',
            registry=self.registry
        )
        self.frontier_size = Gauge(
            'crawler_frontier_size',
            'URLs waiting in the frontier',
            registry=self.registry
        )

    def start_server(self, port: int):
        """Expose the registry over HTTP."""
        try:
            start_http_server(port, registry=self.registry)
            self.logger.info(f"Prometheus metrics server started on port {port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def record_outcome(self, outcome: str):
        self.pages_total.labels(outcome=outcome).inc()

    def record_export(self, ok: bool):
        self.exports_total.labels(result='ok' if ok else 'error').inc()

    def record_sync(self, ok: bool):
        self.syncs_total.labels(result='ok' if ok else 'error').inc()

    def value(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Current sample value, 0.0 if the series has not been touched."""
        result = self.registry.get_sample_value(name, labels or {})
        return result or 0.0
