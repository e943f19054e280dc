"""
Crawl scheduler: the sequential control loop that moves URLs from the
frontier through fetch, filter, extract, persist and link expansion.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from .blacklist import BlacklistFilter
from .fetcher import WebFetcher
from .parser import ContentParser, ParsedContent
from .seeds import SeedFile
from .sync import GitSync, SyncCallback
from .url_frontier import URLFrontier, MemoryFrontier, RedisFrontier
from ..errors import ConfigError, FetchError, StorageError
from ..export.snapshot import SnapshotExporter
from ..storage.database import PageStore
from ..utils.config import Config
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlerMetrics


class CrawlState(Enum):
    """Pipeline stage of a single URL."""
    FETCHING = "fetching"
    FILTERING = "filtering"
    EXTRACTING = "extracting"
    PERSISTING = "persisting"
    EXPANDING = "expanding"
    DONE = "done"
    SKIPPED = "skipped"


class SkipReason(Enum):
    BLACKLISTED = "blacklisted"
    FETCH_ERROR = "fetch_error"
    STORAGE_ERROR = "storage_error"


@dataclass
class CrawlOutcome:
    """What happened to one URL."""
    url: str
    state: CrawlState
    reason: Optional[SkipReason] = None
    skipped_at: Optional[CrawlState] = None
    detail: Optional[str] = None
    fetched: bool = False
    links_enqueued: int = 0

    @property
    def succeeded(self) -> bool:
        return self.state == CrawlState.DONE

    @property
    def label(self) -> str:
        return self.reason.value if self.reason else self.state.value


@dataclass
class CrawlStats:
    """Statistics for one run of the loop."""
    start_time: float
    urls_processed: int = 0
    pages_stored: int = 0
    failures: int = 0
    blacklisted: int = 0
    links_enqueued: int = 0
    exports: int = 0
    export_errors: int = 0
    syncs: int = 0
    sync_errors: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.pages_stored / elapsed_minutes if elapsed_minutes > 0 else 0


class CrawlerScheduler:
    """
    Single-task crawl loop.

    One URL is processed completely before the next is taken. Stop requests
    are honored only at the politeness and idle sleeps, so a URL in flight is
    always finished.
    """

    PROGRESS_EVERY = 10

    def __init__(self, frontier: URLFrontier, fetcher, parser: ContentParser,
                 store: PageStore, blacklist: BlacklistFilter,
                 seed_urls: Optional[List[str]] = None,
                 exporter: Optional[SnapshotExporter] = None,
                 sync: Optional[SyncCallback] = None,
                 seed_file: Optional[SeedFile] = None,
                 politeness_delay: float = 1.0,
                 sync_every: int = 5,
                 idle_backoff: float = 60.0,
                 metrics: Optional[CrawlerMetrics] = None,
                 redis_client: Optional[redis.Redis] = None):
        self.frontier = frontier
        self.fetcher = fetcher
        self.parser = parser
        self.store = store
        self.blacklist = blacklist
        self.seed_urls = list(seed_urls or [])
        self.exporter = exporter
        self.sync = sync
        self.seed_file = seed_file
        self.politeness_delay = politeness_delay
        self.sync_every = sync_every
        self.idle_backoff = idle_backoff
        self.metrics = metrics
        self.redis_client = redis_client

        self.logger = get_crawler_logger(__name__)
        self.stats = CrawlStats(start_time=time.time())
        self.is_running = False
        self._stop_event = asyncio.Event()

    async def add_seed_urls(self) -> int:
        """Enqueue seed URLs. Seeds already seen are left alone."""
        added_count = 0
        for url in self.seed_urls:
            if await self.frontier.enqueue(url):
                added_count += 1
        self.logger.info(f"Added {added_count} of {len(self.seed_urls)} seed URLs to frontier")
        return added_count

    def request_stop(self):
        """Stop after the URL currently being processed."""
        self.logger.info("Stop requested, finishing current URL...")
        self._stop_event.set()

    async def _sleep(self, seconds: float) -> bool:
        """Sleep unless a stop is requested. Returns True if stopping."""
        if self._stop_event.is_set():
            return True
        if seconds <= 0:
            return False
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def start_crawling(self, max_pages: Optional[int] = None,
                             max_duration: Optional[int] = None) -> CrawlStats:
        """
        Run the crawl loop.

        Args:
            max_pages: Stop after this many URLs have been processed
            max_duration: Stop after this many seconds

        Returns:
            Statistics for the run
        """
        if self.is_running:
            self.logger.warning("Crawler is already running")
            return self.stats

        self.is_running = True
        self.stats = CrawlStats(start_time=time.time())
        successes = 0

        try:
            await self.add_seed_urls()

            while not self._stop_event.is_set():
                if max_pages and self.stats.urls_processed >= max_pages:
                    self.logger.info(f"Reached max pages limit: {max_pages}")
                    break

                if max_duration and self.stats.elapsed_time >= max_duration:
                    self.logger.info(f"Reached max duration: {max_duration} seconds")
                    break

                try:
                    url = await self.frontier.next()
                except StorageError as e:
                    self.logger.error(f"Frontier unavailable: {e}")
                    if await self._sleep(self.idle_backoff):
                        break
                    continue

                if url is None:
                    if not self.frontier.continuous:
                        self.logger.info("Frontier exhausted")
                        break
                    self.logger.info(f"No URLs ready, waiting {self.idle_backoff:.0f}s")
                    if await self._sleep(self.idle_backoff):
                        break
                    continue

                outcome = await self.process_url(url)
                self._record(outcome)

                if outcome.succeeded:
                    successes += 1
                    await self._export()
                    if successes % self.sync_every == 0:
                        await self._sync()

                if self.stats.urls_processed % self.PROGRESS_EVERY == 0:
                    await self._log_current_stats()

                if outcome.fetched and await self._sleep(self.politeness_delay):
                    break

        finally:
            self.is_running = False
            await self._log_final_stats()

        return self.stats

    async def process_url(self, url: str) -> CrawlOutcome:
        """Take one URL through the whole pipeline."""
        term = self.blacklist.matched_term(url)
        if term:
            return self._skip(url, CrawlState.FETCHING, SkipReason.BLACKLISTED,
                              f"URL contains '{term}'")

        # FETCHING
        try:
            result = await self.fetcher.fetch(url)
            if self.metrics:
                self.metrics.fetch_seconds.observe(result.fetch_time)
            parsed = self.parser.parse(url, result.content)
        except FetchError as e:
            return self._skip(url, CrawlState.FETCHING, SkipReason.FETCH_ERROR,
                              e.message, fetched=True)

        # FILTERING
        for field_name, text in (('title', parsed.title), ('content', parsed.content)):
            term = self.blacklist.matched_term(text)
            if term:
                return self._skip(url, CrawlState.FILTERING, SkipReason.BLACKLISTED,
                                  f"{field_name} contains '{term}'", fetched=True)

        # EXTRACTING happened in the parser; content is already capped.
        # PERSISTING
        if not await self.store.upsert_page(url, parsed.title, parsed.content):
            return self._skip(url, CrawlState.PERSISTING, SkipReason.STORAGE_ERROR,
                              "page upsert failed", fetched=True)

        if parsed.images and not await self.store.append_images(url, parsed.images):
            self.logger.log_url_event(logging.WARNING, url, 'images_failed',
                                      f"Stored page without its {len(parsed.images)} images: {url}")

        # EXPANDING
        links_enqueued = await self._queue_new_urls(parsed)

        self.logger.log_url_event(
            logging.INFO, url, 'indexed',
            f"Indexed: {parsed.title or url} ({links_enqueued} new links)"
        )
        return CrawlOutcome(url=url, state=CrawlState.DONE, fetched=True,
                            links_enqueued=links_enqueued)

    async def _queue_new_urls(self, parsed_content: ParsedContent) -> int:
        """Enqueue outbound links that are neither blacklisted nor already seen."""
        added_count = 0
        for link in parsed_content.links:
            term = self.blacklist.matched_term(link)
            if term:
                self.logger.debug(f"Not queuing blacklisted link {link} ('{term}')")
                continue

            try:
                added = await self.frontier.enqueue(link)
            except StorageError as e:
                self.logger.error(f"Could not queue links from {parsed_content.url}: {e}")
                break

            if added:
                added_count += 1
                if self.seed_file:
                    self.seed_file.append(link)

        return added_count

    def _skip(self, url: str, state: CrawlState, reason: SkipReason, detail: str,
              fetched: bool = False) -> CrawlOutcome:
        if reason == SkipReason.BLACKLISTED:
            self.logger.log_url_event(logging.INFO, url, 'blacklisted',
                                      f"Skipping blacklisted page {url}: {detail}")
        elif reason == SkipReason.FETCH_ERROR:
            self.logger.log_url_event(logging.WARNING, url, 'fetch_failed',
                                      f"Failed to fetch {url}: {detail}")
        else:
            self.logger.log_url_event(logging.ERROR, url, 'storage_failed',
                                      f"Failed to store {url}: {detail}")

        return CrawlOutcome(url=url, state=CrawlState.SKIPPED, reason=reason,
                            skipped_at=state, detail=detail, fetched=fetched)

    def _record(self, outcome: CrawlOutcome):
        self.stats.urls_processed += 1
        self.stats.links_enqueued += outcome.links_enqueued

        if outcome.succeeded:
            self.stats.pages_stored += 1
        elif outcome.reason == SkipReason.BLACKLISTED:
            self.stats.blacklisted += 1
        else:
            self.stats.failures += 1

        if self.metrics:
            self.metrics.record_outcome(outcome.label)
            self.metrics.links_enqueued_total.inc(outcome.links_enqueued)

    async def _export(self):
        """Refresh the snapshot. Failures are logged and do not stop the crawl."""
        if self.exporter is None:
            return
        try:
            await self.exporter.export()
            self.stats.exports += 1
            ok = True
        except (StorageError, OSError) as e:
            self.stats.export_errors += 1
            self.logger.error(f"Snapshot export failed: {e}")
            ok = False
        if self.metrics:
            self.metrics.record_export(ok)

    async def _sync(self):
        """Run the external sync callback, isolating the loop from any failure."""
        if self.sync is None:
            return
        try:
            await self.sync()
            self.stats.syncs += 1
            ok = True
        except Exception as e:
            self.stats.sync_errors += 1
            self.logger.error(f"External sync failed: {e}")
            ok = False
        if self.metrics:
            self.metrics.record_sync(ok)

    async def _frontier_stats(self) -> Dict[str, int]:
        try:
            return await self.frontier.get_stats()
        except StorageError as e:
            self.logger.warning(f"Could not read frontier stats: {e}")
            return {}

    async def _log_current_stats(self):
        frontier_stats = await self._frontier_stats()
        queued = frontier_stats.get('total_queued', 0)
        if self.metrics:
            self.metrics.frontier_size.set(queued)

        self.logger.info(
            f"Crawl Progress: "
            f"Processed={self.stats.urls_processed}, "
            f"Stored={self.stats.pages_stored}, "
            f"Queued={queued}, "
            f"Seen={frontier_stats.get('total_seen', 0)}, "
            f"Failures={self.stats.failures}, "
            f"Blacklisted={self.stats.blacklisted}, "
            f"Rate={self.stats.pages_per_minute:.1f} pages/min"
        )

    async def _log_final_stats(self):
        frontier_stats = await self._frontier_stats()

        self.logger.info("=== CRAWL STOPPED ===")
        self.logger.log_crawler_stat('urls_processed', self.stats.urls_processed)
        self.logger.log_crawler_stat('pages_stored', self.stats.pages_stored)
        self.logger.log_crawler_stat('failures', self.stats.failures)
        self.logger.log_crawler_stat('blacklisted', self.stats.blacklisted)
        self.logger.log_crawler_stat('links_enqueued', self.stats.links_enqueued)
        self.logger.log_crawler_stat('syncs', self.stats.syncs)
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")
        self.logger.info(f"URLs remaining in queue: {frontier_stats.get('total_queued', 0)}")
        if hasattr(self.fetcher, 'get_stats'):
            self.logger.info(f"Fetcher stats: {self.fetcher.get_stats()}")
        self.logger.info(f"Store stats: {self.store.stats}")

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        return {
            'urls_processed': self.stats.urls_processed,
            'pages_stored': self.stats.pages_stored,
            'failures': self.stats.failures,
            'blacklisted': self.stats.blacklisted,
            'links_enqueued': self.stats.links_enqueued,
            'exports': self.stats.exports,
            'syncs': self.stats.syncs,
            'elapsed_time': self.stats.elapsed_time,
            'pages_per_minute': self.stats.pages_per_minute,
            'is_running': self.is_running
        }

    async def close(self):
        """Close the fetcher, store and Redis connection."""
        if hasattr(self.fetcher, 'close'):
            await self.fetcher.close()
        await self.store.close()
        if self.redis_client is not None:
            await self.redis_client.aclose()
        self.logger.info("Crawler scheduler closed")


async def create_scheduler(config: Config,
                           metrics: Optional[CrawlerMetrics] = None) -> CrawlerScheduler:
    """
    Build a scheduler and its collaborators from configuration.

    Raises:
        ConfigError: missing seed/blacklist file or unreachable Redis
        StorageError: the page store cannot be opened
    """
    crawler_config = config.crawler
    logger = logging.getLogger(__name__)

    seed_file = SeedFile(crawler_config.seed_file)
    seed_urls = seed_file.load()

    if crawler_config.blacklist_file:
        blacklist = BlacklistFilter.load(crawler_config.blacklist_file)
    else:
        blacklist = BlacklistFilter()

    redis_client = None
    if config.frontier.type == 'redis':
        redis_client = redis.Redis(
            host=config.redis.host,
            port=config.redis.port,
            db=config.redis.db,
            password=config.redis.password,
            decode_responses=True
        )
        try:
            await redis_client.ping()
        except RedisError as e:
            await redis_client.aclose()
            raise ConfigError(f"Cannot connect to Redis at {config.redis.host}:{config.redis.port}: {e}")
        logger.info("Redis connection established")

        frontier: URLFrontier = RedisFrontier(
            redis_client,
            key_prefix=config.redis.key_prefix,
            revisit_cooldown=config.frontier.revisit_cooldown
        )
    else:
        frontier = MemoryFrontier()

    store = PageStore(config.database.path)
    try:
        await frontier.initialize()
        await store.initialize()
    except StorageError:
        if redis_client is not None:
            await redis_client.aclose()
        raise

    fetcher = WebFetcher(
        user_agent=crawler_config.user_agent,
        request_timeout=crawler_config.request_timeout
    )
    await fetcher.start()

    exporter = SnapshotExporter(
        store,
        config.export.output_path,
        content_cap=config.export.content_cap,
        include_images=config.export.include_images
    )

    sync = None
    if config.sync.enabled:
        sync = GitSync(config.sync.repo_path, config.sync.paths, config.sync.commit_message)

    return CrawlerScheduler(
        frontier=frontier,
        fetcher=fetcher,
        parser=ContentParser(max_content_length=crawler_config.max_content_length),
        store=store,
        blacklist=blacklist,
        seed_urls=seed_urls,
        exporter=exporter,
        sync=sync,
        seed_file=seed_file if crawler_config.persist_discovered_urls else None,
        politeness_delay=crawler_config.politeness_delay,
        sync_every=crawler_config.sync_every,
        idle_backoff=crawler_config.idle_backoff,
        metrics=metrics,
        redis_client=redis_client
    )
