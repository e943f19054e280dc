#!/usr/bin/env python3
"""
Main entry point: crawl, serve the search API, or export a snapshot.
"""

import asyncio
import argparse
import logging
import signal
import sys
from typing import Optional

from crawlindex import __version__
from crawlindex.errors import CrawlIndexError
from crawlindex.utils.config import load_config, Config
from crawlindex.utils.logger import setup_logging, log_system_info
from crawlindex.utils.monitoring import CrawlerMetrics
from crawlindex.crawler.scheduler import CrawlerScheduler, create_scheduler


class CrawlerApp:
    """Runs the crawl loop until the frontier is exhausted or a signal arrives."""

    def __init__(self, config: Config):
        self.config = config
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)

    def setup_signal_handlers(self):
        """Ask the scheduler to stop after the current URL on SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            if self.scheduler:
                self.scheduler.request_stop()

        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, signal_handler, signum)

    async def run(self, max_pages: Optional[int] = None,
                  max_duration: Optional[int] = None, dry_run: bool = False) -> int:
        config = self.config
        self.logger.info("=== CRAWLER STARTING ===")
        self.logger.info(f"Seed file: {config.crawler.seed_file}")
        self.logger.info(f"Blacklist file: {config.crawler.blacklist_file}")
        self.logger.info(f"Frontier: {config.frontier.type}")
        self.logger.info(f"Politeness delay: {config.crawler.politeness_delay}s")
        self.logger.info(f"Database: {config.database.path}")

        metrics = None
        if config.monitoring.metrics_enabled:
            metrics = CrawlerMetrics()
            metrics.start_server(config.monitoring.prometheus_port)

        try:
            self.scheduler = await create_scheduler(config, metrics)
        except CrawlIndexError as e:
            self.logger.error(f"Startup failed: {e}")
            return 1

        try:
            if dry_run:
                self.logger.info("DRY RUN MODE: configuration and connections OK, not crawling")
                return 0

            self.setup_signal_handlers()
            await self.scheduler.start_crawling(max_pages, max_duration)

        except CrawlIndexError as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            await self.scheduler.close()
            self.logger.info("=== CRAWLER FINISHED ===")

        return 0


async def run_export(config: Config, output: Optional[str]) -> int:
    """One-off snapshot export from the configured database."""
    from crawlindex.export.snapshot import SnapshotExporter
    from crawlindex.storage.database import PageStore

    logger = logging.getLogger(__name__)
    store = PageStore(config.database.path)
    try:
        await store.initialize()
        exporter = SnapshotExporter(
            store,
            output or config.export.output_path,
            content_cap=config.export.content_cap,
            include_images=config.export.include_images
        )
        count = await exporter.export()
        logger.info(f"Exported {count} pages to {exporter.output_path}")
        return 0
    except (CrawlIndexError, OSError) as e:
        logger.error(f"Export failed: {e}")
        return 1
    finally:
        await store.close()


def run_server(config: Config, host: Optional[str], port: Optional[int]) -> int:
    """Serve the search API with uvicorn."""
    import uvicorn
    from crawlindex.api import create_app

    uvicorn.run(
        create_app(config),
        host=host or config.api.host,
        port=port or config.api.port,
        log_config=None
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CrawlIndex: web crawler and keyword search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py crawl                          # Crawl with config.yaml
  python main.py crawl --config my_config.yaml  # Crawl with a custom config
  python main.py crawl --max-pages 1000         # Stop after 1000 URLs
  python main.py crawl --dry-run                # Test configuration only
  python main.py serve --port 7070              # Run the search API
  python main.py export                         # Rewrite the snapshot file
        """
    )
    parser.add_argument('--version', action='version', version=f'CrawlIndex {__version__}')

    subparsers = parser.add_subparsers(dest='command', required=True)

    crawl = subparsers.add_parser('crawl', help='Run the crawler')
    crawl.add_argument('--max-pages', type=int, help='Maximum number of URLs to process')
    crawl.add_argument('--max-duration', type=int, help='Maximum crawl duration in seconds')
    crawl.add_argument('--dry-run', action='store_true',
                       help='Test configuration and connections without crawling')

    serve = subparsers.add_parser('serve', help='Run the search API')
    serve.add_argument('--host', help='Bind address (default from config)')
    serve.add_argument('--port', type=int, help='Port (default from config)')

    export = subparsers.add_parser('export', help='Write the static search snapshot')
    export.add_argument('--output', help='Output file (default from config)')

    for subparser in (crawl, serve, export):
        subparser.add_argument(
            '--config',
            default='config.yaml',
            help='Path to configuration file (default: config.yaml)'
        )

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except CrawlIndexError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(config.logging)

    if args.command == 'serve':
        return run_server(config, args.host, args.port)

    if args.command == 'export':
        return asyncio.run(run_export(config, args.output))

    log_system_info()
    app = CrawlerApp(config)
    try:
        return asyncio.run(app.run(
            max_pages=args.max_pages,
            max_duration=args.max_duration,
            dry_run=args.dry_run
        ))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
