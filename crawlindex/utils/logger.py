"""
Logging setup for the crawler and the search API.
"""

import logging
import logging.handlers
import json
import sys
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime, timezone

from .config import LoggingConfig


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, ensure_ascii=False)


class CrawlerLogAdapter(logging.LoggerAdapter):
    """Logger adapter that attaches crawl context to every record."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Merge adapter context into the record's extra_fields."""
        extra = kwargs.setdefault('extra', {})
        extra_fields = dict(self.extra)
        extra_fields.update(extra.get('extra_fields', {}))
        extra['extra_fields'] = extra_fields
        return msg, kwargs

    def log_url_event(self, level: int, url: str, event: str, message: str, **kwargs):
        """Log a per-URL pipeline event (skip, failure, stored page)."""
        kwargs['extra'] = {'extra_fields': {'url': url, 'event_type': event}}
        self.log(level, message, **kwargs)

    def log_crawler_stat(self, stat_name: str, value: Any):
        """Log a crawler statistic."""
        extra = {'extra_fields': {'stat_name': stat_name, 'stat_value': value,
                                  'event_type': 'crawler_stat'}}
        self.info(f"Stat: {stat_name} = {value}", extra=extra)


class PerformanceFilter(logging.Filter):
    """Drop per-request access lines from the API server."""

    def __init__(self, suppress_modules: Optional[list] = None):
        super().__init__()
        self.suppress_modules = suppress_modules or ['uvicorn.access']

    def filter(self, record: logging.LogRecord) -> bool:
        return not any(record.name.startswith(module) for module in self.suppress_modules)


def _rotating_handler(path: Path, level: int, max_mb: int, backups: int,
                      formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_mb * 1024 * 1024, backupCount=backups, encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(config: LoggingConfig) -> logging.Logger:
    """
    Configure the root logger for the crawler or the API server.

    Console gets INFO and up, the log file gets everything, and errors.log
    next to it keeps ERROR records only. Both files rotate.
    """
    log_file = Path(config.file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    root_logger.handlers.clear()

    formatter = JSONFormatter() if config.json else logging.Formatter(config.format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(PerformanceFilter())
    root_logger.addHandler(console_handler)

    file_handler = _rotating_handler(log_file, logging.DEBUG, 50, 5, formatter)
    file_handler.addFilter(PerformanceFilter())
    root_logger.addHandler(file_handler)

    root_logger.addHandler(
        _rotating_handler(log_file.parent / 'errors.log', logging.ERROR, 10, 3, formatter)
    )

    # Libraries the crawler and API run on
    for logger_name, level in (('aiohttp', logging.WARNING),
                               ('redis', logging.WARNING),
                               ('asyncio', logging.WARNING),
                               ('uvicorn', logging.INFO)):
        logging.getLogger(logger_name).setLevel(level)

    root_logger.info(f"Logging initialized: level={config.level}, file={log_file}")
    return root_logger


def get_crawler_logger(name: str, **extra_context) -> CrawlerLogAdapter:
    """
    Get a crawler logger with context fields added to every record.

    Args:
        name: Logger name
        **extra_context: Additional context fields

    Returns:
        CrawlerLogAdapter instance
    """
    return CrawlerLogAdapter(logging.getLogger(name), extra_context)


def log_system_info():
    """Log system and environment information."""
    import platform
    import psutil

    logger = logging.getLogger(__name__)

    logger.info("=== SYSTEM INFORMATION ===")
    logger.info(f"Platform: {platform.platform()}")
    logger.info(f"Python version: {sys.version.split()[0]}")
    logger.info(f"CPU cores: {psutil.cpu_count()}")
    logger.info(f"Memory: {psutil.virtual_memory().total / 1024**3:.1f} GB")
