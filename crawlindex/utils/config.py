"""
Configuration management for the crawler, search API and exporter.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field, fields

from ..errors import ConfigError
from ..search.engine import MAX_LIMIT


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_file: str = "urls.txt"
    blacklist_file: Optional[str] = "blacklist.txt"
    politeness_delay: float = 1.0
    request_timeout: int = 10
    user_agent: str = "Mozilla/5.0 (compatible; CrawlIndexBot/1.0)"
    max_content_length: int = 50000
    sync_every: int = 5
    idle_backoff: float = 60.0
    persist_discovered_urls: bool = True


@dataclass
class FrontierConfig:
    """Configuration for the URL frontier."""
    type: str = "redis"
    revisit_cooldown: float = 86400.0


@dataclass
class RedisConfig:
    """Configuration for Redis."""
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = "crawlindex:frontier"


@dataclass
class DatabaseConfig:
    """Configuration for the page store."""
    path: str = "crawlindex.db"


@dataclass
class SearchConfig:
    """Configuration for the search engine."""
    mode: str = "ranked"
    default_limit: int = 10


@dataclass
class ExportConfig:
    """Configuration for the static snapshot."""
    output_path: str = "frontend/search-data.js"
    content_cap: int = 5000
    include_images: bool = True


@dataclass
class SyncConfig:
    """Configuration for the external git sync."""
    enabled: bool = False
    repo_path: str = "."
    paths: List[str] = field(default_factory=lambda: [
        "frontend/search-data.js", "urls.txt", "blacklist.txt"
    ])
    commit_message: str = "Auto-update search index & discovered URLs [Bot]"


@dataclass
class ApiConfig:
    """Configuration for the REST API."""
    host: str = "0.0.0.0"
    port: int = 7070


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/crawler.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    frontier: FrontierConfig = field(default_factory=FrontierConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


class ConfigManager:
    """Loads and validates configuration."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self.logger = logging.getLogger(__name__)

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as file:
                config_data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}")

        if not isinstance(config_data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {self.config_path}")

        config = build_config(config_data)
        validate_config(config)
        self.logger.info("Configuration validation passed")
        return config


def _build_section(section_cls, data: Optional[Dict[str, Any]], name: str):
    """Create a config section, rejecting unknown keys."""
    if data is None:
        return section_cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")

    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in section '{name}': {', '.join(sorted(unknown))}")

    return section_cls(**data)


def build_config(config_data: Dict[str, Any]) -> Config:
    """Build a Config from a parsed mapping. Missing sections use defaults."""
    sections = {f.name: f.type for f in fields(Config)}
    unknown = set(config_data) - set(sections)
    if unknown:
        raise ConfigError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

    return Config(
        crawler=_build_section(CrawlerConfig, config_data.get('crawler'), 'crawler'),
        frontier=_build_section(FrontierConfig, config_data.get('frontier'), 'frontier'),
        redis=_build_section(RedisConfig, config_data.get('redis'), 'redis'),
        database=_build_section(DatabaseConfig, config_data.get('database'), 'database'),
        search=_build_section(SearchConfig, config_data.get('search'), 'search'),
        export=_build_section(ExportConfig, config_data.get('export'), 'export'),
        sync=_build_section(SyncConfig, config_data.get('sync'), 'sync'),
        api=_build_section(ApiConfig, config_data.get('api'), 'api'),
        logging=_build_section(LoggingConfig, config_data.get('logging'), 'logging'),
        monitoring=_build_section(MonitoringConfig, config_data.get('monitoring'), 'monitoring'),
    )


def validate_config(config: Config):
    """Validate configuration values."""
    if not config.crawler.seed_file:
        raise ConfigError("crawler.seed_file must be set")

    if config.crawler.politeness_delay < 0:
        raise ConfigError("politeness_delay must be non-negative")

    if config.crawler.request_timeout <= 0:
        raise ConfigError("request_timeout must be positive")

    if config.crawler.max_content_length < 1:
        raise ConfigError("max_content_length must be at least 1")

    if config.crawler.sync_every < 1:
        raise ConfigError("sync_every must be at least 1")

    if config.crawler.idle_backoff < 0:
        raise ConfigError("idle_backoff must be non-negative")

    if config.frontier.type not in ['redis', 'memory']:
        raise ConfigError("Frontier type must be 'redis' or 'memory'")

    if config.frontier.revisit_cooldown < 0:
        raise ConfigError("revisit_cooldown must be non-negative")

    if config.search.mode not in ['ranked', 'substring']:
        raise ConfigError("Search mode must be 'ranked' or 'substring'")

    if not 1 <= config.search.default_limit <= MAX_LIMIT:
        raise ConfigError(f"search.default_limit must be between 1 and {MAX_LIMIT}")

    if config.export.content_cap < 1:
        raise ConfigError("export.content_cap must be at least 1")


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    return ConfigManager(config_path).load_config()
