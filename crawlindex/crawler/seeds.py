"""
Seed URL file: read at startup, optionally extended with discovered URLs.
"""

import logging
from pathlib import Path
from typing import List

from ..errors import ConfigError


class SeedFile:
    """Newline-delimited URL list. Blank lines and '#' comments are ignored."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.logger = logging.getLogger(__name__)

    def load(self) -> List[str]:
        """
        Read seed URLs in file order, without duplicates.

        Raises:
            ConfigError: if the file is missing, unreadable or has no URLs
        """
        if not self.path.exists():
            raise ConfigError(f"Seed file not found: {self.path}")

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                lines = [line.strip() for line in f]
        except OSError as e:
            raise ConfigError(f"Could not read seed file {self.path}: {e}")

        urls = list(dict.fromkeys(
            line for line in lines if line and not line.startswith('#')
        ))
        if not urls:
            raise ConfigError(f"No URLs found in {self.path}")

        self.logger.info(f"Loaded {len(urls)} seed URLs from {self.path}")
        return urls

    def append(self, url: str) -> bool:
        """Persist a newly discovered URL. Failures are logged, not raised."""
        try:
            with open(self.path, 'a', encoding='utf-8') as f:
                f.write(url + "\n")
            return True
        except OSError as e:
            self.logger.error(f"Error saving URL to {self.path}: {e}")
            return False
