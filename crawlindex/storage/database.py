"""
Page store: SQLite persistence for crawled pages and their images.

Pages are keyed by URL and written with insert-or-replace semantics. When
the SQLite build has FTS5, a full-text index over title and content is kept
in sync with the pages table by triggers.
"""

import asyncio
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..crawler.parser import ImageRef
from ..errors import StorageError


PAGES_DDL = """
CREATE TABLE IF NOT EXISTS pages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT UNIQUE NOT NULL,
    title TEXT,
    content TEXT,
    scraped_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_pages_scraped_at ON pages(scraped_at);

CREATE TABLE IF NOT EXISTS images (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    page_url TEXT NOT NULL REFERENCES pages(url) ON DELETE CASCADE,
    src TEXT NOT NULL,
    alt TEXT
);
CREATE INDEX IF NOT EXISTS idx_images_page_url ON images(page_url);
"""

FTS_DDL = """
CREATE VIRTUAL TABLE IF NOT EXISTS pages_fts USING fts5(
    title,
    content,
    content='pages',
    content_rowid='id',
    tokenize='unicode61'
);
"""

FTS_TRIGGERS_DDL = """
CREATE TRIGGER IF NOT EXISTS pages_ai AFTER INSERT ON pages BEGIN
    INSERT INTO pages_fts(rowid, title, content) VALUES (new.id, new.title, new.content);
END;
CREATE TRIGGER IF NOT EXISTS pages_ad AFTER DELETE ON pages BEGIN
    INSERT INTO pages_fts(pages_fts, rowid, title, content)
    VALUES ('delete', old.id, old.title, old.content);
END;
CREATE TRIGGER IF NOT EXISTS pages_au AFTER UPDATE ON pages BEGIN
    INSERT INTO pages_fts(pages_fts, rowid, title, content)
    VALUES ('delete', old.id, old.title, old.content);
    INSERT INTO pages_fts(rowid, title, content) VALUES (new.id, new.title, new.content);
END;
"""

UPSERT_PAGE_SQL = """
INSERT INTO pages (url, title, content, scraped_at)
VALUES (?, ?, ?, ?)
ON CONFLICT (url) DO UPDATE
SET title = excluded.title,
    content = excluded.content,
    scraped_at = excluded.scraped_at
"""


@dataclass
class Page:
    """A stored page."""
    id: int
    url: str
    title: Optional[str]
    content: Optional[str]
    scraped_at: str


@dataclass
class ImageRecord:
    """A stored image joined to its owning page."""
    src: str
    alt: Optional[str]
    page_title: Optional[str]
    page_url: str


@dataclass
class StoreStats:
    """Corpus size and freshness."""
    total_pages: int
    last_scraped: Optional[str]


def utc_now() -> str:
    """Timestamp format used for scraped_at; sorts chronologically as text."""
    return datetime.now(timezone.utc).isoformat(timespec='microseconds')


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


class PageStore:
    """
    Persistence gateway for pages and images.

    Write methods log failures and return False so the crawl loop can move on;
    read methods raise StorageError. Reads execute in a worker thread so a
    slow query does not stall the API's event loop.
    """

    def __init__(self, path: str):
        self.path = path
        self.connection: Optional[sqlite3.Connection] = None
        self.fts_available = False
        # Reads run in worker threads; one statement on the connection at a time
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)
        self.stats = {
            'pages_upserted': 0,
            'images_stored': 0,
            'storage_errors': 0
        }

    async def initialize(self):
        """Open the database and create the schema."""
        try:
            if self.path != ':memory:':
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)

            self.connection = sqlite3.connect(self.path, check_same_thread=False)
            self.connection.row_factory = sqlite3.Row
            self.connection.create_function('unicode_lower', 1, _unicode_lower, deterministic=True)
            self.connection.execute("PRAGMA foreign_keys = ON")
            if self.path != ':memory:':
                self.connection.execute("PRAGMA journal_mode = WAL")

            self.connection.executescript(PAGES_DDL)
            self._create_fts_index()
            self.connection.commit()

        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Failed to initialize page store at {self.path}: {e}")

        self.logger.info(f"Page store initialized at {self.path} "
                         f"(full-text search {'enabled' if self.fts_available else 'unavailable'})")

    def _create_fts_index(self):
        existed = self.connection.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'pages_fts'"
        ).fetchone() is not None

        try:
            self.connection.executescript(FTS_DDL)
        except sqlite3.OperationalError as e:
            self.logger.warning(f"FTS5 not available, ranked search disabled: {e}")
            self.fts_available = False
            return

        self.connection.executescript(FTS_TRIGGERS_DDL)
        if not existed:
            # Index pages written before the index existed
            self.connection.execute("INSERT INTO pages_fts(pages_fts) VALUES ('rebuild')")
        self.fts_available = True

    def _require_connection(self) -> sqlite3.Connection:
        if self.connection is None:
            raise StorageError("Page store not initialized")
        return self.connection

    async def upsert_page(self, url: str, title: Optional[str], content: Optional[str]) -> bool:
        """Insert the page or replace title, content and scraped_at of the existing row."""
        try:
            connection = self._require_connection()
            with self._lock, connection:
                connection.execute(UPSERT_PAGE_SQL, (url, title, content, utc_now()))
            self.stats['pages_upserted'] += 1
            self.logger.debug(f"Stored page: {url}")
            return True

        except (sqlite3.Error, StorageError) as e:
            self.stats['storage_errors'] += 1
            self.logger.error(f"Error storing page {url}: {e}")
            return False

    async def append_images(self, page_url: str, images: Iterable[ImageRef]) -> bool:
        """
        Add image rows for a page.

        Rows are appended, not merged: scraping the same page again adds the
        same images again.
        """
        rows = [(page_url, image.src, image.alt) for image in images]
        if not rows:
            return True

        try:
            connection = self._require_connection()
            with self._lock, connection:
                connection.executemany(
                    "INSERT INTO images (page_url, src, alt) VALUES (?, ?, ?)", rows
                )
            self.stats['images_stored'] += len(rows)
            return True

        except (sqlite3.Error, StorageError) as e:
            self.stats['storage_errors'] += 1
            self.logger.error(f"Error storing {len(rows)} images for {page_url}: {e}")
            return False

    async def get_page(self, url: str) -> Optional[Page]:
        row = await self._fetchone(
            "SELECT id, url, title, content, scraped_at FROM pages WHERE url = ?", (url,)
        )
        return Page(**dict(row)) if row else None

    async def count_pages(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) AS total FROM pages")
        return row["total"]

    async def count_images(self, page_url: Optional[str] = None) -> int:
        if page_url is None:
            row = await self._fetchone("SELECT COUNT(*) AS total FROM images")
        else:
            row = await self._fetchone("SELECT COUNT(*) AS total FROM images WHERE page_url = ?", (page_url,))
        return row['total']

    async def get_stats(self) -> StoreStats:
        row = await self._fetchone(
            "SELECT COUNT(*) AS total_pages, MAX(scraped_at) AS last_scraped FROM pages"
        )
        return StoreStats(total_pages=row['total_pages'], last_scraped=row['last_scraped'])

    async def list_pages(self) -> List[Page]:
        """All pages, most recently scraped first."""
        rows = await self._fetchall(
            "SELECT id, url, title, content, scraped_at FROM pages ORDER BY scraped_at DESC, id DESC"
        )
        return [Page(**dict(row)) for row in rows]

    async def list_images(self) -> List[ImageRecord]:
        """All images with their page's title and URL, newest pages first."""
        rows = await self._fetchall("""
            SELECT i.src AS src, i.alt AS alt, p.title AS page_title, p.url AS page_url
            FROM images i
            JOIN pages p ON i.page_url = p.url
            ORDER BY p.scraped_at DESC, i.id
        """)
        return [ImageRecord(**dict(row)) for row in rows]

    async def search_fulltext(self, match_expression: str, limit: int,
                              title_weight: float = 10.0,
                              snippet_tokens: int = 24) -> List[Dict[str, Any]]:
        """
        Ranked full-text query.

        Score is the negated bm25 value, so higher is better; title hits
        count title_weight times as much as content hits.
        """
        if not self.fts_available:
            raise StorageError("Full-text search is not available in this SQLite build")

        rows = await self._fetchall("""
            SELECT p.url AS url,
                   p.title AS title,
                   -bm25(pages_fts, ?, 1.0) AS score,
                   snippet(pages_fts, 1, '', '', '...', ?) AS snippet
            FROM pages_fts
            JOIN pages p ON p.id = pages_fts.rowid
            WHERE pages_fts MATCH ?
            ORDER BY score DESC, p.scraped_at DESC
            LIMIT ?
        """, (title_weight, snippet_tokens, match_expression, limit))
        return [dict(row) for row in rows]

    async def search_substring(self, needle: str, limit: int) -> List[Dict[str, Any]]:
        """Case-insensitive containment match on title or content."""
        lowered = needle.lower()
        rows = await self._fetchall("""
            SELECT url, title, content
            FROM pages
            WHERE instr(unicode_lower(COALESCE(title, '')), ?) > 0
               OR instr(unicode_lower(COALESCE(content, '')), ?) > 0
            LIMIT ?
        """, (lowered, lowered, limit))
        return [dict(row) for row in rows]

    async def _fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        return await asyncio.to_thread(self._query, sql, params, False)

    async def _fetchall(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        return await asyncio.to_thread(self._query, sql, params, True)

    def _query(self, sql: str, params: tuple, fetch_all: bool):
        """Run a read in a worker thread so the event loop keeps serving."""
        connection = self._require_connection()
        try:
            with self._lock:
                cursor = connection.execute(sql, params)
                return cursor.fetchall() if fetch_all else cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Query failed: {e}")

    async def close(self):
        """Close the database connection."""
        if self.connection is not None:
            self.connection.close()
            self.connection = None
            self.logger.info("Page store closed")
