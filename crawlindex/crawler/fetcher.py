"""
Web page fetcher built on aiohttp.
"""

import asyncio
import aiohttp
import logging
import time
from typing import Optional, Dict
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError

from ..errors import FetchError

MAX_DOCUMENT_BYTES = 10 * 1024 * 1024


@dataclass
class FetchResult:
    """A successfully fetched HTML document."""
    url: str
    status_code: int
    content: str
    content_type: Optional[str] = None
    encoding: Optional[str] = None
    fetch_time: float = 0.0


class WebFetcher:
    """
    Fetches HTML pages with a fixed timeout and an identifying user agent.

    Every failure (network error, timeout, non-2xx status, non-HTML body,
    oversized body) is raised as FetchError. There are no retries.
    """

    def __init__(self, user_agent: str, request_timeout: int = 10,
                 max_document_bytes: int = MAX_DOCUMENT_BYTES):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_document_bytes = max_document_bytes
        self.logger = logging.getLogger(__name__)

        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {'User-Agent': self.user_agent}

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=4,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult with the decoded HTML

        Raises:
            FetchError: on any network, protocol or content failure
        """
        if self.session is None:
            await self.start()

        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url) as response:
                if response.status < 200 or response.status >= 300:
                    raise FetchError(url, f"HTTP status {response.status}", response.status)

                content_type = response.headers.get('content-type', '').lower()
                if not self._is_html_content(content_type):
                    raise FetchError(url, f"Non-HTML content type: {content_type or 'unknown'}",
                                     response.status)

                content = await self._read_content_safely(url, response)
                fetch_time = time.time() - start_time

                self.stats['successful_requests'] += 1
                self.stats['total_bytes_downloaded'] += len(content)
                self.logger.debug(f"Fetched {url}: {response.status} ({len(content)} chars) "
                                  f"in {fetch_time:.2f}s")

                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content=content,
                    content_type=content_type,
                    encoding=response.charset,
                    fetch_time=fetch_time
                )

        except FetchError:
            self.stats['failed_requests'] += 1
            raise
        except asyncio.TimeoutError:
            self.stats['failed_requests'] += 1
            raise FetchError(url, "Request timeout")
        except ClientError as e:
            self.stats['failed_requests'] += 1
            raise FetchError(url, f"Client error: {e}")
        except (ValueError, UnicodeError) as e:
            # Malformed URLs and undecodable bodies
            self.stats['failed_requests'] += 1
            raise FetchError(url, f"Invalid request or response: {e}")

    def _is_html_content(self, content_type: str) -> bool:
        return 'text/html' in content_type or 'application/xhtml+xml' in content_type

    async def _read_content_safely(self, url: str, response) -> str:
        """
        Read the body with a size limit and decode it.

        Raises:
            FetchError: if the body exceeds the size limit
        """
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_document_bytes:
            raise FetchError(url, f"Content too large ({content_length} bytes)", response.status)

        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_document_bytes:
                raise FetchError(url, "Content exceeded size limit during reading", response.status)

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            return content_bytes.decode('utf-8', errors='replace')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
