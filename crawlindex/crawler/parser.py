"""
HTML content extraction: title, body text, outbound links and images.
"""

import re
import logging
from typing import List, Optional
from urllib.parse import urljoin, urlparse
from dataclasses import dataclass, field
from bs4 import BeautifulSoup, Comment

from ..errors import FetchError

MAX_CONTENT_LENGTH = 50000
MAX_TITLE_LENGTH = 500
MAX_ALT_LENGTH = 255

# Markup that never carries page content
NON_CONTENT_TAGS = ["script", "style", "noscript", "nav", "footer", "header"]


@dataclass(frozen=True)
class ImageRef:
    """An image found on a page."""
    src: str
    alt: str = ""


@dataclass
class ParsedContent:
    """Container for parsed web page content."""
    url: str
    title: Optional[str] = None
    content: str = ""
    links: List[str] = field(default_factory=list)
    images: List[ImageRef] = field(default_factory=list)

    @property
    def word_count(self) -> int:
        return len(self.content.split())


def cap_text(text: Optional[str], limit: int) -> Optional[str]:
    """Truncate text to at most limit characters."""
    if text is None or len(text) <= limit:
        return text
    return text[:limit]


class ContentParser:
    """
    Parses HTML into title, normalized body text, absolute links and images.

    Links and images keep the order in which they first appear and are
    deduplicated by their absolute URL string. URLs are not canonicalized
    beyond resolving them against the page URL.
    """

    def __init__(self, max_content_length: int = MAX_CONTENT_LENGTH):
        self.max_content_length = max_content_length
        self.logger = logging.getLogger(__name__)
        self.whitespace_pattern = re.compile(r'\s+')

    def parse(self, url: str, html_content: str) -> ParsedContent:
        """
        Parse HTML content.

        Args:
            url: The URL of the page, used to resolve relative references
            html_content: Raw HTML

        Returns:
            ParsedContent with capped title and content

        Raises:
            FetchError: if the document cannot be parsed
        """
        try:
            soup = BeautifulSoup(html_content, 'lxml')
        except Exception as e:
            raise FetchError(url, f"Parse error: {e}")

        parsed_content = ParsedContent(url=url)

        # Title and links come from the full document, before stripping
        self._extract_title(soup, parsed_content)
        self._extract_links(soup, parsed_content, url)
        self._extract_images(soup, parsed_content, url)
        self._extract_main_content(soup, parsed_content)

        self.logger.debug(f"Parsed content from {url}: {parsed_content.word_count} words, "
                          f"{len(parsed_content.links)} links, {len(parsed_content.images)} images")

        return parsed_content

    def _extract_title(self, soup: BeautifulSoup, parsed_content: ParsedContent):
        title_tag = soup.find('title')
        if title_tag:
            title = self._clean_text(title_tag.get_text())
            parsed_content.title = cap_text(title, MAX_TITLE_LENGTH) or None

    def _extract_main_content(self, soup: BeautifulSoup, parsed_content: ParsedContent):
        """Extract body text with non-content markup removed."""
        for unwanted in soup(NON_CONTENT_TAGS):
            unwanted.decompose()

        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        content_element = soup.find('body') or soup
        text_content = content_element.get_text(separator=' ', strip=True)
        parsed_content.content = cap_text(self._clean_text(text_content), self.max_content_length)

    def _extract_links(self, soup: BeautifulSoup, parsed_content: ParsedContent, base_url: str):
        links = {}

        for link in soup.find_all('a', href=True):
            href = link['href'].strip()
            if not href or href.startswith('#'):
                continue

            absolute_url = urljoin(base_url, href)
            if self._is_valid_url(absolute_url):
                links.setdefault(absolute_url, None)

        parsed_content.links = list(links)

    def _extract_images(self, soup: BeautifulSoup, parsed_content: ParsedContent, base_url: str):
        images = {}

        for img in soup.find_all('img', src=True):
            src = img['src'].strip()
            if not src:
                continue

            absolute_url = urljoin(base_url, src)
            if not self._is_valid_url(absolute_url) or absolute_url in images:
                continue

            alt = self._clean_text(img.get('alt', ''))
            images[absolute_url] = ImageRef(src=absolute_url, alt=cap_text(alt, MAX_ALT_LENGTH))

        parsed_content.images = list(images.values())

    def _is_valid_url(self, url: str) -> bool:
        """Only absolute http(s) URLs are followed or stored."""
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return parsed.scheme in ('http', 'https') and bool(parsed.netloc)

    def _clean_text(self, text: str) -> str:
        """Collapse runs of whitespace."""
        if not text:
            return ""
        return self.whitespace_pattern.sub(' ', text.strip())
