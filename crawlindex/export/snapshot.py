"""
Static snapshot of the corpus for the client-side search page.

The output is a JavaScript file that assigns the pages to window.searchData
and the images to window.imageData.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List

from ..crawler.parser import cap_text
from ..storage.database import PageStore

PAGES_GLOBAL = "window.searchData"
IMAGES_GLOBAL = "window.imageData"
DEFAULT_CONTENT_CAP = 5000


class SnapshotExporter:
    """Writes the snapshot file, replacing the previous one atomically."""

    def __init__(self, store: PageStore, output_path: str,
                 content_cap: int = DEFAULT_CONTENT_CAP, include_images: bool = True):
        self.store = store
        self.output_path = Path(output_path)
        self.content_cap = content_cap
        self.include_images = include_images
        self.logger = logging.getLogger(__name__)

    async def build_payload(self) -> Dict[str, List[Dict[str, Any]]]:
        """Pages (content capped) and images, newest first."""
        pages = [
            {
                'id': page.id,
                'url': page.url,
                'title': page.title,
                'content': cap_text(page.content, self.content_cap),
                'scrapedAt': page.scraped_at,
            }
            for page in await self.store.list_pages()
        ]

        images = []
        if self.include_images:
            images = [
                {
                    'src': image.src,
                    'alt': image.alt,
                    'pageTitle': image.page_title,
                    'pageUrl': image.page_url,
                }
                for image in await self.store.list_images()
            ]

        return {'pages': pages, 'images': images}

    def render(self, payload: Dict[str, List[Dict[str, Any]]]) -> str:
        return (
            f"{PAGES_GLOBAL} = {json.dumps(payload['pages'], ensure_ascii=False, indent=2)};\n\n"
            f"{IMAGES_GLOBAL} = {json.dumps(payload['images'], ensure_ascii=False, indent=2)};\n"
        )

    async def export(self) -> int:
        """
        Write the snapshot.

        Returns:
            Number of pages exported

        Raises:
            StorageError: if the store cannot be read
            OSError: if the file cannot be written
        """
        payload = await self.build_payload()
        text = self.render(payload)

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            dir=self.output_path.parent, prefix=f".{self.output_path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(text)
            # mkstemp creates 0600 files; the snapshot is served to browsers
            os.chmod(temp_path, 0o644)
            os.replace(temp_path, self.output_path)
        except BaseException:
            Path(temp_path).unlink(missing_ok=True)
            raise

        self.logger.debug(f"Exported {len(payload['pages'])} pages and "
                          f"{len(payload['images'])} images to {self.output_path}")
        return len(payload['pages'])
