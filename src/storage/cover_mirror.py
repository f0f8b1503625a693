"""
Mirror resolved cover images into our own storage.

Covers are stored as covers/{book_id}.jpg. An existing object is never
uploaded again, so re-running the pipeline is idempotent. Any failure keeps
the external cover URL; mirroring never drops a book.
"""

import logging

from botocore.exceptions import BotoCoreError, ClientError

from src.metadata import PLACEHOLDER_COVER
from src.network import NetworkError, UrlGuard

from .base import BaseStorage


logger = logging.getLogger("storage")

COVERS_WORKSPACE = "covers/"
MIN_IMAGE_BYTES = 1024


class CoverMirror:
    def __init__(self, storage: BaseStorage, guard: UrlGuard, workspace: str = COVERS_WORKSPACE):
        self.storage = storage
        self.guard = guard
        self.workspace = workspace

    def mirror(self, book_id: str, cover_url: str) -> str:
        """Stored cover URL for book_id, or cover_url unchanged when mirroring fails."""
        if not cover_url or cover_url == PLACEHOLDER_COVER or cover_url.startswith("/"):
            return cover_url

        filename = f"{book_id}.jpg"
        try:
            if self.storage.file_exist(self.workspace, filename):
                logger.info(f"Cover already stored: {filename}")
                return self.storage.public_url(self.workspace, filename)

            logger.info(f"Downloading cover: {cover_url}")
            response = self.guard.safe_fetch(cover_url)
            content_type = response.headers.get("Content-Type", "image/jpeg").split(";")[0]
            if not content_type.startswith("image/") or len(response.content) < MIN_IMAGE_BYTES:
                logger.warning(f"Not a usable image at {cover_url} ({content_type}, {len(response.content)} bytes)")
                return cover_url

            stored = self.storage.save_file(self.workspace, filename, response.content, content_type)
            logger.info(f"Uploaded cover: {stored}")
            return stored
        except (NetworkError, RuntimeError, BotoCoreError, ClientError) as e:
            logger.warning(f"Cover mirroring failed for {book_id}, keeping {cover_url}: {e}")
            return cover_url
