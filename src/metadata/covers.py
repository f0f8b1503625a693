"""
Cover image resolution.

The catalog API's cover wins when it has one. Otherwise a handful of
predictable image-CDN URLs derived from the product id are probed with HEAD
requests and the first real image wins. Marketplace CDNs answer unknown ids
with a 1x1 tracking pixel, so tiny bodies do not count as a cover.
"""

import logging
from typing import Optional

from src.extraction import is_isbn10
from src.network import NetworkError, ResponseCache, UrlGuard

from .models import PLACEHOLDER_COVER


logger = logging.getLogger("metadata")

CDN_PATTERNS = (
    "https://images-na.ssl-images-amazon.com/images/P/{pid}.01.L.jpg",
    "https://m.media-amazon.com/images/P/{pid}.01._SCLZZZZZZZ_.jpg",
)
ISBN_PATTERN = "https://covers.openlibrary.org/b/isbn/{pid}-L.jpg?default=false"
MIN_IMAGE_BYTES = 1024


def candidate_cover_urls(product_id: str) -> list[str]:
    urls = [pattern.format(pid=product_id) for pattern in CDN_PATTERNS]
    if is_isbn10(product_id):
        urls.append(ISBN_PATTERN.format(pid=product_id))
    return urls


class CoverResolver:
    def __init__(self, guard: UrlGuard, cache: Optional[ResponseCache] = None):
        self.guard = guard
        self.cache = cache or ResponseCache()

    def image_exists(self, url: str) -> bool:
        """HEAD-probe url; True for a 2xx image response that is not a tracking pixel."""
        return self.cache.get_or_compute(("cover", url), lambda: self._probe(url))

    def _probe(self, url: str) -> bool:
        try:
            response = self.guard.safe_fetch(url, method="HEAD", raise_for_status=False)
        except NetworkError as e:
            logger.debug(f"Cover probe failed for {url}: {e}")
            return False

        if not 200 <= response.status_code < 300:
            return False
        if not response.headers.get("Content-Type", "").lower().startswith("image/"):
            return False
        length = response.headers.get("Content-Length")
        if length is not None:
            try:
                return int(length) >= MIN_IMAGE_BYTES
            except ValueError:
                return True
        return True

    def resolve(self, product_id: Optional[str], api_cover_url: Optional[str] = None) -> str:
        """Cover URL for a product, or the placeholder marker."""
        if api_cover_url:
            return api_cover_url

        if product_id:
            for url in candidate_cover_urls(product_id):
                if self.image_exists(url):
                    logger.info(f"Found cover via CDN probe: {url}")
                    return url

        logger.info(f"No cover found for {product_id or 'unidentified product'}, using placeholder")
        return PLACEHOLDER_COVER
