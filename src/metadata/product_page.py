"""Product page scrape (tier 2): title and author from structured page fields."""

import logging
import re
from typing import Optional

from bs4 import BeautifulSoup

from src.network import RetryPolicy, UrlGuard

from .models import UNKNOWN_AUTHOR, BookMetadata, SourceTier


logger = logging.getLogger("metadata")

PAGE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

TITLE_SELECTORS = ("#productTitle", "#ebooksProductTitle", "h1.product-title")
AUTHOR_SELECTORS = (
    ".author a",
    "#bylineInfo .author a",
    ".contributorNameID",
    'a[data-a-target="authorLink"]',
)

MAX_TITLE_LENGTH = 200
MAX_AUTHOR_LENGTH = 100


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def parse_product_page(html: str) -> Optional[tuple[str, str]]:
    """(title, author) from a product page, or None when no title is present."""
    soup = BeautifulSoup(html, "html.parser")

    title = ""
    for selector in TITLE_SELECTORS:
        tag = soup.select_one(selector)
        if tag and _clean(tag.get_text()):
            title = _clean(tag.get_text())
            break
    if not title:
        meta = soup.find("meta", attrs={"name": "title"})
        title = _clean(meta.get("content", "")) if meta else ""
    if not title:
        return None

    author = ""
    for selector in AUTHOR_SELECTORS:
        tag = soup.select_one(selector)
        if tag and _clean(tag.get_text()):
            author = re.sub(r"^by\s+", "", _clean(tag.get_text()), flags=re.IGNORECASE)
            break
    if not author:
        meta = soup.find("meta", attrs={"name": "author"})
        author = _clean(meta.get("content", "")) if meta else ""

    return _truncate(title, MAX_TITLE_LENGTH), _truncate(author or UNKNOWN_AUTHOR, MAX_AUTHOR_LENGTH)


def scrape_product_page(url: str, guard: UrlGuard, retry_policy: RetryPolicy) -> Optional[BookMetadata]:
    """
    Fetch a product page and scrape its title/author.

    Returns:
        BookMetadata marked as page-scrape tier, or None

    Raises:
        NetworkError: The page could not be fetched after retries
    """
    outcome = retry_policy.run(
        lambda: guard.safe_fetch(url, headers=PAGE_HEADERS), label=f"product page {url}"
    )
    if not outcome.ok:
        raise outcome.error

    parsed = parse_product_page(outcome.value.text)
    if parsed is None:
        logger.info(f"No title found on product page {url}")
        return None

    title, author = parsed
    logger.info(f'Scraped "{title}" by {author} from product page')
    return BookMetadata(title=title, author=author, source_tier=SourceTier.PAGE_SCRAPE)
