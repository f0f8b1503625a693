"""
Open Library search client (tier 1 of metadata resolution).

Lookup order for a candidate link:
    1. search.json?q=<product id>            first doc
    2. search.json?title=<slug title>        exact (case-insensitive) title match only
    3. search.json?q=<slug title>            first doc

Responses are cached per query so the same book linked from several episodes
in one run is only looked up once.
"""

import logging
from typing import Any, Optional
from urllib.parse import urlencode

from src.network import NetworkError, ResponseCache, RetryPolicy, UrlGuard

from .models import UNKNOWN_AUTHOR, UNKNOWN_TITLE, BookMetadata, SourceTier


logger = logging.getLogger("metadata")

OPENLIBRARY_URL = "https://openlibrary.org"
COVER_URL_TEMPLATE = "https://covers.openlibrary.org/b/id/{cover_id}-L.jpg"
SEARCH_FIELDS = "title,author_name,cover_i,first_publish_year,isbn,key,subject"


def doc_to_metadata(doc: dict[str, Any]) -> BookMetadata:
    authors = doc.get("author_name") or []
    cover_id = doc.get("cover_i")
    isbns = doc.get("isbn") or []
    key = doc.get("key") or ""
    return BookMetadata(
        title=doc.get("title") or UNKNOWN_TITLE,
        author=authors[0] if authors else UNKNOWN_AUTHOR,
        cover_url=COVER_URL_TEMPLATE.format(cover_id=cover_id) if cover_id else None,
        subjects=tuple(dict.fromkeys(doc.get("subject") or [])),
        source_tier=SourceTier.PRIMARY,
        isbn=isbns[0] if isbns else None,
        first_publish_year=doc.get("first_publish_year"),
        work_key=key.replace("/works/", "") or None,
    )


class OpenLibraryClient:
    def __init__(
        self,
        guard: UrlGuard,
        retry_policy: RetryPolicy,
        cache: Optional[ResponseCache] = None,
        base_url: str = OPENLIBRARY_URL,
    ):
        self.guard = guard
        self.retry_policy = retry_policy
        self.cache = cache or ResponseCache()
        self.base_url = base_url.rstrip("/")

    def search(self, **params: str) -> list[dict[str, Any]]:
        """
        Run one search.json query and return its docs.

        Raises:
            NetworkError: The query failed after retries
        """
        url = f"{self.base_url}/search.json?{urlencode({**params, 'fields': SEARCH_FIELDS})}"
        return self.cache.get_or_compute(url, lambda: self._fetch_docs(url))

    def _fetch_docs(self, url: str) -> list[dict[str, Any]]:
        outcome = self.retry_policy.run(
            lambda: self.guard.safe_fetch(url, headers={"Accept": "application/json"}),
            label=f"openlibrary {url}",
        )
        if not outcome.ok:
            raise outcome.error
        try:
            data = outcome.value.json()
        except ValueError as e:
            raise NetworkError(f"Invalid JSON from {url}: {e}", url) from e
        docs = data.get("docs") if isinstance(data, dict) else None
        return docs if isinstance(docs, list) else []

    def lookup(self, product_id: Optional[str], title_hint: Optional[str]) -> Optional[BookMetadata]:
        """Best catalog match for a product id and/or slug title, or None."""
        if product_id:
            docs = self.search(q=product_id)
            if docs:
                return self._matched(docs[0], f"product id {product_id}")

        if title_hint:
            docs = self.search(title=title_hint)
            exact = next(
                (d for d in docs if str(d.get("title", "")).lower() == title_hint.lower()),
                None,
            )
            if exact:
                return self._matched(exact, f'exact title "{title_hint}"')

            docs = self.search(q=title_hint)
            if docs:
                return self._matched(docs[0], f'search terms "{title_hint}"')

        return None

    @staticmethod
    def _matched(doc: dict[str, Any], how: str) -> BookMetadata:
        metadata = doc_to_metadata(doc)
        logger.info(f'Match found for "{metadata.title}" by {metadata.author} ({how})')
        if metadata.subjects:
            logger.debug(f"Subjects: {', '.join(metadata.subjects[:3])}")
        return metadata
