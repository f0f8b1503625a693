"""
Tiered metadata resolution for candidate product links.

Tier 1 asks the bibliographic catalog API; tier 2 scrapes the product page;
tier 3 discards the candidate. The cover sub-step runs after either tier. A
validation gate then drops implausible results, which are reported as data
quality issues instead of being silently discarded.

Usage:
    resolver = MetadataResolver(OpenLibraryClient(guard, policy), CoverResolver(guard), guard, policy)
    result = resolver.resolve_batch(["https://www.amazon.com/Shoe-Dog/dp/1501135910"])
"""

import logging
import time
from dataclasses import replace
from typing import Callable, Iterable, Optional

from src.extraction import extract_product_id, slug_title
from src.logger import log_function
from src.network import NetworkError, RetryPolicy, TransientNetworkError, UrlGuard

from .covers import CoverResolver
from .models import (
    BatchResolution,
    BookMetadata,
    DataQualityIssue,
    ResolvedReference,
)
from .openlibrary import OpenLibraryClient
from .product_page import scrape_product_page


logger = logging.getLogger("metadata")

BATCH_SIZE = 10
ITEM_DELAY = 1.0
BATCH_DELAY = 2.0

MIN_TITLE_LENGTH = 3
UNKNOWN_SENTINEL = "unknown"
TITLE_BLOCKLIST = frozenset({"dp", "coca-cola"})


def validation_issue(metadata: BookMetadata) -> Optional[str]:
    """Why metadata fails the validation gate, or None when it passes."""
    title = metadata.title.strip()
    if len(title) < MIN_TITLE_LENGTH:
        return f'Title too short: "{title}"'
    if UNKNOWN_SENTINEL in title.lower():
        return f'Unknown title: "{title}"'
    if UNKNOWN_SENTINEL in metadata.author.lower():
        return f'Unknown author for "{title}"'
    if title.lower() in TITLE_BLOCKLIST:
        return f'Known false positive: "{title}"'
    return None


class MetadataResolver:
    def __init__(
        self,
        catalog_api: OpenLibraryClient,
        covers: CoverResolver,
        guard: UrlGuard,
        retry_policy: RetryPolicy,
        sleep: Callable[[float], None] = time.sleep,
        batch_size: int = BATCH_SIZE,
        item_delay: float = ITEM_DELAY,
        batch_delay: float = BATCH_DELAY,
    ):
        self.catalog_api = catalog_api
        self.covers = covers
        self.guard = guard
        self.retry_policy = retry_policy
        self.sleep = sleep
        self.batch_size = batch_size
        self.item_delay = item_delay
        self.batch_delay = batch_delay

    def resolve(self, candidate_url: str) -> Optional[BookMetadata]:
        """Metadata for one candidate link, or None when every tier came up empty."""
        return self._resolve(candidate_url, set())

    def _resolve(self, candidate_url: str, failed_domains: set[str]) -> Optional[BookMetadata]:
        product_id = extract_product_id(candidate_url)
        title_hint = slug_title(candidate_url)

        metadata = None
        try:
            metadata = self.catalog_api.lookup(product_id, title_hint)
        except NetworkError as e:
            self._note_failure(e, failed_domains)
            logger.warning(f"Catalog API lookup failed for {candidate_url}: {e}")

        if metadata is None:
            try:
                metadata = scrape_product_page(candidate_url, self.guard, self.retry_policy)
            except NetworkError as e:
                self._note_failure(e, failed_domains)
                logger.warning(f"Product page scrape failed for {candidate_url}: {e}")

        if metadata is None:
            logger.warning(f"No metadata found for {candidate_url}")
            return None

        return replace(metadata, cover_url=self.covers.resolve(product_id, metadata.cover_url))

    @staticmethod
    def _note_failure(error: NetworkError, failed_domains: set[str]) -> None:
        if isinstance(error, TransientNetworkError) and error.domain:
            failed_domains.add(error.domain)

    @log_function(logger_name="metadata", log_execution_time=True)
    def resolve_batch(self, candidate_urls: Iterable[str]) -> BatchResolution:
        """
        Resolve candidates in groups, pausing after each candidate and between groups.

        Returns:
            BatchResolution with accepted references, data quality issues and
            the domains that failed transiently during resolution
        """
        urls = list(candidate_urls)
        result = BatchResolution()
        total_batches = (len(urls) + self.batch_size - 1) // self.batch_size

        for start in range(0, len(urls), self.batch_size):
            batch = urls[start : start + self.batch_size]
            logger.info(f"Processing batch {start // self.batch_size + 1} of {total_batches}")

            for url in batch:
                metadata = self._resolve(url, result.failed_domains)
                if metadata is None:
                    result.issues.append(DataQualityIssue(url, "No metadata found"))
                else:
                    reason = validation_issue(metadata)
                    if reason:
                        logger.warning(f"Dropping {url}: {reason}")
                        result.issues.append(DataQualityIssue(url, reason, metadata))
                    else:
                        result.accepted.append(
                            ResolvedReference(url, extract_product_id(url), metadata)
                        )
                self.sleep(self.item_delay)

            if start + self.batch_size < len(urls):
                logger.info(
                    f"Progress: {len(result.accepted)} accepted, {len(result.issues)} dropped"
                )
                self.sleep(self.batch_delay)

        logger.info(
            f"Final results: {len(result.accepted)} books accepted, {len(result.issues)} dropped"
        )
        return result
