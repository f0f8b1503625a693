"""
Pipeline stage wrapper functions.

Each stage wraps module logic with standardized logging and error handling.
Per-episode stages run inside worker threads: they only read the shared
context and return an EpisodeOutcome; the queue and the catalog are touched
by the orchestrator thread alone.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

import requests

from src.catalog import CatalogEntry, EpisodeRef, Provenance, categorize, entry_id
from src.extraction import ReferenceScan, extract_references, find_source_document
from src.ingestion import FeedItem, fetch_feed
from src.logger import log_function
from src.metadata import (
    BatchResolution,
    CoverResolver,
    MetadataResolver,
    OpenLibraryClient,
)
from src.network import (
    NetworkError,
    ResponseCache,
    RetryPolicy,
    TransientNetworkError,
    UrlGuard,
    UrlValidationError,
)
from src.state import ProcessingRecord
from src.storage import CloudStorage, CoverMirror, LocalStorage

from .config import PipelineConfig


logger = logging.getLogger("pipeline")


@dataclass
class PipelineContext:
    """Collaborators shared by every stage of one run."""

    guard: UrlGuard
    retry_policy: RetryPolicy
    resolver: MetadataResolver
    mirror: Optional[CoverMirror] = None
    clock: Callable[[], float] = time.time


@dataclass
class EpisodeOutcome:
    record: ProcessingRecord
    document_url: Optional[str] = None
    scan: Optional[ReferenceScan] = None
    resolution: Optional[BatchResolution] = None
    entries: list[CatalogEntry] = field(default_factory=list)
    error: Optional[str] = None
    abandon: bool = False
    failed_domains: set[str] = field(default_factory=set)

    @property
    def episode_id(self) -> str:
        return self.record.episode_id

    @property
    def has_source_document(self) -> bool:
        return self.document_url is not None

    @property
    def found_count(self) -> int:
        return len(self.scan.links) if self.scan else 0

    @property
    def succeeded(self) -> bool:
        """At least one reference resolved to metadata."""
        return bool(self.resolution and self.resolution.resolved_count > 0)


def build_context(
    config: PipelineConfig,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.time,
) -> PipelineContext:
    """Wire the guard, retry policy, resolver and cover mirror for a run."""
    guard = UrlGuard(session=session, timeout=config.request_timeout)
    retry_policy = RetryPolicy(
        max_attempts=config.retry_attempts,
        base_delay=config.retry_base_delay,
        max_delay=config.retry_max_delay,
        sleep=sleep,
    )
    cache = ResponseCache(ttl=config.cache_ttl)
    resolver = MetadataResolver(
        OpenLibraryClient(guard, retry_policy, cache),
        CoverResolver(guard, cache),
        guard,
        retry_policy,
        sleep=sleep,
        batch_size=config.batch_size,
        item_delay=config.item_delay,
        batch_delay=config.batch_delay,
    )

    mirror = None
    if config.mirror_covers and not config.dry_run:
        if config.use_cloud_storage:
            storage = CloudStorage(
                endpoint=config.bucket_endpoint,
                key_id=config.bucket_key_id,
                access_key=config.bucket_access_key,
                bucket_name=config.bucket_name,
                public_url=config.bucket_public_url,
            )
        else:
            storage = LocalStorage(root=str(config.covers_dir))
        mirror = CoverMirror(storage, guard)

    return PipelineContext(guard, retry_policy, resolver, mirror, clock)


@log_function(logger_name="pipeline", log_execution_time=True)
def run_feed_stage(feed_url: str, ctx: PipelineContext) -> list[FeedItem]:
    """
    Fetch and parse the syndication feed.

    Raises:
        NetworkError: The feed could not be fetched
    """
    logger = logging.getLogger("pipeline")
    try:
        logger.info(f"Starting feed stage with {feed_url}")
        return fetch_feed(feed_url, ctx.guard, ctx.retry_policy)
    except NetworkError as e:
        logger.error(f"Feed stage failed: {e}")
        raise e


def transient_domain(error: NetworkError) -> Optional[str]:
    """Domain to count as failing when the error (or what it wraps) was transient."""
    for candidate in (error, error.__cause__):
        if isinstance(candidate, TransientNetworkError) and candidate.domain:
            return candidate.domain
    return None


def episode_ref_for(episode: FeedItem) -> EpisodeRef:
    """Season from the feed (else publish year); episode from the feed (else MMDD)."""
    published = episode.published_at
    season = episode.season_number if episode.season_number is not None else published.year
    number = (
        episode.episode_number
        if episode.episode_number is not None
        else published.month * 100 + published.day
    )
    return EpisodeRef(name=episode.title, season_number=season, episode_number=number)


def build_catalog_entries(
    resolution: BatchResolution,
    episode: FeedItem,
    provenance: Provenance = Provenance.AUTOMATED,
    mirror: Optional[CoverMirror] = None,
    added_at: Optional[str] = None,
) -> list[CatalogEntry]:
    """Catalog entries for every accepted reference of one episode."""
    added_at = added_at or datetime.now(timezone.utc).isoformat()
    ref = episode_ref_for(episode)
    entries = []
    for reference in resolution.accepted:
        book_id = entry_id(reference.product_id, reference.product_url, provenance)
        cover_url = reference.metadata.cover_url or ""
        if mirror is not None:
            cover_url = mirror.mirror(book_id, cover_url)
        entries.append(
            CatalogEntry(
                id=book_id,
                title=reference.metadata.title,
                author=reference.metadata.author,
                cover_url=cover_url,
                product_url=reference.product_url,
                category=categorize(reference.metadata),
                episode_ref=ref,
                added_at=added_at,
                provenance=provenance,
            )
        )
    return entries


def process_episode(
    record: ProcessingRecord,
    ctx: PipelineContext,
    provenance: Provenance = Provenance.AUTOMATED,
) -> EpisodeOutcome:
    """
    Source resolver -> reference extractor -> metadata resolver for one episode.

    Never raises for network problems: they are folded into the outcome so the
    orchestrator can apply the matching queue transition.
    """
    logger = logging.getLogger("pipeline")
    episode = record.episode
    outcome = EpisodeOutcome(record=record)
    logger.info(f"Processing {episode.title} (retry: {record.retry_count})")

    if not episode.link:
        outcome.error = "Episode has no page link"
        logger.warning(f"No page link for episode: {episode.title}")
        return outcome

    try:
        outcome.document_url = find_source_document(episode.link, ctx.guard, ctx.retry_policy)
        if outcome.document_url is None:
            logger.info(f"No sources document found for: {episode.title}")
            return outcome

        outcome.scan = extract_references(outcome.document_url, ctx.guard, ctx.retry_policy)
        if not outcome.scan.links:
            logger.info(f"No product links found in sources document for: {episode.title}")
            return outcome

        outcome.resolution = ctx.resolver.resolve_batch(outcome.scan.links)
        outcome.failed_domains |= outcome.resolution.failed_domains
        outcome.entries = build_catalog_entries(
            outcome.resolution, episode, provenance, ctx.mirror
        )
        logger.info(
            f"{episode.title}: {len(outcome.entries)} books from {outcome.found_count} links"
        )

    except UrlValidationError as e:
        # Input problem: retrying cannot help
        outcome.error = str(e)
        outcome.abandon = True
        logger.error(f"Validation failure for {episode.title}: {e}")
    except NetworkError as e:
        outcome.error = str(e)
        domain = transient_domain(e)
        if domain:
            outcome.failed_domains.add(domain)
        logger.error(f"Network failure for {episode.title}: {e}")

    return outcome
