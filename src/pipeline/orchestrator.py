import logging
import re
import threading
import weakref
from concurrent.futures import ThreadPoolExecutor, wait
from concurrent.futures.thread import _worker
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional
from urllib.parse import unquote, urlsplit

from src.catalog import CatalogWriter, Provenance
from src.ingestion import EpisodeClassifier, EpisodeType, FeedItem, filter_new_items
from src.logger import log_function, log_with_timer
from src.metadata import SourceTier
from src.network import NetworkError
from src.notify import (
    DiscordNotifier,
    ReviewItem,
    RunError,
    RunSummary,
    create_notifier_from_env,
)
from src.state import (
    LastCheckStore,
    ProcessingRecord,
    RecordState,
    RetryQueue,
    StateFileError,
)

from .config import PipelineConfig
from .stages import (
    EpisodeOutcome,
    PipelineContext,
    build_context,
    process_episode,
    run_feed_stage,
    transient_domain,
)


DEADLINE_ERROR = "Run deadline exceeded"
GAP_EXCLUDED_TITLES = ("acquired live",)


class _DaemonThreadPoolExecutor(ThreadPoolExecutor):
    """
    A ThreadPoolExecutor whose workers are daemon threads.

    Workers are not registered with the interpreter exit hook, so an episode
    still running past the run deadline does not keep the process alive.
    """

    def _adjust_thread_count(self):
        if self._idle_semaphore.acquire(timeout=0):
            return

        def weakref_cb(_, q=self._work_queue):
            q.put(None)

        num_threads = len(self._threads)
        if num_threads < self._max_workers:
            thread_name = "%s_%d" % (self._thread_name_prefix or self, num_threads)
            if hasattr(self, "_create_worker_context"):
                args = (weakref.ref(self, weakref_cb), self._create_worker_context(), self._work_queue)
            else:
                args = (weakref.ref(self, weakref_cb), self._work_queue, self._initializer, self._initargs)
            t = threading.Thread(name=thread_name, target=_worker, args=args, daemon=True)
            t.start()
            self._threads.add(t)


def _now(ctx: PipelineContext) -> datetime:
    return datetime.fromtimestamp(ctx.clock(), timezone.utc)


def process_records(
    records: list[ProcessingRecord],
    ctx: PipelineContext,
    max_workers: int = 3,
    run_timeout: Optional[float] = None,
    provenance: Provenance = Provenance.AUTOMATED,
) -> list[EpisodeOutcome]:
    """
    Run process_episode for every record on a bounded worker pool.

    Workers only produce outcomes. Episodes still running when run_timeout
    elapses are reported as failed attempts so they get requeued.
    """
    logger = logging.getLogger("pipeline")
    if not records:
        return []

    executor = _DaemonThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="episode")
    try:
        futures = {
            executor.submit(process_episode, record, ctx, provenance): record for record in records
        }
        done, not_done = wait(futures, timeout=run_timeout)

        outcomes = []
        for future, record in futures.items():
            if future in not_done:
                logger.error(f"{DEADLINE_ERROR} while processing {record.episode.title}")
                outcomes.append(EpisodeOutcome(record=record, error=DEADLINE_ERROR))
                continue
            try:
                outcomes.append(future.result())
            except Exception as e:
                logger.exception(f"Unexpected failure processing {record.episode.title}: {e}")
                outcomes.append(EpisodeOutcome(record=record, error=f"Unexpected error: {e}"))
        return outcomes
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def review_items(outcome: EpisodeOutcome) -> list[ReviewItem]:
    """Guard rejections, dropped candidates and low-confidence accepted books of one episode."""
    title = outcome.record.episode.title
    items = []
    if outcome.scan is not None:
        items += [
            ReviewItem(title, url, f"Rejected by URL guard: {reason}")
            for url, reason in outcome.scan.rejected
        ]
    if outcome.resolution is not None:
        for issue in outcome.resolution.issues:
            metadata = issue.metadata
            items.append(
                ReviewItem(
                    title,
                    issue.product_url,
                    issue.reason,
                    metadata.title if metadata else None,
                    metadata.author if metadata else None,
                )
            )
        for reference in outcome.resolution.accepted:
            metadata = reference.metadata
            if metadata.source_tier == SourceTier.PAGE_SCRAPE:
                reason = "Resolved from product page only"
            elif metadata.has_placeholder_cover:
                reason = "No cover image found"
            else:
                continue
            items.append(
                ReviewItem(title, reference.product_url, reason, metadata.title, metadata.author)
            )
    return items


def apply_outcome(queue: RetryQueue, outcome: EpisodeOutcome) -> RecordState:
    """Succeeded, RequeuedWithDelay or Abandoned for one processed record."""
    if outcome.succeeded:
        return queue.mark_succeeded(outcome.episode_id)
    return queue.record_failure(
        outcome.episode_id,
        has_source_document=outcome.has_source_document,
        found_count=outcome.found_count,
        error=outcome.error or "No books resolved",
        abandon=outcome.abandon,
    )


def _collect(summary: RunSummary, outcomes: Iterable[EpisodeOutcome]) -> list:
    entries = []
    for outcome in outcomes:
        summary.episodes_processed += 1
        entries += outcome.entries
        summary.review += review_items(outcome)
    return entries


def _notify(summary: RunSummary, notifier: Optional[DiscordNotifier]) -> None:
    summary.finished_at = summary.finished_at or datetime.now(timezone.utc)
    logging.getLogger("pipeline").info(f"Run summary: {summary.describe()}")
    if notifier is not None:
        notifier.send(summary)


@log_function(logger_name="pipeline", log_execution_time=True)
def run_pipeline(
    config: PipelineConfig,
    context: Optional[PipelineContext] = None,
    notifier: Optional[DiscordNotifier] = None,
) -> RunSummary:
    """
    One scheduled run: discover, queue, process ready episodes, commit, notify.

    State is loaded once up front and written once at the end by this thread:
    catalog first, then the retry queue, then the last check state.

    Raises:
        StateFileError: The catalog or a state file is corrupt (nothing is written)
        OSError: Writing the catalog or a state file failed (the summary is still sent)
    """
    logger = logging.getLogger("pipeline")
    ctx = context or build_context(config)
    if notifier is None:
        notifier = create_notifier_from_env(ctx.guard, config.discord_webhook_url)

    started_at = _now(ctx)
    summary = RunSummary(started_at=started_at, dry_run=config.dry_run)
    logger.info("=== PIPELINE STARTED ===")
    if config.dry_run:
        logger.info("DRY RUN - no files will be written")

    try:
        queue = RetryQueue(
            config.queue_path,
            EpisodeClassifier(),
            clock=ctx.clock,
            requeue_delay=config.requeue_delay,
            max_retries=config.max_retries,
        ).load()
        last_check_store = LastCheckStore(config.last_check_path)
        last_check = last_check_store.load()
        writer = CatalogWriter(config.catalog_path)
        existing = writer.load()
    except StateFileError as e:
        logger.error(f"Aborting run, state is unreadable: {e}")
        summary.errors.append(RunError(str(e), "State"))
        _notify(summary, notifier)
        raise

    # Discover
    failed_domains: set[str] = set()
    feed_ok = True
    try:
        items = run_feed_stage(config.feed_url, ctx)
    except NetworkError as e:
        feed_ok = False
        items = []
        summary.errors.append(RunError(str(e), "Feed"))
        domain = transient_domain(e)
        if domain:
            failed_domains.add(domain)

    new_items = filter_new_items(
        items,
        last_check.timestamp,
        last_check.seen_ids,
        now=started_at,
        lookback=timedelta(days=config.lookback_days),
    )
    summary.episodes_detected = len(new_items)
    logger.info(f"Detected {len(new_items)} new episodes")

    # Queue and process
    queue.enqueue_new(new_items)
    outcomes = process_records(queue.ready(), ctx, config.max_workers, config.run_timeout)
    new_entries = _collect(summary, outcomes)

    for outcome in outcomes:
        failed_domains |= outcome.failed_domains
        state = apply_outcome(queue, outcome)
        if state == RecordState.SUCCEEDED:
            summary.succeeded += 1
        elif state == RecordState.REQUEUED:
            summary.requeued += 1
        else:
            summary.abandoned += 1
            if outcome.error:
                summary.errors.append(RunError(outcome.error, outcome.record.episode.title))

    # Commit
    try:
        summary.added = writer.commit(new_entries, existing=existing, dry_run=config.dry_run)
        if feed_ok:
            last_check.record_run(started_at, [item.id for item in items], failed_domains)
        else:
            last_check.record_run(last_check.timestamp, [], failed_domains)
        if not config.dry_run:
            queue.save()
            last_check_store.save(last_check)
    except OSError as e:
        logger.error(f"Failed to write run state: {e}")
        summary.errors.append(RunError(str(e), "Commit"))
        _notify(summary, notifier)
        raise

    summary.systemic_domains = last_check.systemic_domains()
    for domain, runs in summary.systemic_domains.items():
        logger.warning(f"{domain} failed in {runs} consecutive runs")

    summary.finished_at = _now(ctx)
    logger.info("=== PIPELINE COMPLETED ===")
    _notify(summary, notifier)
    return summary


def backfill_record(url: str, now: float, classifier: Optional[EpisodeClassifier] = None) -> ProcessingRecord:
    """A ready ProcessingRecord for an episode page given explicitly by the operator."""
    classifier = classifier or EpisodeClassifier()
    slug = unquote(urlsplit(url).path).rstrip("/").rsplit("/", 1)[-1]
    name = re.sub(r"[-_]+", " ", slug).strip().title() or url
    episode = FeedItem(
        id=slug or url,
        title=name,
        link=url,
        published_at=datetime.fromtimestamp(now, timezone.utc),
    )
    return ProcessingRecord(
        episode=episode,
        classification=classifier.classify(episode.title, episode.description),
        detected_at=now,
        process_after=now,
    )


@log_function(logger_name="pipeline", log_execution_time=True)
def run_backfill(
    config: PipelineConfig,
    urls: list[str],
    context: Optional[PipelineContext] = None,
    notifier: Optional[DiscordNotifier] = None,
) -> RunSummary:
    """
    Extract books from explicit episode page URLs, bypassing the feed and the queue.

    Entries are tagged with the backfill provenance. Rejected URLs are reported
    as errors and never fetched.
    """
    logger = logging.getLogger("pipeline")
    ctx = context or build_context(config)
    if notifier is None:
        notifier = create_notifier_from_env(ctx.guard, config.discord_webhook_url)

    summary = RunSummary(started_at=_now(ctx), dry_run=config.dry_run)
    writer = CatalogWriter(config.catalog_path)
    existing = writer.load()

    records = []
    for url in urls:
        validated = ctx.guard.validate(url)
        if not validated.valid:
            logger.error(f"Skipping backfill URL {url}: {validated.reason}")
            summary.errors.append(RunError(f"Rejected URL: {validated.reason}", url))
            continue
        records.append(backfill_record(validated.sanitized, ctx.clock()))
    summary.episodes_detected = len(records)

    outcomes = process_records(
        records, ctx, config.max_workers, config.run_timeout, provenance=Provenance.BACKFILL
    )
    new_entries = _collect(summary, outcomes)
    for outcome in outcomes:
        if outcome.succeeded:
            summary.succeeded += 1
        else:
            summary.abandoned += 1
            summary.errors.append(
                RunError(outcome.error or "No books resolved", outcome.record.episode.link)
            )

    try:
        summary.added = writer.commit(new_entries, existing=existing, dry_run=config.dry_run)
    except OSError as e:
        logger.error(f"Failed to write catalog: {e}")
        summary.errors.append(RunError(str(e), "Commit"))
        _notify(summary, notifier)
        raise
    summary.finished_at = _now(ctx)
    _notify(summary, notifier)
    return summary


def normalize_episode_name(name: str) -> str:
    name = re.sub(r"[^a-z0-9\s]", "", name.lower())
    return re.sub(r"\s+", " ", name).strip()


def find_catalog_gaps(
    items: Iterable[FeedItem],
    catalog: list[dict],
    classifier: Optional[EpisodeClassifier] = None,
) -> list[FeedItem]:
    """Feed episodes expected to have books but with no catalog entry at all."""
    classifier = classifier or EpisodeClassifier()
    covered = {
        normalize_episode_name(str((entry.get("episodeRef") or {}).get("name", "")))
        for entry in catalog
    }
    gaps = []
    for item in items:
        if any(excluded in item.title.lower() for excluded in GAP_EXCLUDED_TITLES):
            continue
        classification = classifier.classify(item.title, item.description)
        if classification.type in (EpisodeType.INTERVIEW, EpisodeType.SPECIAL):
            continue
        if normalize_episode_name(item.title) not in covered:
            gaps.append(item)
    return gaps


@log_with_timer("pipeline")
def detect_gaps(config: PipelineConfig, context: Optional[PipelineContext] = None) -> list[FeedItem]:
    """
    Raises:
        NetworkError: The feed could not be fetched
        StateFileError: The catalog is corrupt
    """
    logger = logging.getLogger("pipeline")
    ctx = context or build_context(config)
    catalog = CatalogWriter(config.catalog_path).load()
    items = run_feed_stage(config.feed_url, ctx)
    gaps = find_catalog_gaps(items, catalog)
    logger.info(f"{len(gaps)} of {len(items)} feed episodes have no catalog entry")
    return gaps
