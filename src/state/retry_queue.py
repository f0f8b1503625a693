"""
Retry queue for episodes whose sources document may not be published yet.

Each queued episode is a ProcessingRecord that moves through:

    Detected -> Ready (process_after elapsed) -> Processing
        -> Succeeded           removed from the queue
        -> RequeuedWithDelay   retry_count + 1, process_after = now + 2h
        -> Abandoned           removed, never attempted again

Abandonment is decided on the retry count before the failed attempt is
counted: an Interview abandons once it has already been retried once, anything
else once it has been retried max_retries times. So a record is requeued at
most max_retries times and the queue cannot grow without bound.

The queue is loaded once per run, mutated in memory by the orchestrator thread
and written back with a single atomic write.
"""

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

from src.ingestion import EpisodeClassification, EpisodeClassifier, EpisodeType, FeedItem

from .errors import StateFileError
from .json_file import read_json, write_json_atomic


logger = logging.getLogger("retry_queue")

QUEUE_FILENAME = "pending-episodes.json"
QUEUE_VERSION = 1
REQUEUE_DELAY = 2 * 60 * 60
MAX_RETRIES = 3
INTERVIEW_MAX_RETRIES = 1


class RecordState(str, Enum):
    DETECTED = "detected"
    READY = "ready"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    REQUEUED = "requeued"
    ABANDONED = "abandoned"


def _seconds(value: Any, default: float) -> float:
    """Epoch seconds; millisecond values from older queue files are scaled down."""
    if value is None:
        return default
    value = float(value)
    return value / 1000.0 if value > 1e11 else value


@dataclass(frozen=True)
class ProcessingRecord:
    episode: FeedItem
    classification: EpisodeClassification
    detected_at: float
    process_after: float
    retry_count: int = 0
    has_source_document: Optional[bool] = None
    last_error: Optional[str] = None

    @property
    def episode_id(self) -> str:
        return self.episode.id

    def is_ready(self, now: float) -> bool:
        return now >= self.process_after

    def to_dict(self) -> dict[str, Any]:
        return {
            "episode": self.episode.to_dict(),
            "classification": self.classification.to_dict(),
            "detected_at": self.detected_at,
            "process_after": self.process_after,
            "retry_count": self.retry_count,
            "has_source_document": self.has_source_document,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], classifier: EpisodeClassifier) -> "ProcessingRecord":
        episode = FeedItem.from_dict(data["episode"])
        if "classification" in data:
            classification = EpisodeClassification.from_dict(data["classification"])
        else:
            classification = classifier.classify(episode.title, episode.description)
        now = time.time()
        return cls(
            episode=episode,
            classification=classification,
            detected_at=_seconds(data.get("detected_at", data.get("detectedAt")), now),
            process_after=_seconds(data.get("process_after", data.get("processAfter")), now),
            retry_count=int(data.get("retry_count", data.get("retryCount", 0))),
            has_source_document=data.get("has_source_document", data.get("hasGoogleDoc")),
            last_error=data.get("last_error"),
        )


class RetryQueue:
    """
    In-memory view of the persisted retry queue.

    Args:
        path: Queue file (pending-episodes.json)
        classifier: Used to enqueue new items and to re-derive missing classifications
        clock: Returns epoch seconds (default: time.time)
        requeue_delay: Seconds a failed record waits before its next attempt
        max_retries: Requeue ceiling for non-interview records
    """

    def __init__(
        self,
        path: Union[str, Path],
        classifier: Optional[EpisodeClassifier] = None,
        clock: Callable[[], float] = time.time,
        requeue_delay: float = REQUEUE_DELAY,
        max_retries: int = MAX_RETRIES,
    ):
        self.path = Path(path)
        self.classifier = classifier or EpisodeClassifier()
        self.clock = clock
        self.requeue_delay = requeue_delay
        self.max_retries = max_retries
        self._records: dict[str, ProcessingRecord] = {}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> "RetryQueue":
        data = read_json(self.path, default=[])
        if isinstance(data, dict):
            data = data.get("records", [])
        if not isinstance(data, list):
            raise StateFileError(self.path, "expected a list of queue records")

        self._records = {}
        for raw in data:
            try:
                record = ProcessingRecord.from_dict(raw, self.classifier)
            except (KeyError, TypeError, ValueError) as e:
                raise StateFileError(self.path, f"invalid queue record: {e}") from e
            self._records[record.episode_id] = record

        logger.info(f"Loaded {len(self._records)} queued episodes from {self.path}")
        return self

    def save(self) -> None:
        write_json_atomic(
            self.path,
            {"version": QUEUE_VERSION, "records": [r.to_dict() for r in self._records.values()]},
        )
        logger.info(f"Saved {len(self._records)} queued episodes to {self.path}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, episode_id: str) -> bool:
        return episode_id in self._records

    def get(self, episode_id: str) -> Optional[ProcessingRecord]:
        return self._records.get(episode_id)

    def records(self) -> list[ProcessingRecord]:
        return list(self._records.values())

    def state_of(self, record: ProcessingRecord) -> RecordState:
        return RecordState.READY if record.is_ready(self.clock()) else RecordState.DETECTED

    def ready(self) -> list[ProcessingRecord]:
        """Records whose process_after has elapsed, oldest detection first."""
        now = self.clock()
        ready = [r for r in self._records.values() if r.is_ready(now)]
        ready.sort(key=lambda r: (r.detected_at, r.episode_id))
        if ready:
            logger.info(f"Found {len(ready)} episodes ready for processing")
            for record in ready:
                logger.info(f"  - {record.episode.title} (retry: {record.retry_count})")
        return ready

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def enqueue_new(self, items: Iterable[FeedItem]) -> list[ProcessingRecord]:
        """
        Classify new feed items and queue the ones worth processing.

        A newly detected item replaces a stale queued record with the same id.
        Items the classifier recommends skipping are never queued.
        """
        now = self.clock()
        enqueued = []
        for item in items:
            classification = self.classifier.classify(item.title, item.description)
            recommendation = self.classifier.recommend(classification)
            if not recommendation.should_process:
                logger.info(
                    f"Skipping {classification.type.value} episode: {item.title} "
                    f"({'; '.join(classification.reasoning)})"
                )
                continue

            if item.id in self._records:
                logger.info(f"Replacing stale queue record for {item.id}")

            record = ProcessingRecord(
                episode=item,
                classification=classification,
                detected_at=now,
                process_after=now + max(recommendation.delay, 0),
            )
            self._records[item.id] = record
            enqueued.append(record)
            delay = "immediate" if recommendation.delay <= 0 else f"{recommendation.delay / 60:.0f}min delay"
            logger.info(f"Queued: {item.title} ({delay})")
        return enqueued

    def add(self, record: ProcessingRecord) -> None:
        self._records[record.episode_id] = record

    def mark_succeeded(self, episode_id: str) -> RecordState:
        record = self._records.pop(episode_id, None)
        if record is not None:
            logger.info(f"Marked episode {episode_id} as processed")
        return RecordState.SUCCEEDED

    def record_failure(
        self,
        episode_id: str,
        has_source_document: Optional[bool] = False,
        found_count: int = 0,
        error: Optional[str] = None,
        abandon: bool = False,
    ) -> RecordState:
        """
        Apply a failed attempt to a record.

        Args:
            episode_id: Queued episode id
            has_source_document: Whether the attempt found a sources document
            found_count: Candidate references found (feeds the classifier update)
            error: Human readable failure reason, kept for the operator
            abandon: Give up regardless of the retry count (e.g. guard rejection)

        Returns:
            RecordState.ABANDONED or RecordState.REQUEUED
        """
        record = self._records.get(episode_id)
        if record is None:
            logger.warning(f"Episode {episode_id} not found in pending queue")
            return RecordState.ABANDONED

        title = record.episode.title
        if abandon:
            logger.warning(f"Abandoning episode {title}: {error}")
            del self._records[episode_id]
            return RecordState.ABANDONED

        if (
            record.classification.type == EpisodeType.INTERVIEW
            and record.retry_count >= INTERVIEW_MAX_RETRIES
        ):
            logger.info(f"Removing interview episode from queue: {title}")
            del self._records[episode_id]
            return RecordState.ABANDONED

        if record.retry_count >= self.max_retries:
            logger.info(f"Max retries reached for episode: {title}")
            del self._records[episode_id]
            return RecordState.ABANDONED

        classification = self.classifier.update(
            record.classification, bool(has_source_document), found_count
        )
        self._records[episode_id] = replace(
            record,
            classification=classification,
            retry_count=record.retry_count + 1,
            process_after=self.clock() + self.requeue_delay,
            has_source_document=has_source_document,
            last_error=error,
        )
        logger.info(
            f"Requeued episode {title} for retry in {self.requeue_delay / 3600:.0f} hours "
            f"(retry {record.retry_count + 1}/{self.max_retries})"
        )
        return RecordState.REQUEUED
