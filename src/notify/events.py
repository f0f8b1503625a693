"""Event contract for the one notification emitted per pipeline run."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from src.catalog import CatalogEntry


@dataclass(frozen=True)
class ReviewItem:
    """A candidate that needs a human look: unresolved, rejected or low confidence."""

    episode: str
    product_url: str
    reason: str
    title: Optional[str] = None
    author: Optional[str] = None


@dataclass(frozen=True)
class RunError:
    message: str
    context: Optional[str] = None


@dataclass
class RunSummary:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    dry_run: bool = False
    episodes_detected: int = 0
    episodes_processed: int = 0
    succeeded: int = 0
    requeued: int = 0
    abandoned: int = 0
    added: list[CatalogEntry] = field(default_factory=list)
    review: list[ReviewItem] = field(default_factory=list)
    errors: list[RunError] = field(default_factory=list)
    systemic_domains: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def describe(self) -> str:
        return (
            f"{self.episodes_processed} episodes processed, {len(self.added)} books added, "
            f"{self.requeued} requeued, {self.abandoned} abandoned, "
            f"{len(self.review)} for review, {len(self.errors)} errors"
        )
