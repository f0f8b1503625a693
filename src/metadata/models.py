from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


PLACEHOLDER_COVER = "/covers/default-book.jpg"
UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_AUTHOR = "Unknown Author"


class SourceTier(str, Enum):
    PRIMARY = "primary-catalog-api"
    PAGE_SCRAPE = "page-scrape"
    NONE = "none"


@dataclass(frozen=True)
class BookMetadata:
    title: str
    author: str
    cover_url: Optional[str] = None
    subjects: tuple[str, ...] = field(default_factory=tuple)
    source_tier: SourceTier = SourceTier.NONE
    isbn: Optional[str] = None
    first_publish_year: Optional[int] = None
    work_key: Optional[str] = None

    @property
    def has_placeholder_cover(self) -> bool:
        return not self.cover_url or self.cover_url == PLACEHOLDER_COVER


@dataclass(frozen=True)
class ResolvedReference:
    """A candidate link that resolved to metadata and passed the validation gate."""

    product_url: str
    product_id: Optional[str]
    metadata: BookMetadata


@dataclass(frozen=True)
class DataQualityIssue:
    """A candidate dropped for manual review, with what was resolved for it (if anything)."""

    product_url: str
    reason: str
    metadata: Optional[BookMetadata] = None

    @property
    def resolved(self) -> bool:
        return self.metadata is not None


@dataclass
class BatchResolution:
    accepted: list[ResolvedReference] = field(default_factory=list)
    issues: list[DataQualityIssue] = field(default_factory=list)
    failed_domains: set[str] = field(default_factory=set)

    @property
    def resolved_count(self) -> int:
        """Candidates that produced metadata, whether or not they passed validation."""
        return len(self.accepted) + sum(1 for issue in self.issues if issue.resolved)
