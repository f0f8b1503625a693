"""
Data classes shared by the ingestion stage.

FeedItem and EpisodeClassification are immutable; re-reading the feed or
re-classifying a title produces fresh, comparable values. Both serialize to
plain dicts so they can be persisted inside the retry queue file.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class EpisodeType(str, Enum):
    REGULAR = "regular"
    INTERVIEW = "interview"
    SPECIAL = "special"
    UNKNOWN = "unknown"


def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class FeedItem:
    """One published episode as read from the syndication feed."""

    id: str
    title: str
    link: str
    published_at: datetime
    description: str = ""
    season_number: Optional[int] = None
    episode_number: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "link": self.link,
            "published_at": self.published_at.isoformat(),
            "description": self.description,
            "season_number": self.season_number,
            "episode_number": self.episode_number,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FeedItem":
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            link=data.get("link", ""),
            published_at=_parse_timestamp(data.get("published_at")),
            description=data.get("description") or "",
            season_number=data.get("season_number"),
            episode_number=data.get("episode_number"),
        )


@dataclass(frozen=True)
class EpisodeClassification:
    """Type guess for an episode plus the evidence that produced it."""

    type: EpisodeType
    confidence: float
    reasoning: tuple[str, ...] = field(default_factory=tuple)
    should_skip: bool = False
    expected_sources: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "confidence": round(self.confidence, 3),
            "reasoning": list(self.reasoning),
            "should_skip": self.should_skip,
            "expected_sources": self.expected_sources,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EpisodeClassification":
        try:
            episode_type = EpisodeType(data.get("type", "unknown"))
        except ValueError:
            episode_type = EpisodeType.UNKNOWN
        return cls(
            type=episode_type,
            confidence=float(data.get("confidence", 0.0)),
            reasoning=tuple(data.get("reasoning") or ()),
            should_skip=bool(data.get("should_skip", False)),
            expected_sources=bool(data.get("expected_sources", True)),
        )


@dataclass(frozen=True)
class ProcessingRecommendation:
    should_process: bool
    priority: str  # high | medium | low | skip
    delay: float  # seconds before the first attempt; -1 when skipped
    max_retries: int
