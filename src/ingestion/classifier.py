"""
Episode classifier.

Guesses whether an episode is a regular company/topic episode (which ships a
sources document), an interview or a special (which usually do not), using
ordered rule evaluation over the title and description. The first matching
rule decides the type; every rule that fired leaves a line in ``reasoning`` so
operators can see why an episode was skipped.

When nothing matches, the episode is treated as Regular with low confidence:
attempting extraction on an unknown shape is cheaper than silently missing it.
"""

import logging
import re
from dataclasses import replace
from typing import Iterable, Optional

from .models import EpisodeClassification, EpisodeType, ProcessingRecommendation


logger = logging.getLogger("classifier")


INTERVIEW_KEYWORDS = (
    "interview",
    "conversation with",
    "talk with",
    "fireside chat",
    "q&a with",
    "discussion with",
)

SPECIAL_KEYWORDS = (
    "holiday special",
    "acquired live",
    "live from",
    "special episode",
    "year-end",
    "annual",
    "celebration",
)

SPINOFF_KEYWORDS = ("acq2",)

REGULAR_PATTERNS = (
    re.compile(r"^[A-Z][^:]*: The Complete History", re.IGNORECASE),
    re.compile(r"^[A-Z][^:]*: The Story", re.IGNORECASE),
    re.compile(r"^\w+: Volume \w+", re.IGNORECASE),
    re.compile(r"^\w+ \w+$"),
)

COMPANY_NAME_PATTERN = re.compile(r"^[A-Z][a-z]+( [A-Z][a-z]+)?$")
INTERVIEW_NAME_PATTERN = re.compile(r"\bwith [A-Z][a-z]+ [A-Z][a-z]+")
INTERVIEW_SUFFIX_PATTERN = re.compile(r"the .+ interview", re.IGNORECASE)
LIVE_LOCATION_PATTERN = re.compile(r"live from [a-z]", re.IGNORECASE)

BUSINESS_WORDS = ("inc", "corp", "company", "technologies", "systems", "group")

DEFAULT_MAX_RETRIES = 3


class EpisodeClassifier:
    """Ordered rule evaluation over episode titles and descriptions."""

    def classify(self, title: str, description: Optional[str] = None) -> EpisodeClassification:
        title = (title or "").strip()
        if not title:
            return EpisodeClassification(
                type=EpisodeType.UNKNOWN,
                confidence=0.0,
                reasoning=("Episode has no title",),
                should_skip=False,
                expected_sources=True,
            )

        reasoning: list[str] = []
        combined = f"{title.lower()} {(description or '').lower()}".strip()

        if self._is_interview(title, combined, reasoning):
            return EpisodeClassification(
                EpisodeType.INTERVIEW, 0.9, tuple(reasoning), should_skip=True, expected_sources=False
            )
        if self._is_special(combined, reasoning):
            return EpisodeClassification(
                EpisodeType.SPECIAL, 0.8, tuple(reasoning), should_skip=True, expected_sources=False
            )
        if self._is_spinoff(combined, reasoning):
            return EpisodeClassification(
                EpisodeType.SPECIAL, 0.7, tuple(reasoning), should_skip=True, expected_sources=False
            )
        if self._is_regular(title, reasoning):
            return EpisodeClassification(
                EpisodeType.REGULAR, 0.8, tuple(reasoning), should_skip=False, expected_sources=True
            )

        reasoning.append("Does not match known patterns, treating as regular episode")
        return EpisodeClassification(
            EpisodeType.REGULAR, 0.3, tuple(reasoning), should_skip=False, expected_sources=True
        )

    def classify_batch(self, episodes: Iterable[tuple[str, Optional[str]]]) -> list[EpisodeClassification]:
        return [self.classify(title, description) for title, description in episodes]

    @staticmethod
    def recommend(classification: EpisodeClassification) -> ProcessingRecommendation:
        """Map a classification to the scheduling policy of the retry queue."""
        if classification.type == EpisodeType.REGULAR:
            return ProcessingRecommendation(True, "high", 0, DEFAULT_MAX_RETRIES)
        if classification.type == EpisodeType.INTERVIEW:
            return ProcessingRecommendation(False, "skip", -1, 0)
        if classification.type == EpisodeType.SPECIAL:
            if classification.expected_sources:
                return ProcessingRecommendation(True, "low", 60 * 60, 1)
            return ProcessingRecommendation(False, "skip", -1, 0)
        # Unknown shapes get an immediate first attempt and the generic ceiling
        return ProcessingRecommendation(True, "medium", 0, DEFAULT_MAX_RETRIES)

    @staticmethod
    def update(
        classification: EpisodeClassification,
        has_source_doc: bool,
        found_count: int = 0,
    ) -> EpisodeClassification:
        """Return a copy nudged by what an extraction attempt actually found."""
        reasoning = list(classification.reasoning)

        if has_source_doc and found_count > 0:
            if classification.type == EpisodeType.REGULAR:
                reasoning.append(f"Confirmed: Found {found_count} books in sources")
                return replace(
                    classification,
                    confidence=min(1.0, classification.confidence + 0.1),
                    reasoning=tuple(reasoning),
                )
            reasoning.append(f"Reclassified: Unexpectedly found {found_count} books")
            logger.info(
                f"Reclassifying {classification.type.value} episode as regular ({found_count} books)"
            )
            return replace(
                classification,
                type=EpisodeType.REGULAR,
                confidence=0.7,
                reasoning=tuple(reasoning),
                should_skip=False,
                expected_sources=True,
            )

        if not has_source_doc:
            if classification.type in (EpisodeType.INTERVIEW, EpisodeType.SPECIAL):
                reasoning.append("Confirmed: No sources found as expected")
                return replace(
                    classification,
                    confidence=min(1.0, classification.confidence + 0.1),
                    reasoning=tuple(reasoning),
                )
            reasoning.append("Warning: Expected sources but none found")
            return replace(
                classification,
                confidence=max(0.1, classification.confidence - 0.2),
                reasoning=tuple(reasoning),
            )

        return classification

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    @staticmethod
    def _is_interview(title: str, combined: str, reasoning: list[str]) -> bool:
        for keyword in INTERVIEW_KEYWORDS:
            if keyword in combined:
                reasoning.append(f'Contains interview keyword: "{keyword}"')
                return True
        if INTERVIEW_NAME_PATTERN.search(title):
            reasoning.append('Contains "with [Name]" pattern typical of interviews')
            return True
        if INTERVIEW_SUFFIX_PATTERN.search(combined):
            reasoning.append('Title ends with "Interview"')
            return True
        return False

    @staticmethod
    def _is_special(combined: str, reasoning: list[str]) -> bool:
        for keyword in SPECIAL_KEYWORDS:
            if keyword in combined:
                reasoning.append(f'Contains special episode keyword: "{keyword}"')
                return True
        if LIVE_LOCATION_PATTERN.search(combined):
            reasoning.append('Contains "Live from [Location]" pattern')
            return True
        return False

    @staticmethod
    def _is_spinoff(combined: str, reasoning: list[str]) -> bool:
        for keyword in SPINOFF_KEYWORDS:
            if keyword in combined:
                reasoning.append(f'Contains "{keyword.upper()}" identifier')
                return True
        return False

    @staticmethod
    def _is_regular(title: str, reasoning: list[str]) -> bool:
        for pattern in REGULAR_PATTERNS:
            if pattern.search(title):
                reasoning.append(f"Matches regular episode pattern: {pattern.pattern}")
                return True
        if COMPANY_NAME_PATTERN.match(title):
            reasoning.append("Matches company name pattern")
            return True
        lowered = title.lower()
        for word in BUSINESS_WORDS:
            if word in lowered:
                reasoning.append(f'Contains business identifier: "{word}"')
                return True
        return False
