"""Single best-guess category for a book from its subjects and title keywords."""

import re

from src.metadata import BookMetadata


DEFAULT_CATEGORY = "Business"

# Checked in order; the first category with a matching subject or title keyword wins
CATEGORY_RULES = (
    (
        "Business",
        re.compile(r"business|finance|economics|management|entrepreneurship|investing|money", re.IGNORECASE),
        ("business", "finance", "economics"),
    ),
    (
        "Technology",
        re.compile(r"technology|computer|software|programming|digital|internet", re.IGNORECASE),
        ("tech", "computer", "digital"),
    ),
    (
        "History",
        re.compile(r"history|historical|biography|memoir", re.IGNORECASE),
        ("history", "historical"),
    ),
)


def categorize(metadata: BookMetadata) -> str:
    title = metadata.title.lower()
    for category, subject_pattern, title_keywords in CATEGORY_RULES:
        if any(subject_pattern.search(s) for s in metadata.subjects):
            return category
        if any(keyword in title for keyword in title_keywords):
            return category
    return DEFAULT_CATEGORY
