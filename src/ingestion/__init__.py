"""
Ingestion package for the bookshelf pipeline.

Discovers new podcast episodes and decides whether they are worth processing:

1. Feed Reader (feed_reader.py):
   - Fetches the RSS feed through the URL guard
   - Parses items into immutable FeedItem values
   - Diffs them against the previously seen ids and the last check time

2. Episode Classifier (classifier.py):
   - Ordered rule evaluation over title and description
   - Maps a classification to a scheduling recommendation
   - Nudges confidence after an extraction attempt

Usage:
    # Show new feed items and how they would be scheduled
    uv run -m src.ingestion --days 30
"""

from .classifier import EpisodeClassifier
from .feed_reader import derive_item_id, fetch_feed, filter_new_items, parse_feed
from .models import EpisodeClassification, EpisodeType, FeedItem, ProcessingRecommendation

__all__ = [
    "EpisodeClassification",
    "EpisodeClassifier",
    "EpisodeType",
    "FeedItem",
    "ProcessingRecommendation",
    "derive_item_id",
    "fetch_feed",
    "filter_new_items",
    "parse_feed",
]
