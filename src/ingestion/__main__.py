#!/usr/bin/env python3
"""
Main entry point for the ingestion package.

Reads the feed and prints how each recent episode would be classified and
scheduled, without touching the retry queue or the catalog:
    uv run -m src.ingestion
    uv run -m src.ingestion --days 30 --verbose
"""

import argparse
import sys
from datetime import datetime, timedelta, timezone

from src.logger import setup_logging
from src.network import NetworkError, RetryPolicy, UrlGuard
from src.pipeline.config import PipelineConfig
from src.ingestion import EpisodeClassifier, fetch_feed, filter_new_items


def main():
    """
    Entry point for the ingestion preview CLI.

    Exits the process with code 0 on success, 1 on error, or 130 when interrupted by the user.
    """
    parser = argparse.ArgumentParser(
        description="Preview new feed episodes and their classification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  uv run -m src.ingestion                    # Episodes from the last 7 days
  uv run -m src.ingestion --days 60          # Episodes from the last 60 days
  uv run -m src.ingestion --feed-url https://feeds.transistor.fm/acquired
        """,
    )
    parser.add_argument("--days", type=int, default=7, help="Days back to look (default: 7)")
    parser.add_argument(
        "--feed-url",
        type=str,
        default=None,
        help="RSS feed URL (overrides FEED_URL from .env)",
    )
    parser.add_argument("--verbose", action="store_true", help="Detailed console output")
    args = parser.parse_args()

    # Setup logging using centralized utility
    logger = setup_logging(
        logger_name="feed_reader",
        log_file="logs/ingestion.log",
        verbose=args.verbose,
    )
    setup_logging(logger_name="url_guard", log_file="logs/ingestion.log", verbose=args.verbose)

    feed_url = args.feed_url or PipelineConfig.from_env().feed_url
    classifier = EpisodeClassifier()

    try:
        items = fetch_feed(feed_url, UrlGuard(), RetryPolicy())
        items = filter_new_items(
            items,
            last_check=None,
            now=datetime.now(timezone.utc),
            lookback=timedelta(days=args.days),
        )
        if not items:
            print(f"No episodes in the last {args.days} days")
            return

        for item in items:
            classification = classifier.classify(item.title, item.description)
            recommendation = classifier.recommend(classification)
            action = f"process ({recommendation.priority})" if recommendation.should_process else "skip"
            print(
                f"{item.published_at:%Y-%m-%d}  {classification.type.value:<9} "
                f"{classification.confidence:.1f}  {action:<16} {item.title}"
            )
            if args.verbose:
                for reason in classification.reasoning:
                    print(f"    - {reason}")
        logger.info(f"Previewed {len(items)} episodes from {feed_url}")
    except KeyboardInterrupt:
        print("\nPreview interrupted by user")
        sys.exit(130)
    except NetworkError as e:
        print(f"✗ Feed read failed: {e}")
        logger.error(f"Feed read failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
