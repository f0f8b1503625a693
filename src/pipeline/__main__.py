#!/usr/bin/env python3
"""
CLI interface for the bookshelf pipeline.

One scheduled run goes from the RSS feed to the book catalog:
    1. Read the feed and detect new episodes
    2. Classify them and queue the ones expected to have sources
    3. Find each ready episode's sources document and its product links
    4. Resolve book metadata and covers
    5. Merge new books into the catalog and send one Discord summary

Usage:
    uv run -m src.pipeline
    uv run -m src.pipeline --dry-run --verbose
    uv run -m src.pipeline --backfill https://www.acquired.fm/episodes/nvidia-part-iii
    uv run -m src.pipeline --detect-gaps
"""

import sys
import argparse
from pathlib import Path

from src.logger import setup_logging
from src.network import NetworkError
from src.state import StateFileError
from .config import PipelineConfig
from .orchestrator import detect_gaps, run_backfill, run_pipeline


LOGGER_NAMES = [
    "pipeline",
    "url_guard",
    "retry",
    "feed_reader",
    "classifier",
    "retry_queue",
    "state",
    "extraction",
    "metadata",
    "catalog",
    "storage",
    "notify",
]


def parse_arguments(argv=None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Bookshelf Pipeline - Extracts the books mentioned in podcast episodes into the catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Modes (default: scheduled run):
  (default)         Read the feed, process ready episodes, update the catalog
  --backfill        Process explicit episode page URLs (provenance: backfill)
  --detect-gaps     List feed episodes that have no book in the catalog

Environment:
  FEED_URL, DATA_DIR, CATALOG_PATH, DISCORD_WEBHOOK_URL,
  PIPELINE_MAX_WORKERS, PIPELINE_RUN_TIMEOUT,
  BUCKET_ENDPOINT, BUCKET_KEY_ID, BUCKET_ACCESS_KEY, BUCKET_NAME, BUCKET_PUBLIC_URL

Notes:
  - CLI flags override environment variables (a .env file is loaded)
  - Deleting the files in the data directory is safe: the next run
    treats every episode from the last 7 days as new
  - Logs written to logs/pipeline.log
        """,
    )

    mode_group = parser.add_argument_group("modes").add_mutually_exclusive_group()
    mode_group.add_argument(
        "--backfill",
        type=str,
        nargs="+",
        metavar="URL",
        help="Episode page URL(s) to process outside the feed",
    )
    mode_group.add_argument(
        "--detect-gaps",
        action="store_true",
        help="List feed episodes without catalog entries and exit",
    )

    options_group = parser.add_argument_group("options")
    options_group.add_argument("--feed-url", type=str, metavar="URL", help="RSS feed URL")
    options_group.add_argument("--catalog", type=Path, metavar="PATH", help="Catalog JSON file")
    options_group.add_argument(
        "--data-dir", type=Path, metavar="DIR", help="Directory for the retry queue and last check files"
    )
    options_group.add_argument(
        "--max-workers", type=int, metavar="N", help="Episodes processed concurrently (default: 3)"
    )
    options_group.add_argument(
        "--timeout", type=int, metavar="SECONDS", help="Hard deadline for the whole run (default: 900)"
    )
    options_group.add_argument(
        "--no-mirror",
        action="store_true",
        help="Keep external cover URLs instead of uploading covers to storage",
    )
    options_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Run everything but write no files (the notification is still sent)",
    )
    options_group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging output",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> PipelineConfig:
    config = PipelineConfig.from_env()
    if args.feed_url:
        config.feed_url = args.feed_url
    if args.catalog:
        config.catalog_path = args.catalog
    if args.data_dir:
        config.data_dir = args.data_dir
    if args.max_workers is not None:
        config.max_workers = args.max_workers
    if args.timeout is not None:
        config.run_timeout = args.timeout
    if args.no_mirror:
        config.mirror_covers = False
    config.dry_run = args.dry_run
    config.verbose = args.verbose
    return config


def main(argv=None):
    """Main entry point for the pipeline CLI."""
    args = parse_arguments(argv)
    config = build_config(args)

    # Setup logging
    for name in LOGGER_NAMES[1:]:
        setup_logging(logger_name=name, log_file=config.log_file, verbose=args.verbose)
    logger = setup_logging(logger_name="pipeline", log_file=config.log_file, verbose=args.verbose)

    if config.max_workers < 1 or config.run_timeout < 1:
        print("✗ Error: --max-workers and --timeout must be positive", file=sys.stderr)
        sys.exit(1)

    logger.info("=" * 80)
    logger.info("Pipeline execution started")
    logger.info(f"Feed: {config.feed_url}")
    logger.info(f"Catalog: {config.catalog_path}")
    logger.info(f"Options: dry_run={config.dry_run}, workers={config.max_workers}, timeout={config.run_timeout}s")
    logger.info("=" * 80)

    try:
        if args.detect_gaps:
            gaps = detect_gaps(config)
            print(f"{len(gaps)} episodes without books in the catalog:")
            for item in gaps:
                print(f"  - {item.published_at:%Y-%m-%d}  {item.title}  {item.link}")
            sys.exit(0)

        if args.backfill:
            summary = run_backfill(config, args.backfill)
        else:
            summary = run_pipeline(config)

    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user")
        print("\n✗ PIPELINE INTERRUPTED", file=sys.stderr)
        sys.exit(130)
    except (StateFileError, NetworkError, OSError) as e:
        logger.error(f"Pipeline execution failed: {e}")
        print(f"\n✗ PIPELINE FAILED: {e}", file=sys.stderr)
        sys.exit(1)

    print("\n" + "=" * 80)
    if summary.ok:
        print("✓ PIPELINE COMPLETED SUCCESSFULLY")
    else:
        print("⚠ PIPELINE COMPLETED WITH ERRORS")
    print(f"  {summary.describe()}")
    for entry in summary.added:
        print(f"  + {entry.title} by {entry.author}")
    print("=" * 80)
    logger.info("Pipeline execution completed")


if __name__ == "__main__":
    main()
