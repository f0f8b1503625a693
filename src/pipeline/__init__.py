"""
Bookshelf pipeline module.

This module orchestrates one scheduled run of the book extraction workflow:
    1. Feed read and diff (src.ingestion)
    2. Classification and retry queue (src.ingestion, src.state)
    3. Sources document and product links (src.extraction)
    4. Metadata and covers (src.metadata, src.storage)
    5. Catalog merge and run summary (src.catalog, src.notify)

Usage:
    # CLI interface
    uv run -m src.pipeline
    uv run -m src.pipeline --dry-run
    uv run -m src.pipeline --backfill URL [URL ...]

    # Programmatic interface
    from src.pipeline import PipelineConfig, run_pipeline
    summary = run_pipeline(PipelineConfig.from_env())
"""

__version__ = "0.1.0"

from .config import PipelineConfig
from .orchestrator import (
    apply_outcome,
    backfill_record,
    detect_gaps,
    find_catalog_gaps,
    process_records,
    review_items,
    run_backfill,
    run_pipeline,
)
from .stages import (
    EpisodeOutcome,
    PipelineContext,
    build_catalog_entries,
    build_context,
    episode_ref_for,
    process_episode,
    run_feed_stage,
)

__all__ = [
    # Configuration
    "PipelineConfig",
    # Main pipeline orchestration
    "run_pipeline",
    "run_backfill",
    "detect_gaps",
    "process_records",
    "apply_outcome",
    "review_items",
    "backfill_record",
    "find_catalog_gaps",
    # Stage functions
    "EpisodeOutcome",
    "PipelineContext",
    "build_context",
    "build_catalog_entries",
    "episode_ref_for",
    "process_episode",
    "run_feed_stage",
]
