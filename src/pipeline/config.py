"""
Configuration settings for the bookshelf pipeline.

Values come from the environment (a .env file is loaded first); CLI flags
override them in src.pipeline.__main__.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_FEED_URL = "https://feeds.transistor.fm/acquired"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


@dataclass
class PipelineConfig:
    """Configuration for one pipeline run"""

    # Feed and files
    feed_url: str = DEFAULT_FEED_URL
    data_dir: Path = Path("data")
    catalog_path: Path = Path("public/data/books.json")
    log_file: str = "logs/pipeline.log"

    # Scheduling
    lookback_days: int = 7
    requeue_delay: int = 2 * 60 * 60
    max_retries: int = 3

    # Execution
    max_workers: int = 3
    run_timeout: int = 15 * 60  # hard deadline for the whole run, seconds
    request_timeout: int = 30
    cache_ttl: int = 60 * 60

    # Retry policy for every network operation (2 retries, 1s doubling up to 8s)
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 8.0

    # Metadata batching
    batch_size: int = 10
    item_delay: float = 1.0
    batch_delay: float = 2.0

    # Outputs
    discord_webhook_url: Optional[str] = None
    mirror_covers: bool = True
    covers_dir: Path = Path("public")
    bucket_name: Optional[str] = None
    bucket_endpoint: Optional[str] = None
    bucket_key_id: Optional[str] = field(default=None, repr=False)
    bucket_access_key: Optional[str] = field(default=None, repr=False)
    bucket_public_url: Optional[str] = None

    dry_run: bool = False
    verbose: bool = False

    @property
    def queue_path(self) -> Path:
        return self.data_dir / "pending-episodes.json"

    @property
    def last_check_path(self) -> Path:
        return self.data_dir / "last-rss-check.json"

    @property
    def use_cloud_storage(self) -> bool:
        return bool(self.bucket_name and self.bucket_endpoint)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        load_dotenv()
        return cls(
            feed_url=os.getenv("FEED_URL") or DEFAULT_FEED_URL,
            data_dir=Path(os.getenv("DATA_DIR") or "data"),
            catalog_path=Path(os.getenv("CATALOG_PATH") or "public/data/books.json"),
            max_workers=_env_int("PIPELINE_MAX_WORKERS", 3),
            run_timeout=_env_int("PIPELINE_RUN_TIMEOUT", 15 * 60),
            discord_webhook_url=os.getenv("DISCORD_WEBHOOK_URL") or None,
            mirror_covers=os.getenv("MIRROR_COVERS", "1").lower() not in ("0", "false", "no"),
            covers_dir=Path(os.getenv("COVERS_DIR") or "public"),
            bucket_name=os.getenv("BUCKET_NAME") or None,
            bucket_endpoint=os.getenv("BUCKET_ENDPOINT") or None,
            bucket_key_id=os.getenv("BUCKET_KEY_ID") or None,
            bucket_access_key=os.getenv("BUCKET_ACCESS_KEY") or None,
            bucket_public_url=os.getenv("BUCKET_PUBLIC_URL") or None,
        )
