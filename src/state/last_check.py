"""
Last feed check state.

Remembers when the feed was last read, which episode ids have already been
seen, and for how many consecutive runs each domain has failed with transient
network errors. Deleting the file is safe: the next run falls back to the
lookback window and the failure streaks start over.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Union

from .errors import StateFileError
from .json_file import read_json, write_json_atomic


logger = logging.getLogger("state")

LAST_CHECK_FILENAME = "last-rss-check.json"
MAX_SEEN_IDS = 1000
SYSTEMIC_FAILURE_RUNS = 2


@dataclass
class LastCheckState:
    timestamp: Optional[datetime] = None
    seen_ids: list[str] = field(default_factory=list)
    domain_failures: dict[str, int] = field(default_factory=dict)

    def record_run(
        self,
        checked_at: datetime,
        seen_ids: Iterable[str],
        failed_domains: Iterable[str],
    ) -> None:
        """Advance the check time and roll the per-domain failure streaks."""
        self.timestamp = checked_at

        merged = list(dict.fromkeys([*self.seen_ids, *seen_ids]))
        self.seen_ids = merged[-MAX_SEEN_IDS:]

        failed = set(failed_domains)
        self.domain_failures = {
            domain: self.domain_failures.get(domain, 0) + 1 for domain in sorted(failed)
        }

    def systemic_domains(self, threshold: int = SYSTEMIC_FAILURE_RUNS) -> dict[str, int]:
        """Domains that failed in at least threshold consecutive runs."""
        return {d: n for d, n in self.domain_failures.items() if n >= threshold}

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "seen_ids": self.seen_ids,
            "domain_failures": self.domain_failures,
        }


class LastCheckStore:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> LastCheckState:
        data = read_json(self.path, default={})
        if not isinstance(data, dict):
            raise StateFileError(self.path, "expected an object")

        timestamp = None
        if data.get("timestamp"):
            try:
                timestamp = datetime.fromisoformat(str(data["timestamp"]).replace("Z", "+00:00"))
            except ValueError as e:
                raise StateFileError(self.path, f"invalid timestamp: {e}") from e
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=timezone.utc)

        state = LastCheckState(
            timestamp=timestamp,
            seen_ids=[str(i) for i in data.get("seen_ids", [])],
            domain_failures={str(k): int(v) for k, v in data.get("domain_failures", {}).items()},
        )
        if timestamp is None:
            logger.info("No previous feed check recorded, using the lookback window")
        return state

    def save(self, state: LastCheckState) -> None:
        write_json_atomic(self.path, state.to_dict())
