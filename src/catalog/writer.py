"""
Catalog writer: append-and-merge of new entries into the catalog file.

Existing entries are kept exactly as they were read (unknown keys included).
An incoming entry whose id is already present is dropped, so running the same
input twice leaves the file unchanged. The merged list is sorted by season
then episode, both descending; the sort is stable so ties keep their order.
"""

import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from src.logger import log_function
from src.state import StateFileError, read_json, write_json_atomic

from .models import CatalogEntry


logger = logging.getLogger("catalog")


def _sort_key(entry: dict[str, Any]) -> tuple[int, int]:
    ref = entry.get("episodeRef") or {}
    try:
        season = int(ref.get("seasonNumber") or 0)
        episode = int(ref.get("episodeNumber") or 0)
    except (TypeError, ValueError):
        season, episode = 0, 0
    return -season, -episode


def merge_entries(
    existing: list[dict[str, Any]], incoming: Iterable[CatalogEntry]
) -> tuple[list[dict[str, Any]], list[CatalogEntry]]:
    """
    Merge incoming entries into existing ones.

    Returns:
        (merged catalog, entries that were actually added)
    """
    seen_ids = {str(entry["id"]) for entry in existing}
    added: list[CatalogEntry] = []
    for entry in incoming:
        if entry.id in seen_ids:
            logger.debug(f"Skipping {entry.id}: already in catalog")
            continue
        seen_ids.add(entry.id)
        added.append(entry)

    merged = list(existing) + [entry.to_dict() for entry in added]
    merged.sort(key=_sort_key)
    return merged, added


class CatalogWriter:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> list[dict[str, Any]]:
        """
        Read the catalog; a missing or empty file is an empty catalog.

        Raises:
            StateFileError: The file is corrupt or not a list of entries with ids
        """
        data = read_json(self.path, default=[])
        if not isinstance(data, list):
            raise StateFileError(self.path, "catalog must be a JSON array")
        for index, entry in enumerate(data):
            if not isinstance(entry, dict) or "id" not in entry:
                raise StateFileError(self.path, f"catalog entry {index} has no id")
        logger.info(f"Loaded {len(data)} catalog entries from {self.path}")
        return data

    @log_function(logger_name="catalog", log_execution_time=True)
    def commit(
        self,
        entries: Iterable[CatalogEntry],
        existing: Optional[list[dict[str, Any]]] = None,
        dry_run: bool = False,
    ) -> list[CatalogEntry]:
        """
        Merge entries into the catalog and write it atomically.

        Args:
            entries: New entries produced by this run
            existing: Catalog content already loaded at the start of the run
            dry_run: Compute the merge without writing

        Returns:
            Entries that were added (duplicates of existing ids excluded)
        """
        if existing is None:
            existing = self.load()

        merged, added = merge_entries(existing, entries)
        if not added:
            logger.info("All books already exist in the catalog")
            return added

        if dry_run:
            logger.info(f"DRY RUN - would add {len(added)} books to {self.path}")
            return added

        write_json_atomic(self.path, merged)
        logger.info(f"Updated {self.path} with {len(added)} new books")
        return added
