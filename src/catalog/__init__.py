"""The persisted book catalog consumed by the presentation layer."""

from .categories import DEFAULT_CATEGORY, categorize
from .models import CatalogEntry, EpisodeRef, Provenance, entry_id, fallback_entry_id
from .writer import CatalogWriter, merge_entries

__all__ = [
    "DEFAULT_CATEGORY",
    "CatalogEntry",
    "CatalogWriter",
    "EpisodeRef",
    "Provenance",
    "categorize",
    "entry_id",
    "fallback_entry_id",
    "merge_entries",
]
