"""
Catalog entry model.

The catalog file is read by the presentation layer, so entries keep its
camelCase wire keys (coverUrl, amazonUrl, episodeRef, addedAt, source) while
the Python side uses snake_case attributes.
"""

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Provenance(str, Enum):
    AUTOMATED = "automated"
    MANUAL = "manual"
    BACKFILL = "backfill"


@dataclass(frozen=True)
class EpisodeRef:
    name: str
    season_number: int
    episode_number: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "seasonNumber": self.season_number,
            "episodeNumber": self.episode_number,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EpisodeRef":
        return cls(
            name=data.get("name", ""),
            season_number=int(data.get("seasonNumber") or 0),
            episode_number=int(data.get("episodeNumber") or 0),
        )


@dataclass(frozen=True)
class CatalogEntry:
    id: str
    title: str
    author: str
    cover_url: str
    product_url: str
    category: str
    episode_ref: EpisodeRef
    added_at: str
    provenance: Provenance = Provenance.AUTOMATED
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "title": self.title,
                "author": self.author,
                "coverUrl": self.cover_url,
                "amazonUrl": self.product_url,
                "category": self.category,
                "episodeRef": self.episode_ref.to_dict(),
                "addedAt": self.added_at,
                "source": self.provenance.value,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CatalogEntry":
        known = {
            "id", "title", "author", "coverUrl", "amazonUrl",
            "category", "episodeRef", "addedAt", "source",
        }
        try:
            provenance = Provenance(data.get("source", Provenance.MANUAL.value))
        except ValueError:
            provenance = Provenance.MANUAL
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            author=data.get("author", ""),
            cover_url=data.get("coverUrl", ""),
            product_url=data.get("amazonUrl", ""),
            category=data.get("category", ""),
            episode_ref=EpisodeRef.from_dict(data.get("episodeRef") or {}),
            added_at=data.get("addedAt", ""),
            provenance=provenance,
            extra={k: v for k, v in data.items() if k not in known},
        )


def fallback_entry_id(product_url: str, provenance: Provenance = Provenance.AUTOMATED) -> str:
    """Deterministic id for a link without a product code, stable across runs."""
    digest = hashlib.sha1(product_url.encode("utf-8")).hexdigest()[:12]
    return f"{provenance.value}-{digest}"


def entry_id(product_id: Optional[str], product_url: str, provenance: Provenance) -> str:
    return product_id or fallback_entry_id(product_url, provenance)
