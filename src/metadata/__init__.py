"""Resolve candidate product links into bibliographic metadata."""

from .covers import CoverResolver, candidate_cover_urls
from .models import (
    PLACEHOLDER_COVER,
    BatchResolution,
    BookMetadata,
    DataQualityIssue,
    ResolvedReference,
    SourceTier,
)
from .openlibrary import OpenLibraryClient, doc_to_metadata
from .product_page import parse_product_page, scrape_product_page
from .resolver import MetadataResolver, validation_issue

__all__ = [
    "PLACEHOLDER_COVER",
    "BatchResolution",
    "BookMetadata",
    "CoverResolver",
    "DataQualityIssue",
    "MetadataResolver",
    "OpenLibraryClient",
    "ResolvedReference",
    "SourceTier",
    "candidate_cover_urls",
    "doc_to_metadata",
    "parse_product_page",
    "scrape_product_page",
    "validation_issue",
]
