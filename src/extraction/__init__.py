"""Locate an episode's sources document and extract candidate product links."""

from .references import (
    ReferenceScan,
    export_urls,
    extract_document_id,
    extract_product_id,
    extract_references,
    is_isbn10,
    is_product_link,
    scan_links,
    slug_title,
)
from .source_document import find_document_link, find_source_document, unwrap_redirect

__all__ = [
    "ReferenceScan",
    "export_urls",
    "extract_document_id",
    "extract_product_id",
    "extract_references",
    "find_document_link",
    "find_source_document",
    "is_isbn10",
    "is_product_link",
    "scan_links",
    "slug_title",
    "unwrap_redirect",
]
