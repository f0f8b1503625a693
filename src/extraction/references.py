"""
Reference extractor: pull candidate product links out of a sources document.

The document is fetched through a list of export representations (HTML
export, published page, edit URL rewritten to export) and the first one that
answers wins. Every anchor is unwrapped from redirect wrappers, filtered on
the marketplace link shape (links to IP literals and internal hosts are kept
whatever their shape), and then passed through the URL guard. Links the
guard refuses are reported in ``ReferenceScan.rejected`` and never fetched.
"""

import ipaddress
import logging
import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import unquote, urlsplit

from bs4 import BeautifulSoup

from src.logger import log_function
from src.network import RetryPolicy, SourceUnavailableError, UrlGuard, UrlValidationError

from .source_document import unwrap_redirect


logger = logging.getLogger("extraction")

DOCUMENT_ID_PATTERN = re.compile(r"/document/d/([a-zA-Z0-9_-]+)")
PUBLISHED_DOCUMENT_PATTERN = re.compile(r"/document/d/e/([a-zA-Z0-9_-]+)")

PRODUCT_ID_PATTERNS = (
    re.compile(r"/dp/([A-Z0-9]{10})"),
    re.compile(r"/gp/product/([A-Z0-9]{10})"),
    re.compile(r"/([B][0-9A-Z]{9})"),
    re.compile(r"/([0-9]{9}[0-9X])(?:[/?]|$)"),
)
PRODUCT_CODE_IN_PATH = re.compile(r"/[B][0-9A-Z]{9}|/[0-9]{9}[0-9X](?:/|$)")
INTERNAL_HOST_SUFFIXES = (".local", ".localhost", ".internal")
ISBN10_PATTERN = re.compile(r"^[0-9]{9}[0-9X]$")
ISBN_PATH_SEGMENT = re.compile(r"/[0-9]{9}[0-9X](?:/|$)")

SLUG_NOISE = re.compile(r"ebook|kindle|edition|audiobook|hardcover|paperback", re.IGNORECASE)


@dataclass
class ReferenceScan:
    """Candidate links found in one document."""

    document_url: str
    links: list[str] = field(default_factory=list)
    rejected: list[tuple[str, str]] = field(default_factory=list)
    representation: Optional[str] = None


def extract_document_id(document_url: str) -> Optional[str]:
    match = DOCUMENT_ID_PATTERN.search(document_url)
    if not match or match.group(1) == "e":
        return None
    return match.group(1)


def export_urls(document_url: str) -> list[str]:
    """Export representations of a document, in the order they are tried."""
    if PUBLISHED_DOCUMENT_PATTERN.search(document_url):
        return [document_url]

    document_id = extract_document_id(document_url)
    if not document_id:
        return []

    candidates = [
        f"https://docs.google.com/document/d/{document_id}/export?format=html",
        f"https://docs.google.com/document/d/{document_id}/pub",
    ]
    if "/edit" in document_url:
        candidates.append(document_url.split("#", 1)[0].replace("/edit", "/export?format=html", 1))
    return list(dict.fromkeys(candidates))


def is_product_link(url: str) -> bool:
    """Marketplace link shape: a product path or an embedded product code."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return False
    return "/dp/" in path or "/gp/product/" in path or bool(PRODUCT_CODE_IN_PATH.search(path))


def extract_product_id(url: str) -> Optional[str]:
    """Stable product identifier (ASIN / ISBN-10) embedded in a product URL."""
    for pattern in PRODUCT_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def is_isbn10(product_id: Optional[str]) -> bool:
    return bool(product_id and ISBN10_PATTERN.match(product_id))


def slug_title(url: str) -> Optional[str]:
    """Title guess from the slug before /dp/ or an ISBN segment: /Shoe-Dog-Memoir/dp/... -> "Shoe Dog Memoir"."""
    try:
        path = unquote(urlsplit(url).path)
    except ValueError:
        return None
    if "/dp/" in path:
        prefix = path.split("/dp/", 1)[0]
    else:
        match = ISBN_PATH_SEGMENT.search(path)
        if not match:
            return None
        prefix = path[: match.start()]
    slug = prefix.rstrip("/").rsplit("/", 1)[-1]
    if not slug:
        return None
    title = SLUG_NOISE.sub("", slug.replace("-", " "))
    title = re.sub(r"[^a-zA-Z0-9\s]", " ", title)
    title = re.sub(r"\s+", " ", title).strip()
    return title or None


def _is_internal_host(url: str) -> bool:
    """IP literal or internal hostname; such links are always reported, whatever their shape."""
    try:
        hostname = (urlsplit(url).hostname or "").lower().rstrip(".")
    except ValueError:
        return False
    if hostname == "localhost" or hostname.endswith(INTERNAL_HOST_SUFFIXES):
        return True
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True


def scan_links(html: str, guard: UrlGuard) -> tuple[list[str], list[tuple[str, str]]]:
    """Guard-approved, de-duplicated product links in html, plus the rejections."""
    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []
    rejected: list[tuple[str, str]] = []

    for anchor in soup.find_all("a", href=True):
        href = unwrap_redirect(anchor["href"].strip())
        product_shaped = is_product_link(href)
        if not product_shaped and not _is_internal_host(href):
            continue
        result = guard.validate(href)
        if not result.valid:
            logger.warning(f"Rejected candidate link {href}: {result.reason}")
            rejected.append((href, result.reason))
            continue
        if result.warnings:
            logger.warning(f"Candidate link warnings for {href}: {list(result.warnings)}")
        if product_shaped:
            links.append(result.sanitized)

    return list(dict.fromkeys(links)), rejected


@log_function(logger_name="extraction", log_execution_time=True)
def extract_references(
    document_url: str, guard: UrlGuard, retry_policy: RetryPolicy
) -> ReferenceScan:
    """
    Fetch a sources document and return the product links it contains.

    Raises:
        SourceUnavailableError: No export representation could be fetched
    """
    representations = export_urls(document_url)
    if not representations:
        logger.error(f"Could not extract document ID from {document_url}")
        return ReferenceScan(document_url=document_url)

    last_error = None
    for url in representations:
        outcome = retry_policy.run(lambda url=url: guard.safe_fetch(url), label=f"document {url}")
        if outcome.ok:
            links, rejected = scan_links(outcome.value.text, guard)
            logger.info(f"Found {len(links)} product links in {url}")
            return ReferenceScan(
                document_url=document_url,
                links=links,
                rejected=rejected,
                representation=url,
            )
        last_error = outcome.error
        if not isinstance(outcome.error, UrlValidationError):
            logger.info(f"Representation {url} failed, trying next")

    raise SourceUnavailableError(
        f"Could not fetch document content for {document_url}: {last_error}", document_url
    ) from last_error
