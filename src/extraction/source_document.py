"""
Source resolver: find the "episode sources" document linked from an episode page.

Links whose text or surrounding paragraph mention the sources label win over
any other document link on the page. A page with no document link at all is
a normal outcome (the document may not be published yet) and returns None.
"""

import logging
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from bs4 import BeautifulSoup

from src.logger import log_function
from src.network import (
    HttpStatusError,
    RetryPolicy,
    SourceUnavailableError,
    UrlGuard,
    UrlValidationError,
)


logger = logging.getLogger("extraction")

DOCUMENT_HOST = "docs.google.com"
SOURCES_LABEL = "episode sources"


def unwrap_redirect(href: str) -> str:
    """Strip one layer of a google.com/url?q=... (or url=...) redirect wrapper."""
    try:
        parts = urlsplit(href)
    except ValueError:
        return href
    host = (parts.hostname or "").lower()
    if (host == "google.com" or host.endswith(".google.com")) and parts.path == "/url":
        params = parse_qs(parts.query)
        for key in ("q", "url"):
            if params.get(key):
                return params[key][0]
    return href


def _is_document_link(href: str) -> bool:
    try:
        host = (urlsplit(href).hostname or "").lower()
    except ValueError:
        return False
    return host == DOCUMENT_HOST


def find_document_link(html: str) -> Optional[str]:
    """Best sources-document link in an episode page, or None."""
    soup = BeautifulSoup(html, "html.parser")
    anchors = [(a, unwrap_redirect(a.get("href", "").strip())) for a in soup.find_all("a", href=True)]

    for anchor, href in anchors:
        if not _is_document_link(href):
            continue
        link_text = anchor.get_text(" ", strip=True).lower()
        parent_text = anchor.parent.get_text(" ", strip=True).lower() if anchor.parent else ""
        container = anchor.find_parent(["p", "div", "li"])
        nearby_text = container.get_text(" ", strip=True).lower() if container else ""
        if (
            "sources" in link_text
            or SOURCES_LABEL in parent_text
            or SOURCES_LABEL in nearby_text
        ):
            return href

    for _, href in anchors:
        if _is_document_link(href) and "/document/" in href:
            return href

    return None


@log_function(logger_name="extraction", log_execution_time=True)
def find_source_document(
    episode_url: str, guard: UrlGuard, retry_policy: RetryPolicy
) -> Optional[str]:
    """
    Fetch an episode page and return its sources document URL.

    Returns:
        Document URL, or None when the page links no document

    Raises:
        UrlValidationError: The episode URL itself is rejected by the guard
        SourceUnavailableError: The page could not be fetched after retries
    """
    outcome = retry_policy.run(lambda: guard.safe_fetch(episode_url), label=f"episode page {episode_url}")
    if not outcome.ok:
        if isinstance(outcome.error, UrlValidationError):
            raise outcome.error
        status = outcome.error.status if isinstance(outcome.error, HttpStatusError) else None
        raise SourceUnavailableError(
            f"Episode page unavailable ({status or 'network'}): {outcome.error}", episode_url
        ) from outcome.error

    document_url = find_document_link(outcome.value.text)
    if document_url:
        logger.info(f"Found sources document: {document_url}")
    else:
        logger.info(f"No sources document linked from {episode_url}")
    return document_url
