"""
URL guard: the single choke point for every outbound request.

Every URL the pipeline fetches (feed, episode pages, source documents, product
pages, bibliographic API, cover images, webhooks) goes through
``UrlGuard.validate`` first. Anything that is not an allowlisted http(s) host on
a safe port with an expected path shape is rejected before a socket is opened.

Usage:
    guard = UrlGuard()
    result = guard.validate("https://www.amazon.com/dp/B00TEST000?tag=x#top")
    result.sanitized  # "https://www.amazon.com/dp/B00TEST000"

    response = guard.safe_fetch("https://openlibrary.org/search.json?q=B00TEST000")
"""

import ipaddress
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

import requests

from .errors import HttpStatusError, TransientNetworkError, UrlValidationError


logger = logging.getLogger("url_guard")


USER_AGENT = "Acquired Bookshelf Scraper/1.0"
REQUEST_TIMEOUT = 30
MAX_REDIRECTS = 5

ALLOWED_PROTOCOLS = ("http", "https")

ALLOWED_DOMAINS = (
    "www.acquired.fm",
    "acquired.fm",
    "docs.google.com",
    "openlibrary.org",
    "covers.openlibrary.org",
    # Open Library serves cover images by redirecting to its archive hosts
    "archive.org",
    "amazon.com",
    "www.amazon.com",
    "images-na.ssl-images-amazon.com",
    "m.media-amazon.com",
    "feeds.transistor.fm",
    "discord.com",
    "discordapp.com",
)

BLOCKED_DOMAINS = (
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "::1",
    "metadata.google.internal",
    "169.254.169.254",
)

BLOCKED_SUFFIXES = (".local", ".localhost", ".internal")

DANGEROUS_PORTS = frozenset(
    {22, 23, 25, 53, 135, 139, 445, 993, 995, 1433, 3306, 3389, 5432, 6379, 8080, 9200}
)

DOCUMENT_HOST = "docs.google.com"
ARCHIVE_HOST = "archive.org"
ARCHIVE_IMAGE_PATHS = ("/download/", "/view_archive.php")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")
MARKETPLACE_ISBN_PATH = re.compile(r"/[0-9]{9}[0-9X](?:/|$)")
DOCUMENT_PARAMS = ("id", "format", "export")
MARKETPLACE_TRACKING_PARAMS = (
    "ref",
    "ref_",
    "tag",
    "linkCode",
    "camp",
    "creative",
    "creativeASIN",
    "th",
    "psc",
)

SUSPICIOUS_PATH_PATTERNS = (
    re.compile(r"/\.\."),
    re.compile(r"/etc/"),
    re.compile(r"/proc/"),
    re.compile(r"/admin"),
    re.compile(r"/api/v[0-9]+/internal"),
)

MAX_URL_LENGTH = 2048
MAX_PATH_LENGTH = 500
MAX_QUERY_LENGTH = 1000


@dataclass(frozen=True)
class ValidatedURL:
    """Outcome of UrlGuard.validate; only the guard builds these."""

    valid: bool
    sanitized: Optional[str] = None
    reason: Optional[str] = None
    warnings: tuple[str, ...] = field(default_factory=tuple)


def _is_marketplace(hostname: str) -> bool:
    return hostname == "amazon.com" or hostname.endswith("amazon.com")


class UrlGuard:
    """Validate, sanitize and fetch URLs under an allowlist policy."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        allowed_domains: Iterable[str] = ALLOWED_DOMAINS,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.session = session or requests.Session()
        self.allowed_domains = tuple(d.lower() for d in allowed_domains)
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, raw: str) -> ValidatedURL:
        """Validate and sanitize raw for a safe HTTP request."""
        warnings: list[str] = []

        if not raw or not isinstance(raw, str):
            return ValidatedURL(valid=False, reason="Empty URL")

        raw = raw.strip()
        try:
            parts = urlsplit(raw)
            port = parts.port
        except ValueError as e:
            return ValidatedURL(valid=False, reason=f"Invalid URL format: {e}")

        scheme = parts.scheme.lower()
        if scheme not in ALLOWED_PROTOCOLS:
            return ValidatedURL(valid=False, reason=f"Protocol not allowed: {scheme or 'none'}")

        hostname = (parts.hostname or "").lower().rstrip(".")
        if not hostname:
            return ValidatedURL(valid=False, reason="URL has no hostname")

        if parts.username or parts.password:
            return ValidatedURL(valid=False, reason="Credentials in URL are not allowed")

        if self._is_blocked_domain(hostname):
            return ValidatedURL(valid=False, reason=f"Domain is blocked: {hostname}")

        if not self._is_allowed_domain(hostname):
            return ValidatedURL(valid=False, reason=f"Domain not in allowlist: {hostname}")

        if port is not None and self._is_dangerous_port(port):
            return ValidatedURL(valid=False, reason=f"Dangerous port detected: {port}")

        path = parts.path or "/"
        if not self._is_valid_path(hostname, path):
            return ValidatedURL(
                valid=False, reason=f"Invalid path for domain {hostname}: {path}"
            )

        if len(raw) > MAX_URL_LENGTH:
            warnings.append("URL is unusually long")
        warnings.extend(self._suspicious_patterns(raw, path, parts.query))

        sanitized = self._sanitize(scheme, hostname, port, path, parts.query)
        return ValidatedURL(valid=True, sanitized=sanitized, warnings=tuple(warnings))

    def filter_valid(self, urls: Iterable[str]) -> list[str]:
        """Sanitized versions of the valid URLs in urls; rejections are logged."""
        valid = []
        for url in urls:
            result = self.validate(url)
            if result.valid:
                valid.append(result.sanitized)
                if result.warnings:
                    logger.warning(f"URL warnings for {url}: {list(result.warnings)}")
            else:
                logger.warning(f"Invalid URL {url}: {result.reason}")
        return valid

    def require(self, raw: str) -> str:
        """Sanitized raw, or UrlValidationError when the guard rejects it."""
        result = self.validate(raw)
        if not result.valid:
            logger.warning(f"Rejected {raw}: {result.reason}")
            raise UrlValidationError(raw, result.reason)
        if result.warnings:
            logger.warning(f"URL validation warnings for {raw}: {list(result.warnings)}")
        return result.sanitized

    def _is_blocked_domain(self, hostname: str) -> bool:
        if hostname in BLOCKED_DOMAINS:
            return True
        if hostname.startswith("localhost") or hostname.endswith(BLOCKED_SUFFIXES):
            return True
        try:
            address = ipaddress.ip_address(hostname)
        except ValueError:
            return False
        return (
            address.is_private
            or address.is_loopback
            or address.is_link_local
            or address.is_reserved
            or address.is_multicast
            or address.is_unspecified
        )

    def _is_allowed_domain(self, hostname: str) -> bool:
        for allowed in self.allowed_domains:
            if hostname == allowed or hostname.endswith(f".{allowed}"):
                return True
        return False

    @staticmethod
    def _is_dangerous_port(port: int) -> bool:
        return port in DANGEROUS_PORTS or port < 80 or port > 65535

    @staticmethod
    def _is_valid_path(hostname: str, path: str) -> bool:
        if any(pattern.search(path) for pattern in SUSPICIOUS_PATH_PATTERNS):
            return False

        if hostname == DOCUMENT_HOST:
            return path.startswith(("/document/", "/spreadsheets/", "/presentation/"))

        if _is_marketplace(hostname):
            return (
                "/dp/" in path
                or path.startswith(("/gp/", "/images/", "/s/"))
                or path == "/s"
                or "/B0" in path
                or bool(MARKETPLACE_ISBN_PATH.search(path))
            )

        if hostname == ARCHIVE_HOST or hostname.endswith(f".{ARCHIVE_HOST}"):
            return path.startswith(ARCHIVE_IMAGE_PATHS) or path.lower().endswith(IMAGE_EXTENSIONS)

        if hostname == "openlibrary.org":
            return path.startswith(("/api/", "/search", "/works/", "/books/"))

        if hostname in ("discord.com", "discordapp.com"):
            return path.startswith("/api/webhooks/")

        return True

    @staticmethod
    def _suspicious_patterns(raw: str, path: str, query: str) -> list[str]:
        warnings = []
        lowered = raw.lower()
        if "%2e%2e" in lowered or "%2f%2f" in lowered:
            warnings.append("URL contains suspicious encoding patterns")
        if any(ord(ch) > 127 for ch in raw):
            warnings.append("URL contains non-ASCII characters")
        if len(path) > MAX_PATH_LENGTH:
            warnings.append("URL path is unusually long")
        if len(query) > MAX_QUERY_LENGTH:
            warnings.append("URL query string is unusually long")
        return warnings

    @staticmethod
    def _sanitize(scheme: str, hostname: str, port: Optional[int], path: str, query: str) -> str:
        netloc = hostname if port is None else f"{hostname}:{port}"

        if hostname == DOCUMENT_HOST:
            params = [(k, v) for k, v in parse_qsl(query, keep_blank_values=True) if k in DOCUMENT_PARAMS]
            query = urlencode(params)
        elif _is_marketplace(hostname) and query:
            params = [
                (k, v)
                for k, v in parse_qsl(query, keep_blank_values=True)
                if k not in MARKETPLACE_TRACKING_PARAMS
            ]
            query = urlencode(params)

        # Fragment is always dropped
        return urlunsplit((scheme, netloc, path, query, ""))

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def safe_fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[dict] = None,
        raise_for_status: bool = True,
        **kwargs,
    ) -> requests.Response:
        """
        Fetch url after validation; every redirect hop is validated again.

        Args:
            url: Target URL (raw, will be validated and sanitized)
            method: HTTP method (default: GET)
            headers: Extra headers; the identifying user agent always wins
            raise_for_status: Raise HttpStatusError / TransientNetworkError on non-2xx
            **kwargs: Passed to requests (e.g. json=... for webhooks)

        Returns:
            requests.Response of the final hop

        Raises:
            UrlValidationError: The URL or a redirect target was rejected
            TransientNetworkError: Timeout, connection failure, 5xx or 429
            HttpStatusError: Any other non-2xx status when raise_for_status is set
        """
        target = self.require(url)
        request_headers = dict(headers or {})
        request_headers["User-Agent"] = USER_AGENT

        for _ in range(MAX_REDIRECTS + 1):
            try:
                response = self.session.request(
                    method,
                    target,
                    headers=request_headers,
                    timeout=self.timeout,
                    allow_redirects=False,
                    **kwargs,
                )
            except (requests.Timeout, requests.ConnectionError) as e:
                raise TransientNetworkError(f"{type(e).__name__} fetching {target}", target) from e
            except requests.RequestException as e:
                raise TransientNetworkError(f"Request failed for {target}: {e}", target) from e

            if response.is_redirect or response.status_code in (301, 302, 303, 307, 308):
                location = response.headers.get("Location")
                if not location:
                    break
                target = self.require(urljoin(target, location))
                if response.status_code == 303:
                    method = "GET"
                continue
            break
        else:
            raise TransientNetworkError(f"Too many redirects for {url}", url)

        if raise_for_status:
            status = response.status_code
            if status == 429 or status >= 500:
                raise TransientNetworkError(f"HTTP {status} for {target}", target, status)
            if not 200 <= status < 300:
                raise HttpStatusError(target, status)

        return response
