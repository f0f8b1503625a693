"""
Error taxonomy for outbound requests.

    NetworkError
    ├── UrlValidationError      rejected by the URL guard, never retried
    ├── TransientNetworkError   timeout, connection reset, 5xx, 429; retried
    ├── HttpStatusError         any other non-2xx status
    └── SourceUnavailableError  every attempt and representation failed
"""

from typing import Optional
from urllib.parse import urlsplit


def domain_of(url: str) -> str:
    """Lower-cased hostname of url, or an empty string when unparsable."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


class NetworkError(Exception):
    """Base class for every failure raised around an outbound request."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url

    @property
    def domain(self) -> str:
        return domain_of(self.url) if self.url else ""


class UrlValidationError(NetworkError):
    """The URL guard refused the target; the input itself is the problem."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"URL validation failed: {reason}", url)
        self.reason = reason


class TransientNetworkError(NetworkError):
    """Failure worth retrying: timeouts, connection errors, 5xx, rate limits."""

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message, url)
        self.status = status


class HttpStatusError(NetworkError):
    """Non-2xx answer that retrying will not fix (404, 403, ...)."""

    def __init__(self, url: str, status: int):
        super().__init__(f"HTTP {status} for {url}", url)
        self.status = status


class SourceUnavailableError(NetworkError):
    """Terminal failure after every retry and every alternative was used up."""
