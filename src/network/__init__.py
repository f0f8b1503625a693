"""Outbound HTTP: URL guard, retry policy, response cache and error taxonomy."""

from .cache import ResponseCache
from .errors import (
    HttpStatusError,
    NetworkError,
    SourceUnavailableError,
    TransientNetworkError,
    UrlValidationError,
    domain_of,
)
from .retry import RetryOutcome, RetryPolicy
from .url_guard import UrlGuard, ValidatedURL

__all__ = [
    "HttpStatusError",
    "NetworkError",
    "ResponseCache",
    "RetryOutcome",
    "RetryPolicy",
    "SourceUnavailableError",
    "TransientNetworkError",
    "UrlGuard",
    "UrlValidationError",
    "ValidatedURL",
    "domain_of",
]
