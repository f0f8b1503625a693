"""Shared fixtures: a scripted requests.Session and helpers to build responses."""

import json
from datetime import datetime, timezone

import pytest
import requests

from src.network import RetryPolicy, UrlGuard


NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def make_response(status=200, body=b"", headers=None, url=""):
    response = requests.Response()
    response.status_code = status
    response._content = body.encode("utf-8") if isinstance(body, str) else body
    response.headers.update(headers or {})
    response.url = url
    response.encoding = "utf-8"
    response.reason = "OK" if status < 400 else "Error"
    return response


def html_response(body, status=200):
    return make_response(status, body, {"Content-Type": "text/html; charset=utf-8"})


def json_response(data, status=200):
    return make_response(status, json.dumps(data), {"Content-Type": "application/json"})


def image_response(size=2048, content_type="image/jpeg"):
    return make_response(200, b"\xff" * size, {"Content-Type": content_type, "Content-Length": str(size)})


class FakeSession:
    """
    Stands in for requests.Session behind the URL guard.

    Routes map a URL (or a (method, URL) pair) to a response, an exception to
    raise, or a list of those consumed in order. Unknown URLs answer 404.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def request(self, method, url, headers=None, timeout=None, allow_redirects=True, **kwargs):
        self.calls.append({"method": method, "url": url, "headers": headers or {}, **kwargs})
        handler = self.routes.get((method, url), self.routes.get(url))
        if handler is None:
            return make_response(404, "not found", url=url)
        if isinstance(handler, list):
            handler = handler.pop(0) if len(handler) > 1 else handler[0]
        if isinstance(handler, Exception):
            raise handler
        return handler

    def urls(self, method=None):
        return [c["url"] for c in self.calls if method is None or c["method"] == method]


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def guard(session):
    return UrlGuard(session=session)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def retry_policy(sleeps):
    return RetryPolicy(sleep=sleeps.append)
