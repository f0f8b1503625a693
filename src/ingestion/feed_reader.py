"""
Syndication feed reader.

Fetches the podcast RSS feed through the URL guard and parses it into
immutable FeedItem values. Items are later diffed against the last-check state
to decide which episodes are new.

Usage:
    guard = UrlGuard()
    items = fetch_feed("https://feeds.transistor.fm/acquired", guard, RetryPolicy())
    new_items = filter_new_items(items, last_check=None, seen_ids=set())
"""

import hashlib
import logging
import re
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable, Optional, Union
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from src.logger import log_function
from src.network import RetryPolicy, SourceUnavailableError, UrlGuard

from .models import FeedItem


logger = logging.getLogger("feed_reader")

FEED_ACCEPT = "application/rss+xml, application/xml, text/xml"
DEFAULT_LOOKBACK = timedelta(days=7)
MAX_DESCRIPTION_LENGTH = 1000

EPISODE_IN_TITLE = re.compile(r"\bepisode\s+(\d+)\b", re.IGNORECASE)


@log_function(logger_name="feed_reader", log_execution_time=True)
def fetch_feed(feed_url: str, guard: UrlGuard, retry_policy: RetryPolicy) -> list[FeedItem]:
    """
    Fetch the RSS feed and parse every item.

    Args:
        feed_url: Syndication feed URL (must pass the URL guard)
        guard: URL guard used for the request
        retry_policy: Retry policy for transient failures

    Returns:
        Parsed feed items, in feed order

    Raises:
        SourceUnavailableError: The feed could not be fetched after retries
    """
    logger.info(f"Fetching feed from {feed_url}...")
    outcome = retry_policy.run(
        lambda: guard.safe_fetch(feed_url, headers={"Accept": FEED_ACCEPT}),
        label=f"feed {feed_url}",
    )
    if not outcome.ok:
        raise SourceUnavailableError(f"Feed unavailable: {outcome.error}", feed_url) from outcome.error

    items = parse_feed(outcome.value.content)
    logger.info(f"Found {len(items)} episodes in feed")
    return items


def parse_feed(content: Union[bytes, str]) -> list[FeedItem]:
    """Parse RSS XML into FeedItem values; items without a title are skipped."""
    soup = BeautifulSoup(content, "xml")
    items = []
    for item in soup.find_all("item"):
        title = _text(item, "title")
        if not title:
            logger.debug("Skipping feed item without title")
            continue

        link = _text(item, "link")
        guid = _text(item, "guid")
        published_at = _parse_pub_date(_text(item, "pubDate"))

        description = _text(item, "description")
        if description:
            description = BeautifulSoup(description, "html.parser").get_text(" ", strip=True)
            description = description[:MAX_DESCRIPTION_LENGTH]

        items.append(
            FeedItem(
                id=derive_item_id(guid, link, title),
                title=title,
                link=link,
                published_at=published_at,
                description=description,
                season_number=_int_or_none(_text(item, "itunes:season") or _text(item, "season")),
                episode_number=_episode_number(item, title),
            )
        )
    return items


def derive_item_id(guid: str, link: str, title: str) -> str:
    """Last path segment of the guid, else of the link, else a hash of the title."""
    for source in (guid, link):
        if not source:
            continue
        path = urlsplit(source).path if "://" in source else source
        segment = path.rstrip("/").rsplit("/", 1)[-1]
        if segment:
            return segment
    return "episode-" + hashlib.sha1(title.encode("utf-8")).hexdigest()[:12]


def filter_new_items(
    items: Iterable[FeedItem],
    last_check: Optional[datetime],
    seen_ids: Iterable[str] = (),
    now: Optional[datetime] = None,
    lookback: timedelta = DEFAULT_LOOKBACK,
) -> list[FeedItem]:
    """
    Items published after the last check and not seen before.

    Without a last check (first run, or state deleted) every item inside the
    lookback window counts as new.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = last_check if last_check is not None else now - lookback
    seen = set(seen_ids)
    new_items = [item for item in items if item.published_at > cutoff and item.id not in seen]
    for item in new_items:
        logger.info(f"New episode: {item.title} ({item.published_at.date().isoformat()})")
    return new_items


def _text(item, name: str) -> str:
    tag = item.find(name)
    return tag.get_text(strip=True) if tag else ""


def _parse_pub_date(value: str) -> datetime:
    if value:
        try:
            parsed = parsedate_to_datetime(value)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
        except (TypeError, ValueError) as e:
            logger.error(f"Could not parse date: {value}, error: {e}")
    return datetime.now(timezone.utc)


def _int_or_none(value: str) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _episode_number(item, title: str) -> Optional[int]:
    number = _int_or_none(_text(item, "itunes:episode") or _text(item, "episode"))
    if number is not None:
        return number
    match = EPISODE_IN_TITLE.search(title)
    return int(match.group(1)) if match else None
