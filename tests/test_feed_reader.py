"""Tests for the feed reader."""

from datetime import datetime, timedelta, timezone

import pytest

from src.ingestion import FeedItem, derive_item_id, fetch_feed, filter_new_items, parse_feed
from src.network import SourceUnavailableError, TransientNetworkError

from conftest import NOW, make_response


FEED_URL = "https://feeds.transistor.fm/acquired"

RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">
  <channel>
    <title>Acquired</title>
    <item>
      <title>Widgets Inc</title>
      <link>https://www.acquired.fm/episodes/widgets-inc</link>
      <guid isPermaLink="false">widgets-inc-guid</guid>
      <pubDate>Wed, 30 Sep 2026 10:00:00 +0000</pubDate>
      <description><![CDATA[<p>The story of <b>Widgets</b> Inc.</p>]]></description>
      <itunes:season>15</itunes:season>
      <itunes:episode>5</itunes:episode>
    </item>
    <item>
      <title>Episode 12: Gadgets</title>
      <link>https://www.acquired.fm/episodes/gadgets</link>
      <pubDate>Mon, 01 Jun 2026 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title></title>
      <link>https://www.acquired.fm/episodes/untitled</link>
    </item>
  </channel>
</rss>
"""


def _item(item_id, published_at):
    return FeedItem(id=item_id, title=item_id, link="", published_at=published_at)


class TestParseFeed:
    def test_parses_items(self):
        items = parse_feed(RSS.encode("utf-8"))

        assert len(items) == 2
        first = items[0]
        assert first.id == "widgets-inc-guid"
        assert first.title == "Widgets Inc"
        assert first.link == "https://www.acquired.fm/episodes/widgets-inc"
        assert first.published_at == datetime(2026, 9, 30, 10, 0, tzinfo=timezone.utc)
        assert first.description == "The story of Widgets Inc."
        assert first.season_number == 15
        assert first.episode_number == 5

    def test_falls_back_to_link_id_and_title_episode_number(self):
        second = parse_feed(RSS.encode("utf-8"))[1]

        assert second.id == "gadgets"
        assert second.season_number is None
        assert second.episode_number == 12

    def test_items_are_immutable(self):
        item = parse_feed(RSS.encode("utf-8"))[0]

        with pytest.raises(AttributeError):
            item.title = "changed"

    def test_round_trips_through_dict(self):
        item = parse_feed(RSS.encode("utf-8"))[0]

        assert FeedItem.from_dict(item.to_dict()) == item


class TestDeriveItemId:
    def test_prefers_guid_last_segment(self):
        assert derive_item_id("https://example.com/e/123/", "https://x/episodes/y", "T") == "123"

    def test_uses_link_when_guid_missing(self):
        assert derive_item_id("", "https://www.acquired.fm/episodes/costco", "Costco") == "costco"

    def test_hashes_title_as_last_resort(self):
        first = derive_item_id("", "", "Costco")

        assert first.startswith("episode-")
        assert first == derive_item_id("", "", "Costco")


class TestFilterNewItems:
    def test_without_last_check_uses_lookback_window(self):
        items = [_item("recent", NOW - timedelta(days=2)), _item("old", NOW - timedelta(days=30))]

        new_items = filter_new_items(items, last_check=None, now=NOW)

        assert [i.id for i in new_items] == ["recent"]

    def test_filters_by_last_check_and_seen_ids(self):
        last_check = NOW - timedelta(hours=6)
        items = [
            _item("after", NOW - timedelta(hours=1)),
            _item("seen", NOW - timedelta(hours=2)),
            _item("before", NOW - timedelta(hours=12)),
        ]

        new_items = filter_new_items(items, last_check, seen_ids={"seen"}, now=NOW)

        assert [i.id for i in new_items] == ["after"]


class TestFetchFeed:
    def test_fetches_through_guard(self, guard, session, retry_policy):
        session.routes[FEED_URL] = make_response(200, RSS, {"Content-Type": "application/rss+xml"})

        items = fetch_feed(FEED_URL, guard, retry_policy)

        assert len(items) == 2
        assert session.urls() == [FEED_URL]

    def test_raises_source_unavailable_after_retries(self, guard, session, retry_policy, sleeps):
        session.routes[FEED_URL] = make_response(503)

        with pytest.raises(SourceUnavailableError) as exc_info:
            fetch_feed(FEED_URL, guard, retry_policy)

        assert isinstance(exc_info.value.__cause__, TransientNetworkError)
        assert len(session.calls) == 3
        assert sleeps == [1.0, 2.0]
