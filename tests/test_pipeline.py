"""End-to-end tests of the pipeline runs against a scripted network."""

import json
import subprocess
import sys
import textwrap
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock, patch
from urllib.parse import urlencode

import pytest

from src.catalog import Provenance
from src.ingestion import FeedItem
from src.metadata.openlibrary import SEARCH_FIELDS
from src.pipeline import PipelineConfig, build_context, run_backfill, run_pipeline
from src.pipeline.__main__ import build_config, parse_arguments
from src.pipeline.orchestrator import (
    DEADLINE_ERROR,
    backfill_record,
    find_catalog_gaps,
    process_records,
)
from src.pipeline.stages import episode_ref_for
from src.state import StateFileError

from conftest import NOW, FakeSession, html_response, json_response, make_response


FEED_URL = "https://feeds.transistor.fm/acquired"
EPISODE_URL = "https://www.acquired.fm/episodes/widgets-inc"
DOC_URL = "https://docs.google.com/document/d/DOC123/edit"
EXPORT_URL = "https://docs.google.com/document/d/DOC123/export?format=html"
SHOE_DOG_URL = "https://www.amazon.com/Shoe-Dog/dp/1501135910"
TITAN_URL = "https://www.amazon.com/Titan/dp/1400077303"
UNSAFE_URL = "http://169.254.169.254/dp/B00EVIL000"


def rss(title="Widgets Inc", link=EPISODE_URL):
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">
  <channel>
    <item>
      <title>{title}</title>
      <link>{link}</link>
      <guid isPermaLink="false">{link.rsplit("/", 1)[-1]}</guid>
      <pubDate>Wed, 30 Sep 2026 10:00:00 +0000</pubDate>
      <itunes:season>15</itunes:season>
      <itunes:episode>5</itunes:episode>
    </item>
  </channel>
</rss>
""".encode("utf-8")


def search_url(**params):
    return f"https://openlibrary.org/search.json?{urlencode({**params, 'fields': SEARCH_FIELDS})}"


def network_routes(with_sources=True):
    """Routes for one regular episode whose sources list two books and one unsafe link."""
    sources = f'<p>Episode sources: <a href="{DOC_URL}">here</a></p>' if with_sources else "<p>Soon</p>"
    return {
        FEED_URL: make_response(200, rss(), {"Content-Type": "application/rss+xml"}),
        EPISODE_URL: html_response(sources),
        EXPORT_URL: html_response(
            f'<a href="{SHOE_DOG_URL}">Shoe Dog</a>'
            f'<a href="{TITAN_URL}">Titan</a>'
            f'<a href="{UNSAFE_URL}">Free books</a>'
        ),
        search_url(q="1501135910"): json_response(
            {"docs": [{"title": "Shoe Dog", "author_name": ["Phil Knight"], "cover_i": 1, "subject": ["Business"]}]}
        ),
        search_url(q="1400077303"): json_response(
            {"docs": [{"title": "Titan", "author_name": ["Ron Chernow"], "cover_i": 2, "subject": ["Biography"]}]}
        ),
    }


class Clock:
    def __init__(self, now=NOW.timestamp()):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def config(tmp_path):
    return PipelineConfig(
        data_dir=tmp_path / "data",
        catalog_path=tmp_path / "books.json",
        mirror_covers=False,
        run_timeout=30,
    )


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def session():
    return FakeSession(network_routes())


@pytest.fixture
def context(config, session, clock):
    return build_context(config, session=session, sleep=lambda seconds: None, clock=clock)


@pytest.fixture
def notifier():
    return Mock()


def _catalog(config):
    return json.loads(config.catalog_path.read_text())


def _queue(config):
    return json.loads(config.queue_path.read_text())["records"]


class TestScheduledRun:
    def test_new_episode_books_reach_the_catalog(self, config, context, notifier):
        summary = run_pipeline(config, context, notifier)

        catalog = _catalog(config)
        assert [e["id"] for e in catalog] == ["1501135910", "1400077303"]
        assert catalog[0]["episodeRef"] == {"name": "Widgets Inc", "seasonNumber": 15, "episodeNumber": 5}
        assert catalog[0]["coverUrl"] == "https://covers.openlibrary.org/b/id/1-L.jpg"
        assert catalog[1]["category"] == "History"
        assert _queue(config) == []
        assert summary.succeeded == 1
        assert [item.product_url for item in summary.review] == [UNSAFE_URL]
        assert summary.ok
        notifier.send.assert_called_once_with(summary)

    def test_unsafe_link_is_never_fetched(self, config, context, session, notifier):
        run_pipeline(config, context, notifier)

        assert not any("169.254.169.254" in url for url in session.urls())

    def test_lagging_sources_are_retried_later(self, config, session, clock, notifier):
        session.routes = network_routes(with_sources=False)
        first = run_pipeline(
            config, build_context(config, session=session, sleep=lambda s: None, clock=clock), notifier
        )

        assert first.requeued == 1
        assert not config.catalog_path.exists()
        record = _queue(config)[0]
        assert record["retry_count"] == 1

        session.routes = network_routes(with_sources=True)
        clock.now += 2 * 60 * 60 + 1
        second = run_pipeline(
            config, build_context(config, session=session, sleep=lambda s: None, clock=clock), notifier
        )

        assert second.episodes_detected == 0
        assert second.succeeded == 1
        assert len(_catalog(config)) == 2
        assert _queue(config) == []

    def test_record_is_not_processed_before_its_delay(self, config, session, clock, notifier):
        session.routes = network_routes(with_sources=False)
        run_pipeline(config, build_context(config, session=session, sleep=lambda s: None, clock=clock), notifier)
        session.calls.clear()

        clock.now += 60
        summary = run_pipeline(
            config, build_context(config, session=session, sleep=lambda s: None, clock=clock), notifier
        )

        assert summary.episodes_processed == 0
        assert session.urls() == [FEED_URL]

    def test_interview_is_never_fetched(self, config, context, session, notifier):
        session.routes[FEED_URL] = make_response(200, rss(title="The Jensen Huang Interview"))

        summary = run_pipeline(config, context, notifier)

        assert session.urls() == [FEED_URL]
        assert summary.episodes_detected == 1
        assert summary.episodes_processed == 0
        assert _queue(config) == []

    def test_reprocessing_leaves_catalog_unchanged(self, config, session, clock, notifier):
        run_pipeline(config, build_context(config, session=session, sleep=lambda s: None, clock=clock), notifier)
        before = config.catalog_path.read_bytes()

        # Forget the feed history so the same episode is detected again
        config.last_check_path.unlink()
        summary = run_pipeline(
            config, build_context(config, session=session, sleep=lambda s: None, clock=clock), notifier
        )

        assert summary.succeeded == 1
        assert summary.added == []
        assert config.catalog_path.read_bytes() == before

    def test_dry_run_writes_nothing_but_notifies(self, config, context, notifier):
        config.dry_run = True

        summary = run_pipeline(config, context, notifier)

        assert len(summary.added) == 2
        assert not config.catalog_path.exists()
        assert not config.queue_path.exists()
        assert not config.last_check_path.exists()
        notifier.send.assert_called_once()


class TestFailures:
    def test_feed_outage_keeps_last_check_timestamp(self, config, context, session, notifier):
        config.data_dir.mkdir()
        config.last_check_path.write_text(json.dumps({"timestamp": "2026-09-29T00:00:00+00:00"}))
        session.routes[FEED_URL] = make_response(503)

        summary = run_pipeline(config, context, notifier)

        assert [e.context for e in summary.errors] == ["Feed"]
        state = json.loads(config.last_check_path.read_text())
        assert state["timestamp"] == "2026-09-29T00:00:00+00:00"
        assert state["domain_failures"] == {"feeds.transistor.fm": 1}
        notifier.send.assert_called_once()

    def test_repeated_outage_is_reported_as_systemic(self, config, session, clock, notifier):
        session.routes[FEED_URL] = make_response(503)

        run_pipeline(config, build_context(config, session=session, sleep=lambda s: None, clock=clock), notifier)
        summary = run_pipeline(
            config, build_context(config, session=session, sleep=lambda s: None, clock=clock), notifier
        )

        assert summary.systemic_domains == {"feeds.transistor.fm": 2}

    def test_corrupt_catalog_aborts_without_writing(self, config, context, session, notifier):
        config.catalog_path.write_text("{not json")

        with pytest.raises(StateFileError):
            run_pipeline(config, context, notifier)

        assert config.catalog_path.read_text() == "{not json"
        assert not config.data_dir.exists()
        assert session.calls == []
        notifier.send.assert_called_once()

    def test_write_failure_is_still_reported(self, config, context, notifier):
        with patch("src.pipeline.orchestrator.CatalogWriter.commit", side_effect=OSError("No space left on device")):
            with pytest.raises(OSError):
                run_pipeline(config, context, notifier)

        notifier.send.assert_called_once()
        summary = notifier.send.call_args[0][0]
        assert [(e.message, e.context) for e in summary.errors] == [("No space left on device", "Commit")]

    def test_rejected_episode_link_is_abandoned(self, config, context, session, notifier):
        session.routes[FEED_URL] = make_response(200, rss(link="http://10.0.0.1/episodes/widgets-inc"))

        summary = run_pipeline(config, context, notifier)

        assert summary.abandoned == 1
        assert len(summary.errors) == 1
        assert _queue(config) == []

    def test_deadline_turns_running_episodes_into_failures(self, context):
        release = threading.Event()
        record = backfill_record(EPISODE_URL, NOW.timestamp())

        with patch("src.pipeline.orchestrator.process_episode", side_effect=lambda *a, **k: release.wait(5)):
            outcomes = process_records([record], context, run_timeout=0.05)
        release.set()

        assert [o.error for o in outcomes] == [DEADLINE_ERROR]

    def test_stuck_episode_does_not_hold_the_process_past_the_deadline(self):
        script = textwrap.dedent(
            """
            import time
            from unittest.mock import patch

            from src.pipeline.orchestrator import backfill_record, process_records

            with patch("src.pipeline.orchestrator.process_episode", side_effect=lambda *a, **k: time.sleep(30)):
                outcomes = process_records(
                    [backfill_record("https://www.acquired.fm/episodes/x", 0.0)], None, run_timeout=0.2
                )
            print(outcomes[0].error)
            """
        )
        started = time.monotonic()

        result = subprocess.run(
            [sys.executable, "-c", script],
            cwd=Path(__file__).resolve().parent.parent,
            capture_output=True,
            text=True,
            timeout=60,
        )

        assert result.returncode == 0, result.stderr
        assert DEADLINE_ERROR in result.stdout
        assert time.monotonic() - started < 20

    def test_unexpected_worker_error_is_contained(self, context):
        record = backfill_record(EPISODE_URL, NOW.timestamp())

        with patch("src.pipeline.orchestrator.process_episode", side_effect=KeyError("boom")):
            outcomes = process_records([record], context)

        assert outcomes[0].error.startswith("Unexpected error")


class TestBackfill:
    def test_backfill_tags_provenance_and_reports_rejections(self, config, context, session, notifier):
        summary = run_backfill(config, [EPISODE_URL, "http://10.0.0.1/episodes/x"], context, notifier)

        catalog = _catalog(config)
        assert {e["source"] for e in catalog} == {Provenance.BACKFILL.value}
        assert catalog[0]["episodeRef"] == {"name": "Widgets Inc", "seasonNumber": 2026, "episodeNumber": 1001}
        assert summary.succeeded == 1
        assert [e.context for e in summary.errors] == ["http://10.0.0.1/episodes/x"]
        assert FEED_URL not in session.urls()
        assert not config.queue_path.exists()

    def test_backfill_record_from_slug(self):
        record = backfill_record("https://www.acquired.fm/episodes/nvidia-part-iii/", NOW.timestamp())

        assert record.episode_id == "nvidia-part-iii"
        assert record.episode.title == "Nvidia Part Iii"
        assert record.process_after == NOW.timestamp()


class TestHelpers:
    def test_find_catalog_gaps(self):
        items = [
            FeedItem(id=i, title=t, link="", published_at=NOW)
            for i, t in [
                ("w", "Widgets Inc."),
                ("c", "Costco"),
                ("l", "Acquired Live from Chase Center"),
                ("j", "The Jensen Huang Interview"),
            ]
        ]
        catalog = [{"id": "x", "episodeRef": {"name": "Widgets Inc"}}]

        assert [g.id for g in find_catalog_gaps(items, catalog)] == ["c"]

    def test_episode_ref_falls_back_to_publish_date(self):
        item = FeedItem(id="x", title="X", link="", published_at=datetime(2026, 9, 30, tzinfo=timezone.utc))

        ref = episode_ref_for(item)

        assert (ref.season_number, ref.episode_number) == (2026, 930)


class TestCli:
    def test_modes_are_mutually_exclusive(self):
        with pytest.raises(SystemExit):
            parse_arguments(["--backfill", EPISODE_URL, "--detect-gaps"])

    def test_flags_override_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PIPELINE_MAX_WORKERS", "5")
        monkeypatch.setenv("FEED_URL", "https://feeds.transistor.fm/other")

        config = build_config(
            parse_arguments(["--max-workers", "2", "--catalog", str(tmp_path / "b.json"), "--no-mirror", "--dry-run"])
        )

        assert config.max_workers == 2
        assert config.feed_url == "https://feeds.transistor.fm/other"
        assert config.catalog_path == tmp_path / "b.json"
        assert config.mirror_covers is False
        assert config.dry_run is True

    def test_backfill_accepts_several_urls(self):
        args = parse_arguments(["--backfill", EPISODE_URL, "https://www.acquired.fm/episodes/costco"])

        assert len(args.backfill) == 2
        assert not args.detect_gaps
