"""Tests for the run summary notification."""

import requests
import pytest

from src.catalog import CatalogEntry, EpisodeRef
from src.notify import DiscordNotifier, ReviewItem, RunError, RunSummary, build_payload, create_notifier_from_env

from conftest import NOW, make_response


WEBHOOK_URL = "https://discord.com/api/webhooks/123/abc"


def _entry(i):
    return CatalogEntry(
        id=f"B00TEST{i:03d}",
        title=f"Book {i}",
        author="Author",
        cover_url="/covers/default-book.jpg",
        product_url=f"https://www.amazon.com/dp/B00TEST{i:03d}",
        category="Business",
        episode_ref=EpisodeRef("Widgets Inc", 15, 5),
        added_at=NOW.isoformat(),
    )


def _summary(**kwargs):
    return RunSummary(started_at=NOW, finished_at=NOW, **kwargs)


class TestBuildPayload:
    def test_added_books_are_split_across_embeds(self):
        payload = build_payload(_summary(added=[_entry(i) for i in range(30)]))

        titles = [e["title"] for e in payload["embeds"]]
        assert titles == ["📚 New Books Added", "📚 More Books..."]
        assert len(payload["embeds"][0]["fields"]) == 25
        assert len(payload["embeds"][1]["fields"]) == 5
        assert payload["embeds"][0]["description"] == "Successfully added 30 books to the collection"
        assert payload["embeds"][0]["fields"][0]["name"] == "1. Book 0"

    def test_quiet_run(self):
        payload = build_payload(_summary())

        assert [e["title"] for e in payload["embeds"]] == ["📭 No New Books"]
        assert payload["content"].startswith("0 episodes processed")

    def test_review_errors_and_systemic_domains(self):
        summary = _summary(
            review=[
                ReviewItem(
                    episode="Widgets Inc",
                    product_url="http://169.254.169.254/dp/B00EVIL000",
                    reason="Rejected by URL guard: Domain is blocked: 169.254.169.254",
                )
            ],
            errors=[RunError("HTTP 503 for https://feeds.transistor.fm/acquired", "Feed")],
            systemic_domains={"openlibrary.org": 3},
        )

        embeds = build_payload(summary)["embeds"]

        assert [e["title"] for e in embeds] == [
            "⚠️ Metadata Needs Review",
            "❌ Scraper Error",
            "🛰️ Repeated Network Failures",
        ]
        assert embeds[0]["fields"][0]["name"] == "1. Unresolved"
        assert "169.254.169.254" in embeds[0]["fields"][0]["value"]
        assert embeds[1]["fields"][0]["name"] == "Feed"
        assert embeds[2]["fields"][0] == {
            "name": "openlibrary.org",
            "value": "Failed in 3 consecutive runs",
            "inline": False,
        }

    def test_dry_run_is_marked(self):
        assert build_payload(_summary(dry_run=True))["content"].startswith("[dry run] ")

    def test_long_values_are_truncated(self):
        payload = build_payload(_summary(errors=[RunError("x" * 5000)]))

        assert len(payload["embeds"][0]["fields"][0]["value"]) == 1024


class TestDiscordNotifier:
    @pytest.mark.parametrize(
        "outcome, expected",
        [
            (make_response(204), True),
            (make_response(500), False),
            (requests.ConnectionError("refused"), False),
        ],
    )
    def test_send(self, guard, session, outcome, expected):
        session.routes[WEBHOOK_URL] = outcome

        assert DiscordNotifier(WEBHOOK_URL, guard).send(_summary()) is expected

        call = session.calls[0]
        assert call["method"] == "POST"
        assert call["json"]["embeds"][0]["title"] == "📭 No New Books"

    def test_rejected_webhook_url_is_not_sent(self, guard, session):
        assert DiscordNotifier("https://example.com/hook", guard).send(_summary()) is False
        assert session.calls == []


class TestCreateNotifier:
    def test_disabled_without_url(self, guard, monkeypatch):
        monkeypatch.delenv("DISCORD_WEBHOOK_URL", raising=False)

        assert create_notifier_from_env(guard) is None

    def test_explicit_url(self, guard):
        notifier = create_notifier_from_env(guard, WEBHOOK_URL)

        assert notifier.webhook_url == WEBHOOK_URL
