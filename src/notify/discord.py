"""
Discord webhook notifier.

Turns a RunSummary into a single webhook message made of embeds: books added,
items needing review, errors and domains that keep failing. Delivery problems
are logged and swallowed; a notification can never fail the run.
"""

import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv

from src.network import NetworkError, UrlGuard

from .events import RunSummary


logger = logging.getLogger("notify")

MAX_FIELDS = 25
MAX_EMBEDS = 10
MAX_FIELD_VALUE = 1024
FOOTER = {"text": "Acquired Bookshelf Scraper"}

GREEN = 0x00FF00
ORANGE = 0xFFA500
RED = 0xFF0000
GRAY = 0x808080
PURPLE = 0x9B59B6


def _field(name: str, value: str) -> dict[str, Any]:
    return {"name": name[:256], "value": (value or "-")[:MAX_FIELD_VALUE], "inline": False}


def _chunked_embeds(title: str, more_title: str, description: str, color: int, fields: list, timestamp: str) -> list:
    embeds = []
    for start in range(0, len(fields), MAX_FIELDS):
        first = start == 0
        embed = {
            "title": title if first else more_title,
            "color": color,
            "fields": fields[start : start + MAX_FIELDS],
        }
        if first:
            embed["description"] = description
            embed["timestamp"] = timestamp
            embed["footer"] = FOOTER
        embeds.append(embed)
    return embeds


def build_payload(summary: RunSummary) -> dict[str, Any]:
    """Webhook payload for a run; always at least one embed."""
    timestamp = (summary.finished_at or summary.started_at).isoformat()
    embeds: list[dict[str, Any]] = []

    if summary.added:
        count = len(summary.added)
        fields = [
            _field(
                f"{i}. {entry.title}",
                f"**Author:** {entry.author}\n**Episode:** {entry.episode_ref.name}",
            )
            for i, entry in enumerate(summary.added, 1)
        ]
        embeds += _chunked_embeds(
            "📚 New Books Added",
            "📚 More Books...",
            f"Successfully added {count} book{'s' if count > 1 else ''} to the collection",
            GREEN,
            fields,
            timestamp,
        )
    elif not summary.errors:
        embeds.append(
            {
                "title": "📭 No New Books",
                "description": "Scraper ran successfully but found no new books to add.",
                "color": GRAY,
                "timestamp": timestamp,
                "footer": FOOTER,
            }
        )

    if summary.review:
        count = len(summary.review)
        fields = [
            _field(
                f"{i}. {item.title or 'Unresolved'}",
                f"**Reason:** {item.reason}\n**Author:** {item.author or '-'}\n"
                f"**Episode:** {item.episode}\n**URL:** {item.product_url}",
            )
            for i, item in enumerate(summary.review, 1)
        ]
        embeds += _chunked_embeds(
            "⚠️ Metadata Needs Review",
            "⚠️ More For Review...",
            f"Found {count} book{'s' if count > 1 else ''} with unresolved or low-confidence metadata. "
            "Manual review recommended.",
            ORANGE,
            fields,
            timestamp,
        )

    if summary.errors:
        fields = [_field(error.context or "Error", error.message) for error in summary.errors]
        embeds += _chunked_embeds(
            "❌ Scraper Error",
            "❌ More Errors...",
            f"{len(summary.errors)} unrecoverable error(s) during the run",
            RED,
            fields,
            timestamp,
        )

    if summary.systemic_domains:
        fields = [
            _field(domain, f"Failed in {runs} consecutive runs")
            for domain, runs in sorted(summary.systemic_domains.items())
        ]
        embeds += _chunked_embeds(
            "🛰️ Repeated Network Failures",
            "🛰️ More Failing Domains...",
            "These domains keep failing across runs; an upstream change is likely.",
            PURPLE,
            fields,
            timestamp,
        )

    content = summary.describe()
    if summary.dry_run:
        content = f"[dry run] {content}"
    return {"content": content, "embeds": embeds[:MAX_EMBEDS]}


class DiscordNotifier:
    def __init__(self, webhook_url: str, guard: UrlGuard):
        self.webhook_url = webhook_url
        self.guard = guard

    def send(self, summary: RunSummary) -> bool:
        """Post the run summary; returns False (never raises) when delivery fails."""
        payload = build_payload(summary)
        try:
            response = self.guard.safe_fetch(
                self.webhook_url, method="POST", json=payload, raise_for_status=False
            )
        except NetworkError as e:
            logger.error(f"Failed to send Discord notification: {e}")
            return False

        if not 200 <= response.status_code < 300:
            logger.error(f"Discord webhook failed: {response.status_code} {response.reason}")
            return False
        logger.info("Sent run summary to Discord")
        return True


def create_notifier_from_env(guard: UrlGuard, webhook_url: Optional[str] = None) -> Optional[DiscordNotifier]:
    """Notifier for DISCORD_WEBHOOK_URL, or None when notifications are disabled."""
    if webhook_url is None:
        load_dotenv()
        webhook_url = os.getenv("DISCORD_WEBHOOK_URL")
    if not webhook_url:
        logger.info("DISCORD_WEBHOOK_URL not set - Discord notifications disabled")
        return None
    return DiscordNotifier(webhook_url, guard)
