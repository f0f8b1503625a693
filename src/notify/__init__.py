"""Run summary notifications."""

from .discord import DiscordNotifier, build_payload, create_notifier_from_env
from .events import ReviewItem, RunError, RunSummary

__all__ = [
    "DiscordNotifier",
    "ReviewItem",
    "RunError",
    "RunSummary",
    "build_payload",
    "create_notifier_from_env",
]
