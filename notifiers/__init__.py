"""Notification delivery backends."""

from .discord_webhook import DiscordWebhookNotifier, build_message

__all__ = ["DiscordWebhookNotifier", "build_message"]
