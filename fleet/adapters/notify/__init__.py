"""Notifier adapters."""

from fleet.adapters.notify.discord_webhook import DiscordWebhookNotifier
from fleet.adapters.notify.log_notifier import LogNotifier

__all__ = ["DiscordWebhookNotifier", "LogNotifier"]
