"""Tests for notifier adapters."""

import io
from unittest.mock import AsyncMock, MagicMock, patch

import discord
import pytest

from fleet.adapters.notify.discord_webhook import DiscordWebhookNotifier
from fleet.adapters.notify.log_notifier import LogNotifier
from fleet.ports.outbound import Notifier


class TestLogNotifier:
    def test_conforms_to_port(self):
        assert isinstance(LogNotifier(), Notifier)

    @pytest.mark.asyncio
    async def test_writes_one_line(self):
        stream = io.StringIO()
        await LogNotifier(stream=stream).notify("a1", "lock_contention", "profile busy")
        line = stream.getvalue()
        assert "[a1] lock_contention: profile busy" in line
        assert line.count("\n") == 1


class TestDiscordWebhookNotifier:
    def test_conforms_to_port(self):
        assert isinstance(DiscordWebhookNotifier(""), Notifier)

    def test_format_message(self):
        text = DiscordWebhookNotifier.format_message("a1", "action_error", "page crashed")
        assert text == "**[a1]** `action_error`\npage crashed"

    def test_long_message_is_truncated(self):
        text = DiscordWebhookNotifier.format_message("a1", "unexpected", "x" * 5000)
        assert len(text) == 2000
        assert text.endswith("...")

    @pytest.mark.asyncio
    async def test_unconfigured_is_noop(self):
        notifier = DiscordWebhookNotifier("")
        with patch.object(discord.Webhook, "from_url") as from_url:
            await notifier.notify("a1", "unexpected", "boom")
        from_url.assert_not_called()

    @pytest.mark.asyncio
    async def test_sends_through_webhook(self):
        notifier = DiscordWebhookNotifier("https://discord.com/api/webhooks/1/token")
        webhook = MagicMock()
        webhook.send = AsyncMock()
        with patch.object(discord.Webhook, "from_url", return_value=webhook):
            await notifier.notify("a1", "action_error", "page crashed")
        await notifier.close()

        webhook.send.assert_awaited_once()
        kwargs = webhook.send.await_args.kwargs
        assert kwargs["content"] == "**[a1]** `action_error`\npage crashed"
        assert kwargs["username"] == "smol-fleet"

    @pytest.mark.asyncio
    async def test_send_failure_is_swallowed(self):
        notifier = DiscordWebhookNotifier("https://discord.com/api/webhooks/1/token")
        webhook = MagicMock()
        webhook.send = AsyncMock(side_effect=RuntimeError("429 Too Many Requests"))
        with patch.object(discord.Webhook, "from_url", return_value=webhook):
            await notifier.notify("a1", "action_error", "page crashed")
        await notifier.close()
