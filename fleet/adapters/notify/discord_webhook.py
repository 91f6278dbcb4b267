"""Notifier posting to a Discord channel webhook (discord.py over aiohttp)."""

import sys
from typing import Optional

import aiohttp
import discord

# Discord rejects messages over 2000 characters
_MAX_CONTENT = 2000


def _log(msg: str):
    print(msg, file=sys.stderr)


class DiscordWebhookNotifier:
    """Sends one webhook message per notification.

    Failures are logged and swallowed; scheduling never waits on Discord.
    """

    def __init__(self, webhook_url: str, username: str = "smol-fleet"):
        self._webhook_url = webhook_url
        self._username = username
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def is_configured(self) -> bool:
        return bool(self._webhook_url)

    @staticmethod
    def format_message(account_id: str, kind: str, detail: str) -> str:
        text = f"**[{account_id}]** `{kind}`\n{detail}"
        if len(text) <= _MAX_CONTENT:
            return text
        return text[: _MAX_CONTENT - 3] + "..."

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def notify(self, account_id: str, kind: str, detail: str) -> None:
        if not self.is_configured:
            return
        try:
            session = await self._get_session()
            webhook = discord.Webhook.from_url(self._webhook_url, session=session)
            await webhook.send(
                content=self.format_message(account_id, kind, detail),
                username=self._username,
                allowed_mentions=discord.AllowedMentions.none(),
            )
        except Exception as e:
            _log(f"[DiscordWebhookNotifier] send failed: {e}")

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
