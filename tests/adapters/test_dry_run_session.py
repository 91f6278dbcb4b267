"""Tests for the dry-run ActionSession."""

import pytest

from fleet.adapters.session.dry_run import DryRunSession
from fleet.config import AccountConfig


class TestDryRunSession:
    @pytest.mark.asyncio
    async def test_lifecycle(self):
        session = DryRunSession()
        resource = await session.open(AccountConfig(account_id="a1"))

        assert resource.startswith("dry-run-")
        assert await session.is_connected(resource) is True
        assert await session.perform_enabled_actions(resource, {"likes": True}, {"likes": 10}) == []

        await session.close(resource)
        assert await session.is_connected(resource) is False
