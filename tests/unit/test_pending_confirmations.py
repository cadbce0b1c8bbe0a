"""Unit tests for the pending-confirmation stores."""

from unittest.mock import AsyncMock

import pytest

from atelier.services.pending_confirmations import (
    InMemoryPendingConfirmations,
    RedisPendingConfirmations,
)


@pytest.mark.unit
class TestInMemoryPendingConfirmations:

    @pytest.mark.asyncio
    async def test_consume_returns_mapping_once(self):
        pending = InMemoryPendingConfirmations()
        await pending.remember("wamid.1", "#1042")

        assert await pending.consume("wamid.1") == "#1042"
        assert await pending.consume("wamid.1") is None
        assert len(pending) == 0

    @pytest.mark.asyncio
    async def test_unknown_message(self):
        assert await InMemoryPendingConfirmations().consume("wamid.unknown") is None


@pytest.mark.unit
class TestRedisPendingConfirmations:

    @pytest.fixture
    def redis_client(self):
        client = AsyncMock()
        client.getdel.return_value = "#1042"
        return client

    @pytest.mark.asyncio
    async def test_remember_sets_key_with_ttl(self, redis_client):
        pending = RedisPendingConfirmations(redis_client, ttl_seconds=3600)

        await pending.remember("wamid.1", "#1042")

        redis_client.set.assert_awaited_once_with("pending_confirmation:wamid.1", "#1042", ex=3600)

    @pytest.mark.asyncio
    async def test_consume_uses_getdel(self, redis_client):
        pending = RedisPendingConfirmations(redis_client, ttl_seconds=3600, key_prefix="atelier")

        assert await pending.consume("wamid.1") == "#1042"
        redis_client.getdel.assert_awaited_once_with("atelier:wamid.1")

    @pytest.mark.asyncio
    async def test_consume_miss(self, redis_client):
        redis_client.getdel.return_value = None
        pending = RedisPendingConfirmations(redis_client, ttl_seconds=3600)

        assert await pending.consume("wamid.2") is None
