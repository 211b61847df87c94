import os
import sys
from unittest.mock import AsyncMock, patch

import pytest
import redis.asyncio as redis

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from livescreen.exceptions import InfrastructureError
from livescreen.modules.storage import StorageModule


@pytest.mark.asyncio
async def test_connect_builds_url_and_reuses_client(mock_redis):
    storage = StorageModule("cache.local", port=6380, db=2, password="s3cret")

    with patch("redis.asyncio.from_url", return_value=mock_redis) as from_url:
        first = await storage.connect()
        second = await storage.connect()

    assert first is second is mock_redis
    from_url.assert_called_once_with(
        "redis://cache.local:6380/2", password="s3cret", encoding="utf-8", decode_responses=True
    )


@pytest.mark.asyncio
async def test_ping_failure_is_infrastructure_error(mock_redis):
    mock_redis.ping = AsyncMock(side_effect=redis.ConnectionError("refused"))
    storage = StorageModule("cache.local")

    with patch("redis.asyncio.from_url", return_value=mock_redis):
        with pytest.raises(InfrastructureError, match="Redis unavailable"):
            await storage.ping()


@pytest.mark.asyncio
async def test_disconnect(mock_redis):
    storage = StorageModule("cache.local")

    with patch("redis.asyncio.from_url", return_value=mock_redis):
        await storage.connect()
        await storage.disconnect()

    mock_redis.aclose.assert_awaited_once()
    assert storage._client is None
