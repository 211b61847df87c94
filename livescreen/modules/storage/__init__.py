"""
Storage Module - Black Box Interface

Purpose: Own the optional Redis connection
Interface: StorageModule.connect(), StorageModule.disconnect(), StorageModule.ping()
Hidden: Redis URL construction, connection pooling, decoding

Used by the redis cache backend and the event broker mirror. Nothing else
talks to Redis directly.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from livescreen.exceptions import InfrastructureError

logger = logging.getLogger("livescreen.storage")


class StorageModule:
    """Black box storage abstraction."""

    def __init__(
        self,
        host: str,
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
    ):
        """Initialize storage with connection parameters."""
        # Password passed separately to avoid URL encoding issues
        self.url = f"redis://{host}:{port}/{db}"
        self.password = password
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> redis.Redis:
        """Get storage connection."""
        if not self._client:
            self._client = redis.from_url(
                self.url,
                password=self.password,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info(f"Redis client created for {self.url}")
        return self._client

    async def ping(self) -> bool:
        """Check the connection, raising InfrastructureError if Redis is unreachable."""
        client = await self.connect()
        try:
            return bool(await client.ping())
        except redis.ConnectionError as e:
            raise InfrastructureError(f"Redis unavailable at {self.url}: {e}") from e

    async def disconnect(self):
        """Close storage connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


__all__ = ["StorageModule"]
