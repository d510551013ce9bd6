"""Redis transport for pushed return payloads."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Optional, Tuple

import redis.asyncio as redis

from .base import BaseTransport


class RedisTransport(BaseTransport[str]):
    """Redis list used as a queue of return payloads."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    @staticmethod
    def _queue_name(topic: str) -> str:
        return f"docroute:{topic}"

    async def publish(self, topic: str, payload: str) -> None:
        """Push payload onto the Redis list acting as queue."""
        if not self._redis:
            await self.connect()
        await self._redis.lpush(self._queue_name(topic), payload)

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, str]]:
        """Subscribe to payloads from the Redis queue."""
        if not self._redis:
            await self.connect()

        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None

        while True:
            if lifespan and start_time:
                if loop.time() - start_time >= lifespan:
                    break

            result = await self._redis.brpop(self._queue_name(topic), timeout=1)
            if result:
                _, payload = result
                yield payload, payload

            await asyncio.sleep(0.01)

    async def ack(self, raw_message: str) -> None:
        """No-op acknowledgment (message already consumed by BRPOP)."""
        pass
