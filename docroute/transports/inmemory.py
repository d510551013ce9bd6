"""In-memory transport for testing."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, Optional, Tuple

from .base import BaseTransport


class InMemoryTransport(BaseTransport[str]):
    """Simple in-process queue for unit tests."""

    def __init__(self) -> None:
        self._queues: Dict[str, Deque[str]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self.acked: list[str] = []

    async def publish(self, topic: str, payload: str) -> None:
        """Publish payload to in-memory queue."""
        async with self._lock:
            self._queues[topic].append(payload)

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, str]]:
        """Subscribe to payloads from topic.

        Args:
            topic: The topic to subscribe to
            lifespan: Maximum time in seconds to keep connection open. If None, runs indefinitely.
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None

        while True:
            if lifespan and start_time:
                if loop.time() - start_time >= lifespan:
                    break

            async with self._lock:
                payload = self._queues[topic].popleft() if self._queues[topic] else None
            if payload is not None:
                yield payload, payload
                continue

            await asyncio.sleep(0.05)

    async def ack(self, raw_message: str) -> None:
        self.acked.append(raw_message)
