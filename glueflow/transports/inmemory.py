"""In-memory transport for tests and single-process deployments."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, Optional, Tuple

from ..contracts import ExecutionJob
from .base import BaseTransport

RawJob = Tuple[str, ExecutionJob]


class InMemoryTransport(BaseTransport[RawJob]):
    """Simple in-process queue."""

    def __init__(self, poll_interval: float = 0.1) -> None:
        self._queues: Dict[str, Deque[RawJob]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self._poll_interval = poll_interval

    async def publish(self, topic: str, job: ExecutionJob) -> None:
        """Publish job to in-memory queue."""
        raw = (topic, job)
        async with self._lock:
            self._queues[topic].append(raw)

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawJob, ExecutionJob]]:
        """Subscribe to jobs from topic.

        Args:
            topic: The topic to subscribe to
            lifespan: Maximum time in seconds to keep connection open. If None, runs indefinitely.
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            if lifespan is not None and loop.time() - start_time >= lifespan:
                break

            async with self._lock:
                raw_message = (
                    self._queues[topic].popleft() if self._queues[topic] else None
                )
            if raw_message is not None:
                yield raw_message, raw_message[1]
                continue

            await asyncio.sleep(self._poll_interval)

    async def ack(self, raw_message: RawJob) -> None:
        """No-op acknowledgment for in-memory transport."""
        pass

    async def nack(self, raw_message: RawJob, requeue: bool = True) -> None:
        if requeue:
            topic, job = raw_message
            await self.publish(topic, job)

    def pending(self, topic: str) -> int:
        return len(self._queues[topic])
