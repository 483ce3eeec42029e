"""Redis transport for cross-process job queues."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError

from ..contracts import ExecutionJob
from .base import BaseTransport

logger = logging.getLogger(__name__)


RawJob = Tuple[str, str]


class RedisTransport(BaseTransport[RawJob]):
    """Redis list-backed transport: LPUSH to publish, BRPOP to consume."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        prefix: str = "glueflow",
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.prefix = prefix
        self._redis: Optional[Any] = None

    def _queue_name(self, topic: str) -> str:
        return f"{self.prefix}:{topic}"

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

    async def publish(self, topic: str, job: ExecutionJob) -> None:
        """Publish job to Redis list (acting as queue)."""
        if not self._redis:
            await self.connect()
        await self._redis.lpush(self._queue_name(topic), job.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawJob, ExecutionJob]]:
        """Subscribe to jobs from Redis queue."""
        if not self._redis:
            await self.connect()

        queue_name = self._queue_name(topic)
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            if lifespan is not None and loop.time() - start_time >= lifespan:
                break

            result = await self._redis.brpop(queue_name, timeout=1)
            if not result:
                continue

            _, job_json = result
            try:
                job = ExecutionJob.from_json(job_json)
            except ValidationError as e:
                logger.error(f"Dropping malformed job on {queue_name}: {e}")
                continue
            yield (queue_name, job_json), job

    async def ack(self, raw_message: RawJob) -> None:
        """No-op acknowledgment for Redis transport (message already consumed)."""
        pass

    async def nack(self, raw_message: RawJob, requeue: bool = True) -> None:
        """Push the job back on the consuming end of its queue when ``requeue``."""
        if requeue and self._redis:
            queue_name, job_json = raw_message
            await self._redis.rpush(queue_name, job_json)
