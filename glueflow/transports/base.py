"""Queue transport interface: carries ExecutionJob envelopes to workers."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Generic, Optional, Tuple, TypeVar

from ..contracts import ExecutionJob

RawMessageT = TypeVar("RawMessageT")


class BaseTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """Moves jobs from a dispatcher to the workers listening on a topic.

    A job leaves the queue when ``subscribe`` yields it. It only comes back
    through ``nack(raw, requeue=True)`` on backends that support redelivery.
    ``RawMessageT`` is whatever the backend needs to ack or requeue a job.
    """

    async def connect(self) -> None:
        """Open the broker connection; backends without one do nothing."""

    async def disconnect(self) -> None:
        """Release the broker connection."""

    async def __aenter__(self) -> "BaseTransport[RawMessageT]":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.disconnect()

    @abc.abstractmethod
    async def publish(self, topic: str, job: ExecutionJob) -> None:
        """Append ``job`` to the queue named ``topic``."""
        raise NotImplementedError

    @abc.abstractmethod
    def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessageT, ExecutionJob]]:
        """Yield ``(raw, job)`` pairs in arrival order.

        Stops after ``lifespan`` seconds; ``None`` keeps listening forever.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        """Mark a yielded job as handled."""
        raise NotImplementedError

    async def nack(self, raw_message: RawMessageT, requeue: bool = True) -> None:
        """Report a failed job. Backends that cannot redeliver simply ack it."""
        await self.ack(raw_message)
