"""Job dispatcher: enqueues workflow executions for workers."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .constants import DEFAULT_QUEUE_TOPIC
from .contracts import ExecutionJob
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class JobDispatcher:
    """Publishes execution requests; workers pick them up later.

    Enqueueing returns as soon as the job is on the transport. Callers track
    progress through the execution record a worker persists.
    """

    def __init__(self, transport: BaseTransport, topic: str = DEFAULT_QUEUE_TOPIC) -> None:
        self._transport = transport
        self._topic = topic

    @property
    def topic(self) -> str:
        return self._topic

    async def enqueue_execute(
        self, workflow_id: str, input: Optional[Dict[str, Any]] = None
    ) -> str:
        """Queue a run of ``workflow_id`` with ``input``; return the job id."""
        job = ExecutionJob(type="execute", workflow_id=workflow_id, input=input or {})
        await self._transport.publish(self._topic, job)
        logger.info(f"Enqueued execute job {job.job_id} for workflow {workflow_id}")
        return job.job_id

    async def enqueue_resume(self, execution_id: str) -> str:
        """Queue continuation of a stored execution; return the job id."""
        job = ExecutionJob(type="resume", execution_id=execution_id)
        await self._transport.publish(self._topic, job)
        logger.info(f"Enqueued resume job {job.job_id} for execution {execution_id}")
        return job.job_id
