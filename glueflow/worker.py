"""Worker that consumes execution jobs and runs them."""

from __future__ import annotations

import logging
from typing import Optional

from .constants import DEFAULT_QUEUE_TOPIC
from .contracts import ExecutionJob, WorkflowExecution
from .engine import WorkflowExecutor
from .errors import WorkflowNotFound
from .persistence import ExecutionRepository, WorkflowRepository
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class WorkflowWorker:
    """Executes workflows by listening to transport messages."""

    def __init__(
        self,
        transport: BaseTransport,
        workflow_repository: WorkflowRepository,
        execution_repository: ExecutionRepository,
        executor: Optional[WorkflowExecutor] = None,
        topic: str = DEFAULT_QUEUE_TOPIC,
    ) -> None:
        self._transport = transport
        self._workflows = workflow_repository
        self._executions = execution_repository
        self._topic = topic
        self.executor = executor or WorkflowExecutor(
            workflow_repository=workflow_repository,
            execution_repository=execution_repository,
        )
        self.processed_jobs: list[str] = []

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Consume jobs until ``lifespan`` seconds elapse (forever when ``None``)."""
        logger.info(f"Worker listening on {self._topic}")
        async for raw_message, job in self._transport.subscribe(
            self._topic, lifespan=lifespan
        ):
            try:
                await self.handle_job(job)
            except Exception:
                logger.exception(f"Job {job.job_id} ({job.type}) failed")
                await self._transport.nack(raw_message, requeue=False)
            else:
                await self._transport.ack(raw_message)
            finally:
                self.processed_jobs.append(job.job_id)

    async def handle_job(self, job: ExecutionJob) -> WorkflowExecution:
        """Run one job and persist the resulting execution."""
        logger.info(f"Processing job {job.job_id} of type {job.type}")
        if job.type == "execute":
            return await self._process_execute(job)
        return await self._process_resume(job)

    async def _process_execute(self, job: ExecutionJob) -> WorkflowExecution:
        workflow = await self._workflows.find_by_id(job.workflow_id)
        if workflow is None:
            raise WorkflowNotFound(f"Workflow not found: {job.workflow_id}")

        logger.info(f"Executing workflow {workflow.name} ({workflow.id})")
        execution = await self.executor.execute(workflow, job.input)
        execution.metadata = {**(execution.metadata or {}), "jobId": job.job_id}
        await self._executions.create(execution)
        logger.info(f"Execution {execution.id} status: {execution.status}")
        return execution

    async def _process_resume(self, job: ExecutionJob) -> WorkflowExecution:
        logger.info(f"Resuming execution: {job.execution_id}")
        execution = await self.executor.resume(job.execution_id)
        await self._executions.update(
            job.execution_id, execution.model_dump(exclude={"id"})
        )
        logger.info(f"Execution {job.execution_id} resumed, status: {execution.status}")
        return execution
