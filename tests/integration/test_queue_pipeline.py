"""End-to-end: trigger -> dispatcher -> transport -> worker -> repository."""

import pytest

from conftest import SumConnector
from glueflow.connectors import ConnectorRegistry
from glueflow.contracts import WorkflowDefinition
from glueflow.dispatch import JobDispatcher
from glueflow.engine import RecordingEventEmitter, StepRunner, WorkflowExecutor
from glueflow.persistence import (
    InMemoryExecutionRepository,
    InMemoryWorkflowRepository,
    SQLiteExecutionRepository,
    SQLiteStore,
    SQLiteWorkflowRepository,
)
from glueflow.transports import InMemoryTransport
from glueflow.triggers import TriggerRouter
from glueflow.worker import WorkflowWorker

SUM_WORKFLOW = {
    "id": "sum-hook",
    "name": "Sum via webhook",
    "version": "1.0.0",
    "trigger": {"type": "webhook", "config": {"path": "/sum"}},
    "steps": [
        {
            "id": "add",
            "name": "Add",
            "type": "connector",
            "config": {"connectorType": "javascript", "code": "return context.a + context.b"},
            "parameters": {"context": {"a": "${workflow.input.a}", "b": "${workflow.input.b}"}},
        },
        {
            "id": "shape",
            "name": "Shape",
            "type": "transformer",
            "config": {"mapping": {"total": "data.sum", "requested": "a"}},
            "dependsOn": ["add"],
        },
    ],
}


@pytest.fixture(params=["inmemory", "sqlite"])
def repositories(request, tmp_path):
    if request.param == "inmemory":
        yield InMemoryWorkflowRepository(), InMemoryExecutionRepository()
        return
    store = SQLiteStore(tmp_path / "pipeline.db")
    yield SQLiteWorkflowRepository(store), SQLiteExecutionRepository(store)
    store.close()


@pytest.mark.asyncio
async def test_webhook_to_persisted_execution(repositories):
    workflows, executions = repositories
    workflow = WorkflowDefinition.model_validate(SUM_WORKFLOW)
    await workflows.save(workflow)

    transport = InMemoryTransport(poll_interval=0.01)
    dispatcher = JobDispatcher(transport, topic="pipeline")
    router = TriggerRouter(dispatcher.enqueue_execute)
    router.register(workflow)

    emitter = RecordingEventEmitter()
    executor = WorkflowExecutor(
        step_runner=StepRunner(registry=ConnectorRegistry([SumConnector()])),
        event_emitter=emitter,
        workflow_repository=workflows,
        execution_repository=executions,
        env={},
    )
    worker = WorkflowWorker(transport, workflows, executions, executor=executor, topic="pipeline")

    job_id, workflow_id = await router.handle_webhook("/sum", "POST", {"a": 2, "b": 3})
    assert workflow_id == "sum-hook"

    await worker.start(lifespan=0.2)

    assert worker.processed_jobs == [job_id]
    stored = await executions.list_executions("sum-hook")
    assert len(stored) == 1
    execution = stored[0]
    assert execution.status == "completed"
    assert execution.metadata == {"jobId": job_id}
    assert execution.step_executions[0].output == {"data": {"sum": 5}}
    assert execution.output == {"total": 5, "requested": 2}
    assert emitter.names()[0] == "execution.started"
    assert emitter.names()[-1] == "execution.completed"
