"""Workflow executor tests."""

import asyncio

import pytest

from conftest import FailingConnector, StaticConnector, SumConnector
from glueflow.connectors import BaseConnector, ConnectorRegistry, ConnectorResult
from glueflow.contracts import WorkflowDefinition, WorkflowExecution
from glueflow.engine import RecordingEventEmitter, StepRunner, WorkflowExecutor
from glueflow.errors import ExecutionNotFound, WorkflowNotFound
from glueflow.persistence import InMemoryExecutionRepository, InMemoryWorkflowRepository


def make_workflow(steps, on_error="stop", **extra) -> WorkflowDefinition:
    document = {"id": "wf-1", "name": "Test workflow", "version": "1.0.0", "steps": steps}
    document["errorHandling"] = {"onError": on_error}
    document.update(extra)
    return WorkflowDefinition.model_validate(document)


def connector(step_id, connector_type, depends_on=None, **extra):
    step = {
        "id": step_id,
        "name": step_id,
        "type": "connector",
        "config": {"connectorType": connector_type},
        "dependsOn": depends_on or [],
    }
    step.update(extra)
    return step


def executor_for(*connectors, **kwargs) -> WorkflowExecutor:
    runner = StepRunner(registry=ConnectorRegistry(connectors))
    return WorkflowExecutor(step_runner=runner, env={}, **kwargs)


@pytest.mark.asyncio
async def test_stop_policy_halts_at_first_failure(sleeps):
    after = StaticConnector()
    executor = executor_for(FailingConnector(), after)
    workflow = make_workflow([connector("s1", "failing"), connector("s2", "static")])

    execution = await executor.execute(workflow, {"x": 1})

    assert execution.status == "failed"
    assert execution.error.code == "STEP_FAILED"
    assert execution.error.step_id == "s1"
    assert execution.error.message == "Step s1 failed"
    assert execution.error.details["code"] == "HTTP_ERROR"
    assert [s.step_id for s in execution.step_executions] == ["s1"]
    assert after.calls == []
    assert execution.completed_at is not None
    assert execution.output is None


@pytest.mark.asyncio
async def test_continue_policy_runs_remaining_steps(sleeps):
    after = StaticConnector()
    executor = executor_for(FailingConnector(), after)
    workflow = make_workflow(
        [connector("s1", "failing"), connector("s2", "static")], on_error="continue"
    )

    execution = await executor.execute(workflow, {})

    assert execution.status == "completed"
    assert [(s.step_id, s.status) for s in execution.step_executions] == [
        ("s1", "failed"),
        ("s2", "completed"),
    ]
    assert execution.error is None
    assert len(after.calls) == 1


@pytest.mark.asyncio
async def test_dependency_outputs_are_merged_into_input():
    recorder = StaticConnector()
    executor = executor_for(recorder)
    workflow = make_workflow(
        [
            {
                "id": "a",
                "name": "a",
                "type": "transformer",
                "config": {"mapping": {"y": "x"}},
            },
            connector("b", "static", depends_on=["a"]),
        ]
    )

    execution = await executor.execute(workflow, {"x": 1})

    assert execution.status == "completed"
    assert recorder.calls[0][1] == {"x": 1, "y": 1}
    assert execution.step_executions[1].input == {"x": 1, "y": 1}


def _mapping_step(step_id, mapping):
    return {"id": step_id, "name": step_id, "type": "transformer", "config": {"mapping": mapping}}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "depends_on, expected",
    [
        (["a", "b"], "from-b"),
        (["b", "a"], "from-a"),
    ],
)
async def test_later_dependency_wins_on_key_collision(depends_on, expected):
    recorder = StaticConnector()
    executor = executor_for(recorder)
    workflow = make_workflow(
        [
            _mapping_step("a", {"shared": "first", "onlyA": "first"}),
            _mapping_step("b", {"shared": "second"}),
            connector("c", "static", depends_on=depends_on),
        ]
    )

    execution = await executor.execute(workflow, {"first": "from-a", "second": "from-b"})

    assert execution.status == "completed"
    seen = recorder.calls[0][1]
    assert seen["shared"] == expected
    assert seen["onlyA"] == "from-a"
    assert seen["first"] == "from-a"


@pytest.mark.asyncio
async def test_failed_dependency_contributes_nothing(sleeps):
    recorder = StaticConnector()
    executor = executor_for(FailingConnector(), recorder)
    workflow = make_workflow(
        [connector("a", "failing"), connector("b", "static", depends_on=["a"])],
        on_error="continue",
    )

    execution = await executor.execute(workflow, {"x": 1})

    assert execution.status == "completed"
    assert execution.step_executions[0].status == "failed"
    assert execution.step_executions[0].output is None
    assert recorder.calls[0][1] == {"x": 1}
    assert execution.step_executions[1].input == {"x": 1}


@pytest.mark.asyncio
async def test_connector_mutating_input_does_not_alter_trace():
    class MutatingConnector(BaseConnector):
        type = "mutating"

        async def execute(self, config, input):
            input["nested"]["x"] = 99
            return ConnectorResult.ok({"seen": input["nested"]["x"]})

    executor = executor_for(MutatingConnector())
    workflow = make_workflow(
        [
            _mapping_step("copy", {"nested": "nested"}),
            connector("mutate", "mutating", depends_on=["copy"]),
        ]
    )

    execution = await executor.execute(workflow, {"nested": {"x": 1}})

    assert execution.status == "completed"
    assert execution.input == {"nested": {"x": 1}}
    assert execution.step_executions[0].output == {"nested": {"x": 1}}
    assert execution.step_executions[1].input == {"nested": {"x": 1}}
    assert execution.output == {"data": {"seen": 99}}


@pytest.mark.asyncio
async def test_script_connector_end_to_end():
    executor = executor_for(SumConnector())
    workflow = make_workflow(
        [
            {
                "id": "add",
                "name": "Add numbers",
                "type": "connector",
                "config": {
                    "connectorType": "javascript",
                    "code": "return context.a + context.b",
                },
                "parameters": {
                    "context": {"a": "${workflow.input.a}", "b": "${workflow.input.b}"}
                },
            }
        ]
    )

    execution = await executor.execute(workflow, {"a": 2, "b": 3})

    assert execution.status == "completed"
    assert execution.step_executions[0].output == {"data": {"sum": 5}}
    assert execution.output == {"data": {"sum": 5}}


@pytest.mark.asyncio
async def test_steps_run_in_dependency_order():
    executor = executor_for(StaticConnector())
    workflow = make_workflow(
        [
            connector("report", "static", depends_on=["load"]),
            connector("load", "static", depends_on=["extract"]),
            connector("extract", "static"),
            connector("audit", "static"),
        ]
    )

    execution = await executor.execute(workflow, {})

    assert [s.step_id for s in execution.step_executions] == [
        "extract",
        "load",
        "report",
        "audit",
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "steps, message",
    [
        (
            [connector("a", "static", ["b"]), connector("b", "static", ["a"])],
            "Dependency cycle detected",
        ),
        ([connector("a", "static", ["ghost"])], "depends on unknown step ghost"),
    ],
)
async def test_invalid_graph_fails_before_running(steps, message):
    recorder = StaticConnector()
    executor = executor_for(recorder)

    execution = await executor.execute(make_workflow(steps), {})

    assert execution.status == "failed"
    assert execution.error.code == "INVALID_DEFINITION"
    assert message in execution.error.message
    assert execution.step_executions == []
    assert recorder.calls == []


@pytest.mark.asyncio
async def test_terminal_step_outputs_form_workflow_output():
    executor = executor_for(StaticConnector())
    workflow = make_workflow(
        [
            {"id": "seed", "name": "seed", "type": "transformer", "config": {"mapping": {"n": "n"}}},
            {
                "id": "left",
                "name": "left",
                "type": "transformer",
                "config": {"mapping": {"left": "n"}},
                "dependsOn": ["seed"],
            },
            {
                "id": "right",
                "name": "right",
                "type": "transformer",
                "config": {"mapping": {"right": "n"}},
                "dependsOn": ["seed"],
            },
        ]
    )

    execution = await executor.execute(workflow, {"n": 4})

    assert execution.output == {"left": 4, "right": 4}


@pytest.mark.asyncio
async def test_lifecycle_events_are_emitted_in_order():
    emitter = RecordingEventEmitter()
    executor = executor_for(StaticConnector(), event_emitter=emitter)
    workflow = make_workflow([connector("a", "static"), connector("b", "static")])

    execution = await executor.execute(workflow, {})

    assert emitter.names() == [
        "execution.started",
        "step.started",
        "step.completed",
        "step.started",
        "step.completed",
        "execution.completed",
    ]
    assert all(p["executionId"] == execution.id for _, p in emitter.events)
    assert emitter.events[2][1]["stepExecution"]["status"] == "completed"
    assert emitter.events[-1][1]["execution"]["status"] == "completed"

    step_started = emitter.events[3][1]
    assert step_started["stepId"] == "b"
    assert step_started["step"]["id"] == "b"
    assert step_started["step"]["config"] == {"connectorType": "static"}
    assert [s["stepId"] for s in step_started["execution"]["stepExecutions"]] == ["a"]


class BlobConnector(BaseConnector):
    """Returns raw bytes, which have no JSON form."""

    type = "blob"

    async def execute(self, config, input):
        return ConnectorResult.ok({"body": b"\xff\xfe raw bytes"})


@pytest.mark.asyncio
async def test_unserializable_output_without_emitter():
    executor = executor_for(BlobConnector())

    execution = await executor.execute(make_workflow([connector("blob", "blob")]), {})

    assert execution.status == "completed"
    assert execution.output == {"data": {"body": b"\xff\xfe raw bytes"}}
    assert execution.completed_at is not None


@pytest.mark.asyncio
async def test_unserializable_output_with_emitter_only_drops_events():
    emitter = RecordingEventEmitter()
    executor = executor_for(BlobConnector(), event_emitter=emitter)

    execution = await executor.execute(make_workflow([connector("blob", "blob")]), {})

    assert execution.status == "completed"
    assert execution.error is None
    # payloads that cannot be serialized are skipped, the rest still arrive
    assert emitter.names() == ["execution.started", "step.started"]


@pytest.mark.asyncio
async def test_event_sink_errors_do_not_affect_run():
    class ExplodingEmitter:
        def emit(self, event, payload):
            raise RuntimeError("sink down")

    executor = executor_for(StaticConnector(), event_emitter=ExplodingEmitter())
    execution = await executor.execute(make_workflow([connector("a", "static")]), {})
    assert execution.status == "completed"


@pytest.mark.asyncio
async def test_unexpected_runner_error_fails_execution():
    class BrokenRunner(StepRunner):
        async def execute_with_retry(self, *args, **kwargs):
            raise RuntimeError("runner crashed")

    executor = WorkflowExecutor(step_runner=BrokenRunner(registry=ConnectorRegistry()))
    execution = await executor.execute(make_workflow([connector("a", "static")]), {})

    assert execution.status == "failed"
    assert execution.error.code == "INTERNAL_ERROR"
    assert execution.completed_at is not None


@pytest.mark.asyncio
async def test_input_is_not_mutated_by_run():
    executor = executor_for(StaticConnector())
    workflow_input = {"nested": {"a": 1}}
    execution = await executor.execute(
        make_workflow(
            [{"id": "t", "name": "t", "type": "transformer", "config": {"mapping": {"b": "nested.a"}}}]
        ),
        workflow_input,
    )
    execution.input["nested"]["a"] = 99
    assert workflow_input == {"nested": {"a": 1}}


@pytest.mark.asyncio
async def test_cancel_stops_before_next_step():
    gate = asyncio.Event()

    class BlockingConnector(BaseConnector):
        type = "blocking"

        async def execute(self, config, input):
            await gate.wait()
            return ConnectorResult.ok({"released": True})

    after = StaticConnector()
    emitter = RecordingEventEmitter()
    executor = executor_for(BlockingConnector(), after, event_emitter=emitter)
    workflow = make_workflow([connector("wait", "blocking"), connector("next", "static")])

    task = asyncio.create_task(executor.execute(workflow, {}))
    while "step.started" not in emitter.names():
        await asyncio.sleep(0)
    execution_id = emitter.events[0][1]["executionId"]
    assert executor.is_running(execution_id)

    await executor.cancel(execution_id)
    gate.set()
    execution = await task

    assert execution.status == "cancelled"
    assert execution.error.code == "CANCELLED"
    assert [s.step_id for s in execution.step_executions] == ["wait"]
    assert after.calls == []
    assert not executor.is_running(execution_id)


@pytest.mark.asyncio
async def test_resume_skips_completed_steps(sleeps):
    workflows = InMemoryWorkflowRepository()
    executions = InMemoryExecutionRepository()
    first = StaticConnector()
    flaky = FailingConnector(failures=1)
    executor = executor_for(
        first, flaky, workflow_repository=workflows, execution_repository=executions
    )
    workflow = make_workflow([connector("s1", "static"), connector("s2", "failing")])
    await workflows.save(workflow)

    failed = await executor.execute(workflow, {"k": "v"})
    assert failed.status == "failed"
    await executions.create(failed)

    resumed = await executor.resume(failed.id)

    assert resumed.id == failed.id
    assert resumed.status == "completed"
    assert len(first.calls) == 1
    assert flaky.calls == 2
    assert [(s.step_id, s.status) for s in resumed.step_executions] == [
        ("s1", "completed"),
        ("s2", "failed"),
        ("s2", "completed"),
    ]
    assert resumed.output == {"data": {"recovered": True}}
    assert resumed.error is None


@pytest.mark.asyncio
async def test_resume_completed_and_missing_executions():
    workflows = InMemoryWorkflowRepository()
    executions = InMemoryExecutionRepository()
    recorder = StaticConnector()
    executor = executor_for(
        recorder, workflow_repository=workflows, execution_repository=executions
    )
    workflow = make_workflow([connector("s1", "static")])
    await workflows.save(workflow)
    done = await executor.execute(workflow, {})
    await executions.create(done)

    again = await executor.resume(done.id)
    assert again.status == "completed"
    assert len(recorder.calls) == 1

    with pytest.raises(ExecutionNotFound):
        await executor.resume("does-not-exist")


@pytest.mark.asyncio
async def test_cancel_marks_stored_execution():
    executions = InMemoryExecutionRepository()
    executor = WorkflowExecutor(execution_repository=executions)
    pending = WorkflowExecution(workflow_id="wf-1", status="running")
    await executions.create(pending)

    await executor.cancel(pending.id)

    stored = await executions.find_by_id(pending.id)
    assert stored.status == "cancelled"
    assert stored.error.code == "CANCELLED"
    assert stored.completed_at is not None

    with pytest.raises(ExecutionNotFound):
        await executor.cancel("unknown")


class SlowWorkflowRepository(InMemoryWorkflowRepository):
    """Yields to the event loop on every lookup."""

    async def find_by_id(self, workflow_id):
        await asyncio.sleep(0)
        return await super().find_by_id(workflow_id)


@pytest.mark.asyncio
async def test_concurrent_resumes_run_once():
    workflows = SlowWorkflowRepository()
    executions = InMemoryExecutionRepository()
    flaky = FailingConnector(failures=1)
    executor = executor_for(
        flaky, workflow_repository=workflows, execution_repository=executions
    )
    workflow = make_workflow([connector("s1", "failing")])
    await workflows.save(workflow)
    failed = await executor.execute(workflow, {})
    assert failed.status == "failed"
    await executions.create(failed)

    results = await asyncio.gather(
        executor.resume(failed.id), executor.resume(failed.id), return_exceptions=True
    )

    resumed = [r for r in results if isinstance(r, WorkflowExecution)]
    rejected = [r for r in results if isinstance(r, RuntimeError)]
    assert len(resumed) == 1 and len(rejected) == 1
    assert "already running" in str(rejected[0])
    assert resumed[0].status == "completed"
    assert flaky.calls == 2
    assert not executor.is_running(failed.id)


@pytest.mark.asyncio
async def test_resume_with_missing_workflow_releases_execution():
    executions = InMemoryExecutionRepository()
    executor = executor_for(
        workflow_repository=InMemoryWorkflowRepository(), execution_repository=executions
    )
    orphan = WorkflowExecution(workflow_id="gone", status="failed")
    await executions.create(orphan)

    with pytest.raises(WorkflowNotFound):
        await executor.resume(orphan.id)
    assert not executor.is_running(orphan.id)
