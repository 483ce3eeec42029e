"""Command line interface for glueflow workflows and workers."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml
from pydantic import ValidationError

from .config import configure_logging, load_config
from .contracts import WorkflowDefinition
from .dispatch import JobDispatcher
from .engine import LoggingEventEmitter, StepRunner, WorkflowExecutor, validate_workflow
from .errors import WorkflowDefinitionError
from .persistence import get_repositories
from .transports import get_transport
from .worker import WorkflowWorker

app = typer.Typer(help="CLI for glueflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for running and managing workflows")
worker_app = typer.Typer(help="Commands for running workers")
execution_app = typer.Typer(help="Commands for inspecting executions")

app.add_typer(workflow_app, name="workflow")
app.add_typer(worker_app, name="worker")
app.add_typer(execution_app, name="execution")


@app.callback()
def main() -> None:
    """glueflow CLI entry point."""
    configure_logging(load_config())


def _load_definition(path: Path) -> WorkflowDefinition:
    """Read a YAML or JSON workflow file, exiting with code 1 when it is invalid."""
    if not path.exists():
        typer.secho(f"File not found: {path}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        data = yaml.safe_load(path.read_text()) or {}
        workflow = WorkflowDefinition.model_validate(data)
        validate_workflow(workflow)
    except (yaml.YAMLError, ValidationError, WorkflowDefinitionError) as exc:
        typer.secho(f"Invalid workflow definition: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return workflow


def _parse_input(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        typer.secho(f"Input is not valid JSON: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not isinstance(value, dict):
        typer.secho("Input must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return value


@workflow_app.command("run")
def workflow_run(
    workflow_path: Path,
    input: Optional[str] = typer.Option(None, help="JSON object passed as workflow input"),
) -> None:
    """
    Execute a workflow definition in this process and print the execution.

    Example:
        glueflow workflow run ./workflows/sync.yaml --input '{"userId": 7}'
    """
    workflow = _load_definition(workflow_path)
    config = load_config()
    executor = WorkflowExecutor(
        step_runner=StepRunner(
            default_retry_delay_ms=config.engine.default_retry_delay_ms
        ),
        event_emitter=LoggingEventEmitter(),
    )
    execution = asyncio.run(executor.execute(workflow, _parse_input(input)))
    typer.echo(json.dumps(execution.to_document(), indent=2))
    if execution.status != "completed":
        raise typer.Exit(code=1)


@workflow_app.command("validate")
def workflow_validate(workflow_path: Path) -> None:
    """Check that a workflow file parses and its dependency graph is acyclic."""
    workflow = _load_definition(workflow_path)
    typer.echo(f"Workflow {workflow.id} ({len(workflow.steps)} steps) is valid")


@workflow_app.command("register")
def workflow_register(workflow_path: Path) -> None:
    """Store a workflow definition in the configured repository so workers can run it."""
    workflow = _load_definition(workflow_path)
    repos = get_repositories()
    asyncio.run(repos.workflows.save(workflow))
    typer.echo(f"Registered workflow {workflow.id} v{workflow.version}")


@workflow_app.command("list")
def workflow_list() -> None:
    """List registered workflow definitions."""
    repos = get_repositories()
    workflows = asyncio.run(repos.workflows.list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{wf.version}\t{wf.name}")


@workflow_app.command("dispatch")
def workflow_dispatch(
    workflow_id: str,
    input: Optional[str] = typer.Option(None, help="JSON object passed as workflow input"),
) -> None:
    """
    Enqueue an execution of a registered workflow and print the job id.

    Example:
        glueflow workflow dispatch user-sync --input '{"userId": 7}'
        # Output: Job id: 5d6c...
        #         Start a worker with: glueflow worker start
    """
    payload = _parse_input(input)
    config = load_config()

    async def _dispatch() -> str:
        async with get_transport(config=config) as transport:
            dispatcher = JobDispatcher(transport, topic=config.transport.queue)
            return await dispatcher.enqueue_execute(workflow_id, payload)

    job_id = asyncio.run(_dispatch())
    typer.echo(f"Job id: {job_id}")
    typer.echo("Start a worker with: glueflow worker start")


@worker_app.command("start")
def worker_start(
    lifespan: Optional[float] = typer.Option(
        None, help="Stop after this many seconds (default: run indefinitely)"
    ),
) -> None:
    """Run a worker that executes queued workflow jobs."""
    config = load_config()
    repos = get_repositories()
    executor = WorkflowExecutor(
        step_runner=StepRunner(
            default_retry_delay_ms=config.engine.default_retry_delay_ms
        ),
        event_emitter=LoggingEventEmitter(),
        workflow_repository=repos.workflows,
        execution_repository=repos.executions,
    )

    async def _work() -> None:
        async with get_transport(config=config) as transport:
            worker = WorkflowWorker(
                transport,
                repos.workflows,
                repos.executions,
                executor=executor,
                topic=config.transport.queue,
            )
            await worker.start(lifespan=lifespan)

    typer.echo(f"Starting worker on {config.transport.queue}")
    asyncio.run(_work())


@execution_app.command("list")
def execution_list(
    workflow_id: Optional[str] = typer.Option(None, help="Only this workflow's executions"),
) -> None:
    """List persisted executions, newest first."""
    repos = get_repositories()
    executions = asyncio.run(repos.executions.list_executions(workflow_id))
    if not executions:
        typer.echo("No executions found")
        return
    for ex in executions:
        typer.echo(f"{ex.id}\t{ex.workflow_id}\t{ex.status}")


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """
    Show one execution with its step-by-step trace.

    Example:
        glueflow execution show 0b7e...
        # Output: Execution 0b7e...: failed
        #         Workflow: user-sync
        #         - fetch: completed (attempts: 1)
        #         - push: failed (attempts: 3) HTTP_ERROR: HTTP 503
    """
    repos = get_repositories()
    ex = asyncio.run(repos.executions.find_by_id(execution_id))
    if ex is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    typer.echo(f"Execution {ex.id}: {ex.status}")
    typer.echo(f"Workflow: {ex.workflow_id}")
    if ex.input:
        typer.echo(f"Input: {json.dumps(ex.input)}")
    for step in ex.step_executions:
        line = f"- {step.step_id}: {step.status} (attempts: {step.attempts})"
        if step.error:
            line += f" {step.error.code}: {step.error.message}"
        typer.echo(line)
    if ex.output is not None:
        typer.echo(f"Output: {json.dumps(ex.output)}")
    if ex.error:
        typer.echo(f"Error: {ex.error.code}: {ex.error.message}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
