"""Dispatch a job through the configured transport and process it with a worker."""

import asyncio

from glueflow import JobDispatcher, WorkflowDefinition, WorkflowWorker, get_repositories, get_transport

WORKFLOW = {
    "id": "greeting",
    "name": "Greeting",
    "version": "1.0.0",
    "steps": [
        {
            "id": "greet",
            "name": "Build greeting",
            "type": "transformer",
            "config": {"mapping": {"message.to": "name"}},
        }
    ],
}


async def main():
    transport = get_transport()
    await transport.connect()
    repos = get_repositories()
    await repos.workflows.save(WorkflowDefinition.model_validate(WORKFLOW))

    dispatcher = JobDispatcher(transport)
    job_id = await dispatcher.enqueue_execute("greeting", {"name": "Ada"})
    print(f"Job id: {job_id}")

    worker = WorkflowWorker(transport, repos.workflows, repos.executions)
    await worker.start(lifespan=2)

    for execution in await repos.executions.list_executions("greeting"):
        print(f"{execution.id}: {execution.status} -> {execution.output}")

    await transport.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
