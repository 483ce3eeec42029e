"""Run a small workflow in-process and print its trace."""

import asyncio

from glueflow import StepRunner, WorkflowDefinition, WorkflowExecutor
from glueflow.engine import LoggingEventEmitter

WORKFLOW = {
    "id": "user-digest",
    "name": "User digest",
    "version": "1.0.0",
    "errorHandling": {"onError": "continue"},
    "steps": [
        {
            "id": "fetch",
            "name": "Fetch user",
            "type": "connector",
            "config": {
                "connectorType": "http",
                "url": "https://jsonplaceholder.typicode.com/users/${workflow.input.userId}",
            },
            "retryPolicy": {"maxAttempts": 3, "delayMs": 500, "backoffMultiplier": 2},
            "timeout": 10000,
        },
        {
            "id": "shape",
            "name": "Shape user",
            "type": "transformer",
            "config": {"mapping": {"user.name": "data.name", "user.email": "data.email"}},
            "dependsOn": ["fetch"],
        },
        {
            "id": "is-biz",
            "name": "Business address?",
            "type": "condition",
            "config": {
                "condition": {"field": "user.email", "operator": "contains", "value": ".biz"}
            },
            "dependsOn": ["shape"],
        },
    ],
}


async def main():
    workflow = WorkflowDefinition.model_validate(WORKFLOW)
    executor = WorkflowExecutor(step_runner=StepRunner(), event_emitter=LoggingEventEmitter())

    execution = await executor.execute(workflow, {"userId": 1})

    print(f"Execution {execution.id}: {execution.status}")
    for step in execution.step_executions:
        print(f"  {step.step_id}: {step.status} (attempts: {step.attempts})")
    print(f"Output: {execution.output}")


if __name__ == "__main__":
    asyncio.run(main())
