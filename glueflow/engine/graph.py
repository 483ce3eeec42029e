"""Dependency-graph helpers for workflow definitions."""

from __future__ import annotations

from collections import deque
from typing import Iterable, List

from ..contracts import StepDefinition, WorkflowDefinition
from ..errors import WorkflowDefinitionError


def execution_order(steps: Iterable[StepDefinition]) -> List[StepDefinition]:
    """Return ``steps`` sorted so every step follows its dependencies.

    Uses Kahn's algorithm; among steps that are ready at the same time the
    definition order is kept.

    Raises:
        WorkflowDefinitionError: On an unknown ``dependsOn`` reference or a cycle.
    """
    steps = list(steps)
    position = {step.id: index for index, step in enumerate(steps)}
    in_degree = {step.id: 0 for step in steps}
    dependents: dict[str, list[str]] = {step.id: [] for step in steps}

    for step in steps:
        for dependency in dict.fromkeys(step.depends_on):
            if dependency not in position:
                raise WorkflowDefinitionError(
                    f"Step {step.id} depends on unknown step {dependency}"
                )
            dependents[dependency].append(step.id)
            in_degree[step.id] += 1

    ready = deque(step.id for step in steps if in_degree[step.id] == 0)
    ordered: List[StepDefinition] = []
    while ready:
        step_id = ready.popleft()
        ordered.append(steps[position[step_id]])
        released = []
        for dependent in dependents[step_id]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                released.append(dependent)
        if released:
            # Re-sort the whole queue so definition order wins among ready steps.
            ready = deque(sorted([*ready, *released], key=position.__getitem__))

    if len(ordered) != len(steps):
        blocked = [step.id for step in steps if in_degree[step.id] > 0]
        raise WorkflowDefinitionError(
            f"Dependency cycle detected among steps: {', '.join(blocked)}"
        )
    return ordered


def terminal_step_ids(steps: Iterable[StepDefinition]) -> set[str]:
    """Ids of steps that no other step depends on."""
    steps = list(steps)
    depended_on = {dependency for step in steps for dependency in step.depends_on}
    return {step.id for step in steps if step.id not in depended_on}


def validate_workflow(workflow: WorkflowDefinition) -> None:
    """Raise ``WorkflowDefinitionError`` if ``workflow`` cannot be scheduled."""
    execution_order(workflow.steps)
