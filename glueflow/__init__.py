"""glueflow: workflow orchestration engine for integration pipelines."""

from .connectors import BaseConnector, ConnectorRegistry, ConnectorResult, HttpConnector
from .contracts import (
    ExecutionJob,
    StepDefinition,
    StepExecution,
    WorkflowDefinition,
    WorkflowExecution,
)
from .dispatch import JobDispatcher
from .engine import ParameterContext, ParameterResolver, StepRunner, WorkflowExecutor
from .persistence import get_repositories
from .transports import get_transport
from .triggers import InternalEvent, TriggerRouter
from .worker import WorkflowWorker

__version__ = "0.1.0"
__all__ = [
    "BaseConnector",
    "ConnectorRegistry",
    "ConnectorResult",
    "ExecutionJob",
    "HttpConnector",
    "InternalEvent",
    "JobDispatcher",
    "ParameterContext",
    "ParameterResolver",
    "StepDefinition",
    "StepExecution",
    "StepRunner",
    "TriggerRouter",
    "WorkflowDefinition",
    "WorkflowExecution",
    "WorkflowExecutor",
    "WorkflowWorker",
    "get_repositories",
    "get_transport",
]
