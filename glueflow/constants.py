"""Shared defaults for glueflow."""

DEFAULT_CONNECTOR_TYPE = "http"
DEFAULT_RETRY_DELAY_MS = 1000
DEFAULT_QUEUE_TOPIC = "glueflow-workflows"

EVENT_EXECUTION_STARTED = "execution.started"
EVENT_STEP_STARTED = "step.started"
EVENT_STEP_COMPLETED = "step.completed"
EVENT_EXECUTION_COMPLETED = "execution.completed"
