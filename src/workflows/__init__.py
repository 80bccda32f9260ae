"""Business workflows triggered by template events."""

from src.workflows.handlers import WORKFLOW_HANDLERS, WorkflowHandler

__all__ = [
    "WORKFLOW_HANDLERS",
    "WorkflowHandler",
]
