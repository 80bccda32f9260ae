"""Durable functions served to Inngest."""

from src.functions.business import workflow_functions
from src.functions.client import InngestEventPublisher, inngest_client
from src.functions.runtime import init_function_sessions
from src.functions.scheduler import schedule_runner

ALL_FUNCTIONS = [schedule_runner, *workflow_functions]

__all__ = [
    "ALL_FUNCTIONS",
    "InngestEventPublisher",
    "init_function_sessions",
    "inngest_client",
]
