"""Inngest functions for the business workflows.

One function per entry in WORKFLOW_HANDLERS. Each run resolves the
workflow's credentials, then hands an ExecutionContext to the handler.
"""

from typing import Any

import inngest
import structlog

from src.functions.client import inngest_client
from src.functions.runtime import InngestStepRuntime, open_session, parse_event_data, translate_errors
from src.integrations.registry import get_integration_registry
from src.models.events import WorkflowEventData
from src.services.credential_resolver import CredentialResolver
from src.services.credential_service import CredentialService
from src.workflows import WORKFLOW_HANDLERS, WorkflowHandler

logger = structlog.get_logger()


def function_id(event_name: str) -> str:
    """``workflow/report.requested`` -> ``workflow-report-requested``"""
    return event_name.replace("/", "-").replace(".", "-")


def build_workflow_function(event_name: str, handler: WorkflowHandler) -> inngest.Function:
    """Register an Inngest function running ``handler`` for ``event_name``."""

    @inngest_client.create_function(
        fn_id=function_id(event_name),
        trigger=inngest.TriggerEvent(event=event_name),
    )
    async def run_workflow(ctx: inngest.Context, step: inngest.Step) -> dict[str, Any]:
        event = parse_event_data(WorkflowEventData, ctx.event.data)
        log = logger.bind(
            event_name=event_name,
            workflow_id=event.workflow_id,
            user_id=event.owner_user_id,
            run_id=ctx.run_id,
        )

        registry = get_integration_registry()
        async with open_session() as session:
            resolver = CredentialResolver(
                session,
                CredentialService(session),
                registry,
                registry.transport,
            )
            context = await resolver.resolve(event_name, event.owner_user_id, event.workflow_id)
            log.info("workflow_run_started", scheduled_run=event.scheduled_run)
            result = await translate_errors(
                handler(context, event, InngestStepRuntime(ctx, step))
            )

        log.info("workflow_run_completed")
        return result

    return run_workflow


workflow_functions: list[inngest.Function] = [
    build_workflow_function(event_name, handler)
    for event_name, handler in WORKFLOW_HANDLERS.items()
]
