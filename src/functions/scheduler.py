"""Schedule runner function.

Triggered by ``schedule/start``; cancelled by a ``schedule/stop`` carrying
the same workflow and owner.
"""

from datetime import datetime
from typing import Any

import inngest
import structlog

from src.core.schedule_engine import ScheduleEngine
from src.functions.client import inngest_client
from src.functions.runtime import (
    InngestStepRuntime,
    open_session,
    parse_event_data,
    to_inngest_cancel,
    translate_errors,
)
from src.models.events import SCHEDULE_CANCEL_RULE, SCHEDULE_START_EVENT, ScheduleStartData
from src.services.workflow_service import WorkflowService
from src.workflows import WORKFLOW_HANDLERS

logger = structlog.get_logger()


class SessionLeaseStore:
    """ScheduleLeaseStore opening a fresh session per call.

    A runner may sleep for days between steps, so no session is held
    across them.
    """

    async def holds_schedule_lease(
        self, workflow_id: str, owner_user_id: str, generation: int
    ) -> bool:
        async with open_session() as session:
            return await WorkflowService(session).holds_schedule_lease(
                workflow_id, owner_user_id, generation
            )

    async def record_next_run(
        self, workflow_id: str, generation: int, next_run_at: datetime
    ) -> None:
        async with open_session() as session:
            await WorkflowService(session).record_next_run(workflow_id, generation, next_run_at)

    async def record_fire(
        self, workflow_id: str, generation: int, fired_at: datetime
    ) -> None:
        async with open_session() as session:
            await WorkflowService(session).record_fire(workflow_id, generation, fired_at)


schedule_engine = ScheduleEngine(SessionLeaseStore(), known_events=WORKFLOW_HANDLERS.keys())


@inngest_client.create_function(
    fn_id="schedule-runner",
    trigger=inngest.TriggerEvent(event=SCHEDULE_START_EVENT),
    cancel=[to_inngest_cancel(SCHEDULE_CANCEL_RULE)],
)
async def schedule_runner(ctx: inngest.Context, step: inngest.Step) -> dict[str, Any]:
    payload = parse_event_data(ScheduleStartData, ctx.event.data)
    outcome = await translate_errors(
        schedule_engine.run(payload, InngestStepRuntime(ctx, step))
    )
    return outcome.to_dict()
