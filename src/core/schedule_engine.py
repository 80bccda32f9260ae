"""Recurring schedule engine.

A schedule is a chain of short-lived runner executions. Each runner is
triggered by ``schedule/start``, sleeps until the next cron fire time, emits
the workflow's business event and re-emits ``schedule/start`` to arm the next
runner. A runner moves through these states:

    ARMED -> WAITING -> FIRED
               |
               +-> CANCELLED   (``schedule/stop`` matched while waiting)
               +-> SUPERSEDED  (lease no longer held when it wakes)

The lease is the workflow instance's ``schedule_generation``. Re-scheduling
increments it, so a runner left over from an earlier schedule wakes up,
notices the mismatch and exits without firing.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Collection, Protocol

import structlog

from src.core.cron import ScheduleValidationError, next_fire_time, validate_cron
from src.core.errors import UnknownEventName
from src.core.step_runtime import StepRuntime
from src.models.events import ScheduleStartData, WorkflowEventData

logger = structlog.get_logger()


class ScheduleState(str, Enum):
    """Terminal states a runner execution can report."""

    FIRED = "fired"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class ScheduleOutcome:
    """Result of one runner execution."""

    state: ScheduleState
    workflow_id: str
    fire_at: datetime | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "state": self.state.value,
            "workflowId": self.workflow_id,
            "fireAt": self.fire_at.isoformat() if self.fire_at else None,
        }


class ScheduleLeaseStore(Protocol):
    """Persistence the engine needs from the workflow registry."""

    async def holds_schedule_lease(
        self, workflow_id: str, owner_user_id: str, generation: int
    ) -> bool: ...

    async def record_next_run(
        self, workflow_id: str, generation: int, next_run_at: datetime
    ) -> None: ...

    async def record_fire(
        self, workflow_id: str, generation: int, fired_at: datetime
    ) -> None: ...


def validate_schedule(
    can_be_scheduled: bool,
    cron_expressions: list[str],
    tz_name: str | None,
) -> str:
    """Check that a workflow may enter the scheduled state.

    Args:
        can_be_scheduled: Template flag
        cron_expressions: Cron expressions configured on the instance
        tz_name: IANA timezone (default UTC)

    Returns:
        The single cron expression

    Raises:
        ScheduleValidationError: If any precondition fails
    """
    if not can_be_scheduled:
        raise ScheduleValidationError(
            "This workflow cannot be scheduled",
            errors=["template: scheduling is not supported"],
        )
    if len(cron_expressions) != 1:
        raise ScheduleValidationError(
            "Exactly one cron expression is required",
            errors=[f"cron_expressions: expected 1, got {len(cron_expressions)}"],
        )
    expression = cron_expressions[0]
    validate_cron(expression, tz_name)
    return expression


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleEngine:
    """Runs one link of a recurring schedule chain.

    Example usage:
        engine = ScheduleEngine(store, known_events={"workflow/report.requested"})
        outcome = await engine.run(ScheduleStartData(...), step)
    """

    def __init__(
        self,
        store: ScheduleLeaseStore,
        known_events: Collection[str],
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._known_events = known_events
        self._clock = clock

    async def run(self, payload: ScheduleStartData, step: StepRuntime) -> ScheduleOutcome:
        """Arm, wait, and fire once.

        Cancellation is delivered by the runtime while the execution is
        suspended in ``sleep_until``; nothing after the sleep runs in that case.

        Raises:
            ScheduleValidationError: If the schedule itself is invalid
            UnknownEventName: If no handler is registered for the event
        """
        log = logger.bind(
            workflow_id=payload.workflow_id,
            user_id=payload.owner_user_id,
            run_id=step.run_id,
        )

        validate_schedule(True, [payload.cron_expression], payload.timezone)
        if payload.event_name not in self._known_events:
            log.error("schedule_unknown_event", event_name=payload.event_name)
            raise UnknownEventName(payload.event_name)

        async def compute_next_run() -> str:
            fire_at = next_fire_time(
                payload.cron_expression, payload.timezone, self._clock()
            )
            return fire_at.isoformat()

        # Step results are JSON, so the instant round-trips as an ISO string.
        fire_at = datetime.fromisoformat(await step.run("compute-next-run", compute_next_run))

        async def record_next_run() -> None:
            await self._store.record_next_run(payload.workflow_id, payload.generation, fire_at)

        await step.run("record-next-run", record_next_run)
        log.info("schedule_waiting", fire_at=fire_at.isoformat())

        await step.sleep_until(f"{step.run_id}-sleep-until-next-run", fire_at)

        async def check_lease() -> bool:
            return await self._store.holds_schedule_lease(
                payload.workflow_id, payload.owner_user_id, payload.generation
            )

        if not await step.run("check-schedule-lease", check_lease):
            log.info("schedule_superseded", generation=payload.generation)
            return ScheduleOutcome(ScheduleState.SUPERSEDED, payload.workflow_id, fire_at)

        workflow_event = WorkflowEventData(
            workflow_id=payload.workflow_id,
            owner_user_id=payload.owner_user_id,
            input=payload.input,
            scheduled_run=True,
            cron_expression=payload.cron_expression,
            timezone=payload.timezone,
            generation=payload.generation,
        ).to_event(payload.event_name)

        # Firing and re-arming share one step so a retry cannot fire twice
        # or leave the chain without a successor.
        await step.send_events("fire-and-rearm", [workflow_event, payload.to_event()])

        async def record_fire() -> None:
            await self._store.record_fire(payload.workflow_id, payload.generation, fire_at)

        await step.run("record-fire", record_fire)
        log.info("schedule_fired", event_name=payload.event_name)

        return ScheduleOutcome(ScheduleState.FIRED, payload.workflow_id, fire_at)
