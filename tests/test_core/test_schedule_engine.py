"""Tests for the recurring schedule engine."""

from datetime import datetime, timedelta, timezone

import pytest

from src.core.cron import ScheduleValidationError
from src.core.errors import UnknownEventName
from src.core.schedule_engine import ScheduleEngine, ScheduleState, validate_schedule
from src.models.events import (
    SCHEDULE_CANCEL_RULE,
    SCHEDULE_START_EVENT,
    ScheduleStartData,
    ScheduleStopData,
)
from tests.fakes import FakeStepRuntime, RunCancelled

REPORT_EVENT = "workflow/report.requested"
NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class InMemoryLeaseStore:
    """ScheduleLeaseStore keeping one lease per workflow."""

    def __init__(self, generation: int = 1, active: bool = True) -> None:
        self.generation = generation
        self.active = active
        self.next_runs: list[datetime] = []
        self.fires: list[datetime] = []

    async def holds_schedule_lease(self, workflow_id, owner_user_id, generation) -> bool:
        return self.active and generation == self.generation

    async def record_next_run(self, workflow_id, generation, next_run_at) -> None:
        self.next_runs.append(next_run_at)

    async def record_fire(self, workflow_id, generation, fired_at) -> None:
        self.fires.append(fired_at)


def make_payload(**overrides) -> ScheduleStartData:
    data = {
        "workflow_id": "wf-1",
        "owner_user_id": "user-1",
        "event_name": REPORT_EVENT,
        "cron_expression": "0 9 * * *",
        "timezone": "America/New_York",
        "input": {"reportTitle": "Daily"},
        "generation": 1,
    }
    data.update(overrides)
    return ScheduleStartData(**data)


def make_engine(store: InMemoryLeaseStore, now: datetime = NOW) -> ScheduleEngine:
    return ScheduleEngine(store, known_events={REPORT_EVENT}, clock=lambda: now)


def cancellable_runtime(payload: ScheduleStartData) -> FakeStepRuntime:
    return FakeStepRuntime(
        trigger_data=payload.to_data(),
        cancel_rule=SCHEDULE_CANCEL_RULE,
    )


class TestScheduleEngine:
    """Tests for one runner execution."""

    async def test_fires_at_nine_new_york_and_rearms(self):
        """Scenario: '0 9 * * *' in New York sleeps until 14:00 UTC, fires, re-arms."""
        store = InMemoryLeaseStore()
        step = FakeStepRuntime(run_id="run-a")
        payload = make_payload()

        outcome = await make_engine(store).run(payload, step)

        expected = datetime(2024, 1, 15, 14, 0, 0, 1000, tzinfo=timezone.utc)
        assert outcome.state == ScheduleState.FIRED
        assert outcome.fire_at == expected
        assert step.sleeps == [("run-a-sleep-until-next-run", expected)]

        business, rearm = step.sent
        assert business.name == REPORT_EVENT
        assert business.data["scheduledRun"] is True
        assert business.data["workflowId"] == "wf-1"
        assert business.data["input"] == {"reportTitle": "Daily"}
        assert rearm.name == SCHEDULE_START_EVENT
        assert rearm.data == payload.to_data()

        assert store.next_runs == [expected]
        assert store.fires == [expected]

    async def test_rearmed_runner_targets_next_day(self):
        """The successor armed by the re-emitted start event waits for tomorrow."""
        store = InMemoryLeaseStore()
        first = FakeStepRuntime(run_id="run-a")
        first_outcome = await make_engine(store).run(make_payload(), first)

        successor_payload = ScheduleStartData.model_validate(first.sent[1].data)
        second = FakeStepRuntime(run_id="run-b")
        second_outcome = await make_engine(store, now=first_outcome.fire_at).run(
            successor_payload, second
        )

        assert second_outcome.fire_at - first_outcome.fire_at == timedelta(days=1)

    async def test_stop_before_fire_prevents_emission(self):
        """A matching stop delivered during the sleep cancels the runner."""
        store = InMemoryLeaseStore()
        payload = make_payload()
        step = cancellable_runtime(payload)
        step.pending_cancels.append(
            ScheduleStopData(workflow_id="wf-1", owner_user_id="user-1").to_data()
        )

        with pytest.raises(RunCancelled):
            await make_engine(store).run(payload, step)

        assert step.sent == []
        assert store.fires == []

    async def test_stop_for_other_workflow_is_ignored(self):
        store = InMemoryLeaseStore()
        payload = make_payload()
        step = cancellable_runtime(payload)
        step.pending_cancels.append(
            ScheduleStopData(workflow_id="wf-2", owner_user_id="user-1").to_data()
        )

        outcome = await make_engine(store).run(payload, step)

        assert outcome.state == ScheduleState.FIRED

    async def test_stop_after_emission_does_not_retract(self):
        """Once fired, a stop and a replay of the run emit nothing new and remove nothing."""
        store = InMemoryLeaseStore()
        payload = make_payload()
        step = FakeStepRuntime()
        await make_engine(store).run(payload, step)
        store.active = False

        # A replay after the stop reuses memoized step results.
        await make_engine(store).run(payload, step)

        assert [e.name for e in step.sent] == [REPORT_EVENT, SCHEDULE_START_EVENT]
        assert step.executed.count("fire-and-rearm") == 1

    async def test_stale_generation_is_superseded(self):
        """A runner from an earlier schedule wakes up and exits without firing."""
        store = InMemoryLeaseStore(generation=2)
        step = FakeStepRuntime()

        outcome = await make_engine(store).run(make_payload(generation=1), step)

        assert outcome.state == ScheduleState.SUPERSEDED
        assert step.sent == []
        assert store.fires == []

    async def test_inactive_workflow_is_superseded(self):
        store = InMemoryLeaseStore(active=False)
        step = FakeStepRuntime()

        outcome = await make_engine(store).run(make_payload(), step)

        assert outcome.state == ScheduleState.SUPERSEDED

    async def test_unknown_event_name(self):
        step = FakeStepRuntime()

        with pytest.raises(UnknownEventName) as exc_info:
            await make_engine(InMemoryLeaseStore()).run(
                make_payload(event_name="workflow/unknown"), step
            )

        assert exc_info.value.retriable is False
        assert step.executed == []

    async def test_invalid_cron_fails_before_any_step(self):
        step = FakeStepRuntime()

        with pytest.raises(ScheduleValidationError):
            await make_engine(InMemoryLeaseStore()).run(make_payload(cron_expression="nope"), step)

        assert step.executed == []

    async def test_step_order(self):
        step = FakeStepRuntime()

        await make_engine(InMemoryLeaseStore()).run(make_payload(), step)

        assert step.executed == [
            "compute-next-run",
            "record-next-run",
            "check-schedule-lease",
            "fire-and-rearm",
            "record-fire",
        ]


class TestValidateSchedule:
    """Tests for schedule preconditions."""

    def test_returns_single_expression(self):
        assert validate_schedule(True, ["0 9 * * *"], "UTC") == "0 9 * * *"

    def test_not_schedulable(self):
        with pytest.raises(ScheduleValidationError):
            validate_schedule(False, ["0 9 * * *"], "UTC")

    @pytest.mark.parametrize("expressions", [[], ["0 9 * * *", "0 10 * * *"]])
    def test_requires_exactly_one_expression(self, expressions: list[str]):
        with pytest.raises(ScheduleValidationError) as exc_info:
            validate_schedule(True, expressions, "UTC")

        assert "expected 1" in exc_info.value.errors[0]

    def test_bad_timezone(self):
        with pytest.raises(ScheduleValidationError):
            validate_schedule(True, ["0 9 * * *"], "Not/AZone")
