"""Event payloads exchanged with the durable runtime.

Payload keys are camelCase on the wire (``workflowId``, ``ownerUserId``) and
snake_case in Python.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.core.step_runtime import CancelRule, OutboundEvent

SCHEDULE_START_EVENT = "schedule/start"
SCHEDULE_STOP_EVENT = "schedule/stop"

# Stop events cancel every waiting runner for the same workflow and owner.
SCHEDULE_CANCEL_RULE = CancelRule(
    event=SCHEDULE_STOP_EVENT,
    match_fields=("workflowId", "ownerUserId"),
)


class EventPayload(BaseModel):
    """Base for event data models."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_data(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dict using wire names."""
        return self.model_dump(by_alias=True, mode="json")


class ScheduleStartData(EventPayload):
    """Arms (or re-arms) the recurring runner for one workflow instance."""

    workflow_id: str
    owner_user_id: str
    event_name: str
    cron_expression: str
    timezone: str = "UTC"
    input: dict[str, Any] = Field(default_factory=dict)
    generation: int = 0

    def to_event(self) -> OutboundEvent:
        return OutboundEvent(name=SCHEDULE_START_EVENT, data=self.to_data())


class ScheduleStopData(EventPayload):
    """Cancels waiting runners for one workflow instance."""

    workflow_id: str
    owner_user_id: str

    def to_event(self) -> OutboundEvent:
        return OutboundEvent(name=SCHEDULE_STOP_EVENT, data=self.to_data())


class WorkflowEventData(EventPayload):
    """Payload of a ``workflow/<template>`` business event."""

    workflow_id: str
    owner_user_id: str
    input: dict[str, Any] = Field(default_factory=dict)
    scheduled_run: bool = False
    cron_expression: str | None = None
    timezone: str | None = None
    generation: int | None = None

    def to_event(self, event_name: str) -> OutboundEvent:
        return OutboundEvent(name=event_name, data=self.to_data())
