"""Durable step runtime contract.

Business logic and the schedule runner only talk to the runtime through this
protocol, so they can run under Inngest in production and under an in-memory
fake in tests.

Semantics every implementation must provide:
- ``run``: executes the handler at most once per step id and memoizes its
  result; a replayed execution gets the stored result back.
- ``sleep_until``: suspends the execution until the instant; the execution
  may be cancelled while suspended.
- ``send_events``: publishes events exactly once per step id.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class OutboundEvent:
    """Event to publish through the runtime or the event publisher."""

    name: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CancelRule:
    """Cancellation clause attached to a function registration.

    Attributes:
        event: Event name that cancels matching executions
        match_fields: Data keys that must be equal on the triggering event
            and the cancelling event
    """

    event: str
    match_fields: tuple[str, ...] = ()

    @property
    def if_exp(self) -> str:
        """Render the match as a runtime expression (``event`` vs ``async``)."""
        return " && ".join(
            f"event.data.{key} == async.data.{key}" for key in self.match_fields
        )

    def matches(self, trigger_data: Mapping[str, Any], cancel_data: Mapping[str, Any]) -> bool:
        """Evaluate the clause in-process."""
        return all(
            key in trigger_data and trigger_data.get(key) == cancel_data.get(key)
            for key in self.match_fields
        )


class StepRuntime(Protocol):
    """Operations a durable execution exposes to workflow code."""

    @property
    def run_id(self) -> str: ...

    async def run(self, step_id: str, handler: Callable[[], Awaitable[T]]) -> T: ...

    async def sleep_until(self, step_id: str, until: datetime) -> None: ...

    async def send_events(self, step_id: str, events: Sequence[OutboundEvent]) -> list[str]: ...


class EventPublisher(Protocol):
    """Publishes events from outside a durable execution (API requests)."""

    async def publish(self, events: Sequence[OutboundEvent]) -> list[str]: ...
