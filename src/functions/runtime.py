"""Adapter from the Inngest SDK to the StepRuntime protocol.

Application errors that must not be retried are converted into
``inngest.NonRetriableError`` both inside steps and at the function
boundary, so Inngest fails the run instead of retrying it.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Awaitable, Callable, Mapping, Sequence, TypeVar

import inngest
import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from src.core.errors import WorkflowAppError, is_retriable
from src.core.step_runtime import CancelRule, OutboundEvent
from src.functions.client import to_inngest_event

logger = structlog.get_logger()

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

_session_maker: sessionmaker | None = None


def init_function_sessions(session_maker: sessionmaker) -> None:
    """Register the session maker function runs open sessions with.

    Args:
        session_maker: SQLAlchemy async session maker
    """
    global _session_maker
    _session_maker = session_maker
    logger.info("function_sessions_initialized")


@asynccontextmanager
async def open_session() -> AsyncGenerator[AsyncSession, None]:
    if _session_maker is None:
        raise RuntimeError("Function sessions are not initialized")
    async with _session_maker() as session:
        yield session


def to_inngest_cancel(rule: CancelRule) -> inngest.Cancel:
    return inngest.Cancel(event=rule.event, if_exp=rule.if_exp or None)


def parse_event_data(model: type[M], data: Mapping[str, Any]) -> M:
    """Validate event data; malformed events are never retried."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise inngest.NonRetriableError(
            f"Invalid {model.__name__} event data: {e.error_count()} error(s)"
        ) from e


async def translate_errors(awaitable: Awaitable[T]) -> T:
    """Await, re-raising non-retriable application errors for Inngest."""
    try:
        return await awaitable
    except WorkflowAppError as e:
        if is_retriable(e):
            raise
        raise inngest.NonRetriableError(e.message) from e


class InngestStepRuntime:
    """StepRuntime backed by an Inngest function run."""

    def __init__(self, ctx: inngest.Context, step: inngest.Step) -> None:
        self._ctx = ctx
        self._step = step

    @property
    def run_id(self) -> str:
        return self._ctx.run_id

    async def run(self, step_id: str, handler: Callable[[], Awaitable[T]]) -> T:
        async def guarded() -> T:
            return await translate_errors(handler())

        return await self._step.run(step_id, guarded)

    async def sleep_until(self, step_id: str, until: datetime) -> None:
        await self._step.sleep_until(step_id, until)

    async def send_events(self, step_id: str, events: Sequence[OutboundEvent]) -> list[str]:
        return list(await self._step.send_event(
            step_id, [to_inngest_event(e) for e in events]
        ))
