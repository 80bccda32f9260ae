"""Inngest client and event publisher."""

from typing import Sequence

import inngest
import structlog

from src.config import settings
from src.core.step_runtime import OutboundEvent

logger = structlog.get_logger()


def _secret(value) -> str | None:
    return value.get_secret_value() if value is not None else None


inngest_client = inngest.Inngest(
    app_id=settings.inngest_app_id,
    is_production=settings.inngest_is_production,
    event_key=_secret(settings.inngest_event_key),
    signing_key=_secret(settings.inngest_signing_key),
)


def to_inngest_event(event: OutboundEvent) -> inngest.Event:
    return inngest.Event(name=event.name, data=event.data)


class InngestEventPublisher:
    """Publishes events to Inngest from outside a function run."""

    def __init__(self, client: inngest.Inngest = inngest_client) -> None:
        self._client = client

    async def publish(self, events: Sequence[OutboundEvent]) -> list[str]:
        """Send events.

        Returns:
            Event IDs assigned by Inngest
        """
        if not events:
            return []
        ids = await self._client.send([to_inngest_event(e) for e in events])
        logger.info(
            "events_published",
            event_names=[e.name for e in events],
            count=len(ids),
        )
        return list(ids)
