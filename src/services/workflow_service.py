"""Workflow service (instance registry).

Installs catalog templates as per-user workflow instances and drives their
lifecycle: input and credential configuration, recurring schedules and
one-off runs. Schedule state changes are published as events; the durable
runner reads the lease back through ``holds_schedule_lease``.
"""

import json
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ConflictError, NotFoundError
from src.core.schedule_engine import validate_schedule
from src.core.step_runtime import EventPublisher, OutboundEvent
from src.models.credential import Credential
from src.models.events import ScheduleStartData, ScheduleStopData, WorkflowEventData
from src.models.template import TemplatePricing
from src.models.workflow import (
    WorkflowCredential,
    WorkflowInstance,
    WorkflowRead,
    WorkflowUpdate,
)
from src.services.credential_service import CredentialNotFoundError
from src.services.template_catalog import (
    get_template,
    list_templates,
    validate_workflow_input,
)

logger = structlog.get_logger()


class WorkflowNotFoundError(NotFoundError):
    """Workflow not found (or not owned by the caller)."""

    pass


class WorkflowConflictError(ConflictError):
    """Template already installed for this user."""

    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowService:
    """Service for managing workflow instances.

    Handles:
    - Installing templates (one instance per user and template)
    - Updating name, input and credential links
    - Starting and stopping recurring schedules
    - Triggering one-off runs
    - Schedule lease bookkeeping for the durable runner

    Example usage:
        service = WorkflowService(session, publisher)

        workflow = await service.install(user_id="user-123", template_id="daily-report")
        await service.set_schedule(
            user_id="user-123",
            workflow_id=workflow.id,
            cron_expression="0 9 * * *",
            timezone="America/New_York",
        )
    """

    def __init__(
        self,
        session: AsyncSession,
        publisher: EventPublisher | None = None,
    ) -> None:
        """Initialize workflow service.

        Args:
            session: Async database session
            publisher: Event publisher; required for schedule and run operations
        """
        self._session = session
        self._publisher = publisher

    async def install(
        self,
        user_id: str,
        template_id: str,
        name: str | None = None,
    ) -> WorkflowRead:
        """Install a template for a user.

        Raises:
            TemplateNotFoundError: If the template is unknown
            WorkflowConflictError: If the user already installed it
        """
        template = get_template(template_id)

        if await self._find_by_template(user_id, template_id) is not None:
            raise WorkflowConflictError(f"Workflow '{template_id}' is already installed")

        workflow = WorkflowInstance(
            user_id=user_id,
            template_id=template.id,
            name=name or template.name,
            description=template.description,
            event_name=template.event_name,
            can_be_scheduled=template.can_be_scheduled,
            required_providers=json.dumps([p.value for p in template.required_providers]),
            config=json.dumps({
                "installedAt": utc_now().isoformat(),
                "templateVersion": template.version,
                "pricing": template.pricing.value,
            }),
        )

        self._session.add(workflow)
        try:
            await self._session.commit()
        except IntegrityError as e:
            await self._session.rollback()
            raise WorkflowConflictError(f"Workflow '{template_id}' is already installed") from e
        await self._session.refresh(workflow)

        logger.info(
            "workflow_installed",
            workflow_id=workflow.id,
            user_id=user_id,
            template_id=template_id,
        )

        return await self._to_read(workflow)

    async def install_defaults(self, user_id: str) -> int:
        """Install every free template the user does not have yet.

        Returns:
            Number of instances created
        """
        created = 0
        for template in list_templates(pricing=TemplatePricing.FREE):
            if await self._find_by_template(user_id, template.id) is not None:
                continue
            await self.install(user_id, template.id)
            created += 1

        logger.info("default_workflows_installed", user_id=user_id, created=created)
        return created

    async def get(self, user_id: str, workflow_id: str) -> WorkflowRead:
        """Get a workflow instance.

        Raises:
            WorkflowNotFoundError: If not found or not owned
        """
        return await self._to_read(await self._get_owned(user_id, workflow_id))

    async def list_all(
        self,
        user_id: str,
        enabled: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WorkflowRead]:
        """List a user's workflow instances, most recently updated first."""
        query = select(WorkflowInstance).where(WorkflowInstance.user_id == user_id)

        if enabled is not None:
            query = query.where(WorkflowInstance.enabled == enabled)

        query = query.order_by(WorkflowInstance.updated_at.desc()).limit(limit).offset(offset)

        result = await self._session.execute(query)
        return [await self._to_read(w) for w in result.scalars().all()]

    async def update(
        self,
        user_id: str,
        workflow_id: str,
        data: WorkflowUpdate,
    ) -> WorkflowRead:
        """Update a workflow instance.

        Input is validated against the template before anything changes.
        Disabling an active workflow stops its schedule.

        Raises:
            WorkflowNotFoundError: If not found or not owned
            WorkflowInputValidationError: If the input is invalid
            CredentialNotFoundError: If a linked credential is not owned
        """
        workflow = await self._get_owned(user_id, workflow_id)

        new_input = None
        if data.input is not None:
            new_input = validate_workflow_input(workflow.template_id, data.input)
        if data.credential_ids is not None:
            await self._check_credentials_owned(user_id, data.credential_ids)

        if data.enabled is False and workflow.is_active:
            await self.stop_schedule(user_id, workflow_id)

        if data.name is not None:
            workflow.name = data.name
        if data.description is not None:
            workflow.description = data.description
        if data.enabled is not None:
            workflow.enabled = data.enabled
        if new_input is not None:
            workflow.set_input(new_input)
        if data.credential_ids is not None:
            await self._replace_credential_links(workflow.id, data.credential_ids)

        self._session.add(workflow)
        await self._session.commit()
        await self._session.refresh(workflow)

        logger.info(
            "workflow_updated",
            workflow_id=workflow_id,
            user_id=user_id,
            credentials_relinked=data.credential_ids is not None,
        )

        return await self._to_read(workflow)

    async def delete(self, user_id: str, workflow_id: str) -> None:
        """Delete a workflow instance, stopping its schedule first.

        Raises:
            WorkflowNotFoundError: If not found or not owned
        """
        workflow = await self._get_owned(user_id, workflow_id)

        if workflow.is_active:
            await self._publish([
                ScheduleStopData(workflow_id=workflow.id, owner_user_id=user_id).to_event()
            ])

        await self._session.execute(
            delete(WorkflowCredential).where(WorkflowCredential.workflow_id == workflow.id)
        )
        await self._session.delete(workflow)
        await self._session.commit()

        logger.info("workflow_deleted", workflow_id=workflow_id, user_id=user_id)

    async def set_schedule(
        self,
        user_id: str,
        workflow_id: str,
        cron_expression: str | None = None,
        timezone: str | None = None,
        input: dict[str, Any] | None = None,
    ) -> WorkflowRead:
        """Start (or restart) a workflow's recurring schedule.

        All preconditions are checked before any state changes. An already
        active schedule is stopped first and the lease generation is bumped,
        so at most one runner chain can fire.

        Raises:
            WorkflowNotFoundError: If not found or not owned
            ScheduleValidationError: If the schedule is invalid
            WorkflowInputValidationError: If the input is invalid
        """
        workflow = await self._get_owned(user_id, workflow_id)

        cron_expressions = (
            [cron_expression] if cron_expression is not None else workflow.get_cron_expressions()
        )
        tz_name = timezone or workflow.timezone
        expression = validate_schedule(workflow.can_be_scheduled, cron_expressions, tz_name)
        new_input = validate_workflow_input(
            workflow.template_id,
            input if input is not None else workflow.get_input(),
        )

        if workflow.is_active:
            await self._publish([
                ScheduleStopData(workflow_id=workflow.id, owner_user_id=user_id).to_event()
            ])

        workflow.schedule_generation += 1
        workflow.set_cron_expressions([expression])
        workflow.timezone = tz_name
        workflow.set_input(new_input)
        workflow.enabled = True
        workflow.is_active = True
        workflow.next_run_at = None
        self._session.add(workflow)
        await self._session.commit()
        await self._session.refresh(workflow)

        start = ScheduleStartData(
            workflow_id=workflow.id,
            owner_user_id=user_id,
            event_name=workflow.event_name,
            cron_expression=expression,
            timezone=tz_name,
            input=new_input,
            generation=workflow.schedule_generation,
        )
        try:
            await self._publish([start.to_event()])
        except Exception:
            logger.exception("workflow_schedule_publish_failed", workflow_id=workflow.id)
            workflow.enabled = False
            workflow.is_active = False
            self._session.add(workflow)
            await self._session.commit()
            raise

        logger.info(
            "workflow_schedule_started",
            workflow_id=workflow.id,
            user_id=user_id,
            cron_expression=expression,
            timezone=tz_name,
            generation=workflow.schedule_generation,
        )

        return await self._to_read(workflow)

    async def stop_schedule(self, user_id: str, workflow_id: str) -> WorkflowRead:
        """Stop a workflow's recurring schedule.

        A runner that already emitted its event is not affected; waiting
        runners are cancelled.

        Raises:
            WorkflowNotFoundError: If not found or not owned
        """
        workflow = await self._get_owned(user_id, workflow_id)

        await self._publish([
            ScheduleStopData(workflow_id=workflow.id, owner_user_id=user_id).to_event()
        ])

        workflow.enabled = False
        workflow.is_active = False
        workflow.next_run_at = None
        self._session.add(workflow)
        await self._session.commit()
        await self._session.refresh(workflow)

        logger.info("workflow_schedule_stopped", workflow_id=workflow.id, user_id=user_id)

        return await self._to_read(workflow)

    async def run_once(
        self,
        user_id: str,
        workflow_id: str,
        input: dict[str, Any] | None = None,
    ) -> WorkflowRead:
        """Trigger a single, unscheduled run.

        Raises:
            WorkflowNotFoundError: If not found or not owned
            WorkflowInputValidationError: If the input is invalid
        """
        workflow = await self._get_owned(user_id, workflow_id)
        run_input = validate_workflow_input(
            workflow.template_id,
            input if input is not None else workflow.get_input(),
        )

        event = WorkflowEventData(
            workflow_id=workflow.id,
            owner_user_id=user_id,
            input=run_input,
            scheduled_run=False,
        ).to_event(workflow.event_name)
        await self._publish([event])

        workflow.last_run_at = utc_now()
        self._session.add(workflow)
        await self._session.commit()
        await self._session.refresh(workflow)

        logger.info("workflow_run_requested", workflow_id=workflow.id, user_id=user_id)

        return await self._to_read(workflow)

    # Schedule lease bookkeeping, called by the durable runner.

    async def holds_schedule_lease(
        self,
        workflow_id: str,
        owner_user_id: str,
        generation: int,
    ) -> bool:
        """Check that a runner armed with ``generation`` may still fire."""
        workflow = await self._find_owned(owner_user_id, workflow_id)
        return (
            workflow is not None
            and workflow.is_active
            and workflow.schedule_generation == generation
        )

    async def record_next_run(
        self,
        workflow_id: str,
        generation: int,
        next_run_at: datetime,
    ) -> None:
        await self._session.execute(
            update(WorkflowInstance)
            .where(
                WorkflowInstance.id == workflow_id,
                WorkflowInstance.schedule_generation == generation,
            )
            .values(next_run_at=next_run_at)
        )
        await self._session.commit()

    async def record_fire(
        self,
        workflow_id: str,
        generation: int,
        fired_at: datetime,
    ) -> None:
        await self._session.execute(
            update(WorkflowInstance)
            .where(
                WorkflowInstance.id == workflow_id,
                WorkflowInstance.schedule_generation == generation,
            )
            .values(last_run_at=fired_at)
        )
        await self._session.commit()

    async def _publish(self, events: list[OutboundEvent]) -> list[str]:
        if self._publisher is None:
            raise RuntimeError("WorkflowService was created without an event publisher")
        return await self._publisher.publish(events)

    async def _find_by_template(self, user_id: str, template_id: str) -> WorkflowInstance | None:
        result = await self._session.execute(
            select(WorkflowInstance).where(
                WorkflowInstance.user_id == user_id,
                WorkflowInstance.template_id == template_id,
            )
        )
        return result.scalar_one_or_none()

    async def _find_owned(self, user_id: str, workflow_id: str) -> WorkflowInstance | None:
        result = await self._session.execute(
            select(WorkflowInstance).where(
                WorkflowInstance.id == workflow_id,
                WorkflowInstance.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def _get_owned(self, user_id: str, workflow_id: str) -> WorkflowInstance:
        workflow = await self._find_owned(user_id, workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow '{workflow_id}' not found")
        return workflow

    async def _check_credentials_owned(self, user_id: str, credential_ids: list[str]) -> None:
        if not credential_ids:
            return
        result = await self._session.execute(
            select(Credential.id).where(
                Credential.id.in_(credential_ids),
                Credential.user_id == user_id,
            )
        )
        missing = set(credential_ids) - set(result.scalars().all())
        if missing:
            raise CredentialNotFoundError(f"Credential '{sorted(missing)[0]}' not found")

    async def _replace_credential_links(self, workflow_id: str, credential_ids: list[str]) -> None:
        await self._session.execute(
            delete(WorkflowCredential).where(WorkflowCredential.workflow_id == workflow_id)
        )
        # dict.fromkeys drops duplicates but keeps order
        for position, credential_id in enumerate(dict.fromkeys(credential_ids)):
            self._session.add(
                WorkflowCredential(
                    workflow_id=workflow_id,
                    credential_id=credential_id,
                    position=position,
                )
            )

    async def _credential_ids(self, workflow_id: str) -> list[str]:
        result = await self._session.execute(
            select(WorkflowCredential.credential_id)
            .where(WorkflowCredential.workflow_id == workflow_id)
            .order_by(WorkflowCredential.position)
        )
        return list(result.scalars().all())

    async def _to_read(self, workflow: WorkflowInstance) -> WorkflowRead:
        return WorkflowRead.model_validate(
            {
                **workflow.model_dump(),
                "credential_ids": await self._credential_ids(workflow.id),
            }
        )
