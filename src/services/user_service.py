"""User service.

Mirrors identity provider users into the local ``user`` table and performs
signup side effects (default workflow installs).
"""

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.step_runtime import EventPublisher
from src.models.credential import Credential
from src.models.events import ScheduleStopData
from src.models.user import User
from src.models.workflow import WorkflowCredential, WorkflowInstance

logger = structlog.get_logger()


class UserService:
    """Service for identity-provider backed users."""

    def __init__(
        self,
        session: AsyncSession,
        publisher: EventPublisher | None = None,
    ) -> None:
        self._session = session
        self._publisher = publisher

    async def get_by_external_id(self, external_id: str) -> User | None:
        result = await self._session.execute(
            select(User).where(User.external_id == external_id)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        external_id: str,
        email: str | None = None,
        name: str | None = None,
    ) -> tuple[User, bool]:
        """Create or update the local copy of an identity provider user.

        Returns:
            (user, created)
        """
        user = await self.get_by_external_id(external_id)
        created = user is None
        if user is None:
            user = User(external_id=external_id, email=email, name=name)
        else:
            user.email = email
            user.name = name

        self._session.add(user)
        await self._session.commit()
        await self._session.refresh(user)

        logger.info(
            "user_created" if created else "user_updated",
            user_id=user.id,
            external_id=external_id,
        )
        return user, created

    async def delete_by_external_id(self, external_id: str) -> bool:
        """Delete a user with all credentials and workflow instances.

        Active schedules are stopped before the rows go away.

        Returns:
            True if a user was deleted
        """
        user = await self.get_by_external_id(external_id)
        if user is None:
            logger.info("user_delete_unknown", external_id=external_id)
            return False

        result = await self._session.execute(
            select(WorkflowInstance.id, WorkflowInstance.is_active).where(
                WorkflowInstance.user_id == user.id
            )
        )
        workflows = result.all()
        active = [workflow_id for workflow_id, is_active in workflows if is_active]
        if active and self._publisher is not None:
            await self._publisher.publish([
                ScheduleStopData(workflow_id=workflow_id, owner_user_id=user.id).to_event()
                for workflow_id in active
            ])

        workflow_ids = [workflow_id for workflow_id, _ in workflows]
        if workflow_ids:
            await self._session.execute(
                delete(WorkflowCredential).where(WorkflowCredential.workflow_id.in_(workflow_ids))
            )
        await self._session.execute(delete(WorkflowInstance).where(WorkflowInstance.user_id == user.id))
        await self._session.execute(delete(Credential).where(Credential.user_id == user.id))
        await self._session.execute(delete(User).where(User.id == user.id))
        await self._session.commit()

        logger.info(
            "user_deleted",
            user_id=user.id,
            external_id=external_id,
            schedules_stopped=len(active),
        )
        return True
