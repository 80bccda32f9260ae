"""Tests for identity provider user mirroring."""

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.credential import Credential, CredentialCreate
from src.models.events import SCHEDULE_STOP_EVENT
from src.models.secrets import CredentialKind, CredentialProvider
from src.models.workflow import WorkflowInstance
from src.services.credential_service import CredentialService
from src.services.user_service import UserService
from src.services.workflow_service import WorkflowService
from tests.fakes import RecordingPublisher


async def count(session: AsyncSession, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


class TestUserService:
    """Tests for UserService."""

    async def test_upsert_creates_then_updates(self, db_session: AsyncSession):
        service = UserService(db_session)

        user, created = await service.upsert("idp_abc", email="a@example.com", name="A")
        same, created_again = await service.upsert("idp_abc", email="b@example.com", name="B")

        assert created is True
        assert created_again is False
        assert same.id == user.id
        assert same.email == "b@example.com"

    async def test_get_by_external_id(self, db_session: AsyncSession):
        service = UserService(db_session)
        user, _ = await service.upsert("idp_lookup")

        assert (await service.get_by_external_id("idp_lookup")).id == user.id
        assert await service.get_by_external_id("idp_missing") is None

    async def test_delete_cascades_and_stops_schedules(
        self,
        db_session: AsyncSession,
        publisher: RecordingPublisher,
        google_secret: dict[str, Any],
    ):
        users = UserService(db_session, publisher)
        user, _ = await users.upsert("idp_gone")
        await CredentialService(db_session).store(
            user.id,
            CredentialCreate(
                name="Google",
                kind=CredentialKind.OAUTH,
                provider=CredentialProvider.GOOGLE,
                secret=google_secret,
            ),
        )
        workflows = WorkflowService(db_session, publisher)
        workflow = await workflows.install(user.id, "basic-scheduler")
        await workflows.set_schedule(user.id, workflow.id, "0 9 * * *", "UTC", {"taskName": "t"})
        await workflows.install(user.id, "daily-report")

        assert await users.delete_by_external_id("idp_gone") is True

        assert publisher.names()[-1] == SCHEDULE_STOP_EVENT
        assert publisher.events[-1].data["workflowId"] == workflow.id
        assert await count(db_session, WorkflowInstance) == 0
        assert await count(db_session, Credential) == 0
        assert await users.get_by_external_id("idp_gone") is None

    async def test_delete_unknown_user(self, db_session: AsyncSession, publisher: RecordingPublisher):
        assert await UserService(db_session, publisher).delete_by_external_id("idp_none") is False
        assert publisher.events == []
