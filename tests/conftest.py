"""Pytest configuration and fixtures.

Provides common fixtures for all tests including:
- Database sessions
- Test users
- Identity provider tokens
- A recording event publisher and an in-memory step runtime
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator
from uuid import uuid4

# Settings are read at import time, so the environment must be ready first.
os.environ.setdefault("ENCRYPTION_KEY", "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("IDENTITY_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GOOGLE_CLIENT_ID", "google-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "google-client-secret")
os.environ.setdefault("SLACK_CLIENT_ID", "slack-client-id")
os.environ.setdefault("SLACK_CLIENT_SECRET", "slack-client-secret")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from src.api.deps import get_db_session, get_event_publisher
from src.config import settings
from src.core.encryption import CredentialEncryption
from src.main import app
from src.models.user import User
from tests.fakes import FakeStepRuntime, RecordingPublisher, make_token

# Test database URL (uses SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db_engine():
    """Create async database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(db_engine) -> sessionmaker:
    return sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_maker: sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def step_runtime() -> FakeStepRuntime:
    return FakeStepRuntime()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    publisher: RecordingPublisher,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_event_publisher] = lambda: publisher

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a test user mirrored from the identity provider."""
    user = User(
        external_id=f"idp_{uuid4().hex[:12]}",
        email="test@example.com",
        name="Test User",
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    """A second user for ownership checks."""
    user = User(external_id=f"idp_{uuid4().hex[:12]}", email="other@example.com")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def auth_headers(test_user: User) -> dict[str, str]:
    """Create authentication headers."""
    return {"Authorization": f"Bearer {make_token(test_user.external_id)}"}


@pytest.fixture
def encryption() -> CredentialEncryption:
    """Create encryption instance."""
    return CredentialEncryption(settings.encryption_key.get_secret_value())


@pytest.fixture
def google_secret() -> dict[str, Any]:
    """A valid, unexpired Google OAuth secret."""
    expires = datetime.now(timezone.utc) + timedelta(hours=1)
    return {
        "accessToken": "ya29.fresh-token",
        "refreshToken": "1//refresh-token",
        "expiresIn": int(expires.timestamp() * 1000),
        "scopes": ["https://www.googleapis.com/auth/spreadsheets"],
    }
