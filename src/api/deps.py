"""API dependencies for FastAPI dependency injection.

Provides database sessions, user context, and service instances.
"""

from typing import Annotated, Any, AsyncGenerator

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from src.config import settings
from src.core.step_runtime import EventPublisher
from src.functions.client import InngestEventPublisher
from src.integrations.registry import IntegrationRegistry, get_integration_registry
from src.models.user import TokenPayload, User
from src.services.credential_service import CredentialService
from src.services.user_service import UserService
from src.services.workflow_service import WorkflowService

logger = structlog.get_logger()


def _engine_options() -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.debug}
    # SQLite pools do not take sizing arguments.
    if not settings.database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
        )
    return options


# Database engine and session
_engine = create_async_engine(settings.database_url, **_engine_options())

_async_session_maker = sessionmaker(
    _engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Security
_bearer_scheme = HTTPBearer(auto_error=False)


async def init_db() -> None:
    """Initialize database tables.

    Only call during development. Use Alembic migrations in production.
    """
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("database_initialized")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session.

    Yields:
        AsyncSession that will be closed after use
    """
    async with _async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


# Type alias for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db_session)]


def decode_access_token(token: str) -> TokenPayload:
    """Decode and validate an identity provider JWT.

    Expiry is checked by python-jose when the token carries ``exp``; the
    audience only when ``JWT_AUDIENCE`` is configured.

    Raises:
        HTTPException: If token is invalid or expired
    """
    audience = settings.jwt_audience
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
            audience=audience,
            options={"verify_aud": audience is not None},
        )
        return TokenPayload(
            sub=payload["sub"],
            exp=payload.get("exp"),
            email=payload.get("email"),
        )
    except (JWTError, KeyError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    session: DBSession,
) -> User:
    """Get the current authenticated user.

    The token subject is the identity provider's user ID; the local copy is
    created by the identity webhook.

    Raises:
        HTTPException: If not authenticated or user not found
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = decode_access_token(credentials.credentials)

    user = await UserService(session).get_by_external_id(token_data.sub)
    if user is None:
        logger.warning("auth_unknown_subject", external_id=token_data.sub)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


# Type alias for authenticated user dependency
CurrentUser = Annotated[User, Depends(get_current_user)]


def get_event_publisher() -> EventPublisher:
    """Get the event publisher (overridden in tests)."""
    return InngestEventPublisher()


EventPublisherDep = Annotated[EventPublisher, Depends(get_event_publisher)]


# Service dependencies
def get_credential_service(session: DBSession) -> CredentialService:
    """Get credential service instance."""
    return CredentialService(session)


def get_workflow_service(
    session: DBSession,
    publisher: EventPublisherDep,
) -> WorkflowService:
    """Get workflow service instance."""
    return WorkflowService(session, publisher)


def get_user_service(
    session: DBSession,
    publisher: EventPublisherDep,
) -> UserService:
    """Get user service instance."""
    return UserService(session, publisher)


# Type aliases for service dependencies
CredentialServiceDep = Annotated[CredentialService, Depends(get_credential_service)]
WorkflowServiceDep = Annotated[WorkflowService, Depends(get_workflow_service)]
UserServiceDep = Annotated[UserService, Depends(get_user_service)]
IntegrationRegistryDep = Annotated[IntegrationRegistry, Depends(get_integration_registry)]
