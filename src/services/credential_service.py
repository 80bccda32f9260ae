"""Credential service (vault).

Stores per-user secrets validated by (kind, provider) and Fernet-encrypted at
rest. Ownership is part of every lookup predicate, so a credential owned by
someone else is indistinguishable from one that does not exist.
"""

import json

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.core.encryption import CredentialEncryption, DecryptionError
from src.core.errors import NotFoundError, WorkflowAppError
from src.models.credential import (
    Credential,
    CredentialCreate,
    CredentialDecrypted,
    CredentialRead,
    CredentialUpdate,
)
from src.models.secrets import (
    CredentialKind,
    CredentialProvider,
    dump_secret,
    validate_secret,
)
from src.models.workflow import WorkflowCredential

logger = structlog.get_logger()


class CredentialServiceError(WorkflowAppError):
    """Error in credential service operations."""

    pass


class CredentialNotFoundError(NotFoundError):
    """Credential not found (or not owned by the caller)."""

    pass


class CredentialService:
    """Service for managing user credentials.

    Handles:
    - Validating secrets against their (kind, provider) schema
    - Encrypting on write, decrypting only for in-process consumers
    - User-scoped access control

    Example usage:
        service = CredentialService(session)

        cred = await service.store(
            user_id="user-123",
            data=CredentialCreate(
                name="Slack workspace",
                kind=CredentialKind.OAUTH,
                provider=CredentialProvider.SLACK,
                secret={"accessToken": "xoxb-...", "teamId": "T123"},
            ),
        )
    """

    def __init__(
        self,
        session: AsyncSession,
        encryption: CredentialEncryption | None = None,
    ) -> None:
        """Initialize credential service.

        Args:
            session: Async database session
            encryption: Encryption helper (defaults to the configured key)
        """
        self._session = session
        self._encryption = encryption or CredentialEncryption(
            settings.encryption_key.get_secret_value()
        )

    async def store(
        self,
        user_id: str,
        data: CredentialCreate,
    ) -> CredentialRead:
        """Validate, encrypt and persist a new credential.

        Nothing is written when validation fails.

        Args:
            user_id: Owner user ID
            data: Credential creation data

        Returns:
            Created credential metadata

        Raises:
            UnsupportedCredentialKind: If (kind, provider) has no schema
            CredentialValidationError: If the secret is invalid
        """
        secret = validate_secret(data.kind, data.provider, data.secret)

        credential = Credential(
            user_id=user_id,
            name=data.name,
            kind=data.kind,
            provider=data.provider,
            encrypted_secret=self._encryption.encrypt(dump_secret(secret)),
            config=json.dumps(data.config) if data.config is not None else None,
        )

        self._session.add(credential)
        await self._session.commit()
        await self._session.refresh(credential)

        logger.info(
            "credential_created",
            credential_id=credential.id,
            user_id=user_id,
            kind=data.kind.value,
            provider=data.provider.value,
        )

        return CredentialRead.from_entity(credential)

    async def update(
        self,
        user_id: str,
        credential_id: str,
        data: CredentialUpdate,
    ) -> CredentialRead:
        """Replace a credential's secret and/or name.

        The new secret is validated against the stored (kind, provider).

        Raises:
            CredentialNotFoundError: If not found or not owned
            CredentialValidationError: If the secret is invalid
        """
        credential = await self._get_owned(user_id, credential_id)

        if data.secret is not None:
            secret = validate_secret(credential.kind, credential.provider, data.secret)
            credential.encrypted_secret = self._encryption.encrypt(dump_secret(secret))
        if data.name is not None:
            credential.name = data.name

        self._session.add(credential)
        await self._session.commit()
        await self._session.refresh(credential)

        logger.info(
            "credential_updated",
            credential_id=credential_id,
            user_id=user_id,
            secret_replaced=data.secret is not None,
        )

        return CredentialRead.from_entity(credential)

    async def get(
        self,
        user_id: str,
        credential_id: str,
    ) -> CredentialRead | None:
        """Get credential metadata, or None if not found or not owned."""
        credential = await self._find_owned(user_id, credential_id)
        if credential is None:
            return None
        return CredentialRead.from_entity(credential)

    async def list_all(
        self,
        user_id: str,
        kind: CredentialKind | None = None,
        provider: CredentialProvider | None = None,
    ) -> list[CredentialRead]:
        """List a user's credentials, newest first.

        Args:
            user_id: Owner user ID
            kind: Optional kind filter
            provider: Optional provider filter

        Returns:
            Credential metadata list
        """
        query = select(Credential).where(Credential.user_id == user_id)
        if kind is not None:
            query = query.where(Credential.kind == kind)
        if provider is not None:
            query = query.where(Credential.provider == provider)
        query = query.order_by(Credential.created_at.desc())

        result = await self._session.execute(query)
        return [CredentialRead.from_entity(c) for c in result.scalars().all()]

    async def delete(
        self,
        user_id: str,
        credential_id: str,
    ) -> None:
        """Delete a credential.

        Raises:
            CredentialNotFoundError: If not found or not owned
        """
        credential = await self._get_owned(user_id, credential_id)

        await self._session.execute(
            delete(WorkflowCredential).where(WorkflowCredential.credential_id == credential_id)
        )
        await self._session.delete(credential)
        await self._session.commit()

        logger.info(
            "credential_deleted",
            credential_id=credential_id,
            user_id=user_id,
        )

    async def get_decrypted(
        self,
        user_id: str,
        credential_id: str,
    ) -> CredentialDecrypted:
        """Get a credential with its decrypted secret.

        SECURITY: Only for in-process consumers. Never log the result.

        Raises:
            CredentialNotFoundError: If not found or not owned
            CredentialServiceError: If decryption fails
        """
        credential = await self._get_owned(user_id, credential_id)
        return self.decrypt_entity(credential)

    def decrypt_entity(self, credential: Credential) -> CredentialDecrypted:
        """Decrypt an already-loaded credential row.

        Raises:
            CredentialServiceError: If decryption fails
        """
        try:
            secret = self._encryption.decrypt(credential.encrypted_secret)
        except DecryptionError as e:
            logger.error(
                "credential_decryption_failed",
                credential_id=credential.id,
                user_id=credential.user_id,
            )
            raise CredentialServiceError("Failed to decrypt credential") from e

        return CredentialDecrypted(
            **CredentialRead.from_entity(credential).model_dump(),
            secret=secret,
        )

    async def _find_owned(self, user_id: str, credential_id: str) -> Credential | None:
        query = select(Credential).where(
            Credential.id == credential_id,
            Credential.user_id == user_id,
        )
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def _get_owned(self, user_id: str, credential_id: str) -> Credential:
        credential = await self._find_owned(user_id, credential_id)
        if credential is None:
            raise CredentialNotFoundError(f"Credential '{credential_id}' not found")
        return credential

