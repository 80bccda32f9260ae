"""Credential API endpoints.

Handles credential CRUD operations with encryption. Secrets are accepted
on write and never returned.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, HTTPException, Query, status

from src.api.deps import CredentialServiceDep, CurrentUser
from src.models.credential import CredentialCreate, CredentialRead, CredentialUpdate
from src.models.secrets import (
    CredentialKind,
    CredentialProvider,
    CredentialValidationError,
    UnsupportedCredentialKind,
)
from src.services.credential_service import CredentialNotFoundError

logger = structlog.get_logger()

router = APIRouter()


@router.get("", response_model=list[CredentialRead])
async def list_credentials(
    user: CurrentUser,
    service: CredentialServiceDep,
    kind: Annotated[CredentialKind | None, Query()] = None,
    provider: Annotated[CredentialProvider | None, Query()] = None,
) -> list[CredentialRead]:
    """List user's credentials.

    Args:
        user: Current authenticated user
        service: Credential service
        kind: Filter by credential kind
        provider: Filter by provider

    Returns:
        List of credentials (without secrets)
    """
    return await service.list_all(user_id=user.id, kind=kind, provider=provider)


@router.post("", response_model=CredentialRead, status_code=status.HTTP_201_CREATED)
async def store_credential(
    user: CurrentUser,
    service: CredentialServiceDep,
    data: CredentialCreate,
) -> CredentialRead:
    """Store a new credential.

    The secret is validated against the (kind, provider) schema and
    encrypted before storage.
    """
    try:
        return await service.store(user_id=user.id, data=data)
    except UnsupportedCredentialKind as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    except CredentialValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "errors": e.errors},
        ) from e


@router.get("/{credential_id}", response_model=CredentialRead)
async def get_credential(
    credential_id: str,
    user: CurrentUser,
    service: CredentialServiceDep,
) -> CredentialRead:
    """Get credential metadata."""
    credential = await service.get(user_id=user.id, credential_id=credential_id)
    if credential is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Credential not found",
        )
    return credential


@router.patch("/{credential_id}", response_model=CredentialRead)
async def update_credential(
    credential_id: str,
    user: CurrentUser,
    service: CredentialServiceDep,
    data: CredentialUpdate,
) -> CredentialRead:
    """Rename a credential or replace its secret."""
    try:
        return await service.update(
            user_id=user.id,
            credential_id=credential_id,
            data=data,
        )
    except CredentialNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Credential not found",
        ) from e
    except CredentialValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "errors": e.errors},
        ) from e


@router.delete("/{credential_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_credential(
    credential_id: str,
    user: CurrentUser,
    service: CredentialServiceDep,
) -> None:
    """Delete a credential and unlink it from workflows."""
    try:
        await service.delete(user_id=user.id, credential_id=credential_id)
    except CredentialNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Credential not found",
        ) from e
