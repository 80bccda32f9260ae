"""OAuth routes.

Handles the consent flow for provider integrations. Tokens returned by the
provider are stored as OAUTH credentials through the credential vault.
"""

import secrets
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from src.api.deps import CredentialServiceDep, CurrentUser, IntegrationRegistryDep
from src.config import settings
from src.core.errors import ProviderRequestError
from src.integrations.base import BaseIntegration
from src.integrations.registry import (
    IntegrationCodeExchangeError,
    IntegrationNotConfiguredError,
    IntegrationNotFoundError,
    IntegrationRegistry,
)
from src.models.credential import CredentialCreate, CredentialRead
from src.models.secrets import CredentialKind, CredentialValidationError
from src.services.credential_service import CredentialService

logger = structlog.get_logger()

router = APIRouter(prefix="/oauth", tags=["oauth"])

# In-memory state storage, single process only.
# Maps state -> {user_id, redirect_to}
_oauth_states: dict[str, dict[str, str]] = {}


def generate_state() -> str:
    """Generate a secure random state parameter."""
    return secrets.token_urlsafe(32)


def _redirect(base_url: str, query: str) -> RedirectResponse:
    return RedirectResponse(
        url=f"{base_url}/integrations?{query}",
        status_code=status.HTTP_302_FOUND,
    )


@router.get(
    "/providers",
    summary="List OAuth providers",
    description="Get list of available OAuth providers and their configuration status.",
)
async def list_providers(
    registry: IntegrationRegistryDep,
) -> list[dict[str, Any]]:
    """List available OAuth providers."""
    return registry.list_integrations()


@router.get(
    "/{provider}/authorize",
    summary="Get authorization URL",
    description="Generate OAuth authorization URL for the specified provider.",
)
async def get_authorization_url(
    provider: str,
    user: CurrentUser,
    registry: IntegrationRegistryDep,
    redirect_to: str | None = Query(
        default=None,
        description="URL to redirect to after OAuth completion (default: frontend_url)",
    ),
) -> dict[str, str]:
    """Generate OAuth authorization URL.

    A state parameter is generated for CSRF protection and bound to the
    current user.

    Raises:
        HTTPException 404: If provider is unknown
        HTTPException 400: If provider is not configured
    """
    try:
        state = generate_state()
        auth_url = registry.get_authorization_url(provider_id=provider, state=state)
    except IntegrationNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
    except IntegrationNotConfiguredError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e

    _oauth_states[state] = {
        "user_id": user.id,
        "redirect_to": redirect_to or settings.frontend_url,
    }

    logger.info("oauth_authorization_initiated", provider=provider, user_id=user.id)

    return {
        "authorization_url": auth_url,
        "state": state,
    }


@router.get(
    "/{provider}/callback",
    summary="OAuth callback",
    description="Exchange the authorization code for tokens and store them as a credential.",
)
async def oauth_callback(
    provider: str,
    registry: IntegrationRegistryDep,
    credential_service: CredentialServiceDep,
    code: str | None = Query(default=None, description="Authorization code from provider"),
    state: str = Query(..., description="State parameter for CSRF validation"),
    error: str | None = Query(default=None, description="Error from provider"),
    error_description: str | None = Query(default=None, description="Error description"),
) -> RedirectResponse:
    """Handle OAuth callback.

    Returns:
        Redirect to frontend with success/error status
    """
    if error or not code:
        logger.warning(
            "oauth_callback_error_from_provider",
            provider=provider,
            error=error,
            error_description=error_description,
        )
        _oauth_states.pop(state, None)
        return _redirect(settings.frontend_url, f"error={error or 'missing_code'}")

    state_data = _oauth_states.pop(state, None)
    if state_data is None:
        logger.warning("oauth_callback_invalid_state", provider=provider)
        return _redirect(settings.frontend_url, "error=invalid_state")

    user_id = state_data["user_id"]
    redirect_to = state_data["redirect_to"]

    try:
        config = registry.get_oauth_config(provider)
        tokens = await registry.exchange_code(provider_id=provider, code=code)

        credential = await credential_service.store(
            user_id=user_id,
            data=CredentialCreate(
                name=registry.credential_name(provider, tokens),
                kind=CredentialKind.OAUTH,
                provider=config.provider,
                secret=registry.build_credential_secret(provider, tokens),
            ),
        )
    except IntegrationNotFoundError as e:
        logger.error("oauth_callback_provider_not_found", provider=provider, error=str(e))
        return _redirect(redirect_to, "error=provider_not_found")
    except IntegrationNotConfiguredError as e:
        logger.error("oauth_callback_provider_not_configured", provider=provider, error=str(e))
        return _redirect(redirect_to, "error=provider_not_configured")
    except IntegrationCodeExchangeError as e:
        logger.error("oauth_callback_code_exchange_failed", provider=provider, error=str(e))
        return _redirect(redirect_to, "error=token_exchange_failed")
    except (CredentialValidationError, ProviderRequestError) as e:
        # e.g. Google returned no refresh token because consent was not re-prompted
        logger.error(
            "oauth_callback_invalid_credential",
            provider=provider,
            error=e.message,
        )
        return _redirect(redirect_to, "error=invalid_credential")

    logger.info(
        "oauth_credential_created",
        provider=provider,
        user_id=user_id,
        credential_id=credential.id,
    )

    return _redirect(redirect_to, f"success=true&provider={provider}")


def _integration_or_404(registry: IntegrationRegistry, provider: str) -> BaseIntegration:
    try:
        return registry.get_integration(provider)
    except IntegrationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


async def _connected_credentials(
    integration: BaseIntegration,
    user_id: str,
    credential_service: CredentialService,
) -> list[CredentialRead]:
    return await credential_service.list_all(
        user_id=user_id,
        kind=CredentialKind.OAUTH,
        provider=integration.get_oauth_config().provider,
    )


@router.delete(
    "/{provider}/disconnect",
    summary="Disconnect OAuth integration",
    description="Remove OAuth credentials for the specified provider.",
)
async def disconnect_provider(
    provider: str,
    user: CurrentUser,
    registry: IntegrationRegistryDep,
    credential_service: CredentialServiceDep,
) -> dict[str, str]:
    """Remove every OAuth credential the user holds for a provider.

    Workflows linked to a removed credential lose the link, so their next
    run fails with a missing-credential error until the user reconnects.

    Raises:
        HTTPException 404: If provider is unknown or nothing is connected
    """
    integration = _integration_or_404(registry, provider)
    credentials = await _connected_credentials(integration, user.id, credential_service)
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No {provider} connection found",
        )

    for cred in credentials:
        await credential_service.delete(user_id=user.id, credential_id=cred.id)

    logger.info(
        "oauth_disconnected",
        provider=provider,
        user_id=user.id,
        credentials_removed=len(credentials),
    )
    return {"message": f"{integration.display_name} disconnected"}


@router.get(
    "/{provider}/status",
    summary="Get connection status",
    description="Check if user has connected the specified OAuth provider.",
)
async def get_connection_status(
    provider: str,
    user: CurrentUser,
    registry: IntegrationRegistryDep,
    credential_service: CredentialServiceDep,
) -> dict[str, Any]:
    integration = _integration_or_404(registry, provider)
    credentials = await _connected_credentials(integration, user.id, credential_service)

    latest = credentials[0] if credentials else None
    return {
        "provider": provider,
        "display_name": integration.display_name,
        "configured": integration.is_configured(),
        "connected": latest is not None,
        "credential": (
            {"id": latest.id, "name": latest.name, "created_at": latest.created_at.isoformat()}
            if latest
            else None
        ),
    }
