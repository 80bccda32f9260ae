"""Integration registry.

Central registry for all OAuth integrations. Provides authorization URL
generation, code exchange and access token refresh by provider ID.
"""

from functools import lru_cache
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog

from src.core.errors import NotFoundError, ValidationError, WorkflowAppError
from src.integrations.base import BaseIntegration, OAuthConfig, OAuthTokens, provider_client
from src.integrations.google import GoogleIntegration
from src.integrations.hubspot import HubspotIntegration
from src.integrations.slack import SlackIntegration
from src.models.secrets import CredentialProvider

logger = structlog.get_logger()


class IntegrationNotFoundError(NotFoundError):
    """Integration not found."""

    pass


class IntegrationNotConfiguredError(ValidationError):
    """Integration not configured (missing client_id/secret)."""

    pass


class IntegrationCodeExchangeError(WorkflowAppError):
    """Failed to exchange authorization code for tokens."""

    pass


class IntegrationRegistry:
    """Registry for managing OAuth integrations.

    Example usage:
        registry = IntegrationRegistry()

        auth_url = registry.get_authorization_url("google", state="abc123")
        tokens = await registry.exchange_code("google", code="xyz789")
        secret = registry.build_credential_secret("google", tokens)
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize registry with all known integrations.

        Args:
            transport: Optional httpx transport used for every provider call
        """
        self._transport = transport
        self._integrations: dict[str, BaseIntegration] = {}
        self._load_integrations()

    def _load_integrations(self) -> None:
        integrations: list[BaseIntegration] = [
            GoogleIntegration(),
            SlackIntegration(),
            HubspotIntegration(),
        ]

        for integration in integrations:
            self._integrations[integration.provider_id] = integration
            logger.debug(
                "integration_registered",
                provider_id=integration.provider_id,
                configured=integration.is_configured(),
            )

    @property
    def transport(self) -> httpx.AsyncBaseTransport | None:
        return self._transport

    def get_integration(self, provider_id: str | CredentialProvider) -> BaseIntegration:
        """Get integration by provider ID ('google' or CredentialProvider.GOOGLE).

        Raises:
            IntegrationNotFoundError: If provider not found
        """
        key = provider_id.value if isinstance(provider_id, CredentialProvider) else provider_id
        integration = self._integrations.get(key.lower())
        if integration is None:
            raise IntegrationNotFoundError(
                f"Integration not found: {key}. "
                f"Available: {list(self._integrations.keys())}"
            )
        return integration

    def get_oauth_config(self, provider_id: str | CredentialProvider) -> OAuthConfig:
        """Get OAuth configuration for a provider.

        Raises:
            IntegrationNotFoundError: If provider not found
            IntegrationNotConfiguredError: If not configured
        """
        integration = self.get_integration(provider_id)
        config = integration.get_oauth_config()

        if not config.client_id or not config.client_secret:
            name = integration.provider_id.upper()
            raise IntegrationNotConfiguredError(
                f"Integration {integration.provider_id} is not configured. "
                f"Set {name}_CLIENT_ID and {name}_CLIENT_SECRET."
            )

        return config

    def get_authorization_url(
        self,
        provider_id: str,
        state: str,
        extra_scopes: list[str] | None = None,
    ) -> str:
        """Generate OAuth authorization URL.

        Raises:
            IntegrationNotFoundError: If provider not found
            IntegrationNotConfiguredError: If not configured
        """
        integration = self.get_integration(provider_id)
        config = self.get_oauth_config(provider_id)

        params = integration.build_authorization_params(config, state, extra_scopes)
        auth_url = f"{config.authorize_url}?{urlencode(params)}"

        logger.info(
            "oauth_authorization_url_generated",
            provider=provider_id,
            redirect_uri=config.redirect_uri,
        )

        return auth_url

    async def exchange_code(self, provider_id: str, code: str) -> OAuthTokens:
        """Exchange authorization code for tokens.

        Raises:
            IntegrationNotFoundError: If provider not found
            IntegrationNotConfiguredError: If not configured
            IntegrationCodeExchangeError: If exchange fails
        """
        integration = self.get_integration(provider_id)
        config = self.get_oauth_config(provider_id)

        try:
            async with provider_client(self._transport) as client:
                return await integration.exchange_code(client, config, code)
        except Exception as e:
            raise IntegrationCodeExchangeError(
                f"Token exchange failed for {provider_id}: {e}"
            ) from e

    async def refresh_access_token(
        self,
        provider_id: str | CredentialProvider,
        refresh_token: str,
    ) -> OAuthTokens:
        """Trade a refresh token for a new access token.

        Raises:
            ReauthenticationRequired: If the provider rejected the refresh token
            TransientProviderError: On network errors or provider outages
        """
        integration = self.get_integration(provider_id)
        config = self.get_oauth_config(provider_id)

        async with provider_client(self._transport) as client:
            tokens = await integration.refresh_access_token(client, config, refresh_token)

        logger.info("oauth_token_refreshed", provider=integration.provider_id)
        return tokens

    def build_credential_secret(self, provider_id: str, tokens: OAuthTokens) -> dict[str, Any]:
        return self.get_integration(provider_id).build_credential_secret(tokens)

    def credential_name(self, provider_id: str, tokens: OAuthTokens) -> str:
        return self.get_integration(provider_id).credential_name(tokens)

    def list_integrations(self) -> list[dict[str, Any]]:
        """List all available integrations with their configuration status."""
        result = []
        for provider_id, integration in self._integrations.items():
            config = integration.get_oauth_config()
            result.append({
                "provider_id": provider_id,
                "display_name": integration.display_name,
                "configured": integration.is_configured(),
                "provider": config.provider.value,
            })
        return result


@lru_cache
def get_integration_registry() -> IntegrationRegistry:
    """Get cached integration registry instance."""
    return IntegrationRegistry()
