"""Hubspot OAuth integration.

Docs: https://developers.hubspot.com/docs/api/oauth-quickstart-guide
"""

from typing import Any

import httpx
import structlog

from src.config import settings
from src.core.errors import ProviderRequestError
from src.integrations.base import (
    BaseIntegration,
    OAuthConfig,
    OAuthTokens,
    expires_at_from_seconds,
    post_token_request,
    to_epoch_ms,
)
from src.models.secrets import CredentialProvider

logger = structlog.get_logger()

TOKEN_INFO_URL = "https://api.hubapi.com/oauth/v1/access-tokens"


class HubspotIntegration(BaseIntegration):
    """Hubspot integration implementation."""

    @property
    def provider_id(self) -> str:
        return "hubspot"

    @property
    def display_name(self) -> str:
        return "Hubspot"

    def get_oauth_config(self) -> OAuthConfig:
        return OAuthConfig(
            provider_id=self.provider_id,
            display_name=self.display_name,
            client_id=settings.hubspot_client_id,
            client_secret=(
                settings.hubspot_client_secret.get_secret_value()
                if settings.hubspot_client_secret
                else None
            ),
            redirect_uri=settings.hubspot_redirect_uri,
            authorize_url="https://app.hubspot.com/oauth/authorize",
            token_url="https://api.hubapi.com/oauth/v1/token",
            scopes=["oauth", "crm.objects.contacts.read"],
            provider=CredentialProvider.HUBSPOT,
        )

    def build_authorization_params(
        self,
        config: OAuthConfig,
        state: str,
        extra_scopes: list[str] | None = None,
    ) -> dict[str, str]:
        scopes = config.scopes.copy()
        if extra_scopes:
            scopes.extend(extra_scopes)

        return {
            "client_id": config.client_id or "",
            "redirect_uri": config.redirect_uri,
            "scope": " ".join(scopes),
            "state": state,
        }

    async def exchange_code(
        self,
        client: httpx.AsyncClient,
        config: OAuthConfig,
        code: str,
    ) -> OAuthTokens:
        """Exchange a Hubspot code, then look up the portal (hub) ID."""
        data = await post_token_request(
            client,
            self.provider_id,
            config.token_url,
            data={
                "grant_type": "authorization_code",
                "client_id": config.client_id or "",
                "client_secret": config.client_secret or "",
                "redirect_uri": config.redirect_uri,
                "code": code,
            },
        )
        tokens = self._parse_tokens(data)

        response = await client.get(f"{TOKEN_INFO_URL}/{tokens.access_token}")
        response.raise_for_status()
        info = response.json()
        tokens.raw_response = {**data, "hub_id": info.get("hub_id"), "hub_domain": info.get("hub_domain")}

        logger.info("hubspot_oauth_exchange_success", hub_id=info.get("hub_id"))
        return tokens

    async def refresh_access_token(
        self,
        client: httpx.AsyncClient,
        config: OAuthConfig,
        refresh_token: str,
    ) -> OAuthTokens:
        data = await post_token_request(
            client,
            self.provider_id,
            config.token_url,
            data={
                "grant_type": "refresh_token",
                "client_id": config.client_id or "",
                "client_secret": config.client_secret or "",
                "refresh_token": refresh_token,
            },
        )
        return self._parse_tokens(data)

    def build_credential_secret(self, tokens: OAuthTokens) -> dict[str, Any]:
        hub_id = (tokens.raw_response or {}).get("hub_id")
        if not tokens.refresh_token or hub_id is None:
            raise ProviderRequestError("Hubspot response is missing refresh_token or hub_id")
        secret: dict[str, Any] = {
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
            "hub_id": hub_id,
        }
        if tokens.expires_at:
            secret["expires_in"] = to_epoch_ms(tokens.expires_at)
        return secret

    def credential_name(self, tokens: OAuthTokens) -> str:
        domain = (tokens.raw_response or {}).get("hub_domain")
        return f"Hubspot ({domain})" if domain else "Hubspot"

    @staticmethod
    def _parse_tokens(data: dict[str, Any]) -> OAuthTokens:
        return OAuthTokens(
            access_token=data["access_token"],
            token_type=data.get("token_type", "bearer"),
            refresh_token=data.get("refresh_token"),
            expires_at=expires_at_from_seconds(data.get("expires_in")),
            raw_response=data,
        )
