"""Slack OAuth integration.

Implements OAuth 2.0 flow for Slack, including token rotation refreshes.
Docs: https://api.slack.com/authentication/oauth-v2
"""

from typing import Any

import httpx
import structlog

from src.config import settings
from src.core.errors import ProviderRequestError, ReauthenticationRequired
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


class SlackIntegration(BaseIntegration):
    """Slack integration implementation."""

    @property
    def provider_id(self) -> str:
        return "slack"

    @property
    def display_name(self) -> str:
        return "Slack"

    def get_oauth_config(self) -> OAuthConfig:
        return OAuthConfig(
            provider_id=self.provider_id,
            display_name=self.display_name,
            client_id=settings.slack_client_id,
            client_secret=(
                settings.slack_client_secret.get_secret_value()
                if settings.slack_client_secret
                else None
            ),
            redirect_uri=settings.slack_redirect_uri,
            authorize_url="https://slack.com/oauth/v2/authorize",
            token_url="https://slack.com/api/oauth.v2.access",
            scopes=[
                "channels:read",
                "chat:write",
                "users:read",
            ],
            provider=CredentialProvider.SLACK,
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
            "state": state,
            "scope": ",".join(scopes),  # Slack uses comma-separated scopes
        }

    async def exchange_code(
        self,
        client: httpx.AsyncClient,
        config: OAuthConfig,
        code: str,
    ) -> OAuthTokens:
        """Exchange Slack authorization code for a bot token."""
        data = await post_token_request(
            client,
            self.provider_id,
            config.token_url,
            data={
                "client_id": config.client_id or "",
                "client_secret": config.client_secret or "",
                "code": code,
                "redirect_uri": config.redirect_uri,
            },
        )

        if not data.get("ok"):
            error = data.get("error", "unknown_error")
            logger.error("slack_oauth_exchange_failed", error=error)
            raise ProviderRequestError(f"Slack OAuth exchange failed: {error}")

        tokens = self._parse_tokens(data)
        logger.info(
            "slack_oauth_exchange_success",
            team_id=data.get("team", {}).get("id"),
        )
        return tokens

    async def refresh_access_token(
        self,
        client: httpx.AsyncClient,
        config: OAuthConfig,
        refresh_token: str,
    ) -> OAuthTokens:
        """Refresh a rotating Slack token.

        Slack answers 200 with ``ok: false`` when it rejects the grant.
        """
        data = await post_token_request(
            client,
            self.provider_id,
            config.token_url,
            data={
                "client_id": config.client_id or "",
                "client_secret": config.client_secret or "",
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
        )
        if not data.get("ok"):
            logger.warning("slack_token_refresh_rejected", error=data.get("error"))
            raise ReauthenticationRequired(provider=self.provider_id)
        return self._parse_tokens(data)

    def build_credential_secret(self, tokens: OAuthTokens) -> dict[str, Any]:
        team_id = ((tokens.raw_response or {}).get("team") or {}).get("id")
        secret: dict[str, Any] = {
            "access_token": tokens.access_token,
            "team_id": team_id,
        }
        if tokens.refresh_token:
            secret["refresh_token"] = tokens.refresh_token
        if tokens.expires_at:
            secret["expires_in"] = to_epoch_ms(tokens.expires_at)
        if tokens.scope:
            secret["scopes"] = tokens.scopes
        return secret

    def credential_name(self, tokens: OAuthTokens) -> str:
        team_name = ((tokens.raw_response or {}).get("team") or {}).get("name")
        return f"Slack ({team_name})" if team_name else "Slack"

    @staticmethod
    def _parse_tokens(data: dict[str, Any]) -> OAuthTokens:
        authed_user = data.get("authed_user", {})
        access_token = data.get("access_token") or authed_user.get("access_token")
        if not access_token:
            raise ProviderRequestError("No access token in Slack response")
        return OAuthTokens(
            access_token=access_token,
            token_type=data.get("token_type", "bot"),
            refresh_token=data.get("refresh_token"),
            expires_at=expires_at_from_seconds(data.get("expires_in")),
            scope=data.get("scope"),
            raw_response=data,
        )
