"""Google OAuth integration.

Implements the offline-access OAuth 2.0 flow for Google APIs.
Docs: https://developers.google.com/identity/protocols/oauth2/web-server
"""

from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from src.config import settings
from src.core.errors import ProviderRequestError
from src.integrations.base import (
    DEFAULT_ACCESS_TOKEN_LIFETIME,
    BaseIntegration,
    OAuthConfig,
    OAuthTokens,
    expires_at_from_seconds,
    post_token_request,
    to_epoch_ms,
)
from src.models.secrets import CredentialProvider

logger = structlog.get_logger()

USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class GoogleIntegration(BaseIntegration):
    """Google integration implementation."""

    @property
    def provider_id(self) -> str:
        return "google"

    @property
    def display_name(self) -> str:
        return "Google"

    def get_oauth_config(self) -> OAuthConfig:
        return OAuthConfig(
            provider_id=self.provider_id,
            display_name=self.display_name,
            client_id=settings.google_client_id,
            client_secret=(
                settings.google_client_secret.get_secret_value()
                if settings.google_client_secret
                else None
            ),
            redirect_uri=settings.google_redirect_uri,
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            scopes=[
                "openid",
                "https://www.googleapis.com/auth/userinfo.email",
                "https://www.googleapis.com/auth/spreadsheets",
                "https://www.googleapis.com/auth/drive.readonly",
                "https://www.googleapis.com/auth/gmail.send",
            ],
            provider=CredentialProvider.GOOGLE,
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

        # offline + consent makes Google return a refresh token every time
        return {
            "client_id": config.client_id or "",
            "redirect_uri": config.redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": state,
        }

    async def exchange_code(
        self,
        client: httpx.AsyncClient,
        config: OAuthConfig,
        code: str,
    ) -> OAuthTokens:
        """Exchange a Google authorization code and look up the account email."""
        data = await post_token_request(
            client,
            self.provider_id,
            config.token_url,
            data={
                "code": code,
                "client_id": config.client_id or "",
                "client_secret": config.client_secret or "",
                "redirect_uri": config.redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        tokens = self._parse_tokens(data)

        response = await client.get(
            USERINFO_URL,
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )
        if response.is_success:
            tokens.raw_response = {**data, "email": response.json().get("email")}
        else:
            logger.warning("google_userinfo_failed", status_code=response.status_code)

        logger.info("google_oauth_exchange_success", has_refresh_token=bool(tokens.refresh_token))
        return tokens

    async def refresh_access_token(
        self,
        client: httpx.AsyncClient,
        config: OAuthConfig,
        refresh_token: str,
    ) -> OAuthTokens:
        """Refresh a Google access token.

        Google usually omits refresh_token here; the caller keeps the old one.
        """
        data = await post_token_request(
            client,
            self.provider_id,
            config.token_url,
            data={
                "client_id": config.client_id or "",
                "client_secret": config.client_secret or "",
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        return self._parse_tokens(data)

    def build_credential_secret(self, tokens: OAuthTokens) -> dict[str, Any]:
        if not tokens.refresh_token:
            raise ProviderRequestError(
                "Google did not return a refresh token; revoke access and reconnect"
            )
        expires_at = tokens.expires_at or datetime.now(timezone.utc) + DEFAULT_ACCESS_TOKEN_LIFETIME
        return {
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
            "expires_in": to_epoch_ms(expires_at),
            "scopes": tokens.scopes,
        }

    def credential_name(self, tokens: OAuthTokens) -> str:
        email = (tokens.raw_response or {}).get("email")
        return f"Google ({email})" if email else "Google"

    @staticmethod
    def _parse_tokens(data: dict[str, Any]) -> OAuthTokens:
        return OAuthTokens(
            access_token=data["access_token"],
            token_type=data.get("token_type", "Bearer"),
            refresh_token=data.get("refresh_token"),
            expires_at=expires_at_from_seconds(data.get("expires_in")),
            scope=data.get("scope"),
            raw_response=data,
        )
