"""Base classes for integrations.

Defines the interface every OAuth provider implements, plus the shared HTTP
plumbing for token endpoints and authorized API calls.
"""

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

import httpx
import structlog

from src.config import settings
from src.core.errors import (
    ProviderRequestError,
    ReauthenticationRequired,
    TransientProviderError,
)
from src.models.secrets import CredentialProvider

logger = structlog.get_logger()

# Status codes a token endpoint uses to reject a grant.
REJECTED_GRANT_STATUSES = {400, 401, 403}

# Assumed lifetime when a token endpoint omits expires_in.
DEFAULT_ACCESS_TOKEN_LIFETIME = timedelta(hours=1)


@dataclass
class OAuthConfig:
    """OAuth configuration for an integration."""

    provider_id: str
    display_name: str
    client_id: str | None
    client_secret: str | None
    redirect_uri: str
    authorize_url: str
    token_url: str
    scopes: list[str]
    provider: CredentialProvider


@dataclass
class OAuthTokens:
    """OAuth tokens returned from a code exchange or a refresh."""

    access_token: str
    token_type: str = "Bearer"
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scope: str | None = None
    raw_response: dict[str, Any] | None = None

    @property
    def scopes(self) -> list[str]:
        if not self.scope:
            return []
        separator = "," if "," in self.scope else " "
        return [s for s in self.scope.split(separator) if s]


def expires_at_from_seconds(seconds: Any) -> datetime | None:
    """Turn a relative ``expires_in`` (seconds) into an absolute UTC instant."""
    if seconds is None:
        return None
    return datetime.now(timezone.utc) + timedelta(seconds=int(seconds))


def to_epoch_ms(value: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return int(value.timestamp() * 1000)


class AccessTokenSource(Protocol):
    """Anything that can hand out a currently valid access token."""

    async def get_access_token(self) -> str: ...


def provider_client(transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Create an HTTP client for provider calls."""
    return httpx.AsyncClient(transport=transport, timeout=settings.provider_timeout)


async def post_token_request(
    client: httpx.AsyncClient,
    provider_id: str,
    url: str,
    data: dict[str, str],
    headers: dict[str, str] | None = None,
) -> dict[str, Any]:
    """POST a form to a token endpoint and classify failures.

    Raises:
        ReauthenticationRequired: If the provider rejected the grant
        TransientProviderError: On network errors, 429 or 5xx
        ProviderRequestError: On any other unsuccessful status
    """
    try:
        response = await client.post(url, data=data, headers=headers)
    except httpx.TransportError as e:
        logger.warning("oauth_token_request_network_error", provider=provider_id, error=str(e))
        raise TransientProviderError(f"{provider_id} token endpoint unreachable: {e}") from e

    if response.status_code in REJECTED_GRANT_STATUSES:
        logger.warning(
            "oauth_token_request_rejected",
            provider=provider_id,
            status_code=response.status_code,
        )
        raise ReauthenticationRequired(provider=provider_id)
    if response.status_code == 429 or response.status_code >= 500:
        raise TransientProviderError(
            f"{provider_id} token endpoint returned {response.status_code}"
        )
    if not response.is_success:
        logger.warning(
            "oauth_token_request_failed",
            provider=provider_id,
            status_code=response.status_code,
        )
        raise ProviderRequestError(
            f"{provider_id} token endpoint returned {response.status_code}",
            status_code=response.status_code,
        )
    return response.json()


class BaseIntegration(ABC):
    """Base class for all OAuth integrations.

    Each integration must implement:
    - get_oauth_config(): Return OAuth configuration
    - build_authorization_params(): Build provider-specific auth params
    - exchange_code(): Exchange authorization code for tokens
    - refresh_access_token(): Trade a refresh token for a new access token
    - build_credential_secret(): Build the stored secret from tokens
    """

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique provider identifier (e.g., 'google', 'slack', 'hubspot')."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable provider name."""
        ...

    @abstractmethod
    def get_oauth_config(self) -> OAuthConfig:
        """Get OAuth configuration for this provider."""
        ...

    @abstractmethod
    def build_authorization_params(
        self,
        config: OAuthConfig,
        state: str,
        extra_scopes: list[str] | None = None,
    ) -> dict[str, str]:
        """Build provider-specific authorization URL parameters."""
        ...

    @abstractmethod
    async def exchange_code(
        self,
        client: httpx.AsyncClient,
        config: OAuthConfig,
        code: str,
    ) -> OAuthTokens:
        """Exchange authorization code for tokens."""
        ...

    @abstractmethod
    async def refresh_access_token(
        self,
        client: httpx.AsyncClient,
        config: OAuthConfig,
        refresh_token: str,
    ) -> OAuthTokens:
        """Exchange a refresh token for a new access token."""
        ...

    @abstractmethod
    def build_credential_secret(self, tokens: OAuthTokens) -> dict[str, Any]:
        """Build the secret payload stored in the vault."""
        ...

    def credential_name(self, tokens: OAuthTokens) -> str:
        """Name given to credentials created by the consent callback."""
        return f"{self.display_name} Connection"

    def is_configured(self) -> bool:
        """Check if the integration is properly configured."""
        config = self.get_oauth_config()
        return bool(config.client_id and config.client_secret)

    @staticmethod
    def build_basic_auth_header(client_id: str, client_secret: str) -> str:
        """Build HTTP Basic Auth header value."""
        credentials = f"{client_id}:{client_secret}"
        encoded = base64.b64encode(credentials.encode()).decode()
        return f"Basic {encoded}"


class AuthorizedApiClient:
    """Bearer-token API client that refreshes tokens before each call.

    Response classification:
    - 401 after a refresh attempt: ReauthenticationRequired
    - 429, 5xx, network errors: TransientProviderError
    - other 4xx: ProviderRequestError
    """

    provider_id: str = "provider"

    def __init__(
        self,
        tokens: AccessTokenSource,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._tokens = tokens
        self._transport = transport

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        access_token = await self._tokens.get_access_token()
        headers = {"Authorization": f"Bearer {access_token}", **kwargs.pop("headers", {})}

        try:
            async with provider_client(self._transport) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            logger.warning("provider_request_network_error", provider=self.provider_id, error=str(e))
            raise TransientProviderError(f"{self.provider_id} request failed: {e}") from e

        if response.status_code == 401:
            raise ReauthenticationRequired(provider=self.provider_id)
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(
                f"{self.provider_id} returned {response.status_code}"
            )
        if response.status_code >= 400:
            logger.warning(
                "provider_request_rejected",
                provider=self.provider_id,
                status_code=response.status_code,
            )
            raise ProviderRequestError(
                f"{self.provider_id} rejected request: {response.text[:200]}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        return response.json()
