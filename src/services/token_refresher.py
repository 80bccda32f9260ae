"""OAuth access token refresher.

Wraps one decrypted OAuth credential. Before each provider call the API
clients ask it for an access token; when the stored expiry has passed it
refreshes the token once, persists the new secret through the vault and
keeps serving the refreshed value from memory.

There is no lock around the refresh. Two concurrent executions may both
refresh and one write wins; the loser's token stays valid until it expires
and the next call refreshes again.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Protocol

import structlog

from src.core.errors import ReauthenticationRequired
from src.integrations.base import DEFAULT_ACCESS_TOKEN_LIFETIME, OAuthTokens, to_epoch_ms
from src.models.credential import CredentialDecrypted, CredentialUpdate
from src.models.secrets import CredentialProvider

logger = structlog.get_logger()

DEFAULT_LIFETIME_MS = int(DEFAULT_ACCESS_TOKEN_LIFETIME.total_seconds() * 1000)


class TokenRefreshClient(Protocol):
    async def refresh_access_token(
        self, provider_id: str | CredentialProvider, refresh_token: str
    ) -> OAuthTokens: ...


class SecretWriter(Protocol):
    async def update(self, user_id: str, credential_id: str, data: CredentialUpdate) -> Any: ...


def _now_ms() -> int:
    return to_epoch_ms(datetime.now(timezone.utc))


class OAuthTokenRefresher:
    """Keeps one OAuth credential's access token fresh.

    Example usage:
        refresher = OAuthTokenRefresher(credential, vault, registry)
        token = await refresher.get_access_token()
    """

    def __init__(
        self,
        credential: CredentialDecrypted,
        vault: SecretWriter,
        token_client: TokenRefreshClient,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        """Initialize the refresher.

        Args:
            credential: Decrypted OAuth credential (snake_case secret)
            vault: Persists the refreshed secret
            token_client: Performs the provider refresh call
            clock_ms: Current time in epoch milliseconds
        """
        self._credential = credential
        self._secret: dict[str, Any] = dict(credential.secret)
        self._vault = vault
        self._token_client = token_client
        self._clock_ms = clock_ms

    @property
    def credential_id(self) -> str:
        return self._credential.id

    @property
    def provider(self) -> CredentialProvider:
        return self._credential.provider

    @property
    def secret(self) -> dict[str, Any]:
        """Current secret, including any refresh done by this instance."""
        return dict(self._secret)

    def is_expired(self) -> bool:
        expires_in = self._secret.get("expires_in")
        return expires_in is not None and int(expires_in) <= self._clock_ms()

    async def ensure_fresh_token(self) -> bool:
        """Refresh the access token if it has expired.

        Returns:
            True if a refresh happened

        Raises:
            ReauthenticationRequired: If there is no refresh token or the
                provider rejected it
            TransientProviderError: On network errors or provider outages
        """
        if not self.is_expired():
            return False

        log = logger.bind(
            credential_id=self._credential.id,
            user_id=self._credential.user_id,
            provider=self.provider.value,
        )

        refresh_token = self._secret.get("refresh_token")
        if not refresh_token:
            log.warning("oauth_refresh_token_missing")
            raise ReauthenticationRequired(provider=self.provider.value)

        try:
            tokens = await self._token_client.refresh_access_token(self.provider, refresh_token)
        except ReauthenticationRequired:
            log.warning("oauth_token_refresh_rejected")
            raise

        updated = {**self._secret, "access_token": tokens.access_token}
        if tokens.expires_at is not None:
            updated["expires_in"] = to_epoch_ms(tokens.expires_at)
        else:
            updated["expires_in"] = self._clock_ms() + DEFAULT_LIFETIME_MS
        if tokens.refresh_token:
            updated["refresh_token"] = tokens.refresh_token

        await self._vault.update(
            self._credential.user_id,
            self._credential.id,
            CredentialUpdate(secret=updated),
        )
        self._secret = updated

        log.info("oauth_token_refresh_persisted", rotated=bool(tokens.refresh_token))
        return True

    async def get_access_token(self) -> str:
        """Return a valid access token, refreshing first if needed."""
        await self.ensure_fresh_token()
        return self._secret["access_token"]
