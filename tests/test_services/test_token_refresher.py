"""Tests for OAuth access token refresh."""

from datetime import datetime, timezone
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ReauthenticationRequired
from src.integrations.base import DEFAULT_ACCESS_TOKEN_LIFETIME, OAuthTokens
from src.models.credential import CredentialCreate, CredentialDecrypted, CredentialUpdate
from src.models.secrets import CredentialKind, CredentialProvider
from src.models.user import User
from src.services.credential_service import CredentialService
from src.services.token_refresher import OAuthTokenRefresher

NOW_MS = 1_700_000_000_000
NEW_EXPIRY = datetime(2030, 1, 1, tzinfo=timezone.utc)


class FakeTokenClient:
    def __init__(self, tokens: OAuthTokens | None = None, error: Exception | None = None):
        self.tokens = tokens or OAuthTokens(access_token="ya29.new", expires_at=NEW_EXPIRY)
        self.error = error
        self.calls: list[tuple[Any, str]] = []

    async def refresh_access_token(self, provider_id, refresh_token: str) -> OAuthTokens:
        self.calls.append((provider_id, refresh_token))
        if self.error is not None:
            raise self.error
        return self.tokens


class FakeVault:
    def __init__(self) -> None:
        self.updates: list[tuple[str, str, CredentialUpdate]] = []

    async def update(self, user_id: str, credential_id: str, data: CredentialUpdate) -> None:
        self.updates.append((user_id, credential_id, data))


def make_credential(**secret_overrides: Any) -> CredentialDecrypted:
    secret = {
        "access_token": "ya29.old",
        "refresh_token": "1//refresh",
        "expires_in": NOW_MS - 1,
        "scopes": ["https://www.googleapis.com/auth/spreadsheets"],
    }
    secret.update(secret_overrides)
    secret = {k: v for k, v in secret.items() if v is not None}
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return CredentialDecrypted(
        id="cred-1",
        user_id="user-1",
        name="Google",
        kind=CredentialKind.OAUTH,
        provider=CredentialProvider.GOOGLE,
        created_at=now,
        updated_at=now,
        secret=secret,
    )


def make_refresher(credential, vault, client) -> OAuthTokenRefresher:
    return OAuthTokenRefresher(credential, vault, client, clock_ms=lambda: NOW_MS)


class TestOAuthTokenRefresher:
    """Tests for OAuthTokenRefresher."""

    async def test_expired_token_refreshes_once(self):
        """An expired token causes exactly one refresh and one vault write."""
        vault, client = FakeVault(), FakeTokenClient()
        refresher = make_refresher(make_credential(), vault, client)

        first = await refresher.get_access_token()
        second = await refresher.get_access_token()

        assert first == second == "ya29.new"
        assert client.calls == [(CredentialProvider.GOOGLE, "1//refresh")]
        assert len(vault.updates) == 1

        user_id, credential_id, update = vault.updates[0]
        assert (user_id, credential_id) == ("user-1", "cred-1")
        assert update.secret["access_token"] == "ya29.new"
        assert update.secret["expires_in"] == int(NEW_EXPIRY.timestamp() * 1000)
        assert update.secret["refresh_token"] == "1//refresh"

    async def test_fresh_token_not_refreshed(self):
        vault, client = FakeVault(), FakeTokenClient()
        refresher = make_refresher(make_credential(expires_in=NOW_MS + 60_000), vault, client)

        assert await refresher.get_access_token() == "ya29.old"
        assert client.calls == []
        assert vault.updates == []

    async def test_no_expiry_never_refreshes(self):
        vault, client = FakeVault(), FakeTokenClient()
        refresher = make_refresher(make_credential(expires_in=None), vault, client)

        assert await refresher.ensure_fresh_token() is False
        assert client.calls == []

    async def test_rotated_refresh_token_is_stored(self):
        vault = FakeVault()
        client = FakeTokenClient(
            OAuthTokens(access_token="ya29.new", refresh_token="1//rotated", expires_at=NEW_EXPIRY)
        )
        refresher = make_refresher(make_credential(), vault, client)

        await refresher.ensure_fresh_token()

        assert vault.updates[0][2].secret["refresh_token"] == "1//rotated"
        assert refresher.secret["refresh_token"] == "1//rotated"

    async def test_missing_refresh_token_requires_reauth(self):
        vault, client = FakeVault(), FakeTokenClient()
        refresher = make_refresher(make_credential(refresh_token=None), vault, client)

        with pytest.raises(ReauthenticationRequired) as exc_info:
            await refresher.get_access_token()

        assert exc_info.value.provider == "GOOGLE"
        assert exc_info.value.retriable is False
        assert client.calls == []
        assert vault.updates == []

    async def test_rejected_refresh_propagates(self):
        vault = FakeVault()
        client = FakeTokenClient(error=ReauthenticationRequired(provider="GOOGLE"))
        refresher = make_refresher(make_credential(), vault, client)

        with pytest.raises(ReauthenticationRequired):
            await refresher.get_access_token()

        assert vault.updates == []

    async def test_original_credential_not_mutated(self):
        credential = make_credential()
        refresher = make_refresher(credential, FakeVault(), FakeTokenClient())

        await refresher.ensure_fresh_token()

        assert credential.secret["access_token"] == "ya29.old"


class TestRefreshPersistence:
    """Refreshes written through the real credential vault."""

    async def test_refresh_without_expiry_is_stored(
        self, db_session: AsyncSession, test_user: User
    ):
        """A provider that omits expires_in still yields a storable Google secret."""
        vault = CredentialService(db_session)
        stored = await vault.store(
            test_user.id,
            CredentialCreate(
                name="Google",
                kind=CredentialKind.OAUTH,
                provider=CredentialProvider.GOOGLE,
                secret={
                    "accessToken": "ya29.old",
                    "refreshToken": "1//refresh",
                    "expiresIn": 1,
                    "scopes": ["https://www.googleapis.com/auth/spreadsheets"],
                },
            ),
        )
        credential = await vault.get_decrypted(test_user.id, stored.id)
        client = FakeTokenClient(OAuthTokens(access_token="ya29.new"))
        refresher = make_refresher(credential, vault, client)

        assert await refresher.get_access_token() == "ya29.new"

        persisted = await vault.get_decrypted(test_user.id, stored.id)
        lifetime_ms = int(DEFAULT_ACCESS_TOKEN_LIFETIME.total_seconds() * 1000)
        assert persisted.secret["access_token"] == "ya29.new"
        assert persisted.secret["refresh_token"] == "1//refresh"
        assert persisted.secret["expires_in"] == NOW_MS + lifetime_ms

    async def test_refresh_with_expiry_is_stored(
        self, db_session: AsyncSession, test_user: User
    ):
        vault = CredentialService(db_session)
        stored = await vault.store(
            test_user.id,
            CredentialCreate(
                name="Google",
                kind=CredentialKind.OAUTH,
                provider=CredentialProvider.GOOGLE,
                secret={
                    "accessToken": "ya29.old",
                    "refreshToken": "1//refresh",
                    "expiresIn": 1,
                    "scopes": [],
                },
            ),
        )
        credential = await vault.get_decrypted(test_user.id, stored.id)
        refresher = make_refresher(credential, vault, FakeTokenClient())

        await refresher.ensure_fresh_token()

        persisted = await vault.get_decrypted(test_user.id, stored.id)
        assert persisted.secret["expires_in"] == int(NEW_EXPIRY.timestamp() * 1000)
