"""Tests for the OAuth consent endpoints."""

from typing import Any, AsyncGenerator

import httpx
import pytest_asyncio
from httpx import AsyncClient

from src.integrations.registry import IntegrationRegistry, get_integration_registry
from src.main import app


def google_token_endpoint(payload: dict[str, Any]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/userinfo"):
            return httpx.Response(200, json={"email": "owner@example.com"})
        return httpx.Response(200, json=payload)

    return httpx.MockTransport(handler)


@pytest_asyncio.fixture
async def oauth_client(client: AsyncClient) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose integration registry talks to a mock Google."""
    registry = IntegrationRegistry(
        google_token_endpoint({
            "access_token": "ya29.consented",
            "refresh_token": "1//consented",
            "expires_in": 3600,
            "scope": "https://www.googleapis.com/auth/spreadsheets",
        })
    )
    app.dependency_overrides[get_integration_registry] = lambda: registry
    yield client


async def authorize(client: AsyncClient, headers: dict[str, str]) -> str:
    response = await client.get("/api/v1/oauth/google/authorize", headers=headers)
    assert response.status_code == 200
    return response.json()["state"]


class TestOAuthEndpoints:
    """Tests for the consent flow."""

    async def test_list_providers(self, oauth_client: AsyncClient):
        response = await oauth_client.get("/api/v1/oauth/providers")

        assert response.status_code == 200
        providers = {p["provider_id"]: p for p in response.json()}
        assert providers["google"]["configured"] is True
        assert providers["hubspot"]["configured"] is False

    async def test_authorize_returns_url_and_state(
        self, oauth_client: AsyncClient, auth_headers: dict[str, str]
    ):
        response = await oauth_client.get("/api/v1/oauth/google/authorize", headers=auth_headers)

        body = response.json()
        assert body["authorization_url"].startswith("https://accounts.google.com/")
        assert body["state"] in body["authorization_url"]

    async def test_authorize_unknown_provider(
        self, oauth_client: AsyncClient, auth_headers: dict[str, str]
    ):
        response = await oauth_client.get("/api/v1/oauth/dropbox/authorize", headers=auth_headers)

        assert response.status_code == 404

    async def test_authorize_unconfigured_provider(
        self, oauth_client: AsyncClient, auth_headers: dict[str, str]
    ):
        response = await oauth_client.get("/api/v1/oauth/hubspot/authorize", headers=auth_headers)

        assert response.status_code == 400

    async def test_callback_stores_credential(
        self, oauth_client: AsyncClient, auth_headers: dict[str, str]
    ):
        state = await authorize(oauth_client, auth_headers)

        response = await oauth_client.get(
            "/api/v1/oauth/google/callback",
            params={"code": "auth-code", "state": state},
        )

        assert response.status_code == 302
        assert "success=true" in response.headers["location"]

        status_response = await oauth_client.get(
            "/api/v1/oauth/google/status", headers=auth_headers
        )
        assert status_response.json()["connected"] is True
        assert status_response.json()["credential"]["name"] == "Google (owner@example.com)"

    async def test_callback_rejects_unknown_state(self, oauth_client: AsyncClient):
        response = await oauth_client.get(
            "/api/v1/oauth/google/callback",
            params={"code": "auth-code", "state": "forged"},
        )

        assert response.status_code == 302
        assert "error=invalid_state" in response.headers["location"]

    async def test_callback_provider_error(
        self, oauth_client: AsyncClient, auth_headers: dict[str, str]
    ):
        state = await authorize(oauth_client, auth_headers)

        response = await oauth_client.get(
            "/api/v1/oauth/google/callback",
            params={"state": state, "error": "access_denied"},
        )

        assert "error=access_denied" in response.headers["location"]

    async def test_disconnect(self, oauth_client: AsyncClient, auth_headers: dict[str, str]):
        state = await authorize(oauth_client, auth_headers)
        await oauth_client.get(
            "/api/v1/oauth/google/callback",
            params={"code": "auth-code", "state": state},
        )

        response = await oauth_client.delete(
            "/api/v1/oauth/google/disconnect", headers=auth_headers
        )

        assert response.status_code == 200
        listing = await oauth_client.get("/api/v1/credentials", headers=auth_headers)
        assert listing.json() == []

    async def test_disconnect_when_not_connected(
        self, oauth_client: AsyncClient, auth_headers: dict[str, str]
    ):
        response = await oauth_client.delete(
            "/api/v1/oauth/slack/disconnect", headers=auth_headers
        )

        assert response.status_code == 404
