"""Slack Web API client."""

from typing import Any

import structlog

from src.core.errors import ProviderRequestError, ReauthenticationRequired
from src.integrations.base import AuthorizedApiClient

logger = structlog.get_logger()

SLACK_API = "https://slack.com/api"

# Slack reports auth failures as 200 + ok=false with one of these codes.
AUTH_ERRORS = {"invalid_auth", "not_authed", "token_revoked", "token_expired", "account_inactive"}


class SlackClient(AuthorizedApiClient):
    """Posts to Slack with the connected workspace's token."""

    provider_id = "slack"

    async def _call(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        data = await self._request("POST", f"{SLACK_API}/{method}", json=payload)
        if not data.get("ok"):
            error = data.get("error", "unknown_error")
            if error in AUTH_ERRORS:
                raise ReauthenticationRequired(provider=self.provider_id)
            logger.warning("slack_api_error", method=method, error=error)
            raise ProviderRequestError(f"Slack {method} failed: {error}")
        return data

    async def post_message(self, channel: str, text: str) -> str:
        """Post a message to a channel.

        Returns:
            Message timestamp (``ts``)
        """
        data = await self._call("chat.postMessage", {"channel": channel, "text": text})
        return data.get("ts", "")
