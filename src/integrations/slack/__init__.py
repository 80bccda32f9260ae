"""Slack integration: OAuth and Web API client."""

from src.integrations.slack.client import SlackClient
from src.integrations.slack.oauth import SlackIntegration

__all__ = [
    "SlackClient",
    "SlackIntegration",
]
