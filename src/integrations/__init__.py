"""Integrations module.

Each provider (Google, Slack, Hubspot) has its own folder with:
- oauth.py: OAuth provider configuration, code exchange and token refresh
- API clients (sheets.py, gmail.py, client.py) where workflows call the provider
- __init__.py: Exports
"""

from src.integrations.registry import IntegrationRegistry, get_integration_registry

__all__ = [
    "IntegrationRegistry",
    "get_integration_registry",
]
