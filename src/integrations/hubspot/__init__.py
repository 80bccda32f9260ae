"""Hubspot integration."""

from src.integrations.hubspot.oauth import HubspotIntegration

__all__ = ["HubspotIntegration"]
