"""Google integration: OAuth, Sheets/Drive and Gmail."""

from src.integrations.google.gmail import GmailClient
from src.integrations.google.oauth import GoogleIntegration
from src.integrations.google.sheets import SheetsClient

__all__ = [
    "GmailClient",
    "GoogleIntegration",
    "SheetsClient",
]
