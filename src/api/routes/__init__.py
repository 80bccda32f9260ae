"""API route handlers."""

from src.api.routes.credentials import router as credentials_router
from src.api.routes.oauth import router as oauth_router
from src.api.routes.templates import router as templates_router
from src.api.routes.webhooks import router as webhooks_router
from src.api.routes.workflows import router as workflows_router

__all__ = [
    "credentials_router",
    "oauth_router",
    "templates_router",
    "webhooks_router",
    "workflows_router",
]
