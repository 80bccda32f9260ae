"""Services layer - Business logic and orchestration."""

from src.services.credential_resolver import CredentialResolver, ExecutionContext
from src.services.credential_service import CredentialService
from src.services.token_refresher import OAuthTokenRefresher
from src.services.user_service import UserService
from src.services.workflow_service import WorkflowService

__all__ = [
    "CredentialResolver",
    "CredentialService",
    "ExecutionContext",
    "OAuthTokenRefresher",
    "UserService",
    "WorkflowService",
]
