"""Core layer - Pure business logic and algorithms."""

from src.core.encryption import CredentialEncryption
from src.core.errors import (
    ConflictError,
    NotFoundError,
    ReauthenticationRequired,
    TransientProviderError,
    UnknownEventName,
    ValidationError,
    WorkflowAppError,
)

__all__ = [
    "ConflictError",
    "CredentialEncryption",
    "NotFoundError",
    "ReauthenticationRequired",
    "TransientProviderError",
    "UnknownEventName",
    "ValidationError",
    "WorkflowAppError",
]
