"""Data models - SQLModel entities and runtime models."""

from src.models.credential import Credential, CredentialCreate, CredentialRead, CredentialUpdate
from src.models.secrets import CredentialKind, CredentialProvider
from src.models.user import User, UserRead
from src.models.workflow import (
    WorkflowCredential,
    WorkflowInstance,
    WorkflowRead,
    WorkflowUpdate,
)

__all__ = [
    "Credential",
    "CredentialCreate",
    "CredentialKind",
    "CredentialProvider",
    "CredentialRead",
    "CredentialUpdate",
    "User",
    "UserRead",
    "WorkflowCredential",
    "WorkflowInstance",
    "WorkflowRead",
    "WorkflowUpdate",
]
