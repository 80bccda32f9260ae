"""Credential entity model.

Defines the Credential table for storing encrypted user secrets.
The secret payload is Fernet-encrypted at rest; only metadata ever leaves
the credential service.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from sqlmodel import Column, Field, Relationship, SQLModel, Text
import json

from src.models.secrets import CredentialKind, CredentialProvider

if TYPE_CHECKING:
    from src.models.user import User


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class CredentialBase(SQLModel):
    """Base credential fields shared across models."""

    name: str = Field(
        max_length=255,
        min_length=1,
        description="Human-readable credential name",
    )
    kind: CredentialKind = Field(
        description="Authentication mechanism (OAUTH or API_KEY)",
    )
    provider: CredentialProvider = Field(
        index=True,
        description="Third-party provider the secret belongs to",
    )


class Credential(CredentialBase, table=True):
    """Credential database entity.

    The encrypted_secret field contains a Fernet-encrypted JSON payload
    whose shape is fixed by (kind, provider).

    SECURITY NOTES:
    - Never log decrypted credential values
    - Decrypt only inside the credential service
    """

    __tablename__ = "credential"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique credential identifier (UUID)",
    )
    user_id: str = Field(
        foreign_key="user.id",
        ondelete="CASCADE",
        index=True,
        description="Owner user ID",
    )
    encrypted_secret: str = Field(
        sa_column=Column(Text, nullable=False),
        description="Fernet-encrypted JSON secret payload",
    )
    config: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="Optional non-secret JSON configuration",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column_kwargs={"onupdate": utc_now},
        description="Last update timestamp (UTC)",
    )

    # Relationships
    user: "User" = Relationship(back_populates="credentials")

    def get_config(self) -> dict[str, Any] | None:
        """Parse the stored configuration."""
        return json.loads(self.config) if self.config else None


class CredentialCreate(SQLModel):
    """Schema for creating a new credential.

    ``secret`` holds the raw values that will be validated and encrypted.
    """

    name: str = Field(max_length=255, min_length=1)
    kind: CredentialKind
    provider: CredentialProvider
    secret: dict[str, Any] = Field(
        description="Raw secret payload (will be encrypted)",
    )
    config: dict[str, Any] | None = None


class CredentialUpdate(SQLModel):
    """Schema for replacing a credential's secret."""

    name: str | None = Field(default=None, max_length=255, min_length=1)
    secret: dict[str, Any] | None = Field(
        default=None,
        description="New secret payload (will be re-validated and encrypted)",
    )


class CredentialRead(CredentialBase):
    """Schema for reading credential data (excludes the secret).

    SECURITY: This schema intentionally excludes encrypted_secret.
    """

    id: str
    user_id: str
    config: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, credential: Credential) -> "CredentialRead":
        return cls(
            id=credential.id,
            user_id=credential.user_id,
            name=credential.name,
            kind=credential.kind,
            provider=credential.provider,
            config=credential.get_config(),
            created_at=credential.created_at,
            updated_at=credential.updated_at,
        )


class CredentialDecrypted(CredentialRead):
    """Credential with its decrypted secret.

    SECURITY WARNING: Only used inside the process (resolver and token
    refresher). Never log, return over HTTP, or persist this schema.
    """

    secret: dict[str, Any] = Field(
        description="Decrypted secret payload (snake_case keys)",
    )
