"""User entity model.

Users are owned by the external identity provider; this table mirrors them
so credentials and workflow instances can be scoped by ``user_id``.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from src.models.credential import Credential
    from src.models.workflow import WorkflowInstance


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class UserBase(SQLModel):
    """Base user fields shared across models."""

    email: str | None = Field(
        default=None,
        max_length=255,
        index=True,
        description="Primary email address reported by the identity provider",
    )
    name: str | None = Field(
        default=None,
        max_length=255,
        description="Display name",
    )


class User(UserBase, table=True):
    """User database entity.

    All user data is scoped by user_id for multi-tenancy.
    """

    __tablename__ = "user"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique user identifier (UUID)",
    )
    external_id: str = Field(
        max_length=255,
        index=True,
        unique=True,
        description="Identity provider user ID (JWT 'sub')",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Account creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column_kwargs={"onupdate": utc_now},
        description="Last update timestamp (UTC)",
    )

    # Relationships
    credentials: list["Credential"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"passive_deletes": True},
    )
    workflows: list["WorkflowInstance"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"passive_deletes": True},
    )


class UserRead(UserBase):
    """Schema for reading user data."""

    id: str
    external_id: str
    created_at: datetime


class TokenPayload(SQLModel):
    """Identity provider JWT claims we rely on."""

    sub: str
    exp: datetime | None = None
    email: str | None = None


class IdentityUserData(SQLModel):
    """User object carried by identity provider webhooks."""

    id: str = Field(min_length=1)
    email: str | None = None
    name: str | None = None


class IdentityWebhookEvent(SQLModel):
    """Signed user lifecycle notification (user.created, user.updated, user.deleted)."""

    type: str
    data: IdentityUserData
