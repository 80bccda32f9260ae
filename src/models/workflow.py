"""Workflow instance model.

A workflow instance is a user's installed copy of a catalog template, with
its own input, credential links and (optionally) a recurring schedule.
JSON-valued columns are stored as Text.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from pydantic import field_validator
from sqlalchemy import UniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel, Text
import json

from src.models.secrets import CredentialProvider

if TYPE_CHECKING:
    from src.models.user import User


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def _parse_json(v: Any) -> Any:
    if isinstance(v, str):
        return json.loads(v)
    return v


class WorkflowBase(SQLModel):
    """Base workflow fields shared across models."""

    name: str = Field(
        max_length=255,
        min_length=1,
        description="Workflow name",
    )
    description: str | None = Field(
        default=None,
        max_length=2000,
        description="Workflow description",
    )


class WorkflowCredential(SQLModel, table=True):
    """Ordered link between a workflow instance and a credential.

    ``position`` fixes resolution order; the first credential of a provider
    wins when building clients.
    """

    __tablename__ = "workflow_credential"

    workflow_id: str = Field(
        foreign_key="workflow.id",
        ondelete="CASCADE",
        primary_key=True,
    )
    credential_id: str = Field(
        foreign_key="credential.id",
        ondelete="CASCADE",
        primary_key=True,
    )
    position: int = Field(default=0)


class WorkflowInstance(WorkflowBase, table=True):
    """Workflow instance database entity.

    ``enabled``/``is_active`` are only true while a schedule is running, which
    requires ``can_be_scheduled`` and exactly one cron expression.
    ``schedule_generation`` is the lease token carried by schedule runners.
    """

    __tablename__ = "workflow"
    __table_args__ = (
        UniqueConstraint("user_id", "template_id", name="uq_workflow_user_template"),
    )

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique workflow identifier (UUID)",
    )
    user_id: str = Field(
        foreign_key="user.id",
        ondelete="CASCADE",
        index=True,
        description="Owner user ID",
    )
    template_id: str = Field(
        max_length=100,
        description="Catalog template this instance was installed from",
    )
    event_name: str = Field(
        max_length=255,
        index=True,
        description="Business event that triggers the workflow",
    )
    enabled: bool = Field(default=False)
    is_active: bool = Field(default=False)
    can_be_scheduled: bool = Field(default=False)
    cron_expressions: str = Field(
        default="[]",
        sa_column=Column(Text, nullable=False),
        description="JSON list of cron expressions",
    )
    timezone: str = Field(default="UTC", max_length=64)
    input: str = Field(
        default="{}",
        sa_column=Column(Text, nullable=False),
        description="JSON workflow input",
    )
    required_providers: str = Field(
        default="[]",
        sa_column=Column(Text, nullable=False),
        description="JSON list of providers the template needs",
    )
    config: str = Field(
        default="{}",
        sa_column=Column(Text, nullable=False),
        description="JSON installation metadata",
    )
    schedule_generation: int = Field(default=0, ge=0)
    last_run_at: datetime | None = Field(default=None)
    next_run_at: datetime | None = Field(default=None)
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
    user: "User" = Relationship(back_populates="workflows")

    def get_cron_expressions(self) -> list[str]:
        return json.loads(self.cron_expressions)

    def set_cron_expressions(self, expressions: list[str]) -> None:
        self.cron_expressions = json.dumps(expressions)

    def get_input(self) -> dict[str, Any]:
        return json.loads(self.input)

    def set_input(self, value: dict[str, Any]) -> None:
        self.input = json.dumps(value)


class WorkflowInstall(SQLModel):
    """Schema for installing a template."""

    template_id: str = Field(min_length=1, max_length=100)
    name: str | None = Field(default=None, max_length=255)


class WorkflowUpdate(SQLModel):
    """Schema for updating a workflow instance.

    ``credential_ids`` replaces the credential links in the given order.
    """

    name: str | None = Field(default=None, max_length=255, min_length=1)
    description: str | None = Field(default=None, max_length=2000)
    enabled: bool | None = None
    input: dict[str, Any] | None = None
    credential_ids: list[str] | None = None


class WorkflowScheduleRequest(SQLModel):
    """Schema for starting a recurring schedule."""

    cron_expression: str | None = Field(
        default=None,
        description="Replaces the stored cron expressions when given",
    )
    timezone: str | None = Field(default=None, max_length=64)
    input: dict[str, Any] | None = None


class WorkflowRunRequest(SQLModel):
    """Schema for triggering a one-off run."""

    input: dict[str, Any] | None = None


class WorkflowRead(WorkflowBase):
    """Schema for reading workflow data."""

    id: str
    user_id: str
    template_id: str
    event_name: str
    enabled: bool
    is_active: bool
    can_be_scheduled: bool
    cron_expressions: list[str]
    timezone: str
    input: dict[str, Any]
    required_providers: list[CredentialProvider]
    credential_ids: list[str] = Field(default_factory=list)
    last_run_at: datetime | None
    next_run_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @field_validator("cron_expressions", "input", "required_providers", mode="before")
    @classmethod
    def parse_json_columns(cls, v: Any) -> Any:
        """Parse JSON text columns."""
        return _parse_json(v)
