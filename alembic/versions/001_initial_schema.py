"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

credential_kind = sa.Enum("OAUTH", "API_KEY", name="credentialkind")
credential_provider = sa.Enum(
    "GOOGLE", "SLACK", "HUBSPOT", "FIRECRAWL", "CUSTOM", name="credentialprovider"
)


def upgrade() -> None:
    # Users mirrored from the identity provider
    op.create_table(
        "user",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_external_id"), "user", ["external_id"], unique=True)
    op.create_index(op.f("ix_user_email"), "user", ["email"], unique=False)

    # Encrypted credentials
    op.create_table(
        "credential",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("kind", credential_kind, nullable=False),
        sa.Column("provider", credential_provider, nullable=False),
        sa.Column("encrypted_secret", sa.Text(), nullable=False),
        sa.Column("config", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_credential_user_id"), "credential", ["user_id"], unique=False)
    op.create_index(op.f("ix_credential_provider"), "credential", ["provider"], unique=False)

    # Installed workflow instances
    op.create_table(
        "workflow",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("template_id", sa.String(length=100), nullable=False),
        sa.Column("event_name", sa.String(length=255), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("can_be_scheduled", sa.Boolean(), nullable=False),
        sa.Column("cron_expressions", sa.Text(), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("input", sa.Text(), nullable=False),
        sa.Column("required_providers", sa.Text(), nullable=False),
        sa.Column("config", sa.Text(), nullable=False),
        sa.Column("schedule_generation", sa.Integer(), nullable=False),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "template_id", name="uq_workflow_user_template"),
    )
    op.create_index(op.f("ix_workflow_user_id"), "workflow", ["user_id"], unique=False)
    op.create_index(op.f("ix_workflow_event_name"), "workflow", ["event_name"], unique=False)

    # Ordered workflow -> credential links
    op.create_table(
        "workflow_credential",
        sa.Column("workflow_id", sa.String(), nullable=False),
        sa.Column("credential_id", sa.String(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["credential_id"], ["credential.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("workflow_id", "credential_id"),
    )


def downgrade() -> None:
    op.drop_table("workflow_credential")

    op.drop_index(op.f("ix_workflow_event_name"), table_name="workflow")
    op.drop_index(op.f("ix_workflow_user_id"), table_name="workflow")
    op.drop_table("workflow")

    op.drop_index(op.f("ix_credential_provider"), table_name="credential")
    op.drop_index(op.f("ix_credential_user_id"), table_name="credential")
    op.drop_table("credential")

    op.drop_index(op.f("ix_user_email"), table_name="user")
    op.drop_index(op.f("ix_user_external_id"), table_name="user")
    op.drop_table("user")

    credential_provider.drop(op.get_bind(), checkfirst=True)
    credential_kind.drop(op.get_bind(), checkfirst=True)
