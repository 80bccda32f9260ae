"""Workflow template models.

Templates are static catalog entries. Each one names the business event it
triggers and the pydantic model its input must satisfy.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from src.models.secrets import CredentialProvider


class TemplatePricing(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


class TemplateCategory(str, Enum):
    PRODUCTIVITY = "productivity"
    COMMUNICATION = "communication"
    DATA = "data"
    AUTOMATION = "automation"


class WorkflowInput(BaseModel):
    """Base for template input schemas."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        loc_by_alias=False,
    )


class DailyReportInput(WorkflowInput):
    report_title: str = Field(min_length=1)
    sheet_name: str = Field(min_length=1)
    email_recipients: list[EmailStr] = Field(min_length=1)
    report_format: Literal["PDF", "CSV", "XLSX"] = "PDF"
    include_charts: bool = True


class EmailNotificationInput(WorkflowInput):
    recipient_emails: list[EmailStr] = Field(min_length=1)
    subject: str = Field(min_length=1)
    template: Literal["simple", "detailed", "custom"] = "simple"
    priority: Literal["low", "normal", "high"] = "normal"
    body: str | None = None


class DataSyncInput(WorkflowInput):
    source_sheet_id: str = Field(min_length=1)
    target_sheet_id: str = Field(min_length=1)
    sync_columns: list[str] = Field(min_length=1)
    overwrite_existing: bool = False
    source_range: str = "A:Z"


class SlackNotificationInput(WorkflowInput):
    channel_id: str = Field(min_length=1)
    message: str = Field(min_length=1)
    include_mentions: bool = False
    mention_users: list[str] | None = None


class BasicSchedulerInput(WorkflowInput):
    task_name: str = Field(min_length=1)
    description: str | None = None


class WorkflowTemplate(BaseModel):
    """Catalog entry."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    event_name: str
    can_be_scheduled: bool
    required_providers: tuple[CredentialProvider, ...] = ()
    required_scopes: tuple[str, ...] = ()
    input_schema: type[WorkflowInput]
    pricing: TemplatePricing = TemplatePricing.FREE
    category: TemplateCategory
    tags: tuple[str, ...] = ()
    featured: bool = False
    author: str = "Flowdeck"
    version: str = "1.0.0"


class WorkflowTemplateRead(BaseModel):
    """Public view of a template, with its input JSON schema."""

    id: str
    name: str
    description: str
    event_name: str
    can_be_scheduled: bool
    required_providers: list[CredentialProvider]
    required_scopes: list[str]
    input_schema: dict[str, Any]
    pricing: TemplatePricing
    category: TemplateCategory
    tags: list[str]
    featured: bool
    author: str
    version: str

    @classmethod
    def from_template(cls, template: WorkflowTemplate) -> "WorkflowTemplateRead":
        return cls(
            id=template.id,
            name=template.name,
            description=template.description,
            event_name=template.event_name,
            can_be_scheduled=template.can_be_scheduled,
            required_providers=list(template.required_providers),
            required_scopes=list(template.required_scopes),
            input_schema=template.input_schema.model_json_schema(by_alias=True),
            pricing=template.pricing,
            category=template.category,
            tags=list(template.tags),
            featured=template.featured,
            author=template.author,
            version=template.version,
        )
