"""Workflow template catalog.

Static reference data: the automations a user can install, the event each
one triggers and the input it expects.
"""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.core.errors import NotFoundError, ValidationError
from src.models.secrets import CredentialProvider
from src.models.template import (
    BasicSchedulerInput,
    DailyReportInput,
    DataSyncInput,
    EmailNotificationInput,
    SlackNotificationInput,
    TemplateCategory,
    TemplatePricing,
    WorkflowTemplate,
)


class TemplateNotFoundError(NotFoundError):
    """Template ID is not in the catalog."""

    pass


class WorkflowInputValidationError(ValidationError):
    """Workflow input does not satisfy the template's schema."""

    pass


GOOGLE_SHEETS_READONLY = "https://www.googleapis.com/auth/spreadsheets.readonly"
GOOGLE_SHEETS = "https://www.googleapis.com/auth/spreadsheets"
GOOGLE_DRIVE_READONLY = "https://www.googleapis.com/auth/drive.readonly"
GOOGLE_GMAIL_SEND = "https://www.googleapis.com/auth/gmail.send"

WORKFLOW_TEMPLATES: tuple[WorkflowTemplate, ...] = (
    WorkflowTemplate(
        id="daily-report",
        name="Daily Report Generator",
        description="Builds a report from a Google Sheet and emails it to a list of recipients.",
        event_name="workflow/report.requested",
        can_be_scheduled=True,
        required_providers=(CredentialProvider.GOOGLE,),
        required_scopes=(GOOGLE_SHEETS_READONLY, GOOGLE_DRIVE_READONLY, GOOGLE_GMAIL_SEND),
        input_schema=DailyReportInput,
        category=TemplateCategory.PRODUCTIVITY,
        tags=("reports", "google-sheets", "email"),
        featured=True,
    ),
    WorkflowTemplate(
        id="email-notification",
        name="Email Notification",
        description="Sends templated email notifications through Gmail.",
        event_name="workflow/email.notification",
        can_be_scheduled=True,
        required_providers=(CredentialProvider.GOOGLE,),
        required_scopes=(GOOGLE_GMAIL_SEND,),
        input_schema=EmailNotificationInput,
        category=TemplateCategory.COMMUNICATION,
        tags=("email", "notifications"),
    ),
    WorkflowTemplate(
        id="advanced-data-sync",
        name="Advanced Data Sync",
        description="Copies selected columns from one Google Sheet to another.",
        event_name="workflow/data.sync.advanced",
        can_be_scheduled=True,
        required_providers=(CredentialProvider.GOOGLE,),
        required_scopes=(GOOGLE_SHEETS,),
        input_schema=DataSyncInput,
        pricing=TemplatePricing.PREMIUM,
        category=TemplateCategory.DATA,
        tags=("sync", "google-sheets"),
    ),
    WorkflowTemplate(
        id="slack-integration-pro",
        name="Slack Integration Pro",
        description="Posts messages to a Slack channel, optionally mentioning users.",
        event_name="workflow/slack.integration.pro",
        can_be_scheduled=True,
        required_providers=(CredentialProvider.SLACK, CredentialProvider.GOOGLE),
        required_scopes=("chat:write",),
        input_schema=SlackNotificationInput,
        pricing=TemplatePricing.PREMIUM,
        category=TemplateCategory.COMMUNICATION,
        tags=("slack", "notifications"),
        featured=True,
    ),
    WorkflowTemplate(
        id="basic-scheduler",
        name="Basic Scheduler",
        description="Runs a named task on a recurring schedule.",
        event_name="workflow/scheduler.basic",
        can_be_scheduled=True,
        input_schema=BasicSchedulerInput,
        category=TemplateCategory.AUTOMATION,
        tags=("scheduler",),
    ),
)

_TEMPLATES_BY_ID = {template.id: template for template in WORKFLOW_TEMPLATES}
_TEMPLATES_BY_EVENT = {template.event_name: template for template in WORKFLOW_TEMPLATES}


def get_template(template_id: str) -> WorkflowTemplate:
    """Get a template by ID.

    Raises:
        TemplateNotFoundError: If the ID is unknown
    """
    template = _TEMPLATES_BY_ID.get(template_id)
    if template is None:
        raise TemplateNotFoundError(f"Workflow template '{template_id}' not found")
    return template


def get_template_by_event(event_name: str) -> WorkflowTemplate | None:
    return _TEMPLATES_BY_EVENT.get(event_name)


def list_templates(
    provider: CredentialProvider | None = None,
    pricing: TemplatePricing | None = None,
    category: TemplateCategory | None = None,
    featured: bool | None = None,
) -> list[WorkflowTemplate]:
    """List catalog templates, optionally filtered."""
    templates = list(WORKFLOW_TEMPLATES)
    if provider is not None:
        templates = [t for t in templates if provider in t.required_providers]
    if pricing is not None:
        templates = [t for t in templates if t.pricing == pricing]
    if category is not None:
        templates = [t for t in templates if t.category == category]
    if featured is not None:
        templates = [t for t in templates if t.featured == featured]
    return templates


def validate_workflow_input(template_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Validate workflow input against a template's schema.

    Args:
        template_id: Catalog template ID
        data: Raw input (camelCase or snake_case keys)

    Returns:
        Normalized input with camelCase keys, as carried in events

    Raises:
        TemplateNotFoundError: If the template is unknown
        WorkflowInputValidationError: If the input is invalid
    """
    template = get_template(template_id)
    try:
        parsed = template.input_schema.model_validate(data)
    except PydanticValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in error['loc']) or 'input'}: {error['msg']}"
            for error in e.errors()
        ]
        raise WorkflowInputValidationError(
            f"Invalid input for template '{template_id}'",
            errors=errors,
        ) from e
    return parsed.model_dump(mode="json", by_alias=True, exclude_none=True)
