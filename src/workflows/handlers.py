"""Business workflow handlers.

One handler per template event. Handlers receive the resolved
ExecutionContext, the event payload and a StepRuntime; every external side
effect runs inside a named step so replays never repeat it.

Input problems and missing credentials raise non-retriable errors.
Provider outages surface as TransientProviderError and are retried.
"""

import csv
import io
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar

import structlog
from pydantic import ValidationError as PydanticValidationError

from src.core.errors import NotFoundError, ValidationError
from src.core.step_runtime import StepRuntime
from src.integrations.google import GmailClient, SheetsClient
from src.integrations.google.gmail import MailAttachment
from src.integrations.slack import SlackClient
from src.models.events import WorkflowEventData
from src.models.template import (
    BasicSchedulerInput,
    DailyReportInput,
    DataSyncInput,
    EmailNotificationInput,
    SlackNotificationInput,
    WorkflowInput,
)
from src.services.credential_resolver import ExecutionContext

logger = structlog.get_logger()

InputT = TypeVar("InputT", bound=WorkflowInput)
ClientT = TypeVar("ClientT")

WorkflowHandler = Callable[[ExecutionContext, WorkflowEventData, StepRuntime], Awaitable[dict[str, Any]]]


class MissingWorkflowInput(ValidationError):
    """Event input is missing or invalid for the workflow."""

    pass


class MissingCredentialError(ValidationError):
    """The workflow has no usable credential for a required provider."""

    pass


class SheetNotFoundError(NotFoundError):
    """No spreadsheet matched the configured name."""

    pass


def parse_input(schema: type[InputT], event: WorkflowEventData) -> InputT:
    """Parse the event input with a template input schema.

    Raises:
        MissingWorkflowInput: If input is absent or invalid
    """
    if not event.input:
        raise MissingWorkflowInput(f"{schema.__name__} is required", errors=["input: missing"])
    try:
        return schema.model_validate(event.input)
    except PydanticValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        raise MissingWorkflowInput(f"Invalid {schema.__name__}", errors=errors) from e


def require_client(client: ClientT | None, provider: str) -> ClientT:
    if client is None:
        raise MissingCredentialError(
            f"No {provider} credential is linked to this workflow",
            errors=[f"credentials: {provider} credential required"],
        )
    return client


def rows_to_csv(rows: list[list[Any]]) -> str:
    buffer = io.StringIO()
    csv.writer(buffer).writerows(rows)
    return buffer.getvalue()


def build_report_body(title: str, sheet_name: str, rows: list[list[Any]]) -> str:
    """Plain-text report: header, row count and a preview of the first rows."""
    header = rows[0] if rows else []
    data_rows = rows[1:] if rows else []
    lines = [
        title,
        "=" * len(title),
        "",
        f"Source sheet: {sheet_name}",
        f"Generated: {datetime.now(timezone.utc):%Y-%m-%d %H:%M} UTC",
        f"Rows: {len(data_rows)}",
    ]
    if header:
        lines.append(f"Columns: {', '.join(str(c) for c in header)}")
    if data_rows:
        lines.extend(["", "Preview:"])
        for row in data_rows[:10]:
            lines.append(" | ".join(str(c) for c in row))
    return "\n".join(lines)


async def daily_report(
    context: ExecutionContext,
    event: WorkflowEventData,
    step: StepRuntime,
) -> dict[str, Any]:
    """Read a sheet by name and email a report to the recipients."""
    data = parse_input(DailyReportInput, event)
    sheets: SheetsClient = require_client(context.sheets, "GOOGLE")
    gmail: GmailClient = require_client(context.gmail, "GOOGLE")

    async def find_sheet() -> dict[str, Any] | None:
        return await sheets.find_sheet_by_name(data.sheet_name)

    sheet = await step.run("find-sheet", find_sheet)
    if sheet is None:
        raise SheetNotFoundError(f"Spreadsheet '{data.sheet_name}' not found")

    async def read_sheet() -> list[list[Any]]:
        return await sheets.get_values(sheet["id"], "A:Z")

    rows = await step.run("read-sheet", read_sheet)

    # PDF and XLSX rendering are not supported; every format ships the data as CSV.
    attachment = MailAttachment(
        filename=f"{data.report_title}.csv",
        content=rows_to_csv(rows).encode("utf-8"),
        mime_type="text/csv",
    )

    async def send_report() -> str:
        return await gmail.send_mail(
            to=[str(r) for r in data.email_recipients],
            subject=data.report_title,
            body=build_report_body(data.report_title, data.sheet_name, rows),
            attachments=[attachment],
        )

    message_id = await step.run("send-report-email", send_report)

    return {
        "sheetId": sheet["id"],
        "rows": max(len(rows) - 1, 0),
        "messageId": message_id,
        "scheduledRun": event.scheduled_run,
    }


def build_notification_body(
    data: EmailNotificationInput,
    workflow_name: str | None,
    scheduled_run: bool,
) -> str:
    if data.template == "custom":
        if not data.body:
            raise MissingWorkflowInput(
                "Custom email template requires a body",
                errors=["body: required when template is 'custom'"],
            )
        return data.body

    intro = data.body or f"This is a notification from {workflow_name or 'your workflow'}."
    if data.template == "simple":
        return intro

    return "\n".join([
        intro,
        "",
        f"Priority: {data.priority}",
        f"Trigger: {'schedule' if scheduled_run else 'manual'}",
        f"Sent at: {datetime.now(timezone.utc).isoformat()}",
    ])


async def email_notification(
    context: ExecutionContext,
    event: WorkflowEventData,
    step: StepRuntime,
) -> dict[str, Any]:
    """Send a templated notification email."""
    data = parse_input(EmailNotificationInput, event)
    gmail: GmailClient = require_client(context.gmail, "GOOGLE")
    body = build_notification_body(data, context.workflow_name, event.scheduled_run)
    subject = f"[{data.priority.upper()}] {data.subject}" if data.priority == "high" else data.subject

    async def send_notification() -> str:
        return await gmail.send_mail(
            to=[str(r) for r in data.recipient_emails],
            subject=subject,
            body=body,
        )

    message_id = await step.run("send-notification-email", send_notification)
    return {"messageId": message_id, "recipients": len(data.recipient_emails)}


def select_columns(rows: list[list[Any]], columns: list[str]) -> list[list[Any]]:
    """Project rows onto named columns using the first row as header.

    Raises:
        MissingWorkflowInput: If a column is not in the header
    """
    if not rows:
        return []
    header = [str(c) for c in rows[0]]
    missing = [c for c in columns if c not in header]
    if missing:
        raise MissingWorkflowInput(
            f"Columns not found in source sheet: {', '.join(missing)}",
            errors=[f"syncColumns: '{c}' not in header" for c in missing],
        )
    indexes = [header.index(c) for c in columns]
    return [
        [row[i] if i < len(row) else "" for i in indexes]
        for row in rows
    ]


async def data_sync(
    context: ExecutionContext,
    event: WorkflowEventData,
    step: StepRuntime,
) -> dict[str, Any]:
    """Copy selected columns from a source sheet into a target sheet."""
    data = parse_input(DataSyncInput, event)
    sheets: SheetsClient = require_client(context.sheets, "GOOGLE")

    async def read_source() -> list[list[Any]]:
        return await sheets.get_values(data.source_sheet_id, data.source_range)

    rows = select_columns(await step.run("read-source", read_source), data.sync_columns)

    async def write_target() -> int:
        if data.overwrite_existing:
            return await sheets.update_values(data.target_sheet_id, "A1", rows)
        return await sheets.append_values(data.target_sheet_id, "A1", rows[1:])

    updated_cells = await step.run("write-target", write_target) if rows else 0
    return {
        "syncedRows": max(len(rows) - 1, 0),
        "updatedCells": updated_cells,
        "overwrite": data.overwrite_existing,
    }


def build_slack_text(data: SlackNotificationInput) -> str:
    if data.include_mentions and data.mention_users:
        mentions = " ".join(f"<@{user}>" for user in data.mention_users)
        return f"{mentions} {data.message}"
    return data.message


async def slack_notification(
    context: ExecutionContext,
    event: WorkflowEventData,
    step: StepRuntime,
) -> dict[str, Any]:
    """Post a message to a Slack channel."""
    data = parse_input(SlackNotificationInput, event)
    slack: SlackClient = require_client(context.slack, "SLACK")

    async def post_message() -> str:
        return await slack.post_message(data.channel_id, build_slack_text(data))

    ts = await step.run("post-slack-message", post_message)
    return {"channel": data.channel_id, "ts": ts}


async def basic_scheduler(
    context: ExecutionContext,
    event: WorkflowEventData,
    step: StepRuntime,
) -> dict[str, Any]:
    """Record that a scheduled task ran."""
    data = parse_input(BasicSchedulerInput, event)

    async def run_task() -> dict[str, Any]:
        executed_at = datetime.now(timezone.utc).isoformat()
        logger.info(
            "scheduled_task_executed",
            task_name=data.task_name,
            workflow_id=event.workflow_id,
            user_id=event.owner_user_id,
            scheduled_run=event.scheduled_run,
        )
        return {"taskName": data.task_name, "executedAt": executed_at}

    return await step.run("run-task", run_task)


WORKFLOW_HANDLERS: dict[str, WorkflowHandler] = {
    "workflow/report.requested": daily_report,
    "workflow/email.notification": email_notification,
    "workflow/data.sync.advanced": data_sync,
    "workflow/slack.integration.pro": slack_notification,
    "workflow/scheduler.basic": basic_scheduler,
}
