"""Tests for the workflow template catalog."""

import pytest

from src.models.secrets import CredentialProvider
from src.models.template import TemplatePricing, WorkflowTemplateRead
from src.services.template_catalog import (
    WORKFLOW_TEMPLATES,
    TemplateNotFoundError,
    WorkflowInputValidationError,
    get_template,
    get_template_by_event,
    list_templates,
    validate_workflow_input,
)
from src.workflows import WORKFLOW_HANDLERS


class TestCatalog:
    """Tests for template lookup."""

    def test_ids_and_events_are_unique(self):
        ids = [t.id for t in WORKFLOW_TEMPLATES]
        events = [t.event_name for t in WORKFLOW_TEMPLATES]

        assert len(ids) == len(set(ids))
        assert len(events) == len(set(events))

    def test_every_template_has_a_handler(self):
        assert {t.event_name for t in WORKFLOW_TEMPLATES} == set(WORKFLOW_HANDLERS)

    def test_get_template(self):
        template = get_template("daily-report")

        assert template.event_name == "workflow/report.requested"
        assert CredentialProvider.GOOGLE in template.required_providers

    def test_get_unknown_template(self):
        with pytest.raises(TemplateNotFoundError):
            get_template("nope")

    def test_lookup_by_event(self):
        assert get_template_by_event("workflow/scheduler.basic").id == "basic-scheduler"
        assert get_template_by_event("workflow/unknown") is None

    def test_filter_by_provider(self):
        slack = list_templates(provider=CredentialProvider.SLACK)

        assert [t.id for t in slack] == ["slack-integration-pro"]

    def test_filter_by_pricing(self):
        premium = {t.id for t in list_templates(pricing=TemplatePricing.PREMIUM)}

        assert premium == {"advanced-data-sync", "slack-integration-pro"}

    def test_read_model_exposes_json_schema(self):
        read = WorkflowTemplateRead.from_template(get_template("email-notification"))

        assert "recipientEmails" in read.input_schema["properties"]


class TestValidateWorkflowInput:
    """Tests for validate_workflow_input."""

    def test_normalizes_to_camel_case_with_defaults(self):
        data = validate_workflow_input(
            "email-notification",
            {"recipient_emails": ["a@example.com"], "subject": "Hi"},
        )

        assert data == {
            "recipientEmails": ["a@example.com"],
            "subject": "Hi",
            "template": "simple",
            "priority": "normal",
        }

    def test_reports_every_bad_field(self):
        with pytest.raises(WorkflowInputValidationError) as exc_info:
            validate_workflow_input(
                "advanced-data-sync",
                {"sourceSheetId": "", "syncColumns": []},
            )

        fields = {e.split(":")[0] for e in exc_info.value.errors}
        assert {"source_sheet_id", "target_sheet_id", "sync_columns"} <= fields

    def test_rejects_bad_email(self):
        with pytest.raises(WorkflowInputValidationError):
            validate_workflow_input(
                "daily-report",
                {"reportTitle": "R", "sheetName": "S", "emailRecipients": ["not-an-email"]},
            )

    def test_rejects_unknown_literal(self):
        with pytest.raises(WorkflowInputValidationError):
            validate_workflow_input(
                "email-notification",
                {"recipientEmails": ["a@example.com"], "subject": "Hi", "priority": "urgent"},
            )

    def test_unknown_template(self):
        with pytest.raises(TemplateNotFoundError):
            validate_workflow_input("nope", {})
