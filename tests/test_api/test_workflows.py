"""Tests for workflow API endpoints."""

from datetime import timedelta

from httpx import AsyncClient

from src.models.events import SCHEDULE_START_EVENT, SCHEDULE_STOP_EVENT
from src.models.user import User
from tests.fakes import RecordingPublisher, make_token

REPORT_INPUT = {
    "reportTitle": "Daily Sales",
    "sheetName": "Sales",
    "emailRecipients": ["ops@example.com"],
}


async def install(client: AsyncClient, headers: dict[str, str], template_id: str = "daily-report") -> dict:
    response = await client.post(
        "/api/v1/workflows",
        json={"template_id": template_id},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


class TestAuthentication:
    """Tests for bearer token handling."""

    async def test_missing_token(self, client: AsyncClient):
        response = await client.get("/api/v1/workflows")

        assert response.status_code == 401

    async def test_invalid_token(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/workflows",
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 401

    async def test_expired_token(self, client: AsyncClient, test_user: User):
        token = make_token(test_user.external_id, expires_in=timedelta(seconds=-60))

        response = await client.get(
            "/api/v1/workflows",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 401

    async def test_unknown_subject(self, client: AsyncClient):
        """A valid token for a user the webhook never mirrored is rejected."""
        response = await client.get(
            "/api/v1/workflows",
            headers={"Authorization": f"Bearer {make_token('idp_unknown')}"},
        )

        assert response.status_code == 401


class TestWorkflowEndpoints:
    """Tests for workflow CRUD endpoints."""

    async def test_list_workflows_empty(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
    ):
        response = await client.get("/api/v1/workflows", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == []

    async def test_install_and_list(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
    ):
        workflow = await install(client, auth_headers)

        response = await client.get("/api/v1/workflows", headers=auth_headers)

        assert response.status_code == 200
        workflows = response.json()
        assert [w["id"] for w in workflows] == [workflow["id"]]
        assert workflows[0]["event_name"] == "workflow/report.requested"

    async def test_install_twice_conflicts(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
    ):
        await install(client, auth_headers)

        response = await client.post(
            "/api/v1/workflows",
            json={"template_id": "daily-report"},
            headers=auth_headers,
        )

        assert response.status_code == 409

    async def test_install_unknown_template(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
    ):
        response = await client.post(
            "/api/v1/workflows",
            json={"template_id": "nope"},
            headers=auth_headers,
        )

        assert response.status_code == 404

    async def test_get_workflow_not_found(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
    ):
        response = await client.get("/api/v1/workflows/nonexistent-id", headers=auth_headers)

        assert response.status_code == 404

    async def test_update_input(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
    ):
        workflow = await install(client, auth_headers)

        response = await client.put(
            f"/api/v1/workflows/{workflow['id']}",
            json={"name": "Morning report", "input": REPORT_INPUT},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Morning report"
        assert response.json()["input"]["sheetName"] == "Sales"

    async def test_update_invalid_input(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
    ):
        workflow = await install(client, auth_headers)

        response = await client.put(
            f"/api/v1/workflows/{workflow['id']}",
            json={"input": {"reportTitle": "Only a title"}},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"]["errors"]

    async def test_delete_workflow(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
    ):
        workflow = await install(client, auth_headers)

        response = await client.delete(f"/api/v1/workflows/{workflow['id']}", headers=auth_headers)

        assert response.status_code == 204
        get_response = await client.get(f"/api/v1/workflows/{workflow['id']}", headers=auth_headers)
        assert get_response.status_code == 404

    async def test_other_users_workflow_hidden(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
        other_user: User,
    ):
        workflow = await install(client, auth_headers)
        other_headers = {"Authorization": f"Bearer {make_token(other_user.external_id)}"}

        response = await client.get(f"/api/v1/workflows/{workflow['id']}", headers=other_headers)

        assert response.status_code == 404


class TestScheduleEndpoints:
    """Tests for schedule and run endpoints."""

    async def test_schedule_workflow(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
        publisher: RecordingPublisher,
    ):
        workflow = await install(client, auth_headers)

        response = await client.post(
            f"/api/v1/workflows/{workflow['id']}/schedule",
            json={"cron_expression": "0 9 * * *", "timezone": "America/New_York", "input": REPORT_INPUT},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["is_active"] is True
        assert publisher.names() == [SCHEDULE_START_EVENT]

    async def test_schedule_invalid_cron(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
        publisher: RecordingPublisher,
    ):
        workflow = await install(client, auth_headers)

        response = await client.post(
            f"/api/v1/workflows/{workflow['id']}/schedule",
            json={"cron_expression": "every morning", "input": REPORT_INPUT},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert publisher.events == []
        get_response = await client.get(f"/api/v1/workflows/{workflow['id']}", headers=auth_headers)
        assert get_response.json()["is_active"] is False

    async def test_stop_schedule(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
        publisher: RecordingPublisher,
    ):
        workflow = await install(client, auth_headers)
        await client.post(
            f"/api/v1/workflows/{workflow['id']}/schedule",
            json={"cron_expression": "0 9 * * *", "input": REPORT_INPUT},
            headers=auth_headers,
        )

        response = await client.delete(
            f"/api/v1/workflows/{workflow['id']}/schedule",
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert publisher.names() == [SCHEDULE_START_EVENT, SCHEDULE_STOP_EVENT]

    async def test_run_once(
        self,
        client: AsyncClient,
        auth_headers: dict[str, str],
        publisher: RecordingPublisher,
    ):
        workflow = await install(client, auth_headers, "basic-scheduler")

        response = await client.post(
            f"/api/v1/workflows/{workflow['id']}/run",
            json={"input": {"taskName": "cleanup"}},
            headers=auth_headers,
        )

        assert response.status_code == 202
        assert publisher.names() == ["workflow/scheduler.basic"]
        assert publisher.events[0].data["scheduledRun"] is False


class TestTemplateEndpoints:
    """Tests for the template catalog endpoints."""

    async def test_list_templates(self, client: AsyncClient, auth_headers: dict[str, str]):
        response = await client.get("/api/v1/templates", headers=auth_headers)

        assert response.status_code == 200
        assert len(response.json()) == 5

    async def test_get_template(self, client: AsyncClient, auth_headers: dict[str, str]):
        response = await client.get("/api/v1/templates/daily-report", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["event_name"] == "workflow/report.requested"

    async def test_get_unknown_template(self, client: AsyncClient, auth_headers: dict[str, str]):
        response = await client.get("/api/v1/templates/nope", headers=auth_headers)

        assert response.status_code == 404
