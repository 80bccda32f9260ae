"""Workflow API endpoints.

Handles template installs, workflow instance CRUD, schedules and one-off
runs.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, HTTPException, Query, status

from src.api.deps import CurrentUser, WorkflowServiceDep
from src.core.errors import ConflictError, NotFoundError, ValidationError
from src.models.workflow import (
    WorkflowInstall,
    WorkflowRead,
    WorkflowRunRequest,
    WorkflowScheduleRequest,
    WorkflowUpdate,
)

logger = structlog.get_logger()

router = APIRouter()


def _not_found(e: NotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _invalid(e: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"message": str(e), "errors": e.errors},
    )


@router.get("", response_model=list[WorkflowRead])
async def list_workflows(
    user: CurrentUser,
    service: WorkflowServiceDep,
    enabled: Annotated[bool | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[WorkflowRead]:
    """List user's workflow instances.

    Args:
        user: Current authenticated user
        service: Workflow service
        enabled: Filter by enabled flag
        limit: Maximum number of results
        offset: Pagination offset

    Returns:
        List of workflows
    """
    return await service.list_all(
        user_id=user.id,
        enabled=enabled,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=WorkflowRead, status_code=status.HTTP_201_CREATED)
async def install_workflow(
    user: CurrentUser,
    service: WorkflowServiceDep,
    data: WorkflowInstall,
) -> WorkflowRead:
    """Install a template as a new workflow instance.

    Raises:
        HTTPException 404: Unknown template
        HTTPException 409: Template already installed
    """
    try:
        return await service.install(
            user_id=user.id,
            template_id=data.template_id,
            name=data.name,
        )
    except NotFoundError as e:
        raise _not_found(e) from e
    except ConflictError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        ) from e


@router.get("/{workflow_id}", response_model=WorkflowRead)
async def get_workflow(
    workflow_id: str,
    user: CurrentUser,
    service: WorkflowServiceDep,
) -> WorkflowRead:
    """Get a workflow instance."""
    try:
        return await service.get(user_id=user.id, workflow_id=workflow_id)
    except NotFoundError as e:
        raise _not_found(e) from e


@router.put("/{workflow_id}", response_model=WorkflowRead)
async def update_workflow(
    workflow_id: str,
    user: CurrentUser,
    service: WorkflowServiceDep,
    data: WorkflowUpdate,
) -> WorkflowRead:
    """Update name, description, enabled flag, input or credential links.

    Disabling an active workflow also stops its schedule.
    """
    try:
        return await service.update(user_id=user.id, workflow_id=workflow_id, data=data)
    except NotFoundError as e:
        raise _not_found(e) from e
    except ValidationError as e:
        raise _invalid(e) from e


@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workflow(
    workflow_id: str,
    user: CurrentUser,
    service: WorkflowServiceDep,
) -> None:
    """Delete a workflow instance, stopping its schedule first."""
    try:
        await service.delete(user_id=user.id, workflow_id=workflow_id)
    except NotFoundError as e:
        raise _not_found(e) from e


@router.post("/{workflow_id}/schedule", response_model=WorkflowRead)
async def schedule_workflow(
    workflow_id: str,
    user: CurrentUser,
    service: WorkflowServiceDep,
    data: WorkflowScheduleRequest,
) -> WorkflowRead:
    """Start or restart the workflow's recurring schedule.

    Nothing changes when the schedule or input is invalid.
    """
    try:
        return await service.set_schedule(
            user_id=user.id,
            workflow_id=workflow_id,
            cron_expression=data.cron_expression,
            timezone=data.timezone,
            input=data.input,
        )
    except NotFoundError as e:
        raise _not_found(e) from e
    except ValidationError as e:
        raise _invalid(e) from e


@router.delete("/{workflow_id}/schedule", response_model=WorkflowRead)
async def stop_workflow_schedule(
    workflow_id: str,
    user: CurrentUser,
    service: WorkflowServiceDep,
) -> WorkflowRead:
    """Stop the workflow's recurring schedule."""
    try:
        return await service.stop_schedule(user_id=user.id, workflow_id=workflow_id)
    except NotFoundError as e:
        raise _not_found(e) from e


@router.post(
    "/{workflow_id}/run",
    response_model=WorkflowRead,
    status_code=status.HTTP_202_ACCEPTED,
)
async def run_workflow(
    workflow_id: str,
    user: CurrentUser,
    service: WorkflowServiceDep,
    data: WorkflowRunRequest | None = None,
) -> WorkflowRead:
    """Trigger a single unscheduled run."""
    try:
        return await service.run_once(
            user_id=user.id,
            workflow_id=workflow_id,
            input=data.input if data is not None else None,
        )
    except NotFoundError as e:
        raise _not_found(e) from e
    except ValidationError as e:
        raise _invalid(e) from e
