"""Workflow template catalog endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from src.models.secrets import CredentialProvider
from src.models.template import TemplateCategory, TemplatePricing, WorkflowTemplateRead
from src.services.template_catalog import TemplateNotFoundError, get_template, list_templates

router = APIRouter()


@router.get("", response_model=list[WorkflowTemplateRead])
async def list_workflow_templates(
    provider: Annotated[CredentialProvider | None, Query()] = None,
    pricing: Annotated[TemplatePricing | None, Query()] = None,
    category: Annotated[TemplateCategory | None, Query()] = None,
    featured: Annotated[bool | None, Query()] = None,
) -> list[WorkflowTemplateRead]:
    """List catalog templates, optionally filtered."""
    return [
        WorkflowTemplateRead.from_template(t)
        for t in list_templates(
            provider=provider,
            pricing=pricing,
            category=category,
            featured=featured,
        )
    ]


@router.get("/{template_id}", response_model=WorkflowTemplateRead)
async def get_workflow_template(template_id: str) -> WorkflowTemplateRead:
    """Get a template with its input schema."""
    try:
        return WorkflowTemplateRead.from_template(get_template(template_id))
    except TemplateNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e
