"""Template API routes."""

from typing import Annotated

from fastapi import APIRouter, Query

from unified_workflow.api.deps import Actor, Service
from unified_workflow.errors import NotFoundError
from unified_workflow.models import (
    Template,
    TemplateAnalytics,
    TemplateCreate,
    TemplateFilters,
    TemplateSummary,
    TemplateTree,
    TemplateUpdate,
)

router = APIRouter()


@router.get("/templates")
async def list_templates(
    service: Service,
    template_type: Annotated[list[str] | None, Query()] = None,
    is_active: bool | None = None,
    is_published: bool | None = None,
    created_by: str | None = None,
    category: str | None = None,
    tags: Annotated[list[str] | None, Query()] = None,
) -> list[TemplateSummary]:
    """List templates, most recently updated first."""
    if template_type and len(template_type) == 1:
        template_type = template_type[0]
    filters = TemplateFilters(
        template_type=template_type or None,
        is_active=is_active,
        is_published=is_published,
        created_by=created_by,
        category=category,
        tags=tags or None,
    )
    return await service.templates.list_templates(filters)


@router.post("/templates", status_code=201)
async def create_template(request: TemplateCreate, service: Service) -> Template:
    """Create a template."""
    return await service.templates.create_template(request)


@router.get("/templates/{template_id}")
async def get_template(template_id: str, service: Service) -> TemplateTree:
    """Get a template with its full hierarchy."""
    tree = await service.templates.get_template(template_id)
    if tree is None:
        raise NotFoundError("Template", template_id)
    return tree


@router.patch("/templates/{template_id}")
async def update_template(
    template_id: str, request: TemplateUpdate, service: Service
) -> Template:
    """Partially update a template."""
    return await service.templates.update_template(template_id, request)


@router.delete("/templates/{template_id}")
async def delete_template(
    template_id: str, service: Service, actor: Actor
) -> dict[str, bool]:
    """Soft-delete a template."""
    await service.templates.delete_template(template_id, actor)
    return {"deleted": True}


@router.get("/templates/{template_id}/analytics")
async def get_template_analytics(template_id: str, service: Service) -> TemplateAnalytics:
    """Completion statistics and trailing monthly usage."""
    if await service.templates.get_template_row(template_id) is None:
        raise NotFoundError("Template", template_id)
    return await service.analytics.template_analytics(template_id)
