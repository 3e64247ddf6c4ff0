"""Pydantic models for workflow templates and their loaded trees."""

from enum import Enum

from pydantic import BaseModel, Field

from unified_workflow.models.hierarchy import Stage


class TemplateType(str, Enum):
    """Kinds of workflow template."""

    STANDARD = "standard"
    FLOW_BASED = "flow_based"
    HYBRID = "hybrid"


class Template(BaseModel):
    """A reusable, versioned definition of a multi-stage process (row only)."""

    id: str
    name: str
    description: str | None = None
    template_type: str
    icon: str | None = None
    color: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    requires_products_services: bool = False
    auto_create_project: bool = True
    estimated_duration_minutes: int | None = None
    client_visible: bool = True
    client_description: str | None = None
    is_active: bool = True
    is_published: bool = False
    version: int = 1
    created_at: str
    updated_at: str
    created_by: str
    updated_by: str | None = None


class OmittedBatch(BaseModel):
    """A batch of steps whose elements could not be loaded."""

    step_ids: list[str]
    reason: str


class TemplateTree(Template):
    """A template with its full Stage -> Task -> Step -> Element hierarchy.

    ``omitted_batches`` lists element batches that failed to load, so callers
    can tell "no elements" apart from "elements not fetched".
    """

    stages: list[Stage] = Field(default_factory=list)
    omitted_batches: list[OmittedBatch] = Field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.omitted_batches)


class TemplateSummary(Template):
    """Template row plus its stage count, as returned by listings."""

    stage_count: int = 0


class TemplateCreate(BaseModel):
    """Request model for creating a template.

    ``template_type`` and ``color`` are validated by the template manager so
    that violations surface as workflow ``ValidationError``s.
    """

    name: str
    description: str | None = None
    template_type: str
    icon: str | None = None
    color: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    requires_products_services: bool = False
    auto_create_project: bool = True
    estimated_duration_minutes: int | None = None
    client_visible: bool = True
    client_description: str | None = None
    created_by: str
    create_default_structure: bool = False


class TemplateUpdate(BaseModel):
    """Partial update for a template."""

    name: str | None = None
    description: str | None = None
    icon: str | None = None
    color: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    requires_products_services: bool | None = None
    auto_create_project: bool | None = None
    estimated_duration_minutes: int | None = None
    client_visible: bool | None = None
    client_description: str | None = None
    is_active: bool | None = None
    is_published: bool | None = None
    updated_by: str
    # Optimistic concurrency token: when set, must match the stored version
    expected_version: int | None = None


class TemplateFilters(BaseModel):
    """Filters for listing templates."""

    template_type: str | list[str] | None = None
    is_active: bool | None = None
    is_published: bool | None = None
    created_by: str | None = None
    category: str | None = None
    tags: list[str] | None = None
