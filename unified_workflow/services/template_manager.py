"""Template lifecycle: create, update, soft delete, fetch and list."""

import logging
import re
from typing import Any

from unified_workflow.db.repository import (
    Collection,
    EntityRepository,
    generate_id,
    now_iso,
)
from unified_workflow.errors import ConflictError, NotFoundError, ValidationError
from unified_workflow.models.hierarchy import StageCreate, StepCreate, TaskCreate
from unified_workflow.models.template import (
    Template,
    TemplateCreate,
    TemplateFilters,
    TemplateSummary,
    TemplateTree,
    TemplateType,
    TemplateUpdate,
)
from unified_workflow.services.hierarchy_loader import HierarchyLoader
from unified_workflow.services.hierarchy_managers import (
    StageManager,
    StepManager,
    TaskManager,
    ensure_no_active_instances,
)
from unified_workflow.services.locks import KeyedLocks, template_lock_key
from unified_workflow.services.permissions import Action, PermissionGuard

logger = logging.getLogger(__name__)

HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")

# Fields TemplateUpdate carries that are not template columns
_UPDATE_CONTROL_FIELDS = frozenset({"updated_by", "expected_version"})


def validate_color(color: str | None) -> None:
    if color and not HEX_COLOR.match(color):
        raise ValidationError(
            "Invalid color format. Use hex format (#RRGGBB)", {"color": color}
        )


class TemplateManager:
    """Creates, updates, soft-deletes and lists templates."""

    def __init__(
        self,
        repository: EntityRepository,
        guard: PermissionGuard,
        loader: HierarchyLoader,
        locks: KeyedLocks,
        stages: StageManager,
        tasks: TaskManager,
        steps: StepManager,
    ) -> None:
        self._repo = repository
        self._guard = guard
        self._loader = loader
        self._locks = locks
        self._stages = stages
        self._tasks = tasks
        self._steps = steps

    # =========================================================================
    # Create
    # =========================================================================

    async def create_template(self, request: TemplateCreate) -> Template:
        """Create a template, optionally with the default flow structure.

        Raises:
            ValidationError: On an empty name, unknown type, bad color or missing creator.
        """
        name = request.name.strip()
        if not name:
            raise ValidationError("Template name is required")
        if not request.created_by:
            raise ValidationError("Created by user is required")
        if request.template_type not in {t.value for t in TemplateType}:
            raise ValidationError(
                "Invalid template type", {"template_type": request.template_type}
            )
        validate_color(request.color)

        data = request.model_dump(exclude={"create_default_structure"})
        now = now_iso()
        row = {
            **data,
            "id": generate_id(),
            "name": name,
            "is_active": True,
            "is_published": False,
            "version": 1,
            "created_at": now,
            "updated_at": now,
            "updated_by": request.created_by,
        }
        stored = await self._repo.insert(Collection.TEMPLATES, row)

        if (
            request.template_type == TemplateType.FLOW_BASED.value
            and request.create_default_structure
        ):
            await self._create_default_flow_structure(stored["id"], request.created_by)
            # Structure creation touched the template
            stored = await self._repo.get(Collection.TEMPLATES, stored["id"]) or stored

        logger.info(f"Template {stored['id']} created by user {request.created_by}")
        return Template.model_validate(stored)

    async def _create_default_flow_structure(self, template_id: str, actor: str) -> None:
        stage = await self._stages.create(
            template_id,
            StageCreate(
                name="Flow Execution",
                description="Main execution stage for this flow",
                created_by=actor,
            ),
        )
        task = await self._tasks.create(
            stage.id,
            TaskCreate(
                name="Flow Steps",
                description="Container task for flow steps",
                client_visible=True,
                created_by=actor,
            ),
        )
        await self._steps.create(
            task.id,
            StepCreate(
                name="Welcome",
                description="Welcome step for the flow",
                created_by=actor,
            ),
        )

    # =========================================================================
    # Update / delete
    # =========================================================================

    def _update_changes(self, request: TemplateUpdate) -> dict[str, Any]:
        changes = request.model_dump(
            exclude_unset=True, exclude=set(_UPDATE_CONTROL_FIELDS)
        )
        for key, value in changes.items():
            if value is None:
                field = Template.model_fields[key]
                if field.is_required() or field.default is not None or field.default_factory:
                    raise ValidationError(
                        f"Template field '{key}' cannot be null", {"field": key}
                    )

        if "name" in changes:
            name = changes["name"].strip()
            if not name:
                raise ValidationError("Template name cannot be empty")
            changes["name"] = name
        if "color" in changes:
            validate_color(changes["color"])
        return changes

    async def update_template(self, template_id: str, request: TemplateUpdate) -> Template:
        """Apply a partial update and bump the template version.

        Raises:
            NotFoundError: If the template does not exist.
            AuthorizationError: If ``updated_by`` may not update it.
            ValidationError: On an empty name or bad color.
            ConflictError: If ``expected_version`` does not match the stored version.
        """
        await self._guard.authorize(template_id, request.updated_by, Action.UPDATE)
        changes = self._update_changes(request)

        async with self._locks.hold(template_lock_key(template_id)):
            current = await self._repo.get(Collection.TEMPLATES, template_id)
            if current is None:
                raise NotFoundError("Template", template_id)
            if (
                request.expected_version is not None
                and request.expected_version != current["version"]
            ):
                raise ConflictError(
                    f"Template {template_id} was modified concurrently "
                    f"(expected version {request.expected_version}, "
                    f"found {current['version']})"
                )

            changes["version"] = current["version"] + 1
            changes["updated_at"] = now_iso()
            changes["updated_by"] = request.updated_by
            row = await self._repo.update(Collection.TEMPLATES, template_id, changes)

        logger.info(f"Template {template_id} updated by user {request.updated_by}")
        return Template.model_validate(row)

    async def delete_template(self, template_id: str, actor: str) -> None:
        """Soft delete: the row stays, ``is_active`` flips to false.

        Raises:
            NotFoundError: If the template does not exist.
            AuthorizationError: If ``actor`` may not delete it.
            ConflictError: If the template has active instances.
        """
        await self._guard.authorize(template_id, actor, Action.DELETE)

        async with self._locks.hold(template_lock_key(template_id)):
            await ensure_no_active_instances(self._repo, template_id, "template")
            await self._repo.update(
                Collection.TEMPLATES,
                template_id,
                {"is_active": False, "updated_at": now_iso(), "updated_by": actor},
            )

        logger.info(f"Template {template_id} deleted by user {actor}")

    # =========================================================================
    # Read
    # =========================================================================

    async def get_template(self, template_id: str) -> TemplateTree | None:
        """Full tree, or None if the template does not exist."""
        return await self._loader.load_template(template_id)

    async def get_template_row(self, template_id: str) -> Template | None:
        row = await self._repo.get(Collection.TEMPLATES, template_id)
        return Template.model_validate(row) if row else None

    async def list_templates(
        self, filters: TemplateFilters | None = None
    ) -> list[TemplateSummary]:
        """List templates, most recently updated first, each with its stage count."""
        filters = filters or TemplateFilters()
        query = filters.model_dump(exclude_none=True, exclude={"tags"})

        rows = await self._repo.list(
            Collection.TEMPLATES, query, order_by="updated_at", descending=True
        )
        if filters.tags:
            wanted = set(filters.tags)
            rows = [row for row in rows if wanted.intersection(row.get("tags") or [])]

        stages = await self._repo.list_by_parent_ids(
            Collection.STAGES, "template_id", [row["id"] for row in rows], "stage_order"
        )
        stage_counts: dict[str, int] = {}
        for stage in stages:
            stage_counts[stage["template_id"]] = stage_counts.get(stage["template_id"], 0) + 1

        return [
            TemplateSummary.model_validate(
                {**row, "stage_count": stage_counts.get(row["id"], 0)}
            )
            for row in rows
        ]
