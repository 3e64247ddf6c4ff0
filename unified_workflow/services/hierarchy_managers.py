"""CRUD for the Stage / Task / Step / Element levels of a template.

All four levels share one shape:

- create: authorize against the owning template, assign the next sibling
  order under a per-parent lock, insert, touch the template
- update: apply only the fields present in the payload, touch the template
- delete: refuse while the template has active instances, otherwise delete
  (the store cascades to descendants) and touch the template
"""

import logging
from typing import Any, ClassVar

from pydantic import BaseModel

from unified_workflow.db.repository import (
    Collection,
    EntityRepository,
    generate_id,
    now_iso,
)
from unified_workflow.errors import ConflictError, NotFoundError, ValidationError
from unified_workflow.models.hierarchy import (
    Element,
    ElementCreate,
    ElementType,
    ElementUpdate,
    Stage,
    StageCreate,
    StageUpdate,
    Step,
    StepCreate,
    StepUpdate,
    Task,
    TaskCreate,
    TaskUpdate,
)
from unified_workflow.models.instance import InstanceStatus
from unified_workflow.services.dependency_graph import validate_dependencies
from unified_workflow.services.locks import KeyedLocks, template_lock_key
from unified_workflow.services.ordering import ORDER_FIELDS, OrderingAssigner
from unified_workflow.services.permissions import Action, PermissionGuard
from unified_workflow.services.template_touch import TemplateTouchQueue

logger = logging.getLogger(__name__)


async def ensure_no_active_instances(
    repository: EntityRepository, template_id: str, resource: str
) -> None:
    """Raise ConflictError if any instance of the template is active."""
    active = await repository.count_where(
        Collection.INSTANCES,
        {"template_id": template_id, "status": InstanceStatus.ACTIVE.value},
    )
    if active > 0:
        raise ConflictError(f"Cannot delete {resource} while active instances exist")


class _HierarchyManager:
    """Shared create/update/delete logic for one hierarchy level."""

    collection: ClassVar[Collection]
    parent_collection: ClassVar[Collection]
    parent_field: ClassVar[str]
    parent_label: ClassVar[str]
    label: ClassVar[str]
    entity_model: ClassVar[type[BaseModel]]
    # Column naming the entity in audit log lines
    display_field: ClassVar[str] = "name"
    # Element creation does not wait for the template touch
    background_touch_on_create: ClassVar[bool] = False

    def __init__(
        self,
        repository: EntityRepository,
        guard: PermissionGuard,
        ordering: OrderingAssigner,
        toucher: TemplateTouchQueue,
        locks: KeyedLocks,
    ) -> None:
        self._repo = repository
        self._guard = guard
        self._ordering = ordering
        self._toucher = toucher
        self._locks = locks

    # =========================================================================
    # Hooks
    # =========================================================================

    async def _validate_create(self, template_id: str, row: dict[str, Any]) -> None:
        """Level-specific checks on a new row."""

    async def _validate_update(
        self, template_id: str, entity_id: str, changes: dict[str, Any]
    ) -> None:
        """Level-specific checks on a partial update."""

    # =========================================================================
    # Operations
    # =========================================================================

    async def get(self, entity_id: str) -> BaseModel:
        """Fetch one entity.

        Raises:
            NotFoundError: If the entity does not exist.
        """
        row = await self._repo.get(self.collection, entity_id)
        if row is None:
            raise NotFoundError(self.label, entity_id)
        return self.entity_model.model_validate(row)

    async def list_children(self, parent_id: str) -> list[BaseModel]:
        """Rows under one parent, in sibling order.

        Raises:
            NotFoundError: If the parent does not exist.
        """
        if await self._repo.get(self.parent_collection, parent_id) is None:
            raise NotFoundError(self.parent_label, parent_id)
        rows = await self._repo.list(
            self.collection,
            {self.parent_field: parent_id},
            order_by=ORDER_FIELDS[self.collection],
        )
        return [self.entity_model.model_validate(row) for row in rows]

    async def create(self, parent_id: str, request: BaseModel) -> BaseModel:
        """Create a child of ``parent_id``.

        Raises:
            NotFoundError: If the parent or any ancestor is missing.
            AuthorizationError: If the creator may not update the template.
            ValidationError: If level-specific validation fails.
        """
        data = request.model_dump(mode="json")
        actor = data.pop("created_by")
        template_id = await self._guard.authorize_entity(
            self.parent_collection, parent_id, actor, Action.UPDATE
        )
        await self._validate_create(template_id, data)

        now = now_iso()
        row = {
            **data,
            "id": generate_id(),
            self.parent_field: parent_id,
            "created_at": now,
            "updated_at": now,
            "created_by": actor,
            "updated_by": actor,
        }
        stored = await self._ordering.insert_ordered(
            self.collection, self.parent_field, parent_id, row
        )

        if self.background_touch_on_create:
            self._toucher.schedule(template_id, actor)
        else:
            await self._toucher.touch(template_id, actor)

        logger.debug(f"Created {self.label.lower()} {stored['id']} under {parent_id}")
        return self.entity_model.model_validate(stored)

    def _changes(self, partial: BaseModel) -> dict[str, Any]:
        """Fields explicitly present in the payload; null only where the column allows it."""
        changes = partial.model_dump(mode="json", exclude_unset=True)
        for key, value in changes.items():
            if value is not None:
                continue
            field = self.entity_model.model_fields[key]
            if (
                field.is_required()
                or field.default_factory is not None
                or field.default is not None
            ):
                raise ValidationError(
                    f"{self.label} field '{key}' cannot be null", {"field": key}
                )
        return changes

    async def update(self, entity_id: str, partial: BaseModel, actor: str) -> BaseModel:
        """Apply a partial update.

        Raises:
            NotFoundError: If the entity does not exist.
            AuthorizationError: If ``actor`` may not update the template.
            ValidationError: On null for a non-nullable field or level-specific failures.
        """
        existing = await self._repo.get(self.collection, entity_id)
        if existing is None:
            raise NotFoundError(self.label, entity_id)

        template_id = await self._guard.authorize_entity(
            self.collection, entity_id, actor, Action.UPDATE
        )
        changes = self._changes(partial)
        if not changes:
            return self.entity_model.model_validate(existing)

        await self._validate_update(template_id, entity_id, changes)

        changes["updated_at"] = now_iso()
        changes["updated_by"] = actor
        row = await self._repo.update(self.collection, entity_id, changes)
        await self._toucher.touch(template_id, actor)
        return self.entity_model.model_validate(row)

    async def delete(self, entity_id: str, actor: str) -> bool:
        """Delete an entity and its descendants.

        Raises:
            NotFoundError: If the entity does not exist.
            AuthorizationError: If ``actor`` may not delete from the template.
            ConflictError: If the template has active instances.
        """
        template_id = await self._guard.authorize_entity(
            self.collection, entity_id, actor, Action.DELETE
        )

        async with self._locks.hold(template_lock_key(template_id)):
            existing = await self._repo.get(self.collection, entity_id)
            if existing is None:
                raise NotFoundError(self.label, entity_id)
            await ensure_no_active_instances(
                self._repo, template_id, self.label.lower()
            )
            deleted = await self._repo.delete(self.collection, entity_id)

        await self._toucher.touch(template_id, actor)
        logger.info(
            f"Template {template_id} {self.label.lower()}_deleted:"
            f"{existing.get(self.display_field)} by user {actor}"
        )
        return deleted


class StageManager(_HierarchyManager):
    collection = Collection.STAGES
    parent_collection = Collection.TEMPLATES
    parent_field = "template_id"
    parent_label = "Template"
    label = "Stage"
    entity_model = Stage

    async def create(self, parent_id: str, request: StageCreate) -> Stage:
        return await super().create(parent_id, request)

    async def update(self, entity_id: str, partial: StageUpdate, actor: str) -> Stage:
        return await super().update(entity_id, partial, actor)


class TaskManager(_HierarchyManager):
    """Tasks additionally carry a validated dependency list."""

    collection = Collection.TASKS
    parent_collection = Collection.STAGES
    parent_field = "stage_id"
    parent_label = "Stage"
    label = "Task"
    entity_model = Task

    async def create(self, parent_id: str, request: TaskCreate) -> Task:
        return await super().create(parent_id, request)

    async def update(self, entity_id: str, partial: TaskUpdate, actor: str) -> Task:
        return await super().update(entity_id, partial, actor)

    async def _template_task_graph(self, template_id: str) -> dict[str, list[str]]:
        """Every task of the template mapped to its current dependencies."""
        stages = await self._repo.list(Collection.STAGES, {"template_id": template_id})
        tasks = await self._repo.list_by_parent_ids(
            Collection.TASKS, "stage_id", [s["id"] for s in stages], "task_order"
        )
        return {t["id"]: list(t.get("depends_on_task_ids") or []) for t in tasks}

    async def _validate_create(self, template_id: str, row: dict[str, Any]) -> None:
        depends_on = row.get("depends_on_task_ids") or []
        if depends_on:
            graph = await self._template_task_graph(template_id)
            validate_dependencies(None, depends_on, graph)

    async def _validate_update(
        self, template_id: str, entity_id: str, changes: dict[str, Any]
    ) -> None:
        if "depends_on_task_ids" in changes:
            graph = await self._template_task_graph(template_id)
            validate_dependencies(entity_id, changes["depends_on_task_ids"], graph)


class StepManager(_HierarchyManager):
    collection = Collection.STEPS
    parent_collection = Collection.TASKS
    parent_field = "task_id"
    parent_label = "Task"
    label = "Step"
    entity_model = Step

    async def create(self, parent_id: str, request: StepCreate) -> Step:
        return await super().create(parent_id, request)

    async def update(self, entity_id: str, partial: StepUpdate, actor: str) -> Step:
        return await super().update(entity_id, partial, actor)


class ElementManager(_HierarchyManager):
    """Elements validate their type; creation touches the template in the background."""

    collection = Collection.ELEMENTS
    parent_collection = Collection.STEPS
    parent_field = "step_id"
    parent_label = "Step"
    label = "Element"
    entity_model = Element
    display_field = "element_key"
    background_touch_on_create = True

    async def create(self, parent_id: str, request: ElementCreate) -> Element:
        return await super().create(parent_id, request)

    async def update(
        self, entity_id: str, partial: ElementUpdate, actor: str
    ) -> Element:
        return await super().update(entity_id, partial, actor)

    @staticmethod
    def _check_element_type(element_type: str) -> None:
        if not ElementType.is_valid(element_type):
            raise ValidationError(
                f"Invalid element type: {element_type}",
                {"element_type": element_type},
            )

    async def _validate_create(self, template_id: str, row: dict[str, Any]) -> None:
        self._check_element_type(row["element_type"])

    async def _validate_update(
        self, template_id: str, entity_id: str, changes: dict[str, Any]
    ) -> None:
        if "element_type" in changes:
            self._check_element_type(changes["element_type"])
