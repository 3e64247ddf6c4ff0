"""Instance Manager - starts template executions and moves them through their lifecycle."""

import logging
from typing import Any

from unified_workflow.db.repository import (
    Collection,
    EntityRepository,
    generate_id,
    now_iso,
)
from unified_workflow.errors import ConflictError, NotFoundError, ValidationError
from unified_workflow.models.hierarchy import Stage, Step, Task
from unified_workflow.models.instance import (
    STATUS_TRANSITIONS,
    ExecutionContext,
    Instance,
    InstanceStatus,
    InstanceWithProgress,
    ProgressUpdate,
    StepData,
    StepDataSubmission,
)
from unified_workflow.services.hierarchy_loader import HierarchyLoader
from unified_workflow.services.locks import KeyedLocks, template_lock_key
from unified_workflow.services.permissions import owning_template_id
from unified_workflow.services.progress import ProgressCalculator

logger = logging.getLogger(__name__)

STEP_DATA_KEY = ("instance_id", "step_id", "element_key")


def check_transition(current: InstanceStatus, target: InstanceStatus) -> None:
    """Raise ValidationError unless ``current -> target`` is allowed."""
    if current == target:
        return
    if target not in STATUS_TRANSITIONS[current]:
        raise ValidationError(
            f"Invalid status transition: {current.value} -> {target.value}",
            {"from": current.value, "to": target.value},
        )


class InstanceManager:
    """Creates instances, applies progress updates and records step submissions."""

    def __init__(
        self,
        repository: EntityRepository,
        loader: HierarchyLoader,
        locks: KeyedLocks,
    ) -> None:
        self._repo = repository
        self._loader = loader
        self._locks = locks
        self.progress = ProgressCalculator(repository, loader, self)

    async def _require_instance(self, instance_id: str) -> dict[str, Any]:
        row = await self._repo.get(Collection.INSTANCES, instance_id)
        if row is None:
            raise NotFoundError("Instance", instance_id)
        return row

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_instance(
        self, template_id: str, context: ExecutionContext
    ) -> Instance:
        """Start a draft instance of a published template.

        Raises:
            NotFoundError: If the template does not exist.
            ConflictError: If the template is not published.
        """
        template = await self._repo.get(Collection.TEMPLATES, template_id)
        if template is None:
            raise NotFoundError("Template", template_id)
        if not template["is_published"]:
            raise ConflictError("Template is not published")

        now = now_iso()
        row = {
            **context.model_dump(),
            "id": generate_id(),
            "template_id": template_id,
            "status": InstanceStatus.DRAFT.value,
            "completion_percentage": 0,
            "created_at": now,
            "updated_at": now,
            "updated_by": context.created_by,
        }
        stored = await self._repo.insert(Collection.INSTANCES, row)
        logger.info(
            f"Instance {stored['id']} of template {template_id} created by user "
            f"{context.created_by}"
        )
        return Instance.model_validate(stored)

    async def update_progress(self, instance_id: str, update: ProgressUpdate) -> Instance:
        """Apply the supplied position/percentage/status fields.

        Moving to ``active`` stamps ``started_at`` once. Completing stamps
        ``completed_at`` and pins ``completion_percentage`` to 100.

        Raises:
            NotFoundError: If the instance does not exist.
            ValidationError: On a disallowed status transition.
        """
        changes = update.model_dump(mode="json", exclude_unset=True, exclude={"updated_by"})
        # status and percentage are not nullable columns
        for key in ("status", "completion_percentage"):
            if key in changes and changes[key] is None:
                del changes[key]

        target = InstanceStatus(changes["status"]) if "status" in changes else None
        if target == InstanceStatus.ACTIVE:
            current = await self._require_instance(instance_id)
            # Activation is serialized against cascade-safety checks on the template
            async with self._locks.hold(template_lock_key(current["template_id"])):
                return await self._apply_progress(instance_id, changes, update.updated_by)
        return await self._apply_progress(instance_id, changes, update.updated_by)

    async def _apply_progress(
        self, instance_id: str, changes: dict[str, Any], actor: str
    ) -> Instance:
        current = await self._require_instance(instance_id)
        current_status = InstanceStatus(current["status"])
        now = now_iso()

        if "status" in changes:
            target = InstanceStatus(changes["status"])
            check_transition(current_status, target)
            if target == InstanceStatus.ACTIVE and not current.get("started_at"):
                changes["started_at"] = now
            if target == InstanceStatus.COMPLETED and current_status != target:
                changes["completed_at"] = now
        else:
            target = current_status

        if target == InstanceStatus.COMPLETED:
            changes["completion_percentage"] = 100

        changes["updated_at"] = now
        changes["updated_by"] = actor
        row = await self._repo.update(Collection.INSTANCES, instance_id, changes)

        if target != current_status:
            logger.info(
                f"Instance {instance_id} {current_status.value} -> {target.value} "
                f"by user {actor}"
            )
        return Instance.model_validate(row)

    # =========================================================================
    # Step data
    # =========================================================================

    async def submit_step_data(
        self, instance_id: str, step_id: str, submission: StepDataSubmission
    ) -> StepData:
        """Record a value for one element of a step and recompute progress.

        Re-submitting the same element key replaces the earlier value.

        Raises:
            NotFoundError: If the instance or step does not exist.
            ValidationError: If the step belongs to another template.
        """
        instance = await self._require_instance(instance_id)
        step = await self._repo.get(Collection.STEPS, step_id)
        if step is None:
            raise NotFoundError("Step", step_id)

        step_template_id = await owning_template_id(self._repo, Collection.STEPS, step_id)
        if step_template_id != instance["template_id"]:
            raise ValidationError(
                f"Step {step_id} does not belong to the instance's template",
                {"step_id": step_id, "template_id": instance["template_id"]},
            )

        now = now_iso()
        row = {
            "id": generate_id(),
            "instance_id": instance_id,
            "step_id": step_id,
            "element_key": submission.element_key,
            "element_value": submission.element_value,
            "data_type": submission.data_type,
            # Field-level validation rules are not evaluated yet
            "is_valid": True,
            "submitted_at": now,
            "submitted_by": submission.submitted_by,
            "created_at": now,
            "updated_at": now,
            "created_by": submission.submitted_by,
            "updated_by": submission.submitted_by,
        }
        stored = await self._repo.upsert(Collection.STEP_DATA, row, STEP_DATA_KEY)

        await self.progress.recompute(instance_id, submission.submitted_by)
        return StepData.model_validate(stored)

    async def list_step_data(self, instance_id: str) -> list[StepData]:
        await self._require_instance(instance_id)
        rows = await self._repo.list(
            Collection.STEP_DATA, {"instance_id": instance_id}, order_by="created_at"
        )
        return [StepData.model_validate(row) for row in rows]

    # =========================================================================
    # Read
    # =========================================================================

    async def get_instance(self, instance_id: str) -> Instance | None:
        row = await self._repo.get(Collection.INSTANCES, instance_id)
        return Instance.model_validate(row) if row else None

    async def list_instances(
        self, template_id: str, status: InstanceStatus | None = None
    ) -> list[Instance]:
        filters: dict[str, Any] = {"template_id": template_id}
        if status is not None:
            filters["status"] = status.value
        rows = await self._repo.list(
            Collection.INSTANCES, filters, order_by="created_at", descending=True
        )
        return [Instance.model_validate(row) for row in rows]

    async def get_instance_with_progress(
        self, instance_id: str
    ) -> InstanceWithProgress | None:
        """Instance plus its template, current position rows, submissions and roll-up."""
        row = await self._repo.get(Collection.INSTANCES, instance_id)
        if row is None:
            return None

        tree = await self._loader.load_template(row["template_id"])
        if tree is None:
            raise NotFoundError("Template", row["template_id"])

        current_stage = await self._get_optional(
            Collection.STAGES, row.get("current_stage_id")
        )
        current_task = await self._get_optional(Collection.TASKS, row.get("current_task_id"))
        current_step = await self._get_optional(Collection.STEPS, row.get("current_step_id"))
        step_data = await self.list_step_data(instance_id)
        details = await self.progress.details_for_tree(instance_id, tree)

        return InstanceWithProgress.model_validate(
            {
                **row,
                "template": tree.model_dump(exclude={"stages", "omitted_batches"}),
                "current_stage": Stage.model_validate(current_stage) if current_stage else None,
                "current_task": Task.model_validate(current_task) if current_task else None,
                "current_step": Step.model_validate(current_step) if current_step else None,
                "step_data": step_data,
                "progress_details": details,
            }
        )

    async def _get_optional(
        self, collection: Collection, entity_id: str | None
    ) -> dict[str, Any] | None:
        if not entity_id:
            return None
        return await self._repo.get(collection, entity_id)
