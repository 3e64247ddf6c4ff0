"""Progress Calculator - derives instance completion from submitted step data.

A step counts as done once any StepData row exists for (instance, step).
Only client-visible steps participate.
"""

import logging
import math
from typing import TYPE_CHECKING

from unified_workflow.db.repository import Collection, EntityRepository
from unified_workflow.errors import NotFoundError
from unified_workflow.models.instance import Instance, ProgressDetails, ProgressUpdate
from unified_workflow.models.template import TemplateTree
from unified_workflow.services.hierarchy_loader import HierarchyLoader

if TYPE_CHECKING:
    from unified_workflow.services.instance_manager import InstanceManager

logger = logging.getLogger(__name__)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up (2.5 -> 3), unlike Python's banker's ``round``."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def completion_percentage(completed: int, total: int) -> int:
    """``round(100 * completed / total)``, or 0 when there is nothing to complete."""
    if total == 0:
        return 0
    return int(round_half_up(100 * completed / total))


class ProgressCalculator:
    """Recomputes completion percentages and stage/task/step roll-ups."""

    def __init__(
        self,
        repository: EntityRepository,
        loader: HierarchyLoader,
        instances: "InstanceManager",
    ) -> None:
        self._repo = repository
        self._loader = loader
        self._instances = instances

    async def _load(self, instance_id: str) -> tuple[dict, TemplateTree]:
        instance = await self._repo.get(Collection.INSTANCES, instance_id)
        if instance is None:
            raise NotFoundError("Instance", instance_id)
        template = await self._loader.load_template(instance["template_id"])
        if template is None:
            raise NotFoundError("Template", instance["template_id"])
        return instance, template

    async def _has_data(self, instance_id: str, step_id: str) -> bool:
        count = await self._repo.count_where(
            Collection.STEP_DATA, {"instance_id": instance_id, "step_id": step_id}
        )
        return count > 0

    async def recompute(self, instance_id: str, actor: str) -> Instance:
        """Recompute the completion percentage and write it back.

        Raises:
            NotFoundError: If the instance or its template is missing.
        """
        _, template = await self._load(instance_id)

        total_steps = 0
        completed_steps = 0
        for stage in template.stages:
            for task in stage.tasks:
                for step in task.steps:
                    if not step.client_visible:
                        continue
                    total_steps += 1
                    if await self._has_data(instance_id, step.id):
                        completed_steps += 1

        percentage = completion_percentage(completed_steps, total_steps)
        logger.debug(
            f"Instance {instance_id}: {completed_steps}/{total_steps} steps -> {percentage}%"
        )
        return await self._instances.update_progress(
            instance_id,
            ProgressUpdate(completion_percentage=percentage, updated_by=actor),
        )

    async def progress_details(self, instance_id: str) -> ProgressDetails:
        """Roll step completion up into per-task and per-stage completion.

        A task is complete when every visible step beneath it has data; a
        stage is complete when every task beneath it is complete.
        """
        _, template = await self._load(instance_id)
        return await self.details_for_tree(instance_id, template)

    async def details_for_tree(
        self, instance_id: str, template: TemplateTree
    ) -> ProgressDetails:
        details = ProgressDetails()
        for stage in template.stages:
            details.total_stages += 1
            stage_completed = True
            for task in stage.tasks:
                details.total_tasks += 1
                task_completed = True
                for step in task.steps:
                    if not step.client_visible:
                        continue
                    details.total_steps += 1
                    if await self._has_data(instance_id, step.id):
                        details.steps_completed += 1
                    else:
                        task_completed = False
                if task_completed:
                    details.tasks_completed += 1
                else:
                    stage_completed = False
            if stage_completed:
                details.stages_completed += 1
        return details
