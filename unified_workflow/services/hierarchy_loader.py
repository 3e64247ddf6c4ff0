"""Hierarchy Loader - materializes a full template tree from flat rows.

A single deep join over Template -> Stage -> Task -> Step -> Element times out
or exceeds result limits on large templates, so the tree is loaded in passes:

1. the template row
2. all stages of the template
3. all tasks of those stages (one IN-query)
4. all steps of those tasks (one IN-query)
5. all elements of those steps, in bounded batches once the step count
   exceeds the batching threshold

and reassembled bottom-up. A failed element batch is recorded on the result
and skipped instead of failing the whole load.
"""

import logging
from collections import defaultdict
from typing import Any

from unified_workflow.db.repository import Collection, EntityRepository
from unified_workflow.errors import BackendTimeout, PartialLoadWarning, RepositoryError
from unified_workflow.models.hierarchy import Element, Stage, Step, Task
from unified_workflow.models.template import OmittedBatch, TemplateTree

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_THRESHOLD = 20


def _group_by(rows: list[dict[str, Any]], key: str) -> dict[str, list[dict[str, Any]]]:
    """Group rows by a parent key, preserving their relative order."""
    grouped: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for row in rows:
        grouped[row[key]].append(row)
    return grouped


class HierarchyLoader:
    """Loads Template trees with bounded per-query size."""

    def __init__(
        self,
        repository: EntityRepository,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_threshold: int = DEFAULT_BATCH_THRESHOLD,
    ) -> None:
        self._repo = repository
        self.batch_size = batch_size
        self.batch_threshold = batch_threshold

    def step_batches(self, step_ids: list[str]) -> list[list[str]]:
        """Split step IDs into the batches used for element queries."""
        if not step_ids:
            return []
        if len(step_ids) <= self.batch_threshold:
            return [list(step_ids)]
        return [
            step_ids[i : i + self.batch_size]
            for i in range(0, len(step_ids), self.batch_size)
        ]

    async def load_template(self, template_id: str) -> TemplateTree | None:
        """Load a template with all stages, tasks, steps and elements.

        Returns:
            The assembled tree, or None if the template does not exist.

        Raises:
            BackendTimeout: If the store timed out outside the element passes.
        """
        try:
            template = await self._repo.get(Collection.TEMPLATES, template_id)
            if template is None:
                return None

            stages = await self._repo.list(
                Collection.STAGES, {"template_id": template_id}, order_by="stage_order"
            )
            tasks = await self._repo.list_by_parent_ids(
                Collection.TASKS, "stage_id", [s["id"] for s in stages], "task_order"
            )
            steps = await self._repo.list_by_parent_ids(
                Collection.STEPS, "task_id", [t["id"] for t in tasks], "step_order"
            )
        except BackendTimeout as e:
            logger.error(f"Timeout while loading template {template_id}: {e}")
            raise BackendTimeout(
                f"Database timeout while loading template {template_id}. The template "
                "may have too much data. Please try again or contact support."
            ) from e

        elements, omitted = await self._load_elements(
            template_id, [s["id"] for s in steps]
        )

        tree = self._assemble(template, stages, tasks, steps, elements, omitted)

        logger.info(
            f"Template loaded: {tree.name} (stages={len(stages)}, tasks={len(tasks)}, "
            f"steps={len(steps)}, elements={len(elements)}, "
            f"omitted_batches={len(omitted)})"
        )
        return tree

    async def _load_elements(
        self, template_id: str, step_ids: list[str]
    ) -> tuple[list[dict[str, Any]], list[OmittedBatch]]:
        """Fetch elements batch by batch; failed batches are recorded, not raised."""
        batches = self.step_batches(step_ids)
        if len(batches) > 1:
            logger.debug(
                f"Loading elements in {len(batches)} batches for {len(step_ids)} steps"
            )

        elements: list[dict[str, Any]] = []
        omitted: list[OmittedBatch] = []
        for batch in batches:
            try:
                rows = await self._repo.list_by_parent_ids(
                    Collection.ELEMENTS, "step_id", batch, "element_order"
                )
            except RepositoryError as e:
                warning = PartialLoadWarning(batch, e)
                logger.warning(f"Template {template_id}: {warning}")
                omitted.append(OmittedBatch(step_ids=warning.step_ids, reason=str(e)))
                continue
            elements.extend(rows)

        return elements, omitted

    @staticmethod
    def _assemble(
        template: dict[str, Any],
        stages: list[dict[str, Any]],
        tasks: list[dict[str, Any]],
        steps: list[dict[str, Any]],
        elements: list[dict[str, Any]],
        omitted: list[OmittedBatch],
    ) -> TemplateTree:
        """Attach elements to steps, steps to tasks, tasks to stages, stages to the template."""
        elements_by_step = _group_by(elements, "step_id")
        step_models_by_task: dict[str, list[Step]] = defaultdict(list)
        for row in steps:
            step = Step.model_validate(
                {
                    **row,
                    "elements": [
                        Element.model_validate(e) for e in elements_by_step.get(row["id"], [])
                    ],
                }
            )
            step_models_by_task[row["task_id"]].append(step)

        task_models_by_stage: dict[str, list[Task]] = defaultdict(list)
        for row in tasks:
            task = Task.model_validate(
                {**row, "steps": step_models_by_task.get(row["id"], [])}
            )
            task_models_by_stage[row["stage_id"]].append(task)

        stage_models = [
            Stage.model_validate({**row, "tasks": task_models_by_stage.get(row["id"], [])})
            for row in stages
        ]

        return TemplateTree.model_validate(
            {**template, "stages": stage_models, "omitted_batches": omitted}
        )
