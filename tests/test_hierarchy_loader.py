"""Tests for the batched hierarchy loader."""

import logging

import pytest

from conftest import OWNER, build_template
from unified_workflow.db import InMemoryRepository
from unified_workflow.db.repository import Collection
from unified_workflow.errors import BackendTimeout, RepositoryError
from unified_workflow.models import ElementCreate, StageCreate, StepCreate, TaskCreate
from unified_workflow.services import HierarchyLoader, WorkflowService


class RecordingRepository(InMemoryRepository):
    """Counts element queries and can fail chosen batches or passes."""

    def __init__(self) -> None:
        super().__init__()
        self.element_queries: list[list[str]] = []
        self.fail_step_ids: set[str] = set()
        self.timeout_collection: Collection | None = None

    async def list(self, collection, *args, **kwargs):
        if collection == self.timeout_collection:
            raise BackendTimeout()
        return await super().list(collection, *args, **kwargs)

    async def list_by_parent_ids(self, collection, parent_field, parent_ids, order_by):
        if collection == self.timeout_collection:
            raise BackendTimeout()
        if collection == Collection.ELEMENTS:
            self.element_queries.append(list(parent_ids))
            if self.fail_step_ids.intersection(parent_ids):
                raise RepositoryError("connection reset by peer")
        return await super().list_by_parent_ids(collection, parent_field, parent_ids, order_by)


@pytest.fixture
def recording_repository() -> RecordingRepository:
    return RecordingRepository()


@pytest.fixture
async def recording_service(recording_repository):
    service = WorkflowService(recording_repository)
    yield service
    await service.close()


async def _template_with_elements(service, step_count: int):
    template, _, _, steps = await build_template(service, steps_per_task=step_count)
    for i, step in enumerate(steps):
        await service.elements.create(
            step.id,
            ElementCreate(element_type="text_input", element_key=f"field_{i}", created_by=OWNER),
        )
    await service.toucher.drain()
    return template, steps


class TestStepBatches:
    """Tests for splitting step IDs into element batches."""

    def test_no_steps(self):
        assert HierarchyLoader(InMemoryRepository()).step_batches([]) == []

    def test_at_threshold_is_one_batch(self):
        ids = [f"s{i}" for i in range(20)]
        assert HierarchyLoader(InMemoryRepository()).step_batches(ids) == [ids]

    def test_over_threshold_is_batched_by_ten(self):
        ids = [f"s{i}" for i in range(21)]
        batches = HierarchyLoader(InMemoryRepository()).step_batches(ids)
        assert [len(b) for b in batches] == [10, 10, 1]
        assert [s for b in batches for s in b] == ids


class TestLoadTemplate:
    """Tests for HierarchyLoader.load_template."""

    @pytest.mark.asyncio
    async def test_missing_template_returns_none(self, service):
        assert await service.loader.load_template("missing") is None

    @pytest.mark.asyncio
    async def test_tree_is_ordered_at_every_level(self, service):
        template, stage, task, _ = await build_template(service, steps_per_task=0)
        await service.stages.create(template.id, StageCreate(name="Third", stage_order=3, created_by=OWNER))
        await service.stages.create(template.id, StageCreate(name="Second", stage_order=2, created_by=OWNER))
        await service.tasks.create(stage.id, TaskCreate(name="Late", task_order=5, created_by=OWNER))
        await service.tasks.create(stage.id, TaskCreate(name="Early", task_order=0, created_by=OWNER))
        await service.steps.create(task.id, StepCreate(name="B", step_order=2, created_by=OWNER))
        step_a = await service.steps.create(task.id, StepCreate(name="A", step_order=1, created_by=OWNER))
        for key, order in [("z", 3), ("x", 1), ("y", 2)]:
            await service.elements.create(
                step_a.id,
                ElementCreate(element_type="checkbox", element_key=key, element_order=order, created_by=OWNER),
            )

        tree = await service.loader.load_template(template.id)

        assert [s.name for s in tree.stages] == ["Kickoff", "Second", "Third"]
        assert [t.name for t in tree.stages[0].tasks] == ["Early", "Collect details", "Late"]
        collect = tree.stages[0].tasks[1]
        assert [s.name for s in collect.steps] == ["A", "B"]
        assert [e.element_key for e in collect.steps[0].elements] == ["x", "y", "z"]
        assert not tree.is_partial

    @pytest.mark.asyncio
    async def test_batched_load_matches_unbatched_load(
        self, recording_service, recording_repository
    ):
        template, steps = await _template_with_elements(recording_service, 25)

        batched = await HierarchyLoader(recording_repository).load_template(template.id)
        assert len(recording_repository.element_queries) == 3

        recording_repository.element_queries.clear()
        unbatched = await HierarchyLoader(
            recording_repository, batch_threshold=1000
        ).load_template(template.id)
        assert len(recording_repository.element_queries) == 1

        def element_ids(tree):
            return sorted(
                e.id
                for stage in tree.stages
                for task in stage.tasks
                for step in task.steps
                for e in step.elements
            )

        assert element_ids(batched) == element_ids(unbatched)
        assert len(element_ids(batched)) == 25

    @pytest.mark.asyncio
    async def test_failed_batch_is_reported_not_raised(
        self, recording_service, recording_repository, caplog
    ):
        template, steps = await _template_with_elements(recording_service, 25)
        recording_repository.fail_step_ids = {steps[12].id}

        with caplog.at_level(logging.WARNING):
            tree = await HierarchyLoader(recording_repository).load_template(template.id)

        assert tree.is_partial
        assert len(tree.omitted_batches) == 1
        omitted = tree.omitted_batches[0]
        assert omitted.step_ids == [s.id for s in steps[10:20]]
        assert "connection reset" in omitted.reason

        loaded_steps = tree.stages[0].tasks[0].steps
        assert len(loaded_steps) == 25
        assert all(not s.elements for s in loaded_steps[10:20])
        assert all(len(s.elements) == 1 for s in loaded_steps[:10] + loaded_steps[20:])
        assert "omitted" in caplog.text

    @pytest.mark.asyncio
    async def test_timeout_outside_element_pass_is_raised(
        self, recording_service, recording_repository
    ):
        template, _, _, _ = await build_template(recording_service)
        recording_repository.timeout_collection = Collection.TASKS

        with pytest.raises(BackendTimeout) as exc_info:
            await recording_service.loader.load_template(template.id)

        assert template.id in str(exc_info.value)
