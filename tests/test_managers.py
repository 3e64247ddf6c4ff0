"""Tests for the Stage / Task / Step / Element managers."""

import asyncio
import logging

import pytest

from conftest import OTHER_USER, OWNER, build_template
from unified_workflow.config import Settings
from unified_workflow.db import InMemoryRepository
from unified_workflow.db.repository import Collection
from unified_workflow.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from unified_workflow.models import (
    ElementCreate,
    ElementUpdate,
    ExecutionContext,
    InstanceStatus,
    ProgressUpdate,
    StageUpdate,
    StepUpdate,
    TaskCreate,
    TaskUpdate,
)
from unified_workflow.services import WorkflowService


class RecordingRepository(InMemoryRepository):
    """Records cascade checks, deletes and activations, yielding after each read."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[str] = []

    async def count_where(self, collection, filters):
        count = await super().count_where(collection, filters)
        if collection == Collection.INSTANCES:
            self.events.append("check")
        await asyncio.sleep(0)
        return count

    async def get(self, collection, entity_id):
        row = await super().get(collection, entity_id)
        await asyncio.sleep(0)
        return row

    async def update(self, collection, entity_id, partial):
        if collection == Collection.INSTANCES and partial.get("status") == "active":
            self.events.append("activate")
        return await super().update(collection, entity_id, partial)

    async def delete(self, collection, entity_id):
        self.events.append("delete")
        return await super().delete(collection, entity_id)


async def _activate_instance(service, template_id):
    instance = await service.instances.create_instance(
        template_id, ExecutionContext(name="Acme onboarding", created_by=OWNER)
    )
    return await service.instances.update_progress(
        instance.id, ProgressUpdate(status=InstanceStatus.ACTIVE, updated_by=OWNER)
    )


class TestPartialUpdate:
    """Tests for partial-update semantics."""

    @pytest.mark.asyncio
    async def test_only_supplied_fields_change(self, service):
        _, stage, task, _ = await build_template(service)
        dependency = await service.tasks.create(
            stage.id, TaskCreate(name="Prepare", created_by=OWNER)
        )
        task = await service.tasks.update(
            task.id,
            TaskUpdate(depends_on_task_ids=[dependency.id], allow_skip=True),
            OWNER,
        )

        updated = await service.tasks.update(task.id, TaskUpdate(name="X"), OWNER)

        assert updated.name == "X"
        assert updated.task_order == task.task_order
        assert updated.allow_skip is True
        assert updated.is_required is True
        assert updated.depends_on_task_ids == [dependency.id]
        assert updated.created_at == task.created_at

    @pytest.mark.asyncio
    async def test_nullable_field_can_be_cleared(self, service):
        _, stage, _, _ = await build_template(service)
        await service.stages.update(stage.id, StageUpdate(description="Intro"), OWNER)

        updated = await service.stages.update(stage.id, StageUpdate(description=None), OWNER)

        assert updated.description is None
        assert updated.name == "Kickoff"

    @pytest.mark.asyncio
    async def test_non_nullable_field_rejects_null(self, service):
        _, _, _, steps = await build_template(service)

        with pytest.raises(ValidationError):
            await service.steps.update(steps[0].id, StepUpdate(name=None), OWNER)

    @pytest.mark.asyncio
    async def test_update_missing_entity(self, service):
        with pytest.raises(NotFoundError):
            await service.steps.update("missing", StepUpdate(name="X"), OWNER)

    @pytest.mark.asyncio
    async def test_update_by_other_user_is_denied(self, service):
        _, stage, _, _ = await build_template(service)

        with pytest.raises(AuthorizationError):
            await service.stages.update(stage.id, StageUpdate(name="Hijack"), OTHER_USER)

        assert (await service.stages.get(stage.id)).name == "Kickoff"

    @pytest.mark.asyncio
    async def test_update_touches_template(self, service, repository):
        template, stage, _, _ = await build_template(service)
        await repository.update(
            Collection.TEMPLATES,
            template.id,
            {"updated_at": "2000-01-01T00:00:00+00:00", "updated_by": "someone"},
        )

        await service.stages.update(stage.id, StageUpdate(name="Renamed"), OWNER)

        row = await repository.get(Collection.TEMPLATES, template.id)
        assert row["updated_by"] == OWNER
        assert row["updated_at"] > "2000-01-01T00:00:00+00:00"


class TestCreate:
    """Tests for creation under a parent."""

    @pytest.mark.asyncio
    async def test_create_under_missing_parent(self, service):
        with pytest.raises(NotFoundError):
            await service.tasks.create("missing", TaskCreate(name="T", created_by=OWNER))

    @pytest.mark.asyncio
    async def test_create_by_other_user_is_denied(self, service):
        _, stage, _, _ = await build_template(service)

        with pytest.raises(AuthorizationError):
            await service.tasks.create(stage.id, TaskCreate(name="T", created_by=OTHER_USER))

    @pytest.mark.asyncio
    async def test_task_defaults(self, service):
        _, stage, _, _ = await build_template(service)

        task = await service.tasks.create(stage.id, TaskCreate(name="T", created_by=OWNER))

        assert task.task_type == "standard"
        assert task.client_visible is False
        assert task.depends_on_task_ids == []
        assert task.created_by == OWNER

    @pytest.mark.asyncio
    async def test_unknown_task_dependency_is_rejected(self, service):
        _, stage, _, _ = await build_template(service)

        with pytest.raises(ValidationError):
            await service.tasks.create(
                stage.id,
                TaskCreate(name="T", depends_on_task_ids=["ghost"], created_by=OWNER),
            )

    @pytest.mark.asyncio
    async def test_dependency_on_other_template_is_rejected(self, service):
        _, stage, _, _ = await build_template(service)
        _, _, foreign_task, _ = await build_template(service, name="Other")

        with pytest.raises(ValidationError):
            await service.tasks.create(
                stage.id,
                TaskCreate(name="T", depends_on_task_ids=[foreign_task.id], created_by=OWNER),
            )

    @pytest.mark.asyncio
    async def test_dependency_cycle_is_rejected(self, service):
        _, stage, first, _ = await build_template(service)
        second = await service.tasks.create(
            stage.id,
            TaskCreate(name="Second", depends_on_task_ids=[first.id], created_by=OWNER),
        )

        with pytest.raises(ValidationError):
            await service.tasks.update(
                first.id, TaskUpdate(depends_on_task_ids=[second.id]), OWNER
            )

        assert (await service.tasks.get(first.id)).depends_on_task_ids == []


class TestElements:
    """Tests for element type validation and background touches."""

    @pytest.mark.asyncio
    async def test_invalid_element_type_is_rejected(self, service, repository):
        _, _, _, steps = await build_template(service)

        with pytest.raises(ValidationError):
            await service.elements.create(
                steps[0].id,
                ElementCreate(element_type="hologram", element_key="x", created_by=OWNER),
            )

        assert await repository.count_where(Collection.ELEMENTS, {"step_id": steps[0].id}) == 0

    @pytest.mark.asyncio
    async def test_update_to_invalid_type_is_rejected(self, service):
        _, _, _, steps = await build_template(service)
        element = await service.elements.create(
            steps[0].id,
            ElementCreate(element_type="dropdown", element_key="plan", created_by=OWNER),
        )

        with pytest.raises(ValidationError):
            await service.elements.update(element.id, ElementUpdate(element_type="nope"), OWNER)

        updated = await service.elements.update(
            element.id, ElementUpdate(element_type="radio_group"), OWNER
        )
        assert updated.element_type == "radio_group"
        assert updated.element_key == "plan"

    @pytest.mark.asyncio
    async def test_element_create_touches_template_in_background(self, service, repository):
        template, _, _, steps = await build_template(service)
        await repository.update(
            Collection.TEMPLATES, template.id, {"updated_by": "someone"}
        )

        await service.elements.create(
            steps[0].id,
            ElementCreate(element_type="file_upload", element_key="contract", created_by=OWNER),
        )
        await service.toucher.drain()

        row = await repository.get(Collection.TEMPLATES, template.id)
        assert row["updated_by"] == OWNER
        assert service.toucher.failures == []


class TestDelete:
    """Tests for cascade-safe deletion."""

    @pytest.mark.asyncio
    async def test_delete_blocked_by_active_instance(self, service, repository):
        template, stage, task, steps = await build_template(service)
        element = await service.elements.create(
            steps[0].id,
            ElementCreate(element_type="text_input", element_key="company", created_by=OWNER),
        )
        await _activate_instance(service, template.id)

        for manager, entity_id in [
            (service.elements, element.id),
            (service.stages, stage.id),
            (service.tasks, task.id),
            (service.steps, steps[0].id),
        ]:
            with pytest.raises(ConflictError):
                await manager.delete(entity_id, OWNER)

        assert await repository.get(Collection.STAGES, stage.id) is not None
        assert await repository.get(Collection.TASKS, task.id) is not None
        assert await repository.count_where(Collection.STEPS, {"task_id": task.id}) == 2
        assert await repository.get(Collection.ELEMENTS, element.id) is not None

    @pytest.mark.asyncio
    async def test_delete_allowed_once_instance_completes(self, service, repository):
        template, stage, task, steps = await build_template(service)
        instance = await _activate_instance(service, template.id)
        await service.instances.update_progress(
            instance.id, ProgressUpdate(status=InstanceStatus.COMPLETED, updated_by=OWNER)
        )

        assert await service.stages.delete(stage.id, OWNER) is True

        assert await repository.get(Collection.TASKS, task.id) is None
        assert await repository.get(Collection.STEPS, steps[0].id) is None

    @pytest.mark.asyncio
    async def test_delete_by_other_user_is_denied(self, service, repository):
        _, _, task, _ = await build_template(service)

        with pytest.raises(AuthorizationError):
            await service.tasks.delete(task.id, OTHER_USER)

        assert await repository.get(Collection.TASKS, task.id) is not None

    @pytest.mark.asyncio
    async def test_delete_missing(self, service):
        with pytest.raises(NotFoundError):
            await service.elements.delete("missing", OWNER)

    @pytest.mark.asyncio
    async def test_delete_writes_audit_line(self, service, caplog):
        template, stage, _, _ = await build_template(service)

        with caplog.at_level(logging.INFO, logger="unified_workflow"):
            await service.stages.delete(stage.id, OWNER)

        assert f"Template {template.id} stage_deleted:Kickoff by user {OWNER}" in caplog.text

    @pytest.mark.asyncio
    async def test_activation_never_lands_between_check_and_delete(self):
        repository = RecordingRepository()
        service = WorkflowService(repository, Settings())
        template, stage, _, _ = await build_template(service)
        instance = await service.instances.create_instance(
            template.id, ExecutionContext(name="Acme onboarding", created_by=OWNER)
        )
        repository.events.clear()

        deleted, activated = await asyncio.gather(
            service.stages.delete(stage.id, OWNER),
            service.instances.update_progress(
                instance.id, ProgressUpdate(status=InstanceStatus.ACTIVE, updated_by=OWNER)
            ),
            return_exceptions=True,
        )

        assert activated.status == InstanceStatus.ACTIVE
        check = repository.events.index("check")
        if repository.events.index("activate") < check:
            assert isinstance(deleted, ConflictError)
            assert "delete" not in repository.events
        else:
            assert deleted is True
            assert repository.events[check + 1] == "delete"
        await service.close()


class TestListChildren:
    """Tests for listing siblings."""

    @pytest.mark.asyncio
    async def test_children_in_order(self, service):
        _, _, task, steps = await build_template(service, steps_per_task=3)
        await service.steps.update(steps[0].id, StepUpdate(step_order=9), OWNER)

        children = await service.steps.list_children(task.id)

        assert [s.name for s in children] == ["Step 2", "Step 3", "Step 1"]

    @pytest.mark.asyncio
    async def test_missing_parent_raises(self, service):
        with pytest.raises(NotFoundError):
            await service.tasks.list_children("missing")


class TestGet:
    """Tests for single-entity reads."""

    @pytest.mark.asyncio
    async def test_get_returns_entity(self, service):
        _, _, _, steps = await build_template(service)

        step = await service.steps.get(steps[0].id)

        assert step.name == "Step 1"

    @pytest.mark.asyncio
    async def test_get_missing_raises(self, service):
        with pytest.raises(NotFoundError):
            await service.elements.get("missing")
