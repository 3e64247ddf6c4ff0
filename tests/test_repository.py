"""Tests for the EntityRepository implementations (in-memory and SQLite)."""

import os
import tempfile

import pytest

from unified_workflow.db import InMemoryRepository, SQLiteRepository, connect
from unified_workflow.db.repository import Collection, Range, generate_id, now_iso
from unified_workflow.errors import NotFoundError, RepositoryError


@pytest.fixture(params=["memory", "sqlite"])
async def store(request):
    """Each test runs once per store implementation."""
    if request.param == "memory":
        yield InMemoryRepository()
        return

    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = await connect(db_path)
    yield SQLiteRepository(db)
    await db.close()
    os.unlink(db_path)


def _template(**overrides):
    now = now_iso()
    row = {
        "id": generate_id(),
        "name": "Client Onboarding",
        "template_type": "standard",
        "tags": ["onboarding", "sales"],
        "is_active": True,
        "is_published": False,
        "version": 1,
        "created_at": now,
        "updated_at": now,
        "created_by": "user-1",
    }
    row.update(overrides)
    return row


def _child(parent_field, parent_id, order_field, order, **extra):
    now = now_iso()
    row = {
        "id": generate_id(),
        parent_field: parent_id,
        order_field: order,
        "created_at": now,
        "updated_at": now,
    }
    row.update(extra)
    return row


async def _tree(store):
    """Insert template -> stage -> task -> step -> element; return their IDs."""
    template = await store.insert(Collection.TEMPLATES, _template())
    stage = await store.insert(
        Collection.STAGES,
        _child("template_id", template["id"], "stage_order", 1, name="Kickoff"),
    )
    task = await store.insert(
        Collection.TASKS,
        _child("stage_id", stage["id"], "task_order", 1, name="Collect", depends_on_task_ids=[]),
    )
    step = await store.insert(
        Collection.STEPS, _child("task_id", task["id"], "step_order", 1, name="Details")
    )
    element = await store.insert(
        Collection.ELEMENTS,
        _child(
            "step_id",
            step["id"],
            "element_order",
            1,
            element_type="text_input",
            element_key="company",
            config={"max_length": 80},
        ),
    )
    return template["id"], stage["id"], task["id"], step["id"], element["id"]


class TestReadsAndWrites:
    """Tests for get/insert/update."""

    @pytest.mark.asyncio
    async def test_insert_round_trips_json_and_bool_columns(self, store):
        row = await store.insert(Collection.TEMPLATES, _template())

        fetched = await store.get(Collection.TEMPLATES, row["id"])
        assert fetched["tags"] == ["onboarding", "sales"]
        assert fetched["is_active"] is True
        assert fetched["is_published"] is False

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        assert await store.get(Collection.TEMPLATES, "missing") is None

    @pytest.mark.asyncio
    async def test_update_applies_partial(self, store):
        row = await store.insert(Collection.TEMPLATES, _template())

        updated = await store.update(Collection.TEMPLATES, row["id"], {"name": "Renamed"})

        assert updated["name"] == "Renamed"
        assert updated["tags"] == ["onboarding", "sales"]

    @pytest.mark.asyncio
    async def test_update_missing_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            await store.update(Collection.TEMPLATES, "missing", {"name": "X"})

    @pytest.mark.asyncio
    async def test_duplicate_insert_raises_repository_error(self, store):
        row = await store.insert(Collection.TEMPLATES, _template())

        with pytest.raises(RepositoryError):
            await store.insert(Collection.TEMPLATES, _template(id=row["id"]))


class TestQueries:
    """Tests for list/count filters and ordering."""

    @pytest.mark.asyncio
    async def test_list_equality_and_in_filters(self, store):
        await store.insert(Collection.TEMPLATES, _template(template_type="standard"))
        await store.insert(Collection.TEMPLATES, _template(template_type="hybrid"))
        await store.insert(Collection.TEMPLATES, _template(template_type="flow_based"))

        hybrid = await store.list(Collection.TEMPLATES, {"template_type": "hybrid"})
        assert len(hybrid) == 1

        several = await store.list(
            Collection.TEMPLATES, {"template_type": ["hybrid", "flow_based"]}
        )
        assert {r["template_type"] for r in several} == {"hybrid", "flow_based"}

    @pytest.mark.asyncio
    async def test_list_ordering_and_limit(self, store):
        template_id = (await store.insert(Collection.TEMPLATES, _template()))["id"]
        for order in (2, 3, 1):
            await store.insert(
                Collection.STAGES,
                _child("template_id", template_id, "stage_order", order, name=f"S{order}"),
            )

        rows = await store.list(
            Collection.STAGES, {"template_id": template_id}, order_by="stage_order"
        )
        assert [r["stage_order"] for r in rows] == [1, 2, 3]

        top = await store.list(
            Collection.STAGES,
            {"template_id": template_id},
            order_by="stage_order",
            descending=True,
            limit=1,
        )
        assert [r["stage_order"] for r in top] == [3]

    @pytest.mark.asyncio
    async def test_range_filter_is_half_open(self, store):
        await store.insert(Collection.TEMPLATES, _template(created_at="2026-03-01T00:00:00+00:00"))
        await store.insert(Collection.TEMPLATES, _template(created_at="2026-03-31T23:59:59+00:00"))
        await store.insert(Collection.TEMPLATES, _template(created_at="2026-04-01T00:00:00+00:00"))

        count = await store.count_where(
            Collection.TEMPLATES, {"created_at": Range(gte="2026-03-01", lt="2026-03-32")}
        )
        assert count == 2

    @pytest.mark.asyncio
    async def test_list_by_parent_ids(self, store):
        _, stage_id, task_id, step_id, _ = await _tree(store)

        assert await store.list_by_parent_ids(Collection.STEPS, "task_id", [], "step_order") == []
        steps = await store.list_by_parent_ids(
            Collection.STEPS, "task_id", [task_id, "other"], "step_order"
        )
        assert [s["id"] for s in steps] == [step_id]


class TestDeleteAndUpsert:
    """Tests for cascading deletes and upserts."""

    @pytest.mark.asyncio
    async def test_delete_cascades_to_descendants(self, store):
        template_id, stage_id, task_id, step_id, element_id = await _tree(store)

        assert await store.delete(Collection.STAGES, stage_id) is True

        assert await store.get(Collection.TEMPLATES, template_id) is not None
        assert await store.get(Collection.TASKS, task_id) is None
        assert await store.get(Collection.STEPS, step_id) is None
        assert await store.get(Collection.ELEMENTS, element_id) is None

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, store):
        assert await store.delete(Collection.STAGES, "missing") is False

    @pytest.mark.asyncio
    async def test_upsert_updates_existing_row_on_conflict(self, store):
        template_id, _, _, step_id, _ = await _tree(store)
        instance = await store.insert(
            Collection.INSTANCES,
            _child("template_id", template_id, "status", "draft", name="Run 1"),
        )
        key = ("instance_id", "step_id", "element_key")

        first = await store.upsert(
            Collection.STEP_DATA,
            {
                "id": generate_id(),
                "instance_id": instance["id"],
                "step_id": step_id,
                "element_key": "company",
                "element_value": "Acme",
                "created_at": "2026-01-01T00:00:00+00:00",
                "updated_at": "2026-01-01T00:00:00+00:00",
            },
            key,
        )
        second = await store.upsert(
            Collection.STEP_DATA,
            {
                "id": generate_id(),
                "instance_id": instance["id"],
                "step_id": step_id,
                "element_key": "company",
                "element_value": {"name": "Acme Corp"},
                "created_at": "2026-02-01T00:00:00+00:00",
                "updated_at": "2026-02-01T00:00:00+00:00",
            },
            key,
        )

        assert second["id"] == first["id"]
        assert second["created_at"] == "2026-01-01T00:00:00+00:00"
        assert second["element_value"] == {"name": "Acme Corp"}
        assert await store.count_where(Collection.STEP_DATA, {"instance_id": instance["id"]}) == 1

    @pytest.mark.asyncio
    async def test_count_where_null_filter(self, store):
        template_id = (await store.insert(Collection.TEMPLATES, _template()))["id"]
        await store.insert(
            Collection.INSTANCES,
            _child("template_id", template_id, "status", "draft", name="A", completed_at=None),
        )
        await store.insert(
            Collection.INSTANCES,
            _child(
                "template_id",
                template_id,
                "status",
                "completed",
                name="B",
                completed_at="2026-05-01T00:00:00+00:00",
            ),
        )

        assert await store.count_where(Collection.INSTANCES, {"completed_at": None}) == 1


class TestRoles:
    """Tests for role assignment."""

    @pytest.mark.asyncio
    async def test_assign_role_is_idempotent(self, store):
        await store.assign_role("user-1", "ADMIN")
        await store.assign_role("user-1", "ADMIN")

        assert await store.get_roles("user-1") == ["ADMIN"]
        assert await store.get_roles("user-2") == []
