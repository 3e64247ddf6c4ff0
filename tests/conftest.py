"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from unified_workflow.config import Settings
from unified_workflow.db import InMemoryRepository, SQLiteRepository, connect
from unified_workflow.db.repository import Collection
from unified_workflow.main import app
from unified_workflow.models import (
    StageCreate,
    StepCreate,
    TaskCreate,
    TemplateCreate,
)
from unified_workflow.services import WorkflowService

OWNER = "user-owner"
OTHER_USER = "user-other"
ADMIN_USER = "user-admin"


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
async def service(repository) -> AsyncGenerator[WorkflowService, None]:
    """A WorkflowService over the in-memory store."""
    svc = WorkflowService(repository, Settings())
    yield svc
    await svc.close()


@pytest.fixture
async def sqlite_repository() -> AsyncGenerator[SQLiteRepository, None]:
    """A SQLiteRepository on a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    db = await connect(db_path)
    yield SQLiteRepository(db)

    await db.close()
    os.unlink(db_path)


@pytest.fixture
async def sqlite_service(sqlite_repository) -> AsyncGenerator[WorkflowService, None]:
    svc = WorkflowService(sqlite_repository)
    yield svc
    await svc.close()


@pytest.fixture
async def client(sqlite_service) -> AsyncGenerator[AsyncClient, None]:
    """Async test client bound to a SQLite-backed service."""
    app.state.service = sqlite_service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


async def build_template(
    service: WorkflowService,
    steps_per_task: int = 2,
    publish: bool = True,
    name: str = "Client Onboarding",
):
    """Create a template with 1 stage -> 1 task -> ``steps_per_task`` steps.

    Returns (template, stage, task, steps).
    """
    template = await service.templates.create_template(
        TemplateCreate(name=name, template_type="standard", created_by=OWNER)
    )
    stage = await service.stages.create(
        template.id, StageCreate(name="Kickoff", created_by=OWNER)
    )
    task = await service.tasks.create(
        stage.id, TaskCreate(name="Collect details", created_by=OWNER)
    )
    steps = [
        await service.steps.create(
            task.id, StepCreate(name=f"Step {i + 1}", created_by=OWNER)
        )
        for i in range(steps_per_task)
    ]
    if publish:
        await service.repository.update(
            Collection.TEMPLATES, template.id, {"is_published": True}
        )
    return template, stage, task, steps
