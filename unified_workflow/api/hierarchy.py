"""Stage / Task / Step / Element API routes."""

from fastapi import APIRouter

from unified_workflow.api.deps import Actor, Service
from unified_workflow.models import (
    Element,
    ElementCreate,
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

router = APIRouter()


# =============================================================================
# Stages
# =============================================================================


@router.get("/templates/{template_id}/stages")
async def list_stages(template_id: str, service: Service) -> list[Stage]:
    return await service.stages.list_children(template_id)


@router.get("/stages/{stage_id}")
async def get_stage(stage_id: str, service: Service) -> Stage:
    return await service.stages.get(stage_id)


@router.post("/templates/{template_id}/stages", status_code=201)
async def create_stage(template_id: str, request: StageCreate, service: Service) -> Stage:
    return await service.stages.create(template_id, request)


@router.patch("/stages/{stage_id}")
async def update_stage(
    stage_id: str, update: StageUpdate, service: Service, actor: Actor
) -> Stage:
    return await service.stages.update(stage_id, update, actor)


@router.delete("/stages/{stage_id}")
async def delete_stage(stage_id: str, service: Service, actor: Actor) -> dict[str, bool]:
    return {"deleted": await service.stages.delete(stage_id, actor)}


# =============================================================================
# Tasks
# =============================================================================


@router.get("/stages/{stage_id}/tasks")
async def list_tasks(stage_id: str, service: Service) -> list[Task]:
    return await service.tasks.list_children(stage_id)


@router.get("/tasks/{task_id}")
async def get_task(task_id: str, service: Service) -> Task:
    return await service.tasks.get(task_id)


@router.post("/stages/{stage_id}/tasks", status_code=201)
async def create_task(stage_id: str, request: TaskCreate, service: Service) -> Task:
    return await service.tasks.create(stage_id, request)


@router.patch("/tasks/{task_id}")
async def update_task(
    task_id: str, update: TaskUpdate, service: Service, actor: Actor
) -> Task:
    return await service.tasks.update(task_id, update, actor)


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str, service: Service, actor: Actor) -> dict[str, bool]:
    return {"deleted": await service.tasks.delete(task_id, actor)}


# =============================================================================
# Steps
# =============================================================================


@router.get("/tasks/{task_id}/steps")
async def list_steps(task_id: str, service: Service) -> list[Step]:
    return await service.steps.list_children(task_id)


@router.get("/steps/{step_id}")
async def get_step(step_id: str, service: Service) -> Step:
    return await service.steps.get(step_id)


@router.post("/tasks/{task_id}/steps", status_code=201)
async def create_step(task_id: str, request: StepCreate, service: Service) -> Step:
    return await service.steps.create(task_id, request)


@router.patch("/steps/{step_id}")
async def update_step(
    step_id: str, update: StepUpdate, service: Service, actor: Actor
) -> Step:
    return await service.steps.update(step_id, update, actor)


@router.delete("/steps/{step_id}")
async def delete_step(step_id: str, service: Service, actor: Actor) -> dict[str, bool]:
    return {"deleted": await service.steps.delete(step_id, actor)}


# =============================================================================
# Elements
# =============================================================================


@router.get("/steps/{step_id}/elements")
async def list_elements(step_id: str, service: Service) -> list[Element]:
    return await service.elements.list_children(step_id)


@router.get("/elements/{element_id}")
async def get_element(element_id: str, service: Service) -> Element:
    return await service.elements.get(element_id)


@router.post("/steps/{step_id}/elements", status_code=201)
async def create_element(
    step_id: str, request: ElementCreate, service: Service
) -> Element:
    return await service.elements.create(step_id, request)


@router.patch("/elements/{element_id}")
async def update_element(
    element_id: str, update: ElementUpdate, service: Service, actor: Actor
) -> Element:
    return await service.elements.update(element_id, update, actor)


@router.delete("/elements/{element_id}")
async def delete_element(
    element_id: str, service: Service, actor: Actor
) -> dict[str, bool]:
    return {"deleted": await service.elements.delete(element_id, actor)}
