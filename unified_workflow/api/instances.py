"""Instance API routes: start, inspect, advance and submit data."""

from fastapi import APIRouter

from unified_workflow.api.deps import Actor, Service
from unified_workflow.errors import NotFoundError
from unified_workflow.models import (
    ExecutionContext,
    Instance,
    InstanceStatus,
    InstanceWithProgress,
    ProgressUpdate,
    StepData,
    StepDataSubmission,
)

router = APIRouter()


@router.post("/templates/{template_id}/instances", status_code=201)
async def create_instance(
    template_id: str, context: ExecutionContext, service: Service
) -> Instance:
    """Start a draft instance of a published template."""
    return await service.instances.create_instance(template_id, context)


@router.get("/templates/{template_id}/instances")
async def list_instances(
    template_id: str, service: Service, status: InstanceStatus | None = None
) -> list[Instance]:
    """List a template's instances, newest first."""
    return await service.instances.list_instances(template_id, status)


@router.get("/instances/{instance_id}")
async def get_instance(instance_id: str, service: Service) -> InstanceWithProgress:
    """Get an instance with its current position, submissions and progress roll-up."""
    instance = await service.instances.get_instance_with_progress(instance_id)
    if instance is None:
        raise NotFoundError("Instance", instance_id)
    return instance


@router.patch("/instances/{instance_id}/progress")
async def update_progress(
    instance_id: str, update: ProgressUpdate, service: Service
) -> Instance:
    """Update position, completion percentage or status."""
    return await service.instances.update_progress(instance_id, update)


@router.post("/instances/{instance_id}/steps/{step_id}/data")
async def submit_step_data(
    instance_id: str, step_id: str, submission: StepDataSubmission, service: Service
) -> StepData:
    """Submit an element value for a step; progress is recomputed."""
    return await service.instances.submit_step_data(instance_id, step_id, submission)


@router.post("/instances/{instance_id}/recompute")
async def recompute_progress(
    instance_id: str, service: Service, actor: Actor
) -> Instance:
    """Recompute the completion percentage from submitted step data."""
    return await service.progress.recompute(instance_id, actor)
