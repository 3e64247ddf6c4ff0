"""Pydantic models for workflow execution instances and step submissions."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from unified_workflow.models.hierarchy import Stage, Step, Task
from unified_workflow.models.template import Template


class InstanceStatus(str, Enum):
    """Status of a workflow instance."""

    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"


# Allowed status transitions; same-status updates are always accepted.
STATUS_TRANSITIONS: dict[InstanceStatus, frozenset[InstanceStatus]] = {
    InstanceStatus.DRAFT: frozenset(
        {
            InstanceStatus.ACTIVE,
            InstanceStatus.COMPLETED,
            InstanceStatus.ON_HOLD,
            InstanceStatus.CANCELLED,
        }
    ),
    InstanceStatus.ACTIVE: frozenset(
        {InstanceStatus.COMPLETED, InstanceStatus.ON_HOLD, InstanceStatus.CANCELLED}
    ),
    InstanceStatus.ON_HOLD: frozenset(
        {InstanceStatus.ACTIVE, InstanceStatus.COMPLETED, InstanceStatus.CANCELLED}
    ),
    InstanceStatus.COMPLETED: frozenset(),
    InstanceStatus.CANCELLED: frozenset(),
}


class Instance(BaseModel):
    """One concrete, trackable execution of a template."""

    id: str
    template_id: str
    name: str
    description: str | None = None
    project_id: str | None = None
    client_id: str | None = None
    status: InstanceStatus = InstanceStatus.DRAFT
    current_stage_id: str | None = None
    current_task_id: str | None = None
    current_step_id: str | None = None
    completion_percentage: int = Field(default=0, ge=0, le=100)
    started_at: str | None = None
    completed_at: str | None = None
    due_date: str | None = None
    assigned_to: str | None = None
    instance_data: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    updated_at: str
    created_by: str | None = None
    updated_by: str | None = None


class ExecutionContext(BaseModel):
    """Request model for starting an instance of a template."""

    name: str
    description: str | None = None
    project_id: str | None = None
    client_id: str | None = None
    assigned_to: str | None = None
    due_date: str | None = None
    instance_data: dict[str, Any] = Field(default_factory=dict)
    created_by: str


class ProgressUpdate(BaseModel):
    """Partial update to an instance's position, percentage or status."""

    current_stage_id: str | None = None
    current_task_id: str | None = None
    current_step_id: str | None = None
    completion_percentage: int | None = Field(default=None, ge=0, le=100)
    status: InstanceStatus | None = None
    updated_by: str


class StepData(BaseModel):
    """Value submitted for one element of one step during one instance."""

    id: str
    instance_id: str
    step_id: str
    element_key: str
    element_value: Any = None
    data_type: str | None = None
    is_valid: bool = True
    submitted_at: str | None = None
    submitted_by: str | None = None
    created_at: str
    updated_at: str


class StepDataSubmission(BaseModel):
    """Request model for submitting an element value."""

    element_key: str
    element_value: Any = None
    data_type: str | None = None
    submitted_by: str


class ProgressDetails(BaseModel):
    """Stage/task/step completion roll-up for an instance."""

    stages_completed: int = 0
    total_stages: int = 0
    tasks_completed: int = 0
    total_tasks: int = 0
    steps_completed: int = 0
    total_steps: int = 0


class InstanceWithProgress(Instance):
    """Instance joined with its template, current position and submissions."""

    template: Template
    current_stage: Stage | None = None
    current_task: Task | None = None
    current_step: Step | None = None
    step_data: list[StepData] = Field(default_factory=list)
    progress_details: ProgressDetails
