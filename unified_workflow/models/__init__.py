"""Pydantic models for the Unified Workflow Engine."""

from unified_workflow.models.analytics import MonthlyUsage, TemplateAnalytics
from unified_workflow.models.hierarchy import (
    Element,
    ElementCreate,
    ElementType,
    ElementUpdate,
    Stage,
    StageCreate,
    StageUpdate,
    Step,
    StepCreate,
    StepType,
    StepUpdate,
    Task,
    TaskCreate,
    TaskType,
    TaskUpdate,
)
from unified_workflow.models.instance import (
    ExecutionContext,
    Instance,
    InstanceStatus,
    InstanceWithProgress,
    ProgressDetails,
    ProgressUpdate,
    StepData,
    StepDataSubmission,
)
from unified_workflow.models.template import (
    OmittedBatch,
    Template,
    TemplateCreate,
    TemplateFilters,
    TemplateSummary,
    TemplateTree,
    TemplateType,
    TemplateUpdate,
)

__all__ = [
    # Templates
    "Template",
    "TemplateCreate",
    "TemplateUpdate",
    "TemplateFilters",
    "TemplateSummary",
    "TemplateTree",
    "TemplateType",
    "OmittedBatch",
    # Hierarchy
    "Stage",
    "StageCreate",
    "StageUpdate",
    "Task",
    "TaskCreate",
    "TaskType",
    "TaskUpdate",
    "Step",
    "StepCreate",
    "StepType",
    "StepUpdate",
    "Element",
    "ElementCreate",
    "ElementType",
    "ElementUpdate",
    # Execution
    "Instance",
    "InstanceStatus",
    "InstanceWithProgress",
    "ExecutionContext",
    "ProgressUpdate",
    "ProgressDetails",
    "StepData",
    "StepDataSubmission",
    # Analytics
    "MonthlyUsage",
    "TemplateAnalytics",
]
