"""Workflow engine services."""

from unified_workflow.services.analytics import AnalyticsAggregator
from unified_workflow.services.dependency_graph import validate_dependencies
from unified_workflow.services.hierarchy_loader import HierarchyLoader
from unified_workflow.services.hierarchy_managers import (
    ElementManager,
    StageManager,
    StepManager,
    TaskManager,
)
from unified_workflow.services.instance_manager import InstanceManager
from unified_workflow.services.locks import KeyedLocks
from unified_workflow.services.ordering import OrderingAssigner
from unified_workflow.services.permissions import Action, PermissionGuard
from unified_workflow.services.progress import ProgressCalculator
from unified_workflow.services.template_manager import TemplateManager
from unified_workflow.services.template_touch import TemplateTouchQueue
from unified_workflow.services.workflow_service import WorkflowService

__all__ = [
    "Action",
    "AnalyticsAggregator",
    "ElementManager",
    "HierarchyLoader",
    "InstanceManager",
    "KeyedLocks",
    "OrderingAssigner",
    "PermissionGuard",
    "ProgressCalculator",
    "StageManager",
    "StepManager",
    "TaskManager",
    "TemplateManager",
    "TemplateTouchQueue",
    "WorkflowService",
    "validate_dependencies",
]
