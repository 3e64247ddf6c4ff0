"""WorkflowService - wires the workflow components around one repository.

Each component receives its collaborators through its constructor, so any
``EntityRepository`` (SQLite, in-memory) can back the whole engine.
"""

import logging

from unified_workflow.config import Settings
from unified_workflow.db.repository import EntityRepository
from unified_workflow.services.analytics import AnalyticsAggregator
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
from unified_workflow.services.permissions import PermissionGuard
from unified_workflow.services.template_manager import TemplateManager
from unified_workflow.services.template_touch import TemplateTouchQueue

logger = logging.getLogger(__name__)


class WorkflowService:
    """Container exposing the template, hierarchy, instance and analytics components."""

    def __init__(
        self, repository: EntityRepository, settings: Settings | None = None
    ) -> None:
        settings = settings or Settings()
        self.repository = repository
        self.settings = settings

        self.locks = KeyedLocks()
        self.guard = PermissionGuard(repository, settings.admin_roles)
        self.ordering = OrderingAssigner(repository, self.locks)
        self.toucher = TemplateTouchQueue(
            repository, max_attempts=settings.touch_max_attempts
        )
        self.loader = HierarchyLoader(
            repository,
            batch_size=settings.element_batch_size,
            batch_threshold=settings.element_batch_threshold,
        )

        hierarchy_deps = (repository, self.guard, self.ordering, self.toucher, self.locks)
        self.stages = StageManager(*hierarchy_deps)
        self.tasks = TaskManager(*hierarchy_deps)
        self.steps = StepManager(*hierarchy_deps)
        self.elements = ElementManager(*hierarchy_deps)

        self.templates = TemplateManager(
            repository,
            self.guard,
            self.loader,
            self.locks,
            self.stages,
            self.tasks,
            self.steps,
        )
        self.instances = InstanceManager(repository, self.loader, self.locks)
        self.progress = self.instances.progress
        self.analytics = AnalyticsAggregator(repository)

    async def close(self) -> None:
        """Wait for outstanding background template touches."""
        pending = self.toucher.pending
        await self.toucher.drain()
        if pending:
            logger.info(f"Drained {pending} pending template touch(es)")
