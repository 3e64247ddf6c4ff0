"""Permission guard for mutating template operations.

Every Stage/Task/Step/Element/Template mutation is authorized against the
owning template: its creator, or any user holding an admin-tier role.
"""

import logging
from collections.abc import Iterable
from enum import Enum

from unified_workflow.db.repository import Collection, EntityRepository
from unified_workflow.errors import AuthorizationError, NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_ROLES = ("SUPER_ADMIN", "ADMIN")

# child collection -> (parent collection, foreign key, label)
_PARENTS: dict[Collection, tuple[Collection, str, str]] = {
    Collection.ELEMENTS: (Collection.STEPS, "step_id", "Step"),
    Collection.STEPS: (Collection.TASKS, "task_id", "Task"),
    Collection.TASKS: (Collection.STAGES, "stage_id", "Stage"),
    Collection.STAGES: (Collection.TEMPLATES, "template_id", "Template"),
}

_LABELS: dict[Collection, str] = {
    Collection.TEMPLATES: "Template",
    Collection.STAGES: "Stage",
    Collection.TASKS: "Task",
    Collection.STEPS: "Step",
    Collection.ELEMENTS: "Element",
}


class Action(str, Enum):
    """Actions a user can take on a template."""

    VIEW = "view"
    UPDATE = "update"
    DELETE = "delete"


async def owning_template_id(
    repository: EntityRepository, collection: Collection, entity_id: str
) -> str:
    """Walk parent links from any hierarchy level up to its template ID.

    Raises:
        NotFoundError: If the entity or any ancestor is missing.
    """
    current_collection, current_id = collection, entity_id
    row = await repository.get(current_collection, current_id)
    if row is None:
        raise NotFoundError(_LABELS[current_collection], current_id)

    while current_collection != Collection.TEMPLATES:
        parent_collection, foreign_key, label = _PARENTS[current_collection]
        parent_id = row[foreign_key]
        row = await repository.get(parent_collection, parent_id)
        if row is None:
            raise NotFoundError(label, parent_id)
        current_collection, current_id = parent_collection, parent_id

    return current_id


class PermissionGuard:
    """Owner-or-admin authorization, resolved through the owning template."""

    def __init__(
        self,
        repository: EntityRepository,
        admin_roles: Iterable[str] = DEFAULT_ADMIN_ROLES,
    ) -> None:
        self._repo = repository
        self._admin_roles = frozenset(admin_roles)

    async def authorize(self, template_id: str, user_id: str, action: Action) -> None:
        """Raise unless ``user_id`` owns the template or holds an admin role.

        Raises:
            NotFoundError: If the template does not exist.
            AuthorizationError: If the user may not perform ``action``.
        """
        template = await self._repo.get(Collection.TEMPLATES, template_id)
        if template is None:
            raise NotFoundError("Template", template_id)

        if template["created_by"] == user_id:
            return

        roles = await self._repo.get_roles(user_id)
        if self._admin_roles.intersection(roles):
            return

        logger.info(f"Denied {action.value} on template {template_id} to user {user_id}")
        raise AuthorizationError(user_id, action.value, template_id)

    async def owning_template_id(self, collection: Collection, entity_id: str) -> str:
        """Resolve the template that owns an entity at any hierarchy level."""
        return await owning_template_id(self._repo, collection, entity_id)

    async def authorize_entity(
        self, collection: Collection, entity_id: str, user_id: str, action: Action
    ) -> str:
        """Authorize against the entity's owning template and return its ID."""
        template_id = await self.owning_template_id(collection, entity_id)
        await self.authorize(template_id, user_id, action)
        return template_id
