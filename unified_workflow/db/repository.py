"""EntityRepository - storage abstraction for the workflow collections.

Services only talk to this interface. Rows are plain dicts keyed by column
name; JSON payload columns come back already decoded.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Collection(str, Enum):
    """Persisted collections."""

    TEMPLATES = "templates"
    STAGES = "stages"
    TASKS = "tasks"
    STEPS = "steps"
    ELEMENTS = "elements"
    INSTANCES = "instances"
    STEP_DATA = "step_data"


@dataclass(frozen=True)
class Range:
    """Half-open range filter: ``gte <= value < lt``. Either bound may be omitted."""

    gte: Any = None
    lt: Any = None

    def matches(self, value: Any) -> bool:
        if value is None:
            return False
        if self.gte is not None and value < self.gte:
            return False
        if self.lt is not None and value >= self.lt:
            return False
        return True


# Child collections removed when a parent row is deleted: parent -> [(child, fk)]
CASCADES: dict[Collection, list[tuple[Collection, str]]] = {
    Collection.TEMPLATES: [
        (Collection.STAGES, "template_id"),
        (Collection.INSTANCES, "template_id"),
    ],
    Collection.STAGES: [(Collection.TASKS, "stage_id")],
    Collection.TASKS: [(Collection.STEPS, "task_id")],
    Collection.STEPS: [
        (Collection.ELEMENTS, "step_id"),
        (Collection.STEP_DATA, "step_id"),
    ],
    Collection.INSTANCES: [(Collection.STEP_DATA, "instance_id")],
}

# Columns holding JSON documents
JSON_COLUMNS: dict[Collection, frozenset[str]] = {
    Collection.TEMPLATES: frozenset({"tags"}),
    Collection.STAGES: frozenset({"condition_logic"}),
    Collection.TASKS: frozenset({"condition_logic", "depends_on_task_ids"}),
    Collection.STEPS: frozenset({"condition_logic", "validation_rules"}),
    Collection.ELEMENTS: frozenset({"config", "validation_rules", "condition_logic"}),
    Collection.INSTANCES: frozenset({"instance_data"}),
    Collection.STEP_DATA: frozenset({"element_value"}),
}

# Columns stored as 0/1 integers by SQL engines
BOOL_COLUMNS: dict[Collection, frozenset[str]] = {
    Collection.TEMPLATES: frozenset(
        {
            "requires_products_services",
            "auto_create_project",
            "client_visible",
            "is_active",
            "is_published",
        }
    ),
    Collection.STAGES: frozenset(
        {"is_required", "allow_skip", "auto_advance", "client_visible"}
    ),
    Collection.TASKS: frozenset(
        {"is_required", "allow_skip", "auto_advance", "client_visible"}
    ),
    Collection.STEPS: frozenset(
        {
            "is_required",
            "allow_skip",
            "auto_advance",
            "show_progress",
            "allow_back_navigation",
            "save_progress",
            "client_visible",
        }
    ),
    Collection.ELEMENTS: frozenset({"is_required", "client_visible"}),
    Collection.INSTANCES: frozenset(),
    Collection.STEP_DATA: frozenset({"is_valid"}),
}

Filters = dict[str, Any]


def generate_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def now_iso() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


class EntityRepository(ABC):
    """Typed read/write access to the workflow collections.

    Filter values are matched by equality; a ``list``/``tuple`` value means
    "any of", a :class:`Range` value is a half-open range, and ``None``
    matches missing values.
    """

    @abstractmethod
    async def get(self, collection: Collection, entity_id: str) -> dict[str, Any] | None:
        """Fetch one row by ID, or None if absent."""

    @abstractmethod
    async def list(
        self,
        collection: Collection,
        filters: Filters | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """List rows matching all filters."""

    @abstractmethod
    async def list_by_parent_ids(
        self,
        collection: Collection,
        parent_field: str,
        parent_ids: list[str],
        order_by: str,
    ) -> list[dict[str, Any]]:
        """Batched IN-style fetch of the children of many parents."""

    @abstractmethod
    async def insert(self, collection: Collection, row: dict[str, Any]) -> dict[str, Any]:
        """Insert a row and return it as stored."""

    @abstractmethod
    async def update(
        self, collection: Collection, entity_id: str, partial: dict[str, Any]
    ) -> dict[str, Any]:
        """Apply a partial update and return the full row.

        Raises:
            NotFoundError: If no row has this ID.
        """

    @abstractmethod
    async def upsert(
        self,
        collection: Collection,
        row: dict[str, Any],
        conflict_keys: tuple[str, ...],
    ) -> dict[str, Any]:
        """Insert a row, or update the existing row sharing ``conflict_keys``.

        On conflict the existing row keeps its ``id``, ``created_at`` and
        ``created_by``.
        """

    @abstractmethod
    async def delete(self, collection: Collection, entity_id: str) -> bool:
        """Delete a row and, by cascade, its descendants."""

    @abstractmethod
    async def count_where(self, collection: Collection, filters: Filters) -> int:
        """Count rows matching all filters."""

    @abstractmethod
    async def get_roles(self, user_id: str) -> list[str]:
        """Role names assigned to a user."""

    @abstractmethod
    async def assign_role(self, user_id: str, role_name: str) -> None:
        """Grant a role to a user (idempotent)."""
