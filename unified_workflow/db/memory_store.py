"""InMemoryRepository - dict-backed EntityRepository.

Implements the same contract as the SQLite store, including cascading
deletes, so services can run without a database (tests, embedding).
"""

from __future__ import annotations

import copy
from typing import Any

from unified_workflow.db.repository import (
    CASCADES,
    Collection,
    EntityRepository,
    Filters,
    Range,
)
from unified_workflow.errors import NotFoundError, RepositoryError

_IMMUTABLE_ON_UPSERT = frozenset({"id", "created_at", "created_by"})


def _matches(row: dict[str, Any], filters: Filters | None) -> bool:
    if not filters:
        return True
    for key, expected in filters.items():
        value = row.get(key)
        if expected is None:
            if value is not None:
                return False
        elif isinstance(expected, Range):
            if not expected.matches(value):
                return False
        elif isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


class InMemoryRepository(EntityRepository):
    """Entity storage held in process memory."""

    def __init__(self) -> None:
        self._rows: dict[Collection, dict[str, dict[str, Any]]] = {
            collection: {} for collection in Collection
        }
        self._roles: dict[str, set[str]] = {}

    def _sorted(
        self,
        rows: list[dict[str, Any]],
        order_by: str | None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        if order_by is None:
            return rows
        return sorted(
            rows,
            key=lambda r: (r.get(order_by) is None, r.get(order_by)),
            reverse=descending,
        )

    # ==================== Reads ====================

    async def get(self, collection: Collection, entity_id: str) -> dict[str, Any] | None:
        row = self._rows[collection].get(entity_id)
        return copy.deepcopy(row) if row is not None else None

    async def list(
        self,
        collection: Collection,
        filters: Filters | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        rows = [r for r in self._rows[collection].values() if _matches(r, filters)]
        rows = self._sorted(rows, order_by, descending)
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def list_by_parent_ids(
        self,
        collection: Collection,
        parent_field: str,
        parent_ids: list[str],
        order_by: str,
    ) -> list[dict[str, Any]]:
        if not parent_ids:
            return []
        return await self.list(collection, {parent_field: set(parent_ids)}, order_by=order_by)

    async def count_where(self, collection: Collection, filters: Filters) -> int:
        return sum(1 for r in self._rows[collection].values() if _matches(r, filters))

    # ==================== Writes ====================

    async def insert(self, collection: Collection, row: dict[str, Any]) -> dict[str, Any]:
        entity_id = row["id"]
        if entity_id in self._rows[collection]:
            raise RepositoryError(f"Duplicate {collection.value} id {entity_id}")
        self._rows[collection][entity_id] = copy.deepcopy(row)
        return copy.deepcopy(row)

    async def update(
        self, collection: Collection, entity_id: str, partial: dict[str, Any]
    ) -> dict[str, Any]:
        current = self._rows[collection].get(entity_id)
        if current is None:
            raise NotFoundError(collection.value, entity_id)
        current.update(copy.deepcopy(partial))
        return copy.deepcopy(current)

    async def upsert(
        self,
        collection: Collection,
        row: dict[str, Any],
        conflict_keys: tuple[str, ...],
    ) -> dict[str, Any]:
        key_filter = {k: row[k] for k in conflict_keys}
        for existing in self._rows[collection].values():
            if _matches(existing, key_filter):
                existing.update(
                    {
                        k: copy.deepcopy(v)
                        for k, v in row.items()
                        if k not in _IMMUTABLE_ON_UPSERT
                    }
                )
                return copy.deepcopy(existing)
        return await self.insert(collection, row)

    async def delete(self, collection: Collection, entity_id: str) -> bool:
        row = self._rows[collection].pop(entity_id, None)
        if row is None:
            return False
        self._cascade(collection, entity_id)
        return True

    def _cascade(self, collection: Collection, entity_id: str) -> None:
        for child, foreign_key in CASCADES.get(collection, []):
            child_ids = [
                cid for cid, r in self._rows[child].items() if r.get(foreign_key) == entity_id
            ]
            for child_id in child_ids:
                if self._rows[child].pop(child_id, None) is not None:
                    self._cascade(child, child_id)

    # ==================== Roles ====================

    async def get_roles(self, user_id: str) -> list[str]:
        return sorted(self._roles.get(user_id, set()))

    async def assign_role(self, user_id: str, role_name: str) -> None:
        self._roles.setdefault(user_id, set()).add(role_name)
