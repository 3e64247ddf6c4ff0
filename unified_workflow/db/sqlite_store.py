"""SQLiteRepository - EntityRepository backed by aiosqlite."""

from __future__ import annotations

import json
import re
import sqlite3
from typing import Any

import aiosqlite

from unified_workflow.db.repository import (
    BOOL_COLUMNS,
    JSON_COLUMNS,
    Collection,
    EntityRepository,
    Filters,
    Range,
)
from unified_workflow.errors import BackendTimeout, NotFoundError, RepositoryError

TABLES: dict[Collection, str] = {
    Collection.TEMPLATES: "workflow_templates",
    Collection.STAGES: "workflow_stages",
    Collection.TASKS: "workflow_tasks",
    Collection.STEPS: "workflow_steps",
    Collection.ELEMENTS: "workflow_elements",
    Collection.INSTANCES: "workflow_instances",
    Collection.STEP_DATA: "workflow_step_data",
}

# Column names are interpolated into SQL, so only plain identifiers are allowed
_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

# Preserved on upsert conflicts
_IMMUTABLE_ON_UPSERT = frozenset({"id", "created_at", "created_by"})

_TIMEOUT_MARKERS = ("locked", "busy", "timeout", "interrupted")


def _column(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid column name: {name!r}")
    return name


def _where(filters: Filters | None) -> tuple[str, list[Any]]:
    """Build a WHERE clause (including the keyword) from a filter dict."""
    if not filters:
        return "", []

    clauses: list[str] = []
    params: list[Any] = []
    for key, value in filters.items():
        col = _column(key)
        if value is None:
            clauses.append(f"{col} IS NULL")
        elif isinstance(value, Range):
            if value.gte is not None:
                clauses.append(f"{col} >= ?")
                params.append(value.gte)
            if value.lt is not None:
                clauses.append(f"{col} < ?")
                params.append(value.lt)
        elif isinstance(value, (list, tuple, set, frozenset)):
            if not value:
                clauses.append("0")
                continue
            placeholders = ", ".join("?" for _ in value)
            clauses.append(f"{col} IN ({placeholders})")
            params.extend(value)
        else:
            clauses.append(f"{col} = ?")
            params.append(value)

    return " WHERE " + " AND ".join(clauses), params


class SQLiteRepository(EntityRepository):
    """Storage for the workflow collections on a single aiosqlite connection."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    # ==================== Helpers ====================

    async def _execute(self, sql: str, params: list[Any] | tuple[Any, ...] = ()) -> aiosqlite.Cursor:
        """Execute a statement, mapping driver errors onto the workflow taxonomy."""
        try:
            return await self._db.execute(sql, params)
        except sqlite3.OperationalError as e:
            message = str(e).lower()
            if any(marker in message for marker in _TIMEOUT_MARKERS):
                raise BackendTimeout() from e
            raise RepositoryError(str(e)) from e
        except sqlite3.DatabaseError as e:
            raise RepositoryError(str(e)) from e

    @staticmethod
    def _encode(collection: Collection, row: dict[str, Any]) -> dict[str, Any]:
        json_cols = JSON_COLUMNS[collection]
        encoded = {}
        for key, value in row.items():
            if key in json_cols:
                encoded[key] = json.dumps(value)
            else:
                encoded[key] = value
        return encoded

    @staticmethod
    def _decode(collection: Collection, row: aiosqlite.Row) -> dict[str, Any]:
        decoded = dict(row)
        for key in JSON_COLUMNS[collection]:
            if decoded.get(key) is not None:
                decoded[key] = json.loads(decoded[key])
        for key in BOOL_COLUMNS[collection]:
            if decoded.get(key) is not None:
                decoded[key] = bool(decoded[key])
        return decoded

    async def _fetch_all(
        self, collection: Collection, sql: str, params: list[Any]
    ) -> list[dict[str, Any]]:
        cursor = await self._execute(sql, params)
        rows = await cursor.fetchall()
        return [self._decode(collection, row) for row in rows]

    async def _commit(self) -> None:
        try:
            await self._db.commit()
        except sqlite3.OperationalError as e:
            raise BackendTimeout() from e

    # ==================== Reads ====================

    async def get(self, collection: Collection, entity_id: str) -> dict[str, Any] | None:
        rows = await self._fetch_all(
            collection, f"SELECT * FROM {TABLES[collection]} WHERE id = ?", [entity_id]
        )
        return rows[0] if rows else None

    async def list(
        self,
        collection: Collection,
        filters: Filters | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        where, params = _where(filters)
        sql = f"SELECT * FROM {TABLES[collection]}{where}"
        if order_by:
            sql += f" ORDER BY {_column(order_by)} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return await self._fetch_all(collection, sql, params)

    async def list_by_parent_ids(
        self,
        collection: Collection,
        parent_field: str,
        parent_ids: list[str],
        order_by: str,
    ) -> list[dict[str, Any]]:
        if not parent_ids:
            return []
        return await self.list(
            collection, {parent_field: list(parent_ids)}, order_by=order_by
        )

    async def count_where(self, collection: Collection, filters: Filters) -> int:
        where, params = _where(filters)
        cursor = await self._execute(
            f"SELECT COUNT(*) AS n FROM {TABLES[collection]}{where}", params
        )
        row = await cursor.fetchone()
        return int(row["n"]) if row else 0

    # ==================== Writes ====================

    async def insert(self, collection: Collection, row: dict[str, Any]) -> dict[str, Any]:
        encoded = self._encode(collection, row)
        columns = [_column(c) for c in encoded]
        placeholders = ", ".join("?" for _ in columns)
        await self._execute(
            f"INSERT INTO {TABLES[collection]} ({', '.join(columns)}) VALUES ({placeholders})",
            list(encoded.values()),
        )
        await self._commit()

        stored = await self.get(collection, row["id"])
        if stored is None:
            raise RepositoryError(f"Inserted {collection.value} row {row['id']} not readable")
        return stored

    async def update(
        self, collection: Collection, entity_id: str, partial: dict[str, Any]
    ) -> dict[str, Any]:
        if partial:
            encoded = self._encode(collection, partial)
            assignments = ", ".join(f"{_column(c)} = ?" for c in encoded)
            cursor = await self._execute(
                f"UPDATE {TABLES[collection]} SET {assignments} WHERE id = ?",
                [*encoded.values(), entity_id],
            )
            await self._commit()
            if cursor.rowcount == 0:
                raise NotFoundError(collection.value, entity_id)

        stored = await self.get(collection, entity_id)
        if stored is None:
            raise NotFoundError(collection.value, entity_id)
        return stored

    async def upsert(
        self,
        collection: Collection,
        row: dict[str, Any],
        conflict_keys: tuple[str, ...],
    ) -> dict[str, Any]:
        encoded = self._encode(collection, row)
        columns = [_column(c) for c in encoded]
        placeholders = ", ".join("?" for _ in columns)
        keys = [_column(k) for k in conflict_keys]
        updates = ", ".join(
            f"{c} = excluded.{c}"
            for c in columns
            if c not in _IMMUTABLE_ON_UPSERT and c not in keys
        )
        await self._execute(
            f"""
            INSERT INTO {TABLES[collection]} ({', '.join(columns)}) VALUES ({placeholders})
            ON CONFLICT({', '.join(keys)}) DO UPDATE SET {updates}
            """,
            list(encoded.values()),
        )
        await self._commit()

        stored = await self.list(collection, {k: row[k] for k in conflict_keys}, limit=1)
        if not stored:
            raise RepositoryError(f"Upserted {collection.value} row not readable")
        return stored[0]

    async def delete(self, collection: Collection, entity_id: str) -> bool:
        # Descendants go through ON DELETE CASCADE
        cursor = await self._execute(
            f"DELETE FROM {TABLES[collection]} WHERE id = ?", [entity_id]
        )
        await self._commit()
        return cursor.rowcount > 0

    # ==================== Roles ====================

    async def get_roles(self, user_id: str) -> list[str]:
        cursor = await self._execute(
            "SELECT role_name FROM user_roles WHERE user_id = ? ORDER BY role_name",
            [user_id],
        )
        rows = await cursor.fetchall()
        return [row["role_name"] for row in rows]

    async def assign_role(self, user_id: str, role_name: str) -> None:
        await self._execute(
            "INSERT OR IGNORE INTO user_roles (user_id, role_name) VALUES (?, ?)",
            [user_id, role_name],
        )
        await self._commit()
