"""Database module."""

from unified_workflow.db.database import close_database, connect, get_db, init_database
from unified_workflow.db.memory_store import InMemoryRepository
from unified_workflow.db.repository import Collection, EntityRepository, Range
from unified_workflow.db.sqlite_store import SQLiteRepository

__all__ = [
    "get_db",
    "connect",
    "init_database",
    "close_database",
    "Collection",
    "EntityRepository",
    "Range",
    "InMemoryRepository",
    "SQLiteRepository",
]
