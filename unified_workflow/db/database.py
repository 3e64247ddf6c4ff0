"""SQLite database connection and schema initialization."""

from pathlib import Path

import aiosqlite

# Global connection holder
_db_connection: aiosqlite.Connection | None = None


async def connect(db_path: str) -> aiosqlite.Connection:
    """Open a connection with row access by name and foreign keys enforced."""
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(db_path)
    db.row_factory = aiosqlite.Row

    # Cascading deletes rely on this
    await db.execute("PRAGMA foreign_keys = ON")
    await create_schema(db)
    return db


async def init_database(db_path: str) -> None:
    """Initialize the global database connection and create schema."""
    global _db_connection
    _db_connection = await connect(db_path)


async def close_database() -> None:
    """Close the database connection."""
    global _db_connection
    if _db_connection:
        await _db_connection.close()
        _db_connection = None


async def get_db() -> aiosqlite.Connection:
    """Get the database connection."""
    if _db_connection is None:
        raise RuntimeError("Database not initialized. Call init_database first.")
    return _db_connection


async def create_schema(db: aiosqlite.Connection) -> None:
    """Create database tables and indexes."""
    # =========================================================================
    # Templates
    # =========================================================================
    await db.execute("""
        CREATE TABLE IF NOT EXISTS workflow_templates (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            description TEXT,
            template_type TEXT NOT NULL,
            icon TEXT,
            color TEXT,
            category TEXT,
            tags TEXT NOT NULL DEFAULT '[]',
            requires_products_services INTEGER NOT NULL DEFAULT 0,
            auto_create_project INTEGER NOT NULL DEFAULT 1,
            estimated_duration_minutes INTEGER,
            client_visible INTEGER NOT NULL DEFAULT 1,
            client_description TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            is_published INTEGER NOT NULL DEFAULT 0,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            created_by TEXT NOT NULL,
            updated_by TEXT
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_templates_listing
        ON workflow_templates(is_active, is_published, updated_at)
    """)

    # =========================================================================
    # Hierarchy: stages -> tasks -> steps -> elements
    # =========================================================================
    await db.execute("""
        CREATE TABLE IF NOT EXISTS workflow_stages (
            id TEXT PRIMARY KEY,
            template_id TEXT NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            stage_order INTEGER NOT NULL,
            is_required INTEGER NOT NULL DEFAULT 1,
            allow_skip INTEGER NOT NULL DEFAULT 0,
            auto_advance INTEGER NOT NULL DEFAULT 0,
            client_visible INTEGER NOT NULL DEFAULT 1,
            client_description TEXT,
            condition_logic TEXT NOT NULL DEFAULT '{}',
            icon TEXT,
            color TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            created_by TEXT,
            updated_by TEXT,
            FOREIGN KEY (template_id) REFERENCES workflow_templates(id) ON DELETE CASCADE
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_stages_template_order
        ON workflow_stages(template_id, stage_order)
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS workflow_tasks (
            id TEXT PRIMARY KEY,
            stage_id TEXT NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            task_order INTEGER NOT NULL,
            task_type TEXT NOT NULL DEFAULT 'standard',
            is_required INTEGER NOT NULL DEFAULT 1,
            allow_skip INTEGER NOT NULL DEFAULT 0,
            auto_advance INTEGER NOT NULL DEFAULT 0,
            assigned_to TEXT,
            estimated_duration_minutes INTEGER,
            due_date_offset_days INTEGER,
            client_visible INTEGER NOT NULL DEFAULT 0,
            client_description TEXT,
            condition_logic TEXT NOT NULL DEFAULT '{}',
            depends_on_task_ids TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            created_by TEXT,
            updated_by TEXT,
            FOREIGN KEY (stage_id) REFERENCES workflow_stages(id) ON DELETE CASCADE
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_tasks_stage_order
        ON workflow_tasks(stage_id, task_order)
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS workflow_steps (
            id TEXT PRIMARY KEY,
            task_id TEXT NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            step_order INTEGER NOT NULL,
            step_type TEXT NOT NULL DEFAULT 'form',
            is_required INTEGER NOT NULL DEFAULT 1,
            allow_skip INTEGER NOT NULL DEFAULT 0,
            auto_advance INTEGER NOT NULL DEFAULT 0,
            show_progress INTEGER NOT NULL DEFAULT 1,
            allow_back_navigation INTEGER NOT NULL DEFAULT 1,
            save_progress INTEGER NOT NULL DEFAULT 1,
            client_visible INTEGER NOT NULL DEFAULT 1,
            client_description TEXT,
            condition_logic TEXT NOT NULL DEFAULT '{}',
            validation_rules TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            created_by TEXT,
            updated_by TEXT,
            FOREIGN KEY (task_id) REFERENCES workflow_tasks(id) ON DELETE CASCADE
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_steps_task_order
        ON workflow_steps(task_id, step_order)
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS workflow_elements (
            id TEXT PRIMARY KEY,
            step_id TEXT NOT NULL,
            element_type TEXT NOT NULL,
            element_key TEXT NOT NULL,
            element_order INTEGER NOT NULL,
            label TEXT,
            placeholder TEXT,
            help_text TEXT,
            config TEXT NOT NULL DEFAULT '{}',
            is_required INTEGER NOT NULL DEFAULT 0,
            validation_rules TEXT NOT NULL DEFAULT '{}',
            condition_logic TEXT NOT NULL DEFAULT '{}',
            client_visible INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            created_by TEXT,
            updated_by TEXT,
            FOREIGN KEY (step_id) REFERENCES workflow_steps(id) ON DELETE CASCADE
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_elements_step_order
        ON workflow_elements(step_id, element_order)
    """)

    # =========================================================================
    # Execution: instances and submitted step data
    # =========================================================================
    await db.execute("""
        CREATE TABLE IF NOT EXISTS workflow_instances (
            id TEXT PRIMARY KEY,
            template_id TEXT NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            project_id TEXT,
            client_id TEXT,
            status TEXT NOT NULL DEFAULT 'draft',
            current_stage_id TEXT,
            current_task_id TEXT,
            current_step_id TEXT,
            completion_percentage INTEGER NOT NULL DEFAULT 0,
            started_at TEXT,
            completed_at TEXT,
            due_date TEXT,
            assigned_to TEXT,
            instance_data TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            created_by TEXT,
            updated_by TEXT,
            FOREIGN KEY (template_id) REFERENCES workflow_templates(id) ON DELETE CASCADE
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_instances_template_status
        ON workflow_instances(template_id, status)
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_instances_template_created
        ON workflow_instances(template_id, created_at)
    """)

    await db.execute("""
        CREATE TABLE IF NOT EXISTS workflow_step_data (
            id TEXT PRIMARY KEY,
            instance_id TEXT NOT NULL,
            step_id TEXT NOT NULL,
            element_key TEXT NOT NULL,
            element_value TEXT,
            data_type TEXT,
            is_valid INTEGER NOT NULL DEFAULT 1,
            submitted_at TEXT,
            submitted_by TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now')),
            created_by TEXT,
            updated_by TEXT,
            FOREIGN KEY (instance_id) REFERENCES workflow_instances(id) ON DELETE CASCADE,
            FOREIGN KEY (step_id) REFERENCES workflow_steps(id) ON DELETE CASCADE,
            UNIQUE(instance_id, step_id, element_key)
        )
    """)

    # =========================================================================
    # Role assignments (consumed by the permission guard)
    # =========================================================================
    await db.execute("""
        CREATE TABLE IF NOT EXISTS user_roles (
            user_id TEXT NOT NULL,
            role_name TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            PRIMARY KEY (user_id, role_name)
        )
    """)

    await db.commit()
