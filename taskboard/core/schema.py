"""SQLite schema management (code-first approach)."""

import logging

from taskboard.core import db_client


logger = logging.getLogger(__name__)


# Comments and activity logs are embedded JSON arrays so a task and its trail
# are written by a single versioned UPDATE.
TABLE_SCHEMAS: dict[str, str] = {
    "users": """CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        name TEXT NOT NULL,
        email TEXT,
        role TEXT NOT NULL DEFAULT 'member' CHECK (role IN ('admin', 'member'))
    )""",
    "tasks": """CREATE TABLE IF NOT EXISTS tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        version INTEGER NOT NULL DEFAULT 1,
        title TEXT NOT NULL,
        description TEXT,
        notes TEXT,
        related_to TEXT NOT NULL CHECK (related_to IN (
            'learning-and-development', 'research-and-development', 'finance',
            'administration', 'tech', 'marketing', 'others'
        )),
        created_by TEXT NOT NULL,
        assigned_to TEXT NOT NULL DEFAULT '[]',
        priority TEXT NOT NULL DEFAULT 'medium' CHECK (priority IN ('low', 'medium', 'high')),
        status TEXT NOT NULL DEFAULT 'not_started'
            CHECK (status IN ('not_started', 'in_progress', 'review', 'completed')),
        current_progress INTEGER NOT NULL DEFAULT 0 CHECK (current_progress BETWEEN 0 AND 100),
        due_date TEXT NOT NULL,
        completion_date TEXT,
        comments TEXT NOT NULL DEFAULT '[]',
        activity_logs TEXT NOT NULL DEFAULT '[]',
        CHECK (status != 'completed' OR (current_progress = 100 AND completion_date IS NOT NULL))
    )""",
}

INDEXES: list[str] = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email ON users (email)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_status_due_date ON tasks (status, due_date)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_created_by ON tasks (created_by)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_related_to_priority ON tasks (related_to, priority)",
]


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes (idempotent)."""
    conn = await db_client.get_connection(db_path=db_path)

    for table_name, statement in TABLE_SCHEMAS.items():
        await conn.execute(statement)
        logger.debug("Ensured table %s", table_name)

    for statement in INDEXES:
        await conn.execute(statement)

    await conn.commit()
    logger.info("Database schema initialized", extra={"tables": sorted(TABLE_SCHEMAS)})
