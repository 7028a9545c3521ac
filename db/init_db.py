"""
db/init_db.py
-------------
Creates the sample schema (tables) if they do not already exist.
Run this module directly to initialize a fresh database:
    python -m db.init_db
"""

from db.connection import get_provider
from db.errors import ExecutionError
from utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
-- Projects: roots of the hierarchy
CREATE TABLE IF NOT EXISTS projects (
    id              SERIAL PRIMARY KEY,
    name            VARCHAR(200) NOT NULL,
    created_at      TIMESTAMPTZ DEFAULT NOW()
);

-- Tasks: owned by a project
CREATE TABLE IF NOT EXISTS tasks (
    id              SERIAL PRIMARY KEY,
    project_id      INT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    title           VARCHAR(200) NOT NULL,
    priority        SMALLINT NOT NULL DEFAULT 3 CHECK (priority BETWEEN 1 AND 5)
);

-- Checklist items: owned by a task
CREATE TABLE IF NOT EXISTS checklist_items (
    id              SERIAL PRIMARY KEY,
    task_id         INT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    label           VARCHAR(200) NOT NULL,
    done            BOOLEAN NOT NULL DEFAULT FALSE
);

CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id);
CREATE INDEX IF NOT EXISTS idx_items_task ON checklist_items(task_id);
"""


def create_tables() -> None:
    """
    Execute the schema SQL to create all tables.
    Safe to call multiple times (uses IF NOT EXISTS).
    """
    resource = get_provider().acquire()
    try:
        with resource.connection.cursor() as cur:
            cur.execute(SCHEMA_SQL)
        resource.commit()
        logger.info("Database schema initialized successfully.")
    except Exception as e:
        try:
            resource.rollback()
        except ExecutionError as rollback_error:
            logger.error(f"Failed to roll back schema creation: {rollback_error}")
        logger.error(f"Failed to initialize schema: {e}")
        raise
    finally:
        resource.release()


if __name__ == "__main__":
    from db.connection import init_pool
    init_pool()
    create_tables()
    print("Database schema created successfully.")
