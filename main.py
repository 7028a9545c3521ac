"""
main.py
-------
Entry point for a demo run.

Responsibilities:
    - Initialize the database connection pool and schema.
    - Insert a sample project tree using the configured rollback policy.
    - Close the pool on exit.
"""

from config import ROLLBACK_POLICY
from db.connection import close_pool, init_pool
from db.init_db import create_tables
from services.project_service import ProjectService
from utils.logger import get_logger

logger = get_logger(__name__)

SAMPLE_TASKS = [
    {"title": "Write schema", "priority": 1, "items": ["projects", "tasks", "checklist items"]},
    {"title": "Load sample data", "priority": 2, "items": [{"label": "seed script", "done": True}]},
    {"title": "Review"},
]


def main() -> None:
    """Initialize the database and insert a sample project."""

    # ── 1. Database setup ─────────────────────────────────
    logger.info("Initializing database...")
    init_pool()
    try:
        create_tables()

        # ── 2. Insert ─────────────────────────────────────
        logger.info(f"Inserting sample project (policy: {ROLLBACK_POLICY})")
        result = ProjectService().create_project("Demo project", SAMPLE_TASKS)
        logger.info(result["message"])
        if result["success"]:
            for task in result["project"].tasks:
                logger.info(f"  {task}")
    finally:
        # ── 3. Cleanup ────────────────────────────────────
        close_pool()
        logger.info("Done.")


if __name__ == "__main__":
    main()
