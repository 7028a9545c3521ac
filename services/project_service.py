"""
services/project_service.py
----------------------------
Business logic for creating projects.
Turns plain input into domain objects and persists the whole tree via the
ProjectRepository, using the rollback policy from config.
"""

from typing import Optional

from config import ORPHAN_DECISION, ROLLBACK_POLICY
from db.connection import get_provider
from db.errors import InsertError
from db.resource import ResourceProvider
from models.project import ChecklistItem, Project, Task
from repositories.entity_repo import OrphanDecision, RollbackPolicy
from repositories.project_repo import ProjectRepository
from utils.logger import get_logger

logger = get_logger(__name__)


class ProjectService:
    """
    Handles all business logic related to projects.

    Workflow:
        1. Validate the raw input.
        2. Build the Project / Task / ChecklistItem tree.
        3. Persist it in one transaction.
        4. Return a result dict for the caller.
    """

    def __init__(
        self,
        provider: Optional[ResourceProvider] = None,
        policy: Optional[str] = None,
        orphan_decision: Optional[str] = None,
    ):
        self.policy = RollbackPolicy(policy or ROLLBACK_POLICY)
        self.orphan_decision = OrphanDecision(orphan_decision or ORPHAN_DECISION)
        resolver = self._resolve_orphan if self.policy is RollbackPolicy.SAVEPOINT else None
        self.repo = ProjectRepository(
            provider or get_provider(),
            policy=self.policy,
            orphan_resolver=resolver,
            logger=get_logger("repositories.project_repo"),
        )

    def create_project(self, name: str, tasks: Optional[list[dict]] = None) -> dict:
        """
        Create a project with its tasks and checklist items.

        Args:
            name: Project name.
            tasks: List of dicts like
                {"title": str, "priority": int, "items": [str | {"label": str, "done": bool}]}.

        Returns:
            Dict with 'success', 'message' and 'project'. On a failed insert
            'root_committed' tells whether the project row was kept without its tasks.
        """
        try:
            project = self._build_project(name, tasks or [])
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Invalid project input: {e}")
            return {"success": False, "message": f"Invalid project input: {e}", "project": None}

        try:
            saved = self.repo.add(project)
        except InsertError as e:
            logger.error(f"Failed to create project '{name}': {e}")
            kept = f" Project #{project.id} was kept without its tasks." if e.root_committed else ""
            return {
                "success": False,
                "message": f"Project '{name}' could not be saved.{kept}",
                "project": project if e.root_committed else None,
                "root_committed": e.root_committed,
            }

        item_count = sum(len(t.items) for t in saved.tasks)
        msg = f"Created project #{saved.id} '{saved.name}' with {len(saved.tasks)} tasks and {item_count} checklist items"
        logger.info(msg)
        return {"success": True, "message": msg, "project": saved}

    def _resolve_orphan(self, project: Project, error: BaseException) -> OrphanDecision:
        logger.warning(
            f"Tasks of project #{project.id} failed ({error}); applying '{self.orphan_decision.value}'"
        )
        return self.orphan_decision

    @staticmethod
    def _build_project(name: str, tasks: list[dict]) -> Project:
        """Validate input and convert it to domain objects."""
        name = (name or "").strip()
        if not name:
            raise ValueError("project name is empty")

        project = Project(name=name)
        for raw in tasks:
            priority = int(raw.get("priority", 3))
            if not 1 <= priority <= 5:
                raise ValueError(f"priority must be between 1 and 5, got {priority}")
            task = Task(title=str(raw["title"]).strip(), priority=priority)
            for raw_item in raw.get("items", []):
                if isinstance(raw_item, str):
                    task.items.append(ChecklistItem(label=raw_item))
                else:
                    task.items.append(ChecklistItem(label=raw_item["label"], done=bool(raw_item.get("done", False))))
            project.tasks.append(task)
        return project
