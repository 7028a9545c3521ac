"""
repositories/project_repo.py
-----------------------------
Data access layer for the project hierarchy.
A project owns tasks and each task owns checklist items; inserting a project
writes the whole tree in one transaction.
"""

import logging
from typing import Optional

from db.errors import StatementError
from db.resource import InsertStatement, ResourceProvider
from models.project import ChecklistItem, Project, Task
from repositories.entity_repo import (
    NO_PARENT,
    EntityMapping,
    EntityRepository,
    OrphanResolver,
    RollbackPolicy,
)


def _project_statement(resource, project: Project, parent_id: int) -> InsertStatement:
    if parent_id != NO_PARENT:
        raise StatementError(f"Projects are top-level rows, got parent id {parent_id}")
    return InsertStatement(
        "INSERT INTO projects (name) VALUES (%s) RETURNING id;",
        (project.name,),
    )


def _task_statement(resource, task: Task, parent_id: int) -> InsertStatement:
    if parent_id == NO_PARENT:
        raise StatementError("A task needs the id of its project")
    return InsertStatement(
        "INSERT INTO tasks (project_id, title, priority) VALUES (%s, %s, %s) RETURNING id;",
        (parent_id, task.title, task.priority),
    )


def _item_statement(resource, item: ChecklistItem, parent_id: int) -> InsertStatement:
    if parent_id == NO_PARENT:
        raise StatementError("A checklist item needs the id of its task")
    return InsertStatement(
        "INSERT INTO checklist_items (task_id, label, done) VALUES (%s, %s, %s) RETURNING id;",
        (parent_id, item.label, item.done),
    )


class ProjectRepository:
    """
    Repository for inserting projects together with their tasks and checklist items.

    Args:
        provider: Where transactional resources come from.
        policy: Rollback policy for project inserts.
        orphan_resolver: Required with RollbackPolicy.SAVEPOINT.
        logger: Passed on to every EntityRepository.
    """

    def __init__(
        self,
        provider: ResourceProvider,
        policy: RollbackPolicy = RollbackPolicy.FULL,
        orphan_resolver: Optional[OrphanResolver] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.items = EntityRepository(
            provider, EntityMapping("checklist item", _item_statement), logger=logger,
        )
        self.tasks = EntityRepository(
            provider, EntityMapping("task", _task_statement, self._insert_items), logger=logger,
        )
        self.projects = EntityRepository(
            provider,
            EntityMapping("project", _project_statement, self._insert_tasks),
            policy=policy,
            orphan_resolver=orphan_resolver,
            logger=logger,
        )

    # ── CREATE ────────────────────────────────────────────

    def add(self, project: Project) -> Project:
        """
        Insert a project with all of its tasks and checklist items.

        Returns:
            The same Project, with ids set on every row that was persisted.
        """
        return self.projects.insert(project, NO_PARENT)

    def add_task(self, task: Task, project_id: int) -> Task:
        """Insert a task (and its items) under an existing project, in its own transaction."""
        self.tasks.insert(task, project_id)
        task.project_id = project_id
        return task

    # ── CHILD CASCADE ─────────────────────────────────────

    def _insert_tasks(self, resource, project: Project) -> None:
        # Foreign keys are set only once the row is written; set_id(None) clears them again.
        for task in project.tasks:
            self.tasks.insert_within(resource, task, project.get_id())
            task.project_id = project.get_id()

    def _insert_items(self, resource, task: Task) -> None:
        for item in task.items:
            self.items.insert_within(resource, item, task.get_id())
            item.task_id = task.get_id()
