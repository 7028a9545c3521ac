"""
models/project.py
-----------------
Domain models for the sample hierarchy: a project owns tasks,
and each task owns checklist items.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from models.base import IdentityMixin


@dataclass
class ChecklistItem(IdentityMixin):
    """
    A single check box inside a task.

    Attributes:
        label: Text shown next to the box.
        done: Whether the item is ticked.
        task_id: Foreign key to the owning task (set on insert).
        id: Database primary key (None for new records).
    """
    label: str
    done: bool = False
    task_id: Optional[int] = None
    id: Optional[int] = None

    def set_id(self, value: Optional[int]) -> None:
        super().set_id(value)
        if value is None:
            self.task_id = None

    def __str__(self) -> str:
        mark = "x" if self.done else " "
        return f"[{mark}] {self.label}"


@dataclass
class Task(IdentityMixin):
    """
    A unit of work inside a project.

    Attributes:
        title: Short title of the task.
        priority: 1 (highest) to 5 (lowest).
        items: Owned checklist items, inserted together with the task.
        project_id: Foreign key to the owning project (set on insert).
        id: Database primary key (None for new records).
    """
    title: str
    priority: int = 3
    items: list[ChecklistItem] = field(default_factory=list)
    project_id: Optional[int] = None
    id: Optional[int] = None

    def set_id(self, value: Optional[int]) -> None:
        super().set_id(value)
        if value is None:
            self.project_id = None

    def __str__(self) -> str:
        return f"#{self.id} P{self.priority} {self.title} ({len(self.items)} items)"


@dataclass
class Project(IdentityMixin):
    """
    Root of the hierarchy.

    Attributes:
        name: Project name.
        tasks: Owned tasks, inserted together with the project.
        id: Database primary key (None for new records).
        created_at: Timestamp when the record was created.
    """
    name: str
    tasks: list[Task] = field(default_factory=list)
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __str__(self) -> str:
        return f"#{self.id} {self.name} ({len(self.tasks)} tasks)"
