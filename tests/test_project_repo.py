"""
Tests for ProjectRepository against the in-memory backend.

These check which rows actually survive each call: a project owns tasks,
a task owns checklist items, and every level goes through EntityRepository.
"""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest

from db.errors import ExecutionError, InsertError, ResourceError, StatementError
from models.project import ChecklistItem, Project, Task
from repositories.entity_repo import OrphanDecision, RollbackPolicy
from repositories.project_repo import ProjectRepository


def sample_project(name="Apollo"):
    return Project(
        name=name,
        tasks=[
            Task(title="Design", priority=1, items=[ChecklistItem(label="sketch"), ChecklistItem(label="review")]),
            Task(title="Build", priority=2, items=[ChecklistItem(label="weld", done=True)]),
            Task(title="Ship"),
        ],
    )


def all_ids(project):
    ids = [project.id]
    for task in project.tasks:
        ids.append(task.id)
        ids.extend(item.id for item in task.items)
    return ids


def savepoint_repo(provider, decision):
    return ProjectRepository(
        provider, policy=RollbackPolicy.SAVEPOINT, orphan_resolver=lambda entity, error: decision,
    )


class TestInsertTree:
    """Successful inserts of the whole hierarchy."""

    def test_rows_and_keys(self, provider, backend):
        project = sample_project()

        ProjectRepository(provider).add(project)

        projects = backend.rows("projects")
        tasks = backend.rows("tasks")
        items = backend.rows("checklist_items")
        assert [p["id"] for p in projects] == [project.id]
        assert [t["id"] for t in tasks] == [t.id for t in project.tasks]
        assert len(items) == 3
        assert all(t["params"][0] == project.id for t in tasks)
        design = project.tasks[0]
        assert [i["params"][0] for i in items[:2]] == [design.id, design.id]
        assert None not in all_ids(project)

    def test_root_row_written_first(self, provider, backend):
        project = sample_project()

        ProjectRepository(provider).add(project)

        assert project.id < min(t.id for t in project.tasks)
        assert backend.resources[0].calls[-2:] == ["commit", "release"]

    def test_foreign_keys_set_on_models(self, provider):
        project = sample_project()

        ProjectRepository(provider).add(project)

        assert all(t.project_id == project.id for t in project.tasks)
        assert all(i.task_id == project.tasks[0].id for i in project.tasks[0].items)

    def test_one_resource_per_call(self, provider, backend):
        repo = ProjectRepository(provider)

        repo.add(sample_project("one"))
        repo.add(sample_project("two"))

        assert len(backend.resources) == 2
        assert [r.release_count for r in backend.resources] == [1, 1]

    def test_add_task_to_existing_project(self, provider, backend):
        repo = ProjectRepository(provider)
        project = repo.add(Project(name="Existing"))

        task = repo.add_task(Task(title="Late", items=[ChecklistItem(label="x")]), project.id)

        assert task.project_id == project.id
        assert backend.rows("tasks")[0]["params"][0] == project.id
        assert len(backend.rows("checklist_items")) == 1

    def test_task_without_project_rejected(self, provider, backend):
        repo = ProjectRepository(provider)

        with pytest.raises(InsertError) as exc_info:
            repo.tasks.insert(Task(title="Orphan"))

        assert isinstance(exc_info.value.cause, StatementError)
        assert backend.rows("tasks") == []

    def test_concurrent_inserts(self, provider, backend):
        repo = ProjectRepository(provider)
        projects = [sample_project(f"p{n}") for n in range(8)]

        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(repo.add, projects))

        assert len({p.id for p in projects}) == 8
        assert len(backend.rows("tasks")) == 24
        assert all(r.release_count == 1 for r in backend.resources)


@pytest.mark.parametrize("policy", [RollbackPolicy.FULL, RollbackPolicy.SAVEPOINT])
class TestRootFailure:
    """A failed root row leaves nothing behind, whatever the policy."""

    def test_nothing_persisted(self, policy, provider, backend):
        backend.fail_when = lambda table, params: table == "projects"
        repo = ProjectRepository(provider, policy=policy, orphan_resolver=Mock())
        project = sample_project()

        with pytest.raises(InsertError):
            repo.add(project)

        assert backend.rows("projects") == []
        assert backend.rows("tasks") == []
        assert backend.rows("checklist_items") == []
        assert all_ids(project) == [None] * 7
        assert backend.resources[0].release_count == 1

    def test_safe_to_retry(self, policy, provider, backend):
        backend.fail_when = lambda table, params: table == "projects"
        repo = ProjectRepository(provider, policy=policy, orphan_resolver=Mock())
        project = sample_project()
        with pytest.raises(InsertError):
            repo.add(project)

        backend.fail_when = None
        repo.add(project)

        assert len(backend.rows("projects")) == 1
        assert len(backend.rows("tasks")) == 3


class TestChildFailure:
    """Failures below the root row."""

    def test_full_policy_discards_tree(self, provider, backend):
        # The last checklist item fails after two tasks were already written.
        backend.fail_when = lambda table, params: table == "checklist_items" and params[1] == "weld"
        project = sample_project()

        with pytest.raises(InsertError) as exc_info:
            ProjectRepository(provider).add(project)

        assert isinstance(exc_info.value.cause, ExecutionError)
        assert backend.rows("projects") == []
        assert backend.rows("tasks") == []
        assert backend.rows("checklist_items") == []
        assert all_ids(project) == [None] * 7
        assert backend.resources[0].calls.count("commit") == 0

    def test_full_policy_clears_foreign_keys(self, provider, backend):
        backend.fail_when = lambda table, params: table == "tasks" and params[1] == "Build"
        project = sample_project()

        with pytest.raises(InsertError):
            ProjectRepository(provider).add(project)

        assert project.id is None
        assert [t.project_id for t in project.tasks] == [None, None, None]
        assert [i.task_id for t in project.tasks for i in t.items] == [None, None, None]

    def test_savepoint_commit_clears_child_foreign_keys(self, provider, backend):
        backend.fail_when = lambda table, params: table == "tasks" and params[1] == "Ship"
        project = sample_project()

        with pytest.raises(InsertError):
            savepoint_repo(provider, OrphanDecision.COMMIT).add(project)

        assert project.id is not None
        assert [t.project_id for t in project.tasks] == [None, None, None]
        assert [i.task_id for t in project.tasks for i in t.items] == [None, None, None]

    def test_savepoint_then_discard(self, provider, backend):
        backend.fail_when = lambda table, params: table == "tasks" and params[1] == "Ship"
        project = sample_project()

        with pytest.raises(InsertError) as exc_info:
            savepoint_repo(provider, OrphanDecision.DISCARD).add(project)

        assert exc_info.value.root_committed is False
        assert backend.rows("projects") == []
        assert backend.rows("tasks") == []
        assert all_ids(project) == [None] * 7
        calls = backend.resources[0].calls
        assert "rollback_to_savepoint" in calls
        assert "commit" not in calls
        assert calls.count("release") == 1

    def test_savepoint_then_commit(self, provider, backend):
        backend.fail_when = lambda table, params: table == "tasks" and params[1] == "Ship"
        project = sample_project()

        with pytest.raises(InsertError) as exc_info:
            savepoint_repo(provider, OrphanDecision.COMMIT).add(project)

        assert exc_info.value.root_committed is True
        assert [p["id"] for p in backend.rows("projects")] == [project.id]
        assert backend.rows("tasks") == []
        assert backend.rows("checklist_items") == []
        assert all_ids(project)[1:] == [None] * 6
        assert backend.resources[0].release_count == 1


class TestAcquisitionFailure:

    def test_nothing_attempted(self, provider, backend):
        provider.unavailable = True
        project = sample_project()

        with pytest.raises(ResourceError):
            ProjectRepository(provider).add(project)

        assert backend.resources == []
        assert project.id is None
