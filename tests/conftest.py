"""Shared test fixtures for taskboard tests."""

import sys
from datetime import date
from pathlib import Path

import pytest

# Ensure the repository root is importable (pkg.taskboard, board_server)
sys.path.insert(0, str(Path(__file__).parent.parent))

from pkg.taskboard.geometry import Rect  # noqa: E402
from pkg.taskboard.schema import Task, TaskStatus, Category  # noqa: E402
from pkg.taskboard.store import LocalTaskCache  # noqa: E402

# Three 300px columns with 20px gutters
COLUMN_RECTS = {
    TaskStatus.TODO: Rect(0, 0, 300, 800),
    TaskStatus.IN_PROGRESS: Rect(320, 0, 300, 800),
    TaskStatus.DONE: Rect(640, 0, 300, 800),
}


def make_task(task_id, status=TaskStatus.TODO, **kwargs):
    return Task(
        id=task_id,
        title=kwargs.pop("title", f"Task {task_id}"),
        status=status,
        assignee=kwargs.pop("assignee", "sam"),
        due_date=kwargs.pop("due_date", date(2026, 11, 1)),
        **kwargs,
    )


class FakeStore:
    """In-memory task store recording every call."""

    def __init__(self, tasks=None, categories=None):
        self.tasks = list(tasks or [])
        self.categories = list(categories or [])
        self.calls = []
        self.fail_with = None       # exception raised by every mutation
        self.before_update = None   # hook(task_id, fields) run inside update_task

    def list_tasks(self):
        self.calls.append(("list_tasks",))
        return list(self.tasks)

    def list_categories(self):
        self.calls.append(("list_categories",))
        return list(self.categories)

    def create_task(self, fields):
        self.calls.append(("create_task", dict(fields)))
        if self.fail_with:
            raise self.fail_with
        task = Task.from_dict({**fields, "id": f"new-{len(self.tasks) + 1}"})
        self.tasks.append(task)
        return task

    def update_task(self, task_id, fields):
        self.calls.append(("update_task", task_id, dict(fields)))
        if self.before_update:
            self.before_update(task_id, fields)
        if self.fail_with:
            raise self.fail_with
        for i, task in enumerate(self.tasks):
            if task.id == task_id:
                self.tasks[i] = task.with_updates(fields)
                return self.tasks[i]
        return None

    def delete_task(self, task_id):
        self.calls.append(("delete_task", task_id))
        if self.fail_with:
            raise self.fail_with
        self.tasks = [t for t in self.tasks if t.id != task_id]
        return True

    def mutations(self):
        return [c for c in self.calls if c[0] not in ("list_tasks", "list_categories")]


@pytest.fixture
def cache(tmp_path):
    return LocalTaskCache(str(tmp_path / "cache.db"))


@pytest.fixture
def categories():
    return [
        Category(id="cat-work", name="Work", color="#2563eb"),
        Category(id="cat-home", name="Home", color="#16a34a"),
    ]
