"""
Application shell: owns the authoritative task list.

Every mutation follows the same path:

  intent ─▶ sequence number ─▶ store call (with deadline) ─▶ confirmed record
                                                            │
                                   newer intent issued? ────┤── yes: discard (stale)
                                                            └── no:  apply locally

Nothing is applied before the store confirms. Failures leave the list as it
was and raise exactly one blocking notification. The board orchestrator and
the server only read the list.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from .auth import SessionState, User
from .board import BoardOrchestrator, MoveIntent, ReorderIntent
from .events import EventBridge
from .schema import (
    COLUMNS,
    UNCATEGORIZED,
    Category,
    Task,
    TaskStatus,
    ValidationError,
    filter_by_category,
    partition,
    validate_fields,
)
from .store import StoreError

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "all"


class ViewMode(Enum):
    GRID = "grid"
    KANBAN = "kanban"


class IntentStatus(Enum):
    APPLIED = "applied"        # Store confirmed; local list updated
    NOOP = "noop"              # Nothing to do; no store call made
    STALE = "stale"            # Store confirmed, but a newer intent superseded it
    FAILED = "failed"          # Rejected, unavailable with no fallback, or timed out
    CANCELLED = "cancelled"    # User declined the confirmation step
    NOT_FOUND = "not_found"    # Task no longer exists


@dataclass
class IntentResult:
    status: IntentStatus
    task: Optional[Task] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (IntentStatus.APPLIED, IntentStatus.NOOP, IntentStatus.STALE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "status": self.status.value,
            "task": self.task.to_dict() if self.task else None,
            "error": self.error,
        }


def _never_confirm(task: Task) -> bool:
    return False


class ApplicationShell:
    """
    Task list owner wired to a task store (usually a FallbackTaskStore).

    Args:
        store:    list_tasks / create_task / update_task / delete_task / list_categories
        notifier: blocking user-visible alert, called once per failed intent
        confirm:  asked before a delete; returns True to proceed
        request_timeout: per-call deadline in seconds
    """

    def __init__(
        self,
        store,
        notifier: Optional[Callable[[str], None]] = None,
        confirm: Optional[Callable[[Task], bool]] = None,
        request_timeout: float = 10.0,
        events: Optional[EventBridge] = None,
        max_workers: int = 4,
    ):
        self.store = store
        # Without a notifier, alerts queue up until the view acknowledges them
        self.alerts: List[str] = []
        self.notifier = notifier or self.alerts.append
        self.confirm = confirm or _never_confirm
        self.request_timeout = request_timeout
        self.events = events or EventBridge()

        self._lock = threading.RLock()
        self._tasks: List[Task] = []
        self._categories: List[Category] = []
        self._seq: Dict[str, int] = {}
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="taskboard-store")

        self.category_filter = ALL_CATEGORIES
        self.view_mode = ViewMode.KANBAN

    # ── Read side ────────────────────────────────────────────────────────────

    @property
    def tasks(self) -> List[Task]:
        with self._lock:
            return list(self._tasks)

    @property
    def categories(self) -> List[Category]:
        with self._lock:
            return list(self._categories)

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._lock:
            for task in self._tasks:
                if task.id == task_id:
                    return task
        return None

    def visible_tasks(self) -> List[Task]:
        """Tasks passing the current category filter, in list order."""
        with self._lock:
            return filter_by_category(self._tasks, self.category_filter, self._categories)

    def tasks_in_category(self, selection: Optional[str]) -> List[Task]:
        """Filter by an ad-hoc selection; the board's own filter is left alone."""
        selection = self._check_category(selection)
        with self._lock:
            return filter_by_category(self._tasks, selection, self._categories)

    def columns(self) -> Dict[TaskStatus, List[Task]]:
        return partition(self.visible_tasks())

    def column_counts(self) -> Dict[str, int]:
        return {status.value: len(tasks) for status, tasks in self.columns().items()}

    def category_for(self, task: Task) -> Optional[Category]:
        if not task.category_id:
            return None
        with self._lock:
            for category in self._categories:
                if category.id == task.category_id:
                    return category
        return None

    def board(self) -> Dict[str, Any]:
        """Snapshot of everything the board view renders."""
        columns = self.columns()
        return {
            "view": self.view_mode.value,
            "category_filter": self.category_filter,
            "columns": [
                {
                    "status": column.status.value,
                    "title": column.title,
                    "count": len(columns[column.status]),
                    "tasks": [t.to_dict() for t in columns[column.status]],
                }
                for column in COLUMNS
            ],
            "categories": [c.to_dict() for c in self.categories],
        }

    # ── View state ───────────────────────────────────────────────────────────

    def set_category_filter(self, selection: Optional[str]) -> str:
        self.category_filter = self._check_category(selection)
        return self.category_filter

    def _check_category(self, selection: Optional[str]) -> str:
        selection = selection or ALL_CATEGORIES
        if selection not in (ALL_CATEGORIES, UNCATEGORIZED):
            if not any(c.id == selection for c in self.categories):
                raise ValidationError(f"Unknown category: {selection}")
        return selection

    def set_view_mode(self, mode: str) -> ViewMode:
        try:
            self.view_mode = ViewMode(str(mode).lower())
        except ValueError:
            raise ValidationError(f"Invalid view mode: {mode} (use grid or kanban)")
        return self.view_mode

    # ── Loading ──────────────────────────────────────────────────────────────

    def load(self) -> bool:
        """Fetch tasks and categories. Returns False (after alerting) on failure."""
        try:
            tasks = self._call(self.store.list_tasks)
            categories = self._call(self.store.list_categories)
        except FutureTimeout:
            self._alert("Failed to load tasks: the request timed out.")
            return False
        except StoreError as e:
            self._alert(f"Failed to load tasks: {e}")
            return False
        with self._lock:
            self._tasks = list(tasks)
            self._categories = list(categories)
            self._seq.clear()
        logger.info(f"Loaded {len(tasks)} tasks, {len(categories)} categories")
        self._changed()
        return True

    def clear(self) -> None:
        with self._lock:
            self._tasks = []
            self._categories = []
            self._seq.clear()
            self.category_filter = ALL_CATEGORIES
        self._changed()

    def on_session_changed(self, state: SessionState, user: Optional[User] = None) -> None:
        """Session subscriber: load on sign-in, clear on sign-out."""
        if state == SessionState.AUTHENTICATED:
            self.load()
        elif state in (SessionState.SIGNED_OUT, SessionState.ANONYMOUS):
            self.clear()

    def acknowledge_alerts(self) -> List[str]:
        """Drain queued alerts (only used without a notifier)."""
        with self._lock:
            pending = list(self.alerts)
            self.alerts.clear()
        return pending

    # ── Intents ──────────────────────────────────────────────────────────────

    def move_task(self, task_id: str, status: TaskStatus) -> IntentResult:
        """Change a task's status. Moving to the current status is a no-op."""
        task = self.get_task(task_id)
        if task is None:
            logger.warning(f"Move ignored: task {task_id} not found")
            return IntentResult(IntentStatus.NOT_FOUND)
        if task.status == status:
            return IntentResult(IntentStatus.NOOP, task=task)
        return self._update(task_id, {"status": status.value}, "update task")

    def update_task(self, task_id: str, fields: Dict[str, Any]) -> IntentResult:
        """
        Edit task fields. Raises ValidationError for bad input; store failures
        come back as a FAILED result.
        """
        clean = validate_fields(fields, partial=True)
        task = self.get_task(task_id)
        if task is None:
            logger.warning(f"Update ignored: task {task_id} not found")
            return IntentResult(IntentStatus.NOT_FOUND)
        current = task.to_dict()
        changed = {k: v for k, v in clean.items() if current.get(k) != v}
        if not changed:
            return IntentResult(IntentStatus.NOOP, task=task)
        return self._update(task_id, changed, "update task")

    def reorder_tasks(self, ordered: Sequence[Task]) -> IntentResult:
        """
        Apply a new relative order. Local only: ordering is not persisted.

        `ordered` may be the full list or any subset (e.g. a filtered view);
        its tasks are placed, in the new order, into the slots they currently
        occupy. Rejected as stale if any task's status changed meanwhile.
        """
        with self._lock:
            by_id = {t.id: t for t in self._tasks}
            ids = [t.id for t in ordered]
            if len(set(ids)) != len(ids) or any(i not in by_id for i in ids):
                logger.warning("Reorder ignored: task list changed during drag")
                return IntentResult(IntentStatus.STALE)
            if any(by_id[t.id].status != t.status for t in ordered):
                logger.info("Reorder ignored: a task changed status during drag")
                return IntentResult(IntentStatus.STALE)
            wanted = set(ids)
            if [t.id for t in self._tasks if t.id in wanted] == ids:
                return IntentResult(IntentStatus.NOOP)
            replacements = iter(by_id[i] for i in ids)
            self._tasks = [next(replacements) if t.id in wanted else t for t in self._tasks]
        self._changed()
        return IntentResult(IntentStatus.APPLIED)

    def create_task(self, fields: Dict[str, Any]) -> IntentResult:
        """Create a task; the confirmed record is appended to the list."""
        clean = validate_fields(fields)
        try:
            task = self._call(self.store.create_task, clean)
        except FutureTimeout:
            return self._fail(None, "Failed to create task: the request timed out.")
        except StoreError as e:
            return self._fail(None, f"Failed to create task: {e}")
        with self._lock:
            self._tasks.append(task)
        logger.info(f"Created task {task.id}")
        self._changed()
        return IntentResult(IntentStatus.APPLIED, task=task)

    def delete_task(self, task_id: str, confirm: Optional[bool] = None) -> IntentResult:
        """
        Delete after explicit confirmation. `confirm` overrides the confirm
        callback (the server passes the user's answer through).
        """
        task = self.get_task(task_id)
        if task is None:
            logger.warning(f"Delete ignored: task {task_id} not found")
            return IntentResult(IntentStatus.NOT_FOUND)
        confirmed = self.confirm(task) if confirm is None else confirm
        if not confirmed:
            logger.info(f"Delete of {task_id} not confirmed")
            return IntentResult(IntentStatus.CANCELLED, task=task)

        self._next_seq(task_id)
        try:
            deleted = self._call(self.store.delete_task, task_id)
        except FutureTimeout:
            self._next_seq(task_id)
            return self._fail(task_id, "Failed to delete task: the request timed out.")
        except StoreError as e:
            return self._fail(task_id, f"Failed to delete task: {e}")
        if not deleted:
            return self._fail(task_id, "Failed to delete task. Please try again.")
        with self._lock:
            self._tasks = [t for t in self._tasks if t.id != task_id]
            self._seq.pop(task_id, None)
        logger.info(f"Deleted task {task_id}")
        self._changed()
        return IntentResult(IntentStatus.APPLIED, task=task)

    # ── Orchestrator wiring ──────────────────────────────────────────────────

    def handle_move(self, intent: MoveIntent) -> IntentResult:
        return self.move_task(intent.task_id, intent.status)

    def handle_reorder(self, intent: ReorderIntent) -> IntentResult:
        return self.reorder_tasks(intent.tasks)

    def build_orchestrator(self, **kwargs) -> BoardOrchestrator:
        """An orchestrator reading the visible list and reporting back here."""
        return BoardOrchestrator(
            tasks_provider=self.visible_tasks,
            on_move=self.handle_move,
            on_reorder=self.handle_reorder,
            **kwargs,
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    # ── Internals ────────────────────────────────────────────────────────────

    def _call(self, fn: Callable, *args) -> Any:
        """Run one store call under the request deadline."""
        future = self._executor.submit(fn, *args)
        return future.result(timeout=self.request_timeout)

    def _next_seq(self, task_id: str) -> int:
        with self._lock:
            seq = self._seq.get(task_id, 0) + 1
            self._seq[task_id] = seq
            return seq

    def _is_latest(self, task_id: str, seq: int) -> bool:
        with self._lock:
            return self._seq.get(task_id) == seq

    def _update(self, task_id: str, fields: Dict[str, Any], action: str) -> IntentResult:
        seq = self._next_seq(task_id)
        try:
            confirmed = self._call(self.store.update_task, task_id, fields)
        except FutureTimeout:
            # Bump so the late response is discarded when it lands
            self._next_seq(task_id)
            return self._fail(task_id, f"Failed to {action}: the request timed out.")
        except StoreError as e:
            if not self._is_latest(task_id, seq):
                logger.info(f"Ignoring failure of superseded intent on {task_id}: {e}")
                return IntentResult(IntentStatus.STALE)
            return self._fail(task_id, f"Failed to {action}: {e}")

        if confirmed is None:
            logger.warning(f"Update ignored: task {task_id} not found in store")
            return IntentResult(IntentStatus.NOT_FOUND)

        with self._lock:
            if self._seq.get(task_id) != seq:
                logger.info(f"Discarding stale response for {task_id} (intent {seq})")
                return IntentResult(IntentStatus.STALE, task=confirmed)
            self._tasks = [confirmed if t.id == task_id else t for t in self._tasks]
        logger.debug(f"Task {task_id} updated: {fields}")
        self._changed()
        return IntentResult(IntentStatus.APPLIED, task=confirmed)

    def _fail(self, task_id: Optional[str], message: str) -> IntentResult:
        self._alert(message)
        self.events.emit("intent_failed", task_id=task_id, error=message)
        return IntentResult(IntentStatus.FAILED, error=message)

    def _alert(self, message: str) -> None:
        logger.error(message)
        try:
            self.notifier(message)
        except Exception as e:
            logger.error(f"Notifier failed: {e}")

    def _changed(self) -> None:
        self.events.emit("tasks_changed", tasks=self.tasks)
