"""
Local task cache (SQLite).

Mirrors the four task operations of the hosted store so the board keeps
working when the backend is unreachable or not configured. Rows are keyed by
a fixed namespace so several boards can share one cache file.
"""
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Dict, Any

from .schema import Task, Category, make_task_id, utc_now

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DB = Path.home() / ".local" / "share" / "taskboard" / "cache.db"
DEFAULT_NAMESPACE = "tasks"


class StoreError(Exception):
    """Base class for task store failures."""
    pass


class StoreUnavailable(StoreError):
    """The store could not be reached (network, timeout, 5xx, not configured).

    Triggers the local cache fallback.
    """
    pass


class MutationRejected(StoreError):
    """The store was reachable but refused a write (validation, permission)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@contextmanager
def _connect(db_path: str) -> Iterator[sqlite3.Connection]:
    """Open a connection in WAL mode; commit on success, always close."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


class LocalTaskCache:
    """SQLite-backed fallback store for tasks and categories."""

    def __init__(self, db_path: Optional[str] = None, namespace: str = DEFAULT_NAMESPACE):
        """Initialize cache and create tables if needed."""
        if db_path is None:
            db_path = str(DEFAULT_CACHE_DB)
        self.db_path = db_path
        self.namespace = namespace
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cached_tasks (
                    namespace TEXT NOT NULL,
                    task_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT DEFAULT '',
                    status TEXT DEFAULT 'todo',
                    priority TEXT DEFAULT 'medium',
                    assignee TEXT DEFAULT '',
                    due_date TEXT,
                    category_id TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (namespace, task_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cached_categories (
                    namespace TEXT NOT NULL,
                    category_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    color TEXT DEFAULT '#6b7280',
                    description TEXT,
                    PRIMARY KEY (namespace, category_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS system_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_cached_tasks_created "
                "ON cached_tasks(namespace, created_at)"
            )

    # ── Tasks ────────────────────────────────────────────────────────────────

    def list_tasks(self) -> List[Task]:
        """List all cached tasks, newest first."""
        try:
            with _connect(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT * FROM cached_tasks WHERE namespace = ? "
                    "ORDER BY created_at DESC, rowid DESC",
                    (self.namespace,),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Local cache read failed: {e}")
            raise StoreError(f"Local cache read failed: {e}") from e
        return [self._row_to_task(row) for row in rows]

    def get_task(self, task_id: str) -> Optional[Task]:
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT * FROM cached_tasks WHERE namespace = ? AND task_id = ?",
                    (self.namespace, task_id),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Local cache read failed: {e}") from e
        return self._row_to_task(row) if row else None

    def create_task(self, fields: Dict[str, Any]) -> Task:
        """Insert a new task. Assigns id and timestamps."""
        now = utc_now()
        task = Task.from_dict({
            **fields,
            "id": make_task_id(),
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        })
        self._write(task)
        return task

    def update_task(self, task_id: str, fields: Dict[str, Any]) -> Optional[Task]:
        """Apply fields to an existing task. Returns None if it doesn't exist."""
        current = self.get_task(task_id)
        if current is None:
            return None
        updated = current.with_updates({**fields, "updated_at": utc_now()})
        self._write(updated)
        return updated

    def delete_task(self, task_id: str) -> bool:
        """Delete a task. Deleting a missing task still succeeds."""
        try:
            with _connect(self.db_path) as conn:
                conn.execute(
                    "DELETE FROM cached_tasks WHERE namespace = ? AND task_id = ?",
                    (self.namespace, task_id),
                )
        except sqlite3.Error as e:
            logger.error(f"Local cache delete failed for {task_id}: {e}")
            raise StoreError(f"Local cache delete failed: {e}") from e
        return True

    def _write(self, task: Task) -> None:
        data = task.to_dict()
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT OR REPLACE INTO cached_tasks
                    (namespace, task_id, title, description, status, priority,
                     assignee, due_date, category_id, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    self.namespace,
                    data["id"],
                    data["title"],
                    data["description"],
                    data["status"],
                    data["priority"],
                    data["assignee"],
                    data["due_date"],
                    data["category_id"],
                    data["created_at"],
                    data["updated_at"],
                ))
        except sqlite3.Error as e:
            logger.error(f"Local cache write failed for {task.id}: {e}")
            raise StoreError(f"Local cache write failed: {e}") from e

    # ── Categories ───────────────────────────────────────────────────────────

    def list_categories(self) -> List[Category]:
        """List cached categories ordered by name."""
        try:
            with _connect(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT * FROM cached_categories WHERE namespace = ? ORDER BY name ASC",
                    (self.namespace,),
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Local cache read failed: {e}") from e
        return [
            Category(
                id=row["category_id"],
                name=row["name"],
                color=row["color"],
                description=row["description"],
            )
            for row in rows
        ]

    def save_category(self, category: Category) -> None:
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT OR REPLACE INTO cached_categories
                    (namespace, category_id, name, color, description)
                    VALUES (?, ?, ?, ?, ?)
                """, (self.namespace, category.id, category.name, category.color, category.description))
        except sqlite3.Error as e:
            raise StoreError(f"Local cache write failed: {e}") from e

    # ── System state ─────────────────────────────────────────────────────────

    def get_state(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Read a value from the system_state table."""
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT value FROM system_state WHERE key = ? LIMIT 1", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.warning(f"system_state read failed for {key}: {e}")
            return default
        return row["value"] if row else default

    def set_state(self, key: str, value: str) -> None:
        now = utc_now().isoformat()
        with _connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO system_state (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
            """, (key, value, now))

    def clear_state(self, key: str) -> None:
        with _connect(self.db_path) as conn:
            conn.execute("DELETE FROM system_state WHERE key = ?", (key,))

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        """Convert a database row to a Task."""
        data = dict(row)
        data["id"] = data.pop("task_id")
        data.pop("namespace", None)
        return Task.from_dict(data)
