"""
Task board schema.

A board has three fixed columns:
  todo → in-progress → done

Any column can move to any other; the only rule is that a task sits in
exactly one column at a time. Columns are not stored anywhere, they are a
partition of the task list by status.
"""
from enum import Enum
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any, Iterable, Tuple
import time
import uuid


class ValidationError(Exception):
    """Raised when task fields fail validation."""
    pass


class TaskStatus(Enum):
    """Board columns, in display order."""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @classmethod
    def from_str(cls, value: str) -> "TaskStatus":
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[str(value).upper().replace("-", "_")]
        except KeyError:
            return cls.TODO


class TaskPriority(Enum):
    """Task priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_str(cls, value: str) -> "TaskPriority":
        try:
            return cls[str(value).upper()]
        except KeyError:
            return cls.MEDIUM


@dataclass(frozen=True)
class Column:
    """A status bucket as rendered on the board."""
    status: TaskStatus
    title: str


COLUMNS: Tuple[Column, ...] = (
    Column(TaskStatus.TODO, "To Do"),
    Column(TaskStatus.IN_PROGRESS, "In Progress"),
    Column(TaskStatus.DONE, "Done"),
)

# Fields a caller may set on create/update. id and timestamps belong to the store.
TASK_FIELDS = ("title", "description", "status", "priority", "assignee", "due_date", "category_id")
REQUIRED_ON_CREATE = ("title", "assignee", "due_date")

UNCATEGORIZED = "uncategorized"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def make_task_id() -> str:
    """Generate a sortable unique task ID (ms-precision timestamp + random hex)."""
    ts = int(time.time() * 1000)
    rand = uuid.uuid4().hex[:8]
    return f"task-{ts}-{rand}"


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # Accept full timestamps too; the date part is what matters
    return date.fromisoformat(str(value)[:10])


@dataclass
class Category:
    """A task category, rendered as a coloured badge."""

    id: str
    name: str
    color: str = "#6b7280"
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            color=data.get("color") or "#6b7280",
            description=data.get("description"),
        )


@dataclass
class Task:
    """A single unit of work on the board."""

    # Identifiers
    id: str

    # Content
    title: str
    description: str = ""

    # Board position
    status: TaskStatus = TaskStatus.TODO

    # Priority & scheduling
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee: str = ""
    due_date: Optional[date] = None

    # Classification (weak reference, may point at nothing)
    category_id: Optional[str] = None

    # Metadata
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def with_updates(self, fields: Dict[str, Any]) -> "Task":
        """Return a copy with validated fields applied. id never changes."""
        changes: Dict[str, Any] = {}
        for key, value in fields.items():
            if key == "status":
                changes[key] = value if isinstance(value, TaskStatus) else TaskStatus(value)
            elif key == "priority":
                changes[key] = value if isinstance(value, TaskPriority) else TaskPriority(value)
            elif key == "due_date":
                changes[key] = _parse_date(value)
            elif key in ("created_at", "updated_at"):
                changes[key] = _parse_datetime(value)
            elif key in TASK_FIELDS:
                changes[key] = value
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire/row format."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "assignee": self.assignee,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "category_id": self.category_id,
            "created_at": self.created_at.isoformat() if isinstance(self.created_at, datetime) else self.created_at,
            "updated_at": self.updated_at.isoformat() if isinstance(self.updated_at, datetime) else self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Deserialize from a row. Unknown status/priority values are coerced."""
        status = TaskStatus.TODO
        if data.get("status"):
            status = TaskStatus.from_str(data["status"])

        priority = TaskPriority.MEDIUM
        if data.get("priority"):
            priority = TaskPriority.from_str(data["priority"])

        # The browser client historically sent dueDate instead of due_date
        due = data.get("due_date") or data.get("dueDate")

        return cls(
            id=str(data.get("id", "")),
            title=data.get("title", ""),
            description=data.get("description") or "",
            status=status,
            priority=priority,
            assignee=data.get("assignee") or "",
            due_date=_parse_date(due),
            category_id=data.get("category_id") or None,
            created_at=_parse_datetime(data.get("created_at")) or utc_now(),
            updated_at=_parse_datetime(data.get("updated_at")) or utc_now(),
        )


def validate_fields(fields: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validate and normalize task fields to their row format.

    Args:
        fields: caller-supplied fields (enum members or raw strings)
        partial: True for updates (nothing required), False for creation

    Returns:
        dict of normalized fields (enum values as strings, dates as ISO).

    Raises:
        ValidationError with a user-friendly message on failure.
    """
    unknown = set(fields) - set(TASK_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    if not partial:
        for name in REQUIRED_ON_CREATE:
            value = fields.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"Missing required field: {name}")

    result: Dict[str, Any] = {}
    for name, value in fields.items():
        if name == "status":
            raw = value.value if isinstance(value, TaskStatus) else value
            try:
                result[name] = TaskStatus(raw).value
            except ValueError:
                allowed = ", ".join(s.value for s in TaskStatus)
                raise ValidationError(f"Invalid status: '{raw}'. Allowed: {allowed}")
        elif name == "priority":
            raw = value.value if isinstance(value, TaskPriority) else value
            try:
                result[name] = TaskPriority(raw).value
            except ValueError:
                allowed = ", ".join(p.value for p in TaskPriority)
                raise ValidationError(f"Invalid priority: '{raw}'. Allowed: {allowed}")
        elif name == "due_date":
            try:
                parsed = _parse_date(value)
            except ValueError:
                raise ValidationError(f"Invalid due_date: '{value}' (expected YYYY-MM-DD)")
            result[name] = parsed.isoformat() if parsed else None
        elif name == "category_id":
            # "none" is what the category picker sends for "no category"
            result[name] = None if value in (None, "", "none") else str(value)
        elif name == "title":
            title = str(value).strip()
            if not title:
                raise ValidationError("title cannot be empty")
            result[name] = title
        else:
            result[name] = "" if value is None else str(value)

    if not partial:
        result.setdefault("description", "")
        result.setdefault("status", TaskStatus.TODO.value)
        result.setdefault("priority", TaskPriority.MEDIUM.value)
        result.setdefault("category_id", None)
    return result


def partition(tasks: Iterable[Task]) -> Dict[TaskStatus, List[Task]]:
    """Split a task list into columns, preserving relative order."""
    columns: Dict[TaskStatus, List[Task]] = {c.status: [] for c in COLUMNS}
    for task in tasks:
        columns[task.status].append(task)
    return columns


def is_uncategorized(task: Task, categories: Optional[Iterable[Category]] = None) -> bool:
    """A task is uncategorized when its category_id is empty or dangling."""
    if not task.category_id:
        return True
    if categories is None:
        return False
    return task.category_id not in {c.id for c in categories}


def filter_by_category(
    tasks: Iterable[Task],
    selection: str = "all",
    categories: Optional[Iterable[Category]] = None,
) -> List[Task]:
    """Apply the category filter: 'all', 'uncategorized', or a category id."""
    if selection in (None, "", "all"):
        return list(tasks)
    if selection == UNCATEGORIZED:
        known = list(categories) if categories is not None else None
        return [t for t in tasks if is_uncategorized(t, known)]
    return [t for t in tasks if t.category_id == selection]
