"""
Draggable cards and drop targets.

Neither decides drop outcomes. Columns are registration surfaces the
orchestrator hit-tests against; cards forward pointer events to the
orchestrator and expose whether they are the card being dragged.
"""
from dataclasses import dataclass
from enum import Enum
from typing import List

from .geometry import Point, Rect
from .schema import TaskStatus, COLUMNS


class TargetKind(Enum):
    COLUMN = "column"
    TASK = "task"


@dataclass(frozen=True)
class TargetId:
    """What the dragged card is over: a column (by status) or a sibling card."""
    kind: TargetKind
    key: str

    @classmethod
    def column(cls, status: TaskStatus) -> "TargetId":
        return cls(TargetKind.COLUMN, status.value)

    @classmethod
    def task(cls, task_id: str) -> "TargetId":
        return cls(TargetKind.TASK, task_id)

    def to_dict(self):
        return {"kind": self.kind.value, "id": self.key}


class DropTarget:
    """One status column as a droppable region."""

    def __init__(self, status: TaskStatus, rect: Rect):
        self.status = status
        self.rect = rect
        self.is_over = False

    @property
    def target_id(self) -> TargetId:
        return TargetId.column(self.status)

    @property
    def title(self) -> str:
        for column in COLUMNS:
            if column.status == self.status:
                return column.title
        return self.status.value


class DraggableItem:
    """One task card as a grabbable unit."""

    def __init__(self, task_id: str, rect: Rect, orchestrator):
        self.task_id = task_id
        self.rect = rect
        self._orchestrator = orchestrator
        self.menu_open = False

    @property
    def target_id(self) -> TargetId:
        return TargetId.task(self.task_id)

    @property
    def is_dragging(self) -> bool:
        return self._orchestrator.active_id == self.task_id

    def pointer_down(self, position: Point, now: float):
        """Start a press on this card. Ignored while another press or drag is live."""
        return self._orchestrator.pointer_down(self.task_id, position, now)

    # ── Non-drag fallback ────────────────────────────────────────────────────

    def open_move_menu(self) -> List[TaskStatus]:
        """Open the "move to..." menu; returns the statuses offered."""
        task = self._orchestrator.find_task(self.task_id)
        if task is None:
            return []
        self.menu_open = True
        return [c.status for c in COLUMNS if c.status != task.status]

    def choose_status(self, status: TaskStatus):
        """Pick a status from the menu. Emits the same move intent as a drop."""
        self.menu_open = False
        return self._orchestrator.request_move(self.task_id, status)

    def close_menu(self) -> None:
        self.menu_open = False
