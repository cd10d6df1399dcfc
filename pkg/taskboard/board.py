"""
Board orchestrator: the drag session state machine.

Lifecycle of one interaction:

  pointer_down ─▶ pending press ──(threshold crossed)──▶ drag session
       │                │                                   │
       │           pointer_up: tap / long press        pointer_up: end_drag
       │                                                    │
       └──────────── cancel_drag (any time) ◀───────────────┘

A session ends in one of two intents, or nothing:
  - MoveIntent     the card was dropped on another column (or a card in it)
  - ReorderIntent  the card was dropped on a sibling in its own column

The orchestrator never mutates tasks. It reads them through a provider and
hands intents to callbacks owned by the application shell.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .autoscroll import AutoScroller
from .feedback import FeedbackEvent, HapticNotifier
from .geometry import Point, Rect, detect_collisions, layout_column
from .items import DraggableItem, DropTarget, TargetId, TargetKind
from .schema import Task, TaskStatus, partition
from .sensors import (
    DelayConstraint,
    DragSensor,
    InputMode,
    PendingPress,
    PressOutcome,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MoveIntent:
    """Request to change a task's status."""
    task_id: str
    status: TaskStatus


@dataclass(frozen=True)
class ReorderIntent:
    """Request to reorder one column. `tasks` is the complete, merged task list."""
    task_id: str
    status: TaskStatus
    tasks: Tuple[Task, ...]


class DropOutcome(Enum):
    MOVED = "moved"              # MoveIntent emitted
    REORDERED = "reordered"      # ReorderIntent emitted
    NO_CHANGE = "no_change"      # Dropped back where it came from
    NO_TARGET = "no_target"      # Nothing under the card
    CANCELLED = "cancelled"      # Aborted by the user or the system
    TAP = "tap"                  # Never became a drag
    LONG_PRESS = "long_press"    # Touch hold released in place
    IGNORED = "ignored"          # No session to end


@dataclass
class DropResult:
    outcome: DropOutcome
    target: Optional[TargetId] = None
    intent: Optional[Any] = None
    response: Any = None

    @property
    def emitted(self) -> bool:
        return self.intent is not None


@dataclass
class DragSession:
    """Ephemeral state for one lifted card. Never persisted."""
    task: Task
    origin: TaskStatus
    start_pointer: Optional[Point] = None
    pointer: Optional[Point] = None
    over: Optional[TargetId] = None
    scroll_origin: float = 0.0
    delta: Point = field(default_factory=lambda: Point(0.0, 0.0))
    # Lifted by a held touch press rather than a direct begin_drag call
    from_press: bool = False


def array_move(items: List[Any], old_index: int, new_index: int) -> List[Any]:
    """Move one element, shifting the rest. Returns a new list."""
    result = list(items)
    result.insert(new_index, result.pop(old_index))
    return result


def reorder_within_column(tasks: Sequence[Task], active_id: str, over_id: str) -> List[Task]:
    """
    Reorder the active task's column so it lands at the over task's index.

    Tasks of other columns keep their slots in the full list, so their relative
    order is unchanged; only the slots of the affected column are refilled.
    """
    by_id = {t.id: t for t in tasks}
    active = by_id[active_id]
    over = by_id[over_id]
    if active.status != over.status:
        raise ValueError(f"{active_id} and {over_id} are in different columns")

    column = [t for t in tasks if t.status == active.status]
    ids = [t.id for t in column]
    moved = iter(array_move(column, ids.index(active_id), ids.index(over_id)))
    return [next(moved) if t.status == active.status else t for t in tasks]


class BoardOrchestrator:
    """Runs one drag session at a time and turns drops into intents."""

    def __init__(
        self,
        tasks_provider: Callable[[], Sequence[Task]],
        on_move: Optional[Callable[[MoveIntent], Any]] = None,
        on_reorder: Optional[Callable[[ReorderIntent], Any]] = None,
        input_mode: InputMode = InputMode.POINTER,
        sensor: Optional[DragSensor] = None,
        feedback: Optional[HapticNotifier] = None,
        scroller: Optional[AutoScroller] = None,
        fallback_radius: Optional[float] = 240.0,
    ):
        self.tasks_provider = tasks_provider
        self.on_move = on_move
        self.on_reorder = on_reorder
        self.input_mode = input_mode
        self.sensor = sensor or DragSensor(input_mode)
        self.feedback = feedback or HapticNotifier()
        self.scroller = scroller
        self.fallback_radius = fallback_radius

        self.columns: Dict[TaskStatus, DropTarget] = {}
        self.items: Dict[str, DraggableItem] = {}

        self.session: Optional[DragSession] = None
        self.pending: Optional[PendingPress] = None
        self._last_pointer: Optional[Point] = None

    # ── Registration ─────────────────────────────────────────────────────────

    def register_column(self, status: TaskStatus, rect: Rect) -> DropTarget:
        target = DropTarget(status, rect)
        self.columns[status] = target
        return target

    def register_item(self, task_id: str, rect: Rect) -> DraggableItem:
        item = self.items.get(task_id)
        if item is None:
            item = DraggableItem(task_id, rect, self)
            self.items[task_id] = item
        else:
            item.rect = rect
        return item

    def unregister_item(self, task_id: str) -> None:
        self.items.pop(task_id, None)

    def layout(
        self,
        column_rects: Dict[TaskStatus, Rect],
        item_height: float = 80.0,
        gap: float = 12.0,
        padding: float = 8.0,
    ) -> None:
        """Register every column and stack the current tasks inside them."""
        self.items.clear()
        columns = partition(self.tasks_provider())
        for status, rect in column_rects.items():
            self.register_column(status, rect)
            ids = [t.id for t in columns.get(status, [])]
            for task_id, item_rect in layout_column(rect, ids, item_height, gap, padding).items():
                self.register_item(task_id, item_rect)

    # ── Lookups ──────────────────────────────────────────────────────────────

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks_provider():
            if task.id == task_id:
                return task
        return None

    @property
    def active_id(self) -> Optional[str]:
        return self.session.task.id if self.session else None

    @property
    def active_task(self) -> Optional[Task]:
        """Snapshot of the dragged task, for rendering the overlay."""
        return self.session.task if self.session else None

    @property
    def over(self) -> Optional[TargetId]:
        return self.session.over if self.session else None

    def is_dragging(self, task_id: str) -> bool:
        return self.active_id == task_id

    def overlay_rect(self) -> Optional[Rect]:
        """Where the floating copy of the dragged card is drawn."""
        if self.session is None:
            return None
        item = self.items.get(self.session.task.id)
        if item is None:
            return None
        return item.rect.translated(self.session.delta.x, self.session.delta.y)

    # ── Raw input ────────────────────────────────────────────────────────────

    def pointer_down(self, item_id: str, position: Point, now: float) -> Optional[PendingPress]:
        """Begin a press. Single pointer: a second press while one is live is ignored."""
        if self.session is not None or self.pending is not None:
            logger.debug(f"Ignoring press on {item_id}: interaction already in progress")
            return None
        self.pending = self.sensor.press(item_id, position, now)
        self._last_pointer = position
        return self.pending

    def pointer_move(self, position: Point, now: float) -> Optional[TargetId]:
        """Feed pointer movement. Returns the current drop candidate, if dragging."""
        self._last_pointer = position
        if self.pending is not None:
            outcome = self.pending.update(position, now)
            if outcome == PressOutcome.ACTIVATED:
                press = self.pending
                self.pending = None
                if self.begin_drag(press.item_id, pointer=press.origin, from_press=True) is None:
                    return None
            elif outcome == PressOutcome.ABORTED:
                # Touch scroll gesture; keep the press around until pointer_up
                return None
            else:
                return None
        if self.session is None:
            return None
        target = self.evaluate_drop_target(position)
        if self.scroller is not None:
            self.scroller.update(position)
        return target

    def tick(self, now: float) -> float:
        """
        Frame/timer callback.

        Activates touch presses held past their delay and advances auto-scroll.
        Returns the distance scrolled this tick.
        """
        if self.pending is not None and self._last_pointer is not None:
            if self.pending.update(self._last_pointer, now) == PressOutcome.ACTIVATED:
                press = self.pending
                self.pending = None
                self.begin_drag(press.item_id, pointer=press.origin, from_press=True)
        if self.session is None or self.scroller is None:
            return 0.0
        scrolled = self.scroller.tick()
        if scrolled and self.session.pointer is not None:
            # Content moved under a still pointer: re-resolve the target
            self.evaluate_drop_target(self.session.pointer)
        return scrolled

    def pointer_up(self, position: Point, now: float) -> DropResult:
        """Release. Ends the drag, or resolves a press that never activated."""
        self._last_pointer = None
        if self.pending is not None:
            press = self.pending
            self.pending = None
            outcome = press.release(position, now)
            if outcome == PressOutcome.LONG_PRESS:
                return DropResult(DropOutcome.LONG_PRESS, target=TargetId.task(press.item_id))
            return DropResult(DropOutcome.TAP, target=TargetId.task(press.item_id))
        return self.end_drag(position)

    # ── Session operations ───────────────────────────────────────────────────

    def begin_drag(
        self, item_id: str, pointer: Optional[Point] = None, from_press: bool = False
    ) -> Optional[DragSession]:
        """
        Lift a card. Calling again before end_drag discards the old session
        and starts fresh (sessions never stack).
        """
        task = self.find_task(item_id)
        if task is None:
            logger.warning(f"Cannot drag {item_id}: task not found")
            return None
        if self.session is not None:
            logger.debug(f"Resetting drag session for {self.session.task.id}")
            self._teardown()
        self.pending = None
        scroll_origin = self.scroller.container.scroll_top if self.scroller else 0.0
        self.session = DragSession(
            task=task,
            origin=task.status,
            start_pointer=pointer,
            pointer=pointer,
            scroll_origin=scroll_origin,
            from_press=from_press,
        )
        logger.debug(f"Drag started: {task.id} from {task.status.value}")
        self.feedback.notify(FeedbackEvent.DRAG_START)
        return self.session

    def evaluate_drop_target(self, pointer: Optional[Point]) -> Optional[TargetId]:
        """Resolve the best drop candidate for a pointer position (or None)."""
        session = self.session
        if session is None:
            return None
        if pointer is not None:
            if session.start_pointer is None:
                session.start_pointer = pointer
            session.pointer = pointer
            session.delta = Point(
                pointer.x - session.start_pointer.x,
                pointer.y - session.start_pointer.y,
            )

        # Convert to content coordinates: scrolling moves cards, not the pointer
        scroll = self._scroll_offset()
        content_pointer = pointer.offset(0, scroll) if pointer is not None else None

        candidates: Dict[TargetId, Rect] = {}
        for column in self.columns.values():
            candidates[column.target_id] = column.rect
        for task_id, item in self.items.items():
            if task_id != session.task.id:
                candidates[item.target_id] = item.rect

        active_rect = self._active_rect(scroll)
        if active_rect is None:
            # Unregistered card: a point-sized rect at the pointer
            if content_pointer is None:
                self._set_over(None)
                return None
            active_rect = Rect(content_pointer.x, content_pointer.y, 0, 0)

        hits = detect_collisions(content_pointer, active_rect, candidates, max_distance=self.fallback_radius)
        target = hits[0].id if hits else None
        self._set_over(target)
        return target

    def end_drag(self, pointer: Optional[Point] = None) -> DropResult:
        """
        Drop the card. Emits at most one intent. A second call with no live
        session does nothing.
        """
        session = self.session
        if session is None:
            return DropResult(DropOutcome.IGNORED)

        target = self.evaluate_drop_target(pointer) if pointer is not None else session.over
        long_press = self._is_long_press(session)
        self._teardown()

        if long_press:
            logger.debug(f"Long press on {session.task.id}, no drop")
            return DropResult(DropOutcome.LONG_PRESS, target=TargetId.task(session.task.id))

        result = self._resolve(session, target)
        if result.emitted:
            ok = self._accepted(result.response)
            self.feedback.notify(FeedbackEvent.DROP_SUCCESS if ok else FeedbackEvent.DROP_FAILURE)
        elif result.outcome == DropOutcome.NO_TARGET:
            self.feedback.notify(FeedbackEvent.DROP_FAILURE)
        logger.debug(f"Drag ended: {session.task.id} -> {result.outcome.value}")
        return result

    def cancel_drag(self) -> DropResult:
        """Abort the press or session. Nothing is emitted; the card snaps back."""
        had_session = self.session is not None or self.pending is not None
        self.pending = None
        self._last_pointer = None
        if self.session is not None:
            logger.debug(f"Drag cancelled: {self.session.task.id}")
            self._teardown()
        return DropResult(DropOutcome.CANCELLED if had_session else DropOutcome.IGNORED)

    def request_move(self, task_id: str, status: TaskStatus) -> DropResult:
        """Move without dragging (menu fallback). Same intent as a column drop."""
        task = self.find_task(task_id)
        if task is None:
            logger.warning(f"Move requested for unknown task {task_id}")
            return DropResult(DropOutcome.NO_TARGET)
        target = TargetId.column(status)
        if task.status == status:
            return DropResult(DropOutcome.NO_CHANGE, target=target)
        intent = MoveIntent(task_id, status)
        response = self.on_move(intent) if self.on_move else None
        ok = self._accepted(response)
        self.feedback.notify(FeedbackEvent.DROP_SUCCESS if ok else FeedbackEvent.DROP_FAILURE)
        return DropResult(DropOutcome.MOVED, target=target, intent=intent, response=response)

    # ── Internals ────────────────────────────────────────────────────────────

    def _resolve(self, session: DragSession, target: Optional[TargetId]) -> DropResult:
        if target is None:
            return DropResult(DropOutcome.NO_TARGET)

        # Re-read: the task list may have changed while the card was in the air
        task = self.find_task(session.task.id)
        if task is None:
            logger.warning(f"Dragged task {session.task.id} disappeared before drop")
            return DropResult(DropOutcome.NO_TARGET, target=target)

        if target.kind == TargetKind.COLUMN:
            status = TaskStatus(target.key)
            if status == task.status:
                return DropResult(DropOutcome.NO_CHANGE, target=target)
            return self._emit_move(MoveIntent(task.id, status), target)

        over = self.find_task(target.key)
        if over is None:
            return DropResult(DropOutcome.NO_TARGET, target=target)
        if over.id == task.id:
            return DropResult(DropOutcome.NO_CHANGE, target=target)
        if over.status != task.status:
            # Dropped on a card in another column: move into that column
            return self._emit_move(MoveIntent(task.id, over.status), target)

        tasks = list(self.tasks_provider())
        reordered = reorder_within_column(tasks, task.id, over.id)
        if [t.id for t in reordered] == [t.id for t in tasks]:
            return DropResult(DropOutcome.NO_CHANGE, target=target)
        intent = ReorderIntent(task.id, task.status, tuple(reordered))
        response = self.on_reorder(intent) if self.on_reorder else None
        return DropResult(DropOutcome.REORDERED, target=target, intent=intent, response=response)

    def _emit_move(self, intent: MoveIntent, target: TargetId) -> DropResult:
        response = self.on_move(intent) if self.on_move else None
        return DropResult(DropOutcome.MOVED, target=target, intent=intent, response=response)

    @staticmethod
    def _accepted(response: Any) -> bool:
        # No callback wired means the intent went nowhere
        if response is None:
            return False
        return getattr(response, "ok", True)

    def _is_long_press(self, session: DragSession) -> bool:
        constraint = self.sensor.constraint
        if not session.from_press or not isinstance(constraint, DelayConstraint):
            return False
        d = session.delta
        return (d.x * d.x + d.y * d.y) ** 0.5 <= constraint.tolerance

    def _scroll_offset(self) -> float:
        if self.scroller is None or self.session is None:
            return 0.0
        return self.scroller.container.scroll_top - self.session.scroll_origin

    def _active_rect(self, scroll: float) -> Optional[Rect]:
        session = self.session
        item = self.items.get(session.task.id) if session else None
        if item is None:
            return None
        return item.rect.translated(session.delta.x, session.delta.y + scroll)

    def _set_over(self, target: Optional[TargetId]) -> None:
        if self.session is not None:
            self.session.over = target
        over_status = None
        if target is not None:
            if target.kind == TargetKind.COLUMN:
                over_status = TaskStatus(target.key)
            else:
                over_task = self.find_task(target.key)
                over_status = over_task.status if over_task else None
        for status, column in self.columns.items():
            column.is_over = status == over_status

    def _teardown(self) -> None:
        self.session = None
        for column in self.columns.values():
            column.is_over = False
        if self.scroller is not None:
            self.scroller.stop()
