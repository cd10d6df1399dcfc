"""
Tests for the board orchestrator, draggable items and drop targets.

Board layout used throughout (x ranges, all columns y 0..800):

    todo 0..300        in-progress 320..620      done 640..940
    a  y   8..88                                 d  y 8..88
    b  y 100..180
    c  y 192..272
"""
from types import SimpleNamespace

import pytest

from pkg.taskboard.autoscroll import AutoScroller, ScrollContainer
from pkg.taskboard.board import (
    BoardOrchestrator,
    DropOutcome,
    MoveIntent,
    ReorderIntent,
    reorder_within_column,
)
from pkg.taskboard.feedback import FeedbackEvent, HapticNotifier
from pkg.taskboard.geometry import Point, Rect
from pkg.taskboard.items import TargetId
from pkg.taskboard.schema import TaskStatus
from pkg.taskboard.sensors import InputMode

from conftest import COLUMN_RECTS, make_task

START = Point(50, 40)               # on card a
IN_PROGRESS_EMPTY = Point(470, 400)
ON_CARD_C = Point(100, 230)
ON_CARD_D = Point(700, 40)
TODO_EMPTY = Point(150, 600)
NOWHERE = Point(2000, 2000)
ACCEPTED = SimpleNamespace(ok=True)


class Recorder:
    """Collects intents; returns `response` to the orchestrator."""

    def __init__(self, response=ACCEPTED):
        self.moves = []
        self.reorders = []
        self.response = response

    def on_move(self, intent):
        self.moves.append(intent)
        return self.response

    def on_reorder(self, intent):
        self.reorders.append(intent)
        return self.response


@pytest.fixture
def tasks():
    return [
        make_task("a"),
        make_task("b"),
        make_task("c"),
        make_task("d", TaskStatus.DONE),
    ]


@pytest.fixture
def recorder():
    return Recorder()


def build(tasks, recorder, **kwargs):
    kwargs.setdefault("feedback", HapticNotifier())
    orch = BoardOrchestrator(
        tasks_provider=lambda: tasks,
        on_move=recorder.on_move,
        on_reorder=recorder.on_reorder,
        **kwargs,
    )
    orch.layout(COLUMN_RECTS, item_height=80, gap=12, padding=8)
    return orch


def drag(orch, item_id, start, end, now=0):
    """Press, move past the threshold, move to `end`, release."""
    orch.pointer_down(item_id, start, now)
    orch.pointer_move(start.offset(10, 0), now + 10)
    orch.pointer_move(end, now + 20)
    return orch.pointer_up(end, now + 30)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Layout & registration
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_layout_registers_columns_and_cards(tasks, recorder):
    orch = build(tasks, recorder)
    assert set(orch.columns) == set(COLUMN_RECTS)
    assert orch.items["a"].rect == Rect(8, 8, 284, 80)
    assert orch.items["c"].rect == Rect(8, 192, 284, 80)
    assert orch.items["d"].rect == Rect(648, 8, 284, 80)
    assert orch.columns[TaskStatus.IN_PROGRESS].title == "In Progress"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Move intents
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestMove:

    def test_drop_on_other_column_emits_move(self, tasks, recorder):
        orch = build(tasks, recorder)
        result = drag(orch, "a", START, IN_PROGRESS_EMPTY)
        assert result.outcome == DropOutcome.MOVED
        assert recorder.moves == [MoveIntent("a", TaskStatus.IN_PROGRESS)]
        assert recorder.reorders == []

    def test_drop_on_card_in_other_column_moves_there(self, tasks, recorder):
        orch = build(tasks, recorder)
        result = drag(orch, "a", START, ON_CARD_D)
        assert result.target == TargetId.task("d")
        assert recorder.moves == [MoveIntent("a", TaskStatus.DONE)]

    def test_drop_on_own_column_is_no_change(self, tasks, recorder):
        orch = build(tasks, recorder)
        result = drag(orch, "a", START, TODO_EMPTY)
        assert result.outcome == DropOutcome.NO_CHANGE
        assert recorder.moves == [] and recorder.reorders == []

    def test_orchestrator_never_mutates_tasks(self, tasks, recorder):
        orch = build(tasks, recorder)
        drag(orch, "a", START, IN_PROGRESS_EMPTY)
        assert tasks[0].status == TaskStatus.TODO


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Reorder intents
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestReorder:

    def test_drop_on_sibling_emits_full_reordered_list(self, tasks, recorder):
        orch = build(tasks, recorder)
        result = drag(orch, "a", START, ON_CARD_C)
        assert result.outcome == DropOutcome.REORDERED
        assert recorder.moves == []
        (intent,) = recorder.reorders
        assert isinstance(intent, ReorderIntent)
        assert [t.id for t in intent.tasks] == ["b", "c", "a", "d"]
        assert all(t.status == orig.status for t, orig in
                   zip(sorted(intent.tasks, key=lambda t: t.id), tasks))

    def test_reorder_keeps_other_columns_in_place(self):
        tasks = [
            make_task("a"),
            make_task("d", TaskStatus.DONE),
            make_task("b"),
            make_task("e", TaskStatus.DONE),
            make_task("c"),
        ]
        result = reorder_within_column(tasks, "a", "c")
        assert [t.id for t in result] == ["b", "d", "c", "e", "a"]

    def test_reorder_across_columns_rejected(self, tasks):
        with pytest.raises(ValueError):
            reorder_within_column(tasks, "a", "d")

    def test_reorder_preserves_multiset(self, tasks):
        result = reorder_within_column(tasks, "c", "a")
        assert sorted(t.id for t in result) == ["a", "b", "c", "d"]
        assert [t.id for t in result] == ["c", "a", "b", "d"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# No-target, tap, cancel, idempotence
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestSessionLifecycle:

    def test_drop_in_empty_space_emits_nothing(self, tasks, recorder):
        feedback = HapticNotifier()
        orch = build(tasks, recorder, feedback=feedback)
        result = drag(orch, "a", START, NOWHERE)
        assert result.outcome == DropOutcome.NO_TARGET
        assert recorder.moves == [] and recorder.reorders == []
        assert orch.active_id is None
        assert orch.overlay_rect() is None
        # Card is back in its original slot
        assert orch.items["a"].rect == Rect(8, 8, 284, 80)
        assert feedback.history == [FeedbackEvent.DRAG_START, FeedbackEvent.DROP_FAILURE]

    def test_tap_never_starts_a_session(self, tasks, recorder):
        orch = build(tasks, recorder)
        orch.pointer_down("a", START, 0)
        orch.pointer_move(START.offset(3, 2), 5)
        assert orch.active_id is None
        result = orch.pointer_up(START.offset(3, 2), 40)
        assert result.outcome == DropOutcome.TAP
        assert recorder.moves == [] and recorder.reorders == []

    def test_end_drag_twice_is_noop(self, tasks, recorder):
        orch = build(tasks, recorder)
        drag(orch, "a", START, IN_PROGRESS_EMPTY)
        assert orch.end_drag(IN_PROGRESS_EMPTY).outcome == DropOutcome.IGNORED
        assert len(recorder.moves) == 1

    def test_cancel_discards_session(self, tasks, recorder):
        orch = build(tasks, recorder)
        orch.pointer_down("a", START, 0)
        orch.pointer_move(IN_PROGRESS_EMPTY, 10)
        assert orch.columns[TaskStatus.IN_PROGRESS].is_over
        assert orch.cancel_drag().outcome == DropOutcome.CANCELLED
        assert orch.active_id is None
        assert not any(c.is_over for c in orch.columns.values())
        assert orch.pointer_up(IN_PROGRESS_EMPTY, 20).outcome == DropOutcome.IGNORED
        assert recorder.moves == []

    def test_begin_drag_again_resets_session(self, tasks, recorder):
        orch = build(tasks, recorder)
        orch.begin_drag("a", START)
        orch.begin_drag("b", Point(50, 140))
        assert orch.active_id == "b"
        assert orch.session.origin == TaskStatus.TODO

    def test_second_press_ignored_during_drag(self, tasks, recorder):
        orch = build(tasks, recorder)
        orch.pointer_down("a", START, 0)
        orch.pointer_move(START.offset(20, 0), 10)
        assert orch.items["b"].pointer_down(Point(50, 140), 15) is None
        assert orch.active_id == "a"

    def test_drag_state_for_rendering(self, tasks, recorder):
        orch = build(tasks, recorder)
        orch.pointer_down("a", START, 0)
        orch.pointer_move(IN_PROGRESS_EMPTY, 10)
        assert orch.items["a"].is_dragging
        assert not orch.items["b"].is_dragging
        assert orch.active_task.id == "a"
        assert orch.over == TargetId.column(TaskStatus.IN_PROGRESS)
        dx, dy = IN_PROGRESS_EMPTY.x - START.x, IN_PROGRESS_EMPTY.y - START.y
        assert orch.overlay_rect() == Rect(8 + dx, 8 + dy, 284, 80)

    def test_unknown_item_cannot_be_dragged(self, tasks, recorder):
        orch = build(tasks, recorder)
        assert orch.begin_drag("zzz") is None
        assert orch.active_id is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Touch input
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestTouch:

    def test_hold_then_drag_moves(self, tasks, recorder):
        orch = build(tasks, recorder, input_mode=InputMode.TOUCH)
        orch.pointer_down("a", START, 0)
        orch.tick(300)
        assert orch.active_id == "a"
        orch.pointer_move(IN_PROGRESS_EMPTY, 320)
        result = orch.pointer_up(IN_PROGRESS_EMPTY, 340)
        assert result.outcome == DropOutcome.MOVED
        assert recorder.moves == [MoveIntent("a", TaskStatus.IN_PROGRESS)]

    def test_hold_and_release_in_place_is_long_press(self, tasks, recorder):
        orch = build(tasks, recorder, input_mode=InputMode.TOUCH)
        orch.pointer_down("a", START, 0)
        orch.tick(300)
        result = orch.pointer_up(START, 400)
        assert result.outcome == DropOutcome.LONG_PRESS
        assert recorder.moves == [] and recorder.reorders == []

    def test_early_move_is_scroll_not_drag(self, tasks, recorder):
        orch = build(tasks, recorder, input_mode=InputMode.TOUCH)
        orch.pointer_down("a", START, 0)
        orch.pointer_move(START.offset(0, 60), 50)
        orch.tick(400)
        assert orch.active_id is None
        assert orch.pointer_up(START.offset(0, 60), 420).outcome == DropOutcome.TAP

    def test_direct_begin_and_end_drag_moves(self, tasks, recorder):
        orch = build(tasks, recorder, input_mode=InputMode.TOUCH)
        orch.begin_drag("a")
        result = orch.end_drag(IN_PROGRESS_EMPTY)
        assert result.outcome == DropOutcome.MOVED
        assert recorder.moves == [MoveIntent("a", TaskStatus.IN_PROGRESS)]

    def test_direct_drop_back_on_own_column_is_no_change(self, tasks, recorder):
        orch = build(tasks, recorder, input_mode=InputMode.TOUCH)
        orch.begin_drag("a")
        assert orch.end_drag(TODO_EMPTY).outcome == DropOutcome.NO_CHANGE
        assert recorder.moves == []


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Move menu
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestMoveMenu:

    def test_menu_offers_other_statuses(self, tasks, recorder):
        orch = build(tasks, recorder)
        item = orch.items["a"]
        assert item.open_move_menu() == [TaskStatus.IN_PROGRESS, TaskStatus.DONE]
        assert item.menu_open

    def test_choosing_emits_same_move_intent(self, tasks, recorder):
        orch = build(tasks, recorder)
        item = orch.items["a"]
        item.open_move_menu()
        result = item.choose_status(TaskStatus.DONE)
        assert result.outcome == DropOutcome.MOVED
        assert recorder.moves == [MoveIntent("a", TaskStatus.DONE)]
        assert not item.menu_open
        assert orch.active_id is None

    def test_menu_move_to_same_status_is_noop(self, tasks, recorder):
        orch = build(tasks, recorder)
        assert orch.request_move("a", TaskStatus.TODO).outcome == DropOutcome.NO_CHANGE
        assert recorder.moves == []


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Feedback & auto-scroll
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_feedback_on_success(tasks, recorder):
    feedback = HapticNotifier()
    orch = build(tasks, recorder, feedback=feedback)
    drag(orch, "a", START, IN_PROGRESS_EMPTY)
    assert feedback.history == [FeedbackEvent.DRAG_START, FeedbackEvent.DROP_SUCCESS]


def test_feedback_on_rejected_intent(tasks):
    recorder = Recorder(response=SimpleNamespace(ok=False))
    feedback = HapticNotifier()
    orch = build(tasks, recorder, feedback=feedback)
    drag(orch, "a", START, IN_PROGRESS_EMPTY)
    assert feedback.history[-1] == FeedbackEvent.DROP_FAILURE


def test_feedback_without_move_callback_is_failure(tasks):
    feedback = HapticNotifier()
    orch = BoardOrchestrator(tasks_provider=lambda: tasks, feedback=feedback)
    orch.layout(COLUMN_RECTS)
    result = drag(orch, "a", START, IN_PROGRESS_EMPTY)
    assert result.outcome == DropOutcome.MOVED
    assert result.response is None
    assert feedback.history == [FeedbackEvent.DRAG_START, FeedbackEvent.DROP_FAILURE]
    assert orch.request_move("a", TaskStatus.DONE).outcome == DropOutcome.MOVED
    assert feedback.history[-1] == FeedbackEvent.DROP_FAILURE


def test_autoscroll_runs_only_during_drag(tasks, recorder):
    scroller = AutoScroller(ScrollContainer(Rect(0, 0, 940, 600), content_height=1600), edge=60, max_speed=20)
    orch = build(tasks, recorder, scroller=scroller)
    orch.pointer_down("a", START, 0)
    orch.pointer_move(START.offset(10, 0), 5)
    orch.pointer_move(Point(470, 590), 10)
    assert scroller.active
    assert orch.tick(16) > 0
    orch.pointer_up(Point(470, 590), 30)
    assert not scroller.active
    assert orch.tick(50) == 0


def test_scrolled_content_changes_target(tasks, recorder):
    container = ScrollContainer(Rect(0, 0, 940, 600), content_height=1600)
    orch = build(tasks, recorder, scroller=AutoScroller(container))
    orch.pointer_down("a", START, 0)
    orch.pointer_move(Point(100, 150), 10)
    assert orch.over == TargetId.task("b")
    container.scroll_by(100)
    assert orch.evaluate_drop_target(Point(100, 150)) == TargetId.task("c")
