"""
Input modes and drag activation.

- Pointer mode: a drag starts once the pointer travels a few pixels.
- Touch mode: a drag starts after a press-and-hold, as long as the finger
  stays within a small tolerance. Moving earlier is a scroll, not a drag.

Anything that never crosses the threshold is a tap (or, on touch, a long
press released in place) and must not start a drag session.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Hashable, Optional, Union

from .geometry import Point


class InputMode(Enum):
    """Input capability of the device driving the board."""
    POINTER = "pointer"    # Mouse / pen: precise, hover-capable
    TOUCH = "touch"        # Touch-only: imprecise, needs press-and-hold

    @classmethod
    def from_str(cls, value: str) -> "InputMode":
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.POINTER


@dataclass(frozen=True)
class DistanceConstraint:
    """Activate after the pointer moves `distance` px from where it went down."""
    distance: float = 8.0


@dataclass(frozen=True)
class DelayConstraint:
    """Activate after `delay_ms` of holding still within `tolerance` px."""
    delay_ms: float = 250.0
    tolerance: float = 5.0


ActivationConstraint = Union[DistanceConstraint, DelayConstraint]


class PressOutcome(Enum):
    PENDING = "pending"          # Still deciding
    ACTIVATED = "activated"      # Threshold crossed: start a drag session
    ABORTED = "aborted"          # Touch moved before the delay: it's a scroll
    TAP = "tap"                  # Released without crossing the threshold
    LONG_PRESS = "long_press"    # Touch held past the delay, released in place


def constraint_for(
    mode: InputMode,
    drag_distance: float = 8.0,
    touch_delay_ms: float = 250.0,
    touch_tolerance: float = 5.0,
) -> ActivationConstraint:
    """Pick the activation constraint for an input mode."""
    if mode == InputMode.TOUCH:
        return DelayConstraint(delay_ms=touch_delay_ms, tolerance=touch_tolerance)
    return DistanceConstraint(distance=drag_distance)


class PendingPress:
    """
    A press on a card that has not (yet) become a drag.

    Timestamps are milliseconds from any monotonic clock; callers pass them in
    so activation is deterministic.
    """

    def __init__(
        self,
        item_id: Hashable,
        origin: Point,
        started_at: float,
        constraint: ActivationConstraint,
    ):
        self.item_id = item_id
        self.origin = origin
        self.started_at = started_at
        self.constraint = constraint
        self.outcome = PressOutcome.PENDING

    def update(self, position: Point, now: float) -> PressOutcome:
        """Feed a move (or a timer tick at the last known position)."""
        if self.outcome != PressOutcome.PENDING:
            return self.outcome
        moved = self.origin.distance_to(position)
        c = self.constraint
        if isinstance(c, DistanceConstraint):
            if moved >= c.distance:
                self.outcome = PressOutcome.ACTIVATED
        else:
            if moved > c.tolerance:
                self.outcome = PressOutcome.ABORTED
            elif now - self.started_at >= c.delay_ms:
                self.outcome = PressOutcome.ACTIVATED
        return self.outcome

    def release(self, position: Point, now: float) -> PressOutcome:
        """Resolve a press that ended before activation."""
        if self.outcome == PressOutcome.ACTIVATED:
            return self.outcome
        if self.outcome == PressOutcome.ABORTED:
            return PressOutcome.TAP
        c = self.constraint
        moved = self.origin.distance_to(position)
        if isinstance(c, DelayConstraint) and moved <= c.tolerance and now - self.started_at >= c.delay_ms:
            # Held long enough but never moved: context action, not a drop
            self.outcome = PressOutcome.LONG_PRESS
        else:
            self.outcome = PressOutcome.TAP
        return self.outcome


class DragSensor:
    """Turns raw presses into pending activations for one input mode."""

    def __init__(self, mode: InputMode = InputMode.POINTER, constraint: Optional[ActivationConstraint] = None):
        self.mode = mode
        self.constraint = constraint or constraint_for(mode)

    def press(self, item_id: Hashable, origin: Point, now: float) -> PendingPress:
        return PendingPress(item_id, origin, now, self.constraint)
