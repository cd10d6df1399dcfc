"""
Edge auto-scroll for the task list while a card is being dragged.

Scroll speed ramps linearly from 0 at the inner edge of the zone to
max_speed at the container border (and beyond it).
"""
from typing import Optional

from .geometry import Point, Rect


class ScrollContainer:
    """A vertically scrollable viewport over a taller content area."""

    def __init__(self, viewport: Rect, content_height: float, scroll_top: float = 0.0):
        self.viewport = viewport
        self.content_height = content_height
        self.scroll_top = 0.0
        self.scroll_to(scroll_top)

    @property
    def max_scroll(self) -> float:
        return max(self.content_height - self.viewport.height, 0.0)

    def scroll_to(self, position: float) -> None:
        self.scroll_top = min(max(position, 0.0), self.max_scroll)

    def scroll_by(self, dy: float) -> float:
        """Scroll by dy px, clamped to the content. Returns the applied delta."""
        before = self.scroll_top
        self.scroll_to(before + dy)
        return self.scroll_top - before


class AutoScroller:
    """Computes and applies edge scrolling for one container."""

    def __init__(self, container: ScrollContainer, edge: float = 60.0, max_speed: float = 20.0):
        self.container = container
        self.edge = edge
        self.max_speed = max_speed
        self.velocity = 0.0

    @property
    def active(self) -> bool:
        return self.velocity != 0.0

    def update(self, pointer: Optional[Point]) -> float:
        """Recompute velocity (px per tick, negative is up) for a pointer position."""
        if pointer is None or self.edge <= 0:
            self.velocity = 0.0
            return self.velocity
        vp = self.container.viewport
        from_top = pointer.y - vp.top
        from_bottom = vp.bottom - pointer.y
        if from_top < self.edge and from_top <= from_bottom:
            self.velocity = -self._speed(from_top)
        elif from_bottom < self.edge:
            self.velocity = self._speed(from_bottom)
        else:
            self.velocity = 0.0
        return self.velocity

    def _speed(self, distance: float) -> float:
        closeness = 1.0 - max(distance, 0.0) / self.edge
        return self.max_speed * min(closeness, 1.0)

    def tick(self) -> float:
        """Advance one frame. Returns the distance actually scrolled."""
        if not self.velocity:
            return 0.0
        return self.container.scroll_by(self.velocity)

    def stop(self) -> None:
        self.velocity = 0.0
