"""
Board geometry and collision detection.

The board resolves "what is under the dragged card" with three layers,
evaluated in order, first non-empty result wins:

  1. pointer_within     - targets whose rectangle contains the pointer
  2. rect_intersection  - targets overlapping the dragged card's rectangle
  3. closest_center     - nearest target centre, within a radius

Each layer returns collisions sorted best-first.
"""
import math
from dataclasses import dataclass
from typing import Dict, Hashable, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def distance_to(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def offset(self, dx: float, dy: float) -> "Point":
        return Point(self.x + dx, self.y + dy)


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in board coordinates (y grows downward)."""
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def area(self) -> float:
        return max(self.width, 0) * max(self.height, 0)

    @property
    def center(self) -> Point:
        return Point(self.left + self.width / 2, self.top + self.height / 2)

    @property
    def corners(self) -> Tuple[Point, Point, Point, Point]:
        return (
            Point(self.left, self.top),
            Point(self.right, self.top),
            Point(self.left, self.bottom),
            Point(self.right, self.bottom),
        )

    def contains(self, point: Point) -> bool:
        # Edges inclusive so a pointer sitting on a border still hits
        return self.left <= point.x <= self.right and self.top <= point.y <= self.bottom

    def translated(self, dx: float, dy: float) -> "Rect":
        return Rect(self.left + dx, self.top + dy, self.width, self.height)

    def intersection_area(self, other: "Rect") -> float:
        w = min(self.right, other.right) - max(self.left, other.left)
        h = min(self.bottom, other.bottom) - max(self.top, other.top)
        if w <= 0 or h <= 0:
            return 0.0
        return w * h


@dataclass(frozen=True)
class Collision:
    """One candidate under the dragged card; `value` is the layer's sort score."""
    id: Hashable
    value: float


def pointer_within(pointer: Point, candidates: Mapping[Hashable, Rect]) -> List[Collision]:
    """Targets containing the pointer, tightest fit first.

    Score is the summed distance from the pointer to the target's corners, so a
    card nested inside a column wins over the column itself.
    """
    hits = []
    for target_id, rect in candidates.items():
        if rect.contains(pointer):
            score = sum(pointer.distance_to(c) for c in rect.corners)
            hits.append(Collision(target_id, score))
    hits.sort(key=lambda c: c.value)
    return hits


def rect_intersection(active: Rect, candidates: Mapping[Hashable, Rect]) -> List[Collision]:
    """Targets overlapping the dragged rectangle, largest overlap ratio first."""
    hits = []
    for target_id, rect in candidates.items():
        overlap = active.intersection_area(rect)
        if overlap <= 0:
            continue
        union = active.area + rect.area - overlap
        ratio = overlap / union if union > 0 else 0.0
        hits.append(Collision(target_id, ratio))
    hits.sort(key=lambda c: c.value, reverse=True)
    return hits


def closest_center(
    active: Rect,
    candidates: Mapping[Hashable, Rect],
    max_distance: Optional[float] = None,
) -> List[Collision]:
    """Targets by distance between centres, nearest first.

    Candidates farther than max_distance are ignored, so a drop in genuinely
    empty space resolves to nothing.
    """
    origin = active.center
    hits = []
    for target_id, rect in candidates.items():
        distance = origin.distance_to(rect.center)
        if max_distance is not None and distance > max_distance:
            continue
        hits.append(Collision(target_id, distance))
    hits.sort(key=lambda c: c.value)
    return hits


def detect_collisions(
    pointer: Optional[Point],
    active: Rect,
    candidates: Mapping[Hashable, Rect],
    max_distance: Optional[float] = None,
) -> List[Collision]:
    """Layered policy: pointer containment, then overlap, then nearest centre."""
    if not candidates:
        return []
    if pointer is not None:
        hits = pointer_within(pointer, candidates)
        if hits:
            return hits
    hits = rect_intersection(active, candidates)
    if hits:
        return hits
    return closest_center(active, candidates, max_distance=max_distance)


def layout_column(
    column: Rect,
    item_ids: List[Hashable],
    item_height: float,
    gap: float = 12.0,
    padding: float = 0.0,
) -> Dict[Hashable, Rect]:
    """Stack equally sized cards top-down inside a column rectangle."""
    rects: Dict[Hashable, Rect] = {}
    top = column.top + padding
    width = column.width - 2 * padding
    for item_id in item_ids:
        rects[item_id] = Rect(column.left + padding, top, width, item_height)
        top += item_height + gap
    return rects
