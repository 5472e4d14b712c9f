"""
Geometry primitives shared by the connector router and the layout adapter.

Coordinates are diagram-space units with y growing downward.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Point:
    """A 2-D coordinate."""
    x: float
    y: float

    def offset(self, dx: float = 0, dy: float = 0) -> Point:
        return Point(self.x + dx, self.y + dy)


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle given by its top-left corner and size."""
    x: float
    y: float
    width: float
    height: float

    @property
    def left(self) -> float:
        return self.x

    @property
    def top(self) -> float:
        return self.y

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def cx(self) -> float:
        return self.x + self.width / 2

    @property
    def cy(self) -> float:
        return self.y + self.height / 2

    def expanded(self, margin: float) -> Rect:
        """Return a copy grown by *margin* on every side."""
        return Rect(
            self.x - margin, self.y - margin,
            self.width + 2 * margin, self.height + 2 * margin,
        )

    def intersects(self, other: Rect, margin: float = 0) -> bool:
        """Check if two rectangles overlap (with optional margin)."""
        return not (
            self.right + margin <= other.x
            or other.right + margin <= self.x
            or self.bottom + margin <= other.y
            or other.bottom + margin <= self.y
        )

    def contains_point(self, px: float, py: float, margin: float = 0) -> bool:
        """Check if a point is inside this rectangle (with margin)."""
        return (
            self.x - margin <= px <= self.right + margin
            and self.y - margin <= py <= self.bottom + margin
        )


# ---------------------------------------------------------------------------
# Segment / rectangle tests
# ---------------------------------------------------------------------------

def hline_hits_rect(y: float, x1: float, x2: float, rect: Rect) -> bool:
    """A horizontal segment hits *rect* iff its y lies within the rectangle's
    vertical extent and its x-range overlaps the horizontal extent."""
    min_x, max_x = min(x1, x2), max(x1, x2)
    return (rect.top <= y <= rect.bottom
            and max_x >= rect.left and min_x <= rect.right)


def vline_hits_rect(x: float, y1: float, y2: float, rect: Rect) -> bool:
    """Vertical counterpart of :func:`hline_hits_rect`."""
    min_y, max_y = min(y1, y2), max(y1, y2)
    return (rect.left <= x <= rect.right
            and max_y >= rect.top and min_y <= rect.bottom)


def hline_blocked(y: float, x1: float, x2: float, obstacles: list[Rect]) -> bool:
    return any(hline_hits_rect(y, x1, x2, r) for r in obstacles)


def vline_blocked(x: float, y1: float, y2: float, obstacles: list[Rect]) -> bool:
    return any(vline_hits_rect(x, y1, y2, r) for r in obstacles)


def line_intersects_rect(
    x1: float, y1: float, x2: float, y2: float,
    rect: Rect,
) -> bool:
    """Liang-Barsky parametric clipping test: does segment (x1,y1)-(x2,y2) cross rect?"""
    dx = x2 - x1
    dy = y2 - y1

    t0, t1 = 0.0, 1.0
    for edge_p, edge_q in [
        (-dx, x1 - rect.left),
        (dx, rect.right - x1),
        (-dy, y1 - rect.top),
        (dy, rect.bottom - y1),
    ]:
        if abs(edge_p) < 1e-9:
            if edge_q < 0:
                return False
        else:
            t = edge_q / edge_p
            if edge_p < 0:
                t0 = max(t0, t)
            else:
                t1 = min(t1, t)
    return t0 <= t1


def segment_hits_rect(a: Point, b: Point, rect: Rect) -> bool:
    """Check if a segment passes through a rectangle.

    Orthogonal segments use the exact range tests; anything else falls
    back to Liang-Barsky clipping.
    """
    if abs(a.x - b.x) < 1e-6:
        return vline_hits_rect(a.x, a.y, b.y, rect)
    if abs(a.y - b.y) < 1e-6:
        return hline_hits_rect(a.y, a.x, b.x, rect)
    return line_intersects_rect(a.x, a.y, b.x, b.y, rect)


def find_overlaps(
    rects: dict[str, Rect], margin: float = 0,
) -> list[tuple[str, str]]:
    """Return id pairs of rectangles that overlap each other."""
    ids = list(rects)
    overlaps: list[tuple[str, str]] = []
    for i in range(len(ids)):
        for j in range(i + 1, len(ids)):
            if rects[ids[i]].intersects(rects[ids[j]], margin):
                overlaps.append((ids[i], ids[j]))
    return overlaps
