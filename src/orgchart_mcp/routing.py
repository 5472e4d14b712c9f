"""
Obstacle-aware orthogonal connector routing for org-chart style diagrams.

Each connector leaves the parent's bottom-centre, runs down to a horizontal
"bar", crosses to the child's column and drops into the child's top-centre:

    parent
       |
       +-----------+        <- bar, kept close to the parent
                   |
                 child

The bar height and both vertical legs are checked against every other node
(padded by a small margin).  When the preferred bar height is blocked the
router steps outward until a clear height is found; when a leg is blocked it
jogs sideways to a clear column.  Searches are bounded: if nothing clear is
found the best candidate is returned anyway, so a connector is never
omitted.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Iterator, Optional

from orgchart_mcp.geometry import (
    Point,
    Rect,
    hline_blocked,
    segment_hits_rect,
    vline_blocked,
)
from orgchart_mcp.models import DiagramEdge, DiagramNode, EdgeType

logger = logging.getLogger("orgchart-mcp.routing")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class SearchOrder(Enum):
    """Which side of the preferred bar height is tried first."""
    AWAY_FIRST = "away_first"      # further from the parent first
    TOWARD_FIRST = "toward_first"  # closer to the parent first


class RouteKind(Enum):
    DIRECT = "direct"
    ORTHOGONAL = "orthogonal"
    DETOUR = "detour"


@dataclass
class RouterConfig:
    """Configuration for the connector router."""
    # Obstacles
    padding: float = 5             # Clearance added around every node

    # Bar placement
    align_tolerance: float = 3     # Below this x-difference draw a straight drop
    bar_ratio: float = 0.3         # Bar distance as a fraction of the vertical gap
    bar_offset: float = 25         # ...capped at this distance from the parent

    # Bar search
    search_step: float = 10
    search_limit: float = 300
    search_order: SearchOrder = SearchOrder.AWAY_FIRST
    bounded_to_gap: bool = True    # Bar must stay strictly between the anchors

    # Leg detours
    exit_length: float = 10        # Straight stub before the first jog
    jog_step: float = 10
    jog_limit: float = 300

    # Cosmetics
    corner_radius: float = 6
    corner_cap: float = 8


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConnectorPath:
    """An orthogonal polyline from a source anchor to a target anchor."""
    points: tuple[Point, ...]
    kind: RouteKind
    bar_y: Optional[float] = None
    corner_radius: float = 0
    # True when a bounded search gave up and an obstructed candidate was kept
    exhausted: bool = False

    @property
    def source(self) -> Point:
        return self.points[0]

    @property
    def target(self) -> Point:
        return self.points[-1]

    def segments(self) -> list[tuple[Point, Point]]:
        return [(self.points[i], self.points[i + 1]) for i in range(len(self.points) - 1)]

    def length(self) -> float:
        return sum(_dist(a, b) for a, b in self.segments())

    def to_svg_path(self) -> str:
        """Render the path as an SVG ``d`` attribute.

        Interior corners are rounded with quadratic curves when
        ``corner_radius`` is positive; the radius shrinks to half of the
        shorter adjacent segment.
        """
        pts = self.points
        parts = [f"M {_fmt(pts[0].x)} {_fmt(pts[0].y)}"]
        for i in range(1, len(pts) - 1):
            prev, cur, nxt = pts[i - 1], pts[i], pts[i + 1]
            r = min(self.corner_radius, _dist(prev, cur) / 2, _dist(cur, nxt) / 2)
            if r <= 0:
                parts.append(f"L {_fmt(cur.x)} {_fmt(cur.y)}")
                continue
            before = _toward(cur, prev, r)
            after = _toward(cur, nxt, r)
            parts.append(f"L {_fmt(before.x)} {_fmt(before.y)}")
            parts.append(
                f"Q {_fmt(cur.x)} {_fmt(cur.y)} {_fmt(after.x)} {_fmt(after.y)}"
            )
        parts.append(f"L {_fmt(pts[-1].x)} {_fmt(pts[-1].y)}")
        return " ".join(parts)


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

def route(
    source: Point,
    target: Point,
    obstacles: list[Rect],
    config: RouterConfig | None = None,
    *,
    bar_offset: float | None = None,
    corner_radius: float | None = None,
) -> ConnectorPath:
    """Compute an orthogonal path from *source* to *target* around *obstacles*.

    Args:
        source: Parent anchor (bottom-centre).
        target: Child anchor (top-centre).
        obstacles: Already padded rectangles of every node other than the
            edge's own endpoints.
        config: Router configuration.
        bar_offset: Per-edge override of ``config.bar_offset``.
        corner_radius: Per-edge override of ``config.corner_radius``.

    Returns:
        The routed path. Never fails; see ``ConnectorPath.exhausted``.
    """
    cfg = config or RouterConfig()
    sx, sy = source.x, source.y
    tx, ty = target.x, target.y

    # Vertically aligned: a straight drop
    if abs(sx - tx) < cfg.align_tolerance:
        return ConnectorPath((source, target), RouteKind.DIRECT)

    sign = 1 if ty > sy else -1
    gap = abs(ty - sy)
    preferred = cfg.bar_offset if bar_offset is None else bar_offset
    start_y = sy + sign * min(preferred, gap * cfg.bar_ratio)

    bar_y, bar_found = _find_clear_bar(sx, tx, start_y, sy, ty, sign, obstacles, cfg)

    if (not vline_blocked(sx, sy, bar_y, obstacles)
            and not vline_blocked(tx, bar_y, ty, obstacles)):
        radius = cfg.corner_radius if corner_radius is None else corner_radius
        points = _compact([source, Point(sx, bar_y), Point(tx, bar_y), target])
        return ConnectorPath(
            points,
            RouteKind.ORTHOGONAL,
            bar_y=bar_y,
            corner_radius=max(0.0, min(radius, cfg.corner_cap)),
            exhausted=not bar_found,
        )

    return _detour(source, target, bar_y, obstacles, cfg, not bar_found)


def _find_clear_bar(
    x1: float, x2: float,
    start_y: float,
    sy: float, ty: float,
    sign: int,
    obstacles: list[Rect],
    cfg: RouterConfig,
) -> tuple[float, bool]:
    """Step outward from *start_y* until the horizontal bar is clear."""
    lo, hi = min(x1, x2), max(x1, x2)
    if not hline_blocked(start_y, lo, hi, obstacles):
        return start_y, True

    if cfg.search_order is SearchOrder.AWAY_FIRST:
        order = (sign, -sign)
    else:
        order = (-sign, sign)

    steps = int(cfg.search_limit // cfg.search_step) if cfg.search_step > 0 else 0
    for i in range(1, steps + 1):
        offset = i * cfg.search_step
        for direction in order:
            y = start_y + direction * offset
            if cfg.bounded_to_gap and not (min(sy, ty) < y < max(sy, ty)):
                continue
            if not hline_blocked(y, lo, hi, obstacles):
                return y, True

    logger.debug(
        "No clear bar between x=%s..%s within %s of y=%s", lo, hi, cfg.search_limit, start_y,
    )
    return start_y, False


def _columns(x0: float, cfg: RouterConfig) -> Iterator[float]:
    """*x0*, then alternately left and right of it in ``jog_step`` increments."""
    yield x0
    steps = int(cfg.jog_limit // cfg.jog_step) if cfg.jog_step > 0 else 0
    for i in range(1, steps + 1):
        yield x0 - i * cfg.jog_step
        yield x0 + i * cfg.jog_step


def _find_leg(
    x0: float, anchor_y: float, bar_y: float,
    obstacles: list[Rect],
    cfg: RouterConfig,
) -> tuple[float, float, bool]:
    """Join the anchor at (*x0*, *anchor_y*) to the bar at *bar_y*.

    A leg is a short stub along *x0*, a horizontal jog at the stub's end and
    a vertical run down (or up) to the bar.  Shorter stubs are tried when
    the first one runs into an obstacle.

    Returns ``(stub_y, column_x, found)``.
    """
    direction = 1 if bar_y > anchor_y else -1
    stub = min(cfg.exit_length, abs(bar_y - anchor_y) / 2)
    for length in (stub, stub / 2, stub / 4):
        stub_y = anchor_y + direction * length
        if vline_blocked(x0, anchor_y, stub_y, obstacles):
            continue
        for x in _columns(x0, cfg):
            if hline_blocked(stub_y, x0, x, obstacles):
                continue
            if not vline_blocked(x, stub_y, bar_y, obstacles):
                return stub_y, x, True
    logger.debug("No clear leg from (%s, %s) to y=%s", x0, anchor_y, bar_y)
    return anchor_y + direction * stub, x0, False


def _detour(
    source: Point,
    target: Point,
    bar_y: float,
    obstacles: list[Rect],
    cfg: RouterConfig,
    exhausted: bool,
) -> ConnectorPath:
    """Multi-bend fallback: exit, jog, drop to the bar, cross, jog, enter.

    The finished path is checked segment by segment; any remaining
    collision marks it ``exhausted``.
    """
    exit_y, src_x, src_found = _find_leg(source.x, source.y, bar_y, obstacles, cfg)
    entry_y, tgt_x, tgt_found = _find_leg(target.x, target.y, bar_y, obstacles, cfg)

    path = ConnectorPath(
        _compact([
            source,
            Point(source.x, exit_y),
            Point(src_x, exit_y),
            Point(src_x, bar_y),
            Point(tgt_x, bar_y),
            Point(tgt_x, entry_y),
            Point(target.x, entry_y),
            target,
        ]),
        RouteKind.DETOUR,
        bar_y=bar_y,
    )
    clear = src_found and tgt_found and not path_collisions(path, obstacles)
    if not clear:
        logger.debug("Detour from %s to %s still crosses an obstacle", source, target)
    return replace(path, exhausted=exhausted or not clear)


# ---------------------------------------------------------------------------
# Diagram-level helpers
# ---------------------------------------------------------------------------

def build_obstacles(
    nodes: Iterable[DiagramNode],
    exclude: Iterable[str] = (),
    padding: float = 5,
) -> list[Rect]:
    """Padded bounding boxes of every node not listed in *exclude*."""
    skip = set(exclude)
    return [n.bounds.expanded(padding) for n in nodes if n.id not in skip]


def route_edge(
    edge: DiagramEdge,
    nodes: list[DiagramNode],
    config: RouterConfig | None = None,
) -> ConnectorPath | None:
    """Route a single edge; ``None`` when an endpoint is missing."""
    cfg = config or RouterConfig()
    by_id = {n.id: n for n in nodes}
    src = by_id.get(edge.source)
    tgt = by_id.get(edge.target)
    if src is None or tgt is None:
        return None
    return _route_between(edge, src, tgt, build_obstacles(nodes, (src.id, tgt.id), cfg.padding), cfg)


def route_edges(
    nodes: list[DiagramNode],
    edges: list[DiagramEdge],
    config: RouterConfig | None = None,
) -> dict[str, ConnectorPath]:
    """Route every edge of a diagram.

    Obstacles are rebuilt from the current node rectangles on every call.
    Edges whose endpoints are missing are skipped.
    """
    cfg = config or RouterConfig()
    by_id = {n.id: n for n in nodes}
    padded = {n.id: n.bounds.expanded(cfg.padding) for n in nodes}

    paths: dict[str, ConnectorPath] = {}
    for edge in edges:
        src = by_id.get(edge.source)
        tgt = by_id.get(edge.target)
        if src is None or tgt is None:
            continue
        obstacles = [
            r for nid, r in padded.items()
            if nid != edge.source and nid != edge.target
        ]
        paths[edge.id] = _route_between(edge, src, tgt, obstacles, cfg)
    return paths


def _route_between(
    edge: DiagramEdge,
    src: DiagramNode,
    tgt: DiagramNode,
    obstacles: list[Rect],
    cfg: RouterConfig,
) -> ConnectorPath:
    start, end = src.bottom_anchor, tgt.top_anchor
    if edge.type is EdgeType.STRAIGHT:
        return ConnectorPath((start, end), RouteKind.DIRECT)
    radius = 0 if edge.type is EdgeType.STEP else edge.style.corner_radius
    return route(
        start, end, obstacles, cfg,
        bar_offset=edge.style.bar_offset,
        corner_radius=radius,
    )


def path_collisions(path: ConnectorPath, obstacles: list[Rect]) -> list[int]:
    """Indices of path segments that cross any obstacle."""
    hits: list[int] = []
    for i, (a, b) in enumerate(path.segments()):
        if any(segment_hits_rect(a, b, r) for r in obstacles):
            hits.append(i)
    return hits


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _compact(points: list[Point]) -> tuple[Point, ...]:
    """Drop repeated points and collinear intermediate points."""
    deduped: list[Point] = []
    for p in points:
        if not deduped or _dist(deduped[-1], p) > 1e-6:
            deduped.append(p)
    if len(deduped) < 2:
        return tuple(points[:1] + points[-1:])

    result: list[Point] = [deduped[0]]
    for i in range(1, len(deduped) - 1):
        prev, cur, nxt = result[-1], deduped[i], deduped[i + 1]
        same_x = abs(prev.x - cur.x) < 1e-6 and abs(cur.x - nxt.x) < 1e-6
        same_y = abs(prev.y - cur.y) < 1e-6 and abs(cur.y - nxt.y) < 1e-6
        if not (same_x or same_y):
            result.append(cur)
    result.append(deduped[-1])
    return tuple(result)


def _dist(a: Point, b: Point) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


def _toward(origin: Point, other: Point, distance: float) -> Point:
    """Point at *distance* from *origin* in the direction of *other*."""
    length = _dist(origin, other)
    if length == 0:
        return origin
    t = distance / length
    return Point(origin.x + (other.x - origin.x) * t, origin.y + (other.y - origin.y) * t)


def _fmt(value: float) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text
