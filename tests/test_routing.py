"""Tests for the orthogonal connector router."""

import pytest

from orgchart_mcp.geometry import Point, Rect, hline_hits_rect
from orgchart_mcp.models import DiagramEdge, DiagramNode, EdgeStyle, EdgeType, derive_edges
from orgchart_mcp.routing import (
    ConnectorPath,
    RouteKind,
    RouterConfig,
    SearchOrder,
    build_obstacles,
    path_collisions,
    route,
    route_edge,
    route_edges,
)


def _node(nid: str, x: float, y: float, parent: str | None = None) -> DiagramNode:
    return DiagramNode(id=nid, title=nid, parent_id=parent, position=Point(x, y))


def _is_orthogonal(path: ConnectorPath) -> bool:
    return all(a.x == b.x or a.y == b.y for a, b in path.segments())


# ===================================================================
# Single connector
# ===================================================================

class TestRoute:
    def test_aligned_is_direct(self) -> None:
        path = route(Point(100, 80), Point(101, 200), [])
        assert path.kind is RouteKind.DIRECT
        assert path.points == (Point(100, 80), Point(101, 200))

    def test_no_obstacles_canonical(self) -> None:
        """Empty obstacle set: exactly vertical, horizontal, vertical."""
        path = route(Point(0, 0), Point(200, 200), [])
        assert path.kind is RouteKind.ORTHOGONAL
        assert path.points == (
            Point(0, 0), Point(0, 25), Point(200, 25), Point(200, 200),
        )
        assert path.bar_y == 25
        assert not path.exhausted

    def test_bar_ratio_for_short_gaps(self) -> None:
        path = route(Point(0, 0), Point(200, 50), [])
        assert path.bar_y == 15  # 0.3 * 50 < 25

    def test_upward_edge(self) -> None:
        path = route(Point(0, 300), Point(200, 100), [])
        assert path.bar_y == 275
        assert _is_orthogonal(path)

    def test_endpoints_preserved(self) -> None:
        path = route(Point(10, 20), Point(300, 400), [Rect(100, 100, 50, 50)])
        assert path.source == Point(10, 20)
        assert path.target == Point(300, 400)

    def test_bar_moves_off_obstacle(self) -> None:
        obstacle = Rect(50, 10, 100, 30)  # blocks y=15..35 around the preferred bar
        path = route(Point(0, 0), Point(200, 200), [obstacle])
        assert path.kind is RouteKind.ORTHOGONAL
        assert path.bar_y == 45
        assert not hline_hits_rect(path.bar_y, 0, 200, obstacle)
        assert path_collisions(path, [obstacle]) == []

    def test_search_order_toward_first(self) -> None:
        obstacle = Rect(50, 10, 100, 30)
        cfg = RouterConfig(search_order=SearchOrder.TOWARD_FIRST)
        path = route(Point(0, 0), Point(200, 200), [obstacle], cfg)
        assert path.bar_y == 5
        assert path_collisions(path, [obstacle]) == []

    def test_blocked_leg_detours(self) -> None:
        # Sits on the child's column just above it, below the bar
        obstacle = Rect(180, 100, 40, 40)
        path = route(Point(0, 0), Point(200, 200), [obstacle])
        assert path.kind is RouteKind.DETOUR
        assert _is_orthogonal(path)
        assert path_collisions(path, [obstacle]) == []

    def test_exhausted_search_still_returns_path(self) -> None:
        wall = Rect(-1000, -1000, 3000, 3000)
        path = route(Point(0, 0), Point(200, 200), [wall])
        assert path.exhausted
        assert path.source == Point(0, 0)
        assert path.target == Point(200, 200)

    def test_corner_radius_capped(self) -> None:
        path = route(Point(0, 0), Point(200, 200), [], RouterConfig(corner_radius=20))
        assert path.corner_radius == 8


class TestScenarios:
    def test_abc_bar_clears_middle_node(self) -> None:
        """A at (100,0), B at (300,200), C at (150,90) between them."""
        a = _node("A", 100, 0)
        b = _node("B", 300, 200, parent="A")
        c = _node("C", 150, 90)
        obstacles = build_obstacles([c], padding=5)
        path = route(a.bottom_anchor, b.top_anchor, obstacles)
        assert path.bar_y is not None and path.bar_y >= 170
        bar = Rect(145, 85, 170, 90)
        assert not hline_hits_rect(path.bar_y, 180, 380, bar)
        assert path.source == Point(180, 80)
        assert path.target == Point(380, 200)

    def test_abc_whole_path_clears_middle_node(self) -> None:
        a = _node("A", 100, 0)
        b = _node("B", 300, 200, parent="A")
        c = _node("C", 150, 90)
        obstacles = build_obstacles([c], padding=5)
        path = route(a.bottom_anchor, b.top_anchor, obstacles)
        assert path.kind is RouteKind.DETOUR
        assert not path.exhausted
        assert path_collisions(path, obstacles) == []
        assert _is_orthogonal(path)
        # Exit stub stays above C, then jogs left of it
        assert path.points[:3] == (Point(180, 80), Point(180, 82.5), Point(140, 82.5))


# ===================================================================
# Collision avoidance across obstacle layouts
# ===================================================================

_LAYOUTS = [
    pytest.param(Point(0, 0), Point(200, 200), [], id="empty"),
    pytest.param(Point(0, 0), Point(200, 200), [Rect(50, 10, 100, 30)], id="bar-blocked"),
    pytest.param(Point(0, 0), Point(200, 200), [Rect(-20, 10, 40, 10)], id="source-leg"),
    pytest.param(Point(0, 0), Point(200, 200), [Rect(180, 100, 40, 40)], id="target-leg"),
    pytest.param(Point(0, 0), Point(200, 200),
                 [Rect(-20, 10, 40, 10), Rect(180, 100, 40, 40)], id="both-legs"),
    pytest.param(Point(0, 0), Point(200, 200), [Rect(-30, 3, 60, 100)], id="hugging-source"),
    pytest.param(Point(0, 0), Point(200, 200), [Rect(170, 150, 60, 45)], id="hugging-target"),
    pytest.param(Point(0, 300), Point(200, 100), [Rect(180, 120, 40, 40)], id="upward"),
    pytest.param(Point(0, 0), Point(400, 200),
                 [Rect(-50, 40, 100, 20), Rect(100, 5, 50, 60), Rect(350, 120, 100, 40)],
                 id="cluttered"),
    pytest.param(Point(0, 0), Point(200, 200), [Rect(-1000, -1000, 3000, 3000)], id="walled-in"),
]


@pytest.mark.parametrize("source, target, obstacles", _LAYOUTS)
def test_path_is_clear_unless_exhausted(source, target, obstacles) -> None:
    path = route(source, target, obstacles)
    assert path.source == source
    assert path.target == target
    assert _is_orthogonal(path)
    assert path.exhausted or path_collisions(path, obstacles) == []


def test_blocked_source_leg_detours_cleanly() -> None:
    obstacle = Rect(-20, 10, 40, 10)
    path = route(Point(0, 0), Point(200, 200), [obstacle])
    assert path.kind is RouteKind.DETOUR
    assert not path.exhausted
    assert path.points[:3] == (Point(0, 0), Point(0, 5), Point(-30, 5))
    assert path_collisions(path, [obstacle]) == []


# ===================================================================
# SVG output
# ===================================================================

class TestSvgPath:
    def test_straight_path(self) -> None:
        path = ConnectorPath((Point(0, 0), Point(0, 100)), RouteKind.DIRECT)
        assert path.to_svg_path() == "M 0 0 L 0 100"

    def test_rounded_corners(self) -> None:
        path = route(Point(0, 0), Point(200, 200), [])
        d = path.to_svg_path()
        assert d.startswith("M 0 0 L 0 19 Q 0 25 6 25")
        assert d.endswith("L 200 200")
        assert d.count("Q") == 2

    def test_radius_clamped_to_short_segments(self) -> None:
        path = ConnectorPath(
            (Point(0, 0), Point(0, 4), Point(100, 4), Point(100, 100)),
            RouteKind.ORTHOGONAL,
            corner_radius=6,
        )
        assert "Q 0 4 2 4" in path.to_svg_path()

    def test_zero_radius_has_no_curves(self) -> None:
        path = route(Point(0, 0), Point(200, 200), [], RouterConfig(corner_radius=0))
        assert "Q" not in path.to_svg_path()


# ===================================================================
# Diagram-level routing
# ===================================================================

class TestRouteEdges:
    def _tree(self) -> list[DiagramNode]:
        return [
            _node("r", 400, 50),
            _node("a", 200, 250, parent="r"),
            _node("b", 600, 250, parent="r"),
        ]

    def test_every_edge_routed(self) -> None:
        nodes = self._tree()
        paths = route_edges(nodes, derive_edges(nodes))
        assert set(paths) == {"edge-r-a", "edge-r-b"}
        for path in paths.values():
            assert _is_orthogonal(path)

    def test_anchors(self) -> None:
        nodes = self._tree()
        paths = route_edges(nodes, derive_edges(nodes))
        assert paths["edge-r-a"].source == Point(480, 130)
        assert paths["edge-r-a"].target == Point(280, 250)

    def test_missing_endpoint_skipped(self) -> None:
        nodes = self._tree()
        edges = [DiagramEdge("edge-x-a", "x", "a")]
        assert route_edges(nodes, edges) == {}
        assert route_edge(edges[0], nodes) is None

    def test_straight_edge_type(self) -> None:
        nodes = self._tree()
        edge = DiagramEdge("edge-r-a", "r", "a", EdgeType.STRAIGHT)
        path = route_edge(edge, nodes)
        assert path.kind is RouteKind.DIRECT
        assert len(path.points) == 2

    def test_step_edge_has_square_corners(self) -> None:
        nodes = self._tree()
        edge = DiagramEdge("edge-r-a", "r", "a", EdgeType.STEP)
        assert route_edge(edge, nodes).corner_radius == 0

    def test_edge_style_bar_offset(self) -> None:
        nodes = self._tree()
        edge = DiagramEdge("edge-r-a", "r", "a", style=EdgeStyle(bar_offset=30))
        assert route_edge(edge, nodes).bar_y == 160

    def test_obstacles_exclude_endpoints(self) -> None:
        nodes = self._tree()
        obstacles = build_obstacles(nodes, exclude=("r", "a"))
        assert obstacles == [Rect(595, 245, 170, 90)]
