"""Tests for the layout adapter and its engines."""

import pytest

from orgchart_mcp.geometry import Point, Rect, find_overlaps
from orgchart_mcp.layout import (
    LayoutConfig,
    LayoutGraph,
    SugiyamaEngine,
    TreeEngine,
    build_layout_graph,
    compute_positions,
)
from orgchart_mcp.models import DiagramNode


def _node(nid: str, parent: str | None = None, w: float = 160, h: float = 80) -> DiagramNode:
    return DiagramNode(id=nid, title=nid, parent_id=parent, width=w, height=h)


def _tree() -> list[DiagramNode]:
    return [_node("r"), _node("a", "r"), _node("b", "r")]


def _by_id(positions) -> dict[str, Point]:
    return {p.id: Point(p.x, p.y) for p in positions}


def _rects(nodes: list[DiagramNode], positions) -> dict[str, Rect]:
    pos = _by_id(positions)
    return {n.id: Rect(pos[n.id].x, pos[n.id].y, n.width, n.height) for n in nodes}


# ===================================================================
# Engine input
# ===================================================================

class TestBuildLayoutGraph:
    def test_links_follow_parents(self) -> None:
        graph = build_layout_graph(_tree())
        assert graph.edges == [("r", "a"), ("r", "b")]
        assert graph.roots() == ["r"]
        assert graph.children() == {"r": ["a", "b"]}

    def test_missing_parent_ignored(self) -> None:
        graph = build_layout_graph([_node("a", "ghost")])
        assert graph.edges == []
        assert graph.roots() == ["a"]

    def test_horizontal_swaps_sizes(self) -> None:
        graph = build_layout_graph([_node("a", w=200, h=50)], LayoutConfig(direction="LR"))
        assert (graph.nodes[0].width, graph.nodes[0].height) == (50, 200)

    def test_non_positive_size_uses_default(self) -> None:
        graph = build_layout_graph([_node("a", w=0, h=-1)])
        assert (graph.nodes[0].width, graph.nodes[0].height) == (160, 80)


# ===================================================================
# Tree engine (deterministic)
# ===================================================================

class TestTreeEngine:
    def test_parent_centred_over_children(self) -> None:
        pos = _by_id(compute_positions(_tree(), engine=TreeEngine()))
        assert pos["r"] == Point(160, 50)
        assert pos["a"] == Point(50, 210)
        assert pos["b"] == Point(270, 210)

    def test_left_to_right(self) -> None:
        pos = _by_id(compute_positions(_tree(), LayoutConfig(direction="LR"), TreeEngine()))
        assert pos["r"] == Point(50, 120)
        assert pos["a"] == Point(290, 50)
        assert pos["b"] == Point(290, 190)

    def test_bottom_to_top(self) -> None:
        pos = _by_id(compute_positions(_tree(), LayoutConfig(direction="BT"), TreeEngine()))
        assert pos["a"].y == 50
        assert pos["r"].y == 210

    def test_right_to_left(self) -> None:
        pos = _by_id(compute_positions(_tree(), LayoutConfig(direction="RL"), TreeEngine()))
        assert pos["r"].x > pos["a"].x
        assert pos["a"].x == pos["b"].x

    def test_forest_side_by_side(self) -> None:
        nodes = _tree() + [_node("s"), _node("t", "s")]
        positions = compute_positions(nodes, engine=TreeEngine())
        assert find_overlaps(_rects(nodes, positions)) == []
        pos = _by_id(positions)
        assert pos["s"].x > pos["b"].x

    def test_rank_spacing(self) -> None:
        cfg = LayoutConfig(rank_spacing=200)
        pos = _by_id(compute_positions(_tree(), cfg, TreeEngine()))
        assert pos["a"].y - pos["r"].y == 280

    def test_tall_rank_pushes_next_rank(self) -> None:
        nodes = [_node("r"), _node("a", "r", h=200), _node("b", "r"), _node("c", "b")]
        pos = _by_id(compute_positions(nodes, engine=TreeEngine()))
        assert pos["a"].y == pos["b"].y  # tops aligned within a rank
        assert pos["c"].y == pos["a"].y + 200 + 80


# ===================================================================
# Sugiyama engine (grandalf)
# ===================================================================

class TestSugiyamaEngine:
    def test_all_nodes_placed(self) -> None:
        nodes = _tree() + [_node("c", "a")]
        assert len(compute_positions(nodes)) == 4

    def test_ranks_top_to_bottom(self) -> None:
        nodes = _tree() + [_node("c", "a")]
        pos = _by_id(compute_positions(nodes))
        assert pos["r"].y < pos["a"].y
        assert pos["a"].y == pytest.approx(pos["b"].y)
        assert pos["c"].y > pos["a"].y

    def test_no_overlaps(self) -> None:
        nodes = _tree() + [_node("c", "a"), _node("d", "a"), _node("e", "b")]
        positions = compute_positions(nodes)
        assert find_overlaps(_rects(nodes, positions)) == []

    def test_margins(self) -> None:
        positions = compute_positions(_tree())
        assert min(p.x for p in positions) == pytest.approx(50)
        assert min(p.y for p in positions) == pytest.approx(50)

    def test_left_to_right(self) -> None:
        pos = _by_id(compute_positions(_tree(), LayoutConfig(direction="LR")))
        assert pos["r"].x < pos["a"].x
        assert pos["a"].x == pytest.approx(pos["b"].x)

    def test_bottom_to_top(self) -> None:
        pos = _by_id(compute_positions(_tree(), LayoutConfig(direction="BT")))
        assert pos["r"].y > pos["a"].y

    def test_forest(self) -> None:
        nodes = _tree() + [_node("s"), _node("t", "s"), _node("lone")]
        positions = compute_positions(nodes)
        assert len(positions) == 6
        assert find_overlaps(_rects(nodes, positions)) == []

    def test_single_node(self) -> None:
        assert _by_id(compute_positions([_node("a")])) == {"a": Point(50, 50)}


# ===================================================================
# Adapter
# ===================================================================

class _FixedEngine:
    def __init__(self, centres: dict[str, tuple[float, float]]) -> None:
        self.centres = centres

    def compute(self, graph: LayoutGraph, config: LayoutConfig) -> dict[str, tuple[float, float]]:
        return dict(self.centres)


def test_empty_diagram() -> None:
    assert compute_positions([]) == []


def test_centre_to_corner() -> None:
    nodes = [_node("a"), _node("b", "a")]
    engine = _FixedEngine({"a": (80, 40), "b": (80, 240)})
    pos = _by_id(compute_positions(nodes, LayoutConfig(margin_x=0, margin_y=0), engine))
    assert pos == {"a": Point(0, 0), "b": Point(0, 200)}


def test_unplaced_nodes_are_left_out() -> None:
    nodes = [_node("a"), _node("b")]
    positions = compute_positions(nodes, engine=_FixedEngine({"a": (0, 0)}))
    assert [p.id for p in positions] == ["a"]
