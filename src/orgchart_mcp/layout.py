"""
Automatic layout for hierarchical diagrams.

The adapter in this module is deliberately thin:

1. build the engine's input graph (node sizes + parent -> child links),
2. run a layout engine that returns node *centres*,
3. translate centres back into top-left corner positions.

Two engines are provided.  ``SugiyamaEngine`` delegates ranking and
placement to grandalf's layered layout.  ``TreeEngine`` is a small tidy-tree
placement with no dependencies: ranks by depth, parents centred over their
children.  Anything with a matching ``compute`` method can be passed instead.

Engines always work top-to-bottom; the adapter rotates/flips the result for
the BT, LR and RL directions.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Protocol

from grandalf.graphs import Edge, Graph, Vertex
from grandalf.layouts import SugiyamaLayout

from orgchart_mcp.models import DiagramNode, NodePosition


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class LayoutConfig:
    """Configuration for automatic layout."""
    direction: str = "TB"          # TB, BT, LR, RL
    node_spacing: float = 60       # Space between siblings in the same rank
    rank_spacing: float = 80       # Space between ranks
    margin_x: float = 50
    margin_y: float = 50
    default_width: float = 160     # Used when a node has no usable size
    default_height: float = 80

    @property
    def horizontal(self) -> bool:
        return self.direction.upper() in ("LR", "RL")

    @property
    def reversed(self) -> bool:
        return self.direction.upper() in ("BT", "RL")


# ---------------------------------------------------------------------------
# Engine input
# ---------------------------------------------------------------------------

@dataclass
class LayoutNode:
    """Engine-space node: ``width`` runs along a rank, ``height`` across ranks."""
    id: str
    width: float
    height: float


@dataclass
class LayoutGraph:
    nodes: list[LayoutNode] = field(default_factory=list)
    edges: list[tuple[str, str]] = field(default_factory=list)  # (parent, child)

    def children(self) -> dict[str, list[str]]:
        result: dict[str, list[str]] = {}
        for parent, child in self.edges:
            result.setdefault(parent, []).append(child)
        return result

    def roots(self) -> list[str]:
        targets = {child for _, child in self.edges}
        return [n.id for n in self.nodes if n.id not in targets]


class LayoutEngine(Protocol):
    def compute(
        self, graph: LayoutGraph, config: LayoutConfig,
    ) -> dict[str, tuple[float, float]]:
        """Return the centre of every node in top-to-bottom engine space."""
        ...


def build_layout_graph(
    nodes: list[DiagramNode],
    config: LayoutConfig | None = None,
) -> LayoutGraph:
    """Translate the node forest into engine input.

    Parent links that point at unknown nodes are ignored.  For horizontal
    directions width and height are swapped so engines can always lay out
    top-to-bottom.
    """
    cfg = config or LayoutConfig()
    ids = {n.id for n in nodes}
    graph = LayoutGraph()
    for node in nodes:
        w = node.width if node.width > 0 else cfg.default_width
        h = node.height if node.height > 0 else cfg.default_height
        if cfg.horizontal:
            w, h = h, w
        graph.nodes.append(LayoutNode(node.id, w, h))
    for node in nodes:
        if node.parent_id is not None and node.parent_id in ids:
            graph.edges.append((node.parent_id, node.id))
    return graph


# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------

class _VertexView:
    """Minimal view object required by grandalf's SugiyamaLayout."""

    def __init__(self, w: float, h: float) -> None:
        self.w = w
        self.h = h
        # xy is set by the layout engine (center coordinates)
        self.xy = (0.0, 0.0)


class SugiyamaEngine:
    """Layered layout backed by grandalf.

    grandalf lays out one connected component at a time; components (the
    trees of the forest) are placed side by side in input order.
    """

    def compute(
        self, graph: LayoutGraph, config: LayoutConfig,
    ) -> dict[str, tuple[float, float]]:
        vertices: dict[str, Vertex] = {}
        for node in graph.nodes:
            v = Vertex(node.id)
            v.view = _VertexView(node.width, node.height)
            vertices[node.id] = v
        edges = [Edge(vertices[p], vertices[c]) for p, c in graph.edges]
        g = Graph(list(vertices.values()), edges)

        centres: dict[str, tuple[float, float]] = {}
        cursor = 0.0
        for component in g.C:
            placed = self._layout_component(component, config)
            left = min(x - vertices[vid].view.w / 2 for vid, (x, _) in placed.items())
            right = max(x + vertices[vid].view.w / 2 for vid, (x, _) in placed.items())
            top = min(y - vertices[vid].view.h / 2 for vid, (_, y) in placed.items())
            for vid, (x, y) in placed.items():
                centres[vid] = (x - left + cursor, y - top)
            cursor += (right - left) + config.node_spacing
        return centres

    @staticmethod
    def _layout_component(component, config: LayoutConfig) -> dict[str, tuple[float, float]]:
        verts = list(component.sV)
        if len(verts) == 1:
            v = verts[0]
            return {v.data: (v.view.w / 2, v.view.h / 2)}

        sug = SugiyamaLayout(component)
        sug.xspace = config.node_spacing
        sug.yspace = config.rank_spacing
        sug.init_all()
        sug.draw()
        return {v.data: (float(v.view.xy[0]), float(v.view.xy[1])) for v in verts}


class TreeEngine:
    """Tidy tree placement.

    - Assigns ranks by depth (BFS from the roots)
    - Gives every subtree a span wide enough for its children
    - Centres each parent over its children
    - Aligns the tops of all nodes in a rank, ranks sized by their tallest node
    """

    def compute(
        self, graph: LayoutGraph, config: LayoutConfig,
    ) -> dict[str, tuple[float, float]]:
        sizes = {n.id: (n.width, n.height) for n in graph.nodes}
        children = graph.children()

        # BFS to assign levels; nodes not reached from a root start a new tree
        depth: dict[str, int] = {}
        tree_children: dict[str, list[str]] = {}
        order: list[str] = []
        roots: list[str] = []
        for start in graph.roots() + [n.id for n in graph.nodes]:
            if start in depth:
                continue
            roots.append(start)
            depth[start] = 0
            queue = deque([start])
            while queue:
                nid = queue.popleft()
                order.append(nid)
                tree_children[nid] = []
                for child in children.get(nid, []):
                    if child in depth or child not in sizes:
                        continue
                    depth[child] = depth[nid] + 1
                    tree_children[nid].append(child)
                    queue.append(child)

        # Cumulative rank offsets so all nodes in a rank share the same top
        rank_height: dict[int, float] = {}
        for nid, d in depth.items():
            rank_height[d] = max(rank_height.get(d, 0.0), sizes[nid][1])
        rank_top: dict[int, float] = {}
        cumulative = 0.0
        for d in sorted(rank_height):
            rank_top[d] = cumulative
            cumulative += rank_height[d] + config.rank_spacing

        # Subtree spans, children before parents
        span: dict[str, float] = {}
        for nid in reversed(order):
            span[nid] = max(sizes[nid][0], self._children_span(tree_children[nid], span, config))

        centres: dict[str, tuple[float, float]] = {}
        cursor = 0.0
        for root in roots:
            stack = [(root, cursor)]
            while stack:
                nid, left = stack.pop()
                centres[nid] = (left + span[nid] / 2, rank_top[depth[nid]] + sizes[nid][1] / 2)
                kids = tree_children[nid]
                child_left = left + (span[nid] - self._children_span(kids, span, config)) / 2
                for child in kids:
                    stack.append((child, child_left))
                    child_left += span[child] + config.node_spacing
            cursor += span[root] + config.node_spacing
        return centres

    @staticmethod
    def _children_span(kids: list[str], span: dict[str, float], config: LayoutConfig) -> float:
        if not kids:
            return 0.0
        return sum(span[k] for k in kids) + config.node_spacing * (len(kids) - 1)


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

def compute_positions(
    nodes: list[DiagramNode],
    config: LayoutConfig | None = None,
    engine: Optional[LayoutEngine] = None,
) -> list[NodePosition]:
    """Lay out the node forest and return one top-left position per node.

    Args:
        nodes: Current nodes (ids, sizes and parent links are used).
        config: Direction, spacing and margins.
        engine: Layout engine; defaults to ``SugiyamaEngine``.

    Returns:
        Positions in node order.  Nodes the engine did not place are left out.
    """
    cfg = config or LayoutConfig()
    if not nodes:
        return []
    graph = build_layout_graph(nodes, cfg)
    centres = (engine or SugiyamaEngine()).compute(graph, cfg)
    return centres_to_positions(nodes, graph, centres, cfg)


def centres_to_positions(
    nodes: list[DiagramNode],
    graph: LayoutGraph,
    centres: dict[str, tuple[float, float]],
    config: LayoutConfig,
) -> list[NodePosition]:
    """Orient engine-space centres and convert them to corner positions."""
    placed = [n for n in graph.nodes if n.id in centres]
    if not placed:
        return []
    min_left = min(centres[n.id][0] - n.width / 2 for n in placed)
    min_top = min(centres[n.id][1] - n.height / 2 for n in placed)
    max_bottom = max(centres[n.id][1] + n.height / 2 for n in placed)
    depth_extent = max_bottom - min_top

    oriented: dict[str, tuple[float, float]] = {}
    for n in placed:
        along = centres[n.id][0] - min_left   # position within a rank
        across = centres[n.id][1] - min_top   # position across ranks
        if config.reversed:
            across = depth_extent - across
        if config.horizontal:
            oriented[n.id] = (config.margin_x + across, config.margin_y + along)
        else:
            oriented[n.id] = (config.margin_x + along, config.margin_y + across)

    positions: list[NodePosition] = []
    for node in nodes:
        if node.id not in oriented:
            continue
        cx, cy = oriented[node.id]
        w = node.width if node.width > 0 else config.default_width
        h = node.height if node.height > 0 else config.default_height
        positions.append(NodePosition(node.id, cx - w / 2, cy - h / 2))
    return positions
