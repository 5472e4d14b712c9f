"""
Core model classes for hierarchical diagrams.

A diagram is a forest of boxes. Every node optionally points at its parent;
connectors are never authored directly but derived from those parent links.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from orgchart_mcp.geometry import Point, Rect

SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class EdgeType(Enum):
    STRAIGHT = "straight"
    STEP = "step"
    SMOOTHSTEP = "smoothstep"


class FontSize(Enum):
    XS = "xs"
    SM = "sm"
    BASE = "base"
    LG = "lg"
    XL = "xl"


class TextAlign(Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class BorderStyle(Enum):
    SOLID = "solid"
    DASHED = "dashed"
    DOTTED = "dotted"


class BorderRadius(Enum):
    NONE = "none"
    SM = "sm"
    MD = "md"
    LG = "lg"
    FULL = "full"


class Shadow(Enum):
    NONE = "none"
    SM = "sm"
    MD = "md"
    LG = "lg"


# ---------------------------------------------------------------------------
# Style structs
# ---------------------------------------------------------------------------

@dataclass
class NodeStyle:
    """Box colours, including the badge colours."""
    fill: str = "#d4e8f2"
    border: str = "#333333"
    text_color: str = "#000000"
    badge_fill: str = "#c0c0c0"
    badge_text_color: str = "#333333"


@dataclass
class TextStyle:
    bold: bool = False
    italic: bool = False
    underline: bool = False
    font_size: FontSize = FontSize.SM
    align: TextAlign = TextAlign.CENTER


@dataclass
class BoxStyle:
    border_width: int = 2  # 1..4
    border_style: BorderStyle = BorderStyle.SOLID
    border_radius: BorderRadius = BorderRadius.SM
    shadow: Shadow = Shadow.SM


@dataclass
class BadgeConfig:
    """Badge box placement relative to the node centre.

    Negative ``offset_y`` moves the badge up. The badge may extend past the
    node's bounds.
    """
    offset_x: float = 0
    offset_y: float = -40
    width: float = 60
    height: float = 24


@dataclass
class EdgeStyle:
    """Rendering hints for a connector."""
    stroke: str = "#64748b"
    stroke_width: float = 2
    dash: BorderStyle = BorderStyle.SOLID
    corner_radius: float = 6
    # Preferred distance of the horizontal bar below the parent
    bar_offset: float = 25


# ---------------------------------------------------------------------------
# Nodes and edges
# ---------------------------------------------------------------------------

@dataclass
class DiagramNode:
    """A single box of the diagram."""
    id: str
    title: str
    parent_id: Optional[str] = None
    subtitle: str = ""
    badge: str = ""
    badge_config: Optional[BadgeConfig] = None
    style: NodeStyle = field(default_factory=NodeStyle)
    text_style: Optional[TextStyle] = None
    box_style: Optional[BoxStyle] = None
    width: float = 160
    height: float = 80
    position: Point = field(default_factory=lambda: Point(0, 0))

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def bounds(self) -> Rect:
        return Rect(self.position.x, self.position.y, self.width, self.height)

    @property
    def bottom_anchor(self) -> Point:
        """Connection point used when this node is the edge source."""
        return Point(self.position.x + self.width / 2, self.position.y + self.height)

    @property
    def top_anchor(self) -> Point:
        """Connection point used when this node is the edge target."""
        return Point(self.position.x + self.width / 2, self.position.y)


@dataclass
class DiagramEdge:
    """A parent -> child connector derived from ``DiagramNode.parent_id``."""
    id: str
    source: str
    target: str
    type: EdgeType = EdgeType.SMOOTHSTEP
    style: EdgeStyle = field(default_factory=EdgeStyle)


@dataclass
class NodePosition:
    """Bulk position update for one node."""
    id: str
    x: float
    y: float


# ---------------------------------------------------------------------------
# Persisted unit
# ---------------------------------------------------------------------------

@dataclass
class DiagramSettings:
    name: str = "Untitled Diagram"
    created_at: datetime = field(default_factory=lambda: utcnow())
    updated_at: datetime = field(default_factory=lambda: utcnow())


@dataclass
class DiagramData:
    """Snapshot handed to persistence and export collaborators."""
    nodes: list[DiagramNode] = field(default_factory=list)
    edges: list[DiagramEdge] = field(default_factory=list)
    settings: DiagramSettings = field(default_factory=DiagramSettings)
    schema_version: int = SCHEMA_VERSION


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def new_node_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def edge_id(parent_id: str, child_id: str) -> str:
    """Deterministic id of the connector between *parent_id* and *child_id*."""
    return f"edge-{parent_id}-{child_id}"


def derive_edges(
    nodes: list[DiagramNode],
    overrides: dict[str, tuple[EdgeType, EdgeStyle]] | None = None,
) -> list[DiagramEdge]:
    """Build the edge list from parent links.

    Exactly one edge per node whose ``parent_id`` is set, in node order.
    *overrides* maps edge ids to a ``(type, style)`` pair that replaces the
    defaults; entries for edges that do not exist are ignored.
    """
    overrides = overrides or {}
    edges: list[DiagramEdge] = []
    for node in nodes:
        if node.parent_id is None:
            continue
        eid = edge_id(node.parent_id, node.id)
        if eid in overrides:
            etype, estyle = overrides[eid]
            edges.append(DiagramEdge(eid, node.parent_id, node.id, etype, replace(estyle)))
        else:
            edges.append(DiagramEdge(eid, node.parent_id, node.id))
    return edges
