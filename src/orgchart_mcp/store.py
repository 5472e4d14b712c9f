"""
Diagram model and mutation store.

``DiagramStore`` owns the node forest, the derived edge list, the selection
and a bounded undo history.  Every public mutation is a single transition:
it either applies completely and commits one history entry, or it is a
no-op.  Operations that name unknown ids are silently ignored (logged at
DEBUG); nothing is raised to the caller except by ``load_diagram`` when
it is handed a malformed document.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from orgchart_mcp.codec import DiagramFormatError, check_forest, diagram_from_dict
from orgchart_mcp.geometry import Point
from orgchart_mcp.history import History, Snapshot
from orgchart_mcp.layout import LayoutConfig, LayoutEngine, compute_positions
from orgchart_mcp.models import (
    BadgeConfig,
    BoxStyle,
    DiagramData,
    DiagramEdge,
    DiagramNode,
    DiagramSettings,
    EdgeStyle,
    EdgeType,
    NodePosition,
    NodeStyle,
    TextStyle,
    derive_edges,
    new_node_id,
    utcnow,
)
from orgchart_mcp.routing import ConnectorPath, RouterConfig, route_edges
from orgchart_mcp.styles import (
    default_box_style,
    default_edge_style,
    default_node_style,
    default_text_style,
)
from orgchart_mcp.validation import ValidationError, validate_enum_member, validate_style_fields

logger = logging.getLogger("orgchart-mcp.store")

DEFAULT_NAME = "Untitled Diagram"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class StoreConfig:
    """Limits and defaults for a diagram store."""
    history_limit: int = 50

    # Node size
    default_width: float = 160
    default_height: float = 80
    min_width: float = 80
    min_height: float = 40
    max_width: float = 800
    max_height: float = 600
    badge_min_width: float = 40
    badge_min_height: float = 20

    # Provisional placement of new nodes (auto-layout tidies up later)
    root_x: float = 400
    root_y: float = 50
    child_offset_y: float = 120
    sibling_offset_x: float = 180


# Fields accepted by update(); anything else is ignored.
_UPDATABLE = frozenset({
    "title", "subtitle", "badge", "badge_config", "style", "text_style",
    "box_style", "width", "height", "position", "parent_id",
})

_STRUCT_FIELDS: dict[str, type] = {
    "badge_config": BadgeConfig,
    "style": NodeStyle,
    "text_style": TextStyle,
    "box_style": BoxStyle,
}

# Starting value when a partial dict is merged into an unset struct
_STRUCT_DEFAULTS: dict[str, Callable[[], Any]] = {
    "badge_config": BadgeConfig,
    "style": default_node_style,
    "text_style": default_text_style,
    "box_style": default_box_style,
}

PositionLike = Union[NodePosition, tuple[str, float, float], Mapping[str, Any]]


def _overrides_from(edges: Iterable[DiagramEdge]) -> dict[str, tuple[EdgeType, EdgeStyle]]:
    """Recover the override table from edges that differ from the defaults."""
    default = default_edge_style()
    return {
        e.id: (e.type, replace(e.style))
        for e in edges
        if e.type is not EdgeType.SMOOTHSTEP or e.style != default
    }


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class DiagramStore:
    """Authoritative state of one diagram."""

    def __init__(self, name: str = DEFAULT_NAME, config: StoreConfig | None = None) -> None:
        self.config = config or StoreConfig()
        self.name = name
        self.created_at = utcnow()
        self.updated_at = self.created_at
        self.nodes: list[DiagramNode] = []
        self.edges: list[DiagramEdge] = []
        self._edge_overrides: dict[str, tuple[EdgeType, EdgeStyle]] = {}
        self._selected: list[str] = []
        self._selected_edge: Optional[str] = None
        self._dragging = False
        self._history = History(self.config.history_limit)
        self._history.reset(self.nodes, self.edges)

    def __repr__(self) -> str:
        return f"DiagramStore(name={self.name!r}, nodes={len(self.nodes)}, edges={len(self.edges)})"

    # -- internals ----------------------------------------------------------

    def _index(self) -> dict[str, DiagramNode]:
        return {n.id: n for n in self.nodes}

    def _rederive(self) -> None:
        """Rebuild edges from parent links and drop overrides of vanished edges."""
        self.edges = derive_edges(self.nodes, self._edge_overrides)
        live = {e.id for e in self.edges}
        self._edge_overrides = {k: v for k, v in self._edge_overrides.items() if k in live}
        if self._selected_edge is not None and self._selected_edge not in live:
            self._selected_edge = None

    def _commit(self) -> None:
        self._rederive()
        self._dragging = False
        self.updated_at = utcnow()
        self._history.commit(self.nodes, self.edges)

    def _restore(self, snapshot: Snapshot) -> None:
        self.nodes, self.edges = snapshot.restore()
        self._edge_overrides = _overrides_from(self.edges)
        self._dragging = False
        self._prune_selection()

    def _prune_selection(self) -> None:
        ids = {n.id for n in self.nodes}
        self._selected = [i for i in self._selected if i in ids]
        if self._selected_edge is not None and self.get_edge(self._selected_edge) is None:
            self._selected_edge = None

    def _clamp_size(self, width: float, height: float) -> tuple[float, float]:
        cfg = self.config
        return (
            min(max(width, cfg.min_width), cfg.max_width),
            min(max(height, cfg.min_height), cfg.max_height),
        )

    def _clamp_badge(self, badge: BadgeConfig) -> BadgeConfig:
        return replace(
            badge,
            width=max(badge.width, self.config.badge_min_width),
            height=max(badge.height, self.config.badge_min_height),
        )

    def _clamped(self, node: DiagramNode) -> DiagramNode:
        """*node* with its box and badge sizes brought within the configured limits."""
        width, height = self._clamp_size(node.width, node.height)
        badge = None if node.badge_config is None else self._clamp_badge(node.badge_config)
        return replace(node, width=width, height=height, badge_config=badge)

    def _new_node(self, parent_id: Optional[str], title: str, template: DiagramNode | None) -> DiagramNode:
        cfg = self.config
        width, height = self._clamp_size(cfg.default_width, cfg.default_height)
        node = DiagramNode(
            id=new_node_id(),
            title=title,
            parent_id=parent_id,
            style=replace(template.style) if template else default_node_style(),
            width=width,
            height=height,
        )
        if template is not None:
            node.text_style = copy.deepcopy(template.text_style)
            node.box_style = copy.deepcopy(template.box_style)
        return node

    def _insert(self, node: DiagramNode) -> str:
        self.nodes.append(node)
        self._selected = [node.id]
        self._selected_edge = None
        self._commit()
        return node.id

    # -- creation -----------------------------------------------------------

    def add_root(self, title: str = "Root Node") -> str:
        """Add a new root node and select it."""
        node = self._new_node(None, title, None)
        node.position = Point(self.config.root_x, self.config.root_y)
        return self._insert(node)

    def add_child(self, parent_id: str, title: str = "Child Node") -> Optional[str]:
        """Add a child below *parent_id*, inheriting its styles."""
        parent = self.get_node(parent_id)
        if parent is None:
            logger.debug("add_child: unknown parent '%s'", parent_id)
            return None
        node = self._new_node(parent.id, title, parent)
        node.position = parent.position.offset(dy=self.config.child_offset_y)
        return self._insert(node)

    def add_sibling(self, sibling_id: str, title: str = "Sibling Node") -> Optional[str]:
        """Add a node next to *sibling_id* under the same parent."""
        sibling = self.get_node(sibling_id)
        if sibling is None:
            logger.debug("add_sibling: unknown node '%s'", sibling_id)
            return None
        node = self._new_node(sibling.parent_id, title, sibling)
        node.position = sibling.position.offset(dx=self.config.sibling_offset_x)
        return self._insert(node)

    # -- updates ------------------------------------------------------------

    def _coerce(self, node: DiagramNode, key: str, value: Any) -> Any:
        """Turn a raw update value into the field's type.

        Style structs accept either an instance or a partial dict that is
        merged into the node's current value.  Either way every field is
        validated, enum strings become members and badge sizes are clamped.
        """
        if key in _STRUCT_FIELDS:
            cls = _STRUCT_FIELDS[key]
            if value is None:
                return default_node_style() if key == "style" else None
            if isinstance(value, cls):
                base, raw = value, {f.name: getattr(value, f.name) for f in fields(cls)}
            elif isinstance(value, Mapping):
                base, raw = getattr(node, key) or _STRUCT_DEFAULTS[key](), value
            else:
                raise ValidationError(f"'{key}' must be a {cls.__name__} or a dict.")
            result = replace(base, **validate_style_fields(key, raw))
            if key == "badge_config":
                result = self._clamp_badge(result)
            return result
        if key == "position":
            if isinstance(value, Point):
                return value
            if isinstance(value, Mapping):
                return Point(float(value["x"]), float(value["y"]))
            x, y = value
            return Point(float(x), float(y))
        if key in ("width", "height"):
            return float(value)
        return value

    def _updated_node(self, node: DiagramNode, changes: Mapping[str, Any]) -> DiagramNode | None:
        """Apply *changes* to a copy of *node*; ``None`` when they are rejected."""
        values: dict[str, Any] = {}
        for key, value in changes.items():
            if key not in _UPDATABLE:
                continue
            try:
                values[key] = self._coerce(node, key, value)
            except (ValidationError, KeyError, TypeError, ValueError) as exc:
                logger.debug("update of '%s' ignores field '%s': %s", node.id, key, exc)

        if "parent_id" in values and values["parent_id"] != node.parent_id:
            if not self._can_reparent(node.id, values["parent_id"]):
                logger.warning(
                    "Rejected reparent of '%s' under '%s': would break the tree",
                    node.id, values["parent_id"],
                )
                return None

        if "width" in values or "height" in values:
            values["width"], values["height"] = self._clamp_size(
                values.get("width", node.width), values.get("height", node.height),
            )
        return replace(node, **values)

    def _can_reparent(self, node_id: str, parent_id: Optional[str]) -> bool:
        if parent_id is None:
            return True
        if parent_id == node_id or self.get_node(parent_id) is None:
            return False
        return parent_id not in self.descendants_of(node_id)

    def _update_ids(self, node_ids: Iterable[str], changes: Mapping[str, Any]) -> bool:
        targets = set(node_ids)
        changed = False
        for i, node in enumerate(self.nodes):
            if node.id not in targets:
                continue
            updated = self._updated_node(node, changes)
            if updated is not None and updated != node:
                self.nodes[i] = updated
                changed = True
        if changed:
            self._commit()
        return changed

    def update(self, node_id: str, **changes: Any) -> bool:
        """Shallow-merge *changes* into one node.

        Unknown fields (and ``id``) are ignored, sizes are clamped to the
        configured limits and ``parent_id`` changes that would break the
        forest are rejected.  Returns ``True`` when the node changed.
        """
        if self.get_node(node_id) is None:
            logger.debug("update: unknown node '%s'", node_id)
            return False
        return self._update_ids([node_id], changes)

    def update_many(self, node_ids: Iterable[str], **changes: Any) -> bool:
        return self._update_ids(node_ids, changes)

    def update_selected(self, **changes: Any) -> bool:
        if not self._selected:
            return False
        return self._update_ids(self._selected, changes)

    # -- deletion -----------------------------------------------------------

    def delete(self, node_id: str) -> bool:
        """Remove *node_id* together with all of its descendants."""
        return self.delete_many([node_id])

    def delete_many(self, node_ids: Iterable[str]) -> bool:
        index = self._index()
        doomed: set[str] = set()
        for nid in node_ids:
            if nid not in index:
                logger.debug("delete: unknown node '%s'", nid)
                continue
            doomed.add(nid)
            doomed |= self.descendants_of(nid)
        if not doomed:
            return False
        self.nodes = [n for n in self.nodes if n.id not in doomed]
        self._selected = [i for i in self._selected if i not in doomed]
        self._commit()
        return True

    def delete_selected(self) -> bool:
        return self.delete_many(list(self._selected))

    # -- edges --------------------------------------------------------------

    def detach(self, edge_id: str) -> bool:
        """Remove an edge by clearing its target's parent link."""
        edge = self.get_edge(edge_id)
        if edge is None:
            logger.debug("detach: unknown edge '%s'", edge_id)
            return False
        self.nodes = [
            replace(n, parent_id=None) if n.id == edge.target else n
            for n in self.nodes
        ]
        if self._selected_edge == edge_id:
            self._selected_edge = None
        self._commit()
        return True

    def update_edge(
        self,
        edge_id: str,
        type: EdgeType | str | None = None,
        style: EdgeStyle | Mapping[str, Any] | None = None,
    ) -> bool:
        """Set rendering hints of a derived edge."""
        edge = self.get_edge(edge_id)
        if edge is None:
            logger.debug("update_edge: unknown edge '%s'", edge_id)
            return False
        try:
            new_type = edge.type if type is None else validate_enum_member(type, "type", EdgeType)
            if style is None:
                new_style = edge.style
            else:
                if isinstance(style, EdgeStyle):
                    style = {f.name: getattr(style, f.name) for f in fields(EdgeStyle)}
                new_style = replace(edge.style, **validate_style_fields("edge_style", style))
        except ValidationError as exc:
            logger.debug("update_edge of '%s' ignored: %s", edge_id, exc.message)
            return False
        if new_type == edge.type and new_style == edge.style:
            return False
        self._edge_overrides[edge_id] = (new_type, replace(new_style))
        self._commit()
        return True

    # -- positions ----------------------------------------------------------

    def _apply_positions(self, positions: Iterable[PositionLike]) -> bool:
        moves: dict[str, Point] = {}
        for p in positions:
            if isinstance(p, NodePosition):
                moves[p.id] = Point(p.x, p.y)
            elif isinstance(p, Mapping):
                moves[p["id"]] = Point(float(p["x"]), float(p["y"]))
            else:
                nid, x, y = p
                moves[nid] = Point(float(x), float(y))
        changed = False
        for i, node in enumerate(self.nodes):
            target = moves.get(node.id)
            if target is not None and target != node.position:
                self.nodes[i] = replace(node, position=target)
                changed = True
        return changed

    def set_positions(self, positions: Iterable[PositionLike]) -> bool:
        """Bulk position write committing one history entry."""
        if self._apply_positions(positions):
            self._commit()
            return True
        return self.end_drag()

    def drag(self, positions: Iterable[PositionLike]) -> bool:
        """Live drag frame: move nodes without touching history."""
        if self._apply_positions(positions):
            self._dragging = True
            return True
        return False

    def move_selected(self, dx: float, dy: float) -> bool:
        """Live drag frame for the whole selection."""
        selected = set(self._selected)
        if not selected or (dx == 0 and dy == 0):
            return False
        self.nodes = [
            replace(n, position=n.position.offset(dx, dy)) if n.id in selected else n
            for n in self.nodes
        ]
        self._dragging = True
        return True

    def end_drag(self) -> bool:
        """Finish a drag gesture, committing once if anything moved."""
        if not self._dragging:
            return False
        current = self._history.current
        if current is not None and list(current.nodes) == self.nodes:
            self._dragging = False
            return False
        self._commit()
        return True

    # -- history ------------------------------------------------------------

    def undo(self) -> bool:
        self.end_drag()
        snapshot = self._history.undo()
        if snapshot is None:
            return False
        self._restore(snapshot)
        return True

    def redo(self) -> bool:
        if self._dragging:
            return False
        snapshot = self._history.redo()
        if snapshot is None:
            return False
        self._restore(snapshot)
        return True

    def can_undo(self) -> bool:
        return self._history.can_undo() or self._dragging

    def can_redo(self) -> bool:
        return self._history.can_redo() and not self._dragging

    @property
    def history(self) -> History:
        return self._history

    # -- selection ----------------------------------------------------------

    @property
    def selected_ids(self) -> list[str]:
        return list(self._selected)

    @property
    def selected_edge_id(self) -> Optional[str]:
        return self._selected_edge

    def select(self, node_id: Optional[str]) -> None:
        if node_id is None:
            self._selected = []
            return
        if self.get_node(node_id) is None:
            logger.debug("select: unknown node '%s'", node_id)
            return
        self._selected = [node_id]
        self._selected_edge = None

    def set_selection(self, node_ids: Iterable[str]) -> None:
        known = self._index()
        selection: list[str] = []
        for nid in node_ids:
            if nid in known and nid not in selection:
                selection.append(nid)
        self._selected = selection
        if selection:
            self._selected_edge = None

    def toggle(self, node_id: str) -> None:
        if self.get_node(node_id) is None:
            logger.debug("toggle: unknown node '%s'", node_id)
            return
        if node_id in self._selected:
            self._selected.remove(node_id)
        else:
            self._selected.append(node_id)
            self._selected_edge = None

    def add_to_selection(self, node_ids: Iterable[str]) -> None:
        self.set_selection(self._selected + list(node_ids))

    def clear_selection(self) -> None:
        self._selected = []
        self._selected_edge = None

    def select_edge(self, edge_id: Optional[str]) -> None:
        if edge_id is None:
            self._selected_edge = None
            return
        if self.get_edge(edge_id) is None:
            logger.debug("select_edge: unknown edge '%s'", edge_id)
            return
        self._selected_edge = edge_id
        self._selected = []

    # -- layout and routing -------------------------------------------------

    def auto_layout(
        self,
        config: LayoutConfig | None = None,
        engine: LayoutEngine | None = None,
    ) -> bool:
        """Run the layout adapter and commit the new positions as one entry."""
        if not self.nodes:
            return False
        return self.set_positions(compute_positions(self.nodes, config, engine))

    def routes(self, config: RouterConfig | None = None) -> dict[str, ConnectorPath]:
        return route_edges(self.nodes, self.edges, config)

    # -- document -----------------------------------------------------------

    def rename(self, name: str) -> None:
        self.name = name
        self.updated_at = utcnow()

    def clear(self) -> None:
        """Empty the diagram and reset history."""
        self.nodes = []
        self.edges = []
        self._edge_overrides = {}
        self._selected = []
        self._selected_edge = None
        self._dragging = False
        self.name = DEFAULT_NAME
        self.updated_at = utcnow()
        self._history.reset(self.nodes, self.edges)

    def save_diagram(self) -> DiagramData:
        """Snapshot the current state for persistence."""
        return DiagramData(
            nodes=copy.deepcopy(self.nodes),
            edges=copy.deepcopy(self.edges),
            settings=DiagramSettings(self.name, self.created_at, self.updated_at),
        )

    def load_diagram(self, data: DiagramData | Mapping[str, Any]) -> None:
        """Replace the whole state with *data* and reset history.

        Node and badge sizes are clamped to the configured limits.

        Raises:
            DiagramFormatError: *data* is malformed.  The current state is
                left untouched.
        """
        if isinstance(data, Mapping):
            data = diagram_from_dict(data)
        elif not isinstance(data, DiagramData):
            raise DiagramFormatError(f"Cannot load a {type(data).__name__} as a diagram.")
        try:
            check_forest(data.nodes)
        except DiagramFormatError:
            raise
        except ValidationError as exc:
            raise DiagramFormatError(exc.message) from exc

        self.nodes = [self._clamped(n) for n in copy.deepcopy(data.nodes)]
        self._edge_overrides = _overrides_from(data.edges)
        self._rederive()
        self.name = data.settings.name
        self.created_at = data.settings.created_at
        self.updated_at = data.settings.updated_at
        self._selected = []
        self._selected_edge = None
        self._dragging = False
        self._history.reset(self.nodes, self.edges)

    # -- queries ------------------------------------------------------------

    def get_node(self, node_id: str) -> Optional[DiagramNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Optional[DiagramEdge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def children_of(self, node_id: str) -> list[DiagramNode]:
        return [n for n in self.nodes if n.parent_id == node_id]

    def roots(self) -> list[DiagramNode]:
        return [n for n in self.nodes if n.parent_id is None]

    def descendants_of(self, node_id: str) -> set[str]:
        """Ids reachable below *node_id* (excluding the node itself)."""
        children: dict[str, list[str]] = {}
        for n in self.nodes:
            if n.parent_id is not None:
                children.setdefault(n.parent_id, []).append(n.id)
        found: set[str] = set()
        stack = list(children.get(node_id, []))
        while stack:
            nid = stack.pop()
            if nid in found:
                continue
            found.add(nid)
            stack.extend(children.get(nid, []))
        return found

    def selected_nodes(self) -> list[DiagramNode]:
        selected = set(self._selected)
        return [n for n in self.nodes if n.id in selected]

    def selected_edge(self) -> Optional[DiagramEdge]:
        if self._selected_edge is None:
            return None
        return self.get_edge(self._selected_edge)
