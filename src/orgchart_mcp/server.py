"""
Org-chart MCP Server: edit hierarchical diagrams via Model Context Protocol.

Exposes 6 tools that let an LLM agent build org-charts and tree mind-maps,
lay them out, route their connectors and persist them as JSON.

Tools:
  1. diagram - lifecycle: create, list, get_json, save, load, import_json,
       rename, clear, delete
  2. node - content: add/update/delete nodes, detach/restyle edges,
       move nodes
  3. select - selection: select, set, toggle, add, clear, select_edge, get
  4. history - undo, redo, status
  5. layout - automatic hierarchical layout (sugiyama or tree engine)
  6. inspect - read-only: nodes, edges, routes, overlaps, info, presets
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from orgchart_mcp.codec import DiagramFormatError, dumps, edge_to_dict, loads, node_to_dict
from orgchart_mcp.geometry import find_overlaps
from orgchart_mcp.layout import LayoutConfig, SugiyamaEngine, TreeEngine
from orgchart_mcp.models import EdgeType
from orgchart_mcp.routing import RouterConfig
from orgchart_mcp.store import DiagramStore
from orgchart_mcp.styles import PRESET_NAMES, list_presets, resolve_preset
from orgchart_mcp.validation import (
    ValidationError,
    validate_action,
    validate_direction,
    validate_edge_style,
    validate_engine,
    validate_enum_member,
    validate_file_path,
    validate_id_list,
    validate_list,
    validate_non_empty_string,
    validate_non_negative_number,
    validate_node_update,
    validate_number,
    validate_position_dict,
    validate_spacing,
    validate_string,
    _DIAGRAM_ACTIONS,
    _HISTORY_ACTIONS,
    _INSPECT_ACTIONS,
    _LAYOUT_ACTIONS,
    _NODE_ACTIONS,
    _SELECT_ACTIONS,
)

# ---------------------------------------------------------------------------
# Logging - suppress routine FastMCP INFO messages that clients show
# as warnings (they go to stderr).
# ---------------------------------------------------------------------------
logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("orgchart-mcp")

# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------
mcp = FastMCP(
    "orgchart-mcp",
    instructions=(
        "MCP server for editing hierarchical diagrams (org-charts, tree mind-maps).\n\n"
        "=== ONLY 6 TOOLS: use the 'action' parameter to pick the operation ===\n\n"
        "1. diagram(action, ...) - lifecycle: create, list, get_json, save, load,\n"
        "   import_json, rename, clear, delete.\n"
        "2. node(action, ...) - content: add_root, add_child, add_sibling, update,\n"
        "   update_many, update_selected, delete, delete_many, delete_selected,\n"
        "   detach, update_edge, set_positions, move_selected, end_drag.\n"
        "3. select(action, ...) - selection: select, set, toggle, add, clear,\n"
        "   select_edge, get.\n"
        "4. history(action, ...) - undo, redo, status.\n"
        "5. layout(action='auto', ...) - hierarchical layout (TB, BT, LR, RL).\n"
        "6. inspect(action, ...) - read-only: nodes, edges, routes, overlaps,\n"
        "   info, presets.\n\n"
        "=== RULES ===\n"
        "- Connectors are derived from parent links; never create edges directly.\n"
        "  Use node(action='update', fields={'parentId': ...}) to reparent and\n"
        "  node(action='detach', edge_id=...) to cut a connection.\n"
        "- Deleting a node deletes its whole subtree.\n"
        "- New nodes get provisional positions; run layout(action='auto') after\n"
        "  structural edits.\n"
        "- Every edit can be undone with history(action='undo').\n"
    ),
)

# In-memory diagram registry: name -> DiagramStore
# Guarded by _stores_lock for thread-safety.
_stores: dict[str, DiagramStore] = {}
_stores_lock = threading.Lock()


def _get_store(name: str) -> DiagramStore | None:
    with _stores_lock:
        return _stores.get(name)


# ===================================================================
# RESOURCES - provide style catalogs to the LLM
# ===================================================================

@mcp.resource("orgchart://styles/presets")
def preset_catalog() -> str:
    """Return all available node colour presets."""
    entries: list[str] = []
    for key, style in list_presets().items():
        entries.append(
            f"  {key} ({PRESET_NAMES[key]}): fill={style.fill} border={style.border} "
            f"text={style.text_color}"
        )
    return "Available node colour presets:\n" + "\n".join(entries)


# ===================================================================
# TOOL 1: diagram - lifecycle
# ===================================================================

@mcp.tool()
def diagram(
    action: str,
    name: str = "",
    file_path: str = "",
    json_content: str = "",
    new_name: str = "",
) -> str:
    """Diagram lifecycle management.

    Actions:
      create     : Create a new empty diagram. Params: name.
      list       : List all in-memory diagrams. No params needed.
      get_json   : Get the JSON document of a diagram. Params: name.
      save       : Save diagram to a .json file. Params: name, file_path.
      load       : Load a .json file from disk. Params: name, file_path.
      import_json: Import a JSON document string. Params: name, json_content.
      rename     : Change the diagram's display name. Params: name, new_name.
      clear      : Remove every node and reset history. Params: name.
      delete     : Drop the diagram from memory. Params: name.

    Args:
        action: One of the actions above.
        name: Diagram name (key in memory).
        file_path: Absolute path for save/load operations.
        json_content: JSON string for import_json.
        new_name: Display name for rename.

    Returns:
        Result string or JSON depending on action.
    """
    try:
        action = validate_action(action, "diagram", _DIAGRAM_ACTIONS)
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "list":
        with _stores_lock:
            items = list(_stores.items())
        result: list[dict[str, Any]] = []
        for key, store in items:
            result.append({
                "name": key,
                "title": store.name,
                "nodes": len(store.nodes),
                "edges": len(store.edges),
            })
        return json.dumps(result, indent=2)

    try:
        name = validate_non_empty_string(name, "name")
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "create":
        store = DiagramStore(name)
        with _stores_lock:
            _stores[name] = store
        return f"Diagram '{name}' created."

    elif action == "load":
        try:
            validate_file_path(file_path, "file_path")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        path = Path(file_path)
        if not path.exists():
            return f"Error: file '{file_path}' not found."
        return _import_json_impl(name, path.read_text(encoding="utf-8"))

    elif action == "import_json":
        try:
            validate_non_empty_string(json_content, "json_content")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        return _import_json_impl(name, json_content)

    store = _get_store(name)
    if store is None:
        return f"Error: diagram '{name}' not found."

    if action == "get_json":
        return dumps(store.save_diagram())

    elif action == "save":
        try:
            validate_file_path(file_path, "file_path")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dumps(store.save_diagram()), encoding="utf-8")
        return f"Diagram saved to {path.resolve()}"

    elif action == "rename":
        try:
            new_name = validate_non_empty_string(new_name, "new_name")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        store.rename(new_name)
        return f"Diagram '{name}' renamed to '{new_name}'."

    elif action == "clear":
        store.clear()
        return f"Diagram '{name}' cleared."

    elif action == "delete":
        with _stores_lock:
            _stores.pop(name, None)
        return f"Diagram '{name}' deleted."

    else:
        return f"Error: unknown diagram action '{action}'."


def _import_json_impl(name: str, content: str) -> str:
    try:
        data = loads(content)
    except DiagramFormatError as exc:
        logger.warning("Rejected diagram document for '%s': %s", name, exc.message)
        return f"Error: {exc.message}"
    with _stores_lock:
        store = _stores.get(name)
        if store is None:
            store = DiagramStore(name)
            _stores[name] = store
    store.load_diagram(data)
    return f"Imported '{name}' with {len(store.nodes)} node(s) and {len(store.edges)} edge(s)."


# ===================================================================
# TOOL 2: node - content
# ===================================================================

@mcp.tool()
def node(
    action: str,
    diagram_name: str,
    node_id: str = "",
    node_ids: list[str] | None = None,
    edge_id: str = "",
    title: str = "",
    fields: dict[str, Any] | None = None,
    preset: str = "",
    edge_type: str = "",
    edge_style: dict[str, Any] | None = None,
    positions: list[dict[str, Any]] | None = None,
    live: bool = False,
    dx: float = 0,
    dy: float = 0,
) -> str:
    """Create, edit, move and delete nodes.

    Actions:
      add_root       : New root node. Params: title?.
      add_child      : New child of a node. Params: node_id, title?.
      add_sibling    : New node next to a node (same parent). Params: node_id, title?.
      update         : Edit a node. Params: node_id, fields?, preset?.
      update_many    : Edit several nodes. Params: node_ids, fields?, preset?.
      update_selected: Edit the selected nodes. Params: fields?, preset?.
      delete         : Delete a node and its subtree. Params: node_id.
      delete_many    : Delete several subtrees. Params: node_ids.
      delete_selected: Delete the selected subtrees.
      detach         : Cut a connector (child becomes a root). Params: edge_id.
      update_edge    : Restyle a connector. Params: edge_id, edge_type?, edge_style?.
      set_positions  : Move nodes. Params: positions (list of {id, x, y}), live?.
                        With live=true the move is a drag frame and is not
                        recorded until end_drag.
      move_selected  : Drag frame moving the selection by dx, dy.
      end_drag       : Record the finished drag as one undo step.

    Args:
        action: One of the actions above.
        diagram_name: Target diagram.
        node_id: Node id for single-node actions.
        node_ids: Node ids for *_many actions.
        edge_id: Connector id ("edge-<parent>-<child>").
        title: Title for new nodes.
        fields: camelCase changes: title, subtitle, badge, parentId, width,
                height, position{x,y}, style{fill, border, textColor,
                badgeFill, badgeTextColor}, textStyle{bold, italic,
                underline, fontSize, align}, boxStyle{borderWidth,
                borderStyle, borderRadius, shadow}, badgeConfig{offsetX,
                offsetY, width, height}.
        preset: Colour preset name (e.g. LIGHT_PINK) applied as the node style.
        edge_type: straight, step or smoothstep.
        edge_style: camelCase connector style: stroke, strokeWidth, dash,
                    cornerRadius, barOffset.
        positions: List of {id, x, y} for set_positions.
        live: Treat set_positions as a drag frame.
        dx: Horizontal delta for move_selected.
        dy: Vertical delta for move_selected.

    Returns:
        Result string or JSON depending on action.
    """
    try:
        action = validate_action(action, "node", _NODE_ACTIONS)
        validate_non_empty_string(diagram_name, "diagram_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    store = _get_store(diagram_name)
    if store is None:
        return f"Error: diagram '{diagram_name}' not found."

    if action in ("add_root", "add_child", "add_sibling"):
        try:
            title = validate_string(title, "title")
            if action != "add_root":
                node_id = validate_non_empty_string(node_id, "node_id")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        if action == "add_root":
            new_id = store.add_root(title or "Root Node")
        elif action == "add_child":
            new_id = store.add_child(node_id, title or "Child Node")
        else:
            new_id = store.add_sibling(node_id, title or "Sibling Node")
        if new_id is None:
            return f"Error: node '{node_id}' not found."
        return json.dumps({"id": new_id})

    elif action in ("update", "update_many", "update_selected"):
        try:
            changes = validate_node_update(fields or {})
            if preset:
                changes["style"] = resolve_preset(preset)
            if not changes:
                raise ValidationError("Provide 'fields' and/or 'preset' to update.")
            if action == "update":
                node_id = validate_non_empty_string(node_id, "node_id")
            elif action == "update_many":
                node_ids = validate_id_list(node_ids, "node_ids")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        if action == "update":
            if store.get_node(node_id) is None:
                return f"Error: node '{node_id}' not found."
            changed = store.update(node_id, **changes)
        elif action == "update_many":
            changed = store.update_many(node_ids, **changes)
        else:
            changed = store.update_selected(**changes)
        return "Updated." if changed else "No changes applied."

    elif action in ("delete", "delete_many", "delete_selected"):
        try:
            if action == "delete":
                node_ids = [validate_non_empty_string(node_id, "node_id")]
            elif action == "delete_many":
                node_ids = validate_id_list(node_ids, "node_ids")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        before = len(store.nodes)
        if action == "delete_selected":
            store.delete_selected()
        else:
            store.delete_many(node_ids)
        return f"Deleted {before - len(store.nodes)} node(s)."

    elif action == "detach":
        try:
            edge_id = validate_non_empty_string(edge_id, "edge_id")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        if not store.detach(edge_id):
            return f"Error: edge '{edge_id}' not found."
        return f"Edge '{edge_id}' detached."

    elif action == "update_edge":
        try:
            edge_id = validate_non_empty_string(edge_id, "edge_id")
            etype = validate_enum_member(edge_type, "edge_type", EdgeType) if edge_type else None
            estyle = validate_edge_style(edge_style) if edge_style is not None else None
        except ValidationError as exc:
            return f"Error: {exc.message}"
        if store.get_edge(edge_id) is None:
            return f"Error: edge '{edge_id}' not found."
        changed = store.update_edge(edge_id, type=etype, style=estyle)
        return "Updated." if changed else "No changes applied."

    elif action == "set_positions":
        try:
            validate_list(positions, "positions", min_length=1)
            moves = [validate_position_dict(p, i) for i, p in enumerate(positions)]
        except ValidationError as exc:
            return f"Error: {exc.message}"
        if live:
            store.drag(moves)
            return f"Moved {len(moves)} node(s) (drag in progress)."
        store.set_positions(moves)
        return f"Moved {len(moves)} node(s)."

    elif action == "move_selected":
        try:
            dx = validate_number(dx, "dx")
            dy = validate_number(dy, "dy")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        if not store.move_selected(dx, dy):
            return "Nothing moved."
        return f"Moved {len(store.selected_ids)} node(s) (drag in progress)."

    elif action == "end_drag":
        return "Drag recorded." if store.end_drag() else "No drag in progress."

    else:
        return f"Error: unknown node action '{action}'."


# ===================================================================
# TOOL 3: select - selection
# ===================================================================

@mcp.tool()
def select(
    action: str,
    diagram_name: str,
    node_id: str = "",
    node_ids: list[str] | None = None,
    edge_id: str = "",
) -> str:
    """Selection management.

    Node selection and edge selection are mutually exclusive. Unknown ids
    are ignored.

    Actions:
      select     : Select a single node (empty node_id clears). Params: node_id.
      set        : Replace the selection. Params: node_ids.
      toggle     : Add or remove one node. Params: node_id.
      add        : Add nodes to the selection. Params: node_ids.
      clear      : Clear node and edge selection.
      select_edge: Select a connector (empty edge_id clears). Params: edge_id.
      get        : Return the current selection.

    Returns:
        JSON: {"nodes": [...ids], "edge": id | null}
    """
    try:
        action = validate_action(action, "select", _SELECT_ACTIONS)
        validate_non_empty_string(diagram_name, "diagram_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    store = _get_store(diagram_name)
    if store is None:
        return f"Error: diagram '{diagram_name}' not found."

    try:
        if action == "select":
            store.select(validate_string(node_id, "node_id").strip() or None)
        elif action == "set":
            store.set_selection(validate_id_list(node_ids or [], "node_ids", min_length=0))
        elif action == "toggle":
            store.toggle(validate_non_empty_string(node_id, "node_id"))
        elif action == "add":
            store.add_to_selection(validate_id_list(node_ids, "node_ids"))
        elif action == "clear":
            store.clear_selection()
        elif action == "select_edge":
            store.select_edge(validate_string(edge_id, "edge_id").strip() or None)
    except ValidationError as exc:
        return f"Error: {exc.message}"

    return json.dumps({"nodes": store.selected_ids, "edge": store.selected_edge_id})


# ===================================================================
# TOOL 4: history - undo / redo
# ===================================================================

@mcp.tool()
def history(action: str, diagram_name: str) -> str:
    """Undo/redo.

    Actions:
      undo  : Revert the last edit.
      redo  : Re-apply the last undone edit.
      status: JSON with can_undo, can_redo, entries, limit.
    """
    try:
        action = validate_action(action, "history", _HISTORY_ACTIONS)
        validate_non_empty_string(diagram_name, "diagram_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    store = _get_store(diagram_name)
    if store is None:
        return f"Error: diagram '{diagram_name}' not found."

    if action == "undo":
        return "Undone." if store.undo() else "Nothing to undo."
    elif action == "redo":
        return "Redone." if store.redo() else "Nothing to redo."
    return json.dumps({
        "can_undo": store.can_undo(),
        "can_redo": store.can_redo(),
        "entries": len(store.history),
        "limit": store.history.limit,
    })


# ===================================================================
# TOOL 5: layout - positioning
# ===================================================================

@mcp.tool()
def layout(
    action: str,
    diagram_name: str,
    engine: str = "sugiyama",
    direction: str = "TB",
    node_spacing: float = 60,
    rank_spacing: float = 80,
    margin_x: float = 50,
    margin_y: float = 50,
) -> str:
    """Automatic hierarchical layout.

    Actions:
      auto: Position every node from its parent links. Recorded as one
             undo step. Params: engine (sugiyama | tree), direction
             (TB, BT, LR, RL), node_spacing, rank_spacing, margin_x, margin_y.

    Returns:
        JSON mapping node id -> {x, y} (top-left corner).
    """
    try:
        validate_action(action, "layout", _LAYOUT_ACTIONS)
        validate_non_empty_string(diagram_name, "diagram_name")
        engine = validate_engine(engine)
        direction = validate_direction(direction)
        config = LayoutConfig(
            direction=direction,
            node_spacing=validate_spacing(node_spacing, "node_spacing"),
            rank_spacing=validate_spacing(rank_spacing, "rank_spacing"),
            margin_x=validate_non_negative_number(margin_x, "margin_x"),
            margin_y=validate_non_negative_number(margin_y, "margin_y"),
        )
    except ValidationError as exc:
        return f"Error: {exc.message}"
    store = _get_store(diagram_name)
    if store is None:
        return f"Error: diagram '{diagram_name}' not found."

    runner = TreeEngine() if engine == "tree" else SugiyamaEngine()
    store.auto_layout(config, runner)
    mapping = {n.id: {"x": n.position.x, "y": n.position.y} for n in store.nodes}
    return json.dumps(mapping)


# ===================================================================
# TOOL 6: inspect - read-only
# ===================================================================

@mcp.tool()
def inspect(
    action: str,
    diagram_name: str = "",
    margin: float = 0,
) -> str:
    """Read-only inspection of diagrams.

    Actions:
      nodes   : List all nodes. Params: diagram_name.
      edges   : List all connectors. Params: diagram_name.
      routes  : Routed connector geometry (points + SVG path). Params: diagram_name.
      overlaps: Check for overlapping nodes. Params: diagram_name, margin.
      info    : Diagram summary. Params: diagram_name.
      presets : List node colour presets.

    Returns:
        JSON data or formatted text.
    """
    try:
        action = validate_action(action, "inspect", _INSPECT_ACTIONS)
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "presets":
        return preset_catalog()

    # All other actions need a diagram
    try:
        validate_non_empty_string(diagram_name, "diagram_name")
        margin = validate_non_negative_number(margin, "margin")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    store = _get_store(diagram_name)
    if store is None:
        return f"Error: diagram '{diagram_name}' not found."

    if action == "nodes":
        return json.dumps([node_to_dict(n) for n in store.nodes], indent=2)

    elif action == "edges":
        return json.dumps([edge_to_dict(e) for e in store.edges], indent=2)

    elif action == "routes":
        paths = store.routes(RouterConfig())
        report = {
            eid: {
                "kind": path.kind.value,
                "points": [{"x": p.x, "y": p.y} for p in path.points],
                "bar_y": path.bar_y,
                "exhausted": path.exhausted,
                "svg": path.to_svg_path(),
            }
            for eid, path in paths.items()
        }
        return json.dumps(report, indent=2)

    elif action == "overlaps":
        overlaps = find_overlaps({n.id: n.bounds for n in store.nodes}, margin=margin)
        if not overlaps:
            return "No overlaps found. Diagram is clean!"
        titles = {n.id: n.title for n in store.nodes}
        report = [{"node_a": a, "title_a": titles.get(a, ""),
                   "node_b": b, "title_b": titles.get(b, "")}
                  for a, b in overlaps]
        return json.dumps(report, indent=2)

    elif action == "info":
        return json.dumps({
            "name": store.name,
            "nodes": len(store.nodes),
            "edges": len(store.edges),
            "roots": [n.id for n in store.roots()],
            "selected": store.selected_ids,
            "selected_edge": store.selected_edge_id,
            "can_undo": store.can_undo(),
            "can_redo": store.can_redo(),
        }, indent=2)

    else:
        return f"Error: unknown inspect action '{action}'."


# ===================================================================
# Entry point
# ===================================================================

def main() -> None:
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
