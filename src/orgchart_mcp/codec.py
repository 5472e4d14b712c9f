"""
JSON persistence for diagrams (schema version 1).

The on-disk document uses camelCase keys::

    {
      "schemaVersion": 1,
      "nodes": [{"id", "parentId", "title", "subtitle", "badge", "badgeConfig"?,
                 "style", "textStyle"?, "boxStyle"?, "width", "height",
                 "position": {"x", "y"}}],
      "edges": [{"id", "source", "target", "type", "style"}],
      "settings": {"name", "createdAt", "updatedAt"}
    }

Edges are a denormalised cache.  On decode they are re-derived from the
parent links; a stored edge only contributes its ``type`` and ``style``.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from orgchart_mcp.geometry import Point
from orgchart_mcp.models import (
    SCHEMA_VERSION,
    BadgeConfig,
    BorderRadius,
    BorderStyle,
    BoxStyle,
    DiagramData,
    DiagramEdge,
    DiagramNode,
    DiagramSettings,
    EdgeStyle,
    EdgeType,
    FontSize,
    NodeStyle,
    Shadow,
    TextAlign,
    TextStyle,
    derive_edges,
    utcnow,
)
from orgchart_mcp.validation import (
    ValidationError,
    validate_bool,
    validate_dict,
    validate_enum_member,
    validate_int,
    validate_list,
    validate_non_empty_string,
    validate_number,
    validate_positive_number,
    validate_string,
)


class DiagramFormatError(ValidationError):
    """Raised when a persisted document cannot be decoded."""


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. ``2024-01-02T03:04:05.678Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: Any, field_name: str) -> datetime:
    text = validate_non_empty_string(value, field_name)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"'{field_name}' must be an ISO-8601 timestamp, got '{value}'.") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _node_style_to_dict(style: NodeStyle) -> dict[str, Any]:
    return {
        "fill": style.fill,
        "border": style.border,
        "textColor": style.text_color,
        "badgeFill": style.badge_fill,
        "badgeTextColor": style.badge_text_color,
    }


def node_to_dict(node: DiagramNode) -> dict[str, Any]:
    result: dict[str, Any] = {
        "id": node.id,
        "parentId": node.parent_id,
        "title": node.title,
        "subtitle": node.subtitle,
        "badge": node.badge,
    }
    if node.badge_config is not None:
        bc = node.badge_config
        result["badgeConfig"] = {
            "offsetX": bc.offset_x,
            "offsetY": bc.offset_y,
            "width": bc.width,
            "height": bc.height,
        }
    result["style"] = _node_style_to_dict(node.style)
    if node.text_style is not None:
        ts = node.text_style
        result["textStyle"] = {
            "bold": ts.bold,
            "italic": ts.italic,
            "underline": ts.underline,
            "fontSize": ts.font_size.value,
            "align": ts.align.value,
        }
    if node.box_style is not None:
        bs = node.box_style
        result["boxStyle"] = {
            "borderWidth": bs.border_width,
            "borderStyle": bs.border_style.value,
            "borderRadius": bs.border_radius.value,
            "shadow": bs.shadow.value,
        }
    result["width"] = node.width
    result["height"] = node.height
    result["position"] = {"x": node.position.x, "y": node.position.y}
    return result


def edge_to_dict(edge: DiagramEdge) -> dict[str, Any]:
    return {
        "id": edge.id,
        "source": edge.source,
        "target": edge.target,
        "type": edge.type.value,
        "style": {
            "stroke": edge.style.stroke,
            "strokeWidth": edge.style.stroke_width,
            "dash": edge.style.dash.value,
            "cornerRadius": edge.style.corner_radius,
            "barOffset": edge.style.bar_offset,
        },
    }


def diagram_to_dict(data: DiagramData) -> dict[str, Any]:
    """Convert a diagram snapshot into a JSON-ready dict."""
    return {
        "schemaVersion": data.schema_version,
        "nodes": [node_to_dict(n) for n in data.nodes],
        "edges": [edge_to_dict(e) for e in data.edges],
        "settings": {
            "name": data.settings.name,
            "createdAt": format_timestamp(data.settings.created_at),
            "updatedAt": format_timestamp(data.settings.updated_at),
        },
    }


def dumps(data: DiagramData, indent: int | None = 2) -> str:
    return json.dumps(diagram_to_dict(data), indent=indent)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _opt(raw: dict[str, Any], key: str, default: Any) -> Any:
    value = raw.get(key)
    return default if value is None else value


def _node_style_from_dict(raw: Any, where: str) -> NodeStyle:
    if raw is None:
        return NodeStyle()
    raw = validate_dict(raw, where)
    d = NodeStyle()
    return NodeStyle(
        fill=validate_string(_opt(raw, "fill", d.fill), f"{where}.fill"),
        border=validate_string(_opt(raw, "border", d.border), f"{where}.border"),
        text_color=validate_string(_opt(raw, "textColor", d.text_color), f"{where}.textColor"),
        badge_fill=validate_string(_opt(raw, "badgeFill", d.badge_fill), f"{where}.badgeFill"),
        badge_text_color=validate_string(
            _opt(raw, "badgeTextColor", d.badge_text_color), f"{where}.badgeTextColor",
        ),
    )


def _text_style_from_dict(raw: Any, where: str) -> TextStyle | None:
    if raw is None:
        return None
    raw = validate_dict(raw, where)
    d = TextStyle()
    return TextStyle(
        bold=validate_bool(_opt(raw, "bold", d.bold), f"{where}.bold"),
        italic=validate_bool(_opt(raw, "italic", d.italic), f"{where}.italic"),
        underline=validate_bool(_opt(raw, "underline", d.underline), f"{where}.underline"),
        font_size=validate_enum_member(_opt(raw, "fontSize", d.font_size), f"{where}.fontSize", FontSize),
        align=validate_enum_member(_opt(raw, "align", d.align), f"{where}.align", TextAlign),
    )


def _box_style_from_dict(raw: Any, where: str) -> BoxStyle | None:
    if raw is None:
        return None
    raw = validate_dict(raw, where)
    d = BoxStyle()
    return BoxStyle(
        border_width=validate_int(
            _opt(raw, "borderWidth", d.border_width), f"{where}.borderWidth", min_val=1, max_val=4,
        ),
        border_style=validate_enum_member(
            _opt(raw, "borderStyle", d.border_style), f"{where}.borderStyle", BorderStyle,
        ),
        border_radius=validate_enum_member(
            _opt(raw, "borderRadius", d.border_radius), f"{where}.borderRadius", BorderRadius,
        ),
        shadow=validate_enum_member(_opt(raw, "shadow", d.shadow), f"{where}.shadow", Shadow),
    )


def _badge_config_from_dict(raw: Any, where: str) -> BadgeConfig | None:
    if raw is None:
        return None
    raw = validate_dict(raw, where)
    d = BadgeConfig()
    return BadgeConfig(
        offset_x=validate_number(_opt(raw, "offsetX", d.offset_x), f"{where}.offsetX"),
        offset_y=validate_number(_opt(raw, "offsetY", d.offset_y), f"{where}.offsetY"),
        width=validate_positive_number(_opt(raw, "width", d.width), f"{where}.width"),
        height=validate_positive_number(_opt(raw, "height", d.height), f"{where}.height"),
    )


def _node_from_dict(raw: Any, index: int) -> DiagramNode:
    where = f"nodes[{index}]"
    raw = validate_dict(raw, where)
    parent_id = raw.get("parentId")
    if parent_id is not None:
        parent_id = validate_non_empty_string(parent_id, f"{where}.parentId")
    if "title" not in raw:
        raise ValidationError(f"{where} missing required key 'title'.")
    position = validate_dict(raw.get("position", {"x": 0, "y": 0}), f"{where}.position")
    return DiagramNode(
        id=validate_non_empty_string(raw.get("id"), f"{where}.id"),
        title=validate_string(raw["title"], f"{where}.title"),
        parent_id=parent_id,
        subtitle=validate_string(_opt(raw, "subtitle", ""), f"{where}.subtitle"),
        badge=validate_string(_opt(raw, "badge", ""), f"{where}.badge"),
        badge_config=_badge_config_from_dict(raw.get("badgeConfig"), f"{where}.badgeConfig"),
        style=_node_style_from_dict(raw.get("style"), f"{where}.style"),
        text_style=_text_style_from_dict(raw.get("textStyle"), f"{where}.textStyle"),
        box_style=_box_style_from_dict(raw.get("boxStyle"), f"{where}.boxStyle"),
        width=validate_positive_number(_opt(raw, "width", 160), f"{where}.width"),
        height=validate_positive_number(_opt(raw, "height", 80), f"{where}.height"),
        position=Point(
            validate_number(position.get("x"), f"{where}.position.x"),
            validate_number(position.get("y"), f"{where}.position.y"),
        ),
    )


def _edge_hints_from_dict(raw: Any, index: int) -> tuple[str, EdgeType, EdgeStyle]:
    """Read the rendering hints of a stored edge: ``(id, type, style)``."""
    where = f"edges[{index}]"
    raw = validate_dict(raw, where)
    eid = validate_non_empty_string(raw.get("id"), f"{where}.id")
    etype = validate_enum_member(_opt(raw, "type", EdgeType.SMOOTHSTEP), f"{where}.type", EdgeType)
    style_raw = raw.get("style")
    d = EdgeStyle()
    if style_raw is None:
        return eid, etype, d
    style_raw = validate_dict(style_raw, f"{where}.style")
    style = EdgeStyle(
        stroke=validate_string(_opt(style_raw, "stroke", d.stroke), f"{where}.style.stroke"),
        stroke_width=validate_number(
            _opt(style_raw, "strokeWidth", d.stroke_width), f"{where}.style.strokeWidth", min_val=0,
        ),
        dash=validate_enum_member(_opt(style_raw, "dash", d.dash), f"{where}.style.dash", BorderStyle),
        corner_radius=validate_number(
            _opt(style_raw, "cornerRadius", d.corner_radius), f"{where}.style.cornerRadius", min_val=0,
        ),
        bar_offset=validate_number(
            _opt(style_raw, "barOffset", d.bar_offset), f"{where}.style.barOffset", min_val=0,
        ),
    )
    return eid, etype, style


def _settings_from_dict(raw: Any) -> DiagramSettings:
    if raw is None:
        return DiagramSettings()
    raw = validate_dict(raw, "settings")
    now = utcnow()
    created = raw.get("createdAt")
    updated = raw.get("updatedAt")
    return DiagramSettings(
        name=validate_string(_opt(raw, "name", "Untitled Diagram"), "settings.name"),
        created_at=now if created is None else parse_timestamp(created, "settings.createdAt"),
        updated_at=now if updated is None else parse_timestamp(updated, "settings.updatedAt"),
    )


def check_forest(nodes: list[DiagramNode]) -> None:
    """Raise ``ValidationError`` unless *nodes* form a forest.

    Checks id uniqueness, that every parent exists, and that no node is its
    own ancestor.
    """
    by_id: dict[str, DiagramNode] = {}
    for node in nodes:
        if node.id in by_id:
            raise ValidationError(f"Duplicate node id '{node.id}'.")
        by_id[node.id] = node
    for node in nodes:
        if node.parent_id is not None and node.parent_id not in by_id:
            raise ValidationError(
                f"Node '{node.id}' references missing parent '{node.parent_id}'."
            )

    # Walk each parent chain; a chain longer than the node count is a cycle
    done: set[str] = set()
    for node in nodes:
        seen: set[str] = set()
        current: DiagramNode | None = node
        while current is not None and current.id not in done:
            if current.id in seen:
                raise ValidationError(f"Parent links form a cycle through '{current.id}'.")
            seen.add(current.id)
            current = by_id.get(current.parent_id) if current.parent_id else None
        done |= seen


def diagram_from_dict(raw: Any) -> DiagramData:
    """Decode and validate a persisted document.

    Raises:
        DiagramFormatError: the document is malformed, uses an unsupported
            schema version, or its parent links do not form a forest.
    """
    try:
        raw = validate_dict(raw, "document")
        version = validate_int(raw.get("schemaVersion"), "schemaVersion", min_val=1)
        if version > SCHEMA_VERSION:
            raise ValidationError(
                f"Unsupported schemaVersion {version} (newest supported is {SCHEMA_VERSION})."
            )
        nodes_raw = validate_list(_opt(raw, "nodes", []), "nodes")
        edges_raw = validate_list(_opt(raw, "edges", []), "edges")
        nodes = [_node_from_dict(n, i) for i, n in enumerate(nodes_raw)]
        check_forest(nodes)
        hints: dict[str, tuple[EdgeType, EdgeStyle]] = {}
        for i, e in enumerate(edges_raw):
            eid, etype, estyle = _edge_hints_from_dict(e, i)
            hints[eid] = (etype, estyle)
        settings = _settings_from_dict(raw.get("settings"))
    except DiagramFormatError:
        raise
    except ValidationError as exc:
        raise DiagramFormatError(exc.message) from exc

    return DiagramData(
        nodes=nodes,
        edges=derive_edges(nodes, hints),
        settings=settings,
        schema_version=SCHEMA_VERSION,
    )


def loads(text: str) -> DiagramData:
    """Parse a JSON document; see :func:`diagram_from_dict`."""
    try:
        raw = json.loads(text)
    except (TypeError, json.JSONDecodeError) as exc:
        raise DiagramFormatError(f"Invalid JSON: {exc}") from exc
    return diagram_from_dict(raw)
