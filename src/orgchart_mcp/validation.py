"""
Input validation for diagram documents and MCP tool parameters.

Provides reusable validators that produce clear error messages for
parameters received from LLM callers and for persisted JSON documents.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Callable, Mapping, TypeVar

from orgchart_mcp.models import BorderRadius, BorderStyle, FontSize, Shadow, TextAlign

E = TypeVar("E", bound=Enum)


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Primitive validators
# ---------------------------------------------------------------------------

def validate_non_empty_string(value: Any, field_name: str) -> str:
    """Ensure *value* is a non-empty string after stripping whitespace."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty string.")
    return value.strip()


def validate_string(value: Any, field_name: str, *, allow_empty: bool = True) -> str:
    """Ensure *value* is a string (optionally non-empty)."""
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a string, got {type(value).__name__}.")
    if not allow_empty and not value.strip():
        raise ValidationError(f"'{field_name}' must not be empty.")
    return value


def validate_color(value: Any, field_name: str) -> str:
    """Validate a CSS-style hex color (#RGB, #RRGGBB, #RRGGBBAA)."""
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a color string, got {type(value).__name__}.")
    value = value.strip()
    if not re.match(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$", value):
        raise ValidationError(
            f"'{field_name}' must be a valid hex color (#RGB, #RRGGBB, or #RRGGBBAA), got '{value}'."
        )
    return value


def validate_number(
    value: Any,
    field_name: str,
    *,
    min_val: float | None = None,
    max_val: float | None = None,
) -> float:
    """Validate a numeric value and optional range."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a number, got {type(value).__name__}."
        )
    val = float(value)
    if val != val or val in (float("inf"), float("-inf")):
        raise ValidationError(f"'{field_name}' must be a finite number.")
    if min_val is not None and val < min_val:
        raise ValidationError(
            f"'{field_name}' must be >= {min_val}, got {val}."
        )
    if max_val is not None and val > max_val:
        raise ValidationError(
            f"'{field_name}' must be <= {max_val}, got {val}."
        )
    return val


def validate_int(
    value: Any,
    field_name: str,
    *,
    min_val: int | None = None,
    max_val: int | None = None,
) -> int:
    """Validate an integer value and optional range."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be an integer, got {type(value).__name__}."
        )
    if min_val is not None and value < min_val:
        raise ValidationError(
            f"'{field_name}' must be >= {min_val}, got {value}."
        )
    if max_val is not None and value > max_val:
        raise ValidationError(
            f"'{field_name}' must be <= {max_val}, got {value}."
        )
    return value


def validate_bool(value: Any, field_name: str) -> bool:
    """Ensure *value* is a boolean."""
    if not isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a boolean, got {type(value).__name__}."
        )
    return value


def validate_enum(value: Any, field_name: str, allowed: set[str]) -> str:
    """Validate that a string value is one of the allowed choices (case-insensitive)."""
    if not isinstance(value, str):
        raise ValidationError(
            f"'{field_name}' must be a string, got {type(value).__name__}."
        )
    normalized = value.strip().upper()
    if normalized not in {a.upper() for a in allowed}:
        choices = ", ".join(sorted(allowed))
        raise ValidationError(
            f"'{field_name}' must be one of [{choices}], got '{value}'."
        )
    return normalized


def validate_enum_member(value: Any, field_name: str, enum_cls: type[E]) -> E:
    """Convert a (case-insensitive) enum value string into a member of *enum_cls*."""
    if isinstance(value, enum_cls):
        return value
    allowed = {str(m.value) for m in enum_cls}
    normalized = validate_enum(value, field_name, allowed)
    for member in enum_cls:
        if str(member.value).upper() == normalized:
            return member
    raise ValidationError(f"'{field_name}' has no member '{value}'.")


def validate_list(value: Any, field_name: str, *, min_length: int = 0) -> list:
    """Ensure *value* is a list with at least *min_length* items."""
    if not isinstance(value, list):
        raise ValidationError(
            f"'{field_name}' must be a list, got {type(value).__name__}."
        )
    if len(value) < min_length:
        raise ValidationError(
            f"'{field_name}' must have at least {min_length} item(s), got {len(value)}."
        )
    return value


def validate_dict(value: Any, field_name: str) -> dict:
    """Ensure *value* is a dict."""
    if not isinstance(value, dict):
        raise ValidationError(
            f"'{field_name}' must be a dict/object, got {type(value).__name__}."
        )
    return value


def validate_file_path(value: Any, field_name: str) -> str:
    """Validate that a file path is a non-empty string."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty file path string.")
    return value.strip()


# ---------------------------------------------------------------------------
# Composite / domain validators
# ---------------------------------------------------------------------------

_VALID_DIRECTIONS = {"TB", "BT", "LR", "RL"}
_VALID_ENGINES = {"SUGIYAMA", "TREE"}

_DIAGRAM_ACTIONS = {
    "CREATE", "LIST", "GET_JSON", "SAVE", "LOAD", "IMPORT_JSON",
    "RENAME", "CLEAR", "DELETE",
}
_NODE_ACTIONS = {
    "ADD_ROOT", "ADD_CHILD", "ADD_SIBLING", "UPDATE", "UPDATE_MANY",
    "UPDATE_SELECTED", "DELETE", "DELETE_MANY", "DELETE_SELECTED",
    "DETACH", "UPDATE_EDGE", "SET_POSITIONS", "MOVE_SELECTED", "END_DRAG",
}
_SELECT_ACTIONS = {"SELECT", "SET", "TOGGLE", "ADD", "CLEAR", "SELECT_EDGE", "GET"}
_HISTORY_ACTIONS = {"UNDO", "REDO", "STATUS"}
_LAYOUT_ACTIONS = {"AUTO"}
_INSPECT_ACTIONS = {"NODES", "EDGES", "ROUTES", "OVERLAPS", "INFO", "PRESETS"}


def validate_action(value: Any, tool_name: str, allowed: set[str]) -> str:
    """Validate the action parameter for a tool."""
    if not isinstance(value, str) or not value.strip():
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"'{tool_name}' requires an 'action' parameter. Valid actions: {choices}."
        )
    normalized = value.strip().upper()
    if normalized not in allowed:
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"Unknown {tool_name} action '{value}'. Valid actions: {choices}."
        )
    return value.strip().lower()


def validate_direction(value: Any) -> str:
    """Validate a layout direction (TB, BT, LR, RL)."""
    return validate_enum(value, "direction", _VALID_DIRECTIONS)


def validate_engine(value: Any) -> str:
    """Validate a layout engine name (sugiyama, tree)."""
    return validate_enum(value, "engine", _VALID_ENGINES).lower()


def validate_id_list(value: Any, field_name: str, *, min_length: int = 1) -> list[str]:
    """Validate a list of non-empty id strings."""
    validate_list(value, field_name, min_length=min_length)
    for i, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            raise ValidationError(f"'{field_name}[{i}]' must be a non-empty string.")
    return [item.strip() for item in value]


def validate_position_dict(p: Any, index: int) -> tuple[str, float, float]:
    """Validate a ``{"id", "x", "y"}`` position entry."""
    if not isinstance(p, dict):
        raise ValidationError(f"Position at index {index} must be a dict/object.")
    for key in ("id", "x", "y"):
        if key not in p:
            raise ValidationError(f"Position at index {index} missing required key '{key}'.")
    node_id = validate_non_empty_string(p["id"], f"positions[{index}].id")
    x = validate_number(p["x"], f"positions[{index}].x")
    y = validate_number(p["y"], f"positions[{index}].y")
    return node_id, x, y


def validate_positive_number(value: Any, field_name: str) -> float:
    """Validate that a number is positive (> 0)."""
    return validate_number(value, field_name, min_val=0.001)


def validate_non_negative_number(value: Any, field_name: str) -> float:
    """Validate that a number is >= 0."""
    return validate_number(value, field_name, min_val=0)


def validate_spacing(value: Any, field_name: str) -> float:
    """Validate spacing parameters (must be > 0)."""
    return validate_number(value, field_name, min_val=1)


def validate_border_width(value: Any, field_name: str = "borderWidth") -> int:
    """Validate a box border width (1..4)."""
    return validate_int(value, field_name, min_val=1, max_val=4)


# ---------------------------------------------------------------------------
# Node / edge update payloads
# ---------------------------------------------------------------------------

# camelCase payload key -> model field
_NODE_STYLE_KEYS = {
    "fill": "fill",
    "border": "border",
    "textColor": "text_color",
    "badgeFill": "badge_fill",
    "badgeTextColor": "badge_text_color",
}


def _validate_sub_dict(value: Any, where: str, spec: dict[str, tuple[str, Any]]) -> dict[str, Any]:
    value = validate_dict(value, where)
    result: dict[str, Any] = {}
    for key, (attr, check) in spec.items():
        if key in value:
            result[attr] = check(value[key], f"{where}.{key}")
    return result


def validate_node_update(u: Any, where: str = "fields") -> dict[str, Any]:
    """Validate a camelCase node update and return model field changes.

    Style structs come back as partial dicts keyed by model field names so
    the store can merge them into the node's current value.  Unknown keys
    are ignored.
    """
    u = validate_dict(u, where)
    changes: dict[str, Any] = {}
    for key in ("title", "subtitle", "badge"):
        if key in u:
            changes[key] = validate_string(u[key], f"{where}.{key}")
    if "parentId" in u:
        parent = u["parentId"]
        changes["parent_id"] = None if parent is None else validate_non_empty_string(
            parent, f"{where}.parentId"
        )
    for key in ("width", "height"):
        if key in u:
            changes[key] = validate_positive_number(u[key], f"{where}.{key}")
    if "position" in u:
        pos = validate_dict(u["position"], f"{where}.position")
        changes["position"] = (
            validate_number(pos.get("x"), f"{where}.position.x"),
            validate_number(pos.get("y"), f"{where}.position.y"),
        )
    if "style" in u:
        changes["style"] = _validate_sub_dict(u["style"], f"{where}.style", {
            key: (attr, validate_color) for key, attr in _NODE_STYLE_KEYS.items()
        })
    if "textStyle" in u:
        changes["text_style"] = _validate_sub_dict(u["textStyle"], f"{where}.textStyle", {
            "bold": ("bold", validate_bool),
            "italic": ("italic", validate_bool),
            "underline": ("underline", validate_bool),
            "fontSize": ("font_size", lambda v, f: validate_enum_member(v, f, FontSize)),
            "align": ("align", lambda v, f: validate_enum_member(v, f, TextAlign)),
        })
    if "boxStyle" in u:
        changes["box_style"] = _validate_sub_dict(u["boxStyle"], f"{where}.boxStyle", {
            "borderWidth": ("border_width", validate_border_width),
            "borderStyle": ("border_style", lambda v, f: validate_enum_member(v, f, BorderStyle)),
            "borderRadius": ("border_radius", lambda v, f: validate_enum_member(v, f, BorderRadius)),
            "shadow": ("shadow", lambda v, f: validate_enum_member(v, f, Shadow)),
        })
    if "badgeConfig" in u:
        changes["badge_config"] = _validate_sub_dict(u["badgeConfig"], f"{where}.badgeConfig", {
            "offsetX": ("offset_x", validate_number),
            "offsetY": ("offset_y", validate_number),
            "width": ("width", validate_positive_number),
            "height": ("height", validate_positive_number),
        })
    return changes


def validate_edge_style(u: Any, where: str = "edge_style") -> dict[str, Any]:
    """Validate a camelCase edge style patch and return model field changes."""
    return _validate_sub_dict(u, where, {
        "stroke": ("stroke", validate_color),
        "strokeWidth": ("stroke_width", validate_non_negative_number),
        "dash": ("dash", lambda v, f: validate_enum_member(v, f, BorderStyle)),
        "cornerRadius": ("corner_radius", validate_non_negative_number),
        "barOffset": ("bar_offset", validate_non_negative_number),
    })


# ---------------------------------------------------------------------------
# Model-level style structs
# ---------------------------------------------------------------------------

def _member(enum_cls: type[E]) -> Callable[[Any, str], E]:
    return lambda v, f: validate_enum_member(v, f, enum_cls)


# Struct attribute -> {model field -> validator}.  Colours are plain strings
# here, matching what persisted documents accept.
STYLE_FIELD_CHECKS: dict[str, dict[str, Callable[[Any, str], Any]]] = {
    "style": {attr: validate_string for attr in _NODE_STYLE_KEYS.values()},
    "text_style": {
        "bold": validate_bool,
        "italic": validate_bool,
        "underline": validate_bool,
        "font_size": _member(FontSize),
        "align": _member(TextAlign),
    },
    "box_style": {
        "border_width": validate_border_width,
        "border_style": _member(BorderStyle),
        "border_radius": _member(BorderRadius),
        "shadow": _member(Shadow),
    },
    "badge_config": {
        "offset_x": validate_number,
        "offset_y": validate_number,
        "width": validate_positive_number,
        "height": validate_positive_number,
    },
    "edge_style": {
        "stroke": validate_string,
        "stroke_width": validate_non_negative_number,
        "dash": _member(BorderStyle),
        "corner_radius": validate_non_negative_number,
        "bar_offset": validate_non_negative_number,
    },
}


def validate_style_fields(kind: str, values: Any) -> dict[str, Any]:
    """Validate a partial style struct keyed by model field names.

    *kind* is a key of ``STYLE_FIELD_CHECKS``.  Enum strings are converted to
    members; unknown field names are dropped.
    """
    if not isinstance(values, Mapping):
        raise ValidationError(f"'{kind}' must be a dict, got {type(values).__name__}.")
    checks = STYLE_FIELD_CHECKS[kind]
    return {
        attr: checks[attr](value, f"{kind}.{attr}")
        for attr, value in values.items()
        if attr in checks
    }
