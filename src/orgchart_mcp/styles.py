"""
Colour presets and default styles for diagram nodes and connectors.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from orgchart_mcp.models import BoxStyle, EdgeStyle, NodeStyle, TextStyle

logger = logging.getLogger("orgchart-mcp.styles")


# ---------------------------------------------------------------------------
# Colour presets
# ---------------------------------------------------------------------------

def _preset(fill: str) -> NodeStyle:
    return NodeStyle(
        fill=fill,
        border="#333333",
        text_color="#000000",
        badge_fill="#c0c0c0",
        badge_text_color="#333333",
    )


class Presets:
    """Pre-built node colour presets (light org-chart palette)."""
    LIGHT_BLUE = _preset("#d4e8f2")
    LIGHT_PINK = _preset("#f5d5e0")
    LIGHT_ORANGE = _preset("#fce5c5")
    LIGHT_GREEN = _preset("#c8e6c9")
    LIGHT_PURPLE = _preset("#e1bee7")
    WHITE = _preset("#ffffff")


PRESET_NAMES: dict[str, str] = {
    "LIGHT_BLUE": "Light Blue",
    "LIGHT_PINK": "Light Pink",
    "LIGHT_ORANGE": "Light Orange",
    "LIGHT_GREEN": "Light Green",
    "LIGHT_PURPLE": "Light Purple",
    "WHITE": "White",
}


def default_node_style() -> NodeStyle:
    return replace(Presets.LIGHT_BLUE)


def default_text_style() -> TextStyle:
    return TextStyle()


def default_box_style() -> BoxStyle:
    return BoxStyle()


def default_edge_style() -> EdgeStyle:
    return EdgeStyle()


def list_presets() -> dict[str, NodeStyle]:
    """Return a fresh copy of every preset keyed by its attribute name."""
    return {key: replace(getattr(Presets, key)) for key in PRESET_NAMES}


def resolve_preset(name: str) -> NodeStyle:
    """Look up a preset by attribute name or display name.

    Accepts ``LIGHT_BLUE``, ``light blue``, ``Light Blue`` or ``lightblue``.
    Unknown names fall back to the default style.
    """
    if not name:
        return default_node_style()
    key = name.strip().upper().replace(" ", "_").replace("-", "_")
    if key in PRESET_NAMES:
        return replace(getattr(Presets, key))
    no_us = key.replace("_", "")
    for candidate in PRESET_NAMES:
        if candidate.replace("_", "") == no_us:
            return replace(getattr(Presets, candidate))
    logger.warning("Unknown colour preset '%s', using LIGHT_BLUE", name)
    return default_node_style()
