"""Tests for the JSON persistence codec."""

import json
from datetime import datetime, timezone

import pytest

from orgchart_mcp.codec import (
    DiagramFormatError,
    diagram_from_dict,
    diagram_to_dict,
    dumps,
    format_timestamp,
    loads,
    parse_timestamp,
)
from orgchart_mcp.geometry import Point
from orgchart_mcp.models import (
    BadgeConfig,
    BorderStyle,
    BoxStyle,
    DiagramData,
    DiagramNode,
    DiagramSettings,
    EdgeStyle,
    EdgeType,
    FontSize,
    TextStyle,
    derive_edges,
)
from orgchart_mcp.validation import ValidationError


def _sample() -> DiagramData:
    root = DiagramNode(
        id="r", title="CEO", subtitle="Jane", badge="1",
        badge_config=BadgeConfig(offset_y=-30),
        text_style=TextStyle(bold=True, font_size=FontSize.LG),
        box_style=BoxStyle(border_width=3, border_style=BorderStyle.DASHED),
        position=Point(400, 50),
    )
    child = DiagramNode(id="c", title="CTO", parent_id="r", position=Point(400, 170))
    nodes = [root, child]
    edges = derive_edges(nodes, {"edge-r-c": (EdgeType.STEP, EdgeStyle(stroke="#ff0000"))})
    created = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
    return DiagramData(nodes, edges, DiagramSettings("Org", created, created))


def _minimal(**overrides) -> dict:
    doc = {
        "schemaVersion": 1,
        "nodes": [
            {"id": "a", "parentId": None, "title": "A",
             "width": 160, "height": 80, "position": {"x": 0, "y": 0}},
            {"id": "b", "parentId": "a", "title": "B",
             "width": 160, "height": 80, "position": {"x": 0, "y": 120}},
        ],
        "edges": [],
        "settings": {"name": "Doc"},
    }
    doc.update(overrides)
    return doc


# ===================================================================
# Encoding
# ===================================================================

class TestEncode:
    def test_camel_case_keys(self) -> None:
        doc = diagram_to_dict(_sample())
        assert doc["schemaVersion"] == 1
        node = doc["nodes"][0]
        assert node["parentId"] is None
        assert node["badgeConfig"]["offsetY"] == -30
        assert node["style"]["textColor"] == "#000000"
        assert node["textStyle"] == {
            "bold": True, "italic": False, "underline": False,
            "fontSize": "lg", "align": "center",
        }
        assert node["boxStyle"]["borderStyle"] == "dashed"
        assert node["position"] == {"x": 400, "y": 50}

    def test_optional_structs_omitted(self) -> None:
        child = diagram_to_dict(_sample())["nodes"][1]
        assert "badgeConfig" not in child
        assert "textStyle" not in child
        assert "boxStyle" not in child

    def test_edges(self) -> None:
        edge = diagram_to_dict(_sample())["edges"][0]
        assert edge["id"] == "edge-r-c"
        assert edge["type"] == "step"
        assert edge["style"]["stroke"] == "#ff0000"
        assert edge["style"]["cornerRadius"] == 6

    def test_settings_timestamps(self) -> None:
        settings = diagram_to_dict(_sample())["settings"]
        assert settings == {
            "name": "Org",
            "createdAt": "2024-01-02T03:04:05.678Z",
            "updatedAt": "2024-01-02T03:04:05.678Z",
        }

    def test_dumps_is_json(self) -> None:
        assert json.loads(dumps(_sample()))["settings"]["name"] == "Org"


# ===================================================================
# Decoding
# ===================================================================

class TestDecode:
    def test_round_trip(self) -> None:
        data = _sample()
        back = loads(dumps(data))
        assert back.nodes == data.nodes
        assert back.edges == data.edges
        assert back.settings == data.settings

    def test_edges_rederived(self) -> None:
        data = diagram_from_dict(_minimal())
        assert [e.id for e in data.edges] == ["edge-a-b"]
        assert data.edges[0].type is EdgeType.SMOOTHSTEP

    def test_stale_edges_dropped(self) -> None:
        doc = _minimal(edges=[{"id": "edge-x-y", "source": "x", "target": "y", "type": "step"}])
        assert [e.id for e in diagram_from_dict(doc).edges] == ["edge-a-b"]

    def test_defaults_for_missing_optionals(self) -> None:
        doc = _minimal()
        del doc["settings"]
        del doc["edges"]
        data = diagram_from_dict(doc)
        node = data.nodes[0]
        assert node.subtitle == "" and node.badge == ""
        assert node.style.fill == "#d4e8f2"
        assert data.settings.name == "Untitled Diagram"

    def test_error_is_validation_error(self) -> None:
        assert issubclass(DiagramFormatError, ValidationError)

    @pytest.mark.parametrize("doc, message", [
        ({"nodes": []}, "schemaVersion"),
        ({"schemaVersion": 2, "nodes": []}, "Unsupported"),
        ({"schemaVersion": 1, "nodes": "x"}, "nodes"),
        ({"schemaVersion": 1, "nodes": [{"id": "a"}]}, "title"),
        ({"schemaVersion": 1, "nodes": [{"id": "a", "title": "A", "width": -1}]}, "width"),
        ({"schemaVersion": 1, "nodes": [
            {"id": "a", "title": "A", "textStyle": {"fontSize": "huge"}}]}, "fontSize"),
    ])
    def test_malformed(self, doc, message) -> None:
        with pytest.raises(DiagramFormatError, match=message):
            diagram_from_dict(doc)

    def test_duplicate_ids(self) -> None:
        doc = _minimal()
        doc["nodes"][1]["id"] = "a"
        doc["nodes"][1]["parentId"] = None
        with pytest.raises(DiagramFormatError, match="Duplicate"):
            diagram_from_dict(doc)

    def test_dangling_parent(self) -> None:
        doc = _minimal()
        doc["nodes"][1]["parentId"] = "ghost"
        with pytest.raises(DiagramFormatError, match="missing parent"):
            diagram_from_dict(doc)

    def test_cycle(self) -> None:
        doc = _minimal()
        doc["nodes"][0]["parentId"] = "b"
        with pytest.raises(DiagramFormatError, match="cycle"):
            diagram_from_dict(doc)

    def test_invalid_json(self) -> None:
        with pytest.raises(DiagramFormatError, match="Invalid JSON"):
            loads("{not json")

    def test_not_an_object(self) -> None:
        with pytest.raises(DiagramFormatError):
            loads("[1, 2, 3]")


class TestTimestamps:
    def test_naive_treated_as_utc(self) -> None:
        assert format_timestamp(datetime(2024, 5, 6, 7, 8, 9)) == "2024-05-06T07:08:09.000Z"

    def test_parse_z_suffix(self) -> None:
        parsed = parse_timestamp("2024-01-02T03:04:05.678Z", "t")
        assert parsed == datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)

    def test_parse_garbage(self) -> None:
        with pytest.raises(ValidationError, match="ISO-8601"):
            parse_timestamp("yesterday", "t")
