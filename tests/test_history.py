"""Tests for the bounded snapshot history."""

import pytest

from orgchart_mcp.history import History, Snapshot
from orgchart_mcp.models import DiagramNode


def _nodes(*titles: str) -> list[DiagramNode]:
    return [DiagramNode(id=t, title=t) for t in titles]


def test_reset_gives_single_base_entry() -> None:
    h = History()
    h.reset([], [])
    assert len(h) == 1
    assert not h.can_undo()
    assert not h.can_redo()


def test_commit_then_undo_redo() -> None:
    h = History()
    h.reset([], [])
    h.commit(_nodes("a"), [])
    assert h.can_undo()
    snap = h.undo()
    assert snap.nodes == ()
    assert h.can_redo()
    snap = h.redo()
    assert [n.id for n in snap.nodes] == ["a"]
    assert h.redo() is None


def test_undo_at_start_returns_none() -> None:
    h = History()
    h.reset([], [])
    assert h.undo() is None


def test_commit_truncates_future() -> None:
    h = History()
    h.reset([], [])
    h.commit(_nodes("a"), [])
    h.commit(_nodes("a", "b"), [])
    h.undo()
    h.commit(_nodes("a", "c"), [])
    assert not h.can_redo()
    assert len(h) == 3
    assert [n.id for n in h.current.nodes] == ["a", "c"]


def test_limit_drops_oldest() -> None:
    h = History(limit=3)
    h.reset(_nodes("base"), [])
    for t in ("a", "b", "c"):
        h.commit(_nodes(t), [])
    assert len(h) == 3
    while h.can_undo():
        h.undo()
    assert [n.id for n in h.current.nodes] == ["a"]


def test_snapshots_are_deep_copies() -> None:
    nodes = _nodes("a")
    h = History()
    h.reset(nodes, [])
    nodes[0].title = "changed"
    assert h.current.nodes[0].title == "a"


def test_restore_does_not_alias() -> None:
    snap = Snapshot.capture(_nodes("a"), [])
    restored, _ = snap.restore()
    restored[0].title = "changed"
    assert snap.nodes[0].title == "a"


def test_invalid_limit() -> None:
    with pytest.raises(ValueError):
        History(limit=0)
