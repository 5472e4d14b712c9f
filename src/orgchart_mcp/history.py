"""
Bounded linear undo/redo history.

The history is a list of snapshots plus a cursor pointing at the snapshot
that matches the current state.  Committing after an undo discards the
redo branch; when the list grows past ``limit`` the oldest snapshot is
dropped.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass

from orgchart_mcp.models import DiagramEdge, DiagramNode


@dataclass(frozen=True)
class Snapshot:
    """Deep copy of the node and edge lists at one point in time."""
    nodes: tuple[DiagramNode, ...]
    edges: tuple[DiagramEdge, ...]

    @classmethod
    def capture(cls, nodes: list[DiagramNode], edges: list[DiagramEdge]) -> Snapshot:
        return cls(tuple(copy.deepcopy(nodes)), tuple(copy.deepcopy(edges)))

    def restore(self) -> tuple[list[DiagramNode], list[DiagramEdge]]:
        """Fresh mutable copies, so the stored snapshot is never aliased."""
        return list(copy.deepcopy(self.nodes)), list(copy.deepcopy(self.edges))


class History:
    def __init__(self, limit: int = 50) -> None:
        if limit < 1:
            raise ValueError("history limit must be >= 1")
        self.limit = limit
        self._entries: list[Snapshot] = []
        self._cursor = -1

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current(self) -> Snapshot | None:
        if self._cursor < 0:
            return None
        return self._entries[self._cursor]

    def reset(self, nodes: list[DiagramNode], edges: list[DiagramEdge]) -> None:
        """Forget everything and start from a single base snapshot."""
        self._entries = [Snapshot.capture(nodes, edges)]
        self._cursor = 0

    def commit(self, nodes: list[DiagramNode], edges: list[DiagramEdge]) -> None:
        del self._entries[self._cursor + 1:]
        self._entries.append(Snapshot.capture(nodes, edges))
        overflow = len(self._entries) - self.limit
        if overflow > 0:
            del self._entries[:overflow]
        self._cursor = len(self._entries) - 1

    def can_undo(self) -> bool:
        return self._cursor > 0

    def can_redo(self) -> bool:
        return 0 <= self._cursor < len(self._entries) - 1

    def undo(self) -> Snapshot | None:
        if not self.can_undo():
            return None
        self._cursor -= 1
        return self._entries[self._cursor]

    def redo(self) -> Snapshot | None:
        if not self.can_redo():
            return None
        self._cursor += 1
        return self._entries[self._cursor]
