# src/etch/core/dag.py
"""Dependency graph between managed files and command bundles.

Uses NetworkX to detect and report dependency cycles.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import networkx as nx
from networkx import DiGraph

ItemKind = Literal["file", "command"]


class GraphValidationError(Exception):
    """Raised when graph validation fails."""

    def __init__(self, message: str, cycle: list[str] | None = None) -> None:
        super().__init__(message)
        self.cycle = cycle or []


@dataclass(frozen=True)
class DependencyItem:
    """A file path or command bundle name in the graph."""

    kind: ItemKind
    name: str

    @property
    def node_id(self) -> str:
        return f"{self.kind}:{self.name}"


class DependencyGraph:
    """Dependency graph for one generation or one repository.

    Edges point from a dependent item to the item it depends on.
    """

    def __init__(self) -> None:
        self._graph: DiGraph[str] = nx.DiGraph()

    @property
    def node_count(self) -> int:
        """Number of items in the graph."""
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        """Number of dependencies in the graph."""
        return self._graph.number_of_edges()

    def add_item(self, item: DependencyItem) -> None:
        self._graph.add_node(item.node_id, item=item)

    def add_dependency(self, dependent: DependencyItem, dependency: DependencyItem) -> None:
        """Record that ``dependent`` requires ``dependency``."""
        self.add_item(dependent)
        self.add_item(dependency)
        self._graph.add_edge(dependent.node_id, dependency.node_id)

    def find_cycle(self) -> list[str] | None:
        """Return one cycle as item names, first item repeated at the end.

        Returns:
            e.g. ["/a", "/b", "/a"], or None when acyclic
        """
        try:
            edges = nx.find_cycle(self._graph)
        except nx.NetworkXNoCycle:
            return None
        names = [self._graph.nodes[u]["item"].name for u, _v in edges]
        names.append(names[0])
        return names

    def validate(self) -> None:
        """Validate that no item depends on itself, directly or not.

        Raises:
            GraphValidationError: If a cycle exists
        """
        cycle = self.find_cycle()
        if cycle is not None:
            raise GraphValidationError(
                f"Dependency cycle detected: {' -> '.join(cycle)}", cycle
            )
