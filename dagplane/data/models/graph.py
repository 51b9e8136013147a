"""
Dependency graph for one resolution unit: a project plus every job it
transitively depends on, in that project or in others.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .job import DependencyKind, JobRef, JobSpec, ResolvedDependency

# Lower rank wins when the same edge is discovered twice
_KIND_RANK = {
    DependencyKind.CROSS_PROJECT: 0,
    DependencyKind.EXPLICIT: 1,
    DependencyKind.INFERRED: 2,
}


@dataclass(frozen=True)
class DependencyEdge:
    """``source`` depends on ``target``; ``target`` must run first."""

    source: JobRef
    target: JobRef
    kind: DependencyKind

    def sort_key(self) -> Tuple[JobRef, JobRef]:
        return (self.source, self.target)

    def to_dict(self) -> Dict[str, str]:
        return {
            "source": self.source.qualified,
            "target": self.target.qualified,
            "kind": self.kind.value,
        }


class DependencyGraph:
    """Job nodes keyed by ``JobRef`` plus the directed edges between them."""

    def __init__(self, project: str):
        self.project = project
        self.nodes: Dict[JobRef, JobSpec] = {}
        self._edges: Dict[Tuple[JobRef, JobRef], DependencyEdge] = {}

    def add_node(self, ref: JobRef, spec: JobSpec) -> None:
        self.nodes[ref] = spec

    def add_edge(self, source: JobRef, target: JobRef, kind: DependencyKind) -> DependencyEdge:
        """Add an edge; a pair discovered twice keeps its strongest kind."""
        if source.project != target.project:
            kind = DependencyKind.CROSS_PROJECT
        key = (source, target)
        existing = self._edges.get(key)
        if existing is None or _KIND_RANK[kind] < _KIND_RANK[existing.kind]:
            self._edges[key] = DependencyEdge(source=source, target=target, kind=kind)
        return self._edges[key]

    @property
    def edges(self) -> List[DependencyEdge]:
        return sorted(self._edges.values(), key=DependencyEdge.sort_key)

    def jobs(self, project: Optional[str] = None) -> List[JobRef]:
        """Sorted node refs, optionally limited to one project."""
        refs = sorted(self.nodes)
        if project is None:
            return refs
        return [ref for ref in refs if ref.project == project]

    def adjacency(self) -> Dict[JobRef, List[JobRef]]:
        """Node -> sorted list of nodes it depends on."""
        result: Dict[JobRef, List[JobRef]] = {ref: [] for ref in sorted(self.nodes)}
        for edge in self.edges:
            result.setdefault(edge.source, []).append(edge.target)
        return result

    def reverse_adjacency(self) -> Dict[JobRef, List[JobRef]]:
        """Node -> sorted list of nodes that depend on it directly."""
        result: Dict[JobRef, List[JobRef]] = {ref: [] for ref in sorted(self.nodes)}
        for edge in sorted(self._edges.values(), key=lambda e: (e.target, e.source)):
            result.setdefault(edge.target, []).append(edge.source)
        return result

    def dependencies_of(self, ref: JobRef) -> List[ResolvedDependency]:
        return [
            ResolvedDependency(ref=edge.target, kind=edge.kind)
            for edge in self.edges
            if edge.source == ref
        ]

    def to_dict(self) -> Dict[str, object]:
        return {
            "project": self.project,
            "nodes": [ref.qualified for ref in self.jobs()],
            "edges": [edge.to_dict() for edge in self.edges],
        }

    def to_json(self) -> str:
        """Canonical serialization; identical graphs serialize identically."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    def __len__(self) -> int:
        return len(self.nodes)


def find_cycle(
    nodes: Iterable[JobRef], adjacency: Dict[JobRef, List[JobRef]]
) -> Optional[List[JobRef]]:
    """Three-color depth-first search over ``adjacency``.

    Nodes are visited in sorted order and neighbours in list order, so the
    reported cycle is stable for a given graph.

    Returns:
        The cycle in traversal order with the first node repeated at the end
        (``[D, D]`` for a self reference), or None when the graph is acyclic
    """
    white, grey, black = 0, 1, 2
    color: Dict[JobRef, int] = {ref: white for ref in nodes}

    for start in sorted(color):
        if color[start] != white:
            continue
        color[start] = grey
        path = [start]
        stack = [(start, iter(adjacency.get(start, ())))]
        while stack:
            node, children = stack[-1]
            for child in children:
                state = color.get(child, white)
                if state == grey:
                    return path[path.index(child):] + [child]
                if state == white:
                    color[child] = grey
                    path.append(child)
                    stack.append((child, iter(adjacency.get(child, ()))))
                    break
            else:
                color[node] = black
                path.pop()
                stack.pop()
    return None
