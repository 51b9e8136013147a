"""
Priority assignment.

A job's weight grows with the number of jobs that transitively depend on
it, so upstream jobs feeding many others win run-order ties in the
scheduler:

    weight = min(MAX_PRIORITY_WEIGHT, MIN_PRIORITY_WEIGHT + fan_in * PRIORITY_WEIGHT_GAP)

Jobs with equal fan-in get equal weight; isolated jobs get the baseline.
"""

from __future__ import annotations

from typing import Dict, List, Set

from ..data.models.graph import DependencyGraph, find_cycle
from ..data.models.job import JobRef
from ..errors import CyclicDependency

MAX_PRIORITY_WEIGHT = 10000
MIN_PRIORITY_WEIGHT = 100
PRIORITY_WEIGHT_GAP = 10


class PriorityResolver:
    def __init__(
        self,
        min_weight: int = MIN_PRIORITY_WEIGHT,
        max_weight: int = MAX_PRIORITY_WEIGHT,
        gap: int = PRIORITY_WEIGHT_GAP,
    ):
        if min_weight > max_weight or gap < 0:
            raise ValueError("invalid priority weight range")
        self.min_weight = min_weight
        self.max_weight = max_weight
        self.gap = gap

    def weight_for(self, fan_in: int) -> int:
        return min(self.max_weight, self.min_weight + fan_in * self.gap)

    def fan_in(self, graph: DependencyGraph) -> Dict[JobRef, int]:
        """Number of distinct jobs that transitively depend on each node."""
        reverse = graph.reverse_adjacency()
        memo: Dict[JobRef, Set[JobRef]] = {}

        def dependents(ref: JobRef) -> Set[JobRef]:
            # Iterative post-order so deep chains do not hit the recursion limit
            stack: List[JobRef] = [ref]
            while stack:
                node = stack[-1]
                if node in memo:
                    stack.pop()
                    continue
                pending = [d for d in reverse.get(node, []) if d not in memo]
                if pending:
                    stack.extend(pending)
                    continue
                collected: Set[JobRef] = set()
                for child in reverse.get(node, []):
                    collected.add(child)
                    collected |= memo[child]
                memo[node] = collected
                stack.pop()
            return memo[ref]

        return {ref: len(dependents(ref)) for ref in graph.jobs()}

    def resolve(self, graph: DependencyGraph) -> Dict[JobRef, int]:
        """Weight of every node in ``graph``.

        Raises:
            CyclicDependency: If the graph is not acyclic
        """
        cycle = find_cycle(graph.nodes, graph.adjacency())
        if cycle:
            raise CyclicDependency([ref.display(graph.project) for ref in cycle])
        return {ref: self.weight_for(count) for ref, count in self.fan_in(graph).items()}
