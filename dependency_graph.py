"""Dependency graph over the discovered sub-issues.

Edges point from a dependency to the sub-issue waiting on it.  Dependencies
on issues outside the program are dropped.  The critical path is the longest
chain of still-open sub-issues; it is found by exhaustive depth-first search,
which is fine for the tens of sub-issues a program has but not for large
graphs.

Author: Ahmed Adel Bakr Alderai
"""

from __future__ import annotations

import logging

from models import DependencyGraph, Edge, SubIssue

logger = logging.getLogger(__name__)


def build_dependency_graph(sub_issues: list[SubIssue]) -> DependencyGraph:
    nodes = [si.number for si in sub_issues]
    node_set = set(nodes)

    edges: list[Edge] = []
    for sub in sub_issues:
        for dep in sub.dependencies:
            if dep in node_set:
                edges.append(Edge(source=dep, target=sub.number))

    open_nodes = [si.number for si in sub_issues if si.is_open]
    cycles = find_cycles(nodes, edges)
    if cycles:
        logger.warning(
            "Dependency cycles detected: %s",
            "; ".join(" -> ".join(f"#{n}" for n in c + c[:1]) for c in cycles),
        )

    return DependencyGraph(
        nodes=nodes,
        edges=edges,
        critical_path=find_critical_path(open_nodes, edges),
        cycles=cycles,
    )


def _adjacency(nodes: list[int], edges: list[Edge]) -> dict[int, list[int]]:
    adj: dict[int, list[int]] = {n: [] for n in nodes}
    for edge in edges:
        if edge.source in adj and edge.target in adj:
            adj[edge.source].append(edge.target)
    return adj


def find_critical_path(open_nodes: list[int], edges: list[Edge]) -> list[int]:
    """Longest simple path through *open_nodes*; earliest start wins ties."""
    adj = _adjacency(open_nodes, edges)

    longest: list[int] = []
    for start in open_nodes:
        path = _longest_from(start, adj, set())
        if len(path) > len(longest):
            longest = path
    return longest


def _longest_from(node: int, adj: dict[int, list[int]], visited: set[int]) -> list[int]:
    if node in visited:
        return []
    visited.add(node)

    best = [node]
    for nxt in adj.get(node, []):
        # Each branch gets its own copy so siblings do not cut each other short
        tail = _longest_from(nxt, adj, set(visited))
        if len(tail) + 1 > len(best):
            best = [node] + tail
    return best


def find_cycles(nodes: list[int], edges: list[Edge]) -> list[list[int]]:
    """Cycles closed by a back edge during depth-first search.

    Each cycle is reported once, rotated to start at its lowest node.
    """
    adj = _adjacency(nodes, edges)
    state: dict[int, int] = {}  # 1 = on stack, 2 = done
    stack: list[int] = []
    seen: set[tuple[int, ...]] = set()
    cycles: list[list[int]] = []

    def visit(node: int) -> None:
        state[node] = 1
        stack.append(node)
        for nxt in adj[node]:
            if state.get(nxt) == 1:
                cycle = stack[stack.index(nxt):]
                pivot = cycle.index(min(cycle))
                key = tuple(cycle[pivot:] + cycle[:pivot])
                if key not in seen:
                    seen.add(key)
                    cycles.append(list(key))
            elif nxt not in state:
                visit(nxt)
        stack.pop()
        state[node] = 2

    for node in nodes:
        if node not in state:
            visit(node)
    return cycles
