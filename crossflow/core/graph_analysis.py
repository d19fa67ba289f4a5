"""Cycle detection and criticality metrics over a dependency graph."""

import logging
from typing import Dict, List, Set, Tuple

from .models import DependencyGraph, EdgeKind, GraphMetrics

logger = logging.getLogger(__name__)

DEFAULT_DEGREE_THRESHOLD = 3


def detect_cycles(graph: DependencyGraph) -> List[List[str]]:
    """
    Depth-first search over nodes in batch order and outgoing edges in
    insertion order.

    A back edge to a node still on the recursion stack records the path slice
    starting at that node as one cycle; the closing node is not repeated.
    Overlapping cycles may all be reported.
    """
    adjacency: Dict[str, List[str]] = {node.id: [] for node in graph.nodes}
    for edge in graph.edges:
        adjacency.setdefault(edge.source, []).append(edge.target)

    cycles: List[List[str]] = []
    visited: Set[str] = set()
    on_stack: Set[str] = set()

    def visit(node_id: str, path: List[str]) -> None:
        visited.add(node_id)
        on_stack.add(node_id)
        path = path + [node_id]
        for target in adjacency.get(node_id, []):
            if target not in visited:
                visit(target, path)
            elif target in on_stack:
                cycles.append(path[path.index(target):])
        on_stack.discard(node_id)

    for node in graph.nodes:
        if node.id not in visited:
            visit(node.id, [])

    if cycles:
        logger.debug(f"Detected {len(cycles)} dependency cycles")
    return cycles


def fan_metrics(graph: DependencyGraph) -> Dict[str, Tuple[int, int]]:
    """(fan_in, fan_out) per node id."""
    fan = {node.id: [0, 0] for node in graph.nodes}
    for edge in graph.edges:
        if edge.target in fan:
            fan[edge.target][0] += 1
        if edge.source in fan:
            fan[edge.source][1] += 1
    return {node_id: (fan_in, fan_out) for node_id, (fan_in, fan_out) in fan.items()}


def rank_by_degree(graph: DependencyGraph) -> List[Tuple[str, int]]:
    """Node names ordered by total degree descending, then name."""
    fan = fan_metrics(graph)
    ranked = [(node.name, sum(fan[node.id])) for node in graph.nodes]
    return sorted(ranked, key=lambda item: (-item[1], item[0]))


def identify_critical_contracts(graph: DependencyGraph, degree_threshold: int = DEFAULT_DEGREE_THRESHOLD) -> List[str]:
    """Names of highly connected, proxy, or delegatecall-touching units, in batch order."""
    fan = fan_metrics(graph)
    delegating = set()
    for edge in graph.edges_of_kind(EdgeKind.DELEGATECALL):
        delegating.update((edge.source, edge.target))

    critical: List[str] = []
    for node in graph.nodes:
        if sum(fan[node.id]) > degree_threshold or node.is_proxy or node.id in delegating:
            if node.name not in critical:
                critical.append(node.name)
    return critical


def compute_metrics(graph: DependencyGraph, degree_threshold: int = DEFAULT_DEGREE_THRESHOLD) -> GraphMetrics:
    return GraphMetrics(
        total_contracts=len(graph.nodes),
        total_dependencies=len(graph.edges),
        cyclic_dependencies=detect_cycles(graph),
        critical_contracts=identify_critical_contracts(graph, degree_threshold),
        unresolved_references=len(graph.unresolved),
    )
