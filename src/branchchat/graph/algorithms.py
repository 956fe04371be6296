"""Structural queries over a conversation graph.

Pure functions that read node/edge collections without modifying them.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

from branchchat.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from branchchat.graph.models import Edge, Node

log = get_logger(__name__)


def get_parent_id(node_id: str, edges: Iterable[Edge]) -> str | None:
    """Return the source of the edge pointing at *node_id*, if any."""
    for edge in edges:
        if edge.target == node_id:
            return edge.source
    return None


def get_outgoers(node_id: str, nodes: Iterable[Node], edges: Iterable[Edge]) -> list[Node]:
    """Return the direct children of *node_id*, in edge insertion order.

    Edges pointing at nodes that are not in *nodes* are ignored.
    """
    by_id = {node.id: node for node in nodes}
    return [by_id[e.target] for e in edges if e.source == node_id and e.target in by_id]


def find_all_descendants(node_id: str, nodes: Iterable[Node], edges: Iterable[Edge]) -> list[str]:
    """Find every node reachable from *node_id* through outgoing edges.

    Traversal is breadth-first, so the result is ordered shallow-to-deep and,
    within one depth, by edge insertion order. A parent therefore always
    precedes its children, which is the order a cascade must process them in.

    Each node is visited once. Meeting an already-visited node stops descent
    along that branch instead of raising; the store does not allow cycles,
    but a snapshot handed in from elsewhere might contain one.

    Args:
        node_id: Node whose descendants are requested.
        nodes: Node collection; edges into unknown nodes are skipped.
        edges: Edge collection.

    Returns:
        Descendant node IDs, excluding *node_id* itself.
    """
    known = {node.id for node in nodes}
    children: dict[str, list[str]] = {}
    for edge in edges:
        if edge.target in known:
            children.setdefault(edge.source, []).append(edge.target)

    visited: set[str] = {node_id}
    ordered: list[str] = []
    queue: deque[str] = deque([node_id])
    while queue:
        current = queue.popleft()
        for child in children.get(current, []):
            if child in visited:
                log.debug("descendant_revisit_skipped", root=node_id, node_id=child)
                continue
            visited.add(child)
            ordered.append(child)
            queue.append(child)

    return ordered


def find_roots(nodes: Iterable[Node], edges: Iterable[Edge]) -> list[str]:
    """Return IDs of nodes with no incoming edge, in node order."""
    targets = {edge.target for edge in edges}
    return [node.id for node in nodes if node.id not in targets]
