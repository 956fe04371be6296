"""Conversation history reconstruction.

A node's history is the chain of turns from its tree's root down to the
node itself. Only incoming edges are followed; siblings and children never
contribute to a node's own history.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from branchchat.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from branchchat.graph.models import Edge, Node
    from branchchat.providers.base import Message

log = get_logger(__name__)


def build_history(
    start_node_id: str,
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    *,
    include_start: bool = True,
) -> list[Message]:
    """Build the root-to-node transcript ending at *start_node_id*.

    Walks parent edges upward, prepending one message per visited node.
    ``USER_INPUT`` nodes become ``user`` messages and ``LLM_RESPONSE``
    nodes become ``assistant`` messages.

    Args:
        start_node_id: Node whose history is requested.
        nodes: Node collection to resolve IDs against.
        edges: Edge collection; only edges targeting visited nodes are used.
        include_start: If False, the start node's own turn is left out and
            the transcript ends at its parent. Used when generating into a
            response node whose current text is being replaced.

    Returns:
        Messages in chronological order. Empty when the start node does not
        exist, which callers must treat as "nothing to send".
    """
    by_id = {node.id: node for node in nodes}
    parent_of: dict[str, str] = {}
    for edge in edges:
        # First incoming edge wins; the store never holds more than one
        parent_of.setdefault(edge.target, edge.source)

    if start_node_id not in by_id:
        return []

    history: list[Message] = []
    seen: set[str] = set()
    current: str | None = start_node_id
    while current is not None and current in by_id:
        if current in seen:
            log.warning("history_cycle_detected", start=start_node_id, node_id=current)
            break
        seen.add(current)
        if include_start or current != start_node_id:
            node = by_id[current]
            history.append({"role": node.role, "content": node.text})  # type: ignore[typeddict-item]
        current = parent_of.get(current)

    history.reverse()
    return history

