"""Helpers for building conversation graphs in tests."""

from __future__ import annotations

from branchchat.graph.models import Edge, Node, NodeKind, Position
from branchchat.graph.store import SnapshotGraphStore


def user(node_id: str, text: str = "", x: float = 0.0, y: float = 0.0) -> Node:
    return Node(id=node_id, kind=NodeKind.USER_INPUT, text=text, position=Position(x=x, y=y))


def llm(node_id: str, text: str = "") -> Node:
    return Node(id=node_id, kind=NodeKind.LLM_RESPONSE, text=text)


def link(source: str, target: str) -> Edge:
    return Edge.connect(source, target)


def build_store(nodes: list[Node], links: list[tuple[str, str]]) -> SnapshotGraphStore:
    """Create a store holding *nodes* connected by ``(source, target)`` pairs."""
    store = SnapshotGraphStore()
    for node in nodes:
        store.add_node(node)
    for source, target in links:
        store.add_edge(link(source, target))
    return store


def text_of(store: SnapshotGraphStore, node_id: str) -> str | None:
    node = store.get_node(node_id)
    return node.text if node is not None else None
