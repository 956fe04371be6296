"""Immutable node, edge and snapshot types for the conversation graph.

Nodes and edges are frozen pydantic models. Changing a node means building a
copy (``Node.with_text``) and publishing a new ``GraphSnapshot`` that holds
it, so a reader that grabbed a snapshot never sees a half-applied update.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class NodeKind(str, Enum):
    """Conversation turn type."""

    USER_INPUT = "userInput"
    LLM_RESPONSE = "llmResponse"

    @property
    def role(self) -> str:
        """Chat role used when the node appears in a history."""
        return "user" if self is NodeKind.USER_INPUT else "assistant"


class Position(BaseModel):
    """Canvas coordinates, owned by the rendering layer."""

    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0

    def offset(self, dx: float = 0.0, dy: float = 0.0) -> Position:
        return Position(x=self.x + dx, y=self.y + dy)


class Node(BaseModel):
    """A single conversation turn.

    Attributes:
        id: Opaque unique identifier.
        kind: Whether the user wrote this turn or the model generated it.
        text: Turn content.
        position: Canvas position, passed through untouched.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    kind: NodeKind
    text: str = ""
    position: Position = Field(default_factory=Position)

    @property
    def role(self) -> str:
        return self.kind.role

    def with_text(self, text: str) -> Node:
        """Return a copy of this node carrying *text*."""
        return self.model_copy(update={"text": text})

    def with_position(self, position: Position) -> Node:
        return self.model_copy(update={"position": position})


class Edge(BaseModel):
    """Directed "target follows from source" relation.

    ``kind`` is a rendering tag only; the engine never reads it.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    source: str
    target: str
    kind: str = "custom"

    @classmethod
    def connect(cls, source: str, target: str, kind: str = "custom") -> Edge:
        """Build an edge with the conventional ``e{source}-{target}`` id."""
        return cls(id=f"e{source}-{target}", source=source, target=target, kind=kind)


class GraphSnapshot(BaseModel):
    """An immutable, internally consistent view of the whole graph."""

    model_config = ConfigDict(frozen=True)

    nodes: tuple[Node, ...] = ()
    edges: tuple[Edge, ...] = ()

    def get_node(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def has_node(self, node_id: str) -> bool:
        return any(node.id == node_id for node in self.nodes)

    def node_ids(self) -> list[str]:
        return [node.id for node in self.nodes]

    def incoming(self, node_id: str) -> list[Edge]:
        """Edges whose target is *node_id*."""
        return [edge for edge in self.edges if edge.target == node_id]

    def outgoing(self, node_id: str) -> list[Edge]:
        """Edges whose source is *node_id*, in insertion order."""
        return [edge for edge in self.edges if edge.source == node_id]
