"""User-facing operations on a branching conversation.

ChatSession bundles a graph store with a regeneration orchestrator and
exposes the actions an editing surface performs: adding a user turn,
committing an edit, regenerating a branch, deleting a node.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from branchchat.generation.controller import GenerationController
from branchchat.graph.algorithms import find_roots, get_outgoers
from branchchat.graph.errors import NodeNotFoundError
from branchchat.graph.history import build_history
from branchchat.graph.models import Edge, Node, NodeKind, Position
from branchchat.graph.store import SnapshotGraphStore
from branchchat.observability.logging import get_logger
from branchchat.providers.factory import create_streaming_provider
from branchchat.regeneration.orchestrator import RegenerationOrchestrator

if TYPE_CHECKING:
    from branchchat.config import ChatConfig
    from branchchat.graph.store import GraphStore
    from branchchat.observability.generation_logger import GenerationLogger
    from branchchat.providers.base import Message, StreamingProvider
    from branchchat.regeneration.orchestrator import RegenerationReport

log = get_logger(__name__)

# Horizontal spacing between sibling branches under one parent
SIBLING_SPACING = 300.0


class ChatSession:
    """A conversation graph plus the orchestrator that fills it."""

    def __init__(
        self,
        store: GraphStore,
        orchestrator: RegenerationOrchestrator,
        *,
        response_offset: float = 150.0,
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self._response_offset = response_offset

    @classmethod
    def from_config(
        cls,
        config: ChatConfig,
        *,
        provider: StreamingProvider | None = None,
        provider_override: str | None = None,
        generation_logger: GenerationLogger | None = None,
        store: GraphStore | None = None,
    ) -> ChatSession:
        """Wire a store, controller and orchestrator from *config*.

        Args:
            config: Loaded chat configuration.
            provider: Streaming provider; built from ``config`` if None.
            provider_override: Provider string taking precedence over both
                BRANCHCHAT_PROVIDER and the config file.
            generation_logger: Optional JSONL logger for generation calls.
            store: Graph store to use; a fresh empty one if None.

        Raises:
            ProviderError: If the configured provider cannot be created.
        """
        if provider is None:
            provider = create_streaming_provider(
                provider_override or config.get_provider(),
                temperature=config.temperature,
                system_prompts=config.system_prompts,
            )
        if store is None:
            store = SnapshotGraphStore()
        controller = GenerationController(provider, generation_logger)
        orchestrator = RegenerationOrchestrator(
            store,
            controller,
            response_offset=config.response_offset,
            mode=config.mode,
        )
        return cls(store, orchestrator, response_offset=config.response_offset)

    def add_user_input(
        self,
        text: str,
        parent_id: str | None = None,
        position: Position | None = None,
    ) -> Node:
        """Add a user turn, optionally as a reply to *parent_id*.

        Without an explicit position the node is placed below its parent,
        shifted right past any existing siblings.

        Raises:
            NodeNotFoundError: If *parent_id* does not exist.
        """
        parent: Node | None = None
        if parent_id is not None:
            parent = self.store.get_node(parent_id)
            if parent is None:
                raise NodeNotFoundError(
                    parent_id,
                    available=[n.id for n in self.store.get_nodes()],
                    context="reply target",
                )

        if position is None:
            position = self._place_under(parent)

        node = Node(
            id=f"userInput-{uuid.uuid4().hex}",
            kind=NodeKind.USER_INPUT,
            text=text,
            position=position,
        )
        self.store.add_node(node)
        if parent is not None:
            self.store.add_edge(Edge.connect(parent.id, node.id))
        log.debug("user_input_added", node_id=node.id, parent=parent_id)
        return node

    def _place_under(self, parent: Node | None) -> Position:
        if parent is None:
            roots = find_roots(self.store.get_nodes(), self.store.get_edges())
            return Position(x=len(roots) * SIBLING_SPACING, y=0.0)
        siblings = get_outgoers(parent.id, self.store.get_nodes(), self.store.get_edges())
        return parent.position.offset(dx=len(siblings) * SIBLING_SPACING, dy=self._response_offset)

    def edit_text(self, node_id: str, text: str) -> bool:
        """Commit edited text for a node. Returns False if it is gone."""
        return self.store.update_node_text(node_id, text)

    def delete_node(self, node_id: str) -> bool:
        """Delete a node and its edges. Returns False if it is gone.

        Children are left in place as roots of their own trees.
        """
        return self.store.remove_node(node_id)

    async def regenerate(self, node_id: str) -> RegenerationReport:
        """Regenerate everything downstream of *node_id*."""
        return await self.orchestrator.regenerate_from(node_id)

    async def ask(self, text: str, parent_id: str | None = None) -> tuple[Node, RegenerationReport]:
        """Add a user turn and generate a response to it."""
        node = self.add_user_input(text, parent_id=parent_id)
        report = await self.regenerate(node.id)
        return node, report

    def transcript(self, node_id: str) -> list[Message]:
        """Root-to-node history of *node_id* (empty if it does not exist)."""
        snapshot = self.store.snapshot()
        return build_history(node_id, snapshot.nodes, snapshot.edges)
