"""Graph storage protocol and snapshot-based implementation.

The GraphStore protocol defines the operations the engine uses to read and
mutate the conversation graph. SnapshotGraphStore is the default backend.

Every mutation in SnapshotGraphStore is a whole-collection replacement: the
new node/edge tuples are built first and then published as one new
``GraphSnapshot`` in a single assignment. Under asyncio nothing can run
between building and publishing, so concurrent chunk callbacks from
independent generations always read the latest complete graph.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from branchchat.graph.errors import (
    CycleError,
    EdgeEndpointError,
    EdgeExistsError,
    GraphCorruptionError,
    MultipleParentsError,
    NodeExistsError,
)
from branchchat.graph.models import Edge, GraphSnapshot, Node, Position
from branchchat.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

log = get_logger(__name__)


@runtime_checkable
class GraphStore(Protocol):
    """Storage protocol for the conversation graph.

    Lookups and updates against a missing node report absence through
    ``None``/``False`` instead of raising. Structural violations on insert
    raise a ``StructuralError`` subclass.
    """

    # -- Reads -----------------------------------------------------------------

    def snapshot(self) -> GraphSnapshot:
        """Return the current immutable snapshot."""
        ...

    def get_nodes(self) -> tuple[Node, ...]:
        """Return all nodes in the current snapshot."""
        ...

    def get_edges(self) -> tuple[Edge, ...]:
        """Return all edges in the current snapshot."""
        ...

    def get_node(self, node_id: str) -> Node | None:
        """Get a node by ID, or None if not found."""
        ...

    # -- Nodes -----------------------------------------------------------------

    def add_node(self, node: Node) -> None:
        """Add a new node. Raises NodeExistsError on duplicate ID."""
        ...

    def update_node_text(self, node_id: str, text: str) -> bool:
        """Replace a node's text. Return False (no-op) if the node is gone."""
        ...

    def append_node_text(self, node_id: str, chunk: str) -> bool:
        """Append to a node's current text. Return False if the node is gone."""
        ...

    def update_node_position(self, node_id: str, position: Position) -> bool:
        """Move a node. Return False if the node is gone."""
        ...

    def remove_node(self, node_id: str) -> bool:
        """Remove a node and every edge touching it. Return False if absent."""
        ...

    # -- Edges -----------------------------------------------------------------

    def add_edge(self, edge: Edge) -> None:
        """Add an edge, enforcing endpoint existence and the single-parent rule."""
        ...

    def remove_edge(self, edge_id: str) -> bool:
        """Remove an edge by ID. Return False if absent."""
        ...

    # -- Whole graph -----------------------------------------------------------

    def replace(self, snapshot: GraphSnapshot) -> None:
        """Install a complete snapshot after validating it."""
        ...

    def subscribe(self, listener: Callable[[GraphSnapshot], None]) -> Callable[[], None]:
        """Call *listener* with every newly published snapshot."""
        ...


def validate_snapshot(snapshot: GraphSnapshot) -> list[str]:
    """Check graph invariants and return any violations.

    Invariants checked:
    1. Node and edge IDs are unique
    2. All edge endpoints exist (referential integrity)
    3. Every node has at most one incoming edge
    4. Following parents from any node terminates (no cycles)

    Returns:
        List of violation messages (empty if valid).
    """
    violations: list[str] = []

    node_ids: set[str] = set()
    for node in snapshot.nodes:
        if node.id in node_ids:
            violations.append(f"Duplicate node id '{node.id}'")
        node_ids.add(node.id)

    edge_ids: set[str] = set()
    parent_of: dict[str, str] = {}
    for edge in snapshot.edges:
        if edge.id in edge_ids:
            violations.append(f"Duplicate edge id '{edge.id}'")
        edge_ids.add(edge.id)
        if edge.source not in node_ids:
            violations.append(f"Edge '{edge.id}' source '{edge.source}' does not exist")
        if edge.target not in node_ids:
            violations.append(f"Edge '{edge.id}' target '{edge.target}' does not exist")
        if edge.target in parent_of:
            violations.append(f"Node '{edge.target}' has more than one incoming edge")
        else:
            parent_of[edge.target] = edge.source

    for start in parent_of:
        seen = {start}
        current = parent_of.get(start)
        while current is not None:
            if current in seen:
                violations.append(f"Node '{start}' is part of a cycle")
                break
            seen.add(current)
            current = parent_of.get(current)

    return violations


class SnapshotGraphStore:
    """In-memory store publishing immutable snapshots.

    Attributes:
        _snapshot: The currently published graph. Replaced, never mutated.
    """

    def __init__(self, snapshot: GraphSnapshot | None = None) -> None:
        self._snapshot = GraphSnapshot()
        self._listeners: list[Callable[[GraphSnapshot], None]] = []
        if snapshot is not None:
            self.replace(snapshot)

    @classmethod
    def from_parts(cls, nodes: list[Node], edges: list[Edge]) -> SnapshotGraphStore:
        """Create a store from node and edge lists (validated)."""
        return cls(GraphSnapshot(nodes=tuple(nodes), edges=tuple(edges)))

    # -- Publishing ------------------------------------------------------------

    def subscribe(self, listener: Callable[[GraphSnapshot], None]) -> Callable[[], None]:
        """Call *listener* with every newly published snapshot.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, snapshot: GraphSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)

    def _map_node(self, node_id: str, change: Callable[[Node], Node]) -> bool:
        """Publish a snapshot where *node_id* is replaced by ``change(node)``.

        The node is looked up in the snapshot current at call time, so
        *change* always sees the latest stored value.
        """
        current = self._snapshot
        if not current.has_node(node_id):
            return False
        nodes = tuple(change(n) if n.id == node_id else n for n in current.nodes)
        self._publish(current.model_copy(update={"nodes": nodes}))
        return True

    # -- Reads -----------------------------------------------------------------

    def snapshot(self) -> GraphSnapshot:
        return self._snapshot

    def get_nodes(self) -> tuple[Node, ...]:
        return self._snapshot.nodes

    def get_edges(self) -> tuple[Edge, ...]:
        return self._snapshot.edges

    def get_node(self, node_id: str) -> Node | None:
        return self._snapshot.get_node(node_id)

    # -- Nodes -----------------------------------------------------------------

    def add_node(self, node: Node) -> None:
        current = self._snapshot
        if current.has_node(node.id):
            raise NodeExistsError(node.id)
        self._publish(current.model_copy(update={"nodes": (*current.nodes, node)}))
        log.debug("node_added", node_id=node.id, kind=node.kind.value)

    def update_node_text(self, node_id: str, text: str) -> bool:
        updated = self._map_node(node_id, lambda n: n.with_text(text))
        if not updated:
            log.debug("node_update_skipped", node_id=node_id, reason="not_found")
        return updated

    def append_node_text(self, node_id: str, chunk: str) -> bool:
        # Read-then-write against the stored text, never a cached copy
        updated = self._map_node(node_id, lambda n: n.with_text(n.text + chunk))
        if not updated:
            log.debug("node_append_skipped", node_id=node_id, reason="not_found")
        return updated

    def update_node_position(self, node_id: str, position: Position) -> bool:
        return self._map_node(node_id, lambda n: n.with_position(position))

    def remove_node(self, node_id: str) -> bool:
        current = self._snapshot
        if not current.has_node(node_id):
            return False
        nodes = tuple(n for n in current.nodes if n.id != node_id)
        edges = tuple(e for e in current.edges if node_id not in (e.source, e.target))
        self._publish(GraphSnapshot(nodes=nodes, edges=edges))
        log.debug("node_removed", node_id=node_id, edges_removed=len(current.edges) - len(edges))
        return True

    # -- Edges -----------------------------------------------------------------

    def add_edge(self, edge: Edge) -> None:
        current = self._snapshot
        source_exists = current.has_node(edge.source)
        target_exists = current.has_node(edge.target)
        if not source_exists or not target_exists:
            if not source_exists and not target_exists:
                missing = "both"
            elif not source_exists:
                missing = "source"
            else:
                missing = "target"
            raise EdgeEndpointError(edge.id, edge.source, edge.target, missing)

        if any(e.id == edge.id for e in current.edges):
            raise EdgeExistsError(edge.id)

        incoming = current.incoming(edge.target)
        if incoming:
            raise MultipleParentsError(edge.target, incoming[0].source, edge.source)

        if self._is_ancestor(current, edge.target, of=edge.source):
            raise CycleError(edge.source, edge.target)

        self._publish(current.model_copy(update={"edges": (*current.edges, edge)}))
        log.debug("edge_added", edge_id=edge.id, source=edge.source, target=edge.target)

    def remove_edge(self, edge_id: str) -> bool:
        current = self._snapshot
        edges = tuple(e for e in current.edges if e.id != edge_id)
        if len(edges) == len(current.edges):
            return False
        self._publish(current.model_copy(update={"edges": edges}))
        return True

    @staticmethod
    def _is_ancestor(snapshot: GraphSnapshot, candidate: str, *, of: str) -> bool:
        """True if *candidate* is *of* itself or one of its ancestors."""
        seen: set[str] = set()
        current: str | None = of
        while current is not None and current not in seen:
            if current == candidate:
                return True
            seen.add(current)
            incoming = snapshot.incoming(current)
            current = incoming[0].source if incoming else None
        return False

    # -- Whole graph -----------------------------------------------------------

    def replace(self, snapshot: GraphSnapshot) -> None:
        """Install *snapshot* wholesale, e.g. from the rendering layer.

        Raises:
            GraphCorruptionError: If the snapshot violates graph invariants.
        """
        violations = validate_snapshot(snapshot)
        if violations:
            log.error("snapshot_rejected", violations=violations[:5])
            raise GraphCorruptionError(violations)
        self._publish(snapshot)

    def validate_invariants(self) -> list[str]:
        """Check the current snapshot's invariants."""
        return validate_snapshot(self._snapshot)

    def __repr__(self) -> str:
        return (
            f"SnapshotGraphStore(nodes={len(self._snapshot.nodes)}, "
            f"edges={len(self._snapshot.edges)})"
        )
