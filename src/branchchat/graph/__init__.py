"""Graph package - conversation graph storage and structural queries.

The graph holds every conversation turn as a node and every "follows from"
relation as an edge. The store owns the only live copy; everything else
works on immutable snapshots.
"""

from branchchat.graph.algorithms import (
    find_all_descendants,
    find_roots,
    get_outgoers,
    get_parent_id,
)
from branchchat.graph.errors import (
    CycleError,
    EdgeEndpointError,
    EdgeExistsError,
    GraphCorruptionError,
    GraphError,
    MultipleParentsError,
    NodeExistsError,
    NodeNotFoundError,
    StructuralError,
)
from branchchat.graph.history import build_history
from branchchat.graph.models import Edge, GraphSnapshot, Node, NodeKind, Position
from branchchat.graph.store import GraphStore, SnapshotGraphStore, validate_snapshot

__all__ = [
    "CycleError",
    "Edge",
    "EdgeEndpointError",
    "EdgeExistsError",
    "GraphCorruptionError",
    "GraphError",
    "GraphSnapshot",
    "GraphStore",
    "MultipleParentsError",
    "Node",
    "NodeExistsError",
    "NodeKind",
    "NodeNotFoundError",
    "Position",
    "SnapshotGraphStore",
    "StructuralError",
    "build_history",
    "find_all_descendants",
    "find_roots",
    "get_outgoers",
    "get_parent_id",
    "validate_snapshot",
]
