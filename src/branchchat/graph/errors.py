"""Graph integrity error types.

Structural errors are raised at write time when a mutation would break the
forest shape of the conversation graph, similar to foreign key or unique
constraint violations in a database. A missing node on update is not an
error: the store reports it through its return value instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from difflib import get_close_matches


class GraphError(Exception):
    """Base class for conversation graph errors."""


class StructuralError(GraphError):
    """A mutation would violate the graph's structural invariants."""


@dataclass
class NodeNotFoundError(GraphError):
    """Raised when an operation must name an existing node and it is gone.

    The store itself never raises this; callers that need a node to exist
    (e.g. replying to a parent) translate ``None`` into this error.

    Attributes:
        node_id: The ID that was referenced but doesn't exist.
        available: Valid IDs, used to suggest likely typos.
        context: Description of where the reference occurred.
    """

    node_id: str
    available: list[str] = field(default_factory=list)
    context: str = ""

    def __post_init__(self) -> None:
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = f"Node '{self.node_id}' not found"
        if self.context:
            msg += f" ({self.context})"
        suggestions = self.suggestions()
        if suggestions:
            msg += f"; did you mean {', '.join(repr(s) for s in suggestions)}?"
        return msg

    def suggestions(self) -> list[str]:
        """Find similar IDs that might be typos."""
        return get_close_matches(self.node_id, self.available, n=3, cutoff=0.6)


@dataclass
class NodeExistsError(StructuralError):
    """Raised when adding a node whose ID is already taken."""

    node_id: str

    def __post_init__(self) -> None:
        super().__init__(f"Node '{self.node_id}' already exists")


@dataclass
class EdgeExistsError(StructuralError):
    """Raised when adding an edge whose ID is already taken."""

    edge_id: str

    def __post_init__(self) -> None:
        super().__init__(f"Edge '{self.edge_id}' already exists")


@dataclass
class EdgeEndpointError(StructuralError):
    """Raised when an edge references non-existent endpoints.

    Attributes:
        edge_id: ID of the rejected edge.
        source: Source node ID.
        target: Target node ID.
        missing: Which endpoint is missing ("source", "target", or "both").
    """

    edge_id: str
    source: str
    target: str
    missing: str

    def __post_init__(self) -> None:
        if self.missing == "both":
            msg = f"Edge '{self.edge_id}' endpoints not found: '{self.source}' and '{self.target}'"
        elif self.missing == "source":
            msg = f"Edge '{self.edge_id}' source not found: '{self.source}'"
        else:
            msg = f"Edge '{self.edge_id}' target not found: '{self.target}'"
        super().__init__(msg)


@dataclass
class MultipleParentsError(StructuralError):
    """Raised when an edge would give a node a second incoming edge.

    Attributes:
        node_id: The node that already has a parent.
        existing_parent: Source of the edge already pointing at the node.
        new_parent: Source of the rejected edge.
    """

    node_id: str
    existing_parent: str
    new_parent: str

    def __post_init__(self) -> None:
        super().__init__(
            f"Node '{self.node_id}' already follows '{self.existing_parent}'; "
            f"refusing second parent '{self.new_parent}'"
        )


@dataclass
class CycleError(StructuralError):
    """Raised when an edge would make a node its own ancestor."""

    source: str
    target: str

    def __post_init__(self) -> None:
        super().__init__(f"Edge '{self.source}' -> '{self.target}' would create a cycle")


@dataclass
class GraphCorruptionError(GraphError):
    """Raised when a whole-graph replacement violates invariants.

    Attributes:
        violations: List of invariant violations found.
    """

    violations: list[str]

    def __post_init__(self) -> None:
        msg = "Graph corruption detected"
        if self.violations:
            msg += f": {len(self.violations)} violation(s)"
        super().__init__(msg)

    def __str__(self) -> str:
        lines = ["Graph corruption detected:"]
        for v in self.violations[:5]:
            lines.append(f"  - {v}")
        if len(self.violations) > 5:
            lines.append(f"  - ... and {len(self.violations) - 5} more")
        return "\n".join(lines)
