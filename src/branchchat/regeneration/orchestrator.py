"""Regeneration orchestrator: "regenerate from this node".

A regeneration run moves through these states:

    IDLE -> ENSURING_CHILD -> CASCADING -> DONE
                                        `-> CANCELLED (superseded)

ENSURING_CHILD gives a childless start node a fresh response node and
generates into it. CASCADING then walks every descendant shallow-to-deep
and regenerates each response node in turn, awaiting each generation
before rebuilding the next node's history, so a child always sees its
parent's new text.

A failed generation is logged and recorded; the cascade moves on to the
next descendant. Starting a run on a subtree that overlaps a run still in
flight cancels the older run. Nodes added after a run started are claimed
one at a time as the cascade reaches them: a node held by a newer run is
skipped, a node held by an older run supersedes that run. Two runs never
write into the same node.
"""

from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from branchchat.generation.cancellation import CancellationToken
from branchchat.graph.algorithms import find_all_descendants
from branchchat.graph.history import build_history
from branchchat.graph.models import Edge, Node, NodeKind
from branchchat.observability.logging import bind_run_context, get_logger
from branchchat.providers.base import DEFAULT_MODE

if TYPE_CHECKING:
    from branchchat.generation.controller import GenerationController, GenerationResult
    from branchchat.graph.store import GraphStore

log = get_logger(__name__)

# Vertical distance between a node and a response created beneath it
DEFAULT_RESPONSE_OFFSET = 150.0


class RegenerationState(str, Enum):
    """Lifecycle of one regeneration run."""

    IDLE = "idle"
    ENSURING_CHILD = "ensuring_child"
    CASCADING = "cascading"
    DONE = "done"
    CANCELLED = "cancelled"


@dataclass
class RegenerationReport:
    """What one ``regenerate_from`` call did.

    Attributes:
        root_id: Node the run started from.
        created_node_id: Response node synthesized in ENSURING_CHILD, if any.
        regenerated: Nodes whose generation completed, in processing order.
        failed: Node ID -> failure reason. Partial text stays in the node.
        skipped: Descendants left alone (user input, vanished nodes, nodes
            held by a newer run).
        cancelled: True if a newer run superseded this one.
        final_state: State the run ended in.
    """

    root_id: str
    created_node_id: str | None = None
    regenerated: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    cancelled: bool = False
    final_state: RegenerationState = RegenerationState.IDLE

    @property
    def ok(self) -> bool:
        return not self.failed and not self.cancelled


@dataclass
class _Run:
    """Bookkeeping for a run in flight."""

    run_id: int
    root_id: str
    token: CancellationToken
    scope: set[str]
    state: RegenerationState = RegenerationState.IDLE


class RegenerationOrchestrator:
    """Coordinates cascading regeneration over a graph store.

    The orchestrator keeps no graph state of its own. Each step reads the
    store's current snapshot; only the set of in-flight runs persists
    between calls.
    """

    def __init__(
        self,
        store: GraphStore,
        controller: GenerationController,
        *,
        response_offset: float = DEFAULT_RESPONSE_OFFSET,
        mode: str = DEFAULT_MODE,
    ) -> None:
        self._store = store
        self._controller = controller
        self._response_offset = response_offset
        self._mode = mode
        self._runs: dict[int, _Run] = {}
        self._run_ids = itertools.count(1)

    @property
    def active_roots(self) -> list[str]:
        """Root node of every run still in flight."""
        return [run.root_id for run in self._runs.values()]

    def cancel_all(self, reason: str = "cancelled") -> None:
        """Cancel every run in flight."""
        for run in self._runs.values():
            run.token.cancel(reason)

    async def regenerate_from(self, node_id: str) -> RegenerationReport:
        """Regenerate everything downstream of *node_id*.

        If *node_id* has no children, a response node is created under it
        and generated first. The start node itself is never rewritten; only
        response nodes below it are.

        Returns:
            RegenerationReport. An unknown *node_id* yields an empty report.
        """
        report = RegenerationReport(root_id=node_id)
        snapshot = self._store.snapshot()
        start = snapshot.get_node(node_id)
        if start is None:
            log.warning("regeneration_root_missing", node_id=node_id)
            report.final_state = RegenerationState.DONE
            return report

        scope = {node_id, *find_all_descendants(node_id, snapshot.nodes, snapshot.edges)}
        run = self._start_run(node_id, scope)

        with bind_run_context(run_id=run.run_id, root=node_id):
            log.info("regeneration_started", scope=len(scope))
            try:
                created = await self._ensure_child(run, start, report)
                if not run.token.cancelled:
                    await self._cascade(run, start, created, report)
            finally:
                self._runs.pop(run.run_id, None)

            if run.token.cancelled:
                report.cancelled = True
                run.state = RegenerationState.CANCELLED
            else:
                run.state = RegenerationState.DONE
            report.final_state = run.state
            log.info(
                "regeneration_finished",
                state=run.state.value,
                regenerated=len(report.regenerated),
                failed=len(report.failed),
            )
        return report

    # -- Runs ------------------------------------------------------------------

    def _start_run(self, root_id: str, scope: set[str]) -> _Run:
        """Register a run, cancelling older runs whose scope overlaps."""
        run_id = next(self._run_ids)
        for other in self._runs.values():
            if other.scope & scope and not other.token.cancelled:
                log.info("regeneration_superseded", run=other.run_id, by=run_id, root=other.root_id)
                other.token.cancel(f"superseded by run {run_id} from {root_id}")
        run = _Run(run_id=run_id, root_id=root_id, token=CancellationToken(), scope=scope)
        self._runs[run_id] = run
        return run

    def _claim(self, run: _Run, node_id: str) -> bool:
        """Take *node_id* for *run* unless a newer run in flight holds it.

        An older run holding the node is cancelled.
        """
        for other in self._runs.values():
            if other is run or other.token.cancelled or node_id not in other.scope:
                continue
            if other.run_id > run.run_id:
                log.debug(
                    "cascade_node_skipped", node_id=node_id, reason="claimed", by=other.run_id
                )
                return False
            log.info("regeneration_superseded", run=other.run_id, by=run.run_id, root=other.root_id)
            other.token.cancel(f"superseded by run {run.run_id} at {node_id}")
        run.scope.add(node_id)
        return True

    # -- Steps -----------------------------------------------------------------

    async def _ensure_child(self, run: _Run, start: Node, report: RegenerationReport) -> str | None:
        """Create and fill a response node under a childless start node.

        Returns:
            ID of the created node, or None if nothing was created.
        """
        run.state = RegenerationState.ENSURING_CHILD
        if any(edge.source == start.id for edge in self._store.get_edges()):
            return None

        response = Node(
            id=f"llmResponse-{uuid.uuid4().hex}",
            kind=NodeKind.LLM_RESPONSE,
            text="",
            position=start.position.offset(dy=self._response_offset),
        )
        self._store.add_node(response)
        self._store.add_edge(Edge.connect(start.id, response.id))
        run.scope.add(response.id)
        report.created_node_id = response.id
        log.debug("response_node_created", parent=start.id, node_id=response.id)

        await self._generate_into(run, response.id, report)
        return response.id

    async def _cascade(
        self,
        run: _Run,
        start: Node,
        created: str | None,
        report: RegenerationReport,
    ) -> None:
        """Regenerate response nodes downstream of *start*, parent first."""
        run.state = RegenerationState.CASCADING
        snapshot = self._store.snapshot()
        worklist = find_all_descendants(start.id, snapshot.nodes, snapshot.edges)

        for node_id in worklist:
            if run.token.cancelled:
                return
            if node_id == created:
                continue
            node = self._store.get_node(node_id)
            if node is None:
                log.debug("cascade_node_skipped", node_id=node_id, reason="deleted")
                report.skipped.append(node_id)
                continue
            if node.kind is not NodeKind.LLM_RESPONSE or not self._claim(run, node_id):
                report.skipped.append(node_id)
                continue
            await self._generate_into(run, node_id, report)

    async def _generate_into(self, run: _Run, node_id: str, report: RegenerationReport) -> None:
        """Clear *node_id* and stream a fresh reply into it."""
        self._store.update_node_text(node_id, "")
        # Rebuilt from the live graph so freshly regenerated ancestors count
        snapshot = self._store.snapshot()
        history = build_history(node_id, snapshot.nodes, snapshot.edges, include_start=False)

        def apply_chunk(content: str) -> None:
            self._store.append_node_text(node_id, content)

        result: GenerationResult = await self._controller.generate(
            history,
            apply_chunk,
            mode=self._mode,
            cancel_token=run.token,
            target_node_id=node_id,
        )
        if result.error is not None:
            log.warning("cascade_generation_failed", node_id=node_id, error=result.error.reason)
            report.failed[node_id] = result.error.reason
        elif not result.cancelled:
            report.regenerated.append(node_id)
