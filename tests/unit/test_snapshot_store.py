"""Tests for SnapshotGraphStore, the whole-collection-replace store."""

from __future__ import annotations

import pytest

from branchchat.graph.errors import (
    CycleError,
    EdgeEndpointError,
    EdgeExistsError,
    GraphCorruptionError,
    MultipleParentsError,
    NodeExistsError,
    StructuralError,
)
from branchchat.graph.models import Edge, GraphSnapshot, Position
from branchchat.graph.store import GraphStore, SnapshotGraphStore, validate_snapshot
from tests.fixtures.graphs import build_store, link, llm, text_of, user


class TestProtocol:
    def test_is_runtime_checkable(self) -> None:
        """SnapshotGraphStore passes isinstance check for GraphStore."""
        assert isinstance(SnapshotGraphStore(), GraphStore)

    def test_default_state(self) -> None:
        store = SnapshotGraphStore()
        assert store.get_nodes() == ()
        assert store.get_edges() == ()


class TestNodes:
    def test_add_and_get_node(self) -> None:
        store = SnapshotGraphStore()
        store.add_node(user("u1", "Hi"))

        node = store.get_node("u1")
        assert node is not None
        assert node.text == "Hi"

    def test_get_missing_node_returns_none(self) -> None:
        assert SnapshotGraphStore().get_node("missing") is None

    def test_duplicate_node_rejected(self) -> None:
        store = SnapshotGraphStore()
        store.add_node(user("u1"))
        with pytest.raises(NodeExistsError):
            store.add_node(llm("u1"))

    def test_update_node_text(self) -> None:
        store = build_store([user("u1", "Hi")], [])
        assert store.update_node_text("u1", "Hello") is True
        assert text_of(store, "u1") == "Hello"

    def test_update_missing_node_is_noop(self) -> None:
        """Updating a vanished node reports False and changes nothing."""
        store = build_store([user("u1", "Hi")], [])
        before = store.snapshot()

        assert store.update_node_text("gone", "x") is False
        assert store.append_node_text("gone", "x") is False
        assert store.snapshot() is before

    def test_append_reads_current_text(self) -> None:
        """Chunks append to whatever is stored now, not a cached copy."""
        store = build_store([llm("r1"), llm("r2", "other")], [])

        store.append_node_text("r1", "Hel")
        store.update_node_text("r2", "changed elsewhere")
        store.append_node_text("r1", "lo")

        assert text_of(store, "r1") == "Hello"
        assert text_of(store, "r2") == "changed elsewhere"

    def test_update_node_position(self) -> None:
        store = build_store([user("u1")], [])
        assert store.update_node_position("u1", Position(x=5, y=6)) is True
        node = store.get_node("u1")
        assert node is not None
        assert node.position == Position(x=5, y=6)
        assert store.update_node_position("gone", Position()) is False

    def test_remove_node_drops_touching_edges(self) -> None:
        store = build_store([user("u1"), llm("r1"), user("u2")], [("u1", "r1"), ("r1", "u2")])

        assert store.remove_node("r1") is True
        assert store.get_node("r1") is None
        assert store.get_edges() == ()
        assert store.get_node("u2") is not None

    def test_remove_missing_node(self) -> None:
        assert SnapshotGraphStore().remove_node("gone") is False


class TestSnapshots:
    def test_old_snapshot_is_unchanged_by_mutation(self) -> None:
        """Readers holding a snapshot never observe later writes."""
        store = build_store([llm("r1", "old")], [])
        held = store.snapshot()

        store.update_node_text("r1", "new")
        store.add_node(user("u9"))

        held_node = held.get_node("r1")
        assert held_node is not None
        assert held_node.text == "old"
        assert not held.has_node("u9")
        assert text_of(store, "r1") == "new"

    def test_each_mutation_publishes_new_snapshot(self) -> None:
        store = build_store([llm("r1")], [])
        first = store.snapshot()
        store.append_node_text("r1", "a")
        assert store.snapshot() is not first

    def test_subscribe_receives_published_snapshots(self) -> None:
        store = SnapshotGraphStore()
        seen: list[GraphSnapshot] = []
        unsubscribe = store.subscribe(seen.append)

        store.add_node(user("u1"))
        store.update_node_text("u1", "Hi")
        unsubscribe()
        store.update_node_text("u1", "ignored")

        assert len(seen) == 2
        assert seen[-1].get_node("u1").text == "Hi"  # type: ignore[union-attr]


class TestEdges:
    def test_add_edge(self) -> None:
        store = build_store([user("u1"), llm("r1")], [("u1", "r1")])
        assert [e.id for e in store.get_edges()] == ["eu1-r1"]

    @pytest.mark.parametrize(
        ("source", "target", "missing"),
        [("nope", "r1", "source"), ("u1", "nope", "target"), ("x", "y", "both")],
    )
    def test_missing_endpoint_rejected(self, source: str, target: str, missing: str) -> None:
        store = build_store([user("u1"), llm("r1")], [])
        with pytest.raises(EdgeEndpointError) as exc_info:
            store.add_edge(link(source, target))
        assert exc_info.value.missing == missing
        assert store.get_edges() == ()

    def test_second_parent_rejected(self) -> None:
        """Every node has at most one incoming edge."""
        store = build_store([user("u1"), user("u2"), llm("r1")], [("u1", "r1")])
        with pytest.raises(MultipleParentsError) as exc_info:
            store.add_edge(link("u2", "r1"))
        assert exc_info.value.existing_parent == "u1"
        assert len(store.get_edges()) == 1

    def test_duplicate_edge_id_rejected(self) -> None:
        store = build_store([user("u1"), llm("r1"), llm("r2")], [("u1", "r1")])
        with pytest.raises(EdgeExistsError):
            store.add_edge(Edge(id="eu1-r1", source="u1", target="r2"))

    def test_cycle_rejected(self) -> None:
        store = build_store([user("u1"), llm("r1"), user("u2")], [("u1", "r1"), ("r1", "u2")])
        with pytest.raises(CycleError):
            store.add_edge(link("u2", "u1"))

    def test_self_loop_rejected(self) -> None:
        store = build_store([user("u1")], [])
        with pytest.raises(CycleError):
            store.add_edge(link("u1", "u1"))

    def test_structural_errors_share_base(self) -> None:
        store = build_store([user("u1")], [])
        with pytest.raises(StructuralError):
            store.add_edge(link("u1", "missing"))

    def test_remove_edge(self) -> None:
        store = build_store([user("u1"), llm("r1")], [("u1", "r1")])
        assert store.remove_edge("eu1-r1") is True
        assert store.remove_edge("eu1-r1") is False
        assert store.get_edges() == ()


class TestReplace:
    def test_replace_installs_valid_snapshot(self) -> None:
        snapshot = GraphSnapshot(nodes=(user("u1"), llm("r1")), edges=(link("u1", "r1"),))
        store = SnapshotGraphStore()
        store.replace(snapshot)
        assert store.snapshot() is snapshot

    def test_replace_rejects_dangling_edge(self) -> None:
        store = SnapshotGraphStore()
        bad = GraphSnapshot(nodes=(user("u1"),), edges=(link("u1", "ghost"),))
        with pytest.raises(GraphCorruptionError) as exc_info:
            store.replace(bad)
        assert "ghost" in exc_info.value.violations[0]
        assert store.get_nodes() == ()

    def test_from_parts_validates(self) -> None:
        with pytest.raises(GraphCorruptionError):
            SnapshotGraphStore.from_parts(
                [user("u1"), user("u2"), llm("r1")],
                [link("u1", "r1"), Edge(id="e2", source="u2", target="r1")],
            )


class TestValidateSnapshot:
    def test_valid_graph_has_no_violations(self) -> None:
        store = build_store([user("u1"), llm("r1")], [("u1", "r1")])
        assert store.validate_invariants() == []

    def test_reports_cycle_and_duplicates(self) -> None:
        snapshot = GraphSnapshot(
            nodes=(llm("a"), llm("b"), llm("a")),
            edges=(link("a", "b"), link("b", "a")),
        )
        violations = validate_snapshot(snapshot)
        assert any("Duplicate node id 'a'" in v for v in violations)
        assert any("cycle" in v for v in violations)
