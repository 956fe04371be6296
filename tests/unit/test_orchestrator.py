"""Tests for cascading regeneration."""

from __future__ import annotations

import asyncio

import pytest

from branchchat.generation import GenerationController
from branchchat.graph.models import NodeKind, Position
from branchchat.regeneration import RegenerationOrchestrator, RegenerationState
from tests.fixtures.graphs import build_store, link, llm, text_of, user
from tests.fixtures.scripted_provider import Script, ScriptedProvider


def _orchestrator(store, provider: ScriptedProvider, **kwargs) -> RegenerationOrchestrator:
    return RegenerationOrchestrator(store, GenerationController(provider), **kwargs)


async def _until(condition, limit: int = 200) -> None:
    for _ in range(limit):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


class TestEnsureChild:
    @pytest.mark.asyncio
    async def test_childless_user_node_gets_one_response(self) -> None:
        store = build_store([user("u1", "Hi", x=0, y=0)], [])
        provider = ScriptedProvider()

        report = await _orchestrator(store, provider).regenerate_from("u1")

        assert len(store.get_nodes()) == 2
        assert len(store.get_edges()) == 1
        edge = store.get_edges()[0]
        assert edge.source == "u1"
        assert edge.target == report.created_node_id

        created = store.get_node(edge.target)
        assert created is not None
        assert created.kind is NodeKind.LLM_RESPONSE
        assert created.id.startswith("llmResponse-")
        assert created.position == Position(x=0, y=150)
        assert created.text == "re:Hi"

        assert provider.calls[0].messages == [{"role": "user", "content": "Hi"}]
        assert report.regenerated == [created.id]
        assert report.final_state is RegenerationState.DONE
        assert report.ok

    @pytest.mark.asyncio
    async def test_response_offset_configurable(self) -> None:
        store = build_store([user("u1", "Hi", x=10, y=20)], [])

        report = await _orchestrator(store, ScriptedProvider(), response_offset=40).regenerate_from(
            "u1"
        )

        created = store.get_node(report.created_node_id or "")
        assert created is not None
        assert created.position == Position(x=10, y=60)

    @pytest.mark.asyncio
    async def test_user_node_with_children_creates_nothing(self) -> None:
        store = build_store([user("u1", "Hi"), llm("r1", "old")], [("u1", "r1")])

        report = await _orchestrator(store, ScriptedProvider()).regenerate_from("u1")

        assert report.created_node_id is None
        assert len(store.get_nodes()) == 2
        assert text_of(store, "r1") == "re:Hi"

    @pytest.mark.asyncio
    async def test_history_includes_ancestors(self) -> None:
        store = build_store(
            [user("u1", "Hi"), llm("r1", "Hello"), user("u2", "More")],
            [("u1", "r1"), ("r1", "u2")],
        )
        provider = ScriptedProvider()

        await _orchestrator(store, provider).regenerate_from("u2")

        assert [m["content"] for m in provider.calls[0].messages] == ["Hi", "Hello", "More"]


class TestCascade:
    @pytest.mark.asyncio
    async def test_child_sees_parent_new_text(self) -> None:
        """Each response is generated against its parent's regenerated text."""
        store = build_store(
            [user("u1", "Hi"), llm("r1", "stale one"), llm("r2", "stale two")],
            [("u1", "r1"), ("r1", "r2")],
        )
        provider = ScriptedProvider()

        report = await _orchestrator(store, provider).regenerate_from("u1")

        assert report.regenerated == ["r1", "r2"]
        assert text_of(store, "r1") == "re:Hi"
        assert provider.calls[1].messages == [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "re:Hi"},
        ]
        assert text_of(store, "r2") == "re:re:Hi"

    @pytest.mark.asyncio
    async def test_start_node_is_not_rewritten(self) -> None:
        store = build_store(
            [user("u1", "Hi"), llm("r1", "old"), llm("r2", "stale")],
            [("u1", "r1"), ("r1", "r2")],
        )
        provider = ScriptedProvider([Script(["new"])])

        report = await _orchestrator(store, provider).regenerate_from("r1")

        assert report.regenerated == ["r2"]
        assert report.created_node_id is None
        assert text_of(store, "r1") == "old"
        assert text_of(store, "r2") == "new"
        assert provider.calls[0].messages == [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "old"},
        ]

    @pytest.mark.asyncio
    async def test_childless_response_gets_continuation(self) -> None:
        store = build_store([user("u1", "Hi"), llm("r1", "Hello")], [("u1", "r1")])
        provider = ScriptedProvider()

        report = await _orchestrator(store, provider).regenerate_from("r1")

        assert report.created_node_id is not None
        assert store.snapshot().incoming(report.created_node_id)[0].source == "r1"
        assert text_of(store, "r1") == "Hello"
        assert text_of(store, report.created_node_id) == "re:Hello"

    @pytest.mark.asyncio
    async def test_user_descendants_are_not_regenerated(self) -> None:
        store = build_store(
            [user("u1", "Hi"), llm("r1"), user("u2", "keep me"), llm("r2")],
            [("u1", "r1"), ("r1", "u2"), ("u2", "r2")],
        )
        provider = ScriptedProvider()

        report = await _orchestrator(store, provider).regenerate_from("u1")

        assert len(provider.calls) == 2
        assert report.skipped == ["u2"]
        assert text_of(store, "u2") == "keep me"
        assert text_of(store, "r2") == "re:keep me"

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_siblings(self) -> None:
        store = build_store(
            [user("u1", "Hi"), llm("r1"), llm("r2")],
            [("u1", "r1"), ("u1", "r2")],
        )
        provider = ScriptedProvider([Script(["Par", "tial"], error="boom"), Script(["fine"])])

        report = await _orchestrator(store, provider).regenerate_from("u1")

        assert text_of(store, "r1") == "Partial"
        assert "boom" in report.failed["r1"]
        assert report.regenerated == ["r2"]
        assert text_of(store, "r2") == "fine"
        assert not report.ok
        assert report.final_state is RegenerationState.DONE

    @pytest.mark.asyncio
    async def test_node_deleted_mid_cascade_is_skipped(self) -> None:
        store = build_store(
            [user("u1", "Hi"), llm("r1"), llm("r2")],
            [("u1", "r1"), ("u1", "r2")],
        )
        provider = ScriptedProvider([Script(["a", "b"], hooks={1: lambda: store.remove_node("r2")})])

        report = await _orchestrator(store, provider).regenerate_from("u1")

        assert report.regenerated == ["r1"]
        assert report.skipped == ["r2"]
        assert len(provider.calls) == 1
        assert store.get_node("r2") is None

    @pytest.mark.asyncio
    async def test_target_deleted_while_streaming(self) -> None:
        """Chunks for a vanished node are dropped without raising."""
        store = build_store([user("u1", "Hi"), llm("r1", "old")], [("u1", "r1")])
        provider = ScriptedProvider([Script(["a", "b"], hooks={1: lambda: store.remove_node("r1")})])

        report = await _orchestrator(store, provider).regenerate_from("u1")

        assert store.get_node("r1") is None
        assert report.failed == {}
        assert [n.id for n in store.get_nodes()] == ["u1"]

    @pytest.mark.asyncio
    async def test_missing_root_is_a_noop(self) -> None:
        store = build_store([user("u1", "Hi")], [])
        provider = ScriptedProvider()

        report = await _orchestrator(store, provider).regenerate_from("gone")

        assert provider.calls == []
        assert report.regenerated == []
        assert report.final_state is RegenerationState.DONE
        assert len(store.get_nodes()) == 1

    @pytest.mark.asyncio
    async def test_mode_forwarded(self) -> None:
        store = build_store([user("u1", "Hi")], [])
        provider = ScriptedProvider()

        await _orchestrator(store, provider, mode="brainstorm").regenerate_from("u1")

        assert provider.calls[0].mode == "brainstorm"


class TestConcurrentRuns:
    @pytest.mark.asyncio
    async def test_overlapping_run_supersedes_older(self) -> None:
        store = build_store([user("u1", "Hi"), llm("r1", "old")], [("u1", "r1")])
        gate = asyncio.Event()
        provider = ScriptedProvider([Script(["a1", "a2"], gate=gate), Script(["b"])])
        orchestrator = _orchestrator(store, provider)

        first = asyncio.ensure_future(orchestrator.regenerate_from("u1"))
        await _until(lambda: text_of(store, "r1") == "a1")

        second = await orchestrator.regenerate_from("u1")
        older = await first

        assert older.cancelled
        assert older.final_state is RegenerationState.CANCELLED
        assert older.regenerated == []
        assert second.regenerated == ["r1"]
        assert text_of(store, "r1") == "b"
        assert orchestrator.active_roots == []

    @pytest.mark.asyncio
    async def test_disjoint_runs_proceed_together(self) -> None:
        store = build_store([user("u1", "left"), user("u2", "right")], [])
        orchestrator = _orchestrator(store, ScriptedProvider())

        left, right = await asyncio.gather(
            orchestrator.regenerate_from("u1"),
            orchestrator.regenerate_from("u2"),
        )

        assert left.ok and right.ok
        assert text_of(store, left.created_node_id or "") == "re:left"
        assert text_of(store, right.created_node_id or "") == "re:right"
        assert len(store.get_edges()) == 2
        assert store.validate_invariants() == []

    @pytest.mark.asyncio
    async def test_cancel_all(self) -> None:
        store = build_store([user("u1", "Hi"), llm("r1")], [("u1", "r1")])
        gate = asyncio.Event()
        provider = ScriptedProvider([Script(["x", "y"], gate=gate)])
        orchestrator = _orchestrator(store, provider)

        run = asyncio.ensure_future(orchestrator.regenerate_from("u1"))
        await _until(lambda: text_of(store, "r1") == "x")
        assert orchestrator.active_roots == ["u1"]

        orchestrator.cancel_all("shutdown")
        report = await run

        assert report.cancelled
        assert text_of(store, "r1") == "x"

    @pytest.mark.asyncio
    async def test_cascade_skips_node_held_by_newer_run(self) -> None:
        """A node added under a running subtree belongs to the run that created it."""
        store = build_store([user("u1", "Hi")], [])
        gate_a, gate_b = asyncio.Event(), asyncio.Event()
        provider = ScriptedProvider(
            [Script(["A0", "A1"], gate=gate_a), Script(["B0", "B1"], gate=gate_b)]
        )
        orchestrator = _orchestrator(store, provider)

        first = asyncio.ensure_future(orchestrator.regenerate_from("u1"))
        await _until(lambda: any(n.text == "A0" for n in store.get_nodes()))
        reply = next(n.id for n in store.get_nodes() if n.text == "A0")
        store.add_node(user("u2", "more"))
        store.add_edge(link(reply, "u2"))

        second = asyncio.ensure_future(orchestrator.regenerate_from("u2"))
        await _until(lambda: any(n.text == "B0" for n in store.get_nodes()))

        gate_a.set()
        older = await first
        gate_b.set()
        newer = await second

        follow_up = newer.created_node_id
        assert follow_up is not None
        assert follow_up in older.skipped
        assert follow_up not in older.regenerated
        assert older.regenerated == [reply]
        assert newer.regenerated == [follow_up]
        assert text_of(store, reply) == "A0A1"
        assert text_of(store, follow_up) == "B0B1"
        assert len(provider.calls) == 2
