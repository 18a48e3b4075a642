"""Tests for the workflow engine and node runner."""
import asyncio

import pytest

from conftest import FailingRunStore, FakeLLM, FakeMedia
from weaveflow.capabilities.base import RemoteCallError
from weaveflow.engine import WorkflowEngine, create_engine
from weaveflow.executors import (
    ErrorCategory,
    NotRunnableError,
    RetryPolicy,
    build_registry,
)
from weaveflow.graph import NodeNotFoundError
from weaveflow.storage import InMemoryRunStore, NodeRunStatus, RunLedger, RunScope, RunStatus


def _engine(llm=None, media=None, run_store=None, sleep=None, policy=None):
    async def no_sleep(delay):
        return None

    registry = build_registry(
        llm=llm or FakeLLM("world"),
        media=media or FakeMedia(),
        policy=policy or RetryPolicy(),
        sleep=sleep or no_sleep,
    )
    return WorkflowEngine(registry=registry, ledger=RunLedger(run_store or InMemoryRunStore()))


def _hello_world(engine):
    engine.add_node("text", node_id="A", data={"text": "hello"})
    engine.add_node("llm", node_id="B", data={"model": "gemini-1.5-flash"})
    engine.connect(
        {"source": "A", "target": "B", "sourceHandle": "output", "targetHandle": "user_message"}
    )


class TestRunNode:
    """Test single node runs."""

    @pytest.mark.asyncio
    async def test_end_to_end_text_to_llm(self, engine, fake_llm, run_store):
        _hello_world(engine)

        result = await engine.run_node("B", owner_id="owner-1")

        node = engine.get_node("B")
        assert node.data.output == "world"
        assert node.data.is_running is False
        assert node.data.error is None
        assert fake_llm.calls[0]["user_message"] == "hello"
        assert result.ok
        assert result.outputs == {"output": "world"}

        runs = engine.list_runs("owner-1")
        assert len(runs) == 1
        assert runs[0].id == result.run_id
        assert runs[0].scope == RunScope.SINGLE
        node_run = runs[0].node_runs[0]
        assert node_run.node_type == "llm"
        assert node_run.status == NodeRunStatus.SUCCESS
        assert node_run.inputs["model"] == "gemini-1.5-flash"
        assert node_run.inputs["userMessage"] == "hello"
        assert node_run.outputs == {"output": "world"}

    @pytest.mark.asyncio
    async def test_ledger_failure_does_not_fail_run(self):
        engine = _engine(run_store=FailingRunStore())
        _hello_world(engine)

        result = await engine.run_node("B", owner_id="owner-1")

        assert result.ok
        assert result.outputs["output"] == "world"
        assert result.run_id is None
        assert engine.get_node("B").data.output == "world"

    @pytest.mark.asyncio
    async def test_retry_boundary(self, sleeps, recording_sleep):
        error = RemoteCallError("503 Service Unavailable")
        engine = _engine(llm=FakeLLM(error, error, error, "world"), sleep=recording_sleep)
        _hello_world(engine)

        result = await engine.run_node("B", owner_id="owner-1")

        assert result.ok
        assert result.attempts == 4
        assert sleeps == [1.0, 2.0, 4.0]
        assert engine.get_node("B").data.output == "world"

    @pytest.mark.asyncio
    async def test_duration_includes_backoff_delays(self):
        error = RemoteCallError("503 Service Unavailable")
        engine = _engine(
            llm=FakeLLM(error, error, error, "world"),
            sleep=asyncio.sleep,
            policy=RetryPolicy(max_retries=3, delays_s=(0.05, 0.1, 0.2)),
        )
        _hello_world(engine)

        result = await engine.run_node("B", owner_id="owner-1")

        assert result.ok
        assert result.attempts == 4
        assert result.duration_ms >= 350
        assert engine.list_runs("owner-1")[0].node_runs[0].duration_ms >= 350

    @pytest.mark.asyncio
    async def test_invalid_key_fails_after_first_attempt(self, sleeps, recording_sleep):
        llm = FakeLLM(RemoteCallError("400 Bad Request: invalid api key"))
        engine = _engine(llm=llm, sleep=recording_sleep)
        _hello_world(engine)

        result = await engine.run_node("B", owner_id="owner-1")

        assert result.status == NodeRunStatus.FAILED
        assert result.attempts == 1
        assert result.error_category == ErrorCategory.INVALID_KEY
        assert len(llm.calls) == 1
        assert sleeps == []
        node = engine.get_node("B")
        assert node.data.error.startswith("Invalid API key")
        assert node.data.is_running is False

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_output(self):
        llm = FakeLLM("first answer", RemoteCallError("something broke"))
        engine = _engine(llm=llm)
        _hello_world(engine)

        await engine.run_node("B")
        result = await engine.run_node("B")

        assert not result.ok
        node = engine.get_node("B")
        assert node.data.output == "first answer"
        assert node.data.error == "something broke"

    @pytest.mark.asyncio
    async def test_rerun_clears_previous_error(self):
        llm = FakeLLM(RemoteCallError("something broke"), "recovered")
        engine = _engine(llm=llm)
        _hello_world(engine)

        await engine.run_node("B")
        assert engine.get_node("B").data.error == "something broke"

        await engine.run_node("B")
        assert engine.get_node("B").data.error is None
        assert engine.get_node("B").data.output == "recovered"

    @pytest.mark.asyncio
    async def test_missing_user_message_is_validation_failure(self, engine, fake_llm, run_store):
        engine.add_node("llm", node_id="lonely")

        result = await engine.run_node("lonely", owner_id="owner-1")

        assert result.error_category == ErrorCategory.VALIDATION
        assert result.error == "Please provide a user message or connect a text node"
        assert fake_llm.calls == []
        assert engine.get_node("lonely").data.is_running is False
        # Failures are recorded too
        assert engine.list_runs("owner-1")[0].status == RunStatus.FAILED

    @pytest.mark.asyncio
    async def test_crop_rerun_is_idempotent(self, engine, fake_media):
        engine.add_node("uploadImage", node_id="img", data={"imageUrl": "https://x/in.png"})
        engine.add_node("cropImage", node_id="crop", data={"widthPercent": 50})
        engine.connect(
            {"source": "img", "target": "crop", "sourceHandle": "output", "targetHandle": "image_url"}
        )

        first = await engine.run_node("crop")
        second = await engine.run_node("crop")

        assert first.outputs["output_url"] == second.outputs["output_url"] == "https://cdn.test/cropped.png"
        assert engine.get_node("crop").data.is_running is False
        assert fake_media.crop_calls[0] == fake_media.crop_calls[1]

    @pytest.mark.asyncio
    async def test_run_without_owner_is_not_recorded(self, engine, run_store):
        _hello_world(engine)

        result = await engine.run_node("B")

        assert result.ok
        assert result.run_id is None

    @pytest.mark.asyncio
    async def test_passive_node_is_not_runnable(self, engine):
        engine.add_node("text", node_id="t")

        with pytest.raises(NotRunnableError):
            await engine.run_node("t")

    @pytest.mark.asyncio
    async def test_unknown_node(self, engine):
        with pytest.raises(NodeNotFoundError):
            await engine.run_node("ghost")

    @pytest.mark.asyncio
    async def test_chained_run_reads_upstream_output(self, engine, fake_llm):
        _hello_world(engine)
        engine.add_node("llm", node_id="C", data={"model": "gemini-1.5-flash"})
        engine.connect(
            {"source": "B", "target": "C", "sourceHandle": "output", "targetHandle": "user_message"}
        )

        await engine.run_node("B")
        await engine.run_node("C")

        assert fake_llm.calls[-1]["user_message"] == "world"

    @pytest.mark.asyncio
    async def test_ledger_entry_is_running_while_node_executes(self):
        seen = []

        class LedgerWatchingLLM:
            async def generate(self, model, system_prompt, user_message, images):
                seen.extend(engine.list_runs("owner-1"))
                return "world"

        engine = _engine(llm=LedgerWatchingLLM())
        _hello_world(engine)

        result = await engine.run_node("B", owner_id="owner-1")

        assert len(seen) == 1
        assert seen[0].id == result.run_id
        assert seen[0].status == RunStatus.RUNNING
        assert seen[0].node_runs[0].status == NodeRunStatus.RUNNING
        assert seen[0].node_runs[0].inputs["userMessage"] == "hello"
        runs = engine.list_runs("owner-1")
        assert len(runs) == 1
        assert runs[0].status == RunStatus.SUCCESS
        assert runs[0].node_runs[0].id == seen[0].node_runs[0].id


class TestRunNodes:
    """Test multi-node runs."""

    @pytest.mark.asyncio
    async def test_partial_run_records_one_workflow_run(self):
        llm = FakeLLM("ok")
        engine = _engine(llm=llm)
        _hello_world(engine)
        engine.add_node("llm", node_id="broken")

        run = await engine.run_nodes(["B", "broken"], owner_id="owner-1")

        assert run.scope == RunScope.PARTIAL
        assert run.status == RunStatus.PARTIAL
        assert {result.node_id: result.ok for result in run.results} == {"B": True, "broken": False}
        runs = engine.list_runs("owner-1")
        assert len(runs) == 1
        assert runs[0].id == run.run_id
        assert sorted(runs[0].node_ids) == ["B", "broken"]
        assert RunStatus.RUNNING not in {run.status for run in runs}

    @pytest.mark.asyncio
    async def test_full_run_triggers_every_active_node(self):
        engine = _engine()
        _hello_world(engine)
        engine.add_node("uploadImage", node_id="img", data={"imageUrl": "https://x/in.png"})
        engine.add_node("cropImage", node_id="crop")
        engine.connect(
            {"source": "img", "target": "crop", "sourceHandle": "output", "targetHandle": "image_url"}
        )

        run = await engine.run_nodes(owner_id="owner-1")

        assert run.scope == RunScope.FULL
        assert run.status == RunStatus.SUCCESS
        assert sorted(result.node_id for result in run.results) == ["B", "crop"]

    @pytest.mark.asyncio
    async def test_selecting_passive_node_raises(self, engine):
        engine.add_node("text", node_id="t")

        with pytest.raises(NotRunnableError):
            await engine.run_nodes(["t"])


class TestEditing:
    """Test relays, refresh and persistence through the engine."""

    def test_connect_relays_into_passive_node(self, engine):
        engine.add_node("text", node_id="src", data={"text": "upstream"})
        engine.add_node("text", node_id="relay", data={"text": "own"})

        engine.connect({"source": "src", "target": "relay", "sourceHandle": "output", "targetHandle": "input"})

        assert engine.get_node("relay").data.text == "upstream"

    def test_refresh_all_propagates_in_dependency_order(self, engine):
        engine.add_node("text", node_id="c")
        engine.add_node("text", node_id="b")
        engine.add_node("text", node_id="a", data={"text": "v1"})
        engine.connect({"source": "b", "target": "c", "targetHandle": "input"})
        engine.connect({"source": "a", "target": "b", "targetHandle": "input"})
        engine.update_node_data("a", {"text": "v2"})

        changed = engine.refresh_all()

        assert changed == 2
        assert engine.get_node("c").data.text == "v2"

    def test_empty_producer_leaves_relay_value(self, engine):
        engine.add_node("uploadImage", node_id="empty")
        engine.add_node("uploadImage", node_id="relay", data={"imageUrl": "https://x/keep.png"})

        engine.connect({"source": "empty", "target": "relay", "targetHandle": "input"})

        assert engine.get_node("relay").data.image_url == "https://x/keep.png"

    def test_save_and_restore(self, engine):
        _hello_world(engine)
        assert engine.save()

        engine.delete_node("A")
        assert engine.get_node("A") is None

        assert engine.restore()
        assert engine.get_node("A").data.text == "hello"
        assert len(engine.snapshot().edges) == 1

    def test_save_without_persistence(self):
        assert _engine().save() is False


def test_create_engine_in_memory():
    engine = create_engine(llm=FakeLLM(), media=FakeMedia())

    assert isinstance(engine.ledger.store, InMemoryRunStore)
    assert engine.persistence is not None
