"""Tests for the LLM executor in isolation."""
import logging

import pytest

from conftest import FakeLLM
from weaveflow.capabilities.base import RemoteCallError
from weaveflow.executors import (
    ExecutorError,
    NodeInputError,
    RemoteExecutionError,
    RetryPolicy,
)
from weaveflow.executors.llm import LLMExecutor, usable_images
from weaveflow.graph import build_node

VALID_BASE64 = "iVBORw0KGgo" + "A" * 120


def _llm_node(**data):
    return build_node("llm", node_id="llm-1", data={"model": "gemini-1.5-flash", **data})


class TestUsableImages:
    """Test image input filtering."""

    def test_keeps_uris_and_long_base64(self):
        images = ["data:image/png;base64,AAAA", "https://x/a.png", VALID_BASE64]

        assert usable_images(images) == images

    def test_drops_garbage_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            kept = usable_images(["hello world", "QUJD", "ftp://x/y.png"])

        assert kept == []
        assert "Dropping invalid image input" in caplog.text


class TestLLMExecutor:
    """Test LLMExecutor.run."""

    @pytest.mark.asyncio
    async def test_generates_output(self, recording_sleep):
        llm = FakeLLM("world")
        executor = LLMExecutor(llm, policy=RetryPolicy(), sleep=recording_sleep)

        outcome = await executor.run(_llm_node(userMessage="hello", systemPrompt="be nice"), {})

        assert outcome.updates == {"output": "world"}
        assert outcome.attempts == 1
        assert llm.calls == [
            {
                "model": "gemini-1.5-flash",
                "system_prompt": "be nice",
                "user_message": "hello",
                "images": [],
            }
        ]

    @pytest.mark.asyncio
    async def test_empty_system_prompt_sent_as_none(self, recording_sleep):
        llm = FakeLLM("ok")
        executor = LLMExecutor(llm, sleep=recording_sleep)

        await executor.run(_llm_node(userMessage="hello"), {})

        assert llm.calls[0]["system_prompt"] is None

    @pytest.mark.asyncio
    async def test_missing_user_message_is_validation_error(self, recording_sleep):
        llm = FakeLLM("never")
        executor = LLMExecutor(llm, sleep=recording_sleep)

        with pytest.raises(NodeInputError, match="Please provide a user message"):
            await executor.run(_llm_node(userMessage="   "), {})

        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_invalid_images_dropped_before_call(self, recording_sleep):
        llm = FakeLLM("described")
        executor = LLMExecutor(llm, sleep=recording_sleep)

        await executor.run(
            _llm_node(userMessage="describe", images=["https://x/a.png", "short"]),
            {},
        )

        assert llm.calls[0]["images"] == ["https://x/a.png"]

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, sleeps, recording_sleep):
        error = RemoteCallError("503 Service Unavailable")
        llm = FakeLLM(error, error, error, "finally")
        executor = LLMExecutor(llm, policy=RetryPolicy(), sleep=recording_sleep)

        outcome = await executor.run(_llm_node(userMessage="hi"), {})

        assert outcome.updates["output"] == "finally"
        assert outcome.attempts == 4
        assert sleeps == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_non_retryable_error_wrapped_with_attempts(self, sleeps, recording_sleep):
        llm = FakeLLM(RemoteCallError("400 Bad Request: invalid api key"))
        executor = LLMExecutor(llm, policy=RetryPolicy(), sleep=recording_sleep)

        with pytest.raises(RemoteExecutionError) as exc_info:
            await executor.run(_llm_node(userMessage="hi"), {})

        assert exc_info.value.attempts == 1
        assert "invalid api key" in str(exc_info.value)
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_unconfigured_capability(self):
        executor = LLMExecutor(None, policy=RetryPolicy())

        with pytest.raises(ExecutorError, match="not configured"):
            await executor.run(_llm_node(userMessage="hi"), {})

    def test_input_updates_relay_connected_values(self):
        executor = LLMExecutor(None, policy=RetryPolicy())

        updates = executor.input_updates(
            {"user_message": "from text node", "system_prompt": None, "images": []}
        )

        assert updates == {"user_message": "from text node"}

    def test_ledger_inputs_summary(self):
        executor = LLMExecutor(None, policy=RetryPolicy())
        node = _llm_node(userMessage="hi", images=["https://x/a.png"])

        assert executor.ledger_inputs(node.data) == {
            "model": "gemini-1.5-flash",
            "systemPrompt": None,
            "userMessage": "hi",
            "imagesCount": 1,
        }
