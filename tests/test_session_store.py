"""
Tests for teto_agent.domain.context.state.state_manager module.
"""

import asyncio

import pytest
from langchain_core.messages import HumanMessage

from teto_agent.domain.models.conversation_state import Conversation


class TestInMemorySessionStore:
    """Tests for InMemorySessionStore"""

    @pytest.mark.asyncio
    async def test_unknown_thread_loads_empty(self, store):
        conversation = await store.load("new")

        assert conversation == Conversation(thread_id="new")
        assert await store.thread_ids() == []

    @pytest.mark.asyncio
    async def test_commit_then_load(self, store):
        conversation = Conversation(
            thread_id="C1",
            messages=[HumanMessage(id="h1", content="hi")],
            summary="s",
            last_message_timestamp=5,
        )

        await store.commit("C1", conversation)

        assert await store.load("C1") == conversation
        assert await store.thread_ids() == ["C1"]

    @pytest.mark.asyncio
    async def test_loaded_copy_is_isolated(self, store):
        """Test that mutating a loaded copy does not touch the store"""
        await store.commit("C1", Conversation(thread_id="C1", messages=[HumanMessage(id="h1", content="hi")]))

        loaded = await store.load("C1")
        loaded.messages.append(HumanMessage(id="h2", content="sneaky"))

        assert len((await store.load("C1")).messages) == 1

    @pytest.mark.asyncio
    async def test_commit_rejects_mismatched_thread(self, store):
        with pytest.raises(ValueError):
            await store.commit("C1", Conversation(thread_id="C2"))

    @pytest.mark.asyncio
    async def test_clear(self, store):
        await store.commit("C1", Conversation(thread_id="C1"))

        await store.clear("C1")
        await store.clear("missing")

        assert await store.thread_ids() == []


class TestSessionLocking:
    """Tests for per-thread serialization"""

    @pytest.mark.asyncio
    async def test_same_thread_sessions_are_serialized(self, store):
        events = []

        async def hold(name):
            async with store.session("C1"):
                events.append(f"{name} start")
                await asyncio.sleep(0.01)
                events.append(f"{name} end")

        await asyncio.gather(hold("a"), hold("b"))

        assert events == ["a start", "a end", "b start", "b end"]

    @pytest.mark.asyncio
    async def test_different_threads_run_concurrently(self, store):
        events = []

        async def hold(thread_id):
            async with store.session(thread_id):
                events.append(f"{thread_id} start")
                await asyncio.sleep(0.01)
                events.append(f"{thread_id} end")

        await asyncio.gather(hold("C1"), hold("C2"))

        assert events[:2] == ["C1 start", "C2 start"]

    @pytest.mark.asyncio
    async def test_lock_released_after_error(self, store):
        with pytest.raises(RuntimeError):
            async with store.session("C1"):
                raise RuntimeError("turn failed")

        assert store._locks == {}
