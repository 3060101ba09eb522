"""
Tests for teto_agent.domain.context.prompt_builder module.
"""

import httpx
import pytest
from langchain_core.messages import HumanMessage, SystemMessage

from teto_agent.domain.context.prompt_builder import (
    BackendSystemPromptProvider, PromptBuilder, StaticSystemPromptProvider, refine_system_prompt
)
from teto_agent.domain.models.conversation_state import TurnState, UserContext
from teto_agent.domain.models.errors import SystemPromptUnavailableError
from teto_agent.infrastructure.backend.api_client import BackendApiClient


def backend_with(handler) -> BackendApiClient:
    return BackendApiClient("http://backend", api_key="secret", transport=httpx.MockTransport(handler))


class TestRefineSystemPrompt:
    def test_header_and_word_limit(self):
        refined = refine_system_prompt("Be Teto.", 150)

        assert refined == (
            "Message from: {username} (**INTIMACY**: {intimacy})\n\n"
            "Be Teto.\nKeep responses under 150 words"
        )


class TestPromptBuilder:
    """Tests for PromptBuilder"""

    @pytest.mark.asyncio
    async def test_without_summary(self):
        builder = PromptBuilder(StaticSystemPromptProvider("Be Teto."), max_words=100)
        state = TurnState(
            messages=[HumanMessage(id="h1", content="hi")],
            user_context=UserContext(username="bob", intimacy=42),
        )

        messages = await builder.build(state)

        assert len(messages) == 2
        assert messages[0].content == (
            "Message from: bob (**INTIMACY**: 42)\n\nBe Teto.\nKeep responses under 100 words"
        )
        assert messages[1].content == "hi"

    @pytest.mark.asyncio
    async def test_with_summary(self):
        builder = PromptBuilder(StaticSystemPromptProvider("Be Teto."))
        state = TurnState(messages=[HumanMessage(id="h1", content="hi")], summary="Bread talk.")

        messages = await builder.build(state)

        assert [type(m) for m in messages] == [SystemMessage, SystemMessage, HumanMessage]
        assert messages[1].content == "Summary of conversation earlier: Bread talk."


class TestBackendSystemPromptProvider:
    """Tests for BackendSystemPromptProvider"""

    @pytest.mark.asyncio
    async def test_fetches_and_caches(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"prompt": "Be Teto."})

        provider = BackendSystemPromptProvider(backend_with(handler))

        assert await provider.get() == "Be Teto."
        assert await provider.get() == "Be Teto."
        assert len(requests) == 1
        assert requests[0].url.path == "/api/system-prompt"
        assert requests[0].headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_missing_prompt(self):
        provider = BackendSystemPromptProvider(backend_with(lambda request: httpx.Response(404)))

        with pytest.raises(SystemPromptUnavailableError, match="no system prompt found"):
            await provider.get()

    @pytest.mark.asyncio
    async def test_backend_failure(self):
        provider = BackendSystemPromptProvider(backend_with(lambda request: httpx.Response(503)))

        with pytest.raises(SystemPromptUnavailableError):
            await provider.get()
