"""Persona prompt retrieval and per-turn prompt construction."""

from abc import ABC, abstractmethod
from typing import List, Optional
import uuid

import structlog
from langchain_core.messages import BaseMessage, SystemMessage
from langchain_core.prompts import ChatPromptTemplate

from teto_agent.domain.context.memory.cache_memory_store import CacheMemoryStore
from teto_agent.domain.models.conversation_state import TurnState
from teto_agent.domain.models.errors import BackendApiError, SystemPromptUnavailableError
from teto_agent.infrastructure.backend.api_client import BackendApiClient

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT_CACHE_KEY = "system_prompt"


class SystemPromptProvider(ABC):
    """Source of the persona template"""

    @abstractmethod
    async def get(self) -> str:
        """Return the raw persona template or raise SystemPromptUnavailableError"""
        pass


class StaticSystemPromptProvider(SystemPromptProvider):
    def __init__(self, template: str):
        self.template = template

    async def get(self) -> str:
        return self.template


class BackendSystemPromptProvider(SystemPromptProvider):
    """Persona template served by the backend, cached for a short TTL"""

    def __init__(self, api: BackendApiClient, cache: Optional[CacheMemoryStore] = None, ttl: int = 60):
        self.api = api
        self.cache = cache or CacheMemoryStore(namespace="prompt")
        self.ttl = ttl

    async def get(self) -> str:
        try:
            prompt = await self.cache.get_or_load(SYSTEM_PROMPT_CACHE_KEY, self.api.get_system_prompt, ttl=self.ttl)
        except BackendApiError as e:
            raise SystemPromptUnavailableError(f"Could not fetch system prompt: {e}") from e

        if not prompt:
            raise SystemPromptUnavailableError("no system prompt found")
        return prompt


def refine_system_prompt(prompt: str, max_words: int) -> str:
    """Add the word limit and the speaker header to a raw persona prompt"""
    limited = f"{prompt}\nKeep responses under {max_words} words"
    return f"Message from: {{username}} (**INTIMACY**: {{intimacy}})\n\n{limited}"


def build_summary_system_message(summary: str) -> SystemMessage:
    return SystemMessage(id=str(uuid.uuid4()), content=f"Summary of conversation earlier: {summary}")


class PromptBuilder:
    """Builds the message list sent to the text or vision model"""

    def __init__(self, provider: SystemPromptProvider, max_words: int = 150):
        self.provider = provider
        self.max_words = max_words

    async def build_template(self) -> ChatPromptTemplate:
        template = await self.provider.get()
        return ChatPromptTemplate.from_messages([
            ("system", refine_system_prompt(template, self.max_words)),
            ("placeholder", "{messages}"),
        ])

    async def build(self, state: TurnState) -> List[BaseMessage]:
        """System prompt, then the summary (when present), then live history"""
        messages: List[BaseMessage] = list(state.messages)
        if state.summary:
            messages = [build_summary_system_message(state.summary), *messages]

        template = await self.build_template()
        return await template.aformat_messages(
            messages=messages,
            username=state.user_context.username,
            intimacy=state.user_context.intimacy,
        )
