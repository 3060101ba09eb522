"""Generation client: the chat models behind the conversation engine."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Sequence

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.runnables import Runnable
from langchain_core.tools import BaseTool
from langchain_openai import ChatOpenAI

from teto_agent.domain.models.errors import GenerationError
from teto_agent.infrastructure.config.settings import Settings

logger = structlog.get_logger(__name__)


class Binding(str, Enum):
    """Model bindings a turn can use"""
    TEXT = "text"
    VISION = "vision"
    SUMMARY = "summary"


class GenerationClient(ABC):
    """Abstract access to the generation models.

    Any failure of the underlying model surfaces as `GenerationError`.
    """

    async def invoke_text(self, messages: List[BaseMessage]) -> AIMessage:
        return await self._invoke(Binding.TEXT, messages)

    async def invoke_vision(self, messages: List[BaseMessage]) -> AIMessage:
        return await self._invoke(Binding.VISION, messages)

    async def invoke_summary(self, messages: List[BaseMessage]) -> AIMessage:
        return await self._invoke(Binding.SUMMARY, messages)

    async def _invoke(self, binding: Binding, messages: List[BaseMessage]) -> AIMessage:
        try:
            response = await self.generate(binding, messages)
        except GenerationError:
            raise
        except Exception as e:
            logger.error("Generation failed", binding=binding.value, error=str(e))
            raise GenerationError(binding.value, e) from e

        if not isinstance(response, AIMessage):
            raise GenerationError(
                binding.value,
                TypeError(f"expected AIMessage, got {type(response).__name__}"),
            )
        return response

    @abstractmethod
    async def generate(self, binding: Binding, messages: List[BaseMessage]) -> AIMessage:
        """
        Run one generation on the given binding.

        Args:
            binding: Which model to use
            messages: Fully built prompt

        Returns:
            The assistant message, possibly carrying tool calls
        """
        pass


class LangChainGenerationClient(GenerationClient):
    """Generation client over LangChain chat models"""

    def __init__(self, conversation_model: Runnable, vision_model: Runnable, summarization_model: Runnable):
        self.models = {
            Binding.TEXT: conversation_model,
            Binding.VISION: vision_model,
            Binding.SUMMARY: summarization_model,
        }

    async def generate(self, binding: Binding, messages: List[BaseMessage]) -> AIMessage:
        return await self.models[binding].ainvoke(messages)


def _chat_model(settings: Settings, model: str, temperature: float, max_tokens: int, **kwargs) -> BaseChatModel:
    return ChatOpenAI(
        model=model,
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        temperature=temperature,
        max_tokens=max_tokens,
        max_retries=settings.generation_max_retries,
        timeout=settings.generation_timeout_seconds,
        **kwargs,
    )


def create_generation_client(settings: Settings, tools: Sequence[BaseTool]) -> LangChainGenerationClient:
    """
    Build the three model bindings from settings.

    Text and vision share the same tool set so tool use behaves identically
    regardless of modality.
    """
    conversation = _chat_model(
        settings,
        settings.conversation_model,
        settings.conversation_temperature,
        settings.max_completion_tokens,
        top_p=1,
    )
    vision = _chat_model(
        settings,
        settings.vision_model,
        settings.vision_temperature,
        settings.max_completion_tokens,
        top_p=1,
    )
    summarization = _chat_model(
        settings,
        settings.summarization_model,
        settings.summarization_temperature,
        settings.summary_max_tokens,
    )

    if tools:
        conversation = conversation.bind_tools(list(tools))
        vision = vision.bind_tools(list(tools))

    logger.info(
        "Generation client initialized",
        conversation_model=settings.conversation_model,
        vision_model=settings.vision_model,
        summarization_model=settings.summarization_model,
        tools=[tool.name for tool in tools],
    )
    return LangChainGenerationClient(conversation, vision, summarization)
