"""
Chat service: the caller-facing boundary of the conversation engine.

Screens the message, prepares attachments, runs the turn and maps every
failure onto a reply that is safe to show in the chat.
"""

from typing import List, Optional, Union

import structlog
from pydantic import BaseModel, Field

from teto_agent.domain.attachments.attachment_processor import (
    AttachmentPreprocessor, RawAttachment, image_parts
)
from teto_agent.domain.context.gap_detector import GapDetector
from teto_agent.domain.context.memory.cache_memory_store import CacheMemoryStore
from teto_agent.domain.context.prompt_builder import BackendSystemPromptProvider, PromptBuilder
from teto_agent.domain.context.state.state_manager import InMemorySessionStore
from teto_agent.domain.context.summarizer import Summarizer
from teto_agent.domain.guardrails.injection_filter import (
    PROMPT_INJECTION_FALLBACK_MESSAGE, PROMPT_INJECTION_MESSAGE, contains_injection
)
from teto_agent.domain.llm.generation_client import create_generation_client
from teto_agent.domain.models.conversation_state import (
    Degraded, Fatal, Ok, TurnRequest, UserContext
)
from teto_agent.domain.orchestration.core.workflow_executor import WorkflowExecutor
from teto_agent.domain.orchestration.modality_router import ModalityRouter
from teto_agent.domain.tool.lyrics_tool import LyricsService, create_lyrics_tool
from teto_agent.domain.tool.tool_executor import ToolDispatcher
from teto_agent.domain.tool.tool_registry import ToolRegistry
from teto_agent.infrastructure.backend.api_client import BackendApiClient
from teto_agent.infrastructure.config.settings import Settings
from teto_agent.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)

GENERIC_ERROR_MESSAGE = (
    "Sorry, I encountered an error while processing your message. Please try again later."
)


class ChatRequest(BaseModel):
    """A user message addressed to the persona"""
    thread_id: str = Field(min_length=1)
    message: str
    username: str = ""
    intimacy: int = 0
    attachments: List[RawAttachment] = Field(default_factory=list)


ChatOutcome = Union[Ok, Degraded, Fatal]


class ChatService:
    def __init__(
        self,
        executor: WorkflowExecutor,
        attachments: Optional[AttachmentPreprocessor] = None,
        backend: Optional[BackendApiClient] = None,
    ):
        self.executor = executor
        self.attachments = attachments or AttachmentPreprocessor()
        self.backend = backend

    async def respond(self, request: ChatRequest) -> ChatOutcome:
        """
        Answer one chat message.

        Returns:
            Ok with the persona's reply, Degraded with the static reply when an
            injection attempt could not be answered in character, or Fatal with
            the generic error reply
        """
        log = logger.bind(thread_id=request.thread_id, username=request.username)

        if contains_injection(request.message):
            log.warning("Prompt injection detected", message=request.message)
            metrics.increment_counter("injection_attempts")
            return await self._tease(request)

        try:
            parts = []
            if request.attachments:
                attachment_outcome = await self.attachments.process_images(request.attachments)
                if isinstance(attachment_outcome, Degraded):
                    log.warning("Continuing without images", reason=attachment_outcome.reason)
                parts = image_parts(attachment_outcome)

            reply = await self.executor.run_turn(TurnRequest(
                thread_id=request.thread_id,
                user_text=request.message,
                has_images=len(parts) > 0,
                image_parts=parts,
                user_context=UserContext(username=request.username, intimacy=request.intimacy),
            ))
        except Exception as e:
            log.exception("Error in chat turn", error_type=type(e).__name__)
            metrics.increment_counter("failed_turns", tags={"error": type(e).__name__})
            return Fatal(error=e, value=GENERIC_ERROR_MESSAGE)

        log.info("Response from model", response_length=len(reply))
        return Ok(value=reply)

    async def _tease(self, request: ChatRequest) -> ChatOutcome:
        """Let the persona react to the attempt, intimacy forced to zero"""

        try:
            reply = await self.executor.run_turn(TurnRequest(
                thread_id=request.thread_id,
                user_text=PROMPT_INJECTION_MESSAGE,
                user_context=UserContext(username=request.username, intimacy=0),
            ))
        except Exception as e:
            logger.exception("Teasing reply failed", thread_id=request.thread_id)
            return Degraded(value=PROMPT_INJECTION_FALLBACK_MESSAGE, reason=str(e) or type(e).__name__)

        return Ok(value=reply)

    async def aclose(self) -> None:
        if self.backend is not None:
            await self.backend.aclose()


def build_chat_service(settings: Settings) -> ChatService:
    """Wire the engine and its collaborators from settings"""

    backend = BackendApiClient(
        base_url=settings.api_base_url,
        api_key=settings.bot_api_key,
        timeout=settings.http_timeout_seconds,
    )

    registry = ToolRegistry()
    lyrics = LyricsService(
        backend,
        cache=CacheMemoryStore(namespace="lyrics"),
        ttl=settings.lyrics_cache_ttl,
    )
    registry.register_tool(create_lyrics_tool(lyrics))

    client = create_generation_client(settings, registry.get_tools())
    prompt_builder = PromptBuilder(
        BackendSystemPromptProvider(
            backend,
            cache=CacheMemoryStore(namespace="prompt"),
            ttl=settings.system_prompt_cache_ttl,
        ),
        max_words=settings.max_words,
    )

    executor = WorkflowExecutor(
        store=InMemorySessionStore(),
        prompt_builder=prompt_builder,
        modality_router=ModalityRouter(client),
        dispatcher=ToolDispatcher(registry),
        summarizer=Summarizer(
            client,
            keep=settings.recent_messages_keep,
            word_limit=settings.summary_word_limit,
        ),
        gap_detector=GapDetector(settings.conversation_gap_threshold_ms),
        summarization_threshold=settings.summarization_threshold,
        max_tool_rounds=settings.max_tool_rounds,
        turn_timeout_seconds=settings.turn_timeout_seconds,
    )

    logger.info(
        "Chat service initialized",
        tools=[tool["name"] for tool in registry.list_tools()],
        summarization_threshold=settings.summarization_threshold,
        recent_messages_keep=settings.recent_messages_keep,
    )
    return ChatService(
        executor,
        attachments=AttachmentPreprocessor(timeout=settings.http_timeout_seconds),
        backend=backend,
    )
