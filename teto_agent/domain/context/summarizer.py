"""
Conversation summarization.

Bounds the live history of a thread: the model condenses the conversation
(plus any earlier summary) into a short text, and every message except the
most recent few is dropped from state.
"""

from typing import List
import uuid

import structlog
from langchain_core.messages import BaseMessage, HumanMessage, ToolMessage

from teto_agent.domain.llm.generation_client import GenerationClient
from teto_agent.domain.models.conversation_state import StatePatch, TurnState
from teto_agent.domain.models.errors import SummaryShapeError

logger = structlog.get_logger(__name__)


def build_summary_instruction(word_limit: int = 200) -> str:
    return (
        "Please summarize the following Discord group chat conversation in a concise way "
        "that preserves the key topics, decisions, and context. "
        "Note: This is a multi-participant group chat - avoid assuming direct conversation "
        "between any two people. "
        "Focus on information that would be relevant for continuing the conversation. "
        f"Keep it under {word_limit} words."
    )


def build_summary_extension_instruction(summary: str, word_limit: int = 200) -> str:
    return (
        f"Previous conversation summary: {summary}\n\n"
        "Create a new comprehensive summary that incorporates both the previous summary "
        "and the new messages above. "
        "This is a Discord group chat with multiple participants - summarize objectively "
        "without assuming personal interactions. "
        f"Keep the new summary under {word_limit} words and focus on the most important "
        "topics, decisions, and context needed for future conversation."
    )


class Summarizer:
    def __init__(self, client: GenerationClient, keep: int = 5, word_limit: int = 200):
        if keep < 1:
            raise ValueError("keep must be at least 1")
        self.client = client
        self.keep = keep
        self.word_limit = word_limit

    def build_prompt(self, state: TurnState) -> List[BaseMessage]:
        if state.summary:
            instruction = build_summary_extension_instruction(state.summary, self.word_limit)
        else:
            instruction = build_summary_instruction(self.word_limit)
        return [*state.messages, HumanMessage(id=str(uuid.uuid4()), content=instruction)]

    def prune_ids(self, messages: List[BaseMessage]) -> List[str]:
        """Ids of every message except the most recent `keep`.

        The kept tail never starts with a tool result: the cut moves back to
        the assistant message that issued the calls, so the tail may hold
        slightly more than `keep` messages.
        """
        cut = len(messages) - self.keep
        while cut > 0 and isinstance(messages[cut], ToolMessage):
            cut -= 1
        if cut <= 0:
            return []
        return [m.id for m in messages[:cut] if m.id]

    async def summarize(self, state: TurnState) -> StatePatch:
        """
        Condense the conversation and prune old messages.

        Raises:
            SummaryShapeError: the model did not answer with non-empty text
        """
        response = await self.client.invoke_summary(self.build_prompt(state))

        content = response.content
        if not isinstance(content, str) or not content.strip():
            raise SummaryShapeError("Expected a string response from the summarization model")

        remove_ids = self.prune_ids(state.messages)
        logger.info(
            "Summarized conversation",
            extended=bool(state.summary),
            removed=len(remove_ids),
            kept=len(state.messages) - len(remove_ids),
        )
        return StatePatch(summary=content.strip(), remove_ids=remove_ids)
