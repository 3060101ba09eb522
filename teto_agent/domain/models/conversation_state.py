from typing import Dict, Any, List, Optional, Literal, Union
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum
import uuid

from langchain_core.messages import BaseMessage, HumanMessage, AIMessage


class OutcomeStatus(str, Enum):
    """Result classes for operations that may degrade instead of failing"""
    OK = "ok"
    DEGRADED = "degraded"
    FATAL = "fatal"


class Ok(BaseModel):
    """Operation succeeded"""
    status: Literal[OutcomeStatus.OK] = OutcomeStatus.OK
    value: Any = None


class Degraded(BaseModel):
    """Operation failed softly; `value` is the fallback to use instead"""
    status: Literal[OutcomeStatus.DEGRADED] = OutcomeStatus.DEGRADED
    value: Any = None
    reason: str = Field(description="Why the operation degraded")


class Fatal(BaseModel):
    """Operation failed; `value`, when set, is a non-revealing reply for the user"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: Literal[OutcomeStatus.FATAL] = OutcomeStatus.FATAL
    error: BaseException
    value: Any = None


Outcome = Union[Ok, Degraded, Fatal]


class UserContext(BaseModel):
    """Per-invocation facts about the speaker, never persisted"""
    username: str = Field(default="", description="Display name of the speaker")
    intimacy: int = Field(default=0, description="Relationship score with the persona")


class Conversation(BaseModel):
    """Persisted conversation state of one thread"""
    model_config = ConfigDict(frozen=True)

    thread_id: str = Field(description="Channel or direct conversation identifier")
    messages: List[BaseMessage] = Field(default_factory=list)
    summary: str = Field(default="", description="Condensation of every pruned message")
    last_message_timestamp: Optional[int] = Field(
        None, description="Epoch millis of the last committed turn"
    )


class TurnRequest(BaseModel):
    """One inbound user message"""
    thread_id: str
    user_text: str
    has_images: bool = False
    image_parts: List[Dict[str, Any]] = Field(default_factory=list)
    user_context: UserContext = Field(default_factory=UserContext)

    def to_human_message(self) -> HumanMessage:
        """Build the user message, multimodal when image parts are present"""
        if self.image_parts:
            content: Union[str, List[Any]] = [
                {"type": "text", "text": self.user_text},
                *self.image_parts,
            ]
        else:
            content = self.user_text
        return HumanMessage(id=str(uuid.uuid4()), content=content)


class StatePatch(BaseModel):
    """Changes produced by one workflow node.

    Removals are applied before appends.
    """
    append: List[BaseMessage] = Field(default_factory=list)
    remove_ids: List[str] = Field(default_factory=list)
    summary: Optional[str] = None
    last_message_timestamp: Optional[int] = None
    tool_rounds: Optional[int] = None


def ensure_message_id(message: BaseMessage) -> BaseMessage:
    if message.id:
        return message
    return message.model_copy(update={"id": str(uuid.uuid4())})


class TurnState(BaseModel):
    """Immutable working state of a turn in progress"""
    model_config = ConfigDict(frozen=True)

    messages: List[BaseMessage] = Field(default_factory=list)
    summary: str = ""
    last_message_timestamp: Optional[int] = None
    user_context: UserContext = Field(default_factory=UserContext)
    has_images: bool = False
    tool_rounds: int = Field(default=0, description="Tool rounds executed this turn")

    @classmethod
    def start(cls, conversation: Conversation, request: TurnRequest) -> "TurnState":
        """Working state for a turn: stored history plus the new user message"""
        return cls(
            messages=[*conversation.messages, request.to_human_message()],
            summary=conversation.summary,
            last_message_timestamp=conversation.last_message_timestamp,
            user_context=request.user_context,
            has_images=request.has_images,
        )

    @property
    def last_message(self) -> Optional[BaseMessage]:
        return self.messages[-1] if self.messages else None

    def last_ai_message(self) -> Optional[AIMessage]:
        for message in reversed(self.messages):
            if isinstance(message, AIMessage):
                return message
        return None

    def apply(self, patch: StatePatch) -> "TurnState":
        """Fold a patch into a new state"""
        messages = self.messages
        if patch.remove_ids:
            removed = set(patch.remove_ids)
            messages = [m for m in messages if m.id not in removed]
        if patch.append:
            messages = [*messages, *(ensure_message_id(m) for m in patch.append)]

        updates: Dict[str, Any] = {"messages": messages}
        if patch.summary is not None:
            updates["summary"] = patch.summary
        if patch.last_message_timestamp is not None:
            updates["last_message_timestamp"] = patch.last_message_timestamp
        if patch.tool_rounds is not None:
            updates["tool_rounds"] = patch.tool_rounds
        return self.model_copy(update=updates)

    def to_conversation(self, thread_id: str) -> Conversation:
        return Conversation(
            thread_id=thread_id,
            messages=list(self.messages),
            summary=self.summary,
            last_message_timestamp=self.last_message_timestamp,
        )


def message_text(message: BaseMessage) -> str:
    """Plain text of a message whose content may be a list of parts"""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)
