from enum import Enum
from typing import Awaitable, Callable, List

from langchain_core.messages import AIMessage, BaseMessage

from teto_agent.domain.llm.generation_client import GenerationClient


class Modality(str, Enum):
    """Generation path of a turn"""
    TEXT = "text"
    VISION = "vision"


MODALITY_NODES = {
    Modality.TEXT: "conversation",
    Modality.VISION: "vision",
}


class ModalityRouter:
    """Chooses the text or vision binding for a whole turn"""

    def __init__(self, client: GenerationClient):
        self.client = client

    @staticmethod
    def route(has_images: bool) -> Modality:
        return Modality.VISION if has_images else Modality.TEXT

    @staticmethod
    def node_for(modality: Modality) -> str:
        return MODALITY_NODES[modality]

    def binding_for(self, modality: Modality) -> Callable[[List[BaseMessage]], Awaitable[AIMessage]]:
        if modality is Modality.VISION:
            return self.client.invoke_vision
        return self.client.invoke_text
