from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List
import asyncio

from teto_agent.domain.models.conversation_state import Conversation


class SessionStore(ABC):
    """Owns conversation state per thread.

    A turn holds `session(thread_id)` around its load/commit pair so that
    turns on the same thread never interleave.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def session(self, thread_id: str) -> AsyncIterator[None]:
        """Hold the thread's lock for the duration of a turn"""

        lock = self._locks.setdefault(thread_id, asyncio.Lock())
        self._holders[thread_id] = self._holders.get(thread_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[thread_id] -= 1
            if self._holders[thread_id] == 0:
                del self._holders[thread_id]
                del self._locks[thread_id]

    @abstractmethod
    async def load(self, thread_id: str) -> Conversation:
        """Copy of the thread's state, or a fresh empty conversation"""
        pass

    @abstractmethod
    async def commit(self, thread_id: str, conversation: Conversation) -> None:
        """Replace the thread's state"""
        pass

    @abstractmethod
    async def clear(self, thread_id: str) -> None:
        pass

    @abstractmethod
    async def thread_ids(self) -> List[str]:
        pass


class InMemorySessionStore(SessionStore):
    """Process-lifetime session store"""

    def __init__(self):
        super().__init__()
        self.states: Dict[str, Conversation] = {}

    async def load(self, thread_id: str) -> Conversation:
        conversation = self.states.get(thread_id)
        if conversation is None:
            return Conversation(thread_id=thread_id)
        return conversation.model_copy(deep=True)

    async def commit(self, thread_id: str, conversation: Conversation) -> None:
        if conversation.thread_id != thread_id:
            raise ValueError(
                f"Conversation for {conversation.thread_id} committed under {thread_id}"
            )
        self.states[thread_id] = conversation.model_copy(deep=True)

    async def clear(self, thread_id: str) -> None:
        self.states.pop(thread_id, None)

    async def thread_ids(self) -> List[str]:
        return list(self.states.keys())
