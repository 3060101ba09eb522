"""
Pytest Configuration and Fixtures.
Shared fixtures for all test modules.
"""

import inspect
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from langchain_core.messages import AIMessage, BaseMessage

from teto_agent.domain.context.gap_detector import GapDetector
from teto_agent.domain.context.prompt_builder import PromptBuilder, StaticSystemPromptProvider
from teto_agent.domain.context.state.state_manager import InMemorySessionStore
from teto_agent.domain.context.summarizer import Summarizer
from teto_agent.domain.llm.generation_client import Binding, GenerationClient
from teto_agent.domain.orchestration.core.workflow_executor import WorkflowExecutor
from teto_agent.domain.orchestration.modality_router import ModalityRouter
from teto_agent.domain.tool.lyrics_tool import LyricsService, create_lyrics_tool
from teto_agent.domain.tool.tool_executor import ToolDispatcher
from teto_agent.domain.tool.tool_registry import ToolRegistry
from teto_agent.infrastructure.backend.api_client import LyricsRecord
from teto_agent.infrastructure.observability.logging import metrics

pytest_plugins = ("pytest_asyncio",)

PERSONA_PROMPT = "You are Kasane Teto, a cheerful chimera singer."
SUMMARY_TEXT = "The group talked about French bread and drills."
MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
START_MS = 1_700_000_000_000


# ==================== Fakes ====================

class FakeGenerationClient(GenerationClient):
    """Scripted generation client that records every call.

    Scripted items are returned in order per binding. An item may be an
    AIMessage, an exception to raise, or a callable receiving the prompt
    (sync or async). Unscripted text/vision calls answer "reply <n>", where
    n counts all calls so far; unscripted summary calls answer SUMMARY_TEXT.
    """

    def __init__(self):
        self.calls: List[Tuple[Binding, List[BaseMessage]]] = []
        self.scripts: Dict[Binding, List[Any]] = {binding: [] for binding in Binding}

    def script(self, binding: Binding, *items: Any) -> None:
        self.scripts[binding].extend(items)

    @property
    def bindings(self) -> List[Binding]:
        return [binding for binding, _ in self.calls]

    def prompts(self, binding: Binding) -> List[List[BaseMessage]]:
        return [messages for used, messages in self.calls if used is binding]

    async def generate(self, binding: Binding, messages: List[BaseMessage]) -> AIMessage:
        self.calls.append((binding, list(messages)))

        queue = self.scripts[binding]
        if queue:
            item = queue.pop(0)
            if isinstance(item, BaseException):
                raise item
            if callable(item):
                item = item(messages)
                if inspect.isawaitable(item):
                    item = await item
            return item

        if binding is Binding.SUMMARY:
            return AIMessage(content=SUMMARY_TEXT)
        return AIMessage(content=f"reply {len(self.calls)}")


class FakeClock:
    """Epoch-millis clock moved by hand"""

    def __init__(self, now_ms: int = START_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeLyricsSource:
    def __init__(self, records: Optional[Dict[Tuple[str, str], LyricsRecord]] = None, error: Optional[Exception] = None):
        self.records = records or {}
        self.error = error
        self.calls: List[Tuple[str, str]] = []

    async def get_lyrics(self, artist: str, title: str) -> Optional[LyricsRecord]:
        self.calls.append((artist, title))
        if self.error is not None:
            raise self.error
        return self.records.get((artist.lower(), title.lower()))


# ==================== Fixtures ====================

@pytest.fixture(autouse=True)
def _reset_metrics():
    """Module-level metrics persist across tests"""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def fake_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def lyrics_source() -> FakeLyricsSource:
    return FakeLyricsSource({
        ("kasane teto", "fukkireta"): LyricsRecord(
            artist="Kasane Teto",
            title="Fukkireta",
            lyrics="Ievan polkka...",
        ),
    })


@pytest.fixture
def registry(lyrics_source) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_tool(create_lyrics_tool(LyricsService(lyrics_source)))
    return registry


@pytest.fixture
def dispatcher(registry) -> ToolDispatcher:
    return ToolDispatcher(registry)


@pytest.fixture
def prompt_builder() -> PromptBuilder:
    return PromptBuilder(StaticSystemPromptProvider(PERSONA_PROMPT), max_words=150)


@pytest.fixture
def make_executor(store, fake_client, prompt_builder, dispatcher, clock) -> Callable[..., WorkflowExecutor]:
    """Factory for executors sharing the test's store, client and clock"""

    def factory(**overrides) -> WorkflowExecutor:
        params = dict(
            store=store,
            prompt_builder=prompt_builder,
            modality_router=ModalityRouter(fake_client),
            dispatcher=dispatcher,
            summarizer=Summarizer(fake_client, keep=5, word_limit=200),
            gap_detector=GapDetector(2 * HOUR_MS),
            summarization_threshold=16,
            max_tool_rounds=5,
            turn_timeout_seconds=None,
            clock=clock,
        )
        params.update(overrides)
        return WorkflowExecutor(**params)

    return factory


@pytest.fixture
def executor(make_executor) -> WorkflowExecutor:
    return make_executor()
