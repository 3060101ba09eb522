from typing import Awaitable, Callable, Dict, Literal, NamedTuple, Optional
import asyncio
import time

import structlog
from langchain_core.messages import AIMessage

from teto_agent.domain.context.gap_detector import GapDetector
from teto_agent.domain.context.prompt_builder import PromptBuilder
from teto_agent.domain.context.state.state_manager import SessionStore
from teto_agent.domain.context.summarizer import Summarizer
from teto_agent.domain.models.conversation_state import (
    StatePatch, TurnRequest, TurnState, message_text
)
from teto_agent.domain.models.errors import (
    TetoAgentError, ToolLoopLimitError, TurnTimeoutError
)
from teto_agent.domain.orchestration.modality_router import Modality, ModalityRouter
from teto_agent.domain.tool.tool_executor import ToolDispatcher
from teto_agent.infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)

START = "router"
END = "__end__"


def epoch_millis() -> int:
    return int(time.time() * 1000)


class TurnContext(NamedTuple):
    """Facts fixed for the whole turn"""
    thread_id: str
    now_ms: int


NodeRun = Callable[[TurnState, TurnContext], Awaitable[Optional[StatePatch]]]
NodeRoute = Callable[[TurnState, TurnContext], str]


class Node(NamedTuple):
    run: NodeRun
    route: NodeRoute


class WorkflowExecutor:
    """Runs one conversation turn as a finite state machine.

    Nodes run strictly one after another. Each returns a patch that is
    folded into an immutable working state; the thread's stored conversation
    is replaced only when the machine reaches END, so a failed turn leaves
    no trace.
    """

    def __init__(
        self,
        store: SessionStore,
        prompt_builder: PromptBuilder,
        modality_router: ModalityRouter,
        dispatcher: ToolDispatcher,
        summarizer: Summarizer,
        gap_detector: GapDetector,
        summarization_threshold: int = 16,
        max_tool_rounds: int = 5,
        turn_timeout_seconds: Optional[float] = None,
        clock: Callable[[], int] = epoch_millis,
    ):
        self.store = store
        self.prompt_builder = prompt_builder
        self.modality_router = modality_router
        self.dispatcher = dispatcher
        self.summarizer = summarizer
        self.gap_detector = gap_detector
        self.summarization_threshold = summarization_threshold
        self.max_tool_rounds = max_tool_rounds
        self.turn_timeout_seconds = turn_timeout_seconds
        self.clock = clock
        self.nodes = self._create_workflow()

    def _create_workflow(self) -> Dict[str, Node]:
        """Node table: name -> (run, route)"""

        return {
            "router": Node(self.router_node, self.route_from_router),
            "delete_messages": Node(self.delete_messages_node, lambda state, turn: "router"),
            "conversation": Node(self.conversation_node, self.route_from_model),
            "vision": Node(self.vision_node, self.route_from_model),
            "tools": Node(self.tool_node, self.route_after_tools),
            "summarize_conversation": Node(self.summarize_node, lambda state, turn: END),
        }

    async def run_turn(self, request: TurnRequest) -> str:
        """Process one user message and return the persona's reply"""

        with structlog.contextvars.bound_contextvars(thread_id=request.thread_id):
            started = time.perf_counter()

            async with self.store.session(request.thread_id):
                if self.turn_timeout_seconds is None:
                    reply = await self._run_locked(request)
                else:
                    try:
                        reply = await asyncio.wait_for(
                            self._run_locked(request), timeout=self.turn_timeout_seconds
                        )
                    except asyncio.TimeoutError as e:
                        logger.error("Turn timed out", timeout_seconds=self.turn_timeout_seconds)
                        raise TurnTimeoutError(
                            f"Turn on thread {request.thread_id} exceeded {self.turn_timeout_seconds}s"
                        ) from e

            metrics.record_latency(
                "turn",
                (time.perf_counter() - started) * 1000,
                tags={"modality": ModalityRouter.route(request.has_images).value},
            )
            return reply

    async def _run_locked(self, request: TurnRequest) -> str:
        conversation = await self.store.load(request.thread_id)
        turn = TurnContext(thread_id=request.thread_id, now_ms=self.clock())

        state = await self.execute(TurnState.start(conversation, request), turn)

        final = state.last_ai_message()
        if final is None:
            raise TetoAgentError("Turn finished without an assistant message")

        state = state.apply(StatePatch(last_message_timestamp=turn.now_ms))
        await self.store.commit(request.thread_id, state.to_conversation(request.thread_id))

        logger.info(
            "Turn completed",
            messages=len(state.messages),
            has_summary=bool(state.summary),
            tool_rounds=state.tool_rounds,
        )
        return message_text(final)

    async def execute(self, state: TurnState, turn: TurnContext) -> TurnState:
        """Drive the node table from START to END"""

        current = START
        while current != END:
            node = self.nodes[current]

            patch = await node.run(state, turn)
            if patch is not None:
                state = state.apply(patch)

            next_node = node.route(state, turn)
            agent_logger.log_node_transition(
                turn.thread_id,
                current,
                next_node,
                messages=len(state.messages),
                tool_rounds=state.tool_rounds,
                has_summary=bool(state.summary),
            )
            current = next_node

        return state

    async def router_node(self, state: TurnState, turn: TurnContext) -> Optional[StatePatch]:
        """Entry point; all decisions happen in its route"""

        return None

    def route_from_router(self, state: TurnState, turn: TurnContext) -> str:
        """Reset stale threads, otherwise pick the modality node"""

        if self.gap_detector.is_stale(state, turn.now_ms):
            return "delete_messages"
        return self._modality_node(state)

    async def delete_messages_node(self, state: TurnState, turn: TurnContext) -> StatePatch:
        """Start fresh: keep only the message that just arrived"""

        agent_logger.log_context_change(
            turn.thread_id,
            "gap_reset",
            elapsed_ms=self.gap_detector.elapsed_ms(state, turn.now_ms),
            dropped=len(state.messages) - 1,
        )
        metrics.increment_counter("gap_resets")
        return self.gap_detector.reset(state, turn.now_ms)

    async def conversation_node(self, state: TurnState, turn: TurnContext) -> StatePatch:
        return await self._generate(state, Modality.TEXT)

    async def vision_node(self, state: TurnState, turn: TurnContext) -> StatePatch:
        return await self._generate(state, Modality.VISION)

    async def _generate(self, state: TurnState, modality: Modality) -> StatePatch:
        prompt = await self.prompt_builder.build(state)
        response = await self.modality_router.binding_for(modality)(prompt)
        return StatePatch(append=[response])

    def route_from_model(self, state: TurnState, turn: TurnContext) -> Literal["tools", "summarize_conversation", "__end__"]:
        """Inspect the assistant message that was just appended"""

        last_message = state.last_message
        if isinstance(last_message, AIMessage) and (last_message.tool_calls or last_message.invalid_tool_calls):
            if state.tool_rounds >= self.max_tool_rounds:
                raise ToolLoopLimitError(
                    f"Model requested tools after {state.tool_rounds} rounds"
                )
            return "tools"

        if len(state.messages) > self.summarization_threshold:
            return "summarize_conversation"

        return END

    async def tool_node(self, state: TurnState, turn: TurnContext) -> StatePatch:
        """Answer every tool call of the last assistant message"""

        last_message = state.last_message
        results = await self.dispatcher.execute_calls(
            last_message.tool_calls, last_message.invalid_tool_calls
        )
        return StatePatch(append=results, tool_rounds=state.tool_rounds + 1)

    def route_after_tools(self, state: TurnState, turn: TurnContext) -> str:
        """Follow-up generation always uses the turn's modality"""

        return self._modality_node(state)

    async def summarize_node(self, state: TurnState, turn: TurnContext) -> StatePatch:
        patch = await self.summarizer.summarize(state)
        agent_logger.log_context_change(turn.thread_id, "summarized", removed=len(patch.remove_ids))
        metrics.increment_counter("summarizations")
        return patch

    def _modality_node(self, state: TurnState) -> str:
        return ModalityRouter.node_for(ModalityRouter.route(state.has_images))
