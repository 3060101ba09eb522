from typing import Dict, Any, List, Optional, Union
import asyncio
import json
import time
import uuid

import structlog
from langchain_core.messages import ToolMessage

from teto_agent.domain.models.conversation_state import Ok, Degraded
from teto_agent.domain.models.errors import ToolLookupError
from teto_agent.infrastructure.observability.logging import agent_logger, metrics
from .tool_registry import ToolRegistry
from .tool_validator import ToolParameterValidator

logger = structlog.get_logger(__name__)

ToolOutcome = Union[Ok, Degraded]


class ToolDispatcher:
    """Executes model-requested tool calls.

    Dispatch never raises: every failure is folded into a degraded outcome
    whose text is handed back to the model as the tool result.
    """

    def __init__(self, registry: ToolRegistry, validator: Optional[ToolParameterValidator] = None):
        self.registry = registry
        self.validator = validator or ToolParameterValidator()

    async def execute(self, name: str, args_json: Union[str, Dict[str, Any], None]) -> str:
        """Run a tool and return the text the model should see"""

        outcome = await self.dispatch(name, args_json)
        return outcome.value

    async def dispatch(self, name: str, args: Union[str, Dict[str, Any], None]) -> ToolOutcome:
        """Run a tool and classify the result"""

        started = time.perf_counter()
        outcome = await self._dispatch(name, args)
        duration_ms = (time.perf_counter() - started) * 1000

        agent_logger.log_tool_call(
            tool_name=name,
            arguments=args,
            result_preview=outcome.value,
            duration_ms=duration_ms,
            outcome=outcome.status.value,
            reason=outcome.reason if isinstance(outcome, Degraded) else None,
        )
        metrics.increment_counter("tool_calls", tags={"tool": name, "outcome": outcome.status.value})
        return outcome

    async def _dispatch(self, name: str, args: Union[str, Dict[str, Any], None]) -> ToolOutcome:
        tool = self.registry.get_tool(name)
        if tool is None:
            return Degraded(value=f"Unknown tool: {name}", reason="unknown_tool")

        parsed = self._parse_arguments(args)
        if isinstance(parsed, Degraded):
            return parsed.model_copy(update={"value": f"Invalid arguments for tool {name}: {parsed.value}"})

        validation = self.validator.validate_tool_call(self.registry.get_input_schema(name), parsed)
        if not validation.is_valid:
            return Degraded(
                value=f"Invalid arguments for tool {name}: {'; '.join(validation.errors)}",
                reason="invalid_arguments",
            )

        try:
            result = await tool.ainvoke(parsed)
        except ToolLookupError as e:
            return Degraded(value=e.fallback_text, reason="lookup_failed")
        except Exception as e:
            logger.exception("Tool execution failed", tool_name=name)
            return Degraded(value=f"Tool {name} failed: {e}", reason="tool_error")

        return Ok(value=result if isinstance(result, str) else json.dumps(result, default=str))

    @staticmethod
    def _parse_arguments(args: Union[str, Dict[str, Any], None]) -> Union[Dict[str, Any], Degraded]:
        if args is None:
            return {}
        if isinstance(args, dict):
            return args
        if not args.strip():
            return {}

        try:
            return json.loads(args)
        except json.JSONDecodeError as e:
            return Degraded(value=f"arguments are not valid JSON ({e.msg})", reason="invalid_arguments")

    async def execute_calls(
        self,
        tool_calls: List[Dict[str, Any]],
        invalid_tool_calls: Optional[List[Dict[str, Any]]] = None
    ) -> List[ToolMessage]:
        """Execute every call of one assistant message.

        Calls run concurrently; results come back in the order the calls were
        emitted, one ToolMessage per call id.
        """

        requests = [(call["id"], call["name"], call.get("args")) for call in tool_calls]
        requests += [
            (call.get("id") or "", call.get("name") or "", call.get("args"))
            for call in invalid_tool_calls or []
        ]

        outcomes = await asyncio.gather(
            *(self.dispatch(name, args) for _, name, args in requests)
        )

        return [
            ToolMessage(
                id=str(uuid.uuid4()),
                content=outcome.value,
                tool_call_id=call_id,
                name=name,
                status="success" if isinstance(outcome, Ok) else "error",
            )
            for (call_id, name, _), outcome in zip(requests, outcomes)
        ]
