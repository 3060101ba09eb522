import structlog
import logging
import sys
from dataclasses import dataclass
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "teto-agent",
    environment: Optional[str] = None
) -> None:
    """Configure structlog on top of stdlib logging"""

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_turn_context,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=environment or os.getenv("ENVIRONMENT", "development"),
        version=os.getenv("SERVICE_VERSION", "unknown")
    )


def add_turn_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Stamp events with the request trace and the thread being processed"""

    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())

    context = structlog.contextvars.get_contextvars()
    for key in ("trace_id", "thread_id"):
        if context.get(key) and key not in event_dict:
            event_dict[key] = context[key]

    return event_dict


class AgentLogger:
    """Structured events emitted while a turn runs"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_tool_call(
        self,
        tool_name: str,
        arguments: Any,
        result_preview: str,
        duration_ms: float,
        outcome: str,
        reason: Optional[str] = None
    ):
        """One tool invocation and how it ended (ok or degraded)"""

        log = self.logger.info if outcome == "ok" else self.logger.warning
        log(
            "tool_call",
            tool_name=tool_name,
            arguments=arguments,
            result_preview=result_preview[:200],
            duration_ms=round(duration_ms, 2),
            outcome=outcome,
            reason=reason
        )

    def log_node_transition(self, thread_id: str, from_node: str, to_node: str, **state_summary: Any):
        self.logger.debug(
            "node_transition",
            thread_id=thread_id,
            from_node=from_node,
            to_node=to_node,
            **state_summary
        )

    def log_context_change(self, thread_id: str, action: str, **details: Any):
        """History rewrites: gap resets and summarizations"""

        self.logger.info("context_change", thread_id=thread_id, action=action, **details)


agent_logger = AgentLogger("teto_agent")


@dataclass
class LatencyStats:
    count: int = 0
    total_ms: float = 0.0
    min_ms: float = float("inf")
    max_ms: float = 0.0

    def add(self, duration_ms: float) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

    def summary(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg_ms": self.total_ms / self.count if self.count else 0.0,
            "min_ms": self.min_ms if self.count else 0.0,
            "max_ms": self.max_ms,
        }


def _metric_key(name: str, tags: Optional[Dict[str, str]]) -> str:
    if not tags:
        return name
    labels = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
    return f"{name}{{{labels}}}"


class MetricsCollector:
    """In-process turn metrics, mirrored to the log stream"""

    def __init__(self):
        self.latencies: Dict[str, LatencyStats] = {}
        self.counters: Dict[str, int] = {}

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        key = _metric_key(operation, tags)
        self.latencies.setdefault(key, LatencyStats()).add(duration_ms)
        agent_logger.logger.debug("metric", metric_type="latency", key=key, duration_ms=round(duration_ms, 2))

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        key = _metric_key(name, tags)
        self.counters[key] = self.counters.get(key, 0) + value
        agent_logger.logger.debug("metric", metric_type="counter", key=key, value=value)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "latency": {key: stats.summary() for key, stats in self.latencies.items()},
            "counters": dict(self.counters),
        }

    def reset(self) -> None:
        self.latencies.clear()
        self.counters.clear()


metrics = MetricsCollector()
