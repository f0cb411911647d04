"""
Agent observability: structured log events, tracer spans and usage totals.

Everything here is optional for the agent's correctness:
  - on_log callback receives AgentLogEvent objects (also mirrored to the
    `ucp_agent.agent` Python logger)
  - tracer is any object with start_span(name, attributes) returning a span
    with end(); OpenTelemetry tracers can be wrapped to fit
  - UsageTracker accumulates token counts, call counts and latencies
"""

import logging
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel, Field

from ucp_agent.llm_types import LlmUsage
from ucp_agent.logger import get_logger
from ucp_agent.schemas import AgentUsageSummary, now_ms

logger = get_logger("agent")

SpanAttributes = Dict[str, Union[str, int, float, bool]]

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class AgentLogEvent(BaseModel):
    level: str = Field(..., description="debug | info | warning | error")
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int = Field(default_factory=now_ms)


# =============================================================================
# TRACING
# =============================================================================

@runtime_checkable
class AgentSpan(Protocol):
    """Span handle returned by a tracer."""

    def end(self) -> None: ...


@runtime_checkable
class AgentTracer(Protocol):
    """Minimal tracer interface (OpenTelemetry-compatible in shape)."""

    def start_span(self, name: str, attributes: Optional[SpanAttributes] = None) -> AgentSpan: ...


class AgentObserver:
    """Routes log events and spans for one agent instance."""

    def __init__(
        self,
        on_log: Optional[Callable[[AgentLogEvent], None]] = None,
        tracer: Optional[AgentTracer] = None,
    ):
        self.on_log = on_log
        self.tracer = tracer

    def log(self, level: str, message: str, **data: Any) -> AgentLogEvent:
        event = AgentLogEvent(level=level, message=message, data=data)
        logger.log(_LEVELS.get(level, logging.INFO), "%s %s", message, data if data else "")
        if self.on_log is not None:
            self.on_log(event)
        return event

    @contextmanager
    def span(self, name: str, attributes: Optional[SpanAttributes] = None) -> Iterator[Optional[AgentSpan]]:
        """Open a span if a tracer is set; always ended on exit."""
        span = self.tracer.start_span(name, attributes) if self.tracer is not None else None
        try:
            yield span
        finally:
            if span is not None:
                span.end()


# =============================================================================
# USAGE
# =============================================================================

class UsageTracker:
    """Per-run token, call-count and latency accumulator."""

    def __init__(self):
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.total_tokens = 0
        self.llm_calls = 0
        self.tool_calls = 0
        self.tool_call_latency: Dict[str, List[float]] = defaultdict(list)
        self._started = time.perf_counter()

    def record_llm_call(self, usage: Optional[LlmUsage]) -> None:
        self.llm_calls += 1
        if usage is not None:
            self.prompt_tokens += usage.prompt_tokens
            self.completion_tokens += usage.completion_tokens
            self.total_tokens += usage.total_tokens

    def record_tool_call(self, tool_name: str, latency_ms: float) -> None:
        self.tool_calls += 1
        self.tool_call_latency[tool_name].append(latency_ms)

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._started) * 1000

    def summary(self) -> AgentUsageSummary:
        return AgentUsageSummary(
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
            total_tokens=self.total_tokens,
            llm_calls=self.llm_calls,
            tool_calls=self.tool_calls,
            tool_call_latency={name: list(values) for name, values in self.tool_call_latency.items()},
            total_latency_ms=round(self.elapsed_ms(), 3),
        )
