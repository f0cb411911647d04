"""Scripted LLM adapters, a recording tracer and agent builders for tests."""

import itertools
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from ucp_agent.acp_client import AcpClient
from ucp_agent.agent import ShoppingAgent
from ucp_agent.llm_types import (
    ChatMessage,
    LlmAdapter,
    LlmResponse,
    LlmStreamChunk,
    LlmUsage,
    StreamChunkType,
    StreamingLlmAdapter,
    ToolCall,
    ToolDefinition,
)
from ucp_agent.ucp_client import UcpClient

from merchants import ACP_API_KEY, ACP_URL

_ids = itertools.count(1)

Step = Union[LlmResponse, Callable[[List[ChatMessage]], LlmResponse]]


def call(name: str, /, call_id: Optional[str] = None, **arguments: Any) -> ToolCall:
    return ToolCall(id=call_id or f"call_{next(_ids)}", name=name, arguments=arguments)


def act(*calls: ToolCall, content: str = "", usage: Optional[LlmUsage] = None) -> LlmResponse:
    """Response requesting one or more tool calls."""
    return LlmResponse(content=content, tool_calls=list(calls), finish_reason="tool_calls", usage=usage)


def answer(text: str, usage: Optional[LlmUsage] = None) -> LlmResponse:
    return LlmResponse(content=text, finish_reason="stop", usage=usage)


class ScriptedLlm(LlmAdapter):
    """Replays responses in order; records what each call was given."""

    model_name = "scripted"

    def __init__(self, steps: List[Step], fallback: Optional[LlmResponse] = None):
        self._steps = list(steps)
        self._fallback = fallback or answer("Done.")
        self.calls: List[List[ChatMessage]] = []
        self.tools_seen: List[Optional[List[ToolDefinition]]] = []

    def _next(self, messages: List[ChatMessage]) -> LlmResponse:
        self.calls.append(list(messages))
        if not self._steps:
            return self._fallback
        step = self._steps.pop(0)
        return step(messages) if callable(step) else step

    async def chat(self, messages, tools=None):
        self.tools_seen.append(tools)
        return self._next(messages)


class LoopingLlm(LlmAdapter):
    """Requests the same tool forever."""

    model_name = "looping"

    def __init__(self, tool_name: str = "view_cart"):
        self.tool_name = tool_name
        self.call_count = 0

    async def chat(self, messages, tools=None):
        self.call_count += 1
        return act(call(self.tool_name))


class FailingLlm(LlmAdapter):
    model_name = "failing"

    def __init__(self, error: Exception = None):
        self.error = error or RuntimeError("provider unavailable")

    async def chat(self, messages, tools=None):
        raise self.error


class ScriptedStreamingLlm(StreamingLlmAdapter, ScriptedLlm):
    """Streams each scripted response: word deltas, completed tool calls, DONE."""

    model_name = "scripted-stream"

    def __init__(self, steps: List[Step], fail_after_text: bool = False):
        ScriptedLlm.__init__(self, steps)
        self.fail_after_text = fail_after_text

    async def chat_stream(self, messages, tools=None):
        response = self._next(messages)
        for i, word in enumerate(response.content.split(" ") if response.content else []):
            yield LlmStreamChunk(type=StreamChunkType.TEXT_DELTA, text=word if i == 0 else f" {word}")
        if self.fail_after_text:
            raise RuntimeError("stream interrupted")
        for tc in response.tool_calls:
            yield LlmStreamChunk(type=StreamChunkType.TOOL_CALL_START, tool_call_id=tc.id, tool_name=tc.name)
            yield LlmStreamChunk(type=StreamChunkType.TOOL_CALL_COMPLETE, tool_call=tc)
        yield LlmStreamChunk(type=StreamChunkType.DONE, response=response)


class RecordingSpan:
    def __init__(self, name: str, attributes: Optional[Dict[str, Any]]):
        self.name = name
        self.attributes = attributes or {}
        self.ended = False

    def end(self) -> None:
        self.ended = True


class RecordingTracer:
    def __init__(self):
        self.spans: List[RecordingSpan] = []

    def start_span(self, name, attributes=None):
        span = RecordingSpan(name, attributes)
        self.spans.append(span)
        return span

    def named(self, name: str) -> List[RecordingSpan]:
        return [s for s in self.spans if s.name == name]


def ucp_agent_for(app, llm: LlmAdapter, **kwargs: Any) -> ShoppingAgent:
    """ShoppingAgent whose UCP client is wired to an in-process merchant app."""
    return ShoppingAgent(
        llm=llm,
        ucp_client=UcpClient(transport=httpx.ASGITransport(app=app)),
        **kwargs,
    )


def acp_agent_for(acp_app, llm: LlmAdapter, ucp_app=None, api_key: str = ACP_API_KEY, **kwargs: Any) -> ShoppingAgent:
    """ShoppingAgent with an ACP client; UCP discovery hits ucp_app (or the ACP app, which has no profile)."""
    return ShoppingAgent(
        llm=llm,
        ucp_client=UcpClient(transport=httpx.ASGITransport(app=ucp_app or acp_app)),
        acp_client=AcpClient(ACP_URL, api_key, transport=httpx.ASGITransport(app=acp_app)),
        **kwargs,
    )


def tool_outputs(result, name: str) -> List[Any]:
    return [s.tool_output for s in result.steps if s.type.value == "tool_result" and s.tool_name == name]