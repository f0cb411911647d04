"""
OpenAI adapter: chat completions with function calling.

Translates the neutral ChatMessage / ToolDefinition representation to the
chat-completions wire format and back. Supports both the buffered call and
token streaming (text deltas plus incrementally assembled tool calls).

Usage:
    from ucp_agent import ShoppingAgent
    from ucp_agent.openai_adapter import OpenAIAdapter

    agent = ShoppingAgent(llm=OpenAIAdapter(model="gpt-4o-mini"))
"""

import json
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from ucp_agent.config import DEFAULT_OPENAI_MODEL
from ucp_agent.llm_types import (
    ChatMessage,
    ChatRole,
    LlmResponse,
    LlmStreamChunk,
    LlmUsage,
    StreamChunkType,
    StreamingLlmAdapter,
    ToolCall,
    ToolDefinition,
)
from ucp_agent.logger import get_logger

logger = get_logger("openai_adapter")

DEFAULT_SYSTEM_PROMPT = """You are a shopping agent that helps users discover and purchase products from online merchants.

You reach merchants through commerce protocols (UCP or ACP) using the tools provided. Your workflow:
1. Discover the merchant first
2. Browse or search the product catalog
3. Help the user find what they need and manage the cart
4. Complete checkout (shipping, then payment) when requested

Be transparent about prices. When you have enough information, use the tools; when you need clarification, ask the user."""

_FINISH_REASONS = {"stop": "stop", "tool_calls": "tool_calls", "length": "length"}


def _parse_arguments(raw: Optional[str], tool_name: str) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("openai_adapter: invalid JSON arguments for %s: %s", tool_name, raw[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _finish_reason(raw: Optional[str], has_tool_calls: bool) -> str:
    if raw in _FINISH_REASONS:
        return _FINISH_REASONS[raw]
    return "tool_calls" if has_tool_calls else "stop"


def _usage(raw: Any) -> Optional[LlmUsage]:
    if raw is None:
        return None
    return LlmUsage(
        prompt_tokens=raw.prompt_tokens or 0,
        completion_tokens=raw.completion_tokens or 0,
        total_tokens=raw.total_tokens or 0,
    )


class OpenAIAdapter(StreamingLlmAdapter):
    """OpenAI chat-completions adapter (buffered + streaming)."""

    def __init__(
        self,
        model: str = DEFAULT_OPENAI_MODEL,
        api_key: Optional[str] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model_name = model
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client or AsyncOpenAI(api_key=api_key)

    # ------------------------------------------------------------------
    # Format conversion
    # ------------------------------------------------------------------

    def to_openai_messages(self, messages: List[ChatMessage]) -> List[Dict[str, Any]]:
        result: List[Dict[str, Any]] = [{"role": "system", "content": self.system_prompt}]
        for msg in messages:
            if msg.role == ChatRole.ASSISTANT:
                entry: Dict[str, Any] = {"role": "assistant", "content": msg.content or None}
                if msg.tool_calls:
                    entry["tool_calls"] = [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                        }
                        for tc in msg.tool_calls
                    ]
                result.append(entry)
            elif msg.role == ChatRole.TOOL:
                result.append({
                    "role": "tool",
                    "content": msg.content,
                    "tool_call_id": msg.tool_call_id or "unknown",
                })
            else:
                result.append({"role": msg.role.value, "content": msg.content})
        return result

    @staticmethod
    def to_openai_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in tools
        ]

    def _request_kwargs(self, messages: List[ChatMessage], tools: Optional[List[ToolDefinition]]) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.model_name,
            "messages": self.to_openai_messages(messages),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            kwargs["tools"] = self.to_openai_tools(tools)
        return kwargs

    # ------------------------------------------------------------------
    # Buffered
    # ------------------------------------------------------------------

    async def chat(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolDefinition]] = None,
    ) -> LlmResponse:
        completion = await self.client.chat.completions.create(**self._request_kwargs(messages, tools))
        return self.parse_completion(completion)

    @staticmethod
    def parse_completion(completion: Any) -> LlmResponse:
        if not completion.choices:
            return LlmResponse(content="", finish_reason="error", usage=_usage(completion.usage))

        choice = completion.choices[0]
        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=_parse_arguments(tc.function.arguments, tc.function.name),
            )
            for tc in (choice.message.tool_calls or [])
            if tc.type == "function"
        ]
        return LlmResponse(
            content=choice.message.content or "",
            tool_calls=tool_calls,
            finish_reason=_finish_reason(choice.finish_reason, bool(tool_calls)),
            usage=_usage(completion.usage),
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def chat_stream(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolDefinition]] = None,
    ) -> AsyncIterator[LlmStreamChunk]:
        stream = await self.client.chat.completions.create(
            **self._request_kwargs(messages, tools),
            stream=True,
            stream_options={"include_usage": True},
        )

        text_parts: List[str] = []
        # index → {"id", "name", "arguments"}
        pending: Dict[int, Dict[str, str]] = {}
        finish_reason: Optional[str] = None
        usage: Optional[LlmUsage] = None

        async for chunk in stream:
            if getattr(chunk, "usage", None) is not None:
                usage = _usage(chunk.usage)
            if not chunk.choices:
                continue

            choice = chunk.choices[0]
            delta = choice.delta
            if delta.content:
                text_parts.append(delta.content)
                yield LlmStreamChunk(type=StreamChunkType.TEXT_DELTA, text=delta.content)

            for tc in delta.tool_calls or []:
                entry = pending.get(tc.index)
                if entry is None:
                    entry = pending[tc.index] = {
                        "id": tc.id or f"call_{tc.index}",
                        "name": (tc.function.name if tc.function else None) or "",
                        "arguments": "",
                    }
                    yield LlmStreamChunk(
                        type=StreamChunkType.TOOL_CALL_START,
                        tool_call_id=entry["id"],
                        tool_name=entry["name"],
                    )
                if tc.function and tc.function.arguments:
                    entry["arguments"] += tc.function.arguments
                    yield LlmStreamChunk(
                        type=StreamChunkType.TOOL_CALL_DELTA,
                        tool_call_id=entry["id"],
                        arguments_delta=tc.function.arguments,
                    )

            if choice.finish_reason:
                finish_reason = choice.finish_reason

        tool_calls = []
        for index in sorted(pending):
            entry = pending[index]
            call = ToolCall(
                id=entry["id"],
                name=entry["name"],
                arguments=_parse_arguments(entry["arguments"], entry["name"]),
            )
            tool_calls.append(call)
            yield LlmStreamChunk(type=StreamChunkType.TOOL_CALL_COMPLETE, tool_call=call)

        yield LlmStreamChunk(
            type=StreamChunkType.DONE,
            response=LlmResponse(
                content="".join(text_parts),
                tool_calls=tool_calls,
                finish_reason=_finish_reason(finish_reason, bool(tool_calls)),
                usage=usage,
            ),
        )
