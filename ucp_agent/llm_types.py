"""
LLM adapter contract.

The agent is provider-agnostic: it talks to an adapter that translates a
neutral message + tool-call representation to and from a provider's chat API.

Two variants exist:
  - LlmAdapter: buffered `chat()` only.
  - StreamingLlmAdapter: additionally yields incremental LlmStreamChunk objects
    from `chat_stream()`.

Tool messages carry the true call id (`tool_call_id`) and the tool name
(`name`), so adapters can map results back without any bookkeeping.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from pydantic import BaseModel, Field


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class ToolDefinition(BaseModel):
    """Tool exposed to the LLM (JSON-Schema parameters)."""
    name: str
    description: str
    parameters: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""
    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ChatMessage(BaseModel):
    role: ChatRole
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_call_id: Optional[str] = Field(None, description="Call id answered by a tool message")
    name: Optional[str] = Field(None, description="Tool name for tool messages")


class LlmUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LlmResponse(BaseModel):
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    finish_reason: str = Field("stop", description="stop | tool_calls | length | error")
    usage: Optional[LlmUsage] = None


class StreamChunkType(str, Enum):
    TEXT_DELTA = "text_delta"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_DELTA = "tool_call_delta"
    TOOL_CALL_COMPLETE = "tool_call_complete"
    DONE = "done"


class LlmStreamChunk(BaseModel):
    """One incremental piece of a streamed response."""
    type: StreamChunkType
    text: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    arguments_delta: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    response: Optional[LlmResponse] = None


class LlmAdapter(ABC):
    """Buffered adapter: one request, one complete response."""

    model_name: str = "unknown"

    @abstractmethod
    async def chat(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolDefinition]] = None,
    ) -> LlmResponse:
        """Send the conversation and return the model's next action."""


class StreamingLlmAdapter(LlmAdapter):
    """Adapter that can also stream.

    `chat_stream()` must end with exactly one DONE chunk carrying the
    finalized LlmResponse.
    """

    @abstractmethod
    def chat_stream(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolDefinition]] = None,
    ) -> AsyncIterator[LlmStreamChunk]:
        """Yield text deltas, tool-call start/delta/complete and a final DONE."""


__all__ = [
    "ChatRole",
    "ChatMessage",
    "ToolDefinition",
    "ToolCall",
    "LlmUsage",
    "LlmResponse",
    "StreamChunkType",
    "LlmStreamChunk",
    "LlmAdapter",
    "StreamingLlmAdapter",
]
