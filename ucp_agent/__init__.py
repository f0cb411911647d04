"""
ucp_agent: an LLM shopping agent for UCP and ACP merchants.

Contains the plan-act-observe orchestrator, the UCP discovery/REST client with
JSON-RPC (MCP) transport, the ACP checkout-session client, the tool catalog
and plugin registry. LLM providers plug in through the adapter contract in
ucp_agent.llm_types.
"""
from .config import AgentConfig
from .agent import ShoppingAgent, ToolExecutionError
from .acp_client import AcpApiError, AcpClient, AcpError, AcpStateError
from .acp_schemas import AcpCheckoutSession, AcpCheckoutStatus
from .llm_types import (
    ChatMessage, ChatRole, LlmAdapter, LlmResponse, LlmStreamChunk, LlmUsage,
    StreamChunkType, StreamingLlmAdapter, ToolCall, ToolDefinition,
)
from .mcp_client import McpClient, McpError, McpTransportError
from .observability import AgentLogEvent, AgentSpan, AgentTracer
from .plugins import AgentPlugin, PluginRegistrationError
from .schemas import (
    AgentResult, AgentStep, AgentStreamEvent, AgentUsageSummary,
    CartItem, CartState, CheckoutResult, MoneyAmount, Order, ShippingAddress,
)
from .state import ShoppingState
from .tools import SHOPPING_AGENT_TOOLS
from .ucp_client import UcpApiError, UcpClient, UcpDiscoveryError, UcpError
from .ucp_schemas import DiscoveryResult, UcpCapability

__version__ = "0.1.0"
