"""
Shopping Agent orchestrator.

The core loop is plan → act (tool call) → observe (tool result) → repeat,
bounded by `max_iterations`:

1. Send the full message history and the merged tool catalog to the LLM.
2. Record any free text as a "thinking" step.
3. No tool calls → done; the text is the answer.
4. Otherwise run every requested tool call sequentially, in request order.
   A failing tool becomes an {"error": ...} payload fed back to the model;
   it never aborts the run.
5. Running out of iterations is reported as success=False, not raised.

Tool names dispatch through a fixed command table built at construction
(built-ins + plugins). Catalog and checkout tools branch on the commerce
protocol bound by discover_merchant: UCP (profile discovery, REST/MCP) or
ACP (bearer-authenticated checkout sessions). One protocol per run.
"""

import json
import time
from functools import partial
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional
from urllib.parse import quote

from pydantic import ValidationError

from ucp_agent.acp_client import AcpClient, AcpError
from ucp_agent.acp_schemas import AcpCheckoutStatus, AcpShippingAddress
from ucp_agent.config import AgentConfig
from ucp_agent.llm_types import (
    ChatMessage,
    ChatRole,
    LlmAdapter,
    LlmResponse,
    StreamChunkType,
    StreamingLlmAdapter,
    ToolCall,
    ToolDefinition,
)
from ucp_agent.logger import get_logger
from ucp_agent.mcp_client import McpError
from ucp_agent.observability import AgentLogEvent, AgentObserver, AgentTracer, UsageTracker
from ucp_agent.plugins import AgentPlugin, PluginRegistry, invoke_plugin
from ucp_agent.schemas import (
    AgentResult,
    AgentStep,
    AgentStreamEvent,
    CartState,
    MerchantInfo,
    MoneyAmount,
    Order,
    ShippingAddress,
    StepType,
    StreamEventType,
    minor_units_to_money,
    now_ms,
)
from ucp_agent.state import ShoppingState
from ucp_agent.tools import SHOPPING_AGENT_TOOLS
from ucp_agent.ucp_client import UcpApiError, UcpClient, UcpDiscoveryError, UcpError
from ucp_agent.ucp_schemas import capability_summary

logger = get_logger("agent")

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]

CHECKOUT_CAPABILITY = "dev.ucp.shopping.checkout"
ACP_CHECKOUT_CAPABILITY = "acp.checkout"
ACP_PAYMENT_HANDLER = "stripe_shared_payment_token"
DEFAULT_PAYMENT_TOKEN = "tok_mock_success"
MAX_PAGE_SIZE = 50
DEFAULT_PAGE_SIZE = 10


class ToolExecutionError(Exception):
    """Tool-level failure reported back to the model as an error payload."""


def _error_detail(exc: Exception) -> str:
    """Exception message plus the merchant's `error` field, when present."""
    body = getattr(exc, "response_body", None)
    if body:
        try:
            detail = json.loads(body).get("error")
        except (ValueError, AttributeError):
            detail = None
        if detail:
            return f"{exc} ({detail})"
    return str(exc)


def _require_str(args: Dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ToolExecutionError(f"Missing required argument: {key}")
    return value.strip()


def _int_arg(args: Dict[str, Any], key: str, default: int) -> int:
    value = args.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ToolExecutionError(f"Argument {key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ToolExecutionError(f"Argument {key} must be an integer") from e


def _extract_products(result: Any) -> List[Dict[str, Any]]:
    if isinstance(result, dict):
        result = result.get("products", [])
    return [p for p in result if isinstance(p, dict)] if isinstance(result, list) else []


def _product_summary(product: Dict[str, Any], *fields: str) -> Dict[str, Any]:
    summary = {"id": product.get("id"), "name": product.get("name"), "price": product.get("price")}
    for field in fields:
        summary[field] = product.get(field)
    summary["inStock"] = product.get("inStock", True)
    return summary


class ShoppingAgent:
    """LLM-driven shopping agent for UCP and ACP merchants.

    Args:
        llm: LlmAdapter (or StreamingLlmAdapter) that decides the next action
        config: AgentConfig; defaults to AgentConfig()
        plugins: Extra tools merged into the built-in catalog
        on_step: Callback for every recorded AgentStep
        on_log: Callback for structured AgentLogEvent objects
        tracer: Object with start_span(name, attributes) → span.end()
        ucp_client / acp_client: Pre-built clients (otherwise built from config)
    """

    def __init__(
        self,
        llm: LlmAdapter,
        config: Optional[AgentConfig] = None,
        plugins: Iterable[AgentPlugin] = (),
        on_step: Optional[Callable[[AgentStep], None]] = None,
        on_log: Optional[Callable[[AgentLogEvent], None]] = None,
        tracer: Optional[AgentTracer] = None,
        ucp_client: Optional[UcpClient] = None,
        acp_client: Optional[AcpClient] = None,
    ):
        self.llm = llm
        self.config = config or AgentConfig()
        self.on_step = on_step
        self.observer = AgentObserver(on_log=on_log, tracer=tracer)

        self.ucp_client = ucp_client or UcpClient(
            timeout=self.config.request_timeout,
            preferred_transport=self.config.preferred_transport,
        )
        if acp_client is None and self.config.acp_enabled:
            acp_client = AcpClient(
                self.config.acp_endpoint,
                self.config.acp_api_key,
                api_version=self.config.acp_api_version,
                timeout=self.config.request_timeout,
            )
        self.acp_client = acp_client

        self.plugins = PluginRegistry(SHOPPING_AGENT_TOOLS, plugins)
        self.tools: List[ToolDefinition] = self.plugins.merged_tools()
        self._handlers = self._build_command_table()

        self.state = ShoppingState()
        self._steps: List[AgentStep] = []
        self._iteration = 0

    def _build_command_table(self) -> Dict[str, ToolHandler]:
        handlers: Dict[str, ToolHandler] = {
            "discover_merchant": self._tool_discover_merchant,
            "list_capabilities": self._tool_list_capabilities,
            "browse_products": self._tool_browse_products,
            "search_products": self._tool_search_products,
            "get_product": self._tool_get_product,
            "add_to_cart": self._tool_add_to_cart,
            "view_cart": self._tool_view_cart,
            "remove_from_cart": self._tool_remove_from_cart,
            "initiate_checkout": self._tool_initiate_checkout,
            "submit_shipping": self._tool_submit_shipping,
            "submit_payment": self._tool_submit_payment,
            "get_order_status": self._tool_get_order_status,
        }
        for name in self.plugins.names():
            handlers[name] = partial(invoke_plugin, self.plugins.get(name))

        missing = [tool.name for tool in self.tools if tool.name not in handlers]
        if missing:
            raise ValueError(f"No handler registered for tool(s): {', '.join(missing)}")
        return handlers

    # ========================================================================
    # Public API
    # ========================================================================

    def get_plugins(self) -> List[str]:
        return self.plugins.names()

    def get_cart(self) -> CartState:
        return self.state.cart_state()

    def get_orders(self) -> List[Order]:
        return list(self.state.orders.values())

    async def run(self, task: str) -> AgentResult:
        """Run the agent loop to completion and return the buffered result."""
        usage = UsageTracker()
        self._begin_run()
        messages = [ChatMessage(role=ChatRole.USER, content=task)]
        self.observer.log("info", "Agent run started", task=task, maxIterations=self.config.max_iterations)

        with self.observer.span("agent.run", {"max_iterations": self.config.max_iterations}):
            try:
                result = None
                while self._iteration < self.config.max_iterations:
                    self._iteration += 1
                    with self.observer.span("agent.llm_call", {"iteration": self._iteration}):
                        response = await self.llm.chat(list(messages), self.tools)
                    self._record_llm_call(response, usage)

                    if response.content:
                        self._record_step(StepType.THINKING, content=response.content)

                    if not response.tool_calls:
                        result = self._finish(True, response.content, usage)
                        break

                    messages.append(self._assistant_message(response))
                    for call in response.tool_calls:
                        output = await self._execute_tool_call(call, usage)
                        messages.append(self._tool_message(call, output))

                if result is None:
                    result = self._finish(False, self._max_iterations_answer(), usage)
            except Exception as e:
                self.observer.log("error", "Agent run failed", error=str(e), iteration=self._iteration)
                raise

        self.observer.log(
            "info", "Agent run completed",
            success=result.success, iterations=result.iterations,
            totalLatencyMs=result.usage.total_latency_ms,
        )
        return result

    async def run_stream(self, task: str) -> AsyncIterator[AgentStreamEvent]:
        """Run the agent loop, yielding events as the model and tools make progress.

        Streaming adapters are consumed chunk by chunk; buffered adapters are
        called once and their full text is emitted as a single text_delta.
        Adapter failures end the stream with an `error` event.
        """
        usage = UsageTracker()
        self._begin_run()
        messages = [ChatMessage(role=ChatRole.USER, content=task)]
        streaming = isinstance(self.llm, StreamingLlmAdapter)
        self.observer.log("info", "Agent stream started", task=task, streaming=streaming)

        with self.observer.span("agent.run_stream", {"max_iterations": self.config.max_iterations}):
            try:
                result = None
                while self._iteration < self.config.max_iterations:
                    self._iteration += 1

                    with self.observer.span("agent.llm_call", {"iteration": self._iteration}):
                        if streaming:
                            response = None
                            text_parts: List[str] = []
                            completed: List[ToolCall] = []
                            async for chunk in self.llm.chat_stream(list(messages), self.tools):
                                if chunk.type == StreamChunkType.TEXT_DELTA and chunk.text:
                                    text_parts.append(chunk.text)
                                    yield self._event(StreamEventType.TEXT_DELTA, text=chunk.text)
                                elif chunk.type == StreamChunkType.TOOL_CALL_COMPLETE and chunk.tool_call:
                                    completed.append(chunk.tool_call)
                                elif chunk.type == StreamChunkType.DONE:
                                    response = chunk.response
                            response = self._merge_streamed(response, "".join(text_parts), completed)
                        else:
                            response = await self.llm.chat(list(messages), self.tools)
                            if response.content:
                                yield self._event(StreamEventType.TEXT_DELTA, text=response.content)
                    self._record_llm_call(response, usage)

                    if response.content:
                        self._record_step(StepType.THINKING, content=response.content)

                    if not response.tool_calls:
                        result = self._finish(True, response.content, usage)
                        break

                    messages.append(self._assistant_message(response))
                    for call in response.tool_calls:
                        yield self._event(
                            StreamEventType.TOOL_CALL, tool_name=call.name, tool_input=call.arguments
                        )
                        output = await self._execute_tool_call(call, usage)
                        messages.append(self._tool_message(call, output))
                        yield self._event(StreamEventType.TOOL_RESULT, tool_name=call.name, tool_output=output)

                if result is None:
                    result = self._finish(False, self._max_iterations_answer(), usage)
            except Exception as e:
                self.observer.log("error", "Agent stream failed", error=str(e), iteration=self._iteration)
                yield self._event(StreamEventType.ERROR, error=str(e))
                return

        self.observer.log(
            "info", "Agent stream completed",
            success=result.success, iterations=result.iterations,
            totalLatencyMs=result.usage.total_latency_ms,
        )
        yield self._event(StreamEventType.DONE, result=result)

    # ========================================================================
    # Loop helpers
    # ========================================================================

    def _begin_run(self) -> None:
        self._steps = []
        self._iteration = 0
        self.state.begin_run()

    def _max_iterations_answer(self) -> str:
        return (
            f"Agent reached maximum iterations ({self.config.max_iterations}) "
            "without completing the task."
        )

    @staticmethod
    def _merge_streamed(response: Optional[LlmResponse], text: str, completed: List[ToolCall]) -> LlmResponse:
        if response is None:
            return LlmResponse(
                content=text,
                tool_calls=completed,
                finish_reason="tool_calls" if completed else "stop",
            )
        return response.model_copy(update={
            "content": response.content or text,
            "tool_calls": response.tool_calls or completed,
        })

    @staticmethod
    def _assistant_message(response: LlmResponse) -> ChatMessage:
        return ChatMessage(role=ChatRole.ASSISTANT, content=response.content, tool_calls=response.tool_calls)

    @staticmethod
    def _tool_message(call: ToolCall, output: Any) -> ChatMessage:
        return ChatMessage(
            role=ChatRole.TOOL,
            content=json.dumps(output, default=str),
            tool_call_id=call.id,
            name=call.name,
        )

    def _event(self, event_type: StreamEventType, **fields: Any) -> AgentStreamEvent:
        return AgentStreamEvent(type=event_type, iteration=self._iteration, **fields)

    def _record_llm_call(self, response: LlmResponse, usage: UsageTracker) -> None:
        usage.record_llm_call(response.usage)
        tokens = response.usage
        self.observer.log(
            "debug", "LLM call completed",
            iteration=self._iteration,
            toolCalls=len(response.tool_calls),
            finishReason=response.finish_reason,
            promptTokens=tokens.prompt_tokens if tokens else 0,
            completionTokens=tokens.completion_tokens if tokens else 0,
            totalTokens=tokens.total_tokens if tokens else 0,
        )

    def _record_step(self, step_type: StepType, **fields: Any) -> AgentStep:
        step = AgentStep(iteration=self._iteration, type=step_type, **fields)
        self._steps.append(step)
        if self.config.verbose:
            detail = step.content or json.dumps(
                step.tool_input if step_type == StepType.TOOL_CALL else step.tool_output, default=str
            )
            logger.info("[%s] %s %s", step_type.value, step.tool_name or "", detail[:200])
        if self.on_step is not None:
            self.on_step(step)
        return step

    async def _execute_tool_call(self, call: ToolCall, usage: UsageTracker) -> Any:
        """Run one tool call; any raised error becomes an {"error": ...} payload."""
        self._record_step(StepType.TOOL_CALL, tool_name=call.name, tool_input=call.arguments)

        started = time.perf_counter()
        with self.observer.span("agent.tool_call", {"tool": call.name}):
            try:
                output = await self._dispatch(call)
            except Exception as e:
                output = {"error": _error_detail(e)}
        latency_ms = (time.perf_counter() - started) * 1000
        usage.record_tool_call(call.name, latency_ms)

        if isinstance(output, dict) and output.get("error"):
            self.observer.log(
                "warning", f"Tool {call.name} failed",
                tool=call.name, error=output["error"], latencyMs=latency_ms,
            )
        else:
            self.observer.log("debug", f"Tool {call.name} completed", tool=call.name, latencyMs=latency_ms)

        self._record_step(StepType.TOOL_RESULT, tool_name=call.name, tool_output=output)
        return output

    async def _dispatch(self, call: ToolCall) -> Any:
        handler = self._handlers.get(call.name)
        if handler is None:
            return {"error": f"Unknown tool: {call.name}"}
        return await handler(call.arguments or {})

    def _finish(self, success: bool, answer: str, usage: UsageTracker) -> AgentResult:
        if success:
            self._record_step(StepType.FINAL_ANSWER, content=answer)
        return AgentResult(
            success=success,
            answer=answer,
            steps=list(self._steps),
            iterations=self._iteration,
            merchant=self._merchant_info(),
            checkout=self.state.checkout_result(),
            usage=usage.summary(),
            error=None if success else answer,
        )

    def _merchant_info(self) -> Optional[MerchantInfo]:
        if self.state.protocol == "ucp":
            discovery = self.ucp_client.get_discovery()
            return MerchantInfo(domain=discovery.domain, protocol="ucp", profile=discovery.profile)
        if self.state.protocol == "acp":
            return MerchantInfo(domain=self.state.merchant_domain, protocol="acp")
        return None

    def _require_protocol(self) -> str:
        if self.state.protocol is None:
            raise ToolExecutionError("No merchant discovered. Call discover_merchant first.")
        return self.state.protocol

    # ========================================================================
    # Tools: discovery
    # ========================================================================

    async def _tool_discover_merchant(self, args: Dict[str, Any]) -> Dict[str, Any]:
        domain = _require_str(args, "domain")
        try:
            discovery = await self.ucp_client.discover(domain)
        except UcpDiscoveryError as e:
            if self.acp_client is None:
                raise
            return await self._discover_acp(domain, e)

        self.state.bind_protocol("ucp", discovery.domain)
        return {
            "protocol": "ucp",
            "domain": discovery.domain,
            "version": discovery.version,
            "capabilities": [c.name for c in discovery.capabilities],
            "services": [
                {
                    "name": s.name,
                    "transports": [t for t in ("rest", "mcp", "a2a") if getattr(s.transports, t)],
                }
                for s in discovery.services
            ],
            "paymentHandlers": [{"id": h.id, "name": h.name} for h in discovery.payment_handlers],
        }

    async def _discover_acp(self, domain: str, ucp_error: UcpDiscoveryError) -> Dict[str, Any]:
        """Confirm the configured ACP merchant is reachable (health, then catalog)."""
        try:
            health = await self.acp_client.health()
        except AcpError as health_error:
            logger.debug("ACP health probe failed: %s", health_error)
            try:
                await self.acp_client.list_products()
            except AcpError as catalog_error:
                raise ToolExecutionError(
                    f"{ucp_error}. ACP merchant at {self.acp_client.endpoint} unreachable: {catalog_error}"
                ) from catalog_error
            health = {}

        self.state.bind_protocol("acp", domain)
        return {
            "protocol": "acp",
            "domain": domain,
            "merchant": health.get("merchant"),
            "endpoint": self.acp_client.endpoint,
            "version": self.acp_client.api_version,
            "capabilities": [ACP_CHECKOUT_CAPABILITY],
            "paymentHandlers": [{"id": ACP_PAYMENT_HANDLER, "name": "Stripe Shared Payment Token"}],
        }

    async def _tool_list_capabilities(self, args: Dict[str, Any]) -> Dict[str, Any]:
        if self._require_protocol() == "acp":
            return {"capabilities": [
                {"name": ACP_CHECKOUT_CAPABILITY, "version": self.acp_client.api_version, "extends": None}
            ]}
        return {"capabilities": capability_summary(self.ucp_client.get_capabilities())}

    # ========================================================================
    # Tools: catalog
    # ========================================================================

    async def _tool_browse_products(self, args: Dict[str, Any]) -> Dict[str, Any]:
        page = max(_int_arg(args, "page", 1), 1)
        limit = min(max(_int_arg(args, "limit", DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
        category = args.get("category")

        if self._require_protocol() == "acp":
            products = _extract_products(await self.acp_client.list_products(category))
        else:
            products = _extract_products(await self.ucp_client.call_api("/products", method="GET"))

        if category:
            products = [p for p in products if str(p.get("category", "")).lower() == category.lower()]
        self.state.remember_products(products)

        start = (page - 1) * limit
        return {
            "products": [_product_summary(p, "category") for p in products[start:start + limit]],
            "total": len(products),
            "page": page,
            "limit": limit,
        }

    async def _tool_search_products(self, args: Dict[str, Any]) -> Dict[str, Any]:
        query = _require_str(args, "query")
        limit = min(max(_int_arg(args, "limit", DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)

        if self._require_protocol() == "acp":
            products = _extract_products(await self.acp_client.search_products(query))
        else:
            try:
                products = _extract_products(
                    await self.ucp_client.call_api(f"/products/search?q={quote(query)}")
                )
            except (UcpError, McpError) as e:
                logger.debug("search endpoint failed (%s); filtering the full catalog", e)
                needle = query.lower()
                products = [
                    p for p in _extract_products(await self.ucp_client.call_api("/products"))
                    if needle in str(p.get("name", "")).lower()
                    or needle in str(p.get("description", "")).lower()
                ]

        self.state.remember_products(products)
        return {
            "products": [_product_summary(p, "description") for p in products[:limit]],
            "total": len(products),
            "query": query,
        }

    async def _tool_get_product(self, args: Dict[str, Any]) -> Any:
        product_id = _require_str(args, "productId")
        if self._require_protocol() == "acp":
            product = await self.acp_client.get_product(product_id)
        else:
            product = await self.ucp_client.call_api(f"/products/{quote(product_id, safe='')}")
        if isinstance(product, dict):
            self.state.remember_products([product])
        return product

    # ========================================================================
    # Tools: cart
    # ========================================================================

    async def _tool_add_to_cart(self, args: Dict[str, Any]) -> Dict[str, Any]:
        product_id = _require_str(args, "productId")
        quantity = _int_arg(args, "quantity", 1)
        try:
            self.state.add_item(product_id, quantity, args.get("variantId"))
        except ValueError as e:
            raise ToolExecutionError(str(e)) from e
        return {"success": True, "cart": self.state.cart_state().to_payload()}

    async def _tool_view_cart(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.state.cart_state().to_payload()

    async def _tool_remove_from_cart(self, args: Dict[str, Any]) -> Dict[str, Any]:
        product_id = _require_str(args, "productId")
        if not self.state.remove_item(product_id):
            return {"success": False, "error": "Item not found in cart"}
        return {"success": True, "cart": self.state.cart_state().to_payload()}

    # ========================================================================
    # Tools: checkout
    # ========================================================================

    async def _tool_initiate_checkout(self, args: Dict[str, Any]) -> Dict[str, Any]:
        self.state.require_cart()
        protocol = self._require_protocol()
        items = [item.to_payload() for item in self.state.cart]

        if protocol == "acp":
            try:
                session = await self.acp_client.create_checkout(line_items=[
                    {"product_id": item.product_id, "quantity": item.quantity, "variant_id": item.variant_id}
                    for item in self.state.cart
                ])
            except AcpError as e:
                raise ToolExecutionError(f"Checkout failed: {_error_detail(e)}") from e
            self.state.start_checkout(session.id)
            return {
                "sessionId": session.id,
                "status": session.status.value,
                "items": items,
                "subtotal": minor_units_to_money(
                    session.totals.subtotal.amount, session.totals.subtotal.currency
                ).to_payload(),
                "requiredSteps": ["shipping", "payment"],
                "paymentHandlers": [h.type for h in session.payment_handlers],
            }

        if not self.ucp_client.has_capability(CHECKOUT_CAPABILITY):
            raise ToolExecutionError("Merchant does not support checkout capability.")
        try:
            data = await self.ucp_client.call_api("/checkout", method="POST", body={"items": items})
        except (UcpError, McpError) as e:
            raise ToolExecutionError(f"Checkout failed: {_error_detail(e)}") from e

        session_id = data.get("sessionId") or data.get("id") if isinstance(data, dict) else None
        if not session_id:
            raise ToolExecutionError("Checkout failed: merchant returned no session id")
        self.state.start_checkout(session_id)

        payload = {
            "sessionId": session_id,
            "items": items,
            "subtotal": self.state.subtotal().to_payload(),
            "requiredSteps": ["shipping", "payment"],
        }
        if data.get("shipping"):
            payload["shippingOptions"] = data["shipping"]
        return payload

    async def _tool_submit_shipping(self, args: Dict[str, Any]) -> Dict[str, Any]:
        session_id = self.state.require_session()
        try:
            address = ShippingAddress.model_validate(args)
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
            raise ToolExecutionError(f"Invalid shipping address; missing or invalid: {fields}") from e

        payload: Dict[str, Any] = {
            "success": True,
            "sessionId": session_id,
            "shippingAddress": address.to_payload(),
            "nextStep": "payment",
        }

        if self._require_protocol() == "acp":
            try:
                session = await self.acp_client.update_checkout(
                    session_id,
                    shipping_address=AcpShippingAddress(**address.model_dump(exclude_none=True)),
                )
            except AcpError as e:
                raise ToolExecutionError(f"Shipping update failed: {_error_detail(e)}") from e
            payload["status"] = session.status.value
            payload["total"] = minor_units_to_money(
                session.totals.total.amount, session.totals.total.currency
            ).to_payload()

        self.state.set_shipping(address)
        return payload

    async def _tool_submit_payment(self, args: Dict[str, Any]) -> Dict[str, Any]:
        session_id = self.state.require_payment_ready()
        protocol = self._require_protocol()
        payment_method = args.get("paymentMethod") or "mock"
        payment_token = args.get("paymentToken") or DEFAULT_PAYMENT_TOKEN

        if protocol == "acp":
            try:
                session = await self.acp_client.complete_checkout(
                    session_id, payment_token=payment_token, payment_handler=payment_method
                )
            except AcpError as e:
                raise ToolExecutionError(f"Payment failed: {_error_detail(e)}") from e
            if session.status != AcpCheckoutStatus.COMPLETED:
                raise ToolExecutionError(f"Payment failed: session is {session.status.value}")
            order = self.state.record_order(
                f"acp_{session.id}",
                "acp",
                total=minor_units_to_money(session.totals.total.amount, session.totals.total.currency),
                payment_method=payment_method,
            )
        else:
            body = {
                "sessionId": session_id,
                "items": [item.to_payload() for item in self.state.cart],
                "shippingAddress": self.state.shipping_address.to_payload(),
                "payment": {"method": payment_method, "token": payment_token},
            }
            try:
                data = await self.ucp_client.call_api("/checkout/complete", method="POST", body=body)
            except (UcpError, McpError) as e:
                raise ToolExecutionError(f"Payment failed: {_error_detail(e)}") from e

            data = data if isinstance(data, dict) else {}
            order_id = data.get("orderId") or data.get("id") or f"ord_{now_ms()}"
            total = data.get("total") or (data.get("order") or {}).get("total")
            order = self.state.record_order(
                order_id,
                "ucp",
                total=MoneyAmount.model_validate(total) if isinstance(total, dict) else None,
                payment_method=payment_method,
            )

        return {"success": True, "orderId": order.id, "status": order.status.value, "order": order.to_payload()}

    async def _tool_get_order_status(self, args: Dict[str, Any]) -> Dict[str, Any]:
        order_id = _require_str(args, "orderId")
        order = self.state.get_order(order_id)
        if order is not None:
            return {"order": order.to_payload()}

        if self.state.protocol == "ucp":
            try:
                data = await self.ucp_client.call_api(f"/orders/{quote(order_id, safe='')}")
            except (UcpApiError, McpError) as e:
                logger.debug("remote order lookup for %s failed: %s", order_id, e)
            else:
                return {"order": data.get("order", data) if isinstance(data, dict) else data}
        raise ToolExecutionError(f"Order not found: {order_id}")
