"""
MCP client: JSON-RPC 2.0 over HTTP POST.

Used when a UCP merchant advertises an `mcp` transport for a service. Every
call posts one envelope to the service endpoint:

    {"jsonrpc": "2.0", "method": "products/search", "params": {...}, "id": 3}

Two error classes keep transport failures apart from protocol failures:
  - McpTransportError: network failure or non-2xx HTTP (code -32000).
  - McpError: JSON-RPC `error` member returned by the server.
McpTransportError subclasses McpError, so `except McpError` catches both.
"""

from typing import Any, Dict, Optional

import httpx

from ucp_agent.config import DEFAULT_REQUEST_TIMEOUT
from ucp_agent.logger import get_logger

logger = get_logger("mcp_client")

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
# Implementation-defined server error range; used for HTTP-level failures
TRANSPORT_ERROR = -32000


class McpError(Exception):
    """JSON-RPC error (code, message, optional data)."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code}, message={self.message!r})"


class McpTransportError(McpError):
    """HTTP-level failure reaching the JSON-RPC endpoint."""

    def __init__(self, message: str, data: Any = None):
        super().__init__(TRANSPORT_ERROR, message, data)


class McpClient:
    """JSON-RPC 2.0 client bound to a single endpoint."""

    def __init__(
        self,
        endpoint: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **(headers or {}),
        }
        self._transport = transport
        self._request_id = 0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Send a request envelope and return its `result` member."""
        self._request_id += 1
        envelope = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or {},
            "id": self._request_id,
        }

        try:
            async with self._client() as client:
                resp = await client.post(self.endpoint, json=envelope, headers=self.headers)
        except httpx.RequestError as e:
            logger.warning("mcp_client: %s request failed: %s", method, e)
            raise McpTransportError(f"MCP request failed: {e}", {"method": method}) from e

        if not resp.is_success:
            raise McpTransportError(
                f"MCP HTTP error: {resp.status_code} {resp.reason_phrase}",
                {"method": method, "httpStatus": resp.status_code},
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise McpError(PARSE_ERROR, f"Invalid JSON-RPC response: {e}", {"method": method}) from e

        error = data.get("error") if isinstance(data, dict) else None
        if error and not isinstance(error, dict):
            raise McpError(INTERNAL_ERROR, str(error), {"method": method})
        if error:
            raise McpError(
                error.get("code", INTERNAL_ERROR),
                error.get("message", "Unknown JSON-RPC error"),
                error.get("data"),
            )

        logger.debug("mcp_client: %s id=%s ok", method, envelope["id"])
        return data.get("result") if isinstance(data, dict) else None

    async def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a notification (no id); the response body is ignored."""
        envelope = {"jsonrpc": "2.0", "method": method, "params": params or {}}
        try:
            async with self._client() as client:
                await client.post(self.endpoint, json=envelope, headers=self.headers)
        except httpx.RequestError as e:
            raise McpTransportError(f"MCP notification failed: {e}", {"method": method}) from e
