"""
UCP client: merchant discovery and protocol-agnostic API calls.

discover(domain) fetches the merchant profile from /.well-known/ucp (or
/.well-known/ucp.json), normalizes services and capabilities, and caches the
result on the client. call_api(path, ...) then reaches the merchant over the
preferred transport:

  - "auto" (default): JSON-RPC first when the service has an MCP endpoint,
    falling back to REST on any failure when a REST endpoint also exists.
  - "rest": REST only.
  - "mcp":  JSON-RPC only; fails immediately when no MCP endpoint is known.

Each HTTP call uses its own httpx.AsyncClient with the configured timeout.
No retries.
"""

import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, unquote

import httpx
from pydantic import ValidationError

from ucp_agent.config import DEFAULT_REQUEST_TIMEOUT, validate_transport
from ucp_agent.logger import get_logger
from ucp_agent.mcp_client import McpClient
from ucp_agent.ucp_schemas import (
    DiscoveryResult,
    NormalizedService,
    PaymentHandler,
    UcpCapability,
    normalize_capabilities,
    normalize_services,
)

logger = get_logger("ucp_client")

WELL_KNOWN_PATHS = ("/.well-known/ucp", "/.well-known/ucp.json")
USER_AGENT = "ucp-agent/0.1.0"

_PRODUCT_PATH = re.compile(r"^products/(.+)$")
_ORDER_PATH = re.compile(r"^orders/(.+)$")


class UcpError(Exception):
    """Base class for UCP client errors."""


class UcpDiscoveryError(UcpError):
    """No valid UCP profile could be resolved for a domain."""


class UcpApiError(UcpError):
    """Non-2xx REST response from a merchant."""

    def __init__(self, message: str, status_code: int, response_body: str):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


def rest_path_to_rpc(path: str, http_method: str, body: Any = None) -> Tuple[str, Dict[str, Any]]:
    """Map a REST-style path + HTTP method to a JSON-RPC method and params.

    >>> rest_path_to_rpc("/products/search?q=mouse", "GET")
    ('products/search', {'q': 'mouse'})
    >>> rest_path_to_rpc("/orders/ord_1", "GET")
    ('orders/get', {'id': 'ord_1'})
    """
    path_part, _, query_string = path.partition("?")
    clean_path = path_part.lstrip("/")
    query = dict(parse_qsl(query_string, keep_blank_values=True))
    body_params = dict(body) if isinstance(body, dict) else {}

    if clean_path == "products/search":
        return "products/search", query

    product_match = _PRODUCT_PATH.match(clean_path)
    if product_match and http_method == "GET":
        return "products/get", {"id": unquote(product_match.group(1))}

    if clean_path == "products" and http_method == "GET":
        return "products/list", query

    if clean_path == "checkout/complete" and http_method == "POST":
        return "checkout/complete", body_params

    if clean_path == "checkout" and http_method == "POST":
        return "checkout/create", body_params

    order_match = _ORDER_PATH.match(clean_path)
    if order_match and http_method == "GET":
        return "orders/get", {"id": unquote(order_match.group(1))}

    # Structural fallback: the path itself is the method name
    return clean_path, {**body_params, **query}


class UcpClient:
    """Discovery + API client for one UCP merchant at a time."""

    def __init__(
        self,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        headers: Optional[Dict[str, str]] = None,
        preferred_transport: str = "auto",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.headers = {"Accept": "application/json", "User-Agent": USER_AGENT, **(headers or {})}
        self.preferred_transport = validate_transport(preferred_transport)
        self._transport = transport

        self._discovery: Optional[DiscoveryResult] = None
        self._mcp_client: Optional[McpClient] = None
        # Error suppressed by the last auto-transport fallback, if any
        self.last_transport_error: Optional[Exception] = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    # ========================================================================
    # Discovery
    # ========================================================================

    async def discover(self, domain: str) -> DiscoveryResult:
        """Resolve a merchant profile and cache it, replacing any previous one."""
        domain = domain.strip().rstrip("/")
        if domain.startswith(("http://", "https://")):
            base_urls = [domain]
            clean_domain = re.sub(r"^https?://", "", domain)
        else:
            base_urls = [f"https://{domain}", f"http://{domain}"]
            clean_domain = domain

        profile: Optional[Dict[str, Any]] = None
        profile_url = ""

        async with self._client() as client:
            for base in base_urls:
                for well_known in WELL_KNOWN_PATHS:
                    url = f"{base}{well_known}"
                    try:
                        resp = await client.get(url, headers=self.headers)
                    except httpx.RequestError as e:
                        logger.debug("ucp_client: discovery probe %s failed: %s", url, e)
                        continue
                    if not resp.is_success:
                        logger.debug("ucp_client: discovery probe %s → %s", url, resp.status_code)
                        continue
                    try:
                        profile = resp.json()
                    except ValueError:
                        logger.debug("ucp_client: discovery probe %s returned non-JSON", url)
                        continue
                    profile_url = url
                    break
                if profile is not None:
                    break

        if profile is None:
            raise UcpDiscoveryError(
                f"No UCP profile found at {base_urls[0]}. Tried: {', '.join(WELL_KNOWN_PATHS)}"
            )

        ucp = profile.get("ucp") if isinstance(profile, dict) else None
        if not isinstance(ucp, dict):
            raise UcpDiscoveryError('Invalid UCP profile: missing "ucp" root object')

        try:
            handlers = (profile.get("payment") or {}).get("handlers") or []
            discovery = DiscoveryResult(
                profile=profile,
                profile_url=profile_url,
                domain=clean_domain,
                version=ucp.get("version") or "unknown",
                services=normalize_services(ucp),
                capabilities=normalize_capabilities(ucp),
                payment_handlers=[PaymentHandler.model_validate(h) for h in handlers],
            )
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise UcpDiscoveryError(f"Invalid UCP profile at {profile_url}: {e}") from e

        self._discovery = discovery
        self._mcp_client = None
        logger.info(
            "ucp_client: discovered %s (version=%s, %d capabilities) via %s",
            clean_domain, self._discovery.version, len(self._discovery.capabilities), profile_url,
        )
        return self._discovery

    def get_discovery(self) -> DiscoveryResult:
        if self._discovery is None:
            raise UcpError("No discovery result. Call discover() first.")
        return self._discovery

    @property
    def is_discovered(self) -> bool:
        return self._discovery is not None

    def get_capabilities(self) -> List[UcpCapability]:
        return self.get_discovery().capabilities

    def has_capability(self, name: str) -> bool:
        return any(c.name == name for c in self.get_discovery().capabilities)

    def get_capability(self, name: str) -> Optional[UcpCapability]:
        return next((c for c in self.get_discovery().capabilities if c.name == name), None)

    def get_services(self) -> List[NormalizedService]:
        return self.get_discovery().services

    def get_payment_handlers(self) -> List[PaymentHandler]:
        return self.get_discovery().payment_handlers

    def _find_service(self, service_name: Optional[str] = None) -> Optional[NormalizedService]:
        services = self.get_discovery().services
        if service_name:
            return next((s for s in services if s.name == service_name), None)
        return services[0] if services else None

    def get_rest_endpoint(self, service_name: Optional[str] = None) -> Optional[str]:
        service = self._find_service(service_name)
        if service and service.transports.rest:
            return service.transports.rest.endpoint
        return None

    def get_mcp_endpoint(self, service_name: Optional[str] = None) -> Optional[str]:
        service = self._find_service(service_name)
        if service and service.transports.mcp:
            return service.transports.mcp.endpoint
        return None

    # ========================================================================
    # API calls
    # ========================================================================

    async def call_api(
        self,
        path: str,
        method: Optional[str] = None,
        body: Any = None,
        service_name: Optional[str] = None,
        transport: Optional[str] = None,
    ) -> Any:
        """Call a merchant API path over the chosen transport.

        Args:
            path: REST-style path, e.g. "/products/search?q=mouse"
            method: HTTP method (defaults to POST with a body, GET otherwise)
            body: JSON body for POST calls
            service_name: Service to target (defaults to the first one)
            transport: "auto" | "rest" | "mcp" (defaults to the client preference)

        Returns:
            Parsed JSON (or text) from REST, or the JSON-RPC `result`.
        """
        transport = validate_transport(transport or self.preferred_transport)
        http_method = (method or ("POST" if body is not None else "GET")).upper()

        if transport in ("mcp", "auto"):
            mcp_endpoint = self.get_mcp_endpoint(service_name)
            if mcp_endpoint:
                try:
                    return await self._call_via_mcp(mcp_endpoint, path, http_method, body)
                except Exception as e:
                    if transport != "auto" or not self.get_rest_endpoint(service_name):
                        raise
                    self.last_transport_error = e
                    logger.debug(
                        "ucp_client: MCP call %s %s failed (%s), falling back to REST",
                        http_method, path, e,
                    )
            elif transport == "mcp":
                raise UcpError("No MCP endpoint available. Discover the merchant first.")

        endpoint = self.get_rest_endpoint(service_name)
        if not endpoint:
            raise UcpError("No REST endpoint available. Discover the merchant first.")

        url = f"{endpoint.rstrip('/')}{path}"
        headers = dict(self.headers)
        if body is not None:
            headers["Content-Type"] = "application/json"

        try:
            async with self._client() as client:
                resp = await client.request(http_method, url, json=body, headers=headers)
        except httpx.RequestError as e:
            logger.warning("ucp_client: %s %s request failed: %s", http_method, path, e)
            raise UcpError(f"Request failed: {http_method} {path}: {e}") from e

        if not resp.is_success:
            raise UcpApiError(
                f"API call failed: {http_method} {path} → {resp.status_code}",
                resp.status_code,
                resp.text,
            )

        if "application/json" in resp.headers.get("content-type", ""):
            return resp.json()
        return resp.text

    async def call_mcp(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        service_name: Optional[str] = None,
    ) -> Any:
        """Direct JSON-RPC call against the service's MCP endpoint."""
        mcp_endpoint = self.get_mcp_endpoint(service_name)
        if not mcp_endpoint:
            raise UcpError("No MCP endpoint available. Discover the merchant first.")
        return await self._get_mcp_client(mcp_endpoint).call(method, params)

    async def fetch_schema(self, service_name: Optional[str] = None) -> Any:
        """Fetch the OpenAPI document referenced by the service's REST binding."""
        service = self._find_service(service_name)
        schema_url = service.transports.rest.schema_url if service and service.transports.rest else None
        if not schema_url:
            raise UcpError(f"No REST schema URL for service: {service_name or 'default'}")

        async with self._client() as client:
            resp = await client.get(schema_url, headers=self.headers)
        if not resp.is_success:
            raise UcpApiError(
                f"Failed to fetch schema from {schema_url}: {resp.status_code}",
                resp.status_code,
                resp.text,
            )
        return resp.json()

    # ========================================================================
    # Internal helpers
    # ========================================================================

    async def _call_via_mcp(self, endpoint: str, path: str, http_method: str, body: Any) -> Any:
        rpc_method, params = rest_path_to_rpc(path, http_method, body)
        return await self._get_mcp_client(endpoint).call(rpc_method, params)

    def _get_mcp_client(self, endpoint: str) -> McpClient:
        if self._mcp_client is None or self._mcp_client.endpoint != endpoint:
            self._mcp_client = McpClient(
                endpoint,
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
                transport=self._transport,
            )
        return self._mcp_client
