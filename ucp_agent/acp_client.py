"""
ACP client: checkout-session lifecycle against one ACP merchant endpoint.

Every session call is bearer-authenticated and carries the API-Version header
plus a unique Request-Id. The merchant owns the session state; the client
mirrors the status returned by each call (including the session embedded in a
402 decline body) and refuses transitions the mirrored status already rules
out, before touching the network:

  - completed / canceled sessions accept nothing but `get`
  - `complete` requires ready_for_payment
"""

import uuid
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ucp_agent.acp_schemas import (
    AcpCheckoutSession,
    AcpCheckoutStatus,
    AcpCompleteCheckoutRequest,
    AcpCreateCheckoutRequest,
    AcpLineItemInput,
    AcpShippingAddress,
    AcpUpdateCheckoutRequest,
    is_action_allowed,
)
from ucp_agent.config import DEFAULT_ACP_API_VERSION, DEFAULT_REQUEST_TIMEOUT
from ucp_agent.logger import get_logger

logger = get_logger("acp_client")


class AcpError(Exception):
    """Base class for ACP client errors."""


class AcpApiError(AcpError):
    """Non-2xx response from the ACP merchant."""

    def __init__(self, message: str, status_code: int, response_body: str):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class AcpStateError(AcpError):
    """Transition refused locally because the mirrored status forbids it."""


class AcpClient:
    """Client for one ACP merchant (checkout sessions + public catalog)."""

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        api_version: str = DEFAULT_ACP_API_VERSION,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.api_version = api_version
        self.timeout = timeout
        self._transport = transport
        # session id -> last status seen from the merchant
        self._statuses: Dict[str, AcpCheckoutStatus] = {}

    # ========================================================================
    # Checkout sessions
    # ========================================================================

    async def create_checkout(
        self,
        line_items: List[Union[AcpLineItemInput, Dict[str, Any]]],
        shipping_address: Optional[Union[AcpShippingAddress, Dict[str, Any]]] = None,
    ) -> AcpCheckoutSession:
        """POST /checkout_sessions"""
        body = AcpCreateCheckoutRequest(line_items=line_items, shipping_address=shipping_address)
        return await self._session_request("POST", "/checkout_sessions", body.model_dump(exclude_none=True))

    async def get_checkout(self, session_id: str) -> AcpCheckoutSession:
        """GET /checkout_sessions/{id}"""
        return await self._session_request("GET", f"/checkout_sessions/{session_id}")

    async def update_checkout(
        self,
        session_id: str,
        shipping_address: Optional[Union[AcpShippingAddress, Dict[str, Any]]] = None,
        payment_handler: Optional[str] = None,
        discount_code: Optional[str] = None,
    ) -> AcpCheckoutSession:
        """POST /checkout_sessions/{id}"""
        self._guard(session_id, "update")
        body = AcpUpdateCheckoutRequest(
            shipping_address=shipping_address,
            payment_handler=payment_handler,
            discount_code=discount_code,
        )
        return await self._session_request(
            "POST", f"/checkout_sessions/{session_id}", body.model_dump(exclude_none=True)
        )

    async def complete_checkout(
        self,
        session_id: str,
        payment_token: str,
        payment_handler: str,
    ) -> AcpCheckoutSession:
        """POST /checkout_sessions/{id}/complete"""
        self._guard(session_id, "complete")
        body = AcpCompleteCheckoutRequest(payment_token=payment_token, payment_handler=payment_handler)
        return await self._session_request(
            "POST", f"/checkout_sessions/{session_id}/complete", body.model_dump()
        )

    async def cancel_checkout(self, session_id: str) -> AcpCheckoutSession:
        """POST /checkout_sessions/{id}/cancel"""
        self._guard(session_id, "cancel")
        return await self._session_request("POST", f"/checkout_sessions/{session_id}/cancel")

    def get_status(self, session_id: str) -> Optional[AcpCheckoutStatus]:
        """Last status mirrored for a session, or None if never seen."""
        return self._statuses.get(session_id)

    # ========================================================================
    # Public catalog (no auth)
    # ========================================================================

    async def health(self) -> Dict[str, Any]:
        return await self._request("GET", "/health", auth=False)

    async def list_products(self, category: Optional[str] = None) -> Dict[str, Any]:
        path = "/products"
        params = {"category": category} if category else None
        return await self._request("GET", path, params=params, auth=False)

    async def search_products(self, query: str) -> Dict[str, Any]:
        return await self._request("GET", "/products/search", params={"q": query}, auth=False)

    async def get_product(self, product_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/products/{quote(product_id, safe='')}", auth=False)

    # ========================================================================
    # Internal
    # ========================================================================

    def _guard(self, session_id: str, action: str) -> None:
        status = self._statuses.get(session_id)
        if status is not None and not is_action_allowed(status, action):
            raise AcpStateError(
                f"Cannot {action} checkout session {session_id} in {status.value} state"
            )

    def _mirror(self, session: AcpCheckoutSession) -> AcpCheckoutSession:
        previous = self._statuses.get(session.id)
        self._statuses[session.id] = session.status
        if previous != session.status:
            logger.info(
                "acp_client: session %s %s → %s",
                session.id, previous.value if previous else "(new)", session.status.value,
            )
        return session

    async def _session_request(
        self, method: str, path: str, body: Optional[Dict[str, Any]] = None
    ) -> AcpCheckoutSession:
        data = await self._request(method, path, body=body)
        return self._mirror(AcpCheckoutSession.model_validate(data))

    def _headers(self, auth: bool) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "API-Version": self.api_version,
            "Request-Id": f"req_{uuid.uuid4().hex}",
        }
        if auth:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        auth: bool = True,
    ) -> Any:
        url = f"{self.endpoint}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.request(
                    method, url, json=body, params=params, headers=self._headers(auth)
                )
        except httpx.RequestError as e:
            logger.warning("acp_client: %s %s request failed: %s", method, path, e)
            raise AcpError(f"ACP request failed: {method} {path}: {e}") from e

        if not resp.is_success:
            self._mirror_error_body(resp)
            raise AcpApiError(
                f"ACP API call failed: {method} {path} → {resp.status_code}",
                resp.status_code,
                resp.text,
            )
        return resp.json()

    def _mirror_error_body(self, resp: httpx.Response) -> None:
        """A decline (402) embeds the updated session; keep the mirror in sync."""
        try:
            data = resp.json()
        except ValueError:
            return
        if isinstance(data, dict) and isinstance(data.get("session"), dict):
            try:
                self._mirror(AcpCheckoutSession.model_validate(data["session"]))
            except ValidationError:
                logger.debug("acp_client: unparseable session in %s body", resp.status_code)
