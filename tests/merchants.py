"""
In-process merchant doubles for the test suite.

Each factory returns a FastAPI app; tests reach it through
httpx.ASGITransport, so no sockets are opened:

  - create_ucp_merchant: UCP profile at /.well-known/ucp plus the REST API
    under /ucp/v1 and/or a JSON-RPC endpoint at /mcp
  - create_acp_merchant: ACP checkout sessions (bearer auth) plus a public
    product catalog and /health

Every app records (method, path) of each request in app.state.requests.
"""

import time
import uuid
from typing import Any, Dict, Iterable, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

SHOP_URL = "https://shop.test"
ACP_URL = "http://acp.test"
ACP_API_KEY = "test_acp_key"
UCP_VERSION = "2026-01-11"

DEFAULT_PRODUCTS: List[Dict[str, Any]] = [
    {
        "id": "prod_wireless_headphones",
        "name": "ProSound Wireless Headphones",
        "description": "Premium noise-cancelling wireless headphones with 40-hour battery life.",
        "price": {"amount": "149.99", "currency": "USD"},
        "category": "Electronics",
        "inStock": True,
    },
    {
        "id": "prod_laptop_stand",
        "name": "ErgoRise Laptop Stand",
        "description": "Adjustable aluminum laptop stand with ventilation.",
        "price": {"amount": "59.99", "currency": "USD"},
        "category": "Accessories",
        "inStock": True,
    },
    {
        "id": "prod_kb",
        "name": "TypePro Mechanical Keyboard",
        "description": "Hot-swappable mechanical keyboard with RGB backlighting and PBT keycaps.",
        "price": {"amount": "89.99", "currency": "USD"},
        "category": "Electronics",
        "inStock": True,
    },
    {
        "id": "prod_usb_hub",
        "name": "ConnectAll USB-C Hub",
        "description": "7-in-1 USB-C hub with HDMI 4K and 100W PD pass-through.",
        "price": {"amount": "39.99", "currency": "USD"},
        "category": "Accessories",
        "inStock": True,
    },
    {
        "id": "prod_desk_mat",
        "name": "WorkPad XL Desk Mat",
        "description": "Extra-large desk mat with anti-slip base.",
        "price": {"amount": "29.99", "currency": "USD"},
        "category": "Accessories",
        "inStock": True,
    },
    {
        "id": "prod_bluetooth_mouse",
        "name": "SilentClick Bluetooth Mouse",
        "description": "Ergonomic wireless mouse with silent clicks.",
        "price": {"amount": "34.99", "currency": "USD"},
        "category": "Electronics",
        "inStock": False,
    },
]

US_ADDRESS = {
    "name": "Jane Doe",
    "line1": "123 Main St",
    "city": "Springfield",
    "state": "IL",
    "postalCode": "62701",
    "country": "US",
}

STANDARD_SHIPPING = {"amount": "5.99", "currency": "USD"}


def _suffix() -> str:
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


class MerchantError(Exception):
    """Business failure, rendered as an HTTP status or a JSON-RPC error."""

    def __init__(self, status: int, message: str, rpc_code: int = -32602):
        super().__init__(message)
        self.status = status
        self.message = message
        self.rpc_code = rpc_code


# ============================================================================
# UCP merchant
# ============================================================================

def build_ucp_profile(
    base_url: str = SHOP_URL,
    transports: Iterable[str] = ("rest",),
    keyed_capabilities: bool = False,
) -> Dict[str, Any]:
    transports = set(transports)
    service: Dict[str, Any] = {
        "version": UCP_VERSION,
        "spec": "https://ucp.dev/specification/overview/",
    }
    if "rest" in transports:
        service["rest"] = {
            "schema": f"{base_url}/ucp/schema/openapi.json",
            "endpoint": f"{base_url}/ucp/v1",
        }
    if "mcp" in transports:
        service["mcp"] = {"endpoint": f"{base_url}/mcp"}

    capabilities = [
        {
            "name": "dev.ucp.shopping.checkout",
            "version": UCP_VERSION,
            "spec": "https://ucp.dev/specification/checkout/",
            "schema": "https://ucp.dev/schemas/shopping/checkout.json",
        },
        {
            "name": "dev.ucp.shopping.order",
            "version": UCP_VERSION,
            "spec": "https://ucp.dev/specification/order/",
            "schema": "https://ucp.dev/schemas/shopping/order.json",
        },
        {
            "name": "dev.ucp.shopping.fulfillment",
            "version": UCP_VERSION,
            "spec": "https://ucp.dev/specification/fulfillment/",
            "schema": "https://ucp.dev/schemas/shopping/fulfillment.json",
            "extends": "dev.ucp.shopping.order",
        },
    ]
    if keyed_capabilities:
        keyed: Dict[str, Any] = {}
        for cap in capabilities:
            entry = {k: v for k, v in cap.items() if k != "name"}
            keyed.setdefault(cap["name"], []).append(entry)
        capabilities = keyed

    return {
        "ucp": {
            "version": UCP_VERSION,
            "services": {"dev.ucp.shopping": service},
            "capabilities": capabilities,
        },
        "payment": {
            "handlers": [
                {
                    "id": "mock_payment",
                    "name": "Mock Payment",
                    "version": UCP_VERSION,
                    "spec": "https://ucp.dev/handlers/tokenization/mock/",
                    "config": {"test_mode": True},
                }
            ]
        },
    }


class UcpMerchantBackend:
    """Catalog, checkout sessions and orders shared by the REST and RPC routes."""

    def __init__(self, products: List[Dict[str, Any]]):
        self.products = products
        self.sessions: Dict[str, List[Dict[str, Any]]] = {}
        self.orders: Dict[str, Dict[str, Any]] = {}

    def list_products(self, category: Optional[str] = None) -> Dict[str, Any]:
        products = [
            p for p in self.products
            if not category or p.get("category", "").lower() == category.lower()
        ]
        return {"products": products, "total": len(products)}

    def search_products(self, q: str = "") -> Dict[str, Any]:
        needle = q.lower()
        products = [
            p for p in self.products
            if needle in p["name"].lower() or needle in p["description"].lower()
        ]
        return {"products": products, "total": len(products), "query": q}

    def get_product(self, product_id: str) -> Dict[str, Any]:
        for product in self.products:
            if product["id"] == product_id:
                return product
        raise MerchantError(404, f"Product not found: {product_id}")

    def create_checkout(self, body: Dict[str, Any]) -> Dict[str, Any]:
        items = body.get("items") or []
        if not items:
            raise MerchantError(400, "Cart is empty")
        enriched = []
        for item in items:
            product = next((p for p in self.products if p["id"] == item.get("productId")), {})
            enriched.append({
                **item,
                "name": product.get("name", item.get("name")),
                "price": product.get("price", item.get("price")),
            })
        session_id = f"sess_{_suffix()}"
        self.sessions[session_id] = enriched
        subtotal = sum(float(i["price"]["amount"]) * i["quantity"] for i in enriched)
        return {
            "sessionId": session_id,
            "items": enriched,
            "subtotal": {"amount": f"{subtotal:.2f}", "currency": "USD"},
            "shipping": {
                "options": [
                    {"id": "standard", "name": "Standard Shipping", "price": STANDARD_SHIPPING},
                ]
            },
        }

    def complete_checkout(self, body: Dict[str, Any]) -> Dict[str, Any]:
        session_id = body.get("sessionId")
        items = self.sessions.get(session_id) or body.get("items") or []
        if not items:
            raise MerchantError(400, "No items in checkout session")
        if (body.get("payment") or {}).get("token") == "tok_mock_failure":
            raise MerchantError(402, "Payment declined", rpc_code=-32000)

        subtotal = sum(float(i["price"]["amount"]) * i["quantity"] for i in items)
        order_id = f"ord_{_suffix()}"
        order = {
            "id": order_id,
            "status": "confirmed",
            "items": items,
            "subtotal": {"amount": f"{subtotal:.2f}", "currency": "USD"},
            "total": {"amount": f"{subtotal + 5.99:.2f}", "currency": "USD"},
            "shippingAddress": body.get("shippingAddress"),
        }
        self.orders[order_id] = order
        self.sessions.pop(session_id, None)
        return {"orderId": order_id, "status": "confirmed", "order": order}

    def get_order(self, order_id: str) -> Dict[str, Any]:
        if order_id not in self.orders:
            raise MerchantError(404, f"Order not found: {order_id}")
        return {"order": self.orders[order_id]}


def create_ucp_merchant(
    products: Optional[List[Dict[str, Any]]] = None,
    base_url: str = SHOP_URL,
    transports: Iterable[str] = ("rest",),
    keyed_capabilities: bool = False,
    profile_paths: Iterable[str] = ("/.well-known/ucp", "/.well-known/ucp.json"),
    search_enabled: bool = True,
    mcp_http_status: Optional[int] = None,
) -> FastAPI:
    """UCP merchant double.

    search_enabled=False drops the search route, so /products/search is
    served by the product lookup and 404s. mcp_http_status makes the JSON-RPC
    endpoint answer every call with that HTTP status.
    """
    transports = tuple(transports)
    backend = UcpMerchantBackend(list(products if products is not None else DEFAULT_PRODUCTS))
    profile = build_ucp_profile(base_url, transports, keyed_capabilities)

    app = FastAPI()
    app.state.backend = backend
    app.state.requests = []
    app.state.rpc_calls = []
    app.state.notifications = []

    @app.middleware("http")
    async def record_requests(request: Request, call_next):
        app.state.requests.append((request.method, request.url.path))
        return await call_next(request)

    async def get_profile():
        return profile

    for path in profile_paths:
        app.add_api_route(path, get_profile, methods=["GET"])

    def _rest(fn, *args):
        try:
            return fn(*args)
        except MerchantError as e:
            return JSONResponse(status_code=e.status, content={"error": e.message})

    if "rest" in transports:
        @app.get("/ucp/schema/openapi.json")
        async def openapi_doc():
            return {"openapi": "3.1.0", "servers": [{"url": f"{base_url}/ucp/v1"}]}

        @app.get("/ucp/v1/products")
        async def list_products(category: Optional[str] = None):
            return backend.list_products(category)

        if search_enabled:
            @app.get("/ucp/v1/products/search")
            async def search_products(q: str = ""):
                return backend.search_products(q)

        @app.get("/ucp/v1/products/{product_id}")
        async def get_product(product_id: str):
            return _rest(backend.get_product, product_id)

        @app.post("/ucp/v1/checkout")
        async def create_checkout(request: Request):
            return _rest(backend.create_checkout, await request.json())

        @app.post("/ucp/v1/checkout/complete")
        async def complete_checkout(request: Request):
            return _rest(backend.complete_checkout, await request.json())

        @app.get("/ucp/v1/orders/{order_id}")
        async def get_order(order_id: str):
            return _rest(backend.get_order, order_id)

    if "mcp" in transports:
        methods = {
            "products/list": lambda p: backend.list_products(p.get("category")),
            "products/search": lambda p: backend.search_products(p.get("q", "")),
            "products/get": lambda p: backend.get_product(p.get("id", "")),
            "checkout/create": backend.create_checkout,
            "checkout/complete": backend.complete_checkout,
            "orders/get": lambda p: backend.get_order(p.get("id", "")),
        }

        @app.post("/mcp")
        async def json_rpc(request: Request):
            if mcp_http_status is not None:
                return JSONResponse(status_code=mcp_http_status, content={"error": "unavailable"})

            envelope = await request.json()
            if not isinstance(envelope, dict) or envelope.get("jsonrpc") != "2.0":
                return {"jsonrpc": "2.0", "id": None,
                        "error": {"code": -32600, "message": "Invalid Request"}}

            if "id" not in envelope:
                app.state.notifications.append(envelope)
                return Response(status_code=202)

            app.state.rpc_calls.append(envelope)
            rpc_id = envelope["id"]
            handler = methods.get(envelope.get("method"))
            if handler is None:
                return {"jsonrpc": "2.0", "id": rpc_id, "error": {
                    "code": -32601, "message": f"Method not found: {envelope.get('method')}",
                }}
            try:
                result = handler(envelope.get("params") or {})
            except MerchantError as e:
                return {"jsonrpc": "2.0", "id": rpc_id,
                        "error": {"code": e.rpc_code, "message": e.message}}
            return {"jsonrpc": "2.0", "id": rpc_id, "result": result}

    return app


# ============================================================================
# ACP merchant
# ============================================================================

def _cents(amount: str) -> int:
    return int(round(float(amount) * 100))


def create_acp_merchant(
    products: Optional[List[Dict[str, Any]]] = None,
    api_key: str = ACP_API_KEY,
    name: str = "Mock ACP Merchant",
    base_url: str = ACP_URL,
) -> FastAPI:
    """ACP merchant double: session state machine behind bearer auth."""
    catalog = list(products if products is not None else DEFAULT_PRODUCTS)
    sessions: Dict[str, Dict[str, Any]] = {}

    app = FastAPI()
    app.state.sessions = sessions
    app.state.requests = []
    app.state.headers = []

    @app.middleware("http")
    async def record_requests(request: Request, call_next):
        app.state.requests.append((request.method, request.url.path))
        app.state.headers.append(dict(request.headers))
        return await call_next(request)

    def _error(status: int, message: str, **extra: Any) -> JSONResponse:
        return JSONResponse(status_code=status, content={"error": message, **extra})

    def _authorized(request: Request) -> bool:
        return request.headers.get("authorization") == f"Bearer {api_key}"

    def _find(product_id: str) -> Optional[Dict[str, Any]]:
        return next((p for p in catalog if p["id"] == product_id), None)

    @app.get("/health")
    async def health():
        return {"status": "ok", "merchant": name, "protocol": "acp"}

    @app.get("/products")
    async def list_products(category: Optional[str] = None):
        filtered = [p for p in catalog if not category or p["category"].lower() == category.lower()]
        return {"products": filtered, "total": len(filtered)}

    @app.get("/products/search")
    async def search_products(q: str = ""):
        needle = q.lower()
        filtered = [
            p for p in catalog
            if needle in p["name"].lower()
            or needle in p["description"].lower()
            or needle in p["category"].lower()
        ]
        return {"products": filtered, "total": len(filtered), "query": q}

    @app.get("/products/{product_id}")
    async def get_product(product_id: str):
        product = _find(product_id)
        if product is None:
            return _error(404, f"Product not found: {product_id}")
        return product

    @app.post("/checkout_sessions")
    async def create_session(request: Request):
        if not _authorized(request):
            return _error(401, "Unauthorized: invalid or missing Bearer token")
        body = await request.json()
        requested = body.get("line_items") or []
        if not requested:
            return _error(400, "line_items is required and must not be empty")

        line_items = []
        for entry in requested:
            product = _find(entry["product_id"])
            if product is None:
                return _error(400, f"Product not found: {entry['product_id']}")
            unit = _cents(product["price"]["amount"])
            currency = product["price"]["currency"]
            line_items.append({
                "id": f"li_{uuid.uuid4().hex[:8]}",
                "name": product["name"],
                "product_id": product["id"],
                "quantity": entry["quantity"],
                "unit_price": {"amount": unit, "currency": currency},
                "total_price": {"amount": unit * entry["quantity"], "currency": currency},
            })

        subtotal = sum(li["total_price"]["amount"] for li in line_items)
        currency = line_items[0]["unit_price"]["currency"]
        session = {
            "id": f"cs_{_suffix()}",
            "status": "ready_for_payment" if body.get("shipping_address") else "not_ready_for_payment",
            "line_items": line_items,
            "totals": {
                "subtotal": {"amount": subtotal, "currency": currency},
                "total": {"amount": subtotal, "currency": currency},
            },
            "payment_handlers": [{
                "type": "stripe_shared_payment_token",
                "handler_spec": {"version": "2026-01-30", "supported_currencies": ["usd", "eur"]},
            }],
            "links": {"terms_of_use": f"{base_url}/terms"},
        }
        if body.get("shipping_address"):
            session["shipping_address"] = body["shipping_address"]
        sessions[session["id"]] = session
        return JSONResponse(status_code=201, content=session)

    @app.get("/checkout_sessions/{session_id}")
    async def get_session(session_id: str, request: Request):
        if not _authorized(request):
            return _error(401, "Unauthorized: invalid or missing Bearer token")
        if session_id not in sessions:
            return _error(404, f"Checkout session not found: {session_id}")
        return sessions[session_id]

    @app.post("/checkout_sessions/{session_id}")
    async def update_session(session_id: str, request: Request):
        if not _authorized(request):
            return _error(401, "Unauthorized: invalid or missing Bearer token")
        session = sessions.get(session_id)
        if session is None:
            return _error(404, f"Checkout session not found: {session_id}")
        if session["status"] in ("completed", "canceled"):
            return _error(400, f"Cannot update session in {session['status']} state")

        body = await request.json()
        if body.get("shipping_address"):
            totals = session["totals"]
            session["shipping_address"] = body["shipping_address"]
            totals["shipping"] = {"amount": 599, "currency": totals["subtotal"]["currency"]}
            totals["total"] = {
                "amount": totals["subtotal"]["amount"] + 599,
                "currency": totals["subtotal"]["currency"],
            }
            session["status"] = "ready_for_payment"
        return session

    @app.post("/checkout_sessions/{session_id}/complete")
    async def complete_session(session_id: str, request: Request):
        if not _authorized(request):
            return _error(401, "Unauthorized: invalid or missing Bearer token")
        session = sessions.get(session_id)
        if session is None:
            return _error(404, f"Checkout session not found: {session_id}")
        if session["status"] != "ready_for_payment":
            return _error(
                400,
                f"Cannot complete session in {session['status']} state. Must be ready_for_payment.",
            )

        body = await request.json()
        if not body.get("payment_token") or not body.get("payment_handler"):
            return _error(400, "payment_token and payment_handler are required")
        if body["payment_token"] == "tok_mock_failure":
            session["status"] = "not_ready_for_payment"
            return _error(402, "Payment declined", session=session)

        session["status"] = "completed"
        return session

    @app.post("/checkout_sessions/{session_id}/cancel")
    async def cancel_session(session_id: str, request: Request):
        if not _authorized(request):
            return _error(401, "Unauthorized: invalid or missing Bearer token")
        session = sessions.get(session_id)
        if session is None:
            return _error(404, f"Checkout session not found: {session_id}")
        if session["status"] == "completed":
            return _error(400, "Cannot cancel a completed session")
        session["status"] = "canceled"
        return session

    return app
