"""
Built-in shopping tools exposed to the LLM.

Each entry is a function-calling declaration (name, description, JSON-Schema
parameters). Argument names are camelCase (`productId`, `postalCode` ...).
The agent builds a handler for every name listed here.
"""

from typing import Any, Dict, List

from ucp_agent.llm_types import ToolDefinition


def _object(properties: Dict[str, Any], required: List[str] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


SHOPPING_AGENT_TOOLS: List[ToolDefinition] = [
    ToolDefinition(
        name="discover_merchant",
        description=(
            "Discover a merchant by domain. Fetches the merchant's UCP profile from "
            "/.well-known/ucp (or falls back to a configured ACP merchant) and returns "
            "its protocol, capabilities, services and payment configuration. "
            "Call this first, before any other operation."
        ),
        parameters=_object(
            {"domain": {"type": "string", "description": 'Merchant domain (e.g., "shop.example.com")'}},
            ["domain"],
        ),
    ),
    ToolDefinition(
        name="list_capabilities",
        description=(
            "List the capabilities the discovered merchant supports "
            "(checkout, orders, fulfillment, discounts ...)."
        ),
        parameters=_object({}),
    ),
    ToolDefinition(
        name="browse_products",
        description="Browse the product catalog. Returns a paginated list with names, prices and availability.",
        parameters=_object({
            "page": {"type": "integer", "description": "Page number (default: 1)"},
            "limit": {"type": "integer", "description": "Products per page (default: 10, max: 50)"},
            "category": {"type": "string", "description": "Filter by product category"},
        }),
    ),
    ToolDefinition(
        name="search_products",
        description="Search for products by keyword.",
        parameters=_object(
            {
                "query": {"type": "string", "description": 'Search query (e.g., "wireless headphones")'},
                "limit": {"type": "integer", "description": "Maximum results to return (default: 10)"},
            },
            ["query"],
        ),
    ),
    ToolDefinition(
        name="get_product",
        description="Get full details of one product by ID: description, variants, pricing and availability.",
        parameters=_object(
            {"productId": {"type": "string", "description": "The product ID to look up"}},
            ["productId"],
        ),
    ),
    ToolDefinition(
        name="add_to_cart",
        description="Add a product to the cart. Adding the same product again increases its quantity.",
        parameters=_object(
            {
                "productId": {"type": "string", "description": "The product ID to add"},
                "quantity": {"type": "integer", "description": "Quantity to add (default: 1)"},
                "variantId": {"type": "string", "description": "Optional variant ID (e.g., size or color)"},
            },
            ["productId"],
        ),
    ),
    ToolDefinition(
        name="view_cart",
        description="View the cart: items, quantities and subtotal.",
        parameters=_object({}),
    ),
    ToolDefinition(
        name="remove_from_cart",
        description="Remove an item from the cart by product ID.",
        parameters=_object(
            {"productId": {"type": "string", "description": "The product ID to remove"}},
            ["productId"],
        ),
    ),
    ToolDefinition(
        name="initiate_checkout",
        description=(
            "Start checkout with the current cart. Returns the checkout session and the "
            "remaining required steps (shipping, payment)."
        ),
        parameters=_object({}),
    ),
    ToolDefinition(
        name="submit_shipping",
        description="Submit the shipping address for the active checkout session.",
        parameters=_object(
            {
                "name": {"type": "string", "description": "Recipient full name"},
                "line1": {"type": "string", "description": "Address line 1"},
                "line2": {"type": "string", "description": "Address line 2 (optional)"},
                "city": {"type": "string", "description": "City"},
                "state": {"type": "string", "description": "State or province"},
                "postalCode": {"type": "string", "description": "Postal/ZIP code"},
                "country": {"type": "string", "description": 'Country code (e.g., "US")'},
            },
            ["name", "line1", "city", "state", "postalCode", "country"],
        ),
    ),
    ToolDefinition(
        name="submit_payment",
        description=(
            "Submit payment to complete the order. Requires shipping to be submitted first. "
            "Returns the order confirmation with its order ID."
        ),
        parameters=_object(
            {
                "paymentMethod": {"type": "string", "description": 'Payment method (e.g., "stripe", "mock")'},
                "paymentToken": {
                    "type": "string",
                    "description": 'Opaque payment token (use "tok_mock_success" for testing)',
                },
            },
            ["paymentMethod"],
        ),
    ),
    ToolDefinition(
        name="get_order_status",
        description="Check the status of an order by order ID.",
        parameters=_object(
            {"orderId": {"type": "string", "description": "The order ID to check"}},
            ["orderId"],
        ),
    ),
]

BUILTIN_TOOL_NAMES = frozenset(tool.name for tool in SHOPPING_AGENT_TOOLS)
