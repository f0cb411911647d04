"""
Agentic Commerce Protocol (ACP) Schemas, API version 2026-01-30.

The checkout flow is a server-owned session resource behind bearer auth:

    POST   /checkout_sessions                 → create
    GET    /checkout_sessions/{id}            → read
    POST   /checkout_sessions/{id}            → update (shipping, handler, discount)
    POST   /checkout_sessions/{id}/complete   → complete with payment token
    POST   /checkout_sessions/{id}/cancel     → cancel

Status lifecycle:

    create ──► not_ready_for_payment ──(shipping)──► ready_for_payment ──► completed
                      ▲                                     │
                      └──────────── payment declined ───────┘
    not_ready / ready ──(cancel)──► canceled

All money is integer minor units (cents) plus an ISO currency code.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AcpCheckoutStatus(str, Enum):
    NOT_READY_FOR_PAYMENT = "not_ready_for_payment"
    READY_FOR_PAYMENT = "ready_for_payment"
    COMPLETED = "completed"
    CANCELED = "canceled"


TERMINAL_STATUSES: FrozenSet[AcpCheckoutStatus] = frozenset({
    AcpCheckoutStatus.COMPLETED,
    AcpCheckoutStatus.CANCELED,
})

# Actions a session in a given status may still accept.
ALLOWED_ACTIONS: Dict[AcpCheckoutStatus, FrozenSet[str]] = {
    AcpCheckoutStatus.NOT_READY_FOR_PAYMENT: frozenset({"get", "update", "cancel"}),
    AcpCheckoutStatus.READY_FOR_PAYMENT: frozenset({"get", "update", "complete", "cancel"}),
    AcpCheckoutStatus.COMPLETED: frozenset({"get"}),
    AcpCheckoutStatus.CANCELED: frozenset({"get"}),
}


def is_action_allowed(status: AcpCheckoutStatus, action: str) -> bool:
    return action in ALLOWED_ACTIONS.get(status, frozenset())


# ============================================================================
# Shared Sub-objects
# ============================================================================

class AcpMoney(BaseModel):
    """Integer minor units (e.g. 8999 for $89.99)."""
    amount: int = Field(..., description="Amount in minor units")
    currency: str = Field("USD", description="ISO 4217 currency code")


class AcpShippingAddress(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    line1: str
    line2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str = Field("US", description="ISO 3166-1 alpha-2 country code")


class AcpLineItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    quantity: int = Field(..., ge=1)
    unit_price: AcpMoney
    total_price: AcpMoney
    product_id: Optional[str] = None


class AcpTotals(BaseModel):
    """Recomputed by the merchant whenever line items or shipping change."""
    subtotal: AcpMoney
    tax: Optional[AcpMoney] = None
    shipping: Optional[AcpMoney] = None
    total: AcpMoney


class AcpPaymentHandler(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="e.g. stripe_shared_payment_token")
    handler_spec: Optional[Dict[str, Any]] = None


class AcpCheckoutSession(BaseModel):
    """Checkout session as returned by every session endpoint."""
    model_config = ConfigDict(extra="allow")

    id: str
    status: AcpCheckoutStatus
    line_items: List[AcpLineItem] = Field(default_factory=list)
    totals: AcpTotals
    shipping_address: Optional[AcpShippingAddress] = None
    payment_handlers: List[AcpPaymentHandler] = Field(default_factory=list)
    links: Optional[Dict[str, str]] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# ============================================================================
# Request Models
# ============================================================================

class AcpLineItemInput(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    variant_id: Optional[str] = None


class AcpCreateCheckoutRequest(BaseModel):
    """Body for POST /checkout_sessions."""
    line_items: List[AcpLineItemInput] = Field(..., min_length=1)
    shipping_address: Optional[AcpShippingAddress] = None


class AcpUpdateCheckoutRequest(BaseModel):
    """Body for POST /checkout_sessions/{id}."""
    shipping_address: Optional[AcpShippingAddress] = None
    payment_handler: Optional[str] = None
    discount_code: Optional[str] = None


class AcpCompleteCheckoutRequest(BaseModel):
    """Body for POST /checkout_sessions/{id}/complete."""
    payment_token: str
    payment_handler: str
