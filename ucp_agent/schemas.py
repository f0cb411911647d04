"""
Shopping and agent schemas.

Models shared by the orchestrator, the shopping state and the protocol clients:
cart lines, addresses, orders, the step trace, usage summaries and stream events.

Tool payloads are exchanged with the LLM in camelCase (``productId``,
``postalCode``, ``itemCount`` ...), so models that cross that boundary use a
camelCase alias generator and accept either spelling on input.
"""

import time
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


_CENTS = Decimal("0.01")


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys for tool payloads."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================================
# Money
# ============================================================================

class MoneyAmount(CamelModel):
    """Decimal-string amount plus ISO 4217 currency (e.g. '89.99' USD)."""
    amount: str = Field(..., description="Decimal amount as a string")
    currency: str = Field("USD", description="ISO 4217 currency code")

    def to_decimal(self) -> Decimal:
        return Decimal(self.amount)


def format_amount(value: Decimal) -> str:
    """Format a Decimal amount with two fractional digits."""
    return str(value.quantize(_CENTS, rounding=ROUND_HALF_UP))


def minor_units_to_money(amount: int, currency: str) -> MoneyAmount:
    """Convert integer minor units (cents) to a MoneyAmount."""
    return MoneyAmount(amount=format_amount(Decimal(amount) / 100), currency=currency.upper())


def money_to_minor_units(money: MoneyAmount) -> int:
    """Convert a MoneyAmount to integer minor units (cents)."""
    return int((money.to_decimal() * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ============================================================================
# Cart / Checkout
# ============================================================================

class CartItem(CamelModel):
    """One cart line. The cart holds at most one line per product_id."""
    product_id: str = Field(..., description="Merchant product ID")
    name: str = Field(..., description="Product display name")
    quantity: int = Field(1, ge=1, description="Quantity (positive integer)")
    price: MoneyAmount = Field(..., description="Unit price")
    variant_id: Optional[str] = Field(None, description="Optional variant (size, colour ...)")


class CartState(CamelModel):
    """Snapshot of the cart returned by cart tools."""
    items: List[CartItem]
    subtotal: MoneyAmount
    item_count: int


class ShippingAddress(CamelModel):
    """Shipping destination. Presence of the required fields is the only validation."""
    name: str
    line1: str
    line2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


class Order(CamelModel):
    """A placed order. Created only on successful payment and never mutated."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    status: OrderStatus = OrderStatus.CONFIRMED
    items: List[CartItem]
    subtotal: MoneyAmount
    total: MoneyAmount
    shipping_address: Optional[ShippingAddress] = None
    created_at: str
    protocol: str = "ucp"
    payment_method: Optional[str] = None


class CheckoutResult(CamelModel):
    """Summary of the last order placed during a run."""
    order_id: str
    status: str = Field(..., description="completed | pending | failed")
    items: List[CartItem]
    total: MoneyAmount
    payment_method: Optional[str] = None
    fulfillment: Optional[Dict[str, Any]] = None


# ============================================================================
# Agent trace
# ============================================================================

class StepType(str, Enum):
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    FINAL_ANSWER = "final_answer"


class AgentStep(BaseModel):
    """One entry of the append-only run trace."""
    iteration: int
    type: StepType
    tool_name: Optional[str] = None
    tool_input: Optional[Dict[str, Any]] = None
    tool_output: Any = None
    content: Optional[str] = None
    timestamp: int = Field(default_factory=now_ms)


class AgentUsageSummary(BaseModel):
    """Token, call-count and latency totals for one run."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    llm_calls: int = 0
    tool_calls: int = 0
    tool_call_latency: Dict[str, List[float]] = Field(default_factory=dict)
    total_latency_ms: float = 0.0


class MerchantInfo(BaseModel):
    """Merchant bound during the run."""
    domain: str
    protocol: str
    profile: Optional[Dict[str, Any]] = None


class AgentResult(BaseModel):
    """Outcome of ShoppingAgent.run() (and the terminal stream event)."""
    success: bool
    answer: str
    steps: List[AgentStep] = Field(default_factory=list)
    iterations: int = 0
    merchant: Optional[MerchantInfo] = None
    checkout: Optional[CheckoutResult] = None
    usage: Optional[AgentUsageSummary] = None
    error: Optional[str] = None


class StreamEventType(str, Enum):
    TEXT_DELTA = "text_delta"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    DONE = "done"
    ERROR = "error"


class AgentStreamEvent(BaseModel):
    """Incremental event yielded by ShoppingAgent.run_stream()."""
    type: StreamEventType
    iteration: int
    timestamp: int = Field(default_factory=now_ms)
    text: Optional[str] = None
    tool_name: Optional[str] = None
    tool_input: Optional[Dict[str, Any]] = None
    tool_output: Any = None
    result: Optional[AgentResult] = None
    error: Optional[str] = None
