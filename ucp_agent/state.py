"""
Shopping state owned by one ShoppingAgent.

Holds the cart, the active checkout session, the shipping address, the order
ledger and the protocol bound for the current run. All mutations go through
the transition methods below, which enforce the checkout ordering:

    non-empty cart → start_checkout → set_shipping → record_order
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from ucp_agent.schemas import (
    CartItem,
    CartState,
    CheckoutResult,
    MoneyAmount,
    Order,
    OrderStatus,
    ShippingAddress,
    format_amount,
)

DEFAULT_CURRENCY = "USD"
ESTIMATED_DELIVERY_DAYS = 5


class CheckoutStateError(Exception):
    """Operation attempted out of checkout order."""


class ProtocolBindingError(Exception):
    """A different commerce protocol is already bound for this run."""


class ShoppingState:
    def __init__(self):
        self.cart: List[CartItem] = []
        self.checkout_session_id: Optional[str] = None
        self.shipping_address: Optional[ShippingAddress] = None
        self.orders: Dict[str, Order] = {}
        self.protocol: Optional[str] = None
        self.merchant_domain: Optional[str] = None
        # product id -> last product payload seen from the catalog
        self._products: Dict[str, Dict[str, Any]] = {}

    # ------------------------------------------------------------------
    # Protocol binding
    # ------------------------------------------------------------------

    def begin_run(self) -> None:
        """Clear the per-run protocol binding; cart and orders persist."""
        self.protocol = None
        self.merchant_domain = None

    def bind_protocol(self, protocol: str, domain: str) -> None:
        if self.protocol is not None and self.protocol != protocol:
            raise ProtocolBindingError(
                f"Merchant protocol already bound to {self.protocol} for this run; "
                f"cannot switch to {protocol}"
            )
        self.protocol = protocol
        self.merchant_domain = domain

    # ------------------------------------------------------------------
    # Catalog cache
    # ------------------------------------------------------------------

    def remember_products(self, products: Iterable[Dict[str, Any]]) -> None:
        for product in products:
            if isinstance(product, dict) and product.get("id"):
                self._products[product["id"]] = product

    def known_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        return self._products.get(product_id)

    # ------------------------------------------------------------------
    # Cart
    # ------------------------------------------------------------------

    def add_item(self, product_id: str, quantity: int = 1, variant_id: Optional[str] = None) -> CartItem:
        if quantity < 1:
            raise ValueError(f"Quantity must be a positive integer, got {quantity}")

        existing = next((item for item in self.cart if item.product_id == product_id), None)
        if existing is not None:
            existing.quantity += quantity
            return existing

        product = self._products.get(product_id) or {}
        price = product.get("price")
        price = (
            MoneyAmount.model_validate(price) if isinstance(price, dict)
            else MoneyAmount(amount="0.00", currency=DEFAULT_CURRENCY)
        )
        if self.cart and price.currency.upper() != self.cart[0].price.currency.upper():
            raise ValueError(
                f"Cannot mix currencies in one cart: {product_id} is priced in "
                f"{price.currency}, cart is in {self.cart[0].price.currency}"
            )

        item = CartItem(
            product_id=product_id,
            name=product.get("name", product_id),
            quantity=quantity,
            price=price,
            variant_id=variant_id,
        )
        self.cart.append(item)
        return item

    def remove_item(self, product_id: str) -> bool:
        for index, item in enumerate(self.cart):
            if item.product_id == product_id:
                del self.cart[index]
                return True
        return False

    def subtotal(self) -> MoneyAmount:
        total = sum((item.price.to_decimal() * item.quantity for item in self.cart), Decimal("0"))
        currency = self.cart[0].price.currency if self.cart else DEFAULT_CURRENCY
        return MoneyAmount(amount=format_amount(total), currency=currency)

    def cart_state(self) -> CartState:
        return CartState(
            items=[item.model_copy() for item in self.cart],
            subtotal=self.subtotal(),
            item_count=sum(item.quantity for item in self.cart),
        )

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def require_cart(self) -> None:
        if not self.cart:
            raise CheckoutStateError("Cart is empty. Add items before checking out.")

    def start_checkout(self, session_id: str) -> None:
        self.require_cart()
        self.checkout_session_id = session_id
        self.shipping_address = None

    def require_session(self) -> str:
        if not self.checkout_session_id:
            raise CheckoutStateError("No active checkout session. Call initiate_checkout first.")
        return self.checkout_session_id

    def set_shipping(self, address: ShippingAddress) -> None:
        self.require_session()
        self.shipping_address = address

    def require_payment_ready(self) -> str:
        session_id = self.require_session()
        if self.shipping_address is None:
            raise CheckoutStateError(
                "Shipping address required before payment. Call submit_shipping first."
            )
        return session_id

    def record_order(
        self,
        order_id: str,
        protocol: str,
        total: Optional[MoneyAmount] = None,
        payment_method: Optional[str] = None,
        status: OrderStatus = OrderStatus.CONFIRMED,
    ) -> Order:
        """Freeze the cart into an Order, then clear cart, session and address."""
        subtotal = self.subtotal()
        order = Order(
            id=order_id,
            status=status,
            items=[item.model_copy(deep=True) for item in self.cart],
            subtotal=subtotal,
            total=total or subtotal,
            shipping_address=self.shipping_address,
            created_at=datetime.now(timezone.utc).isoformat(),
            protocol=protocol,
            payment_method=payment_method,
        )
        self.orders[order_id] = order

        self.cart = []
        self.checkout_session_id = None
        self.shipping_address = None
        return order

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.orders.get(order_id)

    def checkout_result(self) -> Optional[CheckoutResult]:
        """Summary of the most recent order, if any."""
        if not self.orders:
            return None
        order = list(self.orders.values())[-1]
        delivery = datetime.now(timezone.utc) + timedelta(days=ESTIMATED_DELIVERY_DAYS)
        return CheckoutResult(
            order_id=order.id,
            status="completed" if order.status == OrderStatus.CONFIRMED else "pending",
            items=list(order.items),
            total=order.total,
            payment_method=order.payment_method,
            fulfillment={"method": "standard", "estimatedDelivery": delivery.date().isoformat()},
        )
