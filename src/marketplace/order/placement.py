"""Order placement — command and handler.

Placement is one unit of work: every requested line is checked against the
ledger first, then every line is reserved, the order is written and, when
placed from the cart, the cart is emptied. Any failure leaves the ledger,
the cart and the order store exactly as they were.
"""

import json
from collections import OrderedDict

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.audit import get_event_logger
from marketplace.cart.cart import Cart
from marketplace.cart.management import find_cart
from marketplace.config import get_settings
from marketplace.domain import marketplace
from marketplace.errors import ProductUnavailable
from marketplace.identity.account import Role
from marketplace.identity.actors import resolve_actor
from marketplace.inventory.product import Product
from marketplace.order.order import Order, ShippingAddress
from marketplace.payment.payment import PaymentMethod, parse_payment_method

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class PlaceOrder:
    """Place an order from the buyer's cart, or from ``items`` when given."""

    buyer_id = Identifier(required=True)
    shipping_address = Text(required=True)  # JSON: {recipient, phone, street, city, region, landmark}
    payment_method = String(max_length=30, default=PaymentMethod.MOBILE_MONEY.value)
    notes = Text()
    items = Text()  # JSON: list of {product_id, quantity}; empty means "use the cart"


def _loads(value):
    return json.loads(value) if isinstance(value, str) else value


def parse_items(raw) -> "OrderedDict[str, int]":
    """Requested quantities per product, merging repeated products."""
    requested = OrderedDict()
    for entry in _loads(raw) or []:
        product_id = entry.get("product_id")
        quantity = entry.get("quantity")
        if not product_id or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError({"items": ["Each item needs a product_id and a positive integer quantity"]})
        requested[str(product_id)] = requested.get(str(product_id), 0) + quantity
    return requested


def _load_products(product_ids) -> dict:
    repo = current_domain.repository_for(Product)
    products = {}
    for product_id in product_ids:
        try:
            products[product_id] = repo.get(product_id)
        except ObjectNotFoundError as exc:
            raise ProductUnavailable(product_id) from exc
    return products


@marketplace.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        resolve_actor(command.buyer_id, Role.BUYER)
        method = parse_payment_method(command.payment_method)
        address = ShippingAddress(**_loads(command.shipping_address))

        cart = None
        if command.items:
            requested = parse_items(command.items)
        else:
            cart = find_cart(command.buyer_id)
            requested = parse_items(
                [{"product_id": str(i.product_id), "quantity": i.quantity} for i in (cart.items if cart else [])]
            )
            if not requested:
                raise ValidationError({"cart": ["Cart is empty"]})
        if not requested:
            raise ValidationError({"items": ["Order must contain at least one item"]})

        products = _load_products(requested)

        # Check every line before touching any of them
        for product_id, quantity in requested.items():
            products[product_id].ensure_can_supply(quantity)

        lines = []
        for product_id, quantity in requested.items():
            product = products[product_id]
            product.reserve(quantity)
            lines.append(
                {
                    "product_id": product_id,
                    "vendor_id": str(product.vendor_id),
                    "product_name": product.name,
                    "quantity": quantity,
                    "unit_price": product.unit_price,
                }
            )

        order = Order.place(
            buyer_id=command.buyer_id,
            lines=lines,
            shipping_address=address,
            payment_method=method.value,
            notes=command.notes,
            currency=get_settings().currency,
        )

        product_repo = current_domain.repository_for(Product)
        for product in products.values():
            product_repo.add(product)
        current_domain.repository_for(Order).add(order)

        if cart is not None:
            cart.clear()
            current_domain.repository_for(Cart).add(cart)

        logger.info(
            "order_placed",
            order_id=str(order.id),
            buyer_id=str(command.buyer_id),
            total_amount=order.total_amount,
            from_cart=cart is not None,
        )
        get_event_logger().order(
            "order_created",
            str(order.id),
            actor_id=command.buyer_id,
            total_amount=order.total_amount,
            item_count=len(lines),
            payment_method=method.value,
        )
        return str(order.id)
