"""Marketplace HTTP API package."""

from marketplace.api.carts import cart_router
from marketplace.api.deliveries import delivery_router
from marketplace.api.errors import register_marketplace_handlers
from marketplace.api.fraud import fraud_router
from marketplace.api.orders import order_router
from marketplace.api.payments import payment_router

__all__ = [
    "cart_router",
    "delivery_router",
    "fraud_router",
    "order_router",
    "payment_router",
    "register_marketplace_handlers",
]
