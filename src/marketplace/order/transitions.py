"""Order status changes and cancellation — commands and handler.

Role scope:
- a buyer may only cancel their own order
- a vendor may only confirm or start processing an order holding one of their lines
- an admin may perform any transition

Cancelling restores every line to the ledger, cancels the order's open
payment attempt and pulls an in-progress delivery back from its driver.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.audit import get_event_logger
from marketplace.delivery.delivery import Delivery, DeliveryStatus
from marketplace.domain import marketplace
from marketplace.errors import AuthorizationError
from marketplace.identity.account import Role
from marketplace.identity.actors import resolve_actor
from marketplace.inventory.product import Product
from marketplace.order.order import Order, OrderStatus
from marketplace.order.queries import load_order
from marketplace.payment.payment import Payment

logger = structlog.get_logger(__name__)

ORDER_CANCELLED = "Order cancelled"


@marketplace.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    reason = String(max_length=500)


@marketplace.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    reason = String(max_length=500)


def parse_order_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError as exc:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError({"status": [f"Unknown order status '{value}'. Expected one of: {allowed}"]}) from exc


def authorize_transition(actor, order: Order, target: OrderStatus) -> None:
    if actor.is_admin:
        return
    if actor.has_role(Role.BUYER):
        if target != OrderStatus.CANCELLED:
            raise AuthorizationError("Buyers can only cancel orders")
        if str(order.buyer_id) != str(actor.id):
            raise AuthorizationError("Buyers can only cancel their own orders")
        return
    if actor.has_role(Role.VENDOR):
        if target not in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING):
            raise AuthorizationError("Vendors can only confirm or process orders")
        if not order.has_vendor(actor.id):
            raise AuthorizationError("Order has no items from this vendor")
        return
    raise AuthorizationError("Not allowed to change this order")


def _restore_inventory(order: Order) -> None:
    repo = current_domain.repository_for(Product)
    for line in order.items:
        try:
            product = repo.get(line.product_id)
        except ObjectNotFoundError:
            logger.warning("restock_product_missing", order_id=str(order.id), product_id=str(line.product_id))
            continue
        product.release(line.quantity)
        repo.add(product)


def _cancel_open_payments(order: Order) -> list[str]:
    repo = current_domain.repository_for(Payment)
    cancelled = []
    for payment in repo.open_for_order(order.id):
        payment.cancel(ORDER_CANCELLED)
        repo.add(payment)
        cancelled.append(payment.payment_reference)
    return cancelled


def _recall_delivery(order: Order) -> str | None:
    repo = current_domain.repository_for(Delivery)
    delivery = repo.for_order(order.id)
    if delivery is None or not delivery.is_active:
        return None
    delivery.advance(DeliveryStatus.FAILED, reason=ORDER_CANCELLED)
    repo.add(delivery)
    return str(delivery.id)


def cancel_order(order: Order, reason, actor_id) -> None:
    order.cancel(reason=reason, cancelled_by=actor_id)
    _restore_inventory(order)
    payments = _cancel_open_payments(order)
    delivery_id = _recall_delivery(order)
    current_domain.repository_for(Order).add(order)

    logger.info(
        "order_cancelled",
        order_id=str(order.id),
        cancelled_payments=payments,
        recalled_delivery=delivery_id,
    )
    get_event_logger().order(
        "order_cancelled",
        str(order.id),
        actor_id=actor_id,
        reason=reason,
        cancelled_payments=payments,
        recalled_delivery=delivery_id,
    )


@marketplace.command_handler(part_of=Order)
class OrderTransitionHandler:
    @handle(UpdateOrderStatus)
    def update_status(self, command):
        actor = resolve_actor(command.actor_id)
        order = load_order(command.order_id)
        target = parse_order_status(command.status)
        authorize_transition(actor, order, target)

        if target == OrderStatus.CANCELLED:
            cancel_order(order, command.reason, command.actor_id)
            return order.status

        previous = order.status
        order.transition_to(target)
        current_domain.repository_for(Order).add(order)

        logger.info("order_status_updated", order_id=str(order.id), previous=previous, status=order.status)
        get_event_logger().order(
            "order_status_updated",
            str(order.id),
            actor_id=command.actor_id,
            previous_status=previous,
            new_status=order.status,
        )
        return order.status

    @handle(CancelOrder)
    def cancel(self, command):
        actor = resolve_actor(command.actor_id)
        order = load_order(command.order_id)
        authorize_transition(actor, order, OrderStatus.CANCELLED)
        cancel_order(order, command.reason, command.actor_id)
        return order.status
