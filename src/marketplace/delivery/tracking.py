"""Delivery tracking — status updates by the driver and role-checked reads."""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.audit import get_event_logger
from marketplace.delivery.assignment import load_delivery
from marketplace.delivery.delivery import Delivery, DeliveryStatus
from marketplace.domain import marketplace
from marketplace.errors import AuthorizationError
from marketplace.identity.account import Role
from marketplace.identity.actors import resolve_actor
from marketplace.order.order import Order
from marketplace.order.queries import load_order

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Delivery")
class UpdateDeliveryStatus:
    delivery_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    signature = Text()
    photo_url = String(max_length=1000)
    notes = Text()
    reason = String(max_length=500)


def parse_delivery_status(value) -> DeliveryStatus:
    try:
        return DeliveryStatus(value)
    except ValueError as exc:
        allowed = ", ".join(s.value for s in DeliveryStatus)
        raise ValidationError({"status": [f"Unknown delivery status '{value}'. Expected one of: {allowed}"]}) from exc


@marketplace.command_handler(part_of=Delivery)
class DeliveryTrackingHandler:
    @handle(UpdateDeliveryStatus)
    def update_status(self, command):
        actor = resolve_actor(command.actor_id, Role.DRIVER)
        delivery = load_delivery(command.delivery_id)
        target = parse_delivery_status(command.status)

        if target == DeliveryStatus.PENDING:
            if not actor.is_admin:
                raise AuthorizationError("Only an admin can re-queue a failed delivery")
        elif not actor.is_admin and str(delivery.driver_id) != str(actor.id):
            raise AuthorizationError("Only the assigned driver can update this delivery")

        previous = delivery.status
        driver_id = delivery.driver_id
        delivery.advance(
            target,
            signature=command.signature,
            photo_url=command.photo_url,
            notes=command.notes,
            reason=command.reason,
        )
        current_domain.repository_for(Delivery).add(delivery)

        if target == DeliveryStatus.DELIVERED:
            order = load_order(delivery.order_id)
            passed = order.advance_to_delivered()
            current_domain.repository_for(Order).add(order)
            get_event_logger().order(
                "order_delivered", str(order.id), actor_id=command.actor_id, passed_through=passed
            )

        logger.info(
            "delivery_status_updated",
            delivery_id=str(delivery.id),
            previous_status=previous,
            new_status=target.value,
        )
        get_event_logger().delivery(
            f"delivery_{target.value}",
            str(delivery.id),
            actor_id=command.actor_id,
            previous_status=previous,
            driver_id=str(driver_id) if driver_id else None,
            reason=command.reason,
        )
        return delivery.status


def track_delivery(delivery_id, actor_id) -> Delivery:
    """Return the delivery if ``actor_id`` may follow it.

    Buyers see their own orders' deliveries, drivers the ones they carry,
    vendors the ones carrying their items, admins everything.
    """
    actor = resolve_actor(actor_id, allow_suspended=True)
    delivery = load_delivery(delivery_id)
    if actor.is_admin:
        return delivery
    if actor.has_role(Role.DRIVER) and str(delivery.driver_id) == str(actor.id):
        return delivery

    order = load_order(delivery.order_id)
    if str(order.buyer_id) == str(actor.id):
        return delivery
    if actor.has_role(Role.VENDOR) and order.has_vendor(actor.id):
        return delivery
    raise AuthorizationError("Not allowed to track this delivery")


def deliveries_for_driver(driver_id, active_only: bool = False) -> list[Delivery]:
    repo = current_domain.repository_for(Delivery)
    deliveries = repo.active_for_driver(driver_id) if active_only else repo.for_driver(driver_id)
    return sorted(deliveries, key=lambda d: d.created_at, reverse=True)


def available_deliveries() -> list[Delivery]:
    """Pending deliveries with no driver whose order is still open."""
    available = []
    for delivery in current_domain.repository_for(Delivery).unassigned():
        if load_order(delivery.order_id).is_cancelled:
            continue
        available.append(delivery)
    return available
