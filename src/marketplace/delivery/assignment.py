"""Delivery assignment — commands, handler and delivery opening.

A delivery is opened once per order, as soon as the order is fulfillable.
Assignment checks the delivery first (so a concurrent loser always sees
``DeliveryNotAvailable`` or ``AlreadyAssigned``), then the driver.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, Identifier
from protean.utils.globals import current_domain

from marketplace.audit import get_event_logger
from marketplace.config import get_settings
from marketplace.delivery.delivery import Delivery, quote_fee
from marketplace.domain import marketplace
from marketplace.errors import AuthorizationError, DeliveryNotAvailable, DriverUnavailable, NotFoundError
from marketplace.identity.account import Account, Role
from marketplace.identity.actors import resolve_actor
from marketplace.order.order import Order
from marketplace.order.queries import load_order

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Delivery")
class AssignDelivery:
    """Put a driver on a pending delivery. Drivers accept for themselves; admins assign anyone."""

    delivery_id = Identifier(required=True)
    driver_id = Identifier(required=True)
    actor_id = Identifier()  # None for scheduler-driven matching
    require_idle = Boolean(default=False)


def load_delivery(delivery_id) -> Delivery:
    try:
        return current_domain.repository_for(Delivery).get(delivery_id)
    except ObjectNotFoundError as exc:
        raise NotFoundError(f"Delivery {delivery_id} not found", field="delivery_id") from exc


def open_delivery_for(order: Order, distance_km=None, duration_minutes=None) -> Delivery:
    """Open the order's delivery unless it already has one."""
    repo = current_domain.repository_for(Delivery)
    existing = repo.for_order(order.id)
    if existing is not None:
        return existing

    address = order.shipping_address.as_text() if order.shipping_address else None
    delivery = Delivery.open(
        order_id=order.id,
        delivery_address=address,
        distance_km=distance_km,
        duration_minutes=duration_minutes,
    )
    repo.add(delivery)

    logger.info("delivery_opened", delivery_id=str(delivery.id), order_id=str(order.id))
    get_event_logger().delivery("delivery_created", str(delivery.id), order_id=str(order.id))
    return delivery


def _load_driver(driver_id) -> Account:
    try:
        driver = current_domain.repository_for(Account).get(driver_id)
    except ObjectNotFoundError as exc:
        raise DriverUnavailable(driver_id, "Driver not found") from exc
    if not driver.has_role(Role.DRIVER) or not driver.is_active:
        raise DriverUnavailable(driver_id)
    return driver


@marketplace.command_handler(part_of=Delivery)
class AssignDeliveryHandler:
    @handle(AssignDelivery)
    def assign_delivery(self, command):
        if command.actor_id:
            actor = resolve_actor(command.actor_id, Role.DRIVER)
            if not actor.is_admin and str(actor.id) != str(command.driver_id):
                raise AuthorizationError("Drivers can only accept deliveries for themselves")

        repo = current_domain.repository_for(Delivery)
        delivery = load_delivery(command.delivery_id)
        delivery.ensure_assignable()

        order = load_order(delivery.order_id)
        if order.is_cancelled:
            raise DeliveryNotAvailable(delivery.id, f"order {order.status}")

        _load_driver(command.driver_id)
        if command.require_idle and repo.active_for_driver(command.driver_id):
            raise DriverUnavailable(command.driver_id, "Driver already has an active delivery")

        settings = get_settings()
        fee, earnings = quote_fee(
            delivery.estimated_distance_km,
            flat_fee=settings.delivery_flat_fee,
            minimum_fee=settings.delivery_minimum_fee,
            fee_per_km=settings.delivery_fee_per_km,
            driver_share=settings.driver_earnings_share,
        )
        delivery.assign(command.driver_id, fee, earnings)
        repo.add(delivery)

        logger.info(
            "delivery_assigned",
            delivery_id=str(delivery.id),
            driver_id=str(command.driver_id),
            delivery_fee=fee,
        )
        get_event_logger().delivery(
            "delivery_assigned",
            str(delivery.id),
            actor_id=command.actor_id,
            driver_id=str(command.driver_id),
            delivery_fee=fee,
            driver_earnings=earnings,
        )
        return str(delivery.id)
