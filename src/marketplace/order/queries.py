"""Read helpers for orders: loading, buyer listings and vendor-scoped views."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from marketplace.errors import AuthorizationError, NotFoundError
from marketplace.identity.account import Role
from marketplace.identity.actors import resolve_actor
from marketplace.order.order import Order, VendorOrderView


def load_order(order_id) -> Order:
    try:
        return current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError as exc:
        raise NotFoundError(f"Order {order_id} not found", field="order_id") from exc


def orders_for_buyer(buyer_id, status: str | None = None) -> list[Order]:
    query = current_domain.repository_for(Order)._dao.query.filter(buyer_id=str(buyer_id))
    if status:
        query = query.filter(status=status)
    return sorted(query.all().items, key=lambda o: o.created_at, reverse=True)


def orders_for_vendor(vendor_id, status: str | None = None) -> list[VendorOrderView]:
    """Every order with at least one of the vendor's lines, reduced to those lines."""
    query = current_domain.repository_for(Order)._dao.query
    if status:
        query = query.filter(status=status)
    orders = sorted(query.all().items, key=lambda o: o.created_at, reverse=True)
    return [order.vendor_view(vendor_id) for order in orders if order.has_vendor(vendor_id)]


def order_for_actor(order_id, actor_id):
    """The order as ``actor_id`` may see it: whole for its buyer and admins, a vendor view for vendors."""
    actor = resolve_actor(actor_id, allow_suspended=True)
    order = load_order(order_id)

    if actor.is_admin or str(order.buyer_id) == str(actor.id):
        return order
    if actor.has_role(Role.VENDOR) and order.has_vendor(actor.id):
        return order.vendor_view(actor.id)
    raise AuthorizationError("Not allowed to view this order")
