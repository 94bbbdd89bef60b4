"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderPlaced:
    __version__ = 1

    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    total_amount = Integer(required=True)
    currency = String(required=True, max_length=3)
    item_count = Integer(required=True)
    payment_method = String(max_length=50)
    placed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderStatusChanged:
    """Any forward move: confirmed, processing or delivered."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True, max_length=20)
    new_status = String(required=True, max_length=20)
    changed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True, max_length=20)
    reason = String(max_length=500)
    cancelled_by = Identifier()
    cancelled_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderPaid:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_reference = String(required=True, max_length=50)
    amount = Integer(required=True)
    paid_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderPaymentFailed:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_reference = String(required=True, max_length=50)


@marketplace.event(part_of="Order")
class OrderRefunded:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_reference = String(required=True, max_length=50)
    refunded_at = DateTime(required=True)
