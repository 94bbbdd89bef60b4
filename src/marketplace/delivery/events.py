"""Domain events for the Delivery aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Delivery")
class DeliveryOpened:
    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    opened_at = DateTime(required=True)


@marketplace.event(part_of="Delivery")
class DeliveryAssigned:
    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    driver_id = Identifier(required=True)
    delivery_fee = Integer(required=True)
    driver_earnings = Integer(required=True)
    assigned_at = DateTime(required=True)


@marketplace.event(part_of="Delivery")
class DeliveryStatusChanged:
    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    previous_status = String(required=True, max_length=20)
    new_status = String(required=True, max_length=20)
    changed_at = DateTime(required=True)


@marketplace.event(part_of="Delivery")
class DeliveryCompleted:
    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    driver_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@marketplace.event(part_of="Delivery")
class DeliveryFailed:
    __version__ = 1

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    driver_id = Identifier()
    reason = String(max_length=500)
    failed_at = DateTime(required=True)
