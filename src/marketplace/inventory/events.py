"""Domain events for the Product inventory ledger."""

from protean.fields import Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Product")
class ProductRegistered:
    """A catalog product became known to the pipeline."""

    __version__ = 1

    product_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    unit_price = Integer(required=True)
    available_quantity = Integer(required=True)


@marketplace.event(part_of="Product")
class StockReserved:
    """Quantity was taken from the ledger for an order line."""

    __version__ = 1

    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    available_quantity = Integer(required=True)


@marketplace.event(part_of="Product")
class StockReleased:
    """Quantity went back on the ledger after a cancellation."""

    __version__ = 1

    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    available_quantity = Integer(required=True)


@marketplace.event(part_of="Product")
class StockAdjusted:
    """The catalog reported a new stock count or price."""

    __version__ = 1

    product_id = Identifier(required=True)
    available_quantity = Integer(required=True)
    unit_price = Integer(required=True)
    reason = String(max_length=255)
