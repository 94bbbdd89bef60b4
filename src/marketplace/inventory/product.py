"""Product aggregate — the inventory ledger row for one catalog product.

The catalog service owns product data; the pipeline keeps the fields it needs
to price and reserve order lines. Reservation is a plain decrement of
``available_quantity`` guarded by the backorder policy:

    track_inventory and not allow_backorder  ->  available_quantity >= 0
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String

from marketplace.domain import marketplace
from marketplace.errors import InsufficientInventory, ProductUnavailable
from marketplace.inventory.events import ProductRegistered, StockAdjusted, StockReleased, StockReserved


class ProductStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@marketplace.aggregate
class Product:
    vendor_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    unit_price = Integer(required=True, min_value=0)
    available_quantity = Integer(default=0)
    track_inventory = Boolean(default=True)
    allow_backorder = Boolean(default=False)
    status = String(choices=ProductStatus, default=ProductStatus.ACTIVE.value)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def stock_cannot_go_negative_without_backorder(self):
        if self.track_inventory and not self.allow_backorder and (self.available_quantity or 0) < 0:
            raise ValidationError({"available_quantity": ["Available quantity cannot be negative"]})

    @classmethod
    def register(
        cls,
        product_id,
        vendor_id,
        name,
        unit_price,
        available_quantity=0,
        track_inventory=True,
        allow_backorder=False,
    ):
        now = datetime.now(UTC)
        product = cls(
            id=product_id,
            vendor_id=vendor_id,
            name=name,
            unit_price=unit_price,
            available_quantity=available_quantity,
            track_inventory=track_inventory,
            allow_backorder=allow_backorder,
            status=ProductStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
        )
        product.raise_(
            ProductRegistered(
                product_id=str(product.id),
                vendor_id=str(vendor_id),
                unit_price=unit_price,
                available_quantity=available_quantity,
            )
        )
        return product

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value

    @property
    def enforces_stock(self) -> bool:
        return bool(self.track_inventory) and not self.allow_backorder

    def can_supply(self, quantity: int) -> bool:
        return not self.enforces_stock or quantity <= self.available_quantity

    def ensure_can_supply(self, quantity: int) -> None:
        """Raise the error a buyer should see if ``quantity`` cannot be sold now."""
        if not self.is_active:
            raise ProductUnavailable(self.id, self.name)
        if not self.can_supply(quantity):
            raise InsufficientInventory(self.id, quantity, self.available_quantity, self.name)

    def reserve(self, quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})
        self.ensure_can_supply(quantity)

        if self.track_inventory:
            self.available_quantity -= quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(
            StockReserved(
                product_id=str(self.id),
                quantity=quantity,
                available_quantity=self.available_quantity,
            )
        )

    def release(self, quantity: int) -> None:
        """Put ``quantity`` back on the ledger. Inverse of ``reserve``."""
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})

        if self.track_inventory:
            self.available_quantity += quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(
            StockReleased(
                product_id=str(self.id),
                quantity=quantity,
                available_quantity=self.available_quantity,
            )
        )

    def adjust(self, available_quantity=None, unit_price=None, reason=None) -> None:
        if available_quantity is not None:
            self.available_quantity = available_quantity
        if unit_price is not None:
            self.unit_price = unit_price
        self.updated_at = datetime.now(UTC)

        self.raise_(
            StockAdjusted(
                product_id=str(self.id),
                available_quantity=self.available_quantity,
                unit_price=self.unit_price,
                reason=reason,
            )
        )

    def deactivate(self) -> None:
        self.status = ProductStatus.INACTIVE.value
        self.updated_at = datetime.now(UTC)

    def activate(self) -> None:
        self.status = ProductStatus.ACTIVE.value
        self.updated_at = datetime.now(UTC)
