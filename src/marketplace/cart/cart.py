"""Cart aggregate (CQRS) — one mutable cart per buyer.

The cart's identity is the buyer's id, so there is exactly one cart per
buyer. It is created the first time the buyer mutates it and is cleared,
never deleted, when it is converted into an order.

Every line stores the unit price seen when the product was last added; the
order re-reads live prices when it is placed.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

from protean.fields import DateTime, HasMany, Identifier, Integer

from marketplace import money
from marketplace.cart.events import CartCleared, CartItemAdded, CartItemRemoved, CartItemUpdated
from marketplace.domain import marketplace
from marketplace.errors import NotFoundError


@dataclass(frozen=True)
class CheckoutValidation:
    valid: bool
    issues: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CartTotals:
    subtotal: int
    item_count: int
    vendor_count: int


@marketplace.entity(part_of="Cart")
class CartItem:
    product_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price_snapshot = Integer(required=True, min_value=0)
    added_at = DateTime()

    @property
    def line_total(self) -> int:
        return money.line_total(self.unit_price_snapshot, self.quantity)


@marketplace.aggregate
class Cart:
    buyer_id = Identifier(required=True)
    items = HasMany(CartItem)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def open_for(cls, buyer_id):
        now = datetime.now(UTC)
        return cls(id=buyer_id, buyer_id=buyer_id, created_at=now, updated_at=now)

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    def item_for_product(self, product_id):
        return next((i for i in self.items if str(i.product_id) == str(product_id)), None)

    def get_item(self, item_id):
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found in cart", field="item_id")
        return item

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def add_item(self, product, quantity: int):
        """Add ``quantity`` of ``product``, merging with an existing line.

        ``product`` is the live inventory row; the merged quantity is checked
        against it and the price snapshot is refreshed.
        """
        existing = self.item_for_product(product.id)
        new_quantity = quantity + (existing.quantity if existing else 0)
        product.ensure_can_supply(new_quantity)

        now = datetime.now(UTC)
        if existing:
            existing.quantity = new_quantity
            existing.unit_price_snapshot = product.unit_price
            item_id = str(existing.id)
        else:
            item = CartItem(
                product_id=product.id,
                vendor_id=product.vendor_id,
                quantity=quantity,
                unit_price_snapshot=product.unit_price,
                added_at=now,
            )
            self.add_items(item)
            item_id = str(item.id)

        self.updated_at = now
        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                item_id=item_id,
                product_id=str(product.id),
                quantity=quantity,
                unit_price=product.unit_price,
            )
        )
        return item_id

    def update_item(self, item_id, quantity: int, product=None):
        """Set a line's quantity. Zero or less removes the line."""
        item = self.get_item(item_id)
        if quantity <= 0:
            self.remove_item(item_id)
            return

        if product is not None:
            product.ensure_can_supply(quantity)
            item.unit_price_snapshot = product.unit_price

        previous_quantity = item.quantity
        item.quantity = quantity
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartItemUpdated(
                cart_id=str(self.id),
                item_id=str(item.id),
                previous_quantity=previous_quantity,
                new_quantity=quantity,
            )
        )

    def remove_item(self, item_id):
        item = self.get_item(item_id)
        product_id = str(item.product_id)
        self.remove_items(item)
        self.updated_at = datetime.now(UTC)
        self.raise_(CartItemRemoved(cart_id=str(self.id), item_id=str(item_id), product_id=product_id))

    def clear(self):
        count = len(self.items)
        for item in list(self.items):
            self.remove_items(item)
        self.updated_at = datetime.now(UTC)
        self.raise_(CartCleared(cart_id=str(self.id), items_removed=count))

    # -------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------
    def totals(self) -> CartTotals:
        return CartTotals(
            subtotal=sum(item.line_total for item in self.items),
            item_count=sum(item.quantity for item in self.items),
            vendor_count=len({str(item.vendor_id) for item in self.items}),
        )

    def validate_for_checkout(self, products: dict) -> CheckoutValidation:
        """Check every line against current product rows (keyed by product id).

        Never mutates; order placement repeats the checks under lock.
        """
        if not self.items:
            return CheckoutValidation(valid=False, issues=["Cart is empty"])

        issues = []
        for item in self.items:
            product = products.get(str(item.product_id))
            if product is None or not product.is_active:
                label = product.name if product is not None else item.product_id
                issues.append(f'Product "{label}" is no longer available')
            elif not product.can_supply(item.quantity):
                issues.append(f'Only {product.available_quantity} of "{product.name}" available')

        return CheckoutValidation(valid=not issues, issues=issues)
