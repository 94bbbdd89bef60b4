"""Catalog synchronisation — commands and handler.

The catalog service is the system of record for products. These commands
keep the pipeline's ledger row in step with it.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import ConflictError, NotFoundError
from marketplace.inventory.product import Product


@marketplace.command(part_of="Product")
class RegisterProduct:
    product_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    unit_price = Integer(required=True, min_value=0)
    available_quantity = Integer(default=0)
    track_inventory = Boolean(default=True)
    allow_backorder = Boolean(default=False)


@marketplace.command(part_of="Product")
class AdjustStock:
    product_id = Identifier(required=True)
    available_quantity = Integer()
    unit_price = Integer(min_value=0)
    reason = String(max_length=255)


@marketplace.command(part_of="Product")
class ChangeProductAvailability:
    product_id = Identifier(required=True)
    active = Boolean(required=True)


def load_product(product_id) -> Product:
    try:
        return current_domain.repository_for(Product).get(product_id)
    except ObjectNotFoundError as exc:
        raise NotFoundError(f"Product {product_id} not found", field="product_id") from exc


@marketplace.command_handler(part_of=Product)
class StockingHandler:
    @handle(RegisterProduct)
    def register_product(self, command):
        repo = current_domain.repository_for(Product)
        try:
            repo.get(command.product_id)
        except ObjectNotFoundError:
            pass
        else:
            raise ConflictError(f"Product {command.product_id} is already registered", field="product_id")

        product = Product.register(
            product_id=command.product_id,
            vendor_id=command.vendor_id,
            name=command.name,
            unit_price=command.unit_price,
            available_quantity=command.available_quantity,
            track_inventory=command.track_inventory,
            allow_backorder=command.allow_backorder,
        )
        repo.add(product)
        return str(product.id)

    @handle(AdjustStock)
    def adjust_stock(self, command):
        product = load_product(command.product_id)
        product.adjust(
            available_quantity=command.available_quantity,
            unit_price=command.unit_price,
            reason=command.reason,
        )
        current_domain.repository_for(Product).add(product)

    @handle(ChangeProductAvailability)
    def change_availability(self, command):
        product = load_product(command.product_id)
        if command.active:
            product.activate()
        else:
            product.deactivate()
        current_domain.repository_for(Product).add(product)
