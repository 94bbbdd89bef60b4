"""Cart management — commands, handler and read helpers.

Mutations re-read the product row inside the same unit of work as the cart
write, so the inventory check and the merged quantity are consistent.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from marketplace.cart.cart import Cart, CartTotals, CheckoutValidation
from marketplace.domain import marketplace
from marketplace.identity.account import Role
from marketplace.identity.actors import resolve_actor
from marketplace.inventory.product import Product
from marketplace.inventory.stocking import load_product


@marketplace.command(part_of="Cart")
class AddCartItem:
    buyer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@marketplace.command(part_of="Cart")
class UpdateCartItem:
    buyer_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True)


@marketplace.command(part_of="Cart")
class RemoveCartItem:
    buyer_id = Identifier(required=True)
    item_id = Identifier(required=True)


@marketplace.command(part_of="Cart")
class ClearCart:
    buyer_id = Identifier(required=True)


def find_cart(buyer_id) -> Cart | None:
    try:
        return current_domain.repository_for(Cart).get(buyer_id)
    except ObjectNotFoundError:
        return None


def _get_or_open(buyer_id) -> Cart:
    return find_cart(buyer_id) or Cart.open_for(buyer_id)


@marketplace.command_handler(part_of=Cart)
class ManageCartHandler:
    @handle(AddCartItem)
    def add_item(self, command):
        resolve_actor(command.buyer_id, Role.BUYER)
        product = load_product(command.product_id)

        cart = _get_or_open(command.buyer_id)
        item_id = cart.add_item(product, command.quantity)
        current_domain.repository_for(Cart).add(cart)
        return item_id

    @handle(UpdateCartItem)
    def update_item(self, command):
        resolve_actor(command.buyer_id, Role.BUYER)
        cart = _get_or_open(command.buyer_id)

        product = None
        if command.quantity > 0:
            item = cart.get_item(command.item_id)
            product = load_product(item.product_id)

        cart.update_item(command.item_id, command.quantity, product)
        current_domain.repository_for(Cart).add(cart)

    @handle(RemoveCartItem)
    def remove_item(self, command):
        resolve_actor(command.buyer_id, Role.BUYER)
        cart = _get_or_open(command.buyer_id)
        cart.remove_item(command.item_id)
        current_domain.repository_for(Cart).add(cart)

    @handle(ClearCart)
    def clear_cart(self, command):
        resolve_actor(command.buyer_id, Role.BUYER)
        cart = find_cart(command.buyer_id)
        if cart is None or not cart.items:
            return
        cart.clear()
        current_domain.repository_for(Cart).add(cart)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def products_for(cart: Cart) -> dict:
    repo = current_domain.repository_for(Product)
    products = {}
    for item in cart.items:
        try:
            products[str(item.product_id)] = repo.get(item.product_id)
        except ObjectNotFoundError:
            continue
    return products


def cart_summary(buyer_id) -> tuple[Cart, CartTotals]:
    """The buyer's cart (an unsaved empty one if they never used it) and its totals."""
    cart = _get_or_open(buyer_id)
    return cart, cart.totals()


def validate_cart(buyer_id) -> CheckoutValidation:
    cart = _get_or_open(buyer_id)
    return cart.validate_for_checkout(products_for(cart))
