"""Application tests for cart commands through the locked pipeline entry points."""

import pytest
from marketplace import pipeline
from marketplace.cart.cart import Cart
from marketplace.cart.management import cart_summary, validate_cart
from marketplace.errors import AuthorizationError, InsufficientInventory, NotFoundError, ProductUnavailable
from marketplace.inventory.product import Product
from protean import current_domain


class TestAddToCart:
    def test_add_item_reads_live_price(self, buyer, make_product):
        make_product(unit_price=25000)
        pipeline.add_cart_item(buyer, "prod-001", 2)

        cart = current_domain.repository_for(Cart).get(buyer)
        assert cart.items[0].unit_price_snapshot == 25000
        assert cart.items[0].quantity == 2

    def test_add_does_not_reserve_stock(self, buyer, make_product):
        make_product(available_quantity=50)
        pipeline.add_cart_item(buyer, "prod-001", 2)

        assert current_domain.repository_for(Product).get("prod-001").available_quantity == 50

    def test_insufficient_inventory_leaves_cart_unchanged(self, buyer, make_product):
        make_product(available_quantity=3)
        pipeline.add_cart_item(buyer, "prod-001", 2)

        with pytest.raises(InsufficientInventory) as exc:
            pipeline.add_cart_item(buyer, "prod-001", 2)
        assert exc.value.available == 3

        cart = current_domain.repository_for(Cart).get(buyer)
        assert cart.items[0].quantity == 2

    def test_unknown_product(self, buyer):
        with pytest.raises(NotFoundError):
            pipeline.add_cart_item(buyer, "missing", 1)

    def test_inactive_product(self, buyer, make_product):
        make_product()
        pipeline.set_product_availability("prod-001", active=False)
        with pytest.raises(ProductUnavailable):
            pipeline.add_cart_item(buyer, "prod-001", 1)

    def test_only_buyers_have_carts(self, driver, make_product):
        make_product()
        with pytest.raises(AuthorizationError):
            pipeline.add_cart_item(driver, "prod-001", 1)


class TestUpdateRemoveClear:
    def test_update_quantity(self, buyer, make_product):
        make_product()
        item_id = pipeline.add_cart_item(buyer, "prod-001", 1)
        pipeline.update_cart_item(buyer, item_id, 4)

        cart, totals = cart_summary(buyer)
        assert cart.items[0].quantity == 4
        assert totals.subtotal == 100000

    def test_update_to_zero_removes(self, buyer, make_product):
        make_product()
        item_id = pipeline.add_cart_item(buyer, "prod-001", 1)
        pipeline.update_cart_item(buyer, item_id, 0)

        cart, _ = cart_summary(buyer)
        assert cart.items == []

    def test_remove_unknown_item(self, buyer):
        with pytest.raises(NotFoundError):
            pipeline.remove_cart_item(buyer, "missing")

    def test_clear(self, buyer, make_product):
        make_product("p1")
        make_product("p2")
        pipeline.add_cart_item(buyer, "p1", 1)
        pipeline.add_cart_item(buyer, "p2", 1)
        pipeline.clear_cart(buyer)

        cart, totals = cart_summary(buyer)
        assert cart.items == []
        assert totals.item_count == 0


class TestValidateCart:
    def test_valid_cart(self, buyer, make_product):
        make_product()
        pipeline.add_cart_item(buyer, "prod-001", 2)
        assert validate_cart(buyer).valid is True

    def test_stock_dropped_after_add(self, buyer, make_product):
        make_product(name="Shea Butter")
        pipeline.add_cart_item(buyer, "prod-001", 5)
        pipeline.adjust_stock("prod-001", available_quantity=2)

        validation = validate_cart(buyer)
        assert validation.valid is False
        assert validation.issues == ['Only 2 of "Shea Butter" available']
