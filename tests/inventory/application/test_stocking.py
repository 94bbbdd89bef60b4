"""Application tests for catalog synchronisation commands."""

import pytest
from marketplace import pipeline
from marketplace.errors import ConflictError, NotFoundError
from marketplace.inventory.product import Product, ProductStatus
from protean import current_domain


class TestRegisterProduct:
    def test_register_persists_ledger_row(self, make_product):
        product_id = make_product(unit_price=1200, available_quantity=10)

        product = current_domain.repository_for(Product).get(product_id)
        assert product.unit_price == 1200
        assert product.available_quantity == 10
        assert product.status == ProductStatus.ACTIVE.value

    def test_register_twice_conflicts(self, make_product):
        make_product()
        with pytest.raises(ConflictError):
            make_product()


class TestAdjustStock:
    def test_adjust_quantity_and_price(self, make_product):
        product_id = make_product()
        pipeline.adjust_stock(product_id, available_quantity=5, unit_price=30000, reason="recount")

        product = current_domain.repository_for(Product).get(product_id)
        assert product.available_quantity == 5
        assert product.unit_price == 30000

    def test_adjust_unknown_product(self, vendor):
        with pytest.raises(NotFoundError):
            pipeline.adjust_stock("missing", available_quantity=1)

    def test_deactivate_and_reactivate(self, make_product):
        product_id = make_product()
        pipeline.set_product_availability(product_id, active=False)
        assert current_domain.repository_for(Product).get(product_id).status == ProductStatus.INACTIVE.value

        pipeline.set_product_availability(product_id, active=True)
        assert current_domain.repository_for(Product).get(product_id).status == ProductStatus.ACTIVE.value
