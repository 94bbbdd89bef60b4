"""BDD tests for the order lifecycle."""

import pytest
from marketplace import pipeline
from marketplace.errors import MarketplaceError
from marketplace.inventory.product import Product
from marketplace.order.order import Order
from protean import current_domain
from pytest_bdd import given, parsers, scenarios, then, when

scenarios("features/order_lifecycle.feature")


@pytest.fixture()
def context():
    return {}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a product "{product_id}" priced at {price:d} with {stock:d} in stock'))
def _(make_product, product_id, price, stock):
    make_product(product_id, unit_price=price, available_quantity=stock)


@given(parsers.cfparse('the buyer has {quantity:d} of "{product_id}" in the cart'))
def _(buyer, product_id, quantity):
    pipeline.add_cart_item(buyer, product_id, quantity)


@given("the buyer has checked out")
def _(buyer, shipping_address, context):
    context["order_id"] = pipeline.place_order(buyer, shipping_address)


@given("the order has been delivered")
def _(vendor, admin, context):
    for status in ("confirmed", "processing"):
        pipeline.update_order_status(context["order_id"], status, vendor)
    pipeline.update_order_status(context["order_id"], "delivered", admin)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the buyer checks out")
def _(buyer, shipping_address, context):
    context["order_id"] = pipeline.place_order(buyer, shipping_address)


@when("the buyer cancels the order")
def _(buyer, context):
    pipeline.cancel_order(context["order_id"], buyer, reason="Changed my mind")


@when(parsers.cfparse('the vendor marks the order "{status}"'))
def _(vendor, context, status):
    pipeline.update_order_status(context["order_id"], status, vendor)


@when("the buyer tries to cancel the order")
def _(buyer, context):
    try:
        pipeline.cancel_order(context["order_id"], buyer)
    except MarketplaceError as exc:
        context["error"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order is "{status}"'))
def _(context, status):
    assert current_domain.repository_for(Order).get(context["order_id"]).status == status


@then(parsers.cfparse("the order total is {total:d}"))
def _(context, total):
    assert current_domain.repository_for(Order).get(context["order_id"]).total_amount == total


@then("the order records when it was cancelled")
def _(context):
    assert current_domain.repository_for(Order).get(context["order_id"]).cancelled_at is not None


@then(parsers.cfparse('"{product_id}" has {stock:d} in stock'))
def _(product_id, stock):
    assert current_domain.repository_for(Product).get(product_id).available_quantity == stock


@then(parsers.cfparse('the cancellation is refused with "{error}"'))
def _(context, error):
    assert type(context["error"]).__name__ == error
