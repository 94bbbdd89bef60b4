"""Racing requests against shared carts, stock and payment references."""

import threading

from marketplace import pipeline
from marketplace.audit import get_event_logger
from marketplace.cart.cart import Cart
from marketplace.delivery.delivery import Delivery
from marketplace.domain import marketplace
from marketplace.errors import MarketplaceError
from marketplace.inventory.product import Product
from marketplace.order.order import Order
from marketplace.payment.payment import Payment
from protean import current_domain


def _race(calls):
    """Start every call at the same barrier, each in its own domain context.

    Returns one outcome per call: the return value, or the error class name.
    """
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def run(index, fn):
        with marketplace.domain_context():
            barrier.wait()
            try:
                outcomes[index] = fn()
            except MarketplaceError as exc:
                outcomes[index] = type(exc).__name__

    threads = [threading.Thread(target=run, args=(i, fn)) for i, fn in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return outcomes


class TestConcurrentCartAdds:
    def test_same_product_merges_into_one_line(self, buyer, make_product):
        make_product("p1", available_quantity=50)

        _race([lambda: pipeline.add_cart_item(buyer, "p1", 1) for _ in range(8)])

        cart = current_domain.repository_for(Cart).get(buyer)
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 8

    def test_adds_never_exceed_stock(self, buyer, make_product):
        make_product("p1", available_quantity=5)

        outcomes = _race([lambda: pipeline.add_cart_item(buyer, "p1", 1) for _ in range(8)])

        assert outcomes.count("InsufficientInventory") == 3
        assert current_domain.repository_for(Cart).get(buyer).items[0].quantity == 5


class TestLastUnit:
    def test_one_buyer_wins_the_last_unit(self, register, make_product, shipping_address):
        make_product("p1", available_quantity=1)
        buyers = [register(f"buyer-{n:03d}", "buyer") for n in range(1, 9)]

        def checkout(buyer_id):
            return lambda: pipeline.place_order(
                buyer_id, shipping_address, items=[{"product_id": "p1", "quantity": 1}]
            )

        outcomes = _race([checkout(b) for b in buyers])

        failures = [o for o in outcomes if o == "InsufficientInventory"]
        assert len(failures) == 7
        assert current_domain.repository_for(Order)._dao.query.all().total == 1
        assert current_domain.repository_for(Product).get("p1").available_quantity == 0


class TestRacingNotifications:
    def _started(self, buyer, make_product, place_order):
        make_product("p1", unit_price=100000, available_quantity=5)
        order_id = place_order([("p1", 1)])
        return order_id, pipeline.initiate_payment(order_id, buyer).payment_reference

    def test_duplicate_webhooks_apply_once(self, buyer, make_product, place_order):
        order_id, reference = self._started(buyer, make_product, place_order)

        outcomes = _race(
            [lambda: pipeline.process_webhook(reference, "success", transaction_id="gw-1") for _ in range(6)]
        )

        assert sum(1 for result in outcomes if result.applied) == 1
        assert current_domain.repository_for(Payment).find_by_reference(reference).status == "completed"
        assert current_domain.repository_for(Order).get(order_id).payment_status == "paid"
        assert current_domain.repository_for(Delivery)._dao.query.all().total == 1
        assert len(get_event_logger().sink.records(event_type="payment_completed")) == 1

    def test_webhook_racing_verification_applies_once(self, buyer, make_product, place_order, gateway):
        order_id, reference = self._started(buyer, make_product, place_order)
        gateway.settle(reference, "completed")

        calls = [lambda: pipeline.process_webhook(reference, "completed") for _ in range(3)]
        calls += [lambda: pipeline.verify_payment(reference, actor_id=buyer) for _ in range(3)]
        outcomes = _race(calls)

        assert sum(1 for result in outcomes if result.applied) == 1
        assert current_domain.repository_for(Order).get(order_id).payment_status == "paid"
        assert current_domain.repository_for(Delivery)._dao.query.all().total == 1
