"""Application tests for delivery assignment, tracking and auto-match."""

import threading

import pytest
from marketplace import pipeline
from marketplace.delivery.delivery import Delivery
from marketplace.delivery.tracking import available_deliveries, deliveries_for_driver, track_delivery
from marketplace.domain import marketplace
from marketplace.errors import (
    AlreadyAssigned,
    AuthorizationError,
    DeliveryNotAvailable,
    DriverUnavailable,
    MarketplaceError,
)
from marketplace.order.order import Order
from protean import current_domain


def _delivery(delivery_id):
    return current_domain.repository_for(Delivery).get(delivery_id)


@pytest.fixture()
def open_delivery(buyer, make_product, place_order):
    """Place a cash-on-delivery order and start its payment; returns (order_id, delivery_id)."""

    def _open(product_id="p1"):
        make_product(product_id, available_quantity=20)
        order_id = place_order([(product_id, 1)], payment_method="cash_on_delivery")
        return order_id, pipeline.initiate_payment(order_id, buyer).delivery_id

    return _open


class TestAssign:
    def test_driver_accepts(self, open_delivery, driver, sink):
        _, delivery_id = open_delivery()

        pipeline.assign_delivery(delivery_id, driver, actor_id=driver)

        delivery = _delivery(delivery_id)
        assert delivery.status == "assigned"
        assert delivery.driver_id == driver
        assert delivery.delivery_fee == 1500
        assert delivery.driver_earnings == 1200
        assert sink.records(category="delivery", event_type="delivery_assigned")

    def test_second_driver_is_refused(self, open_delivery, driver, register):
        _, delivery_id = open_delivery()
        other = register("driver-002", "driver")
        pipeline.assign_delivery(delivery_id, driver, actor_id=driver)

        with pytest.raises(DeliveryNotAvailable):
            pipeline.assign_delivery(delivery_id, other, actor_id=other)
        assert _delivery(delivery_id).driver_id == driver

    def test_driver_cannot_assign_someone_else(self, open_delivery, driver, register):
        _, delivery_id = open_delivery()
        other = register("driver-002", "driver")
        with pytest.raises(AuthorizationError):
            pipeline.assign_delivery(delivery_id, other, actor_id=driver)

    def test_admin_assigns_any_driver(self, open_delivery, driver, admin):
        _, delivery_id = open_delivery()
        pipeline.assign_delivery(delivery_id, driver, actor_id=admin)
        assert _delivery(delivery_id).driver_id == driver

    def test_non_driver_account(self, open_delivery, admin, vendor):
        _, delivery_id = open_delivery()
        with pytest.raises(DriverUnavailable):
            pipeline.assign_delivery(delivery_id, vendor, actor_id=admin)

    def test_suspended_driver(self, open_delivery, driver, admin):
        _, delivery_id = open_delivery()
        pipeline.suspend_account(driver, admin, "Documents expired")
        with pytest.raises(DriverUnavailable):
            pipeline.assign_delivery(delivery_id, driver, actor_id=admin)

    def test_cancelled_order(self, open_delivery, driver, buyer):
        order_id, delivery_id = open_delivery()
        pipeline.cancel_order(order_id, buyer)

        with pytest.raises(DeliveryNotAvailable):
            pipeline.assign_delivery(delivery_id, driver, actor_id=driver)
        assert available_deliveries() == []

    def test_pending_row_with_driver(self, open_delivery, driver, admin):
        _, delivery_id = open_delivery()
        delivery = _delivery(delivery_id)
        delivery.driver_id = driver
        current_domain.repository_for(Delivery).add(delivery)

        with pytest.raises(AlreadyAssigned):
            pipeline.assign_delivery(delivery_id, driver, actor_id=admin)

    def test_concurrent_accepts_have_one_winner(self, open_delivery, register):
        _, delivery_id = open_delivery()
        drivers = [register(f"driver-{n:03d}", "driver") for n in range(1, 5)]
        barrier = threading.Barrier(len(drivers))
        outcomes = {}

        def accept(driver_id):
            with marketplace.domain_context():
                barrier.wait()
                try:
                    pipeline.assign_delivery(delivery_id, driver_id, actor_id=driver_id)
                    outcomes[driver_id] = "assigned"
                except MarketplaceError as exc:
                    outcomes[driver_id] = type(exc).__name__

        threads = [threading.Thread(target=accept, args=(d,)) for d in drivers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        winners = [d for d, outcome in outcomes.items() if outcome == "assigned"]
        assert len(winners) == 1
        assert sorted(o for o in outcomes.values() if o != "assigned") == ["DeliveryNotAvailable"] * 3
        assert _delivery(delivery_id).driver_id == winners[0]


class TestTracking:
    def test_delivered_advances_order(self, open_delivery, driver):
        order_id, delivery_id = open_delivery()
        pipeline.assign_delivery(delivery_id, driver, actor_id=driver)
        for status in ("picked_up", "in_transit", "delivered"):
            pipeline.update_delivery_status(delivery_id, driver, status)

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == "delivered"
        assert order.confirmed_at is not None
        assert order.processing_at is not None

    def test_only_assigned_driver_updates(self, open_delivery, driver, register):
        _, delivery_id = open_delivery()
        other = register("driver-002", "driver")
        pipeline.assign_delivery(delivery_id, driver, actor_id=driver)

        with pytest.raises(AuthorizationError):
            pipeline.update_delivery_status(delivery_id, other, "picked_up")

    def test_failure_then_admin_requeue(self, open_delivery, driver, admin):
        _, delivery_id = open_delivery()
        pipeline.assign_delivery(delivery_id, driver, actor_id=driver)
        pipeline.update_delivery_status(delivery_id, driver, "failed", reason="Customer unreachable")

        with pytest.raises(AuthorizationError):
            pipeline.update_delivery_status(delivery_id, driver, "pending")

        pipeline.update_delivery_status(delivery_id, admin, "pending")
        assert [str(d.id) for d in available_deliveries()] == [delivery_id]

    def test_track_permissions(self, open_delivery, buyer, driver, vendor, register):
        _, delivery_id = open_delivery()
        pipeline.assign_delivery(delivery_id, driver, actor_id=driver)

        assert str(track_delivery(delivery_id, buyer).id) == delivery_id
        assert str(track_delivery(delivery_id, driver).id) == delivery_id
        assert str(track_delivery(delivery_id, vendor).id) == delivery_id

        stranger = register("buyer-002", "buyer")
        with pytest.raises(AuthorizationError):
            track_delivery(delivery_id, stranger)

    def test_driver_history(self, open_delivery, driver):
        _, first = open_delivery("p1")
        _, second = open_delivery("p2")
        pipeline.assign_delivery(first, driver, actor_id=driver)
        pipeline.assign_delivery(second, driver, actor_id=driver)
        pipeline.update_delivery_status(first, driver, "failed", reason="Flat tyre")

        assert [str(d.id) for d in deliveries_for_driver(driver, active_only=True)] == [second]


class TestAutoMatch:
    def test_pairs_deliveries_with_idle_drivers(self, open_delivery, register):
        first_driver = register("driver-001", "driver")
        second_driver = register("driver-002", "driver")
        _, first = open_delivery("p1")
        _, second = open_delivery("p2")
        _, third = open_delivery("p3")

        report = pipeline.auto_match()

        assert len(report.assigned) == 2
        assert report.unmatched_deliveries == [third]
        assigned = {entry["delivery_id"]: entry["driver_id"] for entry in report.assigned}
        assert set(assigned) == {first, second}
        assert set(assigned.values()) == {first_driver, second_driver}

    def test_busy_drivers_are_skipped(self, open_delivery, driver):
        _, first = open_delivery("p1")
        _, second = open_delivery("p2")
        pipeline.assign_delivery(first, driver, actor_id=driver)

        report = pipeline.auto_match()

        assert report.assigned == []
        assert report.unmatched_deliveries == [second]

    def test_no_deliveries(self, driver):
        report = pipeline.auto_match()
        assert report.summary == {"assigned": 0, "failed": 0, "unmatched": 0}
