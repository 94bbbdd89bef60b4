"""Tests for the Delivery aggregate: assignment, tracking transitions and fee quotes."""

from decimal import Decimal

import pytest
from marketplace.delivery.delivery import Delivery, DeliveryStatus, quote_fee
from marketplace.delivery.events import DeliveryAssigned, DeliveryCompleted, DeliveryFailed
from marketplace.errors import AlreadyAssigned, DeliveryNotAvailable, InvalidStatusTransition


def _assigned(driver_id="driver-001"):
    delivery = Delivery.open(order_id="order-001", delivery_address="Avenue Kwame Nkrumah, Ouagadougou")
    delivery.assign(driver_id, 1500, 1200)
    return delivery


class TestQuoteFee:
    def test_flat_fee_without_distance(self):
        assert quote_fee(None, 1500, 1000, 250, Decimal("0.80")) == (1500, 1200)

    def test_distance_based_fee(self):
        assert quote_fee(10, 1500, 1000, 250, Decimal("0.80")) == (2500, 2000)

    def test_minimum_fee(self):
        assert quote_fee(1.5, 1500, 1000, 250, Decimal("0.80")) == (1000, 800)


class TestAssignment:
    def test_assign_pending(self):
        delivery = _assigned()

        assert delivery.status == DeliveryStatus.ASSIGNED.value
        assert delivery.driver_id == "driver-001"
        assert delivery.assigned_at is not None
        assert delivery.attempts == 1
        assert isinstance(delivery._events[-1], DeliveryAssigned)

    def test_cannot_assign_twice(self):
        delivery = _assigned()
        with pytest.raises(DeliveryNotAvailable):
            delivery.assign("driver-002", 1500, 1200)
        assert delivery.driver_id == "driver-001"

    def test_pending_with_driver_is_already_assigned(self):
        delivery = Delivery.open(order_id="order-001")
        delivery.driver_id = "driver-009"
        with pytest.raises(AlreadyAssigned):
            delivery.ensure_assignable()


class TestTracking:
    def test_full_trip(self):
        delivery = _assigned()
        delivery.advance(DeliveryStatus.PICKED_UP)
        delivery.advance(DeliveryStatus.IN_TRANSIT)
        delivery.advance(DeliveryStatus.DELIVERED, signature="A.O.", photo_url="https://cdn.example/p.jpg")

        assert delivery.status == DeliveryStatus.DELIVERED.value
        assert delivery.pickup_time is not None
        assert delivery.delivery_time is not None
        assert delivery.signature == "A.O."
        assert isinstance(delivery._events[-1], DeliveryCompleted)

    def test_cannot_skip_pickup(self):
        delivery = _assigned()
        with pytest.raises(InvalidStatusTransition):
            delivery.advance(DeliveryStatus.IN_TRANSIT)
        assert delivery.status == DeliveryStatus.ASSIGNED.value

    def test_assigned_only_through_assign(self):
        delivery = Delivery.open(order_id="order-001")
        with pytest.raises(InvalidStatusTransition):
            delivery.advance(DeliveryStatus.ASSIGNED)

    def test_failure_drops_driver(self):
        delivery = _assigned()
        delivery.advance(DeliveryStatus.PICKED_UP)
        delivery.advance(DeliveryStatus.FAILED, reason="Address not found")

        assert delivery.driver_id is None
        assert delivery.failure_reason == "Address not found"
        assert isinstance(delivery._events[-1], DeliveryFailed)

    def test_requeue_after_failure(self):
        delivery = _assigned()
        delivery.advance(DeliveryStatus.FAILED, reason="Vehicle breakdown")
        delivery.requeue()

        assert delivery.is_unassigned
        delivery.assign("driver-002", 1500, 1200)
        assert delivery.attempts == 2

    def test_delivered_is_terminal(self):
        delivery = _assigned()
        for status in (DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED):
            delivery.advance(status)
        with pytest.raises(InvalidStatusTransition):
            delivery.advance(DeliveryStatus.FAILED)
