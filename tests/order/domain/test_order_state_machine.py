"""Tests for the Order aggregate: status transitions, the payment axis and vendor views."""

import pytest
from marketplace.errors import InvalidStatusTransition
from marketplace.order.events import OrderCancelled, OrderPaid, OrderPlaced, OrderStatusChanged
from marketplace.order.order import Order, OrderPaymentStatus, OrderStatus, ShippingAddress
from protean.exceptions import ValidationError


def _make_order(lines=None):
    lines = lines or [
        {"product_id": "p1", "vendor_id": "vendor-001", "product_name": "Shea Butter", "quantity": 2, "unit_price": 1500},
        {"product_id": "p2", "vendor_id": "vendor-002", "product_name": "Bissap", "quantity": 1, "unit_price": 700},
    ]
    return Order.place(
        buyer_id="buyer-001",
        lines=lines,
        shipping_address=ShippingAddress(street="Rue 12", city="Bobo-Dioulasso"),
        payment_method="mobile_money",
    )


class TestPlaceOrder:
    def test_total_is_sum_of_snapshotted_lines(self):
        order = _make_order()
        assert order.total_amount == 3700
        assert order.status == OrderStatus.PENDING.value
        assert order.payment_status == OrderPaymentStatus.UNPAID.value
        assert order.items[0].line_total == 3000

    def test_raises_order_placed(self):
        order = _make_order()
        placed = [e for e in order._events if isinstance(e, OrderPlaced)]
        assert len(placed) == 1
        assert placed[0].item_count == 3

    def test_empty_order_rejected(self):
        with pytest.raises(ValidationError) as exc:
            Order.place(buyer_id="buyer-001", lines=[], shipping_address=None)
        assert "at least one item" in str(exc.value)


class TestStatusTransitions:
    def test_forward_path(self):
        order = _make_order()
        order.confirm()
        order.start_processing()
        order.mark_delivered()

        assert order.status == OrderStatus.DELIVERED.value
        assert order.confirmed_at is not None
        assert order.processing_at is not None
        assert order.delivered_at is not None

    def test_cannot_skip_to_delivered(self):
        order = _make_order()
        with pytest.raises(InvalidStatusTransition) as exc:
            order.mark_delivered()
        assert exc.value.current == "pending"
        assert exc.value.target == "delivered"
        assert order.status == OrderStatus.PENDING.value

    def test_cannot_go_backwards(self):
        order = _make_order()
        order.confirm()
        with pytest.raises(InvalidStatusTransition):
            order.transition_to(OrderStatus.PENDING)
        assert order.status == OrderStatus.CONFIRMED.value

    def test_cancel_from_processing(self):
        order = _make_order()
        order.confirm()
        order.start_processing()
        order.cancel(reason="Out of stock", cancelled_by="admin-001")

        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation_reason == "Out of stock"
        assert isinstance(order._events[-1], OrderCancelled)

    def test_delivered_is_terminal(self):
        order = _make_order()
        order.advance_to_delivered()
        with pytest.raises(InvalidStatusTransition):
            order.cancel()

    def test_cancelled_is_terminal(self):
        order = _make_order()
        order.cancel()
        with pytest.raises(InvalidStatusTransition):
            order.confirm()
        with pytest.raises(InvalidStatusTransition):
            order.cancel()

    def test_cancel_not_allowed_through_transition_to(self):
        with pytest.raises(ValidationError):
            _make_order().transition_to(OrderStatus.CANCELLED)

    def test_advance_to_delivered_walks_every_step(self):
        order = _make_order()
        passed = order.advance_to_delivered()

        assert passed == ["confirmed", "processing", "delivered"]
        changes = [e.new_status for e in order._events if isinstance(e, OrderStatusChanged)]
        assert changes == ["confirmed", "processing", "delivered"]

    def test_advance_to_delivered_from_processing(self):
        order = _make_order()
        order.confirm()
        order.start_processing()
        assert order.advance_to_delivered() == ["delivered"]


class TestPaymentAxis:
    def test_record_payment(self):
        order = _make_order()
        order.record_payment("PAY-1")

        assert order.is_paid
        assert order.payment_reference == "PAY-1"
        assert isinstance(order._events[-1], OrderPaid)

    def test_failure_then_later_success(self):
        order = _make_order()
        order.record_payment_failure("PAY-1")
        assert order.payment_status == OrderPaymentStatus.FAILED.value

        order.record_payment("PAY-2")
        assert order.payment_status == OrderPaymentStatus.PAID.value

    def test_failure_after_paid_is_ignored(self):
        order = _make_order()
        order.record_payment("PAY-1")
        order.record_payment_failure("PAY-2")
        assert order.payment_status == OrderPaymentStatus.PAID.value
        assert order.payment_reference == "PAY-1"

    def test_cannot_pay_twice(self):
        order = _make_order()
        order.record_payment("PAY-1")
        with pytest.raises(InvalidStatusTransition):
            order.record_payment("PAY-2")

    def test_refund_requires_paid(self):
        order = _make_order()
        with pytest.raises(InvalidStatusTransition):
            order.record_refund("PAY-1")

        order.record_payment("PAY-1")
        order.record_refund("PAY-1")
        assert order.payment_status == OrderPaymentStatus.REFUNDED.value


class TestVendorView:
    def test_only_vendor_lines(self):
        order = _make_order()
        view = order.vendor_view("vendor-002")

        assert [line.product_id for line in view.lines] == ["p2"]
        assert view.vendor_total == 700
        assert view.status == "pending"

    def test_has_vendor(self):
        order = _make_order()
        assert order.has_vendor("vendor-001")
        assert not order.has_vendor("vendor-999")
