"""Application tests for OTP resubmission, cancellation, refunds and expiry."""

from datetime import UTC, datetime, timedelta

import pytest
from marketplace import pipeline
from marketplace.errors import AuthorizationError, ConflictError, InvalidStatusTransition
from marketplace.maintenance import run_payment_cleanup
from marketplace.order.order import Order
from marketplace.payment.payment import Payment, PaymentMethod
from protean import current_domain
from protean.exceptions import ValidationError


def _payment(reference):
    return current_domain.repository_for(Payment).find_by_reference(reference)


def _stale_payment(order_id, buyer_id, minutes=-5):
    payment = Payment.begin(
        order_id=order_id,
        buyer_id=buyer_id,
        method=PaymentMethod.MOBILE_MONEY,
        amount=25000,
        currency="XOF",
        expires_in=timedelta(minutes=minutes),
        customer_phone="+22670123456",
    )
    current_domain.repository_for(Payment).add(payment)
    return payment.payment_reference


@pytest.fixture()
def order_id(make_product, place_order):
    make_product("p1", unit_price=25000)
    return place_order([("p1", 1)])


class TestSubmitOtp:
    def test_correct_otp_schedules_confirmation(self, buyer, order_id, scheduler):
        started = pipeline.initiate_payment(order_id, buyer, customer_phone="+22670123459")

        result = pipeline.submit_payment_otp(started.payment_reference, buyer, "1234")

        assert result.status == "processing"
        assert result.auto_confirm is True
        scheduler.run_pending()
        assert _payment(started.payment_reference).status == "completed"
        assert current_domain.repository_for(Order).get(order_id).payment_status == "paid"

    def test_wrong_otp_fails_attempt(self, buyer, order_id):
        started = pipeline.initiate_payment(order_id, buyer, customer_phone="+22670123459")

        result = pipeline.submit_payment_otp(started.payment_reference, buyer, "0000")

        assert result.status == "failed"
        payment = _payment(started.payment_reference)
        assert payment.failure_reason == "Invalid OTP code"
        assert payment.error_payload["error_code"] == "INVALID_OTP"
        assert current_domain.repository_for(Order).get(order_id).payment_status == "failed"

    def test_not_awaiting_otp(self, buyer, order_id):
        started = pipeline.initiate_payment(order_id, buyer)
        pipeline.process_webhook(started.payment_reference, "success")

        with pytest.raises(ConflictError):
            pipeline.submit_payment_otp(started.payment_reference, buyer, "1234")

    def test_only_mobile_money(self, buyer, order_id):
        started = pipeline.initiate_payment(order_id, buyer, method="bank_transfer")
        with pytest.raises(ValidationError):
            pipeline.submit_payment_otp(started.payment_reference, buyer, "1234")


class TestCancelPayment:
    def test_buyer_cancels_open_attempt(self, buyer, order_id):
        started = pipeline.initiate_payment(order_id, buyer)

        assert pipeline.cancel_payment(started.payment_reference, buyer) == "cancelled"
        assert _payment(started.payment_reference).failure_reason == "Cancelled by customer"

        # The order can be paid again
        assert pipeline.initiate_payment(order_id, buyer).status == "processing"

    def test_completed_cannot_be_cancelled(self, buyer, order_id):
        started = pipeline.initiate_payment(order_id, buyer)
        pipeline.process_webhook(started.payment_reference, "success")

        with pytest.raises(InvalidStatusTransition):
            pipeline.cancel_payment(started.payment_reference, buyer)

    def test_stranger_refused(self, buyer, register, order_id):
        started = pipeline.initiate_payment(order_id, buyer)
        other = register("buyer-002", "buyer")
        with pytest.raises(AuthorizationError):
            pipeline.cancel_payment(started.payment_reference, other)


class TestRefund:
    def test_admin_refunds_completed_payment(self, buyer, admin, order_id, sink):
        started = pipeline.initiate_payment(order_id, buyer)
        pipeline.process_webhook(started.payment_reference, "success")

        assert pipeline.refund_payment(started.payment_reference, admin, reason="Damaged") == "refunded"

        assert current_domain.repository_for(Order).get(order_id).payment_status == "refunded"
        assert sink.records(category="admin", event_type="payment_refunded")

    def test_refund_requires_completion(self, buyer, admin, order_id):
        started = pipeline.initiate_payment(order_id, buyer)
        with pytest.raises(InvalidStatusTransition):
            pipeline.refund_payment(started.payment_reference, admin)

    def test_refunded_order_cannot_be_paid_again(self, buyer, admin, order_id):
        started = pipeline.initiate_payment(order_id, buyer, method="bank_transfer")
        pipeline.confirm_bank_transfer(started.payment_reference, admin)
        pipeline.refund_payment(started.payment_reference, admin, reason="Out of stock")

        with pytest.raises(ConflictError, match="refunded"):
            pipeline.initiate_payment(order_id, buyer, method="bank_transfer")

        payments = current_domain.repository_for(Payment)._dao.query.filter(order_id=order_id).all().items
        assert [p.status for p in payments] == ["refunded"]

    def test_refund_is_admin_only(self, buyer, order_id):
        started = pipeline.initiate_payment(order_id, buyer)
        pipeline.process_webhook(started.payment_reference, "success")
        with pytest.raises(AuthorizationError):
            pipeline.refund_payment(started.payment_reference, buyer)


class TestExpiry:
    def test_expire_stale_pending(self, buyer, order_id):
        reference = _stale_payment(order_id, buyer)
        assert pipeline.expire_payment(reference) is True
        assert _payment(reference).status == "expired"

    def test_fresh_pending_is_left_alone(self, buyer, order_id):
        reference = _stale_payment(order_id, buyer, minutes=30)
        assert pipeline.expire_payment(reference) is False
        assert _payment(reference).status == "pending"

    def test_cleanup_job(self, buyer, order_id):
        stale = _stale_payment(order_id, buyer)
        fresh = _stale_payment(order_id, buyer, minutes=30)

        report = run_payment_cleanup()

        assert report.expired == [stale]
        assert report.failed == []
        assert _payment(fresh).status == "pending"

    def test_cleanup_is_idempotent(self, buyer, order_id):
        _stale_payment(order_id, buyer)
        run_payment_cleanup()
        assert run_payment_cleanup().summary == {"expired": 0, "skipped": 0, "failed": 0}

    def test_cleanup_leaves_gateway_attempts_open(self, buyer, order_id):
        started = pipeline.initiate_payment(order_id, buyer)
        assert started.status == "processing"

        report = run_payment_cleanup(now=datetime.now(UTC) + timedelta(hours=2))

        assert report.expired == []
        assert _payment(started.payment_reference).status == "processing"
