"""Payment lifecycle — cancellation, refunds, OTP resubmission and expiry."""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.audit import get_event_logger
from marketplace.domain import marketplace
from marketplace.errors import AuthorizationError, ConflictError
from marketplace.identity.account import Role
from marketplace.identity.actors import require_admin, resolve_actor
from marketplace.order.order import Order
from marketplace.order.queries import load_order
from marketplace.payment.payment import Payment, PaymentMethod, PaymentStatus
from marketplace.payment.settlement import MobileMoneySettlement, PaymentResult
from marketplace.payment.webhook import load_payment

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Payment")
class CancelPayment:
    reference = String(required=True, max_length=50)
    actor_id = Identifier(required=True)
    reason = String(max_length=500)


@marketplace.command(part_of="Payment")
class RefundPayment:
    reference = String(required=True, max_length=50)
    admin_id = Identifier(required=True)
    reason = String(max_length=500)


@marketplace.command(part_of="Payment")
class SubmitPaymentOtp:
    reference = String(required=True, max_length=50)
    actor_id = Identifier(required=True)
    otp = String(required=True, max_length=10)


@marketplace.command(part_of="Payment")
class ExpirePayment:
    reference = String(required=True, max_length=50)


def _load_own_payment(reference, actor_id) -> Payment:
    actor = resolve_actor(actor_id, Role.BUYER)
    payment = load_payment(reference)
    if not actor.is_admin and str(payment.buyer_id) != str(actor.id):
        raise AuthorizationError("Not allowed to act on this payment")
    return payment


@marketplace.command_handler(part_of=Payment)
class PaymentLifecycleHandler:
    @handle(CancelPayment)
    def cancel(self, command):
        payment = _load_own_payment(command.reference, command.actor_id)
        payment.cancel(command.reason or "Cancelled by customer")
        current_domain.repository_for(Payment).add(payment)

        logger.info("payment_cancelled", payment_reference=payment.payment_reference)
        get_event_logger().payment(
            "payment_cancelled",
            payment.payment_reference,
            actor_id=command.actor_id,
            order_id=str(payment.order_id),
            reason=command.reason,
        )
        return payment.status

    @handle(RefundPayment)
    def refund(self, command):
        require_admin(command.admin_id)
        payment = load_payment(command.reference)
        order = load_order(payment.order_id)

        payment.refund(command.reason)
        order.record_refund(payment.payment_reference)
        current_domain.repository_for(Payment).add(payment)
        current_domain.repository_for(Order).add(order)

        logger.info("payment_refunded", payment_reference=payment.payment_reference, amount=payment.amount)
        get_event_logger().admin_action(
            "payment_refunded",
            command.admin_id,
            payment.payment_reference,
            "payment",
            order_id=str(order.id),
            amount=payment.amount,
            reason=command.reason,
        )
        return payment.status

    @handle(SubmitPaymentOtp)
    def submit_otp(self, command):
        payment = _load_own_payment(command.reference, command.actor_id)
        if payment.payment_method != PaymentMethod.MOBILE_MONEY:
            raise ValidationError({"reference": ["OTP only applies to mobile money payments"]})
        if payment.status != PaymentStatus.PROCESSING.value:
            raise ConflictError(f"Payment is {payment.status} and not awaiting an OTP", field="reference")

        outcome = MobileMoneySettlement().settle(payment, otp=command.otp)
        if outcome.failed:
            payment.fail(outcome.message, error_details=outcome.error_details)
            order = load_order(payment.order_id)
            order.record_payment_failure(payment.payment_reference)
            current_domain.repository_for(Order).add(order)
        else:
            payment.record_gateway_response(outcome.gateway_response)
            if outcome.external_transaction_id:
                payment.external_transaction_id = outcome.external_transaction_id
        current_domain.repository_for(Payment).add(payment)

        logger.info("payment_otp_submitted", payment_reference=payment.payment_reference, status=payment.status)
        get_event_logger().payment(
            "payment_otp_submitted",
            payment.payment_reference,
            actor_id=command.actor_id,
            success=not outcome.failed,
            severity="warning" if outcome.failed else "info",
            status=payment.status,
        )
        return PaymentResult(
            payment_reference=payment.payment_reference,
            order_id=str(payment.order_id),
            status=payment.status,
            amount=payment.amount,
            fees=payment.fees,
            currency=payment.currency,
            payment_url=outcome.payment_url,
            payment_token=outcome.payment_token,
            requires_otp=outcome.requires_otp,
            message=outcome.message,
            gateway_error=outcome.gateway_error,
            auto_confirm=outcome.auto_confirm,
        )

    @handle(ExpirePayment)
    def expire(self, command):
        """Expire a stale pending attempt. Returns False when it is no longer eligible."""
        payment = load_payment(command.reference)
        if payment.status != PaymentStatus.PENDING.value or not payment.is_expired():
            return False

        payment.expire()
        current_domain.repository_for(Payment).add(payment)
        logger.info("payment_expired", payment_reference=payment.payment_reference)
        get_event_logger().payment(
            "payment_expired", payment.payment_reference, order_id=str(payment.order_id), success=False
        )
        return True
