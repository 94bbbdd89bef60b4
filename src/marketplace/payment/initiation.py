"""Payment initiation — command and handler.

One attempt per order at a time. The attempt is created ``pending``,
screened by the fraud gate and then handed to exactly one settlement
strategy. A blocked or gateway-failed attempt is still committed as
``failed`` so the record survives; the pipeline reports the error to the
caller afterwards.
"""

from datetime import timedelta

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.audit import get_event_logger
from marketplace.config import Settings, get_settings
from marketplace.delivery.assignment import open_delivery_for
from marketplace.domain import marketplace
from marketplace.errors import AuthorizationError, ConflictError
from marketplace.fraud.gate import FraudGate
from marketplace.identity.account import Role
from marketplace.identity.actors import resolve_actor
from marketplace.order.order import Order
from marketplace.order.queries import load_order
from marketplace.payment.payment import FRAUD_DETECTED, Payment, PaymentMethod, parse_payment_method
from marketplace.payment.settlement import PaymentResult, apply_outcome, strategy_for

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Payment")
class InitiatePayment:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    method = String(max_length=30)  # Defaults to the method chosen at checkout
    customer_phone = String(max_length=20)
    customer_name = String(max_length=255)
    customer_email = String(max_length=255)
    otp = String(max_length=10)
    ip_address = String(max_length=45)
    device_fingerprint = String(max_length=255)


def expiry_for(method: PaymentMethod, settings: Settings) -> timedelta:
    minutes = {
        PaymentMethod.MOBILE_MONEY: settings.mobile_money_expiry_minutes,
        PaymentMethod.BANK_TRANSFER: settings.bank_transfer_expiry_minutes,
        PaymentMethod.CASH_ON_DELIVERY: settings.cash_on_delivery_expiry_minutes,
    }[method]
    return timedelta(minutes=minutes)


def ensure_payable(order: Order) -> None:
    if order.is_paid:
        raise ConflictError("Order is already paid", field="order_id", order_id=str(order.id))
    if order.is_refunded:
        raise ConflictError("Order was refunded and can no longer be paid", field="order_id", order_id=str(order.id))
    if not order.is_open:
        raise ConflictError(f"Order is {order.status} and can no longer be paid", field="order_id")

    in_flight = current_domain.repository_for(Payment).open_for_order(order.id)
    if in_flight:
        raise ConflictError(
            "A payment is already in progress for this order",
            field="order_id",
            payment_reference=in_flight[0].payment_reference,
        )


@marketplace.command_handler(part_of=Payment)
class InitiatePaymentHandler:
    @handle(InitiatePayment)
    def initiate(self, command):
        settings = get_settings()
        actor = resolve_actor(command.actor_id, Role.BUYER)
        order = load_order(command.order_id)
        if not actor.is_admin and str(order.buyer_id) != str(actor.id):
            raise AuthorizationError("Only the buyer can pay for this order")

        ensure_payable(order)
        method = parse_payment_method(command.method or order.payment_method or PaymentMethod.MOBILE_MONEY.value)
        phone = command.customer_phone or (order.shipping_address.phone if order.shipping_address else None)
        if method == PaymentMethod.MOBILE_MONEY and not phone:
            raise ValidationError({"customer_phone": ["Phone number is required for mobile money payments"]})

        payment = Payment.begin(
            order_id=order.id,
            buyer_id=order.buyer_id,
            method=method,
            amount=order.total_amount,
            currency=order.currency,
            expires_in=expiry_for(method, settings),
            customer_phone=phone,
            customer_name=command.customer_name,
            customer_email=command.customer_email,
        )

        assessment = FraudGate(settings).screen(
            order.buyer_id,
            ip_address=command.ip_address,
            device_fingerprint=command.device_fingerprint,
            amount=order.total_amount,
            context={
                "phone": phone,
                "order_id": str(order.id),
                "payment_reference": payment.payment_reference,
            },
        )
        payment.risk_score = assessment.risk_score

        result = PaymentResult(
            payment_reference=payment.payment_reference,
            order_id=str(order.id),
            status=payment.status,
            amount=payment.amount,
            fees=payment.fees,
            currency=payment.currency,
            fraud=assessment,
        )

        if assessment.blocked:
            payment.fail(
                FRAUD_DETECTED,
                error_details={
                    "risk_score": assessment.risk_score,
                    "triggered_rules": list(assessment.triggered_rules),
                    "incident_id": assessment.incident_id,
                },
            )
            order.record_payment_failure(payment.payment_reference)
            result.message = assessment.message
        else:
            outcome = strategy_for(method, settings).settle(payment, otp=command.otp)
            apply_outcome(payment, outcome)
            if outcome.failed:
                order.record_payment_failure(payment.payment_reference)
            elif outcome.fulfillable:
                result.delivery_id = str(open_delivery_for(order).id)

            result.payment_url = outcome.payment_url
            result.payment_token = outcome.payment_token
            result.requires_otp = outcome.requires_otp
            result.message = outcome.message
            result.gateway_error = outcome.gateway_error
            result.auto_confirm = outcome.auto_confirm
            if method == PaymentMethod.BANK_TRANSFER:
                result.instructions = outcome.gateway_response.get("instructions")

        result.status = payment.status
        current_domain.repository_for(Payment).add(payment)
        current_domain.repository_for(Order).add(order)

        logger.info(
            "payment_initiated",
            payment_reference=payment.payment_reference,
            order_id=str(order.id),
            method=method.value,
            status=payment.status,
            risk_score=assessment.risk_score,
        )
        get_event_logger().payment(
            "payment_initiated",
            payment.payment_reference,
            actor_id=command.actor_id,
            severity="info" if payment.is_open else "warning",
            success=payment.is_open,
            order_id=str(order.id),
            method=method.value,
            amount=payment.amount,
            status=payment.status,
            risk_score=assessment.risk_score,
            failure_reason=payment.failure_reason,
        )
        return result
