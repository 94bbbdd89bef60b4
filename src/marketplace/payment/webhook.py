"""Gateway notifications — webhook callbacks and pull-based verification.

Both paths end in ``settle_notification``: the reported status is mapped to
a payment status and applied only along a notification edge, so duplicate
and out-of-order reports are logged no-ops. Signature checking happens at
the HTTP boundary before the command is built.
"""

import json
from dataclasses import dataclass

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.audit import get_event_logger
from marketplace.delivery.assignment import open_delivery_for
from marketplace.domain import marketplace
from marketplace.errors import AuthorizationError, ExternalServiceError, NotFoundError
from marketplace.identity.actors import resolve_actor
from marketplace.order.order import Order
from marketplace.order.queries import load_order
from marketplace.payment.gateway import get_gateway
from marketplace.payment.gateway.port import GatewayError
from marketplace.payment.payment import Payment, PaymentMethod, PaymentStatus

logger = structlog.get_logger(__name__)

GATEWAY_STATUS_MAP = {
    "success": PaymentStatus.COMPLETED,
    "completed": PaymentStatus.COMPLETED,
    "failed": PaymentStatus.FAILED,
    "error": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.CANCELLED,
    "canceled": PaymentStatus.CANCELLED,
}

# Still in flight at the gateway; nothing to apply yet
IN_FLIGHT_STATUSES = {"pending", "processing"}


@marketplace.command(part_of="Payment")
class ProcessPaymentWebhook:
    reference = String(required=True, max_length=50)
    status = String(required=True, max_length=30)
    transaction_id = String(max_length=255)
    error_message = String(max_length=500)
    gateway_payload = Text()  # JSON
    source = String(max_length=20, default="webhook")  # webhook | simulation


@marketplace.command(part_of="Payment")
class VerifyPayment:
    reference = String(required=True, max_length=50)
    actor_id = Identifier()


@dataclass
class NotificationResult:
    payment_reference: str
    applied: bool
    status: str
    previous_status: str
    order_id: str | None = None
    delivery_id: str | None = None


def map_gateway_status(value) -> PaymentStatus:
    outcome = GATEWAY_STATUS_MAP.get(str(value or "").strip().lower())
    if outcome is None:
        raise ValidationError({"status": [f"Unrecognised payment status '{value}'"]})
    return outcome


def load_payment(reference) -> Payment:
    payment = current_domain.repository_for(Payment).find_by_reference(reference)
    if payment is None:
        raise NotFoundError(f"Payment {reference} not found", field="reference")
    return payment


def record_completion(payment: Payment, order: Order) -> str | None:
    """Mark the order paid and make it fulfillable. Returns the delivery id, if any."""
    order.record_payment(payment.payment_reference, amount=payment.amount)
    delivery_id = None
    if order.is_open:
        delivery_id = str(open_delivery_for(order).id)
    current_domain.repository_for(Order).add(order)
    return delivery_id


def settle_notification(
    payment: Payment,
    outcome: PaymentStatus,
    transaction_id=None,
    error_message=None,
    payload=None,
    source="webhook",
) -> NotificationResult:
    previous = payment.status
    order = load_order(payment.order_id)

    if outcome == PaymentStatus.COMPLETED and order.is_cancelled:
        applied = False
    else:
        applied = payment.apply_notification(
            outcome, external_transaction_id=transaction_id, error_message=error_message, payload=payload
        )

    result = NotificationResult(
        payment_reference=payment.payment_reference,
        applied=applied,
        status=payment.status,
        previous_status=previous,
        order_id=str(payment.order_id),
    )
    if not applied:
        logger.info(
            "payment_notification_ignored",
            payment_reference=payment.payment_reference,
            current_status=previous,
            reported_status=outcome.value,
            source=source,
        )
        return result

    if outcome == PaymentStatus.COMPLETED:
        result.delivery_id = record_completion(payment, order)
    elif outcome == PaymentStatus.FAILED:
        order.record_payment_failure(payment.payment_reference)
        current_domain.repository_for(Order).add(order)
    current_domain.repository_for(Payment).add(payment)

    logger.info(
        "payment_notification_applied",
        payment_reference=payment.payment_reference,
        previous_status=previous,
        status=payment.status,
        source=source,
    )
    get_event_logger().payment(
        f"payment_{payment.status}",
        payment.payment_reference,
        severity="warning" if outcome == PaymentStatus.FAILED else "info",
        success=outcome == PaymentStatus.COMPLETED,
        order_id=str(payment.order_id),
        source=source,
        previous_status=previous,
        external_transaction_id=payment.external_transaction_id,
        error_message=error_message,
    )
    return result


@marketplace.command_handler(part_of=Payment)
class PaymentNotificationHandler:
    @handle(ProcessPaymentWebhook)
    def process_webhook(self, command):
        outcome = map_gateway_status(command.status)
        payment = load_payment(command.reference)
        payload = json.loads(command.gateway_payload) if command.gateway_payload else None
        return settle_notification(
            payment,
            outcome,
            transaction_id=command.transaction_id,
            error_message=command.error_message,
            payload=payload,
            source=command.source,
        )

    @handle(VerifyPayment)
    def verify(self, command):
        payment = load_payment(command.reference)
        if command.actor_id:
            actor = resolve_actor(command.actor_id)
            if not actor.is_admin and str(payment.buyer_id) != str(actor.id):
                raise AuthorizationError("Not allowed to verify this payment")

        unchanged = NotificationResult(
            payment_reference=payment.payment_reference,
            applied=False,
            status=payment.status,
            previous_status=payment.status,
            order_id=str(payment.order_id),
        )
        if payment.payment_method != PaymentMethod.MOBILE_MONEY or payment.is_terminal:
            return unchanged

        try:
            verification = get_gateway().verify_payment(payment.payment_reference)
        except GatewayError as exc:
            logger.error("gateway_verification_failed", payment_reference=payment.payment_reference, error=exc.message)
            raise ExternalServiceError(f"Payment verification failed: {exc.message}") from exc

        reported = str(verification.status or "").strip().lower()
        if reported in IN_FLIGHT_STATUSES:
            return unchanged

        return settle_notification(
            payment,
            map_gateway_status(reported),
            transaction_id=verification.transaction_id,
            error_message=verification.message,
            payload=verification.raw,
            source="verification",
        )
