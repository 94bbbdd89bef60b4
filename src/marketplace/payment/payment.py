"""Payment aggregate (CQRS) — one settlement attempt for an order.

State Machine:
    PENDING -> PROCESSING -> COMPLETED -> REFUNDED
    PENDING/PROCESSING -> FAILED | CANCELLED
    PENDING -> EXPIRED (maintenance cleanup)

The payment reference is the idempotency key shared with the gateway: every
webhook or verification result is correlated back to exactly one attempt by
it, and a result that does not move the attempt along a notification edge
is ignored.
"""

import json
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from marketplace import money
from marketplace.domain import marketplace
from marketplace.errors import InvalidStatusTransition
from marketplace.payment.events import (
    PaymentCancelled,
    PaymentCompleted,
    PaymentExpired,
    PaymentFailed,
    PaymentInitiated,
    PaymentProcessing,
    PaymentRefunded,
)


class PaymentMethod(Enum):
    MOBILE_MONEY = "mobile_money"
    CASH_ON_DELIVERY = "cash_on_delivery"
    BANK_TRANSFER = "bank_transfer"


class PaymentStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    REFUNDED = "refunded"


_VALID_TRANSITIONS = {
    PaymentStatus.PENDING: {
        PaymentStatus.PROCESSING,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
        PaymentStatus.EXPIRED,
    },
    PaymentStatus.PROCESSING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.CANCELLED: set(),
    PaymentStatus.EXPIRED: set(),
    PaymentStatus.REFUNDED: set(),
}

# Edges a gateway notification (webhook or verification) may move along.
NOTIFICATION_EDGES = {
    (PaymentStatus.PROCESSING, PaymentStatus.COMPLETED),
    (PaymentStatus.PROCESSING, PaymentStatus.FAILED),
    (PaymentStatus.PENDING, PaymentStatus.CANCELLED),
    (PaymentStatus.PROCESSING, PaymentStatus.CANCELLED),
}

OPEN_STATUSES = {PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value}

FRAUD_DETECTED = "fraud_detected"


def parse_payment_method(value) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError as exc:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(
            {"payment_method": [f"Unsupported payment method '{value}'. Expected one of: {allowed}"]}
        ) from exc


def generate_reference(now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    return f"PAY-{now:%Y%m%d}-{uuid4().hex[:10].upper()}"


def compute_fees(method: PaymentMethod, amount: int) -> int:
    """Processing fee charged by the settlement channel."""
    amount = Decimal(amount)
    if method == PaymentMethod.MOBILE_MONEY:
        return money.to_amount(min(amount * Decimal("0.015") + 50, amount * Decimal("0.02")))
    if method == PaymentMethod.BANK_TRANSFER:
        return money.to_amount(min(amount * Decimal("0.01") + 100, Decimal(500)))
    return 0


@marketplace.aggregate
class Payment:
    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    payment_reference = String(required=True, max_length=50)
    method = String(required=True, choices=PaymentMethod)
    amount = Integer(required=True, min_value=0)
    fees = Integer(default=0)
    net_amount = Integer(default=0)
    currency = String(max_length=3, default="XOF")
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    customer_phone = String(max_length=20)
    customer_name = String(max_length=255)
    customer_email = String(max_length=255)
    external_transaction_id = String(max_length=255)
    payment_url = String(max_length=1000)
    payment_token = String(max_length=255)
    gateway_response = Text()  # JSON
    error_details = Text()  # JSON
    failure_reason = String(max_length=500)
    risk_score = Integer(default=0)
    expires_at = DateTime()
    completed_at = DateTime()
    failed_at = DateTime()
    cancelled_at = DateTime()
    expired_at = DateTime()
    refunded_at = DateTime()
    refund_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def begin(
        cls,
        order_id,
        buyer_id,
        method: PaymentMethod,
        amount: int,
        currency: str,
        expires_in: timedelta,
        customer_phone=None,
        customer_name=None,
        customer_email=None,
    ):
        now = datetime.now(UTC)
        fees = compute_fees(method, amount)
        payment = cls(
            order_id=order_id,
            buyer_id=buyer_id,
            payment_reference=generate_reference(now),
            method=method.value,
            amount=amount,
            fees=fees,
            net_amount=amount - fees,
            currency=currency,
            status=PaymentStatus.PENDING.value,
            customer_phone=customer_phone,
            customer_name=customer_name,
            customer_email=customer_email,
            expires_at=now + expires_in,
            created_at=now,
            updated_at=now,
        )
        payment.raise_(
            PaymentInitiated(
                payment_id=str(payment.id),
                order_id=str(order_id),
                payment_reference=payment.payment_reference,
                method=method.value,
                amount=amount,
                currency=currency,
                initiated_at=now,
            )
        )
        return payment

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def payment_method(self) -> PaymentMethod:
        return PaymentMethod(self.method)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def is_terminal(self) -> bool:
        return not self.is_open

    @property
    def gateway_payload(self) -> dict:
        return json.loads(self.gateway_response) if self.gateway_response else {}

    @property
    def error_payload(self) -> dict:
        return json.loads(self.error_details) if self.error_details else {}

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(UTC)
        return self.expires_at is not None and self.expires_at <= now

    def _assert_can_transition(self, target: PaymentStatus) -> None:
        current = PaymentStatus(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise InvalidStatusTransition(current.value, target.value, entity="payment")

    def _stamp(self, target: PaymentStatus) -> datetime:
        self._assert_can_transition(target)
        now = datetime.now(UTC)
        self.status = target.value
        self.updated_at = now
        return now

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def mark_processing(self, gateway_response=None, external_transaction_id=None, payment_url=None, payment_token=None):
        self._stamp(PaymentStatus.PROCESSING)
        if gateway_response is not None:
            self.gateway_response = json.dumps(gateway_response)
        if external_transaction_id:
            self.external_transaction_id = external_transaction_id
        if payment_url:
            self.payment_url = payment_url
        if payment_token:
            self.payment_token = payment_token
        self.raise_(
            PaymentProcessing(
                payment_id=str(self.id),
                payment_reference=self.payment_reference,
                external_transaction_id=self.external_transaction_id,
            )
        )

    def record_gateway_response(self, gateway_response: dict) -> None:
        """Keep the latest gateway payload without changing status."""
        self.gateway_response = json.dumps(gateway_response)
        self.updated_at = datetime.now(UTC)

    def complete(self, external_transaction_id=None, gateway_response=None):
        now = self._stamp(PaymentStatus.COMPLETED)
        self.completed_at = now
        if external_transaction_id:
            self.external_transaction_id = external_transaction_id
        if gateway_response is not None:
            self.gateway_response = json.dumps(gateway_response)
        self.raise_(
            PaymentCompleted(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                payment_reference=self.payment_reference,
                amount=self.amount,
                external_transaction_id=self.external_transaction_id,
                completed_at=now,
            )
        )

    def fail(self, reason, error_details=None):
        now = self._stamp(PaymentStatus.FAILED)
        self.failed_at = now
        self.failure_reason = reason
        if error_details is not None:
            self.error_details = json.dumps(error_details)
        self.raise_(
            PaymentFailed(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                payment_reference=self.payment_reference,
                reason=reason,
                failed_at=now,
            )
        )

    def cancel(self, reason=None):
        now = self._stamp(PaymentStatus.CANCELLED)
        self.cancelled_at = now
        self.failure_reason = reason
        self.raise_(
            PaymentCancelled(
                payment_id=str(self.id),
                payment_reference=self.payment_reference,
                reason=reason,
                cancelled_at=now,
            )
        )

    def expire(self):
        now = self._stamp(PaymentStatus.EXPIRED)
        self.expired_at = now
        self.raise_(PaymentExpired(payment_id=str(self.id), payment_reference=self.payment_reference, expired_at=now))

    def refund(self, reason=None):
        now = self._stamp(PaymentStatus.REFUNDED)
        self.refunded_at = now
        self.refund_reason = reason
        self.raise_(
            PaymentRefunded(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                payment_reference=self.payment_reference,
                amount=self.amount,
                reason=reason,
                refunded_at=now,
            )
        )

    def apply_notification(self, outcome: PaymentStatus, external_transaction_id=None, error_message=None, payload=None):
        """Apply a gateway-reported outcome. Returns False when it is a no-op.

        Only the notification edges are applied; a duplicate or out-of-order
        report leaves the attempt untouched.
        """
        if (PaymentStatus(self.status), outcome) not in NOTIFICATION_EDGES:
            return False

        if outcome == PaymentStatus.COMPLETED:
            self.complete(external_transaction_id=external_transaction_id, gateway_response=payload)
        elif outcome == PaymentStatus.FAILED:
            self.fail(error_message or "Payment failed at gateway", error_details=payload)
        else:
            self.cancel(error_message or "Cancelled at gateway")
        return True
