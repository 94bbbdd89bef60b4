"""Order aggregate (CQRS) — the buyer-facing purchase record.

Two independent axes:

    status:          PENDING -> CONFIRMED -> PROCESSING -> DELIVERED
                     CANCELLED from PENDING, CONFIRMED, PROCESSING
    payment_status:  UNPAID -> PAID -> REFUNDED
                     UNPAID/FAILED -> FAILED, FAILED -> PAID (a later attempt)

Line items are bound to vendors. Prices are snapshotted at placement and
``total_amount`` is never recomputed from live prices.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text, ValueObject

from marketplace import money
from marketplace.domain import marketplace
from marketplace.errors import InvalidStatusTransition
from marketplace.order.events import (
    OrderCancelled,
    OrderPaid,
    OrderPaymentFailed,
    OrderPlaced,
    OrderRefunded,
    OrderStatusChanged,
)


class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderPaymentStatus(Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

_PAYMENT_TRANSITIONS = {
    OrderPaymentStatus.UNPAID: {OrderPaymentStatus.PAID, OrderPaymentStatus.FAILED},
    OrderPaymentStatus.FAILED: {OrderPaymentStatus.PAID, OrderPaymentStatus.FAILED},
    OrderPaymentStatus.PAID: {OrderPaymentStatus.REFUNDED},
    OrderPaymentStatus.REFUNDED: set(),
}

_FORWARD_PATH = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.DELIVERED,
]

_TIMESTAMP_FIELDS = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.PROCESSING: "processing_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="Order")
class ShippingAddress:
    """Where the order goes. Captured at checkout and never updated."""

    recipient = String(max_length=255)
    phone = String(max_length=20)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    region = String(max_length=100)
    landmark = String(max_length=255)

    def as_text(self) -> str:
        parts = [self.street, self.landmark, self.city, self.region]
        return ", ".join(part for part in parts if part)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class OrderLine:
    product_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    product_name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    line_total = Integer(required=True, min_value=0)


@dataclass(frozen=True)
class VendorOrderView:
    """The part of an order one vendor is allowed to see. Never persisted."""

    order_id: str
    vendor_id: str
    status: str
    payment_status: str
    lines: list
    vendor_total: int


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    buyer_id = Identifier(required=True)
    items = HasMany(OrderLine)
    total_amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="XOF")
    shipping_address = ValueObject(ShippingAddress)
    payment_method = String(max_length=50)
    notes = Text()
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=OrderPaymentStatus, default=OrderPaymentStatus.UNPAID.value)
    payment_reference = String(max_length=50)
    cancellation_reason = String(max_length=500)
    cancelled_by = Identifier()
    created_at = DateTime()
    confirmed_at = DateTime()
    processing_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()
    paid_at = DateTime()
    refunded_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, buyer_id, lines, shipping_address, payment_method=None, notes=None, currency="XOF"):
        """Create a pending order.

        ``lines`` are dicts with ``product_id``, ``vendor_id``, ``product_name``,
        ``quantity`` and ``unit_price`` as read from the ledger at placement.
        """
        if not lines:
            raise ValidationError({"items": ["Order must contain at least one item"]})

        order_lines = [
            OrderLine(
                product_id=line["product_id"],
                vendor_id=line["vendor_id"],
                product_name=line.get("product_name"),
                quantity=line["quantity"],
                unit_price=line["unit_price"],
                line_total=money.line_total(line["unit_price"], line["quantity"]),
            )
            for line in lines
        ]
        now = datetime.now(UTC)
        order = cls(
            buyer_id=buyer_id,
            items=order_lines,
            total_amount=sum(line.line_total for line in order_lines),
            currency=currency,
            shipping_address=shipping_address,
            payment_method=payment_method,
            notes=notes,
            status=OrderStatus.PENDING.value,
            payment_status=OrderPaymentStatus.UNPAID.value,
            created_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                buyer_id=str(buyer_id),
                total_amount=order.total_amount,
                currency=currency,
                item_count=sum(line.quantity for line in order_lines),
                payment_method=payment_method,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Status axis
    # -------------------------------------------------------------------
    def can_transition_to(self, target: OrderStatus) -> bool:
        return target in _VALID_TRANSITIONS[OrderStatus(self.status)]

    def _assert_can_transition(self, target: OrderStatus) -> None:
        if not self.can_transition_to(target):
            raise InvalidStatusTransition(self.status, target.value, entity="order")

    def _move_to(self, target: OrderStatus) -> datetime:
        previous = self.status
        now = datetime.now(UTC)
        self.status = target.value
        setattr(self, _TIMESTAMP_FIELDS[target], now)
        self.updated_at = now
        if target != OrderStatus.CANCELLED:
            self.raise_(
                OrderStatusChanged(
                    order_id=str(self.id),
                    previous_status=previous,
                    new_status=target.value,
                    changed_at=now,
                )
            )
        return now

    def transition_to(self, target: OrderStatus) -> None:
        """Apply one forward transition from the table."""
        if target == OrderStatus.CANCELLED:
            raise ValidationError({"status": ["Use cancel() to cancel an order"]})
        self._assert_can_transition(target)
        self._move_to(target)

    def confirm(self) -> None:
        self.transition_to(OrderStatus.CONFIRMED)

    def start_processing(self) -> None:
        self.transition_to(OrderStatus.PROCESSING)

    def mark_delivered(self) -> None:
        self.transition_to(OrderStatus.DELIVERED)

    def advance_to_delivered(self) -> list[str]:
        """Walk the forward path up to DELIVERED, one legal step at a time.

        Used when the delivery completes before a vendor has confirmed or
        started processing. Returns the statuses passed through.
        """
        current = OrderStatus(self.status)
        if current not in _FORWARD_PATH:
            raise InvalidStatusTransition(self.status, OrderStatus.DELIVERED.value, entity="order")

        visited = []
        for target in _FORWARD_PATH[_FORWARD_PATH.index(current) + 1 :]:
            self.transition_to(target)
            visited.append(target.value)
        return visited

    def cancel(self, reason=None, cancelled_by=None) -> None:
        self._assert_can_transition(OrderStatus.CANCELLED)

        previous = self.status
        now = self._move_to(OrderStatus.CANCELLED)
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=previous,
                reason=reason,
                cancelled_by=cancelled_by,
                cancelled_at=now,
            )
        )

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED.value

    @property
    def is_open(self) -> bool:
        """Still heading somewhere: neither delivered nor cancelled."""
        return self.status not in (OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value)

    # -------------------------------------------------------------------
    # Payment axis
    # -------------------------------------------------------------------
    @property
    def is_paid(self) -> bool:
        return self.payment_status == OrderPaymentStatus.PAID.value

    @property
    def is_refunded(self) -> bool:
        return self.payment_status == OrderPaymentStatus.REFUNDED.value

    def _assert_payment_transition(self, target: OrderPaymentStatus) -> None:
        current = OrderPaymentStatus(self.payment_status)
        if target not in _PAYMENT_TRANSITIONS[current]:
            raise InvalidStatusTransition(current.value, target.value, entity="payment status")

    def record_payment(self, payment_reference, amount=None) -> None:
        self._assert_payment_transition(OrderPaymentStatus.PAID)
        now = datetime.now(UTC)
        self.payment_status = OrderPaymentStatus.PAID.value
        self.payment_reference = payment_reference
        self.paid_at = now
        self.updated_at = now
        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                payment_reference=payment_reference,
                amount=amount if amount is not None else self.total_amount,
                paid_at=now,
            )
        )

    def record_payment_failure(self, payment_reference) -> None:
        if self.payment_status not in (OrderPaymentStatus.UNPAID.value, OrderPaymentStatus.FAILED.value):
            return
        self.payment_status = OrderPaymentStatus.FAILED.value
        self.payment_reference = payment_reference
        self.updated_at = datetime.now(UTC)
        self.raise_(OrderPaymentFailed(order_id=str(self.id), payment_reference=payment_reference))

    def record_refund(self, payment_reference) -> None:
        self._assert_payment_transition(OrderPaymentStatus.REFUNDED)
        now = datetime.now(UTC)
        self.payment_status = OrderPaymentStatus.REFUNDED.value
        self.refunded_at = now
        self.updated_at = now
        self.raise_(OrderRefunded(order_id=str(self.id), payment_reference=payment_reference, refunded_at=now))

    # -------------------------------------------------------------------
    # Vendor scope
    # -------------------------------------------------------------------
    def has_vendor(self, vendor_id) -> bool:
        return any(str(line.vendor_id) == str(vendor_id) for line in self.items)

    def vendor_view(self, vendor_id) -> VendorOrderView:
        lines = [line for line in self.items if str(line.vendor_id) == str(vendor_id)]
        return VendorOrderView(
            order_id=str(self.id),
            vendor_id=str(vendor_id),
            status=self.status,
            payment_status=self.payment_status,
            lines=lines,
            vendor_total=sum(line.line_total for line in lines),
        )
