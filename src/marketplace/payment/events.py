"""Domain events for the Payment aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Payment")
class PaymentInitiated:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_reference = String(required=True, max_length=50)
    method = String(required=True, max_length=30)
    amount = Integer(required=True)
    currency = String(required=True, max_length=3)
    initiated_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentProcessing:
    """The attempt was handed to its settlement channel."""

    __version__ = 1

    payment_id = Identifier(required=True)
    payment_reference = String(required=True, max_length=50)
    external_transaction_id = String(max_length=255)


@marketplace.event(part_of="Payment")
class PaymentCompleted:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_reference = String(required=True, max_length=50)
    amount = Integer(required=True)
    external_transaction_id = String(max_length=255)
    completed_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentFailed:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_reference = String(required=True, max_length=50)
    reason = String(max_length=500)
    failed_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentCancelled:
    __version__ = 1

    payment_id = Identifier(required=True)
    payment_reference = String(required=True, max_length=50)
    reason = String(max_length=500)
    cancelled_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentExpired:
    __version__ = 1

    payment_id = Identifier(required=True)
    payment_reference = String(required=True, max_length=50)
    expired_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentRefunded:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_reference = String(required=True, max_length=50)
    amount = Integer(required=True)
    reason = String(max_length=500)
    refunded_at = DateTime(required=True)
