"""Explicit settlement triggers for the offline channels.

Cash on delivery is settled by the driver carrying the order once the goods
are on their way or handed over; a bank transfer is settled by an admin who
has matched the incoming transfer against the payment reference.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.audit import get_event_logger
from marketplace.delivery.delivery import Delivery, DeliveryStatus
from marketplace.domain import marketplace
from marketplace.errors import AuthorizationError, ConflictError
from marketplace.identity.account import Role
from marketplace.identity.actors import require_admin, resolve_actor
from marketplace.order.queries import load_order
from marketplace.payment.payment import Payment, PaymentMethod
from marketplace.payment.webhook import load_payment, record_completion

logger = structlog.get_logger(__name__)

CASH_COLLECTABLE = {DeliveryStatus.IN_TRANSIT.value, DeliveryStatus.DELIVERED.value}


@marketplace.command(part_of="Payment")
class ConfirmCashCollection:
    reference = String(required=True, max_length=50)
    driver_id = Identifier(required=True)


@marketplace.command(part_of="Payment")
class ConfirmBankTransfer:
    reference = String(required=True, max_length=50)
    admin_id = Identifier(required=True)
    bank_reference = String(max_length=255)


def _ensure_method(payment: Payment, method: PaymentMethod) -> None:
    if payment.payment_method != method:
        raise ValidationError({"reference": [f"Payment {payment.payment_reference} is not a {method.value} payment"]})


@marketplace.command_handler(part_of=Payment)
class ManualSettlementHandler:
    @handle(ConfirmCashCollection)
    def confirm_cash(self, command):
        resolve_actor(command.driver_id, Role.DRIVER)
        payment = load_payment(command.reference)
        _ensure_method(payment, PaymentMethod.CASH_ON_DELIVERY)

        delivery = current_domain.repository_for(Delivery).for_order(payment.order_id)
        if delivery is None or str(delivery.driver_id) != str(command.driver_id):
            raise AuthorizationError("Only the driver carrying this order can confirm cash collection")
        if delivery.status not in CASH_COLLECTABLE:
            raise ConflictError(
                f"Cash can only be collected once the delivery is in transit (status: {delivery.status})",
                field="delivery_id",
            )

        order = load_order(payment.order_id)
        payment.complete(gateway_response={"collected_by": str(command.driver_id), "delivery_id": str(delivery.id)})
        record_completion(payment, order)
        current_domain.repository_for(Payment).add(payment)

        logger.info("cash_collected", payment_reference=payment.payment_reference, driver_id=str(command.driver_id))
        get_event_logger().payment(
            "payment_completed",
            payment.payment_reference,
            actor_id=command.driver_id,
            order_id=str(payment.order_id),
            method=payment.method,
            amount=payment.amount,
            source="cash_collection",
        )
        return payment.status

    @handle(ConfirmBankTransfer)
    def confirm_transfer(self, command):
        require_admin(command.admin_id)
        payment = load_payment(command.reference)
        _ensure_method(payment, PaymentMethod.BANK_TRANSFER)

        order = load_order(payment.order_id)
        payment.complete(
            external_transaction_id=command.bank_reference,
            gateway_response={**payment.gateway_payload, "confirmed_by": str(command.admin_id)},
        )
        record_completion(payment, order)
        current_domain.repository_for(Payment).add(payment)

        logger.info("bank_transfer_confirmed", payment_reference=payment.payment_reference)
        get_event_logger().admin_action(
            "bank_transfer_confirmed",
            command.admin_id,
            payment.payment_reference,
            "payment",
            order_id=str(payment.order_id),
            bank_reference=command.bank_reference,
            amount=payment.amount,
        )
        return payment.status
