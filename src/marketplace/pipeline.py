"""Locked entry points for every pipeline operation.

Each function builds the command, takes the per-resource locks covering
every row the handler may write, and processes the command synchronously
so the unit of work commits while the locks are held. Where the lock set
depends on stored data (the order behind a payment reference, the lines of
an order) the owning row is locked first and the rest is read under it.

Failures that must be reported after a committed state change (a payment
blocked by the fraud gate, a gateway that could not be reached) are raised
here, once the handler has returned.
"""

import json

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from marketplace import locking
from marketplace.cart.management import AddCartItem, ClearCart, RemoveCartItem, UpdateCartItem, find_cart
from marketplace.config import get_settings
from marketplace.delivery.assignment import AssignDelivery
from marketplace.delivery.delivery import Delivery
from marketplace.delivery.matching import MatchReport
from marketplace.delivery.matching import auto_match as run_matching
from marketplace.delivery.tracking import UpdateDeliveryStatus
from marketplace.domain import marketplace
from marketplace.errors import ExternalServiceError, FraudBlockedError, MarketplaceError
from marketplace.fraud.incident import FraudIncident
from marketplace.fraud.resolution import BlockAddress, ResolveFraudIncident
from marketplace.identity.registration import ReactivateAccount, RegisterAccount, SuspendAccount
from marketplace.inventory.stocking import AdjustStock, ChangeProductAvailability, RegisterProduct
from marketplace.order.order import Order
from marketplace.order.placement import PlaceOrder, parse_items
from marketplace.order.transitions import CancelOrder, UpdateOrderStatus
from marketplace.payment.gateway import get_gateway
from marketplace.payment.gateway.fake_adapter import FakeMobileMoneyGateway
from marketplace.payment.initiation import InitiatePayment
from marketplace.payment.lifecycle import CancelPayment, ExpirePayment, RefundPayment, SubmitPaymentOtp
from marketplace.payment.manual import ConfirmBankTransfer, ConfirmCashCollection
from marketplace.payment.payment import Payment
from marketplace.payment.settlement import PaymentResult
from marketplace.payment.webhook import ProcessPaymentWebhook, VerifyPayment
from marketplace.scheduling import get_scheduler

logger = structlog.get_logger(__name__)


def _process(command):
    return current_domain.process(command, asynchronous=False)


# ---------------------------------------------------------------------------
# Lock-set lookups (reads only)
# ---------------------------------------------------------------------------
def _peek(aggregate_cls, identifier):
    if not identifier:
        return None
    try:
        return current_domain.repository_for(aggregate_cls).get(identifier)
    except ObjectNotFoundError:
        return None


def _order_for_payment(reference):
    payment = current_domain.repository_for(Payment).find_by_reference(reference)
    return payment.order_id if payment is not None else None


def _order_resource_keys(order_id) -> list:
    """Payments, delivery and stock rows that cancelling ``order_id`` may touch."""
    order = _peek(Order, order_id)
    if order is None:
        return []
    keys = [locking.product(line.product_id) for line in order.items]
    keys += [locking.payment(p.payment_reference) for p in current_domain.repository_for(Payment).for_order(order_id)]
    delivery = current_domain.repository_for(Delivery).for_order(order_id)
    if delivery is not None:
        keys += [locking.delivery(delivery.id), locking.driver(delivery.driver_id)]
    return keys


# ---------------------------------------------------------------------------
# Catalog and identity replicas
# ---------------------------------------------------------------------------
def register_product(product_id, vendor_id, name, unit_price, available_quantity=0, **options):
    with locking.exclusive(locking.product(product_id)):
        return _process(
            RegisterProduct(
                product_id=product_id,
                vendor_id=vendor_id,
                name=name,
                unit_price=unit_price,
                available_quantity=available_quantity,
                **options,
            )
        )


def adjust_stock(product_id, available_quantity=None, unit_price=None, reason=None):
    with locking.exclusive(locking.product(product_id)):
        return _process(
            AdjustStock(
                product_id=product_id,
                available_quantity=available_quantity,
                unit_price=unit_price,
                reason=reason,
            )
        )


def set_product_availability(product_id, active: bool):
    with locking.exclusive(locking.product(product_id)):
        return _process(ChangeProductAvailability(product_id=product_id, active=active))


def register_account(account_id, role, **profile):
    with locking.exclusive(locking.actor(account_id)):
        return _process(RegisterAccount(account_id=account_id, role=role, **profile))


def suspend_account(account_id, admin_id, reason):
    with locking.exclusive(locking.actor(account_id)):
        return _process(SuspendAccount(account_id=account_id, admin_id=admin_id, reason=reason))


def reactivate_account(account_id, admin_id):
    with locking.exclusive(locking.actor(account_id)):
        return _process(ReactivateAccount(account_id=account_id, admin_id=admin_id))


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
def add_cart_item(buyer_id, product_id, quantity):
    with locking.exclusive(locking.cart(buyer_id), locking.product(product_id)):
        return _process(AddCartItem(buyer_id=buyer_id, product_id=product_id, quantity=quantity))


def update_cart_item(buyer_id, item_id, quantity):
    with locking.exclusive(locking.cart(buyer_id)):
        cart = find_cart(buyer_id)
        item = next((i for i in cart.items if str(i.id) == str(item_id)), None) if cart else None
        product_key = locking.product(item.product_id if item else None)
        with locking.exclusive(product_key):
            return _process(UpdateCartItem(buyer_id=buyer_id, item_id=item_id, quantity=quantity))


def remove_cart_item(buyer_id, item_id):
    with locking.exclusive(locking.cart(buyer_id)):
        return _process(RemoveCartItem(buyer_id=buyer_id, item_id=item_id))


def clear_cart(buyer_id):
    with locking.exclusive(locking.cart(buyer_id)):
        return _process(ClearCart(buyer_id=buyer_id))


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
def place_order(buyer_id, shipping_address: dict, payment_method=None, notes=None, items=None):
    """Place an order and return its id. ``items`` (``[{product_id, quantity}]``) bypasses the cart."""
    with locking.exclusive(locking.cart(buyer_id)):
        if items:
            product_ids = list(parse_items(items))
        else:
            cart = find_cart(buyer_id)
            product_ids = [item.product_id for item in cart.items] if cart else []

        with locking.exclusive(*[locking.product(product_id) for product_id in product_ids]):
            options = {"payment_method": payment_method} if payment_method else {}
            return _process(
                PlaceOrder(
                    buyer_id=buyer_id,
                    shipping_address=json.dumps(shipping_address or {}),
                    notes=notes,
                    items=json.dumps(items) if items else None,
                    **options,
                )
            )


def update_order_status(order_id, status, actor_id, reason=None):
    with locking.exclusive(locking.order(order_id)):
        with locking.exclusive(*_order_resource_keys(order_id)):
            return _process(UpdateOrderStatus(order_id=order_id, status=status, actor_id=actor_id, reason=reason))


def cancel_order(order_id, actor_id, reason=None):
    with locking.exclusive(locking.order(order_id)):
        with locking.exclusive(*_order_resource_keys(order_id)):
            return _process(CancelOrder(order_id=order_id, actor_id=actor_id, reason=reason))


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
def _auto_confirm(reference):
    """Timer callback: report a mock gateway success the way a webhook would."""
    with marketplace.domain_context():
        gateway = get_gateway()
        if isinstance(gateway, FakeMobileMoneyGateway):
            gateway.settle(reference, "completed")
        try:
            process_webhook(reference, "success", source="simulation")
        except (MarketplaceError, ValidationError) as exc:
            logger.warning("auto_confirm_failed", payment_reference=reference, error=str(exc))


def _report(result: PaymentResult) -> PaymentResult:
    if result.fraud_blocked:
        raise FraudBlockedError(
            result.fraud.message,
            payment_reference=result.payment_reference,
            risk_score=result.fraud.risk_score,
            incident_id=result.fraud.incident_id,
        )
    if result.gateway_error:
        raise ExternalServiceError(
            f"Payment gateway error: {result.gateway_error}",
            payment_reference=result.payment_reference,
        )
    if result.auto_confirm:
        delay = get_settings().auto_confirm_delay_seconds
        get_scheduler().call_later(delay, _auto_confirm, result.payment_reference)
        logger.info("payment_auto_confirm_scheduled", payment_reference=result.payment_reference, delay=delay)
    return result


def initiate_payment(order_id, actor_id, method=None, ip_address=None, device_fingerprint=None, **customer):
    """Start a payment attempt. ``customer`` takes ``customer_phone``, ``customer_name``,
    ``customer_email`` and ``otp``."""
    order = _peek(Order, order_id)
    buyer_id = order.buyer_id if order is not None else None
    with locking.exclusive(locking.order(order_id), locking.actor(buyer_id)):
        result = _process(
            InitiatePayment(
                order_id=order_id,
                actor_id=actor_id,
                method=method,
                ip_address=ip_address,
                device_fingerprint=device_fingerprint,
                **customer,
            )
        )
    return _report(result)


def submit_payment_otp(reference, actor_id, otp):
    with locking.exclusive(locking.order(_order_for_payment(reference)), locking.payment(reference)):
        result = _process(SubmitPaymentOtp(reference=reference, actor_id=actor_id, otp=otp))
    return _report(result)


def process_webhook(reference, status, transaction_id=None, error_message=None, payload=None, source="webhook"):
    with locking.exclusive(locking.order(_order_for_payment(reference)), locking.payment(reference)):
        return _process(
            ProcessPaymentWebhook(
                reference=reference,
                status=status,
                transaction_id=transaction_id,
                error_message=error_message,
                gateway_payload=json.dumps(payload) if payload is not None else None,
                source=source,
            )
        )


def verify_payment(reference, actor_id=None):
    with locking.exclusive(locking.order(_order_for_payment(reference)), locking.payment(reference)):
        return _process(VerifyPayment(reference=reference, actor_id=actor_id))


def confirm_cash_collection(reference, driver_id):
    order_id = _order_for_payment(reference)
    delivery = current_domain.repository_for(Delivery).for_order(order_id) if order_id else None
    with locking.exclusive(
        locking.order(order_id),
        locking.payment(reference),
        locking.delivery(delivery.id if delivery else None),
    ):
        return _process(ConfirmCashCollection(reference=reference, driver_id=driver_id))


def confirm_bank_transfer(reference, admin_id, bank_reference=None):
    with locking.exclusive(locking.order(_order_for_payment(reference)), locking.payment(reference)):
        return _process(ConfirmBankTransfer(reference=reference, admin_id=admin_id, bank_reference=bank_reference))


def cancel_payment(reference, actor_id, reason=None):
    with locking.exclusive(locking.order(_order_for_payment(reference)), locking.payment(reference)):
        return _process(CancelPayment(reference=reference, actor_id=actor_id, reason=reason))


def refund_payment(reference, admin_id, reason=None):
    with locking.exclusive(locking.order(_order_for_payment(reference)), locking.payment(reference)):
        return _process(RefundPayment(reference=reference, admin_id=admin_id, reason=reason))


def expire_payment(reference):
    with locking.exclusive(locking.order(_order_for_payment(reference)), locking.payment(reference)):
        return _process(ExpirePayment(reference=reference))


# ---------------------------------------------------------------------------
# Deliveries
# ---------------------------------------------------------------------------
def assign_delivery(delivery_id, driver_id, actor_id=None, require_idle=False):
    with locking.exclusive(locking.delivery(delivery_id), locking.driver(driver_id)):
        return _process(
            AssignDelivery(
                delivery_id=delivery_id,
                driver_id=driver_id,
                actor_id=actor_id,
                require_idle=require_idle,
            )
        )


def update_delivery_status(delivery_id, actor_id, status, **proof):
    """Move a delivery along. ``proof`` takes ``signature``, ``photo_url``, ``notes`` and ``reason``."""
    delivery = _peek(Delivery, delivery_id)
    order_id = delivery.order_id if delivery is not None else None
    driver_id = delivery.driver_id if delivery is not None else None
    with locking.exclusive(locking.order(order_id), locking.delivery(delivery_id), locking.driver(driver_id)):
        return _process(UpdateDeliveryStatus(delivery_id=delivery_id, actor_id=actor_id, status=status, **proof))


def auto_match(actor_id=None) -> MatchReport:
    """Pair waiting deliveries with idle drivers; each pair is assigned under its own locks."""

    def assign(delivery_id, driver_id, matched_by):
        return assign_delivery(delivery_id, driver_id, actor_id=matched_by, require_idle=True)

    return run_matching(assign, actor_id=actor_id)


# ---------------------------------------------------------------------------
# Fraud administration
# ---------------------------------------------------------------------------
def resolve_fraud_incident(incident_id, admin_id, resolution, notes=None):
    incident = _peek(FraudIncident, incident_id)
    with locking.exclusive(locking.actor(incident.actor_id if incident is not None else None)):
        return _process(
            ResolveFraudIncident(incident_id=incident_id, admin_id=admin_id, resolution=resolution, notes=notes)
        )


def block_address(ip_address, admin_id, reason=None):
    return _process(BlockAddress(ip_address=ip_address, admin_id=admin_id, reason=reason))
