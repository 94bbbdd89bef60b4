"""Read helpers for payments."""

from protean.utils.globals import current_domain

from marketplace.errors import AuthorizationError
from marketplace.identity.actors import resolve_actor
from marketplace.payment.payment import Payment
from marketplace.payment.webhook import load_payment


def payment_for_actor(reference, actor_id) -> Payment:
    """The payment, if ``actor_id`` is its buyer or an admin."""
    actor = resolve_actor(actor_id, allow_suspended=True)
    payment = load_payment(reference)
    if not actor.is_admin and str(payment.buyer_id) != str(actor.id):
        raise AuthorizationError("Not allowed to view this payment")
    return payment


def payments_for_order(order_id) -> list[Payment]:
    return current_domain.repository_for(Payment).for_order(order_id)
