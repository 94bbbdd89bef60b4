"""Repository for the Payment aggregate."""

from datetime import UTC, datetime

from marketplace.domain import marketplace
from marketplace.payment.payment import OPEN_STATUSES, Payment, PaymentStatus


@marketplace.repository(part_of=Payment)
class PaymentRepository:
    def find_by_reference(self, payment_reference: str) -> Payment | None:
        found = self._dao.query.filter(payment_reference=payment_reference).all().items
        return found[0] if found else None

    def for_order(self, order_id) -> list[Payment]:
        payments = self._dao.query.filter(order_id=str(order_id)).all().items
        return sorted(payments, key=lambda p: p.created_at)

    def open_for_order(self, order_id) -> list[Payment]:
        return [p for p in self.for_order(order_id) if p.status in OPEN_STATUSES]

    def for_buyer(self, buyer_id) -> list[Payment]:
        return self._dao.query.filter(buyer_id=str(buyer_id)).all().items

    def stale_pending(self, now: datetime | None = None) -> list[Payment]:
        now = now or datetime.now(UTC)
        pending = self._dao.query.filter(status=PaymentStatus.PENDING.value).all().items
        return [p for p in pending if p.is_expired(now)]
