"""Delivery aggregate (CQRS) — getting one order from the vendors to the buyer.

State Machine:
    PENDING -> ASSIGNED -> PICKED_UP -> IN_TRANSIT -> DELIVERED
    ASSIGNED/PICKED_UP/IN_TRANSIT -> FAILED
    FAILED -> PENDING (re-queue for another driver)

A failed delivery drops its driver, so a delivery has a driver exactly while
it is ASSIGNED, PICKED_UP, IN_TRANSIT or DELIVERED.
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from marketplace import money
from marketplace.domain import marketplace
from marketplace.delivery.events import (
    DeliveryAssigned,
    DeliveryCompleted,
    DeliveryFailed,
    DeliveryOpened,
    DeliveryStatusChanged,
)
from marketplace.errors import AlreadyAssigned, DeliveryNotAvailable, InvalidStatusTransition


class DeliveryStatus(Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"


_VALID_TRANSITIONS = {
    DeliveryStatus.PENDING: {DeliveryStatus.ASSIGNED},
    DeliveryStatus.ASSIGNED: {DeliveryStatus.PICKED_UP, DeliveryStatus.FAILED},
    DeliveryStatus.PICKED_UP: {DeliveryStatus.IN_TRANSIT, DeliveryStatus.FAILED},
    DeliveryStatus.IN_TRANSIT: {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED},
    DeliveryStatus.DELIVERED: set(),  # Terminal
    DeliveryStatus.FAILED: {DeliveryStatus.PENDING},
}

ACTIVE_STATUSES = {
    DeliveryStatus.ASSIGNED.value,
    DeliveryStatus.PICKED_UP.value,
    DeliveryStatus.IN_TRANSIT.value,
}


def quote_fee(
    distance_km: float | None,
    flat_fee: int,
    minimum_fee: int,
    fee_per_km: int,
    driver_share: Decimal,
) -> tuple[int, int]:
    """(delivery fee, driver earnings) for a trip of ``distance_km``."""
    if distance_km:
        fee = max(minimum_fee, money.to_amount(Decimal(str(distance_km)) * fee_per_km))
    else:
        fee = flat_fee
    return fee, money.apply_rate(fee, driver_share)


@marketplace.aggregate
class Delivery:
    order_id = Identifier(required=True)
    driver_id = Identifier()
    pickup_address = Text()
    delivery_address = Text()
    estimated_distance_km = Float()
    estimated_duration_minutes = Integer()
    status = String(choices=DeliveryStatus, default=DeliveryStatus.PENDING.value)
    delivery_fee = Integer(default=0)
    driver_earnings = Integer(default=0)
    attempts = Integer(default=0)
    assigned_at = DateTime()
    pickup_time = DateTime()
    delivery_time = DateTime()
    failed_at = DateTime()
    failure_reason = String(max_length=500)
    signature = Text()
    photo_url = String(max_length=1000)
    notes = Text()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def open(cls, order_id, delivery_address=None, pickup_address=None, distance_km=None, duration_minutes=None):
        now = datetime.now(UTC)
        delivery = cls(
            order_id=order_id,
            delivery_address=delivery_address,
            pickup_address=pickup_address,
            estimated_distance_km=distance_km,
            estimated_duration_minutes=duration_minutes,
            status=DeliveryStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        delivery.raise_(DeliveryOpened(delivery_id=str(delivery.id), order_id=str(order_id), opened_at=now))
        return delivery

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_unassigned(self) -> bool:
        return self.status == DeliveryStatus.PENDING.value and not self.driver_id

    def _assert_can_transition(self, target: DeliveryStatus) -> None:
        current = DeliveryStatus(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise InvalidStatusTransition(current.value, target.value, entity="delivery")

    def _move_to(self, target: DeliveryStatus) -> datetime:
        previous = self.status
        now = datetime.now(UTC)
        self.status = target.value
        self.updated_at = now
        self.raise_(
            DeliveryStatusChanged(
                delivery_id=str(self.id),
                order_id=str(self.order_id),
                previous_status=previous,
                new_status=target.value,
                changed_at=now,
            )
        )
        return now

    # -------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------
    def ensure_assignable(self) -> None:
        if self.status != DeliveryStatus.PENDING.value:
            raise DeliveryNotAvailable(self.id, self.status)
        if self.driver_id:
            raise AlreadyAssigned(self.id, self.driver_id)

    def assign(self, driver_id, delivery_fee: int, driver_earnings: int) -> None:
        self.ensure_assignable()

        now = self._move_to(DeliveryStatus.ASSIGNED)
        self.driver_id = driver_id
        self.assigned_at = now
        self.delivery_fee = delivery_fee
        self.driver_earnings = driver_earnings
        self.attempts = (self.attempts or 0) + 1
        self.raise_(
            DeliveryAssigned(
                delivery_id=str(self.id),
                order_id=str(self.order_id),
                driver_id=str(driver_id),
                delivery_fee=delivery_fee,
                driver_earnings=driver_earnings,
                assigned_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Tracking
    # -------------------------------------------------------------------
    def advance(self, target: DeliveryStatus, signature=None, photo_url=None, notes=None, reason=None) -> None:
        """Move along the transition table, stamping the fields each state owns."""
        if target == DeliveryStatus.ASSIGNED:
            raise InvalidStatusTransition(self.status, target.value, entity="delivery")
        self._assert_can_transition(target)

        driver_id = self.driver_id
        now = self._move_to(target)
        if notes:
            self.notes = notes

        if target == DeliveryStatus.PICKED_UP:
            self.pickup_time = now
        elif target == DeliveryStatus.DELIVERED:
            self.delivery_time = now
            if signature:
                self.signature = signature
            if photo_url:
                self.photo_url = photo_url
            self.raise_(
                DeliveryCompleted(
                    delivery_id=str(self.id),
                    order_id=str(self.order_id),
                    driver_id=str(driver_id),
                    delivered_at=now,
                )
            )
        elif target == DeliveryStatus.FAILED:
            self.driver_id = None
            self.assigned_at = None
            self.failed_at = now
            self.failure_reason = reason
            self.raise_(
                DeliveryFailed(
                    delivery_id=str(self.id),
                    order_id=str(self.order_id),
                    driver_id=str(driver_id) if driver_id else None,
                    reason=reason,
                    failed_at=now,
                )
            )
        elif target == DeliveryStatus.PENDING:
            self.failure_reason = None

    def requeue(self) -> None:
        self.advance(DeliveryStatus.PENDING)


@marketplace.repository(part_of=Delivery)
class DeliveryRepository:
    def for_order(self, order_id) -> Delivery | None:
        found = self._dao.query.filter(order_id=str(order_id)).all().items
        return found[0] if found else None

    def unassigned(self) -> list[Delivery]:
        pending = self._dao.query.filter(status=DeliveryStatus.PENDING.value).all().items
        return sorted((d for d in pending if not d.driver_id), key=lambda d: d.created_at)

    def for_driver(self, driver_id) -> list[Delivery]:
        return self._dao.query.filter(driver_id=str(driver_id)).all().items

    def active_for_driver(self, driver_id) -> list[Delivery]:
        return [d for d in self.for_driver(driver_id) if d.is_active]

    def busy_driver_ids(self) -> set[str]:
        busy = set()
        for status in ACTIVE_STATUSES:
            for delivery in self._dao.query.filter(status=status).all().items:
                if delivery.driver_id:
                    busy.add(str(delivery.driver_id))
        return busy
