"""FraudIncident aggregate — a scored attempt that crossed a risk threshold.

Lifecycle: PENDING -> CONFIRMED | FALSE_POSITIVE, decided by an admin.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from marketplace.domain import marketplace
from marketplace.errors import InvalidStatusTransition
from marketplace.fraud.events import FraudIncidentOpened, FraudIncidentResolved


class IncidentStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FALSE_POSITIVE = "false_positive"


@marketplace.aggregate
class FraudIncident:
    actor_id = Identifier(required=True)
    order_id = Identifier()
    payment_reference = String(max_length=50)
    incident_type = String(max_length=50, default="payment_risk")
    risk_score = Integer(required=True, min_value=0, max_value=100)
    risk_level = String(max_length=20)
    triggered_rules = Text()  # JSON list
    recommended_action = String(required=True, max_length=20)
    ip_address = String(max_length=45)
    device_fingerprint = String(max_length=255)
    status = String(choices=IncidentStatus, default=IncidentStatus.PENDING.value)
    user_blocked = Boolean(default=False)
    resolved_by = Identifier()
    resolution_notes = Text()
    resolved_at = DateTime()
    created_at = DateTime()

    @classmethod
    def open(cls, assessment, actor_id, ip_address=None, device_fingerprint=None, order_id=None, payment_reference=None):
        now = datetime.now(UTC)
        incident = cls(
            actor_id=actor_id,
            order_id=order_id,
            payment_reference=payment_reference,
            risk_score=assessment.risk_score,
            risk_level=assessment.risk_level,
            triggered_rules=json.dumps(list(assessment.triggered_rules)),
            recommended_action=assessment.recommended_action.value,
            ip_address=ip_address,
            device_fingerprint=device_fingerprint,
            status=IncidentStatus.PENDING.value,
            created_at=now,
        )
        incident.raise_(
            FraudIncidentOpened(
                incident_id=str(incident.id),
                actor_id=str(actor_id),
                risk_score=assessment.risk_score,
                recommended_action=assessment.recommended_action.value,
                opened_at=now,
            )
        )
        return incident

    @property
    def rules(self) -> list[str]:
        return json.loads(self.triggered_rules) if self.triggered_rules else []

    @property
    def is_confirmed(self) -> bool:
        return self.status == IncidentStatus.CONFIRMED.value

    def mark_user_blocked(self) -> None:
        self.user_blocked = True

    def resolve(self, resolution: IncidentStatus, resolved_by, notes=None) -> None:
        if self.status != IncidentStatus.PENDING.value:
            raise InvalidStatusTransition(self.status, resolution.value, entity="incident")
        if resolution == IncidentStatus.PENDING:
            raise InvalidStatusTransition(self.status, resolution.value, entity="incident")

        now = datetime.now(UTC)
        self.status = resolution.value
        self.resolved_by = resolved_by
        self.resolution_notes = notes
        self.resolved_at = now
        self.raise_(
            FraudIncidentResolved(
                incident_id=str(self.id),
                actor_id=str(self.actor_id),
                resolution=resolution.value,
                resolved_by=str(resolved_by),
                resolved_at=now,
            )
        )


@marketplace.repository(part_of=FraudIncident)
class FraudIncidentRepository:
    def for_actor(self, actor_id) -> list[FraudIncident]:
        return self._dao.query.filter(actor_id=str(actor_id)).all().items

    def confirmed_for_actor(self, actor_id, exclude=None) -> list[FraudIncident]:
        return [
            incident
            for incident in self.for_actor(actor_id)
            if incident.is_confirmed and str(incident.id) != str(exclude)
        ]

    def by_status(self, status: str | None = None) -> list[FraudIncident]:
        query = self._dao.query
        if status:
            query = query.filter(status=status)
        return sorted(query.all().items, key=lambda i: i.created_at, reverse=True)
