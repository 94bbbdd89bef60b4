"""Fraud gate — scores a payment attempt before it reaches a settlement channel.

Scoring is rule based: each triggered rule adds its weight and the total is
capped at 100. The recommended action depends only on the score and the
configured thresholds:

    score <  medium              -> allow
    medium <= score < high       -> flag
    high   <= score < critical   -> review
    score >= critical            -> block

``screen`` scores, records the activity signal, and acts on the outcome:
flag/review/block open an incident, and block also suspends the account.
"""

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from marketplace.audit import get_event_logger
from marketplace.config import FraudThresholds, Settings, get_settings
from marketplace.fraud.incident import FraudIncident
from marketplace.fraud.signals import ActorActivity, BlockedAddress
from marketplace.identity.account import Account
from marketplace.payment.payment import Payment, PaymentStatus

logger = structlog.get_logger(__name__)


class FraudAction(Enum):
    ALLOW = "allow"
    FLAG = "flag"
    REVIEW = "review"
    BLOCK = "block"


RULE_WEIGHTS = {
    "blocked_ip": 50,
    "prior_confirmed_fraud": 40,
    "high_amount": 30,
    "velocity": 25,
    "shared_device": 25,
    "repeated_failures": 20,
    "new_device": 10,
    "invalid_phone_format": 10,
}

PAYMENT_ATTEMPT = "payment_attempt"


def recommend_action(risk_score: int, thresholds: FraudThresholds) -> FraudAction:
    if risk_score >= thresholds.critical:
        return FraudAction.BLOCK
    if risk_score >= thresholds.high:
        return FraudAction.REVIEW
    if risk_score >= thresholds.medium:
        return FraudAction.FLAG
    return FraudAction.ALLOW


def risk_level(risk_score: int, thresholds: FraudThresholds) -> str:
    if risk_score >= thresholds.critical:
        return "critical"
    if risk_score >= thresholds.high:
        return "high"
    if risk_score >= thresholds.medium:
        return "medium"
    if risk_score >= thresholds.low:
        return "low"
    return "minimal"


@dataclass(frozen=True)
class FraudAssessment:
    risk_score: int
    recommended_action: FraudAction
    risk_level: str
    triggered_rules: tuple = ()
    incident_id: str | None = None
    user_blocked: bool = False

    @property
    def blocked(self) -> bool:
        return self.recommended_action == FraudAction.BLOCK

    @property
    def message(self) -> str:
        if self.recommended_action == FraudAction.BLOCK:
            return f"Transaction blocked due to high fraud risk ({self.risk_score}/100)"
        if self.recommended_action == FraudAction.REVIEW:
            return f"Transaction flagged for manual review ({self.risk_score}/100)"
        if self.recommended_action == FraudAction.FLAG:
            return f"Transaction flagged with medium risk ({self.risk_score}/100)"
        return f"Transaction approved with low risk ({self.risk_score}/100)"


@dataclass
class _Evaluation:
    score: int = 0
    rules: list = field(default_factory=list)

    def hit(self, rule: str) -> None:
        self.rules.append(rule)
        self.score += RULE_WEIGHTS[rule]


class FraudGate:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    @property
    def thresholds(self) -> FraudThresholds:
        return self.settings.fraud_thresholds

    def assess(self, risk_score: int, triggered_rules=()) -> FraudAssessment:
        risk_score = max(0, min(100, risk_score))
        return FraudAssessment(
            risk_score=risk_score,
            recommended_action=recommend_action(risk_score, self.thresholds),
            risk_level=risk_level(risk_score, self.thresholds),
            triggered_rules=tuple(triggered_rules),
        )

    # -------------------------------------------------------------------
    # Scoring (read only)
    # -------------------------------------------------------------------
    def score(self, actor_id, ip_address=None, device_fingerprint=None, amount=0, context=None) -> FraudAssessment:
        context = context or {}
        evaluation = _Evaluation()

        if current_domain.repository_for(BlockedAddress).is_blocked(ip_address):
            evaluation.hit("blocked_ip")

        if current_domain.repository_for(FraudIncident).confirmed_for_actor(actor_id):
            evaluation.hit("prior_confirmed_fraud")

        if amount and amount > self.settings.fraud_high_amount:
            evaluation.hit("high_amount")

        activities = current_domain.repository_for(ActorActivity)
        recent = activities.recent_for_actor(actor_id, timedelta(hours=1), action=PAYMENT_ATTEMPT)
        if len(recent) >= self.settings.fraud_velocity_limit:
            evaluation.hit("velocity")

        if device_fingerprint:
            others = activities.actors_on_device(device_fingerprint) - {str(actor_id)}
            if len(others) + 1 >= self.settings.fraud_shared_device_accounts:
                evaluation.hit("shared_device")

            known_devices = {a.device_fingerprint for a in activities.for_actor(actor_id) if a.device_fingerprint}
            if known_devices and device_fingerprint not in known_devices:
                evaluation.hit("new_device")

        if self._recent_failures(actor_id) >= self.settings.fraud_failure_limit:
            evaluation.hit("repeated_failures")

        phone = context.get("phone")
        if phone and not re.match(self.settings.phone_pattern, phone):
            evaluation.hit("invalid_phone_format")

        return self.assess(evaluation.score, evaluation.rules)

    def _recent_failures(self, actor_id) -> int:
        since = datetime.now(UTC) - timedelta(hours=24)
        return sum(
            1
            for payment in current_domain.repository_for(Payment).for_buyer(actor_id)
            if payment.status == PaymentStatus.FAILED.value and payment.failed_at and payment.failed_at >= since
        )

    # -------------------------------------------------------------------
    # Screening (writes incident, signal, suspension)
    # -------------------------------------------------------------------
    def screen(
        self,
        actor_id,
        ip_address=None,
        device_fingerprint=None,
        amount=0,
        context=None,
    ) -> FraudAssessment:
        context = context or {}
        assessment = self.score(actor_id, ip_address, device_fingerprint, amount, context)

        current_domain.repository_for(ActorActivity).add(
            ActorActivity.record(
                actor_id=actor_id,
                action=context.get("action", PAYMENT_ATTEMPT),
                ip_address=ip_address,
                device_fingerprint=device_fingerprint,
                amount=amount,
            )
        )

        logger.info(
            "fraud_screened",
            actor_id=str(actor_id),
            risk_score=assessment.risk_score,
            action=assessment.recommended_action.value,
            rules=list(assessment.triggered_rules),
        )

        if assessment.recommended_action == FraudAction.ALLOW:
            return assessment

        incident = FraudIncident.open(
            assessment,
            actor_id=actor_id,
            ip_address=ip_address,
            device_fingerprint=device_fingerprint,
            order_id=context.get("order_id"),
            payment_reference=context.get("payment_reference"),
        )

        user_blocked = False
        if assessment.blocked:
            user_blocked = self._block_actor(actor_id, incident, assessment)

        current_domain.repository_for(FraudIncident).add(incident)

        get_event_logger().security(
            f"transaction_{assessment.recommended_action.value}",
            actor_id,
            severity="critical" if assessment.blocked else "warning",
            incident_id=str(incident.id),
            risk_score=assessment.risk_score,
            triggered_rules=list(assessment.triggered_rules),
            message=assessment.message,
        )

        return FraudAssessment(
            risk_score=assessment.risk_score,
            recommended_action=assessment.recommended_action,
            risk_level=assessment.risk_level,
            triggered_rules=assessment.triggered_rules,
            incident_id=str(incident.id),
            user_blocked=user_blocked,
        )

    def _block_actor(self, actor_id, incident: FraudIncident, assessment: FraudAssessment) -> bool:
        if current_domain.repository_for(FraudIncident).confirmed_for_actor(actor_id):
            return False

        repo = current_domain.repository_for(Account)
        try:
            account = repo.get(actor_id)
        except ObjectNotFoundError:
            logger.warning("fraud_block_unknown_actor", actor_id=str(actor_id))
            return False
        if not account.is_active:
            return False

        account.suspend(f"Fraud detected: risk score {assessment.risk_score}")
        repo.add(account)
        incident.mark_user_blocked()

        get_event_logger().admin_action(
            "user_blocked_fraud",
            None,
            str(actor_id),
            "user",
            incident_id=str(incident.id),
            risk_score=assessment.risk_score,
            automatic=True,
        )
        return True
