"""Scheduled maintenance jobs.

Both jobs work item by item: one item failing is logged and reported, and
the job carries on with the rest.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from marketplace import pipeline
from marketplace.delivery.matching import MatchReport
from marketplace.errors import MarketplaceError
from marketplace.payment.payment import Payment

logger = structlog.get_logger(__name__)


@dataclass
class CleanupReport:
    expired: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    @property
    def summary(self) -> dict:
        return {"expired": len(self.expired), "skipped": len(self.skipped), "failed": len(self.failed)}


def run_payment_cleanup(now: datetime | None = None) -> CleanupReport:
    """Expire every pending payment whose window has closed.

    Only ``pending`` rows qualify. Initiation settles or fails an attempt in the
    same unit of work, so the job only finds ``pending`` rows written outside
    initiation. Mobile-money attempts waiting at the gateway
    are ``processing`` and stay open until a webhook or ``verify_payment`` reports
    on them; this job does not time them out.
    """
    now = now or datetime.now(UTC)
    report = CleanupReport()
    for payment in current_domain.repository_for(Payment).stale_pending(now):
        reference = payment.payment_reference
        try:
            expired = pipeline.expire_payment(reference)
        except (MarketplaceError, ValidationError) as exc:
            logger.warning("payment_cleanup_item_failed", payment_reference=reference, error=str(exc))
            report.failed.append({"payment_reference": reference, "error": type(exc).__name__, "message": str(exc)})
            continue
        (report.expired if expired else report.skipped).append(reference)

    logger.info("payment_cleanup_completed", **report.summary)
    return report


def run_auto_match() -> MatchReport:
    return pipeline.auto_match()
