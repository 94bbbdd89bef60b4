"""Auto-match — pair unassigned deliveries with idle drivers in one batch.

Pairing is round-robin in snapshot order with no geographic or capacity
weighting: the n-th available delivery goes to the n-th idle driver, so each
idle driver receives at most one delivery per run and surplus deliveries wait
for the next run. Each pair is assigned independently through the regular
assignment path; a pair that fails (a driver picked up work meanwhile, the
delivery was accepted manually) is reported and the batch carries on.
"""

from dataclasses import dataclass, field

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from marketplace.delivery.delivery import Delivery
from marketplace.delivery.tracking import available_deliveries
from marketplace.errors import MarketplaceError
from marketplace.identity.account import Account, AccountStatus, Role

logger = structlog.get_logger(__name__)


@dataclass
class MatchReport:
    assigned: list[dict] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)
    unmatched_deliveries: list[str] = field(default_factory=list)

    @property
    def summary(self) -> dict:
        return {
            "assigned": len(self.assigned),
            "failed": len(self.failed),
            "unmatched": len(self.unmatched_deliveries),
        }


def idle_drivers() -> list[str]:
    """Active drivers without an assigned, picked-up or in-transit delivery, oldest first."""
    accounts = (
        current_domain.repository_for(Account)
        ._dao.query.filter(role=Role.DRIVER.value, status=AccountStatus.ACTIVE.value)
        .all()
        .items
    )
    busy = current_domain.repository_for(Delivery).busy_driver_ids()
    drivers = sorted(accounts, key=lambda a: (a.created_at, str(a.id)))
    return [str(driver.id) for driver in drivers if str(driver.id) not in busy]


def plan_matches(delivery_ids: list[str], driver_ids: list[str]) -> list[tuple[str, str]]:
    return list(zip(delivery_ids, driver_ids))


def auto_match(assign, actor_id=None) -> MatchReport:
    """Run one matching pass.

    ``assign(delivery_id, driver_id, actor_id)`` performs a single assignment
    (the locked pipeline entry point in production). Snapshots are taken up
    front; every pair is then assigned on its own.
    """
    deliveries = [str(d.id) for d in available_deliveries()]
    drivers = idle_drivers()
    pairs = plan_matches(deliveries, drivers)

    report = MatchReport(unmatched_deliveries=deliveries[len(pairs) :])
    for delivery_id, driver_id in pairs:
        try:
            assign(delivery_id, driver_id, actor_id)
        except (MarketplaceError, ValidationError) as exc:
            message = getattr(exc, "message", None) or str(exc)
            logger.warning("auto_match_pair_failed", delivery_id=delivery_id, driver_id=driver_id, error=message)
            report.failed.append(
                {"delivery_id": delivery_id, "driver_id": driver_id, "error": type(exc).__name__, "message": message}
            )
        else:
            report.assigned.append({"delivery_id": delivery_id, "driver_id": driver_id})

    logger.info("auto_match_completed", **report.summary)
    return report
