"""Admin side of the fraud gate — incident review and the IP block list."""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.audit import get_event_logger
from marketplace.domain import marketplace
from marketplace.errors import ConflictError, NotFoundError
from marketplace.fraud.incident import FraudIncident, IncidentStatus
from marketplace.fraud.signals import BlockedAddress
from marketplace.identity.account import Account
from marketplace.identity.actors import require_admin

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="FraudIncident")
class ResolveFraudIncident:
    incident_id = Identifier(required=True)
    admin_id = Identifier(required=True)
    resolution = String(required=True, max_length=20)  # confirmed | false_positive
    notes = Text()


@marketplace.command(part_of="BlockedAddress")
class BlockAddress:
    ip_address = String(required=True, max_length=45)
    admin_id = Identifier(required=True)
    reason = String(max_length=500)


def load_incident(incident_id) -> FraudIncident:
    try:
        return current_domain.repository_for(FraudIncident).get(incident_id)
    except ObjectNotFoundError as exc:
        raise NotFoundError(f"Fraud incident {incident_id} not found", field="incident_id") from exc


def parse_resolution(value) -> IncidentStatus:
    if value not in (IncidentStatus.CONFIRMED.value, IncidentStatus.FALSE_POSITIVE.value):
        raise ValidationError({"resolution": ["Resolution must be 'confirmed' or 'false_positive'"]})
    return IncidentStatus(value)


@marketplace.command_handler(part_of=FraudIncident)
class FraudResolutionHandler:
    @handle(ResolveFraudIncident)
    def resolve(self, command):
        require_admin(command.admin_id)
        resolution = parse_resolution(command.resolution)
        incident = load_incident(command.incident_id)
        incident.resolve(resolution, command.admin_id, command.notes)

        reactivated = False
        if resolution == IncidentStatus.FALSE_POSITIVE and incident.user_blocked:
            reactivated = self._reactivate_if_clear(incident)

        current_domain.repository_for(FraudIncident).add(incident)

        logger.info(
            "fraud_incident_resolved",
            incident_id=str(incident.id),
            resolution=resolution.value,
            reactivated=reactivated,
        )
        get_event_logger().admin_action(
            "fraud_incident_resolved",
            command.admin_id,
            str(incident.id),
            "fraud_incident",
            resolution=resolution.value,
            actor_id=str(incident.actor_id),
            account_reactivated=reactivated,
        )
        return incident.status

    @staticmethod
    def _reactivate_if_clear(incident: FraudIncident) -> bool:
        if current_domain.repository_for(FraudIncident).confirmed_for_actor(incident.actor_id, exclude=incident.id):
            return False

        repo = current_domain.repository_for(Account)
        try:
            account = repo.get(incident.actor_id)
        except ObjectNotFoundError:
            logger.warning("fraud_reactivate_unknown_actor", actor_id=str(incident.actor_id))
            return False
        if account.is_active:
            return False

        account.reactivate()
        repo.add(account)
        return True


@marketplace.command_handler(part_of=BlockedAddress)
class BlockAddressHandler:
    @handle(BlockAddress)
    def block(self, command):
        require_admin(command.admin_id)
        repo = current_domain.repository_for(BlockedAddress)
        if repo.is_blocked(command.ip_address):
            raise ConflictError(f"{command.ip_address} is already blocked", field="ip_address")

        entry = BlockedAddress(
            ip_address=command.ip_address,
            reason=command.reason,
            blocked_by=command.admin_id,
            created_at=datetime.now(UTC),
        )
        repo.add(entry)
        get_event_logger().admin_action(
            "ip_blocked", command.admin_id, command.ip_address, "ip_address", reason=command.reason
        )
        return str(entry.id)


def list_incidents(admin_id, status: str | None = None) -> list[FraudIncident]:
    require_admin(admin_id)
    if status is not None and status not in {s.value for s in IncidentStatus}:
        raise ValidationError({"status": [f"Unknown incident status '{status}'"]})
    return current_domain.repository_for(FraudIncident).by_status(status)
