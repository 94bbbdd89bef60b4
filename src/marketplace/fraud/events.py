"""Domain events for fraud incidents."""

from protean.fields import DateTime, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="FraudIncident")
class FraudIncidentOpened:
    __version__ = 1

    incident_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    risk_score = Integer(required=True)
    recommended_action = String(required=True, max_length=20)
    opened_at = DateTime(required=True)


@marketplace.event(part_of="FraudIncident")
class FraudIncidentResolved:
    __version__ = 1

    incident_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    resolution = String(required=True, max_length=20)
    resolved_by = Identifier(required=True)
    resolved_at = DateTime(required=True)
