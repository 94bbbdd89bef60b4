"""FastAPI routes for fraud administration."""

from fastapi import APIRouter, Depends

from marketplace import pipeline
from marketplace.api.dependencies import actor_id
from marketplace.api.schemas import (
    BlockAddressRequest,
    IdResponse,
    IncidentResponse,
    ResolveIncidentRequest,
    StatusResponse,
)
from marketplace.fraud.resolution import list_incidents

fraud_router = APIRouter(prefix="/fraud", tags=["fraud"])


@fraud_router.get("/incidents", response_model=list[IncidentResponse])
def get_incidents(status: str | None = None, actor: str = Depends(actor_id)) -> list[IncidentResponse]:
    return [
        IncidentResponse(
            incident_id=str(incident.id),
            actor_id=str(incident.actor_id),
            order_id=str(incident.order_id) if incident.order_id else None,
            payment_reference=incident.payment_reference,
            risk_score=incident.risk_score,
            risk_level=incident.risk_level,
            recommended_action=incident.recommended_action,
            triggered_rules=incident.rules,
            status=incident.status,
            user_blocked=bool(incident.user_blocked),
            created_at=incident.created_at,
        )
        for incident in list_incidents(actor, status)
    ]


@fraud_router.post("/incidents/{incident_id}/resolve", response_model=StatusResponse)
def resolve_incident(
    incident_id: str, body: ResolveIncidentRequest, actor: str = Depends(actor_id)
) -> StatusResponse:
    status = pipeline.resolve_fraud_incident(incident_id, actor, body.resolution, notes=body.notes)
    return StatusResponse(status=status)


@fraud_router.post("/blocked-addresses", status_code=201, response_model=IdResponse)
def block_address(body: BlockAddressRequest, actor: str = Depends(actor_id)) -> IdResponse:
    return IdResponse(id=pipeline.block_address(body.ip_address, actor, reason=body.reason))
