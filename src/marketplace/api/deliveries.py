"""FastAPI routes for deliveries."""

from fastapi import APIRouter, Depends

from marketplace import pipeline
from marketplace.api.dependencies import actor_id
from marketplace.api.schemas import (
    AssignDeliveryRequest,
    DeliveryResponse,
    MatchReportResponse,
    StatusResponse,
    UpdateDeliveryStatusRequest,
)
from marketplace.delivery.delivery import Delivery
from marketplace.delivery.tracking import available_deliveries, deliveries_for_driver, track_delivery
from marketplace.identity.account import Role
from marketplace.identity.actors import require_admin, resolve_actor

delivery_router = APIRouter(prefix="/deliveries", tags=["deliveries"])


def delivery_response(delivery: Delivery) -> DeliveryResponse:
    return DeliveryResponse(
        delivery_id=str(delivery.id),
        order_id=str(delivery.order_id),
        driver_id=str(delivery.driver_id) if delivery.driver_id else None,
        status=delivery.status,
        delivery_address=delivery.delivery_address,
        delivery_fee=delivery.delivery_fee,
        driver_earnings=delivery.driver_earnings,
        assigned_at=delivery.assigned_at,
        pickup_time=delivery.pickup_time,
        delivery_time=delivery.delivery_time,
        failure_reason=delivery.failure_reason,
    )


@delivery_router.get("/available", response_model=list[DeliveryResponse])
def list_available(actor: str = Depends(actor_id)) -> list[DeliveryResponse]:
    resolve_actor(actor, Role.DRIVER)
    return [delivery_response(d) for d in available_deliveries()]


@delivery_router.get("/mine", response_model=list[DeliveryResponse])
def list_mine(active: bool = False, actor: str = Depends(actor_id)) -> list[DeliveryResponse]:
    driver = resolve_actor(actor, Role.DRIVER, allow_suspended=True)
    return [delivery_response(d) for d in deliveries_for_driver(driver.id, active_only=active)]


@delivery_router.post("/auto-match", response_model=MatchReportResponse)
def auto_match(actor: str = Depends(actor_id)) -> MatchReportResponse:
    require_admin(actor)
    report = pipeline.auto_match(actor_id=actor)
    return MatchReportResponse(
        assigned=report.assigned,
        failed=report.failed,
        unmatched_deliveries=report.unmatched_deliveries,
    )


@delivery_router.get("/{delivery_id}", response_model=DeliveryResponse)
def get_delivery(delivery_id: str, actor: str = Depends(actor_id)) -> DeliveryResponse:
    return delivery_response(track_delivery(delivery_id, actor))


@delivery_router.post("/{delivery_id}/assign", response_model=DeliveryResponse)
def assign_delivery(
    delivery_id: str, body: AssignDeliveryRequest, actor: str = Depends(actor_id)
) -> DeliveryResponse:
    pipeline.assign_delivery(delivery_id, body.driver_id or actor, actor_id=actor)
    return delivery_response(track_delivery(delivery_id, actor))


@delivery_router.post("/{delivery_id}/status", response_model=StatusResponse)
def update_delivery_status(
    delivery_id: str, body: UpdateDeliveryStatusRequest, actor: str = Depends(actor_id)
) -> StatusResponse:
    status = pipeline.update_delivery_status(
        delivery_id,
        actor,
        body.status,
        signature=body.signature,
        photo_url=body.photo_url,
        notes=body.notes,
        reason=body.reason,
    )
    return StatusResponse(status=status)
