"""FastAPI routes for orders."""

from fastapi import APIRouter, Depends

from marketplace import pipeline
from marketplace.api.dependencies import actor_id
from marketplace.api.schemas import (
    CancelOrderRequest,
    OrderIdResponse,
    OrderLineSchema,
    OrderResponse,
    PlaceOrderRequest,
    StatusResponse,
    UpdateOrderStatusRequest,
    VendorOrderResponse,
)
from marketplace.identity.account import Role
from marketplace.identity.actors import resolve_actor
from marketplace.order.order import Order, VendorOrderView
from marketplace.order.queries import order_for_actor, orders_for_buyer, orders_for_vendor

order_router = APIRouter(prefix="/orders", tags=["orders"])


def _lines(lines) -> list[OrderLineSchema]:
    return [
        OrderLineSchema(
            product_id=str(line.product_id),
            vendor_id=str(line.vendor_id),
            product_name=line.product_name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_total=line.line_total,
        )
        for line in lines
    ]


def order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        buyer_id=str(order.buyer_id),
        status=order.status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        payment_reference=order.payment_reference,
        total_amount=order.total_amount,
        currency=order.currency,
        items=_lines(order.items),
        created_at=order.created_at,
        paid_at=order.paid_at,
        cancelled_at=order.cancelled_at,
        cancellation_reason=order.cancellation_reason,
    )


def vendor_response(view: VendorOrderView) -> VendorOrderResponse:
    return VendorOrderResponse(
        order_id=view.order_id,
        vendor_id=view.vendor_id,
        status=view.status,
        payment_status=view.payment_status,
        items=_lines(view.lines),
        vendor_total=view.vendor_total,
    )


@order_router.post("", status_code=201, response_model=OrderIdResponse)
def place_order(body: PlaceOrderRequest, actor: str = Depends(actor_id)) -> OrderIdResponse:
    order_id = pipeline.place_order(
        actor,
        shipping_address=body.shipping_address.model_dump(),
        payment_method=body.payment_method,
        notes=body.notes,
        items=[item.model_dump() for item in body.items] if body.items else None,
    )
    return OrderIdResponse(order_id=str(order_id))


@order_router.get("", response_model=list[OrderResponse] | list[VendorOrderResponse])
def list_orders(status: str | None = None, actor: str = Depends(actor_id)):
    account = resolve_actor(actor, Role.BUYER, Role.VENDOR, allow_suspended=True)
    if account.has_role(Role.VENDOR):
        return [vendor_response(view) for view in orders_for_vendor(account.id, status)]
    return [order_response(order) for order in orders_for_buyer(account.id, status)]


@order_router.get("/{order_id}", response_model=OrderResponse | VendorOrderResponse)
def get_order(order_id: str, actor: str = Depends(actor_id)):
    found = order_for_actor(order_id, actor)
    if isinstance(found, VendorOrderView):
        return vendor_response(found)
    return order_response(found)


@order_router.post("/{order_id}/status", response_model=StatusResponse)
def update_order_status(
    order_id: str, body: UpdateOrderStatusRequest, actor: str = Depends(actor_id)
) -> StatusResponse:
    status = pipeline.update_order_status(order_id, body.status, actor, reason=body.reason)
    return StatusResponse(status=status)


@order_router.post("/{order_id}/cancel", response_model=StatusResponse)
def cancel_order(order_id: str, body: CancelOrderRequest, actor: str = Depends(actor_id)) -> StatusResponse:
    status = pipeline.cancel_order(order_id, actor, reason=body.reason)
    return StatusResponse(status=status)
