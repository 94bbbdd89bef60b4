"""FastAPI routes for the buyer's cart."""

from fastapi import APIRouter, Depends

from marketplace import pipeline
from marketplace.api.dependencies import actor_id
from marketplace.api.schemas import (
    AddCartItemRequest,
    CartItemIdResponse,
    CartItemSchema,
    CartResponse,
    CheckoutValidationResponse,
    StatusResponse,
    UpdateCartItemRequest,
)
from marketplace.cart.management import cart_summary, validate_cart
from marketplace.identity.account import Role
from marketplace.identity.actors import resolve_actor

cart_router = APIRouter(prefix="/carts", tags=["carts"])


def _cart_response(buyer_id) -> CartResponse:
    cart, totals = cart_summary(buyer_id)
    return CartResponse(
        buyer_id=str(buyer_id),
        items=[
            CartItemSchema(
                item_id=str(item.id),
                product_id=str(item.product_id),
                vendor_id=str(item.vendor_id),
                quantity=item.quantity,
                unit_price=item.unit_price_snapshot,
                line_total=item.line_total,
            )
            for item in cart.items
        ],
        subtotal=totals.subtotal,
        item_count=totals.item_count,
        vendor_count=totals.vendor_count,
    )


@cart_router.get("/me", response_model=CartResponse)
def get_cart(actor: str = Depends(actor_id)) -> CartResponse:
    resolve_actor(actor, Role.BUYER, allow_suspended=True)
    return _cart_response(actor)


@cart_router.post("/me/items", status_code=201, response_model=CartItemIdResponse)
def add_cart_item(body: AddCartItemRequest, actor: str = Depends(actor_id)) -> CartItemIdResponse:
    item_id = pipeline.add_cart_item(actor, body.product_id, body.quantity)
    return CartItemIdResponse(item_id=str(item_id))


@cart_router.patch("/me/items/{item_id}", response_model=CartResponse)
def update_cart_item(item_id: str, body: UpdateCartItemRequest, actor: str = Depends(actor_id)) -> CartResponse:
    pipeline.update_cart_item(actor, item_id, body.quantity)
    return _cart_response(actor)


@cart_router.delete("/me/items/{item_id}", response_model=CartResponse)
def remove_cart_item(item_id: str, actor: str = Depends(actor_id)) -> CartResponse:
    pipeline.remove_cart_item(actor, item_id)
    return _cart_response(actor)


@cart_router.delete("/me", response_model=StatusResponse)
def clear_cart(actor: str = Depends(actor_id)) -> StatusResponse:
    pipeline.clear_cart(actor)
    return StatusResponse()


@cart_router.get("/me/validation", response_model=CheckoutValidationResponse)
def validate_checkout(actor: str = Depends(actor_id)) -> CheckoutValidationResponse:
    resolve_actor(actor, Role.BUYER, allow_suspended=True)
    validation = validate_cart(actor)
    return CheckoutValidationResponse(valid=validation.valid, issues=list(validation.issues))
