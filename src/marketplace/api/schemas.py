"""Pydantic request/response schemas for the marketplace API.

These are external contracts, kept apart from the internal Protean commands.
Money is in whole currency units (XOF has no minor unit).
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str = "ok"


class ShippingAddressSchema(BaseModel):
    recipient: str | None = None
    phone: str | None = None
    street: str
    city: str
    region: str | None = None
    landmark: str | None = None


class OrderItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddCartItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1, default=1)


class UpdateCartItemRequest(BaseModel):
    quantity: int


class CartItemSchema(BaseModel):
    item_id: str
    product_id: str
    vendor_id: str
    quantity: int
    unit_price: int
    line_total: int


class CartResponse(BaseModel):
    buyer_id: str
    items: list[CartItemSchema]
    subtotal: int
    item_count: int
    vendor_count: int


class CartItemIdResponse(BaseModel):
    item_id: str


class CheckoutValidationResponse(BaseModel):
    valid: bool
    issues: list[str]


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    shipping_address: ShippingAddressSchema
    payment_method: str = "mobile_money"
    notes: str | None = None
    items: list[OrderItemRequest] | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "shipping_address": {
                        "recipient": "Awa Ouédraogo",
                        "phone": "+22670123456",
                        "street": "Avenue Kwame Nkrumah",
                        "city": "Ouagadougou",
                    },
                    "payment_method": "mobile_money",
                }
            ]
        }
    }


class OrderIdResponse(BaseModel):
    order_id: str


class UpdateOrderStatusRequest(BaseModel):
    status: str
    reason: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class OrderLineSchema(BaseModel):
    product_id: str
    vendor_id: str
    product_name: str | None = None
    quantity: int
    unit_price: int
    line_total: int


class OrderResponse(BaseModel):
    order_id: str
    buyer_id: str
    status: str
    payment_status: str
    payment_method: str | None = None
    payment_reference: str | None = None
    total_amount: int
    currency: str
    items: list[OrderLineSchema]
    created_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None


class VendorOrderResponse(BaseModel):
    order_id: str
    vendor_id: str
    status: str
    payment_status: str
    items: list[OrderLineSchema]
    vendor_total: int


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class InitiatePaymentRequest(BaseModel):
    order_id: str
    method: str | None = None
    customer_phone: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    otp: str | None = None
    device_fingerprint: str | None = None


class PaymentResponse(BaseModel):
    payment_reference: str
    order_id: str
    status: str
    amount: int
    fees: int
    currency: str
    payment_url: str | None = None
    payment_token: str | None = None
    requires_otp: bool = False
    instructions: dict | None = None
    message: str | None = None
    delivery_id: str | None = None
    risk_score: int | None = None


class PaymentDetailResponse(BaseModel):
    payment_reference: str
    order_id: str
    method: str
    status: str
    amount: int
    fees: int
    net_amount: int
    currency: str
    payment_url: str | None = None
    failure_reason: str | None = None
    expires_at: datetime | None = None
    completed_at: datetime | None = None


class SubmitOtpRequest(BaseModel):
    otp: str


class ConfirmBankTransferRequest(BaseModel):
    bank_reference: str | None = None


class PaymentReasonRequest(BaseModel):
    reason: str | None = None


class NotificationResponse(BaseModel):
    payment_reference: str
    applied: bool
    status: str


# ---------------------------------------------------------------------------
# Deliveries
# ---------------------------------------------------------------------------
class AssignDeliveryRequest(BaseModel):
    driver_id: str | None = None


class UpdateDeliveryStatusRequest(BaseModel):
    status: str
    signature: str | None = None
    photo_url: str | None = None
    notes: str | None = None
    reason: str | None = None


class DeliveryResponse(BaseModel):
    delivery_id: str
    order_id: str
    driver_id: str | None = None
    status: str
    delivery_address: str | None = None
    delivery_fee: int | None = None
    driver_earnings: int | None = None
    assigned_at: datetime | None = None
    pickup_time: datetime | None = None
    delivery_time: datetime | None = None
    failure_reason: str | None = None


class MatchReportResponse(BaseModel):
    assigned: list[dict]
    failed: list[dict]
    unmatched_deliveries: list[str]


# ---------------------------------------------------------------------------
# Fraud
# ---------------------------------------------------------------------------
class ResolveIncidentRequest(BaseModel):
    resolution: str
    notes: str | None = None


class BlockAddressRequest(BaseModel):
    ip_address: str
    reason: str | None = None


class IncidentResponse(BaseModel):
    incident_id: str
    actor_id: str
    order_id: str | None = None
    payment_reference: str | None = None
    risk_score: int
    risk_level: str | None = None
    recommended_action: str
    triggered_rules: list[str]
    status: str
    user_blocked: bool
    created_at: datetime | None = None


class IdResponse(BaseModel):
    id: str
