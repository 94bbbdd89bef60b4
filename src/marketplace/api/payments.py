"""FastAPI routes for payments, including the gateway webhook.

The webhook reads the raw body before anything parses it: the signature is
an HMAC over those exact bytes.
"""

import json

import structlog
from fastapi import APIRouter, Depends, Header, Request
from protean.exceptions import ValidationError
from starlette.concurrency import run_in_threadpool

from marketplace import pipeline
from marketplace.api.dependencies import actor_id, client_ip
from marketplace.api.schemas import (
    ConfirmBankTransferRequest,
    InitiatePaymentRequest,
    NotificationResponse,
    PaymentDetailResponse,
    PaymentReasonRequest,
    PaymentResponse,
    StatusResponse,
    SubmitOtpRequest,
)
from marketplace.config import get_settings
from marketplace.payment.queries import payment_for_actor
from marketplace.payment.settlement import PaymentResult
from marketplace.payment.signature import canonical_body, verify_signature

logger = structlog.get_logger(__name__)

payment_router = APIRouter(prefix="/payments", tags=["payments"])


def _payment_response(result: PaymentResult) -> PaymentResponse:
    return PaymentResponse(
        payment_reference=result.payment_reference,
        order_id=result.order_id,
        status=result.status,
        amount=result.amount,
        fees=result.fees,
        currency=result.currency,
        payment_url=result.payment_url,
        payment_token=result.payment_token,
        requires_otp=result.requires_otp,
        instructions=result.instructions,
        message=result.message,
        delivery_id=result.delivery_id,
        risk_score=result.fraud.risk_score if result.fraud is not None else None,
    )


@payment_router.post("", status_code=201, response_model=PaymentResponse)
def initiate_payment(
    body: InitiatePaymentRequest,
    actor: str = Depends(actor_id),
    ip_address: str | None = Depends(client_ip),
) -> PaymentResponse:
    result = pipeline.initiate_payment(
        body.order_id,
        actor,
        method=body.method,
        ip_address=ip_address,
        device_fingerprint=body.device_fingerprint,
        customer_phone=body.customer_phone,
        customer_name=body.customer_name,
        customer_email=body.customer_email,
        otp=body.otp,
    )
    return _payment_response(result)


@payment_router.post("/webhook", response_model=NotificationResponse)
async def payment_webhook(
    request: Request,
    x_webhook_signature: str | None = Header(default=None),
) -> NotificationResponse:
    raw = await request.body()
    try:
        data = json.loads(raw or b"{}")
    except ValueError as exc:
        raise ValidationError({"payload": ["Webhook body must be a JSON object"]}) from exc
    if not isinstance(data, dict):
        raise ValidationError({"payload": ["Webhook body must be a JSON object"]})

    settings = get_settings()
    if x_webhook_signature:
        verify_signature(raw, x_webhook_signature, settings.webhook_secret, settings.is_production)
    else:
        verify_signature(canonical_body(data), data.get("signature"), settings.webhook_secret, settings.is_production)

    reference = data.get("reference")
    if not reference or not data.get("status"):
        raise ValidationError({"payload": ["Webhook requires 'reference' and 'status'"]})

    logger.info("payment_webhook_received", payment_reference=reference, reported_status=data.get("status"))
    result = await run_in_threadpool(
        pipeline.process_webhook,
        reference,
        data["status"],
        transaction_id=data.get("transaction_id"),
        error_message=data.get("error_message"),
        payload={key: value for key, value in data.items() if key != "signature"},
    )
    return NotificationResponse(payment_reference=result.payment_reference, applied=result.applied, status=result.status)


@payment_router.get("/{reference}", response_model=PaymentDetailResponse)
def get_payment(reference: str, actor: str = Depends(actor_id)) -> PaymentDetailResponse:
    payment = payment_for_actor(reference, actor)
    return PaymentDetailResponse(
        payment_reference=payment.payment_reference,
        order_id=str(payment.order_id),
        method=payment.method,
        status=payment.status,
        amount=payment.amount,
        fees=payment.fees,
        net_amount=payment.net_amount,
        currency=payment.currency,
        payment_url=payment.payment_url,
        failure_reason=payment.failure_reason,
        expires_at=payment.expires_at,
        completed_at=payment.completed_at,
    )


@payment_router.post("/{reference}/otp", response_model=PaymentResponse)
def submit_otp(reference: str, body: SubmitOtpRequest, actor: str = Depends(actor_id)) -> PaymentResponse:
    return _payment_response(pipeline.submit_payment_otp(reference, actor, body.otp))


@payment_router.post("/{reference}/verify", response_model=NotificationResponse)
def verify_payment(reference: str, actor: str = Depends(actor_id)) -> NotificationResponse:
    result = pipeline.verify_payment(reference, actor_id=actor)
    return NotificationResponse(payment_reference=result.payment_reference, applied=result.applied, status=result.status)


@payment_router.post("/{reference}/cash-collected", response_model=StatusResponse)
def confirm_cash_collection(reference: str, actor: str = Depends(actor_id)) -> StatusResponse:
    return StatusResponse(status=pipeline.confirm_cash_collection(reference, actor))


@payment_router.post("/{reference}/bank-confirmation", response_model=StatusResponse)
def confirm_bank_transfer(
    reference: str, body: ConfirmBankTransferRequest, actor: str = Depends(actor_id)
) -> StatusResponse:
    return StatusResponse(status=pipeline.confirm_bank_transfer(reference, actor, body.bank_reference))


@payment_router.post("/{reference}/cancel", response_model=StatusResponse)
def cancel_payment(reference: str, body: PaymentReasonRequest, actor: str = Depends(actor_id)) -> StatusResponse:
    return StatusResponse(status=pipeline.cancel_payment(reference, actor, body.reason))


@payment_router.post("/{reference}/refund", response_model=StatusResponse)
def refund_payment(reference: str, body: PaymentReasonRequest, actor: str = Depends(actor_id)) -> StatusResponse:
    return StatusResponse(status=pipeline.refund_payment(reference, actor, body.reason))
