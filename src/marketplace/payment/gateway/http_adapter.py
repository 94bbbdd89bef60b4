"""HTTP adapter for a mobile-money aggregator.

Speaks JSON over HTTPS with basic auth (merchant key / API secret). Any
transport failure, non-2xx answer or body without a recognisable status is
raised as ``GatewayError`` so the caller can fail the attempt with the raw
error attached.
"""

import httpx
import structlog

from marketplace.payment.gateway.port import (
    GatewayError,
    GatewayOutcome,
    GatewayResponse,
    MobileMoneyGateway,
    MobileMoneyRequest,
    VerificationResult,
)

logger = structlog.get_logger(__name__)


class HttpMobileMoneyGateway(MobileMoneyGateway):
    def __init__(
        self,
        base_url: str,
        merchant_key: str,
        api_secret: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.merchant_key = merchant_key
        self._client = httpx.Client(
            base_url=base_url,
            auth=(merchant_key, api_secret),
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _call(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("gateway_unreachable", path=path, error=str(exc))
            raise GatewayError(f"Gateway unreachable: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise GatewayError(
                f"Gateway returned a non-JSON response ({response.status_code})",
                raw={"status_code": response.status_code, "body": response.text[:1000]},
            ) from exc

        if response.status_code >= 500:
            raise GatewayError(f"Gateway error {response.status_code}", raw=body)
        if not isinstance(body, dict) or "status" not in body:
            raise GatewayError("Gateway response has no status", raw=body)
        return body

    def request_payment(self, request: MobileMoneyRequest) -> GatewayResponse:
        body = self._call("POST", "/payments", json=request.as_payload())
        logger.info("gateway_payment_requested", reference=request.reference, status=body["status"])

        try:
            outcome = GatewayOutcome(str(body["status"]).lower())
        except ValueError as exc:
            raise GatewayError(f"Unknown gateway status: {body['status']}", raw=body) from exc

        return GatewayResponse(
            outcome=outcome,
            transaction_id=body.get("transaction_id"),
            payment_url=body.get("payment_url"),
            payment_token=body.get("payment_token"),
            message=body.get("message"),
            error_code=body.get("error_code"),
            raw=body,
        )

    def verify_payment(self, reference: str) -> VerificationResult:
        body = self._call("GET", f"/payments/{reference}")
        return VerificationResult(
            status=str(body["status"]).lower(),
            transaction_id=body.get("transaction_id"),
            message=body.get("message") or body.get("error_message"),
            raw=body,
        )
