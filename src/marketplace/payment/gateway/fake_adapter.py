"""Configurable fake mobile-money gateway for development and testing.

Without configuration it behaves like the aggregator's sandbox, keyed on the
last digit of the customer's number:

    ...0  ->  failed (INSUFFICIENT_BALANCE)
    ...9  ->  otp_required; resubmitting with OTP "1234" succeeds,
              any other OTP fails with INVALID_OTP
    other ->  redirect with a hosted payment URL

``configure()`` forces one outcome for every request; ``settle()`` sets what
``verify_payment`` reports for a reference.
"""

from uuid import uuid4

from marketplace.payment.gateway.port import (
    GatewayError,
    GatewayOutcome,
    GatewayResponse,
    MobileMoneyGateway,
    MobileMoneyRequest,
    VerificationResult,
)

SANDBOX_OTP = "1234"


class FakeMobileMoneyGateway(MobileMoneyGateway):
    def __init__(self) -> None:
        self.forced_outcome: GatewayOutcome | None = None
        self.failure_reason: str = "Insufficient balance"
        self.unreachable: bool = False
        self.calls: list[dict] = []
        self._statuses: dict[str, str] = {}

    def configure(
        self,
        outcome: GatewayOutcome | None = None,
        failure_reason: str = "Insufficient balance",
        unreachable: bool = False,
    ) -> None:
        self.forced_outcome = outcome
        self.failure_reason = failure_reason
        self.unreachable = unreachable

    def settle(self, reference: str, status: str) -> None:
        self._statuses[reference] = status

    def _sandbox_outcome(self, request: MobileMoneyRequest) -> GatewayOutcome:
        last_digit = (request.customer_msisdn or "")[-1:]
        if last_digit == "0":
            return GatewayOutcome.FAILED
        if last_digit == "9":
            if request.otp is None:
                return GatewayOutcome.OTP_REQUIRED
            return GatewayOutcome.SUCCESS if request.otp == SANDBOX_OTP else GatewayOutcome.FAILED
        return GatewayOutcome.REDIRECT

    def request_payment(self, request: MobileMoneyRequest) -> GatewayResponse:
        self.calls.append({"method": "request_payment", **request.as_payload()})
        if self.unreachable:
            raise GatewayError("Gateway unreachable: connection refused")

        outcome = self.forced_outcome or self._sandbox_outcome(request)
        transaction_id = f"fake_txn_{uuid4().hex[:12]}"

        if outcome == GatewayOutcome.FAILED:
            invalid_otp = self.forced_outcome is None and (request.customer_msisdn or "").endswith("9")
            error_code = "INVALID_OTP" if invalid_otp else "INSUFFICIENT_BALANCE"
            message = "Invalid OTP code" if invalid_otp else self.failure_reason
            raw = {"status": outcome.value, "error_code": error_code, "message": message}
            return GatewayResponse(outcome=outcome, message=message, error_code=error_code, raw=raw)

        payment_url = None
        payment_token = None
        if outcome == GatewayOutcome.REDIRECT:
            payment_token = f"tok_{uuid4().hex[:16]}"
            payment_url = f"https://sandbox.mobile-money.example/pay/{payment_token}"

        self._statuses.setdefault(request.reference, "processing")
        raw = {
            "status": outcome.value,
            "transaction_id": transaction_id,
            "payment_url": payment_url,
            "payment_token": payment_token,
        }
        return GatewayResponse(
            outcome=outcome,
            transaction_id=transaction_id,
            payment_url=payment_url,
            payment_token=payment_token,
            message="OTP required" if outcome == GatewayOutcome.OTP_REQUIRED else None,
            raw=raw,
        )

    def verify_payment(self, reference: str) -> VerificationResult:
        self.calls.append({"method": "verify_payment", "reference": reference})
        if self.unreachable:
            raise GatewayError("Gateway unreachable: connection refused")

        status = self._statuses.get(reference, "processing")
        raw = {"status": status, "reference": reference, "transaction_id": f"fake_txn_{reference[-8:].lower()}"}
        return VerificationResult(status=status, transaction_id=raw["transaction_id"], raw=raw)
