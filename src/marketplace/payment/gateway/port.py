"""Mobile-money gateway port (abstract interface).

The pipeline depends only on this contract: a payment request keyed by the
payment reference, a response carrying one of four outcomes, and a
pull-based status lookup by the same reference.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class GatewayOutcome(Enum):
    SUCCESS = "success"
    OTP_REQUIRED = "otp_required"
    REDIRECT = "redirect"
    FAILED = "failed"


class GatewayError(Exception):
    """The gateway could not be reached or answered with something unusable."""

    def __init__(self, message: str, raw=None) -> None:
        super().__init__(message)
        self.message = message
        self.raw = raw


@dataclass(frozen=True)
class MobileMoneyRequest:
    merchant_key: str
    amount: int
    currency: str
    reference: str
    customer_msisdn: str
    callback_url: str
    return_url: str
    cancel_url: str
    customer_name: str | None = None
    customer_email: str | None = None
    otp: str | None = None

    def as_payload(self) -> dict:
        payload = {
            "merchantKey": self.merchant_key,
            "amount": self.amount,
            "currency": self.currency,
            "reference": self.reference,
            "customerMsisdn": self.customer_msisdn,
            "callbackUrl": self.callback_url,
            "returnUrl": self.return_url,
            "cancelUrl": self.cancel_url,
        }
        if self.customer_name:
            payload["customerName"] = self.customer_name
        if self.customer_email:
            payload["customerEmail"] = self.customer_email
        if self.otp:
            payload["otp"] = self.otp
        return payload


@dataclass(frozen=True)
class GatewayResponse:
    outcome: GatewayOutcome
    transaction_id: str | None = None
    payment_url: str | None = None
    payment_token: str | None = None
    message: str | None = None
    error_code: str | None = None
    raw: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.outcome != GatewayOutcome.FAILED


@dataclass(frozen=True)
class VerificationResult:
    """Status the gateway currently reports for a reference (raw status string)."""

    status: str
    transaction_id: str | None = None
    message: str | None = None
    raw: dict = field(default_factory=dict)


class MobileMoneyGateway(ABC):
    """Abstract mobile-money gateway interface."""

    @abstractmethod
    def request_payment(self, request: MobileMoneyRequest) -> GatewayResponse:
        """Ask the customer's wallet to pay; may answer before the money moves."""
        ...

    @abstractmethod
    def verify_payment(self, reference: str) -> VerificationResult:
        """Look up the current status of the payment identified by ``reference``."""
        ...
