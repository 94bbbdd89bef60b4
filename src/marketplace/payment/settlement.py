"""Settlement strategies — one per payment method.

Each strategy takes a freshly created ``pending`` payment and returns a
``SettlementOutcome`` describing where the attempt goes next. Strategies
never persist anything; ``apply_outcome`` moves the payment and the handler
commits it together with the order.

    mobile_money      gateway request; success/otp_required/redirect -> processing
    cash_on_delivery  processing at once, settled at the door
    bank_transfer     processing at once, with transfer instructions
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import structlog

from marketplace.config import Settings, get_settings
from marketplace.payment.gateway import get_gateway
from marketplace.payment.gateway.port import (
    GatewayError,
    GatewayOutcome,
    GatewayResponse,
    MobileMoneyGateway,
    MobileMoneyRequest,
)
from marketplace.payment.payment import Payment, PaymentMethod, PaymentStatus

logger = structlog.get_logger(__name__)


@dataclass
class SettlementOutcome:
    status: PaymentStatus
    gateway_response: dict = field(default_factory=dict)
    external_transaction_id: str | None = None
    payment_url: str | None = None
    payment_token: str | None = None
    message: str | None = None
    requires_otp: bool = False
    fulfillable: bool = False
    auto_confirm: bool = False
    gateway_error: str | None = None
    error_details: dict | None = None

    @property
    def failed(self) -> bool:
        return self.status == PaymentStatus.FAILED


@dataclass
class PaymentResult:
    """What a caller learns about an attempt after initiation or OTP submission."""

    payment_reference: str
    order_id: str
    status: str
    amount: int = 0
    fees: int = 0
    currency: str = "XOF"
    payment_url: str | None = None
    payment_token: str | None = None
    requires_otp: bool = False
    instructions: dict | None = None
    message: str | None = None
    delivery_id: str | None = None
    fraud: object | None = None
    gateway_error: str | None = None
    auto_confirm: bool = False

    @property
    def fraud_blocked(self) -> bool:
        return self.fraud is not None and self.fraud.blocked


class SettlementStrategy(ABC):
    method: PaymentMethod

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    @abstractmethod
    def settle(self, payment: Payment, otp: str | None = None) -> SettlementOutcome:
        """Start settling ``payment``."""
        ...


class MobileMoneySettlement(SettlementStrategy):
    method = PaymentMethod.MOBILE_MONEY

    def __init__(self, settings: Settings | None = None, gateway: MobileMoneyGateway | None = None) -> None:
        super().__init__(settings)
        self.gateway = gateway or get_gateway()

    def build_request(self, payment: Payment, otp: str | None = None) -> MobileMoneyRequest:
        return MobileMoneyRequest(
            merchant_key=self.settings.gateway_merchant_key,
            amount=payment.amount,
            currency=payment.currency,
            reference=payment.payment_reference,
            customer_msisdn=payment.customer_phone,
            callback_url=self.settings.callback_url,
            return_url=self.settings.return_url,
            cancel_url=self.settings.cancel_url,
            customer_name=payment.customer_name,
            customer_email=payment.customer_email,
            otp=otp,
        )

    def settle(self, payment: Payment, otp: str | None = None) -> SettlementOutcome:
        try:
            response = self.gateway.request_payment(self.build_request(payment, otp))
        except GatewayError as exc:
            logger.error(
                "gateway_request_failed",
                payment_reference=payment.payment_reference,
                error=exc.message,
            )
            return SettlementOutcome(
                status=PaymentStatus.FAILED,
                message=exc.message,
                gateway_error=exc.message,
                error_details={"error": exc.message, "raw": exc.raw},
            )
        return self.interpret(response)

    def interpret(self, response: GatewayResponse) -> SettlementOutcome:
        if response.outcome == GatewayOutcome.FAILED:
            return SettlementOutcome(
                status=PaymentStatus.FAILED,
                gateway_response=response.raw,
                message=response.message or "Payment failed at gateway",
                error_details={"error_code": response.error_code, "message": response.message, "raw": response.raw},
            )

        messages = {
            GatewayOutcome.SUCCESS: "Payment request accepted",
            GatewayOutcome.OTP_REQUIRED: "Enter the OTP sent to your phone",
            GatewayOutcome.REDIRECT: "Complete the payment on the provided page",
        }
        return SettlementOutcome(
            status=PaymentStatus.PROCESSING,
            gateway_response=response.raw,
            external_transaction_id=response.transaction_id,
            payment_url=response.payment_url,
            payment_token=response.payment_token,
            message=response.message or messages[response.outcome],
            requires_otp=response.outcome == GatewayOutcome.OTP_REQUIRED,
            auto_confirm=response.outcome == GatewayOutcome.SUCCESS and self.settings.mock_payments,
        )


class CashOnDeliverySettlement(SettlementStrategy):
    method = PaymentMethod.CASH_ON_DELIVERY

    def settle(self, payment: Payment, otp: str | None = None) -> SettlementOutcome:
        return SettlementOutcome(
            status=PaymentStatus.PROCESSING,
            gateway_response={"method": self.method.value, "collect_amount": payment.amount},
            message="Pay the driver in cash on delivery",
            fulfillable=True,
        )


class BankTransferSettlement(SettlementStrategy):
    method = PaymentMethod.BANK_TRANSFER

    def instructions(self, payment: Payment) -> dict:
        return {
            "account_name": self.settings.bank_account_name,
            "account_number": self.settings.bank_account_number,
            "bank_name": self.settings.bank_name,
            "swift_code": self.settings.bank_swift_code,
            "reference": payment.payment_reference,
            "amount": payment.amount,
            "currency": payment.currency,
        }

    def settle(self, payment: Payment, otp: str | None = None) -> SettlementOutcome:
        return SettlementOutcome(
            status=PaymentStatus.PROCESSING,
            gateway_response={"method": self.method.value, "instructions": self.instructions(payment)},
            message="Transfer the amount quoting the payment reference",
        )


_STRATEGIES = {
    PaymentMethod.MOBILE_MONEY: MobileMoneySettlement,
    PaymentMethod.CASH_ON_DELIVERY: CashOnDeliverySettlement,
    PaymentMethod.BANK_TRANSFER: BankTransferSettlement,
}


def strategy_for(method: PaymentMethod, settings: Settings | None = None) -> SettlementStrategy:
    return _STRATEGIES[method](settings)


def apply_outcome(payment: Payment, outcome: SettlementOutcome) -> None:
    """Move a pending payment to the status the strategy settled on."""
    if outcome.failed:
        payment.fail(outcome.message, error_details=outcome.error_details)
        return
    payment.mark_processing(
        gateway_response=outcome.gateway_response,
        external_transaction_id=outcome.external_transaction_id,
        payment_url=outcome.payment_url,
        payment_token=outcome.payment_token,
    )
