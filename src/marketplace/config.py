"""Pipeline settings.

Protean's own configuration (providers, brokers, event processing) lives in
``domain.toml`` and is selected with ``PROTEAN_ENV``. The knobs below belong
to the settlement pipeline itself and are read from ``MARKETPLACE_*``
environment variables.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal


def _env(name: str, default: str) -> str:
    return os.getenv(f"MARKETPLACE_{name}", default)


@dataclass(frozen=True)
class FraudThresholds:
    """Ascending score thresholds that map a risk score to an action."""

    low: int = 20
    medium: int = 40
    high: int = 60
    critical: int = 80


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    currency: str = "XOF"

    # Mobile-money gateway
    gateway_base_url: str = "https://api.mobile-money.example"
    gateway_merchant_key: str = ""
    gateway_api_secret: str = ""
    gateway_timeout_seconds: float = 30.0
    callback_url: str = "http://localhost:8000/payments/webhook"
    return_url: str = "http://localhost:3000/payment/success"
    cancel_url: str = "http://localhost:3000/payment/cancel"
    webhook_secret: str = ""
    mock_payments: bool = True
    auto_confirm_delay_seconds: float = 5.0

    # Bank transfer instructions
    bank_account_name: str = "E-Commerce Platform"
    bank_account_number: str = "BF001234567890"
    bank_name: str = "Bank of Africa Burkina Faso"
    bank_swift_code: str = "AFRIBFBF"

    # Payment expiry windows
    mobile_money_expiry_minutes: int = 30
    bank_transfer_expiry_minutes: int = 72 * 60
    cash_on_delivery_expiry_minutes: int = 7 * 24 * 60

    # Delivery pricing
    delivery_flat_fee: int = 1500
    delivery_minimum_fee: int = 1000
    delivery_fee_per_km: int = 250
    driver_earnings_share: Decimal = Decimal("0.80")

    # Fraud gate
    fraud_thresholds: FraudThresholds = field(default_factory=FraudThresholds)
    fraud_high_amount: int = 1_000_000
    fraud_velocity_limit: int = 5
    fraud_failure_limit: int = 3
    fraud_shared_device_accounts: int = 3
    phone_pattern: str = r"^\+226\d{8}$"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment, falling back to defaults."""
        defaults = cls()
        thresholds = FraudThresholds(
            low=int(_env("FRAUD_THRESHOLD_LOW", str(defaults.fraud_thresholds.low))),
            medium=int(_env("FRAUD_THRESHOLD_MEDIUM", str(defaults.fraud_thresholds.medium))),
            high=int(_env("FRAUD_THRESHOLD_HIGH", str(defaults.fraud_thresholds.high))),
            critical=int(_env("FRAUD_THRESHOLD_CRITICAL", str(defaults.fraud_thresholds.critical))),
        )
        return cls(
            environment=(os.getenv("PROTEAN_ENV") or defaults.environment).lower(),
            currency=_env("CURRENCY", defaults.currency),
            gateway_base_url=_env("GATEWAY_BASE_URL", defaults.gateway_base_url),
            gateway_merchant_key=_env("GATEWAY_MERCHANT_KEY", defaults.gateway_merchant_key),
            gateway_api_secret=_env("GATEWAY_API_SECRET", defaults.gateway_api_secret),
            gateway_timeout_seconds=float(_env("GATEWAY_TIMEOUT", str(defaults.gateway_timeout_seconds))),
            callback_url=_env("CALLBACK_URL", defaults.callback_url),
            return_url=_env("RETURN_URL", defaults.return_url),
            cancel_url=_env("CANCEL_URL", defaults.cancel_url),
            webhook_secret=_env("WEBHOOK_SECRET", defaults.webhook_secret),
            mock_payments=_env("MOCK_PAYMENTS", "true").lower() in ("1", "true", "yes"),
            auto_confirm_delay_seconds=float(
                _env("AUTO_CONFIRM_DELAY", str(defaults.auto_confirm_delay_seconds))
            ),
            delivery_flat_fee=int(_env("DELIVERY_FLAT_FEE", str(defaults.delivery_flat_fee))),
            delivery_minimum_fee=int(_env("DELIVERY_MINIMUM_FEE", str(defaults.delivery_minimum_fee))),
            delivery_fee_per_km=int(_env("DELIVERY_FEE_PER_KM", str(defaults.delivery_fee_per_km))),
            driver_earnings_share=Decimal(_env("DRIVER_EARNINGS_SHARE", str(defaults.driver_earnings_share))),
            fraud_thresholds=thresholds,
            fraud_high_amount=int(_env("FRAUD_HIGH_AMOUNT", str(defaults.fraud_high_amount))),
        )


_current_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the active settings, loading them from the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = Settings.from_env()
    return _current_settings


def set_settings(settings: Settings) -> None:
    """Override the active settings (useful for tests)."""
    global _current_settings
    _current_settings = settings


def reset_settings() -> None:
    """Drop overrides; the next call re-reads the environment."""
    global _current_settings
    _current_settings = None
