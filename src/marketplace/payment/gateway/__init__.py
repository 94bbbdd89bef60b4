"""Mobile-money gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeMobileMoneyGateway when ``mock_payments`` is on (development, tests)
- HttpMobileMoneyGateway otherwise
"""

from marketplace.config import get_settings
from marketplace.payment.gateway.fake_adapter import FakeMobileMoneyGateway
from marketplace.payment.gateway.http_adapter import HttpMobileMoneyGateway
from marketplace.payment.gateway.port import MobileMoneyGateway

_current_gateway: MobileMoneyGateway | None = None


def get_gateway() -> MobileMoneyGateway:
    """Return the current gateway, building it from settings on first use."""
    global _current_gateway
    if _current_gateway is None:
        settings = get_settings()
        if settings.mock_payments:
            _current_gateway = FakeMobileMoneyGateway()
        else:
            _current_gateway = HttpMobileMoneyGateway(
                base_url=settings.gateway_base_url,
                merchant_key=settings.gateway_merchant_key,
                api_secret=settings.gateway_api_secret,
                timeout=settings.gateway_timeout_seconds,
            )
    return _current_gateway


def set_gateway(gateway: MobileMoneyGateway) -> None:
    """Override the active gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to the settings-derived gateway."""
    global _current_gateway
    _current_gateway = None
