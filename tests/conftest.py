import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Select the Protean config overlay before the domain is imported.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = Path(item.fspath)

        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path) or "/bdd/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


class RecordingScheduler:
    """Collects deferred callbacks so a test decides when they run."""

    def __init__(self):
        self.calls = []

    def call_later(self, delay, fn, *args):
        self.calls.append((delay, fn, args))

    def run_pending(self):
        pending, self.calls = self.calls, []
        for _, fn, args in pending:
            fn(*args)


@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace

    bed = DomainFixture(marketplace)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    with marketplace_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def run_around_tests(_ctx):
    """Fresh settings, gateway, sink and scheduler per test; clean stores afterwards."""
    from marketplace.audit import MemorySink, reset_event_logger, set_event_sink
    from marketplace.config import Settings, reset_settings, set_settings
    from marketplace.payment.gateway import reset_gateway, set_gateway
    from marketplace.payment.gateway.fake_adapter import FakeMobileMoneyGateway
    from marketplace.scheduling import reset_scheduler, set_scheduler

    set_settings(Settings(environment="test", webhook_secret="test-webhook-secret", auto_confirm_delay_seconds=0))
    set_gateway(FakeMobileMoneyGateway())
    set_event_sink(MemorySink())
    set_scheduler(RecordingScheduler())

    yield

    from protean import current_domain

    # Clear all databases
    for _, provider in current_domain.providers.items():
        provider._data_reset()

    # Drain event stores
    current_domain.event_store.store._data_reset()

    reset_settings()
    reset_gateway()
    reset_event_logger()
    reset_scheduler()


# ---------------------------------------------------------------------------
# Shared builders
# ---------------------------------------------------------------------------
SHIPPING_ADDRESS = {
    "recipient": "Awa Ouedraogo",
    "phone": "+22670123456",
    "street": "Avenue Kwame Nkrumah",
    "city": "Ouagadougou",
    "region": "Centre",
}


@pytest.fixture()
def shipping_address():
    return dict(SHIPPING_ADDRESS)


@pytest.fixture()
def gateway():
    from marketplace.payment.gateway import get_gateway

    return get_gateway()


@pytest.fixture()
def sink():
    from marketplace.audit import get_event_logger

    return get_event_logger().sink


@pytest.fixture()
def scheduler():
    from marketplace.scheduling import get_scheduler

    return get_scheduler()


@pytest.fixture()
def register():
    """Register an account: ``register("buyer-001", "buyer")``."""
    from marketplace import pipeline

    def _register(account_id, role, **profile):
        return pipeline.register_account(account_id, role, **profile)

    return _register


@pytest.fixture()
def buyer(register):
    return register("buyer-001", "buyer", phone="+22670123456")


@pytest.fixture()
def vendor(register):
    return register("vendor-001", "vendor")


@pytest.fixture()
def driver(register):
    return register("driver-001", "driver")


@pytest.fixture()
def admin(register):
    return register("admin-001", "admin")


@pytest.fixture()
def make_product(vendor):
    from marketplace import pipeline

    def _make(product_id="prod-001", unit_price=25000, available_quantity=50, name=None, vendor_id=None, **options):
        return pipeline.register_product(
            product_id,
            vendor_id or vendor,
            name or f"Product {product_id}",
            unit_price,
            available_quantity=available_quantity,
            **options,
        )

    return _make


@pytest.fixture()
def place_order(buyer):
    """Place an order straight from ``items`` ([(product_id, quantity), ...])."""
    from marketplace import pipeline

    def _place(items, payment_method="mobile_money", buyer_id=None):
        return pipeline.place_order(
            buyer_id or buyer,
            shipping_address=SHIPPING_ADDRESS,
            payment_method=payment_method,
            items=[{"product_id": product_id, "quantity": quantity} for product_id, quantity in items],
        )

    return _place
