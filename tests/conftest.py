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
    """Select the config environment before the domain is imported."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    with storefront_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def _adapters():
    """Fresh settings, fakes and fulfillment singletons for every test.

    Retry delays are zeroed so failure-path tests do not sleep.
    """
    from storefront.config import StorefrontSettings, reset_settings, set_settings
    from storefront.delivery.locks import reset_locks
    from storefront.delivery.orchestrator import reset_orchestrator
    from storefront.gateway import reset_gateway, set_gateway
    from storefront.gateway.fake_adapter import FakeGateway
    from storefront.notifier import reset_notifier, set_notifier
    from storefront.notifier.fake_adapter import FakeNotifier

    set_settings(
        StorefrontSettings(
            base_url="https://shop.test",
            notifier_retry_base_delay=0.0,
            persistence_retry_base_delay=0.0,
        )
    )
    set_gateway(FakeGateway())
    set_notifier(FakeNotifier())
    reset_orchestrator()
    reset_locks()

    yield

    reset_orchestrator()
    reset_gateway()
    reset_notifier()
    reset_settings()
    reset_locks()


@pytest.fixture()
def notifier():
    from storefront.notifier import get_notifier

    return get_notifier()


@pytest.fixture()
def gateway():
    from storefront.gateway import get_gateway

    return get_gateway()
