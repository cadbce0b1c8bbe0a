# ==== SHARED TEST FIXTURES AND CONFIGURATION ==== #

"""
Shared test fixtures and configuration.

Adapters are replaced by the in-memory doubles from ``tests.fakes``; HTTP
adapters are exercised against ``respx`` mocks in their own unit tests.
"""

import os
from datetime import date

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport


# ==== FORCE ENVIRONMENT SETUP BEFORE ANY IMPORTS ==== #

# Set environment variables BEFORE importing any atelier modules
os.environ.update({
    "APP_ENV": "test",
    "LOG_LEVEL": "WARNING",
    "BUSINESS_TIMEZONE": "Africa/Cairo",
    "SHOPIFY_SHOP_URL": "https://atelier-test.myshopify.com",
    "SHOPIFY_ACCESS_TOKEN": "shpat_test",
    "SHOPIFY_API_VERSION": "2024-01",
    "CARRIER_API_URL": "https://carrier.test",
    "CARRIER_USERNAME": "merchant",
    "CARRIER_PASSWORD": "secret",
    "CARRIER_MERCHANT_ID": "42",
    "CARRIER_MEMBER_ID": "7",
    "WHATSAPP_API_URL": "https://graph.test/v18.0",
    "WHATSAPP_PHONE_NUMBER_ID": "1234567890",
    "WHATSAPP_ACCESS_TOKEN": "wa-token",
    "WHATSAPP_VERIFY_TOKEN": "verify-me",
    "PENDING_CONFIRMATION_BACKEND": "memory",
    "JOB_MAX_CONCURRENCY": "3",
})

# Now import atelier modules after environment is set
from atelier.business.state_machine import OrderStateMachine
from atelier.resilience import reset_circuit_breakers
from atelier.services.confirmation import ConfirmationCorrelator
from atelier.services.order_transitions import OrderTransitionService
from atelier.services.pending_confirmations import InMemoryPendingConfirmations
from tests.fakes import FakeCarrier, FakeMessaging, InMemoryOrderStore, RecordingNotifier


# ==== ISOLATION ==== #


@pytest.fixture(autouse=True)
def fresh_circuit_breakers():
    """Every test starts with closed breakers."""
    reset_circuit_breakers()
    yield
    reset_circuit_breakers()


# ==== PORT DOUBLES ==== #


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def carrier():
    return FakeCarrier()


@pytest.fixture
def messaging():
    return FakeMessaging()


@pytest.fixture
def pending():
    return InMemoryPendingConfirmations()


@pytest.fixture
def transitions(store, notifier):
    return OrderTransitionService(store, notifier, OrderStateMachine(hold_after_days=2, cancel_after_days=2))


@pytest.fixture
def correlator(store, messaging, pending, transitions):
    return ConfirmationCorrelator(
        store,
        messaging,
        pending,
        transitions,
        button_text="Yes, I'll be available",
        template_name="order_ready",
        timezone="Africa/Cairo",
    )


@pytest.fixture
def business_day():
    return date(2025, 1, 1)


# ==== APPLICATION FIXTURES ==== #


@pytest_asyncio.fixture
async def app_client(store, carrier, transitions, correlator):
    """ASGI client with every adapter replaced by an in-memory double."""
    from atelier.main import create_app
    from atelier.services import registry
    from atelier.services.carrier_reconciliation import CarrierReconciliationJob
    from atelier.services.escalation import EscalationScheduler

    app = create_app()
    app.dependency_overrides[registry.get_order_store] = lambda: store
    app.dependency_overrides[registry.build_transitions] = lambda: transitions
    app.dependency_overrides[registry.build_confirmation_correlator] = lambda: correlator
    app.dependency_overrides[registry.build_escalation_scheduler] = (
        lambda: EscalationScheduler(store, transitions, timezone="Africa/Cairo", max_concurrency=2)
    )
    app.dependency_overrides[registry.build_carrier_reconciliation_job] = (
        lambda: CarrierReconciliationJob(
            store, carrier, transitions, timezone="Africa/Cairo", lookback_days=7, max_concurrency=2
        )
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
