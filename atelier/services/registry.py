# ==== ADAPTER AND SERVICE REGISTRY ==== #

"""
Construction of adapters and jobs from settings.

Adapters are process-wide singletons so that HTTP clients, the carrier token
cache and the in-memory pending-confirmation map are shared by every caller.
Jobs are cheap and built per use. Routes reach these through ``Depends``,
tests replace them with ``app.dependency_overrides``.
"""

from typing import Optional

from atelier.business.state_machine import OrderStateMachine
from atelier.integrations.carrier.client import MylerzClient
from atelier.integrations.discord.notifier import DiscordNotifier
from atelier.integrations.shopify.client import ShopifyClient
from atelier.integrations.whatsapp.client import WhatsAppClient
from atelier.services.carrier_reconciliation import CarrierReconciliationJob
from atelier.services.confirmation import ConfirmationCorrelator
from atelier.services.escalation import EscalationScheduler
from atelier.services.order_transitions import OrderTransitionService
from atelier.services.pending_confirmations import (
    InMemoryPendingConfirmations,
    RedisPendingConfirmations,
)
from atelier.services.ports import PendingConfirmationStore
from atelier.settings import settings
from atelier.storage.redis import close_redis_client, get_redis_client


# ==== GLOBAL ADAPTER INSTANCES ==== #


_order_store: Optional[ShopifyClient] = None
_carrier: Optional[MylerzClient] = None
_messaging: Optional[WhatsAppClient] = None
_notifier: Optional[DiscordNotifier] = None
_pending: Optional[PendingConfirmationStore] = None


def get_order_store() -> ShopifyClient:
    """Get the global Shopify order store adapter."""
    global _order_store
    if _order_store is None:
        _order_store = ShopifyClient()
    return _order_store


def get_carrier() -> MylerzClient:
    """Get the global carrier adapter, which owns the session token cache."""
    global _carrier
    if _carrier is None:
        _carrier = MylerzClient()
    return _carrier


def get_messaging() -> WhatsAppClient:
    """Get the global WhatsApp messaging adapter."""
    global _messaging
    if _messaging is None:
        _messaging = WhatsAppClient()
    return _messaging


def get_notifier() -> DiscordNotifier:
    """Get the global Discord notification sink."""
    global _notifier
    if _notifier is None:
        _notifier = DiscordNotifier()
    return _notifier


def get_pending_confirmations() -> PendingConfirmationStore:
    """
    Get the global pending-confirmation store.

    Returns:
        PendingConfirmationStore: Redis-backed when
            ``PENDING_CONFIRMATION_BACKEND=redis``, in-memory otherwise
    """
    global _pending
    if _pending is None:
        if settings.PENDING_CONFIRMATION_BACKEND == "redis":
            _pending = RedisPendingConfirmations(
                get_redis_client(), settings.PENDING_CONFIRMATION_TTL_SECONDS
            )
        else:
            _pending = InMemoryPendingConfirmations()
    return _pending


# ==== SERVICE BUILDERS ==== #


def build_transitions() -> OrderTransitionService:
    machine = OrderStateMachine(
        hold_after_days=settings.ESCALATION_HOLD_AFTER_DAYS,
        cancel_after_days=settings.ESCALATION_CANCEL_AFTER_DAYS,
    )
    return OrderTransitionService(get_order_store(), get_notifier(), machine)


def build_escalation_scheduler() -> EscalationScheduler:
    return EscalationScheduler(get_order_store(), build_transitions())


def build_carrier_reconciliation_job() -> CarrierReconciliationJob:
    return CarrierReconciliationJob(get_order_store(), get_carrier(), build_transitions())


def build_confirmation_correlator() -> ConfirmationCorrelator:
    return ConfirmationCorrelator(
        get_order_store(),
        get_messaging(),
        get_pending_confirmations(),
        build_transitions(),
    )


# ==== SHUTDOWN ==== #


async def aclose_all() -> None:
    """Drain pending notifications and close every adapter that was created."""
    global _order_store, _carrier, _messaging, _notifier, _pending

    if _notifier is not None:
        await _notifier.aclose()
    for adapter in (_order_store, _carrier, _messaging):
        if adapter is not None:
            await adapter.aclose()
    if isinstance(_pending, RedisPendingConfirmations):
        await close_redis_client()

    _order_store = _carrier = _messaging = _notifier = _pending = None
