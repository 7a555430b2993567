"""FastAPI dependencies shared by the routers."""

from rentflow.services.db import get_session_factory
from rentflow.services.notification_service import LogTransport, NotificationDispatcher
from rentflow.services.payout_gateway import PayoutGateway


def get_payout_gateway() -> PayoutGateway:
    """Payout gateway client configured from settings."""
    return PayoutGateway.from_settings()


def get_notification_dispatcher() -> NotificationDispatcher:
    """Outbox dispatcher bound to the application's session factory."""
    return NotificationDispatcher(get_session_factory(), LogTransport())


__all__ = ["get_payout_gateway", "get_notification_dispatcher"]
