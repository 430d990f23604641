"""
Order Backend Factory

Provides a single entry point for obtaining the order backend.
The primary leg is selected by ENV_MODE and always fronts the local store:

    - ENV_MODE=development -> MockRemoteOrderBackend -> LocalOrderBackend
    - ENV_MODE=staging     -> RemoteOrderBackend     -> LocalOrderBackend
    - ENV_MODE=production  -> RemoteOrderBackend     -> LocalOrderBackend

Usage:
    from orderdesk.services.backends import get_order_backend

    backend = get_order_backend()
    orders = await backend.list_orders("rest_123")
"""

import logging
from functools import lru_cache

from orderdesk.core.config import get_settings
from orderdesk.services.backends.base import BaseOrderBackend, OrderMutation
from orderdesk.services.backends.fallback import FallbackOrderBackend, FallbackTelemetry
from orderdesk.services.backends.local import LocalOrderBackend
from orderdesk.services.backends.mock import MockRemoteOrderBackend
from orderdesk.services.backends.remote import RemoteOrderBackend

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_backend() -> BaseOrderBackend:
    """
    Get the configured order backend instance.

    The instance is cached so every caller shares the same HTTP client and
    fallback telemetry.

    Returns:
        BaseOrderBackend: Remote-then-local backend

    Raises:
        ValueError: If production mode but ORDER_SERVICE_URL not configured
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Order Backend: Using MockRemoteOrderBackend (development mode)")
        primary: BaseOrderBackend = MockRemoteOrderBackend(
            failure_rate=settings.mock_failure_rate,
            min_latency=settings.mock_min_latency,
            max_latency=settings.mock_max_latency,
        )
    else:
        logger.info(
            f"Order Backend: Using RemoteOrderBackend "
            f"({settings.env_mode.value} mode)"
        )
        primary = RemoteOrderBackend()

    return FallbackOrderBackend(primary=primary, fallback=LocalOrderBackend())


def reset_order_backend() -> None:
    """
    Clear the cached backend instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_order_backend.cache_clear()
    logger.debug("Order backend cache cleared")


__all__ = [
    "get_order_backend",
    "reset_order_backend",
    "BaseOrderBackend",
    "OrderMutation",
    "FallbackOrderBackend",
    "FallbackTelemetry",
    "LocalOrderBackend",
    "MockRemoteOrderBackend",
    "RemoteOrderBackend",
]
