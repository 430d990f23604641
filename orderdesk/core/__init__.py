"""
Core module initialization.
Exports configuration, logging utilities and the error hierarchy.
"""

from orderdesk.core.config import get_settings, Settings, EnvironmentMode
from orderdesk.core.exceptions import (
    OrderDeskError,
    EmptyOrder,
    InvalidTransition,
    MissingCancellationReason,
    OrderNotFound,
    RemoteUnavailable,
    RemoteRejected,
    FallbackStoreError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "OrderDeskError",
    "EmptyOrder",
    "InvalidTransition",
    "MissingCancellationReason",
    "OrderNotFound",
    "RemoteUnavailable",
    "RemoteRejected",
    "FallbackStoreError",
]
