"""
Fallback Order Backend

Decorator that tries a primary backend (the remote order service) and, on a
network or server failure, transparently repeats the operation against a
fallback backend (the local store).

Policy:
    - Per call, never sticky: every operation tries the primary first, even
      right after a fallback.
    - The primary leg is bounded by a timeout; running past it counts as a
      failure.
    - Business errors (InvalidTransition, MissingCancellationReason, ...)
      are never retried.
    - OrderNotFound from the primary on get/update consults the fallback:
      orders created during an outage only exist locally.
    - A failing fallback is a hard failure and propagates.
    - Every fallback is logged at WARNING and counted in `telemetry`.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

from orderdesk.core.config import get_settings
from orderdesk.core.exceptions import OrderDeskError, OrderNotFound, RemoteUnavailable
from orderdesk.models import Order, utc_now
from orderdesk.services.backends.base import BaseOrderBackend, OrderMutation

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class FallbackTelemetry:
    """Counters that make silent degradation diagnosable."""
    primary_calls: int = 0
    fallbacks: Counter = field(default_factory=Counter)
    last_failure: Optional[str] = None
    last_failure_at: Optional[datetime] = None

    @property
    def total_fallbacks(self) -> int:
        return sum(self.fallbacks.values())

    def to_dict(self) -> dict:
        return {
            "primary_calls": self.primary_calls,
            "fallbacks": dict(self.fallbacks),
            "total_fallbacks": self.total_fallbacks,
            "last_failure": self.last_failure,
            "last_failure_at": self.last_failure_at.isoformat() if self.last_failure_at else None,
        }


class FallbackOrderBackend(BaseOrderBackend):
    """
    Remote-then-local order backend.

    Example:
        >>> backend = FallbackOrderBackend(
        ...     primary=RemoteOrderBackend(),
        ...     fallback=LocalOrderBackend(),
        ... )
        >>> order = await backend.create_order(order)  # local if remote is down
    """

    def __init__(
        self,
        primary: BaseOrderBackend,
        fallback: BaseOrderBackend,
        timeout: Optional[float] = None,
        mirror: Optional[bool] = None,
    ):
        settings = get_settings()
        self.primary = primary
        self.fallback = fallback
        self._timeout = timeout or settings.remote_timeout_seconds
        self._mirror = settings.mirror_remote_orders if mirror is None else mirror
        self.telemetry = FallbackTelemetry()

        logger.info(
            f"FallbackOrderBackend initialized "
            f"({primary.provider_name} -> {fallback.provider_name}, "
            f"timeout={self._timeout}s, mirror={self._mirror})"
        )

    @property
    def provider_name(self) -> str:
        return f"{self.primary.provider_name}+{self.fallback.provider_name}"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _primary(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        self.telemetry.primary_calls += 1
        try:
            return await asyncio.wait_for(call(), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise RemoteUnavailable(f"{operation} exceeded {self._timeout}s") from e

    def _record_fallback(self, operation: str, subject: str, reason: str) -> None:
        self.telemetry.fallbacks[operation] += 1
        self.telemetry.last_failure = reason
        self.telemetry.last_failure_at = utc_now()
        logger.warning(
            f"Fallback: {operation} for {subject} failed on "
            f"{self.primary.provider_name} ({reason}); "
            f"using {self.fallback.provider_name}"
        )

    async def _mirror_orders(self, orders: list[Order]) -> None:
        if not self._mirror or not orders:
            return
        try:
            await self.fallback.save_orders(orders)
        except (OrderDeskError, NotImplementedError) as e:
            logger.warning(f"Fallback: could not mirror {len(orders)} order(s) locally - {e}")

    # ------------------------------------------------------------------
    # Backend interface
    # ------------------------------------------------------------------

    async def create_order(self, order: Order) -> Order:
        subject = f"restaurant {order.restaurant_id}"
        try:
            created = await self._primary(
                "create_order", lambda: self.primary.create_order(order)
            )
        except RemoteUnavailable as e:
            self._record_fallback("create_order", subject, e.reason)
            created = await self.fallback.create_order(order)
            logger.info(f"Fallback: Order {created.order_number} stored locally")
            return created

        await self._mirror_orders([created])
        return created

    async def list_orders(
        self,
        restaurant_id: str,
        limit: int = 50,
        page: int = 1,
    ) -> list[Order]:
        subject = f"restaurant {restaurant_id}"
        try:
            orders = await self._primary(
                "list_orders",
                lambda: self.primary.list_orders(restaurant_id, limit, page),
            )
        except RemoteUnavailable as e:
            self._record_fallback("list_orders", subject, e.reason)
            return await self.fallback.list_orders(restaurant_id, limit, page)

        await self._mirror_orders(orders)
        return orders

    async def get_order(
        self,
        order_id: str,
        restaurant_id: Optional[str] = None,
    ) -> Order:
        subject = f"order {order_id}"
        try:
            return await self._primary(
                "get_order", lambda: self.primary.get_order(order_id, restaurant_id)
            )
        except RemoteUnavailable as e:
            self._record_fallback("get_order", subject, e.reason)
        except OrderNotFound:
            logger.info(f"Fallback: {subject} unknown to {self.primary.provider_name}, checking local store")
        return await self.fallback.get_order(order_id, restaurant_id)

    async def update_order(
        self,
        order_id: str,
        mutate: OrderMutation,
        restaurant_id: Optional[str] = None,
    ) -> Order:
        subject = f"order {order_id}"
        try:
            updated = await self._primary(
                "update_order",
                lambda: self.primary.update_order(order_id, mutate, restaurant_id),
            )
        except RemoteUnavailable as e:
            self._record_fallback("update_order", subject, e.reason)
        except OrderNotFound:
            logger.info(f"Fallback: {subject} unknown to {self.primary.provider_name}, checking local store")
        else:
            await self._mirror_orders([updated])
            return updated

        return await self.fallback.update_order(order_id, mutate, restaurant_id)

    async def save_orders(self, orders: list[Order]) -> None:
        await self.fallback.save_orders(orders)

    async def health_check(self) -> bool:
        """Healthy while the fallback works; the primary may be degraded."""
        primary_ok = await self.primary.health_check()
        fallback_ok = await self.fallback.health_check()
        if not primary_ok:
            logger.warning(f"Fallback: {self.primary.provider_name} health check failed")
        return fallback_ok

    async def close(self) -> None:
        await self.primary.close()
        await self.fallback.close()
