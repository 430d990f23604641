"""
Mock Remote Order Backend

Simulates the hosted order service without making real API calls.
Used in development mode (ENV_MODE=development) to:
    - Exercise the remote-then-local fallback path locally
    - Run the simulation script without a deployed order service
    - Develop without internet connectivity

Behavior:
    - Simulates realistic response times (50-300ms by default)
    - Randomly fails a configurable share of calls with RemoteUnavailable
    - Assigns server-style ids and order numbers on create
    - Keeps orders in memory for the lifetime of the process
"""

import asyncio
import logging
import random
import uuid
from typing import Optional

from orderdesk.core.exceptions import OrderNotFound, RemoteUnavailable
from orderdesk.models import Order
from orderdesk.services.backends.base import BaseOrderBackend, OrderMutation

logger = logging.getLogger(__name__)


class MockRemoteOrderBackend(BaseOrderBackend):
    """
    In-memory stand-in for the remote order service.

    Attributes:
        failure_rate: Probability of a simulated outage per call (0.0-1.0)
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds

    Example:
        >>> backend = MockRemoteOrderBackend(failure_rate=0.0)
        >>> created = await backend.create_order(order)
        >>> created.id.startswith("mock_")
        True
    """

    # Simulated outage reasons
    FAILURE_REASONS = [
        "HTTP 502 from upstream gateway",
        "HTTP 503 service unavailable",
        "connection reset by peer",
        "read timeout",
    ]

    def __init__(
        self,
        failure_rate: float = 0.10,
        min_latency: float = 0.05,
        max_latency: float = 0.3,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self._orders: dict[str, Order] = {}
        self._sequence = 1000

        logger.info(
            f"MockRemoteOrderBackend initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_call(self, operation: str) -> None:
        """Sleep for a random latency and maybe fail."""
        await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))
        if random.random() < self.failure_rate:
            reason = random.choice(self.FAILURE_REASONS)
            logger.debug(f"Mock: {operation} failed - {reason}")
            raise RemoteUnavailable(reason)

    async def create_order(self, order: Order) -> Order:
        await self._simulate_call("create_order")

        self._sequence += 1
        created = order.model_copy(
            update={
                "id": f"mock_{uuid.uuid4().hex[:16]}",
                "order_number": f"{order.order_number.split('-')[0]}-{self._sequence}",
            }
        )
        self._orders[created.id] = created
        logger.info(f"Mock: Order {created.order_number} created")
        return created

    async def list_orders(
        self,
        restaurant_id: str,
        limit: int = 50,
        page: int = 1,
    ) -> list[Order]:
        await self._simulate_call("list_orders")

        orders = sorted(
            (o for o in self._orders.values() if o.restaurant_id == restaurant_id),
            key=lambda o: o.created_at,
            reverse=True,
        )
        start = (max(page, 1) - 1) * limit
        return orders[start:start + limit]

    async def get_order(
        self,
        order_id: str,
        restaurant_id: Optional[str] = None,
    ) -> Order:
        await self._simulate_call("get_order")

        if order_id not in self._orders:
            raise OrderNotFound(order_id)
        return self._orders[order_id]

    async def update_order(
        self,
        order_id: str,
        mutate: OrderMutation,
        restaurant_id: Optional[str] = None,
    ) -> Order:
        await self._simulate_call("update_order")

        if order_id not in self._orders:
            raise OrderNotFound(order_id)
        updated = mutate(self._orders[order_id])
        self._orders[order_id] = updated
        return updated

    async def health_check(self) -> bool:
        """Mock health check always returns True."""
        logger.debug("Mock: Health check passed")
        return True
