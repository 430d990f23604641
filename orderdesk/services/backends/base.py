"""
Order Backend Abstract Base Class

Defines the interface contract for every place orders can live:
    - RemoteOrderBackend: the hosted order service over HTTP
    - MockRemoteOrderBackend: simulated remote for development
    - LocalOrderBackend: per-restaurant JSON files on local disk
    - FallbackOrderBackend: decorator trying one backend, then another

Design Pattern: Adapter + Decorator
    - OrderStore talks to one BaseOrderBackend and never branches on which
      implementation it holds
    - Remote-then-local selection lives in one decorator instead of being
      repeated at every call site
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from orderdesk.models import Order


# Pure function applied to the current record of an order.
OrderMutation = Callable[[Order], Order]


class BaseOrderBackend(ABC):
    """
    Abstract base class for order backends.

    Error contract:
        - RemoteUnavailable: network/server failure (remote backends only)
        - OrderNotFound: unknown order id
        - FallbackStoreError: the local store cannot be read or written
        - Anything raised by a mutation propagates unchanged
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the backend name (e.g. "remote", "local")."""
        pass

    @abstractmethod
    async def create_order(self, order: Order) -> Order:
        """
        Persist a new order.

        Args:
            order: Fully priced order in the pending state

        Returns:
            Order: The stored order (a remote service may assign its own
            id and order number)
        """
        pass

    @abstractmethod
    async def list_orders(
        self,
        restaurant_id: str,
        limit: int = 50,
        page: int = 1,
    ) -> list[Order]:
        """Return one page of a restaurant's orders."""
        pass

    @abstractmethod
    async def get_order(
        self,
        order_id: str,
        restaurant_id: Optional[str] = None,
    ) -> Order:
        """Load one order by id."""
        pass

    @abstractmethod
    async def update_order(
        self,
        order_id: str,
        mutate: OrderMutation,
        restaurant_id: Optional[str] = None,
    ) -> Order:
        """
        Read the current order, apply `mutate`, store and return the result.

        Local implementations perform the read-modify-write without
        yielding to the event loop.
        """
        pass

    async def save_orders(self, orders: list[Order]) -> None:
        """Upsert copies of orders obtained elsewhere. Optional."""
        raise NotImplementedError(f"{self.provider_name} backend cannot mirror orders")

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify the backend is usable.

        Returns:
            bool: True if the backend is reachable and operational
        """
        pass

    async def close(self) -> None:
        """Release network resources, if any."""
        return None
