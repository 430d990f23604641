"""
Local Order Backend

Client-local durable fallback store. One JSON record set per restaurant:

    <data_directory>/orders/<quoted restaurant id>.json
    {
        "restaurantId": "...",
        "orders": {"<order id>": {<Order, camelCase>}, ...}
    }

Reads and writes are whole-collection and happen under a FileLock sidecar.
Writes go to a temporary file that replaces the record set atomically.
None of the public coroutines await between reading and writing, so a
read-modify-write can never interleave with another handler on the loop.
"""

import json
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional
from urllib.parse import quote, unquote

from filelock import FileLock, Timeout
from pydantic import ValidationError

from orderdesk.core.config import get_settings
from orderdesk.core.exceptions import FallbackStoreError, OrderNotFound
from orderdesk.models import Order, new_order_number
from orderdesk.services.backends.base import BaseOrderBackend, OrderMutation

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"


class LocalOrderBackend(BaseOrderBackend):
    """
    File-backed order store, namespaced by restaurant id.

    Example:
        >>> backend = LocalOrderBackend(data_directory="data")
        >>> await backend.create_order(order)
        >>> orders = await backend.list_orders(order.restaurant_id)
    """

    def __init__(
        self,
        data_directory: Optional[str] = None,
        lock_timeout: Optional[float] = None,
        order_number_prefix: Optional[str] = None,
    ):
        settings = get_settings()
        self._root = Path(data_directory or settings.data_directory) / "orders"
        self._lock_timeout = (
            settings.fallback_lock_timeout if lock_timeout is None else lock_timeout
        )
        self._prefix = order_number_prefix or settings.order_number_prefix

        logger.info(f"LocalOrderBackend initialized ({self._root})")

    @property
    def provider_name(self) -> str:
        return "local"

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def record_path(self, restaurant_id: str) -> Path:
        if not restaurant_id:
            raise ValueError("restaurant_id is required")
        return self._root / f"{quote(restaurant_id, safe='')}{RECORD_SUFFIX}"

    def restaurant_ids(self) -> list[str]:
        """Restaurants that have a record set on disk."""
        if not self._root.exists():
            return []
        return sorted(
            unquote(path.name[: -len(RECORD_SUFFIX)])
            for path in self._root.glob(f"*{RECORD_SUFFIX}")
        )

    def _ensure_root(self) -> None:
        if not self._root.exists():
            self._root.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created fallback store directory: {self._root}")

    def _read(self, path: Path) -> dict[str, Order]:
        if not path.exists():
            return {}
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            raw_orders = payload["orders"]
            return {
                order_id: Order.model_validate(raw)
                for order_id, raw in raw_orders.items()
            }
        except (OSError, ValueError, KeyError, TypeError, AttributeError, ValidationError) as e:
            logger.error(f"Corrupted fallback record set {path}: {e}")
            raise FallbackStoreError(f"Local order store is corrupted ({path.name})") from e

    def _write(self, path: Path, restaurant_id: str, records: dict[str, Order]) -> None:
        payload = {
            "restaurantId": restaurant_id,
            "orders": {order_id: order.to_wire() for order_id, order in records.items()},
        }
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            logger.exception(f"Failed to write fallback record set {path}")
            raise FallbackStoreError(f"Cannot write local order store: {e}") from e

    @contextmanager
    def _locked(self, path: Path) -> Iterator[None]:
        self._ensure_root()
        lock = FileLock(str(path) + ".lock", timeout=self._lock_timeout)
        try:
            with lock:
                yield
        except Timeout as e:
            logger.error(f"Lock timeout ({self._lock_timeout}s) on {path.name}")
            raise FallbackStoreError(f"Lock timeout ({self._lock_timeout}s)") from e

    def _locate(self, order_id: str) -> str:
        """Find the restaurant holding an order when the caller did not say."""
        for restaurant_id in self.restaurant_ids():
            path = self.record_path(restaurant_id)
            with self._locked(path):
                if order_id in self._read(path):
                    return restaurant_id
        raise OrderNotFound(order_id)

    # ------------------------------------------------------------------
    # Backend interface
    # ------------------------------------------------------------------

    async def create_order(self, order: Order) -> Order:
        path = self.record_path(order.restaurant_id)

        with self._locked(path):
            records = self._read(path)
            if order.id in records:
                raise ValueError(f"Order {order.id} already exists")

            taken = {existing.order_number for existing in records.values()}
            while order.order_number in taken:
                order = order.model_copy(
                    update={"order_number": new_order_number(self._prefix, order.created_at)}
                )

            records[order.id] = order
            self._write(path, order.restaurant_id, records)

        logger.info(f"Local: Order {order.order_number} saved for restaurant {order.restaurant_id}")
        return order

    async def list_orders(
        self,
        restaurant_id: str,
        limit: int = 50,
        page: int = 1,
    ) -> list[Order]:
        path = self.record_path(restaurant_id)
        with self._locked(path):
            records = self._read(path)

        orders = sorted(records.values(), key=lambda o: o.created_at, reverse=True)
        start = (max(page, 1) - 1) * limit
        return orders[start:start + limit]

    async def get_order(
        self,
        order_id: str,
        restaurant_id: Optional[str] = None,
    ) -> Order:
        restaurant_id = restaurant_id or self._locate(order_id)
        path = self.record_path(restaurant_id)
        with self._locked(path):
            records = self._read(path)
        if order_id not in records:
            raise OrderNotFound(order_id)
        return records[order_id]

    async def update_order(
        self,
        order_id: str,
        mutate: OrderMutation,
        restaurant_id: Optional[str] = None,
    ) -> Order:
        restaurant_id = restaurant_id or self._locate(order_id)
        path = self.record_path(restaurant_id)

        with self._locked(path):
            records = self._read(path)
            if order_id not in records:
                raise OrderNotFound(order_id)
            updated = mutate(records[order_id])
            records[order_id] = updated
            self._write(path, restaurant_id, records)

        logger.info(f"Local: Order {updated.order_number} is now {updated.status.value}")
        return updated

    async def save_orders(self, orders: list[Order]) -> None:
        """Upsert orders; a stored copy with a later updated_at is kept."""
        by_restaurant: dict[str, list[Order]] = {}
        for order in orders:
            by_restaurant.setdefault(order.restaurant_id, []).append(order)

        for restaurant_id, incoming in by_restaurant.items():
            path = self.record_path(restaurant_id)
            with self._locked(path):
                records = self._read(path)
                changed = False
                for order in incoming:
                    current = records.get(order.id)
                    if current is None or (
                        order.updated_at > current.updated_at
                        or (order.updated_at == current.updated_at and order != current)
                    ):
                        records[order.id] = order
                        changed = True
                if changed:
                    self._write(path, restaurant_id, records)

    async def health_check(self) -> bool:
        try:
            self._ensure_root()
        except OSError as e:
            logger.error(f"Local: Health check failed - {e}")
            return False
        return os.access(self._root, os.W_OK)
