"""
Remote Order Backend

Production implementation talking to the hosted order service.
Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - ORDER_SERVICE_URL must be set in environment
    - ORDER_SERVICE_TOKEN is sent as a bearer token when set

Consumed endpoints:
    GET   /restaurants/{id}/orders?limit=&page=  -> {"orders": [Order]}
    POST  /restaurants/{id}/orders                -> {"order": Order}
    GET   /orders/{id}                            -> {"order": Order}
    PATCH /orders/{id}/status                     -> {"order": Order}

Network, timeout, 5xx, 408/429 and decoding failures become RemoteUnavailable
so the fallback decorator can take over. Any other 4xx is a rejection: it is
raised as the business error named in the body's "error" field, or as
RemoteRejected, and never falls back.
"""

import logging
from datetime import datetime
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from orderdesk.core.config import get_settings
from orderdesk.core.exceptions import (
    EmptyOrder,
    InvalidTransition,
    MissingCancellationReason,
    OrderDeskError,
    OrderNotFound,
    RemoteRejected,
    RemoteUnavailable,
)
from orderdesk.models import Order
from orderdesk.services.backends.base import BaseOrderBackend, OrderMutation

logger = logging.getLogger(__name__)

# 4xx answers that mean "try again later" rather than "no"
RETRYABLE_STATUS = {408, 429}

# Error names in a 4xx body that map back onto our own exceptions
REMOTE_BUSINESS_ERRORS = {
    "EmptyOrder": EmptyOrder,
    "MissingCancellationReason": MissingCancellationReason,
}


class RemoteOrderBackend(BaseOrderBackend):
    """
    HTTP adapter for the remote order service.

    Example:
        >>> backend = RemoteOrderBackend(base_url="https://api.example.com/api")
        >>> orders = await backend.list_orders("rest_123", limit=50)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the HTTP client.

        Raises:
            ValueError: If no base URL is configured
        """
        settings = get_settings()
        base_url = base_url or settings.order_service_url

        if not base_url:
            raise ValueError(
                "ORDER_SERVICE_URL is required for production mode. "
                "Set it in your .env file or environment variables."
            )

        token = token or settings.order_service_token
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._timeout = timeout or settings.remote_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(self._timeout),
            transport=transport,
        )

        logger.info(f"RemoteOrderBackend initialized ({base_url})")

    @property
    def provider_name(self) -> str:
        return "remote"

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        start_time = datetime.now()
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Remote: {method} {url} timed out after {self._timeout}s")
            raise RemoteUnavailable(f"timeout on {method} {url}") from e
        except httpx.HTTPError as e:
            logger.error(f"Remote: {method} {url} transport error - {e}")
            raise RemoteUnavailable(f"{type(e).__name__} on {method} {url}") from e

        elapsed_ms = (datetime.now() - start_time).total_seconds() * 1000
        logger.debug(f"Remote: {method} {url} -> {response.status_code} ({elapsed_ms:.0f}ms)")
        return response

    @staticmethod
    def _rejection(response: httpx.Response) -> OrderDeskError:
        """Translate a 4xx answer into the business error it carries."""
        error = detail = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            if isinstance(body.get("error"), str):
                error = body["error"]
            if isinstance(body.get("detail"), str):
                detail = body["detail"]

        if error in REMOTE_BUSINESS_ERRORS:
            return REMOTE_BUSINESS_ERRORS[error](detail)
        return RemoteRejected(response.status_code, error, detail)

    @classmethod
    def _payload(cls, response: httpx.Response) -> dict:
        if response.is_client_error and response.status_code not in RETRYABLE_STATUS:
            rejection = cls._rejection(response)
            logger.warning(
                f"Remote: {response.request.method} {response.request.url} "
                f"rejected with {response.status_code} - {rejection}"
            )
            raise rejection
        if not response.is_success:
            raise RemoteUnavailable(f"HTTP {response.status_code} from {response.request.url}")
        try:
            body = response.json()
        except ValueError as e:
            raise RemoteUnavailable("response body is not JSON") from e
        if not isinstance(body, dict):
            raise RemoteUnavailable("response body is not an object")
        # Accept the {"success": ..., "data": {...}} envelope as well
        if isinstance(body.get("data"), dict):
            body = body["data"]
        return body

    @staticmethod
    def _order(body: dict) -> Order:
        try:
            return Order.model_validate(body["order"])
        except (KeyError, TypeError, ValidationError) as e:
            raise RemoteUnavailable(f"malformed order in response: {e}") from e

    # ------------------------------------------------------------------
    # Backend interface
    # ------------------------------------------------------------------

    async def create_order(self, order: Order) -> Order:
        wire = order.to_wire()
        body = {
            "customer": wire["customer"],
            "items": wire["items"],
            "totalAmount": wire["totals"]["total"],
            "paymentMethod": wire["paymentMethod"],
            "deliveryMethod": wire["deliveryMethod"],
        }
        for key in ("tableNumber", "deliveryAddress", "specialInstructions"):
            if key in wire:
                body[key] = wire[key]

        response = await self._send(
            "POST", f"/restaurants/{order.restaurant_id}/orders", json=body
        )
        created = self._order(self._payload(response))
        logger.info(f"Remote: Order {created.order_number} created")
        return created

    async def list_orders(
        self,
        restaurant_id: str,
        limit: int = 50,
        page: int = 1,
    ) -> list[Order]:
        response = await self._send(
            "GET",
            f"/restaurants/{restaurant_id}/orders",
            params={"limit": limit, "page": page},
        )
        body = self._payload(response)
        try:
            return [Order.model_validate(raw) for raw in body["orders"]]
        except (KeyError, TypeError, ValidationError) as e:
            raise RemoteUnavailable(f"malformed order list in response: {e}") from e

    async def get_order(
        self,
        order_id: str,
        restaurant_id: Optional[str] = None,
    ) -> Order:
        response = await self._send("GET", f"/orders/{order_id}")
        if response.status_code == 404:
            raise OrderNotFound(order_id)
        return self._order(self._payload(response))

    async def update_order(
        self,
        order_id: str,
        mutate: OrderMutation,
        restaurant_id: Optional[str] = None,
    ) -> Order:
        current = await self.get_order(order_id, restaurant_id)
        # Validate locally first; business errors never reach the network.
        proposed = mutate(current)

        body = {"status": proposed.status.value}
        note = proposed.status_history[-1].note
        if note:
            body["note"] = note

        response = await self._send("PATCH", f"/orders/{order_id}/status", json=body)
        if response.status_code == 404:
            raise OrderNotFound(order_id)
        if response.status_code == 409:
            # Someone else moved the order between our read and write.
            raise InvalidTransition(current.status, proposed.status)

        updated = self._order(self._payload(response))
        logger.info(f"Remote: Order {updated.order_number} is now {updated.status.value}")
        return updated

    async def health_check(self) -> bool:
        try:
            response = await self._client.get("/health")
            return response.is_success
        except httpx.HTTPError as e:
            logger.error(f"Remote: Health check failed - {e}")
            return False

    async def close(self) -> None:
        await self._client.aclose()
