"""
View Sync Channel

Lightweight publish/subscribe so independent order screens (dashboard,
order list, order detail) converge on the same store state without sharing
an in-memory object.

Events carry only the restaurant id. Delivery order under bursts is not
guaranteed, so a receiver treats every event as "something changed,
re-read the store" and never as a delta.

OrderFeed is the consumer side: it subscribes, polls as a safety net and
coalesces refreshes so a refresh already in flight absorbs any concurrent
request.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from orderdesk.core.config import get_settings
from orderdesk.core.exceptions import OrderDeskError
from orderdesk.models import Order, SyncEvent, SyncMessage

if TYPE_CHECKING:
    from orderdesk.services.orders import OrderFilter, OrderStore

logger = logging.getLogger(__name__)

Handler = Callable[[SyncMessage], Optional[Awaitable[None]]]
Unsubscribe = Callable[[], None]


class ViewSyncChannel:
    """
    In-process broadcast channel for order change notifications.

    Handlers may be plain callables or coroutine functions; coroutines are
    scheduled on the running loop. A failing handler is logged and never
    affects the publisher or other handlers.

    Example:
        >>> channel = ViewSyncChannel()
        >>> dispose = channel.subscribe("order.created", print)
        >>> channel.publish("order.created", "rest_123")
        SyncMessage(event=<SyncEvent.ORDER_CREATED: 'order.created'>, restaurant_id='rest_123')
        >>> dispose()
    """

    def __init__(self):
        self._handlers: dict[SyncEvent, list[Handler]] = defaultdict(list)
        self._tasks: set[asyncio.Task] = set()

    def publish(self, event_name: Union[str, SyncEvent], restaurant_id: str) -> None:
        """Fire-and-forget broadcast to every subscriber of `event_name`."""
        message = SyncMessage(SyncEvent(event_name), restaurant_id)
        handlers = list(self._handlers.get(message.event, ()))
        logger.debug(f"Sync: {message.event.value} for {restaurant_id} -> {len(handlers)} handler(s)")

        for handler in handlers:
            try:
                result = handler(message)
            except Exception:
                logger.exception(f"Sync: handler {handler!r} failed on {message.event.value}")
                continue
            if inspect.isawaitable(result):
                self._schedule(result, message)

    def _schedule(self, awaitable: Awaitable[Any], message: SyncMessage) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"Sync: no running loop for async handler of {message.event.value}")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = loop.create_task(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Sync: async handler failed - {task.exception()!r}")

    def subscribe(self, event_name: Union[str, SyncEvent], handler: Handler) -> Unsubscribe:
        """
        Register a handler.

        Returns:
            A disposer; call it on view teardown. Calling it twice is harmless.
        """
        event = SyncEvent(event_name)
        self._handlers[event].append(handler)
        disposed = False

        def unsubscribe() -> None:
            nonlocal disposed
            if disposed:
                return
            disposed = True
            try:
                self._handlers[event].remove(handler)
            except ValueError:
                pass

        return unsubscribe

    def subscriber_count(self, event_name: Optional[Union[str, SyncEvent]] = None) -> int:
        if event_name is not None:
            return len(self._handlers.get(SyncEvent(event_name), ()))
        return sum(len(handlers) for handlers in self._handlers.values())


class OrderFeed:
    """
    Keeps one view's order list current.

    Refreshes on every matching channel event and every `poll_interval`
    seconds. Refreshes coalesce: while one is in flight, further requests
    share its result instead of starting another read.

    Example:
        >>> async with OrderFeed(store, channel, "rest_123", on_change=render) as feed:
        ...     await asyncio.sleep(60)
    """

    def __init__(
        self,
        store: "OrderStore",
        channel: ViewSyncChannel,
        restaurant_id: str,
        on_change: Optional[Callable[[list[Order]], Optional[Awaitable[None]]]] = None,
        order_filter: Optional["OrderFilter"] = None,
        poll_interval: Optional[float] = None,
    ):
        self._store = store
        self._channel = channel
        self.restaurant_id = restaurant_id
        self._on_change = on_change
        self._filter = order_filter
        self._poll_interval = poll_interval or get_settings().sync_poll_interval_seconds

        self._orders: list[Order] = []
        self._inflight: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._disposers: list[Unsubscribe] = []
        self.refresh_count = 0

    @property
    def orders(self) -> list[Order]:
        return list(self._orders)

    @property
    def running(self) -> bool:
        return self._poll_task is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self.running:
            return
        for event in SyncEvent:
            self._disposers.append(self._channel.subscribe(event, self._on_event))
        self._poll_task = asyncio.get_running_loop().create_task(self._poll())
        await self.refresh()

    async def stop(self) -> None:
        for dispose in self._disposers:
            dispose()
        self._disposers.clear()

        for task in (self._poll_task, self._inflight):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._poll_task = None
        self._inflight = None

    async def __aenter__(self) -> "OrderFeed":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def _on_event(self, message: SyncMessage) -> None:
        if message.restaurant_id == self.restaurant_id:
            task = self.request_refresh()
            task.add_done_callback(self._log_failure)

    def request_refresh(self) -> asyncio.Task:
        """Start a refresh, or return the one already in flight."""
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.get_running_loop().create_task(self._refresh_once())
        else:
            logger.debug(f"Sync: refresh for {self.restaurant_id} already in flight")
        return self._inflight

    async def refresh(self) -> list[Order]:
        return await self.request_refresh()

    async def _refresh_once(self) -> list[Order]:
        orders = await self._store.list(self.restaurant_id, self._filter)
        self._orders = orders
        self.refresh_count += 1
        if self._on_change is not None:
            result = self._on_change(list(orders))
            if inspect.isawaitable(result):
                await result
        return orders

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                await self.refresh()
            except OrderDeskError as e:
                logger.error(f"Sync: polling refresh for {self.restaurant_id} failed - {e}")
            except Exception:
                # Keep polling; this loop is the safety net for missed events
                logger.exception(f"Sync: unexpected error while polling {self.restaurant_id}")

    @staticmethod
    def _log_failure(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Sync: event refresh failed - {task.exception()!r}")
