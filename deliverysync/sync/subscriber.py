"""
Live, role-scoped views of orders and deliveries.

A view owns one feed channel and its in-memory collections. `start()`
attaches the channel and then loads the snapshot; events that arrive while
the snapshot is in flight are held back and replayed over it once it lands,
so the view ends up reflecting every event in feed order regardless of how
the snapshot read interleaved with them. `stop()` detaches the channel and
discards any snapshot still in flight.

Views are async context managers:

    async with RealtimeOrders(feed, loader, OrderScope(user_id="u-1")) as view:
        ...

Failures never propagate out of a view: they land in `view.error`.
"""
import logging
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from deliverysync.realtime.feed import Channel, ChangeFeed, ChangeHandler
from deliverysync.schemas.events import ChangeEvent
from deliverysync.schemas.records import DeliveryRecord, OrderRecord
from deliverysync.schemas.scope import DeliveryScope, OrderScope
from deliverysync.services import delivery_service, order_service
from deliverysync.sync import reconciler

log = logging.getLogger("deliverysync.subscriber")

SUBSCRIBE_ERROR = "Failed to set up real-time updates"

ViewListener = Callable[["RealtimeView"], None]


class RealtimeView:
    channel_name = "changes"
    load_error = "Failed to load data"

    def __init__(self, feed: ChangeFeed, loader):
        self.feed = feed
        self.loader = loader
        self.loading = True
        self.error: Optional[str] = None
        self._channel: Optional[Channel] = None
        self._load_token = 0
        self._pending: Optional[List[Tuple[ChangeHandler, ChangeEvent]]] = None
        self._listeners: List[ViewListener] = []

    # --- lifecycle ---

    @property
    def active(self) -> bool:
        return self._channel is not None

    async def start(self) -> None:
        if self._channel is not None:
            return

        channel = self.feed.channel(self.channel_name)
        self._bind(channel)
        self._channel = channel
        self._pending = []
        try:
            await channel.subscribe()
        except Exception as e:
            log.error(f"Error setting up realtime subscription '{self.channel_name}': {e}")
            self._channel = None
            self._pending = None
            self.loading = False
            self.error = SUBSCRIBE_ERROR
            self._notify()
            return

        await self._load()

    async def stop(self) -> None:
        self._load_token += 1
        self._pending = None
        self.loading = False
        if self._channel is not None:
            self.feed.remove_channel(self._channel)
            self._channel = None

    async def refresh(self) -> None:
        """Reloads the snapshot while staying subscribed."""
        if self._channel is None:
            return
        await self._load()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # --- listeners ---

    def listen(self, listener: ViewListener) -> Callable[[], None]:
        """Calls `listener(view)` after every load and applied event. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                log.exception(f"View listener failed on '{self.channel_name}'.")

    # --- snapshot + stream ---

    async def _load(self) -> None:
        self._load_token += 1
        token = self._load_token
        if self._pending is None:
            self._pending = []
        self.loading = True

        snapshot = None
        try:
            snapshot = await self._fetch_snapshot()
        except Exception as e:
            if token == self._load_token:
                log.error(f"Error loading initial data for '{self.channel_name}': {e}")
                self.error = self.load_error
        finally:
            if token == self._load_token:
                self.loading = False

        if token != self._load_token:
            # Stopped or superseded while the read was in flight
            return

        if snapshot is not None:
            self._install(snapshot)
            self.error = None

        # On failure the held-back events still apply, over the last known data
        pending, self._pending = self._pending or [], None
        for handler, event in pending:
            handler(event)
        self._notify()

    def _receiver(self, channel: Channel, handler: ChangeHandler) -> ChangeHandler:
        def receive(event: ChangeEvent) -> None:
            if self._channel is not channel:
                return
            if self._pending is not None:
                self._pending.append((handler, event))
                return
            handler(event)
            self._notify()
        return receive

    # --- per-view hooks ---

    def _bind(self, channel: Channel) -> None:
        raise NotImplementedError

    async def _fetch_snapshot(self):
        raise NotImplementedError

    def _install(self, snapshot) -> None:
        raise NotImplementedError

    def as_payload(self) -> dict:
        raise NotImplementedError


class RealtimeOrders(RealtimeView):
    """Orders of one customer, one restaurant, or an explicit id set, kept newest first."""
    channel_name = "orders-changes"
    load_error = "Failed to load orders"

    def __init__(self, feed: ChangeFeed, loader, scope: OrderScope):
        super().__init__(feed, loader)
        self.scope = scope
        self.orders: List[OrderRecord] = []

    def _bind(self, channel: Channel) -> None:
        channel.on("orders", self._receiver(channel, self._on_order_change))
        # Deliveries are watched too so each order's nested delivery stays current
        channel.on("deliveries", self._receiver(channel, self._on_delivery_change))

    async def _fetch_snapshot(self) -> List[OrderRecord]:
        return await self.loader.load_orders(self.scope)

    def _install(self, snapshot: List[OrderRecord]) -> None:
        self.orders = list(snapshot)

    def _on_order_change(self, event: ChangeEvent) -> None:
        self.orders = reconciler.apply_order_event(self.orders, event, self.scope)

    def _on_delivery_change(self, event: ChangeEvent) -> None:
        self.orders = reconciler.apply_delivery_to_orders(self.orders, event)

    async def reconfigure(self, scope: OrderScope) -> None:
        """Switches to a new scope; the old channel is closed before the new one opens."""
        await self.stop()
        self.scope = scope
        await self.start()

    async def update_order_status(self, order_id: UUID, status: str, cancellation_reason: Optional[str] = None) -> bool:
        return await order_service.update_order_status(order_id, status, cancellation_reason)

    def as_payload(self) -> dict:
        return {
            "orders": [o.model_dump(mode="json") for o in self.orders],
            "loading": self.loading,
            "error": self.error,
        }


class RealtimeDeliveries(RealtimeView):
    """A driver's assigned deliveries and/or the pool of available ones."""
    channel_name = "deliveries-changes"
    load_error = "Failed to load deliveries"

    def __init__(self, feed: ChangeFeed, loader, scope: DeliveryScope):
        super().__init__(feed, loader)
        self.scope = scope
        self.deliveries: List[DeliveryRecord] = []
        self.available_deliveries: List[DeliveryRecord] = []

    def _bind(self, channel: Channel) -> None:
        channel.on("deliveries", self._receiver(channel, self._on_delivery_change))

    async def _fetch_snapshot(self):
        return await self.loader.load_deliveries(self.scope)

    def _install(self, snapshot) -> None:
        assigned, available = snapshot
        if assigned is not None:
            self.deliveries = list(assigned)
        if available is not None:
            self.available_deliveries = list(available)

    def _on_delivery_change(self, event: ChangeEvent) -> None:
        self.deliveries, self.available_deliveries = reconciler.apply_delivery_event(
            self.deliveries, self.available_deliveries, event, self.scope
        )

    async def reconfigure(self, scope: DeliveryScope) -> None:
        await self.stop()
        self.scope = scope
        await self.start()

    async def accept_delivery(self, delivery_id: UUID) -> bool:
        """
        Claims a delivery for this view's driver. The view itself changes only
        when the resulting UPDATE comes back through the feed.
        """
        if self.scope.driver_id is None:
            return False
        return await delivery_service.accept_delivery(self.scope.driver_id, delivery_id)

    async def update_delivery_status(self, delivery_id: UUID, status: str) -> bool:
        return await delivery_service.update_delivery_status(delivery_id, status)

    def as_payload(self) -> dict:
        return {
            "deliveries": [d.model_dump(mode="json") for d in self.deliveries],
            "available_deliveries": [d.model_dump(mode="json") for d in self.available_deliveries],
            "loading": self.loading,
            "error": self.error,
        }
