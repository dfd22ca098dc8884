import logging
from typing import Callable, Dict, List

from deliverysync.schemas.events import ChangeEvent

log = logging.getLogger("deliverysync.feed")

ChangeHandler = Callable[[ChangeEvent], None]


class ChannelError(Exception):
    """Raised when a channel cannot be attached to the feed."""


class Channel:
    """A named group of per-table handlers that is attached to the feed as one unit."""

    def __init__(self, feed: "ChangeFeed", name: str):
        self.feed = feed
        self.name = name
        self.subscribed = False
        self._handlers: Dict[str, List[ChangeHandler]] = {}

    def on(self, table: str, handler: ChangeHandler) -> "Channel":
        """Registers `handler` for every INSERT/UPDATE/DELETE on `table`."""
        if self.subscribed:
            raise ChannelError(f"Channel '{self.name}' is already subscribed.")
        self._handlers.setdefault(table, []).append(handler)
        return self

    async def subscribe(self) -> "Channel":
        self.feed._attach(self)
        self.subscribed = True
        return self

    def dispatch(self, event: ChangeEvent) -> None:
        for handler in self._handlers.get(event.table, []):
            handler(event)


class ChangeFeed:
    """
    In-process fan-out of row changes. The relay publishes events in commit
    order and every attached channel sees them in that same order.
    """

    def __init__(self):
        self._channels: List[Channel] = []
        self._closed = False

    @property
    def channels(self) -> List[Channel]:
        return list(self._channels)

    def channel(self, name: str) -> Channel:
        return Channel(self, name)

    def _attach(self, channel: Channel) -> None:
        if self._closed:
            raise ChannelError(f"Change feed is closed; cannot open '{channel.name}'.")
        if channel in self._channels:
            raise ChannelError(f"Channel '{channel.name}' is already attached.")
        self._channels.append(channel)
        log.info(f"Channel '{channel.name}' attached ({len(self._channels)} open).")

    def remove_channel(self, channel: Channel) -> None:
        if channel in self._channels:
            self._channels.remove(channel)
            log.info(f"Channel '{channel.name}' removed ({len(self._channels)} open).")
        channel.subscribed = False

    async def publish(self, event: ChangeEvent) -> None:
        # A failing subscriber must not starve the others of the event
        for channel in list(self._channels):
            try:
                channel.dispatch(event)
            except Exception:
                log.exception(f"Channel '{channel.name}' failed to handle {event.event_type.value} on {event.table}")

    async def close(self) -> None:
        self._closed = True
        for channel in list(self._channels):
            self.remove_channel(channel)
