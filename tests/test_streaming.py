import asyncio
import pytest

from deliverysync.realtime.feed import ChangeFeed
from deliverysync.realtime.streaming import stream_view
from deliverysync.schemas.scope import OrderScope
from deliverysync.sync.subscriber import RealtimeOrders
from deliverysync.testing.testing_mocks import StaticSnapshotLoader, insert, make_order, order_row


class FakeWebSocket:
    """Records sent payloads; `receive()` blocks until `disconnect()` is called, like a quiet client."""

    def __init__(self):
        self.sent = []
        self._gone = asyncio.Event()

    async def send_json(self, data):
        self.sent.append(data)

    async def receive(self):
        await self._gone.wait()
        return {"type": "websocket.disconnect", "code": 1000}

    def disconnect(self):
        self._gone.set()


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_disconnect_closes_channel_without_any_change():
    feed = ChangeFeed()
    websocket = FakeWebSocket()
    view = RealtimeOrders(feed, StaticSnapshotLoader(orders=[make_order(user_id="user-1")]), OrderScope(user_id="user-1"))

    streaming = asyncio.create_task(stream_view(websocket, view))
    await settle()
    assert len(feed.channels) == 1
    assert len(websocket.sent) == 1

    websocket.disconnect()
    await asyncio.wait_for(streaming, timeout=1)

    assert feed.channels == []
    assert view.active is False


@pytest.mark.asyncio
async def test_each_change_is_pushed():
    feed = ChangeFeed()
    websocket = FakeWebSocket()
    view = RealtimeOrders(feed, StaticSnapshotLoader(), OrderScope(user_id="user-1"))

    streaming = asyncio.create_task(stream_view(websocket, view))
    await settle()
    await feed.publish(insert("orders", order_row(user_id="user-1")))
    await settle()

    assert [len(payload["orders"]) for payload in websocket.sent] == [0, 1]

    websocket.disconnect()
    await asyncio.wait_for(streaming, timeout=1)
    assert feed.channels == []
