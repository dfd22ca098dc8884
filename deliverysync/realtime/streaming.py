import asyncio
import logging
from fastapi import WebSocket, WebSocketDisconnect

log = logging.getLogger("deliverysync.streaming")


async def _send_changes(websocket: WebSocket, view, changed: asyncio.Event):
    # The initial load already notified; that state goes out as the first message
    changed.clear()
    await websocket.send_json(view.as_payload())
    while True:
        await changed.wait()
        changed.clear()
        await websocket.send_json(view.as_payload())


async def _read_until_disconnect(websocket: WebSocket):
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def stream_view(websocket: WebSocket, view) -> None:
    """
    Pushes `view.as_payload()` on connect and after every change.

    The socket is read alongside the sender, so a client disconnect ends the
    stream straight away and the view's channel is closed even when no change
    ever arrives.
    """
    changed = asyncio.Event()
    unsubscribe = view.listen(lambda _: changed.set())

    async with view:
        sender = asyncio.create_task(_send_changes(websocket, view, changed))
        reader = asyncio.create_task(_read_until_disconnect(websocket))
        try:
            await asyncio.wait({sender, reader}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sender, reader):
                task.cancel()
            results = await asyncio.gather(sender, reader, return_exceptions=True)
            unsubscribe()

    for result in results:
        if isinstance(result, WebSocketDisconnect):
            log.info(f"Stream '{view.channel_name}' closed by client.")
        elif isinstance(result, Exception):
            raise result
