import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, status
from starlette.websockets import WebSocketState

from collector.services.broadcaster import Broadcaster, get_broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stream"])


async def _drain_client(websocket: WebSocket):
    """Read and discard client frames, text or binary, until the client disconnects."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws")
async def stream_events(
    websocket: WebSocket,
    broadcaster: Broadcaster = Depends(get_broadcaster)
):
    """Live `{type, data}` envelopes for every ingested event."""
    # Registered before accept so nothing published after the handshake is missed
    subscriber = broadcaster.subscribe(websocket)
    try:
        await websocket.accept()
    except Exception:
        broadcaster.unsubscribe(subscriber)
        raise

    pump = asyncio.create_task(broadcaster.pump(subscriber))
    receiver = asyncio.create_task(_drain_client(websocket))
    try:
        done, _ = await asyncio.wait({pump, receiver}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        broadcaster.unsubscribe(subscriber)
        pump.cancel()
        receiver.cancel()

    if receiver in done and receiver.exception() is not None:
        logger.warning("Subscriber receive loop failed: %s", receiver.exception())

    # Dropped by the broadcaster while the client is still connected
    if pump in done and websocket.client_state == WebSocketState.CONNECTED:
        try:
            await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        except RuntimeError as e:
            logger.debug("Subscriber already closed: %s", e)
