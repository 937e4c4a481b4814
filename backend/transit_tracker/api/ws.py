"""WebSocket endpoint for real-time bus updates."""

import asyncio
import logging

import orjson
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()

# Will be set by main.py on startup
broadcaster = None
tracker = None


async def _initial_snapshot() -> bytes | None:
    """Last broadcast as a snapshot frame, or the tracker's state before any broadcast."""
    state_data = await broadcaster.get_current_state()
    if state_data:
        snapshot = orjson.loads(state_data)
        snapshot["type"] = "snapshot"
        return orjson.dumps(snapshot)
    if tracker is not None and tracker.last_updated is not None:
        return orjson.dumps(tracker.snapshot().model_dump(mode="json"))
    return None


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Clients only listen; anything they send is ignored
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/buses")
async def bus_ws(websocket: WebSocket) -> None:
    """Stream bus marker updates, starting with the current snapshot."""
    await websocket.accept()

    if broadcaster is None:
        await websocket.close(code=1011, reason="Service not ready")
        return

    queue = broadcaster.subscribe()
    logger.debug("Bus stream client connected (%d subscribers)", broadcaster.subscriber_count)
    disconnected = asyncio.ensure_future(_wait_for_disconnect(websocket))
    try:
        first = await _initial_snapshot()
        if first:
            await websocket.send_bytes(first)

        while True:
            next_frame = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait(
                {next_frame, disconnected}, return_when=asyncio.FIRST_COMPLETED,
            )
            if disconnected in done:
                next_frame.cancel()
                break
            await websocket.send_bytes(next_frame.result())
    except (WebSocketDisconnect, asyncio.CancelledError):
        pass
    except Exception:
        logger.exception("Bus stream error")
    finally:
        disconnected.cancel()
        broadcaster.unsubscribe(queue)
        logger.debug("Bus stream client gone (%d subscribers)", broadcaster.subscriber_count)
