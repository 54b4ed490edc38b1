"""
WebSocket endpoint for live run events.

The simulator runs on the event loop's timers and pushes frames into an
outbox; the handler forwards them until either side closes. When the peer
disconnects the simulator is stopped before the handler returns, so no timer
outlives the socket.
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..config import Settings
from ..service import ApiError, ErrorCode
from ..store import QueryStore
from ..streaming.events import RunEvent, dumps_event
from ..streaming.simulator import simulator_for_run

router = APIRouter()
logger = logging.getLogger(__name__)

_FRAME = "frame"
_CLOSE = "close"


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/runs/{run_id}")
async def run_stream(websocket: WebSocket, run_id: str) -> None:
    store: QueryStore = websocket.app.state.store
    settings: Settings = websocket.app.state.settings
    await websocket.accept()

    outbox: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()

    def send(frame: RunEvent) -> None:
        outbox.put_nowait((_FRAME, frame))

    def close(code: int, reason: str) -> None:
        outbox.put_nowait((_CLOSE, (code, reason)))

    simulator = simulator_for_run(
        store,
        run_id,
        asyncio.get_running_loop(),
        send,
        close,
        disconnect_window_ms=settings.disconnect_window_ms if settings.ws_chaos_disconnect else None,
    )
    if simulator is None:
        await websocket.send_json(ApiError(ErrorCode.NOT_FOUND, f"Run not found: {run_id}").to_dict())
        await websocket.close()
        return

    logger.info("Stream opened for run %s", run_id)
    peer_gone = asyncio.create_task(_wait_for_disconnect(websocket))
    simulator.start()
    try:
        while True:
            next_item = asyncio.create_task(outbox.get())
            done, _ = await asyncio.wait(
                {next_item, peer_gone}, return_when=asyncio.FIRST_COMPLETED
            )
            if next_item not in done:
                next_item.cancel()
                break
            kind, payload = next_item.result()
            if kind == _CLOSE:
                code, reason = payload
                await websocket.close(code=code, reason=reason)
                break
            await websocket.send_text(dumps_event(payload))
    except WebSocketDisconnect:
        logger.debug("Peer left run %s mid-send", run_id)
    finally:
        simulator.stop()
        peer_gone.cancel()
        logger.info("Stream closed for run %s after %d frames", run_id, simulator.frames_sent)
