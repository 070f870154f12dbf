# events.py
"""
Connection status stream.

Pushes {"connected": bool, "error": str | null} every time the active session
connects, disconnects or is lost. The first message is the current status.

Security:
  - API Key: required via the X-API-Key query param when one is configured
    (WebSocket can't use headers during the browser handshake)
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from schemagraph.db import CatalogClient, get_catalog
from schemagraph.models.connection import ConnectionStatus
from schemagraph.security import websocket_authorized

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connection", tags=["connection"])

# Per-socket backlog; a slow client only ever misses the oldest events
STATUS_QUEUE_SIZE = 16


def offer(queue: "asyncio.Queue[ConnectionStatus]", event: ConnectionStatus) -> None:
    """Enqueue without blocking, dropping the oldest event when the queue is full."""
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(event)


@router.websocket("/events")
async def connection_events(
    websocket: WebSocket,
    client: CatalogClient = Depends(get_catalog),
):
    """
    Usage:
        ws://localhost:8000/connection/events?X-API-Key=<api_key>
    """
    if not websocket_authorized(websocket):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid API key")
        return

    await websocket.accept()

    queue: "asyncio.Queue[ConnectionStatus]" = asyncio.Queue(maxsize=STATUS_QUEUE_SIZE)
    unsubscribe = client.subscribe(lambda event: offer(queue, event))

    try:
        current = client.status()
        await websocket.send_json(
            ConnectionStatus(connected=current.connected, error=current.error).model_dump()
        )

        async def forward_events():
            """Forward status changes to the client"""
            while True:
                event = await queue.get()
                await websocket.send_json(event.model_dump())

        async def wait_for_close():
            """Drain client messages until it disconnects"""
            try:
                while True:
                    await websocket.receive_text()
            except WebSocketDisconnect:
                pass

        forward_task = asyncio.create_task(forward_events())
        close_task = asyncio.create_task(wait_for_close())

        done, pending = await asyncio.wait(
            [forward_task, close_task],
            return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.debug("Status stream ended: %s", task.exception())
    finally:
        unsubscribe()
