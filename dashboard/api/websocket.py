"""
Studio Ops Hub — Live Feed
============================
WebSocket push channel for dashboard clients.

Clients connect to ``/ws/dashboard`` and receive JSON events:

    {"event": "connected" | "pong" | "sync_complete" | "scorecard_synced",
     "data": {...}, "timestamp": "..."}

Routes publish after a Monday.com sync or a scorecard reconcile:

    await ws_manager.broadcast({"event": SYNC_COMPLETE, "data": body})

Clients may send ``{"type": "ping"}`` to keep idle proxies from closing the socket.
"""
from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import WebSocket, WebSocketDisconnect

from scripts.lib.logger import setup_logger

logger = setup_logger("websocket")

CONNECTED = "connected"
PONG = "pong"
SYNC_COMPLETE = "sync_complete"
SCORECARD_SYNCED = "scorecard_synced"


def _payload(message: Dict[str, Any]) -> str:
    return json.dumps(
        {**message, "timestamp": datetime.now(timezone.utc).isoformat()},
        default=str,
    )


class WebSocketManager:
    """Tracks open dashboard sockets and fans events out to them."""

    def __init__(self):
        self._connections: List[WebSocket] = []

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self._connections.append(websocket)
        logger.info("Live feed client connected (%d open)", self.connection_count)

    def disconnect(self, websocket: WebSocket):
        if websocket in self._connections:
            self._connections.remove(websocket)
            logger.info("Live feed client left (%d open)", self.connection_count)

    async def send(self, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        try:
            await websocket.send_text(_payload(message))
            return True
        except Exception as e:
            logger.debug("Dropping live feed client: %s", e)
            self.disconnect(websocket)
            return False

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """Send to every client concurrently; returns how many received it."""
        targets = list(self._connections)
        if not targets:
            return 0
        delivered = await asyncio.gather(*(self.send(ws, message) for ws in targets))
        logger.debug("Broadcast %s to %d/%d clients", message.get("event"), sum(delivered), len(targets))
        return sum(delivered)


ws_manager = WebSocketManager()


async def websocket_endpoint(websocket: WebSocket):
    await ws_manager.connect(websocket)
    await ws_manager.send(websocket, {
        "event": CONNECTED,
        "data": {"message": "Connected to Studio Ops Hub live feed"},
    })

    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                continue
            if isinstance(message, dict) and message.get("type") == "ping":
                await ws_manager.send(websocket, {"event": PONG, "data": {}})
    except WebSocketDisconnect:
        pass
    finally:
        ws_manager.disconnect(websocket)
