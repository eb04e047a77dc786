"""
WebSocket API for live bet and price updates.
"""
import asyncio
import json
from typing import Dict, Iterable, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from models.readings import to_utc_iso, utc_now
from services.providers.weather import normalize_city

router = APIRouter()

HEARTBEAT_SECONDS = 30.0


class ConnectionManager:
    """Manage WebSocket connections and their channel subscriptions."""

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()
        self.channels: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket):
        """Accept and register a new connection."""
        await websocket.accept()
        self.active_connections.add(websocket)
        logger.info(f"Client connected. Total: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket):
        """Remove a connection from every channel."""
        self.active_connections.discard(websocket)
        for channel in list(self.channels):
            self.channels[channel].discard(websocket)
            if not self.channels[channel]:
                del self.channels[channel]
        logger.info(f"Client disconnected. Remaining: {len(self.active_connections)}")

    def subscribe(self, websocket: WebSocket, channels: Iterable[str]):
        for channel in channels:
            self.channels.setdefault(channel, set()).add(websocket)

    def unsubscribe(self, websocket: WebSocket, channels: Iterable[str]):
        for channel in channels:
            members = self.channels.get(channel)
            if members is None:
                continue
            members.discard(websocket)
            if not members:
                del self.channels[channel]

    async def _send(self, connections: Iterable[WebSocket], message: dict):
        dead_connections = set()
        for connection in list(connections):
            try:
                await connection.send_json(message)
            except (RuntimeError, WebSocketDisconnect, OSError):
                dead_connections.add(connection)

        # Clean up dead connections
        for connection in dead_connections:
            self.disconnect(connection)

    async def broadcast_all(self, event: str, data: dict):
        """Send an event to every connected client."""
        await self._send(self.active_connections, {"type": event, "data": data})

    async def broadcast(self, channel: str, event: str, data: dict):
        """Send an event to the subscribers of one channel."""
        members = self.channels.get(channel)
        if not members:
            return
        await self._send(members, {"type": event, "data": data})


def _ids(message: dict, field: str, prefix: str, normalize: bool = False) -> list:
    values = message.get(field)
    if not isinstance(values, list):
        return []
    # price channels are keyed the way the broadcaster names them: "price:BTC", "price:NEW_YORK"
    return [f"{prefix}{normalize_city(str(v)) if normalize else v}" for v in values if v and str(v).strip()]


@router.websocket("/live")
async def websocket_live(websocket: WebSocket):
    """
    WebSocket endpoint for live updates.

    Client messages:
    - {"type": "subscribe", "betIds": [...]} / "unsubscribe"
    - {"type": "subscribe-prices", "symbols": [...]} / "unsubscribe-prices"
    - {"type": "ping"}

    Server events: price-update, weather-update, bet-update.
    """
    manager: ConnectionManager = websocket.app.state.connection_manager
    await manager.connect(websocket)

    try:
        while True:
            # Wait for messages from client (subscriptions, ping, etc.)
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=HEARTBEAT_SECONDS
                )
            except asyncio.TimeoutError:
                # Send keepalive
                await websocket.send_json({"type": "heartbeat", "timestamp": to_utc_iso(utc_now())})
                continue

            try:
                message = json.loads(data)
            except ValueError:
                await websocket.send_json({"type": "error", "error": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "error": "Expected a JSON object"})
                continue

            msg_type = message.get("type")

            if msg_type == "ping":
                await websocket.send_json({"type": "pong"})

            elif msg_type == "subscribe":
                channels = _ids(message, "betIds", "bet:")
                manager.subscribe(websocket, channels)
                await websocket.send_json({"type": "subscribed", "channels": channels})

            elif msg_type == "unsubscribe":
                channels = _ids(message, "betIds", "bet:")
                manager.unsubscribe(websocket, channels)
                await websocket.send_json({"type": "unsubscribed", "channels": channels})

            elif msg_type == "subscribe-prices":
                channels = _ids(message, "symbols", "price:", normalize=True)
                manager.subscribe(websocket, channels)
                await websocket.send_json({"type": "subscribed", "channels": channels})

            elif msg_type == "unsubscribe-prices":
                channels = _ids(message, "symbols", "price:", normalize=True)
                manager.unsubscribe(websocket, channels)
                await websocket.send_json({"type": "unsubscribed", "channels": channels})

            else:
                await websocket.send_json({"type": "error", "error": f"Unknown message type: {msg_type}"})

    except WebSocketDisconnect:
        manager.disconnect(websocket)
    except RuntimeError as e:
        logger.error(f"WebSocket error: {e}")
        manager.disconnect(websocket)
