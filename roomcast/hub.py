"""WebSocket hub: live sockets by connection id plus per-room channels."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Hub:
    """Tracks active WebSocket connections and sends frames to them.

    Room channels are plain socket subscriptions and know nothing about
    participant identity.
    """

    def __init__(self) -> None:
        self.active: Dict[str, WebSocket] = {}
        self.channels: Dict[str, Set[str]] = {}

    async def connect(self, ws: WebSocket) -> str:
        await ws.accept()
        connection_id = uuid.uuid4().hex
        self.active[connection_id] = ws
        logger.info("User connected: %s", connection_id)
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        self.active.pop(connection_id, None)
        for room in list(self.channels):
            self.unsubscribe(room, connection_id)

    def subscribe(self, room: str, connection_id: str) -> None:
        self.channels.setdefault(room, set()).add(connection_id)

    def unsubscribe(self, room: str, connection_id: str) -> None:
        members = self.channels.get(room)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self.channels[room]

    def subscribers(self, room: str) -> list[str]:
        return list(self.channels.get(room, ()))

    def connection_ids(self) -> list[str]:
        return list(self.active)

    async def send(self, connection_id: str, event: str, data: Any) -> bool:
        ws = self.active.get(connection_id)
        if ws is None:
            return False
        try:
            await ws.send_json({"type": event, "data": data})
        except Exception:
            logger.debug("Delivery of %s to %s failed", event, connection_id, exc_info=True)
            return False
        return True

    async def send_many(self, connection_ids, event: str, data: Any) -> int:
        delivered = 0
        for connection_id in list(connection_ids):
            if await self.send(connection_id, event, data):
                delivered += 1
        return delivered

    async def broadcast(self, event: str, data: Any) -> int:
        return await self.send_many(self.connection_ids(), event, data)
