"""Process-scoped realtime core and its connection lifecycle hooks."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from fastapi import WebSocket

from roomcast.audience import select_by_cohort
from roomcast.dedup import DedupWindow
from roomcast.fanout import FanOut
from roomcast.hub import Hub
from roomcast.registry import ConnectionRegistry, Identity
from roomcast.rooms import DetailedJoin, JoinRequest, RoomTracker
from roomcast.settings import settings
from roomcast.store import Store

logger = logging.getLogger(__name__)


class Realtime:
    """Owns the registries and exposes lifecycle hooks plus ``publish``.

    Created once at application startup and stored on ``app.state``.
    """

    def __init__(self, store: Store | None = None, dedup: DedupWindow | None = None) -> None:
        self.hub = Hub()
        self.registry = ConnectionRegistry()
        self.rooms = RoomTracker()
        self.store = store or Store()
        self.dedup = dedup or DedupWindow()
        self.fanout = FanOut(self.hub, self.registry, self.rooms, self.store, self.dedup)

    async def connect(self, ws: WebSocket) -> str:
        return await self.hub.connect(ws)

    def register(self, connection_id: str, identity: Identity) -> None:
        self.registry.register(connection_id, identity)
        logger.info(
            "User registered: %s (%s) cohort=%s connection=%s",
            identity.display_name,
            identity.role,
            identity.cohort,
            connection_id,
        )
        logger.debug("Total connected users: %d", len(self.registry))

    async def join(self, connection_id: str, request: JoinRequest) -> None:
        self.hub.subscribe(request.room, connection_id)
        if not isinstance(request, DetailedJoin):
            logger.info("Connection %s joined room %s without full identity", connection_id, request.room)
            return
        self.rooms.join(request.room, connection_id, request.participant(connection_id))
        logger.info("User %s (%s) joined room %s", request.user_name, request.role, request.room)
        await self.fanout.publish_active_count(request.room)

    async def leave(self, connection_id: str, room: str) -> None:
        self.hub.unsubscribe(room, connection_id)
        if self.rooms.leave(room, connection_id):
            await self.fanout.publish_active_count(room)

    async def disconnect(self, connection_id: str) -> None:
        """Drop a connection from the hub, the registry and every room.

        The removals run without awaiting in between, so no other handler
        observes a half-cleaned connection.
        """
        self.hub.disconnect(connection_id)
        self.registry.remove(connection_id)
        affected = self.rooms.remove_everywhere(connection_id)
        logger.info("User disconnected: %s", connection_id)
        for room in affected:
            await self.fanout.publish_active_count(room)

    def audience(self, cohort: Optional[str], exclude: Iterable[str] = ()) -> list[str]:
        return select_by_cohort(self.registry, cohort, exclude)

    async def publish(
        self,
        event: str,
        data: Any,
        *,
        room: Optional[str] = None,
        connection_id: Optional[str] = None,
        cohort: Optional[str] = None,
        exclude: Iterable[str] = (),
    ) -> int:
        """Deliver ``event`` to one connection, one room, a cohort, or everyone."""
        if connection_id is not None:
            return int(await self.fanout.to_connection(connection_id, event, data))
        if room is not None:
            return await self.fanout.to_room(room, event, data)
        if cohort is not None:
            return await self.fanout.to_audience(self.audience(cohort, exclude), event, data)
        return await self.fanout.to_everyone(event, data)

    def active_students(self, cohort: Optional[str] = None) -> list[str]:
        """User ids of registered students, optionally limited to one cohort."""
        ids = self.audience(cohort) if cohort else [cid for cid, _ in self.registry.snapshot()]
        students = []
        for connection_id in ids:
            identity = self.registry.lookup(connection_id)
            if identity is not None and identity.is_student:
                students.append(identity.user_id)
        return students


def identity_from(user_id: str, name: Optional[str], role: Optional[str], cohort: Optional[str]) -> Identity:
    return Identity(
        user_id=str(user_id),
        display_name=name or "",
        role=role or "student",
        cohort=cohort or settings.DEFAULT_COHORT,
    )
