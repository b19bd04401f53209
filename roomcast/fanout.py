"""Delivery of events to connections, rooms and cohort audiences."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from roomcast.audience import group_by_user
from roomcast.dedup import DedupWindow
from roomcast.hub import Hub
from roomcast.models import Message
from roomcast.registry import ConnectionRegistry
from roomcast.rooms import RoomTracker
from roomcast.schemas import SendMessage
from roomcast.settings import settings
from roomcast.store import Store, StoreError

logger = logging.getLogger(__name__)


def message_payload(msg: Message, **extra: Any) -> dict:
    payload = {
        "id": msg.id,
        "room": msg.room,
        "sender_id": msg.sender_id,
        "sender_name": msg.sender_name,
        "content": msg.content,
        "type": msg.type,
        "file_path": msg.file_path,
        "timestamp": (msg.timestamp or datetime.utcnow()).isoformat(),
    }
    payload.update(extra)
    return payload


class FanOut:
    """Persists state-bearing events, then pushes them to live connections."""

    def __init__(
        self,
        hub: Hub,
        registry: ConnectionRegistry,
        rooms: RoomTracker,
        store: Store,
        dedup: DedupWindow,
    ) -> None:
        self.hub = hub
        self.registry = registry
        self.rooms = rooms
        self.store = store
        self.dedup = dedup

    async def to_connection(self, connection_id: str, event: str, data: Any) -> bool:
        return await self.hub.send(connection_id, event, data)

    async def to_room(self, room: str, event: str, data: Any, exclude: Iterable[str] = ()) -> int:
        skip = set(exclude)
        targets = [cid for cid in self.hub.subscribers(room) if cid not in skip]
        return await self.hub.send_many(targets, event, data)

    async def to_audience(self, connection_ids: Iterable[str], event: str, data: Any) -> int:
        return await self.hub.send_many(connection_ids, event, data)

    async def to_everyone(self, event: str, data: Any) -> int:
        return await self.hub.broadcast(event, data)

    async def publish_active_count(self, room: str) -> None:
        count = self.rooms.active_count(room)
        logger.info("Room %s: %d active students", room, count)
        await self.to_room(room, "active_student_count", {"room": room, "count": count})

    async def broadcast_message(self, room: str, payload: dict) -> None:
        """Push a stored message to its room and the dashboard preview audience."""
        await self.to_room(room, "receive_message", payload)
        await self.to_everyone("dashboard_update", {"roomId": room, "message": payload})

    async def send_message(self, connection_id: str, intent: SendMessage) -> Optional[dict]:
        """Dedup, persist, then broadcast a chat message.

        Returns the broadcast payload, or ``None`` when the message was a
        duplicate or could not be stored.
        """
        if not self.dedup.should_accept(intent.token):
            return None
        try:
            msg = await self.store.insert_message(
                room=intent.room,
                sender_id=intent.sender_id,
                sender_name=intent.sender_name,
                content=intent.content,
                type=intent.type,
                file_path=intent.file_path,
            )
        except StoreError:
            logger.exception(
                "Saving message failed: room=%s sender_id=%s token=%s",
                intent.room,
                intent.sender_id,
                intent.token,
            )
            self.dedup.forget(intent.token)
            await self.to_connection(
                connection_id,
                "error",
                {"event": "send_message", "reason": "persistence_failed", "tempId": intent.token},
            )
            return None

        logger.debug("Message saved with id %s", msg.id)
        sender = self.registry.lookup(connection_id)
        cohort = intent.cohort or (sender.cohort if sender else settings.DEFAULT_COHORT)
        payload = message_payload(
            msg,
            tempId=intent.token,
            role=intent.role or "student",
            avatar=intent.avatar,
            studyType=cohort,
        )
        await self.broadcast_message(intent.room, payload)
        return payload

    async def notify(
        self,
        connection_ids: Iterable[str],
        title: str,
        body: str,
        data: dict,
        sender_id: str | None = None,
        sender_name: str | None = None,
    ) -> int:
        """Persist one notification per distinct user, deliver to each of their devices.

        Returns the number of users notified.
        """
        notified = 0
        for user_id, devices in group_by_user(self.registry, connection_ids).items():
            try:
                notification_id = await self.store.insert_notification(
                    user_id, title, body, sender_id=sender_id, sender_name=sender_name
                )
            except StoreError:
                logger.exception("Saving notification failed: user_id=%s title=%s", user_id, title)
                continue
            await self.to_audience(
                devices,
                "new_notification",
                {
                    "id": notification_id,
                    "title": title,
                    "body": body,
                    "created_at": datetime.utcnow().isoformat(),
                    "is_read": 0,
                    "data": data,
                },
            )
            notified += 1
        return notified
