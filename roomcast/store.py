"""Durable message/notification store backed by async SQLAlchemy."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import String, cast, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from roomcast.db import AsyncSessionLocal
from roomcast.models import Lecture, Message, Notification, Room, Story, User


class StoreError(RuntimeError):
    """Raised when a durable-store call fails."""


class MessageNotFound(LookupError):
    pass


@dataclass
class PinTarget:
    """A message together with the cohort information needed to pin it."""

    message: Message
    room_name: Optional[str]
    room_cohort: Optional[str]
    sender_cohort: Optional[str]


class Store:
    """Append-only writes and history reads used by the realtime core."""

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self.session_factory = session_factory or AsyncSessionLocal

    async def insert_message(
        self,
        room: str,
        sender_id: str | None,
        sender_name: str | None,
        content: str | None,
        type: str = "text",
        file_path: str | None = None,
    ) -> Message:
        msg = Message(
            room=room,
            sender_id=sender_id,
            sender_name=sender_name,
            content=content,
            type=type or "text",
            file_path=file_path,
        )
        try:
            async with self.session_factory() as session:
                session.add(msg)
                await session.commit()
                await session.refresh(msg)
        except SQLAlchemyError as exc:
            raise StoreError(f"insert_message failed for room {room!r}") from exc
        return msg

    async def insert_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        sender_id: str | None = None,
        sender_name: str | None = None,
    ) -> int:
        row = Notification(
            user_id=user_id,
            title=title,
            message=message,
            sender_id=sender_id,
            sender_name=sender_name,
        )
        try:
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
                return row.id
        except SQLAlchemyError as exc:
            raise StoreError(f"insert_notification failed for user {user_id!r}") from exc

    async def read_messages_by_room(self, room: str) -> list[Message]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Message)
                    .where(Message.room == room)
                    .order_by(Message.timestamp, Message.id)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StoreError(f"read_messages_by_room failed for room {room!r}") from exc

    async def notifications_for(self, user_id: str) -> list[Notification]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Notification)
                    .where(Notification.user_id == user_id)
                    .order_by(Notification.id)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StoreError(f"notifications_for failed for user {user_id!r}") from exc

    async def unread_count(self, user_id: str) -> int:
        try:
            async with self.session_factory() as session:
                count = await session.scalar(
                    select(func.count())
                    .select_from(Notification)
                    .where(Notification.user_id == user_id, Notification.is_read.is_(False))
                )
                return count or 0
        except SQLAlchemyError as exc:
            raise StoreError(f"unread_count failed for user {user_id!r}") from exc

    async def mark_read(self, notification_id: int) -> bool:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(Notification).where(Notification.id == notification_id).values(is_read=True)
                )
                await session.commit()
                return bool(result.rowcount)
        except SQLAlchemyError as exc:
            raise StoreError(f"mark_read failed for notification {notification_id}") from exc

    async def mark_all_read(self, user_id: str) -> int:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(Notification).where(Notification.user_id == user_id).values(is_read=True)
                )
                await session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as exc:
            raise StoreError(f"mark_all_read failed for user {user_id!r}") from exc

    async def clear_notifications(self, user_id: str) -> int:
        try:
            async with self.session_factory() as session:
                result = await session.execute(delete(Notification).where(Notification.user_id == user_id))
                await session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as exc:
            raise StoreError(f"clear_notifications failed for user {user_id!r}") from exc

    async def get_pin_target(self, message_id: int) -> PinTarget:
        """Load a message with its room cohort and its sender's cohort."""
        try:
            async with self.session_factory() as session:
                msg = await session.get(Message, message_id)
                if msg is None:
                    raise MessageNotFound(message_id)
                room = await session.scalar(
                    select(Room)
                    .where(or_(Room.name == msg.room, cast(Room.id, String) == msg.room))
                    .limit(1)
                )
                sender = None
                if msg.sender_id is not None:
                    sender = await session.get(User, msg.sender_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"get_pin_target failed for message {message_id}") from exc
        return PinTarget(
            message=msg,
            room_name=room.name if room else None,
            room_cohort=room.cohort if room else None,
            sender_cohort=sender.cohort if sender else None,
        )

    async def set_pinned(self, message_id: int, pinned: bool) -> None:
        try:
            async with self.session_factory() as session:
                msg = await session.get(Message, message_id)
                if msg is None:
                    raise MessageNotFound(message_id)
                msg.is_pinned = pinned
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"set_pinned failed for message {message_id}") from exc

    async def delete_message(self, message_id: int) -> Message:
        try:
            async with self.session_factory() as session:
                msg = await session.get(Message, message_id)
                if msg is None:
                    raise MessageNotFound(message_id)
                await session.delete(msg)
                await session.commit()
                return msg
        except SQLAlchemyError as exc:
            raise StoreError(f"delete_message failed for message {message_id}") from exc

    async def bulk_delete_messages(self, message_ids: list[int], owner_id: str | None = None) -> list[str]:
        """Delete the given messages and return the distinct rooms they were in.

        With ``owner_id`` set only that sender's messages are removed.
        """
        condition = Message.id.in_(message_ids)
        if owner_id is not None:
            condition = condition & (Message.sender_id == owner_id)
        try:
            async with self.session_factory() as session:
                rooms = (await session.execute(select(Message.room).where(condition).distinct())).scalars().all()
                await session.execute(delete(Message).where(condition))
                await session.commit()
                return list(rooms)
        except SQLAlchemyError as exc:
            raise StoreError("bulk_delete_messages failed") from exc

    async def clear_room(self, room: str) -> int:
        try:
            async with self.session_factory() as session:
                result = await session.execute(delete(Message).where(Message.room == room))
                await session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as exc:
            raise StoreError(f"clear_room failed for room {room!r}") from exc

    async def create_room(self, **fields) -> Room:
        room = Room(**fields)
        try:
            async with self.session_factory() as session:
                session.add(room)
                await session.commit()
                await session.refresh(room)
        except SQLAlchemyError as exc:
            raise StoreError("create_room failed") from exc
        return room

    async def delete_room(self, room_id: int) -> bool:
        try:
            async with self.session_factory() as session:
                result = await session.execute(delete(Room).where(Room.id == room_id))
                await session.commit()
                return bool(result.rowcount)
        except SQLAlchemyError as exc:
            raise StoreError(f"delete_room failed for room {room_id}") from exc

    async def create_story(self, **fields) -> Story:
        story = Story(**fields)
        try:
            async with self.session_factory() as session:
                session.add(story)
                await session.commit()
                await session.refresh(story)
        except SQLAlchemyError as exc:
            raise StoreError("create_story failed") from exc
        return story

    async def delete_story(self, story_id: int) -> bool:
        try:
            async with self.session_factory() as session:
                result = await session.execute(delete(Story).where(Story.id == story_id))
                await session.commit()
                return bool(result.rowcount)
        except SQLAlchemyError as exc:
            raise StoreError(f"delete_story failed for story {story_id}") from exc

    async def update_lecture(self, lecture_id: int, **fields) -> tuple[Lecture, Lecture] | None:
        """Apply ``fields`` and return ``(before, after)`` snapshots."""
        try:
            async with self.session_factory() as session:
                lecture = await session.get(Lecture, lecture_id)
                if lecture is None:
                    return None
                before = _copy_lecture(lecture)
                for key, value in fields.items():
                    setattr(lecture, key, value)
                await session.commit()
                return before, lecture
        except SQLAlchemyError as exc:
            raise StoreError(f"update_lecture failed for lecture {lecture_id}") from exc


def _copy_lecture(lecture: Lecture) -> Lecture:
    return Lecture(
        id=lecture.id,
        title=lecture.title,
        description=lecture.description,
        date=lecture.date,
        time_start=lecture.time_start,
        time_end=lecture.time_end,
        professor_name=lecture.professor_name,
        location=lecture.location,
        room_id=lecture.room_id,
        created_by=lecture.created_by,
        cohort=lecture.cohort,
    )
