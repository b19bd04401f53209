"""Cohort notifications: manual alerts, lecture changes, new rooms and stories."""
from __future__ import annotations

import logging
from typing import Optional

import roomcast.texts as texts
from roomcast.models import Lecture, Room, Story
from roomcast.realtime import Realtime
from roomcast.schemas import ManualNotification
from roomcast.settings import settings

logger = logging.getLogger(__name__)


async def send_manual(rt: Realtime, connection_id: str, request: ManualNotification) -> int:
    """Notify the sender's cohort, excluding the sender."""
    sender = rt.registry.lookup(connection_id)
    cohort = sender.cohort if sender else settings.DEFAULT_COHORT
    targets = rt.audience(cohort, exclude={request.from_user_id})
    notified = await rt.fanout.notify(
        targets,
        texts.MANUAL_TITLE.format(sender=request.from_user_name),
        request.body,
        {"type": "manual_alert", "senderId": request.from_user_id},
        sender_id=request.from_user_id,
        sender_name=request.from_user_name,
    )
    logger.info("Manual notification sent to %d users (cohort: %s)", notified, cohort)
    return notified


def to_12_hour(time_24: Optional[str]) -> Optional[str]:
    if not time_24:
        return time_24
    parts = time_24.split(":")
    hour = int(parts[0])
    minutes = parts[1] if len(parts) > 1 else "00"
    suffix = texts.PM if hour >= 12 else texts.AM
    hour = hour % 12 or 12
    return f"{hour}:{minutes} {suffix}"


def duration_text(time_start: str, time_end: str) -> str:
    start_h, start_m = (int(x) for x in time_start.split(":")[:2])
    end_h, end_m = (int(x) for x in time_end.split(":")[:2])
    hours, minutes = divmod((end_h * 60 + end_m) - (start_h * 60 + start_m), 60)
    if hours > 0 and minutes > 0:
        template = texts.ONE_HOUR_AND_MINUTES if hours == 1 else texts.HOURS_AND_MINUTES
        return template.format(hours=hours, minutes=minutes)
    if hours > 0:
        return texts.ONE_HOUR if hours == 1 else texts.HOURS.format(hours=hours)
    return texts.MINUTES.format(minutes=minutes)


def lecture_changes(old: Lecture, new: Lecture) -> list[str]:
    """Human-readable lines for date, time and location changes only."""
    changes = []
    if old.date != new.date:
        changes.append(texts.LECTURE_DATE_CHANGED.format(old=old.date, new=new.date))
    if old.time_start != new.time_start or old.time_end != new.time_end:
        changes.append(texts.LECTURE_TIME_CHANGED.format(start=to_12_hour(new.time_start)))
        changes.append(texts.LECTURE_DURATION.format(duration=duration_text(new.time_start, new.time_end)))
    if old.location != new.location:
        changes.append(
            texts.LECTURE_LOCATION_CHANGED.format(old=old.location or texts.LOCATION_UNSET, new=new.location)
        )
    return changes


def lecture_payload(lecture: Lecture) -> dict:
    return {
        "id": lecture.id,
        "title": lecture.title,
        "description": lecture.description,
        "date": lecture.date,
        "time_start": lecture.time_start,
        "time_end": lecture.time_end,
        "professor_name": lecture.professor_name,
        "location": lecture.location,
        "room_id": lecture.room_id,
        "created_by": lecture.created_by,
        "studyType": lecture.cohort or settings.DEFAULT_COHORT,
    }


async def lecture_updated(rt: Realtime, old: Lecture, new: Lecture) -> int:
    """Broadcast the update, then notify the lecture's cohort about schedule changes.

    The lecture's creator is excluded from the notification burst.
    """
    await rt.fanout.to_everyone("lecture_updated", {"lecture": lecture_payload(new)})
    changes = lecture_changes(old, new)
    if not changes:
        logger.info("Lecture %s changed without date/time/location updates, skipping notification", new.id)
        return 0
    exclude = {new.created_by} if new.created_by else set()
    notified = await rt.fanout.notify(
        rt.audience(new.cohort, exclude=exclude),
        texts.LECTURE_TITLE.format(title=new.title),
        "\n\n".join(f"• {change}" for change in changes),
        {"lectureId": new.id, "type": "lecture_update"},
    )
    logger.info("Lecture update notification sent to %d users (cohort: %s)", notified, new.cohort)
    return notified


def room_payload(room: Room) -> dict:
    return {
        "id": room.id,
        "name": room.name,
        "icon": room.icon,
        "description": room.description,
        "created_by": room.created_by,
        "studyType": room.cohort or settings.DEFAULT_COHORT,
    }


async def room_created(rt: Realtime, room: Room) -> int:
    targets = rt.audience(room.cohort)
    logger.info("Broadcasting new room to %d connections (cohort: %s)", len(targets), room.cohort)
    return await rt.fanout.to_audience(targets, "room_created", {"room": room_payload(room)})


async def room_deleted(rt: Realtime, room_id: int) -> int:
    return await rt.fanout.to_everyone("room_deleted", {"roomId": room_id})


def story_payload(story: Story) -> dict:
    return {
        "id": story.id,
        "title": story.title,
        "content": story.content,
        "type": story.type,
        "image": story.image,
        "professor_name": story.professor_name,
        "created_by": story.created_by,
        "studyType": story.cohort or settings.DEFAULT_COHORT,
        "created_at": story.created_at.isoformat() if story.created_at else None,
    }


def story_title(story_type: Optional[str]) -> str:
    return texts.STORY_TITLES.get(story_type or "", texts.STORY_TITLE)


async def story_created(rt: Realtime, story: Story) -> int:
    """Show a new story to its cohort and notify each user in it once."""
    targets = rt.audience(story.cohort)
    logger.info("Broadcasting story %s to %d connections (cohort: %s)", story.id, len(targets), story.cohort)
    await rt.fanout.to_audience(targets, "new_story", story_payload(story))
    notified = await rt.fanout.notify(
        targets,
        story_title(story.type),
        story.title or story.content or texts.STORY_FALLBACK_BODY,
        {"storyId": story.id, "type": "story"},
        sender_id=story.created_by,
        sender_name=story.professor_name,
    )
    logger.info("Story notification sent to %d users (cohort: %s)", notified, story.cohort)
    return notified


async def story_deleted(rt: Realtime, story_id: int) -> int:
    return await rt.fanout.to_everyone("story_deleted", {"id": story_id})
