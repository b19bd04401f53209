"""Pin/unpin cascade: system message, cohort notification burst, UI sync."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import roomcast.texts as texts
from roomcast.fanout import message_payload
from roomcast.realtime import Realtime
from roomcast.settings import settings
from roomcast.store import PinTarget, StoreError

logger = logging.getLogger(__name__)


@dataclass
class PinResult:
    message_id: int
    room: str
    is_pinned: bool
    cohort: Optional[str] = None
    system_message_id: Optional[int] = None
    notified: int = 0


def preview(content: Optional[str], limit: int = settings.PREVIEW_LENGTH) -> str:
    content = content or ""
    if len(content) > limit:
        return content[:limit] + "..."
    return content


def resolve_cohort(target: PinTarget) -> str:
    return target.room_cohort or target.sender_cohort or settings.DEFAULT_COHORT


async def set_pin(rt: Realtime, message_id: int, pinned: bool) -> PinResult:
    """Flip a message's pin flag and run the pin cascade on an unpinned -> pinned change.

    Raises ``MessageNotFound`` or ``StoreError`` before anything is
    broadcast if the message cannot be loaded or updated.
    """
    target = await rt.store.get_pin_target(message_id)
    msg = target.message
    was_pinned = bool(msg.is_pinned)
    await rt.store.set_pinned(message_id, pinned)
    result = PinResult(message_id=msg.id, room=msg.room, is_pinned=pinned)

    if pinned and was_pinned:
        logger.info("Message %s is already pinned, skipping system message and notifications", msg.id)
    elif pinned:
        result.cohort = resolve_cohort(target)
        logger.info(
            "Pinning message %s. Target cohort: %s (room: %s, sender: %s)",
            msg.id,
            result.cohort,
            target.room_cohort,
            target.sender_cohort,
        )
        result.system_message_id = await _post_system_message(rt, target)
        result.notified = await _notify_cohort(rt, target, result.cohort)

    await rt.fanout.to_room(
        msg.room,
        "pin_state_changed",
        {"messageId": msg.id, "isPinned": pinned, "room": msg.room},
    )
    return result


async def _post_system_message(rt: Realtime, target: PinTarget) -> Optional[int]:
    msg = target.message
    try:
        sys_msg = await rt.store.insert_message(
            room=msg.room,
            sender_id=settings.SYSTEM_SENDER_ID,
            sender_name=settings.SYSTEM_SENDER_NAME,
            content=msg.content,
            type="system",
            # clients scroll to the pinned message using this id
            file_path=str(msg.id),
        )
    except StoreError:
        logger.exception("Saving pin system message failed: message_id=%s", msg.id)
        return None
    await rt.fanout.broadcast_message(msg.room, message_payload(sys_msg))
    return sys_msg.id


async def _notify_cohort(rt: Realtime, target: PinTarget, cohort: str) -> int:
    msg = target.message
    title = texts.PIN_TITLE.format(room=target.room_name or msg.room or texts.DEFAULT_ROOM_NAME)
    body = texts.PIN_BODY.format(sender=msg.sender_name, preview=preview(msg.content))
    try:
        notified = await rt.fanout.notify(
            rt.audience(cohort),
            title,
            body,
            {"messageId": msg.id, "room": msg.room, "type": "pinned_message"},
        )
    except Exception:
        logger.exception("Pin notification burst failed: message_id=%s", msg.id)
        return 0
    logger.info("Pin notification sent to %d unique users (cohort: %s)", notified, cohort)
    return notified
