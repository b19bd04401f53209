"""FastAPI routes: the realtime socket plus the HTTP actions that fan out."""
from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect

from roomcast.events import router as event_router
from roomcast.fanout import message_payload
from roomcast.models import Notification
from roomcast.notifications import (
    lecture_updated,
    room_created,
    room_deleted,
    story_created,
    story_deleted,
    story_payload,
)
from roomcast.pins import set_pin
from roomcast.realtime import Realtime
from roomcast.schemas import (
    BulkDeleteRequest,
    CreateRoomRequest,
    CreateStoryRequest,
    PinRequest,
    RoleBody,
    UpdateLectureRequest,
)
from roomcast.settings import settings
from roomcast.store import MessageNotFound, StoreError

logger = logging.getLogger(__name__)

router = APIRouter()

REPRESENTATIVE = "representative"


def get_realtime(request: Request) -> Realtime:
    return request.app.state.realtime


def require_representative(role: str | None, action: str) -> None:
    if role != REPRESENTATIVE:
        raise HTTPException(status_code=403, detail=f"Only representative can {action}")


@router.websocket("/ws")
async def ws_endpoint(ws: WebSocket):
    rt: Realtime = ws.app.state.realtime
    connection_id = await rt.connect(ws)
    try:
        while True:
            text = await ws.receive_text()
            try:
                frame = json.loads(text)
            except json.JSONDecodeError:
                logger.warning("Dropping non-JSON frame from %s", connection_id)
                continue
            await event_router.dispatch_frame(rt, connection_id, frame)
    except WebSocketDisconnect:
        pass
    finally:
        await rt.disconnect(connection_id)


@router.get("/api/health")
async def health(rt: Realtime = Depends(get_realtime)):
    return {"ok": True, "connections": len(rt.registry)}


@router.get("/api/messages/{room}")
async def room_history(room: str, rt: Realtime = Depends(get_realtime)):
    try:
        messages = await rt.store.read_messages_by_room(room)
    except StoreError as exc:
        logger.exception("Reading history failed: room=%s", room)
        raise HTTPException(status_code=500, detail="history unavailable") from exc
    return {
        "ok": True,
        "messages": [message_payload(m, is_pinned=m.is_pinned) for m in messages],
    }


@router.put("/api/messages/{message_id}/pin")
async def pin_message(message_id: int, body: PinRequest, rt: Realtime = Depends(get_realtime)):
    require_representative(body.role, "pin messages")
    try:
        result = await set_pin(rt, message_id, body.is_pinned)
    except MessageNotFound as exc:
        raise HTTPException(status_code=404, detail="Message not found") from exc
    except StoreError as exc:
        logger.exception("Pin update failed: message_id=%s", message_id)
        raise HTTPException(status_code=500, detail="pin update failed") from exc
    return {
        "ok": True,
        "is_pinned": result.is_pinned,
        "system_message_id": result.system_message_id,
        "notified": result.notified,
    }


@router.delete("/api/messages/room/{room}")
async def clear_chat(room: str, body: RoleBody, rt: Realtime = Depends(get_realtime)):
    require_representative(body.role, "clear chat")
    try:
        await rt.store.clear_room(room)
    except StoreError as exc:
        logger.exception("Clearing chat failed: room=%s", room)
        raise HTTPException(status_code=500, detail="clear failed") from exc
    await rt.fanout.to_room(room, "chat_cleared", {"room": room})
    return {"ok": True}


@router.delete("/api/messages/{message_id}")
async def delete_message(message_id: int, body: RoleBody, rt: Realtime = Depends(get_realtime)):
    try:
        target = await rt.store.get_pin_target(message_id)
        if body.role != REPRESENTATIVE and target.message.sender_id != body.user_id:
            raise HTTPException(status_code=403, detail="Permission denied")
        msg = await rt.store.delete_message(message_id)
    except MessageNotFound as exc:
        raise HTTPException(status_code=404, detail="Message not found") from exc
    except StoreError as exc:
        logger.exception("Deleting message failed: message_id=%s", message_id)
        raise HTTPException(status_code=500, detail="delete failed") from exc
    await rt.fanout.to_room(msg.room, "message_deleted", {"id": str(message_id)})
    return {"ok": True}


@router.post("/api/messages/bulk-delete")
async def bulk_delete(body: BulkDeleteRequest, rt: Realtime = Depends(get_realtime)):
    owner_id = None
    if body.role != REPRESENTATIVE:
        if body.user_id is None:
            raise HTTPException(status_code=403, detail="Permission denied")
        owner_id = body.user_id
    try:
        rooms = await rt.store.bulk_delete_messages(body.message_ids, owner_id=owner_id)
    except StoreError as exc:
        logger.exception("Bulk delete failed: ids=%s", body.message_ids)
        raise HTTPException(status_code=500, detail="delete failed") from exc
    ids = [str(message_id) for message_id in body.message_ids]
    for room in rooms:
        await rt.fanout.to_room(room, "messages_bulk_deleted", {"ids": ids})
    return {"ok": True, "rooms": rooms}


@router.get("/api/students/active-count/{cohort}")
async def active_count(cohort: str, rt: Realtime = Depends(get_realtime)):
    ids = rt.active_students(cohort)
    return {"ok": True, "count": len(ids), "activeIds": ids}


@router.post("/api/rooms")
async def create_room(body: CreateRoomRequest, rt: Realtime = Depends(get_realtime)):
    require_representative(body.role, "create rooms")
    try:
        room = await rt.store.create_room(
            name=body.name,
            icon=body.icon or "💬",
            description=body.description,
            created_by=body.created_by,
            cohort=body.cohort or settings.DEFAULT_COHORT,
        )
    except StoreError as exc:
        logger.exception("Creating room failed: name=%s", body.name)
        raise HTTPException(status_code=500, detail="create failed") from exc
    await room_created(rt, room)
    return {"ok": True, "room_id": room.id}


@router.delete("/api/rooms/{room_id}")
async def delete_room(room_id: int, body: RoleBody, rt: Realtime = Depends(get_realtime)):
    require_representative(body.role, "delete rooms")
    try:
        deleted = await rt.store.delete_room(room_id)
    except StoreError as exc:
        logger.exception("Deleting room failed: room_id=%s", room_id)
        raise HTTPException(status_code=500, detail="delete failed") from exc
    if not deleted:
        raise HTTPException(status_code=404, detail="Room not found")
    await room_deleted(rt, room_id)
    return {"ok": True}


@router.put("/api/lectures/{lecture_id}")
async def update_lecture(lecture_id: int, body: UpdateLectureRequest, rt: Realtime = Depends(get_realtime)):
    require_representative(body.role, "update lectures")
    try:
        updated = await rt.store.update_lecture(
            lecture_id, **body.model_dump(exclude={"role"})
        )
    except StoreError as exc:
        logger.exception("Updating lecture failed: lecture_id=%s", lecture_id)
        raise HTTPException(status_code=500, detail="update failed") from exc
    if updated is None:
        raise HTTPException(status_code=404, detail="Lecture not found")
    old, new = updated
    notified = await lecture_updated(rt, old, new)
    return {"ok": True, "notified": notified}


@router.post("/api/stories")
async def create_story(body: CreateStoryRequest, rt: Realtime = Depends(get_realtime)):
    require_representative(body.role, "create stories")
    try:
        story = await rt.store.create_story(
            title=body.title,
            content=body.content,
            type=body.type or "announcement",
            image=body.image,
            professor_name=body.professor_name,
            created_by=body.created_by,
            cohort=body.cohort or settings.DEFAULT_COHORT,
        )
    except StoreError as exc:
        logger.exception("Creating story failed: title=%s", body.title)
        raise HTTPException(status_code=500, detail="create failed") from exc
    notified = await story_created(rt, story)
    return {"ok": True, "story": story_payload(story), "notified": notified}


@router.delete("/api/stories/{story_id}")
async def delete_story(story_id: int, body: RoleBody, rt: Realtime = Depends(get_realtime)):
    require_representative(body.role, "delete stories")
    try:
        deleted = await rt.store.delete_story(story_id)
    except StoreError as exc:
        logger.exception("Deleting story failed: story_id=%s", story_id)
        raise HTTPException(status_code=500, detail="delete failed") from exc
    if not deleted:
        raise HTTPException(status_code=404, detail="Story not found")
    await story_deleted(rt, story_id)
    return {"ok": True}


def notification_payload(row: Notification) -> dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "title": row.title,
        "message": row.message,
        "sender_id": row.sender_id,
        "sender_name": row.sender_name,
        "is_read": int(bool(row.is_read)),
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


@router.get("/api/notifications/{user_id}")
async def list_notifications(user_id: str, rt: Realtime = Depends(get_realtime)):
    try:
        rows = await rt.store.notifications_for(user_id)
    except StoreError as exc:
        logger.exception("Reading notifications failed: user_id=%s", user_id)
        raise HTTPException(status_code=500, detail="notifications unavailable") from exc
    # newest first
    return {"ok": True, "notifications": [notification_payload(row) for row in reversed(rows)]}


@router.get("/api/notifications/unread/count/{user_id}")
async def unread_notifications(user_id: str, rt: Realtime = Depends(get_realtime)):
    try:
        count = await rt.store.unread_count(user_id)
    except StoreError as exc:
        logger.exception("Counting notifications failed: user_id=%s", user_id)
        raise HTTPException(status_code=500, detail="notifications unavailable") from exc
    return {"ok": True, "count": count}


@router.put("/api/notifications/read/{notification_id}")
async def mark_notification_read(notification_id: int, rt: Realtime = Depends(get_realtime)):
    try:
        updated = await rt.store.mark_read(notification_id)
    except StoreError as exc:
        logger.exception("Marking notification failed: id=%s", notification_id)
        raise HTTPException(status_code=500, detail="update failed") from exc
    if not updated:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"ok": True}


@router.put("/api/notifications/read-all/{user_id}")
async def mark_all_notifications_read(user_id: str, rt: Realtime = Depends(get_realtime)):
    try:
        updated = await rt.store.mark_all_read(user_id)
    except StoreError as exc:
        logger.exception("Marking notifications failed: user_id=%s", user_id)
        raise HTTPException(status_code=500, detail="update failed") from exc
    return {"ok": True, "updated": updated}


@router.delete("/api/notifications/all/{user_id}")
async def clear_notifications(user_id: str, rt: Realtime = Depends(get_realtime)):
    try:
        await rt.store.clear_notifications(user_id)
    except StoreError as exc:
        logger.exception("Clearing notifications failed: user_id=%s", user_id)
        raise HTTPException(status_code=500, detail="delete failed") from exc
    await rt.fanout.to_everyone("notification_count_update", {"userId": user_id, "count": 0})
    return {"ok": True}
