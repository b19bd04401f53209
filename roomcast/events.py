"""Inbound socket event routing with a middleware chain."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List

from pydantic import ValidationError

from roomcast.notifications import send_manual
from roomcast.realtime import Realtime, identity_from
from roomcast.rooms import InvalidPayload, normalize_room_id, parse_join
from roomcast.schemas import ManualNotification, RegisterUser, SendMessage

logger = logging.getLogger(__name__)

Handler = Callable[[Realtime, str, Any], Awaitable[None]]
Next = Callable[[], Awaitable[None]]
Middleware = Callable[[str, str, Any, Next], Awaitable[None]]


class EventRouter:
    """Maps event names to handlers and runs each call through middlewares."""

    def __init__(self) -> None:
        self.handlers: Dict[str, Handler] = {}
        self.middlewares: List[Middleware] = []

    def on(self, event: str) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.handlers[event] = handler
            return handler

        return decorator

    def use(self, middleware: Middleware) -> None:
        self.middlewares.append(middleware)

    async def dispatch(self, rt: Realtime, connection_id: str, event: str, data: Any) -> None:
        handler = self.handlers.get(event)
        if handler is None:
            logger.warning("Unknown event %r from %s", event, connection_id)
            return

        async def call(index: int) -> None:
            if index == len(self.middlewares):
                await handler(rt, connection_id, data)
                return
            await self.middlewares[index](event, connection_id, data, lambda: call(index + 1))

        await call(0)

    async def dispatch_frame(self, rt: Realtime, connection_id: str, frame: Any) -> None:
        if not isinstance(frame, dict) or not isinstance(frame.get("type"), str):
            logger.warning("Dropping malformed frame from %s: %r", connection_id, frame)
            return
        await self.dispatch(rt, connection_id, frame["type"], frame.get("data"))


async def log_events(event: str, connection_id: str, data: Any, call_next: Next) -> None:
    logger.debug("Event received: %s from %s", event, connection_id)
    await call_next()


async def guard_errors(event: str, connection_id: str, data: Any, call_next: Next) -> None:
    """Drop malformed events and keep the socket alive on handler faults."""
    try:
        await call_next()
    except (InvalidPayload, ValidationError) as exc:
        logger.warning("Dropping %s from %s: %s", event, connection_id, exc)
    except Exception:
        logger.exception("Handler for %s failed (connection %s)", event, connection_id)


router = EventRouter()
router.use(guard_errors)
router.use(log_events)


@router.on("register_user")
async def on_register(rt: Realtime, connection_id: str, data: Any) -> None:
    user = RegisterUser.model_validate(data)
    rt.register(connection_id, identity_from(user.id, user.name, user.role, user.cohort))


@router.on("join_room")
async def on_join(rt: Realtime, connection_id: str, data: Any) -> None:
    await rt.join(connection_id, parse_join(data))


@router.on("leave_room")
async def on_leave(rt: Realtime, connection_id: str, data: Any) -> None:
    if isinstance(data, dict):
        room = normalize_room_id(data.get("roomId") or data.get("room"))
    else:
        room = normalize_room_id(data)
    await rt.leave(connection_id, room)


@router.on("send_message")
async def on_send_message(rt: Realtime, connection_id: str, data: Any) -> None:
    await rt.fanout.send_message(connection_id, SendMessage.model_validate(data))


@router.on("send_notification")
async def on_send_notification(rt: Realtime, connection_id: str, data: Any) -> None:
    await send_manual(rt, connection_id, ManualNotification.model_validate(data))


SIGNALING_EVENTS = ("offer", "answer", "ice-candidate")


async def relay_signal(rt: Realtime, connection_id: str, event: str, data: Any) -> int:
    """Forward a call-setup frame unchanged to the rest of its room."""
    if not isinstance(data, dict):
        raise InvalidPayload(f"{event} payload must be an object")
    room = normalize_room_id(data.get("roomId") or data.get("room"))
    return await rt.fanout.to_room(room, event, data, exclude={connection_id})


def _signal_handler(event: str) -> Handler:
    async def handler(rt: Realtime, connection_id: str, data: Any) -> None:
        await relay_signal(rt, connection_id, event, data)

    return handler


for _event in SIGNALING_EVENTS:
    router.on(_event)(_signal_handler(_event))
