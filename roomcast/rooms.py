"""Room membership tracking and join payload normalization."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Union

logger = logging.getLogger(__name__)

INVALID_ROOM_IDS = {"", "undefined", "null", "None"}


class InvalidPayload(ValueError):
    """Inbound event payload is malformed and must be dropped."""


@dataclass(frozen=True)
class Participant:
    connection_id: str
    user_id: str
    display_name: str
    role: str


@dataclass(frozen=True)
class BareJoin:
    room: str


@dataclass(frozen=True)
class DetailedJoin:
    room: str
    user_id: str
    user_name: str
    role: str

    def participant(self, connection_id: str) -> Participant:
        return Participant(connection_id, self.user_id, self.user_name, self.role)


JoinRequest = Union[BareJoin, DetailedJoin]


def normalize_room_id(value: Any) -> str:
    """Coerce a room identifier to its string form, rejecting sentinels."""
    if value is None or isinstance(value, bool):
        raise InvalidPayload(f"invalid room id: {value!r}")
    room = str(value).strip()
    if room in INVALID_ROOM_IDS:
        raise InvalidPayload(f"invalid room id: {value!r}")
    return room


def parse_join(data: Any) -> JoinRequest:
    """Turn a bare id or a ``{roomId|room, userId, userName, role}`` dict into a JoinRequest."""
    if isinstance(data, (str, int, float)) and not isinstance(data, bool):
        return BareJoin(normalize_room_id(data))
    if not isinstance(data, dict):
        raise InvalidPayload(f"unsupported join payload: {type(data).__name__}")
    room = normalize_room_id(data.get("roomId") or data.get("room"))
    user_id = data.get("userId")
    user_name = data.get("userName")
    role = data.get("role")
    if user_id in (None, "") or not user_name or not role:
        return BareJoin(room)
    return DetailedJoin(room, str(user_id), str(user_name), str(role))


class RoomTracker:
    """Room name -> participants keyed by connection id.

    Independent of the connection registry: a room only exists here once
    someone joined it with a full identity.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Dict[str, Participant]] = {}

    def join(self, room: str, connection_id: str, participant: Participant) -> None:
        self._rooms.setdefault(room, {})[connection_id] = participant
        logger.debug("Room %s now has %d participants", room, len(self._rooms[room]))

    def leave(self, room: str, connection_id: str) -> bool:
        """Drop a participant; returns whether the room is tracked at all."""
        participants = self._rooms.get(room)
        if participants is None:
            return False
        participants.pop(connection_id, None)
        if not participants:
            del self._rooms[room]
        return True

    def participants_of(self, room: str) -> list[Participant]:
        return list(self._rooms.get(room, {}).values())

    def active_count(self, room: str) -> int:
        return sum(1 for p in self.participants_of(room) if p.role == "student")

    def tracked_rooms(self) -> list[str]:
        return list(self._rooms)

    def rooms_of(self, connection_id: str) -> list[str]:
        return [room for room, members in list(self._rooms.items()) if connection_id in members]

    def remove_everywhere(self, connection_id: str) -> list[str]:
        """Remove a connection from every room; returns the rooms it was in."""
        affected = []
        for room, members in list(self._rooms.items()):
            if members.pop(connection_id, None) is not None:
                affected.append(room)
            if not members:
                del self._rooms[room]
        return affected
