"""Pydantic models for inbound socket events and HTTP bodies."""
from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from roomcast.rooms import normalize_room_id


TIME_OF_DAY = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def _as_str(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


class RegisterUser(BaseModel):
    id: str = Field(validation_alias=AliasChoices("id", "user_id", "userId"))
    name: Optional[str] = Field(default="", validation_alias=AliasChoices("name", "display_name", "userName"))
    role: Optional[str] = "student"
    cohort: Optional[str] = Field(default=None, validation_alias=AliasChoices("cohort", "studyType"))

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _as_str(value)


class SendMessage(BaseModel):
    room: str = Field(validation_alias=AliasChoices("room", "roomId"))
    sender_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("sender_id", "senderId"))
    sender_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("sender_name", "senderName"))
    content: Optional[str] = None
    type: Optional[str] = "text"
    file_path: Optional[str] = Field(default=None, validation_alias=AliasChoices("file_path", "fileRef"))
    token: Optional[str] = Field(default=None, validation_alias=AliasChoices("token", "tempId"))
    role: Optional[str] = "student"
    avatar: Optional[str] = None
    cohort: Optional[str] = Field(default=None, validation_alias=AliasChoices("cohort", "studyType"))

    @field_validator("room", mode="before")
    @classmethod
    def coerce_room(cls, value: Any) -> str:
        return normalize_room_id(value)

    @field_validator("sender_id", "token", mode="before")
    @classmethod
    def coerce_ids(cls, value: Any) -> Any:
        return _as_str(value)


class ManualNotification(BaseModel):
    from_user_id: str = Field(validation_alias=AliasChoices("from_user_id", "fromUserId", "professor_id"))
    from_user_name: str = Field(validation_alias=AliasChoices("from_user_name", "fromUserName", "professor_name"))
    body: str = Field(validation_alias=AliasChoices("body", "message"))

    @field_validator("from_user_id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _as_str(value)


class PinRequest(BaseModel):
    is_pinned: bool
    role: Optional[str] = None


class RoleBody(BaseModel):
    role: Optional[str] = None
    user_id: Optional[str] = None

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _as_str(value)


class CreateRoomRequest(BaseModel):
    name: str
    icon: Optional[str] = None
    description: Optional[str] = None
    created_by: Optional[str] = None
    role: Optional[str] = None
    cohort: Optional[str] = Field(default=None, validation_alias=AliasChoices("cohort", "studyType"))

    @field_validator("created_by", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _as_str(value)


class UpdateLectureRequest(BaseModel):
    title: str
    description: Optional[str] = None
    date: str
    time_start: str
    time_end: str
    professor_name: Optional[str] = None
    location: Optional[str] = Field(default=None, validation_alias=AliasChoices("location", "room_name"))
    role: Optional[str] = None

    @field_validator("time_start", "time_end")
    @classmethod
    def check_time(cls, value: str) -> str:
        match = TIME_OF_DAY.match(value.strip())
        if match is None:
            raise ValueError("expected HH:MM or HH:MM:SS")
        hour, minute, second = match.groups()
        if int(hour) > 23 or int(minute) > 59 or (second is not None and int(second) > 59):
            raise ValueError("time of day out of range")
        return value.strip()


class CreateStoryRequest(BaseModel):
    title: str
    content: str
    type: Optional[str] = "announcement"
    image: Optional[str] = None
    professor_name: Optional[str] = None
    created_by: Optional[str] = None
    role: Optional[str] = None
    cohort: Optional[str] = Field(default=None, validation_alias=AliasChoices("cohort", "studyType"))

    @field_validator("created_by", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _as_str(value)


class BulkDeleteRequest(BaseModel):
    message_ids: list[int] = Field(min_length=1, validation_alias=AliasChoices("message_ids", "messageIds"))
    role: Optional[str] = None
    user_id: Optional[str] = None

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _as_str(value)
