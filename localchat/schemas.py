"""Pydantic data schemas used across the chat service.

Client events arrive with camelCase keys (``roomId``, ``isTyping``) and
outgoing payloads are dumped the same way, so every model shares the
``CamelModel`` configuration.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# -----------------------------
# Client -> server events
# -----------------------------

class JoinRequest(CamelModel):
    username: Optional[str] = None
    room_id: int
    password: Optional[str] = None


class RoomQuery(CamelModel):
    room_id: Optional[int] = None


class SendMessageRequest(CamelModel):
    content: Optional[str] = None
    room_id: int


class TypingRequest(CamelModel):
    room_id: int
    is_typing: bool = False


class ModerationRequest(CamelModel):
    target_user_id: int
    room_id: int


class ClearMessagesRequest(CamelModel):
    room_id: int


# -----------------------------
# Server -> client payloads
# -----------------------------

class OnlineUser(CamelModel):
    username: str
    user_id: int


class JoinSuccess(CamelModel):
    user_id: int
    username: str
    is_admin: bool


class UserJoined(CamelModel):
    username: str
    user_id: int
    message: str


class UserLeft(CamelModel):
    username: str
    message: str


class MessageAuthor(CamelModel):
    id: int
    username: str


class ChatMessage(CamelModel):
    id: int
    content: str
    user: MessageAuthor
    room_id: int
    created_at: datetime


class MessagesCleared(CamelModel):
    room_id: int
    deleted_count: int


class AllMessagesCleared(CamelModel):
    message: str
    deleted_count: int


# -----------------------------
# REST request / response models
# -----------------------------

class CreateRoomRequest(CamelModel):
    name: str = ""
    description: str = ""


class RoomOut(CamelModel):
    id: int
    name: str
    description: str
    is_private: bool
    max_users: int
    created_at: datetime
    last_message: Optional[ChatMessage] = None


class QRCodeResponse(CamelModel):
    qr_code: str
    url: str


__all__ = [
    "CamelModel",
    # events in
    "JoinRequest",
    "RoomQuery",
    "SendMessageRequest",
    "TypingRequest",
    "ModerationRequest",
    "ClearMessagesRequest",
    # events out
    "OnlineUser",
    "JoinSuccess",
    "UserJoined",
    "UserLeft",
    "MessageAuthor",
    "ChatMessage",
    "MessagesCleared",
    "AllMessagesCleared",
    # REST
    "CreateRoomRequest",
    "RoomOut",
    "QRCodeResponse",
]
