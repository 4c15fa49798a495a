"""Persistence gateway consumed by the chat core.

The session and moderation handlers only talk to storage through
:class:`Gateway`. :class:`TortoiseGateway` is the production implementation;
every ORM or driver failure surfaces as :class:`PersistenceError` so the
handlers have a single error type to contain per event.
"""
from __future__ import annotations

import functools
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from tortoise.exceptions import BaseORMException, IntegrityError

from .constants import (
    DEFAULT_PAGE_SIZE,
    ROOM_DESCRIPTION_MAX_LENGTH,
    ROOM_NAME_MAX_LENGTH,
    ROOM_NAME_MIN_LENGTH,
)
from .errors import ChatError, PersistenceError, ValidationError
from .logging_config import get_logger
from .models import Message, Room, User
from .sanitizer import Mode, sanitize
from .schemas import ChatMessage, MessageAuthor, RoomOut

logger = get_logger(__name__)

T = TypeVar("T")


def serialize_message(message: Message) -> ChatMessage:
    """Build the wire representation of *message* (``user`` must be fetched)."""
    return ChatMessage(
        id=message.id,
        content=message.content,
        user=MessageAuthor(id=message.user.id, username=message.user.username),
        room_id=message.room_id,
        created_at=message.created_at,
    )


class Gateway(ABC):
    """Storage operations the chat core relies on."""

    @abstractmethod
    async def find_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    async def find_user_by_id(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    async def create_user(self, username: str, is_admin: bool, socket_id: Optional[str] = None) -> User: ...

    @abstractmethod
    async def update_user(self, user_id: int, **fields: Any) -> None: ...

    @abstractmethod
    async def mark_all_offline(self) -> int: ...

    @abstractmethod
    async def find_rooms(self) -> List[RoomOut]: ...

    @abstractmethod
    async def find_room(self, room_id: int) -> Optional[Room]: ...

    @abstractmethod
    async def create_room(self, name: str, description: str = "", created_by: Optional[int] = None) -> Room: ...

    @abstractmethod
    async def create_message(self, content: str, user_id: int, room_id: int) -> Message: ...

    @abstractmethod
    async def find_messages_by_room(
        self, room_id: int, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> List[Message]: ...

    @abstractmethod
    async def delete_messages_by_room(self, room_id: int) -> int: ...

    @abstractmethod
    async def delete_all_messages(self) -> int: ...


def _storage_call(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await func(*args, **kwargs)
        except ChatError:
            raise
        except (BaseORMException, OSError) as exc:
            logger.error("Storage call %s failed: %s", func.__name__, exc, exc_info=True)
            raise PersistenceError(f"Storage call {func.__name__} failed") from exc

    return wrapper


class TortoiseGateway(Gateway):
    # -------------------- Users -------------------- #

    @_storage_call
    async def find_user_by_username(self, username: str) -> Optional[User]:
        return await User.get_or_none(username=username)

    @_storage_call
    async def find_user_by_id(self, user_id: int) -> Optional[User]:
        return await User.get_or_none(id=user_id)

    @_storage_call
    async def create_user(self, username: str, is_admin: bool, socket_id: Optional[str] = None) -> User:
        user = await User.create(
            username=username,
            is_admin=is_admin,
            socket_id=socket_id,
            is_online=True,
        )
        logger.info("Created user %s (admin=%s)", username, is_admin)
        return user

    @_storage_call
    async def update_user(self, user_id: int, **fields: Any) -> None:
        await User.filter(id=user_id).update(**fields)

    @_storage_call
    async def mark_all_offline(self) -> int:
        return await User.filter(is_online=True).update(is_online=False, socket_id=None)

    # -------------------- Rooms -------------------- #

    @_storage_call
    async def find_rooms(self) -> List[RoomOut]:
        result: List[RoomOut] = []
        for room in await Room.all().order_by("created_at", "id"):
            latest = (
                await Message.filter(room_id=room.id)
                .order_by("-created_at", "-id")
                .prefetch_related("user")
                .first()
            )
            result.append(
                RoomOut(
                    id=room.id,
                    name=room.name,
                    description=room.description,
                    is_private=room.is_private,
                    max_users=room.max_users,
                    created_at=room.created_at,
                    last_message=serialize_message(latest) if latest else None,
                )
            )
        return result

    @_storage_call
    async def find_room(self, room_id: int) -> Optional[Room]:
        return await Room.get_or_none(id=room_id)

    @_storage_call
    async def create_room(self, name: str, description: str = "", created_by: Optional[int] = None) -> Room:
        clean_name = sanitize(name, Mode.STRICT)
        clean_description = sanitize(description, Mode.STRICT)
        if not clean_name:
            raise ValidationError("Room name cannot be empty or just HTML tags.")
        if not ROOM_NAME_MIN_LENGTH <= len(clean_name) <= ROOM_NAME_MAX_LENGTH:
            raise ValidationError(
                f"Room name must be between {ROOM_NAME_MIN_LENGTH} and {ROOM_NAME_MAX_LENGTH} characters."
            )
        if len(clean_description) > ROOM_DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                f"Room description must be at most {ROOM_DESCRIPTION_MAX_LENGTH} characters."
            )
        try:
            room = await Room.create(
                name=clean_name,
                description=clean_description,
                created_by_id=created_by,
            )
        except IntegrityError as exc:
            raise ValidationError(f"A room named {clean_name!r} already exists.") from exc
        logger.info("Created room %s (%s)", room.name, room.id)
        return room

    # -------------------- Messages -------------------- #

    @_storage_call
    async def create_message(self, content: str, user_id: int, room_id: int) -> Message:
        message = await Message.create(content=content, user_id=user_id, room_id=room_id)
        await message.fetch_related("user")
        return message

    @_storage_call
    async def find_messages_by_room(
        self, room_id: int, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> List[Message]:
        page = max(page, 1)
        newest_first = (
            await Message.filter(room_id=room_id)
            .order_by("-created_at", "-id")
            .offset((page - 1) * page_size)
            .limit(page_size)
            .prefetch_related("user")
        )
        return list(reversed(newest_first))

    @_storage_call
    async def delete_messages_by_room(self, room_id: int) -> int:
        return await Message.filter(room_id=room_id).delete()

    @_storage_call
    async def delete_all_messages(self) -> int:
        return await Message.all().delete()


__all__ = ["Gateway", "TortoiseGateway", "serialize_message"]
