"""Room session protocol.

Handlers for the join / getOnlineUsers / sendMessage / typing / disconnect
events, plus :func:`handle_ws_message`, the single entry point the transport
calls for every client frame. Handlers raise :class:`ChatError` subclasses;
the entry point turns them into ``error`` events for the caller only.

Storage awaits are the only places a handler yields to other events, so
every handler re-checks the registry after an await before touching live
state or broadcasting.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, NamedTuple, Optional, Type

import pydantic

from .constants import (
    ADMIN_USERNAME,
    ERR_BLOCK_FAILED,
    ERR_BLOCKED,
    ERR_CLEAR_ALL_FAILED,
    ERR_CLEAR_FAILED,
    ERR_GET_ONLINE_USERS_FAILED,
    ERR_INVALID_ADMIN_PASSWORD,
    ERR_INVALID_PAYLOAD,
    ERR_INVALID_USERNAME,
    ERR_JOIN_FAILED,
    ERR_KICK_FAILED,
    ERR_MESSAGE_TOO_LONG,
    ERR_ROOM_NOT_FOUND,
    ERR_SEND_FAILED,
    ERR_TYPING_FAILED,
    ERR_UNKNOWN_EVENT,
    ERR_USERNAME_LENGTH,
    MESSAGE_MAX_LENGTH,
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
)
from .core import ChatCore
from .errors import AuthorizationError, ChatError, NotFoundError, PersistenceError, ValidationError
from .gateway import serialize_message
from .hub import Connection, ToRoom, Unicast
from .logging_config import get_logger
from .moderation import (
    handle_block_user,
    handle_clear_all_messages,
    handle_clear_messages,
    handle_kick_user,
)
from .sanitizer import Mode, sanitize
from .schemas import (
    ClearMessagesRequest,
    JoinRequest,
    JoinSuccess,
    ModerationRequest,
    RoomQuery,
    SendMessageRequest,
    TypingRequest,
    UserJoined,
    UserLeft,
)
from .security import verify_admin_password

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------

def handle_connect(core: ChatCore, connection: Connection) -> None:
    core.hub.register(connection)
    logger.info("Connection opened: %s", connection.id)


async def handle_disconnect(core: ChatCore, connection_id: str) -> None:
    """Tear down a connection. Safe to call for unjoined or unknown ids."""
    was_typing = core.registry.is_typing(connection_id)
    entry = core.registry.remove(connection_id)
    core.hub.unregister(connection_id)
    logger.info("Connection closed: %s", connection_id)
    if entry is None:
        return

    # Another tab of the same user keeps it online.
    await core.release_user(entry.user_id, entry.username)

    core.hub.emit(
        ToRoom(entry.room_id),
        "userLeft",
        UserLeft(username=entry.username, message=f"{entry.username} left the chat").dump(),
    )
    core.broadcast_online_users(entry.room_id)
    if was_typing:
        core.broadcast_typing(entry.room_id)


# ---------------------------------------------------------------------------
# Event handlers
# ---------------------------------------------------------------------------

async def handle_join(core: ChatCore, connection_id: str, req: JoinRequest) -> None:
    username = sanitize(req.username, Mode.STRICT)
    if not username:
        raise ValidationError(ERR_INVALID_USERNAME)
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        raise ValidationError(ERR_USERNAME_LENGTH)

    gateway = core.gateway
    user = await gateway.find_user_by_username(username)
    if user is not None and user.is_blocked:
        logger.warning("Blocked user %s tried to join room %s", username, req.room_id)
        raise AuthorizationError(ERR_BLOCKED)

    as_admin = username.lower() == ADMIN_USERNAME
    if as_admin and not verify_admin_password(core.settings, req.password):
        logger.warning("Invalid admin password for %s on %s", username, connection_id)
        raise AuthorizationError(ERR_INVALID_ADMIN_PASSWORD)

    room = await gateway.find_room(req.room_id)
    if room is None:
        raise NotFoundError(ERR_ROOM_NOT_FOUND)

    if user is None:
        user = await gateway.create_user(username, is_admin=as_admin, socket_id=connection_id)
    else:
        fields: Dict[str, Any] = {"socket_id": connection_id, "is_online": True}
        if as_admin:
            fields["is_admin"] = True
        await gateway.update_user(user.id, **fields)
        user.is_admin = user.is_admin or as_admin

    # Re-validate after the storage round-trips. Past these checks nothing
    # yields, so the entry and the room subscription land together.
    if not core.hub.is_open(connection_id):
        logger.info("Connection %s closed during join; discarding", connection_id)
        await core.release_user(user.id, username)
        return
    if user.id in core.blocked_user_ids:
        logger.warning("User %s was blocked while joining", username)
        await core.release_user(user.id, username)
        raise AuthorizationError(ERR_BLOCKED)

    was_typing = core.registry.is_typing(connection_id)
    previous = core.registry.insert(connection_id, user.id, username, room.id)
    moved = previous is not None and previous.room_id != room.id
    switched = previous is not None and previous.user_id != user.id
    if moved:
        core.hub.unsubscribe(connection_id, previous.room_id)
    if moved or switched:
        core.hub.emit(
            ToRoom(previous.room_id, exclude=connection_id),
            "userLeft",
            UserLeft(username=previous.username, message=f"{previous.username} left the chat").dump(),
        )
        if moved:
            core.broadcast_online_users(previous.room_id)
            if was_typing:
                core.broadcast_typing(previous.room_id)
    core.hub.subscribe(connection_id, room.id)

    core.hub.emit(
        ToRoom(room.id, exclude=connection_id),
        "userJoined",
        UserJoined(username=username, user_id=user.id, message=f"{username} joined the chat").dump(),
    )
    core.broadcast_online_users(room.id)
    if switched and was_typing and not moved:
        core.broadcast_typing(room.id)
    core.hub.emit(
        Unicast(connection_id),
        "joinSuccess",
        JoinSuccess(user_id=user.id, username=username, is_admin=bool(user.is_admin)).dump(),
    )
    logger.info("%s joined room %s (%s)", username, room.id, connection_id)

    if switched:
        # the replaced user may have no other connection left
        await core.release_user(previous.user_id, previous.username)


async def handle_get_online_users(core: ChatCore, connection_id: str, req: RoomQuery) -> None:
    if req.room_id is None:
        return
    users = [u.dump() for u in core.registry.online_users(req.room_id)]
    core.hub.emit(Unicast(connection_id), "onlineUsers", users)


async def handle_send_message(core: ChatCore, connection_id: str, req: SendMessageRequest) -> None:
    entry = core.registry.get(connection_id)
    if entry is None or entry.room_id != req.room_id:
        return

    content = sanitize(req.content, Mode.RICH)
    if not content:
        return
    if len(content) > MESSAGE_MAX_LENGTH:
        raise ValidationError(ERR_MESSAGE_TOO_LONG)

    message = await core.gateway.create_message(content, entry.user_id, entry.room_id)

    current = core.registry.get(connection_id)
    if current is None or current.room_id != entry.room_id:
        logger.info("Sender %s left room %s before message %s was delivered", entry.username, entry.room_id, message.id)
        return
    core.hub.emit(ToRoom(entry.room_id), "newMessage", serialize_message(message).dump())


async def handle_typing(core: ChatCore, connection_id: str, req: TypingRequest) -> None:
    entry = core.registry.get(connection_id)
    if entry is None or entry.room_id != req.room_id:
        return
    core.registry.set_typing(connection_id, req.is_typing)
    core.broadcast_typing(entry.room_id, exclude=connection_id)


# ---------------------------------------------------------------------------
# Dispatch (single public entry point below)
# ---------------------------------------------------------------------------

Handler = Callable[[ChatCore, str, Any], Awaitable[None]]


class EventRoute(NamedTuple):
    handler: Handler
    schema: Optional[Type[pydantic.BaseModel]]
    failure_message: str


EVENT_ROUTES: Dict[str, EventRoute] = {
    "join": EventRoute(handle_join, JoinRequest, ERR_JOIN_FAILED),
    "getOnlineUsers": EventRoute(handle_get_online_users, RoomQuery, ERR_GET_ONLINE_USERS_FAILED),
    "sendMessage": EventRoute(handle_send_message, SendMessageRequest, ERR_SEND_FAILED),
    "typing": EventRoute(handle_typing, TypingRequest, ERR_TYPING_FAILED),
    "kickUser": EventRoute(handle_kick_user, ModerationRequest, ERR_KICK_FAILED),
    "blockUser": EventRoute(handle_block_user, ModerationRequest, ERR_BLOCK_FAILED),
    "clearMessages": EventRoute(handle_clear_messages, ClearMessagesRequest, ERR_CLEAR_FAILED),
    "clearAllMessages": EventRoute(handle_clear_all_messages, None, ERR_CLEAR_ALL_FAILED),
}


async def handle_ws_message(core: ChatCore, connection_id: str, frame: Any) -> None:
    """Route one client frame ``{"type": ..., "data": {...}}`` to its handler.

    Errors never escape: they are reported to the caller as ``error`` events
    and logged, so one bad event cannot take the connection or the process
    down.
    """
    if not isinstance(frame, dict):
        core.send_error(connection_id, ERR_INVALID_PAYLOAD)
        return
    event = frame.get("type")
    data = frame.get("data")
    if data is None:
        data = {k: v for k, v in frame.items() if k != "type"}

    route = EVENT_ROUTES.get(event) if isinstance(event, str) else None
    if route is None:
        core.send_error(connection_id, ERR_UNKNOWN_EVENT)
        return

    try:
        request = route.schema.model_validate(data) if route.schema else None
    except pydantic.ValidationError as exc:
        logger.debug("Rejected %s payload from %s: %s", event, connection_id, exc)
        core.send_error(connection_id, ERR_INVALID_PAYLOAD)
        return

    try:
        await route.handler(core, connection_id, request)
    except PersistenceError:
        core.send_error(connection_id, route.failure_message)
    except ChatError as exc:
        core.send_error(connection_id, exc.message)
    except Exception:
        logger.exception("Unhandled error while processing %s from %s", event, connection_id)
        core.send_error(connection_id, route.failure_message)


__all__ = [
    "handle_connect",
    "handle_disconnect",
    "handle_join",
    "handle_get_online_users",
    "handle_send_message",
    "handle_typing",
    "handle_ws_message",
    "EVENT_ROUTES",
]
