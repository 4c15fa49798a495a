"""Admin-only operations: kick, block and history clearing.

Every operation re-reads the caller's user record before acting, so an admin
whose flag was revoked mid-session loses access on the next request.
"""
from __future__ import annotations

from typing import Optional

from .constants import (
    ALL_CLEARED_NOTICE,
    BLOCKED_NOTICE,
    ERR_UNAUTHORIZED,
    KICKED_NOTICE,
)
from .core import ChatCore
from .errors import AuthorizationError
from .hub import Everyone, ToRoom, Unicast
from .logging_config import get_logger
from .presence import PresenceEntry
from .schemas import (
    AllMessagesCleared,
    ClearMessagesRequest,
    MessagesCleared,
    ModerationRequest,
    UserLeft,
)

logger = get_logger(__name__)


async def require_admin(core: ChatCore, connection_id: str) -> Optional[PresenceEntry]:
    """Return the caller's presence entry if it belongs to a current admin.

    Unjoined callers get ``None`` (the request is ignored); joined non-admins
    raise :class:`AuthorizationError`.
    """
    entry = core.registry.get(connection_id)
    if entry is None:
        return None
    caller = await core.gateway.find_user_by_id(entry.user_id)
    if caller is None or not caller.is_admin:
        logger.warning("Unauthorized moderation attempt by %s (%s)", entry.username, connection_id)
        raise AuthorizationError(ERR_UNAUTHORIZED)
    # the caller may have left while we were waiting on storage
    if core.registry.get(connection_id) is None:
        return None
    return entry


def evict(core: ChatCore, entry: PresenceEntry, notice: str, leave_message: str) -> None:
    """Remove a live connection from its room and tell everyone about it."""
    was_typing = core.registry.is_typing(entry.connection_id)
    if core.registry.remove(entry.connection_id) is None:
        return
    core.hub.emit(Unicast(entry.connection_id), "kicked", notice)
    core.hub.unsubscribe(entry.connection_id, entry.room_id)
    core.hub.emit(
        ToRoom(entry.room_id),
        "userLeft",
        UserLeft(username=entry.username, message=leave_message).dump(),
    )
    core.broadcast_online_users(entry.room_id)
    if was_typing:
        core.broadcast_typing(entry.room_id)


async def handle_kick_user(core: ChatCore, connection_id: str, req: ModerationRequest) -> None:
    admin = await require_admin(core, connection_id)
    if admin is None:
        return
    targets = [e for e in core.registry.find_by_user(req.target_user_id) if e.room_id == req.room_id]
    for entry in targets:
        evict(core, entry, KICKED_NOTICE, f"{entry.username} was kicked from the chat")
    if targets:
        logger.info("%s kicked user %s from room %s", admin.username, req.target_user_id, req.room_id)
        await core.release_user(req.target_user_id, targets[0].username)


async def handle_block_user(core: ChatCore, connection_id: str, req: ModerationRequest) -> None:
    admin = await require_admin(core, connection_id)
    if admin is None:
        return

    core.blocked_user_ids.add(req.target_user_id)
    try:
        await core.gateway.update_user(req.target_user_id, is_blocked=True)
    except Exception:
        core.blocked_user_ids.discard(req.target_user_id)
        raise

    # Scan again after the write: the target may have joined meanwhile.
    targets = core.registry.find_by_user(req.target_user_id)
    for entry in targets:
        evict(core, entry, BLOCKED_NOTICE, f"{entry.username} was blocked from the chat.")
    logger.warning("%s blocked user %s", admin.username, req.target_user_id)
    if targets:
        await core.release_user(req.target_user_id, targets[0].username)


async def handle_clear_messages(core: ChatCore, connection_id: str, req: ClearMessagesRequest) -> None:
    admin = await require_admin(core, connection_id)
    if admin is None:
        return
    deleted = await core.gateway.delete_messages_by_room(req.room_id)
    core.hub.emit(
        ToRoom(req.room_id),
        "messagesCleared",
        MessagesCleared(room_id=req.room_id, deleted_count=deleted).dump(),
    )
    logger.info("%s cleared %d message(s) in room %s", admin.username, deleted, req.room_id)


async def handle_clear_all_messages(core: ChatCore, connection_id: str, _req: None = None) -> None:
    admin = await require_admin(core, connection_id)
    if admin is None:
        return
    deleted = await core.gateway.delete_all_messages()
    core.hub.emit(
        Everyone(),
        "allMessagesCleared",
        AllMessagesCleared(message=ALL_CLEARED_NOTICE, deleted_count=deleted).dump(),
    )
    logger.info("Admin %s cleared %d message(s) from all rooms", admin.username, deleted)


__all__ = [
    "require_admin",
    "evict",
    "handle_kick_user",
    "handle_block_user",
    "handle_clear_messages",
    "handle_clear_all_messages",
]
