"""Shared runtime objects for the chat handlers.

``ChatCore`` bundles the presence registry, the connection hub and the
persistence gateway so session and moderation handlers receive everything
through a single argument, the same way every handler gets the object it
operates on.
"""
from __future__ import annotations

from typing import Optional, Set

from .config import Settings
from .errors import PersistenceError
from .gateway import Gateway
from .hub import Hub, ToRoom, Unicast
from .logging_config import get_logger
from .presence import PresenceRegistry

logger = get_logger(__name__)


class ChatCore:
    def __init__(
        self,
        gateway: Gateway,
        settings: Settings,
        hub: Optional[Hub] = None,
        registry: Optional[PresenceRegistry] = None,
    ):
        self.gateway = gateway
        self.settings = settings
        self.hub = hub or Hub()
        self.registry = registry or PresenceRegistry()
        # Users blocked during this process lifetime. Checked after a join's
        # storage round-trips so a block that lands mid-join still wins.
        self.blocked_user_ids: Set[int] = set()

    # -------------------- Broadcasting helpers -------------------- #

    def broadcast_online_users(self, room_id: int) -> None:
        users = [u.dump() for u in self.registry.online_users(room_id)]
        self.hub.emit(ToRoom(room_id), "onlineUsers", users)

    def broadcast_typing(self, room_id: int, exclude: Optional[str] = None) -> None:
        self.hub.emit(ToRoom(room_id, exclude=exclude), "typingUsers", self.registry.typing_usernames(room_id))

    def send_error(self, connection_id: str, message: str) -> None:
        self.hub.emit(Unicast(connection_id), "error", message)

    # -------------------- Stored presence -------------------- #

    async def release_user(self, user_id: int, username: str) -> None:
        """Clear the stored online flag and socket once no live entry of the user remains."""
        if self.registry.find_by_user(user_id):
            return
        try:
            await self.gateway.update_user(user_id, is_online=False, socket_id=None)
        except PersistenceError:
            logger.warning("Could not mark user %s offline", username)

    def reset(self) -> None:
        """Forget all live state (presence is never persisted)."""
        self.registry.clear()
        self.hub.connections.clear()
        self.hub.groups.clear()
        self.blocked_user_ids.clear()


__all__ = ["ChatCore"]
