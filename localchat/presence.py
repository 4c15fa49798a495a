"""Authoritative in-memory presence state.

The registry maps live connection ids to the user and room they joined, plus
a parallel map of who is typing. It is only ever mutated from the event loop
thread and every method is synchronous, so a mutation can never interleave
with another handler.
"""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel

from .schemas import OnlineUser


class PresenceEntry(BaseModel):
    connection_id: str
    user_id: int
    username: str
    room_id: int


class TypingEntry(BaseModel):
    connection_id: str
    username: str
    room_id: int


class PresenceRegistry:
    def __init__(self) -> None:
        self._presence: Dict[str, PresenceEntry] = {}
        self._typing: Dict[str, TypingEntry] = {}

    def __len__(self) -> int:
        return len(self._presence)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._presence

    # -------------------- Presence -------------------- #

    def insert(self, connection_id: str, user_id: int, username: str, room_id: int) -> Optional[PresenceEntry]:
        """Install the entry for *connection_id*, returning the one it replaced."""
        previous = self._presence.get(connection_id)
        self._presence[connection_id] = PresenceEntry(
            connection_id=connection_id,
            user_id=user_id,
            username=username,
            room_id=room_id,
        )
        if previous is not None and (previous.room_id != room_id or previous.user_id != user_id):
            # typing state never follows a connection into another room or user
            self._typing.pop(connection_id, None)
        return previous

    def get(self, connection_id: str) -> Optional[PresenceEntry]:
        return self._presence.get(connection_id)

    def remove(self, connection_id: str) -> Optional[PresenceEntry]:
        """Drop presence and typing state; absent ids are a no-op."""
        self._typing.pop(connection_id, None)
        return self._presence.pop(connection_id, None)

    def find_by_user(self, user_id: int) -> List[PresenceEntry]:
        return [e for e in self._presence.values() if e.user_id == user_id]

    def in_room(self, room_id: int) -> List[PresenceEntry]:
        return [e for e in self._presence.values() if e.room_id == room_id]

    def online_users(self, room_id: int) -> List[OnlineUser]:
        return [OnlineUser(username=e.username, user_id=e.user_id) for e in self.in_room(room_id)]

    # -------------------- Typing -------------------- #

    def set_typing(self, connection_id: str, is_typing: bool) -> Optional[TypingEntry]:
        """Start or stop typing for a registered connection.

        Returns the affected entry, or ``None`` when the connection has no
        presence entry (nothing is changed in that case).
        """
        entry = self._presence.get(connection_id)
        if entry is None:
            return None
        typing = TypingEntry(connection_id=connection_id, username=entry.username, room_id=entry.room_id)
        if is_typing:
            self._typing[connection_id] = typing
        else:
            self._typing.pop(connection_id, None)
        return typing

    def is_typing(self, connection_id: str) -> bool:
        return connection_id in self._typing

    def typing_usernames(self, room_id: int) -> List[str]:
        return [t.username for t in self._typing.values() if t.room_id == room_id]

    def clear(self) -> None:
        self._presence.clear()
        self._typing.clear()


__all__ = ["PresenceEntry", "TypingEntry", "PresenceRegistry"]
